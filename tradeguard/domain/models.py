from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

Side = Literal["buy", "sell"]

BUY: Side = "buy"
SELL: Side = "sell"


def opposite(side: Side) -> Side:
    return SELL if side == BUY else BUY


@dataclass(frozen=True)
class SymbolConstraints:
    symbol: str
    point: float
    digits: int
    volume_min: float
    volume_step: float
    volume_max: float
    tick_value: float
    tick_size: float

    @property
    def money_per_point(self) -> float:
        """
        Account-currency value of a one point move for 1 lot.
        """
        return self.point / self.tick_size * self.tick_value


@dataclass(frozen=True)
class Tick:
    bid: float
    ask: float
    time: Optional[datetime] = None

    def reference(self, side: Side) -> float:
        """Price a position of ``side`` would be closed at."""
        return self.bid if side == BUY else self.ask

    def entry(self, side: Side) -> float:
        return self.ask if side == BUY else self.bid


@dataclass(frozen=True)
class Position:
    ticket: int
    symbol: str
    side: Side
    volume: float
    entry_price: float
    current_profit: float = 0.0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    @property
    def is_long(self) -> bool:
        return self.side == BUY


@dataclass(frozen=True)
class PendingOrder:
    ticket: int
    symbol: str
    side: Side
    kind: str  # limit | stop | stop_limit
    volume: float
    price: float


@dataclass(frozen=True)
class OrderResult:
    ticket: int
    retcode: int
    retcode_description: str = ""
    price: Optional[float] = None


@dataclass(frozen=True)
class OrderPlan:
    symbol: str
    side: Side
    volume: float
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
