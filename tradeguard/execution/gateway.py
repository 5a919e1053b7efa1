from __future__ import annotations

from typing import Optional, Protocol

from tradeguard.domain.models import OrderResult, PendingOrder, Position, Side, SymbolConstraints, Tick
from tradeguard.domain.orders.pending import PendingOrderSpec


class TradingGateway(Protocol):
    """
    Trading terminal contract.

    Read calls may raise ``GatewayError``; mutating calls raise
    ``GatewayError`` with a classified failure when the broker rejects.
    Retry is applied by the caller, never inside the gateway.
    """

    def get_symbol_constraints(self, symbol: str) -> SymbolConstraints: ...

    def get_current_price(self, symbol: str) -> Tick: ...

    def get_open_positions(self) -> list[Position]: ...

    def get_pending_orders(self) -> list[PendingOrder]: ...

    # --------------------------------------------------
    # mutating
    # --------------------------------------------------

    def send_market_order(
        self,
        *,
        symbol: str,
        side: Side,
        volume: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        deviation: int = 10,
        comment: Optional[str] = None,
    ) -> OrderResult: ...

    def send_pending_order(
        self,
        spec: PendingOrderSpec,
        *,
        volume: float,
        comment: Optional[str] = None,
    ) -> OrderResult: ...

    def modify_position_sl_tp(
        self,
        ticket: int,
        *,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> OrderResult: ...

    def close_position_partial(
        self,
        ticket: int,
        *,
        volume: float,
        deviation: int = 10,
    ) -> OrderResult: ...

    def cancel_pending_order(self, ticket: int) -> OrderResult: ...


def find_position(gateway: TradingGateway, ticket: int) -> Optional[Position]:
    for pos in gateway.get_open_positions():
        if int(pos.ticket) == int(ticket):
            return pos
    return None
