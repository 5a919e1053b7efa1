from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional

from tradeguard.domain.errors import Failure, Result, Violation
from tradeguard.domain.models import BUY, Side, Tick
from tradeguard.domain.normalize import normalize_price

PendingKind = Literal["limit", "stop", "stop_limit"]
TimeInForce = Literal["GTC", "DAY", "GTD"]

LIMIT: PendingKind = "limit"
STOP: PendingKind = "stop"
STOP_LIMIT: PendingKind = "stop_limit"

TIME_IN_FORCE = ("GTC", "DAY", "GTD")


@dataclass(frozen=True)
class PendingOrderSpec:
    symbol: str
    side: Side
    kind: PendingKind
    price: Optional[float] = None
    stop_trigger: Optional[float] = None
    limit_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    time_in_force: TimeInForce = "GTC"
    expiry: Optional[datetime] = None

    @property
    def name(self) -> str:
        return f"{self.side}_{self.kind}"

    @property
    def entry_price(self) -> Optional[float]:
        """Price at which the order enters the book (trigger for stop-limit)."""
        return self.stop_trigger if self.kind == STOP_LIMIT else self.price


def validate_pending_order(spec: PendingOrderSpec, *, now: datetime | None = None) -> Result[None]:
    """
    Check type-specific invariants of a pending order.

    All violations are collected into one VALIDATION failure so the caller
    can report every correction at once.
    """
    now = now or datetime.now(timezone.utc)
    violations: list[Violation] = []

    if spec.side not in ("buy", "sell"):
        violations.append(Violation("side", f"unknown side '{spec.side}'"))

    if spec.kind in (LIMIT, STOP):
        if spec.price is None:
            violations.append(Violation("price", f"required for {spec.kind} orders"))
        elif spec.price <= 0:
            violations.append(Violation("price", "must be > 0"))

        if spec.stop_trigger is not None:
            violations.append(Violation("stop_trigger", f"not allowed for {spec.kind} orders"))
        if spec.limit_price is not None:
            violations.append(Violation("limit_price", f"not allowed for {spec.kind} orders"))

    elif spec.kind == STOP_LIMIT:
        if spec.price is not None:
            violations.append(Violation("price", "not allowed for stop_limit orders, use stop_trigger/limit_price"))

        violations.extend(_check_positive("stop_trigger", spec.stop_trigger))
        violations.extend(_check_positive("limit_price", spec.limit_price))

        if spec.stop_trigger is not None and spec.limit_price is not None:
            if spec.side == BUY and not spec.limit_price <= spec.stop_trigger:
                violations.append(
                    Violation("limit_price", "buy stop_limit requires limit_price <= stop_trigger")
                )
            if spec.side == "sell" and not spec.limit_price >= spec.stop_trigger:
                violations.append(
                    Violation("limit_price", "sell stop_limit requires limit_price >= stop_trigger")
                )
    else:
        violations.append(Violation("kind", f"unknown pending kind '{spec.kind}'"))

    if spec.time_in_force not in TIME_IN_FORCE:
        violations.append(Violation("time_in_force", f"unsupported '{spec.time_in_force}', use GTC|DAY|GTD"))
    elif spec.time_in_force == "GTD":
        if spec.expiry is None:
            violations.append(Violation("expiry", "required when time_in_force is GTD"))
        elif spec.expiry.tzinfo is None:
            violations.append(Violation("expiry", "must be timezone-aware"))
        elif spec.expiry <= now:
            violations.append(Violation("expiry", f"{spec.expiry.isoformat()} is not in the future"))
    elif spec.expiry is not None:
        violations.append(Violation("expiry", "only allowed when time_in_force is GTD"))

    if violations:
        return Result.fail(
            Failure.validation(
                f"Invalid {spec.name} order: " + "; ".join(str(v) for v in violations),
                code="invalid_pending_order",
                violations=violations,
            )
        )
    return Result.ok()


def _check_positive(field: str, value: Optional[float]) -> list[Violation]:
    if value is None:
        return [Violation(field, "required for stop_limit orders")]
    if value <= 0:
        return [Violation(field, "must be > 0")]
    return []


def price_from_offset_points(
    *,
    kind: PendingKind,
    side: Side,
    tick: Tick,
    point: float,
    digits: int,
    offset_points: float,
) -> float:
    """
    Pending price ``offset_points`` away from the market.

    Buy orders are measured from ask, sell orders from bid.
    Limits sit on the favourable side (buy below, sell above),
    stops on the breakout side (buy above, sell below).
    """
    if offset_points < 0:
        raise ValueError("offset_points must be >= 0")

    basis = tick.ask if side == BUY else tick.bid
    above = (kind == LIMIT) != (side == BUY)
    raw = basis + (1.0 if above else -1.0) * offset_points * point
    return normalize_price(raw, digits)
