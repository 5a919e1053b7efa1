from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tradeguard.domain.errors import Failure, Result
from tradeguard.domain.models import BUY, OrderPlan, Side, SymbolConstraints, Tick
from tradeguard.domain.normalize import MinLotPolicy, normalize_price, normalize_volume_for


@dataclass(frozen=True)
class RiskRequest:
    symbol: str
    stop_distance_points: float
    risk_money: float
    take_profit_points: Optional[float] = None


def raw_volume_for_risk(
    *,
    stop_distance_points: float,
    risk_money: float,
    point: float,
    tick_size: float,
    tick_value: float,
) -> float:
    """
    Domain-level risk sizing.
    Pure function.

    Volume that loses exactly ``risk_money`` when the stop
    ``stop_distance_points`` away is hit.
    """
    loss_per_lot = (stop_distance_points * point / tick_size) * tick_value
    return risk_money / loss_per_lot


class RiskSizer:
    def __init__(self, *, policy: MinLotPolicy = MinLotPolicy.REJECT):
        self.policy = policy

    def size(
        self,
        request: RiskRequest,
        constraints: SymbolConstraints,
        *,
        policy: MinLotPolicy | None = None,
    ) -> Result[float]:
        problems = self._check(request, constraints)
        if problems is not None:
            return Result.fail(problems)

        raw = raw_volume_for_risk(
            stop_distance_points=float(request.stop_distance_points),
            risk_money=float(request.risk_money),
            point=constraints.point,
            tick_size=constraints.tick_size,
            tick_value=constraints.tick_value,
        )

        return normalize_volume_for(raw, constraints, policy=policy or self.policy)

    def plan(
        self,
        request: RiskRequest,
        *,
        side: Side,
        constraints: SymbolConstraints,
        tick: Tick,
        policy: MinLotPolicy | None = None,
    ) -> Result[OrderPlan]:
        sized = self.size(request, constraints, policy=policy)
        if not sized.is_ok:
            return Result.fail(sized.failure)

        stop = request.stop_distance_points * constraints.point

        # SL is measured from the closing side of the spread, TP from the opening side
        if side == BUY:
            sl = tick.bid - stop
            tp = None if request.take_profit_points is None else tick.ask + request.take_profit_points * constraints.point
        else:
            sl = tick.ask + stop
            tp = None if request.take_profit_points is None else tick.bid - request.take_profit_points * constraints.point

        if sl <= 0:
            return Result.fail(
                Failure.validation(f"Stop-loss price {sl} is not positive", code="invalid_stop")
            )

        return Result.ok(
            OrderPlan(
                symbol=request.symbol,
                side=side,
                volume=sized.value,
                entry_price=tick.entry(side),
                stop_loss=normalize_price(sl, constraints.digits),
                take_profit=None if tp is None or tp <= 0 else normalize_price(tp, constraints.digits),
            )
        )

    @staticmethod
    def _check(request: RiskRequest, constraints: SymbolConstraints) -> Failure | None:
        if request.stop_distance_points <= 0:
            return Failure.validation(
                f"stop_distance_points must be > 0, got {request.stop_distance_points}",
                code="invalid_stop_distance",
            )
        if request.risk_money <= 0:
            return Failure.validation(
                f"risk_money must be > 0, got {request.risk_money}",
                code="invalid_risk_money",
            )
        if request.take_profit_points is not None and request.take_profit_points <= 0:
            return Failure.validation(
                f"take_profit_points must be > 0, got {request.take_profit_points}",
                code="invalid_take_profit",
            )
        if constraints.tick_size <= 0:
            return Failure.validation(f"TickSize is {constraints.tick_size} for {constraints.symbol}", code="invalid_tick_size")
        if constraints.money_per_point <= 0:
            return Failure.validation(
                f"Computed loss per lot <= 0 for {constraints.symbol}",
                code="invalid_tick_value",
            )
        return None
