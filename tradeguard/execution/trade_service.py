from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from functools import wraps
from typing import Optional, Tuple

from tradeguard.config.live import DEFAULT_DEVIATION_POINTS, MIN_LOT_POLICY
from tradeguard.domain.errors import Failure, GatewayError, Result
from tradeguard.domain.models import BUY, OrderResult, Position, Side, SymbolConstraints, opposite
from tradeguard.domain.normalize import MinLotPolicy, normalize_price, normalize_volume_for
from tradeguard.domain.orders.pending import (
    STOP_LIMIT,
    PendingKind,
    PendingOrderSpec,
    TimeInForce,
    price_from_offset_points,
    validate_pending_order,
)
from tradeguard.domain.partial_close import PartialCloseRequest, compute_close_volume
from tradeguard.domain.risk.sizing import RiskRequest, RiskSizer
from tradeguard.domain.trailing import improvement
from tradeguard.execution.gateway import TradingGateway, find_position
from tradeguard.execution.retry import RetryExecutor
from tradeguard.execution.symbol_provider import SymbolConstraintsProvider
from tradeguard.logging.null_logger import NullLogger


def reports_gateway_failures(fn):
    """Turn a failed read (symbol info, tick, positions) into a failed Result."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except GatewayError as e:
            return Result.fail(e.failure)

    return wrapper


class TradeService:
    """
    Order placement and position management on top of the gateway.

    Responsibilities:
    - size / normalize volumes and prices before anything is sent
    - validate pending orders locally
    - send every mutating call through the retry executor
    """

    def __init__(
        self,
        gateway: TradingGateway,
        *,
        executor: RetryExecutor | None = None,
        symbols: SymbolConstraintsProvider | None = None,
        sizer: RiskSizer | None = None,
        min_lot_policy: MinLotPolicy | None = None,
        deviation: int = DEFAULT_DEVIATION_POINTS,
        log=None,
    ):
        self.gateway = gateway
        self.log = log or NullLogger()
        self.executor = executor or RetryExecutor(log=self.log)
        self.symbols = symbols or SymbolConstraintsProvider(gateway, log=self.log)
        self.min_lot_policy = min_lot_policy or MinLotPolicy.from_config(MIN_LOT_POLICY)
        self.sizer = sizer or RiskSizer(policy=self.min_lot_policy)
        self.deviation = deviation

    # ==================================================
    # Market orders
    # ==================================================

    @reports_gateway_failures
    def place_market(
        self,
        symbol: str,
        side: Side,
        volume: float,
        *,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        deviation: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> Result[OrderResult]:
        c = self.symbols.get(symbol)

        vol = normalize_volume_for(volume, c, policy=self.min_lot_policy)
        if not vol.is_ok:
            return vol

        return self._send_market(
            symbol=symbol,
            side=side,
            volume=vol.value,
            stop_loss=self._price(stop_loss, c),
            take_profit=self._price(take_profit, c),
            deviation=deviation,
            comment=comment,
        )

    @reports_gateway_failures
    def place_market_by_risk(
        self,
        symbol: str,
        side: Side,
        *,
        stop_points: float,
        risk_money: float,
        tp_points: Optional[float] = None,
        deviation: Optional[int] = None,
        comment: Optional[str] = None,
        policy: MinLotPolicy | None = None,
    ) -> Result[OrderResult]:
        c = self.symbols.get(symbol)
        tick = self.gateway.get_current_price(symbol)

        planned = self.sizer.plan(
            RiskRequest(
                symbol=symbol,
                stop_distance_points=stop_points,
                risk_money=risk_money,
                take_profit_points=tp_points,
            ),
            side=side,
            constraints=c,
            tick=tick,
            policy=policy,
        )
        if not planned.is_ok:
            return planned

        plan = planned.value
        self.log.info(
            f"RISK PLAN {symbol} {side} risk={risk_money} stop={stop_points}pts "
            f"vol={plan.volume} sl={plan.stop_loss} tp={plan.take_profit}"
        )

        return self._send_market(
            symbol=symbol,
            side=side,
            volume=plan.volume,
            stop_loss=plan.stop_loss,
            take_profit=plan.take_profit,
            deviation=deviation,
            comment=comment,
        )

    def _send_market(self, *, symbol, side, volume, stop_loss, take_profit, deviation, comment) -> Result[OrderResult]:
        return self.executor.execute(
            lambda: self.gateway.send_market_order(
                symbol=symbol,
                side=side,
                volume=volume,
                stop_loss=stop_loss,
                take_profit=take_profit,
                deviation=self.deviation if deviation is None else deviation,
                comment=comment,
            ),
            label=f"market {side} {symbol} {volume}",
        )

    # ==================================================
    # Pending orders
    # ==================================================

    @reports_gateway_failures
    def place_pending(
        self,
        spec: PendingOrderSpec,
        *,
        volume: float,
        comment: Optional[str] = None,
        now: datetime | None = None,
    ) -> Result[OrderResult]:
        checked = validate_pending_order(spec, now=now)
        if not checked.is_ok:
            return checked

        c = self.symbols.get(spec.symbol)

        vol = normalize_volume_for(volume, c, policy=self.min_lot_policy)
        if not vol.is_ok:
            return vol

        spec = replace(
            spec,
            price=self._price(spec.price, c),
            stop_trigger=self._price(spec.stop_trigger, c),
            limit_price=self._price(spec.limit_price, c),
            stop_loss=self._price(spec.stop_loss, c),
            take_profit=self._price(spec.take_profit, c),
        )

        return self.executor.execute(
            lambda: self.gateway.send_pending_order(spec, volume=vol.value, comment=comment),
            label=f"pending {spec.name} {spec.symbol} {vol.value}",
        )

    @reports_gateway_failures
    def place_pending_by_offset(
        self,
        symbol: str,
        side: Side,
        kind: PendingKind,
        *,
        volume: float,
        offset_points: float,
        sl_points: Optional[float] = None,
        tp_points: Optional[float] = None,
        time_in_force: TimeInForce = "GTC",
        expiry: datetime | None = None,
        comment: Optional[str] = None,
    ) -> Result[OrderResult]:
        if kind == STOP_LIMIT:
            return Result.fail(
                Failure.validation("stop_limit orders need explicit trigger/limit prices", code="invalid_kind")
            )
        if offset_points < 0:
            return Result.fail(Failure.validation("offset_points must be >= 0", code="invalid_offset"))

        c = self.symbols.get(symbol)
        tick = self.gateway.get_current_price(symbol)

        price = price_from_offset_points(
            kind=kind,
            side=side,
            tick=tick,
            point=c.point,
            digits=c.digits,
            offset_points=offset_points,
        )
        direction = 1.0 if side == BUY else -1.0

        spec = PendingOrderSpec(
            symbol=symbol,
            side=side,
            kind=kind,
            price=price,
            stop_loss=None if sl_points is None else price - direction * sl_points * c.point,
            take_profit=None if tp_points is None else price + direction * tp_points * c.point,
            time_in_force=time_in_force,
            expiry=expiry,
        )
        return self.place_pending(spec, volume=volume, comment=comment)

    def cancel_pending(self, ticket: int) -> Result[OrderResult]:
        return self.executor.execute(
            lambda: self.gateway.cancel_pending_order(ticket),
            label=f"cancel #{ticket}",
        )

    def cancel_all_pending(
        self,
        *,
        symbol: str | None = None,
        side: Side | None = None,
        kind: PendingKind | None = None,
    ) -> Tuple[int, int]:
        """
        Cancel every matching pending order. Returns (ok, failed) counts.
        A failed order listing raises ``GatewayError``; nothing is cancelled then.
        """
        ok = failed = 0
        for order in self.gateway.get_pending_orders():
            if symbol is not None and order.symbol != symbol:
                continue
            if side is not None and order.side != side:
                continue
            if kind is not None and order.kind != kind:
                continue

            if self.cancel_pending(order.ticket).is_ok:
                ok += 1
            else:
                failed += 1

        self.log.info(f"cancel_all_pending: ok={ok} failed={failed}")
        return ok, failed

    # ==================================================
    # Stop-loss / take-profit
    # ==================================================

    @reports_gateway_failures
    def modify_sl_tp(
        self,
        ticket: int,
        *,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> Result[OrderResult]:
        position = self._require_position(ticket)
        c = self.symbols.get(position.symbol)

        sl = self._price(stop_loss, c)
        tp = self._price(take_profit, c)

        return self.executor.execute(
            lambda: self.gateway.modify_position_sl_tp(ticket, stop_loss=sl, take_profit=tp),
            label=f"modify #{ticket}",
        )

    @reports_gateway_failures
    def move_stop_loss(self, ticket: int, stop_loss: float, *, force: bool = False) -> Result[OrderResult]:
        """
        Move SL only when it tightens protection, unless ``force``.
        """
        position = self._require_position(ticket)
        c = self.symbols.get(position.symbol)
        target = normalize_price(stop_loss, c.digits)

        current = position.stop_loss
        if current is not None:
            tightens = improvement(side=position.side, candidate=target, baseline=current) > 0
            if not tightens and not force:
                return Result.fail(
                    Failure.validation(
                        f"No improvement: current SL={current} target={target}. Use force to override.",
                        code="no_improvement",
                    )
                )
            if not tightens:
                self.log.warning(f"⚠️ FORCED SL move #{ticket}: {current} → {target} loosens protection")

        return self.executor.execute(
            lambda: self.gateway.modify_position_sl_tp(ticket, stop_loss=target),
            label=f"move SL #{ticket}",
        )

    @reports_gateway_failures
    def breakeven(self, ticket: int, *, offset_points: float = 0.0, force: bool = False) -> Result[OrderResult]:
        if offset_points < 0:
            return Result.fail(Failure.validation("offset_points must be >= 0", code="invalid_offset"))

        position = self._require_position(ticket)
        c = self.symbols.get(position.symbol)

        offset = offset_points * c.point
        target = position.entry_price + offset if position.is_long else position.entry_price - offset

        self.log.info(f"🔁 MOVE SL → BE for #{ticket}: {target}")
        return self.move_stop_loss(ticket, target, force=force)

    # ==================================================
    # Closing
    # ==================================================

    @reports_gateway_failures
    def close_partial(self, request: PartialCloseRequest, *, deviation: Optional[int] = None) -> Result[OrderResult]:
        position = self._require_position(request.ticket)
        c = self.symbols.get(position.symbol)

        computed = compute_close_volume(request, position.volume, c)
        if not computed.is_ok:
            return computed

        volume = computed.value
        self.log.info(f"🎯 PARTIAL CLOSE #{request.ticket}: {volume}/{position.volume}")

        return self._close(position, volume, deviation)

    def close_percent(self, ticket: int, percent: float, *, deviation: Optional[int] = None) -> Result[OrderResult]:
        return self.close_partial(PartialCloseRequest.by_percent(ticket, percent), deviation=deviation)

    def close_half(self, ticket: int, *, deviation: Optional[int] = None) -> Result[OrderResult]:
        return self.close_percent(ticket, 50.0, deviation=deviation)

    @reports_gateway_failures
    def close_position(self, ticket: int, *, deviation: Optional[int] = None) -> Result[OrderResult]:
        position = self._require_position(ticket)
        return self._close(position, position.volume, deviation)

    def close_all_positions(self, *, symbol: str | None = None, side: Side | None = None) -> Tuple[int, int]:
        """
        Close every matching position. Returns (ok, failed) counts.
        A failed position listing raises ``GatewayError``; nothing is closed then.
        """
        ok = failed = 0
        for position in self.gateway.get_open_positions():
            if symbol is not None and position.symbol != symbol:
                continue
            if side is not None and position.side != side:
                continue

            if self._close(position, position.volume, None).is_ok:
                ok += 1
            else:
                failed += 1

        self.log.info(f"close_all_positions: ok={ok} failed={failed}")
        return ok, failed

    @reports_gateway_failures
    def reverse_position(
        self,
        ticket: int,
        *,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        deviation: Optional[int] = None,
    ) -> Result[OrderResult]:
        """
        Close the position, then open the opposite side with the same volume.
        The two steps are not atomic.
        """
        position = self._require_position(ticket)

        closed = self._close(position, position.volume, deviation)
        if not closed.is_ok:
            return closed

        c = self.symbols.get(position.symbol)
        return self._send_market(
            symbol=position.symbol,
            side=opposite(position.side),
            volume=position.volume,
            stop_loss=self._price(stop_loss, c),
            take_profit=self._price(take_profit, c),
            deviation=deviation,
            comment=None,
        )

    def _close(self, position: Position, volume: float, deviation: Optional[int]) -> Result[OrderResult]:
        return self.executor.execute(
            lambda: self.gateway.close_position_partial(
                position.ticket,
                volume=volume,
                deviation=self.deviation if deviation is None else deviation,
            ),
            label=f"close #{position.ticket} {volume}",
        )

    # ==================================================
    # Helpers
    # ==================================================

    def _require_position(self, ticket: int) -> Position:
        position = find_position(self.gateway, ticket)
        if position is None:
            raise GatewayError(Failure.not_found(f"Position #{ticket} not found"))
        return position

    @staticmethod
    def _price(price: Optional[float], c: SymbolConstraints) -> Optional[float]:
        if price is None:
            return None
        return normalize_price(price, c.digits)
