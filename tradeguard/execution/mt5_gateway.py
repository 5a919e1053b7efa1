from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import MetaTrader5 as mt5

from tradeguard.config.live import MAGIC_NUMBER, ORDER_COMMENT
from tradeguard.domain.errors import Failure, GatewayError
from tradeguard.domain.models import (
    BUY,
    SELL,
    OrderResult,
    PendingOrder,
    Position,
    Side,
    SymbolConstraints,
    Tick,
)
from tradeguard.domain.orders.pending import PendingOrderSpec
from tradeguard.execution import retcodes
from tradeguard.logging.null_logger import NullLogger


class MT5Gateway:
    """
    Real MetaTrader5 trading gateway.
    Thin wrapper over MT5 API; every rejection is classified here, once.
    """

    def __init__(
            self,
            *,
            dry_run: bool = False,
            log=None,
            magic: int = MAGIC_NUMBER,
    ):
        self.dry_run = dry_run
        self.log = log or NullLogger()
        self.magic = magic

        if self.dry_run:
            self.log.warning("MT5Gateway running in DRY-RUN mode")

    # ==================================================
    # Session
    # ==================================================

    def init_mt5(self, **kwargs) -> None:
        if not mt5.initialize(**kwargs):
            raise GatewayError(self._last_error_failure("initialize"))

        info = mt5.account_info()
        self.log.info(
            "🟢 MT5 initialized | "
            f"Account={info.login} "
            f"Server={info.server}"
        )

    def shutdown(self) -> None:
        mt5.shutdown()
        self.log.info("🔴 MT5 shutdown")

    def ensure_selected(self, symbol: str):
        """
        Symbol info, adding the symbol to Market Watch first if needed.
        MT5 serves no ticks for symbols outside Market Watch.
        """
        info = mt5.symbol_info(symbol)
        if info is None:
            raise GatewayError(Failure.not_found(f"Symbol not found: {symbol}"))
        if not info.visible:
            if not mt5.symbol_select(symbol, True):
                raise GatewayError(self._last_error_failure(f"symbol_select {symbol}"))
            self.log.info(f"{symbol} added to Market Watch")
        return info

    # ==================================================
    # Reads
    # ==================================================

    def get_symbol_constraints(self, symbol: str) -> SymbolConstraints:
        info = self.ensure_selected(symbol)

        return SymbolConstraints(
            symbol=symbol,
            point=float(info.point),
            digits=int(info.digits),
            volume_min=float(info.volume_min),
            volume_step=float(info.volume_step),
            volume_max=float(info.volume_max),
            tick_value=float(info.trade_tick_value),
            tick_size=float(info.trade_tick_size),
        )

    def get_current_price(self, symbol: str) -> Tick:
        tick = mt5.symbol_info_tick(symbol)
        if tick is None:
            raise GatewayError(self._last_error_failure(f"No tick data for {symbol}"))

        return Tick(
            bid=float(tick.bid),
            ask=float(tick.ask),
            time=datetime.fromtimestamp(int(tick.time), tz=timezone.utc),
        )

    def get_open_positions(self) -> list[Position]:
        positions = mt5.positions_get()
        if positions is None:
            raise GatewayError(self._last_error_failure("positions_get"))

        return [self._to_position(p) for p in positions]

    def get_pending_orders(self) -> list[PendingOrder]:
        orders = mt5.orders_get()
        if orders is None:
            raise GatewayError(self._last_error_failure("orders_get"))

        out = []
        for o in orders:
            side, kind = _ORDER_TYPE_TO_KIND.get(int(o.type), (None, None))
            if kind is None:
                continue
            out.append(
                PendingOrder(
                    ticket=int(o.ticket),
                    symbol=o.symbol,
                    side=side,
                    kind=kind,
                    volume=float(o.volume_current),
                    price=float(o.price_open),
                )
            )
        return out

    # ==================================================
    # Execution API
    # ==================================================

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
    ) -> OrderResult:
        if self.dry_run:
            return self._dry_run(
                f"OPEN {symbol} {side} vol={volume} sl={stop_loss} tp={take_profit}"
            )

        tick = self.get_current_price(symbol)
        price = tick.entry(side)

        request = {
            "action": mt5.TRADE_ACTION_DEAL,
            "symbol": symbol,
            "volume": float(volume),
            "type": mt5.ORDER_TYPE_BUY if side == BUY else mt5.ORDER_TYPE_SELL,
            "price": price,
            "sl": float(stop_loss or 0.0),
            "tp": float(take_profit or 0.0),
            "deviation": int(deviation),
            "magic": self.magic,
            "comment": comment or ORDER_COMMENT,
            "type_time": mt5.ORDER_TIME_GTC,
            "type_filling": mt5.ORDER_FILLING_IOC,
        }

        return self._send(request, "order_send")

    def send_pending_order(
            self,
            spec: PendingOrderSpec,
            *,
            volume: float,
            comment: Optional[str] = None,
    ) -> OrderResult:
        if self.dry_run:
            return self._dry_run(
                f"PLACE {spec.name} {spec.symbol} vol={volume} price={spec.price} "
                f"stop={spec.stop_trigger} limit={spec.limit_price} tif={spec.time_in_force}"
            )

        request: Dict[str, Any] = {
            "action": mt5.TRADE_ACTION_PENDING,
            "symbol": spec.symbol,
            "volume": float(volume),
            "type": _pending_order_type(spec),
            "price": float(spec.entry_price),
            "sl": float(spec.stop_loss or 0.0),
            "tp": float(spec.take_profit or 0.0),
            "magic": self.magic,
            "comment": comment or ORDER_COMMENT,
            "type_time": _time_in_force(spec.time_in_force),
            "type_filling": mt5.ORDER_FILLING_RETURN,
        }

        if spec.kind == "stop_limit":
            request["stoplimit"] = float(spec.limit_price)

        if spec.time_in_force == "GTD":
            request["expiration"] = int(spec.expiry.timestamp())

        return self._send(request, "order_send (pending)")

    def modify_position_sl_tp(
            self,
            ticket: int,
            *,
            stop_loss: Optional[float] = None,
            take_profit: Optional[float] = None,
    ) -> OrderResult:
        if self.dry_run:
            return self._dry_run(f"MODIFY SL/TP ticket={ticket} sl={stop_loss} tp={take_profit}")

        pos = self._position(ticket)

        # None keeps the current level; MT5 treats 0.0 as "remove"
        request = {
            "action": mt5.TRADE_ACTION_SLTP,
            "position": int(ticket),
            "symbol": pos.symbol,
            "sl": float(stop_loss if stop_loss is not None else pos.sl),
            "tp": float(take_profit if take_profit is not None else pos.tp),
            "magic": self.magic,
        }

        return self._send(request, "order_send (modify)")

    def close_position_partial(
            self,
            ticket: int,
            *,
            volume: float,
            deviation: int = 10,
    ) -> OrderResult:
        if self.dry_run:
            return self._dry_run(f"CLOSE ticket={ticket} vol={volume}")

        pos = self._position(ticket)
        tick = self.get_current_price(pos.symbol)

        is_long = pos.type == mt5.POSITION_TYPE_BUY

        request = {
            "action": mt5.TRADE_ACTION_DEAL,
            "position": int(ticket),
            "symbol": pos.symbol,
            "volume": float(volume),
            "type": mt5.ORDER_TYPE_SELL if is_long else mt5.ORDER_TYPE_BUY,
            "price": tick.bid if is_long else tick.ask,
            "deviation": int(deviation),
            "magic": self.magic,
            "comment": f"{ORDER_COMMENT}_close",
            "type_filling": mt5.ORDER_FILLING_IOC,
        }

        return self._send(request, "order_send (close)")

    def cancel_pending_order(self, ticket: int) -> OrderResult:
        if self.dry_run:
            return self._dry_run(f"CANCEL order={ticket}")

        request = {
            "action": mt5.TRADE_ACTION_REMOVE,
            "order": int(ticket),
        }
        return self._send(request, "order_send (remove)")

    # ==================================================
    # Helpers
    # ==================================================

    def _position(self, ticket: int):
        positions = mt5.positions_get(ticket=int(ticket))
        if positions is None:
            raise GatewayError(self._last_error_failure(f"positions_get ticket={ticket}"))
        if not positions:
            raise GatewayError(Failure.not_found(f"No open position with ticket {ticket}"))
        return positions[0]

    def _send(self, request: Dict[str, Any], what: str) -> OrderResult:
        with self.log.time(what):
            result = mt5.order_send(request)

        if result is None:
            raise GatewayError(self._last_error_failure(what))

        retcode = int(result.retcode)
        if not retcodes.is_success(retcode):
            failure = Failure(
                kind=retcodes.classify_retcode(retcode),
                message=f"{what} failed: {result.comment or retcodes.describe(retcode)}",
                code="retcode",
                retcode=retcode,
            )
            self.log.warning(str(failure))
            raise GatewayError(failure)

        return OrderResult(
            ticket=int(result.order or request.get("position") or request.get("order") or 0),
            retcode=retcode,
            retcode_description=result.comment or retcodes.describe(retcode),
            price=float(result.price) if result.price else None,
        )

    def _dry_run(self, msg: str) -> OrderResult:
        self.log.info(f"[DRY-RUN] {msg}")
        return OrderResult(ticket=0, retcode=retcodes.RETCODE_DONE, retcode_description="dry-run")

    @staticmethod
    def _last_error_failure(what: str) -> Failure:
        code, desc = mt5.last_error()
        return Failure(
            kind=retcodes.classify_last_error(code),
            message=f"{what}: {code} - {desc}",
            code="last_error",
        )

    @staticmethod
    def _to_position(p) -> Position:
        return Position(
            ticket=int(p.ticket),
            symbol=p.symbol,
            side=BUY if p.type == mt5.POSITION_TYPE_BUY else SELL,
            volume=float(p.volume),
            entry_price=float(p.price_open),
            current_profit=float(p.profit),
            stop_loss=float(p.sl) or None,
            take_profit=float(p.tp) or None,
        )


def _pending_order_type(spec: PendingOrderSpec) -> int:
    return {
        (BUY, "limit"): mt5.ORDER_TYPE_BUY_LIMIT,
        (SELL, "limit"): mt5.ORDER_TYPE_SELL_LIMIT,
        (BUY, "stop"): mt5.ORDER_TYPE_BUY_STOP,
        (SELL, "stop"): mt5.ORDER_TYPE_SELL_STOP,
        (BUY, "stop_limit"): mt5.ORDER_TYPE_BUY_STOP_LIMIT,
        (SELL, "stop_limit"): mt5.ORDER_TYPE_SELL_STOP_LIMIT,
    }[(spec.side, spec.kind)]


def _time_in_force(tif: str) -> int:
    return {
        "GTC": mt5.ORDER_TIME_GTC,
        "DAY": mt5.ORDER_TIME_DAY,
        "GTD": mt5.ORDER_TIME_SPECIFIED,
    }[tif]


# ORDER_TYPE_* integer values: 2..7 are the pending kinds
_ORDER_TYPE_TO_KIND = {
    2: (BUY, "limit"),
    3: (SELL, "limit"),
    4: (BUY, "stop"),
    5: (SELL, "stop"),
    6: (BUY, "stop_limit"),
    7: (SELL, "stop_limit"),
}
