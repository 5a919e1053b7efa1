from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from tradeguard.config import live
from tradeguard.domain.normalize import MinLotPolicy
from tradeguard.domain.risk.sizing import RiskSizer
from tradeguard.execution.gateway import TradingGateway
from tradeguard.execution.logging import create_execution_logger
from tradeguard.execution.policy.retry_policy import RetryPolicy
from tradeguard.execution.retry import RetryExecutor
from tradeguard.execution.symbol_provider import SymbolConstraintsProvider
from tradeguard.execution.trade_service import TradeService
from tradeguard.execution.trailing.engine import TrailingStopEngine


@dataclass
class TradeGuard:
    gateway: TradingGateway
    executor: RetryExecutor
    symbols: SymbolConstraintsProvider
    service: TradeService
    trailing: TrailingStopEngine

    def shutdown(self) -> int:
        """
        Stop every trailing worker, then close the terminal connection
        if the gateway holds one. Returns how many workers were running.
        """
        stopped = self.trailing.stop_all()

        close = getattr(self.gateway, "shutdown", None)
        if callable(close):
            close()
        return stopped


def build_stack(gateway: TradingGateway, cfg: Dict[str, Any] | None = None) -> TradeGuard:
    """
    Wire executor, symbol cache, trade service and trailing engine
    around one gateway. ``cfg`` overrides the defaults in ``config.live``.
    """
    cfg = cfg or {}

    executor = RetryExecutor(
        RetryPolicy.from_config(cfg),
        log=create_execution_logger("retry"),
    )

    symbols = SymbolConstraintsProvider(
        gateway,
        ttl_sec=float(cfg.get("SYMBOL_CACHE_TTL_SEC", live.SYMBOL_CACHE_TTL_SEC)),
        log=create_execution_logger("symbol"),
    )

    policy = MinLotPolicy.from_config(cfg.get("MIN_LOT_POLICY", live.MIN_LOT_POLICY))

    service = TradeService(
        gateway,
        executor=executor,
        symbols=symbols,
        sizer=RiskSizer(policy=policy),
        min_lot_policy=policy,
        deviation=int(cfg.get("DEVIATION_POINTS", live.DEFAULT_DEVIATION_POINTS)),
        log=create_execution_logger("order"),
    )

    trailing = TrailingStopEngine(
        gateway=gateway,
        executor=executor,
        symbols=symbols,
        poll_interval=float(cfg.get("TRAIL_POLL_INTERVAL_SEC", live.TRAIL_POLL_INTERVAL_SEC)),
        min_change_interval=float(
            cfg.get("TRAIL_MIN_CHANGE_INTERVAL_SEC", live.TRAIL_MIN_CHANGE_INTERVAL_SEC)
        ),
        log=create_execution_logger("trail"),
    )

    return TradeGuard(
        gateway=gateway,
        executor=executor,
        symbols=symbols,
        service=service,
        trailing=trailing,
    )


def connect_mt5(cfg: Dict[str, Any] | None = None, **init_kwargs) -> TradeGuard:
    """
    Initialize the MetaTrader5 terminal and build the stack on it.
    ``init_kwargs`` go to ``mt5.initialize`` (path, login, password, server).
    """
    # MetaTrader5 only installs on Windows
    from tradeguard.execution.mt5_gateway import MT5Gateway

    cfg = cfg or {}
    gateway = MT5Gateway(
        dry_run=bool(cfg.get("DRY_RUN", live.DRY_RUN)),
        log=create_execution_logger("gateway"),
        magic=int(cfg.get("MAGIC_NUMBER", live.MAGIC_NUMBER)),
    )
    gateway.init_mt5(**init_kwargs)

    return build_stack(gateway, cfg)
