

__all__ = [
    "Failure",
    "FailureKind",
    "GatewayError",
    "Result",
    "SymbolConstraints",
    "MinLotPolicy",
    "normalize_price",
    "normalize_volume",
    "RiskRequest",
    "RiskSizer",
    "PendingOrderSpec",
    "validate_pending_order",
    "PartialCloseRequest",
    "compute_close_volume",
    "RetryExecutor",
    "RetryPolicy",
    "SymbolConstraintsProvider",
    "TradingGateway",
    "TradeService",
    "TrailingStopEngine",
    "TradeGuard",
    "build_stack",
]

from tradeguard.domain.errors import Failure, FailureKind, GatewayError, Result
from tradeguard.domain.models import SymbolConstraints
from tradeguard.domain.normalize import MinLotPolicy, normalize_price, normalize_volume
from tradeguard.domain.orders.pending import PendingOrderSpec, validate_pending_order
from tradeguard.domain.partial_close import PartialCloseRequest, compute_close_volume
from tradeguard.domain.risk.sizing import RiskRequest, RiskSizer
from tradeguard.execution.gateway import TradingGateway
from tradeguard.execution.policy.retry_policy import RetryPolicy
from tradeguard.execution.retry import RetryExecutor
from tradeguard.execution.stack import TradeGuard, build_stack
from tradeguard.execution.symbol_provider import SymbolConstraintsProvider
from tradeguard.execution.trade_service import TradeService
from tradeguard.execution.trailing.engine import TrailingStopEngine
