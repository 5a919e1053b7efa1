from __future__ import annotations

import threading
from time import monotonic
from typing import Callable, Dict, Tuple

from tradeguard.config.live import SYMBOL_CACHE_TTL_SEC
from tradeguard.domain.models import SymbolConstraints
from tradeguard.execution.gateway import TradingGateway
from tradeguard.logging.null_logger import NullLogger


class SymbolConstraintsProvider:
    """
    Per-symbol trading constraints with a short TTL cache.

    Snapshots are immutable; a refresh swaps the cached entry under the
    lock, so readers always see a complete snapshot.
    """

    def __init__(
        self,
        gateway: TradingGateway,
        *,
        ttl_sec: float = SYMBOL_CACHE_TTL_SEC,
        log=None,
        clock: Callable[[], float] = monotonic,
    ):
        self.gateway = gateway
        self.ttl_sec = ttl_sec
        self.log = log or NullLogger()
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Dict[str, Tuple[float, SymbolConstraints]] = {}

    def get(self, symbol: str) -> SymbolConstraints:
        now = self._clock()

        with self._lock:
            cached = self._cache.get(symbol)
        if cached is not None and now - cached[0] < self.ttl_sec:
            return cached[1]

        constraints = self.gateway.get_symbol_constraints(symbol)
        self.log.debug(
            f"{symbol} constraints refreshed: point={constraints.point} digits={constraints.digits} "
            f"vol=[{constraints.volume_min};{constraints.volume_max}] step={constraints.volume_step}"
        )

        with self._lock:
            self._cache[symbol] = (now, constraints)
        return constraints

    def invalidate(self, symbol: str | None = None) -> None:
        with self._lock:
            if symbol is None:
                self._cache.clear()
            else:
                self._cache.pop(symbol, None)
