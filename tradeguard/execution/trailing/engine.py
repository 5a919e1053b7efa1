from __future__ import annotations

import threading
from dataclasses import dataclass, field
from time import monotonic
from typing import Callable, Dict, Optional, Tuple

from tradeguard.config.live import (
    TRAIL_MIN_CHANGE_INTERVAL_SEC,
    TRAIL_POLL_INTERVAL_SEC,
    TRAIL_STOP_JOIN_TIMEOUT_SEC,
)
from tradeguard.domain.errors import Failure, FailureKind, GatewayError
from tradeguard.domain.models import Side, SymbolConstraints
from tradeguard.domain.normalize import normalize_price
from tradeguard.domain.trailing import (
    CHANDELIER,
    TRAIL_MODES,
    TrailMode,
    should_move,
    tighter_stop,
    trail_candidate,
    update_extreme,
)
from tradeguard.execution.gateway import TradingGateway, find_position
from tradeguard.execution.retry import RetryExecutor
from tradeguard.execution.symbol_provider import SymbolConstraintsProvider
from tradeguard.logging.null_logger import NullLogger

RUNNING = "running"
STOPPED = "stopped"


@dataclass
class TrailSession:
    ticket: int
    symbol: str
    side: Side
    distance_points: float
    step_points: float
    mode: TrailMode
    last_applied_stop_loss: Optional[float] = None
    extreme: Optional[float] = None
    cancel: threading.Event = field(default_factory=threading.Event)
    state: str = RUNNING
    stop_reason: Optional[str] = None
    updates: int = 0
    last_change_at: Optional[float] = None


class TrailRegistry:
    """
    ticket -> (session, worker thread).
    The only state shared between trailing workers.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[int, Tuple[TrailSession, threading.Thread]] = {}

    def put(self, session: TrailSession, thread: threading.Thread) -> None:
        with self._lock:
            if session.ticket in self._entries:
                raise RuntimeError(f"Trailing already registered for #{session.ticket}")
            self._entries[session.ticket] = (session, thread)

    def pop(self, ticket: int) -> Optional[Tuple[TrailSession, threading.Thread]]:
        with self._lock:
            return self._entries.pop(int(ticket), None)

    def get(self, ticket: int) -> Optional[TrailSession]:
        with self._lock:
            entry = self._entries.get(int(ticket))
        return entry[0] if entry else None

    def discard(self, session: TrailSession) -> None:
        # a replacement session may already own the ticket
        with self._lock:
            entry = self._entries.get(session.ticket)
            if entry is not None and entry[0] is session:
                del self._entries[session.ticket]

    def tickets(self) -> list[int]:
        with self._lock:
            return sorted(self._entries)


class TrailingStopEngine:
    """
    Local trailing stop-loss, one worker thread per position.

    Tick loop:
    - stop when the position is gone
    - classic: trail the current bid (long) / ask (short)
    - chandelier: trail the running extreme since start
    - move SL only when it tightens by at least ``step_points``
    """

    def __init__(
        self,
        *,
        gateway: TradingGateway,
        executor: RetryExecutor,
        symbols: SymbolConstraintsProvider,
        registry: TrailRegistry | None = None,
        poll_interval: float = TRAIL_POLL_INTERVAL_SEC,
        min_change_interval: float = TRAIL_MIN_CHANGE_INTERVAL_SEC,
        join_timeout: float = TRAIL_STOP_JOIN_TIMEOUT_SEC,
        log=None,
        clock: Callable[[], float] = monotonic,
    ):
        self.gateway = gateway
        self.executor = executor
        self.symbols = symbols
        self.registry = registry or TrailRegistry()
        self.poll_interval = poll_interval
        self.min_change_interval = min_change_interval
        self.join_timeout = join_timeout
        self.log = log or NullLogger()
        self._clock = clock
        self._start_lock = threading.RLock()

    # ==================================================
    # Public API
    # ==================================================

    def start(
        self,
        ticket: int,
        *,
        distance_points: float,
        step_points: float,
        mode: TrailMode = "classic",
        symbol: str | None = None,
        side: Side | None = None,
    ) -> TrailSession:
        if int(ticket) <= 0:
            raise ValueError("ticket must be > 0")
        if distance_points <= 0 or step_points <= 0:
            raise ValueError("distance_points / step_points must be > 0")
        if mode not in TRAIL_MODES:
            raise ValueError(f"Unknown trail mode '{mode}', use one of {TRAIL_MODES}")

        if symbol is None or side is None:
            position = find_position(self.gateway, ticket)
            if position is None:
                raise GatewayError(Failure.not_found(f"Position #{ticket} not found"))
            symbol = symbol or position.symbol
            side = side or position.side

        constraints = self.symbols.get(symbol)

        session = TrailSession(
            ticket=int(ticket),
            symbol=symbol,
            side=side,
            distance_points=float(distance_points),
            step_points=float(step_points),
            mode=mode,
        )

        with self._start_lock:
            old = self._halt(ticket)
            if old is not None:
                if old.is_alive():
                    raise RuntimeError(
                        f"Trailing worker #{ticket} still running after {self.join_timeout}s, not replacing"
                    )
                self.log.info(f"replacing trailing session for #{ticket}")

            thread = threading.Thread(
                target=self._run,
                args=(session, constraints),
                name=f"trail-{ticket}",
                daemon=True,
            )
            self.registry.put(session, thread)
            thread.start()

        self.log.info(
            f"trailing started #{ticket} {symbol} {side} mode={mode} "
            f"dist={distance_points} step={step_points}"
        )
        return session

    def stop(self, ticket: int, timeout: float | None = None) -> bool:
        return self._halt(ticket, timeout) is not None

    def _halt(self, ticket: int, timeout: float | None = None) -> Optional[threading.Thread]:
        entry = self.registry.pop(ticket)
        if entry is None:
            return None

        session, thread = entry
        session.cancel.set()
        if session.stop_reason is None:
            session.stop_reason = "stopped"

        if thread is not threading.current_thread():
            thread.join(self.join_timeout if timeout is None else timeout)
            if thread.is_alive():
                self.log.warning(f"trailing worker #{ticket} did not exit in time")

        return thread

    def stop_all(self) -> int:
        stopped = 0
        for ticket in self.registry.tickets():
            if self.stop(ticket):
                stopped += 1
        return stopped

    def is_active(self, ticket: int) -> bool:
        return self.registry.get(ticket) is not None

    def active_tickets(self) -> list[int]:
        return self.registry.tickets()

    # ==================================================
    # Worker
    # ==================================================

    def _run(self, session: TrailSession, constraints: SymbolConstraints) -> None:
        log = self.log.with_context(ticket=session.ticket, symbol=session.symbol)

        try:
            while not session.cancel.is_set():
                if not self._step(session, constraints, log=log):
                    break
                if session.cancel.wait(self.poll_interval):
                    break
        except Exception as e:
            session.stop_reason = "error"
            log.error(f"❌ trailing loop error: {type(e).__name__}: {e}")
        finally:
            session.state = STOPPED
            self.registry.discard(session)
            log.info(f"trailing stopped ({session.stop_reason or 'cancelled'}), updates={session.updates}")

    def _step(self, session: TrailSession, constraints: SymbolConstraints, *, log=None) -> bool:
        """
        One polling cycle. Returns False when the session must end.
        """
        log = log or self.log

        try:
            position = find_position(self.gateway, session.ticket)
            if position is None:
                session.stop_reason = "position_not_found"
                log.info(f"🧹 position #{session.ticket} no longer open")
                return False

            tick = self.gateway.get_current_price(session.symbol)
        except GatewayError as e:
            return self._on_read_failure(session, e.failure, log)

        price = tick.reference(session.side)
        reference = price
        if session.mode == CHANDELIER:
            session.extreme = update_extreme(session.side, session.extreme, price)
            reference = session.extreme

        candidate = normalize_price(
            trail_candidate(
                side=session.side,
                reference=reference,
                distance=session.distance_points * constraints.point,
            ),
            constraints.digits,
        )

        # the server SL may have been tightened outside this loop
        baseline = tighter_stop(session.side, session.last_applied_stop_loss, position.stop_loss)

        if not should_move(
            side=session.side,
            candidate=candidate,
            baseline=baseline,
            min_step=session.step_points * constraints.point,
        ):
            return True

        now = self._clock()
        if session.last_change_at is not None and now - session.last_change_at < self.min_change_interval:
            return True

        result = self.executor.execute(
            lambda: self.gateway.modify_position_sl_tp(session.ticket, stop_loss=candidate),
            cancel=session.cancel,
            label=f"trail SL #{session.ticket}",
        )

        if result.is_ok:
            log.info(f"📈 TRAILING SL #{session.ticket}: {baseline} → {candidate}")
            session.last_applied_stop_loss = candidate
            session.last_change_at = now
            session.updates += 1
            return True

        failure = result.failure
        if failure.kind is FailureKind.NOT_FOUND:
            session.stop_reason = "position_not_found"
            log.info(f"🧹 position #{session.ticket} closed during SL update")
            return False
        if failure.kind is FailureKind.CANCELLED:
            return False

        log.warning(f"SL update failed, will retry next tick: {failure}")
        return True

    @staticmethod
    def _on_read_failure(session: TrailSession, failure: Failure, log) -> bool:
        if failure.kind is FailureKind.NOT_FOUND:
            session.stop_reason = "position_not_found"
            log.info(f"🧹 {failure.message}")
            return False

        log.warning(f"trailing read failed, skipping tick: {failure}")
        return True
