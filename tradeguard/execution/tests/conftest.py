import threading
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from tradeguard.domain.errors import Failure, FailureKind, GatewayError
from tradeguard.domain.models import OrderResult, PendingOrder, Position, SymbolConstraints, Tick
from tradeguard.execution.policy.retry_policy import RetryPolicy
from tradeguard.execution.retry import RetryExecutor
from tradeguard.execution.symbol_provider import SymbolConstraintsProvider

EURUSD = SymbolConstraints(
    symbol="EURUSD",
    point=0.0001,
    digits=4,
    volume_min=0.01,
    volume_step=0.01,
    volume_max=100.0,
    tick_value=10.0,
    tick_size=0.0001,
)


def transient(msg="requote"):
    return GatewayError(Failure(FailureKind.TRANSIENT, msg, code="retcode", retcode=10004))


def business(msg="no money"):
    return GatewayError(Failure(FailureKind.BUSINESS, msg, code="retcode", retcode=10019))


class FakeGateway:
    """
    In-memory terminal. Mutations update the book so follow-up reads see them.

    ``failures[method]`` is a list of exceptions raised, in order, before the
    call succeeds.
    """

    def __init__(self, *, positions=(), orders=(), ticks=None, constraints=None):
        self.positions = {p.ticket: p for p in positions}
        self.orders = {o.ticket: o for o in orders}
        self.ticks = list(ticks or [Tick(bid=1.1000, ask=1.1002)])
        self.constraints = constraints or {"EURUSD": EURUSD}
        self.failures = {}
        self.calls = []
        self._lock = threading.Lock()
        self._next_ticket = 5000

    def fail(self, method, *errors):
        self.failures.setdefault(method, []).extend(errors)

    def _record(self, method, **kwargs):
        with self._lock:
            self.calls.append((method, kwargs))
            pending = self.failures.get(method)
            if pending:
                raise pending.pop(0)

    def calls_to(self, method):
        return [kw for m, kw in self.calls if m == method]

    # reads

    def get_symbol_constraints(self, symbol):
        self._record("get_symbol_constraints", symbol=symbol)
        if symbol not in self.constraints:
            raise GatewayError(Failure.not_found(f"Symbol not found: {symbol}"))
        return self.constraints[symbol]

    def get_current_price(self, symbol):
        self._record("get_current_price", symbol=symbol)
        # last tick repeats once the script runs out
        if len(self.ticks) > 1:
            return self.ticks.pop(0)
        return self.ticks[0]

    def get_open_positions(self):
        self._record("get_open_positions")
        return list(self.positions.values())

    def get_pending_orders(self):
        self._record("get_pending_orders")
        return list(self.orders.values())

    # mutating

    def send_market_order(self, *, symbol, side, volume, stop_loss=None, take_profit=None, deviation=10, comment=None):
        self._record(
            "send_market_order",
            symbol=symbol,
            side=side,
            volume=volume,
            stop_loss=stop_loss,
            take_profit=take_profit,
            deviation=deviation,
            comment=comment,
        )
        ticket = self._new_ticket()
        tick = self.ticks[0]
        self.positions[ticket] = Position(
            ticket=ticket,
            symbol=symbol,
            side=side,
            volume=volume,
            entry_price=tick.entry(side),
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        return OrderResult(ticket=ticket, retcode=10009, retcode_description="done")

    def send_pending_order(self, spec, *, volume, comment=None):
        self._record("send_pending_order", spec=spec, volume=volume, comment=comment)
        ticket = self._new_ticket()
        self.orders[ticket] = PendingOrder(ticket, spec.symbol, spec.side, spec.kind, volume, spec.entry_price)
        return OrderResult(ticket=ticket, retcode=10008, retcode_description="placed")

    def modify_position_sl_tp(self, ticket, *, stop_loss=None, take_profit=None):
        self._record("modify_position_sl_tp", ticket=ticket, stop_loss=stop_loss, take_profit=take_profit)
        pos = self._position(ticket)
        self.positions[ticket] = replace(
            pos,
            stop_loss=pos.stop_loss if stop_loss is None else stop_loss,
            take_profit=pos.take_profit if take_profit is None else take_profit,
        )
        return OrderResult(ticket=ticket, retcode=10009)

    def close_position_partial(self, ticket, *, volume, deviation=10):
        self._record("close_position_partial", ticket=ticket, volume=volume, deviation=deviation)
        pos = self._position(ticket)
        left = round(pos.volume - volume, 8)
        if left <= 0:
            del self.positions[ticket]
        else:
            self.positions[ticket] = replace(pos, volume=left)
        return OrderResult(ticket=ticket, retcode=10009)

    def cancel_pending_order(self, ticket):
        self._record("cancel_pending_order", ticket=ticket)
        if ticket not in self.orders:
            raise GatewayError(Failure.not_found(f"Order #{ticket} not found"))
        del self.orders[ticket]
        return OrderResult(ticket=ticket, retcode=10009)

    def _position(self, ticket):
        if ticket not in self.positions:
            raise GatewayError(
                Failure(FailureKind.NOT_FOUND, f"Position #{ticket} closed", code="retcode", retcode=10036)
            )
        return self.positions[ticket]

    def _new_ticket(self):
        self._next_ticket += 1
        return self._next_ticket


class RecordingWait:
    """Replaces the executor's backoff wait; records requested delays."""

    def __init__(self, cancel_after=None):
        self.delays = []
        self.cancel_after = cancel_after

    def __call__(self, cancel, delay):
        self.delays.append(delay)
        if self.cancel_after is not None and len(self.delays) >= self.cancel_after:
            cancel.set()
        return cancel.is_set()


def long_position(ticket=1, **overrides):
    base = dict(
        ticket=ticket,
        symbol="EURUSD",
        side="buy",
        volume=0.1,
        entry_price=1.0950,
        current_profit=50.0,
        stop_loss=None,
    )
    base.update(overrides)
    return Position(**base)


def short_position(ticket=2, **overrides):
    base = dict(
        ticket=ticket,
        symbol="EURUSD",
        side="sell",
        volume=0.1,
        entry_price=1.1050,
        current_profit=-20.0,
        stop_loss=None,
    )
    base.update(overrides)
    return Position(**base)


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def eurusd():
    return EURUSD


@pytest.fixture
def waits():
    return RecordingWait()


@pytest.fixture
def executor(waits):
    return RetryExecutor(RetryPolicy(max_attempts=3, initial_delay=0.1, max_delay=1.0), wait=waits)


@pytest.fixture
def gateway():
    return FakeGateway(positions=[long_position(), short_position()])


@pytest.fixture
def symbols(gateway):
    return SymbolConstraintsProvider(gateway)
