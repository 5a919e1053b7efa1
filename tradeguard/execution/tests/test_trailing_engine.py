import time

import pytest

from tradeguard.domain.errors import Failure, FailureKind, GatewayError
from tradeguard.domain.models import Tick
from tradeguard.execution.symbol_provider import SymbolConstraintsProvider
from tradeguard.execution.tests.conftest import (
    EURUSD,
    FakeGateway,
    business,
    long_position,
    short_position,
    transient,
)
from tradeguard.execution.trade_service import TradeService
from tradeguard.execution.trailing.engine import STOPPED, TrailingStopEngine, TrailRegistry, TrailSession


def make_engine(gateway, executor, **kwargs):
    kwargs.setdefault("min_change_interval", 0.0)
    kwargs.setdefault("poll_interval", 0.01)
    return TrailingStopEngine(
        gateway=gateway,
        executor=executor,
        symbols=SymbolConstraintsProvider(gateway),
        **kwargs,
    )


def session_for(position, *, mode="classic", distance=150, step=20):
    return TrailSession(
        ticket=position.ticket,
        symbol=position.symbol,
        side=position.side,
        distance_points=distance,
        step_points=step,
        mode=mode,
    )


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def applied_stops(gateway):
    return [kw["stop_loss"] for kw in gateway.calls_to("modify_position_sl_tp")]


# ==================================================
# Single polling cycle
# ==================================================

def test_long_step_threshold(executor):
    pos = long_position()
    gw = FakeGateway(
        positions=[pos],
        ticks=[Tick(1.1000, 1.1002), Tick(1.1015, 1.1017), Tick(1.1025, 1.1027)],
    )
    engine = make_engine(gw, executor)
    session = session_for(pos)

    assert engine._step(session, EURUSD)
    # 15 points better than the applied stop: below the 20 point step
    assert engine._step(session, EURUSD)
    # 25 points better
    assert engine._step(session, EURUSD)

    assert applied_stops(gw) == [1.085, 1.0875]
    assert session.last_applied_stop_loss == 1.0875
    assert session.updates == 2


def test_existing_stop_is_the_baseline(executor):
    pos = long_position(stop_loss=1.0860)
    gw = FakeGateway(positions=[pos], ticks=[Tick(1.1000, 1.1002)])
    engine = make_engine(gw, executor)

    engine._step(session_for(pos), EURUSD)

    assert applied_stops(gw) == []


def test_short_stop_only_moves_down(executor):
    pos = short_position()
    gw = FakeGateway(
        positions=[pos],
        ticks=[Tick(1.1000, 1.1002), Tick(1.1048, 1.1050), Tick(1.0978, 1.0980)],
    )
    engine = make_engine(gw, executor)
    session = session_for(pos)

    for _ in range(3):
        engine._step(session, EURUSD)

    stops = applied_stops(gw)
    assert stops == [1.1152, 1.113]
    assert stops == sorted(stops, reverse=True)


def test_chandelier_trails_running_extreme(executor):
    pos = long_position(stop_loss=1.0850)
    gw = FakeGateway(positions=[pos], ticks=[Tick(1.1000, 1.1002)])
    engine = make_engine(gw, executor)

    classic = session_for(pos)
    engine._step(classic, EURUSD)
    assert applied_stops(gw) == []

    chandelier = session_for(pos, mode="chandelier")
    chandelier.extreme = 1.1040
    engine._step(chandelier, EURUSD)

    assert chandelier.extreme == 1.1040
    assert applied_stops(gw) == [1.089]


def test_changes_are_throttled(executor):
    pos = long_position()
    gw = FakeGateway(
        positions=[pos],
        ticks=[Tick(1.1000, 1.1002), Tick(1.1100, 1.1102), Tick(1.1100, 1.1102)],
    )
    now = [0.0]
    engine = make_engine(gw, executor, min_change_interval=0.5, clock=lambda: now[0])
    session = session_for(pos)

    engine._step(session, EURUSD)
    now[0] = 0.1
    engine._step(session, EURUSD)
    assert applied_stops(gw) == [1.085]

    now[0] = 0.6
    engine._step(session, EURUSD)
    assert applied_stops(gw) == [1.085, 1.095]


def test_position_gone_ends_session(executor):
    engine = make_engine(FakeGateway(positions=[]), executor)
    session = session_for(long_position())

    assert not engine._step(session, EURUSD)
    assert session.stop_reason == "position_not_found"


def test_position_closed_during_update_ends_session(executor):
    pos = long_position()
    gw = FakeGateway(positions=[pos])
    gw.fail(
        "modify_position_sl_tp",
        GatewayError(Failure(FailureKind.NOT_FOUND, "closed", retcode=10036)),
    )
    engine = make_engine(gw, executor)
    session = session_for(pos)

    assert not engine._step(session, EURUSD)
    assert session.stop_reason == "position_not_found"


def test_failed_update_does_not_end_session(executor):
    pos = long_position()
    gw = FakeGateway(positions=[pos])
    gw.fail("modify_position_sl_tp", business("invalid stops"))
    engine = make_engine(gw, executor)
    session = session_for(pos)

    assert engine._step(session, EURUSD)
    assert session.last_applied_stop_loss is None

    assert engine._step(session, EURUSD)
    assert session.last_applied_stop_loss == 1.085


def test_transient_update_failure_is_retried(executor, waits):
    pos = long_position()
    gw = FakeGateway(positions=[pos])
    gw.fail("modify_position_sl_tp", transient())
    engine = make_engine(gw, executor)
    session = session_for(pos)

    assert engine._step(session, EURUSD)

    assert len(waits.delays) == 1
    assert session.last_applied_stop_loss == 1.085


def test_read_failure_skips_tick(executor):
    pos = long_position()
    gw = FakeGateway(positions=[pos])
    gw.fail("get_open_positions", transient("ipc timeout"))
    engine = make_engine(gw, executor)

    assert engine._step(session_for(pos), EURUSD)
    assert applied_stops(gw) == []


# ==================================================
# Worker threads
# ==================================================

def test_start_and_stop(gateway, executor):
    engine = make_engine(gateway, executor)

    session = engine.start(1, distance_points=150, step_points=20)

    assert engine.is_active(1)
    assert wait_until(lambda: session.updates == 1)
    assert gateway.positions[1].stop_loss == 1.085

    assert engine.stop(1)
    assert not engine.is_active(1)
    assert session.state == STOPPED
    assert session.stop_reason == "stopped"


def test_start_replaces_running_session(gateway, executor):
    engine = make_engine(gateway, executor)

    first = engine.start(1, distance_points=150, step_points=20)
    second = engine.start(1, distance_points=100, step_points=10, mode="chandelier")

    assert first.cancel.is_set()
    assert first.state == STOPPED
    assert engine.active_tickets() == [1]
    assert engine.registry.get(1) is second

    assert engine.stop_all() == 1
    assert engine.active_tickets() == []


def test_session_ends_when_position_closes(gateway, executor):
    engine = make_engine(gateway, executor)
    session = engine.start(2, distance_points=150, step_points=20)
    assert wait_until(lambda: session.updates == 1)

    del gateway.positions[2]

    assert wait_until(lambda: not engine.is_active(2))
    assert session.stop_reason == "position_not_found"


def test_start_unknown_ticket(gateway, executor):
    engine = make_engine(gateway, executor)

    with pytest.raises(GatewayError) as e:
        engine.start(999, distance_points=150, step_points=20)

    assert e.value.failure.kind is FailureKind.NOT_FOUND
    assert not engine.is_active(999)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"distance_points": 0, "step_points": 20},
        {"distance_points": 150, "step_points": -1},
        {"distance_points": 150, "step_points": 20, "mode": "atr"},
    ],
)
def test_start_rejects_bad_parameters(gateway, executor, kwargs):
    engine = make_engine(gateway, executor)

    with pytest.raises(ValueError):
        engine.start(1, **kwargs)


def test_stop_unknown_ticket(gateway, executor):
    assert not make_engine(gateway, executor).stop(42)


def test_registry_rejects_duplicates_and_discards_by_identity(mocker):
    registry = TrailRegistry()
    old = session_for(long_position())
    new = session_for(long_position())

    registry.put(old, mocker.Mock())
    with pytest.raises(RuntimeError):
        registry.put(new, mocker.Mock())

    registry.pop(1)
    registry.put(new, mocker.Mock())
    registry.discard(old)

    assert registry.get(1) is new


def test_stop_tightened_outside_loop_is_never_loosened(executor):
    pos = long_position()
    gw = FakeGateway(
        positions=[pos],
        ticks=[Tick(1.1000, 1.1002), Tick(1.1025, 1.1027), Tick(1.1120, 1.1122)],
    )
    engine = make_engine(gw, executor)
    service = TradeService(gw, executor=executor, symbols=engine.symbols)
    session = session_for(pos)

    engine._step(session, EURUSD)
    assert gw.positions[1].stop_loss == 1.085

    assert service.breakeven(1).is_ok
    assert gw.positions[1].stop_loss == 1.095

    # candidate 1.0875 is below the breakeven stop
    engine._step(session, EURUSD)
    assert gw.positions[1].stop_loss == 1.095

    # candidate 1.097 tightens by 20 points
    engine._step(session, EURUSD)
    assert gw.positions[1].stop_loss == 1.097


def test_start_refuses_to_replace_stuck_worker(gateway, executor, mocker):
    engine = make_engine(gateway, executor, join_timeout=0.01)
    stuck = mocker.Mock()
    stuck.is_alive.return_value = True
    engine.registry.put(session_for(long_position()), stuck)

    with pytest.raises(RuntimeError):
        engine.start(1, distance_points=150, step_points=20)

    stuck.join.assert_called_once_with(0.01)
    assert not engine.is_active(1)
