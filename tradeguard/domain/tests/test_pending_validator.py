from datetime import datetime, timedelta

import pytest

from tradeguard.domain.errors import FailureKind
from tradeguard.domain.orders.pending import (
    PendingOrderSpec,
    price_from_offset_points,
    validate_pending_order,
)


def _fields(res):
    return [v.field for v in res.failure.violations]


def test_buy_stop_limit_with_limit_above_trigger_rejected():
    spec = PendingOrderSpec("EURUSD", "buy", "stop_limit", stop_trigger=1.1000, limit_price=1.1005)

    res = validate_pending_order(spec)

    assert not res.is_ok
    assert res.failure.kind is FailureKind.VALIDATION
    assert res.failure.code == "invalid_pending_order"
    assert _fields(res) == ["limit_price"]


def test_buy_stop_limit_with_limit_at_or_below_trigger_ok():
    assert validate_pending_order(
        PendingOrderSpec("EURUSD", "buy", "stop_limit", stop_trigger=1.1000, limit_price=1.0995)
    ).is_ok
    assert validate_pending_order(
        PendingOrderSpec("EURUSD", "buy", "stop_limit", stop_trigger=1.1000, limit_price=1.1000)
    ).is_ok


def test_sell_stop_limit_ordering():
    bad = PendingOrderSpec("EURUSD", "sell", "stop_limit", stop_trigger=1.1000, limit_price=1.0995)
    good = PendingOrderSpec("EURUSD", "sell", "stop_limit", stop_trigger=1.1000, limit_price=1.1005)

    assert _fields(validate_pending_order(bad)) == ["limit_price"]
    assert validate_pending_order(good).is_ok


@pytest.mark.parametrize("kind", ["limit", "stop"])
def test_limit_and_stop_require_price(kind):
    res = validate_pending_order(PendingOrderSpec("EURUSD", "buy", kind))

    assert _fields(res) == ["price"]


def test_limit_rejects_stop_limit_fields():
    spec = PendingOrderSpec("EURUSD", "sell", "limit", price=1.2, stop_trigger=1.1, limit_price=1.1)

    assert _fields(validate_pending_order(spec)) == ["stop_trigger", "limit_price"]


def test_all_violations_are_reported_together(fixed_now):
    spec = PendingOrderSpec(
        "EURUSD",
        "buy",
        "stop_limit",
        price=1.1,
        limit_price=-1.0,
        time_in_force="GTD",
    )

    res = validate_pending_order(spec, now=fixed_now)

    assert _fields(res) == ["price", "stop_trigger", "limit_price", "expiry"]
    assert "Invalid buy_stop_limit order" in res.failure.message


def test_unknown_kind_and_side():
    res = validate_pending_order(PendingOrderSpec("EURUSD", "long", "market", price=1.0))

    assert _fields(res) == ["side", "kind"]


def test_gtd_requires_future_aware_expiry(fixed_now):
    base = dict(symbol="EURUSD", side="buy", kind="limit", price=1.09, time_in_force="GTD")

    future = PendingOrderSpec(**base, expiry=fixed_now + timedelta(hours=4))
    past = PendingOrderSpec(**base, expiry=fixed_now - timedelta(minutes=1))
    naive = PendingOrderSpec(**base, expiry=datetime(2030, 1, 1))

    assert validate_pending_order(future, now=fixed_now).is_ok
    assert _fields(validate_pending_order(past, now=fixed_now)) == ["expiry"]
    assert _fields(validate_pending_order(naive, now=fixed_now)) == ["expiry"]


def test_expiry_without_gtd_rejected(fixed_now):
    spec = PendingOrderSpec("EURUSD", "buy", "limit", price=1.09, expiry=fixed_now + timedelta(days=1))

    assert _fields(validate_pending_order(spec, now=fixed_now)) == ["expiry"]


def test_unsupported_time_in_force():
    spec = PendingOrderSpec("EURUSD", "buy", "limit", price=1.09, time_in_force="IOC")

    assert _fields(validate_pending_order(spec)) == ["time_in_force"]


def test_entry_price_for_stop_limit_is_trigger():
    spec = PendingOrderSpec("EURUSD", "buy", "stop_limit", stop_trigger=1.1, limit_price=1.09)

    assert spec.entry_price == 1.1
    assert spec.name == "buy_stop_limit"


@pytest.mark.parametrize(
    "kind,side,expected",
    [
        ("limit", "buy", 1.0952),
        ("stop", "buy", 1.1052),
        ("limit", "sell", 1.105),
        ("stop", "sell", 1.095),
    ],
)
def test_price_from_offset_points(tick, kind, side, expected):
    price = price_from_offset_points(
        kind=kind, side=side, tick=tick, point=0.0001, digits=4, offset_points=50
    )

    assert price == expected


def test_price_from_offset_points_rejects_negative_offset(tick):
    with pytest.raises(ValueError):
        price_from_offset_points(kind="limit", side="buy", tick=tick, point=0.0001, digits=4, offset_points=-1)
