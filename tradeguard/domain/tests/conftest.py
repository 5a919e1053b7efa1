import pytest
from datetime import datetime, timezone

from tradeguard.domain.models import SymbolConstraints, Tick


def make_constraints(**overrides) -> SymbolConstraints:
    base = dict(
        symbol="EURUSD",
        point=0.0001,
        digits=4,
        volume_min=0.01,
        volume_step=0.01,
        volume_max=100.0,
        tick_value=10.0,
        tick_size=0.0001,
    )
    base.update(overrides)
    return SymbolConstraints(**base)


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def eurusd():
    return make_constraints()


@pytest.fixture
def tick():
    return Tick(bid=1.1000, ask=1.1002)
