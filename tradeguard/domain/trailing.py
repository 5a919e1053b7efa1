from __future__ import annotations

from typing import Literal, Optional

from tradeguard.domain.models import BUY, Side

TrailMode = Literal["classic", "chandelier"]

CLASSIC: TrailMode = "classic"
CHANDELIER: TrailMode = "chandelier"

TRAIL_MODES = (CLASSIC, CHANDELIER)


def update_extreme(side: Side, extreme: Optional[float], price: float) -> float:
    """Running high for longs, running low for shorts."""
    if extreme is None:
        return price
    return max(extreme, price) if side == BUY else min(extreme, price)


def trail_candidate(*, side: Side, reference: float, distance: float) -> float:
    return reference - distance if side == BUY else reference + distance


def improvement(*, side: Side, candidate: float, baseline: float) -> float:
    """Signed move of the stop toward profit (positive = tighter)."""
    return candidate - baseline if side == BUY else baseline - candidate


def should_move(
    *,
    side: Side,
    candidate: float,
    baseline: Optional[float],
    min_step: float,
) -> bool:
    """
    A stop is moved only when it tightens by at least ``min_step``.
    Without a baseline there is no stop yet, so any candidate protects.
    """
    if baseline is None:
        return True
    delta = improvement(side=side, candidate=candidate, baseline=baseline)
    # tolerance for prices already rounded to the symbol digits
    return delta > 0 and delta >= min_step - 1e-12


def tighter_stop(side: Side, a: Optional[float], b: Optional[float]) -> Optional[float]:
    """The more protective of two stops; None counts as no stop."""
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b) if side == BUY else min(a, b)
