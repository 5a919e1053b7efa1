from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tradeguard.domain.errors import Failure, Result
from tradeguard.domain.models import SymbolConstraints
from tradeguard.domain.normalize import STEP_EPSILON, floor_to_step


@dataclass(frozen=True)
class PartialCloseRequest:
    ticket: int
    percent: Optional[float] = None
    exact_volume: Optional[float] = None

    @staticmethod
    def by_percent(ticket: int, percent: float) -> "PartialCloseRequest":
        return PartialCloseRequest(ticket=ticket, percent=percent)

    @staticmethod
    def by_volume(ticket: int, volume: float) -> "PartialCloseRequest":
        return PartialCloseRequest(ticket=ticket, exact_volume=volume)


def compute_close_volume(
    request: PartialCloseRequest,
    current_volume: float,
    constraints: SymbolConstraints,
) -> Result[float]:
    """
    Volume to close for a partial-close request.

    Rounds toward zero on the lot grid: closing one step less than asked
    is acceptable, closing more is not.
    """
    if (request.percent is None) == (request.exact_volume is None):
        return Result.fail(
            Failure.validation("Exactly one of percent / exact_volume must be set", code="invalid_request")
        )

    if current_volume <= 0:
        return Result.fail(
            Failure.validation(f"Position #{request.ticket} has no volume", code="empty_position")
        )

    if request.percent is not None:
        if not 0 < request.percent <= 100:
            return Result.fail(
                Failure.validation(f"Percent must be in (0;100], got {request.percent}", code="invalid_percent")
            )
        requested = current_volume * request.percent / 100.0
    else:
        if request.exact_volume <= 0:
            return Result.fail(
                Failure.validation(f"Volume must be > 0, got {request.exact_volume}", code="invalid_volume")
            )
        requested = min(float(request.exact_volume), float(current_volume))

    if constraints.volume_step <= 0:
        return Result.fail(
            Failure.validation(f"Invalid volume step {constraints.volume_step}", code="invalid_step")
        )

    effective = floor_to_step(requested, constraints.volume_step)

    # floor_to_step tolerance may land a float-noise above the position
    effective = min(effective, float(current_volume))

    if effective <= 0 or effective < constraints.volume_min - STEP_EPSILON:
        return Result.fail(
            Failure.validation(
                f"Close volume {requested:.6f} is below minimum lot {constraints.volume_min} "
                f"after step rounding (step={constraints.volume_step})",
                code="below_min_after_step",
            )
        )

    return Result.ok(effective)
