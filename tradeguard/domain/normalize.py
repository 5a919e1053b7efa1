"""
Price / volume normalization to the broker grid.
Pure functions, no gateway access.
"""
from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from tradeguard.domain.errors import Failure, Result
from tradeguard.domain.models import SymbolConstraints

# float division noise, e.g. 0.3 / 0.1 == 2.9999999999999996
STEP_EPSILON = 1e-9


class MinLotPolicy(str, Enum):
    REJECT = "reject"
    USE_BROKER_MINIMUM = "broker_min"

    @staticmethod
    def from_config(value: str | None) -> "MinLotPolicy":
        if value is None:
            return MinLotPolicy.REJECT
        return MinLotPolicy(str(value).lower())


def normalize_price(price: float, digits: int) -> float:
    """
    Round to ``digits`` decimals, half away from zero.
    """
    quantum = Decimal(1).scaleb(-int(digits))
    return float(Decimal(str(price)).quantize(quantum, rounding=ROUND_HALF_UP))


def step_decimals(step: float) -> int:
    exponent = Decimal(str(step)).normalize().as_tuple().exponent
    return max(0, -int(exponent))


def floor_to_step(volume: float, step: float) -> float:
    """
    Largest multiple of ``step`` not above ``volume``.
    """
    steps = math.floor(float(volume) / float(step) + STEP_EPSILON)
    return round(steps * float(step), step_decimals(step))


def normalize_volume(
    volume: float,
    volume_min: float,
    volume_step: float,
    volume_max: float,
    *,
    policy: MinLotPolicy = MinLotPolicy.REJECT,
) -> Result[float]:
    if volume_step <= 0:
        return Result.fail(
            Failure.validation(f"Invalid volume step {volume_step}", code="invalid_step")
        )

    if not math.isfinite(volume) or volume <= 0:
        return Result.fail(
            Failure.validation(f"Volume must be positive, got {volume}", code="non_positive_volume")
        )

    normalized = floor_to_step(volume, volume_step)

    if normalized > volume_max:
        normalized = floor_to_step(volume_max, volume_step)

    if normalized < volume_min - STEP_EPSILON:
        if policy is MinLotPolicy.USE_BROKER_MINIMUM:
            return Result.ok(float(volume_min))

        return Result.fail(
            Failure.validation(
                f"Normalized volume {normalized} < min volume {volume_min} "
                f"(raw={volume}, step={volume_step})",
                code="below_min_volume",
            )
        )

    return Result.ok(normalized)


def normalize_volume_for(
    volume: float,
    constraints: SymbolConstraints,
    *,
    policy: MinLotPolicy = MinLotPolicy.REJECT,
) -> Result[float]:
    return normalize_volume(
        volume,
        constraints.volume_min,
        constraints.volume_step,
        constraints.volume_max,
        policy=policy,
    )
