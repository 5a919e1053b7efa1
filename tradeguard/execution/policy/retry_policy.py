from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from tradeguard.config import live


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = live.RETRY_MAX_ATTEMPTS
    initial_delay: float = live.RETRY_INITIAL_DELAY_SEC
    max_delay: float = live.RETRY_MAX_DELAY_SEC
    jitter: float = live.RETRY_JITTER_SEC

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays must be >= 0")

    def next_delay(self, delay: float) -> float:
        return min(delay * 2.0, self.max_delay)

    @staticmethod
    def from_config(cfg: Dict[str, Any] | None) -> "RetryPolicy":
        raw = (cfg or {}).get("RETRY", {}) or {}

        return RetryPolicy(
            max_attempts=int(raw.get("MAX_ATTEMPTS", live.RETRY_MAX_ATTEMPTS)),
            initial_delay=float(raw.get("INITIAL_DELAY_SEC", live.RETRY_INITIAL_DELAY_SEC)),
            max_delay=float(raw.get("MAX_DELAY_SEC", live.RETRY_MAX_DELAY_SEC)),
            jitter=float(raw.get("JITTER_SEC", live.RETRY_JITTER_SEC)),
        )
