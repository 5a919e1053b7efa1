from __future__ import annotations

import random
import threading
from typing import Callable, Optional, TypeVar

from tradeguard.domain.errors import Failure, FailureKind, GatewayError, Result
from tradeguard.execution.policy.retry_policy import RetryPolicy
from tradeguard.logging.null_logger import NullLogger

T = TypeVar("T")

# transport-level exceptions a gateway may leak before classifying
TRANSPORT_ERRORS = (ConnectionError, TimeoutError)


def _event_wait(cancel: threading.Event, delay: float) -> bool:
    return cancel.wait(delay)


class RetryExecutor:
    """
    Runs a single order-mutating call with bounded retry.

    - TRANSIENT failures are retried with exponential backoff (capped)
    - any other failure kind is returned immediately
    - a set ``cancel`` event interrupts the backoff wait
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        log=None,
        wait: Callable[[threading.Event, float], bool] = _event_wait,
        rng: random.Random | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self.log = log or NullLogger()
        self._wait = wait
        self._rng = rng or random.Random()

    def execute(
        self,
        operation: Callable[[], T],
        *,
        max_attempts: Optional[int] = None,
        initial_delay: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        label: str = "operation",
    ) -> Result[T]:
        attempts_allowed = self.policy.max_attempts if max_attempts is None else int(max_attempts)
        if attempts_allowed < 1:
            raise ValueError("max_attempts must be >= 1")

        delay = self.policy.initial_delay if initial_delay is None else float(initial_delay)
        delay = min(delay, self.policy.max_delay)
        cancel = cancel or threading.Event()

        attempt = 0
        while True:
            if cancel.is_set():
                return self._cancelled(label, attempt)

            attempt += 1
            try:
                value = operation()
            except GatewayError as exc:
                failure = exc.failure
            except TRANSPORT_ERRORS as exc:
                failure = Failure(
                    kind=FailureKind.TRANSIENT,
                    message=f"{type(exc).__name__}: {exc}",
                    code="transport",
                )
            else:
                if attempt > 1:
                    self.log.info(f"{label} succeeded on attempt {attempt}/{attempts_allowed}")
                return Result.ok(value, attempts=attempt)

            if not failure.retryable:
                self.log.warning(f"{label} failed ({failure.kind.value}), not retrying: {failure.message}")
                return Result.fail(failure.with_attempts(attempt))

            if attempt >= attempts_allowed:
                self.log.error(f"{label} gave up after {attempt} attempt(s): {failure.message}")
                return Result.fail(failure.with_attempts(attempt))

            wait = self._jittered(delay)
            self.log.warning(
                f"{label} transient failure: {failure.message}. "
                f"Retry {attempt}/{attempts_allowed - 1} in {wait:.3f}s"
            )

            if self._wait(cancel, wait):
                return self._cancelled(label, attempt)

            delay = self.policy.next_delay(delay)

    def _jittered(self, delay: float) -> float:
        if self.policy.jitter <= 0:
            return delay
        return max(0.0, delay + self._rng.uniform(-self.policy.jitter, self.policy.jitter))

    def _cancelled(self, label: str, attempts: int) -> Result:
        self.log.info(f"{label} cancelled after {attempts} attempt(s)")
        return Result.fail(
            Failure(
                kind=FailureKind.CANCELLED,
                message=f"{label} cancelled",
                attempts=attempts,
                code="cancelled",
            )
        )
