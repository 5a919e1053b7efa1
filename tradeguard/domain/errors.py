"""
Failure taxonomy shared by every component.

Pure components (normalizer, validators, calculators) return a ``Result``.
The gateway boundary raises ``GatewayError`` with an already classified
``Failure``; the retry executor branches on ``failure.kind``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    VALIDATION = "validation"
    BUSINESS = "business"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Violation:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    attempts: int = 0
    code: Optional[str] = None
    retcode: Optional[int] = None
    violations: tuple[Violation, ...] = ()

    @property
    def retryable(self) -> bool:
        return self.kind is FailureKind.TRANSIENT

    def with_attempts(self, attempts: int) -> "Failure":
        return Failure(
            kind=self.kind,
            message=self.message,
            attempts=attempts,
            code=self.code,
            retcode=self.retcode,
            violations=self.violations,
        )

    def __str__(self) -> str:
        parts = [f"{self.kind.value}: {self.message}"]
        if self.retcode is not None:
            parts.append(f"retcode={self.retcode}")
        if self.attempts:
            parts.append(f"attempts={self.attempts}")
        return " ".join(parts)

    @staticmethod
    def validation(message: str, *, code: str | None = None, violations=()) -> "Failure":
        return Failure(
            kind=FailureKind.VALIDATION,
            message=message,
            code=code,
            violations=tuple(violations),
        )

    @staticmethod
    def not_found(message: str) -> "Failure":
        return Failure(kind=FailureKind.NOT_FOUND, message=message, code="not_found")


class TradeGuardError(RuntimeError):
    def __init__(self, failure: Failure):
        super().__init__(str(failure))
        self.failure = failure


class GatewayError(TradeGuardError):
    """
    Raised by gateway implementations.
    The failure kind is decided where the call is made.
    """


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    failure: Optional[Failure] = None
    attempts: int = field(default=1, compare=False)

    @property
    def is_ok(self) -> bool:
        return self.failure is None

    @staticmethod
    def ok(value: Any = None, *, attempts: int = 1) -> "Result":
        return Result(value=value, attempts=attempts)

    @staticmethod
    def fail(failure: Failure) -> "Result":
        return Result(failure=failure, attempts=failure.attempts)

    def unwrap(self) -> T:
        if self.failure is not None:
            raise TradeGuardError(self.failure)
        return self.value
