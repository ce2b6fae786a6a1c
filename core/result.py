"""
core/result.py -- Uniform outcome type for every public auth operation.

Expected failures (wrong password, expired session, rate limit) are values,
not exceptions: each operation returns Success(data) or Failure(message, code).
Callers branch on `.ok` or use structural pattern matching:

    match service.sign_in(email, password, ip):
        case Success(data=signed_in):
            ...
        case Failure(code=ErrorCode.ACCOUNT_LOCKED, details=details):
            ...

`code` is always one of the ErrorCode constants. `message` is a short
human-readable summary that never carries raw exception text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorCode:
    """Stable, machine-readable failure codes."""

    RATE_LIMITED = "RATE_LIMITED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    SESSION_INVALID = "SESSION_INVALID"
    SESSION_DUPLICATE = "SESSION_DUPLICATE"
    IDENTITY_NOT_FOUND = "IDENTITY_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"

    ALL = frozenset(
        {
            RATE_LIMITED,
            ACCOUNT_LOCKED,
            INVALID_CREDENTIALS,
            SESSION_NOT_FOUND,
            SESSION_EXPIRED,
            SESSION_INVALID,
            SESSION_DUPLICATE,
            IDENTITY_NOT_FOUND,
            VALIDATION_ERROR,
            UNEXPECTED_ERROR,
        }
    )


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    message: str
    code: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.code not in ErrorCode.ALL:
            raise ValueError(f"Unknown error code: {self.code!r}")

    @property
    def ok(self) -> bool:
        return False


Result = Union[Success[T], Failure]


def success(data: T = None) -> Success[T]:
    return Success(data)


def failure(message: str, code: str, **details: Any) -> Failure:
    return Failure(message=message, code=code, details=details)
