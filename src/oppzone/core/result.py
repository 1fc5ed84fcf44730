"""Tagged success/failure results for operations whose errors callers must handle.

Query paths that degrade silently (point matching) return plain values.
Paths where a silent wrong answer is unacceptable (geocoding, batch
validation, explicit refresh) return ``Ok(value)`` or ``Err(ServiceError)``
so every caller handles each ``ErrorKind`` explicitly::

    result = await cache.geocode_address(address)
    match result:
        case Ok(value):
            ...
        case Err(error) if error.kind == ErrorKind.RATE_LIMITED:
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, Field

from oppzone.core.types import RateLimitState

T = TypeVar("T")
E = TypeVar("E")


class ErrorKind(StrEnum):
    """Error taxonomy shared by every component."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    DEGRADED_SERVICE = "degraded_service"
    REFRESH_FAILURE = "refresh_failure"
    UPSTREAM = "upstream"


class ServiceError(BaseModel):
    """A caller-facing error with its kind and optional retry metadata."""

    kind: ErrorKind
    message: str
    rate_limit: RateLimitState | None = None
    details: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err[E]]


def validation_error(message: str, **details: Any) -> Err[ServiceError]:
    return Err(ServiceError(kind=ErrorKind.VALIDATION, message=message, details=details))
