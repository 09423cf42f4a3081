"""
``Ok`` / ``Err`` values for checks that should not raise by default.

Job field validation (:func:`cronspine.core.scheduling.job.validate_field`)
and time-expression parsing (:func:`cronspine.core.timeexpr.try_resolve`)
return one of these. Assignment through ``CronJob.__setattr__`` unwraps
the result, which re-raises the carried ``ValidationError``; callers that
only want to report a bad value use ``CronJob.try_set`` instead.

Examples:
    >>> validate_field("errors", 2)
    Ok(2)
    >>> validate_field("errors", -1).unwrap_or(0)
    0
    >>> try_resolve("+1 day", 0).map(lambda ts: ts // 3600).unwrap()
    24
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from cronspine.core.errors import CronError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:  # noqa: ARG002
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Ok(f(self.value))

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        return f(self.value)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """A failed check; ``unwrap`` raises the carried error unchanged."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Result[U]:  # noqa: ARG002
        return Err(self.error)

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:  # noqa: ARG002
        return Err(self.error)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, CronError):
            error = self.error.to_dict()
        else:
            error = {"error_type": type(self.error).__name__, "message": str(self.error)}
        return {"ok": False, "error": error}

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result(f: Callable[[], T]) -> Result[T]:
    """Call ``f`` and capture a raised exception as ``Err``."""
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)


__all__ = ["Ok", "Err", "Result", "try_result"]
