"""Job descriptors and execution outcomes.

A :class:`RequestEvent` is what callers hand to the scheduler: an event
name, the payload, the origin it came from and a correlation uuid. When a
job fires, the runner rebuilds an INTERNAL event from the stored record
and the executor answers with an :class:`Outcome`.

Tags:
    cronspine, scheduling, events, outcome
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

from cronspine.core.status import StatusEnum


class Origin(str, Enum):
    """Where a request event came from.

    Only INTERNAL events may be scheduled; CLI and REMOTE events are
    rejected by the scheduler API.
    """

    INTERNAL = "internal"
    CLI = "cli"
    REMOTE = "remote"


@dataclass
class RequestEvent:
    """Job descriptor: event name, payload, origin and correlation id."""

    type: str
    origin: Origin = Origin.INTERNAL
    request: Any = None
    uuid: str = field(default_factory=lambda: str(uuid4()))

    @property
    def is_internal(self) -> bool:
        return self.origin == Origin.INTERNAL


@dataclass(frozen=True)
class Outcome:
    """Result of executing one job."""

    status: StatusEnum = StatusEnum.OK
    message: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.status.is_ok

    @property
    def is_error(self) -> bool:
        return self.status.is_error

    @classmethod
    def from_value(cls, value: Any) -> Outcome:
        """Normalise a handler return value.

        ``Outcome`` → as-is, ``None`` → ``Outcome(OK)``, a status member,
        code or name → ``Outcome(status)``, ``(status, message)`` →
        ``Outcome(status, message)``. Anything else, including an unknown
        status or a bool, is an ERROR outcome naming the value.
        """
        if isinstance(value, Outcome):
            return value
        if value is None:
            return cls(StatusEnum.OK)

        status, message = value, None
        if isinstance(value, tuple):
            if len(value) != 2:
                return cls._unrecognised(value)
            status, message = value
        if not isinstance(status, (StatusEnum, int, str)):
            return cls._unrecognised(value)

        resolved = StatusEnum.try_from(status)
        if resolved is None:
            return cls._unrecognised(value)
        return cls(resolved, message if message is None else str(message))

    @classmethod
    def _unrecognised(cls, value: Any) -> Outcome:
        return cls(StatusEnum.ERROR, f"Unrecognised handler result: {value!r}")


__all__ = ["Origin", "RequestEvent", "Outcome"]
