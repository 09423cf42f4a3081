"""Status vocabulary shared by job records, executors and the runner.

Statuses use HTTP-style integer codes so executors can report outcomes in a
familiar vocabulary. Every member classifies as exactly one of ok, error
or other::

    ┌───────────────┬──────────────────────────────────────────┐
    │ classification│ codes                                    │
    ├───────────────┼──────────────────────────────────────────┤
    │ ok            │ 100..399 (CONTINUE, PROCESSING, OK, ...)  │
    │ error         │ >= 400   (BAD_REQUEST ... ERROR ...)      │
    │ other         │ everything else (UNDETERMINED)            │
    └───────────────┴──────────────────────────────────────────┘

Examples:
    >>> StatusEnum.try_from("Not Found")
    <StatusEnum.NOT_FOUND: 404>
    >>> StatusEnum.try_from(404).is_error
    True
    >>> StatusEnum.CONTINUE.is_ok
    True
"""

from __future__ import annotations

from enum import IntEnum


class StatusEnum(IntEnum):
    """Outcome status of a job execution attempt."""

    UNDETERMINED = 0
    CONTINUE = 100
    PROCESSING = 102
    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    TIMEOUT = 408
    CONFLICT = 409
    PRECONDITION_FAILED = 412
    I_AM_A_TEAPOT = 418
    LOCKED = 423
    ERROR = 500
    NOT_IMPLEMENTED = 501
    SERVICE_UNAVAILABLE = 503

    @property
    def is_ok(self) -> bool:
        return 100 <= self.value < 400

    @property
    def is_error(self) -> bool:
        return self.value >= 400

    @property
    def is_other(self) -> bool:
        return not (self.is_ok or self.is_error)

    @property
    def classification(self) -> str:
        if self.is_ok:
            return "ok"
        if self.is_error:
            return "error"
        return "other"

    @property
    def friendly_name(self) -> str:
        """``NOT_FOUND`` → ``"Not Found"``."""
        return self.name.replace("_", " ").title()

    @classmethod
    def try_from(cls, value: StatusEnum | str | int | None) -> StatusEnum | None:
        """Convert a member, code, name or friendly name to a status.

        Returns ``None`` when the value is not recognised.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                return None
        if isinstance(value, str):
            text = value.strip()
            if text.lstrip("-").isdigit():
                return cls.try_from(int(text))
            key = text.upper().replace(" ", "_").replace("-", "_")
            return cls.__members__.get(key)
        return None


__all__ = ["StatusEnum"]
