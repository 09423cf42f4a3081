"""Job record model.

Manifesto:
    A scheduled job is the only state the runner owns, so a malformed field
    must fail at the moment it is assigned, not three runs later when the
    reschedule decision reads it. Every assignment, construction included,
    goes through :func:`validate_field`, which returns a ``Result`` so
    callers can choose between raising and reporting.

Fields mirror the persisted ``cron_jobs`` row; ``to_row`` / ``from_row``
translate between the snake_case attributes and the stored column names
(``requestJson``, ``lastRun``, ``totalRuns``).

Tags:
    cronspine, scheduling, dataclass, validation, job-record

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields
from typing import Any

from cronspine.core.errors import ParseError, ValidationError
from cronspine.core.result import Err, Ok, Result
from cronspine.core.status import StatusEnum
from cronspine.core.timeexpr import resolve, system_clock

# attribute name → persisted column name
COLUMN_NAMES = {
    "id": "id",
    "uuid": "uuid",
    "event": "event",
    "request": "requestJson",
    "start": "start",
    "end": "end",
    "errors": "errors",
    "status": "status",
    "message": "message",
    "recurring": "recurring",
    "last_run": "lastRun",
    "total_runs": "totalRuns",
}


def _invalid(name: str, value: Any, constraint: str) -> Err:
    return Err(
        ValidationError(
            f"Invalid {name} value: {value!r}",
            field=name,
            value=value,
            constraint=constraint,
        )
    )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _optional_int(name: str, value: Any, now: int | None, tz: str | None) -> Result[Any]:
    if value is None or _is_int(value):
        return Ok(value)
    return _invalid(name, value, "int or None")


def _string(name: str, value: Any, now: int | None, tz: str | None) -> Result[Any]:
    if isinstance(value, str):
        return Ok(value)
    return _invalid(name, value, "str")


def _optional_string(name: str, value: Any, now: int | None, tz: str | None) -> Result[Any]:
    if value is None or isinstance(value, str):
        return Ok(value)
    return _invalid(name, value, "str or None")


def _counter(name: str, value: Any, now: int | None, tz: str | None) -> Result[Any]:
    if _is_int(value) and value >= 0:
        return Ok(value)
    return _invalid(name, value, "non-negative int")


def _timestamp(name: str, value: Any, now: int | None, tz: str | None) -> Result[Any]:
    if value is None:
        if name == "end":
            return Ok(None)
        return _invalid(name, value, "int or time expression")
    if not (_is_int(value) or isinstance(value, str)):
        return _invalid(name, value, "int or time expression")
    try:
        return Ok(resolve(value, system_clock() if now is None else now, tz))
    except ParseError as e:
        e.field = name
        return Err(e)


def _status(name: str, value: Any, now: int | None, tz: str | None) -> Result[Any]:
    status = StatusEnum.try_from(value)
    if status is None:
        return _invalid(name, value, "StatusEnum, status code or status name")
    return Ok(status)


def _json_value(name: str, value: Any, now: int | None, tz: str | None) -> Result[Any]:
    try:
        return Ok(json.loads(json.dumps(value, ensure_ascii=False)))
    except (TypeError, ValueError) as e:
        return Err(
            ValidationError(
                f"Invalid {name} value: not JSON-serializable ({e})",
                field=name,
                value=value,
                constraint="JSON-serializable",
                cause=e,
            )
        )


_VALIDATORS: dict[str, Callable[[str, Any, int | None, str | None], Result[Any]]] = {
    "id": _optional_int,
    "uuid": _string,
    "event": _string,
    "request": _json_value,
    "start": _timestamp,
    "end": _timestamp,
    "errors": _counter,
    "status": _status,
    "message": _optional_string,
    "recurring": _optional_string,
    "last_run": _optional_int,
    "total_runs": _counter,
}


def validate_field(name: str, value: Any, now: int | None = None, tz: str | None = None) -> Result[Any]:
    """Validate and normalise a value for a :class:`CronJob` field.

    ``start``/``end`` accept time expressions resolved against ``now``
    (system clock when omitted); ``status`` accepts anything
    :meth:`StatusEnum.try_from` understands.

    Returns:
        ``Ok(normalised_value)`` or ``Err(ValidationError)``.
    """
    validator = _VALIDATORS.get(name)
    if validator is None:
        return Err(
            ValidationError(f"Invalid property: {name}", field=name, value=value, constraint="known field")
        )
    return validator(name, value, now, tz)


@dataclass
class CronJob:
    """A scheduled job and its execution history.

    Assigning an invalid value raises :class:`ValidationError`; use
    :meth:`try_set` for the non-raising variant.

    Example:
        >>> job = CronJob(uuid="nightly-report", event="report", start="+1 hour")
        >>> job.status = "Not Found"
        >>> job.status
        <StatusEnum.NOT_FOUND: 404>
    """

    id: int | None = None
    uuid: str = ""
    event: str = ""
    request: Any = None
    start: int = 0
    end: int | None = None
    errors: int = 0
    status: StatusEnum = StatusEnum.UNDETERMINED
    message: str | None = None
    recurring: str | None = None
    last_run: int | None = None
    total_runs: int = 0

    def __setattr__(self, name: str, value: Any) -> None:
        object.__setattr__(self, name, validate_field(name, value).unwrap())

    def try_set(self, name: str, value: Any, now: int | None = None, tz: str | None = None) -> Result[None]:
        """Assign ``name`` if valid; return the validation outcome."""
        result = validate_field(name, value, now, tz)
        if result.is_ok():
            object.__setattr__(self, name, result.unwrap())
        return result.map(lambda _: None)

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def is_due(self, now: int) -> bool:
        """True when ``start`` has passed and ``end`` has not."""
        return self.start <= now and (self.end is None or self.end > now)

    # === Serialization ===

    def to_row(self) -> dict[str, Any]:
        """Persisted column → value mapping."""
        return {
            "id": self.id,
            "uuid": self.uuid,
            "event": self.event,
            "requestJson": json.dumps(self.request, ensure_ascii=False, separators=(",", ":")),
            "start": self.start,
            "end": self.end,
            "errors": self.errors,
            "status": int(self.status),
            "message": self.message,
            "recurring": self.recurring,
            "lastRun": self.last_run,
            "totalRuns": self.total_runs,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> CronJob:
        """Build a job from a persisted row (column names as stored)."""
        data = dict(row)
        raw_request = data.get("requestJson")
        try:
            request = json.loads(raw_request) if raw_request is not None else None
        except ValueError as e:
            raise ValidationError(
                f"Invalid requestJson for job {data.get('id')!r}",
                field="request",
                value=raw_request,
                cause=e,
            ) from e
        kwargs: dict[str, Any] = {}
        for attr, column in COLUMN_NAMES.items():
            if attr == "request":
                kwargs[attr] = request
            elif column in data:
                kwargs[attr] = data[column]
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation for CLI and API output."""
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result["status"] = self.status.name
        result["status_code"] = int(self.status)
        return result

    def __str__(self) -> str:
        info = [
            f"#{self.id}" if self.id is not None else "unsaved",
            self.event,
            self.status.friendly_name,
        ]
        if self.start < system_clock():
            info.append("due")
        if self.errors:
            info.append(f"{self.errors} error(s)")
        return f"CronJob[{', '.join(info)}]"


__all__ = ["CronJob", "COLUMN_NAMES", "validate_field"]
