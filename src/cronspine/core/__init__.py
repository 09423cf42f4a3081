"""cronspine core -- job records, time expressions, locks and the runner.

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (CronError, ParseError, ...)
        result.py          Result[T] envelope (Ok / Err / try_result)
        status.py          StatusEnum with ok / error / other classification
        protocols.py       Connection protocol, Clock alias

    Layer 2 -- Database
        dialect.py         SQLite / PostgreSQL SQL fragments
        sqlite_conn.py     sqlite3 adapter for the Connection protocol
        schema.py          cron_jobs / cron_locks DDL

    Layer 3 -- Runtime
        timeexpr.py        relative-time and cron expression resolution
        settings.py        CRON_* settings (pydantic-settings)
        logging.py         structlog configuration
        scheduling/        records, store, locks, service, runner, worker
"""

from cronspine.core.errors import (
    AuthorizationError,
    CronError,
    DuplicateJobError,
    ErrorCategory,
    ParseError,
    RecurrenceError,
    ValidationError,
)
from cronspine.core.result import Err, Ok, Result
from cronspine.core.status import StatusEnum

__all__ = [
    "CronError",
    "ErrorCategory",
    "ValidationError",
    "ParseError",
    "AuthorizationError",
    "DuplicateJobError",
    "RecurrenceError",
    "Ok",
    "Err",
    "Result",
    "StatusEnum",
]
