"""
Structured error types for cronspine.

Provides a typed hierarchy of errors carrying a category, a retry flag,
structured context and an optional chained cause, so that the runner,
the scheduler API and the CLI can log and report failures consistently.

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different domains
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry job metadata for logging
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        CronError                                 │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ValidationError   ConfigError        AuthError                 │
        │  (VALIDATION)      (CONFIG)           (AUTH)                    │
        │       │                │                   │                     │
        │  ParseError        MissingConfig      AuthorizationError        │
        │                    InvalidConfig                                │
        │                                                                  │
        │  DatabaseError     JobStateError      OrchestrationError        │
        │  (DATABASE)        (INTERNAL)         (ORCHESTRATION)           │
        │       │                │                   │                     │
        │  IntegrityError    JobNotPersisted    ScheduleError             │
        │  DuplicateJob      JobAlreadyPersisted RecurrenceError          │
        └─────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Use generic Exception - loses all metadata
    ✅ DO: Use appropriate CronError subclass

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, error-context, cronspine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing.

    Attributes:
        VALIDATION: Malformed field values, unknown fields
        PARSE: Unparsable time expressions
        CONFIG: Missing config, invalid settings
        AUTH: Untrusted job origins
        DATABASE: Store access and constraint violations
        ORCHESTRATION: Scheduling decisions that cannot be applied
        INTERNAL: Programming errors, unexpected state
    """

    VALIDATION = "VALIDATION"
    PARSE = "PARSE"
    CONFIG = "CONFIG"
    AUTH = "AUTH"
    DATABASE = "DATABASE"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        job_id: Persisted id of the job involved
        uuid: Caller-supplied job identifier
        event: Event name the job executes
        lock_key: Lock involved in the failure
        metadata: Additional key-value pairs
    """

    job_id: int | None = None
    uuid: str | None = None
    event: str | None = None
    lock_key: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_id", "uuid", "event", "lock_key"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CronError(Exception):
    """
    Base exception for all cronspine errors.

    Every CronError carries a category, a retry flag, an ErrorContext and
    an optional cause. Subclasses set ``default_category`` and
    ``default_retryable`` to give sensible defaults for their domain.

    Examples:
        >>> error = CronError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(job_id=12, uuid="nightly-report").context.job_id
        12
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CronError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DuplicateJobError("uuid taken").with_context(uuid="nightly")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(CronError):
    """
    Field validation error.

    Never retryable - the value must be fixed by the caller.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class ParseError(ValidationError):
    """Time expression could not be parsed."""

    default_category = ErrorCategory.PARSE


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(CronError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# AUTHORIZATION ERRORS
# =============================================================================


class AuthError(CronError):
    """Authentication or authorization error."""

    default_category = ErrorCategory.AUTH
    default_retryable = False


class AuthorizationError(AuthError):
    """Caller is not allowed to perform the action."""

    pass


# =============================================================================
# STORE ERRORS
# =============================================================================


class DatabaseError(CronError):
    """Job store query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class IntegrityError(DatabaseError):
    """Database integrity constraint violation."""

    pass


class DuplicateJobError(IntegrityError):
    """A job with the same uuid already exists."""

    def __init__(self, uuid: str, **kwargs: Any):
        self.uuid = uuid
        super().__init__(f"Cron job with uuid {uuid!r} already exists", **kwargs)


class JobStateError(CronError):
    """Operation is not valid for the job's persistence state."""

    default_category = ErrorCategory.INTERNAL


class JobNotPersistedError(JobStateError):
    """Job has no id yet."""

    def __init__(self, message: str = "The job does not exist yet. Did you forget to call create() first?"):
        super().__init__(message)


class JobAlreadyPersistedError(JobStateError):
    """Job already has an id."""

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"The job already exists (#{job_id}).")


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(CronError):
    """Runner or scheduler error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class ScheduleError(OrchestrationError):
    """Schedule configuration or execution error."""

    pass


class RecurrenceError(ScheduleError):
    """Recurring expression could not be evaluated at reschedule time."""

    def __init__(self, recurring: str | None, **kwargs: Any):
        self.recurring = recurring
        super().__init__(f"Invalid recurring value: {recurring!r}", **kwargs)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CronError",
    "ValidationError",
    "ParseError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "AuthError",
    "AuthorizationError",
    "DatabaseError",
    "IntegrityError",
    "DuplicateJobError",
    "JobStateError",
    "JobNotPersistedError",
    "JobAlreadyPersistedError",
    "OrchestrationError",
    "ScheduleError",
    "RecurrenceError",
]
