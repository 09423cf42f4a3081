"""
Centralized settings for cronspine.

Manifesto:
    The runner's two knobs (error budget and concurrency ceiling) decide how
    aggressively a fleet of runner processes hammers the store, so they are
    validated once at startup, not discovered broken at reschedule time.
    ``CronSettings`` reads ``CRON_*`` environment variables and ``.env``
    files through pydantic-settings and is cached per override set.

Examples:
    >>> import os
    >>> os.environ["CRON_MAX_ERRORS"] = "5"
    >>> get_settings().max_concurrent_jobs
    3

Tags:
    cronspine, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cronspine.core.errors import InvalidConfigError, MissingConfigError


class CronSettings(BaseSettings):
    """cronspine configuration.

    All fields can be set via ``CRON_*`` environment variables (e.g.
    ``CRON_MAX_ERRORS=5``) or through a ``.env`` file.

    Fields
    ──────
    max_errors              : Error budget per job (required)
    max_concurrent_jobs     : Number of execution slots shared by all runners
    database_path           : SQLite job store location
    lock_ttl_seconds        : Optional lease on slot/job locks (None = never expire)
    worker_interval_seconds : Pause between batch passes of ``cronspine worker``
    timezone                : Zone used for calendar arithmetic in expressions
    log_level / log_format  : structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="CRON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Runner ───────────────────────────────────────────────────
    max_errors: int = Field(ge=1, description="Error budget per job")
    max_concurrent_jobs: int = Field(default=3, ge=1)

    # ── Storage ──────────────────────────────────────────────────
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".cronspine" / "cron.db",
        description="SQLite job store",
    )

    # ── Locks ────────────────────────────────────────────────────
    lock_ttl_seconds: int | None = Field(default=None, gt=0)

    # ── Worker ───────────────────────────────────────────────────
    worker_interval_seconds: float = Field(default=60.0, gt=0)

    # ── Time ─────────────────────────────────────────────────────
    timezone: str = Field(default="UTC")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        from cronspine.core.errors import ParseError
        from cronspine.core.timeexpr import get_timezone

        try:
            get_timezone(value)
        except ParseError as e:
            raise ValueError(e.message) from e
        return value

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value!r}")
        return level


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[tuple, CronSettings] = {}


def get_settings(*, _force_reload: bool = False, **overrides: Any) -> CronSettings:
    """Load, validate, and cache a :class:`CronSettings` instance.

    Keyword overrides take precedence over environment variables; each
    distinct override set is cached separately.

    Raises:
        MissingConfigError: A required value (``max_errors``) is not set.
        InvalidConfigError: A value fails validation.
    """
    overrides = {k: v for k, v in overrides.items() if v is not None}
    cache_key = tuple(sorted((k, repr(v)) for k, v in overrides.items()))

    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    try:
        settings = CronSettings(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(part) for part in first.get("loc", ())) or "settings"
        if first.get("type") == "missing":
            raise MissingConfigError(
                key, f"Missing required configuration: {key} (set CRON_{key.upper()})"
            ) from e
        raise InvalidConfigError(key, first.get("input"), f"Invalid configuration for {key}: {first.get('msg')}") from e

    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["CronSettings", "get_settings", "clear_settings_cache"]
