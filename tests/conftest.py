"""
Shared pytest fixtures for cronspine tests.

This module provides:
- Registry and settings cleanup fixtures for test isolation
- An in-memory job store with the cronspine tables created
- A controllable clock for deterministic scheduling tests

Usage:
    Fixtures are auto-discovered by pytest; request them by name.

    def test_something(repo, clock):
        ...
"""

import sys
from pathlib import Path
from typing import Generator

import pytest

# Ensure cronspine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cronspine.core.schema import create_tables
from cronspine.core.scheduling import (
    CronJob,
    HandlerRegistry,
    InMemoryLockProvider,
    JobRepository,
    reset_default_registry,
)
from cronspine.core.settings import clear_settings_cache
from cronspine.core.sqlite_conn import SqliteConnection

# 2023-11-14 22:13:20 UTC, a Tuesday
NOW = 1_700_000_000


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_handler_registry() -> Generator[None, None, None]:
    """Reset the default handler registry before and after each test."""
    reset_default_registry()
    yield
    reset_default_registry()


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[None, None, None]:
    """Start every test without CRON_* variables or cached settings."""
    import os

    for key in list(os.environ):
        if key.startswith("CRON_"):
            monkeypatch.delenv(key)
    # keep a developer's .env out of the settings under test
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Store Fixtures
# =============================================================================


class FakeClock:
    """Settable clock; call it to read the current unix timestamp."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def conn() -> Generator[SqliteConnection, None, None]:
    """In-memory SQLite with cron_jobs and cron_locks tables."""
    db = SqliteConnection(":memory:")
    create_tables(db)
    yield db
    db.close()


@pytest.fixture
def repo(conn: SqliteConnection) -> JobRepository:
    return JobRepository(conn)


@pytest.fixture
def locks() -> InMemoryLockProvider:
    return InMemoryLockProvider(owner="runner-a")


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def make_job(repo: JobRepository):
    """Factory that persists a job; keyword arguments override defaults."""
    counter = iter(range(1, 10_000))

    def _make(**overrides) -> CronJob:
        fields = {
            "uuid": f"job-{next(counter)}",
            "event": "noop",
            "start": NOW - 1,
        }
        fields.update(overrides)
        job = CronJob(**fields)
        repo.create(job)
        return job

    return _make
