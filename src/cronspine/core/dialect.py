"""SQL fragments for the job store and lock manager.

The ``cron_jobs`` table uses column names that need care across backends:
``end`` is a reserved word and the camelCase names (``requestJson``,
``lastRun``, ``totalRuns``) are folded to lower case by PostgreSQL unless
quoted. Repositories build their statements from a ``Dialect`` so those
rules live in one place.

Architecture::

    JobRepository / LockManager / schema
    ┌──────────────────────────────────────────────────────────────────┐
    │  d.insert_returning("cron_jobs", cols, "id")                     │
    │  d.insert_or_ignore("cron_locks", cols)                          │
    │  f'{d.quote("end")} > {d.placeholder(1)}'                        │
    └──────────────────────────────────────────────────────────────────┘
                              │
                ┌─────────────┴─────────────┐
                ▼                           ▼
        SQLiteDialect (?)          PostgreSQLDialect (%s)
        INSERT OR IGNORE           ON CONFLICT DO NOTHING
        INTEGER PRIMARY KEY        BIGSERIAL PRIMARY KEY

Examples:
    >>> from cronspine.core.dialect import get_dialect
    >>> d = get_dialect("sqlite")
    >>> d.insert_returning("cron_jobs", ["uuid", "end"], "id")
    'INSERT INTO cron_jobs ("uuid", "end") VALUES (?, ?) RETURNING "id"'
    >>> get_dialect("postgres").placeholders(2)
    '%s, %s'
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """What the job store needs from a SQL backend."""

    name: str

    def placeholder(self, index: int) -> str:
        """Positional parameter marker (0-based ``index``)."""
        ...

    def placeholders(self, count: int) -> str: ...

    def quote(self, identifier: str) -> str:
        """Quote a column or table name."""
        ...

    def insert_returning(self, table: str, columns: list[str], key: str) -> str:
        """INSERT one row and return its ``key`` column."""
        ...

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        """INSERT one row unless it violates a unique key (rowcount 0)."""
        ...

    def auto_increment(self) -> str:
        """Column definition for the integer job id."""
        ...


class _AnsiDialect:
    """Fragments shared by both backends; subclasses set the marker."""

    name = "ansi"
    marker = "?"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return self.marker

    def placeholders(self, count: int) -> str:
        return ", ".join(self.marker for _ in range(count))

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def column_list(self, columns: list[str]) -> str:
        return ", ".join(self.quote(c) for c in columns)

    def insert_returning(self, table: str, columns: list[str], key: str) -> str:
        return (
            f"INSERT INTO {table} ({self.column_list(columns)}) "
            f"VALUES ({self.placeholders(len(columns))}) RETURNING {self.quote(key)}"
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SQLiteDialect(_AnsiDialect):
    """SQLite 3.35+ (``RETURNING`` support)."""

    name = "sqlite"

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        return (
            f"INSERT OR IGNORE INTO {table} ({self.column_list(columns)}) "
            f"VALUES ({self.placeholders(len(columns))})"
        )

    def auto_increment(self) -> str:
        return "INTEGER PRIMARY KEY AUTOINCREMENT"


class PostgreSQLDialect(_AnsiDialect):
    """PostgreSQL through a ``%s``-style DB-API driver such as psycopg2."""

    name = "postgresql"
    marker = "%s"

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        return (
            f"INSERT INTO {table} ({self.column_list(columns)}) "
            f"VALUES ({self.placeholders(len(columns))}) ON CONFLICT DO NOTHING"
        )

    def auto_increment(self) -> str:
        return "BIGSERIAL PRIMARY KEY"


_ALIASES = {"sqlite": "sqlite", "sqlite3": "sqlite", "postgresql": "postgresql", "postgres": "postgresql"}


def get_dialect(db_type: str) -> Dialect:
    """Dialect for a backend name (``sqlite``, ``postgres``, ...).

    Raises:
        ValueError: Unknown backend.
    """
    key = _ALIASES.get(db_type.strip().lower())
    if key is None:
        raise ValueError(f"Unknown dialect {db_type!r}. Supported: sqlite, postgresql")
    return SQLiteDialect() if key == "sqlite" else PostgreSQLDialect()


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
]
