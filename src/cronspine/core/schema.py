"""
Job store and lock tables.

Defines table names and DDL for the two tables cronspine needs: the job
records themselves and the advisory lock rows shared by every runner
process pointed at the same database.

Architecture:
    ::

        CRON_TABLES:
        ┌────────────────────────────────────────────────────────────┐
        │ jobs   → cron_jobs    (one row per scheduled job)          │
        │ locks  → cron_locks   (slot + per-job advisory locks)      │
        └────────────────────────────────────────────────────────────┘

        cron_jobs columns keep the persisted record names:
        id, uuid, event, requestJson, start, end, errors, status,
        message, recurring, lastRun, totalRuns

Examples:
    >>> from cronspine.core.schema import CRON_TABLES, create_tables
    >>> CRON_TABLES["jobs"]
    'cron_jobs'
    >>> create_tables(conn)

Tags:
    cronspine, schema, ddl, sqlite, postgresql
"""

from __future__ import annotations

from cronspine.core.dialect import Dialect, SQLiteDialect
from cronspine.core.protocols import Connection

CRON_TABLES = {
    "jobs": "cron_jobs",
    "locks": "cron_locks",
}

JOB_COLUMNS = [
    "id",
    "uuid",
    "event",
    "requestJson",
    "start",
    "end",
    "errors",
    "status",
    "message",
    "recurring",
    "lastRun",
    "totalRuns",
]


def job_columns_sql(columns: list[str] | None = None, dialect: Dialect | None = None) -> str:
    """Comma-separated, quoted column list for ``cron_jobs``."""
    dialect = dialect or SQLiteDialect()
    return ", ".join(dialect.quote(c) for c in (columns or JOB_COLUMNS))


def get_ddl(dialect: Dialect | None = None) -> list[str]:
    """Return the CREATE statements for ``dialect``."""
    dialect = dialect or SQLiteDialect()
    jobs = CRON_TABLES["jobs"]
    locks = CRON_TABLES["locks"]
    return [
        f"""
        CREATE TABLE IF NOT EXISTS {jobs} (
            id {dialect.auto_increment()},
            uuid TEXT NOT NULL DEFAULT '',
            event TEXT NOT NULL DEFAULT '',
            "requestJson" TEXT NOT NULL DEFAULT 'null',
            "start" BIGINT NOT NULL,
            "end" BIGINT,
            errors INTEGER NOT NULL DEFAULT 0,
            status INTEGER NOT NULL DEFAULT 0,
            message TEXT,
            recurring TEXT,
            "lastRun" BIGINT,
            "totalRuns" INTEGER NOT NULL DEFAULT 0
        )
        """,
        f"""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_{jobs}_uuid
        ON {jobs} (uuid) WHERE uuid <> ''
        """,
        f'CREATE INDEX IF NOT EXISTS idx_{jobs}_start ON {jobs} ("start")',
        f"""
        CREATE TABLE IF NOT EXISTS {locks} (
            lock_key TEXT PRIMARY KEY,
            locked_by TEXT NOT NULL,
            locked_at TEXT NOT NULL,
            expires_at TEXT
        )
        """,
    ]


def create_tables(conn: Connection, dialect: Dialect | None = None) -> None:
    """Create all cronspine tables and indexes (idempotent)."""
    for statement in get_ddl(dialect):
        conn.execute(statement)
    conn.commit()


__all__ = ["CRON_TABLES", "JOB_COLUMNS", "job_columns_sql", "get_ddl", "create_tables"]
