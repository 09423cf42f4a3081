"""Job repository - CRUD and due-set selection over ``cron_jobs``.

Manifesto:
    Job persistence and the due-set query are pure data operations that
    belong in a repository, not in the runner. Separating them enables
    testing with in-memory connections and keeps the runner focused on
    locking and the reschedule decision.

Tags:
    cronspine, scheduling, repository, CRUD, due-set

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB REPOSITORY                                                              │
│                                                                              │
│   CRUD Operations:                                                           │
│   ├── create(job) → int              (fails if persisted / uuid taken)       │
│   ├── load(id_or_uuid) → CronJob | None                                      │
│   ├── save(job) → None               (overwrites every column)               │
│   └── remove(job) → bool             (clears job.id)                         │
│                                                                              │
│   Selection:                                                                 │
│   ├── query_due(now, max_errors) → list[CronJob]                             │
│   │     start <= now AND (end IS NULL OR end > now) AND errors < max_errors  │
│   │     ORDER BY start, id                                                   │
│   ├── list_all() → list[CronJob]                                             │
│   └── count() → int                                                          │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from typing import Any

from cronspine.core.dialect import Dialect, SQLiteDialect
from cronspine.core.errors import (
    DuplicateJobError,
    JobAlreadyPersistedError,
    JobNotPersistedError,
)
from cronspine.core.logging import get_logger
from cronspine.core.protocols import Connection
from cronspine.core.schema import CRON_TABLES, JOB_COLUMNS, job_columns_sql
from cronspine.core.scheduling.job import CronJob

logger = get_logger(__name__)

_TABLE = CRON_TABLES["jobs"]
_DATA_COLUMNS = [c for c in JOB_COLUMNS if c != "id"]


def _is_integrity_error(exc: Exception) -> bool:
    # sqlite3, psycopg2 and most DB-API drivers share this class name
    return type(exc).__name__ in ("IntegrityError", "UniqueViolation")


class JobRepository:
    """Repository for cron job records.

    Example:
        >>> repo = JobRepository(conn)
        >>> job = CronJob(uuid="nightly-report", event="report", start="+1 hour")
        >>> repo.create(job)
        1
        >>> repo.load("nightly-report") == repo.load(1)
        True
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        """Initialize repository with database connection.

        Args:
            conn: Database connection (any backend satisfying Connection protocol)
            dialect: SQL dialect for portable queries. Defaults to SQLiteDialect.
        """
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()

    def _ph(self, count: int) -> str:
        """Generate placeholder string for this dialect."""
        return self.dialect.placeholders(count)

    def _columns(self, columns: list[str] | None = None) -> str:
        return job_columns_sql(columns, self.dialect)

    # === CRUD Operations ===

    def create(self, job: CronJob) -> int:
        """Persist a new job and assign its id.

        Raises:
            JobAlreadyPersistedError: The job already has an id.
            DuplicateJobError: Another job uses the same uuid.
        """
        if job.is_persisted:
            raise JobAlreadyPersistedError(job.id)

        row = job.to_row()
        try:
            self.conn.execute(
                self.dialect.insert_returning(_TABLE, _DATA_COLUMNS, "id"),
                tuple(row[c] for c in _DATA_COLUMNS),
            )
            inserted = self.conn.fetchone()
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            if _is_integrity_error(e):
                raise DuplicateJobError(job.uuid, cause=e).with_context(
                    uuid=job.uuid, event=job.event
                ) from e
            raise

        job.id = int(inserted[0])
        logger.debug("job_created", job_id=job.id, uuid=job.uuid, event_name=job.event)
        return job.id

    def load(self, id_or_uuid: int | str) -> CronJob | None:
        """Fetch a job by numeric id or by uuid.

        Numeric strings are treated as ids. Returns None when absent.
        """
        if isinstance(id_or_uuid, str) and id_or_uuid.strip().isdigit():
            id_or_uuid = int(id_or_uuid)
        column = "id" if isinstance(id_or_uuid, int) and not isinstance(id_or_uuid, bool) else "uuid"

        self.conn.execute(
            f"SELECT {self._columns()} FROM {_TABLE} WHERE {column} = {self._ph(1)}",
            (id_or_uuid,),
        )
        row = self.conn.fetchone()
        if not row:
            return None
        return self._row_to_job(row)

    def save(self, job: CronJob) -> None:
        """Overwrite every column of an existing job (last writer wins).

        Raises:
            JobNotPersistedError: The job has no id.
        """
        if not job.is_persisted:
            raise JobNotPersistedError()

        row = job.to_row()
        d = self.dialect
        assignments = ", ".join(f"{d.quote(c)} = {d.placeholder(i)}" for i, c in enumerate(_DATA_COLUMNS))
        try:
            self.conn.execute(
                f"UPDATE {_TABLE} SET {assignments} WHERE id = {d.placeholder(len(_DATA_COLUMNS))}",
                (*(row[c] for c in _DATA_COLUMNS), job.id),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def remove(self, job: CronJob) -> bool:
        """Delete a job and clear its id.

        Returns:
            True if a row was deleted.

        Raises:
            JobNotPersistedError: The job has no id.
        """
        if not job.is_persisted:
            raise JobNotPersistedError()

        try:
            cursor = self.conn.execute(
                f"DELETE FROM {_TABLE} WHERE id = {self._ph(1)}",
                (job.id,),
            )
            deleted = cursor.rowcount > 0
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.debug("job_deleted", job_id=job.id, uuid=job.uuid, deleted=deleted)
        job.id = None
        return deleted

    # === Selection ===

    def query_due(self, now: int, max_errors: int) -> list[CronJob]:
        """Jobs due at ``now`` within the error budget, earliest first."""
        start, end = self.dialect.quote("start"), self.dialect.quote("end")
        self.conn.execute(
            f"""
            SELECT {self._columns()} FROM {_TABLE}
            WHERE {start} <= {self.dialect.placeholder(0)}
              AND ({end} IS NULL OR {end} > {self.dialect.placeholder(1)})
              AND errors < {self.dialect.placeholder(2)}
            ORDER BY {start}, id
            """,
            (now, now, max_errors),
        )
        return [self._row_to_job(row) for row in self.conn.fetchall()]

    def list_all(self) -> list[CronJob]:
        """All jobs ordered by start time."""
        start = self.dialect.quote("start")
        self.conn.execute(f"SELECT {self._columns()} FROM {_TABLE} ORDER BY {start}, id")
        return [self._row_to_job(row) for row in self.conn.fetchall()]

    def count(self) -> int:
        self.conn.execute(f"SELECT COUNT(*) FROM {_TABLE}")
        return self.conn.fetchone()[0]

    def _row_to_job(self, row: Any) -> CronJob:
        """Convert a database row (selected in JOB_COLUMNS order) to a CronJob."""
        data = dict(zip(JOB_COLUMNS, row, strict=False))
        return CronJob.from_row(data)


__all__ = ["JobRepository"]
