"""Advisory lock providers for runner slots and per-job exclusion.

Manifesto:
    Many runner processes may poll the same job store. Two named-lock
    families keep them honest: ``cron:slot:<n>`` caps how many runners are
    active at once, ``cron:job:<id>`` guarantees a due job is executed by
    at most one of them. Acquisition is non-blocking and atomic
    (INSERT-or-ignore on a primary key), so contention is a ``False``
    return, never an exception.

Locks do not expire unless a ``ttl_seconds`` lease is configured. A runner
that crashes while holding a lock strands it until an operator runs
``force_release`` (``cronspine locks release``) or a lease is enabled.

Tags:
    cronspine, scheduling, distributed-locks, concurrency, safety

Doc-Types:
    api-reference, architecture-diagram


    Lock Flow::

        Runner A                     cron_locks                 Runner B
        ─────────                    ──────────                 ─────────
        acquire("cron:slot:0") ──▶  INSERT row (A)  ◀── acquire("cron:slot:0")
              True ◀────────────   rowcount = 1      rowcount = 0 ──▶ False
        release("cron:slot:0") ──▶  DELETE WHERE locked_by = A
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable
from uuid import uuid4

from cronspine.core.dialect import Dialect, SQLiteDialect
from cronspine.core.logging import get_logger
from cronspine.core.protocols import Connection
from cronspine.core.schema import CRON_TABLES

logger = get_logger(__name__)

_TABLE = CRON_TABLES["locks"]


@runtime_checkable
class LockProvider(Protocol):
    """Named, non-blocking, non-reentrant advisory locks."""

    def acquire(self, key: str) -> bool:
        """Return True if the caller now holds ``key``."""
        ...

    def release(self, key: str) -> None:
        """Release ``key`` if held by the caller; no-op otherwise."""
        ...


class LockManager:
    """Database-backed lock provider shared by every runner on a store.

    Example:
        >>> manager = LockManager(conn, instance_id="runner-1")
        >>> if manager.acquire("cron:job:12"):
        ...     try:
        ...         pass  # execute job 12
        ...     finally:
        ...         manager.release("cron:job:12")
        ... else:
        ...     print("Another runner has the job")
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        instance_id: str | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        """Initialize lock manager.

        Args:
            conn: Database connection
            dialect: SQL dialect for portable queries
            instance_id: Unique identifier for this runner instance.
                        Auto-generated if not provided.
            ttl_seconds: Optional lease. None keeps locks until released.
        """
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()
        self.instance_id = instance_id or str(uuid4())
        self.ttl_seconds = ttl_seconds

    def _ph(self, index: int) -> str:
        """Generate dialect-specific placeholder at 1-based position."""
        return self.dialect.placeholder(index - 1)

    def _alive_clause(self, index: int) -> str:
        return f"(expires_at IS NULL OR expires_at > {self._ph(index)})"

    # === LockProvider ===

    def acquire(self, key: str) -> bool:
        """Acquire ``key`` without blocking.

        Non-reentrant: a second acquire of a key this instance already holds
        returns False.

        Returns:
            True if lock acquired, False if already locked
        """
        now = datetime.now(UTC)
        expires = (now + timedelta(seconds=self.ttl_seconds)).isoformat() if self.ttl_seconds else None

        try:
            self.conn.execute(
                f"""
                DELETE FROM {_TABLE}
                WHERE lock_key = {self._ph(1)}
                  AND expires_at IS NOT NULL AND expires_at < {self._ph(2)}
                """,
                (key, now.isoformat()),
            )

            insert_sql = self.dialect.insert_or_ignore(
                _TABLE,
                ["lock_key", "locked_by", "locked_at", "expires_at"],
            )
            cursor = self.conn.execute(
                insert_sql,
                (key, self.instance_id, now.isoformat(), expires),
            )
            acquired = cursor.rowcount > 0
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error("lock_acquire_failed", lock_key=key, error=str(e))
            return False

        if acquired:
            logger.debug("lock_acquired", lock_key=key, instance_id=self.instance_id)
        else:
            logger.debug("lock_busy", lock_key=key)
        return acquired

    def release(self, key: str) -> None:
        """Release ``key`` if this instance holds it."""
        self.release_lock(key)

    def release_lock(self, key: str) -> bool:
        """Release ``key``; only rows owned by this instance are deleted.

        Returns:
            True if released, False if not held
        """
        try:
            cursor = self.conn.execute(
                f"""
                DELETE FROM {_TABLE}
                WHERE lock_key = {self._ph(1)} AND locked_by = {self._ph(2)}
                """,
                (key, self.instance_id),
            )
            released = cursor.rowcount > 0
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error("lock_release_failed", lock_key=key, error=str(e))
            return False

        if released:
            logger.debug("lock_released", lock_key=key)
        return released

    # === Inspection ===

    def is_locked(self, key: str) -> bool:
        """Check if ``key`` is held (by any instance)."""
        return self.get_lock_holder(key) is not None

    def get_lock_holder(self, key: str) -> str | None:
        """Instance id holding ``key``, or None."""
        now = datetime.now(UTC)
        cursor = self.conn.execute(
            f"""
            SELECT locked_by FROM {_TABLE}
            WHERE lock_key = {self._ph(1)} AND {self._alive_clause(2)}
            """,
            (key, now.isoformat()),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def list_active_locks(self) -> list[dict]:
        """List all live locks, oldest first."""
        now = datetime.now(UTC)
        cursor = self.conn.execute(
            f"""
            SELECT lock_key, locked_by, locked_at, expires_at
            FROM {_TABLE}
            WHERE {self._alive_clause(1)}
            ORDER BY locked_at, lock_key
            """,
            (now.isoformat(),),
        )
        return [
            {
                "lock_key": row[0],
                "locked_by": row[1],
                "locked_at": row[2],
                "expires_at": row[3],
            }
            for row in cursor.fetchall()
        ]

    # === Maintenance ===

    def cleanup_expired_locks(self) -> int:
        """Remove leased locks whose lease has run out.

        Returns:
            Number of locks removed
        """
        now = datetime.now(UTC)
        cursor = self.conn.execute(
            f"""
            DELETE FROM {_TABLE}
            WHERE expires_at IS NOT NULL AND expires_at < {self._ph(1)}
            """,
            (now.isoformat(),),
        )
        self.conn.commit()

        count = cursor.rowcount
        if count > 0:
            logger.info("expired_locks_cleaned", count=count)
        return count

    def force_release(self, key: str) -> bool:
        """Release ``key`` regardless of owner (stranded-lock recovery)."""
        cursor = self.conn.execute(
            f"DELETE FROM {_TABLE} WHERE lock_key = {self._ph(1)}",
            (key,),
        )
        self.conn.commit()
        released = cursor.rowcount > 0
        if released:
            logger.warning("lock_force_released", lock_key=key)
        return released

    def force_release_all(self) -> int:
        """Force release all locks (use with caution!).

        Returns:
            Number of locks released
        """
        cursor = self.conn.execute(f"DELETE FROM {_TABLE}")
        self.conn.commit()
        count = cursor.rowcount
        logger.warning("locks_force_released", count=count)
        return count


class InMemoryLockProvider:
    """Thread-safe in-process lock provider.

    Suitable for tests and single-process deployments where every runner
    shares one provider instance. Holders are tracked per ``owner`` so
    several logical runners can share one provider.
    """

    def __init__(self, owner: str | None = None) -> None:
        self.owner = owner or str(uuid4())
        self._locks: dict[str, str] = {}
        self._mutex = threading.Lock()

    def for_owner(self, owner: str) -> InMemoryLockProvider:
        """View of the same lock table acting as a different owner."""
        view = InMemoryLockProvider(owner)
        view._locks = self._locks
        view._mutex = self._mutex
        return view

    def acquire(self, key: str) -> bool:
        with self._mutex:
            if key in self._locks:
                return False
            self._locks[key] = self.owner
            return True

    def release(self, key: str) -> None:
        with self._mutex:
            if self._locks.get(key) == self.owner:
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        with self._mutex:
            return key in self._locks

    def held(self) -> dict[str, str]:
        """Snapshot of lock key → owner."""
        with self._mutex:
            return dict(self._locks)


__all__ = ["LockProvider", "LockManager", "InMemoryLockProvider"]
