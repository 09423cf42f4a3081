"""
Canonical protocol definitions for cronspine.

Manifesto:
    The runner, the scheduler API and the job store depend on the SHAPE of
    their collaborators, never on concrete drivers. Any object matching a
    protocol can be injected, which is how tests substitute in-memory
    databases, fake clocks and stub executors.

Architecture:
    ::

        protocols.py
        ├── Connection   — sync DB protocol (sqlite3 adapter, psycopg2, etc.)
        └── Clock        — zero-argument callable returning a unix timestamp

    Scheduling-specific contracts (LockProvider, Executor) live next to
    their implementations in ``cronspine.core.scheduling``.

Guardrails:
    ❌ DON'T: Duplicate Connection(Protocol) in other modules
    ✅ DO: Import from cronspine.core.protocols

Tags:
    protocol, connection, clock, cronspine, contracts
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Synchronous DB-API style connection used by the job store and locks.

    Each repository call is ``execute`` → ``fetchone``/``fetchall`` →
    ``commit``, with ``rollback`` on failure. Writers never leave a
    transaction open across calls, so several runner processes can share
    one database.

    ::

        execute(sql, params)    → cursor (``rowcount`` is read after DELETE/INSERT)
        executemany(sql, rows)  → cursor
        fetchone() / fetchall() → rows of the last ``execute``
        commit() / rollback()
    """

    def execute(self, sql: str, params: tuple = ()) -> Any: ...

    def executemany(self, sql: str, params: list[tuple]) -> Any: ...

    def fetchone(self) -> Any: ...

    def fetchall(self) -> list: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


# Returns the current time as an integer unix timestamp.
Clock = Callable[[], int]


__all__ = ["Connection", "Clock"]
