"""
CLI: lock inspection and recovery — ``locks list``, ``locks release``, ``locks cleanup``.

Slot and job locks normally come and go within one runner pass. A runner
killed mid-pass leaves its rows behind; these commands show and clear them.
"""

from __future__ import annotations

import typer
from rich.markup import escape
from rich.table import Table

from cronspine.cli.utils import console, fail, get_connection, get_state, print_json
from cronspine.core.scheduling.lock_manager import LockManager

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_locks(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List held (non-expired) locks."""
    state = get_state(ctx)
    conn = get_connection(state.database)
    try:
        locks = LockManager(conn).list_active_locks()
    finally:
        conn.close()

    if json_out or state.as_json:
        print_json(locks)
        return

    if not locks:
        console.print("[dim]No locks held.[/dim]")
        return

    columns = ("lock_key", "locked_by", "locked_at", "expires_at")
    table = Table(title="Locks")
    for column in columns:
        table.add_column(column)
    for lock in locks:
        table.add_row(*(escape(str(lock[c] if lock[c] is not None else "-")) for c in columns))
    console.print(table)


@app.command("release")
def release_lock(
    ctx: typer.Context,
    key: str | None = typer.Argument(None, help="Lock key, e.g. cron:slot:0 or cron:job:12"),
    release_all: bool = typer.Option(False, "--all", help="Release every lock"),
) -> None:
    """Force-release a lock regardless of who holds it."""
    if (key is None) == (not release_all):
        fail(ValueError("Give exactly one of KEY or --all."))

    state = get_state(ctx)
    conn = get_connection(state.database)
    try:
        locks = LockManager(conn)
        if release_all:
            count = locks.force_release_all()
            console.print(f"[green]Released[/green] {count} lock(s)")
            return
        released = locks.force_release(key)
    finally:
        conn.close()

    if not released:
        fail(LookupError(f"Lock {key!r} is not held."))
    console.print(f"[green]Released[/green] {escape(key)}")


@app.command("cleanup")
def cleanup_locks(ctx: typer.Context) -> None:
    """Delete expired lock rows."""
    state = get_state(ctx)
    conn = get_connection(state.database)
    try:
        count = LockManager(conn).cleanup_expired_locks()
    finally:
        conn.close()
    console.print(f"Removed {count} expired lock(s)")
