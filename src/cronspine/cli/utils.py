"""
CLI utility helpers — shared state, store access and output formatting.
"""

from __future__ import annotations

import importlib
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cronspine.core.errors import CronError
from cronspine.core.schema import create_tables
from cronspine.core.scheduling.job import CronJob
from cronspine.core.scheduling.repository import JobRepository
from cronspine.core.scheduling.runner import RunResult
from cronspine.core.sqlite_conn import SqliteConnection
from cronspine.core.status import StatusEnum

console = Console()
err_console = Console(stderr=True)

DEFAULT_DATABASE = str(Path.home() / ".cronspine" / "cron.db")


@dataclass
class CliState:
    """Options given to the root command, shared by every sub-command."""

    database: str = DEFAULT_DATABASE
    as_json: bool = False
    handlers: list[str] = field(default_factory=list)
    timezone: str = "UTC"


def get_state(ctx: typer.Context) -> CliState:
    obj = ctx.find_root().obj
    return obj if isinstance(obj, CliState) else CliState()


# ── Connection helpers ───────────────────────────────────────────────────


def get_connection(database: str | None = None) -> SqliteConnection:
    """Open the job store and make sure the tables exist."""
    conn = SqliteConnection(database or DEFAULT_DATABASE)
    create_tables(conn)
    return conn


def make_repository(state: CliState) -> tuple[JobRepository, SqliteConnection]:
    conn = get_connection(state.database)
    return JobRepository(conn), conn


def import_handlers(modules: list[str]) -> None:
    """Import modules so their ``@register_handler`` decorators run."""
    for module in modules:
        try:
            importlib.import_module(module)
        except ImportError as e:
            err_console.print(f"[bold red]Error[/bold red]: cannot import handlers module {module!r}: {e}")
            raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: Exception) -> NoReturn:
    """Report ``error`` on stderr and exit with status 1."""
    if isinstance(error, CronError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


def _format_time(value: int | None) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value, UTC).strftime("%Y-%m-%d %H:%M:%S")


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def output_jobs(jobs: list[CronJob], *, as_json: bool = False, title: str = "Cron jobs") -> None:
    """Render jobs as a Rich table (or JSON)."""
    if as_json:
        print_json([job.to_dict() for job in jobs])
        return

    if not jobs:
        console.print("[dim]No jobs.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for column in ("id", "uuid", "event", "start", "recurring", "end", "status", "errors", "runs"):
        table.add_column(column, overflow="fold")
    for job in jobs:
        table.add_row(
            str(job.id),
            escape(job.uuid),
            escape(job.event),
            _format_time(job.start),
            escape(job.recurring or "-"),
            _format_time(job.end),
            job.status.friendly_name,
            str(job.errors),
            str(job.total_runs),
        )
    console.print(table)


def output_job(job: CronJob, *, as_json: bool = False, title: str = "") -> None:
    """Render a single job as key-value pairs (or JSON)."""
    data = job.to_dict()
    if as_json:
        print_json(data)
        return

    if title:
        console.print(f"[bold]{title}[/bold]")
    for key, value in data.items():
        if key in ("start", "end", "last_run") and value is not None:
            value = f"{value} ({_format_time(value)})"
        console.print(f"  [cyan]{key}[/cyan]: {escape(str(value))}")


def output_run_result(result: RunResult, *, as_json: bool = False) -> None:
    """Render a runner result.

    Error statuses exit with status 1, except LOCKED: another runner holding
    every slot is normal contention for a crontab-driven trigger.
    """
    if as_json:
        print_json(result.to_dict())
    elif result.jobs is not None:
        output_jobs(result.jobs)
        console.print(f"[dim]{escape(result.message)}[/dim]")
    else:
        style = "green" if result.is_ok else "yellow"
        console.print(f"[{style}]{result.status.friendly_name}[/{style}]: {escape(result.message)}")
        if result.job is not None:
            output_job(result.job)
        elif result.processed or result.skipped or result.failed:
            console.print(
                f"  processed={result.processed} skipped={result.skipped} failed={result.failed}"
            )

    if result.status.is_error and result.status != StatusEnum.LOCKED:
        raise typer.Exit(code=1)
