"""
CLI: job store commands — ``init-db``, ``schedule``, ``list``, ``show``, ``remove``.
"""

from __future__ import annotations

import json

import typer

from cronspine.cli.utils import (
    console,
    fail,
    get_connection,
    get_state,
    make_repository,
    output_job,
    output_jobs,
)
from cronspine.core.errors import CronError, ValidationError
from cronspine.core.scheduling.events import Origin, RequestEvent
from cronspine.core.scheduling.service import CronService


def init_db(ctx: typer.Context) -> None:
    """Create the job and lock tables (idempotent)."""
    state = get_state(ctx)
    conn = get_connection(state.database)
    conn.close()
    console.print(f"[green]Initialized[/green] {state.database}")


def schedule_job(
    ctx: typer.Context,
    event: str = typer.Argument(..., help="Event name the job dispatches"),
    start: str = typer.Option("now", "--start", "-s", help="Unix timestamp or time expression"),
    recurring: str | None = typer.Option(
        None, "--recurring", "-r", help="Expression for the next start, e.g. '+1 day' or '0 8 * * *'"
    ),
    end: str | None = typer.Option(None, "--end", "-e", help="Stop recurring after this time"),
    uuid: str | None = typer.Option(None, "--uuid", "-u", help="Unique job identifier (random if omitted)"),
    request: str | None = typer.Option(None, "--request", help="JSON payload passed to the handler"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Schedule EVENT to run at --start."""
    state = get_state(ctx)

    payload = None
    if request is not None:
        try:
            payload = json.loads(request)
        except ValueError as e:
            fail(ValidationError(f"--request is not valid JSON: {e}", field="request", value=request))

    descriptor = RequestEvent(event, Origin.INTERNAL, payload)
    if uuid:
        descriptor.uuid = uuid

    repo, conn = make_repository(state)
    try:
        job = CronService(repo, tz=state.timezone).schedule(descriptor, start, recurring, end)
    except CronError as e:
        fail(e)
    finally:
        conn.close()

    output_job(job, as_json=json_out or state.as_json, title="Job scheduled")


def list_jobs(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List all jobs ordered by start time."""
    state = get_state(ctx)
    repo, conn = make_repository(state)
    try:
        jobs = repo.list_all()
    finally:
        conn.close()
    output_jobs(jobs, as_json=json_out or state.as_json)


def show_job(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job id or uuid"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one job."""
    state = get_state(ctx)
    repo, conn = make_repository(state)
    try:
        job = CronService(repo).get(job_id)
    finally:
        conn.close()

    if job is None:
        fail(LookupError(f"Cron job {job_id!r} not found."))
    output_job(job, as_json=json_out or state.as_json, title=f"Job: {job_id}")


def remove_job(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job id or uuid"),
) -> None:
    """Unschedule a job."""
    state = get_state(ctx)
    repo, conn = make_repository(state)
    try:
        removed = CronService(repo).unschedule(job_id)
    finally:
        conn.close()

    if not removed:
        fail(LookupError(f"Cron job {job_id!r} not found."))
    console.print(f"[green]Removed[/green] {job_id}")
