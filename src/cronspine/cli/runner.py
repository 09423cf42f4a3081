"""
CLI: runner commands — ``trigger`` (one pass) and ``worker`` (periodic passes).
"""

from __future__ import annotations

import typer

from cronspine.cli.utils import (
    CliState,
    console,
    fail,
    get_connection,
    get_state,
    output_run_result,
    print_json,
)
from cronspine.core.errors import CronError
from cronspine.core.scheduling.runner import CronRunner, TriggerRequest
from cronspine.core.scheduling.worker import CronWorker, ThreadSchedulerBackend
from cronspine.core.settings import CronSettings, get_settings


def _load_settings(state: CliState, **overrides) -> CronSettings:
    try:
        return get_settings(database_path=state.database, timezone=state.timezone, **overrides)
    except CronError as e:
        fail(e)


def trigger(
    ctx: typer.Context,
    list_jobs: bool = typer.Option(False, "--list", help="List all jobs instead of running"),
    remove: str | None = typer.Option(None, "--remove", help="Remove the job with this id or uuid"),
    run: str | None = typer.Option(None, "--run", help="Run this job now, ignoring its start time"),
    max_errors: int | None = typer.Option(
        None, "--max-errors", help="Consecutive failures before a job is dropped (CRON_MAX_ERRORS)"
    ),
    max_concurrent_jobs: int | None = typer.Option(
        None, "--max-concurrent-jobs", help="Runner slots (CRON_MAX_CONCURRENT_JOBS)"
    ),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one pass over due jobs, or list / remove / force-run a job.

    Exits 1 when the pass ends in an error status. A LOCKED pass (every
    runner slot busy) exits 0.
    """
    state = get_state(ctx)
    try:
        request = TriggerRequest(list=list_jobs, remove=remove, run=run)
    except CronError as e:
        fail(e)

    settings = _load_settings(state, max_errors=max_errors, max_concurrent_jobs=max_concurrent_jobs)

    conn = get_connection(state.database)
    try:
        result = CronRunner.from_settings(settings, conn).run(request)
    except CronError as e:
        fail(e)
    finally:
        conn.close()

    output_run_result(result, as_json=json_out or state.as_json)


def worker(
    ctx: typer.Context,
    interval: float | None = typer.Option(
        None, "--interval", "-i", help="Seconds between passes (CRON_WORKER_INTERVAL_SECONDS)"
    ),
    max_errors: int | None = typer.Option(None, "--max-errors"),
    max_concurrent_jobs: int | None = typer.Option(None, "--max-concurrent-jobs"),
    once: bool = typer.Option(False, "--once", help="Run a single pass and exit"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run batch passes every --interval seconds until interrupted."""
    state = get_state(ctx)
    settings = _load_settings(
        state,
        max_errors=max_errors,
        max_concurrent_jobs=max_concurrent_jobs,
        worker_interval_seconds=interval,
    )

    conn = get_connection(state.database)
    cron_worker: CronWorker | None = None
    try:
        runner = CronRunner.from_settings(settings, conn)
        backend = ThreadSchedulerBackend(run_immediately=True)
        cron_worker = CronWorker(
            runner,
            backend,
            interval_seconds=settings.worker_interval_seconds,
        )

        if once:
            result = cron_worker.tick()
            if result is None:
                fail(RuntimeError("Worker pass failed; see log output."))
            output_run_result(result, as_json=json_out or state.as_json)
            return

        console.print(
            f"[bold]Worker started[/bold] (interval={settings.worker_interval_seconds}s, "
            f"slots={runner.max_concurrent_jobs}). Press Ctrl+C to stop."
        )
        cron_worker.start()
        try:
            while cron_worker.is_running:
                backend.wait(1.0)
        except KeyboardInterrupt:
            console.print("[yellow]Stopping worker; waiting for the current pass to finish...[/yellow]")
        finally:
            # a second Ctrl+C aborts the wait; the pass keeps its connection
            cron_worker.stop()

        if json_out or state.as_json:
            print_json(cron_worker.health())
        else:
            health = cron_worker.health()
            console.print(
                f"[green]Worker stopped[/green] after {health['tick_count']} tick(s): "
                f"processed={health['jobs_processed']} skipped={health['jobs_skipped']} "
                f"failed={health['jobs_failed']}"
            )
    finally:
        if cron_worker is None or not cron_worker.is_running:
            conn.close()
