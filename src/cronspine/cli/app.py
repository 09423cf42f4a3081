"""
Root Typer application for the cronspine CLI.

Handlers are plain Python callables registered with ``@register_handler``;
``--handlers`` names the modules to import so that registration runs before
any runner command dispatches a job.
"""

from __future__ import annotations

import logging

import typer
from typer import Typer

from cronspine.cli.utils import DEFAULT_DATABASE, CliState, import_handlers
from cronspine.core.logging import configure_logging

app = Typer(
    name="cronspine",
    help="cronspine — persistent scheduled jobs with concurrency-limited runners.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from cronspine import __version__

        typer.echo(f"cronspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    database: str = typer.Option(
        DEFAULT_DATABASE, "--database", "-d", envvar="CRON_DATABASE_PATH", help="SQLite job store path."
    ),
    handlers: list[str] | None = typer.Option(
        None, "--handlers", "-H", envvar="CRON_HANDLERS", help="Module to import for handler registration."
    ),
    timezone: str = typer.Option("UTC", "--timezone", envvar="CRON_TIMEZONE", help="Zone for time expressions."),
    json_out: bool = typer.Option(False, "--json", help="JSON output for every command."),
    log_level: str = typer.Option("WARNING", "--log-level", envvar="CRON_LOG_LEVEL"),
    log_format: str = typer.Option("console", "--log-format", envvar="CRON_LOG_FORMAT", help="console or json"),
) -> None:
    """cronspine CLI — schedule jobs, run due jobs, inspect locks."""
    if not isinstance(logging.getLevelName(log_level.upper()), int):
        raise typer.BadParameter(f"unknown log level {log_level!r}", param_hint="--log-level")
    configure_logging(level=log_level, json_format=log_format == "json")

    handler_modules = list(handlers or [])
    import_handlers(handler_modules)

    ctx.obj = CliState(
        database=database,
        as_json=json_out,
        handlers=handler_modules,
        timezone=timezone,
    )


# ── Command registration ─────────────────────────────────────────────────

from cronspine.cli.jobs import init_db, list_jobs, remove_job, schedule_job, show_job  # noqa: E402
from cronspine.cli.locks import app as locks_app  # noqa: E402
from cronspine.cli.runner import trigger, worker  # noqa: E402

app.command("init-db")(init_db)
app.command("schedule")(schedule_job)
app.command("list")(list_jobs)
app.command("show")(show_job)
app.command("remove")(remove_job)
app.command("trigger")(trigger)
app.command("worker")(worker)

app.add_typer(locks_app, name="locks", help="Inspect and release runner locks.")
