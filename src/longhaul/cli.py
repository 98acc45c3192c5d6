# src/longhaul/cli.py
"""Longhaul Command Line Interface.

Entry point for the longhaul CLI tool. Runs are performed inline: the CLI
process is the worker, and interrupted jobs are picked up again before
the command returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from longhaul import __version__
from longhaul.contracts import (
    ConfigurationError,
    EnqueuingError,
    InvalidStatusTransitionError,
    Run,
    RunNotFoundError,
)
from longhaul.core.config import LonghaulSettings, load_settings

if TYPE_CHECKING:
    from longhaul.core.store import RunDB, RunStore
    from longhaul.engine.dispatch import InlineDispatcher
    from longhaul.engine.host import IterationHost, IterationOutcome
    from longhaul.engine.runner import Runner
    from longhaul.tasks import TaskRegistry

__all__ = ["app"]

app = typer.Typer(
    name="longhaul",
    help="Longhaul: interruptible, resumable maintenance tasks.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"longhaul version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)


@dataclass
class _Services:
    """Everything a command needs, wired from settings."""

    settings: LonghaulSettings
    db: RunDB
    store: RunStore
    registry: TaskRegistry
    dispatcher: InlineDispatcher
    runner: Runner
    host: IterationHost


@dataclass
class _CliState:
    settings_path: Path | None = None
    verbose: bool = False
    json_logs: bool = False
    services: _Services | None = None


def _load_settings_or_exit(settings_path: Path | None) -> LonghaulSettings:
    try:
        return load_settings(settings_path)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings_path}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings_path}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _build_services(settings: LonghaulSettings) -> _Services:
    from longhaul.core.store import ContentStore, RunDB, RunStore
    from longhaul.engine.coordinator import WorkerContext
    from longhaul.engine.dispatch import InlineDispatcher
    from longhaul.engine.host import IterationHost
    from longhaul.engine.runner import Runner
    from longhaul.tasks import TaskRegistry

    registry = TaskRegistry()
    try:
        registry.load_modules(settings.tasks.modules)
        if settings.tasks.load_entrypoints:
            registry.load_entrypoints()
    except (ImportError, ValueError) as e:
        typer.echo(f"Error loading tasks: {e}", err=True)
        raise typer.Exit(1) from None

    db = RunDB(settings.database.url, echo=settings.database.echo)
    store = RunStore(db)
    dispatcher = InlineDispatcher()
    context = WorkerContext(
        store=store,
        registry=registry,
        content_store=ContentStore(db),
        dispatcher=dispatcher,
        ticker_delay=settings.ticker_delay_seconds,
        stuck_timeout=settings.stuck_timeout,
    )
    return _Services(
        settings=settings,
        db=db,
        store=store,
        registry=registry,
        dispatcher=dispatcher,
        runner=Runner(context),
        host=IterationHost(context, max_job_runtime=settings.worker.max_job_runtime_seconds),
    )


def _services(ctx: typer.Context) -> _Services:
    """Build services on first use so --help never touches the database."""
    state: _CliState = ctx.ensure_object(_CliState)
    if state.services is None:
        from longhaul.core.logging import configure_logging

        settings = _load_settings_or_exit(state.settings_path)
        # Command-line flags win over the settings file
        configure_logging(
            json_output=state.json_logs or settings.logging.json_output,
            level="DEBUG" if state.verbose else settings.logging.level,
        )
        state.services = _build_services(settings)
        ctx.call_on_close(state.services.db.close)
    return state.services


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """Longhaul: interruptible, resumable maintenance tasks."""
    from longhaul.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)

    ctx.obj = _CliState(
        settings_path=settings.expanduser() if settings is not None else None,
        verbose=verbose,
        json_logs=json_logs,
    )


def _parse_arguments(pairs: list[str]) -> dict[str, str]:
    arguments: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            typer.echo(f"Error: --arg expects KEY=VALUE, got {pair!r}", err=True)
            raise typer.Exit(1)
        arguments[key] = value
    return arguments


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


def _format_run(run: Run) -> str:
    total = "?" if run.tick_total is None else str(run.tick_total)
    return f"{run.run_id}  {run.task_name:40}  {run.status.value:12}  {run.tick_count}/{total}"


def _report_outcomes(outcomes: list[IterationOutcome]) -> None:
    for outcome in outcomes:
        status = outcome.status.value if outcome.status is not None else "unknown"
        line = f"Job for run {outcome.run_id}: {status} ({outcome.processed} processed)"
        if outcome.error is not None:
            line += f" - {type(outcome.error).__name__}: {outcome.error}"
        typer.echo(line, err=outcome.errored)


@app.command("tasks")
def list_tasks(ctx: typer.Context) -> None:
    """List registered tasks."""
    from longhaul.tasks.discovery import get_task_description

    services = _services(ctx)
    tasks = services.registry.available_tasks()
    if not tasks:
        typer.echo("(no tasks registered)")
        return
    for task_cls in tasks:
        marker = " [csv]" if task_cls.has_csv_content else ""
        typer.echo(f"  {task_cls.name:40} - {get_task_description(task_cls)}{marker}")


@app.command()
def perform(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Registered task name."),
    arg: list[str] = typer.Option([], "--arg", "-a", help="Task argument as KEY=VALUE (repeatable)."),
    csv: Path | None = typer.Option(None, "--csv", help="CSV file for CSV tasks.", exists=True, dir_okay=False),
) -> None:
    """Start a run of a task and perform it inline."""
    services = _services(ctx)
    arguments = _parse_arguments(arg)
    csv_content = csv.read_text(encoding="utf-8") if csv is not None else None

    try:
        run = services.runner.run(name, arguments, csv_content=csv_content, filename=csv.name if csv is not None else None)
    except ConfigurationError as e:
        raise _fail(str(e)) from None
    except EnqueuingError as e:
        raise _fail(f"{e} ({e.__cause__})") from None

    typer.echo(f"Run {run.run_id} enqueued for {run.task_name}")
    outcomes = services.dispatcher.work_off(services.host)
    _report_outcomes(outcomes)
    if any(outcome.errored for outcome in outcomes):
        raise typer.Exit(1)


@app.command()
def resume(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Run to resume."),
) -> None:
    """Resume a paused or interrupted run and perform it inline."""
    services = _services(ctx)
    try:
        services.runner.resume(run_id)
    except (RunNotFoundError, InvalidStatusTransitionError) as e:
        raise _fail(str(e)) from None
    except EnqueuingError as e:
        raise _fail(f"{e} ({e.__cause__})") from None

    outcomes = services.dispatcher.work_off(services.host)
    _report_outcomes(outcomes)
    if any(outcome.errored for outcome in outcomes):
        raise typer.Exit(1)


@app.command()
def pause(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Run to pause."),
) -> None:
    """Ask the worker performing a run to pause it."""
    services = _services(ctx)
    try:
        run = services.runner.pause(run_id)
    except (RunNotFoundError, InvalidStatusTransitionError) as e:
        raise _fail(str(e)) from None
    typer.echo(f"Run {run.run_id}: {run.status.value}")


@app.command()
def cancel(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Run to cancel."),
) -> None:
    """Cancel a run (immediately if it is paused or stuck)."""
    services = _services(ctx)
    try:
        run = services.runner.cancel(run_id)
    except (RunNotFoundError, InvalidStatusTransitionError) as e:
        raise _fail(str(e)) from None
    typer.echo(f"Run {run.run_id}: {run.status.value}")


@app.command()
def status(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Run to show."),
) -> None:
    """Show a run's status, progress and errors."""
    services = _services(ctx)
    try:
        run = services.store.get(run_id)
    except RunNotFoundError as e:
        raise _fail(str(e)) from None

    typer.echo(f"Run:        {run.run_id}")
    typer.echo(f"Task:       {run.task_name}")
    typer.echo(f"Status:     {run.status.value}")
    total = "unknown" if run.tick_total is None else str(run.tick_total)
    typer.echo(f"Progress:   {run.tick_count}/{total}")
    typer.echo(f"Running:    {run.time_running:.1f}s")
    if run.arguments:
        typer.echo(f"Arguments:  {run.arguments}")
    if run.started_at is not None:
        typer.echo(f"Started:    {run.started_at.isoformat()}")
    if run.ended_at is not None:
        typer.echo(f"Ended:      {run.ended_at.isoformat()}")
    remaining = run.time_to_completion()
    if remaining is not None:
        typer.echo(f"Remaining:  ~{remaining.total_seconds():.0f}s")
    if run.error_class is not None:
        typer.echo(f"Error:      {run.error_class}: {run.error_message}")
        for line in run.backtrace or []:
            typer.echo(f"  {line}")


@app.command()
def runs(
    ctx: typer.Context,
    active: bool = typer.Option(False, "--active", help="Only show active runs."),
    task: str | None = typer.Option(None, "--task", "-t", help="Only show runs of this task."),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum runs to show."),
) -> None:
    """List runs, newest first."""
    from longhaul.contracts import ACTIVE_STATUSES

    services = _services(ctx)
    found = services.store.list_runs(statuses=ACTIVE_STATUSES if active else None, task_name=task, limit=limit)
    if not found:
        typer.echo("(no runs)")
        return
    for run in found:
        typer.echo(_format_run(run))


@app.command()
def reap(ctx: typer.Context) -> None:
    """Cancel runs stuck in cancelling."""
    services = _services(ctx)
    reaped = services.runner.reap_stuck_runs()
    if not reaped:
        typer.echo("No stuck runs.")
        return
    for run in reaped:
        typer.echo(f"Cancelled stuck run {run.run_id} ({run.task_name})")


if __name__ == "__main__":
    app()
