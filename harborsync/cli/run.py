"""Run, resume, status and reset commands.

Handles foreground backup runs and display of their results.
"""

import asyncio
import signal
from contextlib import suppress
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import typer

from harborsync.cli.utils import (
    build_orchestrator,
    display_error,
    display_info,
    display_log_line,
    display_success,
    display_warning,
    handle_errors,
    load_config,
    logger,
    schedule_store_for,
)
from harborsync.orchestration.orchestrator import RunOutcome, SessionOrchestrator
from harborsync.orchestration.status import BackupStatus, SessionPhase
from harborsync.scheduling.policy import next_run_at
from harborsync.services.config_manager import DEFAULT_CONFIG_PATH
from harborsync.utils.exceptions import IncompatibleSessionError


@handle_errors
def run_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to harborsync config YAML",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Plan the run without copying anything"
    ),
):
    """Start a fresh backup run (discards any paused session).

    Press Ctrl+C to stop after the current item; the run can be resumed.
    """
    config = load_config(config_path)
    orchestrator = build_orchestrator(config)

    if orchestrator.has_resumable_session and not dry_run:
        display_warning(
            f"Discarding paused session ({orchestrator.resumable_session_info})"
        )

    display_info("Planning backup run..." if dry_run else "Starting backup run...")
    if dry_run:
        starter = orchestrator.start_dry_run
    else:
        starter = orchestrator.start
    outcome = asyncio.run(_execute(orchestrator, starter))
    _finish(orchestrator, outcome)


@handle_errors
def resume_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to harborsync config YAML",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Resume even if the settings changed since the pause",
    ),
):
    """Continue the paused backup session."""
    config = load_config(config_path)
    orchestrator = build_orchestrator(config)

    if not orchestrator.has_resumable_session:
        display_warning("No paused session to resume.")
        raise typer.Exit(code=1)

    display_info(f"Resuming: {orchestrator.resumable_session_info}")
    try:
        outcome = asyncio.run(
            _execute(orchestrator, lambda: orchestrator.resume(allow_config_change=force))
        )
    except IncompatibleSessionError as e:
        display_error(f"Cannot resume: {e}")
        typer.echo("Use --force to resume with the current settings, or run 'reset'.")
        raise typer.Exit(code=1)

    _finish(orchestrator, outcome)


@handle_errors
def status_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to harborsync config YAML",
    ),
):
    """Show the paused session (if any) and the schedule."""
    config = load_config(config_path)
    orchestrator = build_orchestrator(config)

    typer.secho("Backup status", bold=True)
    backup = config.backup
    typer.echo(f"  Destination mode: {backup.destination_mode.value}")
    typer.echo(f"  Backup mode: {backup.backup_mode.value}")
    typer.echo(f"  Sources: {len(backup.sources)}")
    if backup.folder_destination:
        typer.echo(f"  Folder destination: {backup.folder_destination}")

    if orchestrator.has_resumable_session:
        display_warning(f"  Resumable session: {orchestrator.resumable_session_info}")
    else:
        typer.echo("  Resumable session: none")

    state = schedule_store_for(config).load(default_policy=config.schedule)
    typer.echo(f"  Schedule: {state.policy.describe()}")
    if state.last_run_at:
        typer.echo(f"  Last scheduled run: {state.last_run_at:%Y-%m-%d %H:%M}")
    upcoming = next_run_at(state.policy, datetime.now(), state.last_run_at)
    if upcoming:
        typer.echo(f"  Next scheduled run: {upcoming:%Y-%m-%d %H:%M}")

    for blocker in backup.start_blockers():
        display_error(f"  Cannot start: {blocker}")


@handle_errors
def reset_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to harborsync config YAML",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    wipe_manifest: bool = typer.Option(
        False,
        "--wipe-manifest",
        help="Also delete the manifest database in the folder destination",
    ),
):
    """Forget the paused session, temp files and device id."""
    config = load_config(config_path)
    orchestrator = build_orchestrator(config)

    if not yes:
        prompt = "Reset backup state? The next run will treat every item as new."
        if wipe_manifest:
            prompt = "Reset backup state and wipe the destination manifest?"
        typer.confirm(prompt, abort=True)

    if not orchestrator.reset(wipe_manifest=wipe_manifest):
        display_error("Reset refused while a run is active.")
        raise typer.Exit(code=1)

    for line in orchestrator.log_feed.lines():
        display_log_line(line)
    display_success("Reset complete.")


async def _execute(
    orchestrator: SessionOrchestrator, starter: Callable[[], bool]
) -> Optional[RunOutcome]:
    """Start a run, echo status changes and wait for the outcome.

    SIGINT asks the orchestrator for a resumable stop instead of killing
    the process mid-item.
    """
    printer = _StatusPrinter()
    subscription = orchestrator.subscribe(printer)

    loop = asyncio.get_running_loop()
    handler_installed = False
    with suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, lambda: _request_stop(orchestrator))
        handler_installed = True

    try:
        if not starter():
            display_error(f"Backup not started: {orchestrator.status.status_text}")
            return None
        return await orchestrator.wait()
    finally:
        subscription.close()
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def _request_stop(orchestrator: SessionOrchestrator) -> None:
    if orchestrator.cancel():
        logger.info("stop_requested_from_keyboard")
        display_warning("\nStopping after the current item...")


class _StatusPrinter:
    """Echoes the status line whenever it changes"""

    def __init__(self) -> None:
        self.last_text: Optional[str] = None

    def __call__(self, status: BackupStatus) -> None:
        if status.status_text != self.last_text:
            self.last_text = status.status_text
            typer.echo(f"  {status.status_text}")


def _finish(orchestrator: SessionOrchestrator, outcome: Optional[RunOutcome]) -> None:
    """Display the result of a run and pick the exit code"""
    if outcome is None:
        raise typer.Exit(code=1)

    for line in orchestrator.log_feed.error_lines(20):
        display_error(line)

    typer.echo("")
    status = orchestrator.status
    if outcome.phase == SessionPhase.ERRORED:
        display_error(f"Backup failed: {outcome.error}")
        raise typer.Exit(code=1)

    if outcome.dry_run:
        typer.secho("Dry run finished!", fg=typer.colors.GREEN, bold=True)
        typer.echo(f"  {status.status_text}")
        for line in orchestrator.log_feed.lines():
            if line.startswith("Dry run note:"):
                typer.echo(f"  - {line}")
        return

    if outcome.phase in (SessionPhase.PAUSED, SessionPhase.CANCELLED):
        display_warning(status.status_text)
        if outcome.checkpoint_saved:
            display_info("Session saved. Run 'harborsync resume' to continue.")
        return

    typer.secho("Backup completed!", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  Uploaded: {outcome.uploaded}")
    typer.echo(f"  Skipped: {outcome.skipped}")
    typer.echo(f"  Errors: {outcome.errors}")
