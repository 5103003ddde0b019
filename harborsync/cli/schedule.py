"""Schedule commands for the backup scheduler.

Provides commands for showing and changing the schedule policy and for
running the scheduler daemon.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional, Set, Tuple

import typer
from pydantic import ValidationError

from harborsync.cli.utils import (
    build_orchestrator,
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_config,
    logger,
    schedule_store_for,
)
from harborsync.models.config import HarborConfig
from harborsync.models.schedule import (
    DisabledPolicy,
    IntervalPolicy,
    SchedulePolicy,
    Weekday,
    WeeklyPolicy,
)
from harborsync.scheduling import BackupScheduler, WakeMonitor, next_run_at
from harborsync.services.config_manager import DEFAULT_CONFIG_PATH
from harborsync.services.notification_service import BackupNotifier
from harborsync.services.power_service import PowerMonitor


def _parse_time(value: str) -> Tuple[int, int]:
    """Parse ``HH:MM`` into (hour, minute)."""
    try:
        hour_text, minute_text = value.split(":")
        hour, minute = int(hour_text), int(minute_text)
    except ValueError:
        raise typer.BadParameter("Time must look like HH:MM")
    if not 0 <= hour <= 23:
        raise typer.BadParameter("Hour must be between 0 and 23")
    if not 0 <= minute <= 59:
        raise typer.BadParameter("Minute must be between 0 and 59")
    return hour, minute


def _parse_days(value: str) -> Set[Weekday]:
    """Parse a comma-separated day list such as ``mon,wed,fri``."""
    shortcuts = {
        "daily": set(Weekday),
        "weekdays": set(list(Weekday)[:5]),
        "weekends": set(list(Weekday)[5:]),
    }
    text = value.strip().lower()
    if text in shortcuts:
        return shortcuts[text]

    days: Set[Weekday] = set()
    for part in text.split(","):
        part = part.strip()[:3]
        if not part:
            continue
        try:
            days.add(Weekday(part))
        except ValueError:
            raise typer.BadParameter(f"Unknown day: {part}")
    return days


# Create schedule sub-app
schedule_app = typer.Typer(help="Manage the backup schedule")


@schedule_app.command(name="show")
@handle_errors
def schedule_show(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to harborsync config YAML",
    ),
):
    """Show the schedule policy and the next run time."""
    config = load_config(config_path)
    store = schedule_store_for(config)
    state = store.load(default_policy=config.schedule)
    policy = state.policy

    typer.secho("Backup schedule", bold=True)
    typer.echo(f"  Policy: {policy.describe()}")
    if not isinstance(policy, DisabledPolicy):
        battery = "skip" if policy.skip_on_battery else "run anyway"
        typer.echo(f"  On battery: {battery}")
    if not store.exists():
        typer.echo("  (from config file; not changed yet)")

    typer.echo(
        "  Last run: "
        + (f"{state.last_run_at:%Y-%m-%d %H:%M}" if state.last_run_at else "never")
    )
    upcoming = next_run_at(policy, datetime.now(), state.last_run_at)
    if upcoming is None:
        typer.echo("  Next run: not scheduled")
    elif upcoming <= datetime.now():
        typer.echo("  Next run: overdue (runs when the scheduler starts)")
    else:
        typer.echo(f"  Next run: {upcoming:%a %Y-%m-%d %H:%M}")


@schedule_app.command(name="set")
@handle_errors
def schedule_set(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to harborsync config YAML",
    ),
    disabled: bool = typer.Option(False, "--disabled", help="Turn scheduling off"),
    interval: Optional[int] = typer.Option(
        None, "--interval", help="Run every N hours (1-48)"
    ),
    weekly: bool = typer.Option(False, "--weekly", help="Run on selected weekdays"),
    at: str = typer.Option("02:00", "--at", help="Weekly run time (HH:MM)"),
    days: str = typer.Option(
        "daily", "--days", help="Weekly days, e.g. mon,wed,fri or weekdays"
    ),
    skip_on_battery: Optional[bool] = typer.Option(
        None,
        "--skip-on-battery/--allow-battery",
        help="Skip scheduled runs while on battery power",
    ),
):
    """Change the schedule policy.

    Examples:
        # Every 6 hours
        python -m harborsync.cli schedule set --interval 6

        # Weekdays at 02:30, even on battery
        python -m harborsync.cli schedule set --weekly --at 02:30 --days weekdays --allow-battery
    """
    chosen = sum([disabled, interval is not None, weekly])
    if chosen != 1:
        raise typer.BadParameter("Choose exactly one of --disabled, --interval or --weekly")

    config = load_config(config_path)
    store = schedule_store_for(config)
    current = store.load(default_policy=config.schedule).policy
    if skip_on_battery is None:
        # Switching on from disabled defaults to skipping on battery
        skip_on_battery = (
            True if isinstance(current, DisabledPolicy) else current.skip_on_battery
        )

    policy: SchedulePolicy
    try:
        if disabled:
            policy = DisabledPolicy()
        elif interval is not None:
            policy = IntervalPolicy(hours=interval, skip_on_battery=skip_on_battery)
        else:
            hour, minute = _parse_time(at)
            selected = _parse_days(days)
            if not selected:
                raise typer.BadParameter("Select at least one day")
            policy = WeeklyPolicy(
                hour=hour, minute=minute, days=selected, skip_on_battery=skip_on_battery
            )
    except ValidationError as e:
        raise typer.BadParameter(str(e))

    state = store.save_policy(policy)
    logger.info("schedule_policy_saved", policy=policy.describe())
    display_success(f"Schedule set: {policy.describe()}")

    upcoming = next_run_at(policy, datetime.now(), state.last_run_at)
    if upcoming is not None:
        display_info(f"Next run: {upcoming:%a %Y-%m-%d %H:%M}")


@schedule_app.command(name="start")
@handle_errors
def schedule_start(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to harborsync config YAML",
    ),
    poll_interval: float = typer.Option(
        5.0, "--poll-interval", help="Seconds between wake/power checks"
    ),
):
    """Start the scheduler daemon.

    Runs backups according to the schedule policy, catches up after the
    machine wakes from sleep, and re-arms when the power source changes.
    Press Ctrl+C to stop gracefully; a running backup is paused so it
    can be resumed.
    """
    config = load_config(config_path)
    try:
        asyncio.run(_run_daemon(config, poll_interval))
    except KeyboardInterrupt:
        display_warning("\nScheduler stopped by user")


async def _run_daemon(config: HarborConfig, poll_interval: float) -> None:
    orchestrator = build_orchestrator(config)
    power = PowerMonitor()
    scheduler = BackupScheduler(
        orchestrator,
        notifier=BackupNotifier(config.notifications),
        power=power,
        store=schedule_store_for(config),
        policy=config.schedule,
    )
    monitor = WakeMonitor(
        lambda gap: scheduler.handle_wake(),
        poll_interval=poll_interval,
        power=power,
        on_power_change=scheduler.handle_power_change,
    )

    await scheduler.start(install_signal_handlers=True)
    monitor.start()

    display_success("Scheduler started")
    typer.echo(f"  Policy: {scheduler.policy.describe()}")
    if scheduler.next_run_at:
        typer.echo(f"  Next run: {scheduler.next_run_at:%a %Y-%m-%d %H:%M}")
    typer.echo("Press Ctrl+C to stop.")

    try:
        await scheduler.wait_closed()
    finally:
        await monitor.stop()
        if orchestrator.is_running:
            display_info("Pausing the running backup...")
            orchestrator.cancel()
            await orchestrator.wait()
        await scheduler.shutdown()

    display_info("Scheduler stopped")
