"""Scheduling of unattended backups.

Provides:
- next_run_at: pure next-occurrence computation for schedule policies
- BackupScheduler: APScheduler wrapper with the trigger guard
- WakeMonitor: sleep/wake and power-source detection

Usage:
    from harborsync.scheduling import BackupScheduler, WakeMonitor

    scheduler = BackupScheduler(orchestrator, store=store)
    monitor = WakeMonitor(lambda gap: scheduler.handle_wake())

    await scheduler.start()
    monitor.start()
"""

from harborsync.scheduling.policy import next_run_at, next_weekly_occurrence
from harborsync.scheduling.scheduler import BackupScheduler
from harborsync.scheduling.wake import WakeMonitor

__all__ = [
    "next_run_at",
    "next_weekly_occurrence",
    "BackupScheduler",
    "WakeMonitor",
]
