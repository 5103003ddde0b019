"""APScheduler wrapper that fires unattended backup runs.

Provides:
- A single one-shot ``DateTrigger`` job re-armed after every decision
- Guards against overlapping runs and running on battery
- Resume-before-start so an interrupted session is finished first
- Wake and power-change handling
- Integration with Prometheus metrics

Usage:
    scheduler = BackupScheduler(orchestrator, notifier=notifier, store=store)
    await scheduler.start()
    scheduler.set_policy(WeeklyPolicy(hour=2, days={Weekday.MONDAY}))

    # Stop gracefully
    await scheduler.shutdown()
"""

import asyncio
import signal
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from harborsync.models.schedule import DisabledPolicy, SchedulePolicy, ScheduleState
from harborsync.observability.metrics import SCHEDULER_TRIGGERS
from harborsync.orchestration.orchestrator import RunOutcome, SessionOrchestrator
from harborsync.orchestration.status import SessionPhase
from harborsync.scheduling.policy import is_due, next_run_at
from harborsync.services.notification_service import BackupNotifier
from harborsync.services.power_service import PowerMonitor
from harborsync.services.schedule_store import ScheduleStore
from harborsync.utils.exceptions import IncompatibleSessionError

logger = structlog.get_logger()

JOB_ID = "scheduled_backup"

# Trigger decisions, also used as metric labels
STARTED = "started"
RESUMED = "resumed"
DEFERRED = "deferred"
SKIPPED_BATTERY = "skipped_battery"
REFUSED = "refused"
NOT_STARTED = "not_started"


class BackupScheduler:
    """Decides when unattended backups run.

    Wraps APScheduler's AsyncIOScheduler with:
    - One pending job at most (``scheduled_backup``)
    - The trigger guard: active run, then battery, then resume or start
    - Completion bookkeeping (last run time, notification, re-arm)
    - Graceful shutdown

    Attributes:
        orchestrator: Session orchestrator that runs the backups
        state: Current policy and last run time
        next_run_at: When the armed job fires, if any
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        notifier: Optional[BackupNotifier] = None,
        power: Optional[PowerMonitor] = None,
        store: Optional[ScheduleStore] = None,
        policy: Optional[SchedulePolicy] = None,
        clock: Callable[[], datetime] = datetime.now,
        retry_delay: timedelta = timedelta(minutes=15),
        misfire_grace_time: int = 3600,
    ):
        """Initialize backup scheduler.

        Args:
            orchestrator: Orchestrator to start or resume runs on
            notifier: Notification fan-out (log-only when omitted)
            power: Power source reader (psutil-based when omitted)
            store: Persists policy and last run time across restarts
            policy: Policy used when the store holds none
            clock: Source of "now" (naive local time)
            retry_delay: How long to wait before retrying a deferred or
                skipped occurrence that is already overdue
            misfire_grace_time: Grace time for late job execution (seconds)
        """
        self.orchestrator = orchestrator
        self.notifier = notifier or BackupNotifier()
        self.power = power or PowerMonitor()
        self.store = store
        self.clock = clock
        self.retry_delay = retry_delay

        if store is not None:
            self.state = store.load(default_policy=policy)
        else:
            self.state = ScheduleState(policy=policy or DisabledPolicy())

        self.next_run_at: Optional[datetime] = None
        self.last_decision: Optional[str] = None

        self.scheduler = AsyncIOScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": misfire_grace_time,
            },
        )
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self.scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

        orchestrator.add_completion_listener(self._on_run_finished)

        logger.info(
            "scheduler_initialized",
            policy=self.policy.describe(),
            last_run_at=str(self.state.last_run_at) if self.state.last_run_at else None,
        )

    @property
    def policy(self) -> SchedulePolicy:
        return self.state.policy

    @property
    def last_run_at(self) -> Optional[datetime]:
        return self.state.last_run_at

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Arming
    # ------------------------------------------------------------------

    def arm(self, allow_immediate: bool = True) -> Optional[datetime]:
        """Recompute the next run and replace the pending job.

        An overdue time fires right away. With ``allow_immediate=False``
        (after a deferral or a battery skip) an overdue time is pushed
        ``retry_delay`` into the future instead, so the guard is not
        re-evaluated in a tight loop.

        Returns:
            When the job will fire, or None if nothing is scheduled
        """
        self._remove_job()

        now = self.clock()
        when = next_run_at(self.policy, now, self.state.last_run_at)
        if when is None:
            self.next_run_at = None
            logger.info("schedule_disarmed", policy=self.policy.describe())
            return None

        if is_due(when, now):
            if allow_immediate:
                logger.info("scheduled_run_overdue", due=str(when))
                when = now
            else:
                when = now + self.retry_delay

        self.next_run_at = when
        self.scheduler.add_job(
            self.trigger,
            trigger=DateTrigger(run_date=when),
            id=JOB_ID,
            name=JOB_ID,
            replace_existing=True,
        )
        logger.info("schedule_armed", next_run_at=str(when), policy=self.policy.describe())
        return when

    def set_policy(self, policy: SchedulePolicy) -> Optional[datetime]:
        """Replace the policy, persist it and re-arm"""
        self.state = self.state.model_copy(update={"policy": policy})
        self._persist()
        logger.info("schedule_policy_changed", policy=policy.describe())
        return self.arm()

    def _remove_job(self) -> None:
        if self.scheduler.get_job(JOB_ID) is not None:
            self.scheduler.remove_job(JOB_ID)

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(self.state)

    # ------------------------------------------------------------------
    # Trigger guard
    # ------------------------------------------------------------------

    async def trigger(self) -> str:
        """Run the guard chain for a due occurrence.

        Returns:
            The decision taken (started, resumed, deferred, skipped_battery,
            refused or not_started)
        """
        decision = await self._decide()
        self.last_decision = decision
        SCHEDULER_TRIGGERS.labels(result=decision).inc()
        return decision

    async def _decide(self) -> str:
        if self.orchestrator.is_running:
            logger.info("scheduled_run_deferred", reason="run_active")
            self.arm(allow_immediate=False)
            return DEFERRED

        if self.policy.skip_on_battery and not self.power.is_on_external_power():
            logger.info("scheduled_run_skipped", reason="on_battery")
            await self.notifier.backup_skipped("Machine is on battery power")
            self.arm(allow_immediate=False)
            return SKIPPED_BATTERY

        resumable = self.orchestrator.refresh_resumable_session() is not None
        try:
            if resumable:
                started = self.orchestrator.resume()
                decision = RESUMED
            else:
                started = self.orchestrator.start()
                decision = STARTED
        except IncompatibleSessionError as e:
            logger.warning(
                "scheduled_resume_refused", mismatched=e.mismatched_fields
            )
            await self.notifier.backup_error(f"Scheduled backup could not resume: {e}")
            self.arm(allow_immediate=False)
            return REFUSED

        if not started:
            logger.warning("scheduled_run_not_started", status=self.orchestrator.status.status_text)
            self.arm(allow_immediate=False)
            return NOT_STARTED

        logger.info("scheduled_run_triggered", decision=decision)
        await self.notifier.backup_started()
        return decision

    # ------------------------------------------------------------------
    # External signals
    # ------------------------------------------------------------------

    async def handle_wake(self) -> Optional[str]:
        """Catch up after sleep: fire a missed run or re-arm"""
        if isinstance(self.policy, DisabledPolicy):
            return None

        now = self.clock()
        if is_due(self.next_run_at, now):
            logger.info("missed_run_after_wake", due=str(self.next_run_at))
            self._remove_job()
            return await self.trigger()

        logger.info("rearm_after_wake")
        self.arm()
        return None

    def handle_power_change(self, on_external_power: bool) -> Optional[datetime]:
        logger.info("power_source_changed", on_external_power=on_external_power)
        return self.arm()

    async def _on_run_finished(self, outcome: RunOutcome) -> None:
        if outcome.dry_run:
            return

        self.state = self.state.model_copy(update={"last_run_at": self.clock()})
        self._persist()

        if outcome.phase == SessionPhase.ERRORED:
            await self.notifier.backup_error(outcome.error or "Backup failed")
        else:
            await self.notifier.backup_completed(
                uploaded=outcome.uploaded,
                skipped=outcome.skipped,
                errors=outcome.errors,
            )

        self.arm()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def describe(self) -> Dict[str, Any]:
        return {
            "policy": self.policy.describe(),
            "skip_on_battery": self.policy.skip_on_battery,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "last_run_at": (
                self.state.last_run_at.isoformat() if self.state.last_run_at else None
            ),
        }

    async def start(self, install_signal_handlers: bool = False) -> None:
        """Start the scheduler and arm the first occurrence."""
        if self._running:
            logger.warning("scheduler_already_running")
            return

        self._running = True
        self._shutdown_event.clear()

        if install_signal_handlers:  # pragma: no cover
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._signal_handler)

        self.scheduler.start()
        self.arm()
        logger.info("scheduler_started", next_run_at=str(self.next_run_at))

    async def wait_closed(self) -> None:
        """Block until ``shutdown`` is called."""
        await self._shutdown_event.wait()

    async def shutdown(self, wait: bool = False) -> None:
        """Shutdown the scheduler gracefully.

        Args:
            wait: Wait for running jobs to complete
        """
        if not self._running:
            return

        logger.info("scheduler_shutting_down")

        self.scheduler.shutdown(wait=wait)
        self._running = False
        self._shutdown_event.set()

        logger.info("scheduler_stopped")

    def _signal_handler(self) -> None:  # pragma: no cover
        """Handle termination signals."""
        logger.info("shutdown_signal_received")
        asyncio.create_task(self.shutdown())

    def _on_job_error(self, event: JobExecutionEvent) -> None:
        logger.error(
            "scheduled_job_failed",
            job_id=event.job_id,
            exception=str(event.exception),
            traceback=event.traceback,
        )

    def _on_job_missed(self, event: JobExecutionEvent) -> None:
        logger.warning(
            "scheduled_job_missed",
            job_id=event.job_id,
            scheduled_run_time=str(event.scheduled_run_time),
        )
