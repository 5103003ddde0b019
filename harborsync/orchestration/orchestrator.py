"""Session orchestrator: owns the lifecycle of backup runs.

One run at a time. The engine runs in a worker thread; its progress
events are marshalled back onto the event loop and classified there, so
counters and the status line are only ever touched from the loop.

Lifecycle::

    idle -> running -> {paused, completed, cancelled, errored}
    paused -> running (resume) | idle (reset)

Usage:
    orchestrator = SessionOrchestrator(settings, engine, FileCheckpointStore(state_dir))
    orchestrator.start()
    outcome = await orchestrator.wait()
"""

import asyncio
import inspect
import shutil
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Union

import structlog

from harborsync.engines.base import TransferEngine
from harborsync.engines.manifest import manifest_files
from harborsync.models.checkpoint import SessionCheckpoint, SessionStats
from harborsync.models.config import BackupSettings, LogSettings, StateSettings
from harborsync.models.events import ProgressEvent
from harborsync.models.transfer import DryRunPlan, TransferOptions, TransferResult
from harborsync.observability.context import session_scope
from harborsync.observability.metrics import RUN_ACTIVE, RUN_DURATION, RUNS_TOTAL
from harborsync.orchestration.run_state import RunState, RunStateFlag
from harborsync.orchestration.status import (
    BackupStatus,
    SessionPhase,
    StatusBroadcaster,
    StatusCallback,
    Subscription,
)
from harborsync.services.checkpoint_service import CheckpointStore
from harborsync.services.event_classifier import EventClassifier
from harborsync.services.identity_service import DeviceIdentityStore
from harborsync.services.log_feed import LogFeed
from harborsync.utils.exceptions import IncompatibleSessionError

logger = structlog.get_logger()


@dataclass
class RunOutcome:
    """How a run ended, handed to completion listeners"""

    phase: SessionPhase
    uploaded: int = 0
    skipped: int = 0
    errors: int = 0
    dry_run: bool = False
    resumed: bool = False
    session_id: Optional[str] = None
    error: Optional[str] = None
    checkpoint_saved: bool = False
    duration_seconds: float = 0.0
    finished_at: Optional[datetime] = None


CompletionListener = Callable[[RunOutcome], Union[None, Awaitable[None]]]


class SessionOrchestrator:
    """Starts, pauses, resumes and resets backup runs.

    Attributes:
        settings: Backup settings used for the next run
        engine: Transfer engine invoked in a worker thread
        checkpoint_store: Where paused sessions are kept
        run_state: Flag polled by the engine between items
        phase: Current lifecycle phase
    """

    def __init__(
        self,
        settings: BackupSettings,
        engine: TransferEngine,
        checkpoint_store: CheckpointStore,
        identity: Optional[DeviceIdentityStore] = None,
        state_settings: Optional[StateSettings] = None,
        log_settings: Optional[LogSettings] = None,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.checkpoint_store = checkpoint_store
        self.identity = identity
        self.state_settings = state_settings or StateSettings()
        self.log_settings = log_settings or LogSettings()

        self.run_state = RunStateFlag(RunState.RUNNING)
        self.log_feed = LogFeed(
            max_log_lines=self.log_settings.max_log_lines,
            max_error_lines=self.log_settings.max_error_lines,
        )
        self.classifier = EventClassifier(self.log_feed)
        self.broadcaster = StatusBroadcaster(
            lambda: self.status,
            flush_interval=self.log_settings.flush_interval_seconds,
        )

        self.phase = SessionPhase.IDLE
        self.last_outcome: Optional[RunOutcome] = None
        self._task: Optional["asyncio.Task[RunOutcome]"] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._session: Optional[SessionCheckpoint] = None
        self._resumed_from: Optional[SessionCheckpoint] = None
        self._dry_run = False
        self._pause_requested = False
        self._cancel_requested = False
        self._listeners: List[CompletionListener] = []
        self._resumable: Optional[SessionCheckpoint] = None

        self.refresh_resumable_session()

    # ------------------------------------------------------------------
    # Observer surface
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.phase == SessionPhase.RUNNING

    @property
    def has_resumable_session(self) -> bool:
        return self._resumable is not None

    @property
    def resumable_session_info(self) -> str:
        return self._resumable.summary() if self._resumable else ""

    @property
    def status(self) -> BackupStatus:
        display = self.log_settings.display_lines
        c = self.classifier
        return BackupStatus(
            phase=self.phase,
            status_text=c.status_text,
            progress_value=c.progress_value,
            progress_total=c.progress_total,
            current_item_name=c.current_item_name,
            uploaded_count=c.uploaded_count,
            skipped_count=c.skipped_count,
            error_count=c.error_count,
            remote_checked=c.remote_checked,
            remote_total=c.remote_total,
            is_running=self.is_running,
            is_paused=self.phase == SessionPhase.PAUSED
            or (self.is_running and self._pause_requested),
            is_dry_run=self.is_running and self._dry_run,
            has_resumable_session=self.has_resumable_session,
            resumable_session_info=self.resumable_session_info,
            log_lines=self.log_feed.lines(display),
            error_lines=self.log_feed.error_lines(display),
        )

    def subscribe(self, callback: StatusCallback, visible: bool = True) -> Subscription:
        return self.broadcaster.subscribe(callback, visible=visible)

    def add_completion_listener(self, callback: CompletionListener) -> None:
        """Call ``callback`` with the ``RunOutcome`` whenever a run ends"""
        self._listeners.append(callback)

    def refresh_resumable_session(self) -> Optional[SessionCheckpoint]:
        """Re-read the checkpoint store"""
        self._resumable = self.checkpoint_store.load()
        return self._resumable

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Start a fresh run, discarding any paused session.

        Returns:
            False if a run is active or the settings cannot start a run
        """
        if not self._can_start("start"):
            return False

        self.checkpoint_store.clear()
        self._resumable = None
        self._begin(resume_from=None, dry_run=False)
        return True

    def start_dry_run(self) -> bool:
        """Plan a run without transferring anything.

        A paused session is kept untouched.
        """
        if not self._can_start("dry_run"):
            return False

        self._begin(resume_from=None, dry_run=True)
        return True

    def resume(self, allow_config_change: bool = False) -> bool:
        """Continue the paused session.

        Args:
            allow_config_change: Resume even if settings changed since the pause

        Returns:
            False if nothing can be resumed or a run is active

        Raises:
            IncompatibleSessionError: If the stored session was recorded with
                different settings and ``allow_config_change`` is False. The
                checkpoint is kept.
        """
        if not self._can_start("resume"):
            return False

        checkpoint = self.refresh_resumable_session()
        if checkpoint is None:
            logger.info("resume_ignored", reason="no_resumable_session")
            return False

        current = self.settings.snapshot(self._device_id())
        mismatched = checkpoint.config_snapshot.incompatibilities(current)
        if mismatched:
            if not allow_config_change:
                logger.warning(
                    "resume_refused",
                    session_id=checkpoint.session_id,
                    mismatched=mismatched,
                )
                self.log_feed.append(
                    "ERROR Resume refused: settings changed since pause ("
                    + ", ".join(mismatched)
                    + ")"
                )
                self.broadcaster.mark_dirty()
                raise IncompatibleSessionError(mismatched)

            logger.warning(
                "resume_with_changed_config",
                session_id=checkpoint.session_id,
                mismatched=mismatched,
            )
            checkpoint = checkpoint.model_copy(update={"config_snapshot": current})

        self._begin(resume_from=checkpoint, dry_run=False)
        return True

    def pause(self) -> bool:
        """Ask the engine to stop after the current item and keep a checkpoint"""
        if not self.is_running:
            return False
        self.run_state.store(RunState.PAUSED)
        self._pause_requested = True
        self.classifier.status_text = "Pausing…"
        logger.info("pause_requested")
        self.broadcaster.publish_now()
        return True

    def cancel(self, resumable: bool = True) -> bool:
        """Stop the active run after the current item.

        By default stopping is resumable: a checkpoint is written exactly as
        for ``pause`` and the run ends in the ``cancelled`` phase. With
        ``resumable=False`` the engine is told to abandon the run and no
        checkpoint is written.
        """
        if not self.is_running:
            return False

        self._cancel_requested = True
        if resumable:
            self.run_state.store(RunState.PAUSED)
            self._pause_requested = True
            self.classifier.status_text = "Stopping…"
            self.log_feed.append(
                "Stop requested: will pause after current item to allow resume."
            )
        else:
            self.run_state.store(RunState.CANCELLED)
            self.classifier.status_text = "Cancelling…"
            self.log_feed.append("Cancel requested: will stop after current item.")

        logger.info("cancel_requested", resumable=resumable)
        self.broadcaster.publish_now()
        return True

    async def wait(self) -> Optional[RunOutcome]:
        """Wait for the active run (if any) and return its outcome"""
        if self._task is not None:
            return await asyncio.shield(self._task)
        return self.last_outcome

    def reset(self, wipe_manifest: bool = False) -> bool:
        """Forget everything about previous runs.

        Removes the paused session and the temp cache, optionally wipes the
        folder destination's manifest database, zeroes counters and logs,
        and regenerates the device id so the server treats every item as
        new. Only permitted while no run is active.
        """
        if self.is_running:
            logger.warning("reset_refused", reason="run_active")
            return False

        messages: List[str] = []

        had_session = self.checkpoint_store.load() is not None
        if self.checkpoint_store.clear():
            if had_session:
                messages.append("Reset: removed session state")
        else:
            messages.append("ERROR Reset: could not remove session state")

        temp_dir = self.state_settings.resolved_temp_dir
        if temp_dir.exists():
            try:
                shutil.rmtree(temp_dir)
                messages.append("Reset: cleared temp cache")
            except OSError as e:
                messages.append(f"ERROR Reset: could not clear temp cache: {e}")

        if wipe_manifest:
            messages.extend(self._wipe_manifest())

        self.classifier.reset()
        self.log_feed.clear()
        self._resumable = None
        self._session = None
        self.phase = SessionPhase.IDLE
        self.last_outcome = None

        if self.identity is not None:
            self.identity.regenerate()
            messages.append("Reset: regenerated device id")

        for line in messages:
            self.log_feed.append(line)

        logger.info("session_reset", wipe_manifest=wipe_manifest, steps=len(messages))
        self.broadcaster.publish_now()
        return True

    def _wipe_manifest(self) -> List[str]:
        destination = self.settings.folder_destination
        if destination is None:
            return ["Reset: no folder destination set; skipping manifest wipe"]

        messages: List[str] = []
        removed_any = False
        for path in manifest_files(Path(destination)):
            if not path.exists():
                continue
            try:
                path.unlink()
                removed_any = True
            except OSError as e:
                messages.append(f"ERROR Reset: could not remove {path.name}: {e}")

        if removed_any:
            messages.append("Reset: wiped manifest database in destination")
        else:
            messages.append("Reset: no manifest database found in destination")
        return messages

    # ------------------------------------------------------------------
    # Run task
    # ------------------------------------------------------------------

    def _can_start(self, action: str) -> bool:
        if self.is_running:
            logger.info(f"{action}_ignored", reason="already_running")
            return False

        blockers = self.settings.start_blockers()
        if blockers:
            logger.warning(f"{action}_blocked", reasons=blockers)
            self.classifier.status_text = "Cannot start: " + "; ".join(blockers)
            self.broadcaster.publish_now()
            return False
        return True

    def _device_id(self) -> Optional[str]:
        if self.identity is None:
            return None
        return self.identity.get_or_create()

    def _build_options(self, dry_run: bool, device_id: Optional[str]) -> TransferOptions:
        s = self.settings
        return TransferOptions(
            sources=list(s.sources),
            folder_destination=s.folder_destination if s.uses_folder else None,
            server_url=s.server_url if s.uses_server else None,
            api_key=s.api_key if s.uses_server else None,
            device_id=device_id,
            run_id=self._session.session_id if self._session else None,
            temp_dir=self.state_settings.resolved_temp_dir,
            mode=s.mode,
            media=s.media,
            sort_order=s.sort_order,
            backup_mode=s.backup_mode,
            limit=s.limit,
            dry_run=dry_run,
            include_hidden_files=s.include_hidden_files,
            follow_symlinks=s.follow_symlinks,
            request_timeout_seconds=s.request_timeout_seconds,
        )

    def _begin(self, resume_from: Optional[SessionCheckpoint], dry_run: bool) -> None:
        self._loop = asyncio.get_running_loop()
        device_id = self._device_id()

        self.run_state.store(RunState.RUNNING)
        self._dry_run = dry_run
        self._pause_requested = False
        self._cancel_requested = False
        self._resumed_from = resume_from

        self.classifier.reset()
        self.log_feed.clear()
        if resume_from is not None:
            stats = resume_from.stats
            self.classifier.seed(
                resume_from.processed_item_ids,
                resume_from.error_item_ids,
                uploaded=stats.uploaded_count,
                skipped=stats.skipped_count,
                errors=stats.error_count,
            )
            self._session = resume_from
            self.classifier.status_text = "Resuming…"
            self.log_feed.append(f"Resuming session: {resume_from.summary()}")
        else:
            self._session = SessionCheckpoint(
                config_snapshot=self.settings.snapshot(device_id)
            )
            self.classifier.status_text = "Starting…"

        self.phase = SessionPhase.RUNNING
        RUN_ACTIVE.set(1)
        self.broadcaster.publish_now()

        options = self._build_options(dry_run, device_id)
        self._task = self._loop.create_task(self._run(options, resume_from, dry_run))

    def _on_progress(self, event: ProgressEvent) -> None:
        """Engine-side callback; may be called from the worker thread"""
        assert self._loop is not None
        self._loop.call_soon_threadsafe(self._handle_event, event)

    def _handle_event(self, event: ProgressEvent) -> None:
        self.classifier.apply(event)
        self.broadcaster.mark_dirty()

    async def _run(
        self,
        options: TransferOptions,
        resume_from: Optional[SessionCheckpoint],
        dry_run: bool,
    ) -> RunOutcome:
        assert self._session is not None
        session_id = self._session.session_id
        started = time.monotonic()

        with session_scope(session_id):
            logger.info(
                "run_started",
                session_id=session_id,
                engine=self.engine.name,
                dry_run=dry_run,
                resumed=resume_from is not None,
                already_processed=(
                    len(resume_from.processed_item_ids) if resume_from else 0
                ),
            )

            try:
                result = await asyncio.to_thread(
                    self.engine.run,
                    options,
                    self._on_progress,
                    self.run_state.load,
                    resume_from,
                )
                # Let events queued by the worker thread drain first
                await asyncio.sleep(0)

                if dry_run:
                    outcome = self._finish_dry_run(result)
                elif result.was_paused:
                    outcome = self._finish_paused(result)
                elif self.run_state.load() == RunState.CANCELLED:
                    outcome = self._finish_cancelled(result)
                else:
                    outcome = self._finish_completed(result)

            except Exception as e:
                outcome = self._finish_errored(e)

            outcome.session_id = session_id
            outcome.resumed = resume_from is not None
            outcome.duration_seconds = time.monotonic() - started
            outcome.finished_at = datetime.now()

            RUN_ACTIVE.set(0)
            RUN_DURATION.observe(outcome.duration_seconds)
            RUNS_TOTAL.labels(
                outcome="dry_run" if dry_run else outcome.phase.value
            ).inc()

            logger.info(
                "run_finished",
                session_id=session_id,
                phase=outcome.phase.value,
                uploaded=outcome.uploaded,
                skipped=outcome.skipped,
                errors=outcome.errors,
                duration_seconds=round(outcome.duration_seconds, 2),
            )

        self._dry_run = False
        self._pause_requested = False
        self.last_outcome = outcome
        self.broadcaster.publish_now()
        await self._notify_listeners(outcome)
        return outcome

    def _counts_outcome(self, phase: SessionPhase) -> RunOutcome:
        c = self.classifier
        return RunOutcome(
            phase=phase,
            uploaded=c.uploaded_count,
            skipped=c.skipped_count,
            errors=c.error_count,
        )

    def _finish_dry_run(self, result: TransferResult) -> RunOutcome:
        plan = result.dry_run_plan or DryRunPlan()
        c = self.classifier
        c.error_count = max(c.error_count, result.errors)
        c.uploaded_count = plan.would_upload
        c.skipped_count = plan.would_skip_existing

        c.status_text = (
            f"Dry run: would upload {plan.would_upload}, "
            f"skip {plan.would_skip_existing}, "
            f"replace {plan.would_replace_existing} "
            f"({plan.items_scanned} scanned)"
        )
        self.log_feed.append(
            f"Dry run complete: planned {plan.planned_uploads} uploads; "
            f"would upload {plan.would_upload}, skip {plan.would_skip_existing}, "
            f"replace {plan.would_replace_existing}"
        )
        for note in plan.notes:
            self.log_feed.append(f"Dry run note: {note}")

        # The paused session, if any, is still resumable
        self.refresh_resumable_session()
        self.phase = SessionPhase.COMPLETED
        outcome = self._counts_outcome(SessionPhase.COMPLETED)
        outcome.dry_run = True
        return outcome

    def _finish_paused(self, result: TransferResult) -> RunOutcome:
        assert self._session is not None
        c = self.classifier
        c.error_count = max(c.error_count, result.errors)

        processed = set(result.processed_item_ids)
        errors = set(result.error_item_ids)
        if self._resumed_from is not None:
            processed |= self._resumed_from.processed_item_ids
            errors |= self._resumed_from.error_item_ids

        now = datetime.now()
        checkpoint = self._session.model_copy(
            update={
                "last_updated_at": now,
                "paused_at": now,
                "processed_item_ids": processed,
                "error_item_ids": errors,
                "pause_index": result.pause_index or 0,
                "total_items_at_pause": max(c.progress_total, len(processed)),
                "stats": SessionStats(
                    uploaded_count=c.uploaded_count,
                    skipped_count=c.skipped_count,
                    error_count=c.error_count,
                ),
            }
        )

        saved = self.checkpoint_store.save(checkpoint)
        if saved:
            self._resumable = checkpoint
        else:
            self.log_feed.append("ERROR saving session state")
            self.refresh_resumable_session()

        c.status_text = f"Paused. {result.completed} completed."
        self.phase = (
            SessionPhase.CANCELLED if self._cancel_requested else SessionPhase.PAUSED
        )
        outcome = self._counts_outcome(self.phase)
        outcome.checkpoint_saved = saved
        return outcome

    def _finish_cancelled(self, result: TransferResult) -> RunOutcome:
        c = self.classifier
        c.error_count = max(c.error_count, result.errors)
        c.status_text = f"Cancelled. {result.completed} completed."
        self.refresh_resumable_session()
        self.phase = SessionPhase.CANCELLED
        return self._counts_outcome(SessionPhase.CANCELLED)

    def _finish_completed(self, result: TransferResult) -> RunOutcome:
        c = self.classifier
        c.error_count = max(c.error_count, result.errors)

        self.checkpoint_store.clear()
        self._resumable = None

        c.status_text = (
            f"Done. Completed {result.completed}, skipped {result.skipped}, "
            f"errors {c.error_count}."
        )
        self.phase = SessionPhase.COMPLETED
        return self._counts_outcome(SessionPhase.COMPLETED)

    def _finish_errored(self, error: Exception) -> RunOutcome:
        logger.exception("run_failed", engine=self.engine.name, error=str(error))
        self.classifier.status_text = f"Error: {error}"
        self.log_feed.append(f"ERROR: {error}")
        # A checkpoint from an earlier pause stays usable
        self.refresh_resumable_session()
        self.phase = SessionPhase.ERRORED
        outcome = self._counts_outcome(SessionPhase.ERRORED)
        outcome.error = str(error)
        return outcome

    async def _notify_listeners(self, outcome: RunOutcome) -> None:
        for listener in list(self._listeners):
            try:
                result: Any = listener(outcome)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "completion_listener_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
