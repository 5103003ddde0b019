"""Observer surface: status snapshots and coalesced delivery.

Engines can emit hundreds of events per second. Observers only need a
fresh picture a few times per second, so ``mark_dirty`` schedules at most
one delivery per ``flush_interval`` and skips the work entirely while no
subscriber is visible.
"""

import asyncio
from enum import Enum
from typing import Callable, List, Optional

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()

DEFAULT_FLUSH_INTERVAL = 0.15


class SessionPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


class BackupStatus(BaseModel):
    """Snapshot of everything an observer can show"""

    phase: SessionPhase = SessionPhase.IDLE
    status_text: str = "Idle"
    progress_value: int = 0
    progress_total: int = 0
    current_item_name: Optional[str] = None
    uploaded_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    remote_checked: int = 0
    remote_total: int = 0
    is_running: bool = False
    is_paused: bool = False
    is_dry_run: bool = False
    has_resumable_session: bool = False
    resumable_session_info: str = ""
    log_lines: List[str] = Field(default_factory=list)
    error_lines: List[str] = Field(default_factory=list)

    @property
    def progress_fraction(self) -> float:
        if self.progress_total <= 0:
            return 0.0
        return min(1.0, self.progress_value / self.progress_total)

    @property
    def remote_check_in_progress(self) -> bool:
        """True while the destination is still being asked which items it has"""
        return self.remote_checked < self.remote_total


StatusCallback = Callable[[BackupStatus], None]


class Subscription:
    """Handle returned by ``StatusBroadcaster.subscribe``"""

    def __init__(
        self, broadcaster: "StatusBroadcaster", callback: StatusCallback, visible: bool
    ):
        self._broadcaster = broadcaster
        self.callback = callback
        self.visible = visible
        self.closed = False

    def set_visible(self, visible: bool) -> None:
        """Declare whether the observer is currently displaying status"""
        was_visible = self.visible
        self.visible = visible
        if visible and not was_visible:
            # Catch up on whatever changed while hidden
            self._broadcaster.mark_dirty()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._broadcaster._remove(self)


class StatusBroadcaster:
    """Delivers status snapshots to subscribers at a bounded rate.

    Args:
        snapshot: Builds the current ``BackupStatus``
        flush_interval: Minimum seconds between coalesced deliveries
    """

    def __init__(
        self,
        snapshot: Callable[[], BackupStatus],
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
    ):
        self._snapshot = snapshot
        self.flush_interval = flush_interval
        self._subscriptions: List[Subscription] = []
        self._dirty = False
        self._handle: Optional[asyncio.TimerHandle] = None
        self.delivery_count = 0

    def subscribe(self, callback: StatusCallback, visible: bool = True) -> Subscription:
        subscription = Subscription(self, callback, visible)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def has_visible_subscribers(self) -> bool:
        return any(s.visible for s in self._subscriptions)

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def mark_dirty(self) -> None:
        """Note that status changed; deliver within ``flush_interval``"""
        self._dirty = True
        if self._handle is not None or not self.has_visible_subscribers:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside a loop the next publish_now picks it up
            return
        self._handle = loop.call_later(self.flush_interval, self._flush)

    def publish_now(self) -> None:
        """Deliver immediately, cancelling any pending coalesced delivery"""
        self._cancel_pending()
        self._dirty = False
        self._deliver()

    def close(self) -> None:
        self._cancel_pending()
        self._subscriptions.clear()

    def _flush(self) -> None:
        self._handle = None
        if not self._dirty:
            return
        self._dirty = False
        self._deliver()

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _deliver(self) -> None:
        targets = [s for s in self._subscriptions if s.visible and not s.closed]
        if not targets:
            return

        status = self._snapshot()
        self.delivery_count += 1
        for subscription in targets:
            try:
                subscription.callback(status)
            except Exception as e:
                logger.error(
                    "status_subscriber_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
