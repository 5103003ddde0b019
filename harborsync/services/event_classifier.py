"""
Event classifier: turns engine progress events into run counters.

One logical item can produce several sub-events (an edited variant, a
paired video, a retry), so uploads and skips are counted once per *base
item id*. Errors are deduplicated when an id is known and always counted
when it is not, so a failure is never hidden for lack of an id.

Structured ``ItemOutcomeEvent`` payloads carry explicit ids. Free-form
``MessageEvent`` lines are parsed with the parenthesised-id convention
used by engines that only speak text, e.g.::

    Server: upload created (4F2A-11:edited)
    Server: exists, skipping upload (4F2A-11)
    ERROR Server upload failed: timeout (4F2A-11:pairedVideo)
"""

import re
from typing import Iterable, Optional, Sequence, Set

import structlog

from harborsync.models.events import (
    ItemOutcome,
    ItemOutcomeEvent,
    ItemProgressEvent,
    MessageEvent,
    PausedEvent,
    ProgressEvent,
    RemoteCheckEvent,
    RetryingEvent,
    ScanningEvent,
    WillProcessEvent,
)
from harborsync.observability.metrics import ITEMS_PROCESSED
from harborsync.services.log_feed import ERROR_PREFIX, LogFeed

logger = structlog.get_logger()

DEFAULT_VARIANT_SUFFIXES = (
    ":edited",
    ":pairedVideo",
    ":video",
    "-edited",
    "-paired-video",
)

# Item progress lines logged: the first few, every Nth, and the last
PROGRESS_LOG_HEAD = 25
PROGRESS_LOG_EVERY = 250

# Remote-check failures that are important enough to replace the status line
STATUS_ERROR_PREFIXES = (
    "ERROR Server existing check failed",
    "ERROR Server: exists check failed",
    "ERROR Server: could not fetch statistics",
    "ERROR Server: exists sync failed",
)

UNCONDITIONAL_ERROR_PREFIXES = (
    "ERROR processing",
    "ERROR exporting",
    "ERROR Files:",
)

_TRAILING_ID = re.compile(r"\(([^()]*)\)[^()]*$")


def extract_item_id(message: str) -> Optional[str]:
    """Return the text of the last parenthesised token, if any"""
    match = _TRAILING_ID.search(message)
    if not match:
        return None
    item_id = match.group(1).strip()
    return item_id or None


class EventClassifier:
    """Derives deduplicated counters and the status line from events.

    Not thread-safe: feed it from the event loop only.

    Attributes:
        uploaded_count: Logical items uploaded in this run
        skipped_count: Logical items skipped in this run
        error_count: Errors counted in this run
        status_text: Latest human status line
        progress_value: Index of the latest item progress event
        progress_total: Total of the latest progress event
    """

    def __init__(
        self,
        log_feed: Optional[LogFeed] = None,
        variant_suffixes: Sequence[str] = DEFAULT_VARIANT_SUFFIXES,
    ):
        self.log_feed = log_feed if log_feed is not None else LogFeed()
        self.variant_suffixes = tuple(variant_suffixes)
        self.reset()

    def reset(self) -> None:
        """Zero counters and forget dedup state"""
        self.uploaded_count = 0
        self.skipped_count = 0
        self.error_count = 0
        self.progress_value = 0
        self.progress_total = 0
        self.remote_checked = 0
        self.remote_total = 0
        self.status_text = "Idle"
        self.current_item_name: Optional[str] = None
        self._handled_ids: Set[str] = set()
        self._error_ids: Set[str] = set()

    def seed(
        self,
        processed_item_ids: Iterable[str],
        error_item_ids: Iterable[str] = (),
        uploaded: int = 0,
        skipped: int = 0,
        errors: int = 0,
    ) -> None:
        """Continue counting from a paused session"""
        self._handled_ids.update(self.base_id(i) for i in processed_item_ids)
        self._error_ids.update(self.base_id(i) for i in error_item_ids)
        self.uploaded_count = uploaded
        self.skipped_count = skipped
        self.error_count = errors

    @property
    def handled_item_ids(self) -> Set[str]:
        return set(self._handled_ids)

    @property
    def error_item_ids(self) -> Set[str]:
        return set(self._error_ids)

    def base_id(self, item_id: str) -> str:
        """Strip one known variant suffix"""
        for suffix in self.variant_suffixes:
            if item_id.endswith(suffix) and len(item_id) > len(suffix):
                return item_id[: -len(suffix)]
        return item_id

    # ------------------------------------------------------------------
    # Counting
    # ------------------------------------------------------------------

    def record_uploaded(self, item_id: Optional[str]) -> bool:
        if item_id is None:
            self.uploaded_count += 1
            ITEMS_PROCESSED.labels(outcome="uploaded").inc()
            return True
        base = self.base_id(item_id)
        if base in self._handled_ids:
            return False
        self._handled_ids.add(base)
        self.uploaded_count += 1
        ITEMS_PROCESSED.labels(outcome="uploaded").inc()
        return True

    def record_skipped(self, item_id: Optional[str]) -> bool:
        # Without an id a skip cannot be attributed, so it is not counted
        if item_id is None:
            return False
        base = self.base_id(item_id)
        if base in self._handled_ids:
            return False
        self._handled_ids.add(base)
        self.skipped_count += 1
        ITEMS_PROCESSED.labels(outcome="skipped").inc()
        return True

    def record_error(self, item_id: Optional[str]) -> bool:
        if item_id is not None:
            base = self.base_id(item_id)
            if base in self._error_ids:
                return False
            self._error_ids.add(base)
        self.error_count += 1
        ITEMS_PROCESSED.labels(outcome="error").inc()
        return True

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def apply(self, event: ProgressEvent) -> None:
        """Apply one engine event"""
        if isinstance(event, ScanningEvent):
            self.status_text = "Scanning…"
            self._log("Scanning…")

        elif isinstance(event, WillProcessEvent):
            self.progress_total = event.total
            self.progress_value = 0
            self.status_text = f"Will process {event.total} item(s)…"
            self._log(self.status_text)

        elif isinstance(event, ItemProgressEvent):
            self._apply_item_progress(event)

        elif isinstance(event, ItemOutcomeEvent):
            self._apply_outcome(event)

        elif isinstance(event, MessageEvent):
            self.apply_message(event.text)

        elif isinstance(event, RetryingEvent):
            name = event.name or event.item_id
            self._log(
                f"Retry {event.attempt}/{event.max_attempts} for {name} "
                f"in {event.delay_seconds:.1f}s: {event.reason}"
            )
            self.status_text = f"Retrying {name}…"

        elif isinstance(event, RemoteCheckEvent):
            self.remote_checked = event.checked
            self.remote_total = event.total

        elif isinstance(event, PausedEvent):
            self.status_text = f"Paused at {event.at}/{event.total}"
            self._log(self.status_text)

        else:
            logger.warning("unknown_progress_event", event=repr(event))

    def _apply_item_progress(self, event: ItemProgressEvent) -> None:
        name = event.name or event.item_id
        self.progress_total = event.total
        self.progress_value = event.index
        self.current_item_name = name
        self.status_text = f"Processing {event.index}/{event.total}: {name}"
        if (
            event.index <= PROGRESS_LOG_HEAD
            or event.index == event.total
            or event.index % PROGRESS_LOG_EVERY == 0
        ):
            self._log(f"[{event.index}/{event.total}] {name}")

    def _apply_outcome(self, event: ItemOutcomeEvent) -> None:
        if event.outcome == ItemOutcome.UPLOADED:
            self.record_uploaded(event.item_id)
        elif event.outcome == ItemOutcome.SKIPPED:
            self.record_skipped(event.item_id)
        else:
            self.record_error(event.item_id)

        if event.message:
            line = event.message
            if event.outcome == ItemOutcome.ERROR and not line.startswith(ERROR_PREFIX):
                line = f"{ERROR_PREFIX} {line}"
            self._log(line)

    def apply_message(self, msg: str) -> None:
        """Classify a free-form engine message"""
        self._log(msg)

        if msg.startswith(STATUS_ERROR_PREFIXES):
            self.status_text = msg

        if msg.startswith(ERROR_PREFIX):
            if "upload failed for file" in msg:
                self.record_error(None)
            elif "upload failed" in msg:
                self.record_error(extract_item_id(msg))
            elif msg.startswith(UNCONDITIONAL_ERROR_PREFIXES):
                self.record_error(None)
        elif "skipping upload" in msg or "upload duplicate" in msg:
            self.record_skipped(extract_item_id(msg))
        elif "upload created" in msg:
            self.record_uploaded(extract_item_id(msg))

    def _log(self, line: str) -> None:
        self.log_feed.append(line)
