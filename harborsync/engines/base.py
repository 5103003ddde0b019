"""Abstract base class for transfer engines.

An engine enumerates items, transfers them to a destination and reports
what it did. It runs in a worker thread; everything it tells the
orchestrator goes through ``on_progress``, and it must call
``poll_run_state`` between items:

- ``RunState.PAUSED``: finish the current item, return ``was_paused=True``
  with ``pause_index`` set
- ``RunState.CANCELLED``: finish the current item and return without a
  resumable result
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from harborsync.models.checkpoint import SessionCheckpoint
from harborsync.models.events import ProgressEvent
from harborsync.models.transfer import TransferOptions, TransferResult
from harborsync.orchestration.run_state import RunState

ProgressCallback = Callable[[ProgressEvent], None]
RunStatePoller = Callable[[], RunState]


class TransferEngine(ABC):
    """
    Abstract base class for transfer engines.

    All concrete engines must implement:
    - run(): Perform one (possibly resumed or plan-only) backup pass
    - name property: Engine identifier for logging
    """

    @abstractmethod
    def run(
        self,
        options: TransferOptions,
        on_progress: ProgressCallback,
        poll_run_state: RunStatePoller,
        resume_from: Optional[SessionCheckpoint] = None,
    ) -> TransferResult:
        """
        Run one backup pass.

        Args:
            options: What to transfer and where
            on_progress: Receives progress events; may be called from any thread
            poll_run_state: Returns the current run state; call between items
            resume_from: Paused session whose processed items are skipped

        Returns:
            TransferResult describing the pass

        Raises:
            TransferEngineError: If the pass cannot run at all. Per-item
                failures are reported as events, never raised.
        """
        raise NotImplementedError("Subclasses must implement run()")

    @property
    @abstractmethod
    def name(self) -> str:
        """Engine name for logging and identification"""
        raise NotImplementedError("Subclasses must implement name property")
