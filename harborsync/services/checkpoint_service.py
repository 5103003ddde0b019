"""
Session checkpoint stores for resumable backup runs.

At most one checkpoint exists at a time. It is written when a run pauses
and removed when a run completes, when a fresh run starts, or on reset.
The file store uses atomic writes (temp file, then rename) so a crash
mid-write never leaves a truncated checkpoint behind.
"""

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog

from harborsync.models.checkpoint import CHECKPOINT_SCHEMA_VERSION, SessionCheckpoint
from harborsync.observability.metrics import CHECKPOINT_WRITES

logger = structlog.get_logger()

CHECKPOINT_FILENAME = f"session_state.v{CHECKPOINT_SCHEMA_VERSION}.json"


class CheckpointStore(ABC):
    """Persistence for the single resumable session"""

    @abstractmethod
    def save(self, checkpoint: SessionCheckpoint) -> bool:
        """Persist ``checkpoint``, replacing any previous one.

        Returns:
            True if saved successfully
        """

    @abstractmethod
    def load(self) -> Optional[SessionCheckpoint]:
        """Return the stored checkpoint, or None if there is none usable"""

    @abstractmethod
    def clear(self) -> bool:
        """Remove the stored checkpoint.

        Returns:
            True if no checkpoint remains
        """

    def exists(self) -> bool:
        return self.load() is not None


class FileCheckpointStore(CheckpointStore):
    """
    JSON file checkpoint store.

    Failures never raise: a failed write is logged and reported as False,
    an unreadable file is logged and treated as absent.
    """

    def __init__(self, state_dir: Path):
        """
        Initialize file checkpoint store.

        Args:
            state_dir: Directory holding the checkpoint file
        """
        self.state_dir = Path(state_dir)
        self.path = self.state_dir / CHECKPOINT_FILENAME
        self._lock = threading.Lock()

    def save(self, checkpoint: SessionCheckpoint) -> bool:
        with self._lock:
            temp_file = self.path.with_suffix(".tmp")
            try:
                self.state_dir.mkdir(parents=True, exist_ok=True)

                with open(temp_file, "w") as f:
                    json.dump(checkpoint.model_dump(mode="json"), f, indent=2)

                # Atomic rename
                temp_file.replace(self.path)

                logger.info(
                    "checkpoint_saved",
                    session_id=checkpoint.session_id,
                    processed=len(checkpoint.processed_item_ids),
                    pause_index=checkpoint.pause_index,
                )
                CHECKPOINT_WRITES.labels(status="success").inc()
                return True

            except Exception as e:
                logger.error(
                    "checkpoint_save_error",
                    path=str(self.path),
                    error=str(e),
                )
                CHECKPOINT_WRITES.labels(status="failed").inc()
                try:
                    temp_file.unlink(missing_ok=True)
                except OSError:
                    pass
                return False

    def load(self) -> Optional[SessionCheckpoint]:
        with self._lock:
            if not self.path.exists():
                logger.debug("no_checkpoint_found", path=str(self.path))
                return None

            try:
                with open(self.path, "r") as f:
                    data = json.load(f)

                if data.get("version") != CHECKPOINT_SCHEMA_VERSION:
                    logger.warning(
                        "checkpoint_version_mismatch",
                        found=data.get("version"),
                        expected=CHECKPOINT_SCHEMA_VERSION,
                    )
                    return None

                checkpoint = SessionCheckpoint(**data)

                logger.debug(
                    "checkpoint_loaded",
                    session_id=checkpoint.session_id,
                    processed=len(checkpoint.processed_item_ids),
                )
                return checkpoint

            except Exception as e:
                logger.error(
                    "checkpoint_load_error",
                    path=str(self.path),
                    error=str(e),
                )
                return None

    def clear(self) -> bool:
        with self._lock:
            if not self.path.exists():
                return True

            try:
                self.path.unlink()
                logger.info("checkpoint_cleared", path=str(self.path))
                return True

            except Exception as e:
                logger.error(
                    "checkpoint_clear_error",
                    path=str(self.path),
                    error=str(e),
                )
                return False


class InMemoryCheckpointStore(CheckpointStore):
    """Checkpoint store that lives only as long as the process"""

    def __init__(self, checkpoint: Optional[SessionCheckpoint] = None):
        self._lock = threading.Lock()
        self._checkpoint = checkpoint
        self.save_count = 0

    def save(self, checkpoint: SessionCheckpoint) -> bool:
        with self._lock:
            self._checkpoint = checkpoint.model_copy(deep=True)
            self.save_count += 1
            return True

    def load(self) -> Optional[SessionCheckpoint]:
        with self._lock:
            if self._checkpoint is None:
                return None
            return self._checkpoint.model_copy(deep=True)

    def clear(self) -> bool:
        with self._lock:
            self._checkpoint = None
            return True
