"""Persistence of the user's schedule policy and last run time."""

import json
import threading
from pathlib import Path
from typing import Optional

import structlog

from harborsync.models.schedule import ScheduleState, SchedulePolicy

logger = structlog.get_logger()

SCHEDULE_FILENAME = "schedule.json"


class ScheduleStore:
    """``<state_dir>/schedule.json`` holding a ``ScheduleState``"""

    def __init__(self, state_dir: Path):
        self.path = Path(state_dir) / SCHEDULE_FILENAME
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self, default_policy: Optional[SchedulePolicy] = None) -> ScheduleState:
        """Load the stored state, falling back to ``default_policy``"""
        with self._lock:
            if self.path.exists():
                try:
                    with open(self.path, "r") as f:
                        return ScheduleState(**json.load(f))
                except Exception as e:
                    logger.error(
                        "schedule_load_error", path=str(self.path), error=str(e)
                    )

            if default_policy is not None:
                return ScheduleState(policy=default_policy)
            return ScheduleState()

    def save(self, state: ScheduleState) -> bool:
        with self._lock:
            temp_file = self.path.with_suffix(".tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(temp_file, "w") as f:
                    f.write(state.model_dump_json(indent=2))
                temp_file.replace(self.path)
                logger.debug("schedule_saved", policy=state.policy.type)
                return True
            except Exception as e:
                logger.error("schedule_save_error", path=str(self.path), error=str(e))
                return False

    def save_policy(self, policy: SchedulePolicy) -> ScheduleState:
        state = self.load()
        state = state.model_copy(update={"policy": policy})
        self.save(state)
        return state
