"""Run-state flag shared between the orchestrator and the engine thread."""

import threading
from enum import Enum


class RunState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class RunStateFlag:
    """Last-writer-wins holder of the current ``RunState``.

    Written only by the orchestrator; polled by the engine between items.
    Neither side ever blocks on it.
    """

    def __init__(self, initial: RunState = RunState.RUNNING):
        self._lock = threading.Lock()
        self._state = initial

    def store(self, state: RunState) -> None:
        with self._lock:
            self._state = state

    def load(self) -> RunState:
        with self._lock:
            return self._state

    def __repr__(self) -> str:
        return f"RunStateFlag({self.load().value})"
