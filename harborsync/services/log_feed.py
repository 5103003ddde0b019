"""Bounded in-memory log feed for the observer surface."""

import threading
from collections import deque
from typing import Deque, List, Optional

ERROR_PREFIX = "ERROR"


class LogFeed:
    """Two bounded rings: every line, and only the ``ERROR`` lines.

    Oldest lines are discarded once a ring reaches its cap. Appends may
    come from any thread.
    """

    def __init__(self, max_log_lines: int = 10_000, max_error_lines: int = 5_000):
        self.max_log_lines = max_log_lines
        self.max_error_lines = max_error_lines
        self._lines: Deque[str] = deque(maxlen=max_log_lines)
        self._errors: Deque[str] = deque(maxlen=max_error_lines)
        self._lock = threading.Lock()

    def append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)
            if line.startswith(ERROR_PREFIX):
                self._errors.append(line)

    def lines(self, limit: Optional[int] = None) -> List[str]:
        """Most recent lines, oldest first"""
        with self._lock:
            return _tail(self._lines, limit)

    def error_lines(self, limit: Optional[int] = None) -> List[str]:
        with self._lock:
            return _tail(self._errors, limit)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()
            self._errors.clear()

    def __len__(self) -> int:
        return len(self._lines)


def _tail(ring: Deque[str], limit: Optional[int]) -> List[str]:
    if limit is None or limit >= len(ring):
        return list(ring)
    if limit <= 0:
        return []
    return list(ring)[-limit:]
