"""Observability for HarborSync.

Provides:
- A session id scope that tags every log line of a run
- structlog configuration
- Prometheus metrics for runs, items and scheduler decisions
"""

from harborsync.observability.context import current_session_id, session_scope
from harborsync.observability.logging import add_session_id, configure_logging
from harborsync.observability.metrics import (
    ITEMS_PROCESSED,
    RUNS_TOTAL,
    SCHEDULER_TRIGGERS,
    CHECKPOINT_WRITES,
    RUN_ACTIVE,
    RUN_DURATION,
    get_metrics_text,
    reset_metrics,
)

__all__ = [
    "current_session_id",
    "session_scope",
    "add_session_id",
    "configure_logging",
    "ITEMS_PROCESSED",
    "RUNS_TOTAL",
    "SCHEDULER_TRIGGERS",
    "CHECKPOINT_WRITES",
    "RUN_ACTIVE",
    "RUN_DURATION",
    "get_metrics_text",
    "reset_metrics",
]
