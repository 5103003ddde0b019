"""Prometheus metrics for backup runs and the scheduler.

Usage:
    from harborsync.observability.metrics import ITEMS_PROCESSED

    ITEMS_PROCESSED.labels(outcome="uploaded").inc()
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Custom registry to avoid conflicts with the default registry
REGISTRY = CollectorRegistry(auto_describe=True)

# =============================================================================
# COUNTERS
# =============================================================================

ITEMS_PROCESSED = Counter(
    name="harborsync_items_total",
    documentation="Logical items classified during backup runs",
    labelnames=["outcome"],  # uploaded, skipped, error
    registry=REGISTRY,
)

RUNS_TOTAL = Counter(
    name="harborsync_runs_total",
    documentation="Backup runs by terminal outcome",
    labelnames=["outcome"],  # completed, paused, cancelled, errored, dry_run
    registry=REGISTRY,
)

SCHEDULER_TRIGGERS = Counter(
    name="harborsync_scheduler_triggers_total",
    documentation="Scheduled trigger decisions",
    labelnames=["result"],  # started, resumed, deferred, skipped_battery, refused
    registry=REGISTRY,
)

CHECKPOINT_WRITES = Counter(
    name="harborsync_checkpoint_writes_total",
    documentation="Checkpoint save attempts",
    labelnames=["status"],  # success, failed
    registry=REGISTRY,
)

# =============================================================================
# GAUGES
# =============================================================================

RUN_ACTIVE = Gauge(
    name="harborsync_run_active",
    documentation="1 while a backup run is in flight",
    registry=REGISTRY,
)

# =============================================================================
# HISTOGRAMS
# =============================================================================

RUN_DURATION = Histogram(
    name="harborsync_run_duration_seconds",
    documentation="Wall time of backup runs in seconds",
    buckets=(1, 10, 60, 300, 900, 1800, 3600, 7200, 21600, float("inf")),
    registry=REGISTRY,
)


def get_metrics_text() -> bytes:
    """Generate Prometheus metrics in text exposition format."""
    return generate_latest(REGISTRY)


def reset_metrics() -> None:
    """Reset all metrics to their initial state.

    Intended for tests. Counters and histograms cannot be reset through
    the public API, so their internal values are zeroed directly.
    """
    for collector in list(REGISTRY._collector_to_names.keys()):
        if hasattr(collector, "_metrics"):
            collector._metrics.clear()
        elif hasattr(collector, "_value"):
            collector._value.set(0)
