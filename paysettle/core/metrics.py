"""
Prometheus metrics for the settlement batches.

Tracks:
- Settlements created and confirmed, adjustments confirmed
- Batch duration per phase
- Records read per run
- Failed runs per phase
- Last batch run time
"""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

from prometheus_client import Counter, Gauge, Histogram


class BatchPhase(str, Enum):
    CREATION = "creation"
    CONFIRMATION = "confirmation"
    ADJUSTMENT = "adjustment"


settlement_batch_created_total = Counter(
    "settlement_batch_created_total",
    "Total settlements created by the daily batch",
)

settlement_batch_confirmed_total = Counter(
    "settlement_batch_confirmed_total",
    "Total settlements confirmed by the daily batch",
)

settlement_batch_adjustment_confirmed_total = Counter(
    "settlement_batch_adjustment_confirmed_total",
    "Total settlement adjustments confirmed by the daily batch",
)

settlement_batch_failures_total = Counter(
    "settlement_batch_failures_total",
    "Total batch runs that aborted with an error",
    ["phase"],
)

settlement_batch_duration_seconds = Histogram(
    "settlement_batch_duration_seconds",
    "Settlement batch run duration in seconds",
    ["phase"],
    buckets=(0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 600.0, 1800.0),
)

settlement_batch_records = Histogram(
    "settlement_batch_records",
    "Records read by one settlement batch run",
    ["phase"],
    buckets=(0, 10, 100, 1000, 10000, 50000, 100000, 500000),
)

settlement_batch_last_run_timestamp_seconds = Gauge(
    "settlement_batch_last_run_timestamp_seconds",
    "Unix time the last settlement batch run finished",
)


class BatchMetrics:
    """Helper class for recording settlement batch metrics."""

    @staticmethod
    @contextmanager
    def track(phase: BatchPhase) -> Iterator[None]:
        """Time one batch run; count it as failed if it raises."""
        started = time.perf_counter()
        try:
            yield
        except Exception:
            settlement_batch_failures_total.labels(phase=phase.value).inc()
            raise
        finally:
            settlement_batch_duration_seconds.labels(phase=phase.value).observe(
                time.perf_counter() - started
            )
            settlement_batch_last_run_timestamp_seconds.set_to_current_time()

    @staticmethod
    def record_created(created: int, records: int) -> None:
        settlement_batch_created_total.inc(created)
        settlement_batch_records.labels(phase=BatchPhase.CREATION.value).observe(records)

    @staticmethod
    def record_confirmed(confirmed: int, records: int) -> None:
        settlement_batch_confirmed_total.inc(confirmed)
        settlement_batch_records.labels(phase=BatchPhase.CONFIRMATION.value).observe(records)

    @staticmethod
    def record_adjustments_confirmed(confirmed: int, records: int) -> None:
        settlement_batch_adjustment_confirmed_total.inc(confirmed)
        settlement_batch_records.labels(phase=BatchPhase.ADJUSTMENT.value).observe(records)
