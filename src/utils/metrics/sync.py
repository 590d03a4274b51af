"""
Metrics for bulk synchronization runs.

Tracks runs, rows per operation, run duration and refreshed records for
monitoring the staging/merge pipeline.
"""

import logging
import time
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
)

from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


class SyncMetrics:
    """
    Metrics for bulk synchronization operations

    Safe to instantiate more than once against the same registry: metrics
    that already exist are reused.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize synchronization metrics

        Args:
            registry: Custom Prometheus registry (default: global REGISTRY)
        """
        self.registry = registry or REGISTRY

        self.runs_total = get_or_create_metric(
            lambda: Counter(
                "bulk_sync_runs_total",
                "Total number of bulk synchronization runs",
                ["table_name", "status"],
                registry=self.registry,
            ),
            "bulk_sync_runs_total",
            self.registry,
        )

        self.rows_total = get_or_create_metric(
            lambda: Counter(
                "bulk_sync_rows_total",
                "Rows sent to the database by operation",
                ["table_name", "operation"],
                registry=self.registry,
            ),
            "bulk_sync_rows_total",
            self.registry,
        )

        self.duration_seconds = get_or_create_metric(
            lambda: Histogram(
                "bulk_sync_duration_seconds",
                "Duration of bulk synchronization runs in seconds",
                ["table_name"],
                buckets=(0.05, 0.1, 0.5, 1, 5, 10, 30, 60, 120, 300, 600),
                registry=self.registry,
            ),
            "bulk_sync_duration_seconds",
            self.registry,
        )

        self.refreshed_records_total = get_or_create_metric(
            lambda: Counter(
                "bulk_sync_refreshed_records_total",
                "Records refreshed with server generated values",
                ["table_name"],
                registry=self.registry,
            ),
            "bulk_sync_refreshed_records_total",
            self.registry,
        )

        self.last_run_timestamp = get_or_create_metric(
            lambda: Gauge(
                "bulk_sync_last_run_timestamp",
                "Timestamp of the last bulk synchronization run",
                ["table_name"],
                registry=self.registry,
            ),
            "bulk_sync_last_run_timestamp",
            self.registry,
        )

    def record_run(
        self,
        table_name: str,
        success: bool,
        duration: float,
        inserted: int = 0,
        updated: int = 0,
        deleted: int = 0,
        refreshed: int = 0,
    ) -> None:
        """
        Record a synchronization run

        Args:
            table_name: Destination table
            success: Whether the run completed
            duration: Duration in seconds
            inserted: Rows staged for insert
            updated: Rows staged for update
            deleted: Rows staged for delete
            refreshed: Records refreshed from output rows
        """
        status = "success" if success else "failed"

        self.runs_total.labels(table_name=table_name, status=status).inc()
        self.duration_seconds.labels(table_name=table_name).observe(duration)
        self.last_run_timestamp.labels(table_name=table_name).set(time.time())

        for operation, count in (("insert", inserted), ("update", updated), ("delete", deleted)):
            if count:
                self.rows_total.labels(table_name=table_name, operation=operation).inc(count)

        if refreshed:
            self.refreshed_records_total.labels(table_name=table_name).inc(refreshed)

        logger.debug(
            f"Recorded sync run: table={table_name}, status={status}, "
            f"duration={duration:.3f}s, inserted={inserted}, updated={updated}, "
            f"deleted={deleted}, refreshed={refreshed}"
        )
