"""
Prometheus metrics for bulk synchronization

Usage:
    from utils.metrics import SyncMetrics, initialize_metrics

    metrics = initialize_metrics(port=9091)
    metrics["sync"].record_run("dbo.Employees", success=True, duration=1.2, inserted=250)

Library code only needs ``SyncMetrics``; ``initialize_metrics`` is for hosts
that also want the ``/metrics`` endpoint.
"""

import logging
from typing import Any

from prometheus_client import CollectorRegistry

from .publisher import MetricsPublisher
from .registry import get_or_create_metric
from .sync import SyncMetrics

logger = logging.getLogger(__name__)


def initialize_metrics(
    port: int = 9091,
    registry: CollectorRegistry | None = None,
) -> dict[str, Any]:
    """
    Start the metrics endpoint and create the synchronization metrics

    Returns:
        ``{"publisher": MetricsPublisher, "sync": SyncMetrics}``
    """
    publisher = MetricsPublisher(port=port, registry=registry)
    publisher.start()
    sync_metrics = SyncMetrics(registry=registry)
    logger.debug(f"Synchronization metrics registered, endpoint on port {port}")
    return {"publisher": publisher, "sync": sync_metrics}


__all__ = [
    "MetricsPublisher",
    "SyncMetrics",
    "get_or_create_metric",
    "initialize_metrics",
]
