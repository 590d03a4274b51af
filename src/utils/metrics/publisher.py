"""
Prometheus HTTP endpoint for long-lived synchronization workers.
"""

import logging
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Info, start_http_server

from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """
    Serves a registry on ``/metrics`` and publishes an application info metric.

    Args:
        port: Listening port
        registry: Registry to expose (default: the global REGISTRY)
        app_name: ``name`` label of ``bulk_sync_application_info``
        version: ``version`` label of ``bulk_sync_application_info``
        addr: Listening address
    """

    def __init__(
        self,
        port: int = 9091,
        registry: Optional[CollectorRegistry] = None,
        app_name: str = "sqlserver-bulk-sync",
        version: str = "1.0.0",
        addr: str = "0.0.0.0",
    ):
        self.port = port
        self.addr = addr
        self.registry = registry or REGISTRY
        self.app_name = app_name
        self.version = version
        self._started = False
        self._server = None

    def start(self) -> None:
        """
        Publish the info metric and start serving; a second call is a no-op.

        A stopped publisher can be started again.

        Raises:
            RuntimeError: If the port is taken
        """
        if self._started:
            logger.debug(f"Metrics endpoint already serving on port {self.port}")
            return

        try:
            handle = start_http_server(self.port, addr=self.addr, registry=self.registry)
        except OSError as e:
            raise RuntimeError(f"Cannot serve metrics on port {self.port}: {e.strerror or e}") from e

        # Recent prometheus_client versions return (server, thread)
        self._server = handle[0] if isinstance(handle, tuple) else None

        info = get_or_create_metric(
            lambda: Info("bulk_sync_application", "Application metadata", registry=self.registry),
            "bulk_sync_application",
            self.registry,
        )
        info.info({"name": self.app_name, "version": self.version})
        self._started = True
        logger.info(f"Serving metrics on {self.addr}:{self.port}/metrics")

    def stop(self) -> None:
        """Stop the HTTP server when the installed prometheus_client exposes it."""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        self._started = False

    def is_started(self) -> bool:
        return self._started
