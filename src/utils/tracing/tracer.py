"""
OpenTelemetry tracer provider setup.

``get_tracer`` configures a provider on first use, so library code never
has to call ``initialize_tracing`` itself. Exporters:

* OTLP over gRPC when ``otlp_endpoint`` or ``OTLP_ENDPOINT`` is set
* console when ``console_export`` or ``TRACE_CONSOLE=true``

Without either, spans are still created and sampled in-process.
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "sqlserver-bulk-sync"

_provider: TracerProvider | None = None
_tracer: trace.Tracer | None = None


def initialize_tracing(
    service_name: str = DEFAULT_SERVICE_NAME,
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    sampling_rate: float = 1.0,
) -> trace.Tracer:
    """
    Create the tracer provider and register it globally.

    Calling it again returns the existing tracer.

    Args:
        service_name: ``service.name`` resource attribute
        otlp_endpoint: OTLP collector endpoint (default: OTLP_ENDPOINT)
        console_export: Also print finished spans
        sampling_rate: Fraction of root traces sampled, 0.0 to 1.0

    Raises:
        ValueError: If the sampling rate is out of range
    """
    global _provider, _tracer

    if _tracer is not None:
        return _tracer

    if not 0.0 <= sampling_rate <= 1.0:
        raise ValueError(f"sampling_rate must be between 0.0 and 1.0, got {sampling_rate}")

    provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: service_name}),
        sampler=ParentBased(TraceIdRatioBased(sampling_rate)),
    )

    exporters = []
    endpoint = otlp_endpoint or os.getenv("OTLP_ENDPOINT")
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
        exporters.append(f"otlp:{endpoint}")
    if console_export or os.getenv("TRACE_CONSOLE", "").lower() == "true":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        exporters.append("console")

    trace.set_tracer_provider(provider)
    _provider = provider
    _tracer = provider.get_tracer(service_name)

    logger.info(
        f"Tracing initialized for {service_name} "
        f"(exporters: {', '.join(exporters) or 'none'}, sampling: {sampling_rate})"
    )
    return _tracer


def get_tracer() -> trace.Tracer:
    """Tracer of this process, initialized with defaults on first use."""
    return _tracer if _tracer is not None else initialize_tracing()


def shutdown_tracing() -> None:
    """Flush pending spans and drop the tracer; call before exit."""
    global _provider, _tracer

    if _provider is None:
        return

    _provider.shutdown()
    _provider = None
    _tracer = None
    logger.info("Tracing shut down")
