"""
Distributed tracing using OpenTelemetry.

Instruments:
- Synchronization phases (stage, merge, refresh, delete)
- Every SQL statement sent to SQL Server
- Public entry points of the bulk synchronizer
"""

from .database import statement_verb, trace_sql_statement
from .spans import add_span_attributes, trace_function, trace_operation
from .tracer import get_tracer, initialize_tracing, shutdown_tracing

__all__ = [
    "initialize_tracing",
    "get_tracer",
    "shutdown_tracing",
    "trace_operation",
    "trace_function",
    "trace_sql_statement",
    "statement_verb",
    "add_span_attributes",
]
