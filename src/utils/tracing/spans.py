"""
Span helpers.

``trace_operation`` opens a span around a block, ``trace_function`` around a
whole callable, and ``add_span_attributes`` annotates whichever span is
current. Failures are recorded on the span and re-raised unchanged.
"""

import functools
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from .tracer import get_tracer

_NATIVE_ATTRIBUTE_TYPES = (str, bool, int, float)


def _attribute_value(value: Any) -> Any:
    return value if isinstance(value, _NATIVE_ATTRIBUTE_TYPES) else str(value)


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes: Any,
):
    """
    Run a block inside a span.

    Args:
        operation_name: Span name (``bulk_sync.merge``, ``db.create``...)
        kind: Span kind
        **attributes: Span attributes; values other than str, bool, int and
            float are stored as strings

    Example:
        >>> with trace_operation("bulk_sync.merge", table="dbo.Employees") as span:
        ...     rows = connection.execute(merge_sql)
        ...     span.set_attribute("rows", rows)
    """
    with get_tracer().start_as_current_span(
        operation_name,
        kind=kind,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        span.set_attributes({key: _attribute_value(value) for key, value in attributes.items()})
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_attribute("error.type", type(e).__name__)
            span.set_status(Status(StatusCode.ERROR, f"{type(e).__name__}: {e}"))
            raise


def add_span_attributes(**attributes: Any) -> None:
    """Set attributes on the current span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes({key: _attribute_value(value) for key, value in attributes.items()})


def trace_function(operation_name: str | None = None, **default_attributes: Any):
    """
    Decorator running the wrapped callable inside a span.

    Args:
        operation_name: Span name (default: ``module.qualname``)
        **default_attributes: Attributes set on every span
    """
    def decorator(func):
        name = operation_name or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with trace_operation(name, **{"code.function": func.__name__, **default_attributes}):
                return func(*args, **kwargs)

        return wrapper
    return decorator
