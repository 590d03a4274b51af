"""
Retry decorators with exponential backoff for connection-level operations

Used for opening connections and fetching credentials, never for the
statements of a synchronization run: a failed DDL/DML statement surfaces to
the caller on the first failure.

Usage:
    from utils.retry import retry_database_operation

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def connect():
        return pyodbc.connect(connection_string)
"""

import logging
import random
import time
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)

RetryCallback = Callable[[int, Exception, float], None]


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Delay before the next attempt (0-based attempt number)

    Jitter spreads the delay by +/-25% with a floor of 100ms.
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)

    if jitter:
        jitter_amount = delay * 0.25
        delay = delay + random.uniform(-jitter_amount, jitter_amount)
        delay = max(0.1, delay)

    return delay


def _run_with_retries(
    func: Callable,
    args: tuple,
    kwargs: dict,
    max_retries: int,
    should_retry: Callable[[Exception], bool],
    delay_for: Callable[[int], float],
    on_retry: Optional[RetryCallback],
) -> Any:
    func_name = getattr(func, "__name__", "function")

    for attempt in range(max_retries + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not should_retry(e):
                logger.error(
                    f"Non-retryable exception in {func_name}: {type(e).__name__}: {e}"
                )
                raise

            if attempt == max_retries:
                logger.error(
                    f"Max retries ({max_retries}) exceeded for {func_name}: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            delay = delay_for(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{max_retries} failed for {func_name}: "
                f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
            )

            if on_retry:
                try:
                    on_retry(attempt + 1, e, delay)
                except Exception as callback_error:
                    logger.error(f"Error in retry callback: {callback_error}")

            time.sleep(delay)

    raise RuntimeError(f"Unexpected error in retry logic for {func_name}")


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    on_retry: Optional[RetryCallback] = None,
):
    """
    Decorator that retries a function with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)
        exponential_base: Base for exponential backoff (default: 2.0)
        jitter: Add random jitter to prevent thundering herd (default: True)
        retryable_exceptions: Exception types to retry (default: all exceptions)
        on_retry: Callback function(attempt, exception, delay) called on each retry

    Example:
        @retry_with_backoff(
            max_retries=5,
            retryable_exceptions=(ConnectionError, TimeoutError),
        )
        def fetch_secret():
            return requests.get(url, timeout=10)
    """
    def should_retry(exc: Exception) -> bool:
        return not retryable_exceptions or isinstance(exc, retryable_exceptions)

    def delay_for(attempt: int) -> float:
        return compute_delay(attempt, base_delay, max_delay, exponential_base, jitter)

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            return _run_with_retries(
                func, args, kwargs, max_retries, should_retry, delay_for, on_retry
            )

        return wrapper
    return decorator


# Message fragments of transient connection failures (ODBC and generic)
RETRYABLE_PATTERNS = (
    "connection",
    "timeout",
    "deadlock",
    "lost connection",
    "can't connect",
    "unable to connect",
    "connection refused",
    "connection reset",
    "broken pipe",
    "network error",
    "communication link failure",
    "login timeout expired",
    "tcp provider",
)

RETRYABLE_EXCEPTION_NAMES = (
    "connectionerror",
    "timeouterror",
    "operationalerror",
    "interfaceerror",
)


def is_retryable_db_exception(exception: Exception) -> bool:
    """
    Determine if a database exception is transient

    Syntax errors, constraint violations and programming errors are not
    retryable; connection loss, timeouts and deadlocks are.

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable, False otherwise
    """
    exception_str = str(exception).lower()
    exception_type = type(exception).__name__.lower()

    for pattern in RETRYABLE_PATTERNS:
        if pattern in exception_str or pattern in exception_type:
            return True

    return exception_type in RETRYABLE_EXCEPTION_NAMES


def retry_database_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    on_retry: Optional[RetryCallback] = None,
):
    """
    Convenience decorator for connection operations with smart exception filtering

    Only retries on transient database errors (connection, timeout, deadlock, etc.)
    Non-retryable errors fail immediately.

    Example:
        @retry_database_operation(max_retries=5)
        def open_connection():
            return pyodbc.connect(connection_string)
    """
    def delay_for(attempt: int) -> float:
        return compute_delay(attempt, base_delay, 60.0)

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            return _run_with_retries(
                func, args, kwargs, max_retries,
                is_retryable_db_exception, delay_for, on_retry,
            )

        return wrapper
    return decorator
