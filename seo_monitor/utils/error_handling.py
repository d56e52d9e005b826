"""
Error Handling Utility Module

Structured-logging helpers for failures that are expected at the pipeline's
I/O boundaries:

1. log_and_continue() - Log a contained failure and carry on (notifier errors)
2. with_retry() - Retry a blocking call with capped exponential backoff
"""

import functools
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


def log_and_continue(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    error_type: str = "Operation",
) -> None:
    """
    Log a failure with structured context without raising.

    Use this where one failure must not stop the caller, e.g. a notifier
    failing for one alert while the evaluation cycle carries on.

    Args:
        logger: Logger of the calling module
        error: The caught exception
        context: Structured data about what failed (metric_key, alert_id, ...)
        error_type: Human-readable name of the failed operation

    Example:
        try:
            notifier.notify(alert)
        except NotifyError as e:
            log_and_continue(logger, e, context={"alert_id": alert.id}, error_type="Alert notification")
    """
    logger.warning(
        f"{error_type} failed: {error}",
        extra={
            "error_type": error_type,
            "exception_class": type(error).__name__,
            "context": context,
        },
    )


def backoff_delay(attempt: int, backoff_seconds: float, max_backoff_seconds: float | None = None) -> float:
    """Delay before retry number ``attempt`` (1-based): base * 2**(attempt-1), optionally capped."""
    delay = backoff_seconds * (2 ** (attempt - 1))
    if max_backoff_seconds is not None:
        delay = min(delay, max_backoff_seconds)
    return delay


def with_retry(
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    max_backoff_seconds: float | None = 30.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator retrying a blocking function on the given exceptions.

    Notifiers use this for transient network failures; the alert engine
    itself never retries. Exceptions outside ``exceptions`` propagate
    immediately; after the last attempt the final exception is re-raised.

    Args:
        max_attempts: Total attempts including the first call
        backoff_seconds: Delay after the first failure, doubled each retry
        exceptions: Exception types that trigger a retry
        max_backoff_seconds: Upper bound on a single delay (None for no cap)

    Example:
        @with_retry(max_attempts=3, backoff_seconds=1.0, exceptions=(requests.ConnectionError,))
        def post_payload(url: str, payload: dict) -> requests.Response:
            return http_client.post(url, json=payload)
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        logger = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(
                            f"{func.__name__} failed after {max_attempts} attempts: {e}",
                            extra={"function": func.__name__, "attempts": attempt, "exception": type(e).__name__},
                        )
                        raise

                    delay = backoff_delay(attempt, backoff_seconds, max_backoff_seconds)
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}), retrying in {delay:.1f}s: {e}",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt,
                            "delay_seconds": delay,
                            "exception": type(e).__name__,
                        },
                    )
                    time.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
