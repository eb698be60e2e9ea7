"""
Retry logic with pure exponential backoff.

The retry controller is agnostic to what the wrapped operation does. Jitter
lives in the pacing layer, so backoff here is deterministic:
``base_delay_ms * 2 ** attempt`` with no cap.
"""

import time
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from src.config.logging import get_logger
from .errors import RateLimitExceeded, is_retryable


logger = get_logger(__name__)

T = TypeVar("T")


def backoff_delay_ms(base_delay_ms: int, attempt: int) -> int:
    """
    Calculate the wait before the retry that follows ``attempt``.

    Args:
        base_delay_ms: Base delay in milliseconds
        attempt: Zero-based index of the attempt that just failed

    Returns:
        Delay in milliseconds
    """
    return base_delay_ms * (2 ** attempt)


def run_with_retry(
    operation: Callable[[], T],
    max_retries: int,
    base_delay_ms: int,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, BaseException, int], None]] = None,
    operation_name: Optional[str] = None
) -> T:
    """
    Run ``operation`` and retry it with exponential backoff on failure.

    The operation is invoked at most ``max_retries + 1`` times. Errors that
    cannot be fixed by trying again (parsing, configuration) propagate at
    once. A rate-limit denial waits at least as long as the limiter asked.

    Args:
        operation: Zero-argument callable to run
        max_retries: Number of retries after the first attempt
        base_delay_ms: Backoff base in milliseconds
        sleep: Sleep function taking seconds
        on_retry: Optional hook called with (attempt, error, delay_ms)
        operation_name: Name used in log messages

    Returns:
        Whatever ``operation`` returns

    Raises:
        Exception: The last error observed once retries are exhausted
    """
    if max_retries < 0:
        raise ValueError("Max retries must be non-negative")

    name = operation_name or getattr(operation, "__name__", "operation")

    for attempt in range(max_retries + 1):
        try:
            return operation()
        except Exception as e:
            if not is_retryable(e):
                logger.debug(f"Non-retryable error in {name}", error_type=type(e).__name__, attempt=attempt + 1)
                raise

            if attempt >= max_retries:
                logger.warning(
                    f"Max retries ({max_retries}) exceeded for {name}",
                    attempts=attempt + 1,
                    final_error=str(e)
                )
                raise

            delay_ms = backoff_delay_ms(base_delay_ms, attempt)
            if isinstance(e, RateLimitExceeded):
                delay_ms = max(delay_ms, e.retry_after_ms)

            logger.info(
                f"Attempt {attempt + 1}/{max_retries + 1} failed for {name}, retrying",
                error=str(e),
                error_type=type(e).__name__,
                delay_ms=delay_ms
            )

            if on_retry is not None:
                on_retry(attempt, e, delay_ms)

            sleep(delay_ms / 1000.0)

    raise RuntimeError("unreachable")


def with_retry(max_retries: int, base_delay_ms: int, sleep: Callable[[float], None] = time.sleep):
    """
    Decorator to add retry logic to functions.

    Args:
        max_retries: Number of retries after the first attempt
        base_delay_ms: Backoff base in milliseconds
        sleep: Sleep function taking seconds

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            return run_with_retry(
                lambda: func(*args, **kwargs),
                max_retries=max_retries,
                base_delay_ms=base_delay_ms,
                sleep=sleep,
                operation_name=func.__name__
            )

        return wrapper
    return decorator
