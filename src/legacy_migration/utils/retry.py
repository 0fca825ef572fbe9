"""Retry decorators using tenacity.

Reads against the legacy document store are retried on transient network
failures with exponential backoff and jitter. Everything else propagates on
the first attempt.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from pymongo.errors import AutoReconnect, NetworkTimeout
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

TRANSIENT_SOURCE_ERRORS = (AutoReconnect, NetworkTimeout)


def _retry_logger(function_name: str) -> Callable[[RetryCallState], None]:
    def _log(retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "source_read_retrying",
            function=function_name,
            attempt=retry_state.attempt_number,
            error=str(exception),
        )

    return _log


def retry_on_source_error(
    max_attempts: int = 3, min_wait: float = 0.5, max_wait: float = 10
) -> Callable[[F], F]:
    """Retry decorator for transient legacy store errors.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            @retry(
                stop=stop_after_attempt(max_attempts),
                wait=wait_random_exponential(multiplier=0.5, min=min_wait, max=max_wait),
                retry=retry_if_exception_type(TRANSIENT_SOURCE_ERRORS),
                before_sleep=_retry_logger(func.__name__),
                reraise=True,
            )
            def _inner() -> Any:
                return func(*args, **kwargs)

            return _inner()

        return wrapper  # type: ignore

    return decorator
