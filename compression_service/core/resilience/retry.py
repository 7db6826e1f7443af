"""
Bounded retry policy for provider attempts (tenacity).

Each provider attempt in a race gets its own retry loop; retries never cross
provider boundaries. Backoff doubles from ``base_delay`` and is capped at
``max_delay``: with the defaults the single retry waits 1s.
"""

import asyncio
import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from compression_service.core.config.constants import (
    MAX_RETRIES,
    RETRY_BASE_DELAY_MS,
    RETRY_MAX_DELAY_MS,
)
from compression_service.core.exceptions import ProviderError

# Tenacity needs a std lib logger
std_logger = logging.getLogger(__name__)


def is_retryable_error(exc: BaseException) -> bool:
    """Quota and configuration errors are final; timeouts and other provider errors are not."""
    if isinstance(exc, ProviderError):
        return exc.retryable
    return isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError))


def create_retry_decorator(
    max_attempts: int = MAX_RETRIES,
    base_delay: float = RETRY_BASE_DELAY_MS / 1000,
    max_delay: float = RETRY_MAX_DELAY_MS / 1000,
):
    """
    Build a tenacity retry decorator for async provider calls.

    Args:
        max_attempts: Total tries, including the first one
        base_delay: First backoff in seconds
        max_delay: Backoff cap in seconds

    The last exception is re-raised unchanged once attempts are exhausted.
    """
    return retry(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=base_delay, max=max_delay),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=before_sleep_log(std_logger, logging.WARNING),
        reraise=True,
    )
