"""
Retry wrapper with exponential backoff for provider calls.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from clinicai.errors import ProviderAPIError, ScanCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """
    Rate limits (429), server errors (5xx) and errors without an HTTP status
    are retryable. Other HTTP statuses and cancellations are not.
    """
    if isinstance(error, ScanCancelledError):
        return False
    if isinstance(error, ProviderAPIError):
        return error.status == 429 or error.status >= 500
    return True


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Await fn(), retrying retryable failures up to max_retries extra times.

    The delay before each retry starts at initial_delay seconds and doubles
    after every attempt. The last error is re-raised unchanged.
    """
    sleep = sleep or asyncio.sleep
    delay = initial_delay
    attempt = 0

    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as e:
            if attempt > max_retries or not is_retryable(e):
                raise
            logger.warning(
                "[RETRY] Attempt %d failed (%s). Retrying in %.1fs...", attempt, e, delay
            )
            await sleep(delay)
            delay *= 2
