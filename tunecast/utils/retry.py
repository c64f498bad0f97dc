"""
Retry Helpers
Exponential backoff for remote calls that fail transiently (Drive, YouTube)
"""

import asyncio
import functools
import random
from typing import Callable, Optional, Tuple, Type

from .logger import get_logger

logger = get_logger()


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
) -> float:
    """Seconds to wait before retry number ``attempt + 1`` (attempt counts from 0)."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


def retry_async(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    should_retry: Optional[Callable[[Exception], bool]] = None,
):
    """
    Retry an async callable with exponential backoff

    Only exceptions in ``retryable_exceptions`` for which ``should_retry``
    (when given) returns True are retried; anything else propagates at once.
    After ``max_retries`` retries the last exception is re-raised.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    if should_retry is not None and not should_retry(e):
                        raise
                    if attempt >= max_retries:
                        logger.error(f"{func.__name__} gave up after {attempt + 1} attempts: {e}")
                        raise

                    delay = backoff_delay(attempt, base_delay, max_delay, jitter)
                    attempt += 1
                    logger.warning(
                        f"{func.__name__} failed ({str(e)[:100]}); "
                        f"retry {attempt}/{max_retries} in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)

        return wrapper
    return decorator
