import asyncio
import logging

from .errors import RetryableRepositoryError

logger = logging.getLogger(__name__)


async def retry_async(func, *args, max_attempts: int = 3, backoff_seconds: float = 0.5, **kwargs):
    """
    Await ``func(*args, **kwargs)``, retrying only transient repository failures.

    Waits backoff_seconds * 2**attempt between attempts. Any other error,
    and the last RetryableRepositoryError, propagates unchanged.
    """
    for attempt in range(max_attempts):
        try:
            return await func(*args, **kwargs)
        except RetryableRepositoryError as e:
            if attempt >= max_attempts - 1:
                logger.error("All %s attempts failed for %s: %s", max_attempts, func.__name__, e)
                raise
            wait_time = backoff_seconds * (2 ** attempt)
            logger.warning(
                "Attempt %s/%s failed for %s: %s. Retrying in %ss...",
                attempt + 1, max_attempts, func.__name__, e, wait_time,
            )
            await asyncio.sleep(wait_time)
