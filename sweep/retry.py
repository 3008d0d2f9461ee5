import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from config.config import SWEEP_RETRY_ATTEMPTS, SWEEP_RETRY_BASE_DELAY
from errors.exceptions import SweeperError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(fn: Callable[[], Awaitable[T]],
                             attempts: int = SWEEP_RETRY_ATTEMPTS,
                             base_delay: float = SWEEP_RETRY_BASE_DELAY,
                             sleep: Callable[[float], Awaitable] = asyncio.sleep,
                             description: str = "operation") -> T:
    """
    Await ``fn`` up to ``attempts`` times, doubling the delay after each failure.

    A SweeperError marked non-retryable is raised immediately. The last
    error is re-raised once attempts are exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except SweeperError as e:
            if not e.retryable:
                raise
            if attempt == attempts:
                raise
            error = e
        except Exception as e:
            if attempt == attempts:
                raise
            error = e

        delay = base_delay * (2 ** (attempt - 1))
        logger.warning(f"{description} failed (attempt {attempt}/{attempts}): {error}; retrying in {delay}s")
        await sleep(delay)
