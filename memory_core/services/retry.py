"""Retry logic for calls to external collaborators."""

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    delay: float = 1.0,
    backoff_multiplier: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async function to retry.
        max_retries: Maximum number of retry attempts after the first call.
        delay: Initial delay in seconds.
        backoff_multiplier: Multiplier for exponential backoff.
        exceptions: Tuple of exceptions to catch and retry. An exception
            whose ``retryable`` attribute is false is raised immediately.

    Returns:
        Result of the function call.

    Raises:
        Last exception if all retries fail.
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except exceptions as e:
            if not getattr(e, "retryable", True):
                logger.error(f"Non-retryable error: {str(e)}")
                raise
            if attempt >= max_retries:
                logger.error(
                    f"All {max_retries + 1} attempts failed. Last error: {str(e)}")
                raise
            wait_time = delay * (backoff_multiplier ** attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed: {str(e)}. "
                f"Retrying in {wait_time:.2f}s..."
            )
            await asyncio.sleep(wait_time)

    raise RuntimeError("unreachable")
