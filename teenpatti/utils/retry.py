"""Bounded retry with exponential backoff for async collaborator calls."""
import asyncio
from typing import Awaitable, Callable, TypeVar

from teenpatti.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    backoff_seconds: float,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    description: str = "operation",
) -> T:
    """Run an async operation, retrying on failure.
    
    Args:
        operation: Zero-argument coroutine factory.
        attempts: Total number of tries (at least 1).
        backoff_seconds: Delay before the second try; doubles each retry.
        retry_on: Exception types that trigger a retry.
        description: Label used in log messages.
        
    Returns:
        The operation's result.
        
    Raises:
        The last exception once attempts are exhausted.
    """
    attempts = max(1, attempts)
    delay = backoff_seconds
    
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt == attempts:
                logger.error(f"{description} failed after {attempts} attempts: {e}")
                raise
            logger.warning(f"{description} failed (attempt {attempt}/{attempts}): {e}; retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
            delay *= 2
    
    raise RuntimeError("unreachable")
