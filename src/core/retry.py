"""Async retry decorator with exponential backoff."""

import asyncio
import logging
from functools import wraps
from typing import TypeVar, Callable, Any

logger = logging.getLogger(__name__)

T = TypeVar("T")


def async_retry(
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> Callable:
    """
    Decorator that retries an async function on selected exceptions.

    Sleeps backoff_base * 2^(attempt-1) seconds between attempts.
    Exceptions not listed in ``retry_on`` propagate immediately.

    Args:
        max_attempts: Total number of attempts (1 = no retry).
        backoff_base: Base delay in seconds for the first retry.
        retry_on: Exception types that trigger another attempt.
    """
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await fn(*args, **kwargs)
                except retry_on as exc:
                    if attempt >= max_attempts:
                        logger.error(
                            f"{fn.__name__} failed after {max_attempts} attempts: {exc}"
                        )
                        raise
                    delay = backoff_base * (2 ** (attempt - 1))
                    logger.warning(
                        f"{fn.__name__} attempt {attempt}/{max_attempts} "
                        f"failed: {exc}. Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
        return wrapper
    return decorator
