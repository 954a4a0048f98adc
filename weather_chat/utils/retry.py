"""Retry logic for Weather Chat."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import NetworkError, ServerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 1
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    backoff_multiplier: float = 2.0
    retryable_errors: tuple = (
        NetworkError,
        ServerError,
    )


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    **kwargs: Any,
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async function to retry
        *args: Positional arguments for func
        config: Retry configuration
        on_retry: Optional callback called on each retry (attempt_num, exception)
        **kwargs: Keyword arguments for func

    Returns:
        The result of func on success

    Raises:
        The last exception if all attempts fail; non-retryable errors
        are raised immediately
    """
    if config is None:
        config = RetryConfig()

    backoff = config.backoff_base
    attempt = 1
    while True:
        try:
            return await func(*args, **kwargs)
        except config.retryable_errors as exc:
            if attempt >= config.max_attempts:
                if config.max_attempts > 1:
                    logger.warning(f"All {config.max_attempts} attempts failed: {exc}")
                raise

            logger.debug(f"Attempt {attempt} failed: {exc}, retrying in {backoff:.1f}s")
            if on_retry:
                on_retry(attempt, exc)

            await asyncio.sleep(backoff)
            backoff = min(backoff * config.backoff_multiplier, config.backoff_max)
            attempt += 1
