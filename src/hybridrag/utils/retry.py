"""
Deadlines and retries for provider calls.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from hybridrag.exceptions import ProviderError, ProviderTimeoutError, RAGError
from hybridrag.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 2
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay with exponential backoff and optional jitter."""
    delay = config.base_delay * (config.exponential_base**attempt)
    delay = min(delay, config.max_delay)
    if config.jitter:
        delay = delay * (0.5 + random.random())
    return delay


async def call_with_retry(
    request_func: Callable[[], Awaitable[Any]],
    *,
    operation: str,
    timeout: float | None = None,
    retry_config: RetryConfig | None = None,
    provider: str | None = None,
) -> Any:
    """
    Execute a provider call under a deadline, retrying with backoff.

    Transport faults and deadline expiry are retried. Errors that say the
    input itself is wrong (``DimensionMismatchError``,
    ``ConfigurationError``) are raised immediately.

    Args:
        request_func: Zero-argument callable returning the awaitable to run
        operation: Name of the operation for logging and error messages
        timeout: Deadline in seconds for each attempt (None for no deadline)
        retry_config: Retry policy (defaults to ``RetryConfig()``)
        provider: Provider name attached to raised errors

    Returns:
        Result from the request function

    Raises:
        ProviderTimeoutError: If the last attempt hit its deadline
        ProviderError: If all retries are exhausted
    """
    config = retry_config or RetryConfig()
    last_error: ProviderError | None = None

    for attempt in range(config.max_retries + 1):
        try:
            if timeout is None:
                return await request_func()
            return await asyncio.wait_for(request_func(), timeout=timeout)
        except asyncio.TimeoutError:
            last_error = ProviderTimeoutError(operation, timeout or 0.0, provider=provider)
        except ProviderError as e:
            last_error = e
        except RAGError:
            raise
        except Exception as e:
            last_error = ProviderError(f"{operation} failed: {e}", provider=provider)
            last_error.__cause__ = e

        if attempt < config.max_retries:
            delay = calculate_delay(attempt, config)
            logger.warning(
                f"{operation} failed (attempt {attempt + 1}/{config.max_retries + 1}): "
                f"{last_error}. Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
        else:
            logger.error(
                f"{operation} failed after {config.max_retries + 1} attempts: {last_error}"
            )

    assert last_error is not None
    raise last_error
