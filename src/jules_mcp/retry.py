"""
Retry logic with exponential backoff.

Provides the request retry decorator used by JulesClient and a simpler
fixed-delay helper for idempotent reads.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    # Total time budget across all retries, in seconds (None = unbounded)
    max_retry_time: Optional[float] = None
    retryable_status_codes: set[int] = field(
        default_factory=lambda: {408, 429, 500, 502, 503, 504}
    )

    @classmethod
    def from_rate_limit_ms(
        cls,
        max_retry_ms: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
    ) -> "RetryConfig":
        """Build a config from the millisecond rate-limit settings."""
        config = cls()
        if base_delay_ms is not None:
            config.initial_delay = base_delay_ms / 1000
        if max_delay_ms is not None:
            config.max_delay = max_delay_ms / 1000
        if max_retry_ms is not None:
            config.max_retry_time = max_retry_ms / 1000
        return config


class RetryableError(Exception):
    """Error that should trigger a retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NonRetryableError(Exception):
    """Error that should not be retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def calculate_delay(
    attempt: int,
    config: RetryConfig,
) -> float:
    """
    Calculate delay before next retry using exponential backoff.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = config.initial_delay * (config.exponential_base**attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        # Up to 25% jitter
        delay += delay * 0.25 * random.random()

    return delay


def _budget_allows(started: float, delay: float, config: RetryConfig) -> bool:
    if config.max_retry_time is None:
        return True
    return (time.monotonic() - started) + delay <= config.max_retry_time


def with_async_retry(
    config: Optional[RetryConfig] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator for adding retry logic to async functions.

    Retries on RetryableError and httpx transport errors. NonRetryableError
    propagates immediately. Retrying stops early once the next delay would
    exceed ``config.max_retry_time``.

    Args:
        config: Retry configuration (uses defaults if not provided)

    Returns:
        Decorated async function with retry logic
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            started = time.monotonic()
            last_exception: Optional[Exception] = None

            for attempt in range(config.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except NonRetryableError:
                    raise
                except RetryableError as e:
                    last_exception = e
                except httpx.TimeoutException:
                    raise
                except httpx.RequestError as e:
                    last_exception = RetryableError(f"Network error: {e}")

                if attempt >= config.max_retries:
                    logger.error(
                        f"Max retries ({config.max_retries}) exceeded for "
                        f"{func.__name__}: {last_exception}"
                    )
                    break

                delay = calculate_delay(attempt, config)
                if not _budget_allows(started, delay, config):
                    logger.error(
                        f"Retry budget exhausted for {func.__name__}: {last_exception}"
                    )
                    break

                logger.warning(
                    f"Retry {attempt + 1}/{config.max_retries} for {func.__name__}: "
                    f"{last_exception}, waiting {delay:.2f}s"
                )
                await asyncio.sleep(delay)

            raise last_exception or RuntimeError("Unexpected retry loop exit")

        return wrapper

    return decorator


async def retry_fixed(
    func: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay_ms: int = 1000,
) -> T:
    """
    Call ``func`` up to ``attempts`` times with a fixed pause between tries.

    The last exception is re-raised if every attempt fails.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except Exception as e:
            if attempt >= attempts:
                raise
            logger.warning(
                f"Attempt {attempt}/{attempts} failed: {e}, retrying in {delay_ms}ms"
            )
            await asyncio.sleep(delay_ms / 1000)
    raise RuntimeError("retry_fixed called with attempts < 1")


def check_response(response: httpx.Response, config: RetryConfig) -> None:
    """
    Check HTTP response and raise appropriate error.

    Args:
        response: HTTP response to check
        config: Retry configuration

    Raises:
        RetryableError: If the error should be retried
        NonRetryableError: If the error should not be retried
    """
    if response.is_success:
        return

    status_code = response.status_code
    message = response.text[:500] or f"HTTP {status_code}: {response.reason_phrase}"

    if status_code in config.retryable_status_codes:
        raise RetryableError(message, status_code=status_code)
    raise NonRetryableError(message, status_code=status_code)
