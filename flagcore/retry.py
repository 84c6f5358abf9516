"""
Retrying datafile downloads.

A download is retried only when the failure is transient: the server could
not be reached, or it answered 429 or 5xx. Any other failure, such as a 404
or a datafile that does not parse, is handed back after the first attempt.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import httpx

from flagcore.errors import FlagcoreError, is_retryable_status

logger = logging.getLogger("flagcore.retry")

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    """Retries after the first attempt. 0 disables retrying."""

    base_delay_ms: int = 100
    """Delay before the first retry, doubled for each further retry."""

    max_delay_ms: int = 10000
    """Upper bound of a single delay."""

    jitter_factor: float = 0.1
    """Share of the delay, 0-1, randomly added or removed."""


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried download."""

    success: bool
    data: Optional[T] = None
    error: Optional[Exception] = None
    attempts: int = 1


DEFAULT_RETRY_CONFIG = RetryConfig()


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Delay in seconds before retry number `attempt` (0-indexed).

    Exponential in the attempt, capped at max_delay_ms, with jitter so that
    many clients do not retry in lockstep.
    """
    delay_ms = min(config.base_delay_ms * 2**attempt, config.max_delay_ms)
    delay_ms += delay_ms * config.jitter_factor * random.uniform(-1, 1)
    return max(0.0, delay_ms) / 1000.0


def is_retryable_error(error: BaseException) -> bool:
    """Whether a failed download is worth another attempt."""
    if isinstance(error, FlagcoreError):
        return error.retryable
    if isinstance(error, httpx.HTTPStatusError):
        return is_retryable_status(error.response.status_code)
    return isinstance(error, httpx.TransportError)


async def fetch_with_retry(
    fn: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
) -> RetryResult[T]:
    """
    Run a download, retrying transient failures with backoff.

    Never raises: the last error is returned in the result.
    """
    cfg = config or DEFAULT_RETRY_CONFIG
    attempt = 0

    while True:
        attempt += 1
        try:
            return RetryResult(success=True, data=await fn(), attempts=attempt)
        except Exception as error:
            if not is_retryable_error(error) or attempt > cfg.max_retries:
                return RetryResult(success=False, error=error, attempts=attempt)

            delay = calculate_backoff(attempt - 1, cfg)
            logger.debug(f"Download attempt {attempt} failed ({error}); retrying in {delay:.3f}s")
            await asyncio.sleep(delay)
