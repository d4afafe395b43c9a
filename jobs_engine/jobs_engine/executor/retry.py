"""Retry logic with exponential backoff for transient infrastructure errors.

Errors are classified by kind: an explicit :class:`TransientError`, or any
exception whose message contains one of the known connectivity tokens
(connection reset, refused, timeouts).  Everything else is permanent and
propagates on the first failure without sleeping.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERROR_PATTERNS: tuple[str, ...] = (
    "ECONNRESET",
    "ETIMEDOUT",
    "connection",
    "timeout",
    "ECONNREFUSED",
)


class TransientError(Exception):
    """An error the caller knows to be retriable regardless of its message."""


class RetryConfig(BaseModel):
    """Tuneable parameters for retry behaviour."""

    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum number of retry attempts before re-raising.",
    )
    initial_delay: float = Field(
        default=1.0,
        gt=0.0,
        description="Delay in seconds before the first retry; doubles each attempt.",
    )


def is_transient_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* looks like a retriable connectivity failure.

    Matching is a case-insensitive substring test against
    :data:`TRANSIENT_ERROR_PATTERNS`, applied to the exception message (or the
    class name when the message is empty, which covers ``TimeoutError()``).
    """
    if isinstance(exc, TransientError):
        return True
    message = (str(exc) or type(exc).__name__).lower()
    return any(pattern.lower() in message for pattern in TRANSIENT_ERROR_PATTERNS)


def _compute_delay(attempt: int, config: RetryConfig) -> float:
    """Return the backoff delay for *attempt* (zero-based) given *config*."""
    return config.initial_delay * (2**attempt)


async def async_retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig,
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
    on_retry: Callable[[int, float, Exception], None] | None = None,
) -> T:
    """Execute *fn* with asynchronous retry and exponential backoff.

    Parameters
    ----------
    fn:
        A zero-argument coroutine function.  It is invoked from scratch on
        every attempt, so it must be safe to call repeatedly.
    config:
        Retry parameters (see :class:`RetryConfig`).
    is_retryable:
        Classifier deciding whether a failure is worth another attempt.
        Non-retryable exceptions propagate immediately.
    on_retry:
        Optional callback invoked with ``(attempt, delay, exc)`` before each
        backoff sleep.  ``attempt`` is one-based.

    Returns
    -------
    T
        The return value of *fn* on the first successful call.

    Raises
    ------
    Exception
        The first non-retryable exception, or the last exception once
        ``config.max_retries`` retries are exhausted.
    """
    last_exception: Exception | None = None

    for attempt in range(config.max_retries + 1):
        try:
            return await fn()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            last_exception = exc
            if attempt >= config.max_retries:
                break
            delay = _compute_delay(attempt, config)
            logger.warning(
                "Retry %d/%d after %.1fs: %s",
                attempt + 1,
                config.max_retries,
                delay,
                exc,
            )
            if on_retry is not None:
                on_retry(attempt + 1, delay, exc)
            await asyncio.sleep(delay)

    assert last_exception is not None  # noqa: S101
    logger.error("Giving up after %d retries: %s", config.max_retries, last_exception)
    raise last_exception


async def execute_with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    on_retry: Callable[[int, float, Exception], None] | None = None,
) -> T:
    """Run *fn*, retrying transient failures after 1x, 2x, 4x ... *initial_delay*."""
    config = RetryConfig(max_retries=max_retries, initial_delay=initial_delay)
    return await async_retry_with_backoff(fn, config, on_retry=on_retry)
