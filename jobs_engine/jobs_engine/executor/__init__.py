"""Execution helpers for scheduled jobs."""

from __future__ import annotations

from jobs_engine.executor.retry import (
    RetryConfig,
    TransientError,
    async_retry_with_backoff,
    execute_with_retry,
    is_transient_error,
)

__all__ = [
    "RetryConfig",
    "TransientError",
    "async_retry_with_backoff",
    "execute_with_retry",
    "is_transient_error",
]
