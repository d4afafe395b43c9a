"""Middleware components for the jobs API."""

from __future__ import annotations

from jobs_api.middleware.api_key import FunctionKeyMiddleware
from jobs_api.middleware.json_formatter import JSONFormatter
from jobs_api.middleware.logging import RequestLoggingMiddleware

__all__ = [
    "FunctionKeyMiddleware",
    "JSONFormatter",
    "RequestLoggingMiddleware",
]
