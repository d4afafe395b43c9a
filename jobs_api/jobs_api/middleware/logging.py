"""Request-logging middleware for the jobs API."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("jobs_api.access")

# Header names whose values must be masked in log output.
_SENSITIVE_HEADERS: frozenset[str] = frozenset({"authorization", "x-api-key", "cookie"})
_MASK = "***"

CORRELATION_HEADER = "X-Correlation-ID"


def mask_headers(headers: Any) -> dict[str, str]:
    """Return a copy of *headers* with credential values masked."""
    return {k: (_MASK if k.lower() in _SENSITIVE_HEADERS else v) for k, v in headers.items()}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration.

    Each request is tagged with a correlation id, taken from the incoming
    ``X-Correlation-ID`` header or generated, and echoed on the response.
    Scheduler calls carry the shared secret in ``X-API-Key``; it is masked
    before anything is logged.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        start = time.monotonic()
        response: Response | None = None
        try:
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            status_code = response.status_code if response is not None else 500
            log_payload: dict[str, Any] = {
                "method": request.method,
                "path": request.url.path,
                "query": str(request.url.query) or None,
                "status_code": status_code,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
                "client": request.client.host if request.client else None,
                "correlation_id": correlation_id,
                "caller": getattr(request.state, "caller", "anonymous"),
                "headers": mask_headers(request.headers),
            }
            if status_code >= 500:
                logger.error("request completed", extra={"request": log_payload})
            elif status_code >= 400:
                logger.warning("request completed", extra={"request": log_payload})
            else:
                logger.info("request completed", extra={"request": log_payload})
