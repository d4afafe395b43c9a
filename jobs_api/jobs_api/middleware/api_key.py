"""Shared-secret authentication for the scheduler-facing job endpoints.

The external scheduler sends a static secret in the ``X-API-Key`` header.
Requests under the protected prefix are rejected with ``401
{"error": "Unauthorized"}`` before any handler runs, so an unauthenticated
call never creates a job run.  CORS preflight (``OPTIONS``) requests pass
through untouched.

When no key is configured every protected request is rejected.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
PROTECTED_PREFIX = "/api/v1/jobs"


def is_valid_key(presented: str | None, expected: str) -> bool:
    """Constant-time comparison; an empty *expected* key never matches."""
    if not expected or not presented:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


class FunctionKeyMiddleware(BaseHTTPMiddleware):
    """Reject job requests whose ``X-API-Key`` does not match the configured key."""

    def __init__(self, app: Any, api_key: str, protected_prefix: str = PROTECTED_PREFIX) -> None:
        super().__init__(app)
        self._api_key = api_key
        self._protected_prefix = protected_prefix
        if not api_key:
            logger.warning("No function API key configured; all %s requests will be rejected", protected_prefix)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS" or not request.url.path.startswith(self._protected_prefix):
            return await call_next(request)

        if not is_valid_key(request.headers.get(API_KEY_HEADER), self._api_key):
            logger.warning("Rejected unauthenticated %s %s", request.method, request.url.path)
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        request.state.caller = "scheduler"
        return await call_next(request)
