"""Liveness endpoint.

Registered under ``/api/v1/health``, outside the key-protected job prefix,
so load-balancers can check it without credentials.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text

from jobs_api import __version__
from jobs_api.dependencies import SessionFactoryDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(session_factory: SessionFactoryDep) -> dict[str, Any]:
    """Return service health.

    Always HTTP 200; ``db`` reports whether the database answered.
    """
    result: dict[str, Any] = {"status": "healthy", "version": __version__, "db": "ok"}
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("DB health check failed: %s", exc)
        result["db"] = "degraded"
    return result
