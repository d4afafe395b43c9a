"""FastAPI application entry-point for the jobs API."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from jobs_api import __version__
from jobs_api.config import APISettings, PlatformEnv
from jobs_api.dependencies import (
    dispose_engine,
    dispose_http_client,
    get_settings,
    init_engine,
    init_http_client,
)
from jobs_api.middleware.api_key import FunctionKeyMiddleware
from jobs_api.middleware.json_formatter import JSONFormatter
from jobs_api.middleware.logging import RequestLoggingMiddleware
from jobs_api.routers import health, job_monitoring, jobs

logger = logging.getLogger(__name__)


def configure_structured_logging() -> None:
    """Replace root handlers with a single JSON ``StreamHandler``."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup:
    - Refuse to start outside dev without a function API key.
    - Initialise the async database engine and, for dev or local SQLite,
      create the tables (production uses Alembic migrations).
    - Initialise the shared outbound HTTP client.

    On shutdown:
    - Close the HTTP client and dispose the engine pool.
    """
    settings: APISettings = app.state.settings

    if settings.platform_env in (PlatformEnv.STAGING, PlatformEnv.PRODUCTION) and not (
        settings.function_api_key.get_secret_value()
    ):
        raise RuntimeError(
            f"API_FUNCTION_API_KEY is required in {settings.platform_env.value} mode. Refusing to start."
        )

    if settings.structured_logging:
        configure_structured_logging()
        logger.info("Structured JSON logging enabled")

    engine = init_engine(settings)
    is_local = settings.database_url.startswith("sqlite")
    logger.info(
        "Database engine initialised (%s, %s)",
        settings.database_url[:40] + "...",
        "local" if is_local else "postgres",
    )

    if settings.platform_env == PlatformEnv.DEV or is_local:
        from jobs_engine.state.database import create_tables

        await create_tables(engine)

    init_http_client(settings)
    if not settings.notifications_url:
        logger.warning("API_NOTIFICATIONS_URL is not set; overdue emails will not be triggered")

    yield

    await dispose_http_client()
    await dispose_engine()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: APISettings | None = None) -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Agency Jobs API",
        description="Scheduled installment status jobs and their run ledger.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Starlette runs the last-added middleware first: logging wraps auth so
    # rejected requests are logged too.
    app.add_middleware(FunctionKeyMiddleware, api_key=settings.function_api_key.get_secret_value())
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(jobs.router, prefix="/api/v1")
    app.include_router(job_monitoring.router, prefix="/api/v1")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal database error"})

    return app


# Module-level application instance used by ``uvicorn jobs_api.main:app``.
app = create_app()
