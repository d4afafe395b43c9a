"""Trigger endpoint for the installment status job.

Called by the external scheduler once per tick.  Authentication is handled
by :class:`~jobs_api.middleware.api_key.FunctionKeyMiddleware`; by the time
a request reaches this router the ``X-API-Key`` has been verified.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from jobs_engine.ledger.run_ledger import LedgerError

from jobs_api.dependencies import StatusJobServiceDep
from jobs_api.schemas import StatusJobOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])

_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST",
    "Access-Control-Allow-Headers": "Content-Type, X-API-Key",
}


@router.options("/update-installment-statuses", include_in_schema=False)
async def update_installment_statuses_preflight() -> Response:
    return Response(status_code=200, headers=_PREFLIGHT_HEADERS)


@router.post(
    "/update-installment-statuses",
    responses={500: {"description": "The status update failed; the run is recorded as failed."}},
)
async def update_installment_statuses(service: StatusJobServiceDep) -> JSONResponse:
    """Run one invocation of the status transition job.

    Returns 200 with per-agency counts on success and 500 with the error
    message on failure.  Stack traces stay in the run ledger and the logs.
    """
    try:
        outcome = await service.run()
    except LedgerError as exc:
        logger.error("Could not start run for job %s: %s", service.job_name, exc)
        outcome = StatusJobOutcome.failure("Failed to start job logging")

    return JSONResponse(
        status_code=200 if outcome.success else 500,
        content=outcome.to_response(),
        headers={"Access-Control-Allow-Origin": "*"},
    )
