"""Single-line JSON log formatter.

Activate by setting ``API_STRUCTURED_LOGGING=true``; the application then
replaces the default text handlers with a ``StreamHandler`` using this
formatter.

Output schema per line::

    {
        "timestamp": "2025-10-15T07:00:00.123456+00:00",
        "level": "INFO",
        "logger": "jobs_engine.ledger.run_ledger",
        "message": "Started run ... for job update-installment-statuses",
        "request": { ... },          // from RequestLoggingMiddleware
        "job_name": "...",           // when passed via ``extra``
        "run_id": "...",             // when passed via ``extra``
        "exc_info": "Traceback ..."  // only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any

# ``extra`` attributes copied into the payload when present on a record.
_CONTEXT_FIELDS: tuple[str, ...] = ("request", "job_name", "run_id", "agency_id")


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)
