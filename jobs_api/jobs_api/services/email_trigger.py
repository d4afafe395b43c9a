"""Batched trigger for the external email notification service.

Hands the full list of newly-overdue installment ids to the
notification-sending endpoint in a single POST.  That service applies the
agency's notification rules and reports how many emails it sent, failed, or
skipped.

INVARIANT: The trigger is fire-and-forget from the job's point of view.
Transport errors, non-2xx responses and malformed bodies are recorded in the
returned outcome and logged; they never propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 10.0


@dataclass
class EmailTriggerOutcome:
    """Summary counts reported by the notification service."""

    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


class EmailNotificationTrigger:
    """POST ``{"installmentIds": [...], "eventType": ...}`` to the email service.

    Parameters
    ----------
    url:
        Notification-sending endpoint.  When empty the trigger is disabled
        and every call is a logged no-op.
    api_key:
        Sent as the ``X-API-Key`` header.
    http_client:
        Optional ``httpx.AsyncClient`` (tests pass one backed by
        ``httpx.MockTransport``).  A default client is created if not
        provided.
    """

    def __init__(
        self,
        url: str,
        api_key: str = "",
        *,
        timeout: float = _TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    async def trigger(self, installment_ids: list[str], event_type: str = "overdue") -> EmailTriggerOutcome:
        """Send one batched request for *installment_ids*.

        No request is made when the list is empty or the trigger is
        disabled.
        """
        outcome = EmailTriggerOutcome()
        if not installment_ids:
            return outcome
        if not self.enabled:
            logger.info("Email trigger disabled; skipping %d installment(s)", len(installment_ids))
            return outcome

        headers = {"Content-Type": "application/json", "X-API-Key": self._api_key}
        body = {"installmentIds": list(installment_ids), "eventType": event_type}

        try:
            response = await self._client.post(self._url, json=body, headers=headers, timeout=self._timeout)
        except httpx.HTTPError as exc:
            message = f"Email notification request failed: {exc}"
            logger.warning(message)
            outcome.errors.append(message)
            return outcome

        if not response.is_success:
            message = f"Email notification service returned HTTP {response.status_code}: {response.text[:200]}"
            logger.warning(message)
            outcome.errors.append(message)
            return outcome

        try:
            summary = _parse_summary(response.json())
        except ValueError as exc:
            message = f"Malformed email notification response: {exc}"
            logger.warning(message)
            outcome.errors.append(message)
            return outcome

        outcome.sent = summary["sent"]
        outcome.failed = summary["failed"]
        outcome.skipped = summary["skipped"]
        logger.info(
            "Email notifications (%s): sent=%d failed=%d skipped=%d",
            event_type,
            outcome.sent,
            outcome.failed,
            outcome.skipped,
        )
        return outcome


def _parse_summary(payload: Any) -> dict[str, int]:
    if not isinstance(payload, dict) or not isinstance(payload.get("summary"), dict):
        raise ValueError("missing 'summary' object")
    summary = payload["summary"]
    counts: dict[str, int] = {}
    for key in ("sent", "failed", "skipped"):
        value = summary.get(key, 0)
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"summary.{key} is not an integer")
        counts[key] = value
    return counts
