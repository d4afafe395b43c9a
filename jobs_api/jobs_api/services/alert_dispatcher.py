"""Operational alerts for the scheduled jobs, delivered to a Slack webhook.

Two situations raise an alert: a run that finished ``failed``, and a health
check that finds the daily job has missed its window.

INVARIANT: Alert dispatch is fire-and-forget.  Failures are logged but never
propagate to the caller.  With no webhook configured every alert is a logged
no-op.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

import httpx
from jobs_engine.ledger.metrics import JobHealth
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 5.0


class Alert(BaseModel):
    """A single operational alert."""

    subject: str
    message: str
    severity: Literal["warning", "critical"] = "critical"
    job_name: str
    fields: dict[str, str] = {}


def job_failed_alert(job_name: str, run_id: str, error: str) -> Alert:
    return Alert(
        subject=f"ALERT: {job_name} failed",
        message=f'The scheduled job "{job_name}" failed: {error}',
        job_name=job_name,
        fields={"Run ID": run_id},
    )


def missed_run_alert(health: JobHealth) -> Alert:
    last_run = health.last_run.isoformat() if health.last_run else "Never"
    return Alert(
        subject=f"ALERT: {health.job_name} Missed Execution",
        message=(
            f'The scheduled job "{health.job_name}" has not run in '
            f"{health.hours_since_last_run} hours. Expected daily execution. "
            f"Last run: {last_run}"
        ),
        job_name=health.job_name,
        fields={
            "Last Run": last_run,
            "Hours Since Last Run": str(health.hours_since_last_run),
        },
    )


class AlertDispatcher:
    """Post alerts to a Slack incoming webhook.

    Parameters
    ----------
    webhook_url:
        Slack incoming-webhook URL.  Empty disables delivery.
    app_url:
        Base URL linked from the alert's "View Logs" button.
    http_client:
        Optional ``httpx.AsyncClient`` for testing.
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        app_url: str = "",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._app_url = app_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=_TIMEOUT_SECONDS)
        self._owns_client = http_client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _slack_payload(self, alert: Alert) -> dict[str, Any]:
        fields = [{"type": "mrkdwn", "text": f"*Job Name:*\n{alert.job_name}"}]
        fields += [{"type": "mrkdwn", "text": f"*{k}:*\n{v}"} for k, v in alert.fields.items()]
        fields.append({"type": "mrkdwn", "text": f"*Severity:*\n{alert.severity.upper()}"})

        blocks: list[dict[str, Any]] = [
            {"type": "header", "text": {"type": "plain_text", "text": f":rotating_light: {alert.subject}"}},
            {"type": "section", "text": {"type": "mrkdwn", "text": alert.message}},
            {"type": "section", "fields": fields},
        ]
        if self._app_url:
            blocks.append(
                {
                    "type": "actions",
                    "elements": [
                        {
                            "type": "button",
                            "text": {"type": "plain_text", "text": "View Logs"},
                            "url": f"{self._app_url}/admin/jobs",
                            "style": "danger",
                        }
                    ],
                }
            )
        return {"text": f":rotating_light: {alert.subject}", "blocks": blocks}

    async def send(self, alert: Alert) -> bool:
        """Deliver *alert*; return ``True`` if the webhook accepted it."""
        if not self._webhook_url:
            logger.warning("No alert channel configured; dropping alert: %s", alert.subject)
            return False

        try:
            response = await self._client.post(self._webhook_url, json=self._slack_payload(alert))
        except httpx.HTTPError as exc:
            logger.error("Failed to send Slack alert %r: %s", alert.subject, exc)
            return False

        if not response.is_success:
            logger.error(
                "Slack webhook rejected alert %r: HTTP %d",
                alert.subject,
                response.status_code,
            )
            return False

        logger.info("Alert sent: %s", alert.subject)
        return True
