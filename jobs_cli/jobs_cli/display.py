"""Rich output formatting for the jobs CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from jobs_api.schemas import StatusJobOutcome
    from jobs_engine.ledger.metrics import JobHealth, JobMetrics

# ---------------------------------------------------------------------------
# Status colour mapping
# ---------------------------------------------------------------------------

_STATUS_COLOURS: dict[str, str] = {
    "success": "green",
    "failed": "red",
    "running": "yellow",
    "healthy": "green",
    "warning": "yellow",
    "critical": "red",
}


def _coloured_status(status: str) -> str:
    """Return a Rich markup string with the status colour-coded."""
    colour = _STATUS_COLOURS.get(status, "white")
    return f"[{colour}]{status}[/{colour}]"


# ---------------------------------------------------------------------------
# Job run outcome
# ---------------------------------------------------------------------------


def display_job_outcome(console: Console, outcome: StatusJobOutcome) -> None:
    """Render the per-agency result table of one status job invocation.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    outcome:
        The invocation result returned by the job service.
    """
    if not outcome.success:
        console.print(Panel(f"[red]{outcome.error}[/red]", title="Job Failed", border_style="red"))
        return

    if not outcome.agencies:
        console.print("[dim]No agencies processed.[/dim]")
    else:
        table = Table(title="Installment Status Update", show_lines=False, pad_edge=True, expand=False)
        table.add_column("Agency", style="bold")
        table.add_column("Updated", justify="right")
        table.add_column("Pending -> Overdue", justify="right")

        for result in outcome.agencies:
            table.add_row(
                result.agency_id,
                str(result.updated_count),
                str(result.transitions.pending_to_overdue),
            )
        console.print(table)

    console.print(
        f"[bold]{outcome.records_updated}[/bold] installment(s) updated | "
        f"{outcome.notifications_created} notification(s) | "
        f"{outcome.emails_sent} email(s)"
    )
    for error in (outcome.notification_errors or []) + (outcome.email_errors or []):
        console.print(f"[yellow]Warning:[/yellow] {error}")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def display_health(console: Console, health: JobHealth) -> None:
    last_run = health.last_run.isoformat() if health.last_run else "never"
    lines = [
        f"[bold]Job:[/bold]        {health.job_name}",
        f"[bold]Status:[/bold]     {_coloured_status(health.status.value)}",
        f"[bold]Last run:[/bold]   {last_run}",
        f"[bold]Hours since:[/bold] {health.hours_since_last_run}",
        "",
        health.message,
    ]
    console.print(Panel("\n".join(lines), title="Job Health", border_style="blue"))


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def display_metrics(console: Console, metrics: JobMetrics) -> None:
    """Render summary, performance, recent executions and the daily trend."""
    summary = metrics.summary
    perf = metrics.performance
    header_lines = [
        f"[bold]Job:[/bold]          {metrics.job_name}",
        f"[bold]Window:[/bold]       last {metrics.time_range.days} day(s)",
        f"[bold]Runs:[/bold]         {summary.total_runs} "
        f"([green]{summary.successful_runs} ok[/green], [red]{summary.failed_runs} failed[/red])",
        f"[bold]Success rate:[/bold] {summary.success_rate:.2f}%",
        f"[bold]Records:[/bold]      {summary.total_records_updated}",
        f"[bold]Duration:[/bold]     avg {perf.avg_duration_seconds:.2f}s, "
        f"min {perf.min_duration_seconds:.2f}s, max {perf.max_duration_seconds:.2f}s",
        f"[bold]Health:[/bold]       {_coloured_status(metrics.health_status.status.value)}",
    ]
    console.print(Panel("\n".join(header_lines), title="Job Metrics", border_style="blue"))

    if metrics.recent_executions:
        table = Table(title="Recent Executions", show_lines=False, pad_edge=True, expand=False)
        table.add_column("Started", style="bold")
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Records", justify="right")
        table.add_column("Error")
        for run in metrics.recent_executions:
            duration = f"{run.duration_seconds:.2f}s" if run.duration_seconds is not None else "-"
            table.add_row(
                run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
                _coloured_status(run.status.value),
                duration,
                str(run.records_updated),
                run.error_message or "",
            )
        console.print(table)

    if metrics.daily_trend:
        trend = Table(title="Daily Trend", show_lines=False, pad_edge=True, expand=False)
        trend.add_column("Date", style="bold")
        trend.add_column("Runs", justify="right")
        trend.add_column("OK", justify="right")
        trend.add_column("Failed", justify="right")
        trend.add_column("Records", justify="right")
        trend.add_column("Avg Duration", justify="right")
        for day in metrics.daily_trend:
            trend.add_row(
                day.date,
                str(day.runs),
                str(day.successful_runs),
                str(day.failed_runs),
                str(day.total_records_updated),
                f"{day.avg_duration_seconds:.2f}s",
            )
        console.print(trend)
