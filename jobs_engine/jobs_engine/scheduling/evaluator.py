"""Overdue transition rule.

An installment is owed until the close of business on its due date in the
agency's own timezone, not at a fixed UTC boundary.
"""

from __future__ import annotations

from datetime import date, time

# Close of business when an agency has no cutoff configured.
DEFAULT_CUTOFF = time(17, 0)


def should_transition(due_date: date, local_date: date, local_time: time, cutoff: time) -> bool:
    """Return ``True`` when a pending installment has become overdue.

    Transitions when the due date is already in the past for the agency, or
    when it is today and the local time is strictly after *cutoff*.  Equality
    with the cutoff does not transition.

    Callers pass only pending installments of active plans; status and plan
    lifecycle are filtered before this point.
    """
    if due_date < local_date:
        return True
    if due_date == local_date:
        return local_time > cutoff
    return False
