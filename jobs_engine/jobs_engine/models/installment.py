"""Lifecycle enums for payment plans and their installments.

Installments move forward only: the status job promotes ``pending`` to
``overdue`` and never touches ``paid`` or ``cancelled`` rows.  Plans that are
not ``active`` are frozen from automatic transition.
"""

from __future__ import annotations

from enum import Enum


class InstallmentStatus(str, Enum):
    """Lifecycle state of a single scheduled payment."""

    PENDING = "pending"
    OVERDUE = "overdue"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentPlanStatus(str, Enum):
    """Lifecycle state of a payment plan."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
