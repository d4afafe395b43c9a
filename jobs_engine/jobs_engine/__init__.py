"""Scheduling engine for automated installment status transitions."""

__version__ = "0.1.0"
