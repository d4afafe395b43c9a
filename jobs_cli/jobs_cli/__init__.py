"""Command-line interface for the scheduled installment jobs."""

__version__ = "0.1.0"
