"""Utility modules for the CRM engine."""

from crm.utils.logging import setup_logging

__all__ = [
    # Logging
    "setup_logging",
]
