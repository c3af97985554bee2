"""
Contact duplicate detection and merge.

Contacts are grouped by a shared phone number (last 10 digits) or, for
contacts without any usable phone, by name + city + state. Each group keeps
its oldest contact and folds the others into it.
"""

from crm.deduplication.coordinator import DuplicateScrubber
from crm.deduplication.errors import (
    DedupeError,
    GroupTimeoutError,
    LockContentionError,
    StaleGroupError,
    TransactionError,
    ValidationError,
)
from crm.deduplication.models import DuplicateGroup, MatchType, MergeResult, ScrubPreview

__all__ = [
    "DuplicateScrubber",
    # Results
    "DuplicateGroup",
    "MatchType",
    "MergeResult",
    "ScrubPreview",
    # Errors
    "DedupeError",
    "ValidationError",
    "LockContentionError",
    "TransactionError",
    "StaleGroupError",
    "GroupTimeoutError",
]
