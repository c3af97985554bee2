"""Error taxonomy for the duplicate scrubber."""


class DedupeError(Exception):
    """Base class for duplicate scrubber errors."""


class ValidationError(DedupeError):
    """Malformed invocation, raised before any scan."""


class LockContentionError(DedupeError):
    """Another execute run holds the scrubber lock."""

    def __init__(self, lock_name: str):
        self.lock_name = lock_name
        super().__init__(f"Duplicate merge already running (lock '{lock_name}' is held)")


class TransactionError(DedupeError):
    """A single group's merge failed and was rolled back."""

    def __init__(self, match_key: str, reason: str):
        self.match_key = match_key
        self.reason = reason
        super().__init__(f"{match_key}: {reason}")


class StaleGroupError(TransactionError):
    """A member changed or disappeared between the scan and the write."""


class GroupTimeoutError(TransactionError):
    """A group's transaction exceeded its time budget."""
