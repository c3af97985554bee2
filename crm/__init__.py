"""CRM contact store and duplicate scrubber."""

__version__ = "1.0.0"
