"""
BookingIQ Error Types

Failures that cross component boundaries. Extraction failures never surface
as exceptions to callers (the translator degrades instead); the rest
propagate to the orchestrator and the HTTP layer.
"""
from typing import Optional


class BookingIQError(Exception):
    """Base class for all BookingIQ errors."""


class LLMServiceError(BookingIQError):
    """The text-generation service failed or returned an unusable response."""

    def __init__(self, message: str, transient: bool = False, provider: Optional[str] = None):
        super().__init__(message)
        self.transient = transient
        self.provider = provider


class ExtractionError(BookingIQError):
    """The extraction payload could not be located or does not fit the query schema."""


class DataStoreError(BookingIQError):
    """The booking store could not serve a read."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class NarrativeUnavailableError(BookingIQError):
    """The narrative could not be generated for a non-empty result."""
