"""
Exception types for the feed package.
"""
from typing import Optional


class FeedError(Exception):
    """Base class for all feed synchronization errors."""


class FeedFormatError(FeedError):
    """Raised when a server response does not follow the feed wire format.

    message_id is set when the offending record still carried a usable id.
    """

    def __init__(self, message: str, message_id: Optional[int] = None):
        super().__init__(message)
        self.message_id = message_id


class FeedConfigError(FeedError):
    """Raised when a configuration value is invalid."""


class BusyCounterError(FeedError):
    """Raised when busy counter start/end calls are not matched."""
