"""
Common enums for the feed module.
"""
from enum import Enum


class Position(str, Enum):
    """Where the Render Sink places an inserted message."""
    APPEND = "append"
    PREPEND = "prepend"


class Origin(str, Enum):
    """Which request lane produced a batch."""
    INITIAL_LOAD = "initial-load"
    LIVE = "live"
    HISTORY = "history"


class FailureKind(str, Enum):
    """Classification of a failed gateway request."""
    TIMEOUT = "timeout"
    NETWORK = "network"
    APPLICATION = "application"
    AUTHORIZATION = "authorization"

    @classmethod
    def transient_kinds(cls):
        """Kinds that are expected during long polling and retried silently."""
        return {cls.TIMEOUT, cls.NETWORK}


class PollState(str, Enum):
    """States of the live-poll lane."""
    IDLE = "idle"
    REQUESTING = "requesting"
    HALTED = "halted"
