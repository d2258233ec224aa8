"""
Feed synchronization package.

Keeps a locally rendered message timeline consistent with a remote,
append-mostly message log reachable only through request/response polling.
"""
from feed.feed_event import FeedEvent, InsertEvent, NoticeEvent, RemoveEvent
from feed.feed_message import Attachment, FeedBatch, FeedMessage
from feed.feed_types import FailureKind, Origin, PollState, Position

__all__ = [
    "Attachment",
    "FailureKind",
    "FeedBatch",
    "FeedEvent",
    "FeedMessage",
    "InsertEvent",
    "NoticeEvent",
    "Origin",
    "PollState",
    "Position",
    "RemoveEvent",
]
