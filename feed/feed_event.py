"""Event types delivered to the Render Sink."""
from dataclasses import dataclass
from typing import Union

from feed.feed_message import FeedMessage
from feed.feed_types import Origin, Position


@dataclass(frozen=True)
class InsertEvent:
    """
    Place a message in the timeline.

    Attributes:
        message: The message to render
        position: APPEND for live content, PREPEND for older history
        origin: Lane that produced the batch (initial-load, live, history)
    """
    message: FeedMessage
    position: Position
    origin: Origin


@dataclass(frozen=True)
class RemoveEvent:
    """
    Remove a message from the timeline.

    An unknown id must be treated as a no-op by the Render Sink.
    """
    message_id: int


@dataclass(frozen=True)
class NoticeEvent:
    """
    Show a locally synthesized notice.

    Attributes:
        message: Error message with a negative id
        recoverable: False only for the notice that accompanies a polling halt
    """
    message: FeedMessage
    recoverable: bool = True


FeedEvent = Union[InsertEvent, RemoveEvent, NoticeEvent]
