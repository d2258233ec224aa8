"""
Console Render Sink for the command-line runner.

Keeps the timeline as an ordered list of message ids and writes each
change to a text stream.
"""

import bisect
import logging
import sys
from typing import Dict, List, Optional, TextIO

from feed.feed_event import FeedEvent, InsertEvent, NoticeEvent, RemoveEvent
from feed.feed_message import FeedMessage
from feed.feed_signals import FeedSignals
from feed.feed_types import Position

logger = logging.getLogger(__name__)


class ConsoleRenderer:
    """Render Sink that prints the feed to a stream."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.timeline: List[int] = []
        self.messages: Dict[int, FeedMessage] = {}
        self.notices: List[FeedMessage] = []
        self.input_enabled = True
        self.history_available = True

    def attach(self, signals: FeedSignals) -> None:
        """Connect to an engine's signals."""
        signals.connect(self.on_feed_event, weak=False)
        signals.busy_changed.connect(self.on_busy_changed, weak=False)
        signals.history_exhausted.connect(self.on_history_exhausted, weak=False)

    def on_feed_event(self, sender, event: FeedEvent) -> None:
        if isinstance(event, InsertEvent):
            self._insert(event)
        elif isinstance(event, RemoveEvent):
            self._remove(event.message_id)
        elif isinstance(event, NoticeEvent):
            self.notices.append(event.message)
            prefix = "!" if event.recoverable else "!!"
            self._write(f"{prefix} {event.message.body}")

    def on_busy_changed(self, sender, busy: bool) -> None:
        self.input_enabled = not busy

    def on_history_exhausted(self, sender) -> None:
        self.history_available = False
        self._write("-- All history has been loaded. --")

    def _insert(self, event: InsertEvent) -> None:
        message = event.message
        self.messages[message.id] = message
        if event.position == Position.PREPEND:
            # Older ids sort before everything already shown.
            bisect.insort(self.timeline, message.id)
        else:
            self.timeline.append(message.id)
        self._write(self.format_message(message))

    def _remove(self, message_id: int) -> None:
        # Unknown ids are fine: the message may never have been shown here.
        if message_id not in self.messages:
            logger.debug(f"Remove of unknown message {message_id} ignored")
            return
        del self.messages[message_id]
        self.timeline.remove(message_id)
        self._write(f"-- Deleted message {message_id}. --")

    @staticmethod
    def format_message(message: FeedMessage) -> str:
        author = message.author or "system"
        line = f"[#{message.id} {message.created_at or '?'}] {author}: {message.body}"
        if message.attachment:
            kind = "image" if message.attachment.is_image else "file"
            line += f" ({kind} {message.attachment.name}, {message.attachment.byte_size} bytes)"
        if message.is_error:
            line = "ERROR " + line
        return line

    def _write(self, text: str) -> None:
        self.stream.write(text + "\n")
        self.stream.flush()
