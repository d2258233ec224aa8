"""
Feed Signals Module

This module provides the FeedSignals class that manages the blinker
signals through which the synchronization engine talks to the Render Sink.
"""

import logging
from typing import Iterable, Optional

import blinker

from feed.feed_event import FeedEvent
from feed.feed_message import FeedMessage

logger = logging.getLogger(__name__)


class FeedSignals:
    """
    Provides blinker signals for one feed synchronization engine.

    Instances are created by FeedSyncEngine and shared with its lanes.
    Receivers are invoked synchronously, so the order in which a Render
    Sink observes events equals the order in which they were emitted.

    Signals:
        feed_event: sender, event (InsertEvent | RemoveEvent | NoticeEvent)
        busy_changed: sender, busy (bool)
        history_exhausted: sender
        polling_halted: sender, message (FeedMessage)
    """

    def __init__(self):
        self.feed_event = blinker.Signal()
        self.busy_changed = blinker.Signal()
        self.history_exhausted = blinker.Signal()
        self.polling_halted = blinker.Signal()

    def connect(self, receiver, weak: bool = True):
        """
        Connect a receiver function to the feed_event signal.

        Args:
            receiver: A function that receives the signal
            weak: Whether to use a weak reference (default True)
        """
        self.feed_event.connect(receiver, weak=weak)

    def disconnect(self, receiver):
        """
        Disconnect a receiver function from the feed_event signal.

        Args:
            receiver: The function to disconnect
        """
        self.feed_event.disconnect(receiver)

    def emit_event(self, event: FeedEvent) -> None:
        """Deliver one event to every connected Render Sink receiver."""
        self._send(self.feed_event, event=event)

    def emit_events(self, events: Iterable[FeedEvent]) -> None:
        for event in events:
            self.emit_event(event)

    def emit_busy(self, busy: bool) -> None:
        self._send(self.busy_changed, busy=busy)

    def emit_history_exhausted(self) -> None:
        self._send(self.history_exhausted)

    def emit_polling_halted(self, message: Optional[FeedMessage]) -> None:
        self._send(self.polling_halted, message=message)

    def _send(self, signal: blinker.Signal, **kwargs) -> None:
        # A failing receiver is logged; the remaining receivers still run.
        for receiver in list(signal.receivers_for(self)):
            try:
                receiver(self, **kwargs)
            except Exception as e:
                logger.error(f"Feed signal receiver {receiver!r} failed: {e}", exc_info=True)
