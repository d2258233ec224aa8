"""Qt signal bridge for feed synchronization events.

This module bridges the engine's blinker signals to Qt signals so that a
PySide6 Render Sink can connect with QueuedConnection semantics.
"""

import logging
from typing import Optional

from PySide6.QtCore import QObject, Signal

from feed.feed_event import InsertEvent, NoticeEvent, RemoveEvent
from feed.feed_signals import FeedSignals

logger = logging.getLogger(__name__)


class FeedSignalBridge(QObject):
    """Bridges FeedSignals to Qt signals.

    Usage:
        bridge = FeedSignalBridge(engine.signals)
        bridge.message_inserted.connect(lambda msg, position, origin: ...)
        bridge.message_removed.connect(lambda message_id: ...)
    """

    message_inserted = Signal(object, str, str)  # FeedMessage, position, origin
    message_removed = Signal(int)  # message_id
    notice_posted = Signal(object, bool)  # FeedMessage, recoverable
    busy_changed = Signal(bool)
    history_exhausted = Signal()
    polling_halted = Signal(object)  # fatal FeedMessage

    def __init__(self, feed_signals: FeedSignals, parent: Optional[QObject] = None):
        """Initialize the bridge and connect it to the given FeedSignals."""
        super().__init__(parent)
        self._feed_signals = feed_signals
        self._connected = False
        self.connect_feed()

    def connect_feed(self) -> None:
        if self._connected:
            return
        self._feed_signals.connect(self._on_feed_event, weak=False)
        self._feed_signals.busy_changed.connect(self._on_busy_changed, weak=False)
        self._feed_signals.history_exhausted.connect(self._on_history_exhausted, weak=False)
        self._feed_signals.polling_halted.connect(self._on_polling_halted, weak=False)
        self._connected = True
        logger.debug("FeedSignalBridge connected to feed signals")

    def disconnect_feed(self) -> None:
        if not self._connected:
            return
        self._feed_signals.disconnect(self._on_feed_event)
        self._feed_signals.busy_changed.disconnect(self._on_busy_changed)
        self._feed_signals.history_exhausted.disconnect(self._on_history_exhausted)
        self._feed_signals.polling_halted.disconnect(self._on_polling_halted)
        self._connected = False

    def _on_feed_event(self, sender, event) -> None:
        if isinstance(event, InsertEvent):
            self.message_inserted.emit(event.message, event.position.value, event.origin.value)
        elif isinstance(event, RemoveEvent):
            self.message_removed.emit(event.message_id)
        elif isinstance(event, NoticeEvent):
            self.notice_posted.emit(event.message, event.recoverable)
        else:
            logger.warning(f"Unhandled feed event: {event!r}")

    def _on_busy_changed(self, sender, busy: bool) -> None:
        self.busy_changed.emit(busy)

    def _on_history_exhausted(self, sender) -> None:
        self.history_exhausted.emit()

    def _on_polling_halted(self, sender, message=None) -> None:
        self.polling_halted.emit(message)
