"""
Reconciler for feed batches.

Turns a raw batch from either request lane into watermark updates and an
ordered sequence of feed events for the Render Sink. It is the only
writer of the watermark state and the only producer of Insert/Remove events.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from feed.feed_event import FeedEvent, InsertEvent, RemoveEvent
from feed.feed_message import FeedBatch, FeedMessage
from feed.feed_signals import FeedSignals
from feed.feed_types import Origin, Position
from feed.sync.watermarks import WatermarkView, Watermarks

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Summary of one reconciled batch.

    Attributes:
        events: Events emitted, in batch order
        received: Number of records in the batch, deletion markers and
                  malformed records included
        inserted: Number of Insert events emitted
        removed: Number of Remove events emitted
        duplicates: Content records skipped because their id was already known
        malformed: Records skipped because they could not be parsed
        fatal_error: First error-flagged message of the batch, if any
    """
    events: List[FeedEvent] = field(default_factory=list)
    received: int = 0
    inserted: int = 0
    removed: int = 0
    duplicates: int = 0
    malformed: int = 0
    fatal_error: Optional[FeedMessage] = None

    @property
    def has_fatal_error(self) -> bool:
        return self.fatal_error is not None


class Reconciler:
    """Single authority over watermark state and the normalized event stream.

    The known-message map mirrors what the Render Sink currently shows. It
    answers "who wrote message N" for delete permission checks and, when
    deduplicate is on, suppresses a second Insert for a redelivered id.
    """

    def __init__(self, seed_high_watermark: int, signals: FeedSignals, deduplicate: bool = True):
        """
        Initialize the reconciler.

        Args:
            seed_high_watermark: Negative seed for the high watermark
            signals: Signals through which events reach the Render Sink
            deduplicate: Skip inserts for ids already in the timeline
        """
        self._watermarks = Watermarks(high=seed_high_watermark)
        self._view = WatermarkView(self._watermarks)
        self._signals = signals
        self._deduplicate = deduplicate
        self._known: Dict[int, FeedMessage] = {}
        self._total_message_count = 0

    @property
    def watermarks(self) -> WatermarkView:
        return self._view

    @property
    def total_message_count(self) -> int:
        """Number of content records processed since start."""
        return self._total_message_count

    def is_known(self, message_id: int) -> bool:
        return message_id in self._known

    def get_message(self, message_id: int) -> Optional[FeedMessage]:
        return self._known.get(message_id)

    def reconcile(self, batch: FeedBatch, position: Position, origin: Origin) -> ReconcileResult:
        """
        Apply one batch.

        Watermarks are updated for the whole batch before the first event
        reaches the Render Sink; events are then emitted in server order.

        Args:
            batch: Records exactly as received
            position: APPEND or PREPEND, chosen by the calling lane
            origin: INITIAL_LOAD, LIVE or HISTORY, chosen by the calling lane

        Returns:
            ReconcileResult describing what was emitted
        """
        result = ReconcileResult(received=batch.received_count, malformed=len(batch.malformed))

        # Malformed content records with a usable id still move the watermarks.
        for error in batch.malformed:
            if error.message_id is not None:
                self._watermarks.observe(error.message_id)

        for message in batch:
            if message.is_deletion:
                target = message.deletion_target
                self._known.pop(target, None)
                result.events.append(RemoveEvent(target))
                result.removed += 1
                continue

            self._watermarks.observe(message.id)
            self._total_message_count += 1

            if message.is_error and result.fatal_error is None:
                result.fatal_error = message

            if self._deduplicate and message.id in self._known:
                logger.debug(f"Skipping duplicate delivery of message {message.id}")
                result.duplicates += 1
                continue

            self._known[message.id] = message
            result.events.append(InsertEvent(message, position, origin))
            result.inserted += 1

        self._signals.emit_events(result.events)

        if result.received:
            logger.debug(
                f"Reconciled {origin.value} batch: {result.inserted} inserted, {result.removed} removed, "
                f"watermarks high={self._watermarks.high} low={self._watermarks.low}"
            )
        return result

    def remove(self, message_id: int) -> RemoveEvent:
        """Remove a message from the local view without touching the server."""
        self._known.pop(message_id, None)
        event = RemoveEvent(message_id)
        self._signals.emit_event(event)
        return event
