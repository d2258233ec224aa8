"""
Feed synchronization engine.

Wires the watermark-owning Reconciler, the Poll Scheduler, the History
Loader and the shared busy counter together behind one public surface.

Usage:
    engine = FeedSyncEngine(HttpGateway(config.base_url), config)
    engine.signals.connect(render_sink)
    engine.start()
    ...
    await engine.load_older()
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from feed.feed_config import FeedSyncConfig
from feed.feed_errors import FeedFormatError
from feed.feed_event import NoticeEvent, RemoveEvent
from feed.feed_message import FeedBatch, FeedMessage
from feed.feed_signals import FeedSignals
from feed.feed_types import FailureKind, Origin, PollState, Position
from feed.sync.busy_counter import BusyCounter
from feed.sync.history_loader import HistoryLoader
from feed.sync.poll_scheduler import PollScheduler
from feed.sync.reconciler import ReconcileResult, Reconciler
from feed.transport.gateway import SEND_ENDPOINT, TransportGateway, delete_endpoint

logger = logging.getLogger(__name__)


class FeedSyncEngine:
    """
    Keeps a local timeline in sync with a remote message log.

    One engine lives for one session. After a fatal server error has halted
    polling, synchronization resumes only with a fresh engine.
    """

    def __init__(
        self,
        gateway: TransportGateway,
        config: Optional[FeedSyncConfig] = None,
        signals: Optional[FeedSignals] = None,
    ):
        """
        Initialize the engine.

        Args:
            gateway: Transport used by every request lane
            config: Engine settings (defaults if None)
            signals: Signals to emit on (a new FeedSignals if None)
        """
        self.config = config or FeedSyncConfig()
        self.signals = signals or FeedSignals()
        self._gateway = gateway

        self._busy_counter = BusyCounter(self.signals)
        self._reconciler = Reconciler(
            self.config.seed_high_watermark,
            self.signals,
            deduplicate=self.config.deduplicate,
        )
        self._poll_scheduler = PollScheduler(
            gateway,
            self._reconciler,
            self._busy_counter,
            self.signals,
            interval=self.config.poll_interval,
            poll_timeout=self.config.poll_timeout,
        )
        self._history_loader = HistoryLoader(
            gateway,
            self._reconciler,
            self._busy_counter,
            self.signals,
            page_size=self.config.page_size,
            timeout=self.config.request_timeout,
        )

    # Read-only views

    @property
    def high_watermark(self) -> int:
        return self._reconciler.watermarks.high

    @property
    def low_watermark(self) -> Optional[int]:
        return self._reconciler.watermarks.low

    @property
    def history_exhausted(self) -> bool:
        return self._history_loader.exhausted

    @property
    def can_load_older(self) -> bool:
        return self._history_loader.can_load_older

    @property
    def poll_state(self) -> PollState:
        return self._poll_scheduler.state

    @property
    def halted(self) -> bool:
        return self._poll_scheduler.halted

    @property
    def busy(self) -> bool:
        return self._busy_counter.busy

    @property
    def busy_count(self) -> int:
        return self._busy_counter.count

    @property
    def total_message_count(self) -> int:
        return self._reconciler.total_message_count

    # Live lane

    def start(self) -> None:
        """Begin the periodic poll cycle. Idempotent; needs a running event loop."""
        self._poll_scheduler.start()

    def stop(self) -> None:
        """Stop the periodic poll cycle for shutdown."""
        self._poll_scheduler.stop()

    async def tick(self) -> bool:
        """Drive one poll activation directly (external cadence)."""
        return await self._poll_scheduler.tick()

    # History lane

    async def load_older(self, count: Optional[int] = None) -> Optional[ReconcileResult]:
        """Load older messages; see HistoryLoader.load_older."""
        return await self._history_loader.load_older(count)

    # Deletion

    def may_delete(self, message: FeedMessage) -> bool:
        """
        Whether the local user may ask the server to delete a message.

        Anyone may delete their local copy. The server can still refuse,
        e.g. if the login was revoked after the engine started.
        """
        if message.id <= 0:
            return False
        if self.config.is_admin:
            return True
        return bool(self.config.user_name) and message.author == self.config.user_name

    def delete_locally(self, message_id: int) -> RemoveEvent:
        """Remove a message from the local view only."""
        logger.info(f"Deleting message {message_id} locally")
        return self._reconciler.remove(message_id)

    async def delete_remote(self, message_id: int) -> bool:
        """
        Delete a message on the server if permitted, and always locally.

        Returns:
            True if the server confirmed the deletion
        """
        message = self._reconciler.get_message(message_id)
        if message is None:
            logger.debug(f"Ignoring delete of unknown message {message_id}")
            return False

        if not self.may_delete(message):
            self.delete_locally(message_id)
            return False

        with self._busy_counter.track():
            result = await self._gateway.request(
                delete_endpoint(message_id), timeout=self.config.request_timeout
            )

        if result.ok:
            logger.info(f"Server deleted message {message_id}")
        elif result.failure.kind == FailureKind.AUTHORIZATION:
            logger.info(f"Server refused to delete message {message_id}; removing local copy only")
        else:
            self.report_error(f"Could not delete message {message_id}: {result.failure}")
        self.delete_locally(message_id)
        return result.ok

    # Sending

    async def send_message(
        self,
        text: str,
        file: Optional[Tuple[str, bytes, str]] = None,
    ) -> bool:
        """
        Post a new message. It arrives in the timeline through the live poll.

        Args:
            text: Message text (surrounding whitespace is dropped)
            file: Optional attachment as (name, content, mime type)

        Returns:
            True if the server accepted the message
        """
        text = (text or "").strip()
        if not text and not file:
            return False

        payload: Dict[str, Any] = {"lmtime": datetime.now().isoformat(timespec="seconds")}
        if text:
            payload["msg"] = text
        if file:
            payload["file"] = file

        with self._busy_counter.track():
            result = await self._gateway.request(
                SEND_ENDPOINT, payload=payload, timeout=self.config.request_timeout
            )

        if not result.ok:
            self.report_error(f"Could not send message: {result.failure}")
            return False

        if result.data:
            return self._handle_send_response(result.data)
        return True

    def _handle_send_response(self, data: Any) -> bool:
        try:
            batch = FeedBatch.from_dict(data)
        except FeedFormatError as e:
            logger.error(f"Malformed send response: {e}")
            self.report_error(f"Unexpected response when sending: {e}")
            return False

        for error in batch.malformed:
            self.report_error(f"Unexpected response when sending: {error}")
        errors = [m for m in batch if m.is_error]
        for message in errors:
            self.signals.emit_event(NoticeEvent(message, recoverable=True))
        content = FeedBatch([m for m in batch if not m.is_error])
        if len(content):
            self._reconciler.reconcile(content, Position.APPEND, Origin.LIVE)
        return not errors and not batch.malformed

    # Notices

    def report_error(self, *parts: Any) -> NoticeEvent:
        """Show a recoverable, locally synthesized error message in the feed."""
        logger.warning(f"Feed notice: {''.join(str(p) for p in parts)}")
        event = NoticeEvent(FeedMessage.local_notice(*parts), recoverable=True)
        self.signals.emit_event(event)
        return event
