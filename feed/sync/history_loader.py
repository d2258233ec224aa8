"""History loader for backward pagination of the feed."""

import logging
from typing import Optional

from feed.feed_errors import FeedFormatError
from feed.feed_event import NoticeEvent
from feed.feed_message import FeedBatch, FeedMessage
from feed.feed_signals import FeedSignals
from feed.feed_types import Origin, Position
from feed.sync.busy_counter import BusyCounter
from feed.sync.reconciler import Reconciler, ReconcileResult
from feed.transport.gateway import POLL_ENDPOINT, TransportGateway

logger = logging.getLogger(__name__)


class HistoryLoader:
    """Fetches older messages on demand using the low watermark as cursor.

    This lane is independent of the live poll; the two share only the
    watermark state (through the Reconciler) and the busy counter.

    Nothing is requested until a batch has set the low watermark, and once
    history is exhausted the loader never issues another request.
    """

    def __init__(
        self,
        gateway: TransportGateway,
        reconciler: Reconciler,
        busy_counter: BusyCounter,
        signals: FeedSignals,
        page_size: int = 20,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the history loader.

        Args:
            gateway: Transport used for history requests
            reconciler: Receives every successful batch
            busy_counter: Shared busy counter
            signals: Signals for notices and the exhaustion announcement
            page_size: Messages per page when no count is given
            timeout: Request timeout in seconds
        """
        self._gateway = gateway
        self._reconciler = reconciler
        self._busy_counter = busy_counter
        self._signals = signals
        self._page_size = page_size
        self._timeout = timeout

        self._exhausted = False
        self._loading = False

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def can_load_older(self) -> bool:
        """Whether the pagination affordance should be enabled."""
        return not self._exhausted and not self._loading and self._reconciler.watermarks.low is not None

    async def load_older(self, count: Optional[int] = None) -> Optional[ReconcileResult]:
        """
        Load messages older than the lowest id seen so far.

        Args:
            count: Positive for that many messages, negative for the whole
                   remaining backlog, 0 or None for one default page

        Returns:
            The ReconcileResult of the page, or None if nothing was loaded
            (exhausted, already loading, nothing loaded yet, or the request failed)
        """
        if self._exhausted:
            logger.debug("History already exhausted; ignoring load request")
            return None
        if self._loading:
            logger.debug("History page already in flight; ignoring load request")
            return None

        low = self._reconciler.watermarks.low
        if low is None:
            logger.debug("No messages loaded yet; ignoring load request")
            return None

        requested = count or self._page_size
        params = {"n": requested, "before": low}

        self._loading = True
        try:
            with self._busy_counter.track():
                result = await self._gateway.request(POLL_ENDPOINT, params=params, timeout=self._timeout)
                if not result.ok:
                    logger.warning(f"Loading older messages failed: {result.failure}")
                    self._notify(f"Could not load older messages: {result.failure}")
                    return None
                try:
                    batch = FeedBatch.from_dict(result.data)
                except FeedFormatError as e:
                    logger.warning(f"Malformed history response: {e}")
                    self._notify(f"Could not load older messages: {e}")
                    return None

                outcome = self._reconciler.reconcile(batch, Position.PREPEND, Origin.HISTORY)
                if outcome.malformed:
                    self._notify(f"Skipped {outcome.malformed} malformed older messages")
                if outcome.has_fatal_error:
                    # The error is already in the feed; exhaustion is not judged on this page.
                    return outcome

                self._check_exhausted(requested, outcome.received)
                if outcome.received:
                    logger.info(f"Loaded {outcome.received} older messages")
                return outcome
        finally:
            self._loading = False

    def _check_exhausted(self, requested: int, received: int) -> None:
        if requested < 0 or received == 0 or (requested > 0 and received < requested):
            self._exhausted = True
            logger.info("All history has been loaded")
            self._signals.emit_history_exhausted()

    def _notify(self, text: str) -> None:
        self._signals.emit_event(NoticeEvent(FeedMessage.local_notice(text), recoverable=True))
