"""
Poll scheduler for the live feed lane.

Drives a repeating long-poll cycle against the high watermark with at most
one poll request outstanding. The lane is an explicit state machine:

    IDLE -> REQUESTING -> IDLE
    REQUESTING -> HALTED      (batch carried a server-reported error)

tick() is a guarded transition attempt and can be driven without a timer.
"""

import asyncio
import logging
from typing import Optional, Set

from feed.feed_errors import FeedFormatError
from feed.feed_event import NoticeEvent
from feed.feed_message import FeedBatch, FeedMessage
from feed.feed_signals import FeedSignals
from feed.feed_types import Origin, PollState, Position
from feed.sync.busy_counter import BusyCounter
from feed.sync.reconciler import Reconciler
from feed.transport.gateway import POLL_ENDPOINT, TransportGateway, TransportResult

logger = logging.getLogger(__name__)


class PollScheduler:
    """Keeps exactly one live poll in flight and halts on a fatal batch.

    The first activation is the initial load: it participates in the busy
    counter and tags its batch INITIAL_LOAD. Every later activation is a
    steady-state long poll that bypasses the busy counter, tagged LIVE.
    Timeouts and network failures are logged and retried on the next tick
    with no backoff and no retry limit.
    """

    HALT_NOTICE = (
        "Shutting down chat poller due to server-side error. ",
        "Reload this page to reactivate it.",
    )

    def __init__(
        self,
        gateway: TransportGateway,
        reconciler: Reconciler,
        busy_counter: BusyCounter,
        signals: FeedSignals,
        interval: float = 1.0,
        poll_timeout: Optional[float] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            gateway: Transport used for poll requests
            reconciler: Receives every successful batch
            busy_counter: Shared busy counter (initial load only)
            signals: Signals for halt notices
            interval: Seconds between ticks of the periodic cycle
            poll_timeout: Seconds a long poll may stay open
        """
        self._gateway = gateway
        self._reconciler = reconciler
        self._busy_counter = busy_counter
        self._signals = signals
        self._interval = interval
        self._poll_timeout = poll_timeout

        self._state = PollState.IDLE
        self._first_call = True
        self._fatal_error: Optional[FeedMessage] = None
        self._last_problem: Optional[str] = None
        self._runner: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def halted(self) -> bool:
        return self._state == PollState.HALTED

    @property
    def running(self) -> bool:
        """Whether the periodic tick cycle is active."""
        return self._runner is not None and not self._runner.done()

    @property
    def fatal_error(self) -> Optional[FeedMessage]:
        return self._fatal_error

    def start(self) -> None:
        """Begin the periodic tick cycle. Calling it again is a no-op."""
        if self.running:
            return
        if self.halted:
            logger.warning("Poll scheduler is halted; a new engine is required to resume")
            return
        self._runner = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Poll scheduler started (interval {self._interval}s)")

    def stop(self) -> None:
        """Stop scheduling ticks and abandon any outstanding poll."""
        for task in list(self._tick_tasks):
            task.cancel()
        if self._runner is not None:
            self._runner.cancel()
            self._runner = None
            logger.info("Poll scheduler stopped")

    async def _run(self) -> None:
        while not self.halted:
            task = asyncio.create_task(self.tick())
            self._tick_tasks.add(task)
            task.add_done_callback(self._on_tick_done)
            await asyncio.sleep(self._interval)
        logger.debug("Poll cycle ended")

    def _on_tick_done(self, task: asyncio.Task) -> None:
        self._tick_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Poll tick failed unexpectedly: {error}", exc_info=error)

    async def tick(self) -> bool:
        """
        Issue one poll unless a poll is already outstanding or the lane is halted.

        Returns:
            True if a request was issued, False if the tick was a no-op
        """
        if self._state != PollState.IDLE:
            return False

        self._state = PollState.REQUESTING
        first_call = self._first_call
        self._first_call = False
        origin = Origin.INITIAL_LOAD if first_call else Origin.LIVE
        params = {"name": self._reconciler.watermarks.high}

        try:
            if first_call:
                with self._busy_counter.track():
                    result = await self._gateway.request(POLL_ENDPOINT, params=params, timeout=self._poll_timeout)
                    self._handle_result(result, origin)
            else:
                result = await self._gateway.request(POLL_ENDPOINT, params=params, timeout=self._poll_timeout)
                self._handle_result(result, origin)
        finally:
            if self._state == PollState.REQUESTING:
                self._state = PollState.IDLE
        return True

    def _handle_result(self, result: TransportResult, origin: Origin) -> None:
        if not result.ok:
            # Log only; the next tick retries.
            if result.failure.is_transient:
                logger.debug(f"Poll did not complete ({result.failure}); retrying on next tick")
            else:
                self._report_problem(f"Poll request failed: {result.failure}")
            return

        try:
            batch = FeedBatch.from_dict(result.data)
        except FeedFormatError as e:
            self._report_problem(f"Malformed poll response: {e}")
            return

        self._last_problem = None
        outcome = self._reconciler.reconcile(batch, Position.APPEND, origin)
        if outcome.malformed:
            logger.error(f"Skipped {outcome.malformed} malformed records in poll response")
        if outcome.has_fatal_error:
            self._halt(outcome.fatal_error)

    def _report_problem(self, text: str) -> None:
        # Repeats of the same problem on consecutive ticks log at DEBUG.
        if text == self._last_problem:
            logger.debug(text)
        else:
            logger.error(text)
        self._last_problem = text

    def _halt(self, fatal_error: FeedMessage) -> None:
        self._state = PollState.HALTED
        self._fatal_error = fatal_error
        logger.error(f"Halting poll scheduler after server-side error in message {fatal_error.id}: {fatal_error.body}")
        self._signals.emit_event(NoticeEvent(FeedMessage.local_notice(*self.HALT_NOTICE), recoverable=False))
        self._signals.emit_polling_halted(fatal_error)
