"""
Busy counter for requests that disable user input while in flight.

The live poll's steady-state requests never participate; the initial
load, history pages, deletes and sends do.
"""

import logging
from contextlib import contextmanager
from typing import Optional

from feed.feed_errors import BusyCounterError
from feed.feed_signals import FeedSignals

logger = logging.getLogger(__name__)


class BusyCounter:
    """Counts in-flight participating requests.

    busy_changed is emitted on the 0 -> 1 and 1 -> 0 transitions only.
    """

    def __init__(self, signals: Optional[FeedSignals] = None):
        self._signals = signals
        self._in_flight = 0

    @property
    def count(self) -> int:
        return self._in_flight

    @property
    def busy(self) -> bool:
        return self._in_flight > 0

    def request_started(self) -> None:
        self._in_flight += 1
        if self._in_flight == 1:
            logger.debug("Input disabled: first participating request started")
            if self._signals:
                self._signals.emit_busy(True)

    def request_ended(self) -> None:
        if self._in_flight == 0:
            raise BusyCounterError("request_ended() called without a matching request_started()")
        self._in_flight -= 1
        if self._in_flight == 0:
            logger.debug("Input enabled: last participating request ended")
            if self._signals:
                self._signals.emit_busy(False)

    @contextmanager
    def track(self):
        """Wrap one participating request in a start/end pair."""
        self.request_started()
        try:
            yield self
        finally:
            self.request_ended()
