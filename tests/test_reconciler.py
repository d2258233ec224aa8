"""
Test module for the Reconciler.

Covers watermark maintenance, deletion markers, error detection and the
ordering of emitted events.
"""

import os
import random
import sys

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from feed.feed_event import InsertEvent, RemoveEvent
from feed.feed_message import FeedBatch
from feed.feed_signals import FeedSignals
from feed.feed_types import Origin, Position
from feed.sync.reconciler import Reconciler

from feed_test_utils import EventRecorder, batch, deletion, record


def make_batch(*records):
    return FeedBatch.from_dict(batch(records))


class TestReconciler:
    """Tests for Reconciler.reconcile and Reconciler.remove."""

    def setup_method(self):
        self.signals = FeedSignals()
        self.recorder = EventRecorder(self.signals)
        self.reconciler = Reconciler(-50, self.signals)

    def test_initial_load_of_fifty_messages(self):
        result = self.reconciler.reconcile(
            make_batch(*(record(i) for i in range(1, 51))), Position.APPEND, Origin.INITIAL_LOAD
        )

        assert self.reconciler.watermarks.high == 50
        assert self.reconciler.watermarks.low == 1
        inserts = self.recorder.of_type(InsertEvent)
        assert len(inserts) == 50
        assert [e.message.id for e in inserts] == list(range(1, 51))
        assert all(e.origin == Origin.INITIAL_LOAD for e in inserts)
        assert all(e.position == Position.APPEND for e in inserts)
        assert result.inserted == 50
        assert result.received == 50
        assert self.reconciler.total_message_count == 50

    def test_low_watermark_undefined_until_first_message(self):
        assert self.reconciler.watermarks.low is None
        assert self.reconciler.watermarks.high == -50

        self.reconciler.reconcile(make_batch(), Position.APPEND, Origin.LIVE)

        assert self.reconciler.watermarks.low is None
        assert self.reconciler.watermarks.high == -50

    def test_deletion_marker_emits_remove_without_moving_watermarks(self):
        self.reconciler.reconcile(make_batch(record(40), record(45)), Position.APPEND, Origin.LIVE)
        self.recorder.events.clear()

        result = self.reconciler.reconcile(make_batch(deletion(99, 42)), Position.APPEND, Origin.LIVE)

        assert self.recorder.events == [RemoveEvent(42)]
        assert result.removed == 1
        assert result.inserted == 0
        assert self.reconciler.watermarks.high == 45
        assert self.reconciler.watermarks.low == 40

    def test_remove_emitted_once_per_marker_for_every_origin(self):
        for origin, position in [
            (Origin.INITIAL_LOAD, Position.APPEND),
            (Origin.LIVE, Position.APPEND),
            (Origin.HISTORY, Position.PREPEND),
        ]:
            self.reconciler.reconcile(make_batch(deletion(1000, 7)), position, origin)

        assert self.recorder.of_type(RemoveEvent) == [RemoveEvent(7)] * 3

    def test_events_follow_server_order(self):
        self.reconciler.reconcile(
            make_batch(record(5), deletion(6, 5), record(3), record(8)), Position.APPEND, Origin.LIVE
        )

        kinds = [
            ("insert", e.message.id) if isinstance(e, InsertEvent) else ("remove", e.message_id)
            for e in self.recorder.events
        ]
        assert kinds == [("insert", 5), ("remove", 5), ("insert", 3), ("insert", 8)]

    def test_watermarks_updated_before_first_event(self):
        seen = []

        def sink(sender, event):
            seen.append((self.reconciler.watermarks.high, self.reconciler.watermarks.low))

        self.signals.connect(sink)
        self.reconciler.reconcile(make_batch(record(10), record(30), record(20)), Position.APPEND, Origin.LIVE)

        assert seen == [(30, 10)] * 3

    def test_error_record_is_inserted_and_flagged(self):
        error = record(60, author="", isError=True, body="database is locked")
        result = self.reconciler.reconcile(make_batch(record(59), error, record(61)), Position.APPEND, Origin.LIVE)

        assert result.has_fatal_error
        assert result.fatal_error.id == 60
        assert [e.message.id for e in self.recorder.of_type(InsertEvent)] == [59, 60, 61]

    def test_duplicate_delivery_is_suppressed(self):
        self.reconciler.reconcile(make_batch(record(1), record(2)), Position.APPEND, Origin.LIVE)
        result = self.reconciler.reconcile(make_batch(record(2), record(3)), Position.APPEND, Origin.LIVE)

        assert result.duplicates == 1
        assert [e.message.id for e in self.recorder.of_type(InsertEvent)] == [1, 2, 3]
        assert self.reconciler.watermarks.high == 3

    def test_duplicates_pass_through_when_disabled(self):
        reconciler = Reconciler(-50, self.signals, deduplicate=False)
        reconciler.reconcile(make_batch(record(1)), Position.APPEND, Origin.LIVE)
        reconciler.reconcile(make_batch(record(1)), Position.APPEND, Origin.LIVE)

        assert [e.message.id for e in self.recorder.of_type(InsertEvent)] == [1, 1]

    def test_removed_id_is_forgotten(self):
        self.reconciler.reconcile(make_batch(record(1)), Position.APPEND, Origin.LIVE)
        assert self.reconciler.is_known(1)

        self.reconciler.remove(1)

        assert not self.reconciler.is_known(1)
        assert self.recorder.events[-1] == RemoveEvent(1)

    def test_malformed_record_still_moves_watermarks(self):
        result = self.reconciler.reconcile(
            make_batch(record(1), record(2, fsize="abc"), {"msgid": "x"}), Position.APPEND, Origin.LIVE
        )

        assert result.received == 3
        assert result.malformed == 2
        assert result.inserted == 1
        assert self.reconciler.watermarks.high == 2
        assert self.reconciler.watermarks.low == 1
        assert [e.message.id for e in self.recorder.of_type(InsertEvent)] == [1]

    def test_remove_of_unknown_id_still_emits(self):
        event = self.reconciler.remove(12345)
        assert event == RemoveEvent(12345)
        assert self.recorder.events == [event]

    def test_failing_receiver_does_not_break_batch(self):
        def broken_sink(sender, event):
            raise RuntimeError("render failure")

        self.signals.connect(broken_sink)
        result = self.reconciler.reconcile(make_batch(record(1), record(2)), Position.APPEND, Origin.LIVE)

        assert result.inserted == 2
        assert len(self.recorder.of_type(InsertEvent)) == 2


class TestWatermarkProperties:
    """Watermarks equal the extremes of every content id ever processed."""

    def test_random_interleaved_batches(self):
        rng = random.Random(20240501)
        for _ in range(50):
            reconciler = Reconciler(-50, FeedSignals())
            content_ids = []
            next_marker = 10_000
            for _ in range(rng.randint(1, 8)):
                records = []
                for _ in range(rng.randint(0, 6)):
                    if rng.random() < 0.2:
                        next_marker += 1
                        records.append(deletion(next_marker, rng.randint(-100, 100)))
                    else:
                        message_id = rng.randint(-100, 100)
                        content_ids.append(message_id)
                        records.append(record(message_id))
                origin, position = rng.choice([
                    (Origin.LIVE, Position.APPEND),
                    (Origin.HISTORY, Position.PREPEND),
                ])
                reconciler.reconcile(make_batch(*records), position, origin)

                if content_ids:
                    assert reconciler.watermarks.high == max([-50] + content_ids)
                    assert reconciler.watermarks.low == min(content_ids)
                else:
                    assert reconciler.watermarks.high == -50
                    assert reconciler.watermarks.low is None

    def test_high_never_decreases_and_low_never_increases(self):
        reconciler = Reconciler(-50, FeedSignals())
        previous_high, previous_low = reconciler.watermarks.high, None
        for ids in ([5, 6], [1], [9, 3], [2], [100], [-4]):
            reconciler.reconcile(make_batch(*(record(i) for i in ids)), Position.APPEND, Origin.LIVE)
            assert reconciler.watermarks.high >= previous_high
            if previous_low is not None:
                assert reconciler.watermarks.low <= previous_low
            previous_high, previous_low = reconciler.watermarks.high, reconciler.watermarks.low
