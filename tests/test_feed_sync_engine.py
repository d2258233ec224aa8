"""
Test FeedSyncEngine entry points beyond the poll and history lanes:
local and remote deletion, sending and locally reported errors.
"""

import os
import sys

import pytest

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from feed.feed_config import FeedSyncConfig
from feed.feed_event import InsertEvent, NoticeEvent, RemoveEvent
from feed.feed_types import FailureKind, Origin
from feed.sync.feed_sync_engine import FeedSyncEngine
from feed.transport.gateway import SEND_ENDPOINT, TransportResult, delete_endpoint

from feed_test_utils import EventRecorder, ScriptedGateway, batch, record, timeout_result


async def loaded_engine(*results, **settings):
    """Engine whose timeline holds messages 1 (alice), 2 (bob) and 3 (system)."""
    initial = TransportResult.success(batch([record(1, "alice"), record(2, "bob"), record(3, "")]))
    gateway = ScriptedGateway(initial, *results)
    engine = FeedSyncEngine(gateway, FeedSyncConfig(**settings))
    await engine.tick()
    return engine, gateway, EventRecorder(engine.signals)


class TestDeletion:
    """Tests for delete_locally and delete_remote."""

    @pytest.mark.asyncio
    async def test_delete_locally_never_contacts_server(self):
        engine, gateway, recorder = await loaded_engine(user_name="alice")

        event = engine.delete_locally(1)

        assert event == RemoveEvent(1)
        assert recorder.events == [RemoveEvent(1)]
        assert len(gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_author_deletes_remotely(self):
        engine, gateway, recorder = await loaded_engine(TransportResult.success(1), user_name="alice")

        assert await engine.delete_remote(1) is True

        assert gateway.calls[1].endpoint == delete_endpoint(1) == "chat-delete/1"
        assert recorder.events == [RemoveEvent(1)]
        assert recorder.busy_changes == [True, False]

    @pytest.mark.asyncio
    async def test_admin_deletes_any_message_remotely(self):
        engine, gateway, _ = await loaded_engine(TransportResult.success(2), user_name="alice", is_admin=True)

        assert await engine.delete_remote(2) is True
        assert gateway.calls[1].endpoint == "chat-delete/2"

    @pytest.mark.asyncio
    async def test_not_permitted_falls_back_to_local_removal(self):
        engine, gateway, recorder = await loaded_engine(user_name="alice")

        assert await engine.delete_remote(2) is False

        assert len(gateway.calls) == 1
        assert recorder.events == [RemoveEvent(2)]

    @pytest.mark.asyncio
    async def test_anonymous_user_deletes_locally_only(self):
        engine, gateway, recorder = await loaded_engine()

        await engine.delete_remote(3)

        assert len(gateway.calls) == 1
        assert recorder.events == [RemoveEvent(3)]

    @pytest.mark.asyncio
    async def test_authorization_failure_degrades_to_local_removal(self):
        refused = TransportResult.failed(FailureKind.AUTHORIZATION, "not allowed", 403)
        engine, _, recorder = await loaded_engine(refused, user_name="alice")

        assert await engine.delete_remote(1) is False

        assert recorder.events == [RemoveEvent(1)]
        assert engine.busy_count == 0

    @pytest.mark.asyncio
    async def test_transient_failure_reports_and_removes_locally(self):
        engine, _, recorder = await loaded_engine(timeout_result(), user_name="alice")

        assert await engine.delete_remote(1) is False

        assert isinstance(recorder.events[0], NoticeEvent)
        assert recorder.events[0].recoverable
        assert recorder.events[1] == RemoveEvent(1)

    @pytest.mark.asyncio
    async def test_unknown_message_is_ignored(self):
        engine, gateway, recorder = await loaded_engine(user_name="alice")

        assert await engine.delete_remote(999) is False

        assert recorder.events == []
        assert len(gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_may_delete_rules(self):
        engine, _, _ = await loaded_engine(user_name="bob")

        from feed.feed_message import FeedMessage
        assert engine.may_delete(FeedMessage(id=2, author="bob"))
        assert not engine.may_delete(FeedMessage(id=1, author="alice"))
        assert not engine.may_delete(FeedMessage(id=0, author="bob"))
        assert not engine.may_delete(FeedMessage(id=-1, author="bob"))


class TestSendMessage:
    """Tests for send_message."""

    @pytest.mark.asyncio
    async def test_sends_trimmed_text_with_local_time(self):
        gateway = ScriptedGateway(TransportResult.success(None))
        engine = FeedSyncEngine(gateway)
        recorder = EventRecorder(engine.signals)

        assert await engine.send_message("  hello there  ") is True

        call = gateway.calls[0]
        assert call.endpoint == SEND_ENDPOINT
        assert call.payload["msg"] == "hello there"
        assert "lmtime" in call.payload
        assert "file" not in call.payload
        assert recorder.busy_changes == [True, False]
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_sends_attachment_without_text(self):
        gateway = ScriptedGateway(TransportResult.success(None))
        engine = FeedSyncEngine(gateway)
        attachment = ("notes.txt", b"some notes", "text/plain")

        assert await engine.send_message("", file=attachment) is True

        assert gateway.calls[0].payload["file"] == attachment
        assert "msg" not in gateway.calls[0].payload

    @pytest.mark.asyncio
    async def test_nothing_to_send(self):
        gateway = ScriptedGateway()
        engine = FeedSyncEngine(gateway)

        assert await engine.send_message("   ") is False
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_transport_failure_posts_notice(self):
        gateway = ScriptedGateway(TransportResult.failed(FailureKind.NETWORK, "connection refused"))
        engine = FeedSyncEngine(gateway)
        recorder = EventRecorder(engine.signals)

        assert await engine.send_message("hi") is False

        notices = recorder.of_type(NoticeEvent)
        assert len(notices) == 1
        assert "connection refused" in notices[0].message.body
        assert engine.busy_count == 0

    @pytest.mark.asyncio
    async def test_error_response_becomes_notice_without_halting(self):
        rejected = {"msgid": 0, "isError": True, "xmsg": "message too long"}
        gateway = ScriptedGateway(TransportResult.success(rejected))
        engine = FeedSyncEngine(gateway)
        recorder = EventRecorder(engine.signals)

        assert await engine.send_message("x" * 10) is False

        assert [e.message.body for e in recorder.of_type(NoticeEvent)] == ["message too long"]
        assert recorder.of_type(InsertEvent) == []
        assert not engine.halted
        assert engine.high_watermark == -50

    @pytest.mark.asyncio
    async def test_echoed_message_is_reconciled_as_live(self):
        gateway = ScriptedGateway(TransportResult.success(record(77, "alice", body="hello")))
        engine = FeedSyncEngine(gateway)
        recorder = EventRecorder(engine.signals)

        assert await engine.send_message("hello") is True

        inserts = recorder.of_type(InsertEvent)
        assert [(e.message.id, e.origin) for e in inserts] == [(77, Origin.LIVE)]
        assert engine.high_watermark == 77


    @pytest.mark.asyncio
    async def test_malformed_echo_posts_notice(self):
        gateway = ScriptedGateway(TransportResult.success(record(78, "alice", fsize="big")))
        engine = FeedSyncEngine(gateway)
        recorder = EventRecorder(engine.signals)

        assert await engine.send_message("hello") is False

        notices = recorder.of_type(NoticeEvent)
        assert len(notices) == 1
        assert "Invalid fsize" in notices[0].message.body
        assert recorder.of_type(InsertEvent) == []

class TestReportError:

    def test_report_error_posts_recoverable_notice(self):
        engine = FeedSyncEngine(ScriptedGateway())
        recorder = EventRecorder(engine.signals)

        event = engine.report_error("Something ", "went wrong")

        assert recorder.events == [event]
        assert event.recoverable
        assert event.message.body == "Something went wrong"
        assert event.message.id < 0
        assert engine.low_watermark is None
