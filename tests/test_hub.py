"""Tests for sessions, the fan-out hub and the event pump."""

import asyncio
import json
import threading
import pytest

from src.hub import (
    ClientSession,
    EventPump,
    FanoutHub,
    SessionClosedError,
    SessionState,
)
from src.watcher import ChangeEvent, ChangeKind


class FakeTransport:
    """Records sent frames; can fail or stall on demand."""

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail
        self.closed_with = None
        self.gate = None

    async def send_text(self, text):
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ConnectionResetError("peer gone")
        self.sent.append(json.loads(text))

    async def close(self, code=1000):
        self.closed_with = code

    def types(self):
        return [m["type"] for m in self.sent]


async def settle(rounds=20):
    for _ in range(rounds):
        await asyncio.sleep(0)


def event(kind, path):
    return ChangeEvent(kind=kind, path=path)


class TestClientSession:
    """Tests for ClientSession state machine and queues."""

    @pytest.mark.asyncio
    async def test_lifecycle(self):
        session = ClientSession(FakeTransport())
        assert session.state is SessionState.CONNECTING

        session.open()
        assert session.state is SessionState.OPEN

        assert session.close("bye") is True
        assert session.state is SessionState.CLOSED
        assert session.close_reason == "bye"

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        closed = []
        session = ClientSession(FakeTransport())
        session.open(on_closed=closed.append)

        assert session.close() is True
        assert session.close() is False
        assert closed == [session]

    @pytest.mark.asyncio
    async def test_cannot_reopen(self):
        session = ClientSession(FakeTransport())
        session.open()
        session.close()
        with pytest.raises(SessionClosedError):
            session.open()

    @pytest.mark.asyncio
    async def test_offer_when_closed(self):
        session = ClientSession(FakeTransport())
        assert session.offer("{}") is False
        session.open()
        session.close()
        assert session.offer("{}") is False
        assert session.send_control("{}") is False

    @pytest.mark.asyncio
    async def test_control_served_first(self):
        transport = FakeTransport()
        session = ClientSession(transport)
        session.open()

        session.offer('{"type": "file:added", "path": "a"}')
        session.offer('{"type": "file:added", "path": "b"}')
        session.send_control('{"type": "pong", "timestamp": 1}')
        await settle()

        assert transport.types() == ["pong", "file:added", "file:added"]
        session.close()

    @pytest.mark.asyncio
    async def test_queue_limit(self):
        transport = FakeTransport()
        transport.gate = asyncio.Event()
        session = ClientSession(transport, max_queue=2)
        session.open()

        assert session.offer("1") is True
        assert session.offer("2") is True
        await settle()
        # Writer holds one frame while stalled
        assert session.offer("3") is True
        assert session.offer("4") is False
        session.close()

    @pytest.mark.asyncio
    async def test_send_failure_closes_session(self):
        closed = []
        session = ClientSession(FakeTransport(fail=True))
        session.open(on_closed=closed.append)

        session.offer('{"type": "file:added", "path": "a"}')
        await settle()

        assert session.state is SessionState.CLOSED
        assert closed == [session]

    @pytest.mark.asyncio
    async def test_close_transport(self):
        transport = FakeTransport()
        session = ClientSession(transport)
        session.open()

        session.close("dropped", close_transport=True)
        await settle()

        assert transport.closed_with == 1011


class TestFanoutHub:
    """Tests for FanoutHub."""

    @pytest.mark.asyncio
    async def test_register_sends_connected(self):
        hub = FanoutHub()
        transport = FakeTransport()
        session = hub.create_session(transport)

        hub.register(session)
        await settle()

        assert hub.session_count == 1
        assert transport.types() == ["connected"]
        assert transport.sent[0]["message"] == "WebSocket connection established"

    @pytest.mark.asyncio
    async def test_connected_only_to_new_session(self):
        hub = FanoutHub()
        first, second = FakeTransport(), FakeTransport()
        hub.register(hub.create_session(first))
        await settle()
        hub.register(hub.create_session(second))
        await settle()

        assert first.types() == ["connected"]
        assert second.types() == ["connected"]

    @pytest.mark.asyncio
    async def test_broadcast_to_all(self):
        hub = FanoutHub()
        transports = [FakeTransport() for _ in range(3)]
        for t in transports:
            hub.register(hub.create_session(t))

        delivered = hub.broadcast(event(ChangeKind.ADDED, "notes.md"))
        await settle()

        assert delivered == 3
        for t in transports:
            assert t.sent[-1] == {"type": "file:added", "path": "notes.md"}

    @pytest.mark.asyncio
    async def test_broadcast_dict(self):
        hub = FanoutHub()
        transport = FakeTransport()
        hub.register(hub.create_session(transport))

        assert hub.broadcast({"type": "file:changed", "path": "a.txt"}) == 1

    @pytest.mark.asyncio
    async def test_broadcast_with_no_sessions(self):
        hub = FanoutHub()
        assert hub.broadcast(event(ChangeKind.ADDED, "a.txt")) == 0

    @pytest.mark.asyncio
    async def test_per_path_order(self):
        hub = FanoutHub()
        transport = FakeTransport()
        hub.register(hub.create_session(transport))

        hub.broadcast(event(ChangeKind.ADDED, "a.txt"))
        hub.broadcast(event(ChangeKind.CHANGED, "a.txt"))
        hub.broadcast(event(ChangeKind.DELETED, "a.txt"))
        await settle()

        assert transport.types() == ["connected", "file:added", "file:changed", "file:deleted"]

    @pytest.mark.asyncio
    async def test_closed_session_removed_others_unaffected(self):
        hub = FanoutHub()
        healthy = FakeTransport()
        broken = FakeTransport(fail=True)
        hub.register(hub.create_session(healthy))
        hub.register(hub.create_session(broken))
        await settle()

        # The broken session fails on its greeting and is dropped
        assert hub.session_count == 1

        assert hub.broadcast(event(ChangeKind.CHANGED, "a.txt")) == 1
        await settle()
        assert healthy.types() == ["connected", "file:changed"]

    @pytest.mark.asyncio
    async def test_broadcast_to_closed_session_unregisters(self):
        hub = FanoutHub()
        transport = FakeTransport()
        session = hub.create_session(transport)
        hub.register(session)
        other = FakeTransport()
        hub.register(hub.create_session(other))

        # Closed without the hub noticing the callback
        session._on_closed = None
        session.close("gone")
        assert hub.session_count == 2

        assert hub.broadcast(event(ChangeKind.ADDED, "x.txt")) == 1
        assert hub.session_count == 1

    @pytest.mark.asyncio
    async def test_full_queue_drops_session(self):
        hub = FanoutHub(max_queue=1)
        slow = FakeTransport()
        slow.gate = asyncio.Event()
        hub.register(hub.create_session(slow))
        fast = FakeTransport()
        hub.register(hub.create_session(fast))
        await settle()

        hub.broadcast(event(ChangeKind.ADDED, "1.txt"))
        await settle()
        hub.broadcast(event(ChangeKind.ADDED, "2.txt"))
        delivered = hub.broadcast(event(ChangeKind.ADDED, "3.txt"))
        await settle()

        assert delivered == 1
        assert hub.session_count == 1
        assert [m.get("path") for m in fast.sent] == [None, "1.txt", "2.txt", "3.txt"]

    @pytest.mark.asyncio
    async def test_unregister_idempotent(self):
        hub = FanoutHub()
        session = hub.create_session(FakeTransport())
        hub.register(session)

        assert hub.unregister(session) is True
        assert hub.unregister(session) is False
        assert hub.session_count == 0
        assert session.state is SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_ping_answered_ahead_of_broadcasts(self):
        hub = FanoutHub()
        transport = FakeTransport()
        session = hub.create_session(transport)
        hub.register(session)

        for i in range(3):
            hub.broadcast(event(ChangeKind.ADDED, f"{i}.txt"))
        hub.handle_inbound(session, '{"type": "ping"}')
        await settle()

        types = transport.types()
        assert types.count("pong") == 1
        assert types.index("pong") < types.index("file:added")

    @pytest.mark.asyncio
    async def test_subscribe(self):
        hub = FanoutHub()
        transport = FakeTransport()
        session = hub.create_session(transport)
        hub.register(session)

        hub.handle_inbound(session, '{"type": "subscribe", "channel": "files"}')
        await settle()

        assert transport.sent[-1] == {"type": "subscribed", "channel": "files"}

    @pytest.mark.asyncio
    async def test_unknown_and_malformed_ignored(self):
        hub = FanoutHub()
        transport = FakeTransport()
        session = hub.create_session(transport)
        hub.register(session)

        hub.handle_inbound(session, '{"type": "dance"}')
        hub.handle_inbound(session, "not json")
        hub.handle_inbound(session, "[]")
        await settle()

        assert transport.types() == ["connected"]
        assert session.is_open
        assert hub.session_count == 1

    @pytest.mark.asyncio
    async def test_close_all(self):
        hub = FanoutHub()
        transports = [FakeTransport(), FakeTransport()]
        sessions = [hub.create_session(t) for t in transports]
        for s in sessions:
            hub.register(s)

        hub.close_all()
        await settle()

        assert hub.session_count == 0
        assert all(s.state is SessionState.CLOSED for s in sessions)
        assert all(t.closed_with == 1011 for t in transports)


class RecordingHub:
    def __init__(self):
        self.events = []

    def broadcast(self, event):
        self.events.append(event)
        return 1


class TestEventPump:
    """Tests for EventPump."""

    @pytest.mark.asyncio
    async def test_submit_from_thread_preserves_order(self):
        hub = RecordingHub()
        pump = EventPump(hub)
        pump.start()

        events = [event(ChangeKind.CHANGED, f"f{i}.txt") for i in range(50)]

        def produce():
            for e in events:
                pump.submit(e)

        thread = threading.Thread(target=produce)
        thread.start()
        thread.join()

        await pump.stop()

        assert hub.events == events
        assert not pump.is_running

    @pytest.mark.asyncio
    async def test_report_error(self):
        errors = []
        pump = EventPump(RecordingHub(), on_error=errors.append)
        pump.start()

        failure = RuntimeError("root lost")
        thread = threading.Thread(target=pump.report_error, args=(failure,))
        thread.start()
        thread.join()
        await settle()

        assert errors == [failure]
        assert pump.error is failure
        await pump.stop()

    def test_submit_before_start(self):
        pump = EventPump(RecordingHub())
        assert pump.submit(event(ChangeKind.ADDED, "a.txt")) is False

    @pytest.mark.asyncio
    async def test_broadcast_failure_does_not_stop_pump(self):
        class FlakyHub(RecordingHub):
            def broadcast(self, event):
                if event.path == "bad.txt":
                    raise RuntimeError("boom")
                return super().broadcast(event)

        hub = FlakyHub()
        pump = EventPump(hub)
        pump.start()

        pump.submit(event(ChangeKind.ADDED, "bad.txt"))
        pump.submit(event(ChangeKind.ADDED, "good.txt"))
        await pump.stop()

        assert [e.path for e in hub.events] == ["good.txt"]
