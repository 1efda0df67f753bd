"""Tests for broadcasting state to subscribers."""
import asyncio
import json
import logging

import pytest
from starlette.websockets import WebSocketState

from signage.services.realtime import BroadcastReport, RealtimeHub, StateBroadcaster, WebSocketSubscriber
from fakes import FakeRegistry, FakeSubscriber, FakeWebSocket


@pytest.fixture
def unregistered(fake_reads) -> StateBroadcaster:
    return StateBroadcaster(fake_reads, send_timeout=0.2)


class TestBroadcastWithoutRegistry:
    async def test_returns_without_sending(self, unregistered, fake_store, caplog):
        caplog.set_level(logging.WARNING)

        report = await unregistered.broadcast()

        assert report == BroadcastReport()
        assert "broadcast skipped" in caplog.text
        assert fake_store.calls == {}

    async def test_can_be_uninstalled(self, unregistered):
        subscriber = FakeSubscriber()
        unregistered.set_channel(FakeRegistry(subscriber))
        unregistered.set_channel(None)

        await unregistered.broadcast()

        assert subscriber.sent == []


class TestBroadcast:
    async def test_same_payload_to_every_ready_subscriber(self, unregistered, fake_store):
        fake_store.add_state("A", "/x.png")
        first, second = FakeSubscriber(), FakeSubscriber()
        unregistered.set_channel(FakeRegistry(first, second))

        report = await unregistered.broadcast()

        assert report == BroadcastReport(sent=2, skipped=0, failed=0)
        assert first.sent == second.sent
        assert json.loads(first.sent[0])["screens"]["A"]["src"] == "/x.png"

    async def test_serializes_once(self, unregistered, fake_store, monkeypatch):
        import signage.services.realtime as realtime

        calls = []
        original = realtime.encode_state_message

        def counting(state_map):
            calls.append(1)
            return original(state_map)

        monkeypatch.setattr(realtime, "encode_state_message", counting)
        unregistered.set_channel(FakeRegistry(FakeSubscriber(), FakeSubscriber(), FakeSubscriber()))

        await unregistered.broadcast()

        assert len(calls) == 1

    async def test_failing_subscriber_is_isolated(self, unregistered, caplog):
        caplog.set_level(logging.WARNING)
        good_one, bad, good_two = FakeSubscriber(), FakeSubscriber(error=ConnectionResetError("gone")), FakeSubscriber()
        unregistered.set_channel(FakeRegistry(good_one, bad, good_two))

        report = await unregistered.broadcast()

        assert len(good_one.sent) == 1
        assert len(good_two.sent) == 1
        assert report.failed == 1
        assert report.sent == 2
        assert "Broadcast send failed" in caplog.text

    async def test_not_ready_subscribers_are_skipped(self, unregistered):
        ready, closing = FakeSubscriber(), FakeSubscriber(ready=False)
        unregistered.set_channel(FakeRegistry(ready, closing))

        report = await unregistered.broadcast()

        assert closing.sent == []
        assert len(ready.sent) == 1
        assert report.skipped == 1

    async def test_hung_subscriber_is_bounded_by_timeout(self, unregistered):
        hung, fast = FakeSubscriber(delay=5), FakeSubscriber()
        unregistered.set_channel(FakeRegistry(hung, fast))

        report = await unregistered.broadcast()

        assert len(fast.sent) == 1
        assert hung.sent == []
        assert report.failed == 1

    async def test_most_recent_registry_wins(self, unregistered):
        old, new = FakeSubscriber(), FakeSubscriber()
        unregistered.set_channel(FakeRegistry(old))
        unregistered.set_channel(FakeRegistry(new))

        await unregistered.broadcast()

        assert old.sent == []
        assert len(new.sent) == 1

    async def test_storage_error_propagates(self, unregistered, fake_store):
        fake_store.fail_with = RuntimeError("storage down")
        subscriber = FakeSubscriber()
        unregistered.set_channel(FakeRegistry(subscriber))

        with pytest.raises(RuntimeError):
            await unregistered.broadcast()
        assert subscriber.sent == []


class TestRealtimeHub:
    async def test_broadcast_during_accept_still_reaches_client(self, store, reads, broadcaster):
        hub = RealtimeHub()
        broadcaster.set_channel(hub)
        await store.upsert_screen_state("A", "/old.png")
        await broadcaster.snapshot()  # warm the cache with the old state
        gate = asyncio.Event()
        websocket = FakeWebSocket(accept_gate=gate)

        connecting = asyncio.create_task(hub.connect(websocket, broadcaster))
        await asyncio.sleep(0)
        await store.upsert_screen_state("A", "/new.png")
        reads.invalidate_state("A")
        await broadcaster.broadcast()
        gate.set()
        await connecting

        assert [json.loads(m)["screens"]["A"]["src"] for m in websocket.messages] == ["/new.png"]
        assert len(hub) == 1

    async def test_registered_client_gets_later_broadcasts(self, store, reads, broadcaster):
        hub = RealtimeHub()
        broadcaster.set_channel(hub)
        websocket = FakeWebSocket()
        await hub.connect(websocket, broadcaster)

        await store.upsert_screen_state("B", "/b.png")
        reads.invalidate_state("B")
        report = await broadcaster.broadcast()

        assert report.sent == 1
        assert json.loads(websocket.messages[-1])["screens"]["B"]["src"] == "/b.png"

        hub.disconnect(websocket)
        assert hub.subscribers() == []

    async def test_disconnected_sockets_are_pruned(self):
        hub = RealtimeHub()
        websocket = FakeWebSocket()
        await hub.connect(websocket)

        websocket.client_state = WebSocketState.DISCONNECTED

        assert hub.subscribers() == []
        assert len(hub) == 0


class TestWebSocketSubscriber:
    async def test_older_revision_is_dropped(self):
        websocket = FakeWebSocket()
        await websocket.accept()
        subscriber = WebSocketSubscriber(websocket)

        await subscriber.send("second", revision=2)
        await subscriber.send("first", revision=1)
        await subscriber.send("third", revision=3)

        assert websocket.messages == ["second", "third"]

    async def test_unversioned_payloads_always_go_out(self):
        websocket = FakeWebSocket()
        await websocket.accept()
        subscriber = WebSocketSubscriber(websocket)

        await subscriber.send("a", revision=5)
        await subscriber.send("b")

        assert websocket.messages == ["a", "b"]

    async def test_revisions_increase_across_snapshots(self, unregistered):
        first, _ = await unregistered.versioned_snapshot()
        second, _ = await unregistered.versioned_snapshot()

        assert second > first
