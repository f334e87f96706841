"""Tests for the relay server: fan-out, presence lifecycle, health probe."""
import asyncio
from unittest.mock import MagicMock, patch

import pytest
from websockets.protocol import State

from relaychat import messages as m
from relaychat.framing import MAX_FRAME_SIZE, encode_frame, write_frame
from relaychat.node import HEALTH_BODY, RelayServer
from tests.support import assert_silent, recv_event, wait_until


def closed_connection():
    """A transport handle that is already past the point of writing."""
    conn = MagicMock()
    conn.protocol.state = State.CLOSED
    return conn


class TestProcessFrame:
    """Frame handling without a network: peers are all non-writable mocks."""

    @pytest.fixture
    def server(self):
        return RelayServer()

    def test_malformed_frames_change_nothing(self, server):
        entry = server.registry.register(closed_connection())
        server.registry.register(closed_connection())
        server.broadcast = MagicMock()
        for data in ["{nope", "[]", '{"type":"join"}', '{"type":"bogus"}', b"\xff"]:
            assert server.process_frame(entry, data) is None
        server.broadcast.assert_not_called()
        assert entry.identity is None
        assert len(server.registry) == 2

    def test_join_routes_and_broadcasts_once(self, server):
        entry = server.registry.register(closed_connection())
        server.broadcast = MagicMock()
        out = server.process_frame(entry, '{"type":"join","codename":"ghost"}')
        assert out == m.Presence("ghost has entered the channel.")
        server.broadcast.assert_called_once_with(entry, out)

    def test_broadcast_skips_unwritable_peers_without_error(self, server):
        source = server.registry.register(closed_connection())
        peers = [server.registry.register(closed_connection()) for _ in range(3)]
        assert server.broadcast(source, m.Presence("hello")) == 3
        for peer in peers:
            peer.connection.send.assert_not_called()
        assert len(server.registry) == 4

    def test_oversize_broadcast_is_dropped_without_error(self, server):
        source = server.registry.register(closed_connection())
        server.registry.register(closed_connection())
        with patch("relaychat.node.ws_broadcast") as send:
            assert server.broadcast(source, m.Presence("x" * MAX_FRAME_SIZE)) == 0
        send.assert_not_called()
        assert len(server.registry) == 2

    def test_near_cap_join_is_dropped(self, server):
        entry = server.registry.register(closed_connection())
        server.broadcast = MagicMock()
        data = encode_frame({"type": "join", "codename": "x" * (MAX_FRAME_SIZE - 40)})
        assert server.process_frame(entry, data) is None
        server.broadcast.assert_not_called()
        assert entry.identity is None

    def test_drop_announces_named_entry(self, server):
        entry = server.registry.register(closed_connection())
        server.registry.set_identity(entry, "ghost")
        server.broadcast = MagicMock()
        server.drop(entry)
        server.broadcast.assert_called_once_with(entry, m.Presence("ghost is now OFFLINE"))
        assert len(server.registry) == 0

    def test_drop_unnamed_entry_is_silent(self, server):
        entry = server.registry.register(closed_connection())
        server.broadcast = MagicMock()
        server.drop(entry)
        server.broadcast.assert_not_called()


class TestFanOut:
    @pytest.mark.asyncio
    async def test_sender_is_excluded_and_everyone_else_receives(self, relay):
        a = await relay.attach()
        b = await relay.attach()
        c = await relay.attach()
        await write_frame(a, m.Message("alice", "hi all", False).to_wire())
        expected = {"type": "message", "codename": "alice", "text": "hi all", "encrypted": False}
        assert await recv_event(b) == expected
        assert await recv_event(c) == expected
        await assert_silent(a)

    @pytest.mark.asyncio
    async def test_obscured_body_relayed_untouched(self, relay):
        a = await relay.attach()
        b = await relay.attach()
        # The server doesn't care whether the body is really Base64.
        await write_frame(a, {"type": "message", "codename": "x", "text": "not base64 at all", "encrypted": True})
        assert await recv_event(b) == {"type": "message", "codename": "x", "text": "not base64 at all", "encrypted": True}

    @pytest.mark.asyncio
    async def test_malformed_payloads_are_dropped_quietly(self, relay):
        a = await relay.attach()
        b = await relay.attach()
        for data in ["not json", '{"type":"join"}', '{"type":"message","codename":"x","text":"y"}', '{"type":"x"}']:
            await a.send(data)
        await assert_silent(b)
        await assert_silent(a)
        # The link survives and still works afterwards.
        await write_frame(a, m.Join("alice").to_wire())
        assert (await recv_event(b))["text"] == "alice has entered the channel."
        assert all(e.identity in (None, "alice") for e in relay.registry)

    @pytest.mark.asyncio
    async def test_near_cap_join_keeps_the_link_alive(self, relay):
        watcher = await relay.attach()
        sender = await relay.attach()
        await write_frame(sender, {"type": "join", "codename": "x" * (MAX_FRAME_SIZE - 40)})
        await assert_silent(watcher)
        assert len(relay.registry) == 2
        await write_frame(sender, m.Join("ghost").to_wire())
        assert await recv_event(watcher) == {"type": "system", "text": "ghost has entered the channel."}

    @pytest.mark.asyncio
    async def test_concurrent_joins_seen_by_everyone_else(self, relay):
        names = ["n0", "n1", "n2", "n3", "n4"]
        clients = [await relay.attach() for _ in names]
        await asyncio.gather(*(write_frame(ws, m.Join(n).to_wire()) for ws, n in zip(clients, names)))
        for ws, name in zip(clients, names):
            seen = [(await recv_event(ws))["text"] for _ in range(len(names) - 1)]
            assert sorted(seen) == sorted(f"{n} has entered the channel." for n in names if n != name)
            await assert_silent(ws, 0.05)


class TestPresenceLifecycle:
    @pytest.mark.asyncio
    async def test_join_then_close_yields_exactly_two_presence_events(self, relay):
        watcher = await relay.attach()
        ghost = await relay.attach("ghost")
        assert await recv_event(watcher) == {"type": "system", "text": "ghost has entered the channel."}
        await relay.detach(ghost)
        assert await recv_event(watcher) == {"type": "system", "text": "ghost is now OFFLINE"}
        await assert_silent(watcher)

    @pytest.mark.asyncio
    async def test_close_without_join_is_silent(self, relay):
        watcher = await relay.attach()
        lurker = await relay.attach()
        await relay.detach(lurker)
        await assert_silent(watcher)

    @pytest.mark.asyncio
    async def test_rename_then_message(self, relay):
        watcher = await relay.attach()
        sender = await relay.attach()
        await write_frame(sender, m.Rename("a", "b").to_wire())
        presence = await recv_event(watcher)
        assert presence["type"] == "system"
        assert "a" in presence["text"] and "b" in presence["text"]
        assert relay.registry.live_identities() == ["b"]

        await write_frame(sender, m.Message("b", "hello", False).to_wire())
        assert (await recv_event(watcher))["codename"] == "b"

    @pytest.mark.asyncio
    async def test_abrupt_disconnect_is_cleaned_up(self, relay):
        watcher = await relay.attach()
        ghost = await relay.attach("ghost")
        await recv_event(watcher)
        ghost.transport.abort()
        await wait_until(lambda: len(relay.registry) == 1)
        assert await recv_event(watcher) == {"type": "system", "text": "ghost is now OFFLINE"}


class TestHealthProbe:
    async def http_get(self, relay, path):
        host, port = relay.url[len("ws://"):].split(":")
        reader, writer = await asyncio.open_connection(host, int(port))
        writer.write(f"GET {path} HTTP/1.1\r\nHost: {host}\r\n\r\n".encode("ascii"))
        await writer.drain()
        data = await asyncio.wait_for(reader.read(), 2.0)
        writer.close()
        return data.decode("utf-8", "replace")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/", "/health", "/health?probe=1"])
    async def test_health_paths_answer_ok(self, relay, path):
        response = await self.http_get(relay, path)
        assert response.startswith("HTTP/1.1 200")
        assert HEALTH_BODY in response

    @pytest.mark.asyncio
    async def test_other_paths_are_not_found(self, relay):
        response = await self.http_get(relay, "/nope")
        assert response.startswith("HTTP/1.1 404")

    @pytest.mark.asyncio
    async def test_probe_does_not_register_a_connection(self, relay):
        await self.http_get(relay, "/health")
        assert len(relay.registry) == 0
