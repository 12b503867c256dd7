"""Tests for LobbyClient dispatch, commands and reconnection."""

from __future__ import annotations

import asyncio
import math
from typing import Any

import pytest

from chat_lobby.client.lobby_client import ClientConfig, LobbyClient, ReconnectPolicy
from chat_lobby.common.connection import Connection
from chat_lobby.common.protocol import (
    AssignId,
    AvatarInfo,
    AvatarSnapshot,
    Chat,
    ChatCommand,
    Message,
    MoveRequest,
    SkinChangeRequest,
    decode_message,
    encode_message,
)
from chat_lobby.common.transport import Frame, FrameStatus


class FakeConnection:
    def __init__(self) -> None:
        self.closed = False
        self.send_ok = True
        self.dead = False
        self.inbox: list[Frame] = []
        self.sent: list[Message] = []

    def queue(self, message: Message) -> None:
        self.inbox.append(Frame(FrameStatus.OK, encode_message(message)))

    def poll(self) -> Frame:
        if self.closed:
            return Frame(FrameStatus.CLOSED)
        if self.inbox:
            return self.inbox.pop(0)
        return Frame(FrameStatus.CLOSED if self.dead else FrameStatus.IDLE)

    async def send(self, payload: bytes) -> bool:
        if self.closed or not self.send_ok:
            return False
        self.sent.append(decode_message(payload))
        return True

    async def close(self) -> None:
        self.closed = True


class FakeServer:
    """Hands out FakeConnections from Connection.open, or None when down."""

    def __init__(self) -> None:
        self.up = True
        self.opened: list[FakeConnection] = []

    async def open(self, host: str, port: int, timeout: float = 0.0) -> Any:
        if not self.up:
            return None
        conn = FakeConnection()
        self.opened.append(conn)
        return conn


@pytest.fixture
def server(monkeypatch: pytest.MonkeyPatch) -> FakeServer:
    fake = FakeServer()
    monkeypatch.setattr(Connection, "open", fake.open)
    return fake


def _run(coro: Any) -> Any:
    return asyncio.run(coro)


def _connected(server: FakeServer, config: ClientConfig | None = None) -> LobbyClient:
    """A client that has its id and has seen itself plus avatar 1."""
    client = LobbyClient("localhost", 1, config=config)
    assert _run(client.connect())
    conn = server.opened[-1]
    conn.queue(AssignId(0))
    conn.queue(
        AvatarSnapshot(
            [AvatarInfo(0, 0, 0.0, 0.0, 0.0), AvatarInfo(1, 3, 2.0, 0.0, 2.0)]
        )
    )
    _run(client.update())
    _run(client.update())
    return client


class TestDispatch:
    """Tests for handling server messages."""

    def test_one_message_per_update(self, server: FakeServer) -> None:
        client = LobbyClient("localhost", 1)
        _run(client.connect())
        conn = server.opened[0]
        conn.queue(AssignId(0))
        conn.queue(AvatarSnapshot([AvatarInfo(0, 0, 0.0, 0.0, 0.0)]))

        assert _run(client.update())
        assert client.local_id == 0
        assert len(client.area) == 0
        assert _run(client.update())
        assert client.area.has(0)
        assert not _run(client.update())

    def test_chat_callback(self, server: FakeServer) -> None:
        client = _connected(server)
        heard: list[tuple[int, str]] = []

        @client.on_chat
        def record(avatar_id: int, text: str) -> None:
            heard.append((avatar_id, text))

        server.opened[-1].queue(Chat(1, "hello"))
        server.opened[-1].queue(Chat(42, "who?"))
        _run(client.update())
        _run(client.update())
        assert heard == [(1, "hello")]


class TestCommands:
    """Tests for outgoing chat and movement."""

    @pytest.mark.parametrize("text", ["/setskin", "/SetSkin", "/SETSKIN"])
    def test_skin_command(self, server: FakeServer, text: str) -> None:
        client = _connected(server)
        assert _run(client.submit_chat(text))
        assert server.opened[-1].sent == [SkinChangeRequest()]

    @pytest.mark.parametrize("text", ["hello", "/setskin now", "/whisper hi", " /setskin"])
    def test_chat_command(self, server: FakeServer, text: str) -> None:
        client = _connected(server)
        assert _run(client.submit_chat(text))
        assert server.opened[-1].sent == [ChatCommand(text)]

    def test_blank_chat_not_sent(self, server: FakeServer) -> None:
        client = _connected(server)
        assert not _run(client.submit_chat("   "))
        assert server.opened[-1].sent == []

    def test_move_predicts_and_sends(self, server: FakeServer) -> None:
        client = _connected(server)
        assert _run(client.move_to(3.0, 0.0, 4.0))
        assert server.opened[-1].sent == [MoveRequest(3.0, 0.0, 4.0)]
        assert client.reconciler.local_position == (3.0, 0.0, 4.0)

    def test_move_by(self, server: FakeServer) -> None:
        client = _connected(server)
        assert _run(client.move_by(1.0, -1.0))
        assert server.opened[-1].sent == [MoveRequest(1.0, 0.0, -1.0)]

    @pytest.mark.parametrize(
        "start, step",
        [((19.5, 0.0, 0.0), (1.0, 0.0)), ((14.0, 0.0, 14.0), (1.0, 1.0))],
    )
    def test_move_by_stops_at_edge(
        self,
        server: FakeServer,
        start: tuple[float, float, float],
        step: tuple[float, float],
    ) -> None:
        """Steps past the arena edge end just inside it, so the server accepts them."""
        client = _connected(server)
        _run(client.move_to(*start))
        server.opened[-1].sent.clear()

        assert _run(client.move_by(*step))
        (sent,) = server.opened[-1].sent
        assert isinstance(sent, MoveRequest)
        assert 19.9 < math.hypot(sent.x, sent.z) <= 20.0
        local = client.reconciler.local_position
        assert local is not None
        assert math.hypot(local[0], local[2]) <= 20.0

    def test_move_by_before_spawn(self, server: FakeServer) -> None:
        client = LobbyClient("localhost", 1)
        _run(client.connect())
        assert not _run(client.move_by(1.0, 0.0))
        assert server.opened[0].sent == []

    def test_send_without_connection(self) -> None:
        client = LobbyClient("localhost", 1)
        assert not _run(client.send(ChatCommand("hi")))


class TestReconnect:
    """Tests for recovering from a lost connection."""

    def test_receive_failure_reconnects(self, server: FakeServer) -> None:
        client = _connected(server)
        old = server.opened[-1]
        old.dead = True
        _run(client.update())

        assert old.closed
        assert len(server.opened) == 2
        assert client.connection is server.opened[-1]
        # New session, new id: nothing from the old one survives
        assert client.local_id is None
        assert len(client.area) == 0

    def test_malformed_message_reconnects(self, server: FakeServer) -> None:
        client = _connected(server)
        old = server.opened[-1]
        old.inbox.append(Frame(FrameStatus.OK, b"\x63\x00\x00\x00"))
        _run(client.update())
        assert old.closed
        assert len(server.opened) == 2

    def test_send_failure_reconnects(self, server: FakeServer) -> None:
        client = _connected(server)
        old = server.opened[-1]
        old.send_ok = False
        assert not _run(client.submit_chat("hi"))
        assert old.closed
        assert client.connection is server.opened[-1]
        assert client.running

    def test_default_policy_keeps_trying(self, server: FakeServer) -> None:
        client = _connected(server)
        server.up = False
        server.opened[-1].dead = True
        for _ in range(20):
            _run(client.update())
        assert client.running
        assert client.connection is None
        assert client.failed_attempts == 20

        server.up = True
        _run(client.update())
        assert client.connected
        assert client.failed_attempts == 0

    def test_bounded_policy_gives_up(self, server: FakeServer) -> None:
        config = ClientConfig(reconnect=ReconnectPolicy(max_attempts=2))
        client = _connected(server, config)
        server.up = False
        server.opened[-1].dead = True

        _run(client.update())
        _run(client.update())
        assert client.running
        assert client.failed_attempts == 2
        _run(client.update())
        assert not client.running
        assert not client.connected

    def test_close_stops(self, server: FakeServer) -> None:
        client = _connected(server)
        _run(client.close())
        assert not client.running
        assert server.opened[-1].closed
        assert not _run(client.update())
        assert len(server.opened) == 1


class TestReconnectPolicy:
    def test_unbounded(self) -> None:
        assert ReconnectPolicy().allows(10_000)

    def test_bounded(self) -> None:
        policy = ReconnectPolicy(max_attempts=3)
        assert policy.allows(2)
        assert not policy.allows(3)

    def test_zero_attempts(self) -> None:
        assert not ReconnectPolicy(max_attempts=0).allows(0)
