"""End-to-end tests against a real server on a local socket."""

from __future__ import annotations

import asyncio
from asyncio import StreamReader, StreamWriter
from typing import Any, Awaitable, Callable

from chat_lobby.client.lobby_client import LobbyClient
from chat_lobby.common.protocol import (
    AssignId,
    AvatarSnapshot,
    Chat,
    ChatCommand,
    Message,
    MoveRequest,
    decode_message,
    encode_message,
)
from chat_lobby.common.transport import read_frame, write_frame
from chat_lobby.server.lobby_server import LobbyServer

HOST = "127.0.0.1"


async def _with_server(body: Callable[[LobbyServer], Awaitable[None]]) -> None:
    server = LobbyServer(HOST, 0, tick_interval=0.01)
    listener = await server.listen()
    task = asyncio.create_task(server.run())
    try:
        await body(server)
    finally:
        server.stop()
        await task
        await server.shutdown()
        listener.close()
        await listener.wait_closed()


class RawClient:
    """Speaks the wire protocol directly, no reconciliation."""

    def __init__(self, reader: StreamReader, writer: StreamWriter) -> None:
        self.reader = reader
        self.writer = writer

    @classmethod
    async def connect(cls, port: int) -> RawClient:
        reader, writer = await asyncio.open_connection(HOST, port)
        return cls(reader, writer)

    async def recv(self) -> Message:
        frame = await read_frame(self.reader, timeout=2.0)
        assert frame.ok, frame.status
        assert frame.payload is not None
        return decode_message(frame.payload)

    async def send(self, message: Message) -> None:
        assert await write_frame(self.writer, encode_message(message))

    async def close(self) -> None:
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass


class TestLobbySession:
    """The full join, move, chat and leave sequence over TCP."""

    def test_two_clients(self) -> None:
        async def body(server: LobbyServer) -> None:
            a = await RawClient.connect(server.port)
            b: RawClient | None = None
            try:
                assert await a.recv() == AssignId(0)
                first = await a.recv()
                assert isinstance(first, AvatarSnapshot)
                assert [x.avatar_id for x in first.avatars] == [0]

                b = await RawClient.connect(server.port)
                assert await b.recv() == AssignId(1)
                for client in (a, b):
                    snapshot = await client.recv()
                    assert isinstance(snapshot, AvatarSnapshot)
                    assert [x.avatar_id for x in snapshot.avatars] == [0, 1]

                await a.send(MoveRequest(5.0, 0.0, 5.0))
                for client in (a, b):
                    snapshot = await client.recv()
                    assert isinstance(snapshot, AvatarSnapshot)
                    assert snapshot.avatars[0].position == (5.0, 0.0, 5.0)

                await a.send(ChatCommand("hello"))
                for client in (a, b):
                    assert await client.recv() == Chat(0, "hello")

                await a.close()
                snapshot = await b.recv()
                assert isinstance(snapshot, AvatarSnapshot)
                assert [x.avatar_id for x in snapshot.avatars] == [1]
            finally:
                await a.close()
                if b is not None:
                    await b.close()

        asyncio.run(_with_server(body))

    def test_garbage_disconnects_only_sender(self) -> None:
        async def body(server: LobbyServer) -> None:
            a = await RawClient.connect(server.port)
            b = await RawClient.connect(server.port)
            try:
                await a.recv()  # AssignId
                await b.recv()
                # Drain snapshots until both see two avatars
                while True:
                    snapshot = await b.recv()
                    assert isinstance(snapshot, AvatarSnapshot)
                    if len(snapshot.avatars) == 2:
                        break

                a.writer.write(b"\xff\xff\xff\xff")
                await a.writer.drain()
                while True:
                    snapshot = await b.recv()
                    assert isinstance(snapshot, AvatarSnapshot)
                    if len(snapshot.avatars) == 1:
                        break
                assert len(server.connections) == 1
            finally:
                await a.close()
                await b.close()

        asyncio.run(_with_server(body))


class TestHalfClosedPeer:
    """A client that sends and hangs up in one go is still heard."""

    def test_chat_then_hang_up(self) -> None:
        async def run() -> None:
            server = LobbyServer(HOST, 0)
            listener = await server.listen()
            a = await RawClient.connect(server.port)
            b = await RawClient.connect(server.port)
            try:
                await asyncio.sleep(0.05)
                await server.tick()
                a_id = await a.recv()
                b_id = await b.recv()
                assert isinstance(a_id, AssignId) and isinstance(b_id, AssignId)

                await b.send(ChatCommand("bye"))
                b.writer.write_eof()
                await a.send(MoveRequest(1.0, 0.0, 1.0))
                # Let both pumps pick up everything that was sent
                await asyncio.sleep(0.1)
                await server.tick()
                await server.tick()

                received: list[Message] = []
                while Chat(b_id.avatar_id, "bye") not in received:
                    received.append(await a.recv())

                while True:
                    message = await a.recv()
                    if isinstance(message, AvatarSnapshot):
                        if [x.avatar_id for x in message.avatars] == [a_id.avatar_id]:
                            break
            finally:
                await a.close()
                await b.close()
                await server.shutdown()
                listener.close()
                await listener.wait_closed()

        asyncio.run(run())


async def _pump(
    clients: list[LobbyClient], done: Callable[[], bool], timeout: float = 3.0
) -> None:
    """Drive client frames until done() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not done():
        assert loop.time() < deadline, "timed out"
        for client in clients:
            await client.update()
        await asyncio.sleep(0.005)


class TestLobbyClientSession:
    """LobbyClient against a live server."""

    def test_move_and_chat_seen_by_other(self) -> None:
        async def body(server: LobbyServer) -> None:
            alice = LobbyClient(HOST, server.port)
            bob = LobbyClient(HOST, server.port)
            heard: list[Any] = []
            bob.on_chat(lambda avatar_id, text: heard.append((avatar_id, text)))
            try:
                assert await alice.connect()
                await _pump([alice], lambda: alice.reconciler.initialized)
                assert await bob.connect()
                await _pump(
                    [alice, bob],
                    lambda: bob.reconciler.initialized and len(alice.area) == 2,
                )
                assert alice.local_id == 0
                assert bob.local_id == 1

                assert await alice.move_to(3.0, 0.0, 4.0)
                await _pump(
                    [alice, bob],
                    lambda: bob.reconciler.server_positions.get(0) == (3.0, 0.0, 4.0),
                )

                assert await alice.submit_chat("hi bob")
                await _pump([alice, bob], lambda: bool(heard))
                assert heard == [(0, "hi bob")]

                await alice.close()
                await _pump([bob], lambda: not bob.area.has(0))
            finally:
                await alice.close()
                await bob.close()

        asyncio.run(_with_server(body))
