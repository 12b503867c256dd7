"""Lobby server: connection lifecycle, authoritative state and broadcasts."""

from __future__ import annotations

import asyncio
import logging
import random
from asyncio import StreamReader, StreamWriter
from typing import cast

from ..common.connection import Connection
from ..common.constants import (
    DEFAULT_PORT,
    DEFAULT_SERVER_HOST,
    MAX_MESSAGE_SIZE,
    READ_TIMEOUT,
    TICK_INTERVAL,
    WRITE_TIMEOUT,
)
from ..common.protocol import (
    AssignId,
    AvatarSnapshot,
    Chat,
    ChatCommand,
    DecodeError,
    Message,
    MessageType,
    MoveRequest,
    decode_message,
    encode_message,
)
from ..common.transport import FrameStatus
from .chat_router import parse_chat_command, whisper_recipients
from .world import World

logger = logging.getLogger(__name__)


class LobbyServer:
    """Single-loop authoritative server.

    Everything that touches the connection list or the world happens inside
    tick(), which runs once per tick_interval. Accepting a socket only queues
    it; the next tick gives it an id and announces it.
    """

    def __init__(
        self,
        host: str = DEFAULT_SERVER_HOST,
        port: int = DEFAULT_PORT,
        tick_interval: float = TICK_INTERVAL,
        read_timeout: float = READ_TIMEOUT,
        write_timeout: float = WRITE_TIMEOUT,
        rng: random.Random | None = None,
    ):
        self.host = host
        self.port = port
        self.tick_interval = tick_interval
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.world = World(rng)
        self.connections: list[Connection] = []
        self._pending: list[Connection] = []
        self._server: asyncio.Server | None = None
        self._running = False

    async def start(self) -> None:
        """Listen and run the tick loop until stop() is called."""
        server = await self.listen()
        async with server:
            try:
                await self.run()
            finally:
                await self.shutdown()

    async def listen(self) -> asyncio.Server:
        server = await asyncio.start_server(
            self._on_accept, self.host, self.port, reuse_address=True
        )
        addr = server.sockets[0].getsockname()
        # Port 0 means "pick one"; remember what we actually got
        self.port = addr[1]
        logger.info(f"Server listening on {addr[0]}:{addr[1]}")
        self._server = server
        return server

    async def run(self) -> None:
        self._running = True
        while self._running:
            await self.tick()
            await asyncio.sleep(self.tick_interval)

    def stop(self) -> None:
        self._running = False

    async def shutdown(self) -> None:
        """Close every connection, queued or active."""
        self._running = False
        for conn in self._pending + self.connections:
            self.world.unregister(conn)
            await conn.close()
        self._pending.clear()
        self.connections.clear()

    def _on_accept(self, reader: StreamReader, writer: StreamWriter) -> None:
        conn = Connection(reader, writer, self.read_timeout, self.write_timeout)
        conn.start()
        self._pending.append(conn)

    def add_connection(self, conn: Connection) -> None:
        """Queue an already-open connection as if it had just been accepted."""
        self._pending.append(conn)

    async def tick(self) -> None:
        await self._process_new_connections()
        await self._process_existing_connections()

    async def _process_new_connections(self) -> None:
        while self._pending:
            conn = self._pending.pop(0)
            avatar = self.world.register(conn)

            if not await conn.send(encode_message(AssignId(avatar.avatar_id))):
                # Never announced, so nobody needs to hear about it leaving
                logger.info(
                    f"Client {avatar.avatar_id} ({conn.peer}) dropped before "
                    "receiving its id"
                )
                self.world.unregister(conn)
                await conn.close()
                continue

            self.connections.append(conn)
            logger.info(
                f"Client {avatar.avatar_id} connected from {conn.peer} at "
                f"({avatar.x:.2f}, {avatar.y:.2f}, {avatar.z:.2f}) skin {avatar.skin}"
            )
            await self._broadcast_snapshot()

    async def _process_existing_connections(self) -> None:
        for conn in list(self.connections):
            if conn not in self.connections:
                continue  # Dropped by a broadcast earlier in this tick

            frame = conn.poll()
            if frame.status is FrameStatus.IDLE:
                continue
            if frame.is_terminal:
                if frame.status is FrameStatus.MALFORMED:
                    logger.warning(f"Bad frame from {self._describe(conn)}")
                await self._disconnect([conn])
                continue

            assert frame.payload is not None
            try:
                message = decode_message(frame.payload)
            except DecodeError as e:
                logger.warning(f"Malformed message from {self._describe(conn)}: {e}")
                await self._disconnect([conn])
                continue

            try:
                await self._handle_message(conn, message)
            except Exception as e:
                logger.error(
                    f"Unexpected error for {self._describe(conn)}: "
                    f"{type(e).__name__}: {e}",
                    exc_info=True,
                )
                await self._disconnect([conn])

    async def _handle_message(self, conn: Connection, message: Message) -> None:
        msg_type = message.message_type
        if msg_type == MessageType.MOVE_REQUEST:
            await self._handle_move_request(conn, cast(MoveRequest, message))

        elif msg_type == MessageType.CHAT_COMMAND:
            await self._handle_chat_command(conn, cast(ChatCommand, message))

        elif msg_type == MessageType.SKIN_CHANGE_REQUEST:
            await self._handle_skin_request(conn)

        else:
            # Server-to-client kinds have no meaning here
            logger.warning(f"Ignoring {msg_type.name} from {self._describe(conn)}")

    async def _handle_move_request(self, conn: Connection, move: MoveRequest) -> None:
        avatar = self.world.get(conn)
        if avatar is None:
            return
        if self.world.apply_move(conn, move.x, move.y, move.z):
            await self._broadcast_snapshot()
        else:
            logger.info(
                f"Client {avatar.id} illegal move to ({move.x:.2f}, {move.z:.2f})"
            )

    async def _handle_skin_request(self, conn: Connection) -> None:
        avatar = self.world.apply_skin_change(conn)
        if avatar is None:
            return
        logger.debug(f"Client {avatar.avatar_id} changed skin to {avatar.skin}")
        await self._broadcast_snapshot()

    async def _handle_chat_command(self, conn: Connection, command: ChatCommand) -> None:
        avatar = self.world.get(conn)
        if avatar is None:
            return

        whisper, text = parse_chat_command(command.text)
        payload = encode_message(Chat(avatar.id, text))
        if len(payload) > MAX_MESSAGE_SIZE:
            logger.warning(f"Dropping oversized chat from client {avatar.id}")
            return

        # Recipients are fixed here, using positions as they are right now
        if whisper:
            recipients = whisper_recipients(avatar, self.world.avatars())
            logger.debug(
                f"Client {avatar.id} whispers to {len(recipients)} client(s): {text}"
            )
        else:
            recipients = list(self.connections)
            logger.debug(f"Client {avatar.id} says: {text}")

        failed = await self._broadcast(payload, recipients)
        await self._disconnect(failed)

    async def _broadcast_snapshot(self) -> None:
        failed = await self._broadcast(self._snapshot_payload(), self.connections)
        await self._disconnect(failed)

    def _snapshot_payload(self) -> bytes:
        return encode_message(AvatarSnapshot(self.world.snapshot()))

    async def _broadcast(
        self, payload: bytes, recipients: list[Connection]
    ) -> list[Connection]:
        """Send payload to each recipient. Returns the ones that failed.

        Nothing is removed here; callers hand the failures to _disconnect()
        once the loop is over so one bad peer never holds up the others.
        Peers already known to be gone count as failures without a write, so
        they are purged (and the snapshot redone) in the same tick. A gone peer
        with frames still queued stays until poll() has handed them all out.
        """
        failed: list[Connection] = []
        for conn in list(recipients):
            if not (conn.is_alive or conn.has_pending):
                failed.append(conn)
            elif not await conn.send(payload):
                failed.append(conn)
        return failed

    async def _disconnect(self, doomed: list[Connection]) -> None:
        """Drop connections, then tell everyone else.

        The follow-up snapshot can itself hit dead peers; those form the next
        batch until a broadcast goes through cleanly.
        """
        while doomed:
            removed_avatar = False
            for conn in dict.fromkeys(doomed):
                if conn not in self.connections and conn not in self.world:
                    continue  # Already handled
                if conn in self.connections:
                    self.connections.remove(conn)
                avatar = self.world.unregister(conn)
                if avatar is not None:
                    logger.info(f"Client {avatar.avatar_id} disconnected.")
                    removed_avatar = True
                else:
                    logger.info(f"Unknown client {conn.peer} disconnected.")
                await conn.close()

            if not removed_avatar:
                return
            doomed = await self._broadcast(self._snapshot_payload(), self.connections)

    def _describe(self, conn: Connection) -> str:
        avatar = self.world.get(conn)
        if avatar is None:
            return conn.peer
        return f"client {avatar.id} ({conn.peer})"
