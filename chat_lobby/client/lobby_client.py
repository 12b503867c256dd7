"""Lobby client: connection handling and message dispatch.

The host drives the client by calling update() once per frame. Each call
looks at the connection once and handles at most one message, so a burst of
snapshots is spread over several frames instead of stalling one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, cast

from ..common.connection import Connection
from ..common.constants import (
    CONNECT_TIMEOUT,
    CORRECTION_THRESHOLD,
    DEFAULT_HOST,
    DEFAULT_PORT,
    EDGE_MARGIN,
    MAX_RADIUS,
    MOTION_THRESHOLD,
    SKIN_COMMAND,
)
from ..common.geometry import clamp_to_radius
from ..common.protocol import (
    AssignId,
    AvatarSnapshot,
    Chat,
    ChatCommand,
    DecodeError,
    Message,
    MessageType,
    MoveRequest,
    SkinChangeRequest,
    decode_message,
    encode_message,
)
from ..common.transport import FrameStatus
from .avatar_view import AvatarArea
from .reconciliation import Reconciler

logger = logging.getLogger(__name__)

ChatCallback = Callable[[int, str], None]


@dataclass
class ReconnectPolicy:
    """How to retry after the connection drops.

    The defaults retry on every frame with no delay and no limit.
    """

    max_attempts: int | None = None  # consecutive failed attempts; None = forever
    delay: float = 0.0  # seconds to wait before each attempt

    def allows(self, attempts: int) -> bool:
        return self.max_attempts is None or attempts < self.max_attempts


@dataclass
class ClientConfig:
    """Configuration for a LobbyClient."""

    connect_timeout: float = CONNECT_TIMEOUT
    correction_threshold: float = CORRECTION_THRESHOLD
    motion_threshold: float = MOTION_THRESHOLD
    arena_radius: float = MAX_RADIUS
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)


class LobbyClient:
    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        area: AvatarArea | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.config = config or ClientConfig()
        self.area = area if area is not None else AvatarArea()
        self.reconciler = Reconciler(
            self.area,
            correction_threshold=self.config.correction_threshold,
            motion_threshold=self.config.motion_threshold,
        )
        self.connection: Connection | None = None
        self.running = False
        self.failed_attempts = 0
        self._on_chat_callbacks: list[ChatCallback] = []

    @property
    def local_id(self) -> int | None:
        return self.reconciler.local_id

    @property
    def connected(self) -> bool:
        return self.connection is not None

    def on_chat(self, callback: ChatCallback) -> ChatCallback:
        """Decorator for chat lines that were shown over an avatar."""
        self._on_chat_callbacks.append(callback)
        return callback

    async def connect(self) -> bool:
        """Open a fresh session. The server answers with AssignId."""
        conn = await Connection.open(
            self.host, self.port, timeout=self.config.connect_timeout
        )
        if conn is None:
            return False
        self.connection = conn
        self.running = True
        logger.info(f"Connected to {self.host}:{self.port}")
        return True

    async def close(self) -> None:
        self.running = False
        await self._drop_connection()

    async def update(self) -> bool:
        """Per-frame step. Returns True if a message was handled."""
        if self.connection is None:
            if self.running:
                await self._reconnect()
            return False

        frame = self.connection.poll()
        if frame.status is FrameStatus.IDLE:
            return False
        if frame.is_terminal:
            logger.error(f"Receive failed: connection {frame.status.value}")
            await self._reconnect()
            return False

        assert frame.payload is not None
        try:
            message = decode_message(frame.payload)
        except DecodeError as e:
            logger.error(f"Receive failed: {e}")
            await self._reconnect()
            return False

        self._handle_message(message)
        return True

    def _handle_message(self, message: Message) -> None:
        msg_type = message.message_type
        if msg_type == MessageType.ASSIGN_ID:
            self.reconciler.assign_id(cast(AssignId, message).avatar_id)

        elif msg_type == MessageType.AVATAR_SNAPSHOT:
            snapshot = cast(AvatarSnapshot, message)
            self.reconciler.apply_snapshot(snapshot.avatars)

        elif msg_type == MessageType.CHAT:
            chat = cast(Chat, message)
            if self.reconciler.apply_chat(chat.avatar_id, chat.text):
                for callback in self._on_chat_callbacks:
                    callback(chat.avatar_id, chat.text)

        else:
            logger.warning(f"Unexpected {msg_type.name} from server")

    async def send(self, message: Message) -> bool:
        """Send synchronously in the calling frame; reconnect on failure."""
        if self.connection is None:
            logger.warning("Tried to send message while not connected.")
            return False
        if await self.connection.send(encode_message(message)):
            return True
        logger.error(f"Send failed for {message.message_type.name}")
        await self._reconnect()
        return False

    async def submit_chat(self, text: str) -> bool:
        """Send typed text. The skin command never goes out as chat."""
        if not text.strip():
            return False
        if text.lower() == SKIN_COMMAND:
            return await self.send(SkinChangeRequest())
        return await self.send(ChatCommand(text))

    async def move_to(self, x: float, y: float, z: float) -> bool:
        """Move the local avatar: shown immediately, confirmed by the server."""
        self.reconciler.predict_local_move((x, y, z))
        return await self.send(MoveRequest(x, y, z))

    async def move_by(self, dx: float, dz: float) -> bool:
        """Step the local avatar, stopping at the arena edge."""
        position = self.reconciler.local_position
        if position is None:
            return False
        x, y, z = position
        x, z = clamp_to_radius(
            x + dx, z + dz, self.config.arena_radius - EDGE_MARGIN
        )
        return await self.move_to(x, y, z)

    async def _drop_connection(self) -> None:
        conn, self.connection = self.connection, None
        if conn is not None:
            await conn.close()
        # A new connection means a new id, so nothing we know carries over
        self.reconciler.reset()

    async def _reconnect(self) -> bool:
        """Tear down and make one reconnect attempt, as the policy allows."""
        await self._drop_connection()
        policy = self.config.reconnect
        if not policy.allows(self.failed_attempts):
            logger.error(
                f"Giving up after {self.failed_attempts} failed reconnect attempts"
            )
            self.running = False
            return False
        if policy.delay > 0:
            await asyncio.sleep(policy.delay)
        if await self.connect():
            self.failed_attempts = 0
            return True
        self.failed_attempts += 1
        return False
