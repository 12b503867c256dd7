"""Binary wire protocol for lobby messages.

Every payload starts with a 32-bit message type tag followed by the fields of
that message in a fixed order. All primitives are little-endian:

    int     -> 4 bytes signed
    float   -> 4 bytes IEEE-754 single precision
    string  -> int byte count + UTF-8 bytes
    list    -> int element count + encoded elements

Framing (the length prefix in front of each payload) lives in transport.py.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, ClassVar, Union

_INT = struct.Struct("<i")
_FLOAT = struct.Struct("<f")
_AVATAR = struct.Struct("<iifff")
_VEC3 = struct.Struct("<fff")


class MessageType(IntEnum):
    ASSIGN_ID = 1  # server -> client
    AVATAR_SNAPSHOT = 2  # server -> client
    CHAT = 3  # server -> client
    CHAT_COMMAND = 4  # client -> server
    SKIN_CHANGE_REQUEST = 5  # client -> server
    MOVE_REQUEST = 6  # client -> server


class DecodeError(ValueError):
    """Raised when bytes do not form a valid message."""


@dataclass(frozen=True)
class AvatarInfo:
    avatar_id: int
    skin: int
    x: float
    y: float
    z: float

    @property
    def position(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class AssignId:
    message_type: ClassVar[MessageType] = MessageType.ASSIGN_ID
    avatar_id: int


@dataclass(frozen=True)
class AvatarSnapshot:
    message_type: ClassVar[MessageType] = MessageType.AVATAR_SNAPSHOT
    avatars: list[AvatarInfo] = field(default_factory=list)


@dataclass(frozen=True)
class Chat:
    message_type: ClassVar[MessageType] = MessageType.CHAT
    avatar_id: int
    text: str


@dataclass(frozen=True)
class ChatCommand:
    message_type: ClassVar[MessageType] = MessageType.CHAT_COMMAND
    text: str


@dataclass(frozen=True)
class SkinChangeRequest:
    message_type: ClassVar[MessageType] = MessageType.SKIN_CHANGE_REQUEST


@dataclass(frozen=True)
class MoveRequest:
    message_type: ClassVar[MessageType] = MessageType.MOVE_REQUEST
    x: float
    y: float
    z: float


Message = Union[
    AssignId, AvatarSnapshot, Chat, ChatCommand, SkinChangeRequest, MoveRequest
]


class _PayloadReader:
    """Cursor over a payload that raises DecodeError instead of overrunning."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.offset = 0

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if size < 0 or end > len(self.data):
            raise DecodeError(
                f"need {size} bytes at offset {self.offset}, "
                f"only {len(self.data) - self.offset} left"
            )
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self._take(fmt.size))

    def read_int(self) -> int:
        value: int = self.unpack(_INT)[0]
        return value

    def read_count(self) -> int:
        count = self.read_int()
        if count < 0:
            raise DecodeError(f"negative length {count}")
        return count

    def read_string(self) -> str:
        raw = self._take(self.read_count())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"invalid UTF-8 text: {e}") from e

    def finish(self) -> None:
        if self.offset != len(self.data):
            raise DecodeError(
                f"{len(self.data) - self.offset} trailing bytes after message"
            )


def _pack_string(text: str) -> bytes:
    encoded = text.encode("utf-8")
    return _INT.pack(len(encoded)) + encoded


def encode_avatar_info(avatar: AvatarInfo) -> bytes:
    return _AVATAR.pack(avatar.avatar_id, avatar.skin, avatar.x, avatar.y, avatar.z)


def _read_avatar_info(reader: _PayloadReader) -> AvatarInfo:
    avatar_id, skin, x, y, z = reader.unpack(_AVATAR)
    return AvatarInfo(avatar_id, skin, x, y, z)


def decode_avatar_info(data: bytes) -> AvatarInfo:
    reader = _PayloadReader(data)
    avatar = _read_avatar_info(reader)
    reader.finish()
    return avatar


# Encoders: message body only, the tag is written by encode_message


def _encode_assign_id(msg: AssignId) -> bytes:
    return _INT.pack(msg.avatar_id)


def _encode_avatar_snapshot(msg: AvatarSnapshot) -> bytes:
    parts = [_INT.pack(len(msg.avatars))]
    parts.extend(encode_avatar_info(a) for a in msg.avatars)
    return b"".join(parts)


def _encode_chat(msg: Chat) -> bytes:
    return _INT.pack(msg.avatar_id) + _pack_string(msg.text)


def _encode_chat_command(msg: ChatCommand) -> bytes:
    return _pack_string(msg.text)


def _encode_skin_change_request(msg: SkinChangeRequest) -> bytes:
    return b""


def _encode_move_request(msg: MoveRequest) -> bytes:
    return _VEC3.pack(msg.x, msg.y, msg.z)


# Decoders: read the body after the tag


def _decode_assign_id(reader: _PayloadReader) -> AssignId:
    return AssignId(reader.read_int())


def _decode_avatar_snapshot(reader: _PayloadReader) -> AvatarSnapshot:
    count = reader.read_count()
    # Reject impossible counts before allocating anything
    remaining = len(reader.data) - reader.offset
    if count * _AVATAR.size > remaining:
        raise DecodeError(f"snapshot claims {count} avatars, {remaining} bytes left")
    return AvatarSnapshot([_read_avatar_info(reader) for _ in range(count)])


def _decode_chat(reader: _PayloadReader) -> Chat:
    avatar_id = reader.read_int()
    return Chat(avatar_id, reader.read_string())


def _decode_chat_command(reader: _PayloadReader) -> ChatCommand:
    return ChatCommand(reader.read_string())


def _decode_skin_change_request(reader: _PayloadReader) -> SkinChangeRequest:
    return SkinChangeRequest()


def _decode_move_request(reader: _PayloadReader) -> MoveRequest:
    x, y, z = reader.unpack(_VEC3)
    return MoveRequest(x, y, z)


_ENCODERS: dict[MessageType, Callable[..., bytes]] = {
    MessageType.ASSIGN_ID: _encode_assign_id,
    MessageType.AVATAR_SNAPSHOT: _encode_avatar_snapshot,
    MessageType.CHAT: _encode_chat,
    MessageType.CHAT_COMMAND: _encode_chat_command,
    MessageType.SKIN_CHANGE_REQUEST: _encode_skin_change_request,
    MessageType.MOVE_REQUEST: _encode_move_request,
}

_DECODERS: dict[MessageType, Callable[[_PayloadReader], Message]] = {
    MessageType.ASSIGN_ID: _decode_assign_id,
    MessageType.AVATAR_SNAPSHOT: _decode_avatar_snapshot,
    MessageType.CHAT: _decode_chat,
    MessageType.CHAT_COMMAND: _decode_chat_command,
    MessageType.SKIN_CHANGE_REQUEST: _decode_skin_change_request,
    MessageType.MOVE_REQUEST: _decode_move_request,
}

MESSAGE_TYPES: frozenset[MessageType] = frozenset(_DECODERS)


def encode_message(message: Message) -> bytes:
    """Serialize a message to its tagged payload (without the frame length)."""
    try:
        body = _ENCODERS[message.message_type](message)
    except (struct.error, OverflowError) as e:
        raise ValueError(f"cannot encode {message!r}: {e}") from e
    return _INT.pack(message.message_type) + body


def decode_message(data: bytes) -> Message:
    """Parse a tagged payload. Raises DecodeError for anything malformed."""
    reader = _PayloadReader(data)
    tag = reader.read_int()
    try:
        msg_type = MessageType(tag)
    except ValueError:
        raise DecodeError(f"unknown message type {tag}") from None
    message = _DECODERS[msg_type](reader)
    reader.finish()
    return message
