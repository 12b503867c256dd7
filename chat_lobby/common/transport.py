"""Length-prefixed framing over asyncio streams.

Each frame is a 4-byte little-endian signed length followed by that many
payload bytes. Neither function raises on network trouble; callers get a
status back and decide what to do with the connection.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from asyncio import StreamReader, StreamWriter
from dataclasses import dataclass
from enum import Enum

from .constants import MAX_MESSAGE_SIZE, READ_TIMEOUT, WRITE_TIMEOUT

logger = logging.getLogger(__name__)

_LENGTH = struct.Struct("<i")


class FrameStatus(Enum):
    OK = "ok"
    IDLE = "idle"  # nothing complete arrived yet, nothing consumed
    CLOSED = "closed"  # peer went away or stalled mid-frame
    MALFORMED = "malformed"  # length prefix out of range


@dataclass(frozen=True)
class Frame:
    status: FrameStatus
    payload: bytes | None = None

    @property
    def ok(self) -> bool:
        return self.status is FrameStatus.OK

    @property
    def is_terminal(self) -> bool:
        """True when the connection cannot produce further frames."""
        return self.status in (FrameStatus.CLOSED, FrameStatus.MALFORMED)


def encode_frame(payload: bytes) -> bytes:
    return _LENGTH.pack(len(payload)) + payload


async def read_frame(reader: StreamReader, timeout: float = READ_TIMEOUT) -> Frame:
    """Read one frame.

    Returns IDLE if no full length prefix shows up within the timeout. The
    partial prefix (if any) stays buffered in the reader, so calling again is
    safe. Once the prefix is in, the body must arrive within the timeout or
    the connection is reported CLOSED.
    """
    try:
        header = await asyncio.wait_for(reader.readexactly(_LENGTH.size), timeout)
    except asyncio.TimeoutError:
        return Frame(FrameStatus.IDLE)
    except asyncio.IncompleteReadError:
        # Zero-byte read: the peer closed
        return Frame(FrameStatus.CLOSED)
    except (ConnectionError, OSError) as e:
        logger.debug(f"Read failed: {type(e).__name__}: {e}")
        return Frame(FrameStatus.CLOSED)

    (length,) = _LENGTH.unpack(header)
    if length < 0 or length > MAX_MESSAGE_SIZE:
        logger.warning(f"Invalid message size: {length}")
        return Frame(FrameStatus.MALFORMED)
    if length == 0:
        return Frame(FrameStatus.OK, b"")

    try:
        payload = await asyncio.wait_for(reader.readexactly(length), timeout)
    except asyncio.TimeoutError:
        logger.info(f"Timed out after {timeout}s waiting for {length} byte frame")
        return Frame(FrameStatus.CLOSED)
    except asyncio.IncompleteReadError as e:
        logger.debug(f"Connection closed after {len(e.partial)}/{length} bytes")
        return Frame(FrameStatus.CLOSED)
    except (ConnectionError, OSError) as e:
        logger.debug(f"Read failed: {type(e).__name__}: {e}")
        return Frame(FrameStatus.CLOSED)
    return Frame(FrameStatus.OK, payload)


async def write_frame(
    writer: StreamWriter, payload: bytes, timeout: float = WRITE_TIMEOUT
) -> bool:
    """Write one frame and flush it. Returns False instead of raising."""
    if len(payload) > MAX_MESSAGE_SIZE:
        logger.error(f"Refusing to send {len(payload)} byte message")
        return False
    if writer.is_closing():
        return False
    try:
        writer.write(encode_frame(payload))
        await asyncio.wait_for(writer.drain(), timeout)
    except asyncio.TimeoutError:
        logger.info(f"Timed out after {timeout}s flushing {len(payload)} bytes")
        return False
    except (ConnectionError, OSError, RuntimeError) as e:
        logger.debug(f"Write failed: {type(e).__name__}: {e}")
        return False
    return True
