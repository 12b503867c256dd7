"""A framed TCP connection that can be polled without blocking."""

from __future__ import annotations

import asyncio
import logging
from asyncio import StreamReader, StreamWriter

from .constants import CONNECT_TIMEOUT, INBOX_SIZE, READ_TIMEOUT, WRITE_TIMEOUT
from .transport import Frame, FrameStatus, read_frame, write_frame

logger = logging.getLogger(__name__)


class Connection:
    """One peer: a stream pair plus a pump task that frames incoming bytes.

    The pump only moves complete frames into an inbox. Whoever owns the
    connection calls poll() once per tick/frame and decides what to do with
    the result, so all state changes stay on the owner's code path.
    """

    def __init__(
        self,
        reader: StreamReader,
        writer: StreamWriter,
        read_timeout: float = READ_TIMEOUT,
        write_timeout: float = WRITE_TIMEOUT,
        inbox_size: int = INBOX_SIZE,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        peer = writer.get_extra_info("peername")
        self.peer = f"{peer[0]}:{peer[1]}" if peer else "unknown"
        self.closed = False
        self._inbox: asyncio.Queue[bytes] = asyncio.Queue(maxsize=inbox_size)
        # Set once the pump has stopped for good (CLOSED or MALFORMED)
        self._end_status: FrameStatus | None = None
        self._pump_task: asyncio.Task[None] | None = None

    @classmethod
    async def open(
        cls, host: str, port: int, timeout: float = CONNECT_TIMEOUT
    ) -> Connection | None:
        """Connect to host:port. Returns None if the server can't be reached."""
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Connection to {host}:{port} timed out after {timeout}s")
            return None
        except (ConnectionError, OSError) as e:
            logger.warning(f"Could not connect to {host}:{port}: {e}")
            return None
        conn = cls(reader, writer)
        conn.start()
        return conn

    def start(self) -> None:
        """Start the pump task. Must be called from a running event loop."""
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump())

    async def _pump(self) -> None:
        try:
            while True:
                frame = await read_frame(self.reader, self.read_timeout)
                if frame.status is FrameStatus.IDLE:
                    continue
                if frame.is_terminal:
                    self._end_status = frame.status
                    return
                assert frame.payload is not None
                await self._inbox.put(frame.payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error reading from {self.peer}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            self._end_status = FrameStatus.CLOSED

    @property
    def has_pending(self) -> bool:
        """True while complete frames are waiting to be polled."""
        return not self.closed and not self._inbox.empty()

    @property
    def is_alive(self) -> bool:
        """False once the peer is known to be gone. Does not consume frames."""
        return not (
            self.closed
            or self._end_status is not None
            or self.writer.is_closing()
        )

    def poll(self) -> Frame:
        """Non-blocking liveness and availability check.

        Returns OK with one frame if a complete frame is buffered, CLOSED or
        MALFORMED if the connection is dead (only once every buffered frame
        has been handed out), otherwise IDLE.
        """
        if self.closed:
            return Frame(FrameStatus.CLOSED)
        if not self._inbox.empty():
            return Frame(FrameStatus.OK, self._inbox.get_nowait())
        if self._end_status is not None:
            return Frame(self._end_status)
        if self.writer.is_closing():
            # Transport saw an error (reset, aborted) before the pump did
            return Frame(FrameStatus.CLOSED)
        return Frame(FrameStatus.IDLE)

    async def send(self, payload: bytes) -> bool:
        """Send one frame. Returns False if the connection is unusable."""
        if self.closed:
            return False
        return await write_frame(self.writer, payload, self.write_timeout)

    async def close(self) -> None:
        """Stop the pump and close the socket. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass  # Connection may already be gone

    def __repr__(self) -> str:
        return f"<Connection {self.peer}{' closed' if self.closed else ''}>"
