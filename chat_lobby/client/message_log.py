"""Chat and diagnostics buffer shown in the terminal UI."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime

CHAT = "CHAT"


@dataclass
class LogEntry:
    timestamp: datetime
    level: str  # logging level name, or CHAT for chat lines
    source: str
    message: str

    @property
    def is_chat(self) -> bool:
        return self.level == CHAT

    def format(self) -> str:
        time_str = self.timestamp.strftime("%H:%M:%S")
        if self.is_chat:
            return f"{time_str} <{self.source}> {self.message}"
        return f"{time_str} {self.level[0]} {self.source}: {self.message}"


class MessageLog(logging.Handler):
    """Ring buffer of chat lines and log records.

    Installed as a logging handler so client diagnostics end up in the TUI
    instead of being printed over it.
    """

    def __init__(self, maxlen: int = 200, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._entries: deque[LogEntry] = deque(maxlen=maxlen)

    def emit(self, record: logging.LogRecord) -> None:
        self._entries.append(
            LogEntry(
                timestamp=datetime.fromtimestamp(record.created),
                level=record.levelname,
                source=record.name.rsplit(".", 1)[-1],
                message=record.getMessage(),
            )
        )

    def add_chat(self, speaker: str, text: str) -> None:
        self._entries.append(LogEntry(datetime.now(), CHAT, speaker, text))

    def get_entries(
        self, count: int | None = None, chat_only: bool = False
    ) -> list[LogEntry]:
        """Most recent entries, oldest first."""
        entries = [e for e in self._entries if e.is_chat] if chat_only else list(self._entries)
        if count is None:
            return entries
        return entries[-count:] if count > 0 else []

    def clear(self) -> None:
        self._entries.clear()
