"""Frame loop tying keyboard input, the lobby client and the terminal UI together."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from blessed import Terminal
from blessed.keyboard import Keystroke

from ..common.constants import FRAME_INTERVAL
from .avatar_view import AvatarView
from .input_handler import (
    get_movement,
    is_backspace_key,
    is_cancel_key,
    is_chat_key,
    is_quit_key,
    is_submit_key,
    is_text_key,
)
from .lobby_client import LobbyClient
from .message_log import MessageLog
from .terminal_ui import TerminalUI


class TerminalApp:
    """Hosts a LobbyClient: one client.update() per rendered frame."""

    def __init__(
        self,
        client: LobbyClient,
        message_log: MessageLog,
        term: Any = None,
        frame_interval: float = FRAME_INTERVAL,
    ) -> None:
        self.client = client
        self.message_log = message_log
        self.term: Any = term or Terminal()
        self.ui = TerminalUI(self.term)
        self.frame_interval = frame_interval
        # None while not typing, otherwise the text typed so far
        self.chat_input: str | None = None
        self.running = False

        @client.on_chat
        def _log_chat(avatar_id: int, text: str) -> None:
            speaker = "you" if avatar_id == client.local_id else f"#{avatar_id}"
            self.message_log.add_chat(speaker, text)

    async def run(self) -> None:
        """Main loop. Returns when the user quits or the client gives up."""
        self.running = True
        last_frame = time.monotonic()
        try:
            with self.term.fullscreen(), self.term.cbreak(), self.term.hidden_cursor():
                print(self.term.clear, end="")
                while self.running and self.client.running:
                    # Drain all pending input
                    while True:
                        key = self.term.inkey(timeout=0)
                        if not key:
                            break
                        await self.handle_key(key)

                    await self.client.update()

                    now = time.monotonic()
                    self.client.area.update(now - last_frame)
                    last_frame = now

                    self._render()
                    await asyncio.sleep(self.frame_interval)
        finally:
            self.running = False
            await self.client.close()
            self.ui.cleanup()

    async def handle_key(self, key: Keystroke) -> None:
        if self.chat_input is not None:
            if is_submit_key(key):
                text, self.chat_input = self.chat_input, None
                await self.client.submit_chat(text)
            elif is_cancel_key(key):
                self.chat_input = None
            elif is_backspace_key(key):
                self.chat_input = self.chat_input[:-1]
            elif is_text_key(key):
                self.chat_input += str(key)
            return

        if is_quit_key(key):
            self.running = False
        elif is_chat_key(key):
            self.chat_input = ""
        else:
            movement = get_movement(key)
            if movement is not None:
                await self.client.move_by(*movement)

    def _render(self) -> None:
        views = [v for v in self.client.area.views() if isinstance(v, AvatarView)]
        self.ui.render(
            views,
            self.client.local_id,
            self.client.connected,
            self.message_log.get_entries(),
            self.chat_input,
        )
