"""Terminal UI rendering with blessed."""

from __future__ import annotations

from blessed import Terminal

from .avatar_view import AvatarView
from .message_log import LogEntry
from .viewport import Viewport

# Rows below the arena: status, separator, log lines, prompt
_CHROME_ROWS = 3
_LOG_ROWS = 6


class TerminalUI:
    def __init__(self, terminal: Terminal):
        self.term = terminal

    def viewport(self) -> Viewport:
        """Largest arena view that leaves room for the log and prompt."""
        height = max(5, self.term.height - _CHROME_ROWS - _LOG_ROWS)
        # Terminal cells are about twice as tall as wide
        width = max(9, min(self.term.width, height * 2))
        return Viewport(width, height)

    def render(
        self,
        views: list[AvatarView],
        local_id: int | None,
        connected: bool,
        log_entries: list[LogEntry],
        chat_input: str | None,
    ) -> None:
        """Render the lobby to the terminal."""
        viewport = self.viewport()
        grid = self._draw_arena(viewport)
        for view in sorted(views, key=lambda v: v.highlighted):
            self._draw_avatar(grid, viewport, view)

        output = [self.term.home]
        for row in grid:
            output.append("".join(row) + self.term.clear_eol)

        # Status bar
        state = self.term.green("ONLINE") if connected else self.term.red("OFFLINE")
        status = f"[{state}] Avatars: {len(views)}"
        local = next((v for v in views if v.avatar_id == local_id), None)
        if local is not None:
            x, y, z = local.position
            status += f" | You: #{local.avatar_id} at ({x:.1f}, {z:.1f})"
        output.append(status + self.term.clear_eol)
        output.append(
            self.term.bright_black(
                "Arrows/WASD=Move  Enter/T=Chat  /whisper text  /setskin  Q=Quit"
            )
            + self.term.clear_eol
        )

        # Recent chat and diagnostics, padded so old lines get overwritten
        lines = [self._format_entry(e) for e in log_entries[-_LOG_ROWS:]]
        lines += [""] * (_LOG_ROWS - len(lines))
        output.extend(line + self.term.clear_eol for line in lines)

        if chat_input is not None:
            output.append(f"> {chat_input}_" + self.term.clear_eol)
        else:
            output.append(self.term.clear_eol)

        print("\n".join(output), end="", flush=True)

    def _draw_arena(self, viewport: Viewport) -> list[list[str]]:
        return [
            [
                "." if viewport.in_arena(col, row) else " "
                for col in range(viewport.width)
            ]
            for row in range(viewport.height)
        ]

    def _draw_avatar(
        self, grid: list[list[str]], viewport: Viewport, view: AvatarView
    ) -> None:
        x, _, z = view.position
        col, row = viewport.world_to_cell(x, z)
        if not viewport.contains(col, row):
            return

        color = f"bold_{view.color}" if view.highlighted else view.color
        grid[row][col] = getattr(self.term, color)("@")

        label = f" #{view.avatar_id}"
        if view.speech:
            label += f": {view.speech}"
        for i, char in enumerate(label):
            c = col + 1 + i
            if c >= viewport.width:
                break
            grid[row][c] = self.term.white(char) if view.speech else char

    def _format_entry(self, entry: LogEntry) -> str:
        line = entry.format()[: self.term.width - 1]
        if entry.is_chat:
            return line
        if entry.level in ("WARNING", "ERROR", "CRITICAL"):
            return self.term.red(line)
        return self.term.bright_black(line)

    def cleanup(self) -> None:
        """Restore terminal state."""
        print(self.term.normal + self.term.clear, end="")
