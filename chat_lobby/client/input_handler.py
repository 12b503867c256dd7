"""Keyboard input classification."""

from __future__ import annotations

from blessed.keyboard import Keystroke

from ..common.constants import MOVE_STEP

# (dx, dz) per key; z grows upward on screen
_ARROW_KEYS: dict[str, tuple[float, float]] = {
    "KEY_UP": (0.0, MOVE_STEP),
    "KEY_DOWN": (0.0, -MOVE_STEP),
    "KEY_LEFT": (-MOVE_STEP, 0.0),
    "KEY_RIGHT": (MOVE_STEP, 0.0),
}

_LETTER_KEYS: dict[str, tuple[float, float]] = {
    "w": (0.0, MOVE_STEP),
    "s": (0.0, -MOVE_STEP),
    "a": (-MOVE_STEP, 0.0),
    "d": (MOVE_STEP, 0.0),
}


def get_movement(key: Keystroke) -> tuple[float, float] | None:
    """Return the (dx, dz) step for a movement key, or None."""
    if key.is_sequence:
        return _ARROW_KEYS.get(key.name or "")
    return _LETTER_KEYS.get(str(key).lower())


def is_quit_key(key: Keystroke) -> bool:
    return not key.is_sequence and str(key).lower() == "q"


def is_chat_key(key: Keystroke) -> bool:
    """Enter or 't' opens the chat prompt."""
    return is_submit_key(key) or (not key.is_sequence and str(key).lower() == "t")


def is_submit_key(key: Keystroke) -> bool:
    return key.name == "KEY_ENTER" or str(key) in ("\n", "\r")


def is_cancel_key(key: Keystroke) -> bool:
    return key.name == "KEY_ESCAPE"


def is_backspace_key(key: Keystroke) -> bool:
    return key.name in ("KEY_BACKSPACE", "KEY_DELETE") or str(key) in ("\x7f", "\x08")


def is_text_key(key: Keystroke) -> bool:
    return not key.is_sequence and str(key).isprintable() and len(str(key)) == 1
