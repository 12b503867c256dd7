"""Proximity-based chat routing."""

from __future__ import annotations

from typing import TypeVar

from ..common.constants import WHISPER_PREFIX, WHISPER_RADIUS
from .avatar import Avatar

T = TypeVar("T")


def parse_chat_command(text: str) -> tuple[bool, str]:
    """Split raw chat into (is_whisper, text to deliver).

    The whisper prefix is matched case-insensitively and stripped.
    """
    if text[: len(WHISPER_PREFIX)].lower() == WHISPER_PREFIX:
        return True, text[len(WHISPER_PREFIX) :]
    return False, text


def whisper_recipients(
    sender: Avatar,
    candidates: list[tuple[T, Avatar]],
    radius: float = WHISPER_RADIUS,
) -> list[T]:
    """Return the recipients whose avatar is within radius of the sender.

    Distance is measured on the ground plane at call time. The sender is part
    of candidates like everybody else and always passes the filter.
    """
    return [
        recipient
        for recipient, avatar in candidates
        if sender.horizontal_distance_to(avatar) <= radius
    ]
