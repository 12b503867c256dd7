"""Authoritative avatar store."""

from __future__ import annotations

import math
import random
from typing import TYPE_CHECKING

from ..common.constants import (
    INITIAL_SKIN_COUNT,
    MAX_RADIUS,
    SKIN_CHANGE_RANGE,
    SPAWN_RADIUS,
)
from ..common.protocol import AvatarInfo
from .avatar import Avatar

if TYPE_CHECKING:
    from ..common.connection import Connection


class World:
    """Maps each live connection to exactly one avatar.

    Only the server loop calls into this. Ids come from a counter that starts
    at 0 and is never rewound, so an id is never handed out twice while the
    server runs.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        max_radius: float = MAX_RADIUS,
        spawn_radius: float = SPAWN_RADIUS,
    ) -> None:
        self.rng = rng or random.Random()
        self.max_radius = max_radius
        self.spawn_radius = spawn_radius
        self._avatars: dict[Connection, Avatar] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._avatars)

    def __contains__(self, connection: object) -> bool:
        return connection in self._avatars

    def get(self, connection: Connection) -> Avatar | None:
        return self._avatars.get(connection)

    def get_spawn_position(self) -> tuple[float, float, float]:
        """Random point within spawn_radius of the origin, on the ground."""
        angle = self.rng.random() * math.pi * 2
        distance = self.rng.random() * self.spawn_radius
        return math.cos(angle) * distance, 0.0, math.sin(angle) * distance

    def register(self, connection: Connection) -> AvatarInfo:
        """Create the avatar for a freshly accepted connection."""
        if connection in self._avatars:
            raise ValueError(f"{connection!r} already has an avatar")
        avatar_id = self._next_id
        self._next_id += 1
        x, y, z = self.get_spawn_position()
        skin = self.rng.randrange(INITIAL_SKIN_COUNT)
        avatar = Avatar(avatar_id, skin, x, y, z)
        self._avatars[connection] = avatar
        return avatar.to_info()

    def unregister(self, connection: Connection) -> AvatarInfo | None:
        avatar = self._avatars.pop(connection, None)
        return avatar.to_info() if avatar else None

    def is_valid_position(self, x: float, z: float) -> bool:
        """Check the horizontal distance from origin. Height is unconstrained."""
        return math.sqrt(x * x + z * z) <= self.max_radius

    def apply_move(self, connection: Connection, x: float, y: float, z: float) -> bool:
        """Move the connection's avatar. Returns True if the move was accepted."""
        avatar = self._avatars.get(connection)
        if avatar is None or not self.is_valid_position(x, z):
            return False
        avatar.x = x
        avatar.y = y
        avatar.z = z
        return True

    def apply_skin_change(self, connection: Connection) -> AvatarInfo | None:
        avatar = self._avatars.get(connection)
        if avatar is None:
            return None
        avatar.skin = self.rng.randrange(SKIN_CHANGE_RANGE)
        return avatar.to_info()

    def snapshot(self) -> list[AvatarInfo]:
        """Every avatar, in registration order."""
        return [a.to_info() for a in self._avatars.values()]

    def avatars(self) -> list[tuple[Connection, Avatar]]:
        """(connection, avatar) pairs for recipient filtering. Read-only use."""
        return list(self._avatars.items())
