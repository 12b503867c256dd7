"""Avatar state for the server."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..common.protocol import AvatarInfo


@dataclass
class Avatar:
    id: int
    skin: int
    x: float
    y: float
    z: float

    def horizontal_distance_to(self, other: Avatar) -> float:
        """Distance on the ground plane (x/z), ignoring height."""
        return math.hypot(other.x - self.x, other.z - self.z)

    def to_info(self) -> AvatarInfo:
        """Immutable copy for snapshots."""
        return AvatarInfo(self.id, self.skin, self.x, self.y, self.z)
