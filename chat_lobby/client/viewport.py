"""Mapping between world coordinates and terminal cells."""

import math
from dataclasses import dataclass

from ..common.constants import MAX_RADIUS


@dataclass
class Viewport:
    """Top-down view of the arena, x to the right and z up, fitted to the screen."""

    width: int
    height: int
    world_radius: float = MAX_RADIUS

    @property
    def scale_x(self) -> float:
        return (self.width - 1) / (2 * self.world_radius)

    @property
    def scale_z(self) -> float:
        return (self.height - 1) / (2 * self.world_radius)

    def world_to_cell(self, x: float, z: float) -> tuple[int, int]:
        """Return (column, row) for a world position. May fall outside the view."""
        col = round((x + self.world_radius) * self.scale_x)
        row = round((self.world_radius - z) * self.scale_z)
        return col, row

    def cell_to_world(self, col: int, row: int) -> tuple[float, float]:
        """Return the (x, z) world position at the centre of a cell."""
        x = col / self.scale_x - self.world_radius
        z = self.world_radius - row / self.scale_z
        return x, z

    def contains(self, col: int, row: int) -> bool:
        return 0 <= col < self.width and 0 <= row < self.height

    def in_arena(self, col: int, row: int) -> bool:
        """Whether a cell lies inside the walkable circle."""
        x, z = self.cell_to_world(col, row)
        return math.hypot(x, z) <= self.world_radius
