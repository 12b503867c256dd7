"""Small vector helpers for 3D positions."""

from __future__ import annotations

import math

Vec3 = tuple[float, float, float]


def distance(a: Vec3, b: Vec3) -> float:
    return math.dist(a, b)


def move_towards(current: Vec3, target: Vec3, max_delta: float) -> Vec3:
    """Step from current toward target by at most max_delta, never overshooting."""
    remaining = distance(current, target)
    if remaining <= max_delta or remaining == 0.0:
        return target
    t = max_delta / remaining
    return (
        current[0] + (target[0] - current[0]) * t,
        current[1] + (target[1] - current[1]) * t,
        current[2] + (target[2] - current[2]) * t,
    )


def clamp_to_radius(x: float, z: float, radius: float) -> tuple[float, float]:
    """Pull (x, z) back onto the circle of the given radius if it lies outside."""
    length = math.hypot(x, z)
    if length <= radius:
        return x, z
    scale = radius / length
    return x * scale, z * scale
