"""Per-avatar render state and the registry that owns it.

The network side only ever talks to an avatar through the AvatarRenderer
methods: place it, skin it, highlight it, make it say something, remove it.
AvatarView is the terminal implementation; anything else that provides the
same methods can be plugged into AvatarArea.
"""

from __future__ import annotations

from collections import deque
from typing import Callable, Iterator, Protocol

from ..common.constants import AVATAR_MOVE_SPEED, SPEECH_DURATION
from ..common.geometry import Vec3, distance, move_towards

# Skin ids from the server are unbounded; views wrap them onto this palette
SKIN_COLORS: tuple[str, ...] = (
    "green",
    "yellow",
    "cyan",
    "magenta",
    "red",
    "blue",
    "white",
    "orange",
    "purple",
    "pink",
)

ARRIVAL_DISTANCE = 0.01


class AvatarRenderer(Protocol):
    def set_position(self, position: Vec3, animate: bool = False) -> None: ...

    def set_skin(self, skin: int) -> None: ...

    def set_highlighted(self, highlighted: bool) -> None: ...

    def say(self, text: str) -> None: ...

    def remove(self) -> None: ...

    def update(self, dt: float) -> None: ...


class AvatarView:
    """Terminal-side avatar: walks toward its target and shows queued speech."""

    def __init__(
        self,
        avatar_id: int,
        skin_count: int = len(SKIN_COLORS),
        move_speed: float = AVATAR_MOVE_SPEED,
        speech_duration: float = SPEECH_DURATION,
    ) -> None:
        self.avatar_id = avatar_id
        self.skin_count = skin_count
        self.move_speed = move_speed
        self.speech_duration = speech_duration
        self.position: Vec3 = (0.0, 0.0, 0.0)
        self.target: Vec3 = self.position
        self.moving = False
        self.skin_index = -1
        self.highlighted = False
        self.removed = False
        self.speech: str | None = None
        self._speech_queue: deque[str] = deque()
        self._speech_left = 0.0

    @property
    def color(self) -> str:
        return SKIN_COLORS[self.skin_index % len(SKIN_COLORS)]

    def set_position(self, position: Vec3, animate: bool = False) -> None:
        """Jump to position, or walk there when animate is set."""
        self.target = position
        if animate:
            self.moving = distance(self.position, position) > ARRIVAL_DISTANCE
        else:
            self.position = position
            self.moving = False

    def set_skin(self, skin: int) -> None:
        # 'normalize' the skin id so any server value maps to a palette entry
        self.skin_index = skin % self.skin_count

    def set_highlighted(self, highlighted: bool) -> None:
        self.highlighted = highlighted

    def say(self, text: str) -> None:
        """Queue text; lines are shown one after another."""
        self._speech_queue.append(text)

    def remove(self) -> None:
        self.removed = True
        self.moving = False
        self.speech = None
        self._speech_queue.clear()

    def update(self, dt: float) -> None:
        if self.moving:
            self.position = move_towards(
                self.position, self.target, self.move_speed * dt
            )
            self.moving = distance(self.position, self.target) > ARRIVAL_DISTANCE
            if not self.moving:
                self.position = self.target

        if self.speech is not None:
            self._speech_left -= dt
            if self._speech_left <= 0:
                self.speech = None
        if self.speech is None and self._speech_queue:
            self.speech = self._speech_queue.popleft()
            self._speech_left = self.speech_duration


class AvatarArea:
    """Registry of avatar renderers keyed by avatar id."""

    def __init__(
        self, factory: Callable[[int], AvatarRenderer] = AvatarView
    ) -> None:
        self._factory = factory
        self._views: dict[int, AvatarRenderer] = {}

    def __len__(self) -> int:
        return len(self._views)

    def __iter__(self) -> Iterator[tuple[int, AvatarRenderer]]:
        return iter(list(self._views.items()))

    def has(self, avatar_id: int) -> bool:
        return avatar_id in self._views

    def get(self, avatar_id: int) -> AvatarRenderer:
        return self._views[avatar_id]

    def add(self, avatar_id: int) -> AvatarRenderer:
        view = self._views.get(avatar_id)
        if view is None:
            view = self._factory(avatar_id)
            self._views[avatar_id] = view
        return view

    def remove(self, avatar_id: int) -> None:
        view = self._views.pop(avatar_id, None)
        if view is not None:
            view.remove()

    def ids(self) -> list[int]:
        return list(self._views)

    def views(self) -> list[AvatarRenderer]:
        return list(self._views.values())

    def clear(self) -> None:
        for avatar_id in self.ids():
            self.remove(avatar_id)

    def update(self, dt: float) -> None:
        for view in list(self._views.values()):
            view.update(dt)
