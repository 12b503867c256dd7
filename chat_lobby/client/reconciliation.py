"""Client-side reconciliation of predicted and authoritative avatar state.

The server rebroadcasts the full avatar list after every change, so most
entries in a snapshot did not actually move. Two maps per avatar id keep
track of what is on screen (rendered_positions) and what the server last
confirmed (server_positions). A snapshot entry only moves a view when it
differs from server_positions by more than a threshold:

- the local avatar is predicted on input, so it is corrected only when the
  server disagrees by more than correction_threshold;
- remote avatars animate only when they moved more than motion_threshold,
  anything smaller is placed directly.
"""

from __future__ import annotations

import logging

from ..common.constants import CORRECTION_THRESHOLD, MOTION_THRESHOLD
from ..common.geometry import Vec3, distance
from ..common.protocol import AvatarInfo
from .avatar_view import AvatarArea

logger = logging.getLogger(__name__)


class Reconciler:
    def __init__(
        self,
        area: AvatarArea,
        correction_threshold: float = CORRECTION_THRESHOLD,
        motion_threshold: float = MOTION_THRESHOLD,
    ) -> None:
        self.area = area
        self.correction_threshold = correction_threshold
        self.motion_threshold = motion_threshold
        self.local_id: int | None = None
        # What the renderer was last told to show (includes predictions)
        self.rendered_positions: dict[int, Vec3] = {}
        # Last authoritative position (for the local id: last sent/assumed)
        self.server_positions: dict[int, Vec3] = {}
        self.initialized = False

    def assign_id(self, avatar_id: int) -> bool:
        """Fix the local id for this session. Later reassignments are ignored."""
        if self.local_id is not None:
            if avatar_id != self.local_id:
                logger.warning(
                    f"Ignoring id {avatar_id}, already playing as #{self.local_id}"
                )
            return False
        self.local_id = avatar_id
        logger.info(f"This client is avatar #{avatar_id}")
        return True

    @property
    def local_position(self) -> Vec3 | None:
        if self.local_id is None:
            return None
        return self.rendered_positions.get(self.local_id)

    def predict_local_move(self, position: Vec3) -> bool:
        """Show a local move right away, before the server confirms it."""
        if self.local_id is None or not self.area.has(self.local_id):
            return False
        self.area.get(self.local_id).set_position(position, animate=True)
        self.rendered_positions[self.local_id] = position
        self.server_positions[self.local_id] = position
        return True

    def apply_snapshot(self, avatars: list[AvatarInfo]) -> None:
        if self.local_id is None:
            logger.warning("Received avatar list before our id was assigned. Ignoring.")
            return

        new_ids = {a.avatar_id for a in avatars}
        for existing in self.area.ids():
            if existing not in new_ids and existing != self.local_id:
                logger.debug(f"Removing avatar view for id {existing}")
                self.area.remove(existing)
                self.rendered_positions.pop(existing, None)
                self.server_positions.pop(existing, None)

        for avatar in avatars:
            self._apply_avatar(avatar)
        self.initialized = True

    def _apply_avatar(self, avatar: AvatarInfo) -> None:
        avatar_id = avatar.avatar_id
        authoritative = avatar.position

        if not self.area.has(avatar_id) or avatar_id not in self.server_positions:
            # First sighting: place it, nothing to animate from
            view = self.area.add(avatar_id)
            view.set_position(authoritative)
            self.rendered_positions[avatar_id] = authoritative
        else:
            view = self.area.get(avatar_id)
            delta = distance(authoritative, self.server_positions[avatar_id])
            if avatar_id == self.local_id:
                if delta > self.correction_threshold:
                    # Server overrides our prediction
                    logger.debug(
                        f"Correcting local avatar by {delta:.3f} to {authoritative}"
                    )
                    view.set_position(authoritative, animate=True)
                    self.rendered_positions[avatar_id] = authoritative
            elif delta > self.motion_threshold:
                view.set_position(authoritative, animate=True)
                self.rendered_positions[avatar_id] = authoritative
            else:
                view.set_position(authoritative)
                self.rendered_positions[avatar_id] = authoritative

        self.server_positions[avatar_id] = authoritative
        view.set_skin(avatar.skin)
        view.set_highlighted(avatar_id == self.local_id)

    def apply_chat(self, avatar_id: int, text: str) -> bool:
        """Show chat over the speaking avatar. Unknown speakers are dropped."""
        if not self.initialized:
            logger.warning(f"Chat received before avatars were initialized: {text}")
            return False
        if not self.area.has(avatar_id):
            logger.warning(f"Chat for unknown avatar {avatar_id}")
            return False
        self.area.get(avatar_id).say(text)
        return True

    def reset(self) -> None:
        """Forget the session (used when reconnecting under a new id)."""
        self.local_id = None
        self.initialized = False
        self.rendered_positions.clear()
        self.server_positions.clear()
        self.area.clear()
