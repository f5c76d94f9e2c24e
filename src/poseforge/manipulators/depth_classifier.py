"""Bone hierarchy depth → manipulator visibility.

Rigs with many small terminal bones (fingers, facial bones) would show an
overwhelming number of handles at once.  The depth limit is a level-of-detail
control: a bone's manipulator is visible iff its depth is at most the limit.
"""

import logging
from typing import Optional

from poseforge.constants import DEFAULT_DEPTH_LIMIT
from poseforge.core.events import EventBus, EventType
from poseforge.core.scene_graph import SceneNode
from poseforge.rig.skeleton import Bone, Skeleton

logger = logging.getLogger(__name__)


def bone_depth(bone: SceneNode) -> int:
    """Number of bone ancestors of *bone*; non-bone nodes are not counted."""
    depth = 0
    node = bone.parent
    while node is not None:
        if isinstance(node, Bone):
            depth += 1
        node = node.parent
    return depth


class DepthClassifier:
    """Maps bone names to hierarchy depth and manipulator visibility."""

    def __init__(self, depth_limit: int = DEFAULT_DEPTH_LIMIT, events: Optional[EventBus] = None):
        self._depths: dict[str, int] = {}
        self._visible: dict[str, bool] = {}
        self._max_depth: int = 0
        self._depth_limit: int = depth_limit
        self._events = events

    def compute_depths(self, skeleton: Skeleton) -> None:
        """Record the depth of every bone and the maximum observed depth."""
        self._depths = {bone.name: bone_depth(bone) for bone in skeleton.bones}
        self._max_depth = max(self._depths.values(), default=0)
        logger.debug(
            "Computed depths for %d bones (max depth %d)",
            len(self._depths), self._max_depth,
        )
        self._update_visibility()

    def reset(self) -> None:
        """Forget all bones; every manipulator reports hidden.  The limit is kept."""
        self._depths = {}
        self._max_depth = 0
        self._update_visibility()

    def set_depth_limit(self, limit: int) -> None:
        """Clamp *limit* to ``[0, max_depth]`` and recompute visibility."""
        self._depth_limit = max(0, min(int(limit), self._max_depth))
        self._update_visibility()

    def get_depth_limit(self) -> int:
        return self._depth_limit

    def get_max_depth(self) -> int:
        return self._max_depth

    def get_bone_depths(self) -> dict[str, int]:
        return dict(self._depths)

    def is_visible(self, bone_name: str) -> bool:
        """Whether the manipulator for *bone_name* should be shown.

        Unknown bones report False.
        """
        return self._visible.get(bone_name, False)

    def get_visible_bones(self) -> list[str]:
        return [name for name, shown in self._visible.items() if shown]

    def _update_visibility(self) -> None:
        self._visible = {
            name: depth <= self._depth_limit
            for name, depth in self._depths.items()
        }
        if self._events is not None:
            self._events.publish(
                EventType.DEPTH_LIMIT_CHANGED,
                limit=self._depth_limit,
                visible=dict(self._visible),
            )
