"""Bone hierarchy model shared by the chain solver and the depth classifier."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from numpy.typing import ArrayLike

from poseforge.constants import DEFAULT_BONE_AXIS
from poseforge.core.math_utils import Vec3, as_vec3, normalize, quat_from_euler
from poseforge.core.scene_graph import SceneNode

logger = logging.getLogger(__name__)


class Bone(SceneNode):
    """A rigid segment whose origin is a joint.

    ``position`` is the offset from the parent joint, ``quaternion`` the
    local rotation.
    """

    def child_bone(self) -> Optional["Bone"]:
        """First direct child that is itself a bone."""
        for child in self.children:
            if isinstance(child, Bone):
                return child
        return None


class Skeleton:
    """Owns one character's bones.

    Parameters
    ----------
    root:
        Top of the hierarchy.  May be a plain ``SceneNode`` container (an
        armature group); non-bone nodes are kept in the tree but never
        reported as bones.
    bone_axis:
        Canonical rest-pose bone direction.  Rigs exported with bones along
        +Z (for example) pass ``(0, 0, 1)``.
    """

    def __init__(
        self,
        root: SceneNode,
        bone_axis: ArrayLike = DEFAULT_BONE_AXIS,
        name: str = "skeleton",
    ):
        self.name = name
        self.root: Optional[SceneNode] = root
        axis = normalize(as_vec3(bone_axis))
        if not np.any(axis):
            raise ValueError("bone_axis must be a non-zero vector")
        self.bone_axis: Vec3 = axis
        self.bones: list[Bone] = []
        self.refresh()

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        """Re-collect bones after structural changes and update matrices."""
        self.bones = []
        self._by_name: dict[str, Bone] = {}
        if self.root is None:
            return

        def _collect(node: SceneNode):
            if isinstance(node, Bone):
                self.bones.append(node)

        self.root.traverse(_collect)
        self._by_name = {b.name: b for b in self.bones}
        if len(self._by_name) != len(self.bones):
            logger.warning("Skeleton %s has duplicate bone names", self.name)
        self.update()

    def get_bone(self, name: str) -> Optional[Bone]:
        return self._by_name.get(name)

    def bone_names(self) -> list[str]:
        return [b.name for b in self.bones]

    def update(self) -> None:
        """Recompute world matrices for the whole hierarchy."""
        if self.root is not None:
            self.root.update_world_matrix()

    def world_positions(self) -> dict[str, Vec3]:
        """World-space joint position of every bone, keyed by name."""
        self.update()
        return {b.name: b.get_world_position() for b in self.bones}

    @property
    def is_disposed(self) -> bool:
        return self.root is None

    def dispose(self) -> None:
        """Release the hierarchy.  The skeleton is unusable afterwards."""
        self.bones = []
        self._by_name = {}
        self.root = None

    # ------------------------------------------------------------------
    # Construction from plain data
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, d: dict) -> Skeleton:
        """Build a skeleton from a nested description.

        ``{"name": ..., "bone_axis": [x, y, z], "root": node}`` where each
        node is ``{"name", "type": "bone" | "group", "position": [x, y, z],
        "rotation": [rx, ry, rz] (radians, XYZ), "children": [...]}``.
        Only ``name`` is required per node; ``type`` defaults to ``"bone"``.
        """
        root = _node_from_dict(d["root"])
        return cls(
            root,
            bone_axis=d.get("bone_axis", DEFAULT_BONE_AXIS),
            name=d.get("name", "skeleton"),
        )


def _node_from_dict(d: dict) -> SceneNode:
    node = Bone(d["name"]) if d.get("type", "bone") == "bone" else SceneNode(d["name"])
    node.set_position(*d.get("position", (0.0, 0.0, 0.0)))
    if "rotation" in d:
        rx, ry, rz = d["rotation"]
        node.set_quaternion(quat_from_euler(rx, ry, rz))
    for child in d.get("children", []):
        node.add(_node_from_dict(child))
    return node


def build_bone_chain(
    names: list[str],
    lengths: list[float],
    parent: Optional[SceneNode] = None,
    axis: ArrayLike = DEFAULT_BONE_AXIS,
) -> list[Bone]:
    """Create a straight parent→child run of bones along *axis*.

    Bone ``i + 1`` sits ``lengths[i]`` from bone ``i``.  When *lengths* has
    one entry per bone, an extra ``"<last>_end"`` tip bone is added so the
    last bone has a definite length too (like a BVH end site).  Only the
    named bones are returned.
    """
    if len(lengths) not in (len(names) - 1, len(names)):
        raise ValueError("need one length per bone, or one per bone minus one")
    direction = normalize(as_vec3(axis))
    all_names = list(names)
    if len(lengths) == len(names):
        all_names.append(f"{names[-1]}_end")

    bones: list[Bone] = []
    current = parent
    for i, name in enumerate(all_names):
        bone = Bone(name)
        if i > 0:
            bone.set_position(*(direction * lengths[i - 1]))
        if current is not None:
            current.add(bone)
        bones.append(bone)
        current = bone
    return bones[:len(names)]
