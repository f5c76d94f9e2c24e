"""Freeform keypoint graphs: connections, rest lengths, joint priorities."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from poseforge.constants import DEFAULT_JOINT_PRIORITY
from poseforge.core.config_loader import load_config
from poseforge.rig.pose import KeypointMap, copy_keypoints, keypoints_from_dict


class JointPriorities:
    """Static name → rank table.  Higher rank = treated as more fixed.

    Rigs with other naming conventions supply their own mapping instead of
    relying on name patterns.
    """

    def __init__(
        self,
        ranks: Optional[Mapping[str, int]] = None,
        default: int = DEFAULT_JOINT_PRIORITY,
    ):
        self._ranks: dict[str, int] = dict(ranks or {})
        self.default = default

    def get(self, joint: str) -> int:
        return self._ranks.get(joint, self.default)

    def set(self, joint: str, rank: int) -> None:
        self._ranks[joint] = int(rank)

    def to_dict(self) -> dict:
        return {"default": self.default, "ranks": dict(self._ranks)}

    @classmethod
    def from_dict(cls, d: Mapping) -> JointPriorities:
        return cls(d.get("ranks", {}), d.get("default", DEFAULT_JOINT_PRIORITY))


def parse_length_key(key: str) -> tuple[str, str]:
    """Split a ``"jointA-jointB"`` length key."""
    a, sep, b = key.partition("-")
    if not sep or not a or not b:
        raise ValueError(f"Bad bone length key: {key!r}")
    return a, b


@dataclass
class StickFigureRig:
    """Connection graph and reference data for a keypoint character."""
    connections: list[tuple[str, str]] = field(default_factory=list)
    lengths: dict[tuple[str, str], float] = field(default_factory=dict)
    priorities: JointPriorities = field(default_factory=JointPriorities)
    default_pose: KeypointMap = field(default_factory=dict)

    def joint_names(self) -> list[str]:
        names: list[str] = []
        for a, b in self.connections:
            for n in (a, b):
                if n not in names:
                    names.append(n)
        return names

    def create_keypoints(self) -> KeypointMap:
        """Fresh copy of the default pose."""
        return copy_keypoints(self.default_pose)

    @classmethod
    def from_dict(cls, d: Mapping) -> StickFigureRig:
        return cls(
            connections=[(a, b) for a, b in d.get("connections", [])],
            lengths={
                parse_length_key(k): float(v)
                for k, v in d.get("lengths", {}).items()
            },
            priorities=JointPriorities.from_dict(d.get("priorities", {})),
            default_pose=keypoints_from_dict(d.get("default_pose", {})),
        )


def load_stick_figure(name: str = "stick_figure.json") -> StickFigureRig:
    """Load a stick-figure rig description from the bundled config."""
    return StickFigureRig.from_dict(load_config(name))
