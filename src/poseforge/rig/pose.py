"""Plain-object pose snapshots.

Keypoints travel as ``{name: {"x", "y", "z"}}`` and bone rotations as
``{name: {"x", "y", "z", "order"}}`` (Euler radians).  The solvers never
care where these dicts are stored; :func:`save_pose` / :func:`load_pose`
are convenience helpers for JSON files.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

import numpy as np

from poseforge.constants import DEFAULT_EULER_ORDER, POSE_FORMAT_VERSION
from poseforge.core.math_utils import (
    EULER_ORDERS, Quat, Vec3, euler_from_quat, quat_from_euler, vec3,
)

logger = logging.getLogger(__name__)

KeypointMap = dict[str, Vec3]


def keypoints_to_dict(keypoints: Mapping[str, Vec3]) -> dict[str, dict[str, float]]:
    """Serialize a keypoint map to ``{name: {x, y, z}}``."""
    return {
        name: {"x": float(p[0]), "y": float(p[1]), "z": float(p[2])}
        for name, p in keypoints.items()
    }


def keypoints_from_dict(d: Mapping[str, Mapping[str, float]]) -> KeypointMap:
    """Parse ``{name: {x, y, z}}``; missing components default to 0."""
    return {
        name: vec3(p.get("x", 0.0), p.get("y", 0.0), p.get("z", 0.0))
        for name, p in d.items()
    }


def copy_keypoints(keypoints: Mapping[str, Vec3]) -> KeypointMap:
    return {name: np.array(p, dtype=np.float64) for name, p in keypoints.items()}


@dataclass
class BoneRotation:
    """Euler rotation of a single bone (radians)."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    order: str = DEFAULT_EULER_ORDER

    def __post_init__(self):
        if self.order not in EULER_ORDERS:
            raise ValueError(f"Unsupported Euler order: {self.order}")

    @classmethod
    def from_quaternion(cls, q: Quat, order: str = DEFAULT_EULER_ORDER) -> BoneRotation:
        x, y, z = euler_from_quat(q, order)
        return cls(x, y, z, order)

    def to_quaternion(self) -> Quat:
        return quat_from_euler(self.x, self.y, self.z, self.order)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "z": self.z, "order": self.order}

    @classmethod
    def from_dict(cls, d: Mapping) -> BoneRotation:
        return cls(
            x=float(d.get("x", 0.0)),
            y=float(d.get("y", 0.0)),
            z=float(d.get("z", 0.0)),
            order=d.get("order", DEFAULT_EULER_ORDER),
        )


@dataclass
class Pose:
    """A named snapshot of bone rotations and/or keypoint positions."""
    name: str
    rotations: dict[str, BoneRotation] = field(default_factory=dict)
    keypoints: KeypointMap = field(default_factory=dict)
    description: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "version": POSE_FORMAT_VERSION,
            "name": self.name,
            "description": self.description,
            "timestamp": self.timestamp,
            "rotations": {n: r.to_dict() for n, r in self.rotations.items()},
            "keypoints": keypoints_to_dict(self.keypoints),
        }

    @classmethod
    def from_dict(cls, d: Mapping) -> Optional[Pose]:
        """Deserialize; returns None for an unknown format version."""
        version = d.get("version", POSE_FORMAT_VERSION)
        if version != POSE_FORMAT_VERSION:
            logger.warning("Unknown pose format version: %s", version)
            return None
        return cls(
            name=d.get("name", ""),
            rotations={
                n: BoneRotation.from_dict(r)
                for n, r in d.get("rotations", {}).items()
            },
            keypoints=keypoints_from_dict(d.get("keypoints", {})),
            description=d.get("description", ""),
            timestamp=float(d.get("timestamp", time.time())),
        )


def save_pose(pose: Pose, path: Path | str) -> Path:
    """Write *pose* as JSON, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(pose.to_dict(), f, indent=2)
    logger.info("Saved pose %r to %s", pose.name, path)
    return path


def load_pose(path: Path | str) -> Optional[Pose]:
    """Read a pose written by :func:`save_pose`.  None if the file is missing."""
    path = Path(path)
    if not path.exists():
        return None
    with open(path) as f:
        data = json.load(f)
    pose = Pose.from_dict(data)
    if pose is not None:
        logger.info("Loaded pose %r from %s", pose.name, path)
    return pose
