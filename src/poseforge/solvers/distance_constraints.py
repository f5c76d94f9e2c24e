"""Priority-weighted distance-constraint relaxation for keypoint graphs.

While one joint is dragged, every registered connection is pulled back
toward its captured length.  The joint with the higher priority rank stays
put; equal ranks share the correction.  The pass cap bounds the per-event
cost, so the result is approximate by design.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import numpy as np
from numpy.typing import ArrayLike

from poseforge.constants import RELAXATION_MAX_PASSES, RELAXATION_TOLERANCE
from poseforge.core.math_utils import as_vec3
from poseforge.rig.keypoints import JointPriorities, StickFigureRig
from poseforge.rig.pose import KeypointMap

logger = logging.getLogger(__name__)

# Edges shorter than this have no usable direction
_MIN_EDGE = 1e-10


class DistanceConstraintSolver:
    """Keeps a freeform keypoint graph's bone lengths near their targets.

    Parameters
    ----------
    connections:
        ``(jointA, jointB)`` pairs whose distance is constrained.
    priorities:
        Rank table used as the tie-break; defaults to every joint at rank 1.
    lengths:
        Initial target lengths keyed by joint pair (either ordering).
    """

    def __init__(
        self,
        connections: Iterable[tuple[str, str]] = (),
        priorities: Optional[JointPriorities] = None,
        lengths: Optional[dict[tuple[str, str], float]] = None,
        max_passes: int = RELAXATION_MAX_PASSES,
        tolerance: float = RELAXATION_TOLERANCE,
    ):
        self._connections: list[tuple[str, str]] = [tuple(c) for c in connections]
        self.priorities = priorities if priorities is not None else JointPriorities()
        self.max_passes = max_passes
        self.tolerance = tolerance
        self._lengths: dict[tuple[str, str], float] = {}
        for (a, b), length in (lengths or {}).items():
            self.set_bone_length(a, b, length)

        # Diagnostics of the most recent apply_constraints() call
        self.last_pass_count: int = 0
        self.last_converged: bool = True

    @classmethod
    def from_rig(cls, rig: StickFigureRig) -> DistanceConstraintSolver:
        return cls(rig.connections, rig.priorities, rig.lengths)

    @property
    def connections(self) -> list[tuple[str, str]]:
        return list(self._connections)

    def register_connection(self, j1: str, j2: str, length: Optional[float] = None) -> None:
        """Add a constrained edge, optionally with its target length."""
        if (j1, j2) not in self._connections and (j2, j1) not in self._connections:
            self._connections.append((j1, j2))
        if length is not None:
            self.set_bone_length(j1, j2, length)

    # ------------------------------------------------------------------
    # Target lengths
    # ------------------------------------------------------------------

    def capture_lengths(self, keypoints: KeypointMap) -> None:
        """Store the current distance of every present connection as its target.

        Called once per skeleton (or for an explicit recalibration), never
        while dragging.
        """
        captured = 0
        for j1, j2 in self._connections:
            p1 = keypoints.get(j1)
            p2 = keypoints.get(j2)
            if p1 is None or p2 is None:
                continue
            self.set_bone_length(j1, j2, float(np.linalg.norm(p2 - p1)))
            captured += 1
        logger.debug("Captured %d bone lengths", captured)

    def get_bone_length(self, j1: str, j2: str) -> Optional[float]:
        length = self._lengths.get((j1, j2))
        if length is None:
            length = self._lengths.get((j2, j1))
        return length

    def set_bone_length(self, j1: str, j2: str, length: float) -> None:
        key = (j2, j1) if (j2, j1) in self._lengths else (j1, j2)
        self._lengths[key] = float(length)

    # ------------------------------------------------------------------
    # Relaxation
    # ------------------------------------------------------------------

    def apply_constraints(
        self,
        keypoints: KeypointMap,
        moved_joint: str,
        new_position: ArrayLike,
    ) -> None:
        """Move *moved_joint* to *new_position* and relax the graph in place.

        Missing joints, unregistered pairs and zero-length edges are skipped.
        """
        keypoints[moved_joint] = as_vec3(new_position)

        self.last_converged = False
        self.last_pass_count = 0
        for _ in range(self.max_passes):
            self.last_pass_count += 1
            if not self._relax_pass(keypoints):
                self.last_converged = True
                break

        logger.debug(
            "Relaxed %s in %d pass(es), converged=%s",
            moved_joint, self.last_pass_count, self.last_converged,
        )

    def _relax_pass(self, keypoints: KeypointMap) -> bool:
        """One sweep over all edges.  Returns True if any edge was adjusted."""
        changed = False
        for j1, j2 in self._connections:
            target = self.get_bone_length(j1, j2)
            if not target:
                continue
            p1 = keypoints.get(j1)
            p2 = keypoints.get(j2)
            if p1 is None or p2 is None:
                continue

            delta = p2 - p1
            current = float(np.linalg.norm(delta))
            if abs(current - target) <= self.tolerance:
                continue
            if current < _MIN_EDGE:
                continue
            changed = True
            direction = delta / current

            rank1 = self.priorities.get(j1)
            rank2 = self.priorities.get(j2)
            if rank1 > rank2:
                keypoints[j2] = p1 + direction * target
            elif rank2 > rank1:
                keypoints[j1] = p2 - direction * target
            else:
                correction = direction * (current - target) * 0.5
                keypoints[j1] = p1 + correction
                keypoints[j2] = p2 - correction
        return changed
