"""FABRIK chain solver: positions a bone chain's end effector at a target.

Forward And Backward Reaching IK works on joint positions only.  Each
solve computes the chain's joint positions, alternates a forward pass
(pin the tip to the target, walk back toward the root) and a backward pass
(re-pin the root, walk out to the tip), then turns the resulting segment
directions into bone rotations.

This module has ZERO rendering imports; all math is done with NumPy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
from numpy.typing import ArrayLike

from poseforge.constants import (
    DEFAULT_BONE_AXIS, FABRIK_MAX_ITERATIONS, FABRIK_TOLERANCE,
    MIN_BONE_LENGTH, MIN_CHAIN_BONES,
)
from poseforge.core.math_utils import (
    Quat, Vec3, as_vec3, clamp, distance, euler_from_quat, normalize,
    quat_conjugate, quat_from_euler, quat_from_unit_vectors, quat_identity,
    quat_multiply, quat_normalize, quat_rotate_vec3, quat_slerp, vec3,
)
from poseforge.rig.skeleton import Bone, Skeleton

logger = logging.getLogger(__name__)


class InvalidChainError(ValueError):
    """Raised when a chain is created with fewer than two bones."""


@dataclass
class RotationConstraint:
    """Per-axis Euler bounds (radians, XYZ order) on a bone's local rotation."""
    bone: Bone
    min_rotation: Vec3
    max_rotation: Vec3

    def clamp(self, q: Quat) -> Quat:
        x, y, z = euler_from_quat(q, "XYZ")
        lo, hi = self.min_rotation, self.max_rotation
        return quat_from_euler(
            clamp(x, lo[0], hi[0]),
            clamp(y, lo[1], hi[1]),
            clamp(z, lo[2], hi[2]),
            "XYZ",
        )


@dataclass
class IKChain:
    """Ordered bones from the chain root toward the end effector."""
    bones: list[Bone]
    end_effector: Vec3          # Tip offset in the last bone's local frame
    max_iterations: int = FABRIK_MAX_ITERATIONS
    tolerance: float = FABRIK_TOLERANCE
    target: Vec3 = field(default_factory=vec3)


@dataclass
class ChainSolveResult:
    """Outcome of the most recent :meth:`ChainIKSolver.solve` call."""
    chain: str
    converged: bool = False
    reachable: bool = True
    iterations: int = 0
    error: float = 0.0           # End effector distance to target


class ChainIKSolver:
    """Registry of named IK chains plus the FABRIK solve.

    Parameters
    ----------
    bone_axis:
        Rest-pose direction of every bone, in the bone's own frame.  Use
        :meth:`for_skeleton` to take it from a :class:`Skeleton`.
    """

    def __init__(self, bone_axis: ArrayLike = DEFAULT_BONE_AXIS):
        self.bone_axis: Vec3 = normalize(as_vec3(bone_axis))
        self._chains: dict[str, IKChain] = {}
        self._constraints: dict[Bone, RotationConstraint] = {}
        self.last_result: Optional[ChainSolveResult] = None

    @classmethod
    def for_skeleton(cls, skeleton: Skeleton) -> ChainIKSolver:
        return cls(bone_axis=skeleton.bone_axis)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def create_chain(
        self,
        name: str,
        bones: Sequence[Bone],
        max_iterations: int = FABRIK_MAX_ITERATIONS,
        tolerance: float = FABRIK_TOLERANCE,
    ) -> IKChain:
        """Register *bones* (root first) under *name*, replacing any previous chain."""
        if len(bones) < MIN_CHAIN_BONES:
            raise InvalidChainError(
                f"IK chain {name!r} must have at least {MIN_CHAIN_BONES} bones, "
                f"got {len(bones)}"
            )

        last = bones[-1]
        tip = last.child_bone()
        end_effector = (tip.position if tip is not None else last.position).copy()

        chain = IKChain(
            bones=list(bones),
            end_effector=end_effector,
            max_iterations=max_iterations,
            tolerance=tolerance,
        )
        self._chains[name] = chain
        logger.info("Created IK chain %r with %d bones", name, len(bones))
        return chain

    def set_constraint(self, bone: Bone, min_euler: ArrayLike, max_euler: ArrayLike) -> None:
        """Clamp *bone*'s local Euler angles to ``[min_euler, max_euler]`` after solves."""
        self._constraints[bone] = RotationConstraint(
            bone, as_vec3(min_euler), as_vec3(max_euler),
        )

    def get_constraint(self, bone: Bone) -> Optional[RotationConstraint]:
        return self._constraints.get(bone)

    def remove_constraint(self, bone: Bone) -> None:
        self._constraints.pop(bone, None)

    # ------------------------------------------------------------------
    # Registry accessors
    # ------------------------------------------------------------------

    def get_chain(self, name: str) -> Optional[IKChain]:
        return self._chains.get(name)

    def get_chain_names(self) -> list[str]:
        return list(self._chains.keys())

    def get_chain_bone_names(self, name: str) -> list[str]:
        chain = self._chains.get(name)
        if chain is None:
            return []
        return [b.name for b in chain.bones]

    def remove_chain(self, name: str) -> None:
        self._chains.pop(name, None)

    def clear(self) -> None:
        """Drop all chains and rotation constraints."""
        self._chains.clear()
        self._constraints.clear()

    def get_end_effector_position(self, name: str) -> Optional[Vec3]:
        """Current world position of the chain tip, or None for an unknown chain."""
        chain = self._chains.get(name)
        if chain is None:
            return None
        chain.bones[0].update_from_root()
        return self._tip_position(chain)

    def find_joint(self, bone_name: str) -> Optional[tuple[str, int]]:
        """First chain containing joint *bone_name*, with the joint's index.

        The tip bone past the last chain bone counts as joint ``len(bones)``.
        A chain where the joint can be dragged wins over one it is the root of.
        """
        root_match = None
        for name, chain in self._chains.items():
            names = [bone.name for bone in chain.bones]
            tip = chain.bones[-1].child_bone()
            if tip is not None:
                names.append(tip.name)
            if bone_name not in names:
                continue
            index = names.index(bone_name)
            if index > 0:
                return name, index
            if root_match is None:
                root_match = (name, 0)
        return root_match

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    def solve(self, name: str, target_position: ArrayLike) -> bool:
        """Move chain *name* so its end effector approaches *target_position*.

        Returns True only when the end effector ends within the chain
        tolerance.  The best pose found is applied in every case except an
        unknown chain, which is left untouched.  Unreachable targets, and
        targets within tolerance of full extension, get the stretched pose
        (every bone along the root→target line).
        """
        chain = self._chains.get(name)
        if chain is None:
            logger.warning("IK chain %r not found", name)
            return False

        target = as_vec3(target_position)
        chain.target = target.copy()
        bones = chain.bones
        bones[0].update_from_root()

        lengths = self._bone_lengths(chain)
        root = bones[0].get_world_position()
        total_length = float(sum(lengths))

        reach = distance(root, target)
        if reach > total_length or total_length - reach < chain.tolerance:
            # Beyond reach, or close enough to full extension that the
            # stretched pose already lands within tolerance.  FABRIK itself
            # creeps toward such targets over dozens of iterations.
            positions = self._stretch_positions(root, target, lengths)
            self._apply_positions(chain, positions)
            reachable = reach <= total_length
            error = distance(positions[-1], target)
            converged = reachable and error < chain.tolerance
            self.last_result = ChainSolveResult(
                chain=name, converged=converged, reachable=reachable, error=error,
            )
            if reachable:
                logger.debug("IK chain %r: target at full extension, stretched", name)
            else:
                logger.debug("IK chain %r: target out of reach, stretched", name)
            return converged

        positions = [b.get_world_position() for b in bones]
        positions.append(self._tip_position(chain))

        converged = False
        iterations = 0
        error = distance(positions[-1], target)
        for iteration in range(chain.max_iterations):
            iterations = iteration + 1
            self._forward_pass(positions, lengths, target)
            self._backward_pass(positions, lengths, root)
            error = distance(positions[-1], target)
            if error < chain.tolerance:
                converged = True
                break

        # Partial results are applied too
        self._apply_positions(chain, positions)
        self.last_result = ChainSolveResult(
            chain=name, converged=converged, reachable=True,
            iterations=iterations, error=error,
        )
        if converged:
            logger.debug("IK chain %r solved in %d iteration(s)", name, iterations)
        else:
            logger.debug(
                "IK chain %r did not converge (error %.4f after %d iterations)",
                name, error, iterations,
            )
        return converged

    def solve_joint(
        self,
        name: str,
        joint_index: int,
        target_position: ArrayLike,
        damping: float = 1.0,
    ) -> bool:
        """Swing the bone above one joint so that joint points at the target.

        Joint ``i`` is the origin of ``bones[i]``; ``len(bones)`` is the
        end-effector tip.  Only the dragged joint's parent bone rotates, so
        the chain root (joint 0) cannot be dragged.  *damping* is the
        fraction of the swing applied per call.

        Returns False for an unknown chain or an out-of-range joint, True
        otherwise (bone lengths are rigid, so there is nothing to converge).
        """
        chain = self._chains.get(name)
        if chain is None:
            logger.warning("IK chain %r not found", name)
            return False
        if not 1 <= joint_index <= len(chain.bones):
            logger.warning("Joint %d cannot be dragged in IK chain %r", joint_index, name)
            return False

        target = as_vec3(target_position)
        chain.target = target.copy()
        chain.bones[0].update_from_root()

        pivot = chain.bones[joint_index - 1]
        origin = pivot.get_world_position()
        to_target = normalize(target - origin)
        current = normalize(self._joint_position(chain, joint_index) - origin)
        if distance(origin, target) < chain.tolerance or not np.any(current):
            return True

        swing = quat_from_unit_vectors(current, to_target)
        world_q = quat_multiply(swing, pivot.get_world_quaternion())
        parent_q = (
            pivot.parent.get_world_quaternion()
            if pivot.parent is not None else quat_identity()
        )
        local_q = quat_normalize(quat_multiply(quat_conjugate(parent_q), world_q))
        if damping < 1.0:
            local_q = quat_slerp(pivot.quaternion, local_q, damping)

        constraint = self._constraints.get(pivot)
        if constraint is not None:
            local_q = constraint.clamp(local_q)
        pivot.set_quaternion(local_q)
        chain.bones[0].update_from_root()
        logger.debug("IK chain %r: swung %s toward joint %d target", name, pivot.name, joint_index)
        return True

    def _forward_pass(self, positions: list[Vec3], lengths: list[float], target: Vec3) -> None:
        """Pin the tip to the target and walk back toward the root."""
        positions[-1] = target.copy()
        for i in range(len(positions) - 2, -1, -1):
            direction = self._direction(positions[i + 1], positions[i])
            positions[i] = positions[i + 1] + direction * lengths[i]

    def _backward_pass(self, positions: list[Vec3], lengths: list[float], root: Vec3) -> None:
        """Re-pin the root and walk out to the tip."""
        positions[0] = root.copy()
        for i in range(1, len(positions)):
            direction = self._direction(positions[i - 1], positions[i])
            positions[i] = positions[i - 1] + direction * lengths[i - 1]

    def _direction(self, origin: Vec3, toward: Vec3) -> Vec3:
        d = normalize(toward - origin)
        if not np.any(d):
            # Coincident joints: any direction keeps the length, use the rest axis
            return self.bone_axis.copy()
        return d

    # ------------------------------------------------------------------
    # Geometry helpers
    # ------------------------------------------------------------------

    def _bone_lengths(self, chain: IKChain) -> list[float]:
        """World-space length of each bone, clamped to MIN_BONE_LENGTH.

        A bone's length is the distance to its first child bone, else to
        the next bone in the chain.  A childless last bone uses the length
        of the cached end-effector offset.
        """
        bones = chain.bones
        lengths = []
        for i, bone in enumerate(bones):
            child = bone.child_bone()
            if child is not None:
                length = distance(bone.get_world_position(), child.get_world_position())
            elif i < len(bones) - 1:
                length = distance(bone.get_world_position(), bones[i + 1].get_world_position())
            else:
                length = float(np.linalg.norm(chain.end_effector))
            lengths.append(max(length, MIN_BONE_LENGTH))
        return lengths

    def _joint_position(self, chain: IKChain, index: int) -> Vec3:
        if index < len(chain.bones):
            return chain.bones[index].get_world_position()
        return self._tip_position(chain)

    def _tip_position(self, chain: IKChain) -> Vec3:
        last = chain.bones[-1]
        offset = quat_rotate_vec3(last.get_world_quaternion(), chain.end_effector)
        return last.get_world_position() + offset

    @staticmethod
    def _stretch_positions(root: Vec3, target: Vec3, lengths: list[float]) -> list[Vec3]:
        direction = normalize(target - root)
        positions = [root.copy()]
        for length in lengths:
            positions.append(positions[-1] + direction * length)
        return positions

    def _apply_positions(self, chain: IKChain, positions: list[Vec3]) -> None:
        """Rotate each bone so the canonical axis points at the next joint.

        The world-space alignment is converted into the parent's frame
        before it is written, and registered rotation constraints clamp the
        local result.
        """
        for i, bone in enumerate(chain.bones):
            direction = normalize(positions[i + 1] - positions[i])
            if not np.any(direction):
                continue
            world_q = quat_from_unit_vectors(self.bone_axis, direction)
            parent_q = (
                bone.parent.get_world_quaternion()
                if bone.parent is not None else quat_identity()
            )
            local_q = quat_normalize(quat_multiply(quat_conjugate(parent_q), world_q))

            constraint = self._constraints.get(bone)
            if constraint is not None:
                local_q = constraint.clamp(local_q)
            bone.set_quaternion(local_q)

        chain.bones[0].update_from_root()
