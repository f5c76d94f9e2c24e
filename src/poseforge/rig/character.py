"""Character: one posable figure with its solvers and pose library.

A character is either bone-based (a :class:`Skeleton`, posed through
chain IK) or a stick figure (a keypoint map, posed through distance
relaxation).  Interaction layers call :meth:`Character.drag` once per
pointer move; the figure is mutated in place and listeners on the
character's :class:`EventBus` are told what changed.
"""

from __future__ import annotations

import logging
from typing import Optional

from numpy.typing import ArrayLike

from poseforge.constants import DEFAULT_DEPTH_LIMIT, DEFAULT_EULER_ORDER
from poseforge.core.events import EventBus, EventType
from poseforge.core.math_utils import Vec3, as_vec3
from poseforge.manipulators.depth_classifier import DepthClassifier
from poseforge.rig.keypoints import StickFigureRig, load_stick_figure
from poseforge.rig.pose import BoneRotation, KeypointMap, Pose, copy_keypoints
from poseforge.rig.skeleton import Skeleton
from poseforge.solvers.chain_presets import (
    apply_rotation_limits, create_preset_chains, load_rotation_limits,
)
from poseforge.solvers.distance_constraints import DistanceConstraintSolver
from poseforge.solvers.fabrik import ChainIKSolver
from poseforge.solvers.pose_solver import (
    ChainPoseSolver, PoseSolver, RelaxationPoseSolver, SolveMode,
)

logger = logging.getLogger(__name__)


class Character:
    """Owns a skeleton or keypoint figure for its whole lifetime."""

    def __init__(
        self,
        name: str = "Untitled Character",
        skeleton: Optional[Skeleton] = None,
        keypoints: Optional[KeypointMap] = None,
        rig: Optional[StickFigureRig] = None,
        events: Optional[EventBus] = None,
        depth_limit: int = DEFAULT_DEPTH_LIMIT,
    ):
        if skeleton is None and keypoints is None:
            raise ValueError("a character needs a skeleton or a keypoint map")

        self.name = name
        self.events = events if events is not None else EventBus()
        self.skeleton = skeleton
        self.keypoints = keypoints
        self.rig = rig

        self.ik: Optional[ChainIKSolver] = None
        self.constraints: Optional[DistanceConstraintSolver] = None
        self.depth = DepthClassifier(depth_limit, self.events)
        self.solver: PoseSolver

        if skeleton is not None:
            self.ik = ChainIKSolver.for_skeleton(skeleton)
            self.depth.compute_depths(skeleton)
            self.solver = ChainPoseSolver(self.ik)
        else:
            self.constraints = (
                DistanceConstraintSolver.from_rig(rig)
                if rig is not None else DistanceConstraintSolver()
            )
            self.constraints.capture_lengths(keypoints)
            self.solver = RelaxationPoseSolver(keypoints, self.constraints)

        self.default_pose: Pose = self.get_current_pose("default")
        self._saved_poses: dict[str, Pose] = {}
        logger.info("Created character %r (%s mode)", name, self.mode.value)

    @classmethod
    def stick_figure(cls, name: str = "Stick Figure", rig: Optional[StickFigureRig] = None,
                     events: Optional[EventBus] = None) -> Character:
        """Keypoint character in the rig's default pose (bundled humanoid by default)."""
        rig = rig if rig is not None else load_stick_figure()
        return cls(name, keypoints=rig.create_keypoints(), rig=rig, events=events)

    @property
    def mode(self) -> SolveMode:
        return self.solver.mode

    @property
    def is_disposed(self) -> bool:
        return self.skeleton is None and self.keypoints is None

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    def drag(self, control: str, target: ArrayLike) -> bool:
        """Route a drag through the active pose solver.

        *control* is a keypoint name for stick figures, or a chain or joint
        name for skeletons.  Unknown controls are ignored.
        """
        if self.is_disposed:
            return False
        if control not in self.solver.controls():
            logger.warning("Character %r has no control %r", self.name, control)
            return False
        converged = self.solver.solve(control, target)
        self._publish_drag(control, target, converged)
        return converged

    def drag_joint(self, joint: str, position: ArrayLike) -> bool:
        """Move a keypoint and relax the graph.  False if not converged."""
        if self.keypoints is None or self.constraints is None:
            return False
        self.constraints.apply_constraints(self.keypoints, joint, position)
        converged = self.constraints.last_converged
        self._publish_drag(joint, position, converged)
        return converged

    def solve_ik(self, chain: str, target: ArrayLike) -> bool:
        if self.ik is None:
            return False
        if self.ik.get_chain(chain) is None:
            logger.warning("Character %r has no IK chain %r", self.name, chain)
            return False
        converged = self.ik.solve(chain, target)
        self._publish_drag(chain, target, converged)
        return converged

    def _publish_drag(self, control: str, target: ArrayLike, converged: bool) -> None:
        if self.ik is not None and self.ik.get_chain(control) is not None:
            self.events.publish(
                EventType.CHAIN_SOLVED,
                chain=control, target=as_vec3(target), converged=converged,
            )
            return
        self.events.publish(
            EventType.JOINT_MOVED,
            joint=control, position=self._joint_position(control, target),
            converged=converged,
        )

    def _joint_position(self, joint: str, fallback: ArrayLike) -> Vec3:
        if self.keypoints is not None and joint in self.keypoints:
            return self.keypoints[joint].copy()
        if self.skeleton is not None:
            bone = self.skeleton.get_bone(joint)
            if bone is not None:
                return bone.get_world_position()
        return as_vec3(fallback)

    # ------------------------------------------------------------------
    # IK chain setup
    # ------------------------------------------------------------------

    def create_chain(self, chain: str, bone_names: list[str], **kwargs) -> bool:
        """Create a chain from bone names.  False if any bone is missing."""
        if self.ik is None or self.skeleton is None:
            return False
        bones = []
        for bone_name in bone_names:
            bone = self.skeleton.get_bone(bone_name)
            if bone is None:
                logger.error("Bone %r not found for IK chain %r", bone_name, chain)
                return False
            bones.append(bone)
        self.ik.create_chain(chain, bones, **kwargs)
        self.events.publish(EventType.CHAIN_CREATED, chain=chain, bones=list(bone_names))
        return True

    def setup_ik_chains(self, with_limits: bool = True) -> list[str]:
        """Create the preset arm/leg chains this rig supports."""
        if self.ik is None or self.skeleton is None:
            logger.warning("Cannot set up IK chains for %r: no skeleton", self.name)
            return []
        created = create_preset_chains(self.ik, self.skeleton)
        for chain in created:
            self.events.publish(
                EventType.CHAIN_CREATED,
                chain=chain, bones=self.ik.get_chain_bone_names(chain),
            )
        if with_limits:
            apply_rotation_limits(self.ik, self.skeleton, load_rotation_limits())
        return created

    def remove_chain(self, chain: str) -> None:
        if self.ik is None or self.ik.get_chain(chain) is None:
            return
        self.ik.remove_chain(chain)
        self.events.publish(EventType.CHAIN_REMOVED, chain=chain)

    def get_chain_names(self) -> list[str]:
        return self.ik.get_chain_names() if self.ik is not None else []

    # ------------------------------------------------------------------
    # Manipulator level of detail
    # ------------------------------------------------------------------

    def set_depth_limit(self, limit: int) -> None:
        self.depth.set_depth_limit(limit)

    def is_manipulator_visible(self, bone_name: str) -> bool:
        return self.depth.is_visible(bone_name)

    # ------------------------------------------------------------------
    # Poses
    # ------------------------------------------------------------------

    def get_current_pose(self, name: str = "current", description: str = "") -> Pose:
        rotations = {}
        if self.skeleton is not None:
            rotations = {
                b.name: BoneRotation.from_quaternion(b.quaternion, DEFAULT_EULER_ORDER)
                for b in self.skeleton.bones
            }
        keypoints = copy_keypoints(self.keypoints) if self.keypoints is not None else {}
        return Pose(name, rotations, keypoints, description)

    def capture_default_pose(self) -> None:
        self.default_pose = self.get_current_pose("default")

    def apply_pose(self, pose: Pose) -> None:
        """Write the pose's rotations and keypoints; unknown names are ignored."""
        if self.skeleton is not None:
            for bone_name, rotation in pose.rotations.items():
                bone = self.skeleton.get_bone(bone_name)
                if bone is not None:
                    bone.set_quaternion(rotation.to_quaternion())
            self.skeleton.update()
        if self.keypoints is not None:
            for joint, position in pose.keypoints.items():
                if joint in self.keypoints:
                    self.keypoints[joint] = as_vec3(position)
        self.events.publish(EventType.POSE_APPLIED, name=pose.name)

    def reset_to_default(self) -> None:
        self.apply_pose(self.default_pose)

    def save_pose(self, name: str, description: str = "") -> Pose:
        pose = self.get_current_pose(name, description)
        self._saved_poses[name] = pose
        self.events.publish(EventType.POSE_SAVED, name=name)
        return pose

    def load_pose(self, name: str) -> bool:
        pose = self._saved_poses.get(name)
        if pose is None:
            logger.warning("Pose %r not found for %r", name, self.name)
            return False
        self.apply_pose(pose)
        return True

    def delete_pose(self, name: str) -> bool:
        return self._saved_poses.pop(name, None) is not None

    def get_saved_poses(self) -> list[Pose]:
        return list(self._saved_poses.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def dispose(self) -> None:
        """Drop chains, constraints and poses, and release the figure."""
        if self.ik is not None:
            self.ik.clear()
        if self.skeleton is not None:
            self.skeleton.dispose()
        self.skeleton = None
        self.keypoints = None
        self.constraints = None
        self.depth.reset()
        self._saved_poses.clear()
        self.events.publish(EventType.CHARACTER_DISPOSED, name=self.name)
        logger.info("Disposed character %r", self.name)
