"""One interface over both posing strategies.

Graph relaxation and chain FABRIK both answer "satisfy the geometric
constraints given a moved control point".  Callers hold a ``PoseSolver``
and pick the strategy per character through :class:`SolveMode`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from numpy.typing import ArrayLike

from poseforge.rig.keypoints import StickFigureRig
from poseforge.rig.pose import KeypointMap
from poseforge.rig.skeleton import Skeleton
from poseforge.solvers.distance_constraints import DistanceConstraintSolver
from poseforge.solvers.fabrik import ChainIKSolver


class SolveMode(Enum):
    RELAXATION = "relaxation"
    CHAIN_IK = "chain_ik"


class PoseSolver(ABC):
    """Moves one control point and restores the constraints around it."""

    mode: SolveMode

    @abstractmethod
    def solve(self, control: str, target: ArrayLike) -> bool:
        """Drive *control* toward *target*.

        Returns True when the constraints were met within tolerance.  A
        False result is a normal outcome; the best-effort pose is applied.
        """

    @abstractmethod
    def controls(self) -> list[str]:
        """Names that may be passed as *control*."""


class RelaxationPoseSolver(PoseSolver):
    """Keypoint graph; the control is a joint name."""

    mode = SolveMode.RELAXATION

    def __init__(self, keypoints: KeypointMap, solver: DistanceConstraintSolver):
        self.keypoints = keypoints
        self.solver = solver

    def solve(self, control: str, target: ArrayLike) -> bool:
        self.solver.apply_constraints(self.keypoints, control, target)
        return self.solver.last_converged

    def controls(self) -> list[str]:
        return list(self.keypoints.keys())


class ChainPoseSolver(PoseSolver):
    """Bone chains; the control is a chain name or a joint (bone) name.

    A chain name runs FABRIK on the whole chain.  A joint name swings the
    bone above that joint toward the target.
    """

    mode = SolveMode.CHAIN_IK

    def __init__(self, solver: ChainIKSolver):
        self.solver = solver

    def solve(self, control: str, target: ArrayLike) -> bool:
        if self.solver.get_chain(control) is None:
            located = self.solver.find_joint(control)
            if located is not None:
                chain, index = located
                return self.solver.solve_joint(chain, index, target)
        return self.solver.solve(control, target)

    def controls(self) -> list[str]:
        """Chain names, then every draggable joint (all but each chain root)."""
        chains = self.solver.get_chain_names()
        joints: list[str] = []
        for chain in chains:
            bones = self.solver.get_chain(chain).bones
            tip = bones[-1].child_bone()
            names = [b.name for b in bones[1:]] + ([tip.name] if tip is not None else [])
            joints.extend(n for n in names if n not in joints and n not in chains)
        return chains + joints


def create_pose_solver(
    mode: SolveMode,
    *,
    keypoints: Optional[KeypointMap] = None,
    rig: Optional[StickFigureRig] = None,
    skeleton: Optional[Skeleton] = None,
    chain_solver: Optional[ChainIKSolver] = None,
) -> PoseSolver:
    """Build the solver for *mode* from whichever collaborators it needs.

    Relaxation needs *keypoints* (a *rig* supplies connections, lengths and
    priorities; without one the default stick figure is not assumed).
    Chain IK needs a *chain_solver* or a *skeleton* to create one for.
    """
    if mode is SolveMode.RELAXATION:
        if keypoints is None:
            raise ValueError("relaxation mode needs a keypoint map")
        solver = (
            DistanceConstraintSolver.from_rig(rig)
            if rig is not None else DistanceConstraintSolver()
        )
        return RelaxationPoseSolver(keypoints, solver)

    if mode is SolveMode.CHAIN_IK:
        if chain_solver is None:
            if skeleton is None:
                raise ValueError("chain IK mode needs a skeleton or a chain solver")
            chain_solver = ChainIKSolver.for_skeleton(skeleton)
        return ChainPoseSolver(chain_solver)

    raise ValueError(f"Unknown solve mode: {mode}")
