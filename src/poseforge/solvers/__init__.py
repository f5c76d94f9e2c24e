"""Pose solvers -- distance relaxation for keypoint graphs, FABRIK for bone chains."""

from poseforge.solvers.distance_constraints import DistanceConstraintSolver
from poseforge.solvers.fabrik import ChainIKSolver, IKChain, InvalidChainError
from poseforge.solvers.pose_solver import PoseSolver, SolveMode, create_pose_solver

__all__ = [
    "ChainIKSolver",
    "DistanceConstraintSolver",
    "IKChain",
    "InvalidChainError",
    "PoseSolver",
    "SolveMode",
    "create_pose_solver",
]
