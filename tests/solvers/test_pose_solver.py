"""Tests for the shared solver interface."""

import numpy as np
import pytest

from poseforge.core.scene_graph import SceneNode
from poseforge.rig.keypoints import load_stick_figure
from poseforge.rig.skeleton import Skeleton, build_bone_chain
from poseforge.solvers.pose_solver import (
    ChainPoseSolver, PoseSolver, RelaxationPoseSolver, SolveMode, create_pose_solver,
)


def test_relaxation_solver():
    rig = load_stick_figure()
    keypoints = rig.create_keypoints()
    solver = create_pose_solver(SolveMode.RELAXATION, keypoints=keypoints, rig=rig)

    assert isinstance(solver, RelaxationPoseSolver)
    assert solver.mode is SolveMode.RELAXATION
    assert set(solver.controls()) == set(rig.joint_names())
    assert solver.solve("head", keypoints["head"]) is True


def test_relaxation_needs_keypoints():
    with pytest.raises(ValueError):
        create_pose_solver(SolveMode.RELAXATION)


def test_chain_solver_from_skeleton():
    root = SceneNode("armature")
    bones = build_bone_chain(["upper", "lower"], [1.0, 1.0], parent=root)
    solver = create_pose_solver(SolveMode.CHAIN_IK, skeleton=Skeleton(root))
    solver.solver.create_chain("arm", bones)

    assert isinstance(solver, ChainPoseSolver)
    assert isinstance(solver, PoseSolver)
    assert solver.controls() == ["arm", "lower", "lower_end"]
    assert solver.solve("arm", (1.0, 1.0, 0.0)) is True
    np.testing.assert_array_almost_equal(
        solver.solver.get_end_effector_position("arm"), [1, 1, 0],
    )


def test_chain_needs_skeleton_or_solver():
    with pytest.raises(ValueError):
        create_pose_solver(SolveMode.CHAIN_IK)


def test_chain_solver_routes_joint_controls():
    root = SceneNode("armature")
    bones = build_bone_chain(["upper", "lower"], [1.0, 1.0], parent=root)
    skeleton = Skeleton(root)
    solver = create_pose_solver(SolveMode.CHAIN_IK, skeleton=skeleton)
    solver.solver.create_chain("arm", bones)

    assert solver.solve("lower", (1.0, 0.0, 0.0)) is True
    np.testing.assert_array_almost_equal(skeleton.world_positions()["lower"], [1, 0, 0])

    assert solver.solve("upper", (1.0, 1.0, 0.0)) is False
