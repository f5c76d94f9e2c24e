"""Tests for the FABRIK chain solver."""

import numpy as np
import pytest

from poseforge.core.math_utils import distance, quat_from_euler, euler_from_quat, vec3
from poseforge.core.scene_graph import SceneNode
from poseforge.rig.skeleton import Skeleton, build_bone_chain
from poseforge.solvers.fabrik import ChainIKSolver, InvalidChainError, RotationConstraint


def _chain(names, lengths, axis=(0, 1, 0)):
    root = SceneNode("armature")
    bones = build_bone_chain(names, lengths, parent=root, axis=axis)
    skeleton = Skeleton(root, bone_axis=axis)
    solver = ChainIKSolver.for_skeleton(skeleton)
    solver.create_chain("arm", bones)
    return solver, skeleton, bones


def _segment_lengths(skeleton):
    positions = list(skeleton.world_positions().values())
    return [distance(a, b) for a, b in zip(positions, positions[1:])]


def test_chain_needs_two_bones():
    solver, _, bones = _chain(["a", "b"], [1.0, 1.0])
    with pytest.raises(InvalidChainError):
        solver.create_chain("short", bones[:1])
    assert solver.get_chain("short") is None


def test_end_effector_offset():
    solver, _, _ = _chain(["upper", "lower"], [1.0, 1.5])
    np.testing.assert_array_almost_equal(solver.get_chain("arm").end_effector, [0, 1.5, 0])
    np.testing.assert_array_almost_equal(solver.get_end_effector_position("arm"), [0, 2.5, 0])


def test_converges_to_reachable_target():
    solver, _, bones = _chain(["upper", "lower"], [1.0, 1.0])

    assert solver.solve("arm", (1.0, 1.0, 0.0)) is True

    np.testing.assert_array_almost_equal(solver.get_end_effector_position("arm"), [1, 1, 0])
    np.testing.assert_array_almost_equal(bones[0].quaternion, [0, 0, 0, 1])
    assert solver.last_result.iterations == 1
    assert solver.last_result.reachable


def test_target_at_full_extension_is_reachable():
    solver, _, _ = _chain(["upper", "lower", "hand"], [1.0, 1.0, 1.0])

    assert solver.solve("arm", (0.0, 3.0, 0.0)) is True
    assert solver.last_result.reachable


def test_converges_near_full_extension():
    solver, _, bones = _chain(["upper", "lower"], [1.0, 1.0])
    solver.create_chain("reach", bones, max_iterations=10, tolerance=0.01)
    target = vec3(1.4142, 1.4142, 0.0)

    assert solver.solve("reach", target) is True

    assert distance(solver.get_end_effector_position("reach"), target) < 0.01
    assert solver.last_result.reachable
    assert solver.last_result.converged


def test_unreachable_target_stretches_chain():
    solver, skeleton, _ = _chain(["upper", "lower", "hand"], [1.0, 1.0, 1.0])

    assert solver.solve("arm", (5.0, 0.0, 0.0)) is False

    assert not solver.last_result.reachable
    positions = skeleton.world_positions()
    np.testing.assert_array_almost_equal(positions["lower"], [1, 0, 0])
    np.testing.assert_array_almost_equal(positions["hand"], [2, 0, 0])
    np.testing.assert_array_almost_equal(solver.get_end_effector_position("arm"), [3, 0, 0])
    assert solver.last_result.error == pytest.approx(2.0)


def test_bone_lengths_preserved():
    solver, skeleton, _ = _chain(["upper", "lower", "hand"], [1.0, 1.0, 1.0])
    start_tip = solver.get_end_effector_position("arm")
    target = vec3(1.2, 1.5, 0.8)

    solver.solve("arm", target)

    for length in _segment_lengths(skeleton):
        assert length == pytest.approx(1.0, abs=1e-3)
    tip = solver.get_end_effector_position("arm")
    assert distance(tip, target) < distance(start_tip, target)


def test_bone_axis_per_skeleton():
    solver, _, _ = _chain(["upper", "lower"], [1.0, 1.0], axis=(0, 0, 1))

    assert solver.solve("arm", (0.0, 1.0, 1.0)) is True
    np.testing.assert_array_almost_equal(solver.get_end_effector_position("arm"), [0, 1, 1])


def test_unknown_chain_leaves_pose_untouched():
    solver, _, bones = _chain(["upper", "lower"], [1.0, 1.0])
    before = [b.quaternion.copy() for b in bones]

    assert solver.solve("leg", (1.0, 1.0, 0.0)) is False

    for bone, q in zip(bones, before):
        np.testing.assert_array_equal(bone.quaternion, q)
    assert solver.last_result is None


def test_rotation_constraint_clamps():
    constraint = RotationConstraint(None, vec3(-1, -1, -1), vec3(1, 1, 1))
    x, y, z = euler_from_quat(constraint.clamp(quat_from_euler(0.2, -0.3, 2.0)))
    assert (x, y, z) == pytest.approx((0.2, -0.3, 1.0))


def test_locked_bone_keeps_rest_rotation():
    solver, _, bones = _chain(["upper", "lower"], [1.0, 1.0])
    solver.set_constraint(bones[1], (0, 0, 0), (0, 0, 0))

    solver.solve("arm", (1.0, 1.0, 0.0))

    np.testing.assert_array_almost_equal(bones[1].quaternion, [0, 0, 0, 1])
    np.testing.assert_array_almost_equal(solver.get_end_effector_position("arm"), [0, 2, 0])


def test_registry():
    solver, _, bones = _chain(["upper", "lower"], [1.0, 1.0])
    solver.create_chain("copy", bones, max_iterations=3, tolerance=0.1)

    assert solver.get_chain_names() == ["arm", "copy"]
    assert solver.get_chain_bone_names("copy") == ["upper", "lower"]
    assert solver.get_chain("copy").max_iterations == 3
    assert solver.get_chain_bone_names("missing") == []
    assert solver.get_end_effector_position("missing") is None

    solver.remove_chain("copy")
    solver.set_constraint(bones[0], (-1, -1, -1), (1, 1, 1))
    solver.clear()
    assert solver.get_chain_names() == []
    assert solver.get_constraint(bones[0]) is None


def test_find_joint():
    solver, _, _ = _chain(["upper", "lower"], [1.0, 1.0])

    assert solver.find_joint("upper") == ("arm", 0)
    assert solver.find_joint("lower") == ("arm", 1)
    assert solver.find_joint("lower_end") == ("arm", 2)
    assert solver.find_joint("tail") is None


def test_find_joint_prefers_draggable_chain():
    solver, _, bones = _chain(["upper", "lower", "hand"], [1.0, 1.0, 1.0])
    solver.remove_chain("arm")
    solver.create_chain("forearm", bones[1:])
    solver.create_chain("arm", bones)

    assert solver.find_joint("lower") == ("arm", 1)
    assert solver.find_joint("hand") == ("forearm", 1)
    assert solver.find_joint("upper") == ("arm", 0)


def test_solve_joint_swings_parent_bone():
    solver, skeleton, bones = _chain(["upper", "lower"], [1.0, 1.0])

    assert solver.solve_joint("arm", 1, (1.0, 0.0, 0.0)) is True

    positions = skeleton.world_positions()
    np.testing.assert_array_almost_equal(positions["lower"], [1, 0, 0])
    np.testing.assert_array_almost_equal(solver.get_end_effector_position("arm"), [2, 0, 0])
    np.testing.assert_array_almost_equal(bones[1].quaternion, [0, 0, 0, 1])


def test_solve_joint_tip_in_parent_frame():
    solver, skeleton, bones = _chain(["upper", "lower"], [1.0, 1.0])
    solver.solve_joint("arm", 1, (1.0, 0.0, 0.0))

    assert solver.solve_joint("arm", 2, (1.0, 1.0, 0.0)) is True

    positions = skeleton.world_positions()
    np.testing.assert_array_almost_equal(positions["lower"], [1, 0, 0])
    np.testing.assert_array_almost_equal(positions["lower_end"], [1, 1, 0])
    for length in _segment_lengths(skeleton):
        assert length == pytest.approx(1.0)


def test_solve_joint_damping():
    solver, skeleton, _ = _chain(["upper", "lower"], [1.0, 1.0])

    solver.solve_joint("arm", 1, (1.0, 0.0, 0.0), damping=0.5)

    h = np.sqrt(0.5)
    np.testing.assert_array_almost_equal(skeleton.world_positions()["lower"], [h, h, 0])


def test_solve_joint_rejects_root_and_unknown_chain():
    solver, _, bones = _chain(["upper", "lower"], [1.0, 1.0])

    assert solver.solve_joint("arm", 0, (1.0, 0.0, 0.0)) is False
    assert solver.solve_joint("arm", 3, (1.0, 0.0, 0.0)) is False
    assert solver.solve_joint("leg", 1, (1.0, 0.0, 0.0)) is False
    for bone in bones:
        np.testing.assert_array_equal(bone.quaternion, [0, 0, 0, 1])


def test_solve_joint_target_on_pivot_is_noop():
    solver, _, bones = _chain(["upper", "lower"], [1.0, 1.0])

    assert solver.solve_joint("arm", 2, (0.0, 1.0, 0.0)) is True
    np.testing.assert_array_equal(bones[1].quaternion, [0, 0, 0, 1])
