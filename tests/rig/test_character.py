"""Tests for the Character facade."""

import numpy as np
import pytest

from poseforge.core.events import EventType
from poseforge.core.scene_graph import SceneNode
from poseforge.rig.character import Character
from poseforge.rig.skeleton import Skeleton, build_bone_chain
from poseforge.solvers.pose_solver import PoseSolver, SolveMode


def _mixamo_skeleton():
    root = SceneNode("Armature")
    hips = build_bone_chain(["mixamorig:Hips", "mixamorig:Spine"], [1.0], parent=root)
    for side in ("Left", "Right"):
        build_bone_chain(
            [f"mixamorig:{side}Arm", f"mixamorig:{side}ForeArm", f"mixamorig:{side}Hand"],
            [1.0, 1.0, 0.5],
            parent=hips[1],
        )
    return Skeleton(root)


def _record(character, event_type):
    received = []
    character.events.subscribe(event_type, lambda **kw: received.append(kw))
    return received


class _RecordingSolver(PoseSolver):
    mode = SolveMode.RELAXATION

    def __init__(self):
        self.calls = []

    def solve(self, control, target):
        self.calls.append((control, tuple(target)))
        return True

    def controls(self):
        return ["leftWrist"]


def test_needs_skeleton_or_keypoints():
    with pytest.raises(ValueError):
        Character("empty")


def test_stick_figure_mode():
    character = Character.stick_figure()
    assert character.mode is SolveMode.RELAXATION
    assert character.constraints.get_bone_length("neck", "head") == pytest.approx(0.8)
    assert "leftWrist" in character.solver.controls()


def test_drag_joint_publishes():
    character = Character.stick_figure()
    moved = _record(character, EventType.JOINT_MOVED)
    spine = character.keypoints["spine"].copy()

    character.drag("leftWrist", (3.2, 4.0, 0.3))

    assert len(moved) == 1
    assert moved[0]["joint"] == "leftWrist"
    np.testing.assert_array_equal(character.keypoints["spine"], spine)


def test_reset_to_default():
    character = Character.stick_figure()
    character.drag_joint("leftWrist", (2.0, 6.0, 0.0))
    character.reset_to_default()

    np.testing.assert_array_almost_equal(character.keypoints["leftWrist"], [3.0, 4.5, 0.0])


def test_saved_poses():
    character = Character.stick_figure()
    saved = _record(character, EventType.POSE_SAVED)

    character.drag_joint("leftWrist", (2.0, 6.0, 0.0))
    character.save_pose("reach", "left hand up")
    raised = character.keypoints["leftWrist"].copy()
    character.reset_to_default()

    assert saved == [{"name": "reach"}]
    assert [p.name for p in character.get_saved_poses()] == ["reach"]
    assert character.load_pose("reach")
    np.testing.assert_array_almost_equal(character.keypoints["leftWrist"], raised)

    assert character.delete_pose("reach")
    assert not character.delete_pose("reach")
    assert not character.load_pose("reach")


def test_skeleton_character_setup_ik_chains():
    character = Character("mixamo", skeleton=_mixamo_skeleton())
    created = _record(character, EventType.CHAIN_CREATED)

    chains = character.setup_ik_chains()

    assert character.mode is SolveMode.CHAIN_IK
    assert chains == ["leftArm", "rightArm"]
    assert [e["chain"] for e in created] == ["leftArm", "rightArm"]
    assert created[0]["bones"] == [
        "mixamorig:LeftArm", "mixamorig:LeftForeArm", "mixamorig:LeftHand",
    ]
    forearm = character.skeleton.get_bone("mixamorig:LeftForeArm")
    assert character.ik.get_constraint(forearm) is not None


def test_solve_ik_publishes():
    character = Character("mixamo", skeleton=_mixamo_skeleton())
    character.setup_ik_chains(with_limits=False)
    solved = _record(character, EventType.CHAIN_SOLVED)

    result = character.drag("leftArm", (10.0, 0.0, 0.0))

    assert result is False
    assert len(solved) == 1
    assert solved[0]["chain"] == "leftArm"
    assert solved[0]["converged"] is False


def test_solve_unknown_chain():
    character = Character("mixamo", skeleton=_mixamo_skeleton())
    solved = _record(character, EventType.CHAIN_SOLVED)
    assert character.solve_ik("tail", (0.0, 1.0, 0.0)) is False
    assert solved == []


def test_create_chain_missing_bone():
    character = Character("mixamo", skeleton=_mixamo_skeleton())
    assert not character.create_chain("tail", ["mixamorig:Hips", "mixamorig:Tail"])
    assert character.create_chain("spine", ["mixamorig:Hips", "mixamorig:Spine"])
    assert character.get_chain_names() == ["spine"]

    character.remove_chain("spine")
    assert character.get_chain_names() == []


def test_bone_pose_roundtrip():
    character = Character("mixamo", skeleton=_mixamo_skeleton())
    character.create_chain(
        "arm", ["mixamorig:LeftArm", "mixamorig:LeftForeArm", "mixamorig:LeftHand"],
    )
    character.solve_ik("arm", (1.0, 3.0, 0.5))
    bent = character.get_current_pose("bent")

    character.reset_to_default()
    forearm = character.skeleton.get_bone("mixamorig:LeftForeArm")
    np.testing.assert_array_almost_equal(forearm.quaternion, [0, 0, 0, 1])

    character.apply_pose(bent)
    restored = character.get_current_pose()
    for name, rotation in bent.rotations.items():
        assert (restored.rotations[name].x, restored.rotations[name].y,
                restored.rotations[name].z) == pytest.approx(
            (rotation.x, rotation.y, rotation.z), abs=1e-9)


def test_depth_limit_visibility():
    character = Character("mixamo", skeleton=_mixamo_skeleton())
    # Hips 0, Spine 1, Arm 2, ForeArm 3, Hand 4
    assert character.is_manipulator_visible("mixamorig:LeftForeArm")
    assert not character.is_manipulator_visible("mixamorig:LeftHand")

    character.set_depth_limit(1)
    assert character.is_manipulator_visible("mixamorig:Spine")
    assert not character.is_manipulator_visible("mixamorig:LeftArm")


def test_dispose():
    character = Character("mixamo", skeleton=_mixamo_skeleton())
    character.setup_ik_chains()
    character.save_pose("rest")
    disposed = _record(character, EventType.CHARACTER_DISPOSED)

    character.dispose()

    assert character.is_disposed
    assert character.get_chain_names() == []
    assert character.get_saved_poses() == []
    assert disposed == [{"name": "mixamo"}]
    assert character.constraints is None
    assert not character.is_manipulator_visible("mixamorig:Hips")
    assert character.depth.get_visible_bones() == []
    assert character.drag("leftArm", (1.0, 3.0, 0.0)) is False


def test_dispose_stick_figure():
    character = Character.stick_figure()

    character.dispose()

    assert character.constraints is None
    assert character.drag("leftWrist", (2.0, 6.0, 0.0)) is False


def test_drag_uses_active_solver():
    character = Character.stick_figure()
    solver = _RecordingSolver()
    character.solver = solver
    moved = _record(character, EventType.JOINT_MOVED)
    wrist = character.keypoints["leftWrist"].copy()

    assert character.drag("leftWrist", (2.0, 6.0, 0.0)) is True

    assert solver.calls == [("leftWrist", (2.0, 6.0, 0.0))]
    assert len(moved) == 1
    assert moved[0]["joint"] == "leftWrist"
    assert moved[0]["converged"] is True
    np.testing.assert_array_equal(character.keypoints["leftWrist"], wrist)


def test_drag_unknown_control():
    character = Character.stick_figure()
    character.solver = _RecordingSolver()
    moved = _record(character, EventType.JOINT_MOVED)

    assert character.drag("rightWrist", (2.0, 6.0, 0.0)) is False

    assert character.solver.calls == []
    assert moved == []


def test_drag_bone_joint():
    character = Character("mixamo", skeleton=_mixamo_skeleton())
    character.setup_ik_chains(with_limits=False)
    moved = _record(character, EventType.JOINT_MOVED)
    hand = character.skeleton.get_bone("mixamorig:LeftHand")

    # LeftArm sits at (0, 1, 0); dragging the elbow swings only the upper arm.
    assert character.drag("mixamorig:LeftForeArm", (1.0, 1.0, 0.0)) is True

    forearm = character.skeleton.get_bone("mixamorig:LeftForeArm")
    np.testing.assert_array_almost_equal(forearm.get_world_position(), [1, 1, 0])
    np.testing.assert_array_almost_equal(hand.get_world_position(), [2, 1, 0])
    np.testing.assert_array_almost_equal(
        character.skeleton.get_bone("mixamorig:RightForeArm").get_world_position(), [0, 2, 0],
    )
    assert len(moved) == 1
    assert moved[0]["joint"] == "mixamorig:LeftForeArm"
    np.testing.assert_array_almost_equal(moved[0]["position"], [1, 1, 0])
    assert moved[0]["converged"] is True
