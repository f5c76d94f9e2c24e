"""Shared constants and paths for PoseForge."""

from pathlib import Path

# Package paths
PACKAGE_ROOT = Path(__file__).parent
ASSETS_DIR = PACKAGE_ROOT / "assets"
CONFIG_DIR = ASSETS_DIR / "config"

# Distance constraint relaxation
RELAXATION_MAX_PASSES = 5
RELAXATION_TOLERANCE = 0.01
DEFAULT_JOINT_PRIORITY = 1

# FABRIK chain solving
FABRIK_MAX_ITERATIONS = 10
FABRIK_TOLERANCE = 0.01
MIN_BONE_LENGTH = 0.1      # Clamp to avoid degenerate zero-length bones
MIN_CHAIN_BONES = 2

# Rest-pose bone direction (bones point up +Y unless the rig says otherwise)
DEFAULT_BONE_AXIS = (0.0, 1.0, 0.0)

# Manipulator level of detail
DEFAULT_DEPTH_LIMIT = 3

# Pose snapshot format
POSE_FORMAT_VERSION = 1
DEFAULT_EULER_ORDER = "XYZ"
