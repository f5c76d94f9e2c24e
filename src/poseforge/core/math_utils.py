"""NumPy-backed math utilities: Vec3, Quaternion, Mat4 operations.

Provides lightweight wrappers and utility functions for 3D math.
Vectors are plain numpy arrays; quaternions are [x, y, z, w] arrays.
Euler angles follow the intrinsic-rotation convention where order "XYZ"
means the matrix R = Rx @ Ry @ Rz.
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray

# Type aliases
Vec3 = NDArray[np.float64]
Mat3 = NDArray[np.float64]
Mat4 = NDArray[np.float64]
Quat = NDArray[np.float64]  # [x, y, z, w]

EULER_ORDERS = ("XYZ", "YXZ", "ZYX")

# Gimbal-lock threshold used when decomposing a rotation into Euler angles
_GIMBAL_EPS = 0.9999999


def vec3(x: float = 0.0, y: float = 0.0, z: float = 0.0) -> Vec3:
    return np.array([x, y, z], dtype=np.float64)


def as_vec3(v: ArrayLike) -> Vec3:
    """Copy any 3-sequence (list, tuple, array) into a float64 Vec3."""
    return np.array(v, dtype=np.float64).reshape(3)


def mat4_identity() -> Mat4:
    return np.eye(4, dtype=np.float64)


def mat3_from_quaternion(q: Quat) -> Mat3:
    """Convert quaternion [x,y,z,w] to 3x3 rotation matrix."""
    x, y, z, w = q
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
        [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
    ], dtype=np.float64)


def mat4_from_quaternion(q: Quat) -> Mat4:
    """Convert quaternion [x,y,z,w] to 4x4 rotation matrix."""
    m = np.eye(4, dtype=np.float64)
    m[:3, :3] = mat3_from_quaternion(q)
    return m


def mat4_compose(position: Vec3, quaternion: Quat, scale: Vec3) -> Mat4:
    """Compose TRS matrix from position, quaternion rotation, and scale."""
    m = mat4_from_quaternion(quaternion)
    m[0, :3] *= scale[0]
    m[1, :3] *= scale[1]
    m[2, :3] *= scale[2]
    m[0, 3] = position[0]
    m[1, 3] = position[1]
    m[2, 3] = position[2]
    return m


# Quaternion operations

def quat_identity() -> Quat:
    return np.array([0.0, 0.0, 0.0, 1.0], dtype=np.float64)


def quat_from_euler(x: float, y: float, z: float, order: str = "XYZ") -> Quat:
    """Create quaternion from Euler angles (radians)."""
    cx, sx = np.cos(x / 2), np.sin(x / 2)
    cy, sy = np.cos(y / 2), np.sin(y / 2)
    cz, sz = np.cos(z / 2), np.sin(z / 2)

    if order == "XYZ":
        return np.array([
            sx * cy * cz + cx * sy * sz,
            cx * sy * cz - sx * cy * sz,
            cx * cy * sz + sx * sy * cz,
            cx * cy * cz - sx * sy * sz,
        ], dtype=np.float64)
    elif order == "YXZ":
        return np.array([
            sx * cy * cz + cx * sy * sz,
            cx * sy * cz - sx * cy * sz,
            cx * cy * sz - sx * sy * cz,
            cx * cy * cz + sx * sy * sz,
        ], dtype=np.float64)
    elif order == "ZYX":
        return np.array([
            sx * cy * cz - cx * sy * sz,
            cx * sy * cz + sx * cy * sz,
            cx * cy * sz - sx * sy * cz,
            cx * cy * cz + sx * sy * sz,
        ], dtype=np.float64)
    else:
        raise ValueError(f"Unsupported Euler order: {order}")


def euler_from_quat(q: Quat, order: str = "XYZ") -> tuple[float, float, float]:
    """Decompose a quaternion into Euler angles (radians) for *order*.

    Inverse of :func:`quat_from_euler`.  At gimbal lock the last angle is
    forced to zero.
    """
    m = mat3_from_quaternion(quat_normalize(q))
    m11, m12, m13 = m[0]
    m21, m22, m23 = m[1]
    m31, m32, m33 = m[2]

    if order == "XYZ":
        y = np.arcsin(np.clip(m13, -1.0, 1.0))
        if abs(m13) < _GIMBAL_EPS:
            x = np.arctan2(-m23, m33)
            z = np.arctan2(-m12, m11)
        else:
            x = np.arctan2(m32, m22)
            z = 0.0
    elif order == "YXZ":
        x = np.arcsin(-np.clip(m23, -1.0, 1.0))
        if abs(m23) < _GIMBAL_EPS:
            y = np.arctan2(m13, m33)
            z = np.arctan2(m21, m22)
        else:
            y = np.arctan2(-m31, m11)
            z = 0.0
    elif order == "ZYX":
        y = np.arcsin(-np.clip(m31, -1.0, 1.0))
        if abs(m31) < _GIMBAL_EPS:
            x = np.arctan2(m32, m33)
            z = np.arctan2(m21, m11)
        else:
            x = 0.0
            z = np.arctan2(-m12, m22)
    else:
        raise ValueError(f"Unsupported Euler order: {order}")

    return float(x), float(y), float(z)


def quat_from_unit_vectors(v_from: Vec3, v_to: Vec3) -> Quat:
    """Shortest-arc rotation mapping unit vector *v_from* onto *v_to*.

    Opposite vectors rotate 180 degrees about an arbitrary perpendicular axis.
    """
    r = float(np.dot(v_from, v_to)) + 1.0
    if r < 1e-12:
        if abs(v_from[0]) > abs(v_from[2]):
            q = np.array([-v_from[1], v_from[0], 0.0, 0.0], dtype=np.float64)
        else:
            q = np.array([0.0, -v_from[2], v_from[1], 0.0], dtype=np.float64)
    else:
        c = np.cross(v_from, v_to)
        q = np.array([c[0], c[1], c[2], r], dtype=np.float64)
    return quat_normalize(q)


def quat_multiply(a: Quat, b: Quat) -> Quat:
    """Multiply two quaternions (a * b)."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array([
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    ], dtype=np.float64)


def quat_conjugate(q: Quat) -> Quat:
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=np.float64)


def quat_normalize(q: Quat) -> Quat:
    n = np.linalg.norm(q)
    if n < 1e-10:
        return quat_identity()
    return q / n


def quat_slerp(a: Quat, b: Quat, t: float) -> Quat:
    """Spherical linear interpolation between two quaternions."""
    dot = np.dot(a, b)
    if dot < 0:
        b = -b
        dot = -dot
    if dot > 0.9995:
        result = a + t * (b - a)
        return quat_normalize(result)
    theta = np.arccos(np.clip(dot, -1.0, 1.0))
    sin_theta = np.sin(theta)
    if sin_theta < 1e-10:
        return a.copy()
    wa = np.sin((1 - t) * theta) / sin_theta
    wb = np.sin(t * theta) / sin_theta
    return quat_normalize(wa * a + wb * b)


def quat_rotate_vec3(q: Quat, v: Vec3) -> Vec3:
    """Rotate a vector by a quaternion."""
    qv = q[:3]
    w = q[3]
    t = 2.0 * np.cross(qv, v)
    return v + w * t + np.cross(qv, t)


# Vector operations

def normalize(v: Vec3) -> Vec3:
    n = np.linalg.norm(v)
    if n < 1e-10:
        return np.zeros_like(v)
    return v / n


def distance(a: Vec3, b: Vec3) -> float:
    return float(np.linalg.norm(np.asarray(b) - np.asarray(a)))


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def deg_to_rad(degrees: float) -> float:
    return degrees * np.pi / 180.0

