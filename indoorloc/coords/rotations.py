"""
Quaternion algebra and rotation conversions for handset attitude.

This module provides the rotation kernel shared by the attitude tracker and
the step detector:
    - Quaternion normalization, product, conjugate and kinematics
    - Quaternion <-> rotation matrix <-> Euler angle conversions
    - Vector rotation device -> world and back
    - Levelled quaternion from a gravity measurement

Frame Conventions:
    - D: Device frame (handset physical axes)
    - W: World frame, x horizontal towards magnetic north, z up
    - q represents the rotation W <- D: v_W = R(q) @ v_D
    - A handset lying flat with its x axis towards magnetic north has
      q = identity and measures gravity as (0, 0, +g)

Quaternion Convention:
    - Scalar-first: q = [qw, qx, qy, qz]
    - Unit quaternion: ||q|| = 1
    - Identity quaternion: [1, 0, 0, 0]

Euler Angle Convention:
    - ZYX (yaw-pitch-roll) sequence, angles in radians
"""

import numpy as np
from numpy.typing import NDArray

IDENTITY_QUAT = np.array([1.0, 0.0, 0.0, 0.0])

# Renormalize when the norm drifts further than this from 1
UNIT_NORM_TOLERANCE = 1e-6


def _check_quat(q: NDArray[np.float64]) -> None:
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")


def _check_vec3(v: NDArray[np.float64], name: str = "v") -> None:
    if v.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {v.shape}")


def quat_normalize(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Normalize quaternion to unit length."""
    _check_quat(q)
    norm = np.linalg.norm(q)
    if not np.isfinite(norm) or norm == 0.0:
        raise ValueError(f"Cannot normalize quaternion with norm {norm}")
    return q / norm


def ensure_unit(
    q: NDArray[np.float64], tol: float = UNIT_NORM_TOLERANCE
) -> NDArray[np.float64]:
    """Return q unchanged if its norm is within tol of 1, else renormalized."""
    _check_quat(q)
    if abs(np.linalg.norm(q) - 1.0) > tol:
        return quat_normalize(q)
    return q


def quat_is_identity(q: NDArray[np.float64]) -> bool:
    """True only for the exact identity quaternion (the uninitialized state)."""
    _check_quat(q)
    return bool(np.array_equal(q, IDENTITY_QUAT))


def quat_conjugate(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Quaternion conjugate (inverse rotation for a unit quaternion)."""
    _check_quat(q)
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=np.float64)


def quat_multiply(p: NDArray[np.float64], q: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Hamilton product p ⊗ q.

    Args:
        p: Left quaternion [pw, px, py, pz].
        q: Right quaternion [qw, qx, qy, qz].

    Returns:
        Product quaternion (not renormalized).
    """
    _check_quat(p)
    _check_quat(q)
    pw, px, py, pz = p
    qw, qx, qy, qz = q
    return np.array(
        [
            pw * qw - px * qx - py * qy - pz * qz,
            pw * qx + px * qw + py * qz - pz * qy,
            pw * qy - px * qz + py * qw + pz * qx,
            pw * qz + px * qy - py * qx + pz * qw,
        ],
        dtype=np.float64,
    )


def omega_matrix(omega_d: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Build the Ω(ω) matrix of quaternion kinematics.

        Ω(ω) = [  0    -ωx   -ωy   -ωz ]
               [ ωx     0     ωz   -ωy ]
               [ ωy    -ωz    0     ωx ]
               [ ωz     ωy   -ωx    0  ]

    so that dq/dt = 0.5 · Ω(ω) · q = 0.5 · q ⊗ [0, ω] for a device-frame
    angular rate ω.

    Args:
        omega_d: Angular velocity in device frame, shape (3,), rad/s.

    Returns:
        4x4 skew-symmetric matrix.
    """
    _check_vec3(omega_d, "omega_d")
    wx, wy, wz = omega_d
    return np.array(
        [
            [0.0, -wx, -wy, -wz],
            [wx, 0.0, wz, -wy],
            [wy, -wz, 0.0, wx],
            [wz, wy, -wx, 0.0],
        ]
    )


def quat_derivative(q: NDArray[np.float64], omega_d: NDArray[np.float64]) -> NDArray[np.float64]:
    """Rate of change of q under device-frame angular rate omega_d."""
    _check_quat(q)
    return 0.5 * omega_matrix(omega_d) @ q


def euler_to_quat(roll: float, pitch: float, yaw: float) -> NDArray[np.float64]:
    """
    Convert ZYX Euler angles to a unit quaternion.

    Args:
        roll: Rotation about x in radians.
        pitch: Rotation about y in radians.
        yaw: Rotation about z in radians.

    Returns:
        Unit quaternion [qw, qx, qy, qz].

    Example:
        >>> q = euler_to_quat(0.0, 0.0, np.pi / 2)  # 90° yaw
    """
    cr = np.cos(roll / 2.0)
    sr = np.sin(roll / 2.0)
    cp = np.cos(pitch / 2.0)
    sp = np.sin(pitch / 2.0)
    cy = np.cos(yaw / 2.0)
    sy = np.sin(yaw / 2.0)

    return np.array(
        [
            cr * cp * cy + sr * sp * sy,
            sr * cp * cy - cr * sp * sy,
            cr * sp * cy + sr * cp * sy,
            cr * cp * sy - sr * sp * cy,
        ],
        dtype=np.float64,
    )


def quat_to_euler(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Convert a unit quaternion to ZYX Euler angles [roll, pitch, yaw].

    Pitch is clamped through arcsin so values near ±90° stay finite.
    """
    _check_quat(q)
    qw, qx, qy, qz = q

    roll = np.arctan2(2.0 * (qw * qx + qy * qz), 1.0 - 2.0 * (qx * qx + qy * qy))
    sin_pitch = np.clip(2.0 * (qw * qy - qz * qx), -1.0, 1.0)
    pitch = np.arcsin(sin_pitch)
    yaw = np.arctan2(2.0 * (qw * qz + qx * qy), 1.0 - 2.0 * (qy * qy + qz * qz))

    return np.array([roll, pitch, yaw], dtype=np.float64)


def quat_to_rotation_matrix(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Convert a unit quaternion to the 3x3 matrix R with v_W = R @ v_D.

    Raises:
        ValueError: If q is not a 4-element array.
    """
    _check_quat(q)
    qw, qx, qy, qz = q

    return np.array(
        [
            [
                1.0 - 2.0 * (qy * qy + qz * qz),
                2.0 * (qx * qy - qw * qz),
                2.0 * (qx * qz + qw * qy),
            ],
            [
                2.0 * (qx * qy + qw * qz),
                1.0 - 2.0 * (qx * qx + qz * qz),
                2.0 * (qy * qz - qw * qx),
            ],
            [
                2.0 * (qx * qz - qw * qy),
                2.0 * (qy * qz + qw * qx),
                1.0 - 2.0 * (qx * qx + qy * qy),
            ],
        ],
        dtype=np.float64,
    )


def rotation_matrix_to_quat(R: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Extract a unit quaternion from a rotation matrix (Shepperd's method).

    The branch on the largest diagonal term keeps the square root away
    from zero.

    Raises:
        ValueError: If R is not a 3x3 matrix.
    """
    if R.shape != (3, 3):
        raise ValueError(f"Expected 3x3 matrix, got shape {R.shape}")

    trace = np.trace(R)

    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        qw = 0.25 / s
        qx = (R[2, 1] - R[1, 2]) * s
        qy = (R[0, 2] - R[2, 0]) * s
        qz = (R[1, 0] - R[0, 1]) * s
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        qw = (R[2, 1] - R[1, 2]) / s
        qx = 0.25 * s
        qy = (R[0, 1] + R[1, 0]) / s
        qz = (R[0, 2] + R[2, 0]) / s
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        qw = (R[0, 2] - R[2, 0]) / s
        qx = (R[0, 1] + R[1, 0]) / s
        qy = 0.25 * s
        qz = (R[1, 2] + R[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        qw = (R[1, 0] - R[0, 1]) / s
        qx = (R[0, 2] + R[2, 0]) / s
        qy = (R[1, 2] + R[2, 1]) / s
        qz = 0.25 * s

    q = np.array([qw, qx, qy, qz], dtype=np.float64)
    # Keep the scalar part non-negative so equal rotations compare equal
    if q[0] < 0:
        q = -q
    return q / np.linalg.norm(q)


def rotate_to_world(q: NDArray[np.float64], v_d: NDArray[np.float64]) -> NDArray[np.float64]:
    """Rotate a device-frame vector into the world frame: v_W = R(q) @ v_D."""
    _check_vec3(v_d, "v_d")
    return quat_to_rotation_matrix(q) @ v_d


def rotate_to_device(q: NDArray[np.float64], v_w: NDArray[np.float64]) -> NDArray[np.float64]:
    """Rotate a world-frame vector into the device frame: v_D = R(q)^T @ v_W."""
    _check_vec3(v_w, "v_w")
    return quat_to_rotation_matrix(q).T @ v_w


def gravity_roll_pitch(accel_d: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Roll and pitch of the device from a gravity (specific force) reading.

        roll  = atan2(ay, az)
        pitch = atan2(-ax, sqrt(ay² + az²))

    Args:
        accel_d: Accelerometer reading in device frame, shape (3,), m/s².

    Returns:
        Array [roll, pitch] in radians.
    """
    _check_vec3(accel_d, "accel_d")
    ax, ay, az = accel_d
    return np.array([np.arctan2(ay, az), np.arctan2(-ax, np.hypot(ay, az))])


def quat_from_gravity(accel_d: NDArray[np.float64], yaw: float = 0.0) -> NDArray[np.float64]:
    """
    Levelled attitude quaternion from a gravity reading and a yaw angle.

    Raises:
        ValueError: If the reading has zero norm.
    """
    _check_vec3(accel_d, "accel_d")
    if not np.linalg.norm(accel_d) > 0.0:
        raise ValueError("accel_d must have non-zero norm")
    roll, pitch = gravity_roll_pitch(accel_d)
    return euler_to_quat(roll, pitch, yaw)
