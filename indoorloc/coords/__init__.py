"""Rotation representations for handset attitude.

Quaternions (scalar-first, world <- device), rotation matrices and ZYX Euler
angles, plus the vector rotations used to project accelerations into the
world frame.
"""

from indoorloc.coords.rotations import (
    IDENTITY_QUAT,
    ensure_unit,
    euler_to_quat,
    gravity_roll_pitch,
    omega_matrix,
    quat_conjugate,
    quat_derivative,
    quat_from_gravity,
    quat_is_identity,
    quat_multiply,
    quat_normalize,
    quat_to_euler,
    quat_to_rotation_matrix,
    rotate_to_device,
    rotate_to_world,
    rotation_matrix_to_quat,
)

__all__ = [
    "IDENTITY_QUAT",
    "ensure_unit",
    "euler_to_quat",
    "gravity_roll_pitch",
    "omega_matrix",
    "quat_conjugate",
    "quat_derivative",
    "quat_from_gravity",
    "quat_is_identity",
    "quat_multiply",
    "quat_normalize",
    "quat_to_euler",
    "quat_to_rotation_matrix",
    "rotate_to_device",
    "rotate_to_world",
    "rotation_matrix_to_quat",
]
