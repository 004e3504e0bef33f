# hingemd/core/geometry/frames.py
"""Rotation frames attached to hinges.

Each hinge carries an orthonormal frame stored as a unit quaternion
``[w, x, y, z]``. A child frame is obtained from its parent by a rotation of
``theta`` about the parent's own z axis followed by a rotation of ``phi`` about
the resulting y axis (body-fixed composition), so the child's z axis points
along the bond from parent to child.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy.linalg import polar

__all__ = [
    "IDENTITY_QUAT",
    "QUAT_DRIFT_TOL",
    "ORTHO_DRIFT_TOL",
    "quaternion_multiply",
    "axis_angle_quaternion",
    "quaternion_to_dcm",
    "advance",
    "orthonormality_error",
    "is_orthonormal",
    "reorthonormalize",
]

IDENTITY_QUAT = np.array([1.0, 0.0, 0.0, 0.0])
_E_Y = np.array([0.0, 1.0, 0.0])
_E_Z = np.array([0.0, 0.0, 1.0])

# Renormalize / re-orthonormalize only past these drifts
QUAT_DRIFT_TOL = 1e-12
ORTHO_DRIFT_TOL = 1e-12


def quaternion_multiply(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Return the Hamilton product of two quaternions.

    Both *q1* and *q2* are expected as 4-element arrays ``[w, x, y, z]``.
    The result is a new quaternion following the right-handed convention.
    """
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2

    return np.array(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ]
    )


def axis_angle_quaternion(axis: np.ndarray, angle: float) -> np.ndarray:
    """Create quaternion from axis and angle."""
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)
    half_angle = angle / 2
    return np.array(
        [
            np.cos(half_angle),
            axis[0] * np.sin(half_angle),
            axis[1] * np.sin(half_angle),
            axis[2] * np.sin(half_angle),
        ]
    )


def quaternion_to_dcm(q: np.ndarray) -> np.ndarray:
    """Convert quaternion to 3x3 direction-cosine matrix.

    Column ``j`` is the ``j``-th rotated basis vector written in the
    coordinates of the reference (identity) basis, so ``dcm @ v_local`` maps a
    vector from the rotated frame into the reference frame.

    Args:
        q: Quaternion [w, x, y, z]

    Returns:
        3x3 rotation matrix
    """
    w, x, y, z = q

    return np.array([
        [1 - 2*(y*y + z*z), 2*(x*y - w*z), 2*(x*z + w*y)],
        [2*(x*y + w*z), 1 - 2*(x*x + z*z), 2*(y*z - w*x)],
        [2*(x*z - w*y), 2*(y*z + w*x), 1 - 2*(x*x + y*y)]
    ])


def orthonormality_error(dcm: np.ndarray) -> float:
    """Largest absolute entry of ``dcm.T @ dcm - I``."""
    return float(np.max(np.abs(dcm.T @ dcm - np.eye(3))))


def is_orthonormal(dcm: np.ndarray, tol: float = 1e-10) -> bool:
    return orthonormality_error(dcm) <= tol


def reorthonormalize(dcm: np.ndarray) -> np.ndarray:
    """Nearest rotation matrix to ``dcm`` (orthogonal factor of the polar decomposition)."""
    u, _ = polar(dcm)
    return u


def advance(theta: float, phi: float, parent_quat: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Derive a child frame from its parent's frame and the child's angles.

    Args:
        theta: Azimuth, rotation about the parent's z axis (applied first)
        phi: Polar angle, rotation about the resulting y axis (applied second)
        parent_quat: Parent frame as a unit quaternion

    Returns:
        Tuple of (dcm, quat) for the child frame
    """
    q_theta = axis_angle_quaternion(_E_Z, theta)
    q_phi = axis_angle_quaternion(_E_Y, phi)
    quat = quaternion_multiply(quaternion_multiply(parent_quat, q_theta), q_phi)

    norm = np.linalg.norm(quat)
    if abs(norm - 1.0) > QUAT_DRIFT_TOL:
        quat = quat / norm

    dcm = quaternion_to_dcm(quat)
    if orthonormality_error(dcm) > ORTHO_DRIFT_TOL:
        dcm = reorthonormalize(dcm)

    return dcm, quat
