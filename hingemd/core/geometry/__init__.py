"""
Kinematics of hinge chains.

This module provides:
- Rotation frames composed from unit quaternions
- Cartesian <-> parent-relative spherical coordinate transforms
- Root-to-leaf forward and reverse passes over a chain or tree
"""

from .frames import advance, is_orthonormal, quaternion_multiply, quaternion_to_dcm
from .spherical import (
    LocalSnapshot,
    forward_pass,
    random_state,
    reverse_pass,
    spherical_partials,
    straight_state,
    to_cartesian,
    to_spherical,
)

__all__ = [
    "LocalSnapshot",
    "advance",
    "forward_pass",
    "is_orthonormal",
    "quaternion_multiply",
    "quaternion_to_dcm",
    "random_state",
    "reverse_pass",
    "spherical_partials",
    "straight_state",
    "to_cartesian",
    "to_spherical",
]
