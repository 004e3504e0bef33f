# hingemd/core/geometry/spherical.py
"""Conversion between global Cartesian hinge positions and local spherical coordinates.

Local coordinates of hinge ``n`` are ``(r, theta, phi)`` of its displacement
from the parent, expressed in the parent's frame. The root is described in the
world frame relative to the origin, and its own frame is the world frame.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from ..errors import DegenerateGeometryError
from ..topology import HingeKey, Topology
from .frames import IDENTITY_QUAT, advance

__all__ = [
    "MIN_RADIUS",
    "LocalSnapshot",
    "to_spherical",
    "to_cartesian",
    "spherical_partials",
    "forward_pass",
    "reverse_pass",
    "random_state",
    "straight_state",
]

MIN_RADIUS = 1e-9


def to_spherical(v: np.ndarray, min_radius: float = MIN_RADIUS) -> Tuple[float, float, float]:
    """Cartesian vector to ``(r, theta, phi)``.

    ``theta = atan2(y, x)`` in (-pi, pi] and ``phi`` is the angle from +z in
    [0, pi].

    Raises:
        DegenerateGeometryError: If ``r <= min_radius``
    """
    x, y, z = v
    r = float(np.sqrt(x * x + y * y + z * z))
    if not r > min_radius:
        raise DegenerateGeometryError(
            f"Degenerate geometry: radius {r:.3e} <= {min_radius:.1e}", radius=r
        )
    theta = float(np.arctan2(y, x))
    # Same angle as acos(z / r), without the precision loss near the poles
    phi = float(np.arctan2(np.hypot(x, y), z))
    return r, theta, phi


def to_cartesian(r: float, theta: float, phi: float) -> np.ndarray:
    """Inverse of :func:`to_spherical`."""
    sin_phi = np.sin(phi)
    return r * np.array([sin_phi * np.cos(theta), sin_phi * np.sin(theta), np.cos(phi)])


def spherical_partials(r: float, theta: float, phi: float) -> np.ndarray:
    """Jacobian of :func:`to_cartesian`; columns are d/dr, d/dtheta, d/dphi."""
    st, ct = np.sin(theta), np.cos(theta)
    sp, cp = np.sin(phi), np.cos(phi)
    return np.array([
        [sp * ct, -r * sp * st, r * cp * ct],
        [sp * st, r * sp * ct, r * cp * st],
        [cp, 0.0, -r * sp],
    ])


def _root_spherical(position: np.ndarray) -> Tuple[float, float, float]:
    # Root at the origin has no direction; its angles are fixed at zero
    if not np.any(position):
        return 0.0, 0.0, 0.0
    return to_spherical(position, min_radius=0.0)


@dataclass(frozen=True)
class LocalSnapshot:
    """Local coordinates and frames derived from one global state.

    Attributes:
        topology: Hinge connectivity
        coords: (n_hinges, 3) array of (r, theta, phi)
        quats: (n_hinges, 4) frame quaternions
        dcms: (n_hinges, 3, 3) frame direction-cosine matrices
    """

    topology: Topology
    coords: np.ndarray
    quats: np.ndarray
    dcms: np.ndarray

    def __post_init__(self) -> None:
        for name in ("coords", "quats", "dcms"):
            arr = np.array(getattr(self, name), dtype=float)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    def local(self, key: HingeKey) -> np.ndarray:
        return self.coords[self.topology.index(key)]

    def dcm(self, key: HingeKey) -> np.ndarray:
        return self.dcms[self.topology.index(key)]

    def flat(self) -> np.ndarray:
        """Stacked local coordinate vector of length 3N."""
        return self.coords.reshape(-1).copy()

    def restrict(self, branch: int) -> "LocalSnapshot":
        """Snapshot of the root plus one branch, as a single chain."""
        rows = self.topology.minor_rows(branch)
        return LocalSnapshot(
            topology=self.topology.branch_topology(),
            coords=self.coords[rows],
            quats=self.quats[rows],
            dcms=self.dcms[rows],
        )


def forward_pass(
    positions: np.ndarray, topology: Topology, min_radius: float = MIN_RADIUS
) -> LocalSnapshot:
    """Global positions to local spherical coordinates and frames.

    Args:
        positions: (n_hinges, 3) global state in topological order
        topology: Hinge connectivity
        min_radius: Smallest admissible bond length

    Returns:
        LocalSnapshot for this state

    Raises:
        DegenerateGeometryError: If any non-root hinge sits on its parent
    """
    positions = np.asarray(positions, dtype=float)
    n = topology.n_hinges
    if positions.shape != (n, 3):
        raise ValueError(f"Expected positions of shape {(n, 3)}, got {positions.shape}")

    coords = np.zeros((n, 3))
    quats = np.zeros((n, 4))
    dcms = np.zeros((n, 3, 3))

    coords[0] = _root_spherical(positions[0])
    quats[0] = IDENTITY_QUAT
    dcms[0] = np.eye(3)

    for i, parent in enumerate(topology.parent_indices()):
        if parent < 0:
            continue
        local_vec = dcms[parent].T @ (positions[i] - positions[parent])
        try:
            r, theta, phi = to_spherical(local_vec, min_radius)
        except DegenerateGeometryError as exc:
            key = topology.key(i)
            raise DegenerateGeometryError(
                f"Hinge {key} collapsed onto its parent (r={exc.radius:.3e})",
                key=key,
                radius=exc.radius,
            ) from exc
        coords[i] = (r, theta, phi)
        dcms[i], quats[i] = advance(theta, phi, quats[parent])

    return LocalSnapshot(topology=topology, coords=coords, quats=quats, dcms=dcms)


def reverse_pass(coords: np.ndarray, topology: Topology) -> np.ndarray:
    """Local spherical coordinates back to global positions.

    Args:
        coords: (n_hinges, 3) or flat (3N,) local coordinates
        topology: Hinge connectivity

    Returns:
        (n_hinges, 3) global positions
    """
    coords = np.asarray(coords, dtype=float).reshape(topology.n_hinges, 3)
    n = topology.n_hinges
    positions = np.zeros((n, 3))
    quats = np.zeros((n, 4))
    dcms = np.zeros((n, 3, 3))

    positions[0] = to_cartesian(*coords[0])
    quats[0] = IDENTITY_QUAT
    dcms[0] = np.eye(3)

    for i, parent in enumerate(topology.parent_indices()):
        if parent < 0:
            continue
        r, theta, phi = coords[i]
        positions[i] = positions[parent] + dcms[parent] @ to_cartesian(r, theta, phi)
        dcms[i], quats[i] = advance(theta, phi, quats[parent])

    return positions


def random_state(
    topology: Topology,
    rest_length: float,
    rng: Optional[np.random.Generator] = None,
    root: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Random global state with every bond at ``rest_length`` in a uniform random direction."""
    rng = np.random.default_rng() if rng is None else rng
    positions = np.zeros((topology.n_hinges, 3))
    if root is not None:
        positions[0] = root

    for i, parent in enumerate(topology.parent_indices()):
        if parent < 0:
            continue
        direction = rng.normal(size=3)
        direction /= np.linalg.norm(direction)
        positions[i] = positions[parent] + rest_length * direction

    return positions


def straight_state(
    topology: Topology,
    rest_length: float,
    directions: Optional[Sequence[np.ndarray]] = None,
    root: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Global state with each branch laid out straight at rest length.

    A chain points along +z. Branches of a tree default to directions tilted
    45 degrees from +z and spread evenly in azimuth.
    """
    if directions is None:
        if topology.n_branches == 1:
            directions = [np.array([0.0, 0.0, 1.0])]
        else:
            tilt = np.pi / 4
            directions = [
                to_cartesian(1.0, 2 * np.pi * b / topology.n_branches, tilt)
                for b in range(topology.n_branches)
            ]
    if len(directions) != topology.n_branches:
        raise ValueError(f"Need {topology.n_branches} branch directions, got {len(directions)}")

    positions = np.zeros((topology.n_hinges, 3))
    if root is not None:
        positions[0] = root

    for branch, direction in enumerate(directions):
        unit = np.asarray(direction, dtype=float)
        unit = unit / np.linalg.norm(unit)
        for key in topology.branch_keys(branch):
            positions[topology.index(key)] = positions[0] + key.hinge * rest_length * unit

    return positions


