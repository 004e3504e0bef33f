# hingemd/core/dynamics/jacobian.py
"""Jacobian of global hinge positions with respect to local spherical coordinates.

Row block ``i`` holds hinge ``i``'s global position, column block ``j`` hinge
``j``'s ``(r, theta, phi)``. A hinge depends only on its own coordinates and
those of its ancestors, so a chain gives a block lower-triangular matrix and
the branches of a tree only couple through the root column block.

Two interchangeable builders are provided:

- ``numeric``: central finite differences through :func:`reverse_pass`. This
  is the reference.
- ``analytic``: closed-form chain rule over the rotation frames. It must agree
  with the numeric builder (see :meth:`JacobianBuilder.validate`).
"""

from __future__ import annotations

import logging
import warnings
from typing import List, Optional, Union

import numpy as np
from joblib import Parallel, delayed
from scipy.linalg import svdvals

from ...utils.cpu import parse_workers, workers_for
from ..errors import (
    IllConditionedJacobianError,
    IllConditionedJacobianWarning,
    JacobianMismatchError,
    JacobianStructureError,
)
from ..geometry.spherical import LocalSnapshot, reverse_pass, spherical_partials
from ..topology import Topology

logger = logging.getLogger(__name__)

__all__ = [
    "JacobianBuilder",
    "numeric_jacobian",
    "analytic_jacobian",
    "check_block_structure",
    "condition_number",
]

_E_Z = np.array([0.0, 0.0, 1.0])


def numeric_jacobian(coords: np.ndarray, topology: Topology, step: float = 1e-6) -> np.ndarray:
    """Central-difference Jacobian.

    Each local coordinate is perturbed by +/- step/2 on its own and the global
    positions are rebuilt with :func:`reverse_pass`.

    Args:
        coords: (n_hinges, 3) local coordinates
        topology: Hinge connectivity
        step: Total perturbation width h

    Returns:
        (3N, 3N) Jacobian
    """
    base = np.asarray(coords, dtype=float).reshape(-1)
    n = base.size
    jac = np.zeros((n, n))
    half = 0.5 * step

    for j in range(n):
        plus = base.copy()
        minus = base.copy()
        plus[j] += half
        minus[j] -= half
        diff = reverse_pass(plus, topology) - reverse_pass(minus, topology)
        jac[:, j] = diff.reshape(-1) / step

    return jac


def analytic_jacobian(snapshot: LocalSnapshot) -> np.ndarray:
    """Closed-form Jacobian from the frames of ``snapshot``.

    For a non-root ancestor ``a`` of target ``n`` (``a`` may be ``n``):

    - d/dr_a is the bond direction ``DCM[a] e_z``;
    - theta_a rotates every frame from ``a`` down to ``n`` about
      ``u = DCM[p(a)] e_z``, and phi_a about ``w = DCM[p(a)] Rz(theta_a) e_y``.
      The derivative of each such frame applied to its own bond ``r_m e_z`` is
      ``axis x r_m DCM[m] e_z``, and the column is the sum of these terms
      over every hinge ``m`` between ``a`` and ``n``.

    The root's coordinates only translate the structure, so its partials are
    the same 3x3 block for every row.
    """
    topo = snapshot.topology
    coords = snapshot.coords
    dcms = snapshot.dcms
    parents = topo.parent_indices()
    n_coords = topo.n_coords

    jac = np.zeros((n_coords, n_coords))
    root_block = spherical_partials(*coords[0])
    bonds = coords[:, :1] * dcms[:, :, 2]  # r_m * DCM[m] e_z

    for i, key in enumerate(topo.keys):
        rows = slice(3 * i, 3 * i + 3)
        jac[rows, 0:3] = root_block
        if key.is_root:
            continue

        chain = [topo.index(k) for k in topo.path(key)[1:]]
        lever = np.zeros(3)
        # Walk from the target back up so `lever` is the sum over a..n
        for a in reversed(chain):
            lever = lever + bonds[a]
            parent_dcm = dcms[parents[a]]
            theta = coords[a, 1]
            u = parent_dcm @ _E_Z
            w = parent_dcm @ np.array([-np.sin(theta), np.cos(theta), 0.0])

            cols = slice(3 * a, 3 * a + 3)
            jac[rows, cols] = np.column_stack(
                [dcms[a] @ _E_Z, np.cross(u, lever), np.cross(w, lever)]
            )

    return jac


def check_block_structure(jac: np.ndarray, topology: Topology) -> None:
    """Verify that blocks linking different branches are exactly zero.

    Also checks that root rows do not depend on any branch coordinate.

    Raises:
        JacobianStructureError: On the first offending block
    """
    for b_row in range(topology.n_branches):
        rows = _flat_indices(topology.branch_indices(b_row))
        for b_col in range(topology.n_branches):
            if b_col == b_row:
                continue
            cols = _flat_indices(topology.branch_indices(b_col))
            block = jac[np.ix_(rows, cols)]
            if np.any(block != 0.0):
                raise JacobianStructureError(
                    f"Branch {b_row} depends on branch {b_col}: "
                    f"max |J| = {np.max(np.abs(block)):.3e}"
                )
        if np.any(jac[0:3, _flat_indices(topology.branch_indices(b_row))] != 0.0):
            raise JacobianStructureError(f"Root depends on branch {b_row} coordinates")


def condition_number(jac: np.ndarray, topology: Topology) -> float:
    """2-norm condition number of the non-root block.

    The root block is excluded because the root's angular part is undefined
    when it sits at the origin.
    """
    sub = jac[3:, 3:]
    if sub.size == 0:
        return 1.0
    sv = svdvals(sub)
    # Numerically singular
    if sv[-1] <= np.finfo(float).eps * sv[0]:
        return float("inf")
    return float(sv[0] / sv[-1])


def _flat_indices(hinge_rows: List[int]) -> np.ndarray:
    return np.array([3 * i + c for i in hinge_rows for c in range(3)], dtype=int)


class JacobianBuilder:
    """Builds the local-to-global Jacobian once per step.

    For a tree, one minor Jacobian is computed per branch on the root plus that
    branch's hinges, then scattered into the full matrix. The minors only read
    the shared root data, so they can be evaluated concurrently.
    """

    def __init__(
        self,
        method: str = "numeric",
        step: float = 1e-6,
        n_workers: Union[int, str] = 1,
        condition_limit: float = 1e10,
        on_ill_conditioned: str = "warn",
    ) -> None:
        if method not in ("numeric", "analytic"):
            raise ValueError(f"Invalid Jacobian method: {method}")
        if on_ill_conditioned not in ("warn", "raise", "ignore"):
            raise ValueError(f"Invalid on_ill_conditioned action: {on_ill_conditioned}")
        self.method = method
        self.step = step
        self.n_workers = parse_workers(n_workers)
        self.condition_limit = condition_limit
        self.on_ill_conditioned = on_ill_conditioned
        self.last_condition: Optional[float] = None

    @classmethod
    def from_config(cls, config) -> "JacobianBuilder":
        return cls(
            method=config.jacobian,
            step=config.fd_step,
            n_workers=config.n_workers,
            condition_limit=config.condition_limit,
            on_ill_conditioned=config.on_ill_conditioned,
        )

    def minor(self, snapshot: LocalSnapshot, method: Optional[str] = None) -> np.ndarray:
        """Jacobian of a single chain snapshot."""
        method = method or self.method
        if method == "numeric":
            return numeric_jacobian(snapshot.coords, snapshot.topology, self.step)
        return analytic_jacobian(snapshot)

    def build(self, snapshot: LocalSnapshot, method: Optional[str] = None) -> np.ndarray:
        """Full (3N, 3N) Jacobian for ``snapshot``, checked for conditioning.

        Raises:
            IllConditionedJacobianError: If ``on_ill_conditioned`` is ``"raise"``
                and the condition number exceeds ``condition_limit``
        """
        jac = self.assemble(snapshot, method)
        self._check_condition(jac, snapshot.topology)
        return jac

    def assemble(self, snapshot: LocalSnapshot, method: Optional[str] = None) -> np.ndarray:
        """Full (3N, 3N) Jacobian for ``snapshot``, assembled from per-branch minors."""
        topo = snapshot.topology
        if topo.n_branches == 1:
            jac = self.minor(snapshot, method)
        else:
            subs = [snapshot.restrict(b) for b in range(topo.n_branches)]
            if self.n_workers > 1:
                minors = Parallel(n_jobs=workers_for(len(subs), self.n_workers), backend="threading")(
                    delayed(self.minor)(sub, method) for sub in subs
                )
            else:
                minors = [self.minor(sub, method) for sub in subs]

            jac = np.zeros((topo.n_coords, topo.n_coords))
            jac[0:3, 0:3] = minors[0][0:3, 0:3]
            for branch, minor in enumerate(minors):
                idx = _flat_indices(topo.minor_rows(branch))
                jac[np.ix_(idx[3:], idx)] = minor[3:, :]
            check_block_structure(jac, topo)

        return jac

    def drift(self, snapshot: LocalSnapshot, force: np.ndarray) -> np.ndarray:
        """Global drift ``J . F`` reshaped to (n_hinges, 3)."""
        jac = self.build(snapshot)
        return (jac @ np.asarray(force).reshape(-1)).reshape(-1, 3)

    def validate(
        self, snapshot: LocalSnapshot, rtol: float = 1e-5, atol: float = 1e-8
    ) -> float:
        """Compare analytic and numeric Jacobians entrywise.

        Returns:
            Largest relative deviation over entries above ``atol``

        Raises:
            JacobianMismatchError: If any entry violates ``|a - n| <= atol + rtol * |n|``
        """
        numeric = self.assemble(snapshot, method="numeric")
        analytic = self.assemble(snapshot, method="analytic")
        abs_err = np.abs(analytic - numeric)
        scale = np.abs(numeric)
        mask = scale > atol
        max_rel = float(np.max(abs_err[mask] / scale[mask])) if np.any(mask) else 0.0
        max_abs = float(np.max(abs_err)) if abs_err.size else 0.0

        if not np.all(abs_err <= atol + rtol * scale):
            raise JacobianMismatchError(
                f"Analytic Jacobian deviates from finite differences "
                f"(max abs {max_abs:.3e}, max rel {max_rel:.3e})",
                max_abs_error=max_abs,
                max_rel_error=max_rel,
            )
        logger.info(f"Analytic Jacobian validated (max rel error {max_rel:.2e})")
        return max_rel

    def _check_condition(self, jac: np.ndarray, topology: Topology) -> None:
        if self.on_ill_conditioned == "ignore":
            return
        cond = condition_number(jac, topology)
        self.last_condition = cond
        if cond <= self.condition_limit:
            return
        message = f"Ill-conditioned Jacobian: cond = {cond:.3e} > {self.condition_limit:.1e}"
        if self.on_ill_conditioned == "raise":
            raise IllConditionedJacobianError(message, condition=cond)
        warnings.warn(message, IllConditionedJacobianWarning, stacklevel=3)
