# hingemd/core/dynamics/forces.py
from __future__ import annotations

from typing import List, Optional

import numpy as np

from ..config import BranchParameters, SimulationConfig
from ..geometry.spherical import LocalSnapshot
from ..topology import Topology

__all__ = ["ForceModel"]


class ForceModel:
    """Generalized forces on the local (r, theta, phi) coordinates.

    - root: no force (free center of mass and orientation)
    - r: harmonic spring of stiffness ``kappa`` toward ``rest_length``. An
      interior hinge also feels the spring to its child, a tip only its parent's.
    - theta: unconstrained
    - phi: linear damping toward zero with coefficient ``damping``
    """

    def __init__(self, config: SimulationConfig, topology: Optional[Topology] = None) -> None:
        self.topology = topology or config.build_topology()
        self.branch_params: List[BranchParameters] = [
            config.branch_parameters(b) for b in range(self.topology.n_branches)
        ]

    def evaluate(self, snapshot: LocalSnapshot) -> np.ndarray:
        """Return the (n_hinges, 3) generalized force for ``snapshot``."""
        topo = self.topology
        force = np.zeros((topo.n_hinges, 3))

        for branch, params in enumerate(self.branch_params):
            rows = topo.branch_indices(branch)
            radii = snapshot.coords[rows, 0]
            phis = snapshot.coords[rows, 2]

            stretch = radii - params.rest_length
            radial = -params.kappa * stretch
            # Pull from the spring to the child (absent at the tip)
            radial[:-1] += params.kappa * stretch[1:]

            force[rows, 0] = radial
            force[rows, 2] = -params.damping * phis

        return force

    def potential_energy(self, snapshot: LocalSnapshot) -> float:
        """Spring plus polar-damping potential, sum of 0.5*kappa*(r-R)^2 + 0.5*k*phi^2."""
        energy = 0.0
        for branch, params in enumerate(self.branch_params):
            rows = self.topology.branch_indices(branch)
            stretch = snapshot.coords[rows, 0] - params.rest_length
            phis = snapshot.coords[rows, 2]
            energy += 0.5 * params.kappa * float(stretch @ stretch)
            energy += 0.5 * params.damping * float(phis @ phis)
        return energy
