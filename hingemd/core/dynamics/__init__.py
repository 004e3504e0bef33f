"""
Stochastic dynamics of hinge chains.

This module implements:
- Generalized spring/damping forces on local coordinates
- Local-to-global Jacobians (finite-difference and closed form)
- Euler-Maruyama integration with Brownian noise
"""

from .forces import ForceModel
from .integrator import LoggingObserver, ProgressObserver, SDEIntegrator, Trajectory
from .jacobian import JacobianBuilder, analytic_jacobian, numeric_jacobian

__all__ = [
    "ForceModel",
    "JacobianBuilder",
    "LoggingObserver",
    "ProgressObserver",
    "SDEIntegrator",
    "Trajectory",
    "analytic_jacobian",
    "numeric_jacobian",
]
