"""
Core modules for HingeMD chain kinematics and Brownian dynamics.
"""

from .config import BranchParameters, SimulationConfig
from .ensemble import displacement_variance, run_ensemble
from .errors import (
    ConfigurationError,
    DegenerateGeometryError,
    HingeMDError,
    IllConditionedJacobianError,
    IllConditionedJacobianWarning,
    JacobianMismatchError,
    JacobianStructureError,
    NumericalBlowupError,
    SimulationAborted,
)
from .topology import ROOT, HingeKey, Topology

# Submodules
from . import dynamics, geometry


__all__ = [
    "BranchParameters",
    "SimulationConfig",
    "Topology",
    "HingeKey",
    "ROOT",
    "run_ensemble",
    "displacement_variance",
    "HingeMDError",
    "ConfigurationError",
    "DegenerateGeometryError",
    "IllConditionedJacobianError",
    "IllConditionedJacobianWarning",
    "JacobianMismatchError",
    "JacobianStructureError",
    "NumericalBlowupError",
    "SimulationAborted",
    "dynamics",
    "geometry",
]
