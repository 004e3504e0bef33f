"""
HingeMD: Brownian dynamics of articulated receptor chains.

HingeMD evolves a chain, or a tree of chains sharing one root, of hinge points
whose restoring forces live in parent-relative spherical coordinates while the
state is integrated in global Cartesian space.
"""

from .__version__ import __version__
from .core.config import SimulationConfig
from .core.dynamics import ForceModel, JacobianBuilder, SDEIntegrator, Trajectory
from .core.ensemble import run_ensemble
from .core.geometry import forward_pass, reverse_pass
from .core.topology import ROOT, HingeKey, Topology

# Utilities
from .utils.config_parser import load_config


def get_version() -> str:
    """Return package version."""
    return __version__


__all__ = [
    "__version__",
    "get_version",
    "SimulationConfig",
    "Topology",
    "HingeKey",
    "ROOT",
    "ForceModel",
    "JacobianBuilder",
    "SDEIntegrator",
    "Trajectory",
    "forward_pass",
    "reverse_pass",
    "run_ensemble",
    "load_config",
]
