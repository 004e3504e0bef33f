# hingemd/core/errors.py
"""Exception and warning types raised by the hinge-chain simulation."""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

__all__ = [
    "HingeMDError",
    "ConfigurationError",
    "DegenerateGeometryError",
    "IllConditionedJacobianError",
    "IllConditionedJacobianWarning",
    "JacobianMismatchError",
    "JacobianStructureError",
    "SimulationAborted",
    "NumericalBlowupError",
]


class HingeMDError(Exception):
    """Base class for all HingeMD errors."""


class ConfigurationError(HingeMDError, ValueError):
    """Invalid or inconsistent simulation configuration."""


class DegenerateGeometryError(HingeMDError, ArithmeticError):
    """A hinge collapsed onto its parent (r -> 0).

    The spherical parametrization is singular there, so the run cannot continue.
    """

    def __init__(self, message: str, key: Any = None, radius: Optional[float] = None) -> None:
        super().__init__(message)
        self.key = key
        self.radius = radius


class IllConditionedJacobianError(HingeMDError):
    """Jacobian condition number exceeded the configured limit."""

    def __init__(self, message: str, condition: float) -> None:
        super().__init__(message)
        self.condition = condition


class IllConditionedJacobianWarning(RuntimeWarning):
    """Jacobian is close to singular; dynamics may be unstable."""


class JacobianMismatchError(ConfigurationError):
    """Analytic Jacobian disagrees with the finite-difference reference."""

    def __init__(self, message: str, max_abs_error: float, max_rel_error: float) -> None:
        super().__init__(message)
        self.max_abs_error = max_abs_error
        self.max_rel_error = max_rel_error


class JacobianStructureError(HingeMDError):
    """Blocks that must vanish between independent branches are non-zero."""


class SimulationAborted(HingeMDError):
    """Fatal condition during time stepping.

    Attributes:
        step: Index of the step that failed
        time: Simulation time at the start of that step
        last_state: Copy of the last valid global state, shape (n_hinges, 3)
        trajectory: Partial trajectory up to the last valid state (set by ``run``)
    """

    def __init__(
        self,
        message: str,
        step: int,
        time: float,
        last_state: np.ndarray,
    ) -> None:
        super().__init__(message)
        self.step = step
        self.time = time
        self.last_state = last_state
        self.trajectory = None


class NumericalBlowupError(SimulationAborted, FloatingPointError):
    """Non-finite values appeared in the state after an update."""
