# hingemd/core/config.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from .errors import ConfigurationError
from .topology import Topology

__all__ = ["BranchParameters", "SimulationConfig"]


@dataclass(frozen=True)
class BranchParameters:
    """Spring/damping parameters of one branch."""

    kappa: float
    damping: float
    rest_length: float


InitialState = Union[str, Tuple[Tuple[float, float, float], ...]]


@dataclass(frozen=True)
class SimulationConfig:
    """Everything a run needs, fixed before the first step."""

    # Topology
    topology: str = "chain"  # "chain" or "tree"
    n_branches: int = 1
    hinges_per_branch: int = 3

    # Force model
    kappa: float = 1.0  # radial spring constant
    damping: float = 0.5  # polar-angle damping coefficient k
    rest_length: float = 1.0  # spring rest length R
    branch_overrides: Dict[int, Dict[str, float]] = field(default_factory=dict)

    # Diffusion (D for interior hinges, elevated for the base hinge of each branch)
    diffusion: float = 0.01
    diffusion_base: float = 0.02

    # Time grid
    t0: float = 0.0
    tf: float = 1.0
    dt: float = 1e-3

    # Initial state: "random", "straight" or explicit (n_hinges, 3) positions
    initial_state: InitialState = "random"
    seed: Optional[int] = None

    # Jacobian
    jacobian: str = "numeric"  # "numeric" or "analytic"
    fd_step: float = 1e-6
    validate_analytic: bool = True
    condition_limit: float = 1e10
    on_ill_conditioned: str = "warn"  # "warn", "raise" or "ignore"
    min_radius: float = 1e-9

    # Execution
    n_workers: Union[int, str] = 1
    progress_interval: int = 0  # steps between observer calls, 0 disables

    JACOBIAN_METHODS = ("numeric", "analytic")
    CONDITION_ACTIONS = ("warn", "raise", "ignore")

    def __post_init__(self) -> None:
        if not isinstance(self.initial_state, str):
            state = tuple(tuple(float(c) for c in row) for row in np.asarray(self.initial_state))
            object.__setattr__(self, "initial_state", state)
        overrides = {int(b): dict(p) for b, p in (self.branch_overrides or {}).items()}
        object.__setattr__(self, "branch_overrides", overrides)
        self.validate()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Raise ConfigurationError for inconsistent or out-of-range values."""
        if self.topology not in Topology.KINDS:
            raise ConfigurationError(
                f"Invalid topology: {self.topology}. Must be one of {Topology.KINDS}"
            )
        if self.topology == "chain" and self.n_branches != 1:
            raise ConfigurationError("topology 'chain' requires n_branches == 1")
        if self.jacobian not in self.JACOBIAN_METHODS:
            raise ConfigurationError(
                f"Invalid jacobian: {self.jacobian}. Must be one of {self.JACOBIAN_METHODS}"
            )
        if self.on_ill_conditioned not in self.CONDITION_ACTIONS:
            raise ConfigurationError(
                f"Invalid on_ill_conditioned: {self.on_ill_conditioned}. "
                f"Must be one of {self.CONDITION_ACTIONS}"
            )

        int_ranges = {"n_branches": 1, "hinges_per_branch": 1, "progress_interval": 0}
        for name, min_val in int_ranges.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise ConfigurationError(f"Invalid type for {name}: expected int")
            if value < min_val:
                raise ConfigurationError(f"{name} out of range: {value} < {min_val}")

        non_negative = ("kappa", "damping", "diffusion", "diffusion_base", "min_radius")
        positive = ("rest_length", "dt", "fd_step", "condition_limit")
        for name in non_negative + positive:
            value = getattr(self, name)
            if not isinstance(value, (int, float, np.floating)) or isinstance(value, bool):
                raise ConfigurationError(f"Invalid type for {name}: expected float")
            if not np.isfinite(value):
                raise ConfigurationError(f"{name} must be finite, got {value}")
            if name in positive and value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")

        if not self.tf > self.t0:
            raise ConfigurationError(f"tf ({self.tf}) must be greater than t0 ({self.t0})")
        if self.dt > self.tf - self.t0:
            raise ConfigurationError(f"dt ({self.dt}) exceeds the run length {self.tf - self.t0}")

        if isinstance(self.initial_state, str):
            if self.initial_state not in ("random", "straight"):
                raise ConfigurationError(
                    f"Invalid initial_state: {self.initial_state}. "
                    "Must be 'random', 'straight' or an array of positions"
                )
        else:
            expected = (1 + self.n_branches * self.hinges_per_branch, 3)
            shape = np.shape(self.initial_state)
            if shape != expected:
                raise ConfigurationError(f"initial_state has shape {shape}, expected {expected}")
            if not np.all(np.isfinite(self.initial_state)):
                raise ConfigurationError("initial_state contains non-finite values")

        allowed = {f.name for f in fields(BranchParameters)}
        for branch, params in self.branch_overrides.items():
            if not 0 <= branch < self.n_branches:
                raise ConfigurationError(f"branch_overrides refers to unknown branch {branch}")
            unknown = set(params) - allowed
            if unknown:
                raise ConfigurationError(f"Unknown branch parameters: {sorted(unknown)}")
            for name, value in params.items():
                if value < 0 or (name == "rest_length" and value <= 0):
                    raise ConfigurationError(f"branch {branch}: {name} out of range: {value}")

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def n_steps(self) -> int:
        return int(round((self.tf - self.t0) / self.dt))

    def build_topology(self) -> Topology:
        return Topology(self.hinges_per_branch, self.n_branches, self.topology)

    def branch_parameters(self, branch: int) -> BranchParameters:
        """Parameters of ``branch``, global defaults merged with overrides."""
        base = {"kappa": self.kappa, "damping": self.damping, "rest_length": self.rest_length}
        base.update(self.branch_overrides.get(branch, {}))
        return BranchParameters(**{k: float(v) for k, v in base.items()})

    def explicit_initial_state(self) -> Optional[np.ndarray]:
        if isinstance(self.initial_state, str):
            return None
        return np.array(self.initial_state, dtype=float)

    # ------------------------------------------------------------------
    # Dict round-trip
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationConfig":
        """Build a config from a plain mapping (e.g. parsed YAML).

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration fields: {sorted(unknown)}")
        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if not isinstance(self.initial_state, str):
            data["initial_state"] = [list(row) for row in self.initial_state]
        return data

    def with_updates(self, **changes: Any) -> "SimulationConfig":
        return replace(self, **changes)
