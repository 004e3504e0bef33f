# hingemd/utils/config_parser.py
"""Configuration file parser for HingeMD runs."""

import json
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
import yaml

from ..core.config import SimulationConfig
from ..core.errors import ConfigurationError

__all__ = [
    "load_config",
    "save_config",
    "validate_config",
    "print_derived_constants",
    "create_example_config",
]


def _read_mapping(config_path: Path) -> Dict[str, Any]:
    with open(config_path, "r") as f:
        if config_path.suffix in [".yaml", ".yml"]:
            data = yaml.safe_load(f)
        elif config_path.suffix == ".json":
            data = json.load(f)
        else:
            raise ConfigurationError(f"Unsupported config format: {config_path.suffix}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")
    return data


def load_config(config_path: Union[str, Path]) -> SimulationConfig:
    """Load a run configuration from YAML or JSON.

    Args:
        config_path: Path to configuration file

    Returns:
        Validated SimulationConfig

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If the format or any value is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    data = _read_mapping(config_path)
    validate_config(data)
    return SimulationConfig.from_dict(data)


def save_config(config: Union[SimulationConfig, Dict[str, Any]], output_path: Union[str, Path]) -> None:
    """Save configuration to YAML file.

    Args:
        config: SimulationConfig or plain dictionary
        output_path: Path to save configuration
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.to_dict() if isinstance(config, SimulationConfig) else dict(config)

    with open(output_path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def validate_config(config: Dict[str, Any]) -> None:
    """Validate a raw configuration mapping before building a SimulationConfig.

    Args:
        config: Configuration dictionary

    Raises:
        ConfigurationError: If configuration is invalid
    """
    choices = {
        "topology": ["chain", "tree"],
        "jacobian": ["numeric", "analytic"],
        "on_ill_conditioned": ["warn", "raise", "ignore"],
    }
    for field, allowed in choices.items():
        if field in config and config[field] not in allowed:
            raise ConfigurationError(f"Invalid {field}: {config[field]}. Must be one of {allowed}")

    if config.get("topology") == "tree" and "n_branches" not in config:
        raise ConfigurationError("Missing required field for tree topology: n_branches")

    # Validate numeric ranges
    numeric_ranges = {
        "n_branches": (1, 1000),
        "hinges_per_branch": (1, 10000),
        "kappa": (0.0, 1e6),
        "damping": (0.0, 1e6),
        "rest_length": (1e-6, 1e6),
        "diffusion": (0.0, 1e3),
        "diffusion_base": (0.0, 1e3),
        "dt": (1e-12, 1e3),
    }

    for field, (min_val, max_val) in numeric_ranges.items():
        if field in config:
            value = config[field]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(
                    f"Invalid type for {field}: expected a number, got {value!r}"
                )
            if not (min_val <= value <= max_val):
                raise ConfigurationError(f"{field} out of range: {value} not in [{min_val}, {max_val}]")

    # Building the dataclass runs the cross-field checks
    SimulationConfig.from_dict(config)


def print_derived_constants(config: SimulationConfig) -> None:
    """Print derived quantities for dry-run mode.

    Args:
        config: Simulation configuration
    """
    topology = config.build_topology()

    print("\n" + "=" * 80)
    print("DERIVED SIMULATION CONSTANTS")
    print("=" * 80)

    print(f"\nTopology: {topology.kind}, {topology.n_branches} branch(es) x "
          f"{topology.hinges_per_branch} hinges ({topology.n_hinges} incl. root)")
    print(f"State dimension: {topology.n_coords}")
    print(f"Jacobian: {config.jacobian} ({topology.n_coords}x{topology.n_coords})")

    # Time grid
    elapsed = config.tf - config.t0
    print(f"\nTime: {config.t0} -> {config.tf} (dt = {config.dt:g}, {config.n_steps} steps)")

    # Diffusion
    for label, coeff in (("base", config.diffusion_base), ("interior", config.diffusion)):
        rms_step = np.sqrt(2 * coeff * config.dt)
        print(f"\nDiffusion ({label}): D = {coeff:g}")
        print(f"  RMS step per coordinate: {rms_step:.3e}")
        print(f"  Free variance after {elapsed:g}: 2DT = {2 * coeff * elapsed:.3e}")
        if config.rest_length > 0:
            print(f"  RMS step / rest length: {rms_step / config.rest_length:.3e}")

    # Relaxation
    for branch in range(topology.n_branches):
        params = config.branch_parameters(branch)
        print(f"\nBranch {branch}: kappa = {params.kappa:g}, k = {params.damping:g}, "
              f"R = {params.rest_length:g}")
        if params.kappa > 0:
            tau = 1.0 / params.kappa
            print(f"  Radial relaxation time 1/kappa: {tau:.3e} ({tau / config.dt:.1f} steps)")
            if config.dt * params.kappa > 0.5:
                print("  Warning: kappa * dt > 0.5, explicit stepping may be unstable")
        if params.damping > 0:
            print(f"  Polar relaxation time 1/k: {1.0 / params.damping:.3e}")

    print("\n" + "=" * 80)


# Example configuration template
EXAMPLE_CONFIG = """# HingeMD Configuration File
# Brownian dynamics of a receptor tree attached to a shared root

# Topology: chain (single branch) or tree (several receptors)
topology: tree
n_branches: 3
hinges_per_branch: 4

# Force model
kappa: 1.0         # radial spring constant
damping: 0.5       # polar-angle damping coefficient k
rest_length: 1.0   # spring rest length R
# Optional per-branch parameters
# branch_overrides:
#   1: {kappa: 2.0, rest_length: 0.8}

# Diffusion
diffusion: 0.01        # interior hinges
diffusion_base: 0.02   # first hinge of each branch (attachment point)

# Time grid
t0: 0.0
tf: 1.0
dt: 1.0e-3

# Initial state: random, straight, or a list of [x, y, z] positions
initial_state: random
seed: 42

# Jacobian: numeric (finite differences, reference) or analytic
jacobian: numeric
fd_step: 1.0e-6
validate_analytic: true
condition_limit: 1.0e+10
on_ill_conditioned: warn   # warn, raise or ignore

# Computational settings
n_workers: 1           # parallel branch minors (or 'auto')
progress_interval: 100
"""


def create_example_config(output_path: str = "example_config.yaml") -> None:
    """Create an example configuration file.

    Args:
        output_path: Path to save example config
    """
    with open(output_path, "w") as f:
        f.write(EXAMPLE_CONFIG)
    print(f"Created example configuration: {output_path}")
