# hingemd/core/dynamics/integrator.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from ..config import SimulationConfig
from ..errors import (
    DegenerateGeometryError,
    IllConditionedJacobianError,
    NumericalBlowupError,
    SimulationAborted,
)
from ..geometry.spherical import LocalSnapshot, forward_pass, random_state, straight_state
from ..topology import HingeKey, Topology
from .forces import ForceModel
from .jacobian import JacobianBuilder

logger = logging.getLogger(__name__)

__all__ = [
    "SDEIntegrator",
    "Trajectory",
    "Observer",
    "ProgressObserver",
    "LoggingObserver",
    "diffusion_vector",
    "initial_state",
]

Observer = Callable[[int, float, np.ndarray], None]


def diffusion_vector(config: SimulationConfig, topology: Topology) -> np.ndarray:
    """Per-coordinate noise amplitude ``sqrt(2 D)``, shape (n_hinges, 3).

    The root does not diffuse, the first hinge of every branch uses
    ``diffusion_base`` and all deeper hinges ``diffusion``.
    """
    amplitude = np.zeros((topology.n_hinges, 3))
    for i, key in enumerate(topology.keys):
        if key.is_root:
            continue
        coeff = config.diffusion_base if key.hinge == 1 else config.diffusion
        amplitude[i] = np.sqrt(2.0 * coeff)
    return amplitude


def initial_state(
    config: SimulationConfig, topology: Topology, rng: np.random.Generator
) -> np.ndarray:
    """Initial global state as requested by ``config.initial_state``."""
    explicit = config.explicit_initial_state()
    if explicit is not None:
        return explicit
    if config.initial_state == "straight":
        return straight_state(topology, config.rest_length)
    return random_state(topology, config.rest_length, rng)


@dataclass
class Trajectory:
    """Recorded global states of one run.

    Attributes:
        topology: Hinge connectivity
        steps: (n_frames,) step indices of the recorded states
        times: (n_frames,) simulation times
        states: (n_frames, n_hinges, 3) global positions
    """

    topology: Topology
    steps: np.ndarray
    times: np.ndarray
    states: np.ndarray

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def final_state(self) -> np.ndarray:
        return self.states[-1]

    def positions(self, key: HingeKey) -> np.ndarray:
        """(n_frames, 3) positions of one hinge."""
        return self.states[:, self.topology.index(key), :]

    def snapshot(self, frame: int) -> LocalSnapshot:
        """Local coordinates of a recorded frame."""
        return forward_pass(self.states[frame], self.topology)

    def to_dataframe(self) -> pd.DataFrame:
        """Long format: one row per (frame, hinge)."""
        n_frames, n_hinges, _ = self.states.shape
        branches = [-1 if k.is_root else k.branch for k in self.topology.keys]
        hinges = [k.hinge for k in self.topology.keys]
        flat = self.states.reshape(-1, 3)
        return pd.DataFrame(
            {
                "step": np.repeat(self.steps, n_hinges),
                "time": np.repeat(self.times, n_hinges),
                "branch": np.tile(branches, n_frames),
                "hinge": np.tile(hinges, n_frames),
                "x": flat[:, 0],
                "y": flat[:, 1],
                "z": flat[:, 2],
            }
        )

    def save(self, path: Union[str, Path]) -> Path:
        """Write to ``.npz`` (arrays) or ``.csv`` (long table)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix == ".csv":
            self.to_dataframe().to_csv(path, index=False)
        elif path.suffix == ".npz":
            np.savez_compressed(
                path,
                steps=self.steps,
                times=self.times,
                states=self.states,
                topology_kind=np.array(self.topology.kind),
                topology_shape=np.array(
                    [self.topology.n_branches, self.topology.hinges_per_branch], dtype=int
                ),
            )
        else:
            raise ValueError(f"Unsupported trajectory format: {path.suffix}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Trajectory":
        with np.load(path) as data:
            kind = str(data["topology_kind"])
            n_branches, hinges_per_branch = data["topology_shape"]
            topology = Topology(int(hinges_per_branch), int(n_branches), kind)
            return cls(topology, data["steps"], data["times"], data["states"])


class ProgressObserver:
    """tqdm progress bar advanced at every observer call."""

    def __init__(self, total_steps: int, interval: int = 1, desc: str = "Simulating") -> None:
        self.interval = max(1, interval)
        self.pbar = tqdm(total=total_steps, desc=desc)
        self._last = 0

    def __call__(self, step: int, t: float, state: np.ndarray) -> None:
        self.pbar.update(step - self._last)
        self._last = step

    def close(self) -> None:
        self.pbar.close()


class LoggingObserver:
    """Logs time and mean bond length."""

    def __init__(self, topology: Topology, level: int = logging.INFO) -> None:
        self.parents = np.array(topology.parent_indices()[1:])
        self.level = level

    def __call__(self, step: int, t: float, state: np.ndarray) -> None:
        bonds = np.linalg.norm(state[1:] - state[self.parents], axis=1)
        logger.log(self.level, f"step {step:>8d}  t = {t:.4f}  <r> = {bonds.mean():.4f}")


class SDEIntegrator:
    """Euler-Maruyama integration of the hinge structure in global coordinates.

    Every step rebuilds the local snapshot from the current state, evaluates
    the generalized force, maps it to a global drift through the Jacobian and
    adds Brownian noise::

        x <- x + J F dt + sqrt(2 D) sqrt(dt) xi,   xi ~ N(0, 1)

    The state array is owned by the integrator and updated in place.
    """

    def __init__(
        self,
        config: SimulationConfig,
        topology: Optional[Topology] = None,
        rng: Optional[np.random.Generator] = None,
        observers: Sequence[Observer] = (),
        state: Optional[np.ndarray] = None,
    ) -> None:
        """Initialize integrator.

        Args:
            config: Simulation parameters
            topology: Connectivity (built from config if omitted)
            rng: Random generator (seeded from ``config.seed`` if omitted)
            observers: Callables ``(step, time, state)`` invoked every
                ``config.progress_interval`` steps
            state: Initial (n_hinges, 3) state, overriding ``config.initial_state``
        """
        self.config = config
        self.topology = topology or config.build_topology()
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)
        self.observers: List[Observer] = list(observers)

        self.forces = ForceModel(config, self.topology)
        self.jacobian = JacobianBuilder.from_config(config)
        self.amplitude = diffusion_vector(config, self.topology)

        if state is None:
            state = initial_state(config, self.topology, self.rng)
        state = np.array(state, dtype=float)
        if state.shape != (self.topology.n_hinges, 3):
            raise ValueError(
                f"Initial state has shape {state.shape}, expected {(self.topology.n_hinges, 3)}"
            )
        self.state = state

        self.dt = config.dt
        self.sqrt_dt = np.sqrt(config.dt)
        self.n_steps = config.n_steps
        self.step_index = 0
        self.time = config.t0
        self._validated = config.jacobian != "analytic" or not config.validate_analytic

    def validate_jacobian(self) -> float:
        """Check the analytic builder against finite differences at the current state."""
        snapshot = forward_pass(self.state, self.topology, self.config.min_radius)
        max_rel = self.jacobian.validate(snapshot)
        self._validated = True
        return max_rel

    def drift(self, state: Optional[np.ndarray] = None) -> np.ndarray:
        """Deterministic global drift ``J F`` at ``state`` (default: current)."""
        state = self.state if state is None else state
        snapshot = forward_pass(state, self.topology, self.config.min_radius)
        force = self.forces.evaluate(snapshot)
        return self.jacobian.drift(snapshot, force)

    def step(self) -> np.ndarray:
        """Advance one step in place and return the state.

        Raises:
            SimulationAborted: Degenerate geometry or ill-conditioned Jacobian
            NumericalBlowupError: Non-finite state after the update
        """
        try:
            if not self._validated:
                self.validate_jacobian()
            drift = self.drift()
        except (DegenerateGeometryError, IllConditionedJacobianError) as exc:
            raise SimulationAborted(
                f"Run aborted at step {self.step_index} (t = {self.time:.6g}): {exc}",
                step=self.step_index,
                time=self.time,
                last_state=self.state.copy(),
            ) from exc

        noise = self.rng.standard_normal(self.state.shape)
        update = drift * self.dt + self.amplitude * self.sqrt_dt * noise

        next_state = self.state + update
        if not np.all(np.isfinite(next_state)):
            raise NumericalBlowupError(
                f"Non-finite state at step {self.step_index} (t = {self.time:.6g})",
                step=self.step_index,
                time=self.time,
                last_state=self.state.copy(),
            )

        self.state[...] = next_state
        self.step_index += 1
        self.time = self.config.t0 + self.step_index * self.dt
        logger.debug(f"step {self.step_index}: max |drift| = {np.max(np.abs(drift)):.3e}")
        return self.state

    def run(self, record_every: Optional[int] = 1) -> Trajectory:
        """Integrate from t0 to tf.

        Args:
            record_every: Store every k-th state; ``None`` keeps only the
                initial and final states

        Returns:
            Trajectory of recorded states

        Raises:
            SimulationAborted: With ``trajectory`` set to the states recorded so far
        """
        steps = [self.step_index]
        times = [self.time]
        states = [self.state.copy()]
        interval = self.config.progress_interval

        logger.info(
            f"Starting run: {self.topology!r}, {self.n_steps} steps of dt = {self.dt:g}, "
            f"{self.config.jacobian} Jacobian"
        )
        start = time.time()

        try:
            while self.step_index < self.n_steps:
                self.step()
                if record_every and self.step_index % record_every == 0:
                    steps.append(self.step_index)
                    times.append(self.time)
                    states.append(self.state.copy())
                if interval and (
                    self.step_index % interval == 0 or self.step_index == self.n_steps
                ):
                    for observer in self.observers:
                        observer(self.step_index, self.time, self.state)
        except SimulationAborted as exc:
            exc.trajectory = self._trajectory(steps, times, states)
            logger.error(str(exc))
            raise
        finally:
            for observer in self.observers:
                close = getattr(observer, "close", None)
                if close is not None:
                    close()

        if steps[-1] != self.step_index:
            steps.append(self.step_index)
            times.append(self.time)
            states.append(self.state.copy())

        logger.info(f"Run finished in {time.time() - start:.2f} s ({self.step_index} steps)")
        return self._trajectory(steps, times, states)

    def _trajectory(self, steps, times, states) -> Trajectory:
        return Trajectory(
            topology=self.topology,
            steps=np.array(steps, dtype=int),
            times=np.array(times, dtype=float),
            states=np.array(states),
        )
