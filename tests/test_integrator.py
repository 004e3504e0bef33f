# tests/test_integrator.py
"""Test Euler-Maruyama integration, trajectories and observers."""

import logging

import numpy as np
import pandas as pd
import pytest

from hingemd.core.config import SimulationConfig
from hingemd.core.dynamics.integrator import (
    LoggingObserver,
    ProgressObserver,
    SDEIntegrator,
    Trajectory,
    diffusion_vector,
)
from hingemd.core.errors import (
    DegenerateGeometryError,
    IllConditionedJacobianError,
    JacobianMismatchError,
    NumericalBlowupError,
    SimulationAborted,
)
from hingemd.core.geometry.spherical import straight_state
from hingemd.core.topology import ROOT, HingeKey


def test_stationary_without_noise():
    """A straight chain at rest length with D = 0 never moves."""
    config = SimulationConfig(
        hinges_per_branch=3,
        kappa=2.0,
        damping=0.7,
        rest_length=1.0,
        diffusion=0.0,
        diffusion_base=0.0,
        tf=1.0,
        dt=0.01,
        initial_state="straight",
        on_ill_conditioned="ignore",
    )
    integrator = SDEIntegrator(config)
    start = integrator.state.copy()

    assert np.all(integrator.drift() == 0.0)
    trajectory = integrator.run()

    assert integrator.step_index == 100
    assert np.array_equal(trajectory.final_state, start)
    assert np.array_equal(trajectory.states, np.broadcast_to(start, trajectory.states.shape))


def test_diffusion_vector():
    """Root is frozen, base hinges use diffusion_base, deeper hinges diffusion."""
    config = SimulationConfig(
        topology="tree", n_branches=2, hinges_per_branch=2, diffusion=0.5, diffusion_base=2.0
    )
    topo = config.build_topology()
    amplitude = diffusion_vector(config, topo)

    assert np.all(amplitude[topo.index(ROOT)] == 0.0)
    assert np.allclose(amplitude[topo.index(HingeKey(0, 1))], 2.0)
    assert np.allclose(amplitude[topo.index(HingeKey(1, 1))], 2.0)
    assert np.allclose(amplitude[topo.index(HingeKey(1, 2))], 1.0)


def test_root_does_not_move(small_config):
    """The root has no force and no noise."""
    state = straight_state(small_config.build_topology(), 1.0, root=[1.0, 2.0, 3.0])
    trajectory = SDEIntegrator(small_config, state=state).run()
    assert np.all(trajectory.positions(ROOT) == [1.0, 2.0, 3.0])


def test_seed_determinism(small_config):
    """Same seed, same trajectory."""
    a = SDEIntegrator(small_config).run()
    b = SDEIntegrator(small_config).run()
    assert np.array_equal(a.states, b.states)

    c = SDEIntegrator(small_config.with_updates(seed=8)).run()
    assert not np.array_equal(a.states, c.states)


def test_time_grid(small_config):
    """Steps and times follow t0 + k dt."""
    trajectory = SDEIntegrator(small_config).run()
    assert len(trajectory) == 6
    assert list(trajectory.steps) == [0, 1, 2, 3, 4, 5]
    assert np.allclose(trajectory.times, np.arange(6) * 0.01)


def test_record_every(small_config):
    """Sparse recording always keeps the endpoints."""
    trajectory = SDEIntegrator(small_config).run(record_every=2)
    assert list(trajectory.steps) == [0, 2, 4, 5]

    trajectory = SDEIntegrator(small_config).run(record_every=None)
    assert list(trajectory.steps) == [0, 5]


def test_analytic_run_validates_once(small_config):
    """The analytic builder is checked before the first step."""
    config = small_config.with_updates(jacobian="analytic")
    integrator = SDEIntegrator(config)
    assert not integrator._validated
    integrator.run()
    assert integrator._validated


def test_analytic_and_numeric_runs_agree(small_config):
    """Both builders give the same trajectory up to finite-difference error."""
    numeric = SDEIntegrator(small_config).run()
    analytic = SDEIntegrator(small_config.with_updates(jacobian="analytic")).run()
    assert np.allclose(numeric.states, analytic.states, atol=1e-6)


def test_mismatch_stops_before_first_step(small_config, monkeypatch):
    """A rejected analytic Jacobian leaves the state untouched."""
    from hingemd.core.dynamics import jacobian as jacobian_module

    real = jacobian_module.analytic_jacobian

    def broken(snapshot):
        return 2.0 * real(snapshot)

    monkeypatch.setattr(jacobian_module, "analytic_jacobian", broken)
    integrator = SDEIntegrator(small_config.with_updates(jacobian="analytic"))
    start = integrator.state.copy()
    with pytest.raises(JacobianMismatchError):
        integrator.run()
    assert integrator.step_index == 0
    assert np.array_equal(integrator.state, start)


def test_degenerate_geometry_aborts(chain3):
    """A collapsed hinge aborts with the last valid state."""
    state = straight_state(chain3, 1.0)
    state[3] = state[2]
    config = SimulationConfig(on_ill_conditioned="ignore", tf=0.1, dt=0.01)
    integrator = SDEIntegrator(config, state=state)

    with pytest.raises(SimulationAborted) as excinfo:
        integrator.run()

    exc = excinfo.value
    assert isinstance(exc.__cause__, DegenerateGeometryError)
    assert exc.step == 0
    assert np.array_equal(exc.last_state, state)
    assert len(exc.trajectory) == 1


def test_degenerate_geometry_aborts_before_analytic_validation(chain3):
    """A collapsed initial state aborts cleanly even when validation runs first."""
    state = straight_state(chain3, 1.0)
    state[3] = state[2]
    config = SimulationConfig(
        jacobian="analytic", validate_analytic=True, on_ill_conditioned="ignore", tf=0.1, dt=0.01
    )
    integrator = SDEIntegrator(config, state=state)

    with pytest.raises(SimulationAborted) as excinfo:
        integrator.run()

    exc = excinfo.value
    assert isinstance(exc.__cause__, DegenerateGeometryError)
    assert exc.__cause__.key == HingeKey(0, 3)
    assert exc.step == 0
    assert np.array_equal(exc.last_state, state)
    assert len(exc.trajectory) == 1


def test_ill_conditioned_raise_aborts():
    """'raise' on a singular Jacobian aborts the run."""
    config = SimulationConfig(initial_state="straight", on_ill_conditioned="raise", tf=0.1, dt=0.01)
    with pytest.raises(SimulationAborted) as excinfo:
        SDEIntegrator(config).run()
    assert isinstance(excinfo.value.__cause__, IllConditionedJacobianError)


def test_blowup_keeps_last_valid_state(small_config, monkeypatch):
    """Non-finite updates are never written into the state."""
    integrator = SDEIntegrator(small_config)
    integrator.step()
    integrator.step()
    valid = integrator.state.copy()

    monkeypatch.setattr(integrator, "drift", lambda state=None: np.full(valid.shape, np.nan))
    with pytest.raises(NumericalBlowupError) as excinfo:
        integrator.run()

    exc = excinfo.value
    assert isinstance(exc, SimulationAborted)
    assert exc.step == 2
    assert np.array_equal(exc.last_state, valid)
    assert np.array_equal(integrator.state, valid)
    assert list(exc.trajectory.steps) == [2]


def test_blowup_on_overflowing_state(small_config, monkeypatch):
    """Finite updates that overflow the state are rejected too."""
    integrator = SDEIntegrator(small_config.with_updates(tf=2.0, dt=1.0))
    monkeypatch.setattr(integrator, "drift", lambda state=None: np.full((4, 3), 1e308))

    with pytest.raises(NumericalBlowupError) as excinfo:
        integrator.run()

    exc = excinfo.value
    assert exc.step == 1
    assert np.all(np.isfinite(exc.last_state))
    assert np.all(np.isfinite(integrator.state))
    assert integrator.step_index == 1


def test_observers_called_on_interval(small_config):
    """Observers see every progress_interval-th step and are closed."""
    calls = []

    class Recorder:
        closed = False

        def __call__(self, step, t, state):
            calls.append((step, t, state.shape))

        def close(self):
            Recorder.closed = True

    config = small_config.with_updates(tf=0.1, progress_interval=4)
    SDEIntegrator(config, observers=[Recorder()]).run()

    assert [c[0] for c in calls] == [4, 8, 10]
    assert calls[0][2] == (4, 3)
    assert Recorder.closed


def test_observers_see_final_step(small_config):
    """The last step is reported even when the interval does not divide the run."""
    calls = []
    config = small_config.with_updates(progress_interval=2)
    SDEIntegrator(config, observers=[lambda step, t, state: calls.append(step)]).run()
    assert calls == [2, 4, 5]

    observer = ProgressObserver(config.n_steps, config.progress_interval, desc="test")
    SDEIntegrator(config, observers=[observer]).run()
    assert observer.pbar.n == config.n_steps


def test_progress_observer(small_config):
    """tqdm bar advances to the step count."""
    config = small_config.with_updates(progress_interval=1)
    observer = ProgressObserver(config.n_steps, config.progress_interval, desc="test")
    SDEIntegrator(config, observers=[observer]).run()
    assert observer.pbar.n == config.n_steps


def test_logging_observer(small_config, caplog):
    """Logging observer reports the mean bond length."""
    config = small_config.with_updates(progress_interval=5)
    observer = LoggingObserver(config.build_topology())
    with caplog.at_level(logging.INFO, logger="hingemd.core.dynamics.integrator"):
        SDEIntegrator(config, observers=[observer]).run()
    assert any("<r> =" in record.getMessage() for record in caplog.records)


def test_trajectory_dataframe(small_config):
    """Long format has one row per frame and hinge."""
    trajectory = SDEIntegrator(small_config).run()
    df = trajectory.to_dataframe()

    assert list(df.columns) == ["step", "time", "branch", "hinge", "x", "y", "z"]
    assert len(df) == len(trajectory) * 4
    tip = df[(df.branch == 0) & (df.hinge == 3)]
    assert np.allclose(tip[["x", "y", "z"]].to_numpy(), trajectory.positions(HingeKey(0, 3)))
    assert (df[df.hinge == 0].branch == -1).all()


def test_trajectory_save_load(small_config, tmp_path):
    """npz keeps arrays and topology; csv writes the long table."""
    trajectory = SDEIntegrator(small_config).run()

    npz_path = trajectory.save(tmp_path / "run.npz")
    with np.load(npz_path) as data:
        assert all(data[name].dtype != object for name in data.files)

    loaded = Trajectory.load(npz_path)
    assert loaded.topology == trajectory.topology
    assert np.array_equal(loaded.states, trajectory.states)
    assert np.array_equal(loaded.steps, trajectory.steps)

    csv_path = trajectory.save(tmp_path / "out" / "run.csv")
    assert len(pd.read_csv(csv_path)) == len(trajectory) * 4

    with pytest.raises(ValueError):
        trajectory.save(tmp_path / "run.txt")


def test_trajectory_snapshot(small_config):
    """Recorded frames convert back to local coordinates."""
    trajectory = SDEIntegrator(small_config).run()
    snapshot = trajectory.snapshot(-1)
    assert snapshot.coords.shape == (4, 3)
    assert np.all(snapshot.coords[1:, 0] > 0)


def test_wrong_state_shape(small_config):
    """Initial state must match the topology."""
    with pytest.raises(ValueError):
        SDEIntegrator(small_config, state=np.zeros((2, 3)))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
