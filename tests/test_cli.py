# tests/test_cli.py
"""Test the hingemd command-line entry point."""

import numpy as np
import pytest

from hingemd.cli import build_parser, main
from hingemd.core.dynamics.integrator import Trajectory
from hingemd.utils.config_parser import save_config
from hingemd.core.config import SimulationConfig


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "run.yaml"
    save_config(
        SimulationConfig(hinges_per_branch=2, tf=0.03, dt=0.01, seed=3, on_ill_conditioned="ignore"),
        path,
    )
    return path


def test_parser_defaults():
    args = build_parser().parse_args(["--config", "run.yaml"])
    assert args.config == "run.yaml"
    assert not args.dry_run
    assert args.jacobian is None


def test_dry_run(config_file, capsys):
    """Dry run prints derived constants and does not integrate."""
    assert main(["--config", str(config_file), "--dry-run"]) == 0
    out = capsys.readouterr().out
    assert "DERIVED SIMULATION CONSTANTS" in out
    assert "3 steps" in out


def test_missing_config(tmp_path, capsys):
    """A missing file exits with status 1."""
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(tmp_path / "nope.yaml")])
    assert excinfo.value.code == 1
    assert "not found" in capsys.readouterr().err


def test_invalid_config(tmp_path):
    """Invalid values exit with status 1."""
    path = tmp_path / "bad.yaml"
    path.write_text("topology: ring\n")
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(path)])
    assert excinfo.value.code == 1


def test_run_writes_trajectory(config_file, tmp_path, capsys):
    """A full run saves the trajectory with the requested overrides."""
    output = tmp_path / "traj.npz"
    assert main(["--config", str(config_file), "--output", str(output), "--quiet",
                 "--seed", "5", "--jacobian", "analytic"]) == 0
    assert "Completed 3 steps" in capsys.readouterr().out

    trajectory = Trajectory.load(output)
    assert len(trajectory) == 4
    assert trajectory.states.shape == (4, 3, 3)
    assert np.all(np.isfinite(trajectory.states))


def test_aborted_run_saves_partial(tmp_path, capsys):
    """An aborted run exits 1 and still writes what it recorded."""
    path = tmp_path / "collapsed.yaml"
    state = [[0.0, 0.0, 0.0], [0.0, 0.0, 1.0], [0.0, 0.0, 1.0]]
    save_config(
        SimulationConfig(hinges_per_branch=2, tf=0.03, dt=0.01, initial_state=state), path
    )
    output = tmp_path / "partial.csv"
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(path), "--output", str(output)])
    assert excinfo.value.code == 1
    assert output.exists()
    assert "Partial trajectory (1 frames)" in capsys.readouterr().out


def test_example_config(tmp_path):
    """--example-config writes a loadable template."""
    path = tmp_path / "example.yaml"
    assert main(["--example-config", str(path)]) == 0
    assert path.exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
