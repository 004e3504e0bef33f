import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the repository root is on sys.path so tests can import hingemd without
# requiring an editable install. This matches the lightweight CI setup that only
# installs test tooling.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from hingemd.core.config import SimulationConfig  # noqa: E402
from hingemd.core.topology import Topology  # noqa: E402


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def chain3():
    return Topology.chain(3)


@pytest.fixture
def tree2x3():
    return Topology.tree(2, 3)


@pytest.fixture
def small_config():
    """Short, well-conditioned chain run."""
    return SimulationConfig(
        topology="chain",
        hinges_per_branch=3,
        tf=0.05,
        dt=0.01,
        seed=7,
        on_ill_conditioned="ignore",
    )
