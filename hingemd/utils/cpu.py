# hingemd/utils/cpu.py
"""Worker-count helpers for branch-parallel Jacobians and ensemble runs."""

import multiprocessing as mp
from typing import Optional, Union


def parse_workers(value: Optional[Union[str, int]]) -> int:
    """Parse a worker count from configuration or the command line.

    - ``"auto"``, ``None`` or ``""`` -> ``cpu_count - 1`` (min 1)
    - integer or string integer -> clamped to a minimum of 1

    Raises
    ------
    ValueError
        If ``value`` is neither ``"auto"`` nor convertible to an integer.
    """

    if value in (None, "", "auto"):
        return max(1, mp.cpu_count() - 1)

    try:
        workers = int(value)
    except (ValueError, TypeError) as e:
        raise ValueError(
            f"Invalid worker count: '{value}'. Must be 'auto' or a positive integer."
        ) from e

    return max(1, workers)


def workers_for(n_tasks: int, n_workers: int) -> int:
    """Never start more workers than there are independent tasks."""
    return max(1, min(n_workers, n_tasks))


def format_workers_info(n_workers: int, unit: str = "realizations") -> str:
    """Describe how ``unit`` will be distributed, for run banners.

    Args:
        n_workers: Number of workers
        unit: What each worker processes (branches, realizations)

    Returns:
        Human-readable summary
    """
    total_cores = mp.cpu_count()
    if n_workers == 1:
        return f"1 worker (serial {unit}, {total_cores} cores available)"
    return f"{n_workers} workers in parallel over {unit} ({total_cores} cores total)"
