"""
Utility modules for HingeMD.

This module provides:
- CPU/worker management
- Configuration parsing
"""

from .config_parser import create_example_config, load_config, print_derived_constants
from .cpu import format_workers_info, parse_workers, workers_for

__all__ = [
    "parse_workers",
    "workers_for",
    "format_workers_info",
    "load_config",
    "print_derived_constants",
    "create_example_config",
]
