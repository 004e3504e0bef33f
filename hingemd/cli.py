"""
Command-line interface for HingeMD
"""

import argparse
import logging
import os
import sys

from .__version__ import __version__
from .core.dynamics.integrator import LoggingObserver, ProgressObserver, SDEIntegrator
from .core.errors import ConfigurationError, SimulationAborted
from .utils.config_parser import create_example_config, load_config, print_derived_constants


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hingemd", description="Brownian dynamics of articulated receptor chains"
    )
    parser.add_argument("--config", help="YAML or JSON run configuration")
    parser.add_argument("--output", help="Trajectory file (.npz or .csv)")
    parser.add_argument("--seed", type=int, help="Override the configured random seed")
    parser.add_argument("--jacobian", choices=["numeric", "analytic"], help="Jacobian builder")
    parser.add_argument("--dry-run", action="store_true", help="Print derived constants and exit")
    parser.add_argument("--quiet", action="store_true", help="No progress bar")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--example-config", metavar="PATH", help="Write an example config and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None):
    """Main entry point for hingemd command"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    if args.example_config:
        create_example_config(args.example_config)
        return 0

    if not args.config:
        parser.error("--config is required")

    if not os.path.exists(args.config):
        print(f"Error: Required file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    try:
        config = load_config(args.config)
        updates = {}
        if args.seed is not None:
            updates["seed"] = args.seed
        if args.jacobian:
            updates["jacobian"] = args.jacobian
        if updates:
            config = config.with_updates(**updates)
    except ConfigurationError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    if args.dry_run:
        print_derived_constants(config)
        return 0

    topology = config.build_topology()
    observers = []
    if config.progress_interval:
        if args.quiet:
            observers.append(LoggingObserver(topology))
        else:
            observers.append(ProgressObserver(config.n_steps, config.progress_interval))

    integrator = SDEIntegrator(config, topology=topology, observers=observers)
    try:
        trajectory = integrator.run()
    except SimulationAborted as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.output and e.trajectory is not None:
            path = e.trajectory.save(args.output)
            print(f"Partial trajectory ({len(e.trajectory)} frames) saved to {path}")
        sys.exit(1)
    except ConfigurationError as e:
        # Analytic Jacobian rejected before the first step
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Completed {integrator.step_index} steps (t = {integrator.time:.6g})")
    if args.output:
        path = trajectory.save(args.output)
        print(f"Trajectory ({len(trajectory)} frames) saved to {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
