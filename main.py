"""Command line entry point: record one double pendulum trajectory.

Usage:
    python main.py [--theta1 10] [--theta2 10] [--output double_pendulum.csv]

Angles are given in degrees. The defaults reproduce the reference run: a
1 m arm, 0.05 kg bobs, 30 s recorded every millisecond.
"""

from __future__ import annotations

import argparse
import logging
import math
import sys

from errors import SolverError
from solver import create, record

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Integrate an equal-arm double pendulum and write its trajectory.",
    )
    parser.add_argument(
        "--length", type=float, default=1.0,
        help="Arm length in metres (default: 1.0)",
    )
    parser.add_argument(
        "--mass", type=float, default=0.05,
        help="Bob mass in kilograms (default: 0.05)",
    )
    parser.add_argument(
        "--theta1", type=float, default=10.0,
        help="Initial angle of the upper arm in degrees (default: 10)",
    )
    parser.add_argument(
        "--theta2", type=float, default=10.0,
        help="Initial angle of the lower arm in degrees (default: 10)",
    )
    parser.add_argument(
        "--dt", type=float, default=0.001,
        help="Reporting interval in seconds (default: 0.001)",
    )
    parser.add_argument(
        "--time", type=float, default=30.0,
        help="Total simulated time in seconds (default: 30.0)",
    )
    parser.add_argument(
        "--output", type=str, default="double_pendulum.csv",
        help="Output trajectory file (default: double_pendulum.csv)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log integrator statistics",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit status."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        handle = create(
            args.length, args.mass,
            math.radians(args.theta1), math.radians(args.theta2),
        )
        e0 = handle.kinetic_energy() + handle.potential_energy()
        record(handle, args.dt, args.time, args.output)
    except SolverError as exc:
        logger.error("%s", exc)
        return 1

    e1 = handle.kinetic_energy() + handle.potential_energy()
    logger.info("Energy drift over %.3f s: %.3e J", args.time, e1 - e0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
