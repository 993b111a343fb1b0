"""Simulation handle for the equal-arm double pendulum.

DoublePendulum owns one state vector and drives it with the Bulirsch-Stoer
integrator in two modes:

  advance(dt): integrate one interval (e.g. one animation frame) and
      return the final angles. Each call is an independent integration
      starting from the initial step guess.
  record(dt_report, total_time, sink): integrate the whole run and hand
      the state to ``sink(state, t)`` at every reporting boundary,
      including t=0.

The module-level functions (create, advance, record, get_*/set_*, energies)
are the flat surface for boundary layers; they take the handle returned by
create() explicitly. There is no global instance.

A DoublePendulum is not thread-safe: no two integration calls may run
against the same instance concurrently.
"""

from __future__ import annotations

import logging
import math
import os
from pathlib import Path

import numpy as np

from errors import InvalidParameterError
from integrator.bulirsch_stoer import (
    DEFAULT_CONFIG,
    integrate_adaptive,
    integrate_const,
)
from integrator.trajectory import open_trajectory
from simulation import (
    OMEGA1,
    OMEGA2,
    THETA1,
    THETA2,
    PendulumParams,
    derivatives,
    initial_state,
    positions,
    total_energy,
)
from simulation import kinetic_energy as _kinetic_energy
from simulation import potential_energy as _potential_energy

logger = logging.getLogger(__name__)


def _check_interval(dt_report: float, total_time: float) -> None:
    if not (math.isfinite(dt_report) and dt_report > 0):
        raise InvalidParameterError(
            f"dt_report must be a positive finite number, got {dt_report!r}"
        )
    if not (math.isfinite(total_time) and total_time >= 0):
        raise InvalidParameterError(
            f"total_time must be a non-negative finite number, got {total_time!r}"
        )


class DoublePendulum:
    """One double pendulum simulation: parameters plus mutable state.

    Angle and velocity properties read the state narrowed to float32 and
    write it back as float64. They are views, so a write is seen by the
    next integration call and by the energy model immediately.
    """

    def __init__(self, params: PendulumParams, theta1_0: float, theta2_0: float):
        self.params = params
        self._theta1_0 = float(theta1_0)
        self._theta2_0 = float(theta2_0)
        self.state = initial_state(self._theta1_0, self._theta2_0)
        self.time = 0.0

    def __repr__(self):
        return (
            f"DoublePendulum(length={self.params.length}, mass={self.params.mass}, "
            f"state={self.state.tolist()}, time={self.time})"
        )

    def _rhs(self, t, y):
        return derivatives(t, y, self.params)

    # -- integration -------------------------------------------------------

    def advance(self, dt: float) -> tuple[np.float32, np.float32]:
        """Integrate the state forward by dt and return (theta1, theta2).

        dt == 0 leaves the state untouched; a negative dt runs backwards.

        Raises:
            InvalidParameterError: If dt is not finite.
        """
        if not math.isfinite(dt):
            raise InvalidParameterError(f"dt must be finite, got {dt!r}")
        integrate_adaptive(self._rhs, self.state, 0.0, float(dt), DEFAULT_CONFIG)
        self.time += dt
        return self.theta1, self.theta2

    def record(self, dt_report: float, total_time: float, sink) -> int:
        """Integrate over [0, total_time], calling sink(state, t) every dt_report.

        The first call is at t=0 with the current state; the last is at the
        largest multiple of dt_report not exceeding total_time.

        Returns:
            Number of sink calls.

        Raises:
            InvalidParameterError: If dt_report is not positive or
                total_time is negative (or either is not finite).
        """
        _check_interval(dt_report, total_time)
        stats = integrate_const(
            self._rhs, self.state, 0.0, float(total_time), float(dt_report),
            sink, DEFAULT_CONFIG,
        )
        self.time += total_time
        return stats.n_observations

    def save_trajectory(
        self, dt_report: float, total_time: float, path: str | Path,
    ) -> int:
        """Record a run straight into a trajectory text file.

        Raises:
            TrajectoryWriteError: If the file cannot be opened or written.
            InvalidParameterError: As for record(). Raised before the file
                is opened, so an existing trajectory at path is kept.
        """
        _check_interval(dt_report, total_time)
        with open_trajectory(path) as writer:
            n_records = self.record(dt_report, total_time, writer)
        logger.info("Recorded %d samples to %s", n_records, path)
        return n_records

    def reset(self) -> None:
        """Return to the initial angles at rest and zero the clock."""
        self.state[:] = initial_state(self._theta1_0, self._theta2_0)
        self.time = 0.0

    # -- state accessors ---------------------------------------------------

    @property
    def theta1(self) -> np.float32:
        return np.float32(self.state[THETA1])

    @theta1.setter
    def theta1(self, value: float) -> None:
        self.state[THETA1] = value

    @property
    def omega1(self) -> np.float32:
        return np.float32(self.state[OMEGA1])

    @omega1.setter
    def omega1(self, value: float) -> None:
        self.state[OMEGA1] = value

    @property
    def theta2(self) -> np.float32:
        return np.float32(self.state[THETA2])

    @theta2.setter
    def theta2(self, value: float) -> None:
        self.state[THETA2] = value

    @property
    def omega2(self) -> np.float32:
        return np.float32(self.state[OMEGA2])

    @omega2.setter
    def omega2(self, value: float) -> None:
        self.state[OMEGA2] = value

    # -- derived quantities --------------------------------------------------

    def kinetic_energy(self) -> float:
        return _kinetic_energy(self.state, self.params)

    def potential_energy(self) -> float:
        return _potential_energy(self.state, self.params)

    def _total_energy(self) -> float:
        return total_energy(self.state, self.params)

    def positions(self):
        """Cartesian (x1, y1, x2, y2) of both bobs, pivot at the origin."""
        return positions(self.state, self.params)


# ---------------------------------------------------------------------------
# Flat function surface
# ---------------------------------------------------------------------------


def create(length: float, mass: float, theta1_0: float, theta2_0: float) -> DoublePendulum:
    """Build a simulation released from rest at (theta1_0, theta2_0).

    Raises:
        InvalidParameterError: If length or mass is not positive.
    """
    handle = DoublePendulum(PendulumParams(length, mass), theta1_0, theta2_0)
    logger.debug("Created %r", handle)
    return handle


def advance(handle: DoublePendulum, dt: float):
    """Integrate ``handle`` forward by dt; returns (theta1, theta2)."""
    return handle.advance(dt)


def record(handle: DoublePendulum, dt_report: float, total_time: float, sink) -> int:
    """Record a run to ``sink``.

    ``sink`` is either a callable ``sink(state, t)`` or a file path, in
    which case the trajectory text format is written there.
    """
    if isinstance(sink, (str, os.PathLike)):
        return handle.save_trajectory(dt_report, total_time, sink)
    return handle.record(dt_report, total_time, sink)


def get_theta1(handle: DoublePendulum):
    return handle.theta1


def get_theta2(handle: DoublePendulum):
    return handle.theta2


def get_v1(handle: DoublePendulum):
    return handle.omega1


def get_v2(handle: DoublePendulum):
    return handle.omega2


def set_theta1(handle: DoublePendulum, value: float) -> None:
    handle.theta1 = value


def set_theta2(handle: DoublePendulum, value: float) -> None:
    handle.theta2 = value


def set_v1(handle: DoublePendulum, value: float) -> None:
    handle.omega1 = value


def set_v2(handle: DoublePendulum, value: float) -> None:
    handle.omega2 = value


def kinetic_energy(handle: DoublePendulum) -> float:
    return handle.kinetic_energy()


def potential_energy(handle: DoublePendulum) -> float:
    return handle.potential_energy()
