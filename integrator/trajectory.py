"""Trajectory records: the text format written by fixed-interval recording.

One line per reporting boundary, no header or trailer:

    "%.3f, %15f, %.15f\\n" % (t, theta1, theta2)

Time has exactly three fractional digits, theta1 uses a minimum field width
of 15 with the default six fractional digits, and theta2 carries fifteen
fractional digits.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, NamedTuple, TextIO

import numpy as np

from errors import TrajectoryWriteError
from simulation import THETA1, THETA2

logger = logging.getLogger(__name__)

RECORD_FORMAT = "%.3f, %15f, %.15f\n"


class TrajectoryRecord(NamedTuple):
    """Angles of both arms at one reporting boundary."""

    t: float
    theta1: float
    theta2: float


def format_record(record: TrajectoryRecord) -> str:
    """Render one record as a newline-terminated line."""
    return RECORD_FORMAT % (record.t, record.theta1, record.theta2)


class TrajectoryWriter:
    """Observer for integrate_const that streams records to a text file.

    Callable as ``writer(state, t)``. Flushing is left to the stream.
    """

    def __init__(self, stream: TextIO, name: str = "<stream>"):
        self._stream = stream
        self.name = name
        self.n_records = 0

    def __call__(self, state, t: float) -> None:
        record = TrajectoryRecord(float(t), float(state[THETA1]), float(state[THETA2]))
        try:
            self._stream.write(format_record(record))
        except OSError as exc:
            raise TrajectoryWriteError(
                f"Failed writing trajectory record {self.n_records} to {self.name}"
            ) from exc
        self.n_records += 1


@contextmanager
def open_trajectory(path: str | Path) -> Iterator[TrajectoryWriter]:
    """Open ``path`` for writing and yield a TrajectoryWriter bound to it.

    Raises:
        TrajectoryWriteError: If the file cannot be created, written or
            closed.
    """
    path = Path(path)
    try:
        f = open(path, "w")
    except OSError as exc:
        raise TrajectoryWriteError(f"Cannot open trajectory file: {path}") from exc

    writer = TrajectoryWriter(f, name=str(path))
    try:
        yield writer
    finally:
        try:
            f.close()
        except OSError as exc:
            raise TrajectoryWriteError(f"Cannot close trajectory file: {path}") from exc

    logger.debug("Closed %s after %d records", path, writer.n_records)


def load_trajectory(path: str | Path) -> np.ndarray:
    """Read a trajectory file back as an (N, 3) array of [t, theta1, theta2].

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Trajectory not found: {path}")
    data = np.loadtxt(path, delimiter=",", dtype=np.float64, ndmin=2)
    return data.reshape(-1, 3)
