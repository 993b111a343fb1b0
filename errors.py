"""Exception hierarchy for the double pendulum solver.

Every failure a caller can observe derives from SolverError, so a boundary
layer (the CLI, or a foreign-function shim) can catch one type and map it to
a named outcome instead of crashing the process.
"""


class SolverError(Exception):
    """Base class for all caller-visible solver failures."""


class InvalidParameterError(SolverError, ValueError):
    """A physical parameter or integration interval is out of range."""


class TrajectoryWriteError(SolverError, OSError):
    """The trajectory output destination could not be opened or written."""


class IntegrationError(SolverError, ArithmeticError):
    """The adaptive step size collapsed below the resolution of the clock."""
