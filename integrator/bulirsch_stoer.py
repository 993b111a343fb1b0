"""Bulirsch-Stoer extrapolation integrator with adaptive step and order.

Each trial step of size H runs Gragg's modified midpoint rule with n_k
substeps for n_k = 2, 4, ..., 16 and extrapolates the results to zero
substep size with the Aitken-Neville scheme in (H/n_k)^2. The difference
between the two highest entries of the extrapolation table is the local
error estimate; the column whose optimal step gives the least work per unit
time sets the next step size and target order.

Two drivers sit on top of the stepper:

  integrate_adaptive: advance a state across one interval and return only
      the final state (written back in place).
  integrate_const: call an observer at every fixed reporting boundary while
      stepping adaptively in between.

Every driver call builds a fresh stepper, so step-size history never leaks
from one call into the next. The state array is mutated in place and must
not be shared between concurrent calls.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, NamedTuple

import numpy as np

from errors import IntegrationError

logger = logging.getLogger(__name__)

# Modified-midpoint substep counts, one per extrapolation column
_STEP_SEQUENCE = (2, 4, 6, 8, 10, 12, 14, 16)
_K_MAX = len(_STEP_SEQUENCE)

# Evaluator calls needed to fill columns 0..k; the slope at the step start
# is shared by every column.
_COST = tuple(1 + sum(_STEP_SEQUENCE[:k + 1]) for k in range(_K_MAX))

# Step-size controller constants
_SAFETY_ERR = 0.65     # error is scaled by 1/_SAFETY_ERR before the root
_SAFETY_STEP = 0.94    # new step is multiplied by this
_FAC_MIN = 0.02        # per-order floor on the shrink factor
_FAC_MAX = 4.0         # bound on the growth factor relative to the floor

# Order controller thresholds (relative work)
_ORDER_DECREASE = 0.8
_ORDER_INCREASE = 0.9

# Reporting boundaries within this fraction of dt of t_end still count
_BOUNDARY_EPS = 1e-9

Observer = Callable[[np.ndarray, float], None]


@dataclass(frozen=True)
class IntegratorConfig:
    """Error tolerances and starting step for the Bulirsch-Stoer stepper."""

    abs_tolerance: float = 1.0e-14
    rel_tolerance: float = 1.0e-14
    initial_step: float = 0.01


DEFAULT_CONFIG = IntegratorConfig()


class IntegrationStats(NamedTuple):
    """Counters from one driver call."""

    n_accepted: int
    n_rejected: int
    n_evaluations: int
    n_observations: int = 0


def _initial_order(config: IntegratorConfig) -> int:
    """Pick a starting target column from the requested precision."""
    digits = -math.log10(max(config.rel_tolerance, 1e-12))
    k = int(round(digits * 0.6 + 1.5))
    return min(_K_MAX - 2, max(2, k))


class BulirschStoer:
    """Single-step Bulirsch-Stoer engine.

    Holds the adaptive order and step counters for one integration run.
    The extrapolation table lives only for the duration of try_step().
    """

    def __init__(self, fun, config: IntegratorConfig = DEFAULT_CONFIG):
        self._fun = fun
        self.config = config
        self.k_opt = _initial_order(config)
        self.last_step_rejected = False
        self.n_accepted = 0
        self.n_rejected = 0
        self.n_evaluations = 0

    def stats(self, n_observations: int = 0) -> IntegrationStats:
        return IntegrationStats(
            self.n_accepted, self.n_rejected, self.n_evaluations, n_observations,
        )

    def rhs(self, t: float, y: np.ndarray) -> np.ndarray:
        """Evaluate the ODE right-hand side as a float64 array."""
        self.n_evaluations += 1
        return np.asarray(self._fun(t, y), dtype=np.float64)

    def _modified_midpoint(self, t, y, dydt, h, n):
        """Gragg's modified midpoint rule with n substeps and final smoothing."""
        h_sub = h / n
        y_prev = y
        y_curr = y + h_sub * dydt
        for i in range(1, n):
            y_next = y_prev + 2.0 * h_sub * self.rhs(t + i * h_sub, y_curr)
            y_prev = y_curr
            y_curr = y_next
        return 0.5 * (y_prev + y_curr + h_sub * self.rhs(t + h, y_curr))

    def _optimal_step(self, h, error, k):
        """Step size that would bring column k's error down to tolerance."""
        if not math.isfinite(error):
            # Non-finite states are passed through unchecked
            return h
        expo = 1.0 / (2 * k + 1)
        fac_min = _FAC_MIN**expo
        if error == 0.0:
            fac = fac_min / _FAC_MAX
        else:
            fac = (error / _SAFETY_ERR) ** expo / _SAFETY_STEP
            fac = max(fac_min / _FAC_MAX, min(1.0 / fac_min, fac))
        return h / fac

    def try_step(self, t, y, dydt, h):
        """Attempt one extrapolated step of size h from (t, y).

        Args:
            t: Current time.
            y: (4,) float64 state at t (not modified).
            dydt: Slope at (t, y).
            h: Signed trial step.

        Returns:
            (accepted, y_new, h_next): y_new is None when the step was
            rejected; h_next is the step to try next either way.
        """
        cfg = self.config
        scale = cfg.abs_tolerance + cfg.rel_tolerance * (
            np.abs(y) + abs(h) * np.abs(dydt)
        )

        k_opt = self.k_opt
        k_last = min(k_opt + 1, _K_MAX - 1)
        table = []
        h_opt = [0.0] * _K_MAX
        work = [0.0] * _K_MAX
        converged = False
        k = 0

        for k in range(k_last + 1):
            row = [self._modified_midpoint(t, y, dydt, h, _STEP_SEQUENCE[k])]
            for j in range(1, k + 1):
                ratio = (_STEP_SEQUENCE[k] / _STEP_SEQUENCE[k - j]) ** 2
                prev = row[j - 1]
                row.append(prev + (prev - table[k - 1][j - 1]) / (ratio - 1.0))
            table.append(row)
            if k == 0:
                continue

            error = float(np.max(np.abs(row[k] - row[k - 1]) / scale))
            h_opt[k] = self._optimal_step(h, error, k)
            work[k] = _COST[k] / abs(h_opt[k])

            if k < k_opt - 1:
                continue
            if error <= 1.0 or not math.isfinite(error):
                converged = True
                break
            # Stop early when the error is too large to converge inside
            # the order window.
            n0 = _STEP_SEQUENCE[0]
            if k == k_opt - 1:
                bound = (_STEP_SEQUENCE[k_opt] * _STEP_SEQUENCE[k_last] / n0**2) ** 2
                if error > bound:
                    break
            elif k == k_opt:
                if error > (_STEP_SEQUENCE[k_last] / n0) ** 2:
                    break

        if not converged:
            self.n_rejected += 1
            self.last_step_rejected = True
            k_fail = max(1, k)
            self.k_opt = max(2, min(self.k_opt, k_fail))
            return False, None, h_opt[k_fail]

        self.n_accepted += 1
        y_new = table[k][k]

        k_next = k
        if k >= 2 and work[k - 1] < _ORDER_DECREASE * work[k]:
            k_next = k - 1
        elif k >= 2 and work[k] < _ORDER_INCREASE * work[k - 1]:
            k_next = k + 1
        k_next = min(_K_MAX - 2, max(2, k_next))

        if k_next > k:
            h_next = h_opt[k] * _COST[k + 1] / _COST[k]
        else:
            h_next = h_opt[k_next] if h_opt[k_next] else h_opt[k]

        if self.last_step_rejected:
            # Never grow straight after a rejection
            h_next = math.copysign(min(abs(h_next), abs(h)), h)
            k_next = min(k_next, k)

        self.k_opt = k_next
        self.last_step_rejected = False
        return True, y_new, h_next


def _integrate_interval(stepper, y, t0, t1, h):
    """Advance y in place from t0 to t1, landing exactly on t1.

    Returns the step size the stepper suggests for whatever comes next.
    """
    direction = 1.0 if t1 > t0 else -1.0
    h = math.copysign(abs(h), direction)
    t = t0
    while (t1 - t) * direction > 0:
        clipped = (t + h - t1) * direction >= 0
        step = t1 - t if clipped else h
        if t + step == t:
            raise IntegrationError(f"Step size underflow at t={t!r}")

        dydt = stepper.rhs(t, y)
        accepted, y_new, h_next = stepper.try_step(t, y, dydt, step)
        while not accepted:
            step = h_next
            if t + step == t:
                raise IntegrationError(f"Step size underflow at t={t!r}")
            clipped = False
            accepted, y_new, h_next = stepper.try_step(t, y, dydt, step)

        y[:] = y_new
        t = t1 if clipped else t + step
        # Keep the unclipped suggestion when the last step was cut short
        # by the interval end.
        h = h_next if not clipped else math.copysign(max(abs(h), abs(h_next)), direction)
    return h


def integrate_adaptive(
    fun,
    y: np.ndarray,
    t0: float,
    t1: float,
    config: IntegratorConfig = DEFAULT_CONFIG,
) -> IntegrationStats:
    """Integrate y' = fun(t, y) from t0 to t1, writing the result into y.

    The step search starts from config.initial_step on every call. An empty
    interval (t1 == t0) leaves y untouched and evaluates nothing; t1 < t0
    integrates backwards in time.

    Args:
        fun: Right-hand side, fun(t, y) -> sequence of 4 floats.
        y: float64 state array, updated in place.
        t0: Start time.
        t1: End time.
        config: Tolerances and starting step.

    Returns:
        IntegrationStats for the call.
    """
    stepper = BulirschStoer(fun, config)
    if t1 != t0:
        _integrate_interval(stepper, y, t0, t1, config.initial_step)

    stats = stepper.stats()
    logger.debug(
        "integrate_adaptive [%g, %g]: %d accepted, %d rejected, %d evaluations",
        t0, t1, stats.n_accepted, stats.n_rejected, stats.n_evaluations,
    )
    return stats


def count_intervals(t0: float, t1: float, dt: float) -> int:
    """Number of whole reporting intervals of size dt that fit in [t0, t1]."""
    return max(0, int(math.floor((t1 - t0) / dt + _BOUNDARY_EPS)))


def integrate_const(
    fun,
    y: np.ndarray,
    t0: float,
    t1: float,
    dt: float,
    observer: Observer,
    config: IntegratorConfig = DEFAULT_CONFIG,
) -> IntegrationStats:
    """Integrate from t0 to t1, observing the state every dt.

    observer(y, t) is called at t0 and at every boundary t0 + k*dt that
    does not exceed t1. Boundary times are computed by multiplication, not
    accumulation, so they do not drift, and are clamped to t1. The adaptive step carries over from
    one reporting interval to the next. The observer receives the live
    state array and must copy it if it keeps it.

    Returns:
        IntegrationStats; n_observations is the number of observer calls.
    """
    stepper = BulirschStoer(fun, config)
    n_intervals = count_intervals(t0, t1, dt)

    observer(y, t0)
    h = config.initial_step
    t = t0
    for k in range(1, n_intervals + 1):
        t_next = t0 + k * dt
        # The boundary slack can count an interval ending just past t1
        if (t_next - t1) * dt > 0:
            t_next = t1
        h = _integrate_interval(stepper, y, t, t_next, h)
        t = t_next
        observer(y, t)

    stats = stepper.stats(n_observations=n_intervals + 1)
    logger.debug(
        "integrate_const [%g, %g] every %g: %d observations, %d accepted, "
        "%d rejected, %d evaluations",
        t0, t1, dt, stats.n_observations, stats.n_accepted,
        stats.n_rejected, stats.n_evaluations,
    )
    return stats
