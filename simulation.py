"""Double pendulum physics: equal arm lengths, equal bob masses.

Implements the Lagrangian equations of motion, the energy model, bob
positions, and two reference solutions used to cross-check the
Bulirsch-Stoer integrator: a dense DOP853 trajectory via SciPy's solve_ivp
and the closed-form linearized normal-mode solution.

State vector layout: [theta1, omega1, theta2, omega2]. Angles are measured
from the downward vertical in radians and are never wrapped.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from scipy.integrate import solve_ivp
from scipy.linalg import eigh

from errors import InvalidParameterError

# Standard gravity (m/s^2)
GRAVITY = 9.80665

# Slot indices into the state vector
THETA1, OMEGA1, THETA2, OMEGA2 = range(4)
N_STATE = 4


@dataclass(frozen=True)
class PendulumParams:
    """Physical parameters shared by both segments of the pendulum.

    Raises:
        InvalidParameterError: If length or mass is not a positive finite
            number. A zero length or mass makes the equations of motion
            singular.
    """

    length: float
    mass: float
    g: float = GRAVITY

    def __post_init__(self):
        for name in ("length", "mass"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise InvalidParameterError(
                    f"{name} must be a positive finite number, got {value!r}"
                )


def initial_state(theta1_0: float, theta2_0: float) -> np.ndarray:
    """Build a float64 state vector at rest from two initial angles."""
    state = np.zeros(N_STATE, dtype=np.float64)
    state[THETA1] = theta1_0
    state[THETA2] = theta2_0
    return state


def derivatives(t, state, params):
    """Compute the four first-order ODEs for the double pendulum.

    State vector: [theta1, omega1, theta2, omega2]
    Returns: [d_theta1/dt, d_omega1/dt, d_theta2/dt, d_omega2/dt]

    The system is autonomous; ``t`` is accepted only for the usual
    ``f(t, y)`` signature. With equal masses the denominator is
    m*l*(2 - cos(delta)**2) >= m*l, so it never vanishes.
    """
    theta1, omega1, theta2, omega2 = state
    l, m, g = params.length, params.mass, params.g

    delta = theta2 - theta1
    sin_delta = math.sin(delta)
    cos_delta = math.cos(delta)
    big_m = 2.0 * m  # total mass of both bobs

    den1 = big_m * l - m * l * cos_delta**2
    alpha1 = (
        m * l * omega1**2 * sin_delta * cos_delta
        + m * g * math.sin(theta2) * cos_delta
        + m * l * omega2**2 * sin_delta
        - big_m * g * math.sin(theta1)
    ) / den1

    # Both arms share one length, so the length ratio l2/l1 is exactly 1.
    # Re-derive this denominator if the lengths ever differ.
    den2 = den1
    alpha2 = (
        -m * l * omega2**2 * sin_delta * cos_delta
        + big_m * g * math.sin(theta1) * cos_delta
        - big_m * l * omega1**2 * sin_delta
        - big_m * g * math.sin(theta2)
    ) / den2

    return [omega1, alpha1, omega2, alpha2]


def kinetic_energy(state, params) -> float:
    """Kinetic energy of both bobs.

    The second bob moves with the compound velocity of both arms, hence
    the cross term in omega1*omega2*cos(theta2 - theta1).
    """
    theta1, omega1, theta2, omega2 = state
    ml2 = params.mass * params.length**2
    cross = 2.0 * omega1 * omega2 * math.cos(theta2 - theta1)
    return float(
        0.5 * ml2 * omega1**2
        + 0.5 * ml2 * (omega1**2 + omega2**2 + cross)
    )


def potential_energy(state, params) -> float:
    """Gravitational potential energy, measured from the pivot (y=0)."""
    theta1, theta2 = state[THETA1], state[THETA2]
    mgl = params.mass * params.g * params.length
    return float(-mgl * (2.0 * math.cos(theta1) + math.cos(theta2)))


def total_energy(state, params) -> float:
    """Total mechanical energy (T + V) for a single state."""
    return kinetic_energy(state, params) + potential_energy(state, params)


def positions(state, params):
    """Convert a single state to Cartesian coordinates.

    Returns (x1, y1, x2, y2) with the pivot at the origin; y is negative
    below the pivot.
    """
    theta1, theta2 = state[THETA1], state[THETA2]
    l = params.length

    x1 = l * math.sin(theta1)
    y1 = -l * math.cos(theta1)

    x2 = x1 + l * math.sin(theta2)
    y2 = y1 - l * math.cos(theta2)

    return x1, y1, x2, y2


def simulate(params, theta1_0, theta2_0, omega1_0=0.0, omega2_0=0.0,
             t_end=10.0, dt=0.01):
    """Run a DOP853 reference simulation on a uniform grid.

    The grid includes both t=0 and t_end (when t_end is a multiple of dt).

    Returns:
        t_array: 1D array of time values at uniform dt spacing
        state_array: 2D array of shape (len(t_array), 4)
    """
    n_points = int(math.floor(t_end / dt + 1e-9)) + 1
    t_eval = np.arange(n_points) * dt
    y0 = [theta1_0, omega1_0, theta2_0, omega2_0]

    sol = solve_ivp(
        fun=lambda t, y: derivatives(t, y, params),
        t_span=(0.0, t_eval[-1]),
        y0=y0,
        method="DOP853",
        t_eval=t_eval,
        rtol=1e-14,
        atol=1e-14,
    )

    return sol.t, sol.y.T  # shape: (n_points, 4)


def normal_modes(params):
    """Small-oscillation normal modes of the equal-arm double pendulum.

    Solves the generalized eigenproblem K v = w^2 M v for the linearized
    mass and stiffness matrices

        M = m l^2 [[2, 1], [1, 1]],   K = m g l [[2, 0], [0, 1]]

    Returns:
        frequencies: (2,) angular frequencies, slow mode first.
        modes: (2, 2) M-orthonormal mode shapes, one per column.
    """
    m, l, g = params.mass, params.length, params.g
    mass_matrix = m * l**2 * np.array([[2.0, 1.0], [1.0, 1.0]])
    stiffness = m * g * l * np.array([[2.0, 0.0], [0.0, 1.0]])
    eigvals, modes = eigh(stiffness, mass_matrix)
    return np.sqrt(eigvals), modes


def small_angle_solution(params, theta1_0, theta2_0, t):
    """Linearized trajectory released from rest at (theta1_0, theta2_0).

    Superposes the two normal modes with amplitudes obtained by projecting
    the initial angles onto the M-orthonormal mode shapes.

    Returns:
        (theta1, theta2) arrays with the shape of ``t``.
    """
    frequencies, modes = normal_modes(params)
    m, l = params.mass, params.length
    mass_matrix = m * l**2 * np.array([[2.0, 1.0], [1.0, 1.0]])

    amplitudes = modes.T @ mass_matrix @ np.array([theta1_0, theta2_0])
    t = np.asarray(t, dtype=np.float64)
    phases = np.cos(np.multiply.outer(t, frequencies)) * amplitudes
    angles = phases @ modes.T
    return angles[..., 0], angles[..., 1]
