"""Tests for simulation.py: equations of motion, energy, reference solutions."""

import math

import numpy as np
import pytest

from errors import InvalidParameterError
from simulation import (
    GRAVITY, OMEGA1, OMEGA2, THETA1, THETA2,
    PendulumParams, derivatives, initial_state, kinetic_energy,
    normal_modes, positions, potential_energy, simulate,
    small_angle_solution, total_energy,
)


class TestParams:
    """Construction-time validation of the physical parameters."""

    def test_default_gravity(self):
        params = PendulumParams(length=1.0, mass=0.05)
        assert params.g == GRAVITY == 9.80665

    @pytest.mark.parametrize("length, mass", [
        (0.0, 1.0), (-1.0, 1.0), (1.0, 0.0), (1.0, -0.5),
        (math.nan, 1.0), (1.0, math.inf),
    ])
    def test_rejects_degenerate_values(self, length, mass):
        with pytest.raises(InvalidParameterError):
            PendulumParams(length=length, mass=mass)

    def test_invalid_parameter_is_value_error(self):
        with pytest.raises(ValueError):
            PendulumParams(length=0.0, mass=1.0)

    def test_frozen(self):
        params = PendulumParams(length=1.0, mass=1.0)
        with pytest.raises(AttributeError):
            params.length = 2.0


class TestInitialState:

    def test_layout_and_dtype(self):
        state = initial_state(0.3, -0.2)
        assert state.dtype == np.float64
        assert state.shape == (4,)
        assert state[THETA1] == 0.3
        assert state[THETA2] == -0.2
        assert state[OMEGA1] == 0.0
        assert state[OMEGA2] == 0.0


class TestDerivatives:
    """Test the derivatives function for known states."""

    def test_zero_state_zero_derivatives(self):
        """At rest hanging straight down, everything stays put."""
        params = PendulumParams(length=1.0, mass=1.0)
        d = derivatives(0, [0.0, 0.0, 0.0, 0.0], params)
        assert d == [0.0, 0.0, 0.0, 0.0]

    def test_returns_four_values(self):
        params = PendulumParams(length=1.0, mass=1.0)
        d = derivatives(0, [0.5, 1.0, 0.5, -1.0], params)
        assert len(d) == 4

    def test_angle_rates_are_velocities(self):
        params = PendulumParams(length=2.0, mass=0.3)
        d = derivatives(0, [0.5, 1.25, -0.7, -0.75], params)
        assert d[THETA1] == 1.25
        assert d[THETA2] == -0.75

    def test_horizontal_release(self):
        """Both arms horizontal at rest: upper arm falls at g/l, lower at 0."""
        params = PendulumParams(length=2.0, mass=0.7)
        d = derivatives(0, [math.pi / 2, 0.0, math.pi / 2, 0.0], params)
        assert d[OMEGA1] == pytest.approx(-GRAVITY / 2.0, rel=1e-12)
        assert d[OMEGA2] == pytest.approx(0.0, abs=1e-12)

    def test_mass_cancels(self):
        """Accelerations do not depend on the (shared) bob mass."""
        state = [0.4, 0.3, -1.1, 0.9]
        light = derivatives(0, state, PendulumParams(length=1.0, mass=0.05))
        heavy = derivatives(0, state, PendulumParams(length=1.0, mass=20.0))
        assert light == pytest.approx(heavy, rel=1e-12)

    def test_mirror_symmetry(self):
        """Reflecting the state through the vertical reflects the derivatives."""
        params = PendulumParams(length=1.0, mass=0.05)
        state = [0.8, -0.4, 0.3, 1.7]
        d = derivatives(0, state, params)
        d_mirror = derivatives(0, [-s for s in state], params)
        assert d_mirror == pytest.approx([-v for v in d], rel=1e-12, abs=1e-15)

    def test_linearized_accelerations(self):
        """Near the bottom, alpha1 = g/l (theta2 - 2 theta1), alpha2 = 2g/l (theta1 - theta2)."""
        params = PendulumParams(length=1.5, mass=1.0)
        theta1, theta2 = 1e-6, -2e-6
        d = derivatives(0, [theta1, 0.0, theta2, 0.0], params)
        g_l = GRAVITY / 1.5
        assert d[OMEGA1] == pytest.approx(g_l * (theta2 - 2 * theta1), rel=1e-6)
        assert d[OMEGA2] == pytest.approx(2 * g_l * (theta1 - theta2), rel=1e-6)

    def test_finite_for_all_angle_differences(self):
        """The denominator m*l*(2 - cos^2) never vanishes."""
        params = PendulumParams(length=1.0, mass=1.0)
        for delta in np.linspace(-2 * math.pi, 2 * math.pi, 41):
            d = derivatives(0, [0.0, 3.0, delta, -2.0], params)
            assert all(math.isfinite(v) for v in d)


class TestEnergy:
    """Kinetic and potential energy for equal arms and bobs."""

    def test_hanging_at_rest(self):
        params = PendulumParams(length=2.0, mass=0.5)
        state = initial_state(0.0, 0.0)
        assert kinetic_energy(state, params) == 0.0
        assert potential_energy(state, params) == pytest.approx(-3 * 0.5 * GRAVITY * 2.0)

    def test_horizontal_has_zero_potential(self):
        params = PendulumParams(length=1.0, mass=1.0)
        state = initial_state(math.pi / 2, -math.pi / 2)
        assert potential_energy(state, params) == pytest.approx(0.0, abs=1e-12)

    @pytest.mark.parametrize("omega1, omega2, expected", [
        (1.0, 0.0, 1.0),   # both bobs swing with the upper arm
        (0.0, 1.0, 0.5),   # only the lower bob moves
        (1.0, 1.0, 2.5),   # aligned arms rotating rigidly
        (1.0, -1.0, 0.5),  # second bob momentarily at rest
    ])
    def test_kinetic_energy_aligned_arms(self, omega1, omega2, expected):
        params = PendulumParams(length=2.0, mass=0.25)
        ml2 = 0.25 * 2.0**2
        state = [0.3, omega1, 0.3, omega2]
        assert kinetic_energy(state, params) == pytest.approx(expected * ml2)

    def test_cross_term_uses_angle_difference(self):
        params = PendulumParams(length=1.0, mass=1.0)
        state = [0.2, 1.0, 0.2 + math.pi / 2, 1.0]
        # cos(delta) = 0 removes the cross term: 0.5 + 0.5 * 2
        assert kinetic_energy(state, params) == pytest.approx(1.5)

    def test_total_is_sum(self):
        params = PendulumParams(length=1.3, mass=0.7)
        state = [0.4, -0.6, 1.2, 2.0]
        assert total_energy(state, params) == pytest.approx(
            kinetic_energy(state, params) + potential_energy(state, params)
        )

    def test_returns_python_float(self):
        params = PendulumParams(length=1.0, mass=1.0)
        state = initial_state(0.1, 0.2)
        assert type(kinetic_energy(state, params)) is float
        assert type(potential_energy(state, params)) is float


class TestPositions:
    """Test Cartesian coordinate conversion."""

    def test_straight_down(self):
        params = PendulumParams(length=1.0, mass=1.0)
        x1, y1, x2, y2 = positions(initial_state(0.0, 0.0), params)
        assert abs(x1) < 1e-10
        assert abs(y1 - (-1.0)) < 1e-10
        assert abs(x2) < 1e-10
        assert abs(y2 - (-2.0)) < 1e-10

    def test_horizontal(self):
        params = PendulumParams(length=1.5, mass=1.0)
        x1, y1, x2, y2 = positions(initial_state(math.pi / 2, math.pi / 2), params)
        assert abs(x1 - 1.5) < 1e-10
        assert abs(y1) < 1e-10
        assert abs(x2 - 3.0) < 1e-10
        assert abs(y2) < 1e-10

    def test_potential_matches_heights(self):
        params = PendulumParams(length=0.8, mass=0.3)
        state = initial_state(0.9, -2.1)
        _, y1, _, y2 = positions(state, params)
        expected = params.mass * params.g * (y1 + y2)
        assert potential_energy(state, params) == pytest.approx(expected)


class TestSimulate:
    """DOP853 reference trajectories."""

    def test_returns_correct_shapes(self):
        params = PendulumParams(length=1.0, mass=1.0)
        t, states = simulate(params, 1.0, 1.0, t_end=1.0, dt=0.01)
        assert t.shape == (101,)
        assert states.shape == (101, 4)
        assert t[-1] == pytest.approx(1.0)

    def test_initial_conditions_preserved(self):
        params = PendulumParams(length=1.0, mass=1.0)
        t, states = simulate(params, 1.0, 0.5, 0.1, -0.2, t_end=1.0)
        assert states[0] == pytest.approx([1.0, 0.1, 0.5, -0.2], abs=1e-12)

    def test_energy_drift_within_tolerance(self):
        params = PendulumParams(length=1.0, mass=1.0)
        t, states = simulate(params, math.pi / 2, math.pi / 2, t_end=5.0, dt=0.01)
        energies = np.array([total_energy(s, params) for s in states])
        drift = np.max(np.abs(energies - energies[0]))
        assert drift < 1e-6, f"Energy drift {drift} exceeds tolerance"


class TestNormalModes:
    """Linearized small-oscillation solution."""

    def test_frequencies(self):
        params = PendulumParams(length=1.0, mass=0.05)
        frequencies, _ = normal_modes(params)
        g_l = params.g / params.length
        np.testing.assert_allclose(
            frequencies**2,
            [(2 - math.sqrt(2)) * g_l, (2 + math.sqrt(2)) * g_l],
            rtol=1e-12,
        )

    def test_mode_shapes(self):
        """Slow mode swings in phase (1 : sqrt2), fast mode in antiphase."""
        params = PendulumParams(length=1.0, mass=1.0)
        _, modes = normal_modes(params)
        slow, fast = modes[:, 0], modes[:, 1]
        assert slow[1] / slow[0] == pytest.approx(math.sqrt(2))
        assert fast[1] / fast[0] == pytest.approx(-math.sqrt(2))

    def test_solution_starts_at_initial_angles(self):
        params = PendulumParams(length=1.0, mass=0.05)
        theta1, theta2 = small_angle_solution(params, 0.01, -0.02, 0.0)
        assert float(theta1) == pytest.approx(0.01, abs=1e-15)
        assert float(theta2) == pytest.approx(-0.02, abs=1e-15)

    def test_solution_shape_follows_time_array(self):
        params = PendulumParams(length=1.0, mass=0.05)
        t = np.linspace(0.0, 1.0, 7)
        theta1, theta2 = small_angle_solution(params, 0.01, 0.01, t)
        assert theta1.shape == (7,)
        assert theta2.shape == (7,)

    def test_matches_reference_trajectory(self):
        params = PendulumParams(length=1.0, mass=0.05)
        t, states = simulate(params, 0.001, 0.001, t_end=3.0, dt=0.05)
        theta1, theta2 = small_angle_solution(params, 0.001, 0.001, t)
        np.testing.assert_allclose(states[:, THETA1], theta1, atol=1e-7)
        np.testing.assert_allclose(states[:, THETA2], theta2, atol=1e-7)
