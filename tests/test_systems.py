"""Tests for simstep.systems module."""

import numpy as np
import pytest

from simstep.errors import ProjectionError
from simstep.state import ContinuousState
from simstep.systems import FirstOrderSystem, MechanicalSystem, SystemBase


def circle_constraint(q):
    return np.array([0.5 * (q @ q - 1.0)])


def test_first_order_realize():
    system = FirstOrderSystem(lambda t, z: np.array([z[1], -z[0] + t]))
    state = ContinuousState.create(2.0, z=[1.0, 3.0])
    system.realize(state)
    np.testing.assert_array_equal(state.zdot, [3.0, 1.0])
    np.testing.assert_array_equal(state.ydot, [3.0, 1.0])


def test_first_order_defaults():
    system = FirstOrderSystem(lambda t, z: -z)
    state = ContinuousState.create(0.0, z=[0.5, -4.0])
    assert system.constraint_errors(state).shape == (0,)
    assert system.event_triggers(state).shape == (0,)
    np.testing.assert_allclose(system.y_weights(state), [1.0, 0.25])


def test_base_requires_realize():
    with pytest.raises(NotImplementedError):
        SystemBase().realize(ContinuousState.create(0.0, z=[1.0]))


class TestMechanicalSystem:
    @pytest.fixture
    def system(self):
        return MechanicalSystem(
            lambda t, q, u: -q,
            constraints=circle_constraint,
            triggers=lambda t, q, u: q[1],
        )

    def test_realize(self, system):
        state = ContinuousState.create(0.0, q=[1.0, 0.0], u=[0.0, 2.0])
        system.realize(state)
        np.testing.assert_array_equal(state.qdot, [0.0, 2.0])
        np.testing.assert_array_equal(state.udot, [-1.0, 0.0])
        np.testing.assert_array_equal(state.qdotdot, state.udot)

    def test_finite_difference_jacobian(self, system):
        q = np.array([0.6, 0.8])
        np.testing.assert_allclose(system.jacobian(q), [[0.6, 0.8]], atol=1e-8)

    def test_constraint_errors(self, system):
        state = ContinuousState.create(0.0, q=[2.0, 0.0], u=[1.0, 1.0])
        np.testing.assert_allclose(
            system.constraint_errors(state), [1.5, 2.0], atol=1e-6
        )

    def test_project(self, system):
        state = ContinuousState.create(0.0, q=[1.1, 0.2], u=[1.0, 1.0])
        system.realize(state)
        err_est = np.array([1e-3, 0.0, 1e-3, 0.0])
        system.project(state, err_est, 1e-10)

        assert abs(circle_constraint(state.q)[0]) <= 1e-10
        assert state.q @ state.u == pytest.approx(0.0, abs=1e-8)
        # Projection invalidates the derivatives
        assert not state.has_derivatives
        # Error estimate is tangent to the manifold
        assert err_est[:2] @ state.q == pytest.approx(0.0, abs=1e-8)
        assert err_est[2:] @ state.q == pytest.approx(0.0, abs=1e-8)

    def test_project_failure(self):
        system = MechanicalSystem(
            lambda t, q, u: np.zeros(1),
            constraints=lambda q: q**2 + 1.0,
            max_projection_iterations=5,
        )
        state = ContinuousState.create(0.0, q=[0.0], u=[0.0])
        with pytest.raises(ProjectionError):
            system.project(state, np.zeros(2), 1e-8)

    def test_triggers(self, system):
        state = ContinuousState.create(0.0, q=[1.0, -0.5], u=[0.0, 0.0])
        np.testing.assert_array_equal(system.event_triggers(state), [-0.5])

    def test_unconstrained(self):
        system = MechanicalSystem(lambda t, q, u: -q)
        state = ContinuousState.create(0.0, q=[3.0], u=[0.0])
        assert system.constraint_errors(state).shape == (0,)
        system.project(state, np.zeros(2), 1e-8)
        assert state.q[0] == 3.0

    def test_mismatched_q_and_u(self, system):
        state = ContinuousState.create(0.0, q=[1.0, 0.0], u=[0.0])
        with pytest.raises(ValueError):
            system.realize(state)
