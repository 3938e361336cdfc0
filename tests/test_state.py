"""Tests for simstep.state module."""

import numpy as np
import pytest

from simstep.state import ContinuousState


@pytest.fixture
def state():
    s = ContinuousState.create(0.5, q=[1.0, 2.0], u=[3.0, 4.0], z=[5.0])
    s.qdot = np.array([3.0, 4.0])
    s.udot = np.array([-1.0, -2.0])
    s.qdotdot = s.udot
    s.zdot = np.array([0.1])
    return s


def test_create_with_missing_groups():
    s = ContinuousState.create(1.0, z=[1.0, 2.0])
    assert s.nq == 0 and s.nu == 0 and s.nz == 2
    assert s.t == 1.0
    assert not s.has_derivatives


def test_y_and_ydot_concatenate_groups(state):
    np.testing.assert_array_equal(state.y, [1.0, 2.0, 3.0, 4.0, 5.0])
    np.testing.assert_array_equal(state.ydot, [3.0, 4.0, -1.0, -2.0, 0.1])
    assert state.ny == 5


def test_set_y_splits_groups_and_clears_derivatives(state):
    state.set_y([10.0, 20.0, 30.0, 40.0, 50.0])
    np.testing.assert_array_equal(state.q, [10.0, 20.0])
    np.testing.assert_array_equal(state.u, [30.0, 40.0])
    np.testing.assert_array_equal(state.z, [50.0])
    assert not state.has_derivatives
    with pytest.raises(ValueError):
        state.ydot


def test_set_y_rejects_wrong_length(state):
    with pytest.raises(ValueError):
        state.set_y([1.0, 2.0])


def test_copy_is_independent(state):
    other = state.copy()
    other.q[0] = 99.0
    other.udot[0] = 99.0
    assert state.q[0] == 1.0
    assert state.udot[0] == -1.0


def test_freeze_makes_arrays_read_only(state):
    state.freeze()
    assert state.is_frozen
    with pytest.raises(ValueError):
        state.q[0] = 0.0
    with pytest.raises(ValueError):
        state.zdot[0] = 0.0

    # Copies of frozen states are writable
    other = state.copy()
    other.q[0] = 0.0
    assert not other.is_frozen
