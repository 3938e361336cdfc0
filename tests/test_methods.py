"""Tests for simstep.methods module."""

import numpy as np
import pytest

from simstep.config import IntegratorConfig
from simstep.dae import DAEStepExecutor
from simstep.errors import MisconfiguredMethodError
from simstep.methods import (
    ExplicitEuler,
    FailureReason,
    RungeKutta3,
    RungeKutta4,
    RungeKuttaMerson,
    StepMethod,
    StepResult,
)
from simstep.state import ContinuousState
from simstep.systems import FirstOrderSystem


@pytest.fixture
def decay():
    return FirstOrderSystem(lambda t, z: -z)


def realized_start(system, z0=1.0):
    state = ContinuousState.create(0.0, z=[z0])
    system.realize(state)
    return state.freeze()


def one_step_error(method, system, h):
    start = realized_start(system)
    advanced = start.copy()
    result = method.attempt_ode_step(system, 0.0, h, start, advanced)
    assert result.converged
    return abs(advanced.z[0] - np.exp(-h)), result


@pytest.mark.parametrize(
    "method, local_order",
    [
        (ExplicitEuler(), 2),
        (RungeKutta3(), 4),
        (RungeKuttaMerson(), 5),
        (RungeKutta4(), 5),
    ],
)
def test_local_error_decreases_with_order(method, local_order, decay):
    """Halving h cuts the local error by about 2**local_order."""
    err_h, _ = one_step_error(method, decay, 0.1)
    err_h2, _ = one_step_error(method, decay, 0.05)
    assert err_h / err_h2 > 0.5 * 2**local_order


def test_explicit_euler_error_estimate(decay):
    """Two half steps compared with one full step."""
    start = realized_start(decay)
    advanced = start.copy()
    result = ExplicitEuler().attempt_ode_step(decay, 0.0, 0.1, start, advanced)
    assert advanced.z[0] == pytest.approx(0.95**2)
    np.testing.assert_allclose(result.err_est, [0.9025 - 0.9])
    assert result.err_order == 2


@pytest.mark.parametrize(
    "method", [ExplicitEuler(), RungeKutta3(), RungeKuttaMerson(), RungeKutta4()]
)
def test_step_leaves_advanced_unrealized(method, decay):
    start = realized_start(decay)
    advanced = start.copy()
    method.attempt_ode_step(decay, 0.0, 0.1, start, advanced)
    assert advanced.t == 0.1
    assert not advanced.has_derivatives
    # start is untouched
    assert start.t == 0.0
    assert start.z[0] == 1.0


def test_merson_error_estimate_tracks_true_error(decay):
    err, result = one_step_error(RungeKuttaMerson(), decay, 0.2)
    assert abs(result.err_est[0]) >= 0.1 * err
    assert abs(result.err_est[0]) < 1e-4


def test_rk4_has_no_error_control(decay):
    _, result = one_step_error(RungeKutta4(), decay, 0.1)
    assert RungeKutta4.has_error_control is False
    np.testing.assert_array_equal(result.err_est, [0.0])


def test_non_finite_step_does_not_converge():
    system = FirstOrderSystem(lambda t, z: np.full_like(z, np.inf))
    start = ContinuousState.create(0.0, z=[1.0])
    system.realize(start)
    advanced = start.copy()
    result = RungeKuttaMerson().attempt_ode_step(
        system, 0.0, 0.1, start, advanced
    )
    assert not result.converged
    assert result.failure is FailureReason.ODE_NOT_CONVERGED


def test_method_identity():
    method = RungeKuttaMerson()
    assert method.name == "RungeKuttaMerson"
    assert (method.min_order, method.max_order) == (4, 4)
    assert method.has_error_control


def test_step_result_failed():
    result = StepResult.failed(FailureReason.PROJECTION_FAILED, err_order=3)
    assert not result.converged
    assert result.err_est is None
    assert result.err_order == 3
    assert result.failure is FailureReason.PROJECTION_FAILED


class TestExtensionPoints:
    def test_neither_overridden(self, decay):
        class NoStep(StepMethod):
            name = "NoStep"

        with pytest.raises(MisconfiguredMethodError):
            DAEStepExecutor(NoStep(), decay, IntegratorConfig())

    def test_both_overridden(self, decay):
        class BothSteps(StepMethod):
            def attempt_ode_step(self, system, t0, t1, start, advanced):
                return StepResult(True)

            def attempt_dae_step(self, executor, t0, t1, start, advanced):
                return StepResult(True)

        with pytest.raises(MisconfiguredMethodError):
            BothSteps.check_extension_points()

    def test_misconfigured_method_is_a_type_error(self):
        with pytest.raises(TypeError):
            StepMethod.check_extension_points()

    def test_calling_missing_ode_step_raises(self, decay):
        start = realized_start(decay)
        with pytest.raises(MisconfiguredMethodError):
            StepMethod().attempt_ode_step(decay, 0.0, 0.1, start, start.copy())

    def test_concrete_methods_are_well_formed(self):
        for cls in (ExplicitEuler, RungeKutta3, RungeKuttaMerson, RungeKutta4):
            cls.check_extension_points()
