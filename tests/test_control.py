"""Tests for simstep.control module."""

import math

import pytest

from simstep.config import IntegratorConfig
from simstep.control import StepSizeController, StepSizeState


def make_controller(h=0.1, **config_kwargs):
    config = IntegratorConfig(accuracy=1e-3, **config_kwargs)
    state = StepSizeState(
        method_name="Test",
        min_order=2,
        max_order=2,
        has_error_control=True,
        current=h,
    )
    return StepSizeController(state, config), state


class TestAcceptedSteps:
    def test_tiny_error_grows_by_at_most_max_grow(self):
        controller, state = make_controller()
        assert controller.adjust_step_size(1e-9, 2, False)
        assert state.current == pytest.approx(0.5)

    def test_zero_error_grows_by_max_grow(self):
        controller, state = make_controller()
        assert controller.adjust_step_size(0.0, 2, False)
        assert state.current == pytest.approx(0.5)

    def test_moderate_growth_follows_error_formula(self):
        controller, state = make_controller()
        # 0.9 * (1e-3 / 1e-4)**(1/2) = 2.846
        assert controller.adjust_step_size(1e-4, 2, False)
        assert state.current == pytest.approx(0.1 * 0.9 * math.sqrt(10.0))

    def test_small_growth_is_suppressed(self):
        """Increases below 20% are not worth changing the step size."""
        controller, state = make_controller()
        assert controller.adjust_step_size(0.9e-3, 2, False)
        assert state.current == 0.1

    def test_error_equal_to_accuracy_is_accepted(self):
        controller, state = make_controller()
        assert controller.adjust_step_size(1e-3, 2, False)
        assert state.current == 0.1

    def test_limited_step_is_not_grown(self):
        controller, state = make_controller()
        assert controller.adjust_step_size(0.0, 2, True)
        assert state.current == 0.1

    def test_growth_capped_by_max_step_size(self):
        controller, state = make_controller(max_step_size=0.2)
        assert controller.adjust_step_size(1e-9, 2, False)
        assert state.current == 0.2


class TestRejectedSteps:
    def test_shrink_follows_error_formula(self):
        controller, state = make_controller()
        assert not controller.adjust_step_size(4e-3, 2, False)
        # 0.9 * 0.1 * (1/4)**(1/2)
        assert state.current == pytest.approx(0.045)

    def test_barely_failed_step_still_shrinks(self):
        controller, state = make_controller()
        assert not controller.adjust_step_size(1.001e-3, 2, False)
        assert state.current <= 0.09

    def test_shrink_is_bounded_by_min_shrink(self):
        controller, state = make_controller()
        assert not controller.adjust_step_size(1e3, 2, False)
        assert state.current == pytest.approx(0.01)

    def test_nan_error_is_rejected(self):
        controller, state = make_controller()
        assert not controller.adjust_step_size(math.nan, 2, False)
        assert state.current == pytest.approx(0.01)

    def test_convergence_failure_halves_step(self):
        controller, state = make_controller()
        controller.shrink_after_convergence_failure()
        assert state.current == pytest.approx(0.05)


@pytest.mark.parametrize("err_order", [1, 2, 3, 4, 5])
@pytest.mark.parametrize("err", [0.0, 1e-12, 1e-5, 1e-3, 2e-3, 1.0, math.nan])
def test_limited_step_never_grows(err, err_order):
    """After an artificially limited step the next step is no larger."""
    controller, state = make_controller(h=0.03)
    controller.adjust_step_size(err, err_order, True)
    assert state.current <= 0.03


def test_record_accepted_step_sets_initial_once():
    state = StepSizeState("Test", 1, 1, True, current=0.1)
    assert math.isnan(state.last)
    state.record_accepted_step(0.1)
    state.record_accepted_step(0.4)
    assert state.actual_initial == 0.1
    assert state.last == 0.4
