"""Tests for simstep.norms module."""

import numpy as np
import pytest

from simstep.norms import (
    calc_weighted_inf_norm,
    calc_weighted_rms_norm,
    projection_limit,
)


def test_rms_norm_unit_weights():
    assert calc_weighted_rms_norm([3.0, 4.0], [1.0, 1.0]) == pytest.approx(
        np.sqrt(12.5)
    )


def test_rms_norm_applies_weights():
    """Weights scale each component before squaring."""
    values = np.array([1e-3, 2e-3])
    weights = np.array([1e3, 0.5e3])
    assert calc_weighted_rms_norm(values, weights) == pytest.approx(1.0)


def test_rms_norm_of_constant_vector_is_its_value():
    assert calc_weighted_rms_norm(np.full(7, 0.25), np.ones(7)) == pytest.approx(
        0.25
    )


def test_norms_of_empty_vector_are_zero():
    assert calc_weighted_rms_norm([], []) == 0.0
    assert calc_weighted_inf_norm([], []) == 0.0


def test_norms_reject_mismatched_shapes():
    with pytest.raises(ValueError):
        calc_weighted_rms_norm([1.0, 2.0], [1.0])
    with pytest.raises(ValueError):
        calc_weighted_inf_norm([1.0], [1.0, 2.0])


def test_inf_norm_is_largest_weighted_magnitude():
    assert calc_weighted_inf_norm([1.0, -4.0, 2.0], [1.0, 0.5, 1.5]) == 3.0


@pytest.mark.parametrize(
    "constraint_tolerance, expected",
    [
        (1e-12, 1e-6),
        (1e-4, 1e-2),
        (0.01, 0.1),
        (0.1, 0.316),
        (0.5, 1.0),
        (1.0, 2.0),
    ],
)
def test_projection_limit(constraint_tolerance, expected):
    """max(2*tol, sqrt(tol)) for the documented tolerance/limit pairs."""
    assert projection_limit(constraint_tolerance) == pytest.approx(
        expected, rel=1e-3
    )
