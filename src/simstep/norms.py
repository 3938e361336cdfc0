"""Weighted error norms.

All norms are dimensionless: each component is scaled by a weight
(typically one over its absolute tolerance) before the norm is taken, so
a result of 1 means "exactly at tolerance".
"""

import math

import numpy as np


def calc_weighted_rms_norm(values, weights) -> float:
    """Weighted root-mean-square norm.

    Parameters
    ----------
    values : array-like
        Vector to measure, shape (n,)
    weights : array-like
        Per-component weights, shape (n,)

    Returns
    -------
    float
        ``sqrt(sum((w_i * v_i)**2) / n)``, or 0.0 for an empty vector.

    Examples
    --------
    >>> calc_weighted_rms_norm([3.0, 4.0], [1.0, 1.0])
    3.5355339059327378
    """
    values = np.asarray(values, dtype=float)
    weights = np.asarray(weights, dtype=float)
    if values.shape != weights.shape:
        raise ValueError(
            f"values shape {values.shape} != weights shape {weights.shape}"
        )
    if values.size == 0:
        return 0.0
    return float(np.sqrt(np.mean((weights * values) ** 2)))


def calc_weighted_inf_norm(values, weights) -> float:
    """Weighted infinity (max-abs) norm; 0.0 for an empty vector."""
    values = np.asarray(values, dtype=float)
    weights = np.asarray(weights, dtype=float)
    if values.shape != weights.shape:
        raise ValueError(
            f"values shape {values.shape} != weights shape {weights.shape}"
        )
    if values.size == 0:
        return 0.0
    return float(np.max(np.abs(weights * values)))


def projection_limit(constraint_tolerance: float) -> float:
    """Largest constraint error we are willing to project from.

    Failure to reach ``sqrt(tol)`` is considered too far outside the
    quadratic convergence region of the projection's Newton iteration.
    Projection is always allowed within ``2*tol`` so that large tolerances
    are not penalized.

    Examples
    --------
    >>> projection_limit(1e-12)
    1e-06
    >>> projection_limit(0.5)
    1.0
    """
    return max(2 * constraint_tolerance, math.sqrt(constraint_tolerance))
