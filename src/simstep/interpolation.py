"""Dense output between the previous and advanced states.

States inside the current step are reconstructed by cubic Hermite
interpolation from the values and derivatives at the two ends of the
step. This is used both to produce states at report times without cutting
the step short, and to back up the advanced state once an event trigger
has been localized inside the step.
"""

import logging

import numpy as np
from scipy.interpolate import CubicHermiteSpline

from simstep.config import IntegratorConfig
from simstep.errors import InterpolationRangeError, ProjectionError
from simstep.state import ContinuousState

logger = logging.getLogger(__name__)


def interpolate_order3(t0, y0, ydot0, t1, y1, ydot1, t) -> np.ndarray:
    """Third-order Hermite interpolation of a vector.

    Parameters
    ----------
    t0, t1 : float
        Interval end points, ``t0 < t1``
    y0, ydot0 : array-like
        Value and derivative at ``t0``, shape (n,)
    y1, ydot1 : array-like
        Value and derivative at ``t1``, shape (n,)
    t : float
        Time at which to evaluate

    Returns
    -------
    ndarray
        Interpolated value, shape (n,)

    Examples
    --------
    >>> interpolate_order3(0.0, [0.0], [0.0], 1.0, [1.0], [2.0], 1.0)
    array([1.])
    """
    y0 = np.asarray(y0, dtype=float)
    if y0.size == 0:
        return np.zeros(0)
    spline = CubicHermiteSpline(
        [t0, t1],
        np.vstack([y0, np.asarray(y1, dtype=float)]),
        np.vstack([np.asarray(ydot0, dtype=float), np.asarray(ydot1, dtype=float)]),
        axis=0,
    )
    return spline(t)


class Interpolator:
    """Builds states inside the interval ``[previous.t, advanced.t]``.

    Neither endpoint state is ever modified; every method returns a new
    state.

    Parameters
    ----------
    system : SystemModel
        Used to realize (and optionally project) interpolated states
    config : IntegratorConfig
        Supplies ``constraint_tolerance`` and
        ``project_interpolated_states``
    """

    def __init__(self, system, config: IntegratorConfig):
        self.system = system
        self.config = config

    def create_interpolated_state(
        self, previous: ContinuousState, advanced: ContinuousState, t: float
    ) -> ContinuousState:
        """Return the state at time ``t`` inside the current step.

        Raises
        ------
        InterpolationRangeError
            If ``t`` is outside ``[previous.t, advanced.t]``.
        """
        return self._interpolate(previous, advanced, t, strict=False)

    def _interpolate(self, previous, advanced, t, strict) -> ContinuousState:
        self._check_range(previous, advanced, t)
        if t == previous.t:
            return previous.copy()
        if t == advanced.t:
            return advanced.copy()

        interp = previous.copy()
        interp.t = t
        interp.set_y(
            interpolate_order3(
                previous.t,
                previous.y,
                previous.ydot,
                advanced.t,
                advanced.y,
                advanced.ydot,
                t,
            )
        )
        if self.config.project_interpolated_states:
            self._project(interp, strict)
        self.system.realize(interp)
        return interp

    def back_up_advanced_state_by_interpolation(
        self, previous: ContinuousState, advanced: ContinuousState, t: float
    ) -> ContinuousState:
        """Return the replacement for ``advanced`` at an earlier time ``t``.

        Everything after ``t`` in the current step is forgotten by the
        caller, which must install the returned state as its new advanced
        state. Unlike reported states, a backed-up state becomes the start
        of the next step, so it must satisfy the constraints.

        Raises
        ------
        ProjectionError
            If the interpolated state cannot be projected.
        """
        backed_up = self._interpolate(previous, advanced, t, strict=True)
        logger.debug("Backed up advanced state from t=%g to t=%g", advanced.t, t)
        return backed_up

    def _project(self, state: ContinuousState, strict: bool) -> None:
        # No error estimate is carried with interpolated states.
        err_est = np.zeros(state.ny)
        try:
            self.system.project(state, err_est, self.config.constraint_tolerance)
        except ProjectionError as exc:
            if strict:
                raise
            logger.warning(
                "Could not project interpolated state at t=%g: %s", state.t, exc
            )

    @staticmethod
    def _check_range(previous, advanced, t) -> None:
        if not previous.t <= t <= advanced.t:
            raise InterpolationRangeError(
                f"Cannot interpolate to t={t}; must be in "
                f"[{previous.t}, {advanced.t}]"
            )
