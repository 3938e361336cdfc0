"""Integration methods.

A method is a :class:`StepMethod` object chosen when the integrator is
built. It supplies one trial step at a time; the driver never needs to
know which method it is using.

There are two extension points and a concrete method overrides exactly
one of them:

``attempt_ode_step``
    Take a raw ODE step and return an error estimate. The default
    ``attempt_dae_step`` then takes care of constraint projection.
``attempt_dae_step``
    Take the whole DAE step, including any projection, when the default
    projection policy does not suit the method.

Notes
-----
An ODE step must leave the new ``y`` in the ``advanced`` state without
realizing derivatives there. Projection may still move that point, so the
derivative evaluation would be wasted.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from simstep.errors import ConvergenceError, MisconfiguredMethodError

logger = logging.getLogger(__name__)


class FailureReason(Enum):
    """Why a trial step did not converge."""

    ODE_NOT_CONVERGED = "ode_not_converged"
    CONSTRAINT_ERROR_TOO_LARGE = "constraint_error_too_large"
    PROJECTION_FAILED = "projection_failed"


@dataclass
class StepResult:
    """Outcome of one trial step.

    Parameters
    ----------
    converged : bool
        If False the error estimate is meaningless and the step must be
        retried with a smaller step size.
    err_est : ndarray, optional
        Estimated absolute error in each element of y
    err_order : int
        Order of the error estimate
    num_iterations : int
        Iterations used by the step; always 1 for non-iterative methods
    failure : FailureReason, optional
        Set when ``converged`` is False
    projected : bool
        True if the advanced state was projected onto the constraints
    """

    converged: bool
    err_est: Optional[np.ndarray] = None
    err_order: int = 1
    num_iterations: int = 1
    failure: Optional[FailureReason] = None
    projected: bool = False

    @classmethod
    def failed(
        cls, reason: FailureReason, err_order: int = 1, num_iterations: int = 1
    ) -> "StepResult":
        return cls(
            converged=False,
            err_order=err_order,
            num_iterations=num_iterations,
            failure=reason,
        )

    def fail(self, reason: FailureReason) -> "StepResult":
        """Mark this result as not converged."""
        self.converged = False
        self.failure = reason
        return self


class StepMethod:
    """Base class for integration methods.

    Class attributes ``name``, ``min_order``, ``max_order`` and
    ``has_error_control`` identify the method and never change.
    """

    name = "StepMethod"
    min_order = 1
    max_order = 1
    has_error_control = True

    @classmethod
    def check_extension_points(cls) -> None:
        """Fail fast unless exactly one extension point is overridden.

        Raises
        ------
        MisconfiguredMethodError
        """
        overrides_ode = cls.attempt_ode_step is not StepMethod.attempt_ode_step
        overrides_dae = cls.attempt_dae_step is not StepMethod.attempt_dae_step
        if overrides_ode and overrides_dae:
            raise MisconfiguredMethodError(
                f"{cls.__name__} overrides both attempt_ode_step() and "
                "attempt_dae_step(); override exactly one"
            )
        if not (overrides_ode or overrides_dae):
            raise MisconfiguredMethodError(
                f"{cls.__name__} must override attempt_ode_step() or "
                "attempt_dae_step()"
            )

    def attempt_dae_step(self, executor, t0, t1, start, advanced) -> StepResult:
        """Take a trial DAE step from ``start`` to time ``t1``.

        Parameters
        ----------
        executor : DAEStepExecutor
            Supplies the system model and the projection policy
        t0, t1 : float
            Start and end time of the step
        start : ContinuousState
            Realized state at ``t0``. Must not be modified.
        advanced : ContinuousState
            Working state, overwritten with the result at ``t1``

        Returns
        -------
        StepResult
        """
        try:
            result = self.attempt_ode_step(
                executor.system, t0, t1, start, advanced
            )
        except (ConvergenceError, ArithmeticError) as exc:
            logger.debug("ODE step %g -> %g failed: %s", t0, t1, exc)
            return StepResult.failed(FailureReason.ODE_NOT_CONVERGED)
        return executor.project_after_ode_step(result, advanced)

    def attempt_ode_step(self, system, t0, t1, start, advanced) -> StepResult:
        """Take a raw ODE step, leaving the new y in ``advanced``.

        Arguments are as for :meth:`attempt_dae_step`, except that the
        system model is passed directly.
        """
        raise MisconfiguredMethodError(
            f"{type(self).__name__}.attempt_ode_step() was called but is not "
            "defined; every method must override attempt_ode_step() or "
            "attempt_dae_step()"
        )

    def __repr__(self):
        return f"{type(self).__name__}()"


class ExplicitRungeKutta(StepMethod):
    """Shared machinery for explicit one-step methods.

    Stages are evaluated by writing the stage value into the working state
    and realizing it, so subclasses only write the formula.
    """

    def _stage(self, system, advanced, t, y) -> np.ndarray:
        advanced.t = t
        advanced.set_y(y)
        system.realize(advanced)
        return advanced.ydot

    def _finish(self, advanced, t1, y1, err_est, err_order) -> StepResult:
        if not (np.all(np.isfinite(y1)) and np.all(np.isfinite(err_est))):
            return StepResult.failed(
                FailureReason.ODE_NOT_CONVERGED, err_order=err_order
            )
        advanced.t = t1
        advanced.set_y(y1)
        return StepResult(
            converged=True,
            err_est=np.array(err_est, dtype=float),
            err_order=err_order,
            num_iterations=1,
        )


class ExplicitEuler(ExplicitRungeKutta):
    """First-order explicit Euler with step-doubling error control.

    The step is taken as two half steps; the difference from a single full
    Euler step is the error estimate.

    Examples
    --------
    >>> integrator = Integrator(ExplicitEuler(), system)
    """

    name = "ExplicitEuler"
    min_order = 1
    max_order = 1

    def attempt_ode_step(self, system, t0, t1, start, advanced) -> StepResult:
        h = t1 - t0
        y0, f0 = start.y, start.ydot
        y_full = y0 + h * f0
        y_half = y0 + 0.5 * h * f0
        f_half = self._stage(system, advanced, t0 + 0.5 * h, y_half)
        y1 = y_half + 0.5 * h * f_half
        return self._finish(advanced, t1, y1, y1 - y_full, err_order=2)


class RungeKutta3(ExplicitRungeKutta):
    """Kutta's third-order method with an embedded midpoint estimate."""

    name = "RungeKutta3"
    min_order = 3
    max_order = 3

    def attempt_ode_step(self, system, t0, t1, start, advanced) -> StepResult:
        h = t1 - t0
        y0, k1 = start.y, start.ydot
        k2 = self._stage(system, advanced, t0 + h / 2, y0 + h / 2 * k1)
        k3 = self._stage(system, advanced, t1, y0 + h * (2 * k2 - k1))
        y3 = y0 + h / 6 * (k1 + 4 * k2 + k3)
        y2 = y0 + h * k2
        return self._finish(advanced, t1, y3, y3 - y2, err_order=3)


class RungeKuttaMerson(ExplicitRungeKutta):
    """Five-stage, fourth-order Runge-Kutta-Merson method.

    A good general purpose choice for non-stiff problems.
    """

    name = "RungeKuttaMerson"
    min_order = 4
    max_order = 4

    def attempt_ode_step(self, system, t0, t1, start, advanced) -> StepResult:
        h = t1 - t0
        y0, k1 = start.y, start.ydot
        k2 = self._stage(system, advanced, t0 + h / 3, y0 + h / 3 * k1)
        k3 = self._stage(
            system, advanced, t0 + h / 3, y0 + h / 6 * (k1 + k2)
        )
        k4 = self._stage(
            system, advanced, t0 + h / 2, y0 + h / 8 * (k1 + 3 * k3)
        )
        k5 = self._stage(
            system, advanced, t1, y0 + h / 2 * (k1 - 3 * k3 + 4 * k4)
        )
        y1 = y0 + h / 6 * (k1 + 4 * k4 + k5)
        err_est = h / 30 * (2 * k1 - 9 * k3 + 8 * k4 - k5)
        return self._finish(advanced, t1, y1, err_est, err_order=4)


class RungeKutta4(ExplicitRungeKutta):
    """Classic 4th-order Runge-Kutta without error control.

    Every converged step is accepted, so the step size stays at the
    configured initial step size (or the distance to the next stopping
    time).
    """

    name = "RungeKutta4"
    min_order = 4
    max_order = 4
    has_error_control = False

    def attempt_ode_step(self, system, t0, t1, start, advanced) -> StepResult:
        h = t1 - t0
        y0, k1 = start.y, start.ydot
        k2 = self._stage(system, advanced, t0 + h / 2, y0 + h / 2 * k1)
        k3 = self._stage(system, advanced, t0 + h / 2, y0 + h / 2 * k2)
        k4 = self._stage(system, advanced, t1, y0 + h * k3)
        y1 = y0 + h / 6 * (k1 + 2 * k2 + 2 * k3 + k4)
        return self._finish(advanced, t1, y1, np.zeros_like(y1), err_order=4)
