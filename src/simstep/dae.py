"""DAE step attempts: an ODE step followed by constraint projection.

Projection is a nonlinear solve, so it is only attempted when it can
change the outcome of the step:

1. If the raw error estimate is so bad that even a half step would fail,
   the step is returned unprojected and the error test will reject it.
2. If the constraint error is far outside the projection's convergence
   basin, the step is reported as a convergence failure.
3. Otherwise the state (and error estimate) are projected when the
   constraints are violated or projection was requested on every step.
"""

import logging

from simstep.config import IntegratorConfig
from simstep.errors import ProjectionError
from simstep.methods import FailureReason, StepMethod, StepResult
from simstep.norms import calc_weighted_rms_norm, projection_limit

logger = logging.getLogger(__name__)


class DAEStepExecutor:
    """Runs trial steps of a method against a system model.

    Parameters
    ----------
    method : StepMethod
        Integration method. Checked on construction.
    system : SystemModel
        Supplies derivatives, weights, constraint errors and projection
    config : IntegratorConfig
        Source of ``accuracy``, ``constraint_tolerance`` and
        ``project_every_step``, read on every step

    Raises
    ------
    MisconfiguredMethodError
        If the method does not override exactly one extension point.
    """

    def __init__(self, method: StepMethod, system, config: IntegratorConfig):
        method.check_extension_points()
        self.method = method
        self.system = system
        self.config = config

    def attempt_step(self, t0, t1, start, advanced) -> StepResult:
        """Attempt one DAE step from ``start`` (at ``t0``) to ``t1``.

        The result is written into ``advanced``; ``start`` is left alone.
        """
        if not t1 > t0:
            raise ValueError(f"Step end time {t1} must be after start {t0}")
        return self.method.attempt_dae_step(self, t0, t1, start, advanced)

    def project_after_ode_step(self, result: StepResult, advanced) -> StepResult:
        """Apply the projection policy to the result of an ODE step.

        May modify ``advanced`` and ``result.err_est`` in place.
        """
        if not result.converged:
            if result.failure is None:
                result.failure = FailureReason.ODE_NOT_CONVERGED
            return result

        system = self.system
        accuracy = self.config.accuracy
        cons_tol = self.config.constraint_tolerance

        rms_err = calc_weighted_rms_norm(
            result.err_est, system.y_weights(advanced)
        )
        # A half step would have error rms_err / 2**p; if even that fails
        # the accuracy test, projecting cannot save this step.
        if rms_err > 2**result.err_order * accuracy:
            return result

        cons_err = calc_weighted_rms_norm(
            system.constraint_errors(advanced),
            system.one_over_tolerances(advanced),
        )
        limit = projection_limit(cons_tol)
        if cons_err > limit:
            logger.debug(
                "Constraint error %g at t=%g exceeds projection limit %g",
                cons_err,
                advanced.t,
                limit,
            )
            return result.fail(FailureReason.CONSTRAINT_ERROR_TOO_LARGE)

        if self.config.project_every_step or cons_err > cons_tol:
            try:
                system.project(advanced, result.err_est, cons_tol)
            except ProjectionError as exc:
                logger.debug("Projection failed at t=%g: %s", advanced.t, exc)
                return result.fail(FailureReason.PROJECTION_FAILED)
            result.projected = True

        return result
