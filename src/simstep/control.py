"""Step size selection.

The controller decides whether a converged step is accurate enough and
picks the next trial step size from the error estimate, assuming the
local error scales like ``h**err_order``.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from simstep.config import IntegratorConfig

logger = logging.getLogger(__name__)


@dataclass
class StepSizeState:
    """Step sizes and method identity for one integrator.

    Parameters
    ----------
    method_name : str
        Name of the integration method
    min_order, max_order : int
        Range of orders the method may run at
    has_error_control : bool
        Whether the method produces a usable error estimate
    current : float
        Next trial step size
    last : float
        Size of the most recently accepted step (NaN before the first one)
    actual_initial : float, optional
        Size of the first accepted step. Set once.
    """

    method_name: str
    min_order: int
    max_order: int
    has_error_control: bool
    current: float = math.nan
    last: float = math.nan
    actual_initial: Optional[float] = None

    def record_accepted_step(self, h: float) -> None:
        self.last = h
        if self.actual_initial is None:
            self.actual_initial = h


class StepSizeController:
    """Accept/reject test and step size adaptation.

    Parameters
    ----------
    step_size : StepSizeState
        State updated in place
    config : IntegratorConfig
        Source of ``accuracy`` and ``max_step_size``, read on every call
    """

    SAFETY = 0.9
    MIN_SHRINK = 0.1
    MAX_GROW = 5.0
    HYSTERESIS_LOW = 0.9
    HYSTERESIS_HIGH = 1.2

    def __init__(self, step_size: StepSizeState, config: IntegratorConfig):
        self.step_size = step_size
        self.config = config

    def adjust_step_size(
        self, err: float, err_order: int, h_was_artificially_limited: bool
    ) -> bool:
        """Decide on the step just attempted and choose the next step size.

        Parameters
        ----------
        err : float
            Weighted norm of the error estimate for the attempted step
        err_order : int
            Order of the error estimator
        h_was_artificially_limited : bool
            True when the step was shortened to hit a scheduled time. The
            step size is then never increased, because the limit says
            nothing about how large a step the method could take.

        Returns
        -------
        bool
            True if the step should be accepted, False if it should be
            retried with the (now smaller) step size.
        """
        accuracy = self.config.accuracy
        h = self.step_size.current
        accepted = err <= accuracy

        if accepted:
            if err == 0:
                h_new = self.MAX_GROW * h
            else:
                h_new = self.SAFETY * h * (accuracy / err) ** (1.0 / err_order)
            h_new = min(max(h_new, h), self.MAX_GROW * h)
            if h_was_artificially_limited or h_new < self.HYSTERESIS_HIGH * h:
                h_new = h
        elif math.isnan(err):
            h_new = self.MIN_SHRINK * h
        else:
            h_new = self.SAFETY * h * (accuracy / err) ** (1.0 / err_order)
            h_new = max(
                min(h_new, self.HYSTERESIS_LOW * h), self.MIN_SHRINK * h
            )
            logger.debug(
                "Error test failed (err=%g > %g); step %g -> %g",
                err,
                accuracy,
                h,
                h_new,
            )

        self.step_size.current = min(h_new, self.config.max_step_size)
        return accepted

    def shrink_after_convergence_failure(self) -> None:
        self.step_size.current *= 0.5
