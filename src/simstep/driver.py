"""Adaptive stepping driver.

The :class:`Integrator` advances a system from one stopping time to the
next. Each internal step is attempted by a :class:`DAEStepExecutor`,
judged by a :class:`StepSizeController` and, once accepted, committed as
the new advanced state. States at report times inside the last step are
produced by interpolation rather than by shortening the step.

State handling
--------------
Two committed, read-only states are kept:

previous
    The state at the start of the most recent accepted step
advanced
    The most recent accepted state

A step attempt works on a fresh copy of the advanced state. On accept the
pair ``(previous, advanced)`` is replaced in one assignment; on reject the
copy is simply dropped.
"""

import logging
import math
from enum import Enum
from typing import Optional

import numpy as np

from simstep.config import IntegratorConfig
from simstep.control import StepSizeController, StepSizeState
from simstep.dae import DAEStepExecutor
from simstep.errors import (
    AccuracyNotMetError,
    InitializationError,
    IntegratorStateError,
    ProjectionError,
)
from simstep.interpolation import Interpolator
from simstep.methods import StepMethod
from simstep.norms import (
    calc_weighted_inf_norm,
    calc_weighted_rms_norm,
    projection_limit,
)
from simstep.state import ContinuousState
from simstep.statistics import IntegratorStatistics

logger = logging.getLogger(__name__)


class StepStatus(Enum):
    """Why ``step_to()`` returned."""

    REACHED_REPORT_TIME = "reached_report_time"
    REACHED_EVENT_TRIGGER = "reached_event_trigger"
    REACHED_SCHEDULED_EVENT = "reached_scheduled_event"
    TIME_HAS_ADVANCED = "time_has_advanced"
    REACHED_STEP_LIMIT = "reached_step_limit"
    END_OF_SIMULATION = "end_of_simulation"


class IntegratorPhase(Enum):
    """Where the integrator is in its life cycle."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    STEPPING = "stepping"
    REJECTED = "rejected"
    REPORTED = "reported"
    EVENT_PENDING = "event_pending"
    TERMINAL = "terminal"


class Integrator:
    """Error-controlled time stepper for ODE and DAE systems.

    Parameters
    ----------
    method : StepMethod
        Integration method (e.g. ``RungeKuttaMerson()``)
    system : SystemModel
        Model of the system being integrated
    config : IntegratorConfig, optional
        Tolerances and options. A default configuration is used if None.

    Raises
    ------
    MisconfiguredMethodError
        If the method does not implement a step extension point.

    Examples
    --------
    >>> system = FirstOrderSystem(lambda t, z: -z)
    >>> integ = Integrator(RungeKuttaMerson(), system,
    ...                    IntegratorConfig(accuracy=1e-6))
    >>> integ.initialize(ContinuousState.create(0.0, z=[1.0]))
    >>> integ.step_to(1.0)
    <StepStatus.REACHED_REPORT_TIME: 'reached_report_time'>
    >>> integ.state.z
    array([0.36787...])
    """

    def __init__(
        self,
        method: StepMethod,
        system,
        config: Optional[IntegratorConfig] = None,
    ):
        self.method = method
        self.system = system
        self.config = config or IntegratorConfig()
        self.executor = DAEStepExecutor(method, system, self.config)
        self.interpolator = Interpolator(system, self.config)
        self.step_size = StepSizeState(
            method_name=method.name,
            min_order=method.min_order,
            max_order=method.max_order,
            has_error_control=method.has_error_control,
        )
        self.controller = StepSizeController(self.step_size, self.config)
        self.statistics = IntegratorStatistics()

        self._phase = IntegratorPhase.UNINITIALIZED
        self._previous: Optional[ContinuousState] = None
        self._advanced: Optional[ContinuousState] = None
        self._interpolated: Optional[ContinuousState] = None
        self._event_pending = False
        self._triggered_events: list = []
        self._termination_reason: Optional[str] = None

    # ---- initialization ---------------------------------------------------

    def initialize(self, state: ContinuousState) -> None:
        """Start integrating from ``state``.

        The state is copied, projected onto the constraints if necessary,
        and realized. Step sizes and statistics are reset.

        Raises
        ------
        InitializationError
            If the initial state cannot be projected onto the constraints.
        """
        self._install(state)

        config = self.config
        if config.initial_step_size is not None:
            h = config.initial_step_size
        else:
            h = 0.1 * self.system.timescale
        h = max(h, config.min_step_size)
        self.step_size.current = min(h, config.max_step_size)
        self.step_size.last = math.nan
        self.step_size.actual_initial = None
        self.statistics.reset()
        self._termination_reason = None
        logger.info(
            "Initialized %s at t=%g with step size %g",
            self.method.name,
            self._advanced.t,
            self.step_size.current,
        )

    def reinitialize(self, state: ContinuousState) -> None:
        """Replace the current state, e.g. after handling an event.

        Step sizes and statistics are kept.
        """
        self._require_initialized()
        self._install(state)

    def _install(self, state: ContinuousState) -> None:
        new = state.copy()
        self._make_consistent(new)
        new.freeze()
        self._previous = new
        self._advanced = new
        self._interpolated = None
        self._event_pending = False
        self._triggered_events = []
        self._phase = IntegratorPhase.READY

    def _make_consistent(self, state: ContinuousState) -> None:
        tol = self.config.constraint_tolerance
        cons_err = calc_weighted_rms_norm(
            self.system.constraint_errors(state),
            self.system.one_over_tolerances(state),
        )
        if cons_err > tol:
            try:
                self.system.project(state, np.zeros(state.ny), tol)
            except ProjectionError as exc:
                raise InitializationError(
                    f"Initial state at t={state.t} violates the constraints "
                    f"(error {cons_err:g}) and could not be projected"
                ) from exc
        self.system.realize(state)

    # ---- stepping ---------------------------------------------------------

    def step_to(
        self, report_time: float, scheduled_event_time: float = math.inf
    ) -> StepStatus:
        """Advance until a report time, event or other stopping point.

        Parameters
        ----------
        report_time : float
            Time at which the caller wants to see the state
        scheduled_event_time : float, default=inf
            Time of the next scheduled event. Steps are never taken past it.

        Returns
        -------
        StepStatus
            Reason for returning. The state to look at is :attr:`state`.

        Raises
        ------
        IntegratorStateError
            If the integrator was not initialized or has terminated, or
            ``report_time`` or ``scheduled_event_time`` is earlier than the
            current time.
        AccuracyNotMetError
            If the step size has to shrink below ``min_step_size``.
        ProjectionError
            If the advanced state has to be backed up to a scheduled event
            and the backed-up state cannot be projected.
        """
        self._require_initialized()
        if self._phase is IntegratorPhase.TERMINAL:
            raise IntegratorStateError(
                f"Integrator has terminated ({self._termination_reason})"
            )
        if report_time < self.time:
            raise IntegratorStateError(
                f"Report time {report_time} is before current time {self.time}"
            )
        if scheduled_event_time < self.time:
            raise IntegratorStateError(
                f"Scheduled event time {scheduled_event_time} is before "
                f"current time {self.time}"
            )
        if scheduled_event_time < self._advanced.t:
            # The event falls inside the last step, after the state the
            # caller has seen. Discard the rest of the step.
            self.back_up_advanced_state_by_interpolation(scheduled_event_time)
            self._event_pending = False
            self._triggered_events = []

        steps_this_call = 0
        while True:
            status = self._check_for_return(
                report_time, scheduled_event_time, steps_this_call
            )
            if status is not None:
                return status

            t_max = min(scheduled_event_time, self.config.final_time)
            if not self.config.allow_interpolation:
                t_max = min(t_max, report_time)
            try:
                self.take_one_step(t_max, report_time)
            except AccuracyNotMetError as exc:
                self._terminate(str(exc))
                raise
            steps_this_call += 1
            self._localize_event_trigger()

    def step_by(
        self, interval: float, scheduled_event_time: float = math.inf
    ) -> StepStatus:
        """``step_to(time + interval)``."""
        self._require_initialized()
        return self.step_to(self.time + interval, scheduled_event_time)

    def _check_for_return(
        self, report_time, scheduled_event_time, steps_this_call
    ) -> Optional[StepStatus]:
        t_adv = self._advanced.t

        if report_time < t_adv:
            self._interpolated = self.interpolator.create_interpolated_state(
                self._previous, self._advanced, report_time
            )
            self._phase = IntegratorPhase.REPORTED
            return StepStatus.REACHED_REPORT_TIME
        self._interpolated = None

        if self._event_pending:
            self._event_pending = False
            self._phase = IntegratorPhase.EVENT_PENDING
            return StepStatus.REACHED_EVENT_TRIGGER
        if t_adv >= self.config.final_time:
            self._terminate(f"reached final time {self.config.final_time}")
            return StepStatus.END_OF_SIMULATION
        if t_adv == report_time:
            self._phase = IntegratorPhase.REPORTED
            return StepStatus.REACHED_REPORT_TIME
        if t_adv == scheduled_event_time:
            self._phase = IntegratorPhase.EVENT_PENDING
            return StepStatus.REACHED_SCHEDULED_EVENT
        if steps_this_call > 0 and self.config.return_every_internal_step:
            self._phase = IntegratorPhase.READY
            return StepStatus.TIME_HAS_ADVANCED
        limit = self.config.internal_step_limit
        if limit is not None and steps_this_call >= limit:
            logger.warning(
                "Internal step limit (%d) reached at t=%g", limit, t_adv
            )
            self._phase = IntegratorPhase.READY
            return StepStatus.REACHED_STEP_LIMIT
        return None

    def take_one_step(self, t_max: float, t_report: float) -> bool:
        """Take one accepted step, retrying with smaller steps as needed.

        Parameters
        ----------
        t_max : float
            The step must not end after this time
        t_report : float
            Next report time

        Returns
        -------
        bool
            True if the accepted step ended after ``t_report``, so that
            interpolation is needed to report.

        Raises
        ------
        AccuracyNotMetError
            If the step size becomes smaller than ``min_step_size``.
        """
        start = self._advanced
        t0 = start.t
        stats = self.statistics
        self._phase = IntegratorPhase.STEPPING

        # A stopping time may have left a step size below the floor; that is
        # not a failure, so start again from the floor.
        if self.step_size.current < self.config.min_step_size:
            self.step_size.current = self.config.min_step_size

        while True:
            h = self.step_size.current
            if h < self.config.min_step_size or not t0 + h > t0:
                raise AccuracyNotMetError(
                    f"Unable to advance time past {t0:g}: step size {h:g} "
                    f"is below the minimum {self.config.min_step_size:g}"
                )
            # Losing more than a small fraction of the desired step to a
            # stopping time counts as an artificial limit.
            h_was_artificially_limited = t_max < t0 + 0.95 * h
            if t_max <= t0 + 1.05 * h:
                # Stretch slightly rather than leave a sliver before t_max.
                t1 = t_max
            else:
                t1 = t0 + h
            if h_was_artificially_limited:
                self.step_size.current = t1 - t0

            trial = start.copy()
            result = self.executor.attempt_step(t0, t1, start, trial)
            stats.steps_attempted += 1

            if result.converged:
                stats.convergent_iterations += result.num_iterations
                if self.method.has_error_control:
                    err = self._calc_error_norm(trial, result.err_est)
                    accepted = self.controller.adjust_step_size(
                        err, result.err_order, h_was_artificially_limited
                    )
                    if not accepted:
                        stats.error_test_failures += 1
                else:
                    # Fixed-step methods go back to their own step size
                    # once past the stopping time.
                    self.step_size.current = h
                    accepted = True
            else:
                stats.divergent_iterations += result.num_iterations
                stats.convergence_test_failures += 1
                self.controller.shrink_after_convergence_failure()
                logger.debug(
                    "Step %g -> %g did not converge (%s); retrying with h=%g",
                    t0,
                    t1,
                    result.failure.value if result.failure else "unknown",
                    self.step_size.current,
                )
                accepted = False

            if accepted:
                break
            self._phase = IntegratorPhase.REJECTED

        self.system.realize(trial)
        trial.freeze()
        stats.steps_taken += 1
        self.step_size.record_accepted_step(t1 - t0)
        self._previous, self._advanced = start, trial
        self._interpolated = None
        self._phase = IntegratorPhase.READY
        return t1 > t_report

    def _calc_error_norm(self, state, err_est) -> float:
        weights = self.system.y_weights(state)
        if self.config.use_infinity_norm:
            return calc_weighted_inf_norm(err_est, weights)
        return calc_weighted_rms_norm(err_est, weights)

    # ---- events -----------------------------------------------------------

    def _localize_event_trigger(self) -> bool:
        """Look for witness sign changes in the step just taken.

        If one is found, the trigger is bracketed by bisection and the
        advanced state is backed up to the end of the bracket.
        """
        w_low = self.system.event_triggers(self._previous)
        w_high = self.system.event_triggers(self._advanced)
        triggered = _triggered(w_low, w_high)
        if not triggered.any():
            return False

        window = self.config.event_localization_window
        if window is None:
            window = 0.1 * self.config.accuracy * self.system.timescale
        t_low, t_high = self._previous.t, self._advanced.t

        while t_high - t_low > window:
            t_mid = 0.5 * (t_low + t_high)
            if not t_low < t_mid < t_high:
                break
            mid = self.interpolator.create_interpolated_state(
                self._previous, self._advanced, t_mid
            )
            w_mid = self.system.event_triggers(mid)
            mid_triggered = _triggered(w_low, w_mid)
            if mid_triggered.any():
                t_high = t_mid
                triggered = mid_triggered
            else:
                t_low, w_low = t_mid, w_mid

        if t_high < self._advanced.t:
            try:
                self.back_up_advanced_state_by_interpolation(t_high)
            except ProjectionError as exc:
                logger.warning(
                    "Could not back up to event trigger at t=%g (%s); "
                    "reporting it at the end of the step, t=%g",
                    t_high,
                    exc,
                    self._advanced.t,
                )
        self._triggered_events = np.flatnonzero(triggered).tolist()
        self._event_pending = True
        logger.debug(
            "Event trigger(s) %s localized to (%g, %g]",
            self._triggered_events,
            t_low,
            t_high,
        )
        return True

    @property
    def triggered_events(self) -> list:
        """Indices of the witness functions that triggered most recently."""
        return list(self._triggered_events)

    # ---- interpolation ----------------------------------------------------

    def create_interpolated_state(self, t: float) -> ContinuousState:
        """State at ``t`` within the last step; see :class:`Interpolator`."""
        self._require_initialized()
        return self.interpolator.create_interpolated_state(
            self._previous, self._advanced, t
        )

    def back_up_advanced_state_by_interpolation(self, t: float) -> None:
        """Replace the advanced state by its interpolant at ``t``.

        The part of the last step after ``t`` is discarded; the next step
        starts from the backed-up state.

        Raises
        ------
        InterpolationRangeError
            If ``t`` is outside the last step.
        ProjectionError
            If the backed-up state cannot be projected onto the
            constraints. The advanced state is then left unchanged.
        """
        self._require_initialized()
        backed_up = self.interpolator.back_up_advanced_state_by_interpolation(
            self._previous, self._advanced, t
        )
        self._advanced = backed_up.freeze()
        self.step_size.last = t - self._previous.t
        self._interpolated = None

    # ---- termination ------------------------------------------------------

    def terminate(self, reason: str = "terminated by caller") -> None:
        self._require_initialized()
        self._terminate(reason)

    def _terminate(self, reason: str) -> None:
        self._phase = IntegratorPhase.TERMINAL
        self._termination_reason = reason
        logger.info("Integration terminated at t=%g: %s", self.time, reason)

    def _require_initialized(self) -> None:
        if self._phase is IntegratorPhase.UNINITIALIZED:
            raise IntegratorStateError("Integrator has not been initialized")

    # ---- accessors --------------------------------------------------------

    @property
    def phase(self) -> IntegratorPhase:
        return self._phase

    @property
    def termination_reason(self) -> Optional[str]:
        return self._termination_reason

    @property
    def state(self) -> ContinuousState:
        """The state the caller should look at after ``step_to()``."""
        self._require_initialized()
        if self._interpolated is not None:
            return self._interpolated
        return self._advanced

    @property
    def is_state_interpolated(self) -> bool:
        return self._interpolated is not None

    @property
    def advanced_state(self) -> ContinuousState:
        self._require_initialized()
        return self._advanced

    @property
    def previous_state(self) -> ContinuousState:
        self._require_initialized()
        return self._previous

    @property
    def time(self) -> float:
        return self.state.t

    @property
    def actual_initial_step_size_taken(self) -> float:
        h = self.step_size.actual_initial
        return math.nan if h is None else h

    @property
    def previous_step_size_taken(self) -> float:
        return self.step_size.last

    @property
    def predicted_next_step_size(self) -> float:
        return self.step_size.current

    @property
    def num_steps_attempted(self) -> int:
        return self.statistics.steps_attempted

    @property
    def num_steps_taken(self) -> int:
        return self.statistics.steps_taken

    @property
    def num_error_test_failures(self) -> int:
        return self.statistics.error_test_failures

    @property
    def num_convergence_test_failures(self) -> int:
        return self.statistics.convergence_test_failures

    @property
    def num_convergent_iterations(self) -> int:
        return self.statistics.convergent_iterations

    @property
    def num_divergent_iterations(self) -> int:
        return self.statistics.divergent_iterations

    @property
    def num_iterations(self) -> int:
        return self.statistics.num_iterations

    def reset_method_statistics(self) -> None:
        """Zero all statistics; step sizes and state are untouched."""
        self.statistics.reset()

    @property
    def method_name(self) -> str:
        return self.step_size.method_name

    @property
    def method_min_order(self) -> int:
        return self.step_size.min_order

    @property
    def method_max_order(self) -> int:
        return self.step_size.max_order

    @property
    def method_has_error_control(self) -> bool:
        return self.step_size.has_error_control

    @property
    def accuracy(self) -> float:
        return self.config.accuracy

    def set_accuracy(self, accuracy: float) -> None:
        if not accuracy > 0:
            raise ValueError(f"accuracy must be positive, got {accuracy}")
        self.config.accuracy = accuracy

    @property
    def constraint_tolerance(self) -> float:
        return self.config.constraint_tolerance

    def set_constraint_tolerance(self, tolerance: float) -> None:
        if not tolerance > 0:
            raise ValueError(f"tolerance must be positive, got {tolerance}")
        self.config.constraint_tolerance = tolerance

    @property
    def projection_limit(self) -> float:
        return projection_limit(self.config.constraint_tolerance)

    def __repr__(self):
        return (
            f"Integrator(method={self.method.name}, "
            f"phase={self._phase.value})"
        )


def _triggered(w_before, w_after) -> np.ndarray:
    """Mask of witness functions that crossed or reached zero."""
    w_before = np.asarray(w_before, dtype=float)
    w_after = np.asarray(w_after, dtype=float)
    crossed = np.sign(w_before) * np.sign(w_after) < 0
    reached_zero = (w_after == 0) & (w_before != 0)
    return crossed | reached_zero
