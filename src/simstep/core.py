"""System protocol and the simulation front end.

The integrator works with any model of the system being simulated that
implements :class:`SystemModel`. :class:`Simulator` runs an integrator over
a grid of report times, stopping at scheduled events and event triggers,
and collects the reported states into a
:class:`~simstep.results.Trajectory`.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

import numpy as np
import pandas as pd

from simstep.config import IntegratorConfig
from simstep.driver import Integrator, StepStatus
from simstep.methods import StepMethod
from simstep.results import Trajectory, default_state_names
from simstep.state import ContinuousState

logger = logging.getLogger(__name__)


class SystemModel(Protocol):
    """Protocol for the model of the system being integrated.

    The model is responsible for:
    - Computing derivatives of the continuous variables
    - Reporting constraint errors and projecting onto the constraints
    - Supplying error weights and event witness functions

    Weights and tolerances may change between steps; the integrator
    re-reads them every time it needs them.
    """

    timescale: float

    def realize(self, state: ContinuousState) -> None:
        """Fill in ``qdot``, ``qdotdot``, ``udot`` and ``zdot`` of
        ``state`` from its time and continuous variables."""
        ...

    def constraint_errors(self, state: ContinuousState) -> np.ndarray:
        """Position and velocity constraint residuals, shape (m,)."""
        ...

    def one_over_tolerances(self, state: ContinuousState) -> np.ndarray:
        """Weights for the constraint residuals, shape (m,)."""
        ...

    def y_weights(self, state: ContinuousState) -> np.ndarray:
        """Error weights for each element of y, shape (ny,)."""
        ...

    def project(
        self, state: ContinuousState, err_est: np.ndarray, tolerance: float
    ) -> None:
        """Project ``state`` and ``err_est`` onto the constraint manifold
        in place. Raises ``ProjectionError`` on failure."""
        ...

    def event_triggers(self, state: ContinuousState) -> np.ndarray:
        """Event witness function values, shape (n_events,)."""
        ...


class EventHandler(Protocol):
    """Protocol for event handlers used by :class:`Simulator`."""

    def __call__(self, integrator: Any, status: Any) -> Optional[ContinuousState]:
        """Handle an event.

        Parameters
        ----------
        integrator : Integrator
            The integrator, stopped at the event. ``integrator.state`` is
            the state at the event and ``integrator.triggered_events``
            lists the witness functions that triggered.
        status : StepStatus
            ``REACHED_EVENT_TRIGGER`` or ``REACHED_SCHEDULED_EVENT``

        Returns
        -------
        ContinuousState or None
            If a state is returned, integration continues from it.
        """
        ...


@dataclass
class SimulationConfig:
    """Configuration for a simulation run.

    Parameters
    ----------
    t_span : (float, float)
        Start and end times (t0, tf)
    dt : float, optional
        Report interval. Either dt or time_points must be provided.
    time_points : array-like, optional
        Specific report times
    scheduled_events : list of float, optional
        Times at which the event handler must be called. Steps never cross
        these times.
    event_handler : callable, optional
        Called at scheduled events and event triggers; see
        :class:`EventHandler`
    record_events : bool, default=True
        Also record the state at each event
    state_names : list of str, optional
        Names for the columns of y. If None, defaults to
        ['q1', ..., 'u1', ..., 'z1', ...]

    Examples
    --------
    >>> config = SimulationConfig(
    ...     t_span=(0.0, 10.0),
    ...     dt=0.1,
    ...     scheduled_events=[5.0],
    ...     event_handler=kick,
    ... )
    """

    t_span: tuple[float, float]
    dt: Optional[float] = None
    time_points: Optional[np.ndarray] = None
    scheduled_events: list = field(default_factory=list)
    event_handler: Optional[Callable] = None
    record_events: bool = True
    state_names: Optional[list[str]] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.dt is None and self.time_points is None:
            raise ValueError("Must provide either dt or time_points")
        if self.dt is not None and self.time_points is not None:
            raise ValueError("Cannot provide both dt and time_points")
        if self.dt is not None and self.dt <= 0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        t0, tf = self.t_span
        if tf <= t0:
            raise ValueError(f"t_span end {tf} must be after start {t0}")

    def report_times(self) -> np.ndarray:
        """Report times after the start time, ending at ``t_span[1]``."""
        t0, tf = self.t_span
        if self.time_points is not None:
            times = np.asarray(self.time_points, dtype=float)
        else:
            n = int(math.floor((tf - t0) / self.dt + 0.5))
            times = t0 + self.dt * np.arange(1, n + 1)
            if n == 0 or times[-1] < tf:
                times = np.append(times, tf)
            times[-1] = tf
        return np.sort(times[(times > t0) & (times <= tf)])


class Simulator:
    """Runs an integrator over a schedule of report times.

    Parameters
    ----------
    method : StepMethod
        Integration method
    system : SystemModel
        Model of the system being simulated
    integrator_config : IntegratorConfig, optional
        Tolerances and stepping options

    Examples
    --------
    >>> system = FirstOrderSystem(lambda t, z: -z)
    >>> sim = Simulator(RungeKuttaMerson(), system,
    ...                 IntegratorConfig(accuracy=1e-6))
    >>> traj = sim.simulate(
    ...     ContinuousState.create(0.0, z=[1.0]),
    ...     SimulationConfig(t_span=(0.0, 5.0), dt=0.1),
    ... )
    >>> traj.plot()
    """

    def __init__(
        self,
        method: StepMethod,
        system: SystemModel,
        integrator_config: Optional[IntegratorConfig] = None,
    ):
        self.method = method
        self.system = system
        self.integrator_config = integrator_config or IntegratorConfig()
        self.integrator = None

    def simulate(
        self, state0: ContinuousState, config: SimulationConfig
    ) -> Trajectory:
        """Integrate from ``state0`` over ``config.t_span``.

        Parameters
        ----------
        state0 : ContinuousState
            Initial state; its time is replaced by ``config.t_span[0]``
        config : SimulationConfig
            Report times, events and column names

        Returns
        -------
        Trajectory
            States at the start time, every report time and (if
            ``record_events``) every event.

        Notes
        -----
        The simulation loop:
        1. Calls ``step_to(report_time, next_scheduled_event)``
        2. On an event, calls the event handler and reinitializes the
           integrator from the state it returns
        3. On reaching the report time, stores the state
        """
        t0, tf = config.t_span
        state = state0.copy()
        state.t = t0

        integrator = Integrator(self.method, self.system, self.integrator_config)
        integrator.initialize(state)
        self.integrator = integrator

        events = sorted(t for t in config.scheduled_events if t0 < t <= tf)
        times, rows, statuses = [], [], []

        def record(status_name):
            s = integrator.state
            times.append(s.t)
            rows.append(s.y)
            statuses.append(status_name)

        record("initial")
        for t_report in config.report_times():
            while True:
                next_event = events[0] if events else math.inf
                status = integrator.step_to(t_report, next_event)

                if status in (
                    StepStatus.REACHED_EVENT_TRIGGER,
                    StepStatus.REACHED_SCHEDULED_EVENT,
                ):
                    if status is StepStatus.REACHED_SCHEDULED_EVENT:
                        events.pop(0)
                    if config.record_events:
                        record(status.value)
                    self._handle_event(integrator, status, config)
                    continue
                if status in (
                    StepStatus.TIME_HAS_ADVANCED,
                    StepStatus.REACHED_STEP_LIMIT,
                ):
                    continue
                break

            if status is StepStatus.END_OF_SIMULATION:
                logger.info("Simulation ended at t=%g", integrator.time)
                record(status.value)
                break
            record(status.value)

        names = config.state_names or default_state_names(
            state.nq, state.nu, state.nz
        )
        states_df = pd.DataFrame(
            np.array(rows).reshape(len(rows), -1),
            index=pd.Index(times, name="time"),
            columns=names,
        )
        return Trajectory(
            time=np.array(times),
            states=states_df,
            statuses=statuses,
            statistics=integrator.statistics.as_dict(),
            method_name=integrator.method_name,
        )

    @staticmethod
    def _handle_event(integrator, status, config) -> None:
        if config.event_handler is None:
            return
        new_state = config.event_handler(integrator, status)
        if new_state is not None:
            integrator.reinitialize(new_state)

    def __repr__(self):
        return f"Simulator(method={self.method!r}, system={self.system!r})"
