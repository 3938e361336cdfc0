"""Adaptive time stepping for ODE and DAE systems.

This package advances the continuous state of a dynamical system with
error-controlled steps, keeping position and velocity constraints
satisfied by projection after every step. States at report times are
produced by Hermite interpolation and event triggers are localized inside
steps.

The integration formula, the system model and the integrator driver are
separate objects: any :class:`StepMethod` can drive any object that
implements the :class:`SystemModel` protocol.

Main Components
---------------
Integrator : Stepping driver (``step_to``, statistics, interpolation)
IntegratorConfig : Tolerances and stepping options
ContinuousState : Time, q, u, z and their derivatives
Simulator : Runs an integrator over report times and events
Trajectory : Reported states with plotting and file output

Methods
-------
ExplicitEuler : First order, step-doubling error control
RungeKutta3 : Third order with embedded second-order estimate
RungeKuttaMerson : Fourth order, five stages
RungeKutta4 : Classic fixed-step RK4 (no error control)

Systems
-------
FirstOrderSystem : dz/dt = f(t, z)
MechanicalSystem : qdot = u, udot = a(t, q, u), g(q) = 0

Examples
--------
>>> import numpy as np
>>> from simstep import (
...     ContinuousState, FirstOrderSystem, Integrator,
...     IntegratorConfig, RungeKuttaMerson,
... )
>>> system = FirstOrderSystem(lambda t, z: -z)
>>> integ = Integrator(
...     RungeKuttaMerson(), system, IntegratorConfig(accuracy=1e-6)
... )
>>> integ.initialize(ContinuousState.create(0.0, z=[1.0]))
>>> status = integ.step_to(1.0)
>>> np.isclose(integ.state.z[0], np.exp(-1.0))
True
"""

# Core components
from simstep.config import IntegratorConfig
from simstep.core import EventHandler, SimulationConfig, Simulator, SystemModel
from simstep.driver import Integrator, IntegratorPhase, StepStatus
from simstep.state import ContinuousState
from simstep.statistics import IntegratorStatistics

# Step attempts
from simstep.control import StepSizeController, StepSizeState
from simstep.dae import DAEStepExecutor
from simstep.interpolation import Interpolator, interpolate_order3
from simstep.methods import (
    ExplicitEuler,
    FailureReason,
    RungeKutta3,
    RungeKutta4,
    RungeKuttaMerson,
    StepMethod,
    StepResult,
)
from simstep.norms import (
    calc_weighted_inf_norm,
    calc_weighted_rms_norm,
    projection_limit,
)

# Systems and results
from simstep.results import Trajectory
from simstep.systems import FirstOrderSystem, MechanicalSystem, SystemBase

# Configuration setup utilities
from simstep.setup import load_integrator_config, read_integrator_config

from simstep.errors import (
    AccuracyNotMetError,
    ConvergenceError,
    InitializationError,
    IntegratorError,
    IntegratorStateError,
    InterpolationRangeError,
    MisconfiguredMethodError,
    ProjectionError,
)

__all__ = [
    # Core
    "Integrator",
    "IntegratorConfig",
    "IntegratorPhase",
    "IntegratorStatistics",
    "StepStatus",
    "ContinuousState",
    "SystemModel",
    "EventHandler",
    "Simulator",
    "SimulationConfig",
    "Trajectory",
    # Step attempts
    "DAEStepExecutor",
    "StepSizeController",
    "StepSizeState",
    "Interpolator",
    "interpolate_order3",
    "StepMethod",
    "StepResult",
    "FailureReason",
    "calc_weighted_rms_norm",
    "calc_weighted_inf_norm",
    "projection_limit",
    # Methods
    "ExplicitEuler",
    "RungeKutta3",
    "RungeKuttaMerson",
    "RungeKutta4",
    # Systems
    "SystemBase",
    "FirstOrderSystem",
    "MechanicalSystem",
    # Setup utilities
    "read_integrator_config",
    "load_integrator_config",
    # Errors
    "IntegratorError",
    "ConvergenceError",
    "ProjectionError",
    "MisconfiguredMethodError",
    "InterpolationRangeError",
    "AccuracyNotMetError",
    "IntegratorStateError",
    "InitializationError",
]
