"""Integrator configuration."""

import math
from dataclasses import dataclass
from typing import Optional


@dataclass
class IntegratorConfig:
    """Tolerances and stepping options for an :class:`~simstep.Integrator`.

    The integrator and its step executor share one instance, so
    ``accuracy`` and ``constraint_tolerance`` may be tightened or loosened
    between calls to ``step_to()``.

    Parameters
    ----------
    accuracy : float, default=1e-3
        Target weighted RMS local error per step
    constraint_tolerance : float, optional
        Weighted RMS tolerance on the constraint errors. Defaults to
        ``accuracy``.
    initial_step_size : float, optional
        First trial step size. Defaults to a tenth of the system timescale.
    min_step_size : float, default=1e-12
        The integrator gives up (``AccuracyNotMetError``) when repeated
        failures shrink the step below this size.
    max_step_size : float, default=inf
        Upper bound on the step size
    final_time : float, default=inf
        ``step_to()`` returns ``END_OF_SIMULATION`` once this time is reached
    internal_step_limit : int, optional
        Maximum number of internal steps per ``step_to()`` call
    project_every_step : bool, default=False
        Project onto the constraint manifold after every step, even when
        the constraints are already within tolerance
    project_interpolated_states : bool, default=True
        Project states produced by interpolation
    allow_interpolation : bool, default=True
        Step past report times and interpolate back. If False, steps are
        shortened to land exactly on report times.
    return_every_internal_step : bool, default=False
        Return ``TIME_HAS_ADVANCED`` after every accepted step
    use_infinity_norm : bool, default=False
        Use the max norm instead of the RMS norm for the error test
    event_localization_window : float, optional
        Width to which event triggers are localized. Defaults to
        ``0.1 * accuracy * timescale``.

    Examples
    --------
    >>> config = IntegratorConfig(accuracy=1e-6, max_step_size=0.1)
    >>> config.constraint_tolerance
    1e-06
    """

    accuracy: float = 1e-3
    constraint_tolerance: Optional[float] = None
    initial_step_size: Optional[float] = None
    min_step_size: float = 1e-12
    max_step_size: float = math.inf
    final_time: float = math.inf
    internal_step_limit: Optional[int] = None
    project_every_step: bool = False
    project_interpolated_states: bool = True
    allow_interpolation: bool = True
    return_every_internal_step: bool = False
    use_infinity_norm: bool = False
    event_localization_window: Optional[float] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.constraint_tolerance is None:
            self.constraint_tolerance = self.accuracy
        if not self.accuracy > 0:
            raise ValueError(f"accuracy must be positive, got {self.accuracy}")
        if not self.constraint_tolerance > 0:
            raise ValueError(
                "constraint_tolerance must be positive, got "
                f"{self.constraint_tolerance}"
            )
        if self.min_step_size < 0:
            raise ValueError("min_step_size cannot be negative")
        if self.max_step_size <= self.min_step_size:
            raise ValueError("max_step_size must be greater than min_step_size")
        if self.initial_step_size is not None and self.initial_step_size <= 0:
            raise ValueError("initial_step_size must be positive")
        if self.internal_step_limit is not None and self.internal_step_limit < 1:
            raise ValueError("internal_step_limit must be at least 1")
        if (
            self.event_localization_window is not None
            and self.event_localization_window <= 0
        ):
            raise ValueError("event_localization_window must be positive")
