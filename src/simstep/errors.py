"""Exceptions raised by the stepping driver and its collaborators.

Recoverable step failures (:class:`ConvergenceError`,
:class:`ProjectionError`) are turned into failed step results inside the
driver and never reach the caller. Everything else is fatal.
"""


class IntegratorError(Exception):
    """Base class for all integrator errors."""


class ConvergenceError(IntegratorError):
    """An integration formula failed to converge on a trial step."""


class ProjectionError(IntegratorError):
    """The constraint projection could not satisfy the tolerance."""


class MisconfiguredMethodError(IntegratorError, TypeError):
    """A step method implements neither (or both) of the step extension
    points."""


class InterpolationRangeError(IntegratorError, ValueError):
    """Interpolation requested outside the current step interval."""


class AccuracyNotMetError(IntegratorError):
    """The step size shrank below the permitted minimum."""


class IntegratorStateError(IntegratorError, RuntimeError):
    """Operation is not valid in the integrator's current phase."""


class InitializationError(IntegratorError):
    """The initial state could not be made consistent with the
    constraints."""
