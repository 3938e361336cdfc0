"""Reference system models.

The integrator talks to the model of the system being simulated only
through the :class:`~simstep.core.SystemModel` protocol. The classes here
implement that protocol for two common cases:

FirstOrderSystem
    Plain ODE ``dz/dt = f(t, z)`` with all variables auxiliary (z).
MechanicalSystem
    Second-order system ``qdot = u``, ``udot = a(t, q, u)`` with optional
    holonomic constraints ``g(q) = 0`` enforced by projection.

Users with their own state model (e.g. a multibody engine) implement the
protocol directly or subclass :class:`SystemBase`.
"""

import logging
from typing import Callable, Optional

import numpy as np

from simstep.errors import ProjectionError
from simstep.norms import calc_weighted_rms_norm

logger = logging.getLogger(__name__)


class SystemBase:
    """Defaults for an unconstrained system with no event triggers.

    Subclasses must implement :meth:`realize`.
    """

    timescale = 1.0

    def realize(self, state) -> None:
        """Compute the derivatives of ``state`` in place."""
        raise NotImplementedError

    def constraint_errors(self, state) -> np.ndarray:
        return np.zeros(0)

    def one_over_tolerances(self, state) -> np.ndarray:
        return np.ones(len(self.constraint_errors(state)))

    def y_weights(self, state) -> np.ndarray:
        """Error weights for each element of y.

        Absolute for values below one in magnitude and relative above.
        """
        return 1.0 / np.maximum(np.abs(state.y), 1.0)

    def project(self, state, err_est, tolerance) -> None:
        """Nothing to project for an unconstrained system."""

    def event_triggers(self, state) -> np.ndarray:
        return np.zeros(0)


class FirstOrderSystem(SystemBase):
    """System defined by ``dz/dt = rhs(t, z)``.

    Parameters
    ----------
    rhs : callable
        Function ``rhs(t, z) -> zdot``
    triggers : callable, optional
        Witness functions ``triggers(t, z) -> array``. An event triggers
        when one of them changes sign.
    timescale : float, default=1.0
        Characteristic time of the system, used to pick default step sizes

    Examples
    --------
    >>> system = FirstOrderSystem(lambda t, z: -z)
    >>> state = ContinuousState.create(0.0, z=[1.0])
    >>> system.realize(state)
    >>> state.zdot
    array([-1.])
    """

    def __init__(
        self,
        rhs: Callable,
        triggers: Optional[Callable] = None,
        timescale: float = 1.0,
    ):
        self.rhs = rhs
        self.triggers = triggers
        self.timescale = timescale

    def realize(self, state) -> None:
        empty = np.zeros(0)
        state.qdot = empty
        state.qdotdot = empty
        state.udot = empty
        state.zdot = np.asarray(self.rhs(state.t, state.z), dtype=float).reshape(
            state.nz
        )

    def event_triggers(self, state) -> np.ndarray:
        if self.triggers is None:
            return np.zeros(0)
        return np.atleast_1d(
            np.asarray(self.triggers(state.t, state.z), dtype=float)
        )

    def __repr__(self):
        return f"FirstOrderSystem(rhs={getattr(self.rhs, '__name__', self.rhs)})"


class MechanicalSystem(SystemBase):
    """Second-order system with optional holonomic constraints.

    Positions q and velocities u satisfy ``qdot = u`` and
    ``udot = acceleration(t, q, u)``. Position constraints ``g(q) = 0``
    imply the velocity constraints ``G(q) u = 0`` with ``G = dg/dq``. The
    constraint errors reported to the integrator are ``[g(q), G(q) u]``.

    Parameters
    ----------
    acceleration : callable
        Function ``acceleration(t, q, u) -> udot``. For constrained systems
        this must already include the constraint forces.
    constraints : callable, optional
        Function ``constraints(q) -> g``, shape (m,)
    constraint_jacobian : callable, optional
        Function ``constraint_jacobian(q) -> G``, shape (m, nq). Estimated
        by central differences if not given.
    triggers : callable, optional
        Witness functions ``triggers(t, q, u) -> array``
    timescale : float, default=1.0
        Characteristic time of the system
    max_projection_iterations : int, default=20
        Newton iterations allowed when projecting positions

    Notes
    -----
    Projection moves q and u by the smallest (least-squares) correction
    that satisfies the constraints, and removes the components of the
    error estimate normal to the constraint manifold.
    """

    def __init__(
        self,
        acceleration: Callable,
        constraints: Optional[Callable] = None,
        constraint_jacobian: Optional[Callable] = None,
        triggers: Optional[Callable] = None,
        timescale: float = 1.0,
        max_projection_iterations: int = 20,
    ):
        if constraint_jacobian is not None and constraints is None:
            raise ValueError("constraint_jacobian given without constraints")
        self.acceleration = acceleration
        self.constraints = constraints
        self.constraint_jacobian = constraint_jacobian
        self.triggers = triggers
        self.timescale = timescale
        self.max_projection_iterations = max_projection_iterations

    def realize(self, state) -> None:
        if state.nq != state.nu:
            raise ValueError(
                f"MechanicalSystem needs nq == nu, got {state.nq} and {state.nu}"
            )
        udot = np.asarray(
            self.acceleration(state.t, state.q, state.u), dtype=float
        ).reshape(state.nu)
        state.qdot = np.array(state.u, dtype=float)
        state.udot = udot
        state.qdotdot = udot
        state.zdot = np.zeros(state.nz)

    def position_errors(self, q) -> np.ndarray:
        if self.constraints is None:
            return np.zeros(0)
        return np.atleast_1d(np.asarray(self.constraints(q), dtype=float))

    def jacobian(self, q) -> np.ndarray:
        """Constraint Jacobian ``G = dg/dq``, shape (m, nq)."""
        if self.constraint_jacobian is not None:
            return np.atleast_2d(
                np.asarray(self.constraint_jacobian(q), dtype=float)
            )
        q = np.asarray(q, dtype=float)
        m = len(self.position_errors(q))
        G = np.empty((m, len(q)))
        for j in range(len(q)):
            dq = 1e-7 * max(1.0, abs(q[j]))
            q_plus, q_minus = q.copy(), q.copy()
            q_plus[j] += dq
            q_minus[j] -= dq
            G[:, j] = (
                self.position_errors(q_plus) - self.position_errors(q_minus)
            ) / (2 * dq)
        return G

    def constraint_errors(self, state) -> np.ndarray:
        if self.constraints is None:
            return np.zeros(0)
        return np.concatenate(
            [self.position_errors(state.q), self.jacobian(state.q) @ state.u]
        )

    def project(self, state, err_est, tolerance) -> None:
        """Project q and u onto the constraint manifold in place.

        Raises
        ------
        ProjectionError
            If the position Newton iteration does not reach ``tolerance``.
        """
        if self.constraints is None:
            return

        q = np.array(state.q, dtype=float)
        for _ in range(self.max_projection_iterations):
            g = self.position_errors(q)
            if calc_weighted_rms_norm(g, np.ones_like(g)) <= tolerance:
                break
            G = self.jacobian(q)
            q += np.linalg.lstsq(G, -g, rcond=None)[0]
        else:
            g = self.position_errors(q)
            if calc_weighted_rms_norm(g, np.ones_like(g)) > tolerance:
                raise ProjectionError(
                    f"Position projection did not converge at t={state.t} "
                    f"in {self.max_projection_iterations} iterations"
                )

        G = self.jacobian(q)
        u = np.array(state.u, dtype=float)
        u -= np.linalg.lstsq(G, G @ u, rcond=None)[0]

        state.q = q
        state.u = u
        state.clear_derivatives()

        # Error components normal to the manifold are removed by the
        # projection, so they must not count against the step.
        nq = state.nq
        for sl in (slice(0, nq), slice(nq, 2 * nq)):
            e = err_est[sl]
            err_est[sl] = e - np.linalg.lstsq(G, G @ e, rcond=None)[0]

    def event_triggers(self, state) -> np.ndarray:
        if self.triggers is None:
            return np.zeros(0)
        return np.atleast_1d(
            np.asarray(self.triggers(state.t, state.q, state.u), dtype=float)
        )

    def __repr__(self):
        constrained = self.constraints is not None
        return f"MechanicalSystem(constrained={constrained})"
