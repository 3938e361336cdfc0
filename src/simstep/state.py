"""Continuous state container.

A :class:`ContinuousState` holds the time, the continuous variables
``y = (q, u, z)`` and, once a system model has realized it, their time
derivatives. The driver keeps two committed states (previous and advanced)
which are frozen, and works on writable copies during a step attempt.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np


def _as_vector(values) -> np.ndarray:
    if values is None:
        return np.zeros(0)
    return np.array(values, dtype=float).reshape(-1)


@dataclass(eq=False)
class ContinuousState:
    """Time and continuous variables of a dynamical system.

    Parameters
    ----------
    t : float
        Time
    q : ndarray
        Generalized positions, shape (nq,)
    u : ndarray
        Generalized velocities, shape (nu,)
    z : ndarray
        Auxiliary (first-order) variables, shape (nz,)
    qdot, qdotdot, udot, zdot : ndarray, optional
        Derivatives, filled in by ``SystemModel.realize()``

    Examples
    --------
    >>> s = ContinuousState.create(0.0, q=[1.0], u=[0.0])
    >>> s.y
    array([1., 0.])
    >>> s.ny
    2
    """

    t: float
    q: np.ndarray
    u: np.ndarray
    z: np.ndarray
    qdot: Optional[np.ndarray] = None
    qdotdot: Optional[np.ndarray] = None
    udot: Optional[np.ndarray] = None
    zdot: Optional[np.ndarray] = None

    @classmethod
    def create(cls, t: float, q=None, u=None, z=None) -> "ContinuousState":
        """Build a state from array-likes; missing groups are empty."""
        return cls(t=float(t), q=_as_vector(q), u=_as_vector(u), z=_as_vector(z))

    @property
    def nq(self) -> int:
        return len(self.q)

    @property
    def nu(self) -> int:
        return len(self.u)

    @property
    def nz(self) -> int:
        return len(self.z)

    @property
    def ny(self) -> int:
        return self.nq + self.nu + self.nz

    @property
    def y(self) -> np.ndarray:
        """All continuous variables as one vector (a new array)."""
        return np.concatenate([self.q, self.u, self.z])

    @property
    def ydot(self) -> np.ndarray:
        """Time derivative of :attr:`y`.

        Raises
        ------
        ValueError
            If the state has not been realized.
        """
        if not self.has_derivatives:
            raise ValueError(f"State at t={self.t} has no derivatives")
        return np.concatenate([self.qdot, self.udot, self.zdot])

    @property
    def has_derivatives(self) -> bool:
        return (
            self.qdot is not None
            and self.udot is not None
            and self.zdot is not None
        )

    def set_y(self, y) -> None:
        """Overwrite q, u and z from a flat vector.

        Any derivatives become stale and are cleared.
        """
        y = np.asarray(y, dtype=float)
        if y.shape != (self.ny,):
            raise ValueError(f"Expected y of shape ({self.ny},), got {y.shape}")
        nq, nu = self.nq, self.nu
        self.q = y[:nq].copy()
        self.u = y[nq : nq + nu].copy()
        self.z = y[nq + nu :].copy()
        self.clear_derivatives()

    def clear_derivatives(self) -> None:
        self.qdot = self.qdotdot = self.udot = self.zdot = None

    def copy(self) -> "ContinuousState":
        """Return an independent, writable copy."""

        def _copy(a):
            return None if a is None else np.array(a, dtype=float)

        return ContinuousState(
            t=self.t,
            q=_copy(self.q),
            u=_copy(self.u),
            z=_copy(self.z),
            qdot=_copy(self.qdot),
            qdotdot=_copy(self.qdotdot),
            udot=_copy(self.udot),
            zdot=_copy(self.zdot),
        )

    def freeze(self) -> "ContinuousState":
        """Make every array read-only and return self."""
        for name in ("q", "u", "z", "qdot", "qdotdot", "udot", "zdot"):
            arr = getattr(self, name)
            if arr is not None:
                arr.flags.writeable = False
        return self

    @property
    def is_frozen(self) -> bool:
        return not self.q.flags.writeable

    def __repr__(self):
        return (
            f"ContinuousState(t={self.t}, nq={self.nq}, nu={self.nu}, "
            f"nz={self.nz})"
        )
