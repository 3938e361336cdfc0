"""Trajectory storage and analysis.

This module provides the Trajectory class for storing the states reported
by an integrator run, together with the stopping status of each sample
and the integrator statistics at the end of the run.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd


def default_state_names(nq: int, nu: int, nz: int) -> list[str]:
    """Column names ``q1.., u1.., z1..`` for a state layout."""
    return (
        [f"q{i+1}" for i in range(nq)]
        + [f"u{i+1}" for i in range(nu)]
        + [f"z{i+1}" for i in range(nz)]
    )


@dataclass
class Trajectory:
    """Container for reported states.

    Parameters
    ----------
    time : ndarray
        Reported times, shape (n_samples,)
    states : DataFrame
        Continuous variables y = (q, u, z) with time index,
        shape (n_samples, ny)
    statuses : list of str, optional
        Stopping status that produced each sample
    statistics : dict, optional
        Integrator statistics at the end of the run
    method_name : str, optional
        Name of the integration method used

    Examples
    --------
    >>> traj = simulator.simulate(state0, config)
    >>> traj.states["z1"].iloc[-1]
    >>> traj.plot()
    """

    time: np.ndarray
    states: pd.DataFrame
    statuses: list = field(default_factory=list)
    statistics: dict = field(default_factory=dict)
    method_name: Optional[str] = None

    def __post_init__(self):
        """Validate lengths and ensure the time index is set."""
        self.time = np.asarray(self.time, dtype=float)
        n_samples = len(self.time)
        if len(self.states) != n_samples:
            raise ValueError(
                f"States length {len(self.states)} != time length {n_samples}"
            )
        if self.statuses and len(self.statuses) != n_samples:
            raise ValueError(
                f"Statuses length {len(self.statuses)} != time length "
                f"{n_samples}"
            )
        if not np.array_equal(self.states.index.values, self.time):
            self.states.index = pd.Index(self.time, name="time")

    @property
    def n_samples(self) -> int:
        return len(self.time)

    @property
    def n_states(self) -> int:
        return len(self.states.columns)

    def plot(self, columns=None, figsize=(10, 6), **kwargs):
        """Plot state trajectories.

        Parameters
        ----------
        columns : list of str, optional
            Columns to plot. All columns by default.
        figsize : tuple, optional
            Figure size (width, height), by default (10, 6)
        **kwargs
            Additional arguments passed to plt.plot()

        Returns
        -------
        fig : matplotlib.figure.Figure
        ax : matplotlib.axes.Axes
        """
        columns = list(self.states.columns) if columns is None else columns
        fig, ax = plt.subplots(figsize=figsize)
        for col in columns:
            ax.plot(self.time, self.states[col], label=col, **kwargs)
        ax.set_xlabel("Time")
        ax.set_ylabel("States")
        title = "State Trajectories"
        if self.method_name:
            title += f" ({self.method_name})"
        ax.set_title(title)
        if len(columns) > 1:
            ax.legend()
        ax.grid(True, alpha=0.3)
        plt.tight_layout()
        return fig, ax

    def to_dataframe(self) -> pd.DataFrame:
        """Return the states with time as a column and a status column."""
        df = self.states.reset_index()
        if self.statuses:
            df["status"] = self.statuses
        return df

    def save(self, filename: str):
        """Save to .npz (NumPy), .csv (pandas) or .mat (MATLAB).

        Examples
        --------
        >>> traj.save('pendulum.npz')
        """
        ext = os.path.splitext(filename)[1].lower()

        if ext == ".npz":
            np.savez_compressed(
                filename,
                time=self.time,
                states=self.states.to_numpy(),
                state_columns=np.array(self.states.columns.tolist()),
                statuses=np.array(self.statuses, dtype=str),
            )
        elif ext == ".csv":
            self.to_dataframe().to_csv(filename, index=False)
        elif ext == ".mat":
            from scipy.io import savemat

            savemat(
                filename,
                {"time": self.time, "states": self.states.to_numpy()},
            )
        else:
            raise ValueError(
                f"Unsupported file extension '{ext}'. Use .npz, .csv, or .mat"
            )

    @classmethod
    def load(cls, filename: str) -> "Trajectory":
        """Load a trajectory saved in .npz format."""
        ext = os.path.splitext(filename)[1].lower()
        if ext != ".npz":
            raise ValueError(f"Unsupported file extension '{ext}'. Use .npz")

        data = np.load(filename, allow_pickle=False)
        time = data["time"]
        states = pd.DataFrame(
            data["states"],
            index=pd.Index(time, name="time"),
            columns=data["state_columns"].tolist(),
        )
        statuses = data["statuses"].tolist() if "statuses" in data else []
        return cls(time=time, states=states, statuses=statuses)

    def __repr__(self):
        return (
            f"Trajectory(n_samples={self.n_samples}, n_states={self.n_states})"
        )
