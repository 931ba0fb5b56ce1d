from __future__ import annotations

"""Plotting helpers for simulation and tuning results.

This module contains simple functions for visualising a track, the path
driven by the robot and the evolution of the controller error.  Plots are
produced using :mod:`matplotlib` and return the
:class:`~matplotlib.axes.Axes` instance for further customisation or saving.
"""

from typing import Iterable, Optional

import numpy as np
import matplotlib.pyplot as plt

try:  # pragma: no cover - import shim
    from .geometry import ClosedTrack
except ImportError:  # pragma: no cover - direct execution support
    from geometry import ClosedTrack


def plot_plan_view(
    track: ClosedTrack,
    x_path: Optional[Iterable[float]] = None,
    y_path: Optional[Iterable[float]] = None,
    path_label: str = "Robot",
    n_samples: int = 500,
    ax: Optional[plt.Axes] = None,
) -> plt.Axes:
    """Plot the track plan view.

    Parameters
    ----------
    track:
        Track to draw.  It is sampled at ``n_samples`` evenly spaced arc
        lengths.
    x_path, y_path:
        Optional coordinates of the driven path to overlay.  Both must be
        given together.
    ax:
        Existing axes to draw on.  If ``None`` a new figure and axes are
        created.
    """
    if (x_path is None) != (y_path is None):
        raise ValueError("x_path and y_path must be provided together")

    if ax is None:
        _, ax = plt.subplots()

    pts = track.sample_points(n_samples)
    ax.plot(pts[:, 0], pts[:, 1], color="k", label="Track")
    start = track.first_point()
    ax.plot(start[0], start[1], "ko", label="Start")

    if x_path is not None and y_path is not None:
        ax.plot(x_path, y_path, color="tab:red", label=path_label)

    ax.set_aspect("equal", adjustable="box")
    ax.set_xlabel("x [m]")
    ax.set_ylabel("y [m]")
    ax.legend()
    return ax


def plot_cross_track_error(
    t: Iterable[float],
    sdf: Iterable[float],
    label: str | None = None,
    ax: Optional[plt.Axes] = None,
) -> plt.Axes:
    """Plot the signed distance to the track against time."""
    if ax is None:
        _, ax = plt.subplots()

    ax.plot(t, sdf, color="tab:blue", label=label)
    ax.axhline(0.0, color="k", linewidth=0.5)
    ax.set_xlabel("Time [s]")
    ax.set_ylabel("Signed distance [m]")
    if label is not None:
        ax.legend()
    return ax


def plot_wheel_commands(
    t: Iterable[float],
    ul: Iterable[float],
    ur: Iterable[float],
    ax: Optional[plt.Axes] = None,
) -> plt.Axes:
    """Plot the left and right motor commands against time.

    Non-finite samples (such as the final row of a recorded trajectory, which
    has no command) are skipped.
    """
    if ax is None:
        _, ax = plt.subplots()

    t_arr = np.asarray(list(t), dtype=float)
    for data, name, color in ((ul, "Left", "tab:green"), (ur, "Right", "tab:orange")):
        arr = np.asarray(list(data), dtype=float)
        mask = np.isfinite(arr)
        ax.plot(t_arr[mask], arr[mask], label=name, color=color)

    ax.set_xlabel("Time [s]")
    ax.set_ylabel("Motor command")
    ax.legend()
    return ax


def plot_search_history(history, ax: Optional[plt.Axes] = None) -> plt.Axes:
    """Plot the best candidate entries after each search generation.

    ``history`` is the :class:`pandas.DataFrame` returned in
    :attr:`optimizer.OptimisationResult.history`.
    """
    if ax is None:
        _, ax = plt.subplots()

    for name in ("kp", "ki", "kd", "speed"):
        ax.plot(history["generation"], history[name], marker=".", label=name)
    ax.set_xlabel("Generation")
    ax.set_ylabel("Value")
    ax.set_yscale("symlog")
    ax.legend()
    return ax
