import sys
from pathlib import Path

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pytest

# Add the package directory to the import path for test execution.
sys.path.append(str(Path(__file__).resolve().parents[1] / "linefollower"))

from geometry import reference_track
from plots import (
    plot_cross_track_error,
    plot_plan_view,
    plot_search_history,
    plot_wheel_commands,
)


def test_plot_plan_view_requires_both_path_coordinates():
    track = reference_track()
    with pytest.raises(ValueError):
        plot_plan_view(track, x_path=[0.0, 1.0])
    with pytest.raises(ValueError):
        plot_plan_view(track, y_path=[0.0, 1.0])


def test_plot_plan_view_returns_axes():
    ax = plot_plan_view(reference_track(), n_samples=50)
    assert ax.get_xlabel() == "x [m]"
    labels = [line.get_label() for line in ax.get_lines()]
    assert labels == ["Track", "Start"]
    assert len(ax.get_lines()[0].get_xdata()) == 51
    plt.close(ax.figure)


def test_plot_plan_view_with_path():
    x = np.linspace(0.0, 2.0, 10)
    y = np.full_like(x, -4.0)
    ax = plot_plan_view(reference_track(), x, y, path_label="Run 1")
    assert "Run 1" in [line.get_label() for line in ax.get_lines()]
    plt.close(ax.figure)


def test_plot_cross_track_error_with_label():
    t = np.linspace(0.0, 1.0, 5)
    ax = plot_cross_track_error(t, 0.1 * t, label="PID")
    assert ax.get_lines()[0].get_label() == "PID"
    assert ax.get_legend() is not None
    plt.close(ax.figure)


def test_plot_wheel_commands_skips_missing_samples():
    t = np.linspace(0.0, 1.0, 5)
    ul = np.array([1.0, 2.0, 3.0, 4.0, np.nan])
    ur = np.array([2.0, 3.0, 4.0, 5.0, np.nan])
    ax = plot_wheel_commands(t, ul, ur)
    lines = ax.get_lines()
    assert [line.get_label() for line in lines] == ["Left", "Right"]
    assert len(lines[0].get_xdata()) == 4
    plt.close(ax.figure)


def test_plot_search_history():
    history = pd.DataFrame(
        {
            "generation": [1, 2],
            "kp": [1.0, 2.0],
            "ki": [3.0, 4.0],
            "kd": [0.5, 0.6],
            "speed": [0.3, 0.4],
            "convergence": [0.1, 0.2],
        }
    )
    ax = plot_search_history(history)
    labels = [line.get_label() for line in ax.get_lines()]
    assert labels == ["kp", "ki", "kd", "speed"]
    plt.close(ax.figure)
