"""Differential-drive line follower model.

This module couples three pieces:

* :class:`RobotParams` with the robot geometry and the wheel response
  constants, loadable from a ``key,value`` CSV file,
* :func:`robot_dynamics`, the continuous-time model integrated by
  :class:`integrator.Rk4`,
* :class:`RobotSimulation`, which derives a PID steering command from the
  track geometry every tick and advances the model.

The state vector is ``(x, y, theta, wl, dwl, wr, dwr)`` with wheel angular
velocities ``wl``/``wr`` and their time derivatives.  The controls are the
motor commands ``(ul, ur)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

import numpy as np
import pandas as pd

# ``robot`` can be imported either as part of the ``linefollower`` package or as a
# stand-alone module.
try:  # pragma: no cover - import shim
    from .geometry import ClosedTrack
    from .integrator import Rk4
    from .io_utils import read_params_csv
except ImportError:  # pragma: no cover - direct execution support
    from geometry import ClosedTrack
    from integrator import Rk4
    from io_utils import read_params_csv

NUM_STATES = 7
NUM_CONTROLS = 2
X, Y, THETA, WL, DWL, WR, DWR = range(NUM_STATES)


@dataclass(frozen=True)
class RobotParams:
    """Physical constants of the robot.

    Each wheel responds to its motor command as a second order system
    ``C0*w'' + C1*w' + C2*w = u`` with ``C0 = 1/omega0**2``,
    ``C1 = 2*xi/omega0`` and ``C2 = 1``.  ``omega0`` and ``xi`` are tuning
    constants rather than values derived from a motor model.
    """

    wheel_radius: float = 0.04
    """Wheel radius in metres."""

    side_length: float = 0.1
    """Distance between the wheels in metres."""

    omega0: float = 20.0
    """Natural frequency of the wheel response in rad/s."""

    xi: float = 0.71
    """Damping ratio of the wheel response."""

    c0: float = field(init=False)
    c1: float = field(init=False)
    c2: float = field(init=False, default=1.0)

    def __post_init__(self) -> None:
        if self.wheel_radius <= 0 or self.side_length <= 0:
            raise ValueError("wheel_radius and side_length must be positive")
        if self.omega0 <= 0:
            raise ValueError("omega0 must be positive")
        object.__setattr__(self, "c0", 1.0 / self.omega0**2)
        object.__setattr__(self, "c1", 2.0 * self.xi / self.omega0)

    @classmethod
    def from_csv(cls, path: str | Path) -> "RobotParams":
        """Build parameters from a ``key,value`` CSV, ignoring unknown keys."""
        params = read_params_csv(path)
        kwargs = {
            key: float(params[key])
            for key in ("wheel_radius", "side_length", "omega0", "xi")
            if key in params
        }
        return cls(**kwargs)


DEFAULT_PARAMS = RobotParams()


def initial_state(x: float, y: float, theta: float = 0.0) -> np.ndarray:
    """State of a robot at rest at ``(x, y)`` facing ``theta``."""
    state = np.zeros(NUM_STATES)
    state[[X, Y, THETA]] = x, y, theta
    return state


def robot_dynamics(
    t: float,
    x: np.ndarray,
    u: np.ndarray,
    params: RobotParams = DEFAULT_PARAMS,
) -> np.ndarray:
    """Time derivative of the robot state under motor commands ``u``."""
    theta, wl, dwl, wr, dwr = x[THETA], x[WL], x[DWL], x[WR], x[DWR]
    ul, ur = u[0], u[1]

    speed = params.wheel_radius * (wl + wr) / 2.0
    d_theta = params.wheel_radius * (wr - wl) / params.side_length
    d_dwl = (ul - params.c1 * dwl - params.c2 * wl) / params.c0
    d_dwr = (ur - params.c1 * dwr - params.c2 * wr) / params.c0

    return np.array(
        [speed * np.cos(theta), speed * np.sin(theta), d_theta, dwl, d_dwl, dwr, d_dwr]
    )


class RobotSimulation:
    """Line follower driven by a PID controller on the track signed distance.

    Parameters
    ----------
    x0:
        Initial state ``(x, y, theta, wl, dwl, wr, dwr)``.
    kp, ki, kd:
        PID gains.
    speed:
        Target forward speed in metres per second.  The reference point used
        by :meth:`robot_error` moves along the track at this speed.
    track:
        Track to follow.  It is only read.
    params:
        Robot constants.  Defaults to :data:`DEFAULT_PARAMS`.
    """

    def __init__(
        self,
        x0: Iterable[float],
        kp: float,
        ki: float,
        kd: float,
        speed: float,
        track: ClosedTrack,
        params: RobotParams | None = None,
    ) -> None:
        x0 = np.array(x0, dtype=float)
        if x0.shape != (NUM_STATES,):
            raise ValueError(f"x0 must have {NUM_STATES} entries")
        self.params = DEFAULT_PARAMS if params is None else params
        self.track = track
        self.kp = float(kp)
        self.ki = float(ki)
        self.kd = float(kd)
        self.speed = float(speed)
        self.prev_error = 0.0
        self.int_error = 0.0
        self.time = 0.0
        self._state = x0
        self._controls = np.zeros(NUM_CONTROLS)
        self._integrator = Rk4(self._dynamics, 0.0, x0)

    def _dynamics(self, t: float, x: np.ndarray, u: np.ndarray) -> np.ndarray:
        return robot_dynamics(t, x, u, self.params)

    # ------------------------------------------------------------------
    # Queries
    @property
    def state(self) -> np.ndarray:
        return self._state.copy()

    @property
    def controls(self) -> np.ndarray:
        """Motor commands applied during the last step."""
        return self._controls.copy()

    def robot_position(self) -> np.ndarray:
        return self._state[[X, Y]]

    def robot_heading(self) -> float:
        return float(self._state[THETA])

    def robot_sdf_to_path(self) -> float:
        """Signed distance from the robot to the track."""
        return self.track.signed_distance(self.robot_position())

    def theta_error_estimate(self) -> float:
        """Error fed to the controller.

        This is the cross-track signed distance, used as a stand-in for the
        heading error.
        """
        return self.robot_sdf_to_path()

    def reference_point(self) -> np.ndarray:
        """Point travelling along the track at the target speed."""
        return self.track.point_at(self.speed * self.time)

    def reference_tangent(self) -> np.ndarray:
        return self.track.tangent_at(self.speed * self.time)

    def robot_error(self) -> float:
        """Squared distance between the robot and the reference point."""
        diff = self.reference_point() - self.robot_position()
        return float(diff @ diff)

    def robot_velocity(self) -> np.ndarray:
        s = self._state
        v = self.params.wheel_radius * (s[WL] + s[WR]) / 2.0
        return np.array([v * np.cos(s[THETA]), v * np.sin(s[THETA])])

    def robot_projection_tangent(self) -> np.ndarray:
        return self.track.projection_tangent(self.robot_position())

    def robot_velocity_reward(self) -> float:
        """Velocity component along the track direction at the robot."""
        return float(self.robot_velocity() @ self.robot_projection_tangent())

    # ------------------------------------------------------------------
    # Stepping
    def calculate_control(self, dt: float) -> np.ndarray:
        """Update the PID terms and return the motor commands for this tick."""
        error = self.theta_error_estimate()
        deriv_error = (error - self.prev_error) / dt
        # The integral lags one tick behind: it accumulates the previous error.
        self.int_error += self.prev_error * dt
        self.prev_error = error

        desired_dtheta = self.kp * error + self.ki * self.int_error + self.kd * deriv_error
        p = self.params
        k = p.side_length * p.c2 / p.wheel_radius
        v = k * desired_dtheta
        um = 2.0 * self.speed * p.c2 / p.wheel_radius
        return np.array([(um - v) / 2.0, (um + v) / 2.0])

    def step(self, dt: float) -> None:
        """Advance the simulation by one tick of length ``dt``."""
        self._controls = self.calculate_control(dt)
        self._integrator.step(dt, self._controls)
        self._state = self._integrator.state
        self.time += dt


def simulate(
    sim: RobotSimulation,
    n_steps: int,
    dt: float,
    observer: Callable[[RobotSimulation], None] | None = None,
) -> pd.DataFrame:
    """Step ``sim`` ``n_steps`` times and record the trajectory.

    Each row holds the state observed before the step together with the
    commands applied during it.  A final row records the state reached after
    the last step.  ``observer``, if given, is called with ``sim`` before
    every step.
    """
    if n_steps < 0:
        raise ValueError("n_steps must be non-negative")
    if dt <= 0:
        raise ValueError("dt must be positive")

    def snapshot() -> dict:
        s = sim.state
        return {
            "t_s": sim.time,
            "x_m": s[X],
            "y_m": s[Y],
            "theta_rad": s[THETA],
            "wl_radps": s[WL],
            "wr_radps": s[WR],
            "sdf_m": sim.robot_sdf_to_path(),
            "ul": np.nan,
            "ur": np.nan,
        }

    rows = []
    for _ in range(n_steps):
        row = snapshot()
        if observer is not None:
            observer(sim)
        sim.step(dt)
        row["ul"], row["ur"] = sim.controls
        rows.append(row)
    rows.append(snapshot())
    return pd.DataFrame(rows)
