from __future__ import annotations

"""Command line demo for the line follower simulation.

Running ``python -m linefollower.run_demo`` loads a track (the built-in reference loop
by default), places the robot at rest on the first point of the track and
simulates it under a PID controller for a fixed duration.  Results are written
to a time-stamped directory under ``outputs``:

``trajectory.csv``
    Time, pose, wheel speeds, signed distance to the track and motor commands
    for every tick.
``track.json``
    The closed-path description of the simulated track.
``summary.json``
    Episode fitness, final time and the largest cross-track distance.
``plan_view.png``
    Track with the driven path, written when ``--plot`` is given.
"""

from pathlib import Path
from datetime import datetime
import argparse
import json
import math
import time

import numpy as np

from .geometry import reference_track
from .io_utils import read_params_csv, read_track, write_csv, write_track_json
from .optimizer import DIVERGED_FITNESS, FitnessConfig, tick_reward
from .robot import RobotParams, RobotSimulation, initial_state, simulate

DEFAULT_PARAMS_FILE = "data/robot_params.csv"


def run(
    track_file: str | None = None,
    params_file: str | None = DEFAULT_PARAMS_FILE,
    kp: float | None = None,
    ki: float | None = None,
    kd: float | None = None,
    speed: float | None = None,
    duration: float = 10.0,
    dt: float = 1.0 / 240.0,
    heading: float = 0.0,
    out_root: str | Path = "outputs",
    plot: bool = False,
) -> tuple[dict, Path]:
    """Simulate one episode and return its summary and output directory.

    Parameters
    ----------
    track_file:
        JSON or CSV track description.  ``None`` uses the reference loop.
    params_file:
        ``key,value`` CSV with robot constants and default gains.  Gains
        passed explicitly override the file values.  ``None`` uses the
        built-in defaults.
    duration, dt:
        Simulated time and tick length in seconds.
    heading:
        Initial heading of the robot in radians.
    """
    if duration <= 0 or dt <= 0:
        raise ValueError("duration and dt must be positive")
    start_time = time.perf_counter()

    track = reference_track() if track_file is None else read_track(track_file)
    file_params = read_params_csv(params_file) if params_file is not None else {}
    robot_params = RobotParams.from_csv(params_file) if params_file is not None else RobotParams()

    gains = {"kp": kp, "ki": ki, "kd": kd, "speed": speed}
    for key, value in gains.items():
        if value is None:
            if key not in file_params:
                raise ValueError(f"No value provided for {key}")
            gains[key] = float(file_params[key])

    p0 = track.first_point()
    x0 = initial_state(p0[0], p0[1], heading)
    n_steps = int(round(duration / dt))

    sim = RobotSimulation(
        x0, gains["kp"], gains["ki"], gains["kd"], gains["speed"], track, robot_params
    )
    # Score the episode while it is recorded, as ``evaluate_fitness`` would.
    config = FitnessConfig(horizon_ticks=max(n_steps, 1), dt=dt, initial_state=x0)
    rewards: list[float] = []
    with np.errstate(all="ignore"):
        trajectory = simulate(
            sim, n_steps, dt, observer=lambda s: rewards.append(tick_reward(s, config))
        )
    fitness = sum(rewards, 0.0)
    if not math.isfinite(fitness):
        fitness = DIVERGED_FITNESS

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    out_dir = Path(out_root) / timestamp
    out_dir.mkdir(parents=True, exist_ok=True)

    write_csv(trajectory, out_dir / "trajectory.csv")
    write_track_json(track, out_dir / "track.json")

    summary = {
        **gains,
        "fitness": fitness,
        "final_time_s": float(sim.time),
        "max_abs_sdf_m": float(np.nanmax(np.abs(trajectory["sdf_m"]))),
        "n_steps": n_steps,
        "dt_s": dt,
    }
    with (out_dir / "summary.json").open("w") as f:
        json.dump(summary, f, indent=2)

    if plot:
        import matplotlib

        matplotlib.use("Agg")
        from .plots import plot_plan_view

        ax = plot_plan_view(track, trajectory["x_m"], trajectory["y_m"])
        ax.figure.savefig(out_dir / "plan_view.png", dpi=150)

    total_runtime = time.perf_counter() - start_time
    print(
        f"Simulated {n_steps} steps, "
        f"Max cross-track distance: {summary['max_abs_sdf_m']:.4f} m, "
        f"Total runtime: {total_runtime:.3f} s"
    )

    return summary, out_dir


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run line follower simulation demo")
    parser.add_argument(
        "--track", default=None, help="Track description (JSON or CSV); default reference loop"
    )
    parser.add_argument("--params", default=DEFAULT_PARAMS_FILE, help="Robot parameter CSV")
    parser.add_argument("--kp", type=float, default=None, help="Proportional gain")
    parser.add_argument("--ki", type=float, default=None, help="Integral gain")
    parser.add_argument("--kd", type=float, default=None, help="Derivative gain")
    parser.add_argument("--speed", type=float, default=None, help="Target speed in m/s")
    parser.add_argument("--duration", type=float, default=10.0, help="Simulated time in s")
    parser.add_argument("--dt", type=float, default=1.0 / 240.0, help="Tick length in s")
    parser.add_argument("--heading", type=float, default=0.0, help="Initial heading in rad")
    parser.add_argument("--out", default="outputs", help="Output root directory")
    parser.add_argument("--plot", action="store_true", help="Save a plan view figure")
    args = parser.parse_args(argv)

    summary, out_dir = run(
        args.track,
        args.params,
        kp=args.kp,
        ki=args.ki,
        kd=args.kd,
        speed=args.speed,
        duration=args.duration,
        dt=args.dt,
        heading=args.heading,
        out_root=args.out,
        plot=args.plot,
    )
    print(f"Fitness: {summary['fitness']:.4f}")
    print(f"Outputs written to {out_dir}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
