from __future__ import annotations

"""Command line tool tuning the PID gains on a track.

Running ``python -m linefollower.run_optim`` searches for the
``(kp, ki, kd, speed)`` candidate with the highest episode fitness on the
reference loop (or a track file) and writes the result to a time-stamped
directory under ``outputs``:

``optimal_params.json``
    Best candidate, its fitness and the number of evaluations.
``history.csv``
    Best candidate after every generation.
``history.png``
    Figure of ``history.csv``, written when ``--plot`` is given.
"""

from pathlib import Path
from datetime import datetime
import argparse
import json
import logging
import time

from .geometry import reference_track
from .io_utils import read_track, write_csv
from .optimizer import DEFAULT_GAINS, DEFAULT_INITIAL_STATE, FitnessConfig, RobotOptimizer
from .robot import RobotParams

logger = logging.getLogger(__name__)


def run(
    track_file: str | None = None,
    params_file: str | None = None,
    horizon: float = 20.0,
    dt: float = 1.0 / 240.0,
    x0: tuple[float, float, float, float] = DEFAULT_GAINS,
    max_iter: int = 50,
    population_size: int = 15,
    tol: float = 1e-3,
    seed: int | None = None,
    workers: int | None = None,
    out_root: str | Path = "outputs",
    plot: bool = False,
) -> tuple[dict, Path]:
    """Run the gain search and return the best result and output directory.

    Parameters
    ----------
    horizon, dt:
        Episode length and tick length in seconds used for every fitness
        evaluation.
    x0:
        Starting ``(kp, ki, kd, speed)``.
    max_iter, population_size, tol, seed, workers:
        Forwarded to :meth:`optimizer.RobotOptimizer.optimise`.
    """
    if horizon <= 0 or dt <= 0:
        raise ValueError("horizon and dt must be positive")
    start_time = time.perf_counter()

    track = reference_track() if track_file is None else read_track(track_file)
    robot_params = RobotParams.from_csv(params_file) if params_file is not None else None
    config = FitnessConfig(
        horizon_ticks=int(round(horizon / dt)),
        dt=dt,
        initial_state=DEFAULT_INITIAL_STATE,
    )
    logger.info("optimising on %r with %d ticks per episode", track, config.horizon_ticks)

    result = RobotOptimizer(track, config, robot_params).optimise(
        x0,
        max_iterations=max_iter,
        population_size=population_size,
        tol=tol,
        seed=seed,
        workers=workers,
    )

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    out_dir = Path(out_root) / timestamp
    out_dir.mkdir(parents=True, exist_ok=True)

    best = result.as_dict()
    with (out_dir / "optimal_params.json").open("w") as f:
        json.dump(best, f, indent=2)
    write_csv(result.history, out_dir / "history.csv")

    if plot and not result.history.empty:
        import matplotlib

        matplotlib.use("Agg")
        from .plots import plot_search_history

        ax = plot_search_history(result.history)
        ax.figure.savefig(out_dir / "history.png", dpi=150)

    total_runtime = time.perf_counter() - start_time
    print(
        f"Search: {result.iterations} generations, "
        f"{result.evaluations} evaluations, "
        f"Total runtime: {total_runtime:.3f} s"
    )
    return best, out_dir


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Tune line follower PID gains")
    parser.add_argument(
        "--track", default=None, help="Track description (JSON or CSV); default reference loop"
    )
    parser.add_argument("--params", default=None, help="Robot parameter CSV")
    parser.add_argument("--horizon", type=float, default=20.0, help="Episode length in s")
    parser.add_argument("--dt", type=float, default=1.0 / 240.0, help="Tick length in s")
    parser.add_argument(
        "--x0",
        type=float,
        nargs=4,
        metavar=("KP", "KI", "KD", "SPEED"),
        default=list(DEFAULT_GAINS),
        help="Starting candidate",
    )
    parser.add_argument("--max-iter", type=int, default=50, help="Maximum generations")
    parser.add_argument("--popsize", type=int, default=15, help="Population size multiplier")
    parser.add_argument("--tol", type=float, default=1e-3, help="Convergence tolerance")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker processes (default one per CPU, 1 disables the pool)",
    )
    parser.add_argument("--out", default="outputs", help="Output root directory")
    parser.add_argument("--plot", action="store_true", help="Save a search history figure")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    best, out_dir = run(
        args.track,
        args.params,
        horizon=args.horizon,
        dt=args.dt,
        x0=tuple(args.x0),
        max_iter=args.max_iter,
        population_size=args.popsize,
        tol=args.tol,
        seed=args.seed,
        workers=args.workers,
        out_root=args.out,
        plot=args.plot,
    )
    print(
        f"best Kp: {best['kp']}, Ki: {best['ki']}, Kd: {best['kd']}, speed: {best['speed']}"
    )
    print(f"Outputs written to {out_dir}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
