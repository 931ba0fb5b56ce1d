"""PID gain tuning by black-box optimisation.

A candidate is the vector ``(kp, ki, kd, speed)``.  Its fitness is obtained by
running a fresh :class:`robot.RobotSimulation` on a track for a fixed number of
ticks and integrating a reward that favours progress along the track while
penalising the distance to a reference point moving at the target speed and
the squared cross-track distance.  Higher fitness is better.

The search itself is delegated to :func:`scipy.optimize.differential_evolution`.
Candidate evaluations are independent so a population can be scored in
parallel by a process pool; each worker builds its own simulation and only
reads the shared track.
"""

from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Sequence
import logging
import math

import numpy as np
import pandas as pd
from scipy.optimize import differential_evolution

try:  # pragma: no cover - import shim
    from .geometry import ClosedTrack
    from .robot import NUM_STATES, RobotParams, RobotSimulation
except ImportError:  # pragma: no cover - direct execution support
    from geometry import ClosedTrack
    from robot import NUM_STATES, RobotParams, RobotSimulation

logger = logging.getLogger(__name__)

DEFAULT_GAINS = (3.130480505558367, 73.01770822094774, 11.273635752474997, 1.6710281486754923)
"""Previously tuned ``(kp, ki, kd, speed)`` used as the default starting point."""

DEFAULT_INITIAL_STATE = (0.0, -4.0, 0.1, 0.0, 0.0, 0.0, 0.0)

DIVERGED_FITNESS = -1.0e12
"""Fitness assigned to candidates whose simulation stops being finite."""

CANDIDATE_NAMES = ("kp", "ki", "kd", "speed")


@dataclass(frozen=True)
class FitnessConfig:
    """Episode settings shared by every candidate evaluation.

    Parameters
    ----------
    horizon_ticks:
        Number of simulation ticks per episode.
    dt:
        Tick length in seconds.
    initial_state:
        Robot state at the start of every episode.
    error_weight:
        Weight of the squared distance to the moving reference point.
    distance_weight:
        Weight of the squared cross-track distance.
    """

    horizon_ticks: int = 4800
    dt: float = 1.0 / 240.0
    initial_state: Sequence[float] = field(default=DEFAULT_INITIAL_STATE)
    error_weight: float = 1.0
    distance_weight: float = 100.0

    def __post_init__(self) -> None:
        if self.horizon_ticks < 1:
            raise ValueError("horizon_ticks must be at least 1")
        if self.dt <= 0:
            raise ValueError("dt must be positive")
        if self.error_weight < 0 or self.distance_weight < 0:
            raise ValueError("reward weights must be non-negative")
        state = tuple(float(v) for v in self.initial_state)
        if len(state) != NUM_STATES:
            raise ValueError(f"initial_state must have {NUM_STATES} entries")
        object.__setattr__(self, "initial_state", state)


def tick_reward(sim: RobotSimulation, config: FitnessConfig) -> float:
    """Reward earned by ``sim`` during the tick about to be simulated."""
    dist_err = sim.robot_sdf_to_path()
    return (
        sim.robot_velocity_reward()
        - config.error_weight * sim.robot_error()
        - config.distance_weight * dist_err * dist_err
    ) * config.dt


def evaluate_fitness(
    candidate: Sequence[float],
    track: ClosedTrack,
    config: FitnessConfig,
    params: RobotParams | None = None,
) -> float:
    """Run one episode for ``candidate`` and return its accumulated reward.

    The result is deterministic for a given candidate and configuration.  If
    the simulation blows up the episode is cut short and
    :data:`DIVERGED_FITNESS` is returned.
    """
    if len(candidate) != len(CANDIDATE_NAMES):
        raise ValueError("candidate must be (kp, ki, kd, speed)")
    kp, ki, kd, speed = (float(v) for v in candidate)
    sim = RobotSimulation(config.initial_state, kp, ki, kd, speed, track, params)

    fitness = 0.0
    with np.errstate(all="ignore"):
        for _ in range(config.horizon_ticks):
            fitness += tick_reward(sim, config)
            if not math.isfinite(fitness):
                return DIVERGED_FITNESS
            sim.step(config.dt)
    return float(fitness)


class RobotOptimizer:
    """Fitness oracle and search driver for a track.

    Instances are callable with a candidate vector and return its fitness, so
    they can be handed to any external black-box optimiser.  They are
    picklable and therefore usable from worker processes.
    """

    def __init__(
        self,
        track: ClosedTrack,
        config: FitnessConfig | None = None,
        params: RobotParams | None = None,
    ) -> None:
        self.track = track
        self.config = FitnessConfig() if config is None else config
        self.params = params

    def __call__(self, candidate: Sequence[float]) -> float:
        return self.evaluate(candidate)

    def evaluate(self, candidate: Sequence[float]) -> float:
        return evaluate_fitness(candidate, self.track, self.config, self.params)

    def evaluate_batch(
        self, candidates: Iterable[Sequence[float]], workers: int | None = 1
    ) -> np.ndarray:
        """Score ``candidates`` independently, optionally in parallel.

        Parameters
        ----------
        candidates:
            Iterable of ``(kp, ki, kd, speed)`` vectors.
        workers:
            Number of worker processes.  ``1`` evaluates in this process and
            ``None`` uses one worker per CPU.
        """
        candidates = [np.asarray(c, dtype=float) for c in candidates]
        if workers == 1:
            return np.array([self.evaluate(c) for c in candidates])
        with ProcessPoolExecutor(max_workers=workers) as ex:
            return np.array(list(ex.map(self.evaluate, candidates)))

    def optimise(
        self,
        x0: Sequence[float] = DEFAULT_GAINS,
        bounds: Sequence[tuple[float, float]] | None = None,
        max_iterations: int = 50,
        population_size: int = 15,
        tol: float = 1e-3,
        seed: int | None = None,
        workers: int | None = 1,
    ) -> "OptimisationResult":
        """Search for the candidate with the highest fitness.

        Parameters
        ----------
        x0:
            Starting candidate, included in the initial population.
        bounds:
            ``(low, high)`` pair per candidate entry.  Defaults to
            ``[0, max(2*|x0|, 1)]`` for every entry.
        max_iterations, population_size, tol, seed:
            Forwarded to :func:`scipy.optimize.differential_evolution` as
            ``maxiter``, ``popsize``, ``tol`` and ``seed``.
        workers:
            Number of worker processes used to score each generation.  ``1``
            evaluates in this process and ``None`` uses one worker per CPU.

        Returns
        -------
        OptimisationResult
            Best candidate, its fitness and the per-generation history.
        """
        x0 = np.asarray(x0, dtype=float)
        if x0.shape != (len(CANDIDATE_NAMES),):
            raise ValueError("x0 must be (kp, ki, kd, speed)")
        if bounds is None:
            upper = np.maximum(2.0 * np.abs(x0), 1.0)
            bounds = [(0.0, float(hi)) for hi in upper]
        if len(bounds) != len(CANDIDATE_NAMES):
            raise ValueError("bounds must provide one (low, high) pair per entry")

        history: List[dict] = []

        def record(xk: np.ndarray, convergence: float = 0.0) -> None:
            entry = dict(zip(CANDIDATE_NAMES, map(float, xk)))
            entry["generation"] = len(history) + 1
            entry["convergence"] = float(convergence)
            history.append(entry)
            logger.info(
                "generation %d: kp=%.4g ki=%.4g kd=%.4g speed=%.4g",
                entry["generation"],
                *xk,
            )

        search_kwargs = {
            "x0": x0,
            "maxiter": max_iterations,
            "popsize": population_size,
            "tol": tol,
            "seed": seed,
            "callback": record,
            "polish": False,
            "updating": "deferred",
        }
        objective = _NegatedFitness(self)
        logger.info("starting gain search from %s", x0)
        if workers == 1:
            result = differential_evolution(objective, bounds, workers=1, **search_kwargs)
        else:
            with ProcessPoolExecutor(max_workers=workers) as ex:
                result = differential_evolution(objective, bounds, workers=ex.map, **search_kwargs)

        best = np.asarray(result.x, dtype=float)
        logger.info("search finished after %d evaluations: %s", result.nfev, result.message)
        return OptimisationResult(
            best=best,
            fitness=-float(result.fun),
            evaluations=int(result.nfev),
            iterations=int(result.nit),
            history=pd.DataFrame(
                history, columns=["generation", *CANDIDATE_NAMES, "convergence"]
            ),
        )


class _NegatedFitness:
    """Minimisation objective wrapping a fitness oracle."""

    def __init__(self, oracle: Callable[[Sequence[float]], float]) -> None:
        self.oracle = oracle

    def __call__(self, candidate: Sequence[float]) -> float:
        return -self.oracle(candidate)


@dataclass
class OptimisationResult:
    """Outcome of :meth:`RobotOptimizer.optimise`."""

    best: np.ndarray
    """Best ``(kp, ki, kd, speed)`` found."""

    fitness: float
    """Fitness of ``best``."""

    evaluations: int
    iterations: int
    history: pd.DataFrame
    """Best candidate after each generation."""

    def as_dict(self) -> dict:
        out = dict(zip(CANDIDATE_NAMES, map(float, self.best)))
        out["fitness"] = self.fitness
        out["evaluations"] = self.evaluations
        out["iterations"] = self.iterations
        return out
