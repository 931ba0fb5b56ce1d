"""Fixed-step explicit integration of controlled ODEs.

The simulation advances a state vector :math:`x` governed by
:math:`\\dot x = f(t, x, u)` where :math:`u` is a control input supplied by the
caller at every step.  The control is held constant over the whole step
(zero-order hold), including the intermediate Runge-Kutta stages.
"""

from __future__ import annotations

from typing import Callable, Iterable

import numpy as np

Derivative = Callable[[float, np.ndarray, np.ndarray], np.ndarray]


class Rk4:
    """Classic fourth-order Runge-Kutta integrator.

    Parameters
    ----------
    f:
        Derivative function ``f(t, x, u)`` returning an array shaped like
        ``x``.  It must be free of side effects as it is called four times per
        step.
    t:
        Initial time.
    x:
        Initial state.  A copy is stored.

    Notes
    -----
    There is no error estimate and no adaptive step control.  Non-finite
    values produced by ``f`` propagate into the state unchanged.
    """

    def __init__(self, f: Derivative, t: float, x: Iterable[float]) -> None:
        self.f = f
        self.t = float(t)
        self.x = np.array(x, dtype=float)

    @property
    def state(self) -> np.ndarray:
        return self.x.copy()

    def step(self, dt: float, u: np.ndarray) -> None:
        """Advance the state by ``dt`` with ``u`` held constant."""
        f, t, x = self.f, self.t, self.x

        k1 = f(t, x, u)
        k2 = f(t + dt / 2.0, x + dt * k1 / 2.0, u)
        k3 = f(t + dt / 2.0, x + dt * k2 / 2.0, u)
        k4 = f(t + dt, x + dt * k3, u)

        self.x = x + dt * (k1 + 2.0 * k2 + 2.0 * k3 + k4) / 6.0
        self.t = t + dt
