"""Numerical building blocks of the evolution engine.

The module implements the small collection of numerical schemes the scale
evolution relies on:

* :func:`runge_kutta4` – classic fourth-order Runge–Kutta scheme for systems of
  first-order equations, integrating forwards or backwards in time.
* :func:`gauss_legendre` – Gauss–Legendre nodes and weights on an interval.
* :func:`lagrange_weights` – local Lagrange interpolation weights on a
  non-uniform grid.

States are numpy arrays of any shape; the derivative callable must return an
array of the same shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Tuple

import numpy as np

DerivativeFunc = Callable[[float, np.ndarray], np.ndarray]


@dataclass
class IntegrationResult:
    """Container holding the sampled time points and system states."""

    times: Tuple[float, ...]
    states: np.ndarray

    @property
    def final_state(self) -> np.ndarray:
        return self.states[-1]


def _advance_time_grid(t0: float, t_end: float, h: float) -> Tuple[float, ...]:
    if h <= 0:
        raise ValueError("Step size h must be positive.")
    if t_end == t0:
        return (t0,)

    direction = 1.0 if t_end > t0 else -1.0
    n_steps = max(1, int(np.ceil(abs(t_end - t0) / h - 1e-12)))
    times: List[float] = [t0 + direction * abs(t_end - t0) * k / n_steps for k in range(n_steps)]
    times.append(t_end)
    return tuple(times)


def runge_kutta4(
    derivative: DerivativeFunc,
    initial_state: np.ndarray,
    *,
    t0: float,
    t_end: float,
    step: float,
) -> IntegrationResult:
    """Integrate a system with the classic fourth-order Runge–Kutta scheme.

    Parameters
    ----------
    derivative:
        Callable returning ``dy/dt`` given ``(t, y)``.
    initial_state:
        Array describing the starting state ``y(t0)``.
    t0, t_end:
        Start and end of the integration interval; ``t_end < t0`` integrates
        backwards.
    step:
        Largest allowed step size ``|h|``; the interval is split into equal
        steps not exceeding it.

    Returns
    -------
    IntegrationResult
        Sampled time points (including ``t_end``) and states.
    """

    times = _advance_time_grid(t0, t_end, step)
    y = np.array(initial_state, dtype=float)
    states: List[np.ndarray] = [y]

    for idx, t in enumerate(times[:-1]):
        h = times[idx + 1] - t
        k1 = derivative(t, y)
        k2 = derivative(t + 0.5 * h, y + 0.5 * h * k1)
        k3 = derivative(t + 0.5 * h, y + 0.5 * h * k2)
        k4 = derivative(t + h, y + h * k3)
        y = y + (h / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)
        states.append(y)

    return IntegrationResult(times=times, states=np.stack(states))


def gauss_legendre(lower: float, upper: float, n_points: int) -> Tuple[np.ndarray, np.ndarray]:
    """Return Gauss–Legendre nodes and weights mapped onto ``[lower, upper]``."""

    if n_points <= 0:
        raise ValueError("n_points must be a positive integer")
    nodes, weights = np.polynomial.legendre.leggauss(n_points)
    half_width = 0.5 * (upper - lower)
    centre = 0.5 * (upper + lower)
    return centre + half_width * nodes, half_width * weights


def lagrange_weights(grid: np.ndarray, points: np.ndarray, degree: int) -> Tuple[np.ndarray, np.ndarray]:
    """Local Lagrange interpolation weights of ``points`` on ``grid``.

    For every point the ``degree + 1`` grid nodes surrounding it are selected
    and the corresponding Lagrange basis values are returned.

    Returns
    -------
    indices, weights
        Integer array of shape ``(len(points), degree + 1)`` with the node
        indices and float array of the same shape with the weights, so that
        ``(values[indices] * weights).sum(axis=1)`` interpolates ``values``.
    """

    grid = np.asarray(grid, dtype=float)
    points = np.asarray(points, dtype=float)
    if degree < 1 or grid.size < degree + 1:
        raise ValueError("grid too small for the requested interpolation degree")

    interval = np.clip(np.searchsorted(grid, points, side="right") - 1, 0, grid.size - 2)
    start = np.clip(interval - (degree - 1) // 2, 0, grid.size - degree - 1)
    indices = start[:, None] + np.arange(degree + 1)[None, :]
    nodes = grid[indices]

    weights = np.ones_like(nodes)
    for j in range(degree + 1):
        for m in range(degree + 1):
            if m == j:
                continue
            weights[:, j] *= (points - nodes[:, m]) / (nodes[:, j] - nodes[:, m])
    return indices, weights


__all__ = ["IntegrationResult", "gauss_legendre", "lagrange_weights", "runge_kutta4"]
