"""Run configuration for the forward model.

The module collects the global constants of a fit and the configuration
records that are constructed once by the caller and shared read-only by every
forward-model evaluation:

* :class:`GridConfig` – the x and Q² node layout of the evolution grid.
* :class:`EvolutionConfig` – perturbative order, coupling and flavour scheme.
* :class:`SplineConfig` – spline table bookkeeping and integration settings.

The ``default_*`` factories reproduce the reference HERA scenario used in the
examples and tests.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np

# --- Constants -----------------------------------------------------------------

# Evolution accuracy above which a forward-model call is flagged.
EVOLUTION_EPS_THRESHOLD = 0.05

# HERA running conditions.
SQRT_S = 318.0  # GeV, centre-of-mass energy used for bin integration
RS_CUT = 370.0  # GeV, kinematic limit applied when filling cross-section splines
LUMINOSITY_EP = 185.0  # pb^-1
LUMINOSITY_EM = 169.9  # pb^-1

# Gauss-Legendre points per dimension for the bin integrals.
GAUSS_POINTS = 6

# Structure-function and cross-section spline tables, in registration order.
SPLINE_NAMES: Tuple[str, ...] = (
    "F2up",
    "F2dn",
    "F3up",
    "F3dn",
    "FLup",
    "FLdn",
    "F_eP",
    "F_eM",
)


def _allocate_intervals(lengths: Sequence[float], total: int) -> List[int]:
    """Split ``total`` grid intervals proportionally to ``lengths``.

    Uses the largest-remainder rule so the counts always add up to ``total``
    and every region keeps at least one interval.
    """

    weight_sum = sum(lengths)
    raw = [total * length / weight_sum for length in lengths]
    counts = [max(1, int(math.floor(value))) for value in raw]
    order = sorted(range(len(raw)), key=lambda idx: raw[idx] - math.floor(raw[idx]), reverse=True)
    idx = 0
    while sum(counts) < total:
        counts[order[idx % len(order)]] += 1
        idx += 1
    while sum(counts) > total:
        largest = max(range(len(counts)), key=lambda k: counts[k])
        counts[largest] -= 1
    return counts


def _log_nodes(bounds: Sequence[float], densities: Sequence[float], n_nodes: int) -> np.ndarray:
    """Return ``n_nodes`` log-spaced nodes with region dependent density."""

    log_bounds = np.log(np.asarray(bounds, dtype=float))
    lengths = [
        density * (upper - lower)
        for density, lower, upper in zip(densities, log_bounds[:-1], log_bounds[1:])
    ]
    counts = _allocate_intervals(lengths, n_nodes - 1)
    pieces = []
    for count, lower, upper in zip(counts, log_bounds[:-1], log_bounds[1:]):
        pieces.append(np.linspace(lower, upper, count + 1)[:-1])
    pieces.append(log_bounds[-1:])
    return np.exp(np.concatenate(pieces))


@dataclass(frozen=True)
class GridConfig:
    """Layout of the x and Q² evolution grid.

    Parameters
    ----------
    x_min:
        Lower edges of the x regions, increasing, the last region ends at
        ``x = 1``.
    x_weights:
        Relative point density of each x region.
    nx:
        Number of x nodes, including the ``x = 1`` end point.
    qq_bounds:
        Q² values delimiting the Q² regions in GeV².
    qq_weights:
        Point density attached to each Q² bound; a region uses the mean of
        its two end points.
    nq:
        Number of Q² nodes.
    spline_interp:
        Interpolation order, ``2`` for linear and ``3`` for quadratic.
    """

    x_min: Tuple[float, ...] = (1.0e-3, 1.0e-1, 5.0e-1)
    x_weights: Tuple[float, ...] = (1.0, 2.0, 2.0)
    nx: int = 100
    qq_bounds: Tuple[float, ...] = (1.0e2, 3.0e4)
    qq_weights: Tuple[float, ...] = (1.0, 1.0)
    nq: int = 50
    spline_interp: int = 3

    def __post_init__(self) -> None:
        object.__setattr__(self, "x_min", tuple(float(v) for v in self.x_min))
        object.__setattr__(self, "x_weights", tuple(float(v) for v in self.x_weights))
        object.__setattr__(self, "qq_bounds", tuple(float(v) for v in self.qq_bounds))
        object.__setattr__(self, "qq_weights", tuple(float(v) for v in self.qq_weights))

        if len(self.x_min) == 0 or len(self.x_min) != len(self.x_weights):
            raise ValueError("x_min and x_weights must be non-empty and of equal length")
        if any(b <= a for a, b in zip(self.x_min[:-1], self.x_min[1:])):
            raise ValueError("x_min must be strictly increasing")
        if self.x_min[0] <= 0.0 or self.x_min[-1] >= 1.0:
            raise ValueError("x_min values must lie inside (0, 1)")
        if any(w <= 0.0 for w in self.x_weights):
            raise ValueError("x_weights must be positive")
        if len(self.qq_bounds) < 2 or len(self.qq_bounds) != len(self.qq_weights):
            raise ValueError("qq_bounds needs at least two values and one weight per bound")
        if any(b <= a for a, b in zip(self.qq_bounds[:-1], self.qq_bounds[1:])):
            raise ValueError("qq_bounds must be strictly increasing")
        if self.qq_bounds[0] <= 0.0:
            raise ValueError("qq_bounds must be positive")
        if any(w <= 0.0 for w in self.qq_weights):
            raise ValueError("qq_weights must be positive")
        if self.spline_interp not in (2, 3):
            raise ValueError("spline_interp must be 2 (linear) or 3 (quadratic)")
        if self.nx < len(self.x_min) + 1 + self.spline_interp:
            raise ValueError("nx is too small for the requested x regions")
        if self.nq < max(len(self.qq_bounds), 4):
            raise ValueError("nq must be at least 4 and cover every Q² bound")

    @property
    def degree(self) -> int:
        """Polynomial degree of the local interpolation."""

        return self.spline_interp - 1

    def x_nodes(self) -> np.ndarray:
        return _log_nodes(self.x_min + (1.0,), self.x_weights, self.nx)

    def q2_nodes(self) -> np.ndarray:
        densities = [
            0.5 * (lower + upper)
            for lower, upper in zip(self.qq_weights[:-1], self.qq_weights[1:])
        ]
        return _log_nodes(self.qq_bounds, densities, self.nq)


@dataclass(frozen=True)
class EvolutionConfig:
    """Settings of the scale evolution.

    ``q0`` is the starting scale in GeV² at which both the input PDFs and
    ``alpha_s`` are specified.  With ``n_fixed_flav`` between 3 and 6 the
    number of active flavours is fixed; with ``0`` it steps up at the Q² grid
    indices ``iqc``, ``iqb`` and ``iqt``.
    """

    order: int = 2
    alpha_s: float = 0.118
    q0: float = 100.0
    grid: GridConfig = field(default_factory=GridConfig)
    n_fixed_flav: int = 5
    iqc: int = 1
    iqb: int = 1
    iqt: int = 1
    weight_type: int = 1

    def n_flavours(self, iq: int) -> int:
        """Number of active flavours at Q² grid index ``iq``."""

        if self.n_fixed_flav:
            return self.n_fixed_flav
        if iq < self.iqc:
            return 3
        if iq < self.iqb:
            return 4
        if iq < self.iqt:
            return 5
        return 6


@dataclass
class SplineConfig:
    """Bookkeeping of the spline tables and the bin integration settings.

    ``spline_addresses`` is empty until the evolution engine has been
    initialised, after which it maps each name of :data:`SPLINE_NAMES` to the
    address of its table.
    """

    rscut: float = RS_CUT
    sqrt_s: float = SQRT_S
    gauss_points: int = GAUSS_POINTS
    names: Tuple[str, ...] = SPLINE_NAMES
    spline_addresses: Dict[str, int] = field(default_factory=dict)

    @property
    def s_cut(self) -> float:
        """Invariant mass squared used to cut the cross-section tables."""

        return self.rscut * self.rscut

    def address(self, name: str) -> int:
        try:
            return self.spline_addresses[name]
        except KeyError:
            raise KeyError(f"spline table {name!r} has not been registered") from None


def default_grid() -> GridConfig:
    return GridConfig()


def default_evolution_config(grid: GridConfig | None = None) -> EvolutionConfig:
    return EvolutionConfig(grid=grid if grid is not None else default_grid())


def default_spline_config() -> SplineConfig:
    return SplineConfig()


__all__ = [
    "EVOLUTION_EPS_THRESHOLD",
    "EvolutionConfig",
    "GAUSS_POINTS",
    "GridConfig",
    "LUMINOSITY_EM",
    "LUMINOSITY_EP",
    "RS_CUT",
    "SPLINE_NAMES",
    "SQRT_S",
    "SplineConfig",
    "default_evolution_config",
    "default_grid",
    "default_spline_config",
]
