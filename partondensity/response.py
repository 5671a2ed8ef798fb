"""Detector response: analysis binning and transfer-matrix folding.

Integrated cross sections are computed in kinematic bins (rectangles in x and
Q²) and mapped onto detector bins with a bin-migration transfer matrix::

    counts[j] = sum_i T[i, j] * sigma[i] / K[i]

``K`` converts each integrated cross section into an expected event count
(it is the inverse of the luminosity times efficiency).  Both ``T`` and ``K``
are indexed positionally, so the order of the kinematic bins must match the
order in which the cross sections are integrated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .config import LUMINOSITY_EM, LUMINOSITY_EP, SQRT_S

DEFAULT_X_EDGES: Tuple[float, ...] = (2.0e-3, 5.0e-3, 1.0e-2, 2.5e-2, 5.0e-2, 1.0e-1, 2.5e-1, 5.0e-1, 9.0e-1)
DEFAULT_Q2_EDGES: Tuple[float, ...] = (150.0, 300.0, 600.0, 1200.0, 2500.0, 5000.0, 1.0e4, 2.0e4, 3.0e4)


@dataclass(frozen=True)
class ChargeResponse:
    """Transfer matrix and per-bin normalisation of one beam charge."""

    transfer_matrix: np.ndarray
    normalisation: np.ndarray

    def __post_init__(self) -> None:
        matrix = np.asarray(self.transfer_matrix, dtype=float)
        norm = np.asarray(self.normalisation, dtype=float)
        if matrix.ndim != 2:
            raise ValueError("transfer_matrix must be two dimensional")
        if norm.shape != (matrix.shape[0],):
            raise ValueError("normalisation needs one entry per kinematic bin (transfer-matrix row)")
        if np.any(~np.isfinite(norm)) or np.any(norm <= 0.0):
            raise ValueError("normalisation constants must be positive")
        object.__setattr__(self, "transfer_matrix", matrix)
        object.__setattr__(self, "normalisation", norm)


@dataclass(frozen=True)
class AnalysisBinning:
    """Kinematic bins and the detector response for both beam charges.

    ``x_ranges`` and ``q2_ranges`` have shape ``(n_kinematic_bins, 2)``.
    """

    x_ranges: np.ndarray
    q2_ranges: np.ndarray
    ep: ChargeResponse
    em: ChargeResponse

    def __post_init__(self) -> None:
        x_ranges = np.asarray(self.x_ranges, dtype=float)
        q2_ranges = np.asarray(self.q2_ranges, dtype=float)
        if x_ranges.ndim != 2 or x_ranges.shape[1] != 2 or x_ranges.shape != q2_ranges.shape:
            raise ValueError("x_ranges and q2_ranges must both have shape (n_bins, 2)")
        if np.any(x_ranges[:, 1] <= x_ranges[:, 0]) or np.any(q2_ranges[:, 1] <= q2_ranges[:, 0]):
            raise ValueError("bin ranges must have upper > lower")
        if np.any(x_ranges <= 0.0) or np.any(x_ranges > 1.0) or np.any(q2_ranges <= 0.0):
            raise ValueError("bins must lie inside 0 < x <= 1 and Q2 > 0")
        for name, response in (("ep", self.ep), ("em", self.em)):
            if response.transfer_matrix.shape[0] != x_ranges.shape[0]:
                raise ValueError(f"{name} transfer matrix needs one row per kinematic bin")
        if self.ep.transfer_matrix.shape[1] != self.em.transfer_matrix.shape[1]:
            raise ValueError("both beam charges must use the same detector bins")
        object.__setattr__(self, "x_ranges", x_ranges)
        object.__setattr__(self, "q2_ranges", q2_ranges)

    @property
    def n_kinematic_bins(self) -> int:
        return int(self.x_ranges.shape[0])

    @property
    def n_detector_bins(self) -> int:
        return int(self.ep.transfer_matrix.shape[1])

    def response(self, charge: int) -> ChargeResponse:
        if charge == 1:
            return self.ep
        if charge == -1:
            return self.em
        raise ValueError("beam charge must be +1 or -1")


def fold(integrated_xsec: Sequence[float], transfer_matrix: np.ndarray, normalisation: Sequence[float]) -> np.ndarray:
    """Fold integrated cross sections into predicted detector counts.

    The result may contain small negative values for unphysical inputs; no
    clipping is applied here.
    """

    sigma = np.asarray(integrated_xsec, dtype=float)
    matrix = np.asarray(transfer_matrix, dtype=float)
    norm = np.asarray(normalisation, dtype=float)
    if sigma.shape != (matrix.shape[0],) or norm.shape != sigma.shape:
        raise ValueError(
            f"expected {matrix.shape[0]} integrated cross sections and normalisations, "
            f"got {sigma.size} and {norm.size}"
        )
    return matrix.T @ (sigma / norm)


def smeared_transfer_matrix(
    cells: Sequence[Tuple[int, int]],
    *,
    width: float,
    efficiency: float,
) -> np.ndarray:
    """Square migration matrix between the cells of a 2-d bin lattice.

    Each kinematic cell migrates to the detector cells with Gaussian weights
    in lattice distance; every row sums to ``efficiency``.
    """

    if width <= 0.0:
        raise ValueError("width must be positive")
    if not 0.0 < efficiency <= 1.0:
        raise ValueError("efficiency must lie in (0, 1]")
    lattice = np.asarray(cells, dtype=float)
    distance_sq = ((lattice[:, None, :] - lattice[None, :, :]) ** 2).sum(axis=2)
    matrix = np.exp(-0.5 * distance_sq / width**2)
    return efficiency * matrix / matrix.sum(axis=1, keepdims=True)


def build_binning(
    *,
    x_edges: Sequence[float] = DEFAULT_X_EDGES,
    q2_edges: Sequence[float] = DEFAULT_Q2_EDGES,
    sqrt_s: float = SQRT_S,
    luminosity_ep: float = LUMINOSITY_EP,
    luminosity_em: float = LUMINOSITY_EM,
    migration_width: float = 0.6,
    efficiency: float = 0.85,
) -> AnalysisBinning:
    """Build a HERA-like analysis binning on an x × Q² lattice.

    Cells lying entirely outside the kinematic limit ``Q² <= x s`` are
    dropped.  Detector bins coincide with the kinematic cells and the transfer
    matrix smears each cell onto its lattice neighbours.
    """

    x_edges = np.asarray(x_edges, dtype=float)
    q2_edges = np.asarray(q2_edges, dtype=float)
    if np.any(np.diff(x_edges) <= 0.0) or np.any(np.diff(q2_edges) <= 0.0):
        raise ValueError("bin edges must be strictly increasing")
    s = sqrt_s * sqrt_s

    cells: List[Tuple[int, int]] = []
    x_ranges: List[Tuple[float, float]] = []
    q2_ranges: List[Tuple[float, float]] = []
    for iq in range(q2_edges.size - 1):
        for ix in range(x_edges.size - 1):
            if q2_edges[iq] >= x_edges[ix + 1] * s:
                continue
            cells.append((ix, iq))
            x_ranges.append((x_edges[ix], x_edges[ix + 1]))
            q2_ranges.append((q2_edges[iq], q2_edges[iq + 1]))
    if not cells:
        raise ValueError("no kinematic bin lies inside the kinematic limit")

    matrix = smeared_transfer_matrix(cells, width=migration_width, efficiency=efficiency)
    n_bins = len(cells)
    return AnalysisBinning(
        x_ranges=np.array(x_ranges),
        q2_ranges=np.array(q2_ranges),
        ep=ChargeResponse(matrix, np.full(n_bins, 1.0 / luminosity_ep)),
        em=ChargeResponse(matrix.copy(), np.full(n_bins, 1.0 / luminosity_em)),
    )


__all__ = [
    "AnalysisBinning",
    "ChargeResponse",
    "build_binning",
    "fold",
    "smeared_transfer_matrix",
]
