"""Spline tables for structure functions and cross sections.

:class:`SplineWorkspace` keeps a set of addressed interpolation tables on the
evolution grid.  Tables are registered once, then refilled on every
forward-model call: first the structure functions of each quark-charge class
from an evolved PDF, then one cross-section table per lepton beam charge.

The workspace carries a selected lepton charge that the cross-section fill
reads, and every fill overwrites the previous contents of its table, so the
workspace is mutable shared state.  It must only be driven through
:class:`partondensity.forward_model.ForwardModel`, which holds a lock for the
whole sequence.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Sequence, Tuple

import numpy as np
from scipy.interpolate import RectBivariateSpline

from .config import SplineConfig
from .evolution import EngineNotInitializedError, EvolutionEngine, EvolvedPDF
from .high_energy import QuarkCouplings, differential_cross_section, gluon_weight
from .integrators import gauss_legendre

logger = logging.getLogger(__name__)

TableFunction = Callable[[np.ndarray, np.ndarray], np.ndarray]


class StructureFunction(enum.IntEnum):
    """Structure function selector, numbered as in the fill calls."""

    FL = 1
    F2 = 2
    F3 = 3


@dataclass
class _SplineTable:
    name: str
    values: np.ndarray | None = None
    spline: RectBivariateSpline | None = None


class SplineWorkspace:
    """Addressed spline tables on the ``(ln Q², ln x)`` evolution grid."""

    def __init__(self) -> None:
        self._engine: EvolutionEngine | None = None
        self._tables: Dict[int, _SplineTable] = {}
        self._addresses: Dict[str, int] = {}
        self._lepton_charge: int | None = None

    # --- Setup ---------------------------------------------------------------

    def initialize(self, engine: EvolutionEngine, spline_config: SplineConfig) -> None:
        """Attach to an initialised engine and register the configured tables.

        The resolved addresses are written back to ``spline_config``.
        """

        if not engine.initialized:
            raise EngineNotInitializedError("the spline workspace needs an initialised evolution engine")
        self._engine = engine
        spline_config.spline_addresses.clear()
        for name in spline_config.names:
            spline_config.spline_addresses[name] = self.register(name)
        logger.debug("Registered spline tables %s", dict(spline_config.spline_addresses))

    def register(self, name: str) -> int:
        if name in self._addresses:
            raise ValueError(f"spline table {name!r} is already registered")
        address = len(self._tables) + 1
        self._tables[address] = _SplineTable(name=name)
        self._addresses[name] = address
        return address

    def address_of(self, name: str) -> int:
        try:
            return self._addresses[name]
        except KeyError:
            raise KeyError(f"spline table {name!r} has not been registered") from None

    # --- Shared state ----------------------------------------------------------

    @property
    def lepton_charge(self) -> int | None:
        return self._lepton_charge

    def select_charge(self, charge: int) -> None:
        """Select the lepton beam charge used by subsequent cross-section fills."""

        if charge not in (1, -1):
            raise ValueError("lepton charge must be +1 or -1")
        self._lepton_charge = charge

    def _grid(self) -> Tuple[np.ndarray, np.ndarray, int]:
        if self._engine is None:
            raise EngineNotInitializedError("the spline workspace has not been initialised")
        return self._engine.x_nodes, self._engine.q2_nodes, self._engine.config.grid.degree

    def _table(self, address: int) -> _SplineTable:
        try:
            return self._tables[address]
        except KeyError:
            raise KeyError(f"no spline table at address {address}") from None

    def _store(self, address: int, values: np.ndarray) -> None:
        x_nodes, q2_nodes, degree = self._grid()
        table = self._table(address)
        k = max(1, degree)
        table.values = values
        table.spline = RectBivariateSpline(np.log(q2_nodes), np.log(x_nodes), values, kx=k, ky=k)

    # --- Fills -------------------------------------------------------------------

    def fill_structure_function(
        self,
        address: int,
        evolved: EvolvedPDF,
        coefficients: Sequence[float],
        kind: StructureFunction,
    ) -> None:
        """Fill a structure-function table from the evolved PDF.

        ``coefficients`` weight the parton ids -6..6.  F2 and xF3 are the
        weighted sums of the evolved momentum densities; FL is the order
        ``alpha_s`` longitudinal structure function built from the F2
        combination and the gluon.
        """

        self._grid()
        kind = StructureFunction(kind)
        weights = np.asarray(coefficients, dtype=float)
        combination = np.tensordot(weights, evolved.table, axes=(0, 0))

        if kind is StructureFunction.FL:
            tables = self._engine.weight_tables
            gluon = evolved.grid_values(0)
            values = (evolved.alphas[:, None] / np.pi) * (
                (4.0 / 3.0) * combination @ tables.fl_quark.T
                + 2.0 * gluon_weight(weights) * gluon @ tables.fl_gluon.T
            )
        else:
            values = combination
        self._store(address, values)

    def fill(self, address: int, function: TableFunction, s_cut: float) -> None:
        """Fill a table with ``function(x, q2)`` evaluated on the grid nodes.

        Nodes beyond the kinematic limit ``Q² > x s_cut`` are set to zero.
        """

        x_nodes, q2_nodes, _ = self._grid()
        x, q2 = np.meshgrid(x_nodes, q2_nodes)
        values = np.asarray(function(x, q2), dtype=float)
        values = np.where(q2 <= x * s_cut, values, 0.0)
        self._store(address, values)

    # --- Evaluation --------------------------------------------------------------

    def node_values(self, address: int) -> np.ndarray:
        table = self._table(address)
        if table.values is None:
            raise ValueError(f"spline table {table.name!r} has not been filled")
        return table.values

    def evaluate(self, address: int, x, q2) -> np.ndarray:
        """Interpolated table value at ``(x, Q²)`` (clipped to the grid)."""

        x_nodes, q2_nodes, _ = self._grid()
        table = self._table(address)
        if table.spline is None:
            raise ValueError(f"spline table {table.name!r} has not been filled")
        log_x = np.clip(np.log(np.asarray(x, dtype=float)), np.log(x_nodes[0]), 0.0)
        log_q2 = np.clip(np.log(np.asarray(q2, dtype=float)), np.log(q2_nodes[0]), np.log(q2_nodes[-1]))
        return table.spline.ev(log_q2, log_x)

    def integrate_bins(
        self,
        address: int,
        x_ranges: np.ndarray,
        q2_ranges: np.ndarray,
        sqrt_s: float,
        n_points: int,
    ) -> np.ndarray:
        """Integrate a table over rectangles in ``(x, Q²)``.

        ``x_ranges`` and ``q2_ranges`` have shape ``(n_bins, 2)``.  The
        integration uses ``n_points`` Gauss–Legendre points per dimension in
        ``ln x`` and ``ln Q²``; points with ``y = Q² / (x s) > 1`` do not
        contribute.
        """

        x_ranges = np.atleast_2d(np.asarray(x_ranges, dtype=float))
        q2_ranges = np.atleast_2d(np.asarray(q2_ranges, dtype=float))
        if x_ranges.shape != q2_ranges.shape or x_ranges.shape[1] != 2:
            raise ValueError("x_ranges and q2_ranges must both have shape (n_bins, 2)")

        unit_nodes, unit_weights = gauss_legendre(0.0, 1.0, n_points)
        log_x_lo, log_x_hi = np.log(x_ranges[:, 0]), np.log(x_ranges[:, 1])
        log_q_lo, log_q_hi = np.log(q2_ranges[:, 0]), np.log(q2_ranges[:, 1])

        # Shapes: (n_bins, n_points) per dimension.
        log_x = log_x_lo[:, None] + (log_x_hi - log_x_lo)[:, None] * unit_nodes[None, :]
        log_q2 = log_q_lo[:, None] + (log_q_hi - log_q_lo)[:, None] * unit_nodes[None, :]
        w_x = (log_x_hi - log_x_lo)[:, None] * unit_weights[None, :]
        w_q2 = (log_q_hi - log_q_lo)[:, None] * unit_weights[None, :]

        x = np.exp(log_x)[:, None, :]
        q2 = np.exp(log_q2)[:, :, None]
        x, q2 = np.broadcast_arrays(x, q2)
        values = self.evaluate(address, x, q2) * x * q2
        values = np.where(q2 <= x * sqrt_s * sqrt_s, values, 0.0)
        return np.einsum("bq,bx,bqx->b", w_q2, w_x, values)

    def integrate(
        self,
        address: int,
        x_range: Tuple[float, float],
        q2_range: Tuple[float, float],
        sqrt_s: float,
        n_points: int,
    ) -> float:
        return float(self.integrate_bins(address, [x_range], [q2_range], sqrt_s, n_points)[0])


def cross_section_function(
    workspace: SplineWorkspace,
    couplings: QuarkCouplings,
    spline_config: SplineConfig,
) -> TableFunction:
    """Cross section built from the filled structure-function tables.

    The lepton charge is read from the workspace when the function is
    evaluated.
    """

    names = ("F2up", "F2dn", "F3up", "F3dn", "FLup", "FLdn")
    s = spline_config.sqrt_s**2

    def _xsec(x: np.ndarray, q2: np.ndarray) -> np.ndarray:
        charge = workspace.lepton_charge
        if charge is None:
            raise RuntimeError("no lepton charge selected")
        components = {name: workspace.evaluate(spline_config.address(name), x, q2) for name in names}
        return differential_cross_section(x, q2, s, charge, components, couplings)

    return _xsec


def build_splines(
    workspace: SplineWorkspace,
    evolved: EvolvedPDF,
    couplings: QuarkCouplings,
    spline_config: SplineConfig,
) -> None:
    """Fill the structure-function tables and both cross-section tables."""

    address = spline_config.address
    workspace.fill_structure_function(address("FLup"), evolved, couplings.proup, StructureFunction.FL)
    workspace.fill_structure_function(address("F2up"), evolved, couplings.proup, StructureFunction.F2)
    workspace.fill_structure_function(address("F3up"), evolved, couplings.valup, StructureFunction.F3)
    workspace.fill_structure_function(address("FLdn"), evolved, couplings.prodn, StructureFunction.FL)
    workspace.fill_structure_function(address("F2dn"), evolved, couplings.prodn, StructureFunction.F2)
    workspace.fill_structure_function(address("F3dn"), evolved, couplings.valdn, StructureFunction.F3)

    xsec = cross_section_function(workspace, couplings, spline_config)

    workspace.select_charge(1)
    workspace.fill(address("F_eP"), xsec, spline_config.s_cut)

    workspace.select_charge(-1)
    workspace.fill(address("F_eM"), xsec, spline_config.s_cut)


__all__ = [
    "SplineWorkspace",
    "StructureFunction",
    "build_splines",
    "cross_section_function",
]
