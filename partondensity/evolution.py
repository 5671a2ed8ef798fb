"""Scale evolution of the input PDFs.

:class:`EvolutionEngine` owns the process-wide numerical state of the DGLAP
evolution: the x and Q² node arrays and the convolution weight tables of the
splitting functions, computed once by :meth:`EvolutionEngine.initialize`, and
the evolved PDF tables written by every call to :meth:`EvolutionEngine.evolve`.

The evolution works on momentum densities ``F(x) = x f(x)`` tabulated on the
x grid.  Convolutions with the leading-order splitting functions are computed
as matrix products with weight tables built from Gauss–Legendre quadrature in
``ln z`` and local Lagrange interpolation in ``ln x``; the plus prescriptions
are handled by subtraction.  The strong coupling ``a = alpha_s / (4 pi)`` is
integrated together with the densities using the one-loop (``order=1``) or
two-loop (``order=2``) beta function.

The engine is not thread safe.  :class:`partondensity.forward_model.ForwardModel`
serialises every access to it.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple

import numpy as np
from scipy.interpolate import RectBivariateSpline

from .config import EvolutionConfig, GridConfig
from .integrators import gauss_legendre, lagrange_weights, runge_kutta4
from .pdfs import GLUON, PARTON_IDS

logger = logging.getLogger(__name__)

InputPDF = Callable[[int, np.ndarray], np.ndarray]

# Colour factors.
C_F = 4.0 / 3.0
C_A = 3.0
T_R = 0.5

# Quadrature points per x node for the convolution tables.
CONVOLUTION_POINTS = 64

# Largest RK4 step in t = ln Q².
MAX_STEP = 0.05

N_PARTONS = len(PARTON_IDS)


def parton_index(pid: int) -> int:
    """Row of parton ``pid`` in the evolved tables."""

    if pid == 21:
        pid = GLUON
    if pid not in PARTON_IDS:
        raise ValueError(f"Unsupported parton id {pid}")
    return pid + 6


class EvolutionInitializationError(RuntimeError):
    """Raised when the evolution engine cannot be (re)initialised."""


class EngineNotInitializedError(RuntimeError):
    """Raised when an evolution is requested before initialisation."""


class EvolutionDiagnostics:
    """Append-only log of the evolution accuracy values.

    One value is appended per forward-model call.  The log only shrinks on an
    explicit :meth:`reset`.
    """

    def __init__(self) -> None:
        self._values: List[float] = []
        self._lock = threading.Lock()

    def append(self, epsilon: float) -> None:
        with self._lock:
            self._values.append(float(epsilon))

    @property
    def values(self) -> Tuple[float, ...]:
        with self._lock:
            return tuple(self._values)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def count_above(self, threshold: float) -> int:
        return sum(1 for value in self.values if value > threshold)

    def maximum(self) -> float:
        values = self.values
        return max(values) if values else 0.0

    def reset(self) -> None:
        with self._lock:
            self._values.clear()


def beta_coefficients(n_flavours: int) -> Tuple[float, float]:
    """One- and two-loop beta-function coefficients for ``a = alpha_s / 4 pi``."""

    beta0 = 11.0 - 2.0 * n_flavours / 3.0
    beta1 = 102.0 - 38.0 * n_flavours / 3.0
    return beta0, beta1


def _coupling_derivative(a: float, n_flavours: int, order: int) -> float:
    beta0, beta1 = beta_coefficients(n_flavours)
    slope = -beta0 * a * a
    if order >= 2:
        slope -= beta1 * a * a * a
    return slope


# --- Splitting kernels (leading order, normalised to alpha_s / 2 pi) -----------


def _kernel_qq(z: np.ndarray) -> np.ndarray:
    return C_F * (1.0 + z * z) / (1.0 - z)


def _kernel_qg(z: np.ndarray) -> np.ndarray:
    return T_R * (z * z + (1.0 - z) ** 2)


def _kernel_gq(z: np.ndarray) -> np.ndarray:
    return C_F * (1.0 + (1.0 - z) ** 2) / z


def _kernel_gg_plus(z: np.ndarray) -> np.ndarray:
    return 2.0 * C_A * z / (1.0 - z)


def _kernel_gg_regular(z: np.ndarray) -> np.ndarray:
    return 2.0 * C_A * ((1.0 - z) / z + z * (1.0 - z))


def _kernel_fl_quark(z: np.ndarray) -> np.ndarray:
    return z


def _kernel_fl_gluon(z: np.ndarray) -> np.ndarray:
    return z * (1.0 - z)


def convolution_matrix(
    x_nodes: np.ndarray,
    degree: int,
    kernel: Callable[[np.ndarray], np.ndarray],
    *,
    plus: bool = False,
    n_points: int = CONVOLUTION_POINTS,
) -> np.ndarray:
    """Weight table ``M`` with ``(M @ F)[i] = int_{x_i}^1 dz K(z) F(x_i / z)``.

    With ``plus=True`` the integrand becomes ``K(z) (F(x_i/z) - F(x_i))``.
    The row of the ``x = 1`` end point is zero.
    """

    log_x = np.log(x_nodes)
    n = x_nodes.size
    matrix = np.zeros((n, n))
    for i in range(n):
        if log_x[i] >= 0.0:
            continue
        u, w = gauss_legendre(log_x[i], 0.0, n_points)
        z = np.exp(u)
        measure = kernel(z) * z * w
        indices, weights = lagrange_weights(log_x, log_x[i] - u, degree)
        np.add.at(matrix[i], indices.ravel(), (weights * measure[:, None]).ravel())
        if plus:
            matrix[i, i] -= measure.sum()
    return matrix


@dataclass(frozen=True)
class WeightTables:
    """Convolution tables computed once at initialisation."""

    qq: np.ndarray
    qg: np.ndarray
    gq: np.ndarray
    gg: np.ndarray
    fl_quark: np.ndarray
    fl_gluon: np.ndarray

    @classmethod
    def build(cls, x_nodes: np.ndarray, degree: int) -> "WeightTables":
        inside = x_nodes < 1.0
        log_one_minus_x = np.where(inside, np.log1p(-np.where(inside, x_nodes, 0.0)), 0.0)
        endpoint = np.where(inside, 1.0, 0.0)

        qq = convolution_matrix(x_nodes, degree, _kernel_qq, plus=True)
        qq += np.diag(
            C_F * (2.0 * log_one_minus_x + x_nodes + 0.5 * x_nodes**2 + 1.5) * endpoint
        )
        gg = convolution_matrix(x_nodes, degree, _kernel_gg_plus, plus=True)
        gg += convolution_matrix(x_nodes, degree, _kernel_gg_regular)
        gg += np.diag(2.0 * C_A * (log_one_minus_x + x_nodes) * endpoint)

        return cls(
            qq=qq,
            qg=convolution_matrix(x_nodes, degree, _kernel_qg),
            gq=convolution_matrix(x_nodes, degree, _kernel_gq),
            gg=gg,
            fl_quark=convolution_matrix(x_nodes, degree, _kernel_fl_quark),
            fl_gluon=convolution_matrix(x_nodes, degree, _kernel_fl_gluon),
        )


@dataclass
class EvolvedPDF:
    """Evolved momentum densities ``x f(x, Q²)`` on the evolution grid.

    ``table`` has shape ``(13, nq, nx)`` with rows ordered by parton id from
    -6 to 6; ``alphas`` holds the strong coupling at every Q² node.
    """

    slot: int
    x_nodes: np.ndarray
    q2_nodes: np.ndarray
    table: np.ndarray
    alphas: np.ndarray
    degree: int
    _interpolators: Dict[int, RectBivariateSpline] = field(default_factory=dict, repr=False)

    def grid_values(self, pid: int) -> np.ndarray:
        """Node values of parton ``pid`` with shape ``(nq, nx)``."""

        return self.table[parton_index(pid)]

    def xfx(self, pid: int, x, q2):
        """Interpolated ``x f(pid, x, Q²)`` inside the grid."""

        row = parton_index(pid)
        spline = self._interpolators.get(row)
        if spline is None:
            k = max(1, self.degree)
            spline = RectBivariateSpline(
                np.log(self.q2_nodes), np.log(self.x_nodes), self.table[row], kx=k, ky=k
            )
            self._interpolators[row] = spline
        log_x = np.clip(np.log(np.asarray(x, dtype=float)), np.log(self.x_nodes[0]), 0.0)
        log_q2 = np.clip(
            np.log(np.asarray(q2, dtype=float)), np.log(self.q2_nodes[0]), np.log(self.q2_nodes[-1])
        )
        values = spline.ev(log_q2, log_x)
        if np.ndim(values) == 0:
            return float(values)
        return values


class EvolutionEngine:
    """Process-wide DGLAP evolution state.

    ``initialize`` must be called exactly once; ``evolve`` may then be called
    any number of times, each call overwriting the table of its slot.
    """

    def __init__(self) -> None:
        self._initialized = False
        self._config: EvolutionConfig | None = None
        self._x_nodes: np.ndarray | None = None
        self._q2_nodes: np.ndarray | None = None
        self._tables: WeightTables | None = None
        self._slots: Dict[int, EvolvedPDF] = {}

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> EvolutionConfig:
        self._require_initialized()
        return self._config

    @property
    def x_nodes(self) -> np.ndarray:
        self._require_initialized()
        return self._x_nodes

    @property
    def q2_nodes(self) -> np.ndarray:
        self._require_initialized()
        return self._q2_nodes

    @property
    def weight_tables(self) -> WeightTables:
        self._require_initialized()
        return self._tables

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise EngineNotInitializedError("the evolution engine has not been initialised")

    def initialize(self, grid: GridConfig, config: EvolutionConfig) -> None:
        """Build the evolution grid and the weight tables.

        Raises
        ------
        EvolutionInitializationError
            If the engine was already initialised or the grid and evolution
            settings are inconsistent.
        """

        if self._initialized:
            raise EvolutionInitializationError("the evolution engine is already initialised")
        _validate_configuration(grid, config)

        x_nodes = grid.x_nodes()
        q2_nodes = grid.q2_nodes()
        logger.info(
            "Initialising evolution grid: nx=%d, nq=%d, x in [%.3g, 1], Q2 in [%.3g, %.3g]",
            x_nodes.size, q2_nodes.size, x_nodes[0], q2_nodes[0], q2_nodes[-1],
        )
        self._tables = WeightTables.build(x_nodes, grid.degree)
        self._x_nodes = x_nodes
        self._q2_nodes = q2_nodes
        self._config = config
        self._initialized = True

    def iq_from_q2(self, q2: float) -> int:
        """Index of the last Q² node not above ``q2``."""

        q2_nodes = self.q2_nodes
        index = int(np.searchsorted(q2_nodes, q2 * (1.0 + 1e-9), side="right")) - 1
        return min(max(index, 0), q2_nodes.size - 1)

    def tabulate(self, input_pdf: InputPDF) -> np.ndarray:
        """Input momentum densities on the x grid, shape ``(13, nx)``."""

        return np.stack([np.asarray(input_pdf(pid, self.x_nodes), dtype=float) for pid in PARTON_IDS])

    def interpolation_accuracy(self, input_pdf: InputPDF, values: np.ndarray) -> float:
        """Largest deviation of the interpolated input from the exact input.

        The comparison is made at the midpoints (in ``ln x``) between adjacent
        x nodes.
        """

        log_x = np.log(self.x_nodes)
        midpoints = 0.5 * (log_x[:-1] + log_x[1:])
        indices, weights = lagrange_weights(log_x, midpoints, self.config.grid.degree)
        exact = self.tabulate_at(input_pdf, np.exp(midpoints))
        interpolated = (values[:, indices] * weights[None, :, :]).sum(axis=2)
        return float(np.max(np.abs(interpolated - exact)))

    @staticmethod
    def tabulate_at(input_pdf: InputPDF, x: np.ndarray) -> np.ndarray:
        return np.stack([np.asarray(input_pdf(pid, x), dtype=float) for pid in PARTON_IDS])

    def evolve(self, input_pdf: InputPDF, *, slot: int = 1, iq0: int | None = None) -> Tuple[EvolvedPDF, float]:
        """Evolve ``input_pdf`` from the starting scale over the whole Q² grid.

        Parameters
        ----------
        input_pdf:
            Callable ``(pid, x) -> x f(pid, x)`` at the starting scale.
        slot:
            Table slot overwritten by this evolution.
        iq0:
            Q² node of the starting scale; defaults to the node of ``q0``.

        Returns
        -------
        (EvolvedPDF, float)
            The evolved tables and the interpolation accuracy ``epsilon``.
        """

        self._require_initialized()
        config = self._config
        q2_nodes = self._q2_nodes
        if iq0 is None:
            iq0 = self.iq_from_q2(config.q0)
        if not 0 <= iq0 < q2_nodes.size:
            raise ValueError(f"iq0={iq0} is outside the Q2 grid")

        start = self.tabulate(input_pdf)
        epsilon = self.interpolation_accuracy(input_pdf, start)

        t_nodes = np.log(q2_nodes)
        a_start = self._coupling_at(t_nodes[iq0])

        table = np.zeros((N_PARTONS, q2_nodes.size, self._x_nodes.size))
        alphas = np.zeros(q2_nodes.size)
        table[:, iq0, :] = start
        alphas[iq0] = 4.0 * math.pi * a_start

        for direction in (1, -1):
            state = np.concatenate(([a_start], start.ravel()))
            iq = iq0
            while 0 <= iq + direction < q2_nodes.size:
                target = iq + direction
                n_flavours = config.n_flavours(min(iq, target))
                result = runge_kutta4(
                    self._derivative(n_flavours),
                    state,
                    t0=t_nodes[iq],
                    t_end=t_nodes[target],
                    step=MAX_STEP,
                )
                state = result.final_state
                table[:, target, :] = state[1:].reshape(N_PARTONS, -1)
                alphas[target] = 4.0 * math.pi * state[0]
                iq = target

        evolved = EvolvedPDF(
            slot=slot,
            x_nodes=self._x_nodes,
            q2_nodes=q2_nodes,
            table=table,
            alphas=alphas,
            degree=config.grid.degree,
        )
        self._slots[slot] = evolved
        return evolved, epsilon

    def evolved(self, slot: int = 1) -> EvolvedPDF:
        """Most recent evolution stored in ``slot``."""

        self._require_initialized()
        try:
            return self._slots[slot]
        except KeyError:
            raise KeyError(f"no evolved PDF in slot {slot}") from None

    def _coupling_at(self, t: float) -> float:
        config = self._config
        a0 = config.alpha_s / (4.0 * math.pi)
        t0 = math.log(config.q0)
        if abs(t - t0) < 1e-12:
            return a0
        n_flavours = config.n_flavours(self.iq_from_q2(config.q0))

        def _slope(_t: float, state: np.ndarray) -> np.ndarray:
            return np.array([_coupling_derivative(state[0], n_flavours, config.order)])

        result = runge_kutta4(_slope, np.array([a0]), t0=t0, t_end=t, step=MAX_STEP)
        return float(result.final_state[0])

    def _derivative(self, n_flavours: int) -> Callable[[float, np.ndarray], np.ndarray]:
        tables = self._tables
        order = self._config.order
        nx = self._x_nodes.size
        gluon_row = parton_index(GLUON)
        quark_rows = np.array(
            [parton_index(pid) for pid in PARTON_IDS if pid != GLUON and abs(pid) <= n_flavours]
        )
        gg_delta = 11.0 * C_A / 6.0 - 2.0 * T_R * n_flavours / 3.0

        def _slope(_t: float, state: np.ndarray) -> np.ndarray:
            a = state[0]
            densities = state[1:].reshape(N_PARTONS, nx)
            gluon = densities[gluon_row]
            quarks = densities[quark_rows]

            change = np.zeros_like(densities)
            change[quark_rows] = quarks @ tables.qq.T + (tables.qg @ gluon)[None, :]
            change[gluon_row] = tables.gq @ quarks.sum(axis=0) + tables.gg @ gluon + gg_delta * gluon
            change *= 2.0 * a

            return np.concatenate(([_coupling_derivative(a, n_flavours, order)], change.ravel()))

        return _slope


def _validate_configuration(grid: GridConfig, config: EvolutionConfig) -> None:
    if config.grid != grid:
        raise EvolutionInitializationError("the evolution settings were built for a different grid")
    if config.order not in (1, 2):
        raise EvolutionInitializationError(f"unsupported evolution order {config.order}")
    if not 0.0 < config.alpha_s < 1.0:
        raise EvolutionInitializationError(f"alpha_s={config.alpha_s} is outside (0, 1)")
    lower, upper = grid.qq_bounds[0], grid.qq_bounds[-1]
    if not lower <= config.q0 <= upper:
        raise EvolutionInitializationError(
            f"starting scale q0={config.q0} lies outside the Q2 grid [{lower}, {upper}]"
        )
    if config.weight_type != 1:
        raise EvolutionInitializationError(f"unsupported weight table type {config.weight_type}")
    if config.n_fixed_flav not in (0, 3, 4, 5, 6):
        raise EvolutionInitializationError(
            f"n_fixed_flav must be 0 (variable) or between 3 and 6, got {config.n_fixed_flav}"
        )
    if config.n_fixed_flav == 0 and not 0 <= config.iqc <= config.iqb <= config.iqt <= grid.nq:
        raise EvolutionInitializationError("flavour thresholds must satisfy iqc <= iqb <= iqt within the grid")


__all__ = [
    "EngineNotInitializedError",
    "EvolutionDiagnostics",
    "EvolutionEngine",
    "EvolutionInitializationError",
    "EvolvedPDF",
    "WeightTables",
    "beta_coefficients",
    "convolution_matrix",
    "parton_index",
]
