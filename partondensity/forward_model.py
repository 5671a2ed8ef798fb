"""Forward model: PDF parameters to predicted detector counts.

:class:`ForwardModel` sequences the pipeline

1. evolve the input PDFs over the Q² grid,
2. fill the structure-function and cross-section spline tables,
3. integrate the cross sections over the kinematic bins,
4. fold the integrated cross sections through the detector response,

and owns the lock that keeps it from running concurrently.  The evolution
engine and the spline workspace are process-wide mutable state, so the lock
is held for the whole call and the individual stages are not exposed.

For scripts that only need one model, :func:`forward_model_init` and
:func:`forward_model` operate on a process-wide default instance.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import Iterator, NamedTuple, Tuple

import numpy as np

from .config import EVOLUTION_EPS_THRESHOLD, EvolutionConfig, GridConfig, SplineConfig
from .evolution import (
    EngineNotInitializedError,
    EvolutionDiagnostics,
    EvolutionEngine,
    EvolutionInitializationError,
)
from .high_energy import QuarkCouplings
from .pdfs import PDFParameters
from .response import AnalysisBinning, build_binning, fold
from .splines import SplineWorkspace, build_splines

logger = logging.getLogger(__name__)

PDF_SLOT = 1


class PredictedCounts(NamedTuple):
    """Expected counts per detector bin for the e+p and e-p beams."""

    ep: np.ndarray
    em: np.ndarray


def integrate_cross_sections(
    workspace: SplineWorkspace,
    spline_config: SplineConfig,
    binning: AnalysisBinning,
) -> Tuple[np.ndarray, np.ndarray]:
    """Integrated e+p and e-p cross sections in binning order (pb)."""

    integrated = []
    for name in ("F_eP", "F_eM"):
        integrated.append(
            workspace.integrate_bins(
                spline_config.address(name),
                binning.x_ranges,
                binning.q2_ranges,
                spline_config.sqrt_s,
                spline_config.gauss_points,
            )
        )
    return integrated[0], integrated[1]


class ForwardModel:
    """Map PDF parameters onto predicted detector counts.

    Parameters
    ----------
    evolution_config:
        Evolution settings; its ``grid`` defines the evolution grid.
    spline_config:
        Spline table bookkeeping, filled with addresses by :meth:`initialize`.
    quark_couplings:
        Flavour selection and electroweak couplings.
    binning:
        Kinematic bins and detector response.
    eps_threshold:
        Evolution accuracy above which a call is reported with a warning.
    diagnostics:
        Log receiving one accuracy value per call; a new one is created when
        omitted.
    """

    def __init__(
        self,
        evolution_config: EvolutionConfig,
        spline_config: SplineConfig,
        quark_couplings: QuarkCouplings,
        binning: AnalysisBinning,
        *,
        eps_threshold: float = EVOLUTION_EPS_THRESHOLD,
        diagnostics: EvolutionDiagnostics | None = None,
    ) -> None:
        if eps_threshold <= 0.0:
            raise ValueError("eps_threshold must be positive")
        self.evolution_config = evolution_config
        self.spline_config = spline_config
        self.quark_couplings = quark_couplings
        self.binning = binning
        self.eps_threshold = eps_threshold
        self.diagnostics = diagnostics if diagnostics is not None else EvolutionDiagnostics()

        self._engine = EvolutionEngine()
        self._workspace = SplineWorkspace()
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._engine.initialized

    @property
    def n_detector_bins(self) -> int:
        return self.binning.n_detector_bins

    @contextlib.contextmanager
    def critical_section(self) -> Iterator[None]:
        """Hold the model lock; the engine and spline tables are only touched inside it."""

        with self._lock:
            yield

    def initialize(self, grid: GridConfig | None = None) -> None:
        """One-time setup of the evolution grid, weight tables and spline tables."""

        grid = grid if grid is not None else self.evolution_config.grid
        with self.critical_section():
            self._engine.initialize(grid, self.evolution_config)
            self._workspace.initialize(self._engine, self.spline_config)
        logger.info(
            "Forward model ready: %d kinematic bins, %d detector bins",
            self.binning.n_kinematic_bins, self.binning.n_detector_bins,
        )

    def __call__(self, pdf_params: PDFParameters) -> PredictedCounts:
        with self.critical_section():
            return self._predict(pdf_params)

    def _predict(self, pdf_params: PDFParameters) -> PredictedCounts:
        if not self._engine.initialized:
            raise EngineNotInitializedError("forward model called before initialisation")

        evolved, epsilon = self._engine.evolve(pdf_params.xfx, slot=PDF_SLOT)
        if epsilon > self.eps_threshold:
            logger.warning(
                "Evolution accuracy %.4g exceeds %.4g for parameters %s",
                epsilon, self.eps_threshold, pdf_params,
            )
        self.diagnostics.append(epsilon)

        build_splines(self._workspace, evolved, self.quark_couplings, self.spline_config)
        sigma_ep, sigma_em = integrate_cross_sections(self._workspace, self.spline_config, self.binning)

        counts_ep = fold(sigma_ep, self.binning.ep.transfer_matrix, self.binning.ep.normalisation)
        counts_em = fold(sigma_em, self.binning.em.transfer_matrix, self.binning.em.normalisation)
        return PredictedCounts(ep=counts_ep, em=counts_em)


# --- Process-wide default model ---------------------------------------------------

_default_model: ForwardModel | None = None
_default_model_lock = threading.Lock()


def forward_model_init(
    grid: GridConfig,
    evolution_config: EvolutionConfig,
    spline_config: SplineConfig,
    quark_couplings: QuarkCouplings | None = None,
    binning: AnalysisBinning | None = None,
    *,
    eps_threshold: float = EVOLUTION_EPS_THRESHOLD,
) -> ForwardModel:
    """Initialise the process-wide forward model.

    Raises
    ------
    EvolutionInitializationError
        If the default model is already initialised or the configuration is
        inconsistent.
    """

    global _default_model
    with _default_model_lock:
        if _default_model is not None:
            raise EvolutionInitializationError("the forward model is already initialised")
        model = ForwardModel(
            evolution_config,
            spline_config,
            quark_couplings if quark_couplings is not None else QuarkCouplings(),
            binning if binning is not None else build_binning(sqrt_s=spline_config.sqrt_s),
            eps_threshold=eps_threshold,
        )
        model.initialize(grid)
        _default_model = model
    return model


def default_model() -> ForwardModel:
    """The process-wide model created by :func:`forward_model_init`."""

    if _default_model is None:
        raise EngineNotInitializedError("forward_model_init() has not been called")
    return _default_model


def forward_model(
    pdf_params: PDFParameters,
    evolution_config: EvolutionConfig | None = None,
    spline_config: SplineConfig | None = None,
    quark_couplings: QuarkCouplings | None = None,
) -> PredictedCounts:
    """Run the process-wide forward model.

    Configuration arguments are optional; when given they must match the
    ones the model was initialised with.
    """

    model = default_model()
    for name, given in (
        ("evolution_config", evolution_config),
        ("spline_config", spline_config),
        ("quark_couplings", quark_couplings),
    ):
        if given is not None and given != getattr(model, name):
            raise ValueError(f"{name} differs from the one used at initialisation")
    return model(pdf_params)


def evolution_eps_values() -> Tuple[float, ...]:
    """Accuracy values logged by the process-wide model."""

    return default_model().diagnostics.values


def reset_evolution_eps_values() -> None:
    default_model().diagnostics.reset()


__all__ = [
    "ForwardModel",
    "PredictedCounts",
    "default_model",
    "evolution_eps_values",
    "forward_model",
    "forward_model_init",
    "integrate_cross_sections",
    "reset_evolution_eps_values",
]
