"""Forward model from parton density parameters to predicted DIS event counts."""

from .config import (
    EvolutionConfig,
    GridConfig,
    SplineConfig,
    default_evolution_config,
    default_grid,
    default_spline_config,
)
from .evolution import (
    EngineNotInitializedError,
    EvolutionDiagnostics,
    EvolutionEngine,
    EvolutionInitializationError,
)
from .forward_model import (
    ForwardModel,
    PredictedCounts,
    evolution_eps_values,
    forward_model,
    forward_model_init,
    reset_evolution_eps_values,
)
from .high_energy import QuarkCouplings
from .likelihood import PoissonLikelihood
from .logging_config import setup_logging
from .pdfs import (
    BernsteinDirichletPDFParams,
    BernsteinPDFParams,
    DirichletPDFParams,
    InadmissibleParametersError,
    PDFParameters,
    pdf_params_from_record,
)
from .response import AnalysisBinning, build_binning, fold

__all__ = [
    "EvolutionConfig",
    "GridConfig",
    "SplineConfig",
    "default_evolution_config",
    "default_grid",
    "default_spline_config",
    "EngineNotInitializedError",
    "EvolutionDiagnostics",
    "EvolutionEngine",
    "EvolutionInitializationError",
    "ForwardModel",
    "PredictedCounts",
    "evolution_eps_values",
    "forward_model",
    "forward_model_init",
    "reset_evolution_eps_values",
    "QuarkCouplings",
    "PoissonLikelihood",
    "setup_logging",
    "BernsteinDirichletPDFParams",
    "BernsteinPDFParams",
    "DirichletPDFParams",
    "InadmissibleParametersError",
    "PDFParameters",
    "pdf_params_from_record",
    "AnalysisBinning",
    "build_binning",
    "fold",
]
