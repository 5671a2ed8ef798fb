"""Simulate a data set at a reference Dirichlet point and fit it back."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np

from .config import default_evolution_config, default_spline_config
from .forward_model import ForwardModel, PredictedCounts
from .high_energy import QuarkCouplings
from .io import SimulationData
from .likelihood import PoissonLikelihood
from .logging_config import setup_logging
from .monte_carlo import dirichlet_prior, run_chains, simulate_counts
from .pdfs import DirichletPDFParams
from .report import format_report, summarise_chains
from .response import build_binning

logger = logging.getLogger(__name__)

REFERENCE_WEIGHTS: Tuple[float, ...] = (30.0, 15.0, 12.0, 6.0, 3.6, 0.85, 0.85, 0.85, 0.85)


def reference_dirichlet_params() -> DirichletPDFParams:
    return DirichletPDFParams(
        K_u=4.0,
        K_d=4.0,
        lambda_g1=1.5,
        lambda_g2=-0.4,
        K_g=6.0,
        lambda_q=-0.25,
        K_q=5.0,
        weights=REFERENCE_WEIGHTS,
    )


def build_reference_model() -> ForwardModel:
    """Initialised forward model on the default grid and HERA-like binning."""

    spline_config = default_spline_config()
    model = ForwardModel(
        default_evolution_config(),
        spline_config,
        QuarkCouplings(),
        build_binning(sqrt_s=spline_config.sqrt_s),
    )
    model.initialize()
    return model


@dataclass(frozen=True)
class ReferenceSimulation:
    """Model, true parameters and simulated counts of the reference example."""

    model: ForwardModel
    truth: DirichletPDFParams
    data: SimulationData

    @property
    def predicted(self) -> PredictedCounts | None:
        return self.data.predicted


def simulate_dirichlet_example(seed: int | None = None, model: ForwardModel | None = None) -> ReferenceSimulation:
    """Predict counts at the reference point and draw Poisson observations.

    Parameters
    ----------
    seed:
        Seed of the Poisson draws.
    model:
        Initialised forward model to reuse; a fresh one is built when omitted.
    """

    model = model if model is not None else build_reference_model()
    truth = reference_dirichlet_params()
    predicted = model(truth)
    counts_ep, counts_em = simulate_counts(predicted, rng=np.random.default_rng(seed))
    logger.info("Simulated %d e+p and %d e-p events", counts_ep.sum(), counts_em.sum())
    return ReferenceSimulation(
        model=model,
        truth=truth,
        data=SimulationData(counts_obs_ep=counts_ep, counts_obs_em=counts_em, predicted=predicted),
    )


def _sampling_record(pdf_params: DirichletPDFParams) -> Dict[str, Any]:
    record = pdf_params.to_record()
    record.pop("param_type")
    record["theta"] = np.asarray(record["theta"])
    return record


def main(seed: int = 42, n_chains: int = 2, n_steps: int = 50) -> None:
    """Simulate the reference data set, run a short fit and print the summary."""

    setup_logging()
    simulation = simulate_dirichlet_example(seed)
    likelihood = PoissonLikelihood(
        simulation.model,
        simulation.data.counts_obs_ep,
        simulation.data.counts_obs_em,
    )
    truth = _sampling_record(simulation.truth)
    chains = run_chains(
        likelihood,
        dirichlet_prior(REFERENCE_WEIGHTS),
        n_chains=n_chains,
        n_steps=n_steps,
        seed=seed,
        initial=truth,
    )
    summary = summarise_chains(
        chains,
        truth,
        burn_in=n_steps // 5,
        eps_values=simulation.model.diagnostics.values,
        eps_threshold=simulation.model.eps_threshold,
    )
    print(format_report(summary))


if __name__ == "__main__":  # pragma: no cover - simple demonstration helper
    main()
