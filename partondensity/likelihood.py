"""Poisson likelihood of observed detector counts.

:class:`PoissonLikelihood` is the log-density handed to a sampling engine.  It
takes a flat named record of parameter values, builds the PDF parameters,
runs the forward model and sums the Poisson log-probabilities of the observed
counts in every detector bin of both beam charges.

Parameter points violating the valence ordering ``theta[0] > theta[1]`` are
not errors: they have zero posterior density and evaluate to ``-inf``.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Sequence

import numpy as np
from scipy import stats

from .forward_model import ForwardModel, PredictedCounts
from .pdfs import DirichletPDFParams, InadmissibleParametersError, PDFParameters, pdf_params_from_record

logger = logging.getLogger(__name__)


def clip_negative_counts(counts: np.ndarray, label: str = "") -> np.ndarray:
    """Return a copy of ``counts`` with negative entries set to zero."""

    counts = np.array(counts, dtype=float)
    negative = np.flatnonzero(counts < 0.0)
    for index in negative:
        logger.debug("counts_pred_%s[%d] = %.6g < 0, setting to 0", label, index, counts[index])
    counts[negative] = 0.0
    return counts


def violates_valence_ordering(record: Mapping[str, Any]) -> bool:
    """True when the record's ``theta`` puts at least as much momentum in d as in u valence."""

    theta = record.get("theta")
    if theta is None:
        return False
    return not theta[0] > theta[1]


def _observed(counts: Sequence[int], n_bins: int, label: str) -> np.ndarray:
    array = np.asarray(counts)
    if array.shape != (n_bins,):
        raise ValueError(f"counts_obs_{label} must contain {n_bins} entries, got {array.size}")
    if np.any(array < 0) or np.any(array != np.round(array)):
        raise ValueError(f"counts_obs_{label} must be non-negative integers")
    return array.astype(np.int64)


class PoissonLikelihood:
    """Log-likelihood of observed e+p and e-p counts given PDF parameters.

    Parameters
    ----------
    model:
        Initialised forward model.
    counts_obs_ep, counts_obs_em:
        Observed counts per detector bin.
    param_type:
        Parametrisation family used to interpret the records.
    fixed:
        Parameter values merged under every record, e.g. the Bernstein
        coefficient lists when only the shape exponents are fitted.
    """

    def __init__(
        self,
        model: ForwardModel,
        counts_obs_ep: Sequence[int],
        counts_obs_em: Sequence[int],
        *,
        param_type: str = DirichletPDFParams.param_type,
        fixed: Mapping[str, Any] | None = None,
    ) -> None:
        self.model = model
        self.param_type = param_type
        self.fixed = dict(fixed or {})
        n_bins = model.n_detector_bins
        self.counts_obs_ep = _observed(counts_obs_ep, n_bins, "ep")
        self.counts_obs_em = _observed(counts_obs_em, n_bins, "em")

    def build_params(self, record: Mapping[str, Any]) -> PDFParameters:
        merged = dict(self.fixed)
        merged.update(record)
        return pdf_params_from_record(merged, self.param_type)

    def log_likelihood(self, counts: PredictedCounts) -> float:
        """Summed Poisson log-probability of the observations given ``counts``."""

        rate_ep = clip_negative_counts(counts.ep, "ep")
        rate_em = clip_negative_counts(counts.em, "em")
        value = stats.poisson.logpmf(self.counts_obs_ep, rate_ep).sum()
        value += stats.poisson.logpmf(self.counts_obs_em, rate_em).sum()
        return float(value)

    def log_density(self, record: Mapping[str, Any]) -> float:
        if violates_valence_ordering(record):
            return -math.inf
        try:
            pdf_params = self.build_params(record)
        except InadmissibleParametersError as exc:
            logger.debug("Rejected parameter point: %s", exc)
            return -math.inf
        return self.log_likelihood(self.model(pdf_params))

    __call__ = log_density


__all__ = ["PoissonLikelihood", "clip_negative_counts", "violates_valence_ordering"]
