"""Monte Carlo helpers for simulating data and sampling the posterior.

* :func:`simulate_counts` – Poisson draws of observed counts around a forward
  model prediction.
* :class:`Prior` – product prior over a flat named parameter record, with a
  Dirichlet distribution for the momentum weights ``theta``.
* :func:`metropolis_hastings` – a single random-walk Metropolis–Hastings chain.
* :func:`run_chains` – several independent chains run on a thread pool.

Chains only share the log-density; the forward model it wraps serialises
itself, so proposal generation and acceptance decisions stay parallel.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import numpy as np
from scipy import stats

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
LogDensity = Callable[[Mapping[str, Any]], float]

# Floor of the Dirichlet proposal concentration per component.
_MIN_CONCENTRATION = 1.0


def simulate_counts(
    predicted,
    *,
    rng: np.random.Generator | None = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Draw observed e+p and e-p counts from Poisson distributions.

    ``predicted`` is a :class:`~partondensity.forward_model.PredictedCounts`
    (or any ``(ep, em)`` pair); negative rates are treated as zero.
    """

    if rng is None:
        rng = np.random.default_rng()
    ep, em = predicted
    counts_ep = rng.poisson(np.clip(np.asarray(ep, dtype=float), 0.0, None))
    counts_em = rng.poisson(np.clip(np.asarray(em, dtype=float), 0.0, None))
    return counts_ep.astype(np.int64), counts_em.astype(np.int64)


class Prior:
    """Independent prior over the entries of a parameter record.

    Parameters
    ----------
    theta_concentration:
        Dirichlet concentration of the momentum weights ``theta``; ``None``
        leaves ``theta`` out of the record.
    scalars:
        Mapping from scalar parameter names to frozen ``scipy.stats``
        distributions.
    """

    def __init__(
        self,
        scalars: Mapping[str, Any],
        theta_concentration: Sequence[float] | None = None,
    ) -> None:
        self.scalars = dict(scalars)
        if theta_concentration is not None:
            alpha = np.asarray(theta_concentration, dtype=float)
            if alpha.ndim != 1 or np.any(alpha <= 0.0):
                raise ValueError("theta_concentration must be a vector of positive values")
            self.theta = stats.dirichlet(alpha)
            self.theta_size = alpha.size
        else:
            self.theta = None
            self.theta_size = 0

    @property
    def names(self) -> Tuple[str, ...]:
        names = tuple(self.scalars)
        return names + (("theta",) if self.theta is not None else ())

    def sample(self, rng: np.random.Generator) -> Record:
        record: Record = {name: float(dist.rvs(random_state=rng)) for name, dist in self.scalars.items()}
        if self.theta is not None:
            record["theta"] = np.asarray(self.theta.rvs(random_state=rng)[0])
        return record

    def logpdf(self, record: Mapping[str, Any]) -> float:
        total = 0.0
        for name, dist in self.scalars.items():
            value = dist.logpdf(record[name])
            if not np.isfinite(value):
                return -math.inf
            total += float(value)
        if self.theta is not None:
            theta = np.asarray(record["theta"], dtype=float)
            if theta.shape != (self.theta_size,) or np.any(theta <= 0.0):
                return -math.inf
            total += float(self.theta.logpdf(theta / theta.sum()))
        return total


def dirichlet_prior(weights: Sequence[float]) -> Prior:
    """Prior of the Dirichlet parametrisation centred on reference ``weights``."""

    return Prior(
        scalars={
            "K_u": stats.uniform(3.0, 4.0),
            "K_d": stats.uniform(3.0, 4.0),
            "lambda_g1": stats.uniform(1.0, 1.0),
            "lambda_g2": stats.uniform(-0.5, 0.4),
            "K_g": stats.uniform(3.0, 4.0),
            "lambda_q": stats.uniform(-0.5, 0.4),
            "K_q": stats.uniform(3.0, 4.0),
        },
        theta_concentration=weights,
    )


@dataclass
class ChainResult:
    """Samples and bookkeeping of one Markov chain."""

    samples: List[Record]
    log_posterior: np.ndarray
    accepted: int
    steps: int
    seed_sequence: np.random.SeedSequence | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def acceptance_rate(self) -> float:
        return self.accepted / self.steps if self.steps else 0.0

    def values(self, name: str) -> np.ndarray:
        """Trace of parameter ``name`` (2-d for vector parameters)."""

        return np.array([np.asarray(sample[name], dtype=float) for sample in self.samples])


def _propose(
    current: Record,
    prior: Prior,
    step_sizes: Mapping[str, float],
    theta_scale: float,
    rng: np.random.Generator,
) -> Tuple[Record, float]:
    """Return a proposal and the log Hastings correction ``log q(x|x') - log q(x'|x)``."""

    proposal: Record = dict(current)
    for name in prior.scalars:
        proposal[name] = float(current[name] + step_sizes[name] * rng.standard_normal())

    correction = 0.0
    if prior.theta is not None:
        theta = np.asarray(current["theta"], dtype=float)
        forward_alpha = np.maximum(theta_scale * theta, _MIN_CONCENTRATION)
        new_theta = rng.dirichlet(forward_alpha)
        if np.any(new_theta <= 0.0):
            return proposal, -math.inf
        backward_alpha = np.maximum(theta_scale * new_theta, _MIN_CONCENTRATION)
        correction = float(
            stats.dirichlet(backward_alpha).logpdf(theta / theta.sum())
            - stats.dirichlet(forward_alpha).logpdf(new_theta)
        )
        proposal["theta"] = new_theta
    return proposal, correction


def metropolis_hastings(
    log_density: LogDensity,
    prior: Prior,
    *,
    n_steps: int,
    rng: np.random.Generator,
    initial: Mapping[str, Any] | None = None,
    step_scale: float = 0.05,
    theta_scale: float = 2000.0,
) -> ChainResult:
    """Run a random-walk Metropolis–Hastings chain on ``prior × likelihood``.

    Scalars take Gaussian steps of ``step_scale`` times their prior standard
    deviation; ``theta`` is proposed from a Dirichlet centred on the current
    point with concentration ``theta_scale``.
    """

    if n_steps <= 0:
        raise ValueError("n_steps must be a positive integer")
    step_sizes = {name: step_scale * float(dist.std()) for name, dist in prior.scalars.items()}

    current = dict(initial) if initial is not None else prior.sample(rng)
    current_log_prior = prior.logpdf(current)
    if not np.isfinite(current_log_prior):
        raise ValueError("initial point lies outside the prior support")
    current_value = current_log_prior + log_density(current)

    samples: List[Record] = []
    log_posterior = np.empty(n_steps)
    accepted = 0
    for step in range(n_steps):
        proposal, correction = _propose(current, prior, step_sizes, theta_scale, rng)
        proposal_log_prior = prior.logpdf(proposal) if np.isfinite(correction) else -math.inf
        if np.isfinite(proposal_log_prior):
            proposal_value = proposal_log_prior + log_density(proposal)
            log_ratio = proposal_value - current_value + correction
            if np.isfinite(proposal_value) and math.log(rng.random()) < log_ratio:
                current, current_value = proposal, proposal_value
                accepted += 1
        samples.append(dict(current))
        log_posterior[step] = current_value

    return ChainResult(samples=samples, log_posterior=log_posterior, accepted=accepted, steps=n_steps)


def run_chains(
    log_density: LogDensity,
    prior: Prior,
    *,
    n_chains: int,
    n_steps: int,
    seed: int | None = None,
    initial: Mapping[str, Any] | None = None,
    max_workers: int | None = None,
    **kwargs: Any,
) -> List[ChainResult]:
    """Run ``n_chains`` independent chains on a thread pool.

    Each chain draws from its own generator spawned from ``seed`` and keeps
    the spawned :class:`numpy.random.SeedSequence` so it can be rerun alone.
    """

    if n_chains <= 0:
        raise ValueError("n_chains must be a positive integer")
    seeds = np.random.SeedSequence(seed).spawn(n_chains)

    def _run(index: int) -> ChainResult:
        rng = np.random.default_rng(seeds[index])
        result = metropolis_hastings(log_density, prior, n_steps=n_steps, rng=rng, initial=initial, **kwargs)
        result.seed_sequence = seeds[index]
        result.metadata["chain"] = index
        logger.info("Chain %d finished: acceptance rate %.3f", index, result.acceptance_rate)
        return result

    with ThreadPoolExecutor(max_workers=max_workers or n_chains) as executor:
        return list(executor.map(_run, range(n_chains)))


__all__ = [
    "ChainResult",
    "Prior",
    "dirichlet_prior",
    "metropolis_hastings",
    "run_chains",
    "simulate_counts",
]
