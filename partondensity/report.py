"""Summaries of posterior samples from a PDF fit."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Tuple

import numpy as np

from .monte_carlo import ChainResult


@dataclass(frozen=True)
class ParameterSummary:
    """Posterior mean and spread of one scalar parameter (or vector component)."""

    name: str
    mean: float
    std: float
    truth: float | None = None

    @property
    def pull(self) -> float | None:
        if self.truth is None or self.std == 0.0:
            return None
        return (self.mean - self.truth) / self.std


@dataclass(frozen=True)
class FitSummary:
    """Per-parameter posterior summary plus sampler and evolution diagnostics."""

    parameters: Tuple[ParameterSummary, ...]
    acceptance_rates: Tuple[float, ...]
    n_samples: int
    eps_values: Tuple[float, ...] = ()
    eps_threshold: float | None = None

    @property
    def eps_max(self) -> float | None:
        return max(self.eps_values) if self.eps_values else None

    @property
    def eps_exceeded(self) -> int:
        if self.eps_threshold is None:
            return 0
        return sum(1 for value in self.eps_values if value > self.eps_threshold)


def _format_value(value: float, error: float | None = None) -> str:
    if error is None:
        return f"{value:.6g}"
    return f"{value:.6g} +/- {error:.2g}"


def summarise_chains(
    chains: Sequence[ChainResult],
    truth: Mapping[str, Any] | None = None,
    *,
    burn_in: int = 0,
    eps_values: Sequence[float] = (),
    eps_threshold: float | None = None,
) -> FitSummary:
    """Pool the chains after ``burn_in`` steps and summarise every parameter.

    Vector parameters such as ``theta`` are summarised per component under
    ``name[i]``.
    """

    if not chains:
        raise ValueError("at least one chain is required")
    if burn_in < 0 or burn_in >= min(chain.steps for chain in chains):
        raise ValueError("burn_in must lie in [0, steps)")
    truth = dict(truth or {})

    summaries: List[ParameterSummary] = []
    names = [name for name in chains[0].samples[0] if name != "param_type"]
    for name in names:
        pooled = np.concatenate([chain.values(name)[burn_in:] for chain in chains], axis=0)
        true_value = truth.get(name)
        if pooled.ndim == 1:
            summaries.append(
                ParameterSummary(
                    name=name,
                    mean=float(pooled.mean()),
                    std=float(pooled.std()),
                    truth=None if true_value is None else float(true_value),
                )
            )
            continue
        true_vector = None if true_value is None else np.asarray(true_value, dtype=float)
        for index in range(pooled.shape[1]):
            summaries.append(
                ParameterSummary(
                    name=f"{name}[{index}]",
                    mean=float(pooled[:, index].mean()),
                    std=float(pooled[:, index].std()),
                    truth=None if true_vector is None else float(true_vector[index]),
                )
            )

    return FitSummary(
        parameters=tuple(summaries),
        acceptance_rates=tuple(chain.acceptance_rate for chain in chains),
        n_samples=sum(chain.steps - burn_in for chain in chains),
        eps_values=tuple(float(value) for value in eps_values),
        eps_threshold=eps_threshold,
    )


def format_report(summary: FitSummary) -> str:
    """Render a human-readable version of a :class:`FitSummary`."""

    lines: List[str] = []
    lines.append("=== Posterior summary ===")
    lines.append(f"{summary.n_samples} pooled samples from {len(summary.acceptance_rates)} chains")
    for parameter in summary.parameters:
        line = f"  {parameter.name:<12s} = {_format_value(parameter.mean, parameter.std)}"
        if parameter.truth is not None:
            line += f" (truth {_format_value(parameter.truth)})"
        lines.append(line)
    lines.append("")

    lines.append("=== Sampler ===")
    rates = ", ".join(f"{rate:.3f}" for rate in summary.acceptance_rates)
    lines.append(f"Acceptance rates = [{rates}]")
    lines.append("")

    lines.append("=== Evolution accuracy ===")
    if summary.eps_values:
        lines.append(f"{len(summary.eps_values)} forward-model calls, max eps = {summary.eps_max:.4g}")
        if summary.eps_threshold is not None:
            lines.append(f"Calls above threshold {summary.eps_threshold:.3g}: {summary.eps_exceeded}")
    else:
        lines.append("No evolution diagnostics recorded")

    return "\n".join(lines)


__all__ = ["FitSummary", "ParameterSummary", "format_report", "summarise_chains"]
