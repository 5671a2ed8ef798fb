import math

import numpy as np
import pytest

from partondensity.forward_model import PredictedCounts
from partondensity.likelihood import PoissonLikelihood, clip_negative_counts, violates_valence_ordering
from partondensity.monte_carlo import simulate_counts


@pytest.fixture(scope="module")
def observed(model):
    from partondensity.pdfs import DirichletPDFParams

    truth = DirichletPDFParams(
        K_u=4.0, K_d=4.0, lambda_g1=1.5, lambda_g2=-0.4, K_g=6.0, lambda_q=-0.25, K_q=5.0,
        weights=(30.0, 15.0, 12.0, 6.0, 3.6, 0.85, 0.85, 0.85, 0.85),
    )
    return truth, simulate_counts(model(truth), rng=np.random.default_rng(1234))


def _record(params):
    record = params.to_record()
    record.pop("param_type")
    return record


def test_clip_negative_counts():
    original = np.array([1.0, -0.5, 2.0])
    clipped = clip_negative_counts(original, "ep")
    np.testing.assert_array_equal(clipped, [1.0, 0.0, 2.0])
    assert original[1] == -0.5


def test_violates_valence_ordering():
    assert violates_valence_ordering({"theta": [0.2, 0.3]})
    assert violates_valence_ordering({"theta": [0.25, 0.25]})
    assert not violates_valence_ordering({"theta": [0.3, 0.2]})
    assert not violates_valence_ordering({})


def test_truth_beats_distorted_point(model, observed):
    truth, (counts_ep, counts_em) = observed
    likelihood = PoissonLikelihood(model, counts_ep, counts_em)
    at_truth = likelihood(_record(truth))
    distorted = _record(truth)
    distorted["K_g"] = 3.0
    distorted["lambda_q"] = -0.45
    assert np.isfinite(at_truth)
    assert at_truth > likelihood(distorted)


def test_ordering_violation_is_minus_infinity(model, observed):
    truth, (counts_ep, counts_em) = observed
    likelihood = PoissonLikelihood(model, counts_ep, counts_em)
    calls_before = len(model.diagnostics)
    for k_g in (3.0, 6.0):
        record = _record(truth)
        record["K_g"] = k_g
        record["theta"] = [0.1, 0.3] + list(record["theta"][2:])
        assert likelihood(record) == -math.inf
    assert len(model.diagnostics) == calls_before


def test_inadmissible_family_point_is_minus_infinity(model, observed, bernstein_params):
    _, (counts_ep, counts_em) = observed
    likelihood = PoissonLikelihood(model, counts_ep, counts_em, param_type="bernstein")
    record = _record(bernstein_params)
    record["D_list"] = [0.0, 0.0, 1.0, 4.0]
    assert likelihood(record) == -math.inf


def test_fixed_values_are_merged(model, observed, bernstein_params):
    _, (counts_ep, counts_em) = observed
    record = _record(bernstein_params)
    fixed = {"U_list": record.pop("U_list"), "D_list": record.pop("D_list")}
    likelihood = PoissonLikelihood(model, counts_ep, counts_em, param_type="bernstein", fixed=fixed)
    assert likelihood.build_params(record).U_list == bernstein_params.U_list
    assert np.isfinite(likelihood(record))


def test_log_likelihood_sums_both_charges(model, observed):
    _, (counts_ep, counts_em) = observed
    likelihood = PoissonLikelihood(model, counts_ep, counts_em)
    rates = PredictedCounts(ep=counts_ep.astype(float), em=counts_em.astype(float))
    zero_em = PredictedCounts(ep=counts_ep.astype(float), em=np.zeros(counts_em.size))
    assert likelihood.log_likelihood(rates) > likelihood.log_likelihood(zero_em)


def test_observed_counts_are_validated(model):
    n_bins = model.n_detector_bins
    with pytest.raises(ValueError):
        PoissonLikelihood(model, np.zeros(n_bins - 1), np.zeros(n_bins))
    with pytest.raises(ValueError):
        PoissonLikelihood(model, np.full(n_bins, -1), np.zeros(n_bins))
