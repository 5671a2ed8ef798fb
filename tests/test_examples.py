import numpy as np
import pytest

from partondensity.examples import reference_dirichlet_params, simulate_dirichlet_example


def test_reference_point_is_admissible():
    params = reference_dirichlet_params()
    assert params.theta[0] > params.theta[1]
    assert sum(params.theta) == pytest.approx(1.0)


def test_simulation_is_seeded(model):
    first = simulate_dirichlet_example(seed=5, model=model)
    second = simulate_dirichlet_example(seed=5, model=model)
    np.testing.assert_array_equal(first.data.counts_obs_ep, second.data.counts_obs_ep)
    np.testing.assert_array_equal(first.data.counts_obs_em, second.data.counts_obs_em)
    assert first.data.counts_obs_ep.shape == (model.n_detector_bins,)
    assert first.predicted is not None
