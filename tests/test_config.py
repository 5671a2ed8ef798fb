import numpy as np
import pytest

from partondensity.config import (
    SPLINE_NAMES,
    EvolutionConfig,
    GridConfig,
    SplineConfig,
    default_evolution_config,
)


def test_default_grid_nodes():
    grid = GridConfig()
    x = grid.x_nodes()
    q2 = grid.q2_nodes()
    assert x.size == grid.nx
    assert q2.size == grid.nq
    assert x[0] == pytest.approx(1.0e-3)
    assert x[-1] == 1.0
    assert q2[0] == pytest.approx(1.0e2)
    assert q2[-1] == pytest.approx(3.0e4)
    assert np.all(np.diff(x) > 0.0)
    assert np.all(np.diff(q2) > 0.0)


def test_x_region_bounds_are_nodes():
    x = GridConfig().x_nodes()
    for bound in (1.0e-1, 5.0e-1):
        assert np.min(np.abs(np.log(x) - np.log(bound))) < 1e-12


def test_denser_region_gets_finer_spacing():
    log_x = np.log(GridConfig().x_nodes())
    spacing = np.diff(log_x)
    assert spacing[0] > spacing[-1]


def test_degree_follows_interpolation_order():
    assert GridConfig(spline_interp=2).degree == 1
    assert GridConfig(spline_interp=3).degree == 2


@pytest.mark.parametrize(
    "kwargs",
    [
        {"x_min": (1e-1, 1e-3), "x_weights": (1.0, 1.0)},
        {"x_weights": (1.0, 2.0)},
        {"qq_bounds": (3e4, 1e2)},
        {"spline_interp": 4},
        {"nq": 2},
    ],
)
def test_invalid_grid(kwargs):
    with pytest.raises(ValueError):
        GridConfig(**kwargs)


def test_variable_flavour_thresholds():
    config = EvolutionConfig(n_fixed_flav=0, iqc=2, iqb=5, iqt=9)
    assert [config.n_flavours(iq) for iq in (0, 2, 5, 9)] == [3, 4, 5, 6]
    assert default_evolution_config().n_flavours(30) == 5


def test_spline_addresses_start_empty():
    config = SplineConfig()
    assert config.names == SPLINE_NAMES
    assert config.s_cut == pytest.approx(370.0**2)
    with pytest.raises(KeyError):
        config.address("F2up")
