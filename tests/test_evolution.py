import threading

import numpy as np
import pytest

from partondensity.config import EvolutionConfig, GridConfig, default_evolution_config
from partondensity.evolution import (
    EngineNotInitializedError,
    EvolutionDiagnostics,
    EvolutionEngine,
    EvolutionInitializationError,
    beta_coefficients,
    parton_index,
)

SMALL_GRID = GridConfig(nx=40, nq=12)


@pytest.fixture(scope="module")
def engine():
    evolution = EvolutionEngine()
    evolution.initialize(SMALL_GRID, EvolutionConfig(grid=SMALL_GRID))
    return evolution


def test_diagnostics_is_append_only():
    diagnostics = EvolutionDiagnostics()
    for value in (0.01, 0.2, 0.03):
        diagnostics.append(value)
    assert diagnostics.values == (0.01, 0.2, 0.03)
    assert len(diagnostics) == 3
    assert diagnostics.count_above(0.05) == 1
    assert diagnostics.maximum() == 0.2
    diagnostics.reset()
    assert len(diagnostics) == 0


def test_diagnostics_concurrent_appends():
    diagnostics = EvolutionDiagnostics()

    def _append():
        for _ in range(200):
            diagnostics.append(0.01)

    threads = [threading.Thread(target=_append) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(diagnostics) == 800


def test_beta_coefficients_five_flavours():
    beta0, beta1 = beta_coefficients(5)
    assert beta0 == pytest.approx(23.0 / 3.0)
    assert beta1 == pytest.approx(116.0 / 3.0)


def test_engine_requires_initialisation(dirichlet_params):
    with pytest.raises(EngineNotInitializedError):
        EvolutionEngine().evolve(dirichlet_params.xfx)


def test_engine_cannot_be_initialised_twice(engine):
    with pytest.raises(EvolutionInitializationError):
        engine.initialize(SMALL_GRID, EvolutionConfig(grid=SMALL_GRID))


@pytest.mark.parametrize(
    "config",
    [
        EvolutionConfig(grid=SMALL_GRID, q0=50.0),
        EvolutionConfig(grid=SMALL_GRID, q0=5.0e4),
        EvolutionConfig(grid=SMALL_GRID, order=3),
        EvolutionConfig(grid=SMALL_GRID, weight_type=2),
        EvolutionConfig(grid=SMALL_GRID, n_fixed_flav=2),
        default_evolution_config(),
    ],
)
def test_inconsistent_configuration(config):
    with pytest.raises(EvolutionInitializationError):
        EvolutionEngine().initialize(SMALL_GRID, config)


def test_evolution_starts_from_input(engine, dirichlet_params):
    evolved, epsilon = engine.evolve(dirichlet_params.xfx)
    assert evolved.table.shape == (13, SMALL_GRID.nq, SMALL_GRID.nx)
    start = engine.iq_from_q2(100.0)
    np.testing.assert_allclose(evolved.table[:, start, :], engine.tabulate(dirichlet_params.xfx))
    assert evolved.alphas[start] == pytest.approx(0.118)
    assert 0.0 <= epsilon < 1.0
    assert engine.evolved(1) is evolved


def test_coupling_decreases_with_scale(engine, dirichlet_params):
    evolved, _ = engine.evolve(dirichlet_params.xfx)
    assert np.all(np.diff(evolved.alphas) < 0.0)


def test_gluon_grows_at_small_x(engine, dirichlet_params):
    evolved, _ = engine.evolve(dirichlet_params.xfx)
    gluon = evolved.grid_values(0)
    large_x = int(np.searchsorted(evolved.x_nodes, 0.5))
    assert gluon[-1, 0] > gluon[0, 0]
    assert gluon[-1, large_x] < gluon[0, large_x]


def test_top_stays_empty_with_five_flavours(engine, dirichlet_params):
    evolved, _ = engine.evolve(dirichlet_params.xfx)
    assert np.all(evolved.table[parton_index(6)] == 0.0)
    assert np.all(evolved.table[parton_index(-6)] == 0.0)


def test_evolution_is_deterministic(engine, dirichlet_params):
    first, eps_first = engine.evolve(dirichlet_params.xfx)
    table = first.table.copy()
    second, eps_second = engine.evolve(dirichlet_params.xfx)
    assert eps_first == eps_second
    np.testing.assert_array_equal(table, second.table)


def test_interpolated_density(engine, dirichlet_params):
    evolved, _ = engine.evolve(dirichlet_params.xfx)
    value = evolved.xfx(2, 0.1, 100.0)
    assert value == pytest.approx(dirichlet_params.xfx(2, 0.1), rel=0.05)
