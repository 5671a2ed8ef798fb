import numpy as np
import pytest

from partondensity.config import EvolutionConfig, GridConfig, SplineConfig
from partondensity.evolution import EngineNotInitializedError, EvolutionEngine
from partondensity.high_energy import QuarkCouplings, gluon_weight
from partondensity.splines import SplineWorkspace, StructureFunction, build_splines

SMALL_GRID = GridConfig(nx=40, nq=12)


@pytest.fixture(scope="module")
def workspace_setup():
    engine = EvolutionEngine()
    engine.initialize(SMALL_GRID, EvolutionConfig(grid=SMALL_GRID))
    spline_config = SplineConfig()
    workspace = SplineWorkspace()
    workspace.initialize(engine, spline_config)
    return engine, workspace, spline_config


def test_initialisation_assigns_distinct_addresses(workspace_setup):
    _, workspace, spline_config = workspace_setup
    addresses = list(spline_config.spline_addresses.values())
    assert len(set(addresses)) == len(spline_config.names)
    assert workspace.address_of("F_eP") == spline_config.address("F_eP")


def test_workspace_requires_initialised_engine():
    with pytest.raises(EngineNotInitializedError):
        SplineWorkspace().initialize(EvolutionEngine(), SplineConfig())


def test_uninitialised_fill_raises():
    with pytest.raises(EngineNotInitializedError):
        SplineWorkspace().fill_structure_function(1, None, QuarkCouplings().proup, StructureFunction.F2)


def test_f2_table_is_charge_weighted_sum(workspace_setup, dirichlet_params):
    engine, workspace, spline_config = workspace_setup
    evolved, _ = engine.evolve(dirichlet_params.xfx)
    couplings = QuarkCouplings()
    build_splines(workspace, evolved, couplings, spline_config)

    f2up = workspace.node_values(spline_config.address("F2up"))
    expected = evolved.grid_values(2) + evolved.grid_values(-2) + evolved.grid_values(4) + evolved.grid_values(-4)
    np.testing.assert_allclose(f2up, expected)

    x, q2 = engine.x_nodes[20], engine.q2_nodes[5]
    assert workspace.evaluate(spline_config.address("F2up"), x, q2) == pytest.approx(f2up[5, 20], rel=1e-8)


def test_fl_is_positive_and_small(workspace_setup, dirichlet_params):
    engine, workspace, spline_config = workspace_setup
    evolved, _ = engine.evolve(dirichlet_params.xfx)
    build_splines(workspace, evolved, QuarkCouplings(), spline_config)
    fl = workspace.node_values(spline_config.address("FLup"))
    f2 = workspace.node_values(spline_config.address("F2up"))
    inner = slice(0, -5)
    assert np.all(fl[:, inner] > 0.0)
    assert np.all(fl[:, inner] < f2[:, inner])


def test_fl_gluon_term_counts_selected_flavours(workspace_setup, dirichlet_params):
    engine, workspace, spline_config = workspace_setup
    evolved, _ = engine.evolve(dirichlet_params.xfx)
    prodn = QuarkCouplings().prodn
    address = spline_config.address("FLdn")
    workspace.fill_structure_function(address, evolved, prodn, StructureFunction.FL)

    tables = engine.weight_tables
    quarks = np.tensordot(np.asarray(prodn), evolved.table, axes=(0, 0))
    gluon = evolved.grid_values(0)
    assert gluon_weight(prodn) == 3.0
    expected = (evolved.alphas[:, None] / np.pi) * (
        (4.0 / 3.0) * quarks @ tables.fl_quark.T + 2.0 * 3.0 * gluon @ tables.fl_gluon.T
    )
    np.testing.assert_allclose(workspace.node_values(address), expected)


def test_cross_section_tables_respect_kinematic_cut(workspace_setup, dirichlet_params):
    engine, workspace, spline_config = workspace_setup
    evolved, _ = engine.evolve(dirichlet_params.xfx)
    build_splines(workspace, evolved, QuarkCouplings(), spline_config)
    assert workspace.lepton_charge == -1

    x, q2 = np.meshgrid(engine.x_nodes, engine.q2_nodes)
    for name in ("F_eP", "F_eM"):
        values = workspace.node_values(spline_config.address(name))
        assert np.all(values[q2 > x * spline_config.s_cut] == 0.0)


def test_bin_integral_of_constant(workspace_setup):
    _, workspace, spline_config = workspace_setup
    address = spline_config.address("F_eP")
    workspace.fill(address, lambda x, q2: np.ones_like(x), 1.0e12)
    # d sigma = 1 per unit x and Q2 over a bin inside the kinematic limit
    value = workspace.integrate(address, (0.1, 0.2), (200.0, 400.0), 318.0, 6)
    assert value == pytest.approx(0.1 * 200.0, rel=1e-6)
    workspace.fill(address, lambda x, q2: np.zeros_like(x), spline_config.s_cut)
    assert workspace.integrate(address, (0.1, 0.2), (200.0, 400.0), 318.0, 6) == 0.0


def test_select_charge_validation():
    with pytest.raises(ValueError):
        SplineWorkspace().select_charge(0)
