"""Shared fixtures for the forward-model tests."""

import pytest

from partondensity.config import default_evolution_config, default_spline_config
from partondensity.forward_model import ForwardModel
from partondensity.high_energy import QuarkCouplings
from partondensity.pdfs import BernsteinDirichletPDFParams, BernsteinPDFParams, DirichletPDFParams
from partondensity.response import build_binning

REFERENCE_WEIGHTS = (30.0, 15.0, 12.0, 6.0, 3.6, 0.85, 0.85, 0.85, 0.85)


@pytest.fixture
def dirichlet_params():
    """The reference Dirichlet point."""
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


@pytest.fixture
def bernstein_params():
    return BernsteinPDFParams(
        U_list=(4.0, 1.0, 0.0, 0.0),
        D_list=(4.0, 1.0, 0.0, 0.0),
        lambda_g1=1.5,
        lambda_g2=-0.4,
        K_g=6.0,
        lambda_q=-0.25,
        K_q=5.0,
        weights=(12.0, 6.0, 3.6, 0.85, 0.85, 0.85, 0.85),
    )


@pytest.fixture
def bernstein_dirichlet_params():
    return BernsteinDirichletPDFParams(
        U_list=(1.0, 2.0, 1.0),
        D_list=(1.0, 1.0),
        lambda_g1=1.5,
        lambda_g2=-0.4,
        K_g=6.0,
        lambda_q=-0.25,
        K_q=5.0,
        weights=REFERENCE_WEIGHTS,
    )


def make_model(**kwargs):
    spline_config = default_spline_config()
    return ForwardModel(
        default_evolution_config(),
        spline_config,
        QuarkCouplings(),
        build_binning(sqrt_s=spline_config.sqrt_s),
        **kwargs,
    )


@pytest.fixture
def model_factory():
    """Build uninitialised forward models on the default configuration."""
    return make_model


@pytest.fixture(scope="session")
def model():
    """Initialised forward model shared by the whole session."""
    forward = make_model()
    forward.initialize()
    return forward
