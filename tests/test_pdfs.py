import numpy as np
import pytest

from partondensity.pdfs import (
    BetaTerm,
    DirichletPDFParams,
    InadmissibleParametersError,
    pdf_params_from_record,
)


@pytest.mark.parametrize(
    "fixture_name",
    ["dirichlet_params", "bernstein_params", "bernstein_dirichlet_params"],
)
def test_momentum_sum_rule(request, fixture_name):
    params = request.getfixturevalue(fixture_name)
    assert sum(params.theta) == pytest.approx(1.0, abs=1e-9)
    assert params.momentum_sum() == pytest.approx(1.0, abs=1e-4)


@pytest.mark.parametrize(
    "fixture_name",
    ["dirichlet_params", "bernstein_params", "bernstein_dirichlet_params"],
)
def test_valence_number_rules(request, fixture_name):
    params = request.getfixturevalue(fixture_name)
    assert params.valence_number(2) == pytest.approx(2.0, rel=1e-4)
    assert params.valence_number(1) == pytest.approx(1.0, rel=1e-4)


def test_dirichlet_valence_exponents(dirichlet_params):
    theta = dirichlet_params.theta
    assert dirichlet_params.lambda_u == pytest.approx(theta[0] * 5.0 / (2.0 - theta[0]))
    assert dirichlet_params.lambda_d == pytest.approx(theta[1] * 5.0 / (1.0 - theta[1]))


def test_bernstein_derives_valence_momentum(bernstein_params):
    assert bernstein_params.theta[0] == pytest.approx(0.48)
    assert bernstein_params.theta[1] == pytest.approx(0.24)


def test_xfx_scalar_and_vector(dirichlet_params):
    assert isinstance(dirichlet_params.xfx(0, 0.1), float)
    assert dirichlet_params.xfx(21, 0.1) == dirichlet_params.xfx(0, 0.1)
    values = dirichlet_params.xfx(2, np.array([0.01, 0.1, 0.5]))
    assert values.shape == (3,)
    assert np.all(values > 0.0)


def test_antiquarks_carry_no_valence(dirichlet_params):
    x = np.array([0.05, 0.3])
    ubar = dirichlet_params.xfx(-2, x)
    u = dirichlet_params.xfx(2, x)
    np.testing.assert_allclose(u - ubar, dirichlet_params.x_valence(2, x))
    assert np.all(dirichlet_params.xfx(6, x) == 0.0)


def test_unknown_parton_id(dirichlet_params):
    with pytest.raises(ValueError):
        dirichlet_params.xfx(7, 0.1)


def test_valence_ordering_is_enforced():
    with pytest.raises(InadmissibleParametersError):
        DirichletPDFParams(
            K_u=4.0, K_d=4.0, lambda_g1=1.5, lambda_g2=-0.4, K_g=6.0, lambda_q=-0.25, K_q=5.0,
            weights=(15.0, 15.0, 12.0, 6.0, 3.6, 0.85, 0.85, 0.85, 0.85),
        )


def test_theta_must_be_on_simplex():
    with pytest.raises(ValueError):
        DirichletPDFParams(
            K_u=4.0, K_d=4.0, lambda_g1=1.5, lambda_g2=-0.4, K_g=6.0, lambda_q=-0.25, K_q=5.0,
            theta=(0.5, 0.2, 0.2, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0),
        )


def test_beta_term_integrates_to_weight():
    from scipy import integrate

    term = BetaTerm(0.3, 0.5, 3.0)
    value, _ = integrate.quad(lambda x: float(term.evaluate(np.asarray(x))), 0.0, 1.0)
    assert value == pytest.approx(0.3, rel=1e-8)


def test_record_rebuilds_same_parameters(bernstein_dirichlet_params):
    record = bernstein_dirichlet_params.to_record()
    assert record["param_type"] == "bernstein_dirichlet"
    rebuilt = pdf_params_from_record(record)
    assert rebuilt.theta == pytest.approx(bernstein_dirichlet_params.theta)
    assert rebuilt.lambda_u == pytest.approx(bernstein_dirichlet_params.lambda_u)


def test_unknown_param_type():
    with pytest.raises(ValueError, match="Unknown PDF parametrisation"):
        pdf_params_from_record({"param_type": "hermite"})
