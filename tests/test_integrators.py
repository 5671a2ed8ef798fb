import math

import numpy as np
import pytest

from partondensity.integrators import gauss_legendre, lagrange_weights, runge_kutta4


def _oscillator(_t, state):
    return np.array([state[1], -state[0]])


def test_runge_kutta4_harmonic_oscillator():
    result = runge_kutta4(_oscillator, np.array([1.0, 0.0]), t0=0.0, t_end=2.0 * math.pi, step=0.01)
    assert result.times[-1] == pytest.approx(2.0 * math.pi)
    np.testing.assert_allclose(result.final_state, [1.0, 0.0], atol=1e-8)


def test_runge_kutta4_backwards():
    result = runge_kutta4(lambda _t, y: -y, np.array([1.0]), t0=1.0, t_end=0.0, step=0.05)
    assert result.final_state[0] == pytest.approx(math.e, rel=1e-7)


def test_runge_kutta4_rejects_bad_step():
    with pytest.raises(ValueError):
        runge_kutta4(_oscillator, np.zeros(2), t0=0.0, t_end=1.0, step=0.0)


def test_gauss_legendre_is_exact_for_polynomials():
    nodes, weights = gauss_legendre(1.0, 3.0, 4)
    assert np.sum(weights * nodes**7) == pytest.approx((3.0**8 - 1.0) / 8.0)


@pytest.mark.parametrize("degree", [1, 2])
def test_lagrange_weights_reproduce_polynomials(degree):
    grid = np.log(np.geomspace(1e-3, 1.0, 40))
    points = np.linspace(grid[0], grid[-1], 17)[1:-1] + 0.01
    indices, weights = lagrange_weights(grid, points, degree)
    values = grid**degree
    np.testing.assert_allclose((values[indices] * weights).sum(axis=1), points**degree, rtol=1e-10)
    np.testing.assert_allclose(weights.sum(axis=1), 1.0)
