import numpy as np
import pytest

from partondensity.response import (
    AnalysisBinning,
    ChargeResponse,
    build_binning,
    fold,
    smeared_transfer_matrix,
)


def test_fold_matches_definition():
    matrix = np.array([[0.8, 0.1], [0.2, 0.7], [0.0, 0.2]])
    sigma = np.array([10.0, 5.0, 2.0])
    norm = np.array([0.5, 0.25, 1.0])
    expected = [0.8 * 20.0 + 0.2 * 20.0, 0.1 * 20.0 + 0.7 * 20.0 + 0.2 * 2.0]
    np.testing.assert_allclose(fold(sigma, matrix, norm), expected)


def test_fold_is_linear():
    rng = np.random.default_rng(3)
    matrix = rng.random((6, 4))
    norm = rng.random(6) + 0.1
    a, b = rng.random(6), rng.random(6)
    np.testing.assert_allclose(
        fold(2.0 * a + 3.0 * b, matrix, norm),
        2.0 * fold(a, matrix, norm) + 3.0 * fold(b, matrix, norm),
    )


def test_fold_keeps_negative_values():
    counts = fold([-1.0, 0.0], np.eye(2), [1.0, 1.0])
    assert counts[0] == -1.0


def test_fold_rejects_mismatched_lengths():
    with pytest.raises(ValueError):
        fold([1.0, 2.0], np.eye(3), [1.0, 1.0, 1.0])


def test_smeared_rows_sum_to_efficiency():
    matrix = smeared_transfer_matrix([(0, 0), (1, 0), (0, 1), (5, 5)], width=0.6, efficiency=0.85)
    np.testing.assert_allclose(matrix.sum(axis=1), 0.85)
    assert matrix[0, 0] > matrix[0, 1] > matrix[0, 3]


def test_build_binning_respects_kinematic_limit():
    binning = build_binning()
    s = 318.0**2
    assert binning.n_kinematic_bins == binning.n_detector_bins
    assert np.all(binning.q2_ranges[:, 0] < binning.x_ranges[:, 1] * s)
    assert binning.response(1).normalisation[0] == pytest.approx(1.0 / 185.0)
    assert binning.response(-1).normalisation[0] == pytest.approx(1.0 / 169.9)
    with pytest.raises(ValueError):
        binning.response(0)


def test_binning_validates_shapes():
    response = ChargeResponse(np.eye(2), np.ones(2))
    with pytest.raises(ValueError):
        AnalysisBinning(
            x_ranges=np.array([[0.1, 0.2]]),
            q2_ranges=np.array([[100.0, 200.0]]),
            ep=response,
            em=response,
        )


def test_normalisation_must_be_positive():
    with pytest.raises(ValueError):
        ChargeResponse(np.eye(2), np.array([1.0, 0.0]))
