import numpy as np
import pytest

from partondensity.forward_model import PredictedCounts
from partondensity.io import SimulationData, read_simulation, read_truth_record, write_simulation
from partondensity.pdfs import BernsteinPDFParams, DirichletPDFParams


def _data(with_prediction=True):
    predicted = PredictedCounts(ep=np.array([10.5, 3.2]), em=np.array([9.1, 2.8])) if with_prediction else None
    return SimulationData(counts_obs_ep=np.array([11, 2]), counts_obs_em=np.array([8, 4]), predicted=predicted)


def test_dirichlet_simulation_file(tmp_path, dirichlet_params):
    path = tmp_path / "sim.h5"
    write_simulation(path, dirichlet_params, _data())
    params, data = read_simulation(path)

    assert isinstance(params, DirichletPDFParams)
    assert params.theta == pytest.approx(dirichlet_params.theta)
    assert params.K_g == dirichlet_params.K_g
    np.testing.assert_array_equal(data.counts_obs_ep, [11, 2])
    np.testing.assert_allclose(data.predicted.em, [9.1, 2.8])


def test_truth_group_uses_record_names(tmp_path, bernstein_params):
    path = tmp_path / "sim.h5"
    write_simulation(path, bernstein_params, _data(with_prediction=False))
    record = read_truth_record(path)
    assert record["param_type"] == "bernstein"
    assert set(record) == set(bernstein_params.to_record())

    params, data = read_simulation(path)
    assert isinstance(params, BernsteinPDFParams)
    assert params.U_list == bernstein_params.U_list
    assert data.predicted is None


def test_rejects_non_hdf5_file(tmp_path):
    path = tmp_path / "not_hdf5.h5"
    path.write_text("counts")
    with pytest.raises(ValueError, match="not a valid HDF5 file"):
        read_simulation(path)
