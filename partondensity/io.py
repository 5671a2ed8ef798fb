"""HDF5 storage of simulated data sets.

A simulation file holds two groups:

``data``
    Observed counts ``counts_obs_ep`` / ``counts_obs_em`` and, optionally, the
    predicted counts ``counts_pred_ep`` / ``counts_pred_em`` they were drawn
    around.
``truth``
    The parameter record of the point the data were simulated at, with the
    parametrisation tag stored as the ``param_type`` attribute.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Dict, Union

import h5py
import numpy as np

from .forward_model import PredictedCounts
from .pdfs import PDFParameters, pdf_params_from_record

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

try:
    PACKAGE_VERSION = version("partondensity")
except PackageNotFoundError:
    PACKAGE_VERSION = "0.0.0-dev"


@dataclass(frozen=True)
class SimulationData:
    """Observed counts plus the prediction they were drawn from, if stored."""

    counts_obs_ep: np.ndarray
    counts_obs_em: np.ndarray
    predicted: PredictedCounts | None = None


def write_simulation(path: PathLike, pdf_params: PDFParameters, sim_data: SimulationData) -> None:
    """Write ``sim_data`` and the true parameters to ``path`` (overwritten)."""

    logger.info("Writing simulation to %s", path)
    with h5py.File(path, "w") as handle:
        handle.attrs["version"] = PACKAGE_VERSION

        data = handle.create_group("data")
        data.create_dataset("counts_obs_ep", data=np.asarray(sim_data.counts_obs_ep, dtype=np.int64))
        data.create_dataset("counts_obs_em", data=np.asarray(sim_data.counts_obs_em, dtype=np.int64))
        if sim_data.predicted is not None:
            data.create_dataset("counts_pred_ep", data=np.asarray(sim_data.predicted.ep, dtype=float))
            data.create_dataset("counts_pred_em", data=np.asarray(sim_data.predicted.em, dtype=float))

        truth = handle.create_group("truth")
        record = pdf_params.to_record()
        truth.attrs["param_type"] = record.pop("param_type")
        for name, value in record.items():
            if isinstance(value, (list, tuple, np.ndarray)):
                truth.create_dataset(name, data=np.asarray(value, dtype=float))
            else:
                truth.attrs[name] = float(value)


def _native(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if hasattr(value, "item"):
        return value.item()
    return value


def read_truth_record(path: PathLike) -> Dict[str, Any]:
    """Flat parameter record stored in the ``truth`` group of ``path``."""

    with h5py.File(path, "r") as handle:
        truth = handle["truth"]
        record: Dict[str, Any] = {key: _native(truth.attrs[key]) for key in truth.attrs.keys()}
        for name, dataset in truth.items():
            record[name] = np.asarray(dataset[()], dtype=float)
    return record


def read_simulation(path: PathLike) -> tuple[PDFParameters, SimulationData]:
    """Read a file written by :func:`write_simulation`.

    Raises
    ------
    ValueError
        If ``path`` is not an HDF5 file.
    """

    logger.info("Reading simulation from %s", path)
    if not h5py.is_hdf5(path):
        raise ValueError(f"File '{path}' is not a valid HDF5 file.")

    record = read_truth_record(path)
    with h5py.File(path, "r") as handle:
        data = handle["data"]
        predicted = None
        if "counts_pred_ep" in data and "counts_pred_em" in data:
            predicted = PredictedCounts(ep=data["counts_pred_ep"][()], em=data["counts_pred_em"][()])
        sim_data = SimulationData(
            counts_obs_ep=data["counts_obs_ep"][()],
            counts_obs_em=data["counts_obs_em"][()],
            predicted=predicted,
        )
    return pdf_params_from_record(record), sim_data


__all__ = ["SimulationData", "read_simulation", "read_truth_record", "write_simulation"]
