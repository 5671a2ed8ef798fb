"""Neutral-current deep-inelastic scattering cross sections.

This module collects the electroweak inputs of the forward model and the
double-differential cross section of

``e^± p -> e^± X``

through photon and ``Z`` exchange.  Structure functions enter as sums over
the two quark-charge classes (up-type and down-type); within a class all
flavours share their charge and couplings, so the flavour content of a class
is described by a selection vector over parton ids ``-6..6`` and the
electroweak weights are applied per class.

The conventions follow the HERA combination papers:

``d²σ/dx dQ² = 2 pi alpha² / (x Q⁴) [Y+ F2 ∓ Y- xF3 - y² FL]``

with ``Y± = 1 ± (1 - y)²``, the upper sign for positrons.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Sequence, Tuple

import numpy as np

# --- Constants -----------------------------------------------------------------

# Electroweak parameters (Particle Data Group 2024 values).
ALPHA_EM = 1.0 / 137.035999
SIN2_THETA_W = 0.2312
COS2_THETA_W = 1.0 - SIN2_THETA_W
MASS_Z = 91.1876  # GeV

# Unit conversion: natural units (GeV^-2) to picobarns.
GEV2_TO_PB = 0.389379338e9


def _vector_coupling(t3: float, charge: float) -> float:
    return t3 - 2.0 * charge * SIN2_THETA_W


def _axial_coupling(t3: float) -> float:
    return t3


LEPTON_CHARGE = -1.0
LEPTON_T3 = -0.5
LEPTON_VECTOR = _vector_coupling(LEPTON_T3, LEPTON_CHARGE)
LEPTON_AXIAL = _axial_coupling(LEPTON_T3)


def _selection(pids: Tuple[int, ...], sign_antiquarks: float) -> Tuple[float, ...]:
    """Coefficients over parton ids -6..6 selecting ``pids`` and their antiquarks."""

    values = [0.0] * 13
    for pid in pids:
        values[pid + 6] = 1.0
        values[-pid + 6] = sign_antiquarks
    return tuple(values)


@dataclass(frozen=True)
class ChargeClass:
    """Electroweak couplings shared by the quarks of one charge class."""

    charge: float
    t3: float

    @property
    def vector(self) -> float:
        return _vector_coupling(self.t3, self.charge)

    @property
    def axial(self) -> float:
        return _axial_coupling(self.t3)

    def f2_weights(self) -> Tuple[float, float, float]:
        """Weights of the photon, interference and ``Z`` parts of F2 and FL."""

        v, a = self.vector, self.axial
        return self.charge**2, 2.0 * self.charge * v, v * v + a * a

    def xf3_weights(self) -> Tuple[float, float]:
        """Weights of the interference and ``Z`` parts of xF3."""

        v, a = self.vector, self.axial
        return 2.0 * self.charge * a, 2.0 * v * a


@dataclass(frozen=True)
class QuarkCouplings:
    """Fixed flavour selection and couplings of the two quark-charge classes.

    ``proup``/``prodn`` select ``q + qbar`` of the up-type and down-type
    flavours for F2 and FL, ``valup``/``valdn`` select ``q - qbar`` for xF3.
    Each vector has 13 entries ordered by parton id from -6 to 6.
    """

    proup: Tuple[float, ...] = _selection((2, 4), 1.0)
    prodn: Tuple[float, ...] = _selection((1, 3, 5), 1.0)
    valup: Tuple[float, ...] = _selection((2, 4), -1.0)
    valdn: Tuple[float, ...] = _selection((1, 3, 5), -1.0)
    up: ChargeClass = field(default_factory=lambda: ChargeClass(charge=2.0 / 3.0, t3=0.5))
    down: ChargeClass = field(default_factory=lambda: ChargeClass(charge=-1.0 / 3.0, t3=-0.5))

    def __post_init__(self) -> None:
        for name in ("proup", "prodn", "valup", "valdn"):
            values = tuple(float(v) for v in getattr(self, name))
            if len(values) != 13:
                raise ValueError(f"{name} must contain 13 coefficients, got {len(values)}")
            object.__setattr__(self, name, values)


def gluon_weight(coefficients: Sequence[float]) -> float:
    """Number of flavours selected by ``coefficients`` (quark and antiquark count once)."""

    return 0.5 * float(np.abs(np.asarray(coefficients, dtype=float)).sum())


def propagator_ratio(q2):
    """``kappa_w Q² / (Q² + M_Z²)``, the ``Z`` to photon propagator ratio."""

    kappa_w = 1.0 / (4.0 * SIN2_THETA_W * COS2_THETA_W)
    return kappa_w * q2 / (q2 + MASS_Z**2)


def generalised_structure_functions(
    q2,
    components: Dict[str, np.ndarray],
    couplings: QuarkCouplings,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Combine the per-class structure functions into ``F2``, ``xF3`` and ``FL``.

    ``components`` maps the spline names ``F2up``, ``F2dn``, ``F3up``,
    ``F3dn``, ``FLup`` and ``FLdn`` to arrays broadcastable against ``q2``.
    """

    chi = propagator_ratio(q2)
    v_e, a_e = LEPTON_VECTOR, LEPTON_AXIAL
    f2_factors = (1.0, -v_e * chi, (v_e**2 + a_e**2) * chi**2)
    xf3_factors = (-a_e * chi, 2.0 * v_e * a_e * chi**2)

    f2 = 0.0
    fl = 0.0
    xf3 = 0.0
    for suffix, quark_class in (("up", couplings.up), ("dn", couplings.down)):
        f2_weight = sum(f * w for f, w in zip(f2_factors, quark_class.f2_weights()))
        xf3_weight = sum(f * w for f, w in zip(xf3_factors, quark_class.xf3_weights()))
        f2 = f2 + f2_weight * components["F2" + suffix]
        fl = fl + f2_weight * components["FL" + suffix]
        xf3 = xf3 + xf3_weight * components["F3" + suffix]
    return f2, xf3, fl


def differential_cross_section(
    x,
    q2,
    s: float,
    lepton_charge: int,
    components: Dict[str, np.ndarray],
    couplings: QuarkCouplings,
) -> np.ndarray:
    """Return ``d²σ/dx dQ²`` in pb/GeV² for a lepton of charge ``lepton_charge``.

    Points outside the physical region ``y <= 1`` are set to zero.
    """

    if lepton_charge not in (1, -1):
        raise ValueError("lepton_charge must be +1 or -1")
    x = np.asarray(x, dtype=float)
    q2 = np.asarray(q2, dtype=float)
    y = q2 / (x * s)
    y_plus = 1.0 + (1.0 - y) ** 2
    y_minus = 1.0 - (1.0 - y) ** 2

    f2, xf3, fl = generalised_structure_functions(q2, components, couplings)
    # The HERA convention puts a minus sign on the xF3 term for positrons.
    reduced = y_plus * f2 - lepton_charge * y_minus * xf3 - y * y * fl
    prefactor = 2.0 * math.pi * ALPHA_EM**2 / (x * q2 * q2) * GEV2_TO_PB
    return np.where(y <= 1.0, prefactor * reduced, 0.0)


__all__ = [
    "ALPHA_EM",
    "ChargeClass",
    "GEV2_TO_PB",
    "MASS_Z",
    "QuarkCouplings",
    "differential_cross_section",
    "generalised_structure_functions",
    "gluon_weight",
    "propagator_ratio",
]
