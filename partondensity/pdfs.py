"""Input parton distribution functions.

The module implements the closed family of input PDF parametrisations that are
evolved by :mod:`partondensity.evolution`.  Every family distributes the proton
momentum over nine components through a simplex weight vector ``theta``::

    theta = (u_valence, d_valence, gluon_1, gluon_2, ubar, dbar, s, c, b)

so the momentum sum rule holds by construction.  The families differ in how
the valence densities are shaped:

* :class:`DirichletPDFParams` – beta shapes whose small-x exponents follow from
  the valence number sum rules.
* :class:`BernsteinPDFParams` – valence densities are Bernstein polynomials
  scaled to the number sum rules; their momentum fractions are derived.
* :class:`BernsteinDirichletPDFParams` – Bernstein-modulated power laws with
  the valence momentum fractions taken from a Dirichlet ``theta``.

Gluon and sea components are shared by all families.  The public API mirrors
the small portion of the LHAPDF interface needed by the evolution: an
:py:meth:`PDFParameters.xfx` method returning ``x f(x)`` for a parton id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Sequence, Tuple, Type

import numpy as np
from scipy import integrate, optimize, special

ParticleId = int

GLUON = 0
PARTON_IDS: Tuple[ParticleId, ...] = tuple(range(-6, 7))
N_COMPONENTS = 9

# Index of the sea component of each light and heavy flavour in ``theta``.
_SEA_INDEX: Dict[int, int] = {2: 4, 1: 5, 3: 6, 4: 7, 5: 8}

# Minimal gap kept between theta_u and theta_d.
ORDERING_TOLERANCE = 0.0


class InadmissibleParametersError(ValueError):
    """Raised when a parameter point violates a physical constraint."""


def _power_shape(x: np.ndarray, small_x_power: float, large_x_power: float) -> np.ndarray:
    inside = (x > 0.0) & (x < 1.0)
    safe = np.where(inside, x, 0.5)
    return np.where(inside, safe**small_x_power * (1.0 - safe) ** large_x_power, 0.0)


def bernstein_basis(x: np.ndarray, k: int, n: int) -> np.ndarray:
    """Bernstein basis polynomial ``b_{k,n}(x)`` (zero outside [0, 1])."""

    inside = (x >= 0.0) & (x <= 1.0)
    safe = np.where(inside, x, 0.0)
    return np.where(inside, special.comb(n, k) * safe**k * (1.0 - safe) ** (n - k), 0.0)


def _bernstein_sum(x: np.ndarray, coefficients: Sequence[float]) -> np.ndarray:
    n = len(coefficients) - 1
    total = np.zeros_like(x, dtype=float)
    for k, coefficient in enumerate(coefficients):
        if coefficient:
            total = total + coefficient * bernstein_basis(x, k, n)
    return total


@dataclass(frozen=True)
class BetaTerm:
    """A single ``A x^lambda (1-x)^K`` momentum density term.

    ``weight`` is the momentum fraction carried by the term; the amplitude is
    fixed by normalising the shape to that fraction.
    """

    weight: float
    small_x_power: float
    large_x_power: float

    @property
    def amplitude(self) -> float:
        return self.weight / special.beta(self.small_x_power + 1.0, self.large_x_power + 1.0)

    def evaluate(self, x: np.ndarray) -> np.ndarray:
        return self.amplitude * _power_shape(x, self.small_x_power, self.large_x_power)


def _normalise_simplex(values: Sequence[float], size: int, name: str) -> Tuple[float, ...]:
    array = np.asarray(values, dtype=float)
    if array.shape != (size,):
        raise ValueError(f"{name} must contain {size} entries, got {array.size}")
    if np.any(~np.isfinite(array)) or np.any(array < 0.0):
        raise ValueError(f"{name} entries must be finite and non-negative")
    total = float(array.sum())
    if total <= 0.0:
        raise ValueError(f"{name} must have a positive sum")
    return tuple(float(v) for v in array / total)


def _check_theta(theta: Sequence[float]) -> Tuple[float, ...]:
    array = np.asarray(theta, dtype=float)
    if array.shape != (N_COMPONENTS,):
        raise ValueError(f"theta must contain {N_COMPONENTS} entries, got {array.size}")
    if np.any(~np.isfinite(array)) or np.any(array < 0.0):
        raise ValueError("theta entries must be finite and non-negative")
    if abs(float(array.sum()) - 1.0) > 1e-6:
        raise ValueError(f"theta must sum to 1, got {array.sum():.8g}")
    return tuple(float(v) for v in array / array.sum())


def _check_exponents(**exponents: float) -> None:
    for name, value in exponents.items():
        if not np.isfinite(value) or value <= -1.0:
            raise ValueError(f"{name} must be finite and greater than -1, got {value}")


def check_valence_ordering(theta_u: float, theta_d: float) -> None:
    """Raise :class:`InadmissibleParametersError` unless ``theta_u > theta_d``."""

    if not theta_u - theta_d > ORDERING_TOLERANCE:
        raise InadmissibleParametersError(
            f"u-valence weight {theta_u:.6g} must exceed d-valence weight {theta_d:.6g}"
        )


@dataclass(frozen=True)
class PDFParameters:
    """Base class of the input PDF parametrisations.

    Subclasses provide the valence densities through :meth:`x_valence`; the
    gluon and sea components below are shared.
    """

    param_type: ClassVar[str] = ""
    _record_fields: ClassVar[Tuple[str, ...]] = ()

    lambda_g1: float
    lambda_g2: float
    K_g: float
    lambda_q: float
    K_q: float

    @property
    def theta(self) -> Tuple[float, ...]:
        raise NotImplementedError

    def x_valence(self, flavour: int, x: np.ndarray) -> np.ndarray:
        """Return ``x q_v(x)`` for ``flavour`` 2 (up) or 1 (down)."""

        raise NotImplementedError

    def x_gluon(self, x: np.ndarray) -> np.ndarray:
        theta = self.theta
        first = BetaTerm(theta[2], self.lambda_g1, self.K_g)
        second = BetaTerm(theta[3], self.lambda_g2, self.K_q)
        return first.evaluate(x) + second.evaluate(x)

    def x_sea(self, flavour: int, x: np.ndarray) -> np.ndarray:
        """Return ``x qbar(x)``; the sea weight is shared by quark and antiquark."""

        index = _SEA_INDEX.get(flavour)
        if index is None:
            return np.zeros_like(x, dtype=float)
        return BetaTerm(0.5 * self.theta[index], self.lambda_q, self.K_q).evaluate(x)

    def xfx(self, pid: ParticleId, x):
        """Return the momentum density ``x f(pid, x)`` at the input scale."""

        if pid == 21:
            pid = GLUON
        if pid not in PARTON_IDS:
            raise ValueError(f"Unsupported parton id {pid}")
        values = np.asarray(x, dtype=float)

        if pid == GLUON:
            result = self.x_gluon(values)
        else:
            flavour = abs(pid)
            result = self.x_sea(flavour, values)
            if pid > 0 and flavour in (1, 2):
                result = result + self.x_valence(flavour, values)

        if np.ndim(x) == 0:
            return float(result)
        return result

    def xtotx(self, x):
        """Total momentum density summed over every parton species."""

        values = np.asarray(x, dtype=float)
        total = sum(np.asarray(self.xfx(pid, values)) for pid in PARTON_IDS)
        if np.ndim(x) == 0:
            return float(total)
        return total

    def momentum_sum(self) -> float:
        """Integral of :meth:`xtotx` over ``0 < x < 1``."""

        value, _error = integrate.quad(self.xtotx, 0.0, 1.0, limit=200)
        return value

    def valence_number(self, flavour: int) -> float:
        """Number integral of the valence density of ``flavour``."""

        def _density(x: float) -> float:
            return float(self.x_valence(flavour, np.asarray(x))) / x

        value, _error = integrate.quad(_density, 0.0, 1.0, limit=200)
        return value

    def to_record(self) -> Dict[str, Any]:
        """Flat record with the field names read back by :func:`pdf_params_from_record`."""

        record: Dict[str, Any] = {"param_type": self.param_type}
        for name in self._record_fields:
            value = getattr(self, name)
            record[name] = list(value) if isinstance(value, tuple) else value
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "PDFParameters":
        kwargs = {name: record[name] for name in cls._record_fields if name in record}
        return cls(**kwargs)


@dataclass(frozen=True)
class DirichletPDFParams(PDFParameters):
    """Dirichlet parametrisation with beta-shaped valence densities.

    Either ``theta`` (already on the simplex) or un-normalised ``weights``
    must be supplied.  The valence exponents ``lambda_u`` and ``lambda_d`` are
    derived so that the up and down valence numbers integrate to 2 and 1.
    """

    param_type: ClassVar[str] = "dirichlet"
    _record_fields: ClassVar[Tuple[str, ...]] = (
        "K_u", "K_d", "lambda_g1", "lambda_g2", "K_g", "lambda_q", "K_q", "theta",
    )

    K_u: float = 4.0
    K_d: float = 4.0
    weights: Tuple[float, ...] | None = None
    theta_: Tuple[float, ...] | None = field(default=None, repr=False)
    lambda_u: float = field(init=False)
    lambda_d: float = field(init=False)

    def __init__(
        self,
        *,
        K_u: float,
        K_d: float,
        lambda_g1: float,
        lambda_g2: float,
        K_g: float,
        lambda_q: float,
        K_q: float,
        theta: Sequence[float] | None = None,
        weights: Sequence[float] | None = None,
    ) -> None:
        if theta is None and weights is None:
            raise ValueError("either theta or weights must be given")
        if theta is not None:
            normalised = _check_theta(theta)
        else:
            normalised = _normalise_simplex(weights, N_COMPONENTS, "weights")
        _check_exponents(
            K_u=K_u, K_d=K_d, lambda_g1=lambda_g1, lambda_g2=lambda_g2,
            K_g=K_g, lambda_q=lambda_q, K_q=K_q,
        )
        check_valence_ordering(normalised[0], normalised[1])

        object.__setattr__(self, "lambda_g1", float(lambda_g1))
        object.__setattr__(self, "lambda_g2", float(lambda_g2))
        object.__setattr__(self, "K_g", float(K_g))
        object.__setattr__(self, "lambda_q", float(lambda_q))
        object.__setattr__(self, "K_q", float(K_q))
        object.__setattr__(self, "K_u", float(K_u))
        object.__setattr__(self, "K_d", float(K_d))
        object.__setattr__(self, "weights", None if weights is None else tuple(float(w) for w in weights))
        object.__setattr__(self, "theta_", normalised)
        object.__setattr__(self, "lambda_u", normalised[0] * (K_u + 1.0) / (2.0 - normalised[0]))
        object.__setattr__(self, "lambda_d", normalised[1] * (K_d + 1.0) / (1.0 - normalised[1]))

    @property
    def theta(self) -> Tuple[float, ...]:
        return self.theta_

    def x_valence(self, flavour: int, x: np.ndarray) -> np.ndarray:
        if flavour == 2:
            return BetaTerm(self.theta[0], self.lambda_u, self.K_u).evaluate(x)
        if flavour == 1:
            return BetaTerm(self.theta[1], self.lambda_d, self.K_d).evaluate(x)
        return np.zeros_like(x, dtype=float)


def _bernstein_valence_moments(coefficients: Sequence[float]) -> Tuple[float, float]:
    """Return the number and momentum integrals of ``sum_k c_k b_{k,n}``."""

    n = len(coefficients) - 1
    number = sum(c / (n + 1.0) for c in coefficients)
    momentum = sum(c * (k + 1.0) / ((n + 1.0) * (n + 2.0)) for k, c in enumerate(coefficients))
    return number, momentum


def _check_bernstein(coefficients: Sequence[float], name: str) -> Tuple[float, ...]:
    values = tuple(float(c) for c in coefficients)
    if len(values) < 2:
        raise ValueError(f"{name} needs at least two Bernstein coefficients")
    if any(not np.isfinite(c) or c < 0.0 for c in values):
        raise ValueError(f"{name} coefficients must be finite and non-negative")
    if sum(values) <= 0.0:
        raise ValueError(f"{name} must contain a positive coefficient")
    return values


@dataclass(frozen=True)
class BernsteinPDFParams(PDFParameters):
    """Bernstein-polynomial valence densities.

    The valence densities ``u_v`` and ``d_v`` are Bernstein polynomials with
    coefficients ``U_list`` and ``D_list``, rescaled to satisfy the number sum
    rules.  Their momentum fractions follow; the remaining momentum is shared
    by the gluon and sea components according to the seven ``weights``.
    """

    param_type: ClassVar[str] = "bernstein"
    _record_fields: ClassVar[Tuple[str, ...]] = (
        "U_list", "D_list", "lambda_g1", "lambda_g2", "K_g", "lambda_q", "K_q", "weights",
    )

    U_list: Tuple[float, ...] = ()
    D_list: Tuple[float, ...] = ()
    weights: Tuple[float, ...] = ()
    theta_: Tuple[float, ...] = field(init=False, repr=False)
    u_scale: float = field(init=False, repr=False)
    d_scale: float = field(init=False, repr=False)

    def __post_init__(self) -> None:
        U_list = _check_bernstein(self.U_list, "U_list")
        D_list = _check_bernstein(self.D_list, "D_list")
        rest = _normalise_simplex(self.weights, N_COMPONENTS - 2, "weights")
        _check_exponents(
            lambda_g1=self.lambda_g1, lambda_g2=self.lambda_g2, K_g=self.K_g,
            lambda_q=self.lambda_q, K_q=self.K_q,
        )

        u_number, u_momentum = _bernstein_valence_moments(U_list)
        d_number, d_momentum = _bernstein_valence_moments(D_list)
        u_scale = 2.0 / u_number
        d_scale = 1.0 / d_number
        theta_u = u_scale * u_momentum
        theta_d = d_scale * d_momentum
        if theta_u + theta_d >= 1.0:
            raise InadmissibleParametersError(
                f"valence momentum {theta_u + theta_d:.6g} leaves nothing for gluon and sea"
            )
        check_valence_ordering(theta_u, theta_d)

        remaining = 1.0 - theta_u - theta_d
        object.__setattr__(self, "U_list", U_list)
        object.__setattr__(self, "D_list", D_list)
        object.__setattr__(self, "weights", tuple(self.weights))
        object.__setattr__(self, "u_scale", u_scale)
        object.__setattr__(self, "d_scale", d_scale)
        object.__setattr__(self, "theta_", (theta_u, theta_d) + tuple(remaining * w for w in rest))

    @property
    def theta(self) -> Tuple[float, ...]:
        return self.theta_

    def x_valence(self, flavour: int, x: np.ndarray) -> np.ndarray:
        if flavour == 2:
            return self.u_scale * x * _bernstein_sum(x, self.U_list)
        if flavour == 1:
            return self.d_scale * x * _bernstein_sum(x, self.D_list)
        return np.zeros_like(x, dtype=float)


def _modulated_moments(exponent: float, coefficients: Sequence[float]) -> Tuple[float, float]:
    """Number and momentum integrals of ``x^(exponent-1) sum_k c_k b_{k,n}(x)``."""

    n = len(coefficients) - 1
    number = 0.0
    momentum = 0.0
    for k, c in enumerate(coefficients):
        if not c:
            continue
        weight = c * special.comb(n, k)
        number += weight * np.exp(special.betaln(exponent + k, n - k + 1.0))
        momentum += weight * np.exp(special.betaln(exponent + k + 1.0, n - k + 1.0))
    return number, momentum


def _solve_valence_exponent(coefficients: Sequence[float], target_ratio: float, name: str) -> float:
    """Find the exponent giving ``momentum / number == target_ratio``."""

    def _residual(exponent: float) -> float:
        number, momentum = _modulated_moments(exponent, coefficients)
        return momentum / number - target_ratio

    lower, upper = 1e-6, 500.0
    if _residual(lower) * _residual(upper) > 0.0:
        raise InadmissibleParametersError(
            f"no {name} valence exponent reproduces the requested momentum fraction"
        )
    return optimize.brentq(_residual, lower, upper, xtol=1e-12)


@dataclass(frozen=True)
class BernsteinDirichletPDFParams(PDFParameters):
    """Bernstein-modulated valence shapes with Dirichlet momentum fractions.

    ``x u_v(x) = A_u x^lambda_u sum_k U_k b_{k,n}(x)``; ``lambda_u`` and
    ``A_u`` are fixed by requiring the number integral to be 2 and the
    momentum integral to be ``theta[0]`` (1 and ``theta[1]`` for down).
    """

    param_type: ClassVar[str] = "bernstein_dirichlet"
    _record_fields: ClassVar[Tuple[str, ...]] = (
        "U_list", "D_list", "lambda_g1", "lambda_g2", "K_g", "lambda_q", "K_q", "theta",
    )

    U_list: Tuple[float, ...] = ()
    D_list: Tuple[float, ...] = ()
    theta_: Tuple[float, ...] = field(default=(), repr=False)
    lambda_u: float = field(init=False)
    lambda_d: float = field(init=False)
    u_amplitude: float = field(init=False, repr=False)
    d_amplitude: float = field(init=False, repr=False)

    def __init__(
        self,
        *,
        U_list: Sequence[float],
        D_list: Sequence[float],
        lambda_g1: float,
        lambda_g2: float,
        K_g: float,
        lambda_q: float,
        K_q: float,
        theta: Sequence[float] | None = None,
        weights: Sequence[float] | None = None,
    ) -> None:
        if theta is None and weights is None:
            raise ValueError("either theta or weights must be given")
        if theta is not None:
            normalised = _check_theta(theta)
        else:
            normalised = _normalise_simplex(weights, N_COMPONENTS, "weights")
        U = _check_bernstein(U_list, "U_list")
        D = _check_bernstein(D_list, "D_list")
        _check_exponents(
            lambda_g1=lambda_g1, lambda_g2=lambda_g2, K_g=K_g, lambda_q=lambda_q, K_q=K_q,
        )
        check_valence_ordering(normalised[0], normalised[1])

        lambda_u = _solve_valence_exponent(U, normalised[0] / 2.0, "up")
        lambda_d = _solve_valence_exponent(D, normalised[1], "down")
        u_number, _ = _modulated_moments(lambda_u, U)
        d_number, _ = _modulated_moments(lambda_d, D)

        for name, value in (
            ("lambda_g1", lambda_g1), ("lambda_g2", lambda_g2), ("K_g", K_g),
            ("lambda_q", lambda_q), ("K_q", K_q),
        ):
            object.__setattr__(self, name, float(value))
        object.__setattr__(self, "U_list", U)
        object.__setattr__(self, "D_list", D)
        object.__setattr__(self, "theta_", normalised)
        object.__setattr__(self, "lambda_u", lambda_u)
        object.__setattr__(self, "lambda_d", lambda_d)
        object.__setattr__(self, "u_amplitude", 2.0 / u_number)
        object.__setattr__(self, "d_amplitude", 1.0 / d_number)

    @property
    def theta(self) -> Tuple[float, ...]:
        return self.theta_

    def x_valence(self, flavour: int, x: np.ndarray) -> np.ndarray:
        if flavour == 2:
            return self.u_amplitude * _power_shape(x, self.lambda_u, 0.0) * _bernstein_sum(x, self.U_list)
        if flavour == 1:
            return self.d_amplitude * _power_shape(x, self.lambda_d, 0.0) * _bernstein_sum(x, self.D_list)
        return np.zeros_like(x, dtype=float)


PARAM_TYPES: Dict[str, Type[PDFParameters]] = {
    DirichletPDFParams.param_type: DirichletPDFParams,
    BernsteinPDFParams.param_type: BernsteinPDFParams,
    BernsteinDirichletPDFParams.param_type: BernsteinDirichletPDFParams,
}


def pdf_params_from_record(record: Mapping[str, Any], param_type: str | None = None) -> PDFParameters:
    """Build a parameter instance from a flat named record."""

    tag = param_type if param_type is not None else record.get("param_type")
    try:
        family = PARAM_TYPES[str(tag)]
    except KeyError:
        raise ValueError(f"Unknown PDF parametrisation {tag!r}") from None
    return family.from_record(record)


__all__ = [
    "BernsteinDirichletPDFParams",
    "BernsteinPDFParams",
    "BetaTerm",
    "DirichletPDFParams",
    "GLUON",
    "InadmissibleParametersError",
    "PARAM_TYPES",
    "PARTON_IDS",
    "PDFParameters",
    "bernstein_basis",
    "check_valence_ordering",
    "pdf_params_from_record",
]
