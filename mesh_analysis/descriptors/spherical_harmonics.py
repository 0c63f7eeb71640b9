"""
Spherical harmonic basis and transform.

Conventions:
- theta is the polar angle from +z in [0, pi], phi the azimuth from +x
- Y_lm(theta, phi) = P_lm(cos theta) exp(i m phi) with P_lm the fully
  normalised associated Legendre function including the Condon-Shortley
  phase, so the Y_lm are orthonormal over the unit sphere
- Y_l,-m = (-1)^m conj(Y_lm)
- coefficients are stored flat in (l, m) order, index l^2 + l + m

The normalised Legendre functions are evaluated with the three-term
recurrence in l (seeded by the diagonal recurrence in m), never by
explicit factorials, so high degrees stay accurate.

Raw coefficients depend on the orientation of the signal. Per-degree
energies (sum of |c_lm|^2 over m) are rotation invariant.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import ArrayLike, NDArray

from mesh_analysis.errors import InvalidInput, OutOfRange, ShapeMismatch
from mesh_analysis.numerics.constants import FOUR_PI, TWO_PI

logger = logging.getLogger(__name__)

SQRT2 = np.sqrt(2.0)


def coefficient_count(l_max: int) -> int:
    return (l_max + 1) ** 2


def coefficient_index(l: int, m: int) -> int:
    return l * l + l + m


def _check_degree(l_max: int) -> None:
    if l_max < 0:
        raise InvalidInput(f"maximum degree must be non-negative, got {l_max}")


def associated_legendre(l_max: int, x: ArrayLike) -> NDArray[np.float64]:
    """Fully normalised associated Legendre functions P_lm(x) for 0 <= m <= l <= l_max.

    Args:
        l_max: maximum degree
        x: evaluation points in [-1, 1] (cos theta)

    Returns:
        (l_max + 1, l_max + 1, n) array; entry [l, m] is zero for m > l
    """
    _check_degree(l_max)
    x = np.clip(np.asarray(x, dtype=np.float64).ravel(), -1.0, 1.0)
    s = np.sqrt(np.maximum(0.0, 1.0 - x * x))
    p = np.zeros((l_max + 1, l_max + 1, x.size))

    p[0, 0] = 1.0 / np.sqrt(FOUR_PI)
    for m in range(1, l_max + 1):
        p[m, m] = -np.sqrt((2 * m + 1) / (2.0 * m)) * s * p[m - 1, m - 1]
    for m in range(0, l_max):
        p[m + 1, m] = np.sqrt(2 * m + 3.0) * x * p[m, m]
    for m in range(0, l_max + 1):
        for l in range(m + 2, l_max + 1):
            a = np.sqrt((4.0 * l * l - 1) / (l * l - m * m))
            b = np.sqrt(((l - 1) ** 2 - m * m) / (4.0 * (l - 1) ** 2 - 1))
            p[l, m] = a * (x * p[l - 1, m] - b * p[l - 2, m])
    return p


def complex_spherical_harmonics(l_max: int, theta: ArrayLike, phi: ArrayLike) -> NDArray[np.complex128]:
    """Orthonormal complex harmonics.

    Returns:
        (n, (l_max + 1)^2) matrix, one column per (l, m)
    """
    theta = np.asarray(theta, dtype=np.float64).ravel()
    phi = np.asarray(phi, dtype=np.float64).ravel()
    if theta.shape != phi.shape:
        raise ShapeMismatch("theta and phi must have the same number of samples")
    p = associated_legendre(l_max, np.cos(theta))
    basis = np.zeros((theta.size, coefficient_count(l_max)), dtype=np.complex128)
    for l in range(l_max + 1):
        for m in range(0, l + 1):
            y = p[l, m] * np.exp(1j * m * phi)
            basis[:, coefficient_index(l, m)] = y
            if m:
                basis[:, coefficient_index(l, -m)] = (-1) ** m * np.conj(y)
    return basis


def real_spherical_harmonics(l_max: int, theta: ArrayLike, phi: ArrayLike) -> NDArray[np.float64]:
    """Orthonormal real harmonics: cos(m phi) terms for m > 0, sin(|m| phi) for m < 0.

    Returns:
        (n, (l_max + 1)^2) matrix, one column per (l, m)
    """
    theta = np.asarray(theta, dtype=np.float64).ravel()
    phi = np.asarray(phi, dtype=np.float64).ravel()
    if theta.shape != phi.shape:
        raise ShapeMismatch("theta and phi must have the same number of samples")
    p = associated_legendre(l_max, np.cos(theta))
    basis = np.zeros((theta.size, coefficient_count(l_max)))
    for l in range(l_max + 1):
        basis[:, coefficient_index(l, 0)] = p[l, 0]
        for m in range(1, l + 1):
            scale = SQRT2 * (-1) ** m * p[l, m]
            basis[:, coefficient_index(l, m)] = scale * np.cos(m * phi)
            basis[:, coefficient_index(l, -m)] = scale * np.sin(m * phi)
    return basis


def real_to_complex(real: NDArray[np.float64], l_max: int) -> NDArray[np.complex128]:
    """Complex coefficients of the function with the given real-basis coefficients."""
    out = np.zeros(coefficient_count(l_max), dtype=np.complex128)
    for l in range(l_max + 1):
        out[coefficient_index(l, 0)] = real[coefficient_index(l, 0)]
        for m in range(1, l + 1):
            a_pos = real[coefficient_index(l, m)]
            a_neg = real[coefficient_index(l, -m)]
            out[coefficient_index(l, m)] = (-1) ** m * (a_pos - 1j * a_neg) / SQRT2
            out[coefficient_index(l, -m)] = (a_pos + 1j * a_neg) / SQRT2
    return out


# ---------------------------------------------------------------------------
# Sampling grids
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SphericalGrid:
    """Sample directions on the unit sphere, with quadrature weights when known."""
    theta: NDArray[np.float64]
    phi: NDArray[np.float64]
    weights: Optional[NDArray[np.float64]] = None

    @classmethod
    def gauss_legendre(cls, l_max: int, oversampling: int = 2) -> 'SphericalGrid':
        """Gauss-Legendre nodes in cos(theta) times equispaced phi.

        With n = oversampling * (l_max + 1) polar nodes and 2n azimuths the
        quadrature is exact for band-limited signals of degree <= l_max.
        """
        _check_degree(l_max)
        if oversampling < 1:
            raise InvalidInput("oversampling must be at least 1")
        n_theta = oversampling * (l_max + 1)
        n_phi = 2 * n_theta
        nodes, w = np.polynomial.legendre.leggauss(n_theta)
        theta = np.arccos(nodes)
        phi = np.arange(n_phi) * (TWO_PI / n_phi)
        tt, pp = np.meshgrid(theta, phi, indexing='ij')
        weights = np.repeat(w, n_phi) * (TWO_PI / n_phi)
        return cls(tt.ravel(), pp.ravel(), weights)

    @classmethod
    def from_directions(cls, directions: ArrayLike) -> 'SphericalGrid':
        """Grid from arbitrary (n, 3) directions; fitted by least squares."""
        d = np.asarray(directions, dtype=np.float64)
        if d.ndim != 2 or d.shape[1] != 3:
            raise ShapeMismatch(f"directions must be (n, 3), got {d.shape}")
        norms = np.linalg.norm(d, axis=1)
        if np.any(norms == 0):
            raise InvalidInput("directions must be non-zero")
        d = d / norms[:, np.newaxis]
        theta = np.arccos(np.clip(d[:, 2], -1.0, 1.0))
        phi = np.mod(np.arctan2(d[:, 1], d[:, 0]), TWO_PI)
        return cls(theta, phi, None)

    @property
    def size(self) -> int:
        return int(self.theta.size)

    def directions(self) -> NDArray[np.float64]:
        """Unit vectors (n, 3)."""
        s = np.sin(self.theta)
        return np.stack([s * np.cos(self.phi), s * np.sin(self.phi), np.cos(self.theta)], axis=1)


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------

@dataclass
class HarmonicCoefficients:
    """Spherical harmonic expansion up to degree l_max.

    The coefficients are orientation dependent; use energies() for
    rotation-invariant comparison.
    """
    l_max: int
    coefficients: NDArray[np.complex128]

    def __post_init__(self):
        self.coefficients = np.asarray(self.coefficients, dtype=np.complex128).ravel()
        if self.coefficients.size != coefficient_count(self.l_max):
            raise ShapeMismatch(
                f"degree {self.l_max} needs {coefficient_count(self.l_max)} coefficients, "
                f"got {self.coefficients.size}"
            )

    def degree(self, l: int) -> NDArray[np.complex128]:
        """The 2l + 1 coefficients of degree l, ordered m = -l..l."""
        if not 0 <= l <= self.l_max:
            raise OutOfRange(f"degree {l} outside [0, {self.l_max}]")
        return self.coefficients[l * l:(l + 1) * (l + 1)]

    def coefficient(self, l: int, m: int) -> complex:
        if abs(m) > l:
            raise OutOfRange(f"order {m} invalid for degree {l}")
        return complex(self.degree(l)[l + m])

    def energies(self) -> NDArray[np.float64]:
        """Per-degree energy sum_m |c_lm|^2, invariant under rotation."""
        power = np.abs(self.coefficients) ** 2
        return np.array([power[l * l:(l + 1) * (l + 1)].sum() for l in range(self.l_max + 1)])

    def magnitudes(self) -> NDArray[np.float64]:
        return np.abs(self.coefficients)

    def evaluate(self, theta: ArrayLike, phi: ArrayLike) -> NDArray[np.float64]:
        """Real part of the expansion at the given directions."""
        basis = complex_spherical_harmonics(self.l_max, theta, phi)
        return np.real(basis @ self.coefficients)

    def to_dict(self) -> dict:
        return {
            'l_max': self.l_max,
            'real': self.coefficients.real.tolist(),
            'imag': self.coefficients.imag.tolist(),
            'energies': self.energies().tolist(),
        }


def spherical_transform(values: ArrayLike, grid: SphericalGrid, l_max: int) -> HarmonicCoefficients:
    """Project a real signal sampled on a grid onto the harmonics up to l_max.

    Uses the quadrature weights of the grid when present, otherwise a least
    squares fit of the real basis.

    Raises:
        ShapeMismatch: values do not match the grid
        InvalidInput: too few samples for a least squares fit
    """
    _check_degree(l_max)
    f = np.asarray(values, dtype=np.float64).ravel()
    if f.size != grid.size:
        raise ShapeMismatch(f"{f.size} samples for a grid of {grid.size} directions")
    basis = real_spherical_harmonics(l_max, grid.theta, grid.phi)
    if grid.weights is not None:
        real = basis.T @ (grid.weights * f)
    else:
        if grid.size < coefficient_count(l_max):
            raise InvalidInput(
                f"least squares fit of degree {l_max} needs at least "
                f"{coefficient_count(l_max)} samples, got {grid.size}"
            )
        real, *_ = np.linalg.lstsq(basis, f, rcond=None)
    logger.debug("Spherical transform: l_max=%d, %d samples", l_max, grid.size)
    return HarmonicCoefficients(l_max, real_to_complex(real, l_max))
