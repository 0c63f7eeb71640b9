"""
Linear algebra helpers built on scipy.linalg.

Wraps the scipy solvers so that failures surface as engine error kinds
instead of LinAlgError / ArpackNoConvergence.
"""

import logging
from typing import Optional, Tuple

import numpy as np
import scipy.linalg
import scipy.sparse
import scipy.sparse.linalg
from numpy.typing import NDArray

from mesh_analysis.errors import NumericalFailure, ShapeMismatch, SingularTransform
from mesh_analysis.numerics.constants import MEDIUM_TOL, SINGULAR_TOLERANCE

logger = logging.getLogger(__name__)


def hadamard_ratio(matrix: NDArray[np.float64]) -> float:
    """Scale-free conditioning measure |det(A)| / prod(column norms).

    Returns 0 for matrices with a zero column and 1 for orthogonal ones.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=0)
    if np.any(norms == 0.0):
        return 0.0
    return float(abs(np.linalg.det(matrix / norms)))


def is_symmetric(matrix: NDArray[np.float64], tol: float = MEDIUM_TOL) -> bool:
    """Check whether a square matrix equals its transpose within tol."""
    matrix = np.asarray(matrix)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        return False
    return bool(np.allclose(matrix, matrix.T, atol=tol))


def make_symmetric(matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """Return (A + A^T) / 2."""
    matrix = np.asarray(matrix, dtype=np.float64)
    _require_square(matrix)
    return 0.5 * (matrix + matrix.T)


def solve(a: NDArray[np.float64], b: NDArray[np.float64]) -> NDArray[np.float64]:
    """Solve a x = b for square a.

    Raises:
        ShapeMismatch: a is not square or b does not match its rows
        SingularTransform: a is numerically singular
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    _require_square(a)
    if b.shape[0] != a.shape[0]:
        raise ShapeMismatch(f"right-hand side has {b.shape[0]} rows, expected {a.shape[0]}")
    if hadamard_ratio(a) < SINGULAR_TOLERANCE:
        raise SingularTransform("linear system matrix is singular")
    try:
        return scipy.linalg.solve(a, b)
    except scipy.linalg.LinAlgError as exc:
        raise SingularTransform(f"linear solve failed: {exc}") from exc


def solve_tridiagonal(
    lower: NDArray[np.float64],
    diagonal: NDArray[np.float64],
    upper: NDArray[np.float64],
    rhs: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Solve a tridiagonal system with scipy.linalg.solve_banded.

    Args:
        lower: sub-diagonal, length n-1
        diagonal: main diagonal, length n
        upper: super-diagonal, length n-1
        rhs: right-hand side, length n (or n x m)
    """
    n = len(diagonal)
    if len(lower) != n - 1 or len(upper) != n - 1:
        raise ShapeMismatch("tridiagonal bands have inconsistent lengths")
    bands = np.zeros((3, n), dtype=np.float64)
    bands[0, 1:] = upper
    bands[1, :] = diagonal
    bands[2, :-1] = lower
    try:
        return scipy.linalg.solve_banded((1, 1), bands, rhs)
    except (scipy.linalg.LinAlgError, ValueError) as exc:
        raise NumericalFailure(f"tridiagonal solve failed: {exc}") from exc


def symmetric_eigen(
    matrix: NDArray[np.float64],
    k: Optional[int] = None,
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Eigen-decomposition of a dense symmetric matrix.

    Args:
        matrix: symmetric (n, n) matrix
        k: return only the k smallest eigenpairs (all if None)

    Returns:
        (eigenvalues ascending, eigenvectors as columns)

    Raises:
        NumericalFailure: if the LAPACK driver does not converge
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    _require_square(matrix)
    subset = None
    if k is not None:
        subset = [0, min(k, matrix.shape[0]) - 1]
    try:
        values, vectors = scipy.linalg.eigh(matrix, subset_by_index=subset)
    except scipy.linalg.LinAlgError as exc:
        raise NumericalFailure(f"symmetric eigen-solve did not converge: {exc}") from exc
    return values, vectors


def sparse_symmetric_eigen(
    matrix: "scipy.sparse.spmatrix",
    k: int,
    largest: bool = True,
    max_iterations: Optional[int] = None,
    tol: float = 0.0,
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """k extreme eigenpairs of a sparse symmetric matrix with ARPACK.

    Returns eigenvalues sorted ascending with matching eigenvector columns.

    Raises:
        NumericalFailure: ARPACK did not converge within maxiter
    """
    which = "LA" if largest else "SA"
    try:
        values, vectors = scipy.sparse.linalg.eigsh(
            matrix, k=k, which=which, maxiter=max_iterations, tol=tol,
        )
    except scipy.sparse.linalg.ArpackNoConvergence as exc:
        raise NumericalFailure(f"sparse eigen-solve did not converge: {exc}") from exc
    except scipy.sparse.linalg.ArpackError as exc:
        raise NumericalFailure(f"sparse eigen-solve failed: {exc}") from exc
    order = np.argsort(values)
    logger.debug("Sparse eigen-solve: k=%d, n=%d", k, matrix.shape[0])
    return values[order], vectors[:, order]


def relative_difference(a: NDArray[np.float64], b: NDArray[np.float64]) -> float:
    """max |a - b| / max(|a|, |b|, 1), used as a convergence measure."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    scale = max(float(np.max(np.abs(a), initial=0.0)), float(np.max(np.abs(b), initial=0.0)), 1.0)
    return float(np.max(np.abs(a - b), initial=0.0)) / scale


def _require_square(matrix: NDArray[np.float64]) -> None:
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ShapeMismatch(f"expected a square matrix, got shape {matrix.shape}")
