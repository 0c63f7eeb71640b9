"""Linear algebra helpers and numerical constants."""

from mesh_analysis.numerics.constants import (
    EPS,
    GEOMETRY_TOLERANCE,
    SINGULAR_TOLERANCE,
    SMALL_TOL,
    MEDIUM_TOL,
    BIG_TOL,
)
from mesh_analysis.numerics.linear_algebra import (
    hadamard_ratio,
    is_symmetric,
    make_symmetric,
    solve,
    solve_tridiagonal,
    symmetric_eigen,
    sparse_symmetric_eigen,
)

__all__ = [
    "EPS",
    "GEOMETRY_TOLERANCE",
    "SINGULAR_TOLERANCE",
    "SMALL_TOL",
    "MEDIUM_TOL",
    "BIG_TOL",
    "hadamard_ratio",
    "is_symmetric",
    "make_symmetric",
    "solve",
    "solve_tridiagonal",
    "symmetric_eigen",
    "sparse_symmetric_eigen",
]
