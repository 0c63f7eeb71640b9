"""
Numerical constants and tolerances shared across the engine.
"""

import numpy as np

# Machine epsilon for float64
EPS = float(np.finfo(np.float64).eps)

SMALL_TOL = 1e-12
MEDIUM_TOL = 1e-8
BIG_TOL = 1e-4

# Lower bound for the Hadamard ratio |det(A)| / prod(||a_i||) of a linear map.
# The ratio lies in [0, 1] and does not depend on the scale of A, so uniform
# scalings of any magnitude stay invertible while rank-deficient maps fail.
SINGULAR_TOLERANCE = 1e-12

# Distances and parameters closer than this are treated as equal by the
# geometric primitives (parallel tests, coplanarity, on-boundary tests).
GEOMETRY_TOLERANCE = 1e-10

# Triangles with area below this are degenerate for validation purposes.
DEGENERATE_AREA_TOLERANCE = 1e-10

TWO_PI = 2.0 * np.pi
FOUR_PI = 4.0 * np.pi
