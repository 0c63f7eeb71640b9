"""
Parametric mesh generators.

All closed shapes are wound counter-clockwise seen from outside, so their
signed volume is positive.
"""

import logging
from typing import Sequence

import numpy as np

from mesh_analysis.errors import InvalidGeometry, InvalidInput
from mesh_analysis.geometry.mesh import Mesh

logger = logging.getLogger(__name__)

# Bottom ring 0-3, top ring 4-7, both counter-clockwise seen from +z
_CUBE_CORNERS = np.array([
    [0.0, 0.0, 0.0],
    [1.0, 0.0, 0.0],
    [1.0, 1.0, 0.0],
    [0.0, 1.0, 0.0],
    [0.0, 0.0, 1.0],
    [1.0, 0.0, 1.0],
    [1.0, 1.0, 1.0],
    [0.0, 1.0, 1.0],
])

_CUBE_FACES = np.array([
    [0, 2, 1], [0, 3, 2],  # bottom (-z)
    [4, 5, 6], [4, 6, 7],  # top (+z)
    [0, 1, 5], [0, 5, 4],  # front (-y)
    [3, 7, 6], [3, 6, 2],  # back (+y)
    [0, 4, 7], [0, 7, 3],  # left (-x)
    [1, 2, 6], [1, 6, 5],  # right (+x)
], dtype=np.int64)


def box_mesh(min_corner: Sequence[float], max_corner: Sequence[float]) -> Mesh:
    """Axis-aligned box with 8 vertices and 12 triangles.

    Raises:
        InvalidGeometry: max_corner is not strictly greater than min_corner
    """
    lo = np.asarray(min_corner, dtype=np.float64)
    hi = np.asarray(max_corner, dtype=np.float64)
    if lo.shape != (3,) or hi.shape != (3,):
        raise InvalidInput("box corners must be 3D points")
    if np.any(hi <= lo):
        raise InvalidGeometry(f"box corners {lo.tolist()} and {hi.tolist()} span no volume")
    return Mesh(vertices=lo + _CUBE_CORNERS * (hi - lo), faces=_CUBE_FACES.copy())


def unit_cube() -> Mesh:
    """The [0, 1]^3 cube."""
    return box_mesh((0.0, 0.0, 0.0), (1.0, 1.0, 1.0))


def sphere_mesh(radius: float = 1.0, n_theta: int = 16, n_phi: int = 32,
                center: Sequence[float] = (0.0, 0.0, 0.0)) -> Mesh:
    """UV sphere with poles on the z axis.

    Args:
        radius: sphere radius
        n_theta: number of latitude bands (>= 2)
        n_phi: number of longitude segments (>= 3)
        center: sphere center

    Returns:
        Mesh with 2 + (n_theta - 1) * n_phi vertices
    """
    if n_theta < 2 or n_phi < 3:
        raise InvalidInput(f"sphere needs n_theta >= 2 and n_phi >= 3, got {n_theta}, {n_phi}")
    if radius <= 0:
        raise InvalidGeometry(f"sphere radius must be positive, got {radius}")

    theta = np.pi * np.arange(1, n_theta) / n_theta
    phi = 2 * np.pi * np.arange(n_phi) / n_phi
    tt, pp = np.meshgrid(theta, phi, indexing='ij')
    ring = np.column_stack([
        np.sin(tt).ravel() * np.cos(pp).ravel(),
        np.sin(tt).ravel() * np.sin(pp).ravel(),
        np.cos(tt).ravel(),
    ])
    vertices = np.vstack([[0.0, 0.0, 1.0], ring, [0.0, 0.0, -1.0]]) * radius + np.asarray(center, dtype=np.float64)
    south = len(vertices) - 1

    def at(i: int, j: int) -> int:
        return 1 + (i - 1) * n_phi + (j % n_phi)

    faces = []
    for j in range(n_phi):
        faces.append((0, at(1, j), at(1, j + 1)))
    for i in range(1, n_theta - 1):
        for j in range(n_phi):
            a, b = at(i, j), at(i, j + 1)
            c, d = at(i + 1, j), at(i + 1, j + 1)
            faces.append((a, c, d))
            faces.append((a, d, b))
    for j in range(n_phi):
        faces.append((at(n_theta - 1, j), south, at(n_theta - 1, j + 1)))

    return Mesh(vertices=vertices, faces=np.array(faces, dtype=np.int64))


def cylinder_mesh(radius: float = 1.0, height: float = 1.0, segments: int = 32) -> Mesh:
    """Closed cylinder around the z axis from z=0 to z=height."""
    if segments < 3:
        raise InvalidInput(f"cylinder needs at least 3 segments, got {segments}")
    if radius <= 0 or height <= 0:
        raise InvalidGeometry("cylinder radius and height must be positive")

    angles = 2 * np.pi * np.arange(segments) / segments
    circle = np.column_stack([radius * np.cos(angles), radius * np.sin(angles)])
    bottom = np.column_stack([circle, np.zeros(segments)])
    top = np.column_stack([circle, np.full(segments, height)])
    vertices = np.vstack([bottom, top, [[0.0, 0.0, 0.0]], [[0.0, 0.0, height]]])
    bottom_center = 2 * segments
    top_center = bottom_center + 1

    faces = []
    for j in range(segments):
        k = (j + 1) % segments
        faces.append((j, k, segments + k))
        faces.append((j, segments + k, segments + j))
        faces.append((bottom_center, k, j))
        faces.append((top_center, segments + j, segments + k))

    return Mesh(vertices=vertices, faces=np.array(faces, dtype=np.int64))


def grid_mesh(nx: int, ny: int, width: float = 1.0, depth: float = 1.0) -> Mesh:
    """Open rectangular grid in the z=0 plane with +z facing triangles."""
    if nx < 1 or ny < 1:
        raise InvalidInput(f"grid needs at least one cell per axis, got {nx} x {ny}")
    xs = np.linspace(0.0, width, nx + 1)
    ys = np.linspace(0.0, depth, ny + 1)
    gx, gy = np.meshgrid(xs, ys, indexing='ij')
    vertices = np.column_stack([gx.ravel(), gy.ravel(), np.zeros(gx.size)])

    idx = np.arange((nx + 1) * (ny + 1)).reshape(nx + 1, ny + 1)
    a = idx[:-1, :-1].ravel()
    b = idx[1:, :-1].ravel()
    c = idx[1:, 1:].ravel()
    d = idx[:-1, 1:].ravel()
    faces = np.concatenate([np.column_stack([a, b, c]), np.column_stack([a, c, d])])
    return Mesh(vertices=vertices, faces=faces)
