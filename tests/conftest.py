"""
Pytest configuration and fixtures for mesh_analysis.

Provides:
- STL/PLY file fixtures written with numpy-stl and the PLY codec
- In-memory mesh fixtures (cube, sphere, cylinder, open grid)
- Seeded random sources
- Common assertion helpers
"""

from pathlib import Path
from typing import Tuple

import numpy as np
import pytest
from stl import mesh as stl_mesh

from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.geometry.shapes import box_mesh, cylinder_mesh, grid_mesh, sphere_mesh, unit_cube
from mesh_analysis.rng import RandomSource

PROJECT_ROOT = Path(__file__).parent.parent


# ============================================================================
# Mesh Fixtures
# ============================================================================

@pytest.fixture
def cube() -> Mesh:
    """The [0, 1]^3 cube (8 vertices, 12 outward-facing triangles)."""
    return unit_cube()


@pytest.fixture
def box() -> Mesh:
    """A 2 x 1 x 0.5 box with its minimum corner at the origin."""
    return box_mesh((0.0, 0.0, 0.0), (2.0, 1.0, 0.5))


@pytest.fixture
def sphere() -> Mesh:
    """Unit UV sphere around the origin."""
    return sphere_mesh(1.0, n_theta=24, n_phi=48)


@pytest.fixture
def cylinder() -> Mesh:
    """Closed cylinder, radius 1, height 2."""
    return cylinder_mesh(1.0, 2.0, segments=32)


@pytest.fixture
def open_grid() -> Mesh:
    """Open 4 x 4 grid in the z=0 plane."""
    return grid_mesh(4, 4)


@pytest.fixture
def rng() -> RandomSource:
    return RandomSource(12345)


# ============================================================================
# File Fixtures
# ============================================================================

@pytest.fixture
def cube_stl_path(tmp_path: Path) -> Path:
    """Binary STL cube written by numpy-stl."""
    path = tmp_path / "cube.stl"
    _create_cube_stl(path, size=10.0)
    return path


@pytest.fixture
def ascii_stl_path(tmp_path: Path) -> Path:
    """ASCII STL cube for format detection testing."""
    path = tmp_path / "ascii_cube.stl"
    _create_cube_stl(path, size=10.0, binary=False)
    return path


@pytest.fixture
def cylinder_stl_path(tmp_path: Path) -> Path:
    path = tmp_path / "cylinder.stl"
    _create_cylinder_stl(path, radius=5.0, height=20.0, segments=32)
    return path


@pytest.fixture
def empty_stl_path(tmp_path: Path) -> Path:
    """Binary STL with 0 triangles."""
    path = tmp_path / "empty.stl"
    m = stl_mesh.Mesh(np.zeros(0, dtype=stl_mesh.Mesh.dtype))
    m.save(str(path))
    return path


@pytest.fixture
def mesh_dir(tmp_path: Path) -> Path:
    """Directory with two cubes, a cylinder and a non-mesh file."""
    directory = tmp_path / "models"
    directory.mkdir()
    _create_cube_stl(directory / "cube_a.stl", size=10.0)
    _create_cube_stl(directory / "cube_b.STL", size=4.0)
    _create_cylinder_stl(directory / "cylinder.stl", radius=5.0, height=20.0, segments=32)
    (directory / "notes.txt").write_text("not a mesh")
    return directory


# ============================================================================
# Helper Functions for Creating Test STL Files
# ============================================================================

def _create_cube_stl(path: Path, size: float = 10.0, binary: bool = True) -> None:
    """Create a cube STL file centered at the origin."""
    hs = size / 2
    vertices = np.array([
        [-hs, -hs, -hs], [+hs, -hs, -hs], [+hs, +hs, -hs], [-hs, +hs, -hs],  # bottom
        [-hs, -hs, +hs], [+hs, -hs, +hs], [+hs, +hs, +hs], [-hs, +hs, +hs],  # top
    ])
    faces = [
        [0, 2, 1], [0, 3, 2],  # bottom
        [4, 5, 6], [4, 6, 7],  # top
        [0, 1, 5], [0, 5, 4],  # front
        [2, 3, 7], [2, 7, 6],  # back
        [0, 4, 7], [0, 7, 3],  # left
        [1, 2, 6], [1, 6, 5],  # right
    ]
    triangles = np.array([[vertices[f[0]], vertices[f[1]], vertices[f[2]]] for f in faces])

    if binary:
        m = stl_mesh.Mesh(np.zeros(len(triangles), dtype=stl_mesh.Mesh.dtype))
        for i, tri in enumerate(triangles):
            m.vectors[i] = tri
        m.save(str(path))
        return

    with open(str(path), 'w') as f:
        f.write("solid cube\n")
        for tri in triangles:
            normal = np.cross(tri[1] - tri[0], tri[2] - tri[0])
            normal = normal / np.linalg.norm(normal)
            f.write(f"  facet normal {normal[0]} {normal[1]} {normal[2]}\n")
            f.write("    outer loop\n")
            for v in tri:
                f.write(f"      vertex {v[0]} {v[1]} {v[2]}\n")
            f.write("    endloop\n")
            f.write("  endfacet\n")
        f.write("endsolid cube\n")


def _create_cylinder_stl(path: Path, radius: float = 5.0, height: float = 20.0,
                         segments: int = 32) -> None:
    """Create a closed cylinder STL file centered at the origin."""
    angles = np.linspace(0, 2 * np.pi, segments, endpoint=False)
    h2 = height / 2
    top = np.column_stack([radius * np.cos(angles), radius * np.sin(angles), np.full(segments, h2)])
    bot = np.column_stack([radius * np.cos(angles), radius * np.sin(angles), np.full(segments, -h2)])

    triangles = []
    for i in range(segments):
        j = (i + 1) % segments
        triangles.append([top[i], bot[i], top[j]])
        triangles.append([bot[i], bot[j], top[j]])
        triangles.append([top[i], top[j], [0, 0, h2]])
        triangles.append([bot[i], [0, 0, -h2], bot[j]])

    triangles = np.array(triangles)
    m = stl_mesh.Mesh(np.zeros(len(triangles), dtype=stl_mesh.Mesh.dtype))
    for i, tri in enumerate(triangles):
        m.vectors[i] = tri
    m.save(str(path))


# ============================================================================
# Assertion Helpers
# ============================================================================

def assert_valid_mesh(mesh: Mesh) -> None:
    """Assert the vertex and face arrays satisfy the Mesh invariants."""
    assert mesh.vertices.ndim == 2 and mesh.vertices.shape[1] == 3
    assert mesh.vertices.dtype == np.float64
    assert np.all(np.isfinite(mesh.vertices))
    assert mesh.faces.ndim == 2 and mesh.faces.shape[1] == 3
    if mesh.n_faces:
        assert mesh.faces.min() >= 0
        assert mesh.faces.max() < mesh.n_vertices


def assert_bbox_approx(mesh: Mesh, expected_size: Tuple[float, float, float],
                       tolerance: float = 0.01) -> None:
    """Assert that the bounding box matches the expected size within tolerance."""
    actual_size = mesh.vertices.max(axis=0) - mesh.vertices.min(axis=0)
    for i, (actual, expected) in enumerate(zip(actual_size, expected_size)):
        assert abs(actual - expected) < expected * tolerance, \
            f"Axis {i}: expected {expected}, got {actual}"
