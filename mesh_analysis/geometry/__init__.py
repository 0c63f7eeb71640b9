"""Geometric primitives, affine transformations and the triangle mesh model."""

from mesh_analysis.geometry.vectors import Vector, Vector2D, Vector3D
from mesh_analysis.geometry.transform import AffineTransformation
from mesh_analysis.geometry.primitives import (
    Intersection,
    IntersectionKind,
    Line,
    LineExtent,
    Plane,
    Rectangle,
    Triangle,
)
from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.geometry.mesh_stats import (
    BoundingBox,
    MeshStatistics,
    calculate_mesh_statistics,
)
from mesh_analysis.geometry.shapes import (
    box_mesh,
    cylinder_mesh,
    grid_mesh,
    sphere_mesh,
    unit_cube,
)
from mesh_analysis.geometry.sections import SectionPolyline, cross_section

__all__ = [
    "Vector",
    "Vector2D",
    "Vector3D",
    "AffineTransformation",
    "Intersection",
    "IntersectionKind",
    "Line",
    "LineExtent",
    "Plane",
    "Rectangle",
    "Triangle",
    "Mesh",
    "BoundingBox",
    "MeshStatistics",
    "calculate_mesh_statistics",
    "box_mesh",
    "cylinder_mesh",
    "grid_mesh",
    "sphere_mesh",
    "unit_cube",
    "SectionPolyline",
    "cross_section",
]
