"""
Unit tests for vectors, affine transformations and geometric primitives.

Tests:
- Vector arithmetic, immutability and spherical coordinates
- Transformation composition, inversion and normal transport
- Line, plane, rectangle and triangle intersection outcomes
- Vectorised ray casting against a triangle soup
"""

import math

import numpy as np
import pytest

from mesh_analysis.errors import InvalidGeometry, ShapeMismatch, SingularTransform
from mesh_analysis.geometry.primitives import (
    IntersectionKind,
    Line,
    Plane,
    Rectangle,
    Triangle,
    ray_triangle_distances,
)
from mesh_analysis.geometry.shapes import unit_cube
from mesh_analysis.geometry.transform import AffineTransformation
from mesh_analysis.geometry.vectors import Vector, Vector2D, Vector3D, as_points


class TestVector:
    """Tests for Vector, Vector2D and Vector3D."""

    def test_arithmetic(self):
        a = Vector3D(1, 2, 3)
        b = Vector3D(1, 1, 1)
        assert a + b == Vector3D(2, 3, 4)
        assert a - b == Vector3D(0, 1, 2)
        assert 2 * a == Vector3D(2, 4, 6)
        assert a / 2 == Vector3D(0.5, 1, 1.5)
        assert -a == Vector3D(-1, -2, -3)

    def test_dimension_checked(self):
        with pytest.raises(ShapeMismatch):
            Vector3D(1, 2)
        with pytest.raises(ShapeMismatch):
            Vector3D(1, 2, 3) + Vector2D(1, 2)

    def test_immutable(self):
        v = Vector3D(1, 2, 3)
        with pytest.raises(AttributeError):
            v.foo = 1
        with pytest.raises(ValueError):
            np.asarray(v._data)[0] = 5.0

    def test_cross_products(self):
        assert Vector3D(1, 0, 0).cross(Vector3D(0, 1, 0)) == Vector3D(0, 0, 1)
        assert Vector2D(1, 0).cross(Vector2D(0, 1)) == pytest.approx(1.0)

    def test_norm_and_normalise(self):
        v = Vector3D(3, 4, 0)
        assert v.norm() == pytest.approx(5.0)
        assert v.normalized().is_close(Vector3D(0.6, 0.8, 0.0))
        with pytest.raises(InvalidGeometry):
            Vector3D(0, 0, 0).normalized()

    def test_angle(self):
        assert Vector2D(1, 0).angle_to(Vector2D(0, 2)) == pytest.approx(math.pi / 2)

    def test_spherical_round_trip(self):
        v = Vector3D.from_spherical(2.0, 0.7, 1.2)
        r, theta, phi = v.spherical()
        assert (r, theta, phi) == pytest.approx((2.0, 0.7, 1.2))

    def test_hashable(self):
        assert len({Vector3D(1, 2, 3), Vector3D(1, 2, 3)}) == 1

    def test_generic_dimension(self):
        assert Vector(1, 2, 3, 4).dimension == 4

    def test_as_points(self):
        pts = as_points([Vector3D(0, 0, 0), Vector3D(1, 1, 1)])
        assert pts.shape == (2, 3)


class TestAffineTransformation:
    """Tests for AffineTransformation."""

    def test_composition_order(self):
        move = AffineTransformation.from_translation([1.0, 0.0, 0.0])
        scale = AffineTransformation.scaling(2.0)
        np.testing.assert_allclose(move.then(scale).apply([1.0, 0.0, 0.0]), [3.0, 0.0, 0.0])
        np.testing.assert_allclose(scale.then(move).apply([1.0, 0.0, 0.0]), [4.0, 0.0, 0.0])

    def test_inverse(self):
        t = AffineTransformation.from_axis_angle([1, 2, 3], 0.8).then(
            AffineTransformation.from_translation([4, -1, 2]))
        assert t.then(t.inverse()).is_identity()

    def test_singular_inverse(self):
        flat = AffineTransformation(np.diag([1.0, 1.0, 0.0]))
        assert flat.is_singular()
        with pytest.raises(SingularTransform):
            flat.inverse()

    def test_rotation_preserves_length_and_orientation(self):
        r = AffineTransformation.from_euler_xyz((0.3, -0.4, 1.1))
        p = np.array([1.0, 2.0, 3.0])
        assert np.linalg.norm(r.apply(p)) == pytest.approx(np.linalg.norm(p))
        assert r.preserves_orientation()
        assert not AffineTransformation.reflection([0, 0, 1]).preserves_orientation()

    def test_from_two_vectors(self):
        r = AffineTransformation.from_two_vectors([1, 0, 0], [0, 0, 5])
        np.testing.assert_allclose(r.apply_to_vectors([2.0, 0.0, 0.0]), [0.0, 0.0, 2.0], atol=1e-12)
        opposite = AffineTransformation.from_two_vectors([0, 1, 0], [0, -1, 0])
        np.testing.assert_allclose(opposite.apply_to_vectors([0.0, 1.0, 0.0]), [0.0, -1.0, 0.0], atol=1e-12)

    def test_vectors_ignore_translation(self):
        t = AffineTransformation.from_translation([5.0, 5.0, 5.0])
        np.testing.assert_allclose(t.apply_to_vectors([1.0, 0.0, 0.0]), [1.0, 0.0, 0.0])

    def test_normals_stay_perpendicular_under_nonuniform_scaling(self):
        t = AffineTransformation.scaling([1.0, 4.0, 1.0])
        tangent = np.array([1.0, 1.0, 0.0])
        normal = np.array([1.0, -1.0, 0.0])
        moved_tangent = t.apply_to_vectors(tangent)
        moved_normal = t.apply_to_normals(normal)
        assert np.dot(moved_tangent, moved_normal) == pytest.approx(0.0, abs=1e-12)
        assert np.linalg.norm(moved_normal) == pytest.approx(1.0)

    def test_homogeneous_round_trip(self):
        t = AffineTransformation.from_axis_angle([0, 1, 0], 0.5).then(
            AffineTransformation.from_translation([1, 2, 3]))
        assert AffineTransformation.from_homogeneous(t.homogeneous()).is_close(t)

    def test_projective_matrix_rejected(self):
        m = np.eye(4)
        m[3, 0] = 1.0
        with pytest.raises(InvalidGeometry):
            AffineTransformation.from_homogeneous(m)

    def test_dimension_checks(self):
        with pytest.raises(ShapeMismatch):
            AffineTransformation(np.eye(4))
        with pytest.raises(ShapeMismatch):
            AffineTransformation.identity(3).apply([1.0, 2.0])

    def test_rotation_2d(self):
        r = AffineTransformation.rotation_2d(math.pi / 2)
        np.testing.assert_allclose(r.apply([1.0, 0.0]), [0.0, 1.0], atol=1e-12)


class TestLine:
    """Tests for Line intersections."""

    def test_crossing_segments(self):
        hit = Line.segment((0, 0), (2, 2)).intersect(Line.segment((0, 2), (2, 0)))
        assert hit.kind is IntersectionKind.POINT
        np.testing.assert_allclose(hit.point, [1.0, 1.0])

    def test_parallel_segments(self):
        hit = Line.segment((0, 0), (1, 0)).intersect(Line.segment((0, 1), (1, 1)))
        assert hit.kind is IntersectionKind.PARALLEL
        assert not hit.meets

    def test_segments_outside_extent(self):
        hit = Line.segment((0, 0), (1, 0)).intersect(Line.segment((2, -1), (2, 1)))
        assert hit.kind is IntersectionKind.NONE

    def test_infinite_lines_meet_beyond_points(self):
        hit = Line((0, 0), (1, 0)).intersect(Line((2, -1), (2, 1)))
        assert hit.kind is IntersectionKind.POINT
        np.testing.assert_allclose(hit.point, [2.0, 0.0])

    def test_collinear_overlap(self):
        hit = Line.segment((0, 0), (2, 0)).intersect(Line.segment((1, 0), (3, 0)))
        assert hit.kind is IntersectionKind.COINCIDENT
        np.testing.assert_allclose(hit.segment[0], [1.0, 0.0])
        np.testing.assert_allclose(hit.segment[1], [2.0, 0.0])

    def test_collinear_touching(self):
        hit = Line.segment((0, 0), (1, 0)).intersect(Line.segment((1, 0), (2, 0)))
        assert hit.kind is IntersectionKind.POINT
        np.testing.assert_allclose(hit.point, [1.0, 0.0])

    def test_skew_lines(self):
        a = Line((0, 0, 0), (1, 0, 0))
        b = Line((0, 1, 1), (0, 2, 1))
        assert a.intersect(b).kind is IntersectionKind.NONE
        assert a.distance_to_line(b) == pytest.approx(1.0)

    def test_ray_direction(self):
        ray = Line.ray((0, 0), (1, 0))
        assert ray.intersect(Line((-1, -1), (-1, 1))).kind is IntersectionKind.NONE
        assert ray.intersect(Line((1, -1), (1, 1))).kind is IntersectionKind.POINT

    def test_closest_point_clamped(self):
        seg = Line.segment((0, 0, 0), (1, 0, 0))
        np.testing.assert_allclose(seg.closest_point((3, 1, 0)), [1.0, 0.0, 0.0])
        assert seg.distance_to_point((0.5, 2, 0)) == pytest.approx(2.0)

    def test_coincident_points_rejected(self):
        with pytest.raises(InvalidGeometry):
            Line((1, 1), (1, 1))


class TestPlane:
    """Tests for Plane intersections."""

    def test_line_hit(self):
        plane = Plane((0, 0, 1), (0, 0, 1))
        hit = plane.intersect_line(Line.segment((0, 0, 0), (0, 0, 2)))
        assert hit.kind is IntersectionKind.POINT
        assert hit.parameter == pytest.approx(0.5)
        np.testing.assert_allclose(hit.point, [0.0, 0.0, 1.0])

    def test_segment_too_short(self):
        plane = Plane((0, 0, 1), (0, 0, 1))
        assert plane.intersect_line(Line.segment((0, 0, 0), (0, 0, 0.5))).kind is IntersectionKind.NONE

    def test_parallel_and_coincident_lines(self):
        plane = Plane((0, 0, 0), (0, 0, 1))
        assert plane.intersect_line(Line((0, 0, 1), (1, 0, 1))).kind is IntersectionKind.PARALLEL
        assert plane.intersect_line(Line((0, 0, 0), (1, 1, 0))).kind is IntersectionKind.COINCIDENT

    def test_plane_plane_line(self):
        hit = Plane((0, 0, 0), (0, 0, 1)).intersect_plane(Plane((0, 0, 0), (1, 0, 0)))
        assert hit.kind is IntersectionKind.LINE
        assert hit.line.contains_point((0, 5, 0))
        assert Plane((0, 0, 0), (0, 0, 1)).intersect_plane(Plane((0, 0, 3), (0, 0, -1))).kind \
            is IntersectionKind.PARALLEL

    def test_triangle_cut(self):
        plane = Plane((0, 0, 0.5), (0, 0, 1))
        hit = plane.intersect_triangle(Triangle((0, 0, 0), (1, 0, 0), (0, 0, 1)))
        assert hit.kind is IntersectionKind.SEGMENT
        ends = sorted(tuple(np.round(p, 9)) for p in hit.segment)
        assert ends == [(0.0, 0.0, 0.5), (0.5, 0.0, 0.5)]

    def test_from_collinear_points(self):
        with pytest.raises(InvalidGeometry):
            Plane.from_points((0, 0, 0), (1, 1, 1), (2, 2, 2))

    def test_signed_distance(self):
        plane = Plane.from_points((0, 0, 0), (1, 0, 0), (0, 1, 0))
        assert plane.signed_distance((3, 3, 2)) == pytest.approx(2.0)
        np.testing.assert_allclose(plane.project((3, 3, 2)), [3.0, 3.0, 0.0])


class TestRectangle:
    """Tests for Rectangle."""

    def test_overlap_and_union(self):
        a = Rectangle(0, 0, 2, 2)
        b = Rectangle(1, 1, 2, 2)
        assert a.intersection(b) == Rectangle(1, 1, 1, 1)
        assert a.union(b) == Rectangle(0, 0, 3, 3)
        assert a.intersection(Rectangle(5, 5, 1, 1)) is None

    def test_negative_extent(self):
        with pytest.raises(InvalidGeometry):
            Rectangle(0, 0, -1, 1)

    def test_metrics(self):
        r = Rectangle.from_corners((3, 4), (1, 1))
        assert r.area == pytest.approx(6.0)
        assert r.perimeter == pytest.approx(10.0)
        assert r.contains_point((2, 2))


class TestTriangle:
    """Tests for Triangle."""

    def test_area_normal_centroid(self):
        tri = Triangle((0, 0, 0), (2, 0, 0), (0, 2, 0))
        assert tri.area == pytest.approx(2.0)
        np.testing.assert_allclose(tri.normal, [0.0, 0.0, 1.0])
        np.testing.assert_allclose(tri.centroid, [2 / 3, 2 / 3, 0.0])

    def test_degenerate(self):
        tri = Triangle((0, 0, 0), (1, 1, 1), (2, 2, 2))
        assert tri.is_degenerate()
        with pytest.raises(InvalidGeometry):
            tri.normal

    def test_barycentric_and_interpolate(self):
        tri = Triangle((0, 0), (1, 0), (0, 1))
        np.testing.assert_allclose(tri.barycentric((0, 0)), [1.0, 0.0, 0.0])
        np.testing.assert_allclose(tri.barycentric((1, 0)), [0.0, 1.0, 0.0])
        assert tri.interpolate((0.25, 0.25), [0.0, 4.0, 8.0]) == pytest.approx(3.0)

    def test_contains_point(self):
        tri = Triangle((0, 0, 0), (1, 0, 0), (0, 1, 0))
        assert tri.contains_point((0.25, 0.25, 0.0))
        assert not tri.contains_point((0.25, 0.25, 0.1))
        assert not tri.contains_point((1.0, 1.0, 0.0))

    def test_line_hit(self):
        tri = Triangle((0, 0, 0), (1, 0, 0), (0, 1, 0))
        hit = tri.intersect_line(Line.ray((0.2, 0.2, 1.0), (0, 0, -1)))
        assert hit.kind is IntersectionKind.POINT
        np.testing.assert_allclose(hit.point, [0.2, 0.2, 0.0])
        miss = tri.intersect_line(Line.ray((0.2, 0.2, 1.0), (0, 0, 1)))
        assert miss.kind is IntersectionKind.NONE

    def test_line_in_triangle_plane(self):
        tri = Triangle((0, 0, 0), (1, 0, 0), (0, 1, 0))
        assert tri.intersect_line(Line((-1, 0.2, 0), (2, 0.2, 0))).kind is IntersectionKind.COINCIDENT
        assert tri.intersect_line(Line((-1, 0.2, 1), (2, 0.2, 1))).kind is IntersectionKind.PARALLEL


class TestRayTriangleDistances:
    """Tests for the vectorised ray caster."""

    def test_rays_from_cube_center(self):
        cube = unit_cube()
        directions = np.array([[1.0, 0, 0], [0, -1.0, 0], [0, 0, 1.0]])
        distances = ray_triangle_distances(np.array([0.5, 0.5, 0.5]), directions, cube.triangles())
        np.testing.assert_allclose(distances, [0.5, 0.5, 0.5])

    def test_missing_rays_are_zero(self):
        cube = unit_cube()
        distances = ray_triangle_distances(np.array([5.0, 5.0, 5.0]), np.array([[1.0, 0, 0]]), cube.triangles())
        assert distances[0] == 0.0

    def test_no_triangles(self):
        distances = ray_triangle_distances(np.zeros(3), np.eye(3), np.zeros((0, 3, 3)))
        np.testing.assert_array_equal(distances, np.zeros(3))
