"""Spline interpolation."""

from mesh_analysis.interpolation.cubic_spline import CubicSpline, SplineBoundary, resample_polyline

__all__ = ["CubicSpline", "SplineBoundary", "resample_polyline"]
