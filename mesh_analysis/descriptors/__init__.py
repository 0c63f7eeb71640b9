"""Shape descriptors: spherical harmonics and shape distributions."""

from mesh_analysis.descriptors.harmonic_descriptor import (
    ShapeDescriptor,
    compare_descriptors,
    describe_grid,
    describe_mesh,
    radial_function,
)
from mesh_analysis.descriptors.shape_distribution import (
    DistributionKind,
    ShapeDistribution,
    compare_scaled_distributions,
    compare_shape_distributions,
    shape_distribution,
)
from mesh_analysis.descriptors.spherical_harmonics import (
    HarmonicCoefficients,
    SphericalGrid,
    associated_legendre,
    complex_spherical_harmonics,
    real_spherical_harmonics,
    spherical_transform,
)

__all__ = [
    "DistributionKind",
    "HarmonicCoefficients",
    "ShapeDescriptor",
    "ShapeDistribution",
    "SphericalGrid",
    "associated_legendre",
    "compare_descriptors",
    "compare_scaled_distributions",
    "compare_shape_distributions",
    "complex_spherical_harmonics",
    "describe_grid",
    "describe_mesh",
    "radial_function",
    "real_spherical_harmonics",
    "shape_distribution",
    "spherical_transform",
]
