"""K-Means and spectral clustering."""

from mesh_analysis.clustering.kmeans import KMeansInit, KMeansResult, kmeans
from mesh_analysis.clustering.spectral import (
    SpectralResult,
    gaussian_affinity,
    mesh_affinity,
    spectral_clustering,
    spectral_embedding,
)

__all__ = [
    "KMeansInit",
    "KMeansResult",
    "SpectralResult",
    "gaussian_affinity",
    "kmeans",
    "mesh_affinity",
    "spectral_clustering",
    "spectral_embedding",
]
