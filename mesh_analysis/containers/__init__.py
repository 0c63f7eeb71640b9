"""Dense and sparse numeric containers."""

from mesh_analysis.containers.dense import DenseArray
from mesh_analysis.containers.sparse import SparseArray, SparseArray2D, SparseArray3D

__all__ = ["DenseArray", "SparseArray", "SparseArray2D", "SparseArray3D"]
