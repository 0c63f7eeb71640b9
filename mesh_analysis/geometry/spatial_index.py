"""
2D spatial index over triangle footprints (rtree wrapper).

Isolates the `rtree` dependency and serialises queries: one index can be
shared by the voxelizer's slab workers.
"""

import threading
from typing import List

import numpy as np
from rtree import index


_rtree_lock = threading.Lock()


def build_rtree_index(vertices: np.ndarray, faces: np.ndarray) -> index.Index:
    """Build a 2D R-tree over the XY bounding rectangles of the triangles.

    Args:
        vertices: (N, 3) vertex positions, only columns 0-1 are used
        faces: (M, 3) vertex indices

    Returns:
        rtree Index whose ids are face indices
    """
    props = index.Property()
    props.dimension = 2
    rtree_idx = index.Index(properties=props)

    if len(faces) == 0:
        return rtree_idx

    tri_2d = vertices[faces][:, :, :2]
    min_xy = tri_2d.min(axis=1)
    max_xy = tri_2d.max(axis=1)
    for face_id in range(len(faces)):
        rtree_idx.insert(face_id, (min_xy[face_id, 0], min_xy[face_id, 1],
                                   max_xy[face_id, 0], max_xy[face_id, 1]))
    return rtree_idx


def query_rtree(spatial_idx: index.Index, bounds) -> List[int]:
    """Thread-safe rectangle query.

    Args:
        spatial_idx: index built by build_rtree_index
        bounds: (min_x, min_y, max_x, max_y)

    Returns:
        Ids of faces whose rectangle intersects bounds
    """
    with _rtree_lock:
        return list(spatial_idx.intersection(bounds))


def query_point(spatial_idx: index.Index, x: float, y: float) -> List[int]:
    """Faces whose XY rectangle contains the point (x, y)."""
    return query_rtree(spatial_idx, (x, y, x, y))
