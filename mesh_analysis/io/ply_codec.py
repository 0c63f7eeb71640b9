"""
PLY reading and writing through trimesh.

Reading accepts the ascii, binary_little_endian and binary_big_endian
encodings; writing produces ascii or binary_little_endian. Vertex
properties x/y/z are positions, nx/ny/nz are normals and every other
scalar vertex property is kept as a named vertex attribute. Polygon faces
are fan triangulated. Elements other than vertex and face are skipped.

Coordinates and normals are written as float32.
"""

import io
import logging
import os
from enum import Enum
from typing import Dict, List

import numpy as np
import trimesh
from numpy.typing import NDArray
from trimesh.exchange import ply as trimesh_ply

from mesh_analysis.errors import InvalidInput, MalformedFile
from mesh_analysis.geometry.mesh import Mesh

logger = logging.getLogger(__name__)

POSITION_PROPERTIES = ('x', 'y', 'z')
NORMAL_PROPERTIES = ('nx', 'ny', 'nz')


class PLYFormat(Enum):
    """PLY body encodings."""
    ASCII = "ascii"
    BINARY_LITTLE_ENDIAN = "binary_little_endian"
    BINARY_BIG_ENDIAN = "binary_big_endian"

    @property
    def writable(self) -> bool:
        return self is not PLYFormat.BINARY_BIG_ENDIAN

    @classmethod
    def writable_formats(cls) -> List['PLYFormat']:
        return [f for f in cls if f.writable]


def sniff_ply_format(data: bytes) -> PLYFormat:
    """Body encoding named on the header's format line.

    Raises:
        MalformedFile: not a PLY stream or unknown encoding
    """
    lines = data[:256].split(b'\n', 2)
    if len(lines) < 3 or lines[0].strip() != b'ply':
        raise MalformedFile("missing 'ply' magic line")
    tokens = lines[1].split()
    if len(tokens) != 3 or tokens[0] != b'format':
        raise MalformedFile("second header line must be 'format <encoding> 1.0'")
    try:
        return PLYFormat(tokens[1].decode('ascii', errors='replace'))
    except ValueError:
        raise MalformedFile(f"unsupported format {tokens[1]!r}") from None


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _is_list(dtype: str) -> bool:
    # trimesh marks list properties as "<count>, ($LIST,)<item>" and replaces
    # $LIST with the list length for binary bodies
    return '(' in dtype


def _column(element: dict, name: str) -> NDArray:
    values = np.asarray(element['data'][name])
    return values.reshape(len(values), -1)


def _element_rows(element: dict) -> int:
    data = element.get('data')
    if data is None:
        return 0
    if isinstance(data, dict):
        return min((len(v) for v in data.values()), default=0)
    return len(data)


def _check_counts(elements: Dict[str, dict]) -> None:
    for name, element in elements.items():
        declared = element['length']
        rows = _element_rows(element) if declared else 0
        if rows != declared:
            raise MalformedFile(f"element {name!r} declares {declared} rows, body ends early after {rows}")


def _check_ascii_face_lists(data: bytes, elements: Dict[str, dict]) -> None:
    """Every ASCII face row must carry a list count of at least 3.

    trimesh takes the list length from the first row when all rows have the
    same width, so the counts of the remaining rows are checked here.
    """
    face = elements.get('face')
    if face is None or not face['length']:
        return
    names = list(face['properties'])
    lists = [i for i, name in enumerate(names) if _is_list(face['properties'][name])]
    # scalars before the first list take one token each
    if not lists:
        return
    column = lists[0]

    start = 0
    for name, element in elements.items():
        if name == 'face':
            break
        start += element['length']
    body = data[data.index(b'end_header'):].split(b'\n', 1)[1]
    rows = body.decode('utf-8', errors='replace').splitlines()[start:start + face['length']]
    for number, row in enumerate(rows):
        tokens = row.split()
        try:
            count = int(float(tokens[column]))
        except (IndexError, ValueError):
            raise MalformedFile(f"face row {number} has no vertex index count") from None
        if count < 3:
            raise MalformedFile(f"face row {number}: faces need at least 3 vertex indices, got {count}")
        if len(tokens) < column + 1 + count:
            raise MalformedFile(f"face row {number} ends early: expected {count} indices")


def _vertex_attributes(vertex: dict) -> Dict[str, NDArray]:
    attributes = {}
    for name, dtype in vertex['properties'].items():
        if name in POSITION_PROPERTIES or name in NORMAL_PROPERTIES or _is_list(dtype):
            continue
        attributes[name] = _column(vertex, name)[:, 0].astype(np.dtype(dtype).newbyteorder('='))
    return attributes


def _triangulate(faces, n_vertices: int) -> NDArray[np.int64]:
    if faces is None:
        return np.zeros((0, 3), dtype=np.int64)
    faces = np.asarray(faces)
    if faces.size == 0:
        return np.zeros((0, 3), dtype=np.int64)
    if faces.ndim != 2 or faces.shape[1] < 3:
        raise MalformedFile("faces need at least 3 vertex indices")
    faces = faces.astype(np.int64)
    if faces.min() < 0 or faces.max() >= n_vertices:
        raise MalformedFile(f"face indices must lie in [0, {n_vertices})")
    # fan around the first corner: (0, i, i + 1)
    fans = [faces[:, [0, i, i + 1]] for i in range(1, faces.shape[1] - 1)]
    return np.stack(fans, axis=1).reshape(-1, 3)


def read_ply(data: bytes) -> Mesh:
    """Decode a PLY byte stream into a Mesh.

    Raises:
        MalformedFile: header or body does not parse, or counts and indices
            are inconsistent
    """
    fmt = sniff_ply_format(data)
    try:
        kwargs = trimesh_ply.load_ply(io.BytesIO(data), fix_texture=False, skip_materials=True)
    except (ValueError, KeyError, IndexError, TypeError, NameError) as exc:
        # NameError covers a face element without a vertex index list
        raise MalformedFile(f"{fmt.value} PLY does not parse: {exc}") from exc

    elements = kwargs['metadata']['_ply_raw']
    _check_counts(elements)
    if fmt is PLYFormat.ASCII:
        _check_ascii_face_lists(data, elements)
    vertex = elements.get('vertex')
    if vertex is None or not vertex['length']:
        logger.warning("PLY stream contains no vertices")
        return Mesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3), dtype=np.int64))

    vertices = np.asarray(kwargs['vertices'], dtype=np.float64)
    faces = _triangulate(kwargs.get('faces'), len(vertices))
    normals = kwargs.get('vertex_normals')
    mesh = Mesh(
        vertices=vertices,
        faces=faces,
        vertex_normals=None if normals is None else np.asarray(normals, dtype=np.float64),
        vertex_attributes=_vertex_attributes(vertex),
    )
    logger.debug("Decoded %s PLY: %d vertices, %d faces", fmt.value, mesh.n_vertices, mesh.n_faces)
    return mesh


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _scalar_attributes(mesh: Mesh) -> Dict[str, NDArray]:
    attributes = {}
    for name, values in mesh.vertex_attributes.items():
        values = np.asarray(values)
        if values.ndim != 1:
            logger.debug("Skipping multi-column attribute %r in PLY output", name)
            continue
        if values.dtype == np.bool_:
            values = values.astype(np.uint8)
        attributes[name] = values
    return attributes


def write_ply(mesh: Mesh, fmt: PLYFormat = PLYFormat.BINARY_LITTLE_ENDIAN) -> bytes:
    """Encode a mesh as PLY bytes.

    Raises:
        InvalidInput: fmt cannot be written
    """
    if not fmt.writable:
        raise InvalidInput(f"PLY output supports {[f.value for f in PLYFormat.writable_formats()]}, got {fmt.value}")
    solid = trimesh.Trimesh(
        vertices=mesh.vertices,
        faces=mesh.faces,
        vertex_normals=mesh.vertex_normals,
        vertex_attributes=_scalar_attributes(mesh),
        process=False,
    )
    data = trimesh_ply.export_ply(solid, encoding=fmt.value, vertex_normal=mesh.vertex_normals is not None)
    logger.debug("Encoded %d vertices, %d faces as %s PLY (%d bytes)",
                 mesh.n_vertices, mesh.n_faces, fmt.value, len(data))
    return data


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def load_ply(filepath: str) -> Mesh:
    """Load a PLY file."""
    with open(filepath, 'rb') as f:
        data = f.read()
    logger.info("Loading PLY: %s (%.1f KB)", filepath, len(data) / 1024)
    try:
        return read_ply(data)
    except MalformedFile as exc:
        raise MalformedFile(f"{filepath}: {exc.message}") from exc


def save_ply(mesh: Mesh, filepath: str, fmt: PLYFormat = PLYFormat.BINARY_LITTLE_ENDIAN) -> None:
    """Write a mesh to a PLY file."""
    data = write_ply(mesh, fmt)
    with open(filepath, 'wb') as f:
        f.write(data)
    logger.info("Saved PLY: %s (%d faces)", os.fspath(filepath), mesh.n_faces)
