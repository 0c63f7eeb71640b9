"""
STL reading and writing.

Supports:
- Binary STL (80-byte header, uint32 count, 50-byte records)
- ASCII STL ("facet normal / outer loop" text)

The variant is sniffed from the content, never from the file name.
Triangle soups are turned into indexed meshes by merging vertices whose
coordinates agree after rounding; merged vertices keep first-seen order.
"""

import io
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from numpy.typing import NDArray
from stl import mesh as stl_mesh
from stl.stl import Mode

from mesh_analysis.errors import MalformedFile
from mesh_analysis.geometry.mesh import Mesh

logger = logging.getLogger(__name__)

HEADER_SIZE = 80
COUNT_SIZE = 4
RECORD_SIZE = 50
ASCII_PROBE_SIZE = 1024

# Coordinates are merged when equal after rounding to this many decimals
DEFAULT_MERGE_DECIMALS = 6

_RECORD_DTYPE = stl_mesh.Mesh.dtype.newbyteorder('<')


class STLFormat(Enum):
    """STL file format type."""
    BINARY = "binary"
    ASCII = "ascii"
    UNKNOWN = "unknown"


@dataclass
class STLInfo:
    """Metadata about a decoded STL stream."""
    format: STLFormat
    size_bytes: int
    n_triangles: int
    n_unique_vertices: int
    solid_name: Optional[str] = None
    filepath: Optional[str] = None

    @property
    def size_kb(self) -> float:
        return self.size_bytes / 1024


# ---------------------------------------------------------------------------
# Format detection
# ---------------------------------------------------------------------------

def sniff_stl_format(data: bytes) -> Tuple[STLFormat, Optional[str]]:
    """Detect STL variant (binary vs ASCII) from the leading bytes.

    Binary streams are recognised by the record count in the header matching
    the stream length; this wins even when the 80-byte header itself reads
    like ASCII text. Otherwise ASCII streams start with the 'solid' keyword
    and contain 'facet' or 'endsolid' text in their first kilobyte.

    Returns:
        Tuple of (format, solid name or None)
    """
    if len(data) >= HEADER_SIZE + COUNT_SIZE:
        count = int(np.frombuffer(data, dtype='<u4', count=1, offset=HEADER_SIZE)[0])
        if HEADER_SIZE + COUNT_SIZE + RECORD_SIZE * count == len(data):
            name = data[:HEADER_SIZE].split(b'\x00')[0].split(b'\n')[0].decode('ascii', errors='ignore').strip()
            if name.startswith('solid'):
                name = name[5:].strip()
            else:
                name = ''
            return STLFormat.BINARY, name or None

    head = data[:ASCII_PROBE_SIZE]
    if head.lstrip().lower().startswith(b'solid'):
        try:
            text = head.decode('ascii')
        except UnicodeDecodeError:
            text = ''
        if 'facet' in text.lower() or 'endsolid' in text.lower():
            first_line = text.strip().split('\n')[0]
            return STLFormat.ASCII, first_line.strip()[5:].strip() or None

    return STLFormat.UNKNOWN, None


# ---------------------------------------------------------------------------
# Vertex merging
# ---------------------------------------------------------------------------

def merge_vertices(
    corners: NDArray[np.float64],
    decimals: Optional[int] = DEFAULT_MERGE_DECIMALS,
) -> Tuple[NDArray[np.float64], NDArray[np.int64]]:
    """Index a triangle soup.

    Args:
        corners: (3M, 3) triangle corners, three per face
        decimals: rounding used to compare coordinates; None compares exactly

    Returns:
        vertices: (N, 3) first occurrence of every distinct corner, in
            first-seen order
        faces: (M, 3) indices into vertices
    """
    corners = np.asarray(corners, dtype=np.float64).reshape(-1, 3)
    if len(corners) == 0:
        return np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int64)

    keys = corners if decimals is None else np.round(corners, decimals)
    keys = keys + 0.0  # folds -0.0 into 0.0
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    inverse = inverse.reshape(-1)

    order = np.argsort(first, kind='stable')
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))

    vertices = corners[first[order]]
    faces = rank[inverse].reshape(-1, 3).astype(np.int64)
    return vertices, faces


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _read_binary(data: bytes) -> NDArray[np.float64]:
    if len(data) < HEADER_SIZE + COUNT_SIZE:
        raise MalformedFile(f"binary STL needs at least {HEADER_SIZE + COUNT_SIZE} bytes, got {len(data)}")
    count = int(np.frombuffer(data, dtype='<u4', count=1, offset=HEADER_SIZE)[0])
    expected = HEADER_SIZE + COUNT_SIZE + RECORD_SIZE * count
    if expected != len(data):
        raise MalformedFile(
            f"binary STL declares {count} triangles ({expected} bytes) but stream has {len(data)} bytes"
        )
    records = np.frombuffer(data, dtype=_RECORD_DTYPE, count=count, offset=HEADER_SIZE + COUNT_SIZE)
    return records['vectors'].astype(np.float64).reshape(-1, 3)


def _read_ascii(data: bytes) -> NDArray[np.float64]:
    try:
        solid = stl_mesh.Mesh.from_file(None, calculate_normals=False, fh=io.BytesIO(data),
                                        mode=Mode.ASCII, speedups=False)
    except RuntimeError as exc:
        # numpy-stl raises RuntimeError(recoverable, message)
        raise MalformedFile(f"invalid ASCII STL: {exc.args[-1]}") from exc
    except (ValueError, AssertionError) as exc:
        raise MalformedFile(f"invalid ASCII STL: {exc}") from exc
    return solid.vectors.astype(np.float64).reshape(-1, 3)


def read_stl_with_info(data: bytes, decimals: Optional[int] = DEFAULT_MERGE_DECIMALS) -> Tuple[Mesh, STLInfo]:
    """Decode an STL byte stream into a Mesh plus stream metadata.

    Raises:
        MalformedFile: stream is neither valid ASCII nor binary STL
    """
    stl_format, solid_name = sniff_stl_format(data)
    if stl_format == STLFormat.ASCII:
        try:
            data.decode('ascii')
        except UnicodeDecodeError as exc:
            raise MalformedFile(f"ASCII STL contains non-ASCII bytes at offset {exc.start}") from exc
        corners = _read_ascii(data)
    elif stl_format == STLFormat.BINARY:
        corners = _read_binary(data)
    else:
        # Not ASCII; report why the binary interpretation fails
        _read_binary(data)
        raise MalformedFile("unrecognised STL stream")

    vertices, faces = merge_vertices(corners, decimals)
    if len(faces) == 0:
        logger.warning("STL stream contains no triangles")

    info = STLInfo(
        format=stl_format,
        size_bytes=len(data),
        n_triangles=len(faces),
        n_unique_vertices=len(vertices),
        solid_name=solid_name,
    )
    logger.debug("Decoded %s STL: %d triangles, %d unique vertices",
                 stl_format.value, len(faces), len(vertices))
    return Mesh(vertices=vertices, faces=faces), info


def read_stl(data: bytes, decimals: Optional[int] = DEFAULT_MERGE_DECIMALS) -> Mesh:
    """Decode an STL byte stream (binary or ASCII, sniffed) into a Mesh."""
    return read_stl_with_info(data, decimals)[0]


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _stl_solid(mesh: Mesh) -> stl_mesh.Mesh:
    records = np.zeros(mesh.n_faces, dtype=stl_mesh.Mesh.dtype)
    if mesh.n_faces:
        records['vectors'] = mesh.triangles()
        records['normals'] = mesh.face_normals()
    return stl_mesh.Mesh(records, calculate_normals=False, speedups=False)


def write_stl(mesh: Mesh, binary: bool = True, name: str = "mesh_analysis") -> bytes:
    """Encode a mesh as STL bytes.

    Both variants are written by numpy-stl from float32 records, so ASCII
    output does not carry more precision than binary.
    """
    buffer = io.BytesIO()
    _stl_solid(mesh).save(name, fh=buffer, mode=Mode.BINARY if binary else Mode.ASCII, update_normals=False)
    data = buffer.getvalue()
    logger.debug("Encoded %d triangles as %s STL (%d bytes)",
                 mesh.n_faces, "binary" if binary else "ASCII", len(data))
    return data


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def load_stl_with_info(filepath: str, decimals: Optional[int] = DEFAULT_MERGE_DECIMALS) -> Tuple[Mesh, STLInfo]:
    """Load an STL file and return the mesh and its metadata."""
    with open(filepath, 'rb') as f:
        data = f.read()
    logger.info("Loading STL: %s (%.1f KB)", filepath, len(data) / 1024)
    try:
        mesh, info = read_stl_with_info(data, decimals)
    except MalformedFile as exc:
        raise MalformedFile(f"{filepath}: {exc.message}") from exc
    info.filepath = os.fspath(filepath)
    logger.info("Loaded: %d unique vertices, %d faces", info.n_unique_vertices, info.n_triangles)
    return mesh, info


def load_stl(filepath: str, decimals: Optional[int] = DEFAULT_MERGE_DECIMALS) -> Mesh:
    """Load an STL file (binary or ASCII)."""
    return load_stl_with_info(filepath, decimals)[0]


def save_stl(mesh: Mesh, filepath: str, binary: bool = True) -> None:
    """Write a mesh to an STL file."""
    data = write_stl(mesh, binary=binary, name=os.path.splitext(os.path.basename(os.fspath(filepath)))[0])
    with open(filepath, 'wb') as f:
        f.write(data)
    logger.info("Saved STL: %s (%d faces)", filepath, mesh.n_faces)
