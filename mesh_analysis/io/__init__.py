"""
Mesh serialization boundary: PLY and STL codecs plus validation.

The format of a byte stream is sniffed from its content; file extensions
only choose the output format when saving.
"""

import logging
import os
from enum import Enum
from typing import Optional, Union

from mesh_analysis.errors import InvalidInput, MalformedFile
from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.io.ply_codec import PLYFormat, read_ply, write_ply
from mesh_analysis.io.stl_codec import (
    DEFAULT_MERGE_DECIMALS,
    STLFormat,
    read_stl,
    sniff_stl_format,
    write_stl,
)
from mesh_analysis.io.validator import ValidationReport, validate_mesh

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


class MeshFormat(Enum):
    PLY = "ply"
    STL = "stl"

    @classmethod
    def from_path(cls, path: PathLike) -> 'MeshFormat':
        """Format implied by a file extension.

        Raises:
            InvalidInput: extension is neither .ply nor .stl
        """
        ext = os.path.splitext(os.fspath(path))[1].lower().lstrip('.')
        try:
            return cls(ext)
        except ValueError:
            raise InvalidInput(f"cannot infer mesh format from extension {ext!r} (expected .ply or .stl)") from None


def sniff_mesh_format(data: bytes) -> MeshFormat:
    """Detect PLY or STL from the leading bytes.

    Raises:
        MalformedFile: content matches neither format
    """
    if data.startswith(b'ply'):
        return MeshFormat.PLY
    stl_format, _ = sniff_stl_format(data)
    if stl_format is not STLFormat.UNKNOWN:
        return MeshFormat.STL
    raise MalformedFile("stream is neither PLY nor STL")


def read_mesh(data: bytes, decimals: Optional[int] = DEFAULT_MERGE_DECIMALS) -> Mesh:
    """Decode PLY or STL bytes; decimals controls STL vertex merging."""
    if sniff_mesh_format(data) is MeshFormat.PLY:
        return read_ply(data)
    return read_stl(data, decimals)


def write_mesh(mesh: Mesh, fmt: MeshFormat, binary: bool = True,
               ply_format: Optional[PLYFormat] = None) -> bytes:
    """Encode a mesh; ply_format overrides the binary flag for PLY output."""
    if fmt is MeshFormat.STL:
        return write_stl(mesh, binary=binary)
    if ply_format is None:
        ply_format = PLYFormat.BINARY_LITTLE_ENDIAN if binary else PLYFormat.ASCII
    return write_ply(mesh, ply_format)


def load_mesh(path: PathLike, decimals: Optional[int] = DEFAULT_MERGE_DECIMALS) -> Mesh:
    """Read a PLY or STL file, sniffing the format from its content."""
    with open(path, 'rb') as f:
        data = f.read()
    logger.info("Loading mesh: %s (%.1f KB)", path, len(data) / 1024)
    try:
        mesh = read_mesh(data, decimals)
    except MalformedFile as exc:
        raise MalformedFile(f"{os.fspath(path)}: {exc.message}") from exc
    logger.info("Loaded: %d vertices, %d faces", mesh.n_vertices, mesh.n_faces)
    return mesh


def save_mesh(mesh: Mesh, path: PathLike, fmt: Optional[MeshFormat] = None, binary: bool = True,
              ply_format: Optional[PLYFormat] = None) -> None:
    """Write a mesh; the format comes from fmt or else the file extension."""
    fmt = fmt or MeshFormat.from_path(path)
    data = write_mesh(mesh, fmt, binary=binary, ply_format=ply_format)
    with open(path, 'wb') as f:
        f.write(data)
    logger.info("Saved %s: %s (%d faces)", fmt.value.upper(), path, mesh.n_faces)


__all__ = [
    "MeshFormat",
    "PLYFormat",
    "STLFormat",
    "ValidationReport",
    "load_mesh",
    "read_mesh",
    "save_mesh",
    "sniff_mesh_format",
    "validate_mesh",
    "write_mesh",
]
