"""
Mesh validation module.

Performs integrity checks on a Mesh:
- Manifold validation (each edge shared by at most 2 faces)
- Degenerate triangle detection (zero area, repeated vertex indices)
- Orientation consistency across shared edges
- Boundary edge detection (open mesh)

Detection only: the mesh is never modified.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

import numpy as np

from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.numerics.constants import DEGENERATE_AREA_TOLERANCE

logger = logging.getLogger(__name__)


class ValidationSeverity(Enum):
    """Severity level of validation issues."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ValidationIssue:
    """A single validation issue found in the mesh."""
    code: str
    severity: ValidationSeverity
    message: str
    count: int = 1
    details: List[int] = field(default_factory=list)  # face indices

    def __str__(self) -> str:
        if self.count > 1:
            return f"[{self.severity.value.upper()}] {self.code}: {self.message} ({self.count} occurrences)"
        return f"[{self.severity.value.upper()}] {self.code}: {self.message}"


@dataclass
class ValidationReport:
    """Complete validation report for a mesh."""
    is_valid: bool
    is_manifold: bool
    is_closed: bool
    is_consistently_oriented: bool
    has_degenerate_faces: bool

    n_vertices: int
    n_faces: int
    n_boundary_edges: int
    n_degenerate_faces: int
    n_repeated_index_faces: int
    n_non_manifold_edges: int
    n_inconsistent_edges: int

    degenerate_faces: List[int] = field(default_factory=list)
    non_manifold_edges: List[Tuple[int, int]] = field(default_factory=list)
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "Mesh Validation Report",
            "=" * 40,
            f"Vertices: {self.n_vertices}",
            f"Faces: {self.n_faces}",
            "",
            f"Manifold: {'Yes' if self.is_manifold else 'No'}",
            f"Closed: {'Yes' if self.is_closed else 'No'}",
            f"Consistent orientation: {'Yes' if self.is_consistently_oriented else 'No'}",
            f"Degenerate faces: {self.n_degenerate_faces}",
            f"Non-manifold edges: {self.n_non_manifold_edges}",
            f"Boundary edges: {self.n_boundary_edges}",
        ]
        if self.issues:
            lines.append("")
            lines.append("Issues:")
            for issue in self.issues:
                lines.append(f"  - {issue}")
        lines.append("")
        lines.append(f"Overall: {'VALID' if self.is_valid else 'INVALID'}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            'is_valid': self.is_valid,
            'is_manifold': self.is_manifold,
            'is_closed': self.is_closed,
            'is_consistently_oriented': self.is_consistently_oriented,
            'n_degenerate_faces': self.n_degenerate_faces,
            'n_non_manifold_edges': self.n_non_manifold_edges,
            'n_boundary_edges': self.n_boundary_edges,
            'issues': [str(i) for i in self.issues],
        }


def _build_edge_map(faces: np.ndarray) -> Dict[Tuple[int, int], List[Tuple[int, bool]]]:
    """Build edge-to-faces map.

    Returns:
        Dict mapping the sorted vertex pair to (face index, traversed forward)
        entries; forward means the face walks the edge from lower to higher index
    """
    edge_to_faces: Dict[Tuple[int, int], List[Tuple[int, bool]]] = defaultdict(list)
    for fi, face in enumerate(faces):
        for i in range(3):
            v1, v2 = int(face[i]), int(face[(i + 1) % 3])
            if v1 == v2:
                continue
            edge_to_faces[(min(v1, v2), max(v1, v2))].append((fi, v1 < v2))
    return edge_to_faces


def validate_mesh(mesh: Mesh, degenerate_area_threshold: float = DEGENERATE_AREA_TOLERANCE) -> ValidationReport:
    """Validate mesh integrity.

    Checks performed:
    1. Manifold: no edge shared by more than 2 faces
    2. Closed: no boundary edges (edges with only 1 face)
    3. Degenerate faces: zero area or fewer than 3 distinct vertices
    4. Orientation: faces sharing an edge traverse it in opposite directions

    Args:
        mesh: Mesh to inspect (not modified)
        degenerate_area_threshold: Minimum area to consider non-degenerate

    Returns:
        ValidationReport with all findings
    """
    faces = mesh.faces
    issues: List[ValidationIssue] = []

    logger.debug("Validating mesh: %d vertices, %d faces", mesh.n_vertices, mesh.n_faces)

    edge_to_faces = _build_edge_map(faces)
    boundary_edges = [e for e, fl in edge_to_faces.items() if len(fl) == 1]
    non_manifold_edges = [e for e, fl in edge_to_faces.items() if len(fl) > 2]
    inconsistent_edges = [e for e, fl in edge_to_faces.items() if len(fl) == 2 and fl[0][1] == fl[1][1]]

    if boundary_edges:
        issues.append(ValidationIssue(
            code="BOUNDARY_EDGES",
            severity=ValidationSeverity.WARNING,
            message=f"Mesh has {len(boundary_edges)} boundary edges (not closed)",
            count=len(boundary_edges),
        ))
        logger.warning("Mesh has %d boundary edges", len(boundary_edges))

    if non_manifold_edges:
        issues.append(ValidationIssue(
            code="NON_MANIFOLD_EDGES",
            severity=ValidationSeverity.ERROR,
            message=f"Mesh has {len(non_manifold_edges)} non-manifold edges (>2 faces)",
            count=len(non_manifold_edges),
        ))
        logger.warning("Mesh has %d non-manifold edges", len(non_manifold_edges))

    repeated = (faces[:, 0] == faces[:, 1]) | (faces[:, 1] == faces[:, 2]) | (faces[:, 0] == faces[:, 2])
    n_repeated = int(repeated.sum())
    if n_repeated:
        issues.append(ValidationIssue(
            code="REPEATED_VERTEX_INDICES",
            severity=ValidationSeverity.ERROR,
            message=f"Mesh has {n_repeated} faces referencing fewer than 3 distinct vertices",
            count=n_repeated,
            details=np.where(repeated)[0][:10].tolist(),
        ))
        logger.warning("Mesh has %d faces with repeated vertex indices", n_repeated)

    degenerate_mask = mesh.face_areas() < degenerate_area_threshold
    degenerate_faces = np.where(degenerate_mask)[0].tolist()
    if degenerate_faces:
        issues.append(ValidationIssue(
            code="DEGENERATE_FACES",
            severity=ValidationSeverity.WARNING,
            message=f"Mesh has {len(degenerate_faces)} degenerate faces (zero area)",
            count=len(degenerate_faces),
            details=degenerate_faces[:10],
        ))
        logger.warning("Mesh has %d degenerate faces", len(degenerate_faces))

    if inconsistent_edges:
        issues.append(ValidationIssue(
            code="INCONSISTENT_ORIENTATION",
            severity=ValidationSeverity.WARNING,
            message=f"{len(inconsistent_edges)} edges are traversed in the same direction by both faces",
            count=len(inconsistent_edges),
        ))
        logger.warning("Mesh has %d inconsistently oriented edges", len(inconsistent_edges))

    is_valid = not any(i.severity == ValidationSeverity.ERROR for i in issues)

    report = ValidationReport(
        is_valid=is_valid,
        is_manifold=not non_manifold_edges,
        is_closed=not boundary_edges and mesh.n_faces > 0,
        is_consistently_oriented=not inconsistent_edges,
        has_degenerate_faces=bool(degenerate_faces),
        n_vertices=mesh.n_vertices,
        n_faces=mesh.n_faces,
        n_boundary_edges=len(boundary_edges),
        n_degenerate_faces=len(degenerate_faces),
        n_repeated_index_faces=n_repeated,
        n_non_manifold_edges=len(non_manifold_edges),
        n_inconsistent_edges=len(inconsistent_edges),
        degenerate_faces=degenerate_faces,
        non_manifold_edges=non_manifold_edges,
        issues=issues,
    )

    logger.info("Validation complete: %s", "VALID" if is_valid else "INVALID")
    return report


def validate_mesh_file(filepath: str,
                       degenerate_area_threshold: float = DEGENERATE_AREA_TOLERANCE) -> ValidationReport:
    """Load a PLY or STL file and validate it."""
    from mesh_analysis.io import load_mesh

    return validate_mesh(load_mesh(filepath), degenerate_area_threshold)
