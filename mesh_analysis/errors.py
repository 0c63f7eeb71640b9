"""
Structured error kinds raised by the mesh_analysis engine.

Every failure carries an ErrorKind plus a diagnostic message. Messages are
meant for logs and developers; presentation layers map kinds to their own
wording.
"""

from enum import Enum


class ErrorKind(Enum):
    """Categories of engine failures."""
    OUT_OF_RANGE = "out_of_range"
    SHAPE_MISMATCH = "shape_mismatch"
    MALFORMED_FILE = "malformed_file"
    INVALID_GEOMETRY = "invalid_geometry"
    SINGULAR_TRANSFORM = "singular_transform"
    INVALID_INPUT = "invalid_input"
    NUMERICAL_FAILURE = "numerical_failure"
    CANCELLED = "cancelled"


class MeshAnalysisError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}" if self.message else self.kind.value


class OutOfRange(MeshAnalysisError, IndexError):
    """Index outside the bounds of a container or mesh."""
    kind = ErrorKind.OUT_OF_RANGE


class ShapeMismatch(MeshAnalysisError, ValueError):
    """Operands with incompatible shapes."""
    kind = ErrorKind.SHAPE_MISMATCH


class MalformedFile(MeshAnalysisError, ValueError):
    """Mesh stream whose content is inconsistent with its own header."""
    kind = ErrorKind.MALFORMED_FILE


class InvalidGeometry(MeshAnalysisError, ValueError):
    """Degenerate geometry that an algorithm cannot process."""
    kind = ErrorKind.INVALID_GEOMETRY


class SingularTransform(MeshAnalysisError, ArithmeticError):
    """Affine map or linear system that cannot be inverted."""
    kind = ErrorKind.SINGULAR_TRANSFORM


class InvalidInput(MeshAnalysisError, ValueError):
    """Argument values outside the domain of an operation."""
    kind = ErrorKind.INVALID_INPUT


class NumericalFailure(MeshAnalysisError, ArithmeticError):
    """Iterative numerical routine that did not converge."""
    kind = ErrorKind.NUMERICAL_FAILURE


class OperationCancelled(MeshAnalysisError):
    """Long-running operation stopped by its cancellation event."""
    kind = ErrorKind.CANCELLED
