"""
mesh_analysis: mesh I/O, voxelization, shape descriptors and clustering.

The engine API lives in mesh_analysis.engine; the CLI in mesh_analysis.cli.
"""

__version__ = "0.1.0"

from mesh_analysis.logging_config import (
    setup_logging,
    get_logger,
    configure_default_logging,
    log_timing,
    timed,
    LogContext,
)

__all__ = [
    "__version__",
    "setup_logging",
    "get_logger",
    "configure_default_logging",
    "log_timing",
    "timed",
    "LogContext",
]
