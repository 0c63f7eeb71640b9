"""
Batch descriptor computation and shape clustering.

Provides:
- Folder-based batch processing (mesh files -> descriptor JSON)
- Progress tracking and reporting
- Parallel processing support
- Clustering of a collection by descriptor similarity

Usage:
    from mesh_analysis.batch import batch_describe, cluster_descriptors

    results = batch_describe("./models", output_dir="./descriptors", parallel=True)
    print(results.summary())
    groups = cluster_descriptors(results, k=3, rng=RandomSource(0))
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import numpy as np

from mesh_analysis import engine
from mesh_analysis.clustering.kmeans import KMeansInit
from mesh_analysis.descriptors.harmonic_descriptor import ShapeDescriptor
from mesh_analysis.errors import InvalidInput, MeshAnalysisError
from mesh_analysis.project_config import ProjectConfig, load_config
from mesh_analysis.rasterization.grid import GridMapping
from mesh_analysis.rasterization.voxelizer import VoxelMode
from mesh_analysis.rng import RandomSource
from mesh_analysis.statistics.distance_metrics import DistanceMetric

logger = logging.getLogger(__name__)

MESH_PATTERNS = ("*.stl", "*.ply")


@dataclass
class DescriptorResult:
    """Result of describing a single mesh file."""
    input_path: Path
    output_path: Optional[Path] = None
    descriptor: Optional[ShapeDescriptor] = None
    success: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def status(self) -> str:
        return "OK" if self.success else "FAILED"


@dataclass
class BatchResult:
    """Result of a batch run."""
    results: List[DescriptorResult] = field(default_factory=list)
    total_duration_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def success_rate(self) -> float:
        """Success rate as percentage."""
        if self.total == 0:
            return 0.0
        return 100.0 * self.successful / self.total

    def descriptors(self) -> Dict[Path, ShapeDescriptor]:
        """Descriptors of the successful files, keyed by input path."""
        return {r.input_path: r.descriptor for r in self.results if r.success and r.descriptor is not None}

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "Batch Descriptor Summary",
            "=" * 40,
            f"Total files:     {self.total}",
            f"Successful:      {self.successful}",
            f"Failed:          {self.failed}",
            f"Success rate:    {self.success_rate:.1f}%",
            f"Total time:      {self.total_duration_seconds:.1f}s",
            "",
        ]
        if self.failed > 0:
            lines.append("Failed files:")
            for r in self.results:
                if not r.success:
                    lines.append(f"  - {r.input_path.name}: {r.error}")
        return "\n".join(lines)

    def to_dict(self) -> Dict:
        return {
            'total': self.total,
            'successful': self.successful,
            'failed': self.failed,
            'success_rate': self.success_rate,
            'total_duration_seconds': self.total_duration_seconds,
            'results': [
                {
                    'input': str(r.input_path),
                    'output': str(r.output_path) if r.output_path else None,
                    'success': r.success,
                    'error': r.error,
                    'duration': r.duration_seconds,
                }
                for r in self.results
            ],
        }


def find_mesh_files(
    input_dir: Union[str, Path],
    patterns=MESH_PATTERNS,
    recursive: bool = False,
) -> List[Path]:
    """Find mesh files in a directory.

    Extensions are matched case-insensitively.

    Raises:
        FileNotFoundError: input_dir does not exist
        NotADirectoryError: input_dir is a file
    """
    input_dir = Path(input_dir)
    if not input_dir.exists():
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    if not input_dir.is_dir():
        raise NotADirectoryError(f"Not a directory: {input_dir}")

    if isinstance(patterns, str):
        patterns = (patterns,)
    search = input_dir.rglob if recursive else input_dir.glob
    files = set()
    for pattern in patterns:
        files.update(search(pattern))
        files.update(search(pattern.upper()))

    files = sorted(files)
    logger.info("Found %d mesh files in %s", len(files), input_dir)
    return files


def describe_single_file(
    input_path: Path,
    output_dir: Optional[Path] = None,
    config: Optional[ProjectConfig] = None,
) -> DescriptorResult:
    """Load one mesh and compute its descriptor; failures are recorded, not raised.

    When output_dir is given the descriptor is written there as <stem>.json.
    """
    config = config or ProjectConfig()
    start_time = time.perf_counter()
    result = DescriptorResult(input_path=input_path)

    try:
        mesh = engine.load_mesh(input_path, config.io.merge_decimals)
        settings = config.descriptor
        if settings.source == "grid":
            raster = config.rasterization
            source = engine.rasterize(mesh, raster.resolution, VoxelMode(raster.mode),
                                      GridMapping(raster.mapping), raster.workers)
        else:
            source = mesh
        descriptor = engine.compute_descriptor(source, settings.max_degree, settings.oversampling,
                                               settings.n_shells)
        descriptor.metadata['file'] = str(input_path)

        if output_dir is not None:
            output_path = output_dir / f"{input_path.stem}.json"
            with open(output_path, 'w', encoding='utf-8') as f:
                json.dump(descriptor.to_dict(), f, indent=2)
            result.output_path = output_path

        result.descriptor = descriptor
        result.success = True

    except (MeshAnalysisError, OSError, ValueError) as e:
        result.error = str(e)
        logger.error("Failed to describe %s: %s", input_path.name, e)

    result.duration_seconds = time.perf_counter() - start_time
    return result


def batch_describe(
    input_dir: Union[str, Path],
    output_dir: Optional[Union[str, Path]] = None,
    patterns=MESH_PATTERNS,
    recursive: bool = False,
    config: Optional[ProjectConfig] = None,
    config_path: Optional[Union[str, Path]] = None,
    parallel: bool = False,
    max_workers: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int, DescriptorResult], None]] = None,
) -> BatchResult:
    """Compute descriptors for every mesh file in a directory.

    Args:
        input_dir: Directory containing mesh files
        output_dir: Where to write <stem>.json descriptors (None: don't write)
        patterns: Glob pattern(s) for mesh files
        recursive: Search subdirectories
        config: Project configuration
        config_path: Path to a .meshanalysis.json file
        parallel: Use a thread pool
        max_workers: Maximum parallel workers (None = executor default)
        progress_callback: Called after each file: (current, total, result)

    Returns:
        BatchResult with per-file outcomes
    """
    start_time = time.perf_counter()
    input_dir = Path(input_dir)
    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    if config is None:
        config = load_config(mesh_path=input_dir / "placeholder.stl", explicit_config=config_path)

    mesh_files = find_mesh_files(input_dir, patterns, recursive)
    if not mesh_files:
        logger.warning("No mesh files found in %s", input_dir)
        return BatchResult(total_duration_seconds=time.perf_counter() - start_time)

    logger.info("Starting batch: %d files, parallel=%s", len(mesh_files), parallel)
    results: List[DescriptorResult] = []

    def record(i: int, result: DescriptorResult) -> None:
        results.append(result)
        if progress_callback:
            progress_callback(i, len(mesh_files), result)
        logger.info("[%d/%d] %s: %s (%.1fs)", i, len(mesh_files), result.input_path.name,
                    result.status, result.duration_seconds)

    if parallel:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(describe_single_file, f, output_dir, config) for f in mesh_files]
            for i, future in enumerate(as_completed(futures), 1):
                record(i, future.result())
        results.sort(key=lambda r: r.input_path)
    else:
        for i, mesh_file in enumerate(mesh_files, 1):
            record(i, describe_single_file(mesh_file, output_dir, config))

    batch_result = BatchResult(results=results, total_duration_seconds=time.perf_counter() - start_time)
    logger.info("Batch complete: %d/%d successful (%.1f%%) in %.1fs",
                batch_result.successful, batch_result.total,
                batch_result.success_rate, batch_result.total_duration_seconds)
    return batch_result


def cluster_descriptors(
    batch: BatchResult,
    k: int,
    rng: RandomSource,
    algorithm: engine.ClusterAlgorithm = engine.ClusterAlgorithm.KMEANS,
    params: Optional[engine.ClusterParameters] = None,
) -> Dict[Path, int]:
    """Group the successfully described files by descriptor feature vector.

    Raises:
        InvalidInput: fewer described files than clusters, or descriptors
            with different degrees or shell counts
    """
    described = batch.descriptors()
    if len(described) < k:
        raise InvalidInput(f"need at least {k} described files, got {len(described)}")
    paths = sorted(described)
    vectors = [described[p].feature_vector() for p in paths]
    if len({v.shape for v in vectors}) != 1:
        raise InvalidInput("descriptors have different degrees or shell counts")
    if params is None:
        params = engine.ClusterParameters(init=KMeansInit.RANDOM_POINTS, metric=DistanceMetric.EUCLIDEAN)

    assignment = engine.cluster(k, points=np.stack(vectors), algorithm=algorithm, params=params, rng=rng)
    return {p: int(label) for p, label in zip(paths, assignment.labels)}
