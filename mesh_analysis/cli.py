"""
Command-line interface.

Usage:
    mesh-analysis info part.stl
    mesh-analysis convert part.stl part.ply --ply-format ascii
    mesh-analysis voxelize part.stl --resolution 64 --mode surface
    mesh-analysis describe part.stl --max-degree 16 --output part.json
    mesh-analysis compare a.stl b.ply
    mesh-analysis cluster part.ply -k 4 --algorithm spectral --seed 1
    mesh-analysis batch ./models --output ./descriptors --clusters 3
    mesh-analysis init-config

Exit codes: 0 on success, 1 for engine, file or configuration errors,
2 for anything unexpected.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from mesh_analysis import __version__, engine
from mesh_analysis.batch import batch_describe, cluster_descriptors
from mesh_analysis.clustering.kmeans import KMeansInit
from mesh_analysis.clustering.spectral import mesh_affinity
from mesh_analysis.descriptors.harmonic_descriptor import compare_descriptors
from mesh_analysis.errors import MeshAnalysisError
from mesh_analysis.geometry.mesh_stats import calculate_mesh_statistics
from mesh_analysis.io import MeshFormat
from mesh_analysis.io.ply_codec import PLYFormat
from mesh_analysis.io.validator import validate_mesh
from mesh_analysis.logging_config import LogContext, setup_logging
from mesh_analysis.project_config import CONFIG_FILENAME, ProjectConfig, create_sample_config, load_config
from mesh_analysis.rasterization.grid import GridMapping
from mesh_analysis.rasterization.voxelizer import VoxelMode
from mesh_analysis.rng import RandomSource
from mesh_analysis.statistics.distance_metrics import DistanceMetric

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _override(section, **values) -> None:
    """Apply command-line values that were actually given."""
    for key, value in values.items():
        if value is not None:
            setattr(section, key, value)


def _write_json(data: dict, output: Optional[str]) -> None:
    text = json.dumps(data, indent=2)
    if output:
        Path(output).write_text(text, encoding='utf-8')
        logger.info("Wrote %s", output)
    else:
        print(text)


def _descriptor_source(mesh, config: ProjectConfig):
    if config.descriptor.source == "grid":
        raster = config.rasterization
        return engine.rasterize(mesh, raster.resolution, VoxelMode(raster.mode),
                                GridMapping(raster.mapping), raster.workers)
    return mesh


def _describe(path: str, config: ProjectConfig):
    mesh = engine.load_mesh(path, config.io.merge_decimals)
    settings = config.descriptor
    return engine.compute_descriptor(_descriptor_source(mesh, config), settings.max_degree,
                                     settings.oversampling, settings.n_shells)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _cmd_info(args: argparse.Namespace, config: ProjectConfig) -> int:
    mesh = engine.load_mesh(args.mesh, config.io.merge_decimals)
    stats = calculate_mesh_statistics(mesh)
    report = validate_mesh(mesh)
    if args.json:
        _write_json({'statistics': stats.to_dict(), 'validation': report.to_dict()}, None)
    else:
        print(stats.summary())
        print()
        print(report.summary())
    return 0


def _cmd_convert(args: argparse.Namespace, config: ProjectConfig) -> int:
    mesh = engine.load_mesh(args.mesh, config.io.merge_decimals)
    fmt = MeshFormat(args.format) if args.format else None
    binary = config.io.stl_binary if not args.ascii else False
    ply_format = PLYFormat(args.ply_format or config.io.ply_format)
    engine.save_mesh(mesh, args.output, fmt=fmt, binary=binary, ply_format=ply_format)
    logger.info("Converted %s -> %s (%d vertices, %d faces)", args.mesh, args.output,
                mesh.n_vertices, mesh.n_faces)
    return 0


def _cmd_voxelize(args: argparse.Namespace, config: ProjectConfig) -> int:
    raster = config.rasterization
    _override(raster, resolution=args.resolution, mode=args.mode, mapping=args.mapping, workers=args.workers)
    mesh = engine.load_mesh(args.mesh, config.io.merge_decimals)
    grid = engine.rasterize(mesh, raster.resolution, VoxelMode(raster.mode),
                            GridMapping(raster.mapping), raster.workers)
    if args.output:
        data = grid.to_dict()
        data['occupied'] = grid.occupied_indices().tolist()
        _write_json(data, args.output)
    print(grid.summary())
    return 0


def _cmd_describe(args: argparse.Namespace, config: ProjectConfig) -> int:
    _override(config.descriptor, max_degree=args.max_degree, source=args.source, n_shells=args.shells)
    descriptor = _describe(args.mesh, config)
    _write_json(descriptor.to_dict(), args.output)
    return 0


def _cmd_compare(args: argparse.Namespace, config: ProjectConfig) -> int:
    _override(config.descriptor, max_degree=args.max_degree, source=args.source)
    first = _describe(args.first, config)
    second = _describe(args.second, config)
    distance = compare_descriptors(first, second, DistanceMetric.parse(args.metric))
    print(f"{distance:.6g}")
    return 0


def _cmd_cluster(args: argparse.Namespace, config: ProjectConfig) -> int:
    settings = config.clustering
    _override(settings, k=args.k, algorithm=args.algorithm, init=args.init, workers=args.workers)
    _override(config.random, seed=args.seed)
    mesh = engine.load_mesh(args.mesh, config.io.merge_decimals)
    params = engine.ClusterParameters(
        max_iterations=settings.max_iterations,
        tolerance=settings.tolerance,
        init=KMeansInit(settings.init),
        metric=DistanceMetric.parse(settings.metric),
        sigma=settings.sigma,
        workers=settings.workers,
    )
    algorithm = engine.ClusterAlgorithm(settings.algorithm)
    rng = RandomSource(config.random.seed)
    if algorithm is engine.ClusterAlgorithm.SPECTRAL:
        assignment = engine.cluster(settings.k, affinity=mesh_affinity(mesh, settings.sigma),
                                    algorithm=algorithm, params=params, rng=rng)
    else:
        assignment = engine.cluster(settings.k, points=mesh.vertices, algorithm=algorithm,
                                    params=params, rng=rng)
    data = assignment.to_dict()
    data['labels'] = assignment.labels.tolist()
    _write_json(data, args.output)
    return 0


def _cmd_batch(args: argparse.Namespace, config: ProjectConfig) -> int:
    _override(config.descriptor, max_degree=args.max_degree, source=args.source)
    result = batch_describe(
        input_dir=args.input_dir,
        output_dir=args.output,
        recursive=args.recursive,
        config=config,
        parallel=args.parallel,
        max_workers=args.jobs,
    )
    print("\n" + result.summary())
    if args.clusters:
        groups = cluster_descriptors(result, args.clusters, RandomSource(config.random.seed),
                                     engine.ClusterAlgorithm(config.clustering.algorithm))
        print("\nClusters:")
        for path, label in groups.items():
            print(f"  {label}: {path.name}")
    return 0 if result.failed == 0 else 1


def _cmd_init_config(args: argparse.Namespace, config: ProjectConfig) -> int:
    create_sample_config(args.path)
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mesh-analysis",
        description="Mesh I/O, voxelization, shape descriptors and clustering.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", default=None, help=f"Path to a {CONFIG_FILENAME} file.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")
    parser.add_argument("--log-json", default=None, dest="log_json", help="Also write JSON log lines here.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("info", help="Mesh statistics and validation report.")
    p.add_argument("mesh")
    p.add_argument("--json", action="store_true", help="Print JSON instead of text.")
    p.set_defaults(handler=_cmd_info)

    p = sub.add_parser("convert", help="Convert between PLY and STL.")
    p.add_argument("mesh")
    p.add_argument("output")
    p.add_argument("--format", choices=[f.value for f in MeshFormat], default=None,
                   help="Output format (default: from the output extension).")
    p.add_argument("--ascii", action="store_true", help="Write ASCII STL.")
    p.add_argument("--ply-format", choices=[f.value for f in PLYFormat.writable_formats()], default=None,
                   dest="ply_format")
    p.set_defaults(handler=_cmd_convert)

    p = sub.add_parser("voxelize", help="Rasterize a mesh into a voxel grid.")
    p.add_argument("mesh")
    p.add_argument("--resolution", "-r", type=int, default=None)
    p.add_argument("--mode", choices=[m.value for m in VoxelMode], default=None)
    p.add_argument("--mapping", choices=[m.value for m in GridMapping], default=None)
    p.add_argument("--workers", "-j", type=int, default=None)
    p.add_argument("--output", "-o", default=None, help="Write the grid as JSON.")
    p.set_defaults(handler=_cmd_voxelize)

    p = sub.add_parser("describe", help="Spherical-harmonic shape descriptor.")
    p.add_argument("mesh")
    p.add_argument("--max-degree", "-l", type=int, default=None, dest="max_degree")
    p.add_argument("--source", choices=["mesh", "grid"], default=None)
    p.add_argument("--shells", type=int, default=None)
    p.add_argument("--output", "-o", default=None)
    p.set_defaults(handler=_cmd_describe)

    p = sub.add_parser("compare", help="Descriptor distance between two meshes.")
    p.add_argument("first")
    p.add_argument("second")
    p.add_argument("--metric", default="euclidean")
    p.add_argument("--max-degree", "-l", type=int, default=None, dest="max_degree")
    p.add_argument("--source", choices=["mesh", "grid"], default=None)
    p.set_defaults(handler=_cmd_compare)

    p = sub.add_parser("cluster", help="Cluster mesh vertices.")
    p.add_argument("mesh")
    p.add_argument("-k", type=int, default=None)
    p.add_argument("--algorithm", choices=[a.value for a in engine.ClusterAlgorithm], default=None)
    p.add_argument("--init", choices=[i.value for i in KMeansInit if i is not KMeansInit.FIXED], default=None)
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--workers", "-j", type=int, default=None)
    p.add_argument("--output", "-o", default=None)
    p.set_defaults(handler=_cmd_cluster)

    p = sub.add_parser("batch", help="Describe every mesh in a directory.")
    p.add_argument("input_dir")
    p.add_argument("--output", "-o", default=None, help="Directory for descriptor JSON files.")
    p.add_argument("--recursive", "-r", action="store_true")
    p.add_argument("--parallel", action="store_true")
    p.add_argument("--jobs", "-j", type=int, default=None)
    p.add_argument("--max-degree", "-l", type=int, default=None, dest="max_degree")
    p.add_argument("--source", choices=["mesh", "grid"], default=None)
    p.add_argument("--clusters", type=int, default=None, help="Group the files into this many clusters.")
    p.set_defaults(handler=_cmd_batch)

    p = sub.add_parser("init-config", help="Write a sample configuration file.")
    p.add_argument("path", nargs="?", default=CONFIG_FILENAME)
    p.set_defaults(handler=_cmd_init_config)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    mesh_path = getattr(args, "mesh", None) or getattr(args, "first", None)
    config = load_config(mesh_path=mesh_path, explicit_config=args.config)

    level_name = "DEBUG" if args.verbose else config.logging.level
    setup_logging(level=getattr(logging, str(level_name).upper(), logging.INFO),
                  json_file=args.log_json or config.logging.json_file)

    try:
        with LogContext(command=args.command):
            return args.handler(args, config)
    except MeshAnalysisError as exc:
        logger.critical("%s", exc)
        return 1
    except (OSError, ValueError) as exc:
        logger.critical("Input or configuration error: %s", exc)
        return 1
    except Exception as exc:
        logger.critical("Unexpected error: %s", exc, exc_info=True)
        return 2


if __name__ == "__main__":
    sys.exit(main())
