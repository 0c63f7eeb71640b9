"""
JSON-based project configuration for mesh_analysis.

The engine never reads configuration itself; the CLI and the batch layer
load a ProjectConfig and pass its values down as explicit arguments.

Search order for the configuration file (first found wins):
1. Explicit path given on the command line
2. .meshanalysis.json in the mesh file's directory
3. .meshanalysis.json in the current working directory
4. ~/.meshanalysis.json

Example .meshanalysis.json:
{
    "rasterization": {"resolution": 64, "mode": "solid", "mapping": "fitted"},
    "descriptor": {"max_degree": 16, "source": "mesh"},
    "clustering": {"algorithm": "kmeans", "k": 4, "init": "random_points"},
    "random": {"seed": 42},
    "io": {"stl_binary": true, "ply_format": "binary_little_endian"}
}
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".meshanalysis.json"


@dataclass
class RasterizationConfig:
    """Voxelization settings."""
    resolution: int = 64
    mode: str = "solid"        # "solid" or "surface"
    mapping: str = "fitted"    # "fitted" or "uniform"
    workers: int = 1


@dataclass
class DescriptorConfig:
    """Spherical-harmonic descriptor settings."""
    max_degree: int = 16
    oversampling: int = 2
    n_shells: int = 8
    source: str = "mesh"       # "mesh" (ray casting) or "grid" (voxel shells)


@dataclass
class ClusteringConfig:
    """Clustering settings."""
    algorithm: str = "kmeans"  # "kmeans" or "spectral"
    k: int = 2
    max_iterations: int = 300
    tolerance: float = 1e-8
    init: str = "random_points"
    metric: str = "euclidean"
    sigma: Optional[float] = None
    workers: int = 1


@dataclass
class RandomConfig:
    seed: Optional[int] = 0


@dataclass
class IOConfig:
    """Mesh file settings."""
    stl_binary: bool = True
    ply_format: str = "binary_little_endian"
    merge_decimals: Optional[int] = 6


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json_file: Optional[str] = None


_SECTIONS = {
    'rasterization': RasterizationConfig,
    'descriptor': DescriptorConfig,
    'clustering': ClusteringConfig,
    'random': RandomConfig,
    'io': IOConfig,
    'logging': LoggingConfig,
}


@dataclass
class ProjectConfig:
    """Complete project configuration."""
    rasterization: RasterizationConfig = field(default_factory=RasterizationConfig)
    descriptor: DescriptorConfig = field(default_factory=DescriptorConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    random: RandomConfig = field(default_factory=RandomConfig)
    io: IOConfig = field(default_factory=IOConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.to_json())
        logger.info("Configuration saved to %s", path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectConfig':
        """Build a configuration; unknown sections and keys are ignored,
        keys starting with "_" are comments."""
        config = cls()
        for section_name, section_data in data.items():
            if section_name.startswith('_'):
                continue
            if section_name not in _SECTIONS or not isinstance(section_data, dict):
                logger.warning("Ignoring unknown config section: %s", section_name)
                continue
            section = getattr(config, section_name)
            known = {f.name for f in fields(section)}
            for key, value in section_data.items():
                if key in known:
                    setattr(section, key, value)
                elif not key.startswith('_'):
                    logger.warning("Ignoring unknown config key: %s.%s", section_name, key)
        return config

    @classmethod
    def from_json(cls, json_str: str) -> 'ProjectConfig':
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'ProjectConfig':
        """Load a configuration file.

        Raises:
            FileNotFoundError: file doesn't exist
            json.JSONDecodeError: file is not valid JSON
        """
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        logger.info("Configuration loaded from %s", path)
        return cls.from_dict(data)


def find_config_file(
    mesh_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """First existing configuration file in the search order, or None."""
    if explicit_config:
        explicit = Path(explicit_config)
        if explicit.exists():
            return explicit
        logger.warning("Explicit config not found: %s", explicit)

    candidates = []
    if mesh_path:
        candidates.append(Path(mesh_path).parent / CONFIG_FILENAME)
    candidates.append(Path.cwd() / CONFIG_FILENAME)
    candidates.append(Path.home() / CONFIG_FILENAME)
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def load_config(
    mesh_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> ProjectConfig:
    """Load the configuration found by find_config_file(), defaults otherwise.

    A file that cannot be read or parsed is logged and the defaults are used.
    """
    config_path = find_config_file(mesh_path, explicit_config)
    if config_path:
        try:
            return ProjectConfig.load(config_path)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Failed to load config %s: %s", config_path, e)
    return ProjectConfig()


def merge_configs(base: ProjectConfig, override: ProjectConfig) -> ProjectConfig:
    """Copy of base with every non-default value of override applied."""
    merged = ProjectConfig.from_dict(base.to_dict())
    for name, section_type in _SECTIONS.items():
        defaults = section_type()
        target = getattr(merged, name)
        for key, value in asdict(getattr(override, name)).items():
            if value != getattr(defaults, key):
                setattr(target, key, value)
    return merged


def create_sample_config(path: Union[str, Path] = CONFIG_FILENAME) -> None:
    """Write a commented sample configuration with the default values."""
    sample: Dict[str, Any] = {"_comment": "mesh_analysis configuration", "_version": "1.0"}
    comments = {
        'rasterization': "mode: solid|surface, mapping: fitted|uniform",
        'descriptor': "source: mesh|grid",
        'clustering': "algorithm: kmeans|spectral; init: random_points|random_centers|"
                      "random_partition|orthogonal_centers",
        'random': "seed: integer, or null for OS entropy",
        'io': "ply_format: ascii|binary_little_endian",
        'logging': "level: DEBUG|INFO|WARNING|ERROR",
    }
    defaults = ProjectConfig().to_dict()
    for name, values in defaults.items():
        sample[name] = {"_comment": comments[name], **values}

    path = Path(path)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(sample, f, indent=2, ensure_ascii=False)
    logger.info("Sample configuration created: %s", path)
