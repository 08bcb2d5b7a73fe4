"""Configuration manager for uimigrate using TOML files."""

from __future__ import annotations

import copy
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from . import config
from .errors import ConfigurationError, ErrorContext

logger = logging.getLogger(__name__)

PIPELINE_MODES = ("discovery-only", "analysis-only", "full-pipeline")


@dataclass
class DiscoveryConfig:
    include: List[str] = field(default_factory=lambda: list(config.INCLUDE_PATTERNS))
    exclude: List[str] = field(default_factory=lambda: list(config.EXCLUDE_PATTERNS))
    skip_dirs: List[str] = field(default_factory=lambda: sorted(config.SKIP_DIRS))
    max_files: int = config.MAX_FILES
    coverage_report: Optional[str] = None


@dataclass
class ParserConfig:
    max_file_size: int = config.MAX_FILE_SIZE


@dataclass
class AnalysisConfig:
    include_transitive: bool = True
    max_depth: int = config.MAX_TRANSITIVE_DEPTH
    detect_cycles: bool = True
    generate_clusters: bool = True
    cluster_threshold: float = config.CLUSTER_THRESHOLD
    together_cohesion: float = config.TOGETHER_COHESION
    staged_cohesion: float = config.STAGED_COHESION
    high_risk_bindings: int = config.HIGH_RISK_BINDINGS


@dataclass
class InventoryConfig:
    readiness_threshold: int = config.READINESS_THRESHOLD
    weights: Dict[str, float] = field(default_factory=lambda: dict(config.READINESS_WEIGHTS))
    effort_cut_points: List[int] = field(default_factory=lambda: list(config.EFFORT_CUT_POINTS))
    risk_cut_points: List[int] = field(default_factory=lambda: list(config.RISK_CUT_POINTS))
    max_components_per_phase: int = config.MAX_COMPONENTS_PER_PHASE
    weeks_per_component: float = config.WEEKS_PER_COMPONENT
    effort_multipliers: Dict[str, int] = field(default_factory=lambda: dict(config.EFFORT_MULTIPLIERS))


@dataclass
class TransformConfig:
    extract_business_logic: bool = True
    compat_layer: bool = False
    parallel: bool = False
    max_concurrency: int = config.MAX_WORKERS
    batch_size: int = config.BATCH_SIZE
    prioritize_by_complexity: bool = True
    group_by_similarity: bool = False
    transform_levels: List[str] = field(default_factory=lambda: ["ready"])


@dataclass
class PipelineConfig:
    mode: str = "full-pipeline"
    parallel: bool = False
    max_workers: int = config.MAX_WORKERS
    batch_size: int = config.BATCH_SIZE
    skip_errors: bool = True
    generate_reports: bool = True
    output_dir: str = "migration-reports"
    transform: bool = False
    dry_run: bool = False
    phase_timeout: Optional[float] = None


@dataclass
class RetryConfig:
    max_attempts: int = config.RETRY_MAX_ATTEMPTS
    base_delay: float = config.RETRY_BASE_DELAY
    max_delay: float = config.RETRY_MAX_DELAY


@dataclass
class MigrationConfig:
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    parser: ParserConfig = field(default_factory=ParserConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    transform: TransformConfig = field(default_factory=TransformConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_SECTIONS = {
    "discovery": DiscoveryConfig,
    "parser": ParserConfig,
    "analysis": AnalysisConfig,
    "inventory": InventoryConfig,
    "transform": TransformConfig,
    "pipeline": PipelineConfig,
    "retry": RetryConfig,
}

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = MigrationConfig().to_dict()


def find_config_file(explicit: Optional[Path] = None, cwd: Optional[Path] = None) -> Optional[Path]:
    """Locate the config file: explicit path, project-local file, then user file."""
    if explicit is not None:
        if not explicit.exists():
            raise ConfigurationError(
                f"Config file not found: {explicit}",
                ErrorContext(operation="load_config", file_path=str(explicit)),
            )
        return explicit
    local = (cwd or Path.cwd()) / config.PROJECT_CONFIG_NAME
    if local.exists():
        return local
    if config.USER_CONFIG_FILE.exists():
        return config.USER_CONFIG_FILE
    return None


def load_full_config(path: Optional[Path]) -> Dict[str, Any]:
    """Load the raw TOML document, or an empty dict when there is no file."""
    if path is None:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        raise ConfigurationError(
            f"Could not read config file {path}: {exc}",
            ErrorContext(operation="load_config", file_path=str(path)),
            cause=exc,
        ) from exc


def merge_config(overrides: Dict[str, Any]) -> MigrationConfig:
    """Merge raw section dicts over :data:`DEFAULT_CONFIG` and validate."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for section, values in overrides.items():
        if section not in _SECTIONS:
            logger.warning("Ignoring unknown config section [%s]", section)
            continue
        if not isinstance(values, dict):
            raise ConfigurationError(f"Config section [{section}] must be a table")
        known = {f.name for f in fields(_SECTIONS[section])}
        for key, value in values.items():
            if key not in known:
                logger.warning("Ignoring unknown config key %s.%s", section, key)
                continue
            if key in ("weights", "effort_multipliers") and isinstance(value, dict):
                merged[section][key].update(value)
            else:
                merged[section][key] = value

    cfg = MigrationConfig(**{name: cls(**merged[name]) for name, cls in _SECTIONS.items()})
    validate_config(cfg)
    return cfg


def load_config(path: Optional[Path] = None, cwd: Optional[Path] = None) -> MigrationConfig:
    """Load configuration from TOML, falling back to defaults.

    Args:
        path: Explicit config file (``--config``); must exist when given.
        cwd: Directory searched for a project-local ``uimigrate.toml``.

    Returns:
        Fully resolved :class:`MigrationConfig`.
    """
    found = find_config_file(path, cwd)
    if found is not None:
        logger.debug("Loading configuration from %s", found)
    return merge_config(load_full_config(found))


def validate_config(cfg: MigrationConfig) -> None:
    """Raise :class:`ConfigurationError` on out-of-range values."""
    weights = cfg.inventory.weights
    missing = set(config.READINESS_WEIGHTS) - set(weights)
    if missing:
        raise ConfigurationError(f"Missing readiness weights: {', '.join(sorted(missing))}")
    unknown = set(weights) - set(config.READINESS_WEIGHTS)
    if unknown:
        raise ConfigurationError(f"Unknown readiness weights: {', '.join(sorted(unknown))}")
    if abs(sum(weights.values()) - 1.0) > 1e-6:
        raise ConfigurationError(
            f"Readiness weights must sum to 1.0 (got {sum(weights.values()):.3f})"
        )
    if not 0 <= cfg.inventory.readiness_threshold <= 100:
        raise ConfigurationError("readiness_threshold must be between 0 and 100")
    for name in ("effort_cut_points", "risk_cut_points"):
        points = getattr(cfg.inventory, name)
        if len(points) != 3 or list(points) != sorted(points):
            raise ConfigurationError(f"{name} must be three ascending integers")
    if cfg.inventory.max_components_per_phase < 1:
        raise ConfigurationError("max_components_per_phase must be at least 1")
    if cfg.pipeline.mode not in PIPELINE_MODES:
        raise ConfigurationError(
            f"Unknown pipeline mode '{cfg.pipeline.mode}' (expected one of {', '.join(PIPELINE_MODES)})"
        )
    if cfg.pipeline.max_workers < 1 or cfg.transform.max_concurrency < 1:
        raise ConfigurationError("Worker counts must be at least 1")
    if cfg.retry.max_attempts < 1:
        raise ConfigurationError("retry.max_attempts must be at least 1")
    if not 0 <= cfg.analysis.cluster_threshold <= 1:
        raise ConfigurationError("cluster_threshold must be between 0 and 1")


def save_config(cfg: MigrationConfig, path: Path) -> None:
    """Write *cfg* as TOML to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {k: {kk: vv for kk, vv in v.items() if vv is not None} for k, v in cfg.to_dict().items()}
    with open(path, "w", encoding="utf-8") as f:
        toml.dump(data, f)
