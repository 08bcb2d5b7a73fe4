"""Configuration paths and tunable constants for uimigrate."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Set, Tuple

BASE_DIR = Path(os.environ.get("UIMIGRATE_HOME", str(Path.home() / ".uimigrate"))).expanduser()
USER_CONFIG_FILE = BASE_DIR / "config.toml"
PROJECT_CONFIG_NAME = "uimigrate.toml"
MANIFEST_NAME = "migration-manifest.json"
MANIFEST_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------
INCLUDE_PATTERNS: List[str] = ["*.tsx", "*.ts", "*.jsx", "*.js"]
EXCLUDE_PATTERNS: List[str] = ["*.test.*", "*.spec.*", "*.stories.*", "*.d.ts"]
SKIP_DIRS: Set[str] = {
    "node_modules", "dist", "build", ".git", "coverage",
    ".next", ".turbo", ".cache", "out",
}
MAX_FILES = 10_000
MAX_FILE_SIZE = 1024 * 1024

# ---------------------------------------------------------------------------
# Readiness scoring
# ---------------------------------------------------------------------------
READINESS_WEIGHTS: Dict[str, float] = {
    "code_quality": 0.20,
    "documentation": 0.10,
    "test_coverage": 0.15,
    "dependency_complexity": 0.20,
    "props_clarity": 0.10,
    "logic_separation": 0.10,
    "pattern_compliance": 0.10,
    "migration_compatibility": 0.05,
}
READINESS_THRESHOLD = 75
NEEDS_WORK_THRESHOLD = 60
COMPLEX_THRESHOLD = 40

# Upper bounds (inclusive) of each tier; anything above the last is the top tier.
EFFORT_CUT_POINTS: Tuple[int, int, int] = (2, 4, 6)
RISK_CUT_POINTS: Tuple[int, int, int] = (2, 4, 6)
EFFORT_MULTIPLIERS: Dict[str, int] = {"low": 1, "medium": 2, "high": 4, "very-high": 8}

MAX_COMPONENTS_PER_PHASE = 10
WEEKS_PER_COMPONENT = 0.5

# ---------------------------------------------------------------------------
# Dependency analysis
# ---------------------------------------------------------------------------
MAX_TRANSITIVE_DEPTH = 5
CLUSTER_THRESHOLD = 0.3
TOGETHER_COHESION = 0.7
STAGED_COHESION = 0.4
HIGH_RISK_BINDINGS = 5

# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
PHASE_WEIGHTS: Dict[str, int] = {
    "initialization": 5,
    "discovery": 20,
    "parsing": 30,
    "dependency-analysis": 25,
    "inventory-generation": 15,
    "output-generation": 5,
    "cleanup": 0,
    "completed": 0,
    "failed": 0,
}
MAX_WORKERS = 4
BATCH_SIZE = 8
ERROR_HISTORY_SIZE = 100

RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 10.0

