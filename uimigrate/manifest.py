"""Migration manifest: which units were migrated, which failed, and with what settings."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import MANIFEST_NAME, MANIFEST_VERSION
from .errors import ErrorContext, FileSystemError

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class FailedUnit:
    component: str
    error: str
    timestamp: str = field(default_factory=_now)


@dataclass
class Manifest:
    successful: List[str] = field(default_factory=list)
    failed: List[FailedUnit] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)
    start_time: str = field(default_factory=_now)
    end_time: Optional[str] = None
    duration: Optional[float] = None
    version: str = MANIFEST_VERSION

    def add_success(self, name: str) -> None:
        if name not in self.successful:
            self.successful.append(name)
        self.failed = [f for f in self.failed if f.component != name]

    def add_failure(self, name: str, error: str) -> None:
        self.failed = [f for f in self.failed if f.component != name]
        self.failed.append(FailedUnit(name, error))
        if name in self.successful:
            self.successful.remove(name)

    def finish(self) -> None:
        ended = datetime.now(timezone.utc)
        self.end_time = ended.isoformat()
        started = datetime.fromisoformat(self.start_time)
        self.duration = round((ended - started).total_seconds(), 3)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        return cls(
            successful=list(data.get("successful", [])),
            failed=[FailedUnit(**entry) for entry in data.get("failed", [])],
            config=dict(data.get("config", {})),
            start_time=data.get("start_time") or _now(),
            end_time=data.get("end_time"),
            duration=data.get("duration"),
            version=data.get("version", MANIFEST_VERSION),
        )


class ManifestManager:
    """Loads, saves and acts on ``{output}/migration-manifest.json``."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)
        self.path = self.output_dir / MANIFEST_NAME

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Manifest]:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise FileSystemError(
                f"Cannot read manifest {self.path}: {exc}",
                ErrorContext(operation="load_manifest", file_path=str(self.path)),
                cause=exc,
            ) from exc
        return Manifest.from_dict(payload)

    def load_or_create(self, config: Optional[Dict[str, Any]] = None) -> Manifest:
        manifest = self.load()
        if manifest is None:
            manifest = Manifest(config=dict(config or {}))
        elif config:
            manifest.config = dict(config)
        return manifest

    def save(self, manifest: Manifest) -> Path:
        """Write the manifest atomically (temp file in the same directory, then replace)."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".manifest-", suffix=".json", dir=str(self.output_dir))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(asdict(manifest), f, indent=2)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        logger.debug("Saved manifest with %d successful units", len(manifest.successful))
        return self.path

    # ------------------------------------------------------------------
    # Recovery operations
    # ------------------------------------------------------------------

    def rollback(self) -> List[str]:
        """Delete every successful unit's output directory and the manifest."""
        manifest = self.load()
        if manifest is None:
            return []
        removed = []
        for name in manifest.successful:
            target = self.output_dir / name
            if target.is_dir():
                shutil.rmtree(target)
                removed.append(name)
        self.path.unlink()
        logger.info("Rolled back %d migrated components", len(removed))
        return removed

    def cleanup(self) -> List[str]:
        """Remove output directories that are not successful manifest entries."""
        if not self.output_dir.is_dir():
            return []
        manifest = self.load()
        keep = set(manifest.successful) if manifest is not None else set()
        removed = []
        for entry in sorted(self.output_dir.iterdir()):
            if entry.is_dir() and entry.name not in keep:
                shutil.rmtree(entry)
                removed.append(entry.name)
        logger.info("Removed %d orphaned directories", len(removed))
        return removed
