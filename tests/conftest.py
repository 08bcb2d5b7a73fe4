"""Pytest configuration and fixtures for uimigrate tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from uimigrate import config
from uimigrate.config_manager import MigrationConfig
from uimigrate.context import RunContext
from uimigrate.discovery import ComponentDiscovery


@pytest.fixture(autouse=True)
def _isolated_user_config(monkeypatch, tmp_path):
    """Keep a developer's ~/.uimigrate/config.toml out of the tests."""
    monkeypatch.setattr(config, "USER_CONFIG_FILE", tmp_path / "no-user-config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Path to the sample React project used for testing."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def sample_copy(sample_project_path: Path, temp_dir: Path) -> Path:
    """Writable copy of the sample project."""
    target = temp_dir / "sample_project"
    shutil.copytree(sample_project_path, target)
    return target


@pytest.fixture
def migration_config() -> MigrationConfig:
    return MigrationConfig()


@pytest.fixture
def run_context(migration_config: MigrationConfig) -> RunContext:
    """Run context whose retry strategy never actually sleeps."""
    return RunContext.create(migration_config, run_id="test-run", sleep=lambda seconds: None)


@pytest.fixture
def discovery_result(run_context: RunContext, sample_project_path: Path):
    return ComponentDiscovery(run_context).discover(sample_project_path)


@pytest.fixture
def components(discovery_result):
    """Discovered units keyed by name."""
    return {c.name: c for c in discovery_result.components}


@pytest.fixture
def flaky_reads(monkeypatch):
    """Make the first read of one file name fail with a transient OSError.

    Returns a function ``(file_name, method)`` that installs the failure and
    returns the list of paths whose read failed.
    """
    def install(file_name: str, method: str = "read_text"):
        original = getattr(Path, method)
        failures = []

        def flaky(self, *args, **kwargs):
            if self.name == file_name and not failures:
                failures.append(self)
                raise OSError("EAGAIN transient read failure")
            return original(self, *args, **kwargs)

        monkeypatch.setattr(Path, method, flaky)
        return failures

    return install
