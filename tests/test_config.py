"""Tests for the TOML configuration manager."""

import logging
from pathlib import Path

import pytest

from uimigrate import config
from uimigrate.config_manager import (
    DEFAULT_CONFIG,
    MigrationConfig,
    find_config_file,
    load_config,
    merge_config,
    save_config,
    validate_config,
)
from uimigrate.errors import ConfigurationError


def test_defaults(temp_dir: Path):
    """Test defaults are used when no config file exists."""
    cfg = load_config(cwd=temp_dir)

    assert cfg.inventory.readiness_threshold == 75
    assert cfg.inventory.weights == config.READINESS_WEIGHTS
    assert cfg.pipeline.mode == "full-pipeline"
    assert cfg.pipeline.skip_errors is True
    assert cfg.transform.transform_levels == ["ready"]
    assert cfg.retry.max_attempts == 3
    assert DEFAULT_CONFIG["analysis"]["max_depth"] == 5


def test_project_config_is_loaded(temp_dir: Path):
    """Test ./uimigrate.toml overrides defaults section by section."""
    (temp_dir / config.PROJECT_CONFIG_NAME).write_text(
        "[inventory]\n"
        "readiness_threshold = 80\n"
        "[inventory.weights]\n"
        "documentation = 0.15\n"
        "pattern_compliance = 0.05\n"
        "[pipeline]\n"
        "mode = \"analysis-only\"\n"
        "max_workers = 2\n"
    )
    cfg = load_config(cwd=temp_dir)

    assert cfg.inventory.readiness_threshold == 80
    assert cfg.inventory.weights["documentation"] == 0.15
    assert cfg.inventory.weights["code_quality"] == 0.20
    assert cfg.pipeline.mode == "analysis-only"
    assert cfg.pipeline.max_workers == 2
    assert cfg.discovery.max_files == config.MAX_FILES


def test_explicit_path_wins(temp_dir: Path):
    """Test --config takes precedence over the project file."""
    (temp_dir / config.PROJECT_CONFIG_NAME).write_text("[pipeline]\nbatch_size = 2\n")
    explicit = temp_dir / "other.toml"
    explicit.write_text("[pipeline]\nbatch_size = 3\n")

    assert find_config_file(explicit, temp_dir) == explicit
    assert load_config(explicit, temp_dir).pipeline.batch_size == 3


def test_user_config_is_the_last_resort(temp_dir: Path, monkeypatch):
    """Test the user-level file is used when there is no project file."""
    user = temp_dir / "home" / "config.toml"
    user.parent.mkdir()
    user.write_text("[parser]\nmax_file_size = 10\n")
    monkeypatch.setattr(config, "USER_CONFIG_FILE", user)

    assert find_config_file(None, temp_dir / "home") == user
    assert load_config(cwd=temp_dir).parser.max_file_size == 10


def test_missing_explicit_file(temp_dir: Path):
    """Test a missing --config path is a configuration error."""
    with pytest.raises(ConfigurationError):
        load_config(temp_dir / "nope.toml")


def test_malformed_toml(temp_dir: Path):
    """Test unparseable TOML is a configuration error."""
    path = temp_dir / "bad.toml"
    path.write_text("[pipeline\nmode = ")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_unknown_keys_are_ignored_with_warning(caplog):
    """Test unknown sections and keys only warn."""
    with caplog.at_level(logging.WARNING, logger="uimigrate.config_manager"):
        cfg = merge_config({"colors": {"a": 1}, "pipeline": {"bogus": True, "dry_run": True}})

    assert cfg.pipeline.dry_run is True
    assert "colors" in caplog.text
    assert "pipeline.bogus" in caplog.text


@pytest.mark.parametrize(
    "overrides",
    [
        {"inventory": {"weights": {"documentation": 0.5}}},
        {"inventory": {"weights": {"bogus": 0.0}}},
        {"inventory": {"readiness_threshold": 101}},
        {"inventory": {"effort_cut_points": [4, 2, 6]}},
        {"pipeline": {"mode": "everything"}},
        {"pipeline": {"max_workers": 0}},
        {"retry": {"max_attempts": 0}},
        {"analysis": {"cluster_threshold": 1.5}},
        {"pipeline": "not-a-table"},
    ],
)
def test_invalid_values(overrides):
    """Test out-of-range values raise ConfigurationError."""
    with pytest.raises(ConfigurationError):
        merge_config(overrides)


def test_validate_defaults():
    """Test the default configuration is valid."""
    validate_config(MigrationConfig())


def test_save_round_trip(temp_dir: Path):
    """Test a saved config loads back unchanged."""
    cfg = MigrationConfig()
    cfg.pipeline.phase_timeout = 30.0
    cfg.transform.compat_layer = True
    path = temp_dir / "nested" / "uimigrate.toml"

    save_config(cfg, path)
    loaded = load_config(path)

    assert loaded.pipeline.phase_timeout == 30.0
    assert loaded.transform.compat_layer is True
    assert loaded.inventory.weights == cfg.inventory.weights
