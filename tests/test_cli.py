"""Integration tests for the migrate and analyze commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from uimigrate import __version__, cli
from uimigrate.cli import ExitCode, app, exit_code_for
from uimigrate.config import MANIFEST_NAME
from uimigrate.errors import BusinessLogicError, FileSystemError, GenerationError, ParsingError
from uimigrate.models import CodeCheckResult
from uimigrate.reports import JSON_REPORT, MARKDOWN_REPORT


runner = CliRunner()


@pytest.fixture
def output_dir(temp_dir: Path) -> Path:
    return temp_dir / "migrated"


def _migrate(source: Path, output: Path, *args: str):
    return runner.invoke(app, ["migrate", *args, "--source", str(source), "--output", str(output)])


def _manifest(output: Path) -> dict:
    return json.loads((output / MANIFEST_NAME).read_text())


class TestVersion:
    """Tests for the --version flag."""

    def test_version(self):
        """Test the version banner."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"uimigrate v{__version__}" in result.output


class TestMigrateCommand:
    """Tests for 'uimigrate migrate'."""

    def test_migrate_writes_artifacts_and_manifest(self, sample_copy: Path, output_dir: Path):
        """Test a ready component is migrated into its own directory."""
        result = _migrate(sample_copy, output_dir, "Header")

        assert result.exit_code == 0
        assert "Migrated Header" in result.output
        target = output_dir / "Header"
        assert (target / "Header.tsx").exists()
        assert (target / "README.md").exists()
        assert (target / "Header.types.ts").exists()
        assert (target / "__tests__" / "Header.test.tsx").exists()
        assert "export function Header" in (target / "Header.tsx").read_text()

        manifest = _manifest(output_dir)
        assert manifest["version"] == "1.0.0"
        assert manifest["successful"] == ["Header"]
        assert manifest["failed"] == []
        assert manifest["config"]["dry_run"] is False
        assert manifest["end_time"] is not None

    def test_skip_tests(self, sample_copy: Path, output_dir: Path):
        """Test --skip-tests leaves out the test scaffold."""
        result = _migrate(sample_copy, output_dir, "Header", "--skip-tests")

        assert result.exit_code == 0
        assert not (output_dir / "Header" / "__tests__").exists()

    def test_dry_run_writes_nothing(self, sample_copy: Path, output_dir: Path):
        """Test --dry-run previews the code and writes no files."""
        result = _migrate(sample_copy, output_dir, "Header", "--dry-run")

        assert result.exit_code == 0
        assert "DRY RUN: Header" in result.output
        assert "To generate files, run without --dry-run" in result.output
        assert not output_dir.exists()

    def test_class_component(self, sample_copy: Path, output_dir: Path):
        """Test a class component is converted and written."""
        result = _migrate(sample_copy, output_dir, "Counter")

        assert result.exit_code == 0
        assert "useCounterLogic" in (output_dir / "Counter" / "Counter.tsx").read_text()

    def test_already_migrated_is_skipped(self, sample_copy: Path, output_dir: Path):
        """Test a second run reports the unit instead of regenerating it."""
        _migrate(sample_copy, output_dir, "Header")
        (output_dir / "Header" / "Header.tsx").write_text("// edited")

        result = _migrate(sample_copy, output_dir, "Header")

        assert result.exit_code == 0
        assert "already migrated" in result.output
        assert (output_dir / "Header" / "Header.tsx").read_text() == "// edited"

    def test_regenerate_forces_a_rerun(self, sample_copy: Path, output_dir: Path):
        """Test --regenerate overwrites an already-migrated unit."""
        _migrate(sample_copy, output_dir, "Header")
        (output_dir / "Header" / "Header.tsx").write_text("// edited")

        result = _migrate(sample_copy, output_dir, "--regenerate", "Header")

        assert result.exit_code == 0
        assert "export function Header" in (output_dir / "Header" / "Header.tsx").read_text()

    def test_unknown_component(self, sample_copy: Path, output_dir: Path):
        """Test a missing baseline exits 1 and is recorded as failed."""
        result = _migrate(sample_copy, output_dir, "Nope")

        assert result.exit_code == ExitCode.VALIDATION_ERROR
        failed = _manifest(output_dir)["failed"]
        assert [f["component"] for f in failed] == ["Nope"]

    def test_invalid_name(self, sample_copy: Path, output_dir: Path):
        """Test names are validated before anything runs."""
        result = _migrate(sample_copy, output_dir, "1-bad")

        assert result.exit_code == ExitCode.VALIDATION_ERROR
        assert "Invalid component name" in result.output
        assert not (output_dir / MANIFEST_NAME).exists()

    def test_missing_name(self, sample_copy: Path, output_dir: Path):
        """Test a name is required without a recovery flag."""
        result = _migrate(sample_copy, output_dir)
        assert result.exit_code == ExitCode.VALIDATION_ERROR

    def test_unparseable_component_fails(self, sample_copy: Path, output_dir: Path):
        """Test a transformation failure exits non-zero and is recorded."""
        result = _migrate(sample_copy, output_dir, "Broken")

        assert result.exit_code == ExitCode.VALIDATION_ERROR
        assert _manifest(output_dir)["failed"][0]["component"] == "Broken"
        assert not (output_dir / "Broken").exists()

    def test_compile_failure_exits_2(self, sample_copy: Path, output_dir: Path, monkeypatch):
        """Test a failed compile check maps to exit code 2."""
        monkeypatch.setattr(
            cli.EquivalencyValidator, "check_compiles",
            staticmethod(lambda code, name="Component": CodeCheckResult(False, ["Header.tsx:1:1: syntax error"])),
        )
        result = _migrate(sample_copy, output_dir, "Header")

        assert result.exit_code == ExitCode.COMPILATION_ERROR
        assert not (output_dir / "Header").exists()

    def test_incomplete_logic_exits_3(self, sample_copy: Path, output_dir: Path, monkeypatch):
        """Test a failed completeness check maps to exit code 3."""
        monkeypatch.setattr(
            cli.EquivalencyValidator, "check_completeness",
            staticmethod(lambda source, result: CodeCheckResult(False, ["Business logic 'x' is missing"])),
        )
        result = _migrate(sample_copy, output_dir, "Header")

        assert result.exit_code == ExitCode.BUSINESS_LOGIC_INCOMPLETE

    def test_write_failure_exits_4(self, sample_copy: Path, output_dir: Path, monkeypatch):
        """Test an OSError while writing artifacts maps to exit code 4."""
        def fail(bundle, output):
            raise OSError("disk full")

        monkeypatch.setattr(cli, "write_artifacts", fail)
        result = _migrate(sample_copy, output_dir, "Header")

        assert result.exit_code == ExitCode.FILESYSTEM_ERROR
        assert _manifest(output_dir)["failed"][0]["error"].startswith("Could not write artifacts")

    def test_resume_reruns_failed_units(self, sample_copy: Path, output_dir: Path, monkeypatch):
        """Test --resume retries exactly the failed units."""
        def fail(bundle, output):
            raise OSError("disk full")

        with monkeypatch.context() as patch:
            patch.setattr(cli, "write_artifacts", fail)
            _migrate(sample_copy, output_dir, "Header")
        assert _manifest(output_dir)["failed"][0]["component"] == "Header"

        result = _migrate(sample_copy, output_dir, "--resume")

        assert result.exit_code == 0
        manifest = _manifest(output_dir)
        assert manifest["successful"] == ["Header"]
        assert manifest["failed"] == []

    def test_resume_without_manifest(self, sample_copy: Path, output_dir: Path):
        """Test --resume needs an existing manifest."""
        result = _migrate(sample_copy, output_dir, "--resume")
        assert result.exit_code == ExitCode.VALIDATION_ERROR

    def test_rollback(self, sample_copy: Path, output_dir: Path):
        """Test --rollback removes migrated directories and the manifest."""
        _migrate(sample_copy, output_dir, "Header")

        result = _migrate(sample_copy, output_dir, "--rollback")

        assert result.exit_code == 0
        assert "Rolled back 1 component(s)." in result.output
        assert not (output_dir / "Header").exists()
        assert not (output_dir / MANIFEST_NAME).exists()

    def test_cleanup(self, sample_copy: Path, output_dir: Path):
        """Test --cleanup removes directories the manifest does not list."""
        _migrate(sample_copy, output_dir, "Header")
        (output_dir / "Orphan").mkdir()

        result = _migrate(sample_copy, output_dir, "--cleanup")

        assert result.exit_code == 0
        assert "Removed 1 orphaned directory." in result.output
        assert (output_dir / "Header").exists()
        assert not (output_dir / "Orphan").exists()


class TestAnalyzeCommand:
    """Tests for 'uimigrate analyze'."""

    def test_analyze_writes_reports(self, sample_copy: Path, temp_dir: Path):
        """Test the full pipeline prints summaries and writes reports."""
        reports = temp_dir / "reports"
        result = runner.invoke(app, ["analyze", str(sample_copy), "--output", str(reports)])

        assert result.exit_code == 0
        assert "Discovery" in result.output
        assert "Readiness" in result.output
        assert (reports / JSON_REPORT).exists()
        assert (reports / MARKDOWN_REPORT).exists()

    def test_analyze_dry_run(self, sample_copy: Path, temp_dir: Path):
        """Test --dry-run writes no reports."""
        reports = temp_dir / "reports"
        result = runner.invoke(app, ["analyze", str(sample_copy), "--output", str(reports), "--dry-run"])

        assert result.exit_code == 0
        assert not reports.exists()

    def test_analyze_discovery_only(self, sample_copy: Path, temp_dir: Path):
        """Test --mode discovery-only skips scoring."""
        result = runner.invoke(
            app, ["analyze", str(sample_copy), "--mode", "discovery-only", "--output", str(temp_dir / "r")]
        )

        assert result.exit_code == 0
        assert "Discovery" in result.output
        assert "Readiness" not in result.output

    def test_analyze_invalid_threshold(self, sample_copy: Path):
        """Test invalid overrides are configuration errors."""
        result = runner.invoke(app, ["analyze", str(sample_copy), "--threshold", "150"])
        assert result.exit_code == ExitCode.VALIDATION_ERROR

    def test_analyze_missing_root(self, temp_dir: Path):
        """Test a missing root exits with the file-system code."""
        result = runner.invoke(app, ["analyze", str(temp_dir / "missing"), "--output", str(temp_dir / "r")])
        assert result.exit_code == ExitCode.FILESYSTEM_ERROR


def test_exit_code_mapping():
    """Test error categories map onto exit codes."""
    assert exit_code_for(FileSystemError("x")) == ExitCode.FILESYSTEM_ERROR
    assert exit_code_for(GenerationError("x")) == ExitCode.COMPILATION_ERROR
    assert exit_code_for(BusinessLogicError("x")) == ExitCode.BUSINESS_LOGIC_INCOMPLETE
    assert exit_code_for(ParsingError("x")) == ExitCode.VALIDATION_ERROR
