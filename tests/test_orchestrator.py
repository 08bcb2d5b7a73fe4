"""Tests for the pipeline orchestrator."""

import dataclasses
from pathlib import Path

import pytest

from uimigrate.config_manager import MigrationConfig
from uimigrate.errors import ErrorCategory
from uimigrate.models import ErrorSnapshot
from uimigrate.orchestrator import PipelineListener, PipelineOrchestrator, overall_progress
from uimigrate.reports import DOT_REPORT, JSON_REPORT, MARKDOWN_REPORT


class RecordingListener(PipelineListener):
    def __init__(self):
        self.started = []
        self.completed = []
        self.progress = []
        self.errors = []
        self.warnings = []
        self.units = []

    def on_phase_start(self, phase, snapshot):
        self.started.append(phase)

    def on_phase_complete(self, phase, snapshot):
        self.completed.append(phase)

    def on_progress(self, snapshot):
        self.progress.append(snapshot.overall_progress)

    def on_error(self, error):
        self.errors.append(error)

    def on_warning(self, message):
        self.warnings.append(message)

    def on_unit_processed(self, unit_id, phase):
        self.units.append((phase, unit_id))


@pytest.fixture
def pipeline_config(temp_dir: Path) -> MigrationConfig:
    cfg = MigrationConfig()
    cfg.pipeline.output_dir = str(temp_dir / "reports")
    return cfg


def _run(cfg, root, *listeners):
    orchestrator = PipelineOrchestrator(cfg, listeners=listeners, sleep=lambda s: None)
    return orchestrator, orchestrator.run(root, run_id="run-1")


def test_full_pipeline(pipeline_config, sample_copy):
    """Test a full run produces every phase result and the reports."""
    listener = RecordingListener()
    orchestrator, result = _run(pipeline_config, sample_copy, listener)

    assert result.success
    assert result.phase == "completed"
    assert result.run_id == "run-1"
    assert len(result.discovery.components) == 7
    assert set(result.parse_results) == {c.id for c in result.discovery.components}
    assert result.analysis.graph.cycles
    assert result.inventory.summary.total_components == 7
    assert [Path(p).name for p in result.report_paths] == [JSON_REPORT, MARKDOWN_REPORT, DOT_REPORT]
    assert not orchestrator.running
    assert orchestrator.progress().overall_progress == 100.0

    assert listener.started == [
        "initialization", "discovery", "parsing", "dependency-analysis",
        "inventory-generation", "output-generation", "cleanup",
    ]
    assert listener.completed == listener.started
    assert listener.progress == sorted(listener.progress)
    assert listener.progress[-1] == 100.0
    assert sum(1 for phase, _ in listener.units if phase == "parsing") == 7


def test_recoverable_errors_do_not_stop_the_run(pipeline_config, sample_copy):
    """Test the broken file is recorded while the run still succeeds."""
    listener = RecordingListener()
    _, result = _run(pipeline_config, sample_copy, listener)

    broken = next(c for c in result.discovery.components if c.name == "Broken")
    assert result.success
    assert not result.parse_results[broken.id].success
    assert any(e["category"] == ErrorCategory.PARSING.value for e in result.errors)
    assert listener.errors
    assert any("ThemeContext" in w for w in listener.warnings)
    assert result.metrics["errors_by_category"]["parsing"] >= 1


def test_transient_read_failure_is_retried(pipeline_config, sample_copy, flaky_reads):
    """Test a unit whose first read fails is retried and scored normally."""
    failures = flaky_reads("Header.tsx")
    _, result = _run(pipeline_config, sample_copy)

    header = next(c for c in result.discovery.components if c.name == "Header")
    assert len(failures) == 1
    assert result.success
    assert result.parse_results[header.id].success
    readiness = result.inventory.readiness_for(header.id)
    assert readiness.readiness_level == "ready"
    assert readiness.blockers == []
    assert any(e["category"] == ErrorCategory.FILE_SYSTEM.value and e["unit"] == header.id for e in result.errors)


def test_listeners_receive_error_snapshots(pipeline_config, sample_copy):
    """Test on_error gets a frozen snapshot rather than the live error."""
    listener = RecordingListener()
    _run(pipeline_config, sample_copy, listener)

    broken = next(e for e in listener.errors if e.category == ErrorCategory.PARSING.value)
    assert isinstance(broken, ErrorSnapshot)
    assert broken.phase == "parsing"
    with pytest.raises(dataclasses.FrozenInstanceError):
        broken.phase = "failed"


def test_metrics(pipeline_config, sample_copy):
    """Test the run metrics."""
    _, result = _run(pipeline_config, sample_copy)
    metrics = result.metrics

    assert metrics["units_processed"] == 7
    assert set(metrics["phase_durations"]) >= {"discovery", "parsing", "dependency-analysis"}
    assert metrics["throughput"] > 0
    assert metrics["transformed"] == 0


@pytest.mark.parametrize(
    "mode, has_parse, has_analysis, has_inventory",
    [
        ("discovery-only", False, False, False),
        ("analysis-only", True, True, False),
    ],
)
def test_modes(pipeline_config, sample_copy, mode, has_parse, has_analysis, has_inventory):
    """Test pipeline modes limit the phases that run."""
    pipeline_config.pipeline.mode = mode
    _, result = _run(pipeline_config, sample_copy)

    assert result.success
    assert result.discovery is not None
    assert bool(result.parse_results) is has_parse
    assert (result.analysis is not None) is has_analysis
    assert (result.inventory is not None) is has_inventory
    assert result.report_paths == []


def test_dry_run_writes_nothing(pipeline_config, sample_copy):
    """Test dry-run skips report writing."""
    pipeline_config.pipeline.dry_run = True
    _, result = _run(pipeline_config, sample_copy)

    assert result.success
    assert result.report_paths == []
    assert not Path(pipeline_config.pipeline.output_dir).exists()


def test_transform_and_validate_ready_units(pipeline_config, sample_copy):
    """Test ready units are transformed and validated during output generation."""
    pipeline_config.pipeline.transform = True
    _, result = _run(pipeline_config, sample_copy)

    header = next(c for c in result.discovery.components if c.name == "Header")
    assert result.success
    assert header.id in result.transformations
    assert all(t.success for t in result.transformations.values())
    assert set(result.validations) == set(result.transformations)
    assert result.validations[header.id].comparison.equivalent
    assert result.metrics["transformed"] == len(result.transformations)


def test_missing_root_fails(pipeline_config, temp_dir):
    """Test a missing source root ends in the failed phase."""
    _, result = _run(pipeline_config, temp_dir / "missing")

    assert not result.success
    assert result.phase == "failed"
    assert result.warnings[0].startswith("Pipeline stopped during discovery")
    assert result.errors[-1]["category"] == ErrorCategory.FILE_SYSTEM.value
    assert result.metrics["units_processed"] == 0


def test_parse_failure_is_fatal_without_skip_errors(pipeline_config, sample_copy):
    """Test skip_errors=False stops the run on the first parse failure."""
    pipeline_config.pipeline.skip_errors = False
    _, result = _run(pipeline_config, sample_copy)

    assert not result.success
    assert result.phase == "failed"
    assert "Pipeline stopped during parsing" in result.warnings[0]
    assert result.inventory is None


def test_cancel_between_phases(pipeline_config, sample_copy):
    """Test cancelling from a listener stops the run before the next phase."""
    class Canceller(PipelineListener):
        def __init__(self):
            self.orchestrator = None

        def on_phase_complete(self, phase, snapshot):
            if phase == "discovery":
                self.orchestrator.cancel("stop after discovery")

    canceller = Canceller()
    orchestrator = PipelineOrchestrator(pipeline_config, listeners=[canceller], sleep=lambda s: None)
    canceller.orchestrator = orchestrator

    result = orchestrator.run(sample_copy)

    assert not result.success
    assert result.phase == "failed"
    assert result.parse_results == {}
    assert "stop after discovery" in result.warnings[0]


class _CancelAfter(PipelineListener):
    def __init__(self, phase, count):
        self.phase = phase
        self.count = count
        self.seen = []
        self.orchestrator = None

    def on_unit_processed(self, unit_id, phase):
        if phase != self.phase:
            return
        self.seen.append(unit_id)
        if len(self.seen) == self.count:
            self.orchestrator.cancel(f"stop after {self.count} units")


def test_cancel_mid_parsing_keeps_partial_results(pipeline_config, sample_copy):
    """Test units parsed before a cancellation stay in the result."""
    canceller = _CancelAfter("parsing", 3)
    orchestrator = PipelineOrchestrator(pipeline_config, listeners=[canceller], sleep=lambda s: None)
    canceller.orchestrator = orchestrator

    result = orchestrator.run(sample_copy)

    assert not result.success
    assert result.phase == "failed"
    assert sorted(result.parse_results) == sorted(canceller.seen)
    assert len(result.parse_results) == 3
    assert result.analysis is None


def test_cancel_mid_output_keeps_transformations(pipeline_config, sample_copy):
    """Test transformations finished before a cancellation stay in the result."""
    pipeline_config.pipeline.transform = True
    canceller = _CancelAfter("output-generation", 1)
    orchestrator = PipelineOrchestrator(pipeline_config, listeners=[canceller], sleep=lambda s: None)
    canceller.orchestrator = orchestrator

    result = orchestrator.run(sample_copy)

    assert not result.success
    assert list(result.transformations) == canceller.seen
    assert result.validations == {}
    assert result.report_paths == []


def test_broken_listener_does_not_end_the_run(pipeline_config, sample_copy):
    """Test listener exceptions are logged and ignored."""
    class Broken(PipelineListener):
        def on_progress(self, snapshot):
            raise RuntimeError("listener bug")

    _, result = _run(pipeline_config, sample_copy, Broken())
    assert result.success


def test_parallel_parsing(pipeline_config, sample_copy):
    """Test parallel batches parse every unit."""
    pipeline_config.pipeline.parallel = True
    pipeline_config.pipeline.batch_size = 2
    _, result = _run(pipeline_config, sample_copy)

    assert result.success
    assert len(result.parse_results) == 7


def test_cancel_when_idle_is_a_no_op(pipeline_config):
    """Test cancel() outside a run does nothing."""
    orchestrator = PipelineOrchestrator(pipeline_config)
    orchestrator.cancel()
    assert orchestrator.context is None
    assert orchestrator.progress().phase == "initialization"


def test_overall_progress():
    """Test weighted overall progress."""
    assert overall_progress("initialization", 0) == 0.0
    assert overall_progress("discovery", 100) == 25.0
    assert overall_progress("parsing", 50) == 40.0
    assert overall_progress("cleanup", 0) == 100.0
    assert overall_progress("completed", 0) == 100.0
    assert overall_progress("failed", 50) == 0.0
