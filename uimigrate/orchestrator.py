"""Pipeline orchestrator coordinating discovery, analysis, scoring and migration."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import config
from .analyzer import DependencyAnalyzer
from .config_manager import MigrationConfig
from .context import RunContext
from .discovery import ComponentDiscovery
from .errors import ParsingError, PipelineError, TransformationError
from .inventory import InventoryGenerator
from .models import (
    PIPELINE_PHASES,
    ErrorSnapshot,
    ParseResult,
    PipelineResult,
    ProgressSnapshot,
    TransformationResult,
    ValidationReport,
)
from .parser import StructuralParser
from .reports import write_reports
from .tasks import TaskResult
from .transformer import ComponentTransformer
from .validator import EquivalencyValidator

PHASE_ORDER = PIPELINE_PHASES[:7]
MODE_PHASES: Dict[str, Sequence[str]] = {
    "discovery-only": ("discovery",),
    "analysis-only": ("discovery", "parsing", "dependency-analysis"),
    "full-pipeline": ("discovery", "parsing", "dependency-analysis", "inventory-generation", "output-generation"),
}


class PipelineListener:
    """Observer for pipeline events.  Subclass and override what you need.

    Listeners do not have to inherit from this class; any object exposing
    some of these methods is accepted.
    """

    def on_phase_start(self, phase: str, snapshot: ProgressSnapshot) -> None:
        pass

    def on_phase_complete(self, phase: str, snapshot: ProgressSnapshot) -> None:
        pass

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        pass

    def on_error(self, error: ErrorSnapshot) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass

    def on_unit_processed(self, unit_id: str, phase: str) -> None:
        pass


class _Progress:
    """Mutable progress state; only the orchestrator touches it."""

    def __init__(self) -> None:
        self.phase = "initialization"
        self.phase_progress = 0.0
        self.overall = 0.0
        self.discovered = 0
        self.parsed = 0
        self.analyzed = 0
        self.errors = 0
        self.warnings = 0
        self.message = ""

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            phase=self.phase,
            phase_progress=round(self.phase_progress, 2),
            overall_progress=round(self.overall, 2),
            discovered=self.discovered,
            parsed=self.parsed,
            analyzed=self.analyzed,
            errors=self.errors,
            warnings=self.warnings,
            message=self.message,
        )


def overall_progress(phase: str, phase_progress: float, weights: Optional[Dict[str, int]] = None) -> float:
    """Weights of every phase before *phase* plus its own weight scaled by *phase_progress*."""
    weights = weights or config.PHASE_WEIGHTS
    if phase == "completed":
        return 100.0
    done = sum(weights.get(p, 0) for p in PHASE_ORDER[:PHASE_ORDER.index(phase)]) if phase in PHASE_ORDER else 0
    return min(100.0, done + weights.get(phase, 0) * max(0.0, min(100.0, phase_progress)) / 100.0)


class PipelineOrchestrator:
    """Drives one migration run through the phase sequence.

    Args:
        cfg: Resolved configuration; defaults are used when omitted.
        listeners: Observers notified of phase, progress, error, warning and
            per-unit events.  They are owned by this orchestrator.
        sleep: Delay function handed to the retry strategy.
    """

    def __init__(
        self,
        cfg: Optional[MigrationConfig] = None,
        listeners: Optional[Sequence[Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = cfg or MigrationConfig()
        self.listeners: List[Any] = list(listeners or [])
        self._sleep = sleep
        self._lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._running = False
        self._ctx: Optional[RunContext] = None
        self._progress = _Progress()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def context(self) -> Optional[RunContext]:
        return self._ctx

    def progress(self) -> ProgressSnapshot:
        with self._state_lock:
            return self._progress.snapshot()

    def cancel(self, reason: str = "Pipeline cancelled by user") -> None:
        if self._running and self._ctx is not None:
            self._ctx.log.info("Cancelling pipeline execution")
            self._ctx.token.cancel(reason)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, source_root: Path, run_id: Optional[str] = None) -> PipelineResult:
        """Execute the pipeline over *source_root*.

        Raises:
            RuntimeError: another run is already executing on this orchestrator.
        """
        if not self._lock.acquire(blocking=False):
            raise RuntimeError("Pipeline is already running")
        try:
            self._running = True
            self._ctx = RunContext.create(self.config, run_id=run_id, sleep=self._sleep)
            self._ctx.errors.add_observer(self._on_error)
            self._progress = _Progress()
            return self._execute(Path(source_root))
        finally:
            self._running = False
            self._lock.release()

    def _execute(self, source_root: Path) -> PipelineResult:
        ctx = self._ctx
        options = self.config.pipeline
        result = PipelineResult(run_id=ctx.run_id, success=False, phase="initialization")
        durations: Dict[str, float] = {}
        started = time.perf_counter()
        wanted = MODE_PHASES[options.mode]
        ctx.log.info("Starting pipeline (%s) on %s", options.mode, source_root)

        try:
            self._phase("initialization", durations, lambda: None)
            if "discovery" in wanted:
                result.discovery = self._phase(
                    "discovery", durations, lambda: self._discover(source_root)
                )
            if "parsing" in wanted:
                self._phase("parsing", durations, lambda: self._parse(result))
            if "dependency-analysis" in wanted:
                result.analysis = self._phase(
                    "dependency-analysis", durations, lambda: self._analyze(result)
                )
            if "inventory-generation" in wanted:
                result.inventory = self._phase(
                    "inventory-generation", durations, lambda: self._inventory(result)
                )
            if "output-generation" in wanted:
                self._phase("output-generation", durations, lambda: self._output(result))
            self._phase("cleanup", durations, lambda: None)
        except PipelineError as exc:
            self._fail(result, exc)
        except Exception as exc:  # noqa: BLE001 - the run ends in the failed state
            self._fail(result, ctx.errors.classify(exc, ctx.error_context(phase=self._progress.phase)))
        else:
            result.success = True
            self._update("completed", 100.0, "Pipeline completed successfully")
        finally:
            ctx.token.clear_deadline()

        result.phase = self._progress.phase
        result.duration = time.perf_counter() - started
        result.errors = [e.to_dict() for e in ctx.errors.history]
        result.metrics = self._metrics(result, durations)
        ctx.log.info(
            "Pipeline %s in %.2fs (%d errors)",
            "completed" if result.success else "failed", result.duration, self._progress.errors,
        )
        return result

    def _phase(self, phase: str, durations: Dict[str, float], body: Callable[[], Any]) -> Any:
        ctx = self._ctx
        ctx.token.raise_if_cancelled(ctx.error_context(phase=phase))
        self._update(phase, 0.0, f"Running {phase}")
        self._emit("on_phase_start", phase, self.progress())
        ctx.token.set_deadline(self.config.pipeline.phase_timeout, phase)
        phase_started = time.perf_counter()
        try:
            value = body()
        finally:
            durations[phase] = round(time.perf_counter() - phase_started, 4)
            ctx.token.clear_deadline()
        self._update(phase, 100.0, f"Completed {phase}")
        self._emit("on_phase_complete", phase, self.progress())
        return value

    def _fail(self, result: PipelineResult, error: PipelineError) -> None:
        ctx = self._ctx
        if error.context.phase is None:
            error.context.phase = self._progress.phase
        if not any(e is error for e in ctx.errors.history):
            ctx.errors.record(error)
        result.warnings.append(f"Pipeline stopped during {self._progress.phase}: {error.message}")
        self._update("failed", 0.0, error.message)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _discover(self, source_root: Path):
        discovery = ComponentDiscovery(self._ctx).discover(source_root)
        with self._state_lock:
            self._progress.discovered = len(discovery.components)
        for issue in discovery.issues:
            self._warn(f"{issue.file_path}: {issue.message}")
        return discovery

    def _parse(self, result: PipelineResult) -> None:
        """Parse every unit into ``result.parse_results`` as it completes."""
        components = result.discovery.components
        parser = StructuralParser(self._ctx)
        options = self.config.pipeline
        runner = self._ctx.batch_runner(options.parallel, options.max_workers, options.batch_size)
        total = max(len(components), 1)
        parsed = result.parse_results

        def _done(task: TaskResult[ParseResult]) -> None:
            if task.ok:
                parsed[task.key] = task.value
            else:
                parsed[task.key] = ParseResult(unit_id=task.key, success=False, errors=[task.error.message])
            if not parsed[task.key].success and not options.skip_errors:
                raise ParsingError(
                    f"Parsing failed for {task.key}: {'; '.join(parsed[task.key].errors)}",
                    self._ctx.error_context(unit=task.key, phase="parsing"),
                    recoverable=False,
                )
            with self._state_lock:
                self._progress.parsed = len(parsed)
            self._update("parsing", 100.0 * len(parsed) / total)
            self._emit("on_unit_processed", task.key, "parsing")

        runner.run(components, parser.parse, key=lambda c: c.id, on_result=_done)

    def _analyze(self, result: PipelineResult):
        analysis = DependencyAnalyzer(self._ctx).analyze(result.discovery.components)
        with self._state_lock:
            self._progress.analyzed = len(result.discovery.components)
        for warning in analysis.warnings:
            self._warn(warning)
        return analysis

    def _inventory(self, result: PipelineResult):
        total = max(len(result.discovery.components), 1)
        done = []

        def _unit(component) -> None:
            done.append(component.id)
            self._update("inventory-generation", 100.0 * len(done) / total)
            self._emit("on_unit_processed", component.id, "inventory-generation")

        return InventoryGenerator(self._ctx).generate(
            result.discovery, result.parse_results, result.analysis, on_unit=_unit
        )

    def _output(self, result: PipelineResult) -> None:
        options = self.config.pipeline
        if options.transform and result.inventory is not None:
            self._transform(result)
        if options.generate_reports and not options.dry_run and result.inventory is not None:
            paths = write_reports(result.inventory, Path(options.output_dir), result.analysis)
            result.report_paths = [str(p) for p in paths]
            self._ctx.log.info("Wrote %d report files to %s", len(paths), options.output_dir)

    def _transform(self, result: PipelineResult) -> None:
        levels = set(self.config.transform.transform_levels)
        ready = {r.unit_id for r in result.inventory.components if r.readiness_level in levels}
        candidates = [c for c in result.discovery.components if c.id in ready]
        if not candidates:
            return
        transformer = ComponentTransformer(self._ctx)
        validator = EquivalencyValidator(self._ctx)
        by_id = {c.id: c for c in candidates}
        total = len(candidates)
        transformations = result.transformations

        def _done(task: TaskResult[TransformationResult]) -> None:
            if task.ok:
                transformations[task.key] = task.value
            else:
                transformations[task.key] = transformer.error_result(by_id[task.key], task.error)
            self._update("output-generation", 90.0 * len(transformations) / total)
            self._emit("on_unit_processed", task.key, "output-generation")

        transformer.transform_batch(candidates, on_result=_done)
        failed = [uid for uid, t in result.transformations.items() if not t.success]
        if failed and not self.config.pipeline.skip_errors:
            raise TransformationError(
                f"Transformation failed for {', '.join(sorted(failed))}",
                self._ctx.error_context(phase="output-generation"),
                recoverable=False,
            )
        for component in candidates:
            self._ctx.token.raise_if_cancelled(self._ctx.error_context(unit=component.id, phase="output-generation"))
            transformation = result.transformations.get(component.id)
            if transformation is None or not transformation.success or transformation.transformed is None:
                continue
            report: ValidationReport = validator.report(component, transformation.transformed)
            result.validations[component.id] = report
            if not report.comparison.equivalent:
                self._warn(f"{component.id}: migrated component is not equivalent to its source")

    # ------------------------------------------------------------------
    # Progress and events
    # ------------------------------------------------------------------

    def _update(self, phase: str, phase_progress: float, message: Optional[str] = None) -> None:
        with self._state_lock:
            progress = self._progress
            progress.phase = phase
            progress.phase_progress = phase_progress
            # Overall progress never moves backwards, not even on failure.
            if phase != "failed":
                progress.overall = max(progress.overall, overall_progress(phase, phase_progress))
            if message is not None:
                progress.message = message
            snapshot = progress.snapshot()
        self._emit("on_progress", snapshot)

    def _warn(self, message: str) -> None:
        with self._state_lock:
            self._progress.warnings += 1
        self._ctx.log.warning(message)
        self._emit("on_warning", message)

    def _on_error(self, error: PipelineError) -> None:
        with self._state_lock:
            self._progress.errors += 1
            phase = self._progress.phase
        self._emit("on_error", ErrorSnapshot(
            code=error.code,
            category=error.category.value,
            severity=error.severity.value,
            message=error.message,
            unit=error.context.unit,
            phase=error.context.phase or phase,
            recoverable=error.recoverable,
        ))

    def _emit(self, event: str, *args: Any) -> None:
        for listener in self.listeners:
            handler = getattr(listener, event, None)
            if handler is None:
                continue
            try:
                handler(*args)
            except Exception:  # noqa: BLE001 - a broken listener must not end the run
                self._ctx.log.exception("Listener %r failed on %s", listener, event)

    def _metrics(self, result: PipelineResult, durations: Dict[str, float]) -> Dict[str, Any]:
        units = len(result.discovery.components) if result.discovery is not None else 0
        stats = self._ctx.errors.statistics()
        return {
            "total_duration": round(result.duration, 4),
            "phase_durations": durations,
            "units_processed": units,
            "throughput": round(units / result.duration, 2) if result.duration > 0 else 0.0,
            "peak_errors": self._progress.errors,
            "errors_by_category": stats["by_category"],
            "errors_by_severity": stats["by_severity"],
            "transformed": sum(1 for t in result.transformations.values() if t.success),
        }
