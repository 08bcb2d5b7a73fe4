"""Typer-based CLI for uimigrate."""

from __future__ import annotations

import logging
import re
from enum import IntEnum
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.syntax import Syntax
from rich.table import Table

from . import __version__
from .artifacts import build_artifacts, write_artifacts
from .config_manager import load_config, validate_config
from .context import RunContext
from .discovery import ComponentDiscovery
from .errors import (
    BusinessLogicError,
    ErrorCategory,
    FileSystemError,
    GenerationError,
    PipelineError,
    TransformationError,
    ValidationError,
)
from .inventory import ReadinessEngine
from .manifest import ManifestManager
from .models import ProgressSnapshot
from .orchestrator import PipelineListener, PipelineOrchestrator
from .parser import StructuralParser
from .transformer import ComponentTransformer
from .validator import EquivalencyValidator

app = typer.Typer(
    help="uimigrate: discover, score and migrate React components.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{1,63}$")


class ExitCode(IntEnum):
    SUCCESS = 0
    VALIDATION_ERROR = 1
    COMPILATION_ERROR = 2
    BUSINESS_LOGIC_INCOMPLETE = 3
    FILESYSTEM_ERROR = 4


EXIT_CODES = {
    ErrorCategory.FILE_SYSTEM: ExitCode.FILESYSTEM_ERROR,
    ErrorCategory.GENERATION: ExitCode.COMPILATION_ERROR,
    ErrorCategory.BUSINESS_LOGIC: ExitCode.BUSINESS_LOGIC_INCOMPLETE,
}


def exit_code_for(error: PipelineError) -> ExitCode:
    return EXIT_CODES.get(error.category, ExitCode.VALIDATION_ERROR)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)],
        force=True,
    )


def print_error(error: PipelineError) -> None:
    info = error.user_info()
    body = [f"[bold]{escape(error.message)}[/bold]", "", escape(info.explanation), ""]
    body.extend(f"  • {escape(s)}" for s in info.suggestions)
    if info.workaround:
        body.extend(["", f"[dim]Workaround: {info.workaround}[/dim]"])
    console.print(Panel("\n".join(body), title=f"[bold red]{info.title}[/bold red] [dim]{error.code}[/dim]",
                        border_style="red"))


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"uimigrate v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """uimigrate: static analysis and migration pipeline for React components."""
    pass


# ===================================================================
# migrate
# ===================================================================

class _Migration:
    """Migrates single units by name; raises PipelineError subclasses on failure."""

    def __init__(self, ctx: RunContext, source: Path, output: Path, dry_run: bool, skip_tests: bool) -> None:
        self.ctx = ctx
        self.source = source
        self.output = output
        self.dry_run = dry_run
        self.skip_tests = skip_tests
        self._discovery = None

    def discovery(self):
        if self._discovery is None:
            if not self.source.is_dir():
                raise ValidationError(
                    f"Source directory not found: {self.source}",
                    self.ctx.error_context(operation="migrate", file_path=str(self.source)),
                )
            self._discovery = ComponentDiscovery(self.ctx).discover(self.source)
        return self._discovery

    def run(self, name: str) -> List[Path]:
        component = next(
            (c for c in self.discovery().components if c.name == name and c.kind != "hook"),
            None,
        ) or self.discovery().get(name)
        if component is None:
            raise ValidationError(
                f"Baseline not found: no component named '{name}' under {self.source}",
                self.ctx.error_context(unit=name, operation="migrate"),
            )

        parse = StructuralParser(self.ctx).parse(component)
        readiness = ReadinessEngine(self.ctx).assess(component, parse)
        result = ComponentTransformer(self.ctx).transform(component)
        context = self.ctx.error_context(unit=component.id, operation="migrate", file_path=component.file_path)
        if not result.success:
            raise TransformationError("; ".join(result.warnings) or "Transformation failed", context)

        validator = EquivalencyValidator(self.ctx)
        completeness = validator.check_completeness(component, result)
        if not completeness.passed:
            raise BusinessLogicError("Business logic incomplete: " + "; ".join(completeness.errors), context)
        compiled = validator.check_compiles(result.code, component.name)
        if not compiled.passed:
            raise GenerationError("Generated code does not compile: " + "; ".join(compiled.errors), context)
        report = validator.report(component, result.transformed) if result.transformed is not None else None

        if self.dry_run:
            self._preview(result, report)
            return []

        bundle = build_artifacts(result, readiness, report, skip_tests=self.skip_tests)
        try:
            return write_artifacts(bundle, self.output)
        except OSError as exc:
            raise FileSystemError(f"Could not write artifacts for {name}: {exc}", context, cause=exc) from exc

    def _preview(self, result, report) -> None:
        console.rule(f"[bold cyan]DRY RUN: {result.component.name}[/bold cyan]")
        console.print(Syntax(result.code, "tsx", line_numbers=True))
        table = Table(show_header=True)
        table.add_column("Check", style="cyan")
        table.add_column("Outcome")
        table.add_row("Compilation", "[green]passed[/green]")
        table.add_row("Business logic completeness", "[green]passed[/green]")
        table.add_row("Compatibility score", str(result.compatibility_score))
        table.add_row("Migration effort", result.migration_effort)
        if report is not None:
            table.add_row("Equivalent", "yes" if report.comparison.equivalent else "no")
            table.add_row("Quality", f"{report.quality.overall_score:.0f}")
        console.print(table)
        for warning in result.warnings:
            console.print(f"[yellow]⚠ {escape(warning)}[/yellow]")
        console.print("[dim]To generate files, run without --dry-run[/dim]")


@app.command("migrate")
def migrate(
    name: Optional[str] = typer.Argument(None, help="Component name to migrate."),
    source: Path = typer.Option(Path("."), "--source", "-s", help="Root of the legacy source tree."),
    output: Path = typer.Option(Path("./migrated"), "--output", "-o", help="Output directory."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview generated code without writing files."),
    skip_tests: bool = typer.Option(False, "--skip-tests", help="Skip test scaffold generation."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    resume: bool = typer.Option(False, "--resume", help="Re-run the components that failed last time."),
    rollback: bool = typer.Option(False, "--rollback", help="Delete generated components and the manifest."),
    cleanup: bool = typer.Option(False, "--cleanup", help="Remove orphaned output directories."),
    regenerate: Optional[str] = typer.Option(None, "--regenerate", help="Force a re-run for one component."),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Path to a uimigrate.toml file."),
):
    """Migrate one component into the target shape and write its artifacts."""
    setup_logging(verbose)
    manifests = ManifestManager(output)

    try:
        if rollback:
            removed = manifests.rollback()
            console.print(f"[green]Rolled back {len(removed)} component(s).[/green]")
            raise typer.Exit(ExitCode.SUCCESS)
        if cleanup:
            removed = manifests.cleanup()
            console.print(f"[green]Removed {len(removed)} orphaned director{'y' if len(removed) == 1 else 'ies'}.[/green]")
            raise typer.Exit(ExitCode.SUCCESS)

        cfg = load_config(config_file, cwd=source if source.is_dir() else None)
        manifest = manifests.load_or_create({
            "source": str(source),
            "output": str(output),
            "dry_run": dry_run,
            "verbose": verbose,
            "skip_tests": skip_tests,
        })

        force = regenerate is not None
        if resume:
            if not manifests.exists():
                raise ValidationError("No manifest found; nothing to resume")
            names = [f.component for f in manifest.failed]
            if not names:
                console.print("[green]No failed components to resume.[/green]")
                raise typer.Exit(ExitCode.SUCCESS)
            force = True
        else:
            target = regenerate or name
            if not target:
                raise ValidationError("A component name is required (or use --resume/--rollback/--cleanup)")
            names = [target]
    except PipelineError as error:
        print_error(error)
        raise typer.Exit(exit_code_for(error))
    except OSError as exc:
        print_error(FileSystemError(str(exc), cause=exc))
        raise typer.Exit(ExitCode.FILESYSTEM_ERROR)

    for target in names:
        if not NAME_PATTERN.match(target):
            console.print(f"[red]Invalid component name '{target}'.[/red]")
            console.print("[dim]Names are 2-64 characters, start with a letter, and use letters, "
                          "digits, '-' or '_'.[/dim]")
            raise typer.Exit(ExitCode.VALIDATION_ERROR)

    ctx = RunContext.create(cfg)
    migration = _Migration(ctx, source, output, dry_run, skip_tests)
    worst = ExitCode.SUCCESS
    for target in names:
        if not force and target in manifest.successful:
            console.print(f"[yellow]{target} was already migrated; use --regenerate {target} to force.[/yellow]")
            continue
        try:
            written = migration.run(target)
        except PipelineError as error:
            print_error(error)
            worst = max(worst, exit_code_for(error))
            if not dry_run:
                manifest.add_failure(target, error.message)
            continue
        if not dry_run:
            manifest.add_success(target)
            console.print(f"[green]✅ Migrated {target}[/green] [dim]({len(written)} files in {output / target})[/dim]")

    if not dry_run:
        manifest.finish()
        try:
            manifests.save(manifest)
        except OSError as exc:
            print_error(FileSystemError(f"Could not write manifest: {exc}", cause=exc))
            raise typer.Exit(ExitCode.FILESYSTEM_ERROR)
    raise typer.Exit(worst)


# ===================================================================
# analyze
# ===================================================================

class _ProgressListener(PipelineListener):
    def __init__(self, progress: Progress) -> None:
        self.progress = progress
        self.task = progress.add_task("Starting...", total=100)

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        self.progress.update(self.task, completed=snapshot.overall_progress, description=snapshot.phase)


@app.command("analyze")
def analyze(
    root: Path = typer.Argument(..., help="Root of the source tree to analyze."),
    mode: Optional[str] = typer.Option(None, "--mode", help="discovery-only, analysis-only or full-pipeline."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Directory for inventory reports."),
    threshold: Optional[int] = typer.Option(None, "--threshold", help="Readiness threshold (0-100)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Do not write reports."),
    parallel: bool = typer.Option(False, "--parallel", help="Parse units in parallel batches."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Path to a uimigrate.toml file."),
):
    """Run the discovery, analysis and inventory pipeline over a source tree."""
    setup_logging(verbose)
    try:
        cfg = load_config(config_file, cwd=root if root.is_dir() else None)
    except PipelineError as error:
        print_error(error)
        raise typer.Exit(exit_code_for(error))

    if mode is not None:
        cfg.pipeline.mode = mode
    if output is not None:
        cfg.pipeline.output_dir = str(output)
    if threshold is not None:
        cfg.inventory.readiness_threshold = threshold
    cfg.pipeline.dry_run = dry_run or cfg.pipeline.dry_run
    cfg.pipeline.parallel = parallel or cfg.pipeline.parallel
    try:
        validate_config(cfg)
    except PipelineError as error:
        print_error(error)
        raise typer.Exit(exit_code_for(error))

    with Progress(
        TextColumn("[cyan]{task.description:<22}[/cyan]"), BarColumn(), TaskProgressColumn(), console=console,
    ) as progress:
        orchestrator = PipelineOrchestrator(cfg, listeners=[_ProgressListener(progress)])
        result = orchestrator.run(root)

    if result.discovery is not None:
        stats = result.discovery.statistics
        table = Table(title="Discovery", show_header=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value")
        table.add_row("Files scanned", str(stats.total_files))
        table.add_row("Components", str(stats.total_components))
        table.add_row("By kind", ", ".join(f"{k}: {v}" for k, v in stats.by_kind.items()) or "-")
        table.add_row("By complexity", ", ".join(f"{k}: {v}" for k, v in stats.by_complexity.items()) or "-")
        if result.analysis is not None:
            metrics = result.analysis.metrics
            table.add_row("Dependencies", str(metrics.total_dependencies))
            table.add_row("Circular", str(metrics.circular_dependencies))
        console.print(table)

    if result.inventory is not None:
        summary = result.inventory.summary
        table = Table(title="Readiness", show_header=True)
        table.add_column("Component", style="cyan")
        table.add_column("Score", justify="right")
        table.add_column("Level")
        table.add_column("Effort")
        table.add_column("Risk")
        for readiness in sorted(result.inventory.components, key=lambda r: (-r.overall_score, r.unit_id)):
            table.add_row(readiness.name, str(readiness.overall_score), readiness.readiness_level,
                          readiness.effort, readiness.risk)
        console.print(table)
        console.print(
            f"Average readiness [bold]{summary.average_score:.0f}%[/bold], "
            f"estimated {summary.estimated_person_months} person-month(s), "
            f"{len(result.inventory.roadmap.phases)} roadmap phase(s)."
        )
    for path in result.report_paths:
        console.print(f"[green]Wrote {path}[/green]")

    if not result.success:
        last = orchestrator.context.errors.history[-1] if orchestrator.context.errors.history else None
        if last is not None:
            print_error(last)
            raise typer.Exit(exit_code_for(last))
        raise typer.Exit(ExitCode.VALIDATION_ERROR)


if __name__ == "__main__":
    app()
