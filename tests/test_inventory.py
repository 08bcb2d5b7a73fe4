"""Tests for readiness scoring, inventory generation and report writing."""

import json

import pytest

from uimigrate.analyzer import DependencyAnalyzer
from uimigrate.config_manager import MigrationConfig
from uimigrate.context import RunContext
from uimigrate.inventory import (
    BLOCKER_CRITICAL,
    BLOCKER_PARSE,
    BLOCKER_UNDOCUMENTED,
    InventoryGenerator,
    ReadinessEngine,
    classify_readiness,
    format_weeks,
    round_half_up,
    tier_for,
)
from uimigrate.models import ReadinessCriteria
from uimigrate.parser import StructuralParser
from uimigrate.reports import DOT_REPORT, JSON_REPORT, MARKDOWN_REPORT, render_markdown, write_reports


@pytest.fixture
def parse_results(run_context, discovery_result):
    parser = StructuralParser(run_context)
    return {c.id: parser.parse(c) for c in discovery_result.components}


@pytest.fixture
def analysis(run_context, discovery_result):
    return DependencyAnalyzer(run_context).analyze(discovery_result.components)


@pytest.fixture
def inventory(run_context, discovery_result, parse_results, analysis):
    return InventoryGenerator(run_context).generate(discovery_result, parse_results, analysis)


def test_well_structured_unit_is_ready(run_context, components, parse_results):
    """Test a documented, covered, dependency-free unit scores as ready."""
    header = components["Header"]
    readiness = ReadinessEngine(run_context).assess(header, parse_results[header.id])

    assert readiness.criteria.documentation == 80
    assert readiness.criteria.test_coverage == 90
    assert readiness.criteria.dependency_complexity == 100
    assert readiness.overall_score >= 75
    assert readiness.readiness_level == "ready"
    assert readiness.blockers == []
    assert readiness.effort == "low"


def test_heavy_unit_is_blocked(run_context, components, parse_results, analysis):
    """Test the critical, undocumented unit is complex or high-risk with blockers."""
    daisy = components["Daisy"]
    readiness = ReadinessEngine(run_context).assess(daisy, parse_results[daisy.id], analysis)

    assert readiness.overall_score < 60
    assert readiness.readiness_level in ("complex", "high-risk")
    assert BLOCKER_CRITICAL in readiness.blockers
    assert BLOCKER_UNDOCUMENTED in readiness.blockers
    assert readiness.criteria.dependency_complexity == 0
    assert readiness.risk == "critical"
    assert "Resolve identified blockers" in readiness.prerequisites


def test_parse_failure_is_a_blocker(run_context, components, parse_results):
    """Test a failed parse lowers code quality to 50 and blocks extraction."""
    broken = components["Broken"]
    readiness = ReadinessEngine(run_context).assess(broken, parse_results[broken.id])

    assert readiness.criteria.code_quality == 50
    assert BLOCKER_PARSE in readiness.blockers


def test_missing_parse_result_is_neutral(run_context, components):
    """Test scoring without a parse result does not add the parse blocker."""
    readiness = ReadinessEngine(run_context).assess(components["Header"], None)
    assert readiness.criteria.code_quality == 50
    assert BLOCKER_PARSE not in readiness.blockers


def test_overall_score_uses_configured_weights():
    """Test the weighted sum is rounded half up and clamped."""
    cfg = MigrationConfig()
    engine = ReadinessEngine(RunContext.create(cfg, sleep=lambda s: None))

    perfect = ReadinessCriteria(*([100] * 8))
    assert engine.overall_score(perfect) == 100
    assert engine.overall_score(ReadinessCriteria()) == 0

    cfg.inventory.weights = {"documentation": 0.5, "test_coverage": 0.5}
    assert engine.overall_score(ReadinessCriteria(documentation=80, test_coverage=49)) == 65


def test_classification_boundaries():
    """Test readiness levels at their boundaries."""
    assert classify_readiness(75, 75) == "ready"
    assert classify_readiness(74, 75) == "needs-work"
    assert classify_readiness(60, 75) == "needs-work"
    assert classify_readiness(59, 75) == "complex"
    assert classify_readiness(40, 75) == "complex"
    assert classify_readiness(39, 75) == "high-risk"
    assert classify_readiness(80, 90) == "needs-work"


def test_round_half_up():
    """Test half values round away from zero."""
    assert round_half_up(82.5) == 83
    assert round_half_up(2.5) == 3
    assert round_half_up(74.49) == 74


def test_tiers_and_durations():
    """Test tier cut points and human-readable durations."""
    tiers = ("low", "medium", "high", "very-high")
    assert tier_for(2, (2, 4, 6), tiers) == "low"
    assert tier_for(3, (2, 4, 6), tiers) == "medium"
    assert tier_for(7, (2, 4, 6), tiers) == "very-high"
    assert format_weeks(1) == "1 week"
    assert format_weeks(3) == "3 weeks"
    assert format_weeks(9) == "3 months"


def test_sections_partition_units(inventory, discovery_result):
    """Test every unit lands in exactly one non-empty section."""
    listed = [u for s in inventory.sections for u in s.units]

    assert sorted(listed) == sorted(c.id for c in discovery_result.components)
    assert all(s.units for s in inventory.sections)
    assert inventory.sections[0].title in {
        "Ready for Extraction", "Needs Preparation", "Complex Components", "High-Risk Components",
    }


def test_roadmap_phases(run_context, discovery_result, parse_results):
    """Test phases are filled best score first and chained."""
    run_context.config.inventory.max_components_per_phase = 3
    inventory = InventoryGenerator(run_context).generate(discovery_result, parse_results)
    phases = inventory.roadmap.phases

    assert [len(p.units) for p in phases] == [3, 3, 1]
    assert phases[0].name == "Phase 1: Foundation"
    assert phases[1].name == "Phase 2: Core Components"
    assert phases[2].name == "Phase 3: Advanced Components"
    assert phases[0].dependencies == []
    assert phases[2].dependencies == ["Phase 2 completion"]
    scores = {r.unit_id: r.overall_score for r in inventory.components}
    ordered = [scores[u] for p in phases for u in p.units]
    assert ordered == sorted(ordered, reverse=True)


def test_summary(inventory):
    """Test the summary counts, effort and risks."""
    summary = inventory.summary

    assert summary.total_components == 7
    assert sum(summary.by_level.values()) == 7
    assert summary.by_kind["class"] == 1
    assert summary.estimated_person_months >= 1
    assert "1 circular dependencies detected" in summary.critical_risks


def test_readiness_lookup(inventory, discovery_result):
    """Test looking up one unit's readiness by id."""
    header = discovery_result.get("Header")
    assert inventory.readiness_for(header.id).name == "Header"
    assert inventory.readiness_for("missing.tsx:Nope") is None


def test_generate_reports_progress(run_context, discovery_result, parse_results):
    """Test the per-unit callback fires once per unit."""
    seen = []
    InventoryGenerator(run_context).generate(discovery_result, parse_results, on_unit=seen.append)
    assert len(seen) == 7


def test_write_reports(inventory, analysis, temp_dir):
    """Test JSON, Markdown and DOT reports are written."""
    paths = write_reports(inventory, temp_dir / "reports", analysis)

    assert [p.name for p in paths] == [JSON_REPORT, MARKDOWN_REPORT, DOT_REPORT]
    payload = json.loads(paths[0].read_text())
    assert len(payload["components"]) == 7
    assert payload["dependencies"]["cycles"] == [[
        "src/components/Alpha.tsx:Alpha", "src/components/Beta.tsx:Beta",
    ]]
    assert "digraph Dependencies" in paths[2].read_text()


def test_write_reports_without_analysis(inventory, temp_dir):
    """Test the DOT graph is only written when an analysis is supplied."""
    paths = write_reports(inventory, temp_dir)
    assert [p.name for p in paths] == [JSON_REPORT, MARKDOWN_REPORT]


def test_markdown_report(inventory):
    """Test the Markdown report headings."""
    text = render_markdown(inventory)
    assert text.startswith("# Component Migration Inventory")
    assert "## Executive Summary" in text
    assert "### Phase 1: Foundation" in text
    assert "**Header**" in text
