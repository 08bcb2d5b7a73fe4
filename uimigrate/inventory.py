"""Readiness scoring, inventory sections and the phased migration roadmap."""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional

from . import config
from .context import RunContext
from .models import (
    READINESS_LEVELS,
    ComponentDefinition,
    ComponentInventory,
    ComponentReadiness,
    DependencyAnalysisResult,
    DiscoveryResult,
    InventorySection,
    InventorySummary,
    MigrationPhase,
    MigrationRoadmap,
    ParseResult,
    ReadinessCriteria,
)

CYCLOMATIC_BLOCKER = 15

BLOCKER_CRITICAL = "Critical complexity level requires refactoring"
BLOCKER_NO_PROPS = "Missing TypeScript props interface definition"
BLOCKER_PARSE = "Component contains syntax errors or parse failures"
BLOCKER_CYCLOMATIC = "High cyclomatic complexity requires simplification"
BLOCKER_UNDOCUMENTED = "Missing component documentation"

SECTION_TEXT: Dict[str, Dict[str, object]] = {
    "ready": {
        "title": "Ready for Extraction",
        "description": "Components that are well-structured and ready for immediate extraction",
        "recommendations": [
            "Extract these components first to establish baseline",
            "Use as reference examples for other components",
            "Validate extraction process with these components",
        ],
    },
    "needs-work": {
        "title": "Needs Preparation",
        "description": "Components that require some preparation before extraction",
        "recommendations": [
            "Focus on improving test coverage",
            "Add missing documentation",
            "Simplify prop interfaces",
        ],
    },
    "complex": {
        "title": "Complex Components",
        "description": "Components with significant complexity that need careful planning",
        "recommendations": [
            "Break down into smaller components",
            "Separate business logic from presentation",
            "Consider refactoring before extraction",
        ],
    },
    "high-risk": {
        "title": "High-Risk Components",
        "description": "Components that pose significant extraction challenges",
        "recommendations": [
            "Requires significant refactoring",
            "Consider complete rewrite in target framework",
            "Extensive testing required before migration",
        ],
    },
}

PHASE_NAMES = {1: "Foundation", 2: "Core Components"}
PHASE_DESCRIPTIONS = {
    1: "Extract ready components to establish migration foundation",
    2: "Migrate core functionality components",
}
PHASE_SUCCESS_CRITERIA = [
    "All phase components migrated successfully",
    "Integration tests passing",
    "Performance benchmarks met",
]
ROADMAP_SUCCESS_METRICS = [
    "All components successfully migrated",
    "No functionality regression",
    "Performance maintained or improved",
    "Test coverage maintained",
]
AVERAGE_PHASE_WEEKS = 3
PHASE_OVERLAP = 0.8
UNITS_PER_DEVELOPER = 20


def round_half_up(value: float) -> int:
    # round() is banker's rounding; scores use the conventional half-up rule.
    return int(math.floor(round(value, 6) + 0.5))


def classify_readiness(score: int, threshold: int) -> str:
    if score >= threshold:
        return "ready"
    if score >= config.NEEDS_WORK_THRESHOLD:
        return "needs-work"
    if score >= config.COMPLEX_THRESHOLD:
        return "complex"
    return "high-risk"


def tier_for(points: int, cut_points, tiers) -> str:
    """Map *points* onto ``tiers`` using inclusive upper ``cut_points``."""
    for cut, tier in zip(cut_points, tiers):
        if points <= cut:
            return tier
    return tiers[-1]


def format_weeks(weeks: int) -> str:
    if weeks <= 1:
        return "1 week"
    if weeks <= 4:
        return f"{weeks} weeks"
    return f"{math.ceil(weeks / 4)} months"


class ReadinessEngine:
    """Scores a single unit against the weighted readiness criteria."""

    def __init__(self, ctx: RunContext) -> None:
        self.options = ctx.config.inventory

    def criteria(self, component: ComponentDefinition, parse: Optional[ParseResult]) -> ReadinessCriteria:
        return ReadinessCriteria(
            code_quality=max(0, 100 - parse.complexity * 5) if parse and parse.success else 50,
            documentation=80 if component.metadata.has_documentation else 20,
            test_coverage=int(component.metadata.test_coverage),
            dependency_complexity=max(0, 100 - len(component.dependencies) * 10),
            props_clarity=min(100, len(component.props) * 20) if component.props else 80,
            logic_separation=70 if component.business_logic else 90,
            pattern_compliance=85 if component.patterns else 60,
            migration_compatibility=self.migration_compatibility(component),
        )

    @staticmethod
    def migration_compatibility(component: ComponentDefinition) -> int:
        score = 80
        if component.kind == "functional":
            score += 10
        elif component.kind == "class":
            score -= 10
        if "useState" in component.patterns:
            score += 5
        if "useEffect" in component.patterns:
            score += 5
        if component.complexity == "complex":
            score -= 15
        elif component.complexity == "critical":
            score -= 25
        return max(0, min(100, score))

    def overall_score(self, criteria: ReadinessCriteria) -> int:
        weights = self.options.weights
        total = sum(getattr(criteria, name) * weight for name, weight in weights.items())
        return max(0, min(100, round_half_up(total)))

    @staticmethod
    def blockers(component: ComponentDefinition, parse: Optional[ParseResult]) -> List[str]:
        blockers = []
        if component.complexity == "critical":
            blockers.append(BLOCKER_CRITICAL)
        if not component.props and component.kind == "functional":
            blockers.append(BLOCKER_NO_PROPS)
        if parse is not None and not parse.success:
            blockers.append(BLOCKER_PARSE)
        if parse is not None and parse.complexity > CYCLOMATIC_BLOCKER:
            blockers.append(BLOCKER_CYCLOMATIC)
        if not component.metadata.has_documentation:
            blockers.append(BLOCKER_UNDOCUMENTED)
        return blockers

    @staticmethod
    def prerequisites(blockers: List[str], criteria: ReadinessCriteria) -> List[str]:
        steps = []
        if blockers:
            steps.append("Resolve identified blockers")
        if criteria.test_coverage < 50:
            steps.append("Improve test coverage to at least 50%")
        if criteria.documentation < 50:
            steps.append("Add comprehensive component documentation")
        if criteria.code_quality < 60:
            steps.append("Refactor to improve code quality")
        if criteria.dependency_complexity < 60:
            steps.append("Simplify dependency structure")
        return steps

    def effort(self, component: ComponentDefinition, parse: Optional[ParseResult]) -> str:
        points = {"functional": 1, "hook": 1, "class": 2, "higher-order": 3}.get(component.kind, 0)
        points += {"moderate": 1, "complex": 2, "critical": 3}.get(component.complexity, 0)
        points += min(2, len(component.dependencies) // 3)
        points += min(2, len(component.business_logic) // 2)
        if parse is not None and parse.success:
            points += min(2, parse.complexity // 10)
        return tier_for(points, self.options.effort_cut_points, ("low", "medium", "high", "very-high"))

    def risk(self, component: ComponentDefinition, parse: Optional[ParseResult], dependency_count: int) -> str:
        points = {"critical": 3, "complex": 2}.get(component.complexity, 0)
        if dependency_count > 5:
            points += 2
        if dependency_count > 10:
            points += 3
        if parse is not None and not parse.success:
            points += 2
        if parse is not None and parse.complexity > 20:
            points += 3
        if component.metadata.test_coverage < 30:
            points += 2
        return tier_for(points, self.options.risk_cut_points, ("low", "medium", "high", "critical"))

    def assess(
        self,
        component: ComponentDefinition,
        parse: Optional[ParseResult],
        analysis: Optional[DependencyAnalysisResult] = None,
    ) -> ComponentReadiness:
        criteria = self.criteria(component, parse)
        score = self.overall_score(criteria)
        blockers = self.blockers(component, parse)
        dependency_count = (
            len(analysis.for_unit(component.id)) if analysis is not None else len(component.dependencies)
        )
        return ComponentReadiness(
            unit_id=component.id,
            name=component.name,
            criteria=criteria,
            overall_score=score,
            readiness_level=classify_readiness(score, self.options.readiness_threshold),
            blockers=blockers,
            prerequisites=self.prerequisites(blockers, criteria),
            effort=self.effort(component, parse),
            risk=self.risk(component, parse, dependency_count),
        )


class InventoryGenerator:
    """Builds the :class:`ComponentInventory` from the earlier phases' output."""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx
        self.log = ctx.child_logger(__name__)
        self.options = ctx.config.inventory
        self.engine = ReadinessEngine(ctx)

    def generate(
        self,
        discovery: DiscoveryResult,
        parse_results: Dict[str, ParseResult],
        analysis: Optional[DependencyAnalysisResult] = None,
        on_unit=None,
    ) -> ComponentInventory:
        readiness: List[ComponentReadiness] = []
        for component in discovery.components:
            self.ctx.token.raise_if_cancelled(self.ctx.error_context(operation="inventory-generation"))
            readiness.append(self.engine.assess(component, parse_results.get(component.id), analysis))
            if on_unit is not None:
                on_unit(component)

        inventory = ComponentInventory(
            generated_at=datetime.now(timezone.utc).isoformat(),
            threshold=self.options.readiness_threshold,
            source=discovery.root,
            components=readiness,
            sections=self.sections(readiness),
            roadmap=self.roadmap(readiness),
            summary=self.summary(discovery, readiness, analysis),
        )
        self.log.info(
            "Inventory: %d components, average readiness %.0f%%",
            inventory.summary.total_components, inventory.summary.average_score,
        )
        return inventory

    @staticmethod
    def sections(readiness: List[ComponentReadiness]) -> List[InventorySection]:
        sections = []
        for level in READINESS_LEVELS:
            members = [r for r in readiness if r.readiness_level == level]
            if not members:
                continue
            text = SECTION_TEXT[level]
            sections.append(InventorySection(
                level=level,
                title=text["title"],
                description=text["description"],
                units=[r.unit_id for r in members],
                recommendations=list(text["recommendations"]),
                average_score=round(sum(r.overall_score for r in members) / len(members), 1),
            ))
        return sections

    def roadmap(self, readiness: List[ComponentReadiness]) -> MigrationRoadmap:
        ordered = sorted(readiness, key=lambda r: (-r.overall_score, r.unit_id))
        size = self.options.max_components_per_phase
        phases = []
        for start in range(0, len(ordered), size):
            number = len(phases) + 1
            units = [r.unit_id for r in ordered[start:start + size]]
            phases.append(MigrationPhase(
                number=number,
                name=f"Phase {number}: {PHASE_NAMES.get(number, 'Advanced Components')}",
                units=units,
                duration=format_weeks(math.ceil(len(units) * self.options.weeks_per_component)),
                developers=math.ceil(len(units) / UNITS_PER_DEVELOPER),
                dependencies=[f"Phase {number - 1} completion"] if number > 1 else [],
                success_criteria=list(PHASE_SUCCESS_CRITERIA),
                description=PHASE_DESCRIPTIONS.get(number, "Handle complex and high-risk components"),
            ))
        total_weeks = math.ceil(len(phases) * AVERAGE_PHASE_WEEKS * PHASE_OVERLAP)
        return MigrationRoadmap(
            phases=phases,
            total_duration=f"{total_weeks} weeks" if total_weeks <= 4 else f"{math.ceil(total_weeks / 4)} months",
            developers=math.ceil(len(readiness) / UNITS_PER_DEVELOPER),
            success_metrics=list(ROADMAP_SUCCESS_METRICS),
        )

    def summary(
        self,
        discovery: DiscoveryResult,
        readiness: List[ComponentReadiness],
        analysis: Optional[DependencyAnalysisResult],
    ) -> InventorySummary:
        count = len(readiness)
        multipliers = self.options.effort_multipliers
        effort_points = sum(multipliers.get(r.effort, 1) for r in readiness)
        return InventorySummary(
            total_components=count,
            by_level=dict(Counter(r.readiness_level for r in readiness)),
            by_kind=dict(Counter(c.kind for c in discovery.components)),
            by_complexity=dict(Counter(c.complexity for c in discovery.components)),
            average_score=round(sum(r.overall_score for r in readiness) / count, 1) if count else 0.0,
            estimated_person_months=math.ceil(effort_points / 4),
            key_recommendations=self._key_recommendations(readiness),
            critical_risks=self._critical_risks(readiness, analysis),
        )

    @staticmethod
    def _key_recommendations(readiness: List[ComponentReadiness]) -> List[str]:
        notes = []
        ready = sum(1 for r in readiness if r.readiness_level == "ready")
        high_risk = sum(1 for r in readiness if r.readiness_level == "high-risk")
        if ready:
            notes.append(f"Start with {ready} ready components to establish migration process")
        if high_risk:
            notes.append(f"{high_risk} high-risk components require significant refactoring")
        if sum(1 for r in readiness if r.criteria.test_coverage < 50) > len(readiness) * 0.3:
            notes.append("Improve test coverage across the codebase before migration")
        if any(r.criteria.dependency_complexity < 50 for r in readiness):
            notes.append("Simplify dependency structures for easier extraction")
        return notes

    @staticmethod
    def _critical_risks(
        readiness: List[ComponentReadiness],
        analysis: Optional[DependencyAnalysisResult],
    ) -> List[str]:
        risks = []
        critical = sum(1 for r in readiness if r.risk == "critical")
        if critical:
            risks.append(f"{critical} components have critical extraction risks")
        if analysis is not None and analysis.graph.cycles:
            risks.append(f"{len(analysis.graph.cycles)} circular dependencies detected")
        if sum(1 for r in readiness if r.criteria.test_coverage == 0) > len(readiness) * 0.5:
            risks.append("Over 50% of components lack test coverage")
        if sum(1 for r in readiness if r.criteria.documentation < 30) > len(readiness) * 0.4:
            risks.append("Significant portion of components lack proper documentation")
        return risks
