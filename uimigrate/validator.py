"""Equivalency validator: compares a source unit with its migrated counterpart."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

from .context import RunContext
from .discovery import COMPLEXITY_RANK
from .models import (
    CodeCheckResult,
    ComparisonResult,
    ComponentDefinition,
    Difference,
    QualityAssessment,
    TransformationResult,
    ValidationIssue,
    ValidationReport,
)
from .syntax import find_declaration, parse_source

PRODUCTION_READY_SCORE = 70
ERROR_PENALTY = 20
WARNING_PENALTY = 5
COMPLEXITY_STEP_PENALTY = 10
KIND_CHANGE_PENALTY = 10
PERFORMANCE_BY_COMPLEXITY: Dict[str, float] = {
    "simple": 100.0,
    "moderate": 85.0,
    "complex": 70.0,
    "critical": 50.0,
}


def validation_score(issues: Sequence[ValidationIssue]) -> int:
    errors = sum(1 for i in issues if i.severity == "error")
    warnings = sum(1 for i in issues if i.severity == "warning")
    return max(0, min(100, 100 - ERROR_PENALTY * errors - WARNING_PENALTY * warnings))


def _kept_percentage(before: Sequence[str], after: Sequence[str]) -> float:
    if not before:
        return 100.0
    kept = set(after)
    return round(100.0 * sum(1 for name in before if name in kept) / len(before), 2)


class EquivalencyValidator:
    """Scores how faithfully a migrated unit preserves its source."""

    def __init__(self, ctx: RunContext, strict: bool = True) -> None:
        self.ctx = ctx
        self.log = ctx.child_logger(__name__)
        self.strict = strict

    # ------------------------------------------------------------------
    # Issue checks
    # ------------------------------------------------------------------

    def validate(self, source: ComponentDefinition, migrated: ComponentDefinition) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        if source.name != migrated.name:
            issues.append(ValidationIssue(
                "NAME_MISMATCH",
                f"Component names do not match: source={source.name}, migrated={migrated.name}",
                "error", "name",
            ))
        issues.extend(self._prop_issues(source, migrated))

        kept_logic = {bl.name for bl in migrated.business_logic}
        for logic in source.business_logic:
            if logic.name not in kept_logic:
                issues.append(ValidationIssue(
                    "MISSING_BUSINESS_LOGIC",
                    f"Business logic function '{logic.name}' is missing in migrated component",
                    "error", f"business_logic.{logic.name}",
                ))

        if source.kind != migrated.kind:
            issues.append(ValidationIssue(
                "KIND_CHANGED",
                f"Component kind changed from '{source.kind}' to '{migrated.kind}'",
                "warning", "kind",
            ))

        kept_deps = {d.name for d in migrated.dependencies}
        for dep in source.dependencies:
            if dep.critical and dep.name not in kept_deps:
                issues.append(ValidationIssue(
                    "MISSING_CRITICAL_DEPENDENCY",
                    f"Critical dependency '{dep.name}' is missing in migrated component",
                    "error", f"dependencies.{dep.name}",
                ))

        kept_patterns = set(migrated.patterns)
        for pattern in source.patterns:
            if pattern not in kept_patterns:
                issues.append(ValidationIssue(
                    "MISSING_PATTERN",
                    f"Pattern '{pattern}' used in source but not in migrated component",
                    "warning", f"patterns.{pattern}",
                ))
        return issues

    def _prop_issues(self, source: ComponentDefinition, migrated: ComponentDefinition) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        after = {p.name: p for p in migrated.props}
        before = {p.name: p for p in source.props}
        for name, prop in before.items():
            if name not in after:
                if prop.required:
                    issues.append(ValidationIssue(
                        "MISSING_REQUIRED_PROP",
                        f"Required prop '{name}' is missing in migrated component",
                        "error", f"props.{name}",
                    ))
                else:
                    issues.append(ValidationIssue(
                        "MISSING_OPTIONAL_PROP",
                        f"Optional prop '{name}' is missing in migrated component",
                        "warning", f"props.{name}",
                    ))
            elif self.strict and prop.type != after[name].type:
                issues.append(ValidationIssue(
                    "PROP_TYPE_CHANGED",
                    f"Prop '{name}' type changed from '{prop.type}' to '{after[name].type}'",
                    "warning", f"props.{name}.type",
                ))
        for name in after:
            if name not in before:
                issues.append(ValidationIssue(
                    "NEW_PROP", f"New prop '{name}' added in migrated component", "warning", f"props.{name}",
                ))
        return issues

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    @staticmethod
    def differences(source: ComponentDefinition, migrated: ComponentDefinition) -> List[Difference]:
        found: List[Difference] = []
        checks = (
            ("props", len(source.props), len(migrated.props), "warning", "Props count differs"),
            ("business-logic", len(source.business_logic), len(migrated.business_logic), "error",
             "Business logic function count differs"),
            ("dependencies", len(source.dependencies), len(migrated.dependencies), "info",
             "Dependency count differs"),
            ("patterns", len(source.patterns), len(migrated.patterns), "warning", "Pattern usage differs"),
        )
        for category, before, after, severity, description in checks:
            if before != after:
                found.append(Difference(category, description, severity, before, after))
        return found

    def compare(self, source: ComponentDefinition, migrated: ComponentDefinition) -> ComparisonResult:
        issues = self.validate(source, migrated)
        differences = self.differences(source, migrated)
        valid = not any(i.severity == "error" for i in issues)
        equivalent = valid and not any(d.severity in ("error", "critical") for d in differences)
        return ComparisonResult(
            equivalent=equivalent,
            valid=valid,
            validation_score=validation_score(issues),
            business_logic_preservation=_kept_percentage(
                [bl.name for bl in source.business_logic], [bl.name for bl in migrated.business_logic]
            ),
            type_safety=_kept_percentage([p.name for p in source.props], [p.name for p in migrated.props]),
            issues=issues,
            differences=differences,
        )

    @staticmethod
    def structure_score(source: ComponentDefinition, migrated: ComponentDefinition) -> float:
        score = 100.0
        increase = COMPLEXITY_RANK[migrated.complexity] - COMPLEXITY_RANK[source.complexity]
        score -= max(0, increase) * COMPLEXITY_STEP_PENALTY
        if source.kind != migrated.kind:
            score -= KIND_CHANGE_PENALTY
        return max(0.0, score)

    def quality(
        self,
        source: ComponentDefinition,
        migrated: ComponentDefinition,
        comparison: Optional[ComparisonResult] = None,
    ) -> QualityAssessment:
        comparison = comparison or self.compare(source, migrated)
        structure = self.structure_score(source, migrated)
        performance = PERFORMANCE_BY_COMPLEXITY[migrated.complexity]
        overall = round(
            (comparison.business_logic_preservation + comparison.type_safety + structure + performance) / 4, 2
        )
        return QualityAssessment(
            overall_score=overall,
            business_logic=comparison.business_logic_preservation,
            type_safety=comparison.type_safety,
            structure=structure,
            performance=performance,
            maintainability=round((structure + comparison.business_logic_preservation) / 2, 2),
            production_ready=overall >= PRODUCTION_READY_SCORE,
        )

    def report(self, source: ComponentDefinition, migrated: ComponentDefinition) -> ValidationReport:
        comparison = self.compare(source, migrated)
        quality = self.quality(source, migrated, comparison)
        self.log.info(
            "Validated %s: equivalent=%s score=%d quality=%.0f",
            source.id, comparison.equivalent, comparison.validation_score, quality.overall_score,
        )
        return ValidationReport(unit_id=source.id, comparison=comparison, quality=quality)

    # ------------------------------------------------------------------
    # Generated-code checks
    # ------------------------------------------------------------------

    @staticmethod
    def check_compiles(code: str, name: str = "Component") -> CodeCheckResult:
        """Re-parse generated code with the TSX grammar; any error node fails."""
        document = parse_source(code, "tsx", f"{name}.tsx")
        return CodeCheckResult(passed=not document.has_errors, errors=document.describe_errors())

    @staticmethod
    def check_completeness(source: ComponentDefinition, result: TransformationResult) -> CodeCheckResult:
        """The generated module must still declare everything the source unit declared."""
        errors: List[str] = []
        document = parse_source(result.code, "tsx", f"{source.name}.tsx")
        if find_declaration(document.root, source.name) is None:
            errors.append(f"Component declaration '{source.name}' is missing")
        props_type = f"{source.name}Props"
        if source.props and not re.search(rf"\b(?:interface|type)\s+{re.escape(props_type)}\b", result.code):
            errors.append(f"Props declaration '{props_type}' is missing")
        for logic in source.business_logic:
            if not re.search(rf"\b{re.escape(logic.name)}\b", result.code):
                errors.append(f"Business logic '{logic.name}' is missing from the generated code")
        return CodeCheckResult(passed=not errors, errors=errors)
