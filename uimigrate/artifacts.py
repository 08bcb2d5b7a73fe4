"""Per-unit migration artifacts: component module, README, types and test scaffold."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import List, Optional

from . import __version__
from .models import ComponentReadiness, TransformationResult, ValidationReport


@dataclass
class ArtifactBundle:
    name: str
    component: str
    readme: str
    types: Optional[str] = None
    test: Optional[str] = None

    def relative_paths(self) -> List[str]:
        paths = [f"{self.name}.tsx", "README.md"]
        if self.types is not None:
            paths.append(f"{self.name}.types.ts")
        if self.test is not None:
            paths.append(f"__tests__/{self.name}.test.tsx")
        return paths


def render_readme(
    result: TransformationResult,
    readiness: Optional[ComponentReadiness] = None,
    validation: Optional[ValidationReport] = None,
) -> str:
    """Template README describing where the component came from and how it scored."""
    component = result.component
    lines = [
        f"# {component.name}",
        "",
        f"> Migrated from `{component.file_path}` by uimigrate {__version__}.",
        "",
    ]
    if component.metadata.documentation:
        lines.extend([component.metadata.documentation, ""])

    lines.extend([
        "## Provenance",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| Source | `{component.file_path}` |",
        f"| Source kind | {component.kind} |",
        f"| Complexity | {component.complexity} |",
        f"| Migration effort | {result.migration_effort} |",
        f"| Compatibility score | {result.compatibility_score} |",
        f"| Generated | {date.today().isoformat()} |",
        "",
    ])

    if component.props:
        lines.extend(["## Props", "", "| Name | Type | Required | Description |", "|------|------|----------|-------------|"])
        for prop in component.props:
            required = "yes" if prop.required else "no"
            lines.append(f"| `{prop.name}` | `{prop.type}` | {required} | {prop.description} |")
        lines.append("")

    lines.extend([
        "## Usage",
        "",
        "```tsx",
        f"import {component.name} from './{component.name}';",
        "```",
        "",
    ])

    if result.hooks:
        lines.extend(["## Extracted Logic", ""])
        lines.append(f"Business logic now lives in `use{component.name}Logic`:")
        lines.append("")
        for hook in result.hooks:
            lines.append(f"- `{hook.name}` (complexity reduction {hook.complexity_reduction})")
        lines.append("")

    if readiness is not None:
        lines.extend([
            "## Readiness",
            "",
            f"- **Score**: {readiness.overall_score}% ({readiness.readiness_level})",
            f"- **Effort**: {readiness.effort}",
            f"- **Risk**: {readiness.risk}",
        ])
        for blocker in readiness.blockers:
            lines.append(f"- Blocker: {blocker}")
        lines.append("")

    if validation is not None:
        comparison = validation.comparison
        quality = validation.quality
        lines.extend([
            "## Validation",
            "",
            f"- **Equivalent**: {'yes' if comparison.equivalent else 'no'}",
            f"- **Validation score**: {comparison.validation_score}",
            f"- **Business logic preserved**: {comparison.business_logic_preservation:.0f}%",
            f"- **Type safety**: {comparison.type_safety:.0f}%",
            f"- **Quality**: {quality.overall_score:.0f} "
            f"({'production ready' if quality.production_ready else 'needs review'})",
        ])
        for issue in comparison.issues:
            lines.append(f"- `{issue.code}` ({issue.severity}): {issue.message}")
        lines.append("")

    if result.warnings:
        lines.extend(["## Migration Notes", ""])
        lines.extend(f"- {warning}" for warning in result.warnings)
        lines.append("")
    return "\n".join(lines)


def render_test_scaffold(result: TransformationResult) -> str:
    name = result.component.name
    lines = [
        "/**",
        f" * {name} tests",
        " *",
        f" * Generated scaffold for the migrated {name} component.",
        " */",
        "",
        "import React from 'react';",
        "import { render } from '@testing-library/react';",
        f"import {name} from '../{name}';",
        "",
        f"describe('{name}', () => {{",
        "  it('renders without crashing', () => {",
        f"    const props = {{}} as React.ComponentProps<typeof {name}>;",
        f"    const {{ container }} = render(<{name} {{...props}} />);",
        "    expect(container).toBeTruthy();",
        "  });",
    ]
    for handler in result.event_handlers:
        lines.append(f"  it.todo('handles {handler}');")
    for hook in result.hooks:
        lines.append(f"  it.todo('preserves {hook.name}');")
    lines.extend(["});", ""])
    return "\n".join(lines)


def build_artifacts(
    result: TransformationResult,
    readiness: Optional[ComponentReadiness] = None,
    validation: Optional[ValidationReport] = None,
    skip_tests: bool = False,
) -> ArtifactBundle:
    name = result.component.name
    types = None
    if result.component.props and result.type_definitions:
        types = f"// Prop types for {name}.\n\n{result.type_definitions}\n"
    return ArtifactBundle(
        name=name,
        component=result.code,
        readme=render_readme(result, readiness, validation),
        types=types,
        test=None if skip_tests else render_test_scaffold(result),
    )


def write_artifacts(bundle: ArtifactBundle, output_dir: Path) -> List[Path]:
    """Write *bundle* into ``output_dir/{Name}/``; OSError propagates to the caller."""
    target = Path(output_dir) / bundle.name
    target.mkdir(parents=True, exist_ok=True)
    written = []
    contents = [bundle.component, bundle.readme, bundle.types, bundle.test]
    for rel, text in zip(bundle.relative_paths(), [c for c in contents if c is not None]):
        path = target / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        written.append(path)
    return written
