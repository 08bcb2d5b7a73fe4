"""Inventory report writers: JSON, Markdown and a DOT dependency graph."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .models import ComponentInventory, DependencyAnalysisResult, DependencyGraph, to_dict

JSON_REPORT = "component-inventory.json"
MARKDOWN_REPORT = "component-inventory.md"
DOT_REPORT = "dependency-graph.dot"


def inventory_payload(
    inventory: ComponentInventory,
    analysis: Optional[DependencyAnalysisResult] = None,
) -> Dict:
    payload = to_dict(inventory)
    payload["pipeline_version"] = __version__
    if analysis is not None:
        payload["dependencies"] = {
            "metrics": to_dict(analysis.metrics),
            "cycles": analysis.graph.cycles,
            "clusters": [to_dict(c) for c in analysis.graph.clusters],
            "external": {name: to_dict(ext) for name, ext in analysis.external_dependencies.items()},
            "recommendations": [to_dict(r) for r in analysis.recommendations],
        }
    return payload


def render_markdown(inventory: ComponentInventory) -> str:
    names = {r.unit_id: r for r in inventory.components}
    summary = inventory.summary
    md: List[str] = [
        "# Component Migration Inventory",
        "",
        f"Generated on: {inventory.generated_at}",
        f"Source: {inventory.source}",
        f"Pipeline Version: {__version__}",
        "",
        "## Executive Summary",
        "",
        f"- **Total Components**: {summary.total_components}",
        f"- **Average Readiness**: {round(summary.average_score)}%",
        f"- **Estimated Effort**: {summary.estimated_person_months} person-months",
        "",
        "### Component Readiness Distribution",
        "",
    ]
    md += [f"- **{level}**: {count} components" for level, count in summary.by_level.items()]
    md += ["", "### Key Recommendations", ""]
    md += [f"- {rec}" for rec in summary.key_recommendations]
    md.append("")
    if summary.critical_risks:
        md += ["### Critical Risks", ""]
        md += [f"- {risk}" for risk in summary.critical_risks]
        md.append("")

    md += [
        "## Migration Roadmap",
        "",
        f"**Approach**: {inventory.roadmap.approach}",
        f"**Timeline**: {inventory.roadmap.total_duration}",
        "",
    ]
    for phase in inventory.roadmap.phases:
        md += [
            f"### {phase.name}",
            "",
            phase.description,
            "",
            f"**Duration**: {phase.duration}",
            f"**Components**: {len(phase.units)}",
            "",
        ]
        md += [f"- {names[u].name if u in names else u}" for u in phase.units]
        md.append("")

    md += ["## Component Inventory", ""]
    for section in inventory.sections:
        md += [
            f"### {section.title}",
            "",
            section.description,
            "",
            f"**Count**: {len(section.units)}",
            f"**Average Score**: {round(section.average_score)}%",
            "",
        ]
        for unit_id in section.units:
            readiness = names[unit_id]
            md.append(f"- **{readiness.name}** ({readiness.overall_score}%) - {unit_id}")
        md.append("")
    return "\n".join(md)


def export_dot(graph: DependencyGraph, output_file: Path) -> None:
    lines = ["digraph Dependencies {", "  rankdir=LR;"]
    for node in graph.nodes.values():
        shape = "box" if node.node_type == "component" else "ellipse"
        lines.append(f'  "{_esc(node.id)}" [shape={shape}, label="{_esc(node.id)}"];')
    for edge in graph.edges:
        style = ", color=red" if edge.is_cyclic else ""
        lines.append(f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}" [label="{edge.type}"{style}];')
    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")


def write_reports(
    inventory: ComponentInventory,
    output_dir: Path,
    analysis: Optional[DependencyAnalysisResult] = None,
) -> List[Path]:
    """Write the inventory reports into *output_dir*; returns the written paths."""
    output_dir.mkdir(parents=True, exist_ok=True)
    json_path = output_dir / JSON_REPORT
    json_path.write_text(json.dumps(inventory_payload(inventory, analysis), indent=2), encoding="utf-8")
    md_path = output_dir / MARKDOWN_REPORT
    md_path.write_text(render_markdown(inventory), encoding="utf-8")
    paths = [json_path, md_path]
    if analysis is not None:
        dot_path = output_dir / DOT_REPORT
        export_dot(analysis.graph, dot_path)
        paths.append(dot_path)
    return paths


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
