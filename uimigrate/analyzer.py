"""Dependency analyzer: import/usage graph, cycles, clusters and metrics."""

from __future__ import annotations

import fnmatch
import posixpath
import time
from collections import defaultdict, deque
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .context import RunContext
from .discovery import HOC_NAME, HOOK_NAME, import_bindings, package_name
from .errors import ErrorSeverity, FileSystemError, ParsingError
from .models import (
    Cluster,
    ComponentDefinition,
    DependencyAnalysisResult,
    DependencyDetail,
    DependencyGraph,
    DependencyMetrics,
    ExternalDependency,
    ExtractionRecommendation,
    GraphEdge,
    GraphNode,
    UsageContext,
)
from .syntax import (
    FUNCTION_KINDS,
    SyntaxDocument,
    SyntaxNode,
    SyntaxVisitor,
    callee_name,
    find_declaration,
    parse_path,
    string_value,
)

# ---------------------------------------------------------------------------
# External package classification
# ---------------------------------------------------------------------------
CLASSIFICATION_RULES: List[Tuple[str, Tuple[str, ...]]] = [
    ("framework", ("react", "react-*", "next", "vue", "@angular/*", "preact")),
    ("ui-library", (
        "@mui/*", "@material-ui/*", "@ant-design/*", "antd", "@chakra-ui/*", "chakra-ui",
        "styled-components", "@emotion/*",
    )),
    ("utility", ("lodash", "lodash-es", "lodash.*", "ramda", "date-fns", "moment", "dayjs", "axios", "clsx", "classnames")),
    ("testing", ("jest", "@testing-library/*", "enzyme", "enzyme-*", "cypress", "vitest")),
    ("build-tool", ("webpack", "webpack-*", "vite", "rollup", "@babel/*", "babel-*", "esbuild")),
]
DEPRECATED_PACKAGES = frozenset({"moment", "enzyme", "request"})
DEV_CLASSIFICATIONS = frozenset({"testing", "build-tool"})
RESOLVE_EXTENSIONS = (".tsx", ".ts", ".jsx", ".js")
RISK_ORDER = ("low", "medium", "high", "critical")


def classify_package(name: str) -> str:
    for classification, patterns in CLASSIFICATION_RULES:
        if any(fnmatch.fnmatch(name, pattern) for pattern in patterns):
            return classification
    return "unknown"


def suggest_disposition(name: str, classification: str) -> str:
    if name in DEPRECATED_PACKAGES:
        return "remove"
    if classification == "framework":
        return "keep"
    if classification == "build-tool":
        return "replace"
    return "evaluate"


def _max_risk(*risks: str) -> str:
    return max(risks, key=RISK_ORDER.index)


# ===================================================================
# Graph algorithms
# ===================================================================

def detect_cycles(adjacency: Dict[str, List[str]]) -> List[List[str]]:
    """Depth-first search reporting every back-edge-closed path once.

    A cycle is recorded when the walk reaches a node that is still on the
    current DFS stack.  Each cycle is rotated to start at its smallest id so
    the same loop found from different entry points is reported once.
    """
    white, gray, black = 0, 1, 2
    color: Dict[str, int] = defaultdict(int)
    cycles: List[List[str]] = []
    seen: Set[Tuple[str, ...]] = set()

    for start in sorted(adjacency):
        if color[start] != white:
            continue
        color[start] = gray
        path = [start]
        stack = [iter(sorted(adjacency.get(start, ())))]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                color[path.pop()] = black
                stack.pop()
                continue
            if color[nxt] == gray:
                cycle = path[path.index(nxt):]
                pivot = cycle.index(min(cycle))
                key = tuple(cycle[pivot:] + cycle[:pivot])
                if key not in seen:
                    seen.add(key)
                    cycles.append(list(key))
            elif color[nxt] == white:
                color[nxt] = gray
                path.append(nxt)
                stack.append(iter(sorted(adjacency.get(nxt, ()))))
    return cycles


def find_clusters(
    units: Iterable[str],
    adjacency: Dict[str, List[str]],
    threshold: float,
    together: float,
    staged: float,
) -> List[Cluster]:
    """Group connected units whose internal edge density reaches *threshold*."""
    unit_set = set(units)
    undirected: Dict[str, Set[str]] = defaultdict(set)
    for source, targets in adjacency.items():
        for target in targets:
            if source in unit_set and target in unit_set and source != target:
                undirected[source].add(target)
                undirected[target].add(source)

    clusters: List[Cluster] = []
    visited: Set[str] = set()
    for start in sorted(unit_set):
        if start in visited or start not in undirected:
            continue
        members = []
        queue = deque([start])
        visited.add(start)
        while queue:
            node = queue.popleft()
            members.append(node)
            for neighbour in sorted(undirected[node]):
                if neighbour not in visited:
                    visited.add(neighbour)
                    queue.append(neighbour)
        n = len(members)
        if n < 2:
            continue
        pairs = sum(len(undirected[m]) for m in members) / 2
        cohesion = pairs / (n * (n - 1) / 2)
        if cohesion < threshold:
            continue
        if cohesion >= together:
            strategy = "together"
        elif cohesion >= staged:
            strategy = "staged"
        else:
            strategy = "individual"
        clusters.append(Cluster(
            id=f"cluster-{len(clusters) + 1}",
            units=sorted(members),
            cohesion=round(cohesion, 3),
            strategy=strategy,
        ))
    return clusters


def reachable_within(adjacency: Dict[str, List[str]], start: str, max_depth: int) -> Dict[str, int]:
    """Nodes reachable from *start* with their BFS depth (excluding *start*)."""
    depths: Dict[str, int] = {}
    queue = deque([(start, 0)])
    while queue:
        node, depth = queue.popleft()
        if depth >= max_depth:
            continue
        for target in sorted(adjacency.get(node, ())):
            if target != start and target not in depths:
                depths[target] = depth + 1
                queue.append((target, depth + 1))
    return depths


# ===================================================================
# Usage traversal
# ===================================================================

class UsageVisitor(SyntaxVisitor):
    """Records where imported bindings are used inside a declaration."""

    def __init__(self, bindings: Iterable[str]) -> None:
        super().__init__()
        self.bindings = set(bindings)
        self.usages: Dict[str, List[UsageContext]] = defaultdict(list)
        self.kinds: Dict[str, Set[str]] = defaultdict(set)
        self.on("call_expression", self._call)
        self.on("member_expression", self._member)
        self.on("type_identifier", self._type)
        self.on("jsx_element", self._element)
        self.on("jsx_self_closing_element", self._self_closing)
        self.on("jsx_attribute", self._attribute)

    def _record(self, binding: str, node: SyntaxNode, usage: str) -> None:
        self.usages[binding].append(UsageContext(node.start_line, node.start_column + 1, usage))
        self.kinds[binding].add(usage)

    def _call(self, node: SyntaxNode) -> None:
        fn = node.child("function")
        if fn is None:
            return
        if fn.kind == "identifier" and fn.text in self.bindings:
            self._record(fn.text, node, "call")
            if HOC_NAME.match(fn.text):
                self.kinds[fn.text].add("higher-order")
        if callee_name(node) == "useContext":
            args = node.child("arguments")
            for arg in args.named_children if args is not None else []:
                if arg.kind == "identifier" and arg.text in self.bindings:
                    self._record(arg.text, arg, "call")
                    self.kinds[arg.text].add("context")

    def _member(self, node: SyntaxNode) -> None:
        obj = node.child("object")
        if obj is not None and obj.kind == "identifier" and obj.text in self.bindings:
            self._record(obj.text, node, "member-access")

    def _type(self, node: SyntaxNode) -> None:
        if node.text in self.bindings:
            self._record(node.text, node, "type-reference")

    def _element(self, node: SyntaxNode) -> None:
        opening = node.child("open_tag")
        name = _jsx_root_name(opening)
        if name not in self.bindings:
            return
        self._record(name, opening, "jsx-element")
        for child in node.named_children:
            if child.kind == "jsx_expression" and any(c.kind in FUNCTION_KINDS for c in child.named_children):
                self.kinds[name].add("render-prop")
        self._check_render_attributes(name, opening)

    def _self_closing(self, node: SyntaxNode) -> None:
        name = _jsx_root_name(node)
        if name in self.bindings:
            self._record(name, node, "jsx-element")
            self._check_render_attributes(name, node)

    def _check_render_attributes(self, name: str, element: SyntaxNode) -> None:
        for attr in element.named_children:
            if attr.kind == "jsx_attribute" and attr.first("arrow_function") is not None:
                attr_name = attr.named_children[0].text if attr.named_children else ""
                if attr_name.startswith("render") or attr_name == "children":
                    self.kinds[name].add("render-prop")

    def _attribute(self, node: SyntaxNode) -> None:
        for ident in node.find_all(["identifier"]):
            if ident.text in self.bindings:
                self._record(ident.text, ident, "prop-passing")


def _jsx_root_name(element: Optional[SyntaxNode]) -> str:
    if element is None:
        return ""
    name = element.child("name")
    return name.text.split(".")[0] if name is not None else ""


def relationship_type(bindings: List[str], kinds: Dict[str, Set[str]]) -> str:
    used = set()
    for binding in bindings:
        used |= kinds.get(binding, set())
    if any(b.endswith("Context") for b in bindings) or "context" in used:
        return "context"
    if any(HOOK_NAME.match(b) for b in bindings):
        return "hook"
    if "higher-order" in used:
        return "higher-order"
    if "render-prop" in used:
        return "render-prop"
    if "jsx-element" in used:
        return "children"
    if "prop-passing" in used:
        return "props"
    return "import"


# ===================================================================
# Analyzer
# ===================================================================

class DependencyAnalyzer:
    """Builds the dependency graph over every discovered unit.

    Units are processed one at a time, so the dependency cache and the
    external-package registry are only ever touched by a single writer.
    """

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx
        self.log = ctx.child_logger(__name__)
        self.options = ctx.config.analysis
        self._external: Dict[str, ExternalDependency] = {}
        self._details: Dict[Tuple[str, str], DependencyDetail] = {}

    def analyze(
        self,
        components: List[ComponentDefinition],
        documents: Optional[Dict[str, SyntaxDocument]] = None,
    ) -> DependencyAnalysisResult:
        started = time.perf_counter()
        self._external = {}
        self._details = {}
        warnings: List[str] = []

        by_file: Dict[str, List[ComponentDefinition]] = defaultdict(list)
        for component in components:
            by_file[component.file_path].append(component)
        primary = {path: _primary_unit(units) for path, units in by_file.items()}

        for file_path in sorted(by_file):
            units = by_file[file_path]
            self.ctx.token.raise_if_cancelled(self.ctx.error_context(operation="dependency-analysis"))
            document = (documents or {}).get(units[0].absolute_path)
            if document is None:
                try:
                    document = self.ctx.errors.run_with_recovery(
                        lambda: _read_document(units[0].absolute_path),
                        self.ctx.error_context(operation="dependency-analysis", file_path=file_path),
                    )
                except FileSystemError as error:
                    warnings.extend(f"Could not analyze dependencies of {u.id}: {error.message}" for u in units)
                    continue
            if document.has_errors:
                reason = "; ".join(document.describe_errors(limit=2))
                for unit in units:
                    message = f"Could not analyze dependencies of {unit.id}: {reason}"
                    warnings.append(message)
                    self.ctx.errors.record(ParsingError(
                        message,
                        self.ctx.error_context(unit=unit.id, operation="dependency-analysis", file_path=file_path),
                        severity=ErrorSeverity.LOW,
                    ))
                continue
            self._analyze_file(document, units, primary)

        graph = self._build_graph(components)
        details = list(self._details.values())
        if self.options.detect_cycles:
            graph.cycles = detect_cycles(self._adjacency(graph))
            self._mark_cycles(graph, details)
        if self.options.include_transitive:
            details.extend(self._transitive(graph, components))
        if self.options.generate_clusters:
            graph.clusters = find_clusters(
                [c.id for c in components],
                self._adjacency(graph),
                self.options.cluster_threshold,
                self.options.together_cohesion,
                self.options.staged_cohesion,
            )

        result = DependencyAnalysisResult(
            dependencies=details,
            external_dependencies=dict(sorted(self._external.items())),
            graph=graph,
            warnings=warnings,
        )
        result.metrics = self._metrics(components, graph, details)
        result.recommendations = self._recommendations(components, graph, details)
        result.duration = time.perf_counter() - started
        self.log.info(
            "Analyzed %d components: %d edges, %d cycles, %d clusters",
            len(components), len(graph.edges), len(graph.cycles), len(graph.clusters),
        )
        return result

    # ------------------------------------------------------------------
    # Per-file import extraction
    # ------------------------------------------------------------------

    def _analyze_file(
        self,
        document: SyntaxDocument,
        units: List[ComponentDefinition],
        primary: Dict[str, str],
    ) -> None:
        imports = [stmt for stmt in document.root.named_children if stmt.kind == "import_statement"]
        if not imports:
            return
        scopes = {}
        for unit in units:
            found = find_declaration(document.root, unit.name)
            scopes[unit.id] = found[0] if found else document.root

        for stmt in imports:
            import_path = string_value(stmt.child("source"))
            bindings = import_bindings(stmt)
            visitors = {}
            for unit in units:
                visitor = UsageVisitor(bindings)
                visitor.visit(scopes[unit.id])
                visitors[unit.id] = visitor

            if len(units) == 1:
                consumers = [units[0]]
            else:
                consumers = [u for u in units if visitors[u.id].usages]
                if not consumers:
                    consumers = [next(u for u in units if u.id == primary[u.file_path])]

            for unit in consumers:
                visitor = visitors[unit.id]
                contexts = [UsageContext(stmt.start_line, stmt.start_column + 1, "import")]
                for binding in bindings:
                    contexts.extend(visitor.usages.get(binding, []))
                self._add_dependency(unit, import_path, bindings, contexts, visitor.kinds, primary)

    def _add_dependency(
        self,
        unit: ComponentDefinition,
        import_path: str,
        bindings: List[str],
        contexts: List[UsageContext],
        kinds: Dict[str, Set[str]],
        primary: Dict[str, str],
    ) -> None:
        external = not import_path.startswith(".")
        target = package_name(import_path) if external else self._resolve(unit.file_path, import_path, primary)
        dep_type = relationship_type(bindings, kinds)
        key = (unit.id, target)
        detail = self._details.get(key)
        if detail is None:
            detail = DependencyDetail(
                source=unit.id,
                target=target,
                type=dep_type,
                import_path=import_path,
                is_external=external,
            )
            self._details[key] = detail
            if external:
                self._register_external(target, unit.id)
        elif detail.type == "import":
            detail.type = dep_type
        for binding in bindings:
            if binding not in detail.bindings:
                detail.bindings.append(binding)
        detail.usage_contexts.extend(contexts)
        detail.extraction_risk = self._risk(detail)

    def _risk(self, detail: DependencyDetail) -> str:
        if (
            len(detail.bindings) > self.options.high_risk_bindings
            or detail.type == "context"
            or any("context" in b.lower() for b in detail.bindings)
        ):
            return "high"
        if ".." in detail.import_path:
            return "medium"
        return "low"

    def _register_external(self, name: str, unit_id: str) -> None:
        entry = self._external.get(name)
        if entry is None:
            classification = classify_package(name)
            entry = self._external[name] = ExternalDependency(
                name=name,
                classification=classification,
                disposition=suggest_disposition(name, classification),
                is_dev=classification in DEV_CLASSIFICATIONS,
            )
        entry.usage_count += 1
        if unit_id not in entry.used_by:
            entry.used_by.append(unit_id)
            entry.used_by.sort()

    @staticmethod
    def _resolve(file_path: str, import_path: str, primary: Dict[str, str]) -> str:
        base = posixpath.dirname(file_path)
        target = posixpath.normpath(posixpath.join(base, import_path))
        candidates = [target]
        candidates += [target + ext for ext in RESOLVE_EXTENSIONS]
        candidates += [f"{target}/index{ext}" for ext in RESOLVE_EXTENSIONS]
        for candidate in candidates:
            if candidate in primary:
                return primary[candidate]
        return target

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def _build_graph(self, components: List[ComponentDefinition]) -> DependencyGraph:
        graph = DependencyGraph()
        for component in components:
            graph.nodes[component.id] = GraphNode(component.id, "component")
        for detail in self._details.values():
            if detail.target not in graph.nodes:
                graph.nodes[detail.target] = GraphNode(
                    detail.target, "external" if detail.is_external else "internal"
                )
            graph.edges.append(GraphEdge(detail.source, detail.target, detail.type, weight=max(1, len(detail.bindings))))
            graph.nodes[detail.source].out_degree += 1
            graph.nodes[detail.target].in_degree += 1

        denominator = max(len(graph.nodes) - 1, 1)
        for node in graph.nodes.values():
            node.centrality = round((node.in_degree + node.out_degree) / denominator, 4)
        graph.nodes = dict(sorted(graph.nodes.items()))
        graph.edges.sort(key=lambda e: (e.source, e.target))
        return graph

    @staticmethod
    def _adjacency(graph: DependencyGraph) -> Dict[str, List[str]]:
        adjacency: Dict[str, List[str]] = {node_id: [] for node_id in graph.nodes}
        for edge in graph.edges:
            adjacency[edge.source].append(edge.target)
        return adjacency

    def _mark_cycles(self, graph: DependencyGraph, details: List[DependencyDetail]) -> None:
        cyclic: Dict[Tuple[str, str], int] = {}
        for cycle in graph.cycles:
            for i, node in enumerate(cycle):
                pair = (node, cycle[(i + 1) % len(cycle)])
                cyclic[pair] = max(cyclic.get(pair, 0), len(cycle))
        for edge in graph.edges:
            if (edge.source, edge.target) in cyclic:
                edge.is_cyclic = True
        for detail in details:
            length = cyclic.get((detail.source, detail.target))
            if length:
                detail.level = "circular"
                detail.extraction_risk = _max_risk(
                    detail.extraction_risk, "critical" if length > 2 else "high"
                )

    def _transitive(self, graph: DependencyGraph, components: List[ComponentDefinition]) -> List[DependencyDetail]:
        unit_ids = {c.id for c in components}
        adjacency = {
            source: [t for t in targets if t in unit_ids]
            for source, targets in self._adjacency(graph).items()
            if source in unit_ids
        }
        transitive: List[DependencyDetail] = []
        for unit_id in sorted(unit_ids):
            direct = set(adjacency.get(unit_id, ()))
            for target, depth in sorted(reachable_within(adjacency, unit_id, self.options.max_depth).items()):
                if depth < 2 or target in direct:
                    continue
                transitive.append(DependencyDetail(
                    source=unit_id,
                    target=target,
                    type="import",
                    level="transitive",
                    extraction_risk="medium" if depth > 2 else "low",
                ))
        return transitive

    # ------------------------------------------------------------------
    # Metrics / recommendations
    # ------------------------------------------------------------------

    @staticmethod
    def _metrics(
        components: List[ComponentDefinition],
        graph: DependencyGraph,
        details: List[DependencyDetail],
    ) -> DependencyMetrics:
        direct = [d for d in details if d.level != "transitive"]
        unit_nodes = [graph.nodes[c.id] for c in components if c.id in graph.nodes]
        n = len(graph.nodes)
        hubs = sorted(
            (node for node in graph.nodes.values() if node.centrality > 0),
            key=lambda node: (-node.centrality, node.id),
        )[:5]
        return DependencyMetrics(
            total_components=len(components),
            total_dependencies=len(direct),
            external_dependencies=sum(1 for d in direct if d.is_external),
            internal_dependencies=sum(1 for d in direct if not d.is_external),
            circular_dependencies=len(graph.cycles),
            average_coupling=round(sum(u.out_degree for u in unit_nodes) / len(unit_nodes), 2) if unit_nodes else 0.0,
            graph_density=round(len(graph.edges) / (n * (n - 1)), 4) if n > 1 else 0.0,
            hubs=[node.id for node in hubs],
        )

    @staticmethod
    def _recommendations(
        components: List[ComponentDefinition],
        graph: DependencyGraph,
        details: List[DependencyDetail],
    ) -> List[ExtractionRecommendation]:
        unit_ids = {c.id for c in components}
        recommendations: List[ExtractionRecommendation] = []

        leaves = sorted(
            c.id for c in components
            if not any(e.target in unit_ids for e in graph.outgoing(c.id))
        )
        if leaves:
            recommendations.append(ExtractionRecommendation(
                "extract-first", leaves,
                "No dependencies on other components; can be migrated independently",
                "high",
            ))
        for cluster in graph.clusters:
            if cluster.strategy == "together":
                recommendations.append(ExtractionRecommendation(
                    "extract-together", cluster.units,
                    f"Tightly coupled group (cohesion {cluster.cohesion:.2f}); migrate as one unit",
                    "medium",
                ))
        for cycle in graph.cycles:
            recommendations.append(ExtractionRecommendation(
                "refactor-before-extract", cycle,
                "Circular import chain: " + " -> ".join(cycle + cycle[:1]),
                "high",
            ))
        risky: Dict[str, List[str]] = defaultdict(list)
        for detail in details:
            if detail.level != "transitive" and detail.extraction_risk in ("high", "critical"):
                risky[detail.source].append(detail.extraction_risk)
        flagged = sorted(
            unit for unit, risks in risky.items()
            if len(risks) > 5
        )
        if flagged:
            recommendations.append(ExtractionRecommendation(
                "high-risk-extract", flagged,
                "Depends on shared context, wide imports or circular chains; migrate with extra review",
                "high",
            ))
        return recommendations


def _primary_unit(units: List[ComponentDefinition]) -> str:
    stem = Path(units[0].file_path).stem
    for unit in units:
        if unit.name == stem:
            return unit.id
    return units[0].id


def _read_document(path: str) -> SyntaxDocument:
    try:
        return parse_path(Path(path))
    except OSError as exc:
        raise FileSystemError(f"Cannot read {path}: {exc}", cause=exc) from exc
