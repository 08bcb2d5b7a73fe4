"""Discovery engine: find component units and build their definitions."""

from __future__ import annotations

import fnmatch
import json
import re
import time
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .context import RunContext
from .errors import ErrorContext, FileSystemError
from .models import (
    BusinessLogicDefinition,
    ComponentDefinition,
    ComponentDependency,
    ComponentMetadata,
    DiscoveryIssue,
    DiscoveryResult,
    DiscoveryStatistics,
    PropDefinition,
)
from .parser import HOOK_CATEGORIES, LIFECYCLE_METHODS, cyclomatic_complexity
from .syntax import (
    FUNCTION_KINDS,
    SyntaxDocument,
    SyntaxNode,
    callee_name,
    function_of,
    leading_comment,
    clean_jsdoc,
    parse_path,
    string_value,
    top_level_declarations,
)

# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------
COMPONENT_FILE_HINTS = [
    re.compile(r"import\s+React|from\s+['\"]react['\"]"),
    re.compile(r"<[A-Za-z][\w.]*[\s/>]"),
    re.compile(r"export\s+(?:default\s+)?(?:function|const|class)\s+[A-Z]"),
    re.compile(r"\buse[A-Z]\w*\s*\("),
]

# Used only when tree-sitter reports syntax errors in a file.
FALLBACK_DECLARATIONS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"^\s*(?:export\s+(?:default\s+)?)?class\s+([A-Z]\w*)\s+extends\s+(?:React\.)?(?:Pure)?Component\b", re.M), "class"),
    (re.compile(r"^\s*(?:export\s+(?:default\s+)?)?(?:async\s+)?function\s+(use[A-Z0-9]\w*)\s*\(", re.M), "hook"),
    (re.compile(r"^\s*(?:export\s+)?const\s+(use[A-Z0-9]\w*)\s*=\s*(?:async\s*)?\(", re.M), "hook"),
    (re.compile(r"^\s*(?:export\s+(?:default\s+)?)?function\s+(with[A-Z]\w*)\s*\(", re.M), "higher-order"),
    (re.compile(r"^\s*(?:export\s+(?:default\s+)?)?function\s+([A-Z]\w*)\s*\(", re.M), "functional"),
    (re.compile(r"^\s*(?:export\s+)?const\s+([A-Z]\w*)\s*(?::\s*[\w.<>\[\], ]+)?=\s*(?:React\.)?(?:forwardRef|memo)\s*[(<]", re.M), "functional"),
    (re.compile(r"^\s*(?:export\s+)?const\s+([A-Z]\w*)\s*(?::\s*[\w.<>\[\], ]+)?=\s*(?:async\s*)?\(", re.M), "functional"),
]
FALLBACK_IMPORT = re.compile(
    r"^\s*import\s+(?:type\s+)?(?:(?P<clause>[^'\"]+?)\s+from\s+)?['\"](?P<source>[^'\"]+)['\"]",
    re.M,
)

PATTERN_ORDER = (
    "useState", "useEffect", "useContext", "useReducer", "useMemo", "useCallback",
    "custom-hook", "render-props", "children-as-function", "forwardRef", "memo",
)
TRACKED_HOOKS = frozenset({"useState", "useEffect", "useContext", "useReducer", "useMemo", "useCallback"})
CRITICAL_PACKAGES = frozenset({"react", "react-dom"})
COMPLEXITY_RANK = {"simple": 1, "moderate": 2, "complex": 3, "critical": 4}

HOOK_NAME = re.compile(r"^use[A-Z0-9]")
HOC_NAME = re.compile(r"^with[A-Z]")


def classify_complexity(score: int) -> str:
    if score <= 10:
        return "simple"
    if score <= 25:
        return "moderate"
    if score <= 50:
        return "complex"
    return "critical"


def classify_logic_complexity(cyclomatic: int) -> str:
    if cyclomatic <= 3:
        return "simple"
    if cyclomatic <= 6:
        return "moderate"
    if cyclomatic <= 10:
        return "complex"
    return "critical"


def package_name(import_path: str) -> str:
    """``@mui/material/Button`` -> ``@mui/material``; ``lodash/get`` -> ``lodash``."""
    parts = import_path.split("/")
    if import_path.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0]


def is_likely_component_file(source: str) -> bool:
    return any(p.search(source) for p in COMPONENT_FILE_HINTS)


def components_in_document(
    document: SyntaxDocument,
    rel: str,
    absolute: str = "",
    coverage: float = 0.0,
) -> List[ComponentDefinition]:
    """Units declared in an already parsed *document* (used for generated code too)."""
    size = len(document.source.encode("utf-8"))
    return _UnitBuilder(document, rel, absolute or rel, size, coverage).build()


class ComponentDiscovery:
    """Walks a source tree and returns one :class:`ComponentDefinition` per unit."""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx
        self.log = ctx.child_logger(__name__)
        self.options = ctx.config.discovery
        self.skip_errors = ctx.config.pipeline.skip_errors

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def discover(self, root: Path) -> DiscoveryResult:
        """Discover all component units under *root*.

        Raises:
            FileSystemError: *root* is missing or unreadable (fatal), or a
                file cannot be read while ``skip_errors`` is disabled.
        """
        started = time.perf_counter()
        root = root.resolve()
        files, issues = self.scan_files(root)
        coverage = self._load_coverage(root)

        components: List[ComponentDefinition] = []
        seen_ids = set()
        for path in files:
            self.ctx.token.raise_if_cancelled(self.ctx.error_context(operation="discovery"))
            found, file_issues = self.analyze_file(path, root, coverage)
            issues.extend(file_issues)
            for component in found:
                if component.id in seen_ids:
                    continue
                seen_ids.add(component.id)
                components.append(component)

        result = DiscoveryResult(
            root=str(root),
            components=components,
            issues=issues,
            statistics=self.statistics(components, len(files)),
            duration=time.perf_counter() - started,
        )
        self.log.info(
            "Discovered %d components in %d files (%d issues)",
            len(components), len(files), len(issues),
        )
        return result

    def scan_files(self, root: Path) -> Tuple[List[Path], List[DiscoveryIssue]]:
        if not root.exists() or not root.is_dir():
            raise FileSystemError(
                f"Source root does not exist or is not a directory: {root}",
                ErrorContext(operation="discovery", file_path=str(root), correlation_id=self.ctx.run_id),
                recoverable=False,
            )
        skip_dirs = set(self.options.skip_dirs)
        try:
            candidates = sorted(root.rglob("*"))
        except OSError as exc:
            raise FileSystemError(
                f"Cannot read source root {root}: {exc}",
                ErrorContext(operation="discovery", file_path=str(root)),
                cause=exc,
                recoverable=False,
            ) from exc

        files: List[Path] = []
        issues: List[DiscoveryIssue] = []
        for path in candidates:
            rel = path.relative_to(root)
            if any(part in skip_dirs for part in rel.parts[:-1]):
                continue
            if not path.is_file() or not self._included(rel):
                continue
            if len(files) >= self.options.max_files:
                issues.append(DiscoveryIssue(
                    str(root), f"File limit of {self.options.max_files} reached; remaining files ignored",
                ))
                break
            files.append(path)
        return files, issues

    def _included(self, rel: Path) -> bool:
        name = rel.name
        posix = rel.as_posix()
        if not any(fnmatch.fnmatch(name, pat) for pat in self.options.include):
            return False
        return not any(
            fnmatch.fnmatch(name, pat) or fnmatch.fnmatch(posix, pat) for pat in self.options.exclude
        )

    # ------------------------------------------------------------------
    # Per-file extraction
    # ------------------------------------------------------------------

    def analyze_file(
        self,
        path: Path,
        root: Path,
        coverage: Optional[Dict[str, float]] = None,
    ) -> Tuple[List[ComponentDefinition], List[DiscoveryIssue]]:
        rel = path.relative_to(root).as_posix()
        try:
            raw = self.ctx.errors.run_with_recovery(
                lambda: self._read(path, rel),
                self.ctx.error_context(operation="discovery", file_path=rel),
            )
            source = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            error = FileSystemError(
                f"Cannot decode {rel}: {exc}",
                self.ctx.error_context(operation="discovery", file_path=rel),
                cause=exc,
                recoverable=False,
            )
            self.ctx.errors.record(error)
            if not self.skip_errors:
                raise error from exc
            return [], [DiscoveryIssue(rel, error.message, "error")]
        except FileSystemError as error:
            if not self.skip_errors:
                raise
            return [], [DiscoveryIssue(rel, error.message, "error")]

        document = parse_path(path, source)
        test_coverage = _coverage_for(coverage or {}, path, rel)
        builder = _UnitBuilder(document, rel, str(path), len(raw), test_coverage)
        components = builder.build()

        issues: List[DiscoveryIssue] = []
        if document.has_errors:
            issues.append(DiscoveryIssue(rel, "File has syntax errors; declarations recovered heuristically"))
        if not components and is_likely_component_file(source):
            issues.append(DiscoveryIssue(rel, "Looks like a component file but no component declaration was recognised"))
        return components, issues

    @staticmethod
    def _read(path: Path, rel: str) -> bytes:
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FileSystemError(f"Cannot read {rel}: {exc}", cause=exc) from exc

    # ------------------------------------------------------------------
    # Coverage / statistics
    # ------------------------------------------------------------------

    def _load_coverage(self, root: Path) -> Dict[str, float]:
        """Read an istanbul ``coverage-summary.json`` (lines pct per file) if present."""
        configured = self.options.coverage_report
        path = Path(configured) if configured else root / "coverage" / "coverage-summary.json"
        if not path.is_absolute():
            path = root / path
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self.log.warning("Ignoring unreadable coverage report %s: %s", path, exc)
            return {}
        coverage: Dict[str, float] = {}
        for key, entry in data.items():
            if key == "total" or not isinstance(entry, dict):
                continue
            pct = entry.get("lines", {}).get("pct")
            if isinstance(pct, (int, float)):
                coverage[Path(key).as_posix()] = float(pct)
        return coverage

    @staticmethod
    def statistics(components: List[ComponentDefinition], total_files: int) -> DiscoveryStatistics:
        by_kind = Counter(c.kind for c in components)
        by_complexity = Counter(c.complexity for c in components)
        patterns = Counter(p for c in components for p in c.patterns)
        average = (
            sum(COMPLEXITY_RANK[c.complexity] for c in components) / len(components)
            if components else 0.0
        )
        return DiscoveryStatistics(
            total_files=total_files,
            total_components=len(components),
            by_kind=dict(sorted(by_kind.items())),
            by_complexity=dict(sorted(by_complexity.items())),
            pattern_counts=dict(sorted(patterns.items())),
            average_complexity=round(average, 2),
        )


def _coverage_for(coverage: Dict[str, float], path: Path, rel: str) -> float:
    if not coverage:
        return 0.0
    absolute = path.resolve().as_posix()
    if absolute in coverage:
        return coverage[absolute]
    for key, pct in coverage.items():
        if key == rel or key.endswith("/" + rel):
            return pct
    return 0.0


# ===================================================================
# Unit builder
# ===================================================================

class _UnitBuilder:
    """Extracts component definitions from one parsed file."""

    def __init__(self, document: SyntaxDocument, rel: str, absolute: str, size: int, coverage: float) -> None:
        self.document = document
        self.root = document.root
        self.rel = rel
        self.absolute = absolute
        self.size = size
        self.coverage = coverage
        self.dependencies = self._dependencies()

    def build(self) -> List[ComponentDefinition]:
        units: List[ComponentDefinition] = []
        names = set()
        for stmt, decl, _ in top_level_declarations(self.root):
            for name, kind, node, wrappers in self._candidates(stmt, decl):
                if name in names:
                    continue
                names.add(name)
                units.append(self._definition(name, kind, stmt, node, wrappers))
        if self.document.has_errors:
            for name, kind, line in self._fallback_candidates():
                if name not in names:
                    names.add(name)
                    units.append(self._fallback_definition(name, kind, line))
        return units

    # -- declaration recognition ----------------------------------------

    def _candidates(self, stmt: SyntaxNode, decl: SyntaxNode):
        if decl.kind in ("function_declaration", "generator_function_declaration"):
            name = decl.child("name")
            if name is not None:
                kind = _kind_for_function(name.text)
                if kind:
                    yield name.text, kind, decl, ()
        elif decl.kind == "class_declaration":
            name = decl.child("name")
            heritage = next((c for c in decl.children if c.kind == "class_heritage"), None)
            if name is not None and heritage is not None and re.search(r"\b(?:Pure)?Component\b", heritage.text):
                yield name.text, "class", decl, ()
        elif decl.kind in ("lexical_declaration", "variable_declaration"):
            for declarator in decl.named_children:
                if declarator.kind != "variable_declarator":
                    continue
                name = declarator.child("name")
                value = declarator.child("value")
                if name is None or value is None or name.kind != "identifier":
                    continue
                wrappers = _wrappers(value)
                fn = function_of(declarator)
                if fn is not None:
                    kind = _kind_for_function(name.text)
                    if kind:
                        yield name.text, kind, declarator, wrappers
                elif value.kind == "call_expression" and name.text[:1].isupper() and HOC_NAME.match(callee_name(value)):
                    yield name.text, "higher-order", declarator, wrappers
        elif decl.kind in FUNCTION_KINDS and stmt.has_token("default"):
            # export default function () {...} / export default () => ...
            stem = Path(self.rel).stem
            if stem[:1].isupper():
                yield stem, "functional", decl, ()

    def _fallback_candidates(self):
        source = self.document.source
        for pattern, kind in FALLBACK_DECLARATIONS:
            for match in pattern.finditer(source):
                line = source.count("\n", 0, match.start(1)) + 1
                yield match.group(1), kind, line

    # -- definition assembly --------------------------------------------

    def _definition(self, name: str, kind: str, stmt: SyntaxNode, node: SyntaxNode, wrappers) -> ComponentDefinition:
        props = self._props(name, node)
        logic = self._business_logic(node, kind)
        patterns = self._patterns(node, wrappers)
        start, end = stmt.start_line, stmt.end_line
        comment = leading_comment(stmt, self.root.children)
        documentation = clean_jsdoc(comment.text) if comment is not None else ""
        return self._assemble(name, kind, props, logic, patterns, start, end, documentation)

    def _fallback_definition(self, name: str, kind: str, line: int) -> ComponentDefinition:
        return self._assemble(name, kind, self._props(name, None), (), (), line, line, "")

    def _assemble(self, name, kind, props, logic, patterns, start, end, documentation) -> ComponentDefinition:
        lines = end - start + 1
        score = len(props) * 2 + len(logic) * 5 + len(patterns) * 3 + lines // 50
        return ComponentDefinition(
            id=f"{self.rel}:{name}",
            name=name,
            file_path=self.rel,
            absolute_path=self.absolute,
            kind=kind,
            complexity=classify_complexity(score),
            props=tuple(props),
            dependencies=self.dependencies,
            business_logic=tuple(logic),
            patterns=tuple(patterns),
            metadata=ComponentMetadata(
                has_documentation=bool(documentation),
                test_coverage=self.coverage,
                bundle_size=self.size,
                line_count=lines,
                documentation=documentation,
            ),
            start_line=start,
            end_line=end,
            complexity_score=score,
        )

    def _props(self, name: str, node: Optional[SyntaxNode]) -> List[PropDefinition]:
        candidates = [f"{name}Props"]
        if node is not None:
            candidates.extend(_referenced_types(node))
        candidates.append("Props")
        types = self._type_declarations()
        for candidate in candidates:
            body = types.get(candidate)
            if body is not None:
                return _prop_members(body)
        return []

    def _type_declarations(self) -> Dict[str, SyntaxNode]:
        found: Dict[str, SyntaxNode] = {}
        for _, decl, _ in top_level_declarations(self.root):
            name = decl.child("name")
            if name is None:
                continue
            if decl.kind == "interface_declaration":
                body = decl.child("body")
            elif decl.kind == "type_alias_declaration":
                value = decl.child("value")
                body = value if value is not None and value.kind == "object_type" else (
                    value.first("object_type") if value is not None else None
                )
            else:
                continue
            if body is not None:
                found.setdefault(name.text, body)
        return found

    def _business_logic(self, node: SyntaxNode, kind: str) -> List[BusinessLogicDefinition]:
        logic: List[BusinessLogicDefinition] = []
        if kind == "class":
            body = node.child("body")
            members = body.named_children if body is not None else []
            for member in members:
                name = member.child("name") or member.child("property")
                if name is None or name.text in LIFECYCLE_METHODS or name.text in ("constructor", "render"):
                    continue
                if member.kind == "method_definition":
                    fn = member
                elif member.kind in ("public_field_definition", "field_definition"):
                    fn = member.child("value")
                    if fn is None or fn.kind not in FUNCTION_KINDS:
                        continue
                else:
                    continue
                logic.append(BusinessLogicDefinition(
                    name.text, classify_logic_complexity(cyclomatic_complexity(fn)), member.start_line,
                ))
            return logic

        fn = function_of(node)
        body = fn.child("body") if fn is not None else None
        if body is None or body.kind != "statement_block":
            return logic
        for stmt in body.named_children:
            for name, target in _inner_functions(stmt):
                logic.append(BusinessLogicDefinition(
                    name, classify_logic_complexity(cyclomatic_complexity(target)), target.start_line,
                ))
        return logic

    def _patterns(self, node: SyntaxNode, wrappers) -> List[str]:
        found = set(wrappers)
        for child in node.walk():
            if child.kind == "call_expression":
                callee = callee_name(child)
                if callee in TRACKED_HOOKS:
                    found.add(callee)
                elif HOOK_NAME.match(callee) and callee not in HOOK_CATEGORIES:
                    found.add("custom-hook")
            elif child.kind == "jsx_attribute":
                attr = child.named_children[0].text if child.named_children else ""
                value = child.named_children[-1] if len(child.named_children) > 1 else None
                if attr.startswith("render") and value is not None and value.first("arrow_function") is not None:
                    found.add("render-props")
            elif child.kind == "jsx_expression":
                inner = child.named_children[0] if child.named_children else None
                if inner is not None and inner.kind in ("arrow_function", "function_expression", "function"):
                    if _is_jsx_child(node, child):
                        found.add("children-as-function")
        return [p for p in PATTERN_ORDER if p in found]

    def _dependencies(self) -> Tuple[ComponentDependency, ...]:
        deps: List[ComponentDependency] = []
        if self.document.has_errors:
            imports = [
                (m.group("source"), _bindings_from_clause(m.group("clause") or ""))
                for m in FALLBACK_IMPORT.finditer(self.document.source)
            ]
        else:
            imports = [
                (string_value(stmt.child("source")), import_bindings(stmt))
                for stmt in self.root.named_children
                if stmt.kind == "import_statement"
            ]
        for source, bindings in imports:
            if not source:
                continue
            internal = source.startswith(".")
            name = Path(source).name if internal else package_name(source)
            deps.append(ComponentDependency(
                name=name,
                kind="internal" if internal else "external",
                import_path=source,
                critical=not internal and package_name(source) in CRITICAL_PACKAGES,
                bindings=tuple(bindings),
            ))
        return tuple(deps)


def _kind_for_function(name: str) -> Optional[str]:
    if HOOK_NAME.match(name):
        return "hook"
    if HOC_NAME.match(name):
        return "higher-order"
    if name[:1].isupper():
        return "functional"
    return None


def _wrappers(value: SyntaxNode) -> Tuple[str, ...]:
    wrappers = []
    while value is not None and value.kind == "call_expression":
        callee = callee_name(value)
        if callee in ("forwardRef", "memo"):
            wrappers.append(callee)
        args = value.child("arguments")
        value = args.named_children[0] if args is not None and args.named_children else None
    return tuple(wrappers)


def _referenced_types(node: SyntaxNode) -> List[str]:
    """Type names in the first parameter annotation or class heritage (``Component<XProps>``)."""
    names: List[str] = []
    if node.kind == "class_declaration":
        heritage = next((c for c in node.children if c.kind == "class_heritage"), None)
        scope = heritage.find_all(["type_arguments"]) if heritage is not None else []
    else:
        fn = function_of(node)
        params = fn.child("parameters") if fn is not None else None
        scope = params.named_children[:1] if params is not None else []
        if node.kind == "variable_declarator" and node.child("type") is not None:
            scope = scope + [node.child("type")]
    for part in scope:
        for t in part.find_all(["type_identifier"]):
            if t.text not in names:
                names.append(t.text)
    return names


def _prop_members(body: SyntaxNode) -> List[PropDefinition]:
    props: List[PropDefinition] = []
    members = body.children
    for idx, member in enumerate(members):
        if member.kind not in ("property_signature", "method_signature"):
            continue
        name = member.child("name")
        if name is None:
            continue
        if member.kind == "method_signature":
            type_text = "function"
        else:
            annotation = member.child("type")
            type_text = annotation.text.lstrip(":").strip() if annotation is not None else "any"
        description = ""
        prev = members[idx - 1] if idx > 0 else None
        # Skip the member's own separator to reach a trailing comment.
        nxt = next((m for m in members[idx + 1:] if m.kind not in (";", ",")), None)
        if prev is not None and prev.kind == "comment" and prev.end_line == member.start_line - 1:
            description = clean_jsdoc(prev.text) if prev.text.startswith("/*") else prev.text.lstrip("/").strip()
        elif nxt is not None and nxt.kind == "comment" and nxt.start_line == member.end_line:
            description = nxt.text.lstrip("/").strip()
        props.append(PropDefinition(
            name=name.text.strip("'\""),
            type=type_text,
            required=not member.has_token("?"),
            description=description,
        ))
    return props


def _inner_functions(stmt: SyntaxNode):
    """Named functions declared directly by a body statement."""
    if stmt.kind == "function_declaration":
        name = stmt.child("name")
        if name is not None:
            yield name.text, stmt
    elif stmt.kind in ("lexical_declaration", "variable_declaration"):
        for declarator in stmt.named_children:
            name = declarator.child("name")
            value = declarator.child("value")
            if name is None or value is None or name.kind != "identifier":
                continue
            if value.kind in FUNCTION_KINDS:
                yield name.text, value
            elif value.kind == "call_expression" and callee_name(value) == "useCallback":
                args = value.child("arguments")
                first = args.named_children[0] if args is not None and args.named_children else None
                if first is not None and first.kind in FUNCTION_KINDS:
                    yield name.text, first


def _is_jsx_child(root: SyntaxNode, expression: SyntaxNode) -> bool:
    for node in root.walk():
        if node.kind == "jsx_element" and any(c is expression for c in node.children):
            return True
    return False


def import_bindings(stmt: SyntaxNode) -> List[str]:
    bindings: List[str] = []
    clause = next((c for c in stmt.named_children if c.kind == "import_clause"), None)
    if clause is None:
        return bindings
    for part in clause.named_children:
        if part.kind == "identifier":
            bindings.append(part.text)
        elif part.kind == "namespace_import":
            ident = part.first("identifier")
            if ident is not None:
                bindings.append(ident.text)
        elif part.kind == "named_imports":
            for spec in part.named_children:
                if spec.kind != "import_specifier":
                    continue
                local = spec.child("alias") or spec.child("name")
                if local is not None:
                    bindings.append(local.text)
    return bindings


def _bindings_from_clause(clause: str) -> List[str]:
    clause = clause.replace("type ", " ")
    names: List[str] = []
    named = re.search(r"\{([^}]*)\}", clause)
    if named:
        for spec in named.group(1).split(","):
            spec = spec.strip()
            if spec:
                names.append(spec.split(" as ")[-1].strip())
        clause = clause[:named.start()] + clause[named.end():]
    for part in clause.split(","):
        part = part.strip()
        if part.startswith("* as "):
            names.append(part[5:].strip())
        elif part:
            names.append(part)
    return names
