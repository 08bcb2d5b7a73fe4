"""Structural parser: complexity, documentation and structure per unit."""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Dict, List, Optional

from .context import RunContext
from .errors import CancelledError, ErrorContext, FileSystemError, ParsingError, PipelineError
from .models import ComponentDefinition, ComponentStructure, ParseResult
from .syntax import (
    SyntaxDocument,
    SyntaxNode,
    SyntaxVisitor,
    callee_name,
    clean_jsdoc,
    find_declaration,
    function_of,
    leading_comment,
    parse_path,
    string_value,
    top_level_declarations,
)

BRANCH_KINDS = frozenset({
    "if_statement",
    "for_statement",
    "for_in_statement",
    "while_statement",
    "do_statement",
    "switch_case",
    "switch_default",
    "catch_clause",
    "ternary_expression",
})
LOGICAL_OPERATORS = frozenset({"&&", "||", "??"})

LIFECYCLE_METHODS = frozenset({
    "componentDidMount",
    "componentDidUpdate",
    "componentWillUnmount",
    "shouldComponentUpdate",
    "getSnapshotBeforeUpdate",
    "componentDidCatch",
    "getDerivedStateFromProps",
    "getDerivedStateFromError",
    "UNSAFE_componentWillMount",
    "UNSAFE_componentWillReceiveProps",
    "UNSAFE_componentWillUpdate",
})

HOOK_CATEGORIES: Dict[str, str] = {
    "useState": "state",
    "useReducer": "state",
    "useEffect": "effect",
    "useLayoutEffect": "effect",
    "useContext": "context",
    "useRef": "ref",
    "useMemo": "memo",
    "useCallback": "callback",
}
CUSTOM_HOOK_RE = re.compile(r"^use[A-Z0-9]\w*$")


# ===================================================================
# Complexity
# ===================================================================

class ComplexityVisitor(SyntaxVisitor):
    """Cyclomatic and cognitive complexity over a subtree.

    Cyclomatic starts at 1 and adds one per branch, loop, case arm, catch,
    ternary and short-circuit operator.  Cognitive adds nesting depth to
    each branch and also counts ``break``/``continue``.
    """

    nesting_kinds = frozenset({
        "if_statement", "for_statement", "for_in_statement", "while_statement",
        "do_statement", "switch_statement", "catch_clause", "ternary_expression",
    })

    def __init__(self) -> None:
        super().__init__()
        self.cyclomatic = 1
        self.cognitive = 0
        for kind in BRANCH_KINDS:
            self.on(kind, self._branch)
        self.on("binary_expression", self._binary)
        self.on("break_statement", self._jump)
        self.on("continue_statement", self._jump)

    def _branch(self, node: SyntaxNode) -> None:
        self.cyclomatic += 1
        if node.kind in ("switch_case", "switch_default"):
            self.cognitive += 1
        else:
            self.cognitive += 1 + self.depth

    def _binary(self, node: SyntaxNode) -> None:
        op = node.child("operator")
        if op is not None and op.kind in LOGICAL_OPERATORS:
            self.cyclomatic += 1
            self.cognitive += 1

    def _jump(self, node: SyntaxNode) -> None:
        self.cognitive += 1


def cyclomatic_complexity(node: SyntaxNode) -> int:
    visitor = ComplexityVisitor()
    visitor.visit(node)
    return visitor.cyclomatic


# ===================================================================
# Structure
# ===================================================================

class StructureVisitor(SyntaxVisitor):
    """Collects hooks, methods, lifecycle and composition from a declaration."""

    nesting_kinds = frozenset({"statement_block"})

    def __init__(self) -> None:
        super().__init__()
        self.structure = ComponentStructure(
            hooks={}, composition={"forward_ref": False, "memo": False, "hocs": [], "children": []}
        )
        self.on("call_expression", self._call)
        self.on("method_definition", self._method)
        self.on("function_declaration", self._function)
        self.on("variable_declarator", self._declarator)
        self.on("jsx_opening_element", self._jsx)
        self.on("jsx_self_closing_element", self._jsx)

    def _call(self, node: SyntaxNode) -> None:
        name = callee_name(node)
        hooks = self.structure.hooks
        if name in HOOK_CATEGORIES:
            _append_unique(hooks.setdefault(HOOK_CATEGORIES[name], []), name)
        elif CUSTOM_HOOK_RE.match(name):
            _append_unique(hooks.setdefault("custom", []), name)
        elif name == "forwardRef":
            self.structure.composition["forward_ref"] = True
        elif name == "memo":
            self.structure.composition["memo"] = True
        elif re.match(r"^with[A-Z]", name):
            _append_unique(self.structure.composition["hocs"], name)

    def _method(self, node: SyntaxNode) -> None:
        name = node.child("name")
        if name is None:
            return
        if name.text in LIFECYCLE_METHODS:
            _append_unique(self.structure.lifecycle, name.text)
        elif name.text not in ("constructor", "render"):
            _append_unique(self.structure.methods, name.text)

    def _function(self, node: SyntaxNode) -> None:
        name = node.child("name")
        if name is not None and self.depth > 0:
            _append_unique(self.structure.methods, name.text)

    def _declarator(self, node: SyntaxNode) -> None:
        value = node.child("value")
        name = node.child("name")
        if value is not None and name is not None and value.kind in ("arrow_function", "function_expression", "function"):
            _append_unique(self.structure.methods, name.text)

    def _jsx(self, node: SyntaxNode) -> None:
        name = node.child("name")
        if name is not None and name.text[:1].isupper():
            _append_unique(self.structure.composition["children"], name.text)


def _append_unique(items: List[str], value: str) -> None:
    if value not in items:
        items.append(value)


def collect_imports(root: SyntaxNode) -> Dict[str, List[str]]:
    """Split the file's import sources into external / internal / type-only."""
    imports: Dict[str, List[str]] = {"external": [], "internal": [], "types": []}
    for stmt in root.named_children:
        if stmt.kind != "import_statement":
            continue
        source = string_value(stmt.child("source"))
        if stmt.has_token("type"):
            _append_unique(imports["types"], source)
        elif source.startswith("."):
            _append_unique(imports["internal"], source)
        else:
            _append_unique(imports["external"], source)
    return imports


def collect_exports(root: SyntaxNode) -> List[str]:
    exports: List[str] = []
    for stmt, decl, exported in top_level_declarations(root):
        if not exported:
            continue
        if stmt.has_token("default"):
            _append_unique(exports, "default")
        if decl.kind in ("lexical_declaration", "variable_declaration"):
            for declarator in decl.named_children:
                name = declarator.child("name")
                if name is not None:
                    _append_unique(exports, name.text)
        else:
            name = decl.child("name")
            if name is not None:
                _append_unique(exports, name.text)
    for stmt in root.named_children:
        if stmt.kind == "export_statement":
            for spec in stmt.find_all(["export_specifier"]):
                alias = spec.child("alias") or spec.child("name")
                if alias is not None:
                    _append_unique(exports, alias.text)
    return exports


# ===================================================================
# Parser
# ===================================================================

class StructuralParser:
    """Parses one unit's source and computes its structural metrics."""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx
        self.log = ctx.child_logger(__name__)
        self.max_file_size = ctx.config.parser.max_file_size

    def parse(self, component: ComponentDefinition, source: Optional[str] = None) -> ParseResult:
        """Parse one unit; failures come back as an unsuccessful result.

        Reads go through the run's recovery strategies, so a transient
        file-system error is retried and a parse error is marked for manual
        review instead of raised.
        """
        started = time.perf_counter()
        context = self.ctx.error_context(unit=component.id, operation="parse", file_path=component.file_path)
        try:
            result = self.ctx.errors.run_with_recovery(
                lambda: self._parse(component, source),
                context,
                fallback=lambda error, recovery: self._failed(
                    component, error, manual_review=recovery.requires_manual_review,
                ),
            )
        except CancelledError:
            raise
        except PipelineError as error:
            result = self._failed(component, error)
        result.duration = time.perf_counter() - started
        if result.success:
            self.log.debug("Parsed %s (complexity %d)", component.id, result.complexity)
        return result

    def _parse(self, component: ComponentDefinition, source: Optional[str]) -> ParseResult:
        path = Path(component.absolute_path)
        if source is None:
            try:
                size = path.stat().st_size
                if size > self.max_file_size:
                    raise ParsingError(f"File too large ({size} bytes)", recoverable=False)
                source = path.read_text(encoding="utf-8")
            except UnicodeDecodeError as exc:
                raise ParsingError(f"Could not decode {component.file_path}: {exc}", cause=exc) from exc
            except OSError as exc:
                raise FileSystemError(f"Could not read {component.file_path}: {exc}", cause=exc) from exc
        elif len(source.encode("utf-8")) > self.max_file_size:
            raise ParsingError("File too large", recoverable=False)

        document = parse_path(path, source)
        if document.has_errors:
            errors = document.describe_errors()
            raise ParsingError("Syntax errors: " + "; ".join(errors), ErrorContext(data={"syntax_errors": errors}))
        return self.analyze_document(component, document)

    def analyze_document(self, component: ComponentDefinition, document: SyntaxDocument) -> ParseResult:
        """Compute metrics for *component* within an already parsed document."""
        found = find_declaration(document.root, component.name)
        target = found[1] if found else document.root

        complexity = ComplexityVisitor()
        complexity.visit(target)

        visitor = StructureVisitor()
        visitor.visit(target)
        structure = visitor.structure
        structure.props = [p.name for p in component.props]
        for name in _destructured_props(target):
            _append_unique(structure.props, name)
        structure.imports = collect_imports(document.root)
        structure.exports = collect_exports(document.root)
        # The declaration itself shows up as a declarator; it is not a method.
        structure.methods = [m for m in structure.methods if m != component.name]

        documentation = None
        if found is not None:
            comment = leading_comment(found[0], document.root.children)
            if comment is not None:
                documentation = clean_jsdoc(comment.text)

        return ParseResult(
            unit_id=component.id,
            success=True,
            complexity=complexity.cyclomatic,
            cognitive_complexity=complexity.cognitive,
            documentation=documentation,
            structure=structure,
        )

    @staticmethod
    def _failed(component: ComponentDefinition, error: PipelineError, manual_review: bool = False) -> ParseResult:
        return ParseResult(
            unit_id=component.id,
            success=False,
            errors=list(error.context.data.get("syntax_errors") or [error.message]),
            requires_manual_review=manual_review,
        )


def _destructured_props(node: SyntaxNode) -> List[str]:
    """Names destructured from the first parameter: ``({ a, b = 1 }) => ...``."""
    fn = function_of(node) if node.kind != "program" else None
    if fn is None:
        return []
    params = fn.child("parameters") or fn.child("parameter")
    if params is None:
        return []
    first = params if params.kind == "identifier" else (params.named_children[0] if params.named_children else None)
    if first is None:
        return []
    pattern = first.child("pattern") if first.kind in ("required_parameter", "optional_parameter") else first
    if pattern is None or pattern.kind != "object_pattern":
        return []
    return object_pattern_names(pattern)


def object_pattern_names(pattern: SyntaxNode) -> List[str]:
    names: List[str] = []
    for child in pattern.named_children:
        if child.kind == "shorthand_property_identifier_pattern":
            names.append(child.text)
        elif child.kind == "object_assignment_pattern":
            left = child.child("left")
            if left is not None:
                names.append(left.text)
        elif child.kind == "pair_pattern":
            key = child.child("key")
            if key is not None:
                names.append(key.text)
    return names
