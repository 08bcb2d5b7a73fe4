"""Component transformer.

Turns a discovered unit into a function-component module.  Embedded state,
effects and handlers are lifted into an exported ``use{Name}Logic`` hook,
class components are rewritten onto hooks, and the props contract becomes an
exported ``{Name}Props`` declaration.  Source fragments are carried over
verbatim (re-indented and, for classes, stripped of ``this.``) so the module
stays readable by the grammar that parsed the original.
"""

from __future__ import annotations

import dataclasses
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from . import __version__
from .context import RunContext
from .discovery import COMPLEXITY_RANK, HOOK_NAME, PATTERN_ORDER, components_in_document, import_bindings
from .errors import CancelledError, PhaseTimeoutError, PipelineError, TransformationError
from .inventory import round_half_up
from .models import (
    ComponentDefinition,
    ExtractedHook,
    TransformationMetrics,
    TransformationResult,
)
from .parser import LIFECYCLE_METHODS, cyclomatic_complexity
from .syntax import (
    FUNCTION_KINDS,
    SyntaxDocument,
    SyntaxNode,
    callee_name,
    find_declaration,
    function_of,
    parse_path,
    parse_source,
    string_value,
)
from .tasks import TaskResult

INDENT = "  "
INCOMPATIBLE_PATTERNS = ("render-props", "children-as-function")
HANDLER_NAME = re.compile(r"^(?:handle|on)[A-Z]")
IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")
BOUND_METHOD = re.compile(r"^this\.\w+\s*=\s*this\.\w+\.bind\(this\);?$")
BARE_STATE = re.compile(r"\bthis\.state\b(?!\s*\.)")

COMPLEXITY_DEDUCTION = {"critical": 30, "complex": 20, "moderate": 10}
COMPLEXITY_FACTOR = {"simple": 1, "moderate": 2, "complex": 3, "critical": 4}
COMPLEXITY_REDUCTION = {"critical": 5, "complex": 5, "moderate": 3}
TYPE_DECLARATIONS = frozenset({"interface_declaration", "type_alias_declaration", "enum_declaration"})
NAMED_DECLARATIONS = frozenset({
    "function_declaration", "generator_function_declaration", "class_declaration",
    "interface_declaration", "type_alias_declaration", "enum_declaration",
})
REFERENCE_KINDS = frozenset({"identifier", "type_identifier", "shorthand_property_identifier"})


# ===================================================================
# Scoring helpers
# ===================================================================

def count_loc(code: str) -> int:
    """Non-blank lines that are not ``//`` comments."""
    return sum(1 for line in code.splitlines() if line.strip() and not line.strip().startswith("//"))


def compatibility_score(component: ComponentDefinition) -> int:
    score = 100 - COMPLEXITY_DEDUCTION.get(component.complexity, 0)
    score -= 15 * sum(1 for p in component.patterns if p in INCOMPATIBLE_PATTERNS)
    score -= 5 * sum(1 for d in component.dependencies if d.kind == "external")
    return max(0, min(100, score))


def migration_effort(component: ComponentDefinition, loc: int) -> str:
    total = COMPLEXITY_FACTOR.get(component.complexity, 1)
    total += 3 if loc > 1000 else 2 if loc > 500 else 1 if loc > 200 else 0
    patterns = len(component.patterns)
    total += 2 if patterns > 5 else 1 if patterns > 3 else 0
    if total >= 7:
        return "critical"
    if total >= 5:
        return "high"
    if total >= 3:
        return "medium"
    return "low"


def quality_improvement(complexity_before: int, complexity_after: int, loc_before: int, loc_after: int) -> int:
    gain = max(0, complexity_before - complexity_after)
    loc_gain = (loc_before - loc_after) / loc_before if loc_before > 0 else 0.0
    return round_half_up((gain * 0.7 + loc_gain * 0.3) * 100)


# ===================================================================
# Source text helpers
# ===================================================================

def reindent(text: str, anchor: int, indent: str = INDENT) -> str:
    """Re-base *text* onto *indent*; lines after the first lose *anchor* columns."""
    out = []
    for i, line in enumerate(text.splitlines()):
        if i > 0:
            line = line[min(anchor, len(line) - len(line.lstrip(" "))):]
        out.append(indent + line if line.strip() else "")
    return "\n".join(out)


def line_indent(lines: Sequence[str], node: SyntaxNode) -> int:
    """Indentation of the source line on which *node* starts."""
    if node.start_line > len(lines):
        return 0
    line = lines[node.start_line - 1]
    return len(line) - len(line.lstrip(" "))


def pattern_names(node: Optional[SyntaxNode]) -> List[str]:
    """Names bound by a declarator name or binding pattern."""
    if node is None:
        return []
    if node.kind in ("identifier", "shorthand_property_identifier_pattern"):
        return [node.text]
    if node.kind == "pair_pattern":
        return pattern_names(node.child("value"))
    if node.kind in ("object_assignment_pattern", "assignment_pattern"):
        return pattern_names(node.child("left"))
    names: List[str] = []
    for child in node.named_children:
        names.extend(pattern_names(child))
    return names


def declared_names(stmt: SyntaxNode) -> List[str]:
    if stmt.kind in NAMED_DECLARATIONS:
        name = stmt.child("name")
        return [name.text] if name is not None else []
    if stmt.kind in ("lexical_declaration", "variable_declaration"):
        names: List[str] = []
        for declarator in stmt.named_children:
            if declarator.kind == "variable_declarator":
                names.extend(pattern_names(declarator.child("name")))
        return names
    return []


def references(node: SyntaxNode) -> Set[str]:
    return {n.text for n in node.walk() if n.kind in REFERENCE_KINDS}


def rewrite_this(text: str) -> str:
    """Map class-instance references onto hook locals."""
    text = re.sub(r"\bthis\.props\b", "props", text)
    text = re.sub(r"\bthis\.state\s*\.\s*", "", text)
    text = BARE_STATE.sub("state", text)
    return re.sub(r"\bthis\.", "", text)


def _doc_comment(text: str, indent: str = "") -> List[str]:
    body = [f"{indent} * {line}".rstrip() for line in text.replace("*/", "* /").splitlines()]
    return [f"{indent}/**"] + body + [f"{indent} */"]


def _is_logic_statement(stmt: SyntaxNode) -> bool:
    if stmt.kind in ("function_declaration", "generator_function_declaration"):
        return True
    if stmt.kind in ("lexical_declaration", "variable_declaration"):
        for declarator in stmt.named_children:
            value = declarator.child("value")
            if value is None:
                continue
            if value.kind in FUNCTION_KINDS:
                return True
            if value.kind == "call_expression" and HOOK_NAME.match(callee_name(value)):
                return True
        return False
    if stmt.kind == "expression_statement" and stmt.named_children:
        expr = stmt.named_children[0]
        return expr.kind == "call_expression" and HOOK_NAME.match(callee_name(expr)) is not None
    return False


def logic_statements(statements: Sequence[SyntaxNode]) -> Set[int]:
    """Ids of body statements to lift: hook calls, functions and the plain values they use."""
    logic = {id(s) for s in statements if _is_logic_statement(s)}
    changed = True
    while changed:
        changed = False
        needed: Set[str] = set()
        for stmt in statements:
            if id(stmt) in logic:
                needed |= references(stmt)
        for stmt in statements:
            if id(stmt) in logic or stmt.kind not in ("lexical_declaration", "variable_declaration"):
                continue
            if stmt.first("jsx_element") or stmt.first("jsx_self_closing_element"):
                continue
            if set(declared_names(stmt)) & needed:
                logic.add(id(stmt))
                changed = True
    return logic


def event_handlers(node: SyntaxNode) -> List[str]:
    """Named ``handle*``/``on*`` functions plus JSX ``on*`` attribute handlers."""
    found: List[str] = []

    def _add(name: str) -> None:
        if name not in found:
            found.append(name)

    for child in node.walk():
        if child.kind in ("function_declaration", "method_definition", "variable_declarator", "public_field_definition"):
            name = child.child("name")
            if name is not None and name.kind in ("identifier", "property_identifier") and HANDLER_NAME.match(name.text):
                _add(name.text)
        elif child.kind == "jsx_attribute" and len(child.named_children) > 1:
            attr = child.named_children[0].text
            expr = child.named_children[-1]
            if not HANDLER_NAME.match(attr) or expr.kind != "jsx_expression" or not expr.named_children:
                continue
            inner = expr.named_children[0]
            if inner.kind in ("identifier", "member_expression"):
                _add(inner.text.removeprefix("this."))
            elif inner.kind in FUNCTION_KINDS:
                _add(f"{attr} (inline)")
    return found


def _params(fn: SyntaxNode) -> List[SyntaxNode]:
    params = fn.child("parameters")
    if params is not None:
        return [p for p in params.named_children if p.kind != "comment"]
    single = fn.child("parameter")
    return [single] if single is not None else []


def _param_pattern(param: SyntaxNode) -> Optional[SyntaxNode]:
    pattern = param.child("pattern") if param.kind in ("required_parameter", "optional_parameter") else param
    if pattern is not None and pattern.kind == "assignment_pattern":
        pattern = pattern.child("left")
    return pattern


def _default_export(root: SyntaxNode) -> Optional[Tuple[SyntaxNode, SyntaxNode]]:
    for stmt in root.named_children:
        if stmt.kind == "export_statement" and stmt.has_token("default"):
            value = stmt.child("declaration") or stmt.child("value")
            if value is not None and value.kind in FUNCTION_KINDS:
                return stmt, value
    return None


def _wrapper_calls(node: SyntaxNode) -> List[Tuple[str, List[str]]]:
    """``memo(forwardRef(fn), eq)`` -> ``[("memo", ["eq"]), ("forwardRef", [])]``."""
    calls: List[Tuple[str, List[str]]] = []
    value = node.child("value") if node.kind == "variable_declarator" else None
    while value is not None and value.kind == "call_expression":
        callee = value.child("function")
        type_args = value.child("type_arguments")
        args = value.child("arguments")
        arg_nodes = [a for a in args.named_children if a.kind != "comment"] if args is not None else []
        name = (callee.text if callee is not None else "") + (type_args.text if type_args is not None else "")
        calls.append((name, [a.text for a in arg_nodes[1:]]))
        value = arg_nodes[0] if arg_nodes else None
    return calls


# ===================================================================
# Generation state
# ===================================================================

@dataclass
class _Module:
    """Pieces of the module being generated for one unit."""

    component: ComponentDefinition
    lines: List[str]
    imports: List[str] = field(default_factory=list)
    react_bindings: Set[str] = field(default_factory=set)
    has_react_import: bool = False
    types: List[str] = field(default_factory=list)
    type_names: Set[str] = field(default_factory=set)
    helpers: List[str] = field(default_factory=list)
    trailer: List[str] = field(default_factory=list)
    hook: str = ""
    declaration: str = ""
    default_exported: bool = False
    lifted: List[Tuple[str, str]] = field(default_factory=list)
    needed_hooks: Set[str] = field(default_factory=set)
    warnings: List[str] = field(default_factory=list)
    manual_review: bool = False

    @property
    def name(self) -> str:
        return self.component.name

    @property
    def hook_name(self) -> str:
        return f"use{self.component.name}Logic"

    def warn(self, message: str, review: bool = True) -> None:
        self.warnings.append(message)
        self.manual_review = self.manual_review or review


# ===================================================================
# Transformer
# ===================================================================

class ComponentTransformer:
    """Converts discovered units into the target component shape."""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx
        self.log = ctx.child_logger(__name__)
        self.options = ctx.config.transform

    def transform(self, component: ComponentDefinition, source: Optional[str] = None) -> TransformationResult:
        """Transform one unit; failures come back as an unsuccessful result.

        Failures go through the run's recovery strategies: the fallback marks
        the result for manual review, and an exhausted error still becomes an
        error result rather than propagating.
        """
        started = time.perf_counter()
        context = self.ctx.error_context(unit=component.id, operation="transform", file_path=component.file_path)
        self.ctx.token.raise_if_cancelled(context)
        try:
            result = self.ctx.errors.run_with_recovery(
                lambda: self._transform(component, source),
                context,
                fallback=lambda error, recovery: self.error_result(component, error),
            )
        except (CancelledError, PhaseTimeoutError):
            raise
        except PipelineError as error:
            return self.error_result(component, error)
        if result.success:
            self.log.info(
                "Transformed %s in %.2fs (compatibility %d, effort %s)",
                component.id, time.perf_counter() - started, result.compatibility_score, result.migration_effort,
            )
        return result

    @staticmethod
    def error_result(component: ComponentDefinition, error: PipelineError) -> TransformationResult:
        return TransformationResult(
            component=component,
            success=False,
            warnings=[error.message],
            migration_effort="critical",
            compatibility_score=0,
            metrics=TransformationMetrics(),
            requires_manual_review=True,
        )

    def transform_batch(
        self,
        components: Sequence[ComponentDefinition],
        sources: Optional[Dict[str, str]] = None,
        on_result: Optional[Callable[[TaskResult[TransformationResult]], None]] = None,
    ) -> Dict[str, TransformationResult]:
        """Transform many units, in parallel batches when configured."""
        sources = sources or {}
        runner = self.ctx.batch_runner(self.options.parallel, self.options.max_concurrency, self.options.batch_size)
        sort_key = (lambda c: (-COMPLEXITY_RANK[c.complexity], c.id)) if self.options.prioritize_by_complexity else None
        group_key = (lambda c: (c.kind, c.complexity)) if self.options.group_by_similarity else None
        results = runner.run(
            components,
            lambda c: self.transform(c, sources.get(c.id)),
            key=lambda c: c.id,
            sort_key=sort_key,
            group_key=group_key,
            on_result=on_result,
        )
        by_id = {c.id: c for c in components}
        return {
            r.key: r.value if r.ok else self.error_result(by_id[r.key], r.error)
            for r in results
        }

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def _transform(self, component: ComponentDefinition, source: Optional[str]) -> TransformationResult:
        path = Path(component.absolute_path)
        if source is None:
            source = path.read_text(encoding="utf-8")
        context = self.ctx.error_context(unit=component.id, operation="transform", file_path=component.file_path)
        document = parse_path(path, source)
        if document.has_errors:
            raise TransformationError(
                "Source has syntax errors: " + "; ".join(document.describe_errors(limit=2)), context
            )
        found = find_declaration(document.root, component.name) or _default_export(document.root)
        if found is None:
            raise TransformationError(f"Declaration of {component.name} not found in {component.file_path}", context)
        stmt, node = found

        module = _Module(component, source.splitlines())
        self._collect_module(module, document, stmt, node)
        self._props_declaration(module, node)
        if component.kind == "class":
            self._convert_class(module, node, context)
        elif component.kind == "functional" and function_of(node) is not None:
            self._convert_function(module, node)
        else:
            module.declaration = stmt.text if stmt.kind == "export_statement" else "export " + stmt.text
            module.default_exported = stmt.has_token("default")
            module.warn(f"{component.kind} units are carried over without structural changes", review=False)
        code = self._assemble(module)
        return self._result(component, module, code, source, stmt, node)

    def _collect_module(self, module: _Module, document: SyntaxDocument, stmt: SyntaxNode, node: SyntaxNode) -> None:
        """Keep imports plus every top-level declaration the unit transitively uses."""
        candidates = []
        for top in document.root.named_children:
            if top is stmt or top.kind == "comment":
                continue
            if top.kind == "import_statement":
                module.imports.append(top.text)
                if string_value(top.child("source")) == "react":
                    module.has_react_import = True
                    module.react_bindings |= set(import_bindings(top))
                continue
            if top.kind == "expression_statement" and module.name in references(top):
                module.trailer.append(top.text)
                continue
            decl = top.child("declaration") if top.kind == "export_statement" else top
            if decl is None:
                continue
            names = set(declared_names(decl))
            if names:
                candidates.append((top, decl, names))

        needed = references(node) | {f"{module.name}Props"}
        kept: Set[int] = set()
        changed = True
        while changed:
            changed = False
            for idx, (_, decl, names) in enumerate(candidates):
                if idx not in kept and names & needed:
                    kept.add(idx)
                    needed |= references(decl)
                    changed = True

        for idx in sorted(kept):
            top, decl, names = candidates[idx]
            if top.has_token("default"):
                text = decl.text
            else:
                text = top.text
            if decl.kind in TYPE_DECLARATIONS:
                module.types.append(text if text.startswith("export") else "export " + text)
                module.type_names |= names
            else:
                module.helpers.append(text)

    def _props_declaration(self, module: _Module, node: SyntaxNode) -> None:
        props_type = f"{module.name}Props"
        if props_type in module.type_names:
            return
        annotation = self._props_annotation(node)
        if annotation and annotation != props_type:
            module.types.append(f"export type {props_type} = {annotation};")
            return
        lines = [f"export interface {props_type} {{"]
        for prop in module.component.props:
            if prop.description:
                lines.append(f"{INDENT}/** {prop.description.splitlines()[0].replace('*/', '* /')} */")
            name = prop.name if IDENTIFIER.match(prop.name) else f'"{prop.name}"'
            type_text = "(...args: unknown[]) => unknown" if prop.type == "function" else prop.type
            lines.append(f"{INDENT}{name}{'' if prop.required else '?'}: {type_text};")
        lines.append("}")
        module.types.append("\n".join(lines))

    @staticmethod
    def _props_annotation(node: SyntaxNode) -> Optional[str]:
        if node.kind == "class_declaration":
            heritage = next((c for c in node.children if c.kind == "class_heritage"), None)
            args = heritage.first("type_arguments") if heritage is not None else None
            return args.named_children[0].text if args is not None and args.named_children else None
        fn = function_of(node)
        params = _params(fn) if fn is not None else []
        if params and params[0].kind in ("required_parameter", "optional_parameter"):
            annotation = params[0].child("type")
            if annotation is not None:
                return annotation.text.lstrip(":").strip()
        if node.kind == "variable_declarator" and node.child("type") is not None:
            args = node.child("type").first("type_arguments")
            if args is not None and args.named_children:
                return args.named_children[0].text
        return None

    # ------------------------------------------------------------------
    # Function components
    # ------------------------------------------------------------------

    def _convert_function(self, module: _Module, node: SyntaxNode) -> None:
        fn = function_of(node)
        params = _params(fn)
        props_name, destructure, prop_names = "props", None, []
        signature, call_args = "", ""
        if params:
            pattern = _param_pattern(params[0])
            if pattern is not None and pattern.kind == "identifier":
                props_name = pattern.text
            elif pattern is not None and pattern.kind == "object_pattern":
                destructure = pattern.text
                prop_names = pattern_names(pattern)
            rest = params[1:]
            signature = ", ".join([f"{props_name}: {module.name}Props"] + [p.text for p in rest])
            call_args = ", ".join([props_name] + [_param_pattern(p).text for p in rest if _param_pattern(p) is not None])

        prelude = [f"{INDENT}const {destructure} = {props_name};"] if destructure else []
        body = fn.child("body")
        lifted: List[str] = []
        render: List[str] = []
        names: List[str] = []
        if body is not None and body.kind == "statement_block":
            statements = body.named_children
            logic = logic_statements(statements) if self.options.extract_business_logic else set()
            logic_names = {bl.name for bl in module.component.business_logic}
            for stmt in statements:
                text = reindent(stmt.text, line_indent(module.lines, stmt))
                if id(stmt) not in logic:
                    render.append(text)
                    continue
                lifted.append(text)
                for name in declared_names(stmt):
                    if name not in names and name not in prop_names:
                        names.append(name)
                    if name in logic_names:
                        module.lifted.append((name, text))
        elif body is not None:
            render.append(reindent(f"return {body.text};", line_indent(module.lines, body)))

        self._emit(module, node, signature, call_args, prelude, lifted, names, render)

    # ------------------------------------------------------------------
    # Class components
    # ------------------------------------------------------------------

    def _convert_class(self, module: _Module, node: SyntaxNode, context) -> None:
        body = node.child("body")
        members = [m for m in body.named_children if m.kind != "comment"] if body is not None else []
        state: List[Tuple[str, str, int]] = []
        pieces: List[Tuple[str, str]] = []
        effects: List[str] = []
        render: Optional[SyntaxNode] = None

        for member in members:
            name_node = member.child("name") or member.child("property")
            name = name_node.text if name_node is not None else ""
            anchor = line_indent(module.lines, member)
            if member.kind == "method_definition":
                if name == "render":
                    render = member
                elif name == "constructor":
                    state.extend(self._constructor_state(module, member))
                elif member.has_token("static") or member.has_token("get") or member.has_token("set") or name.startswith("#"):
                    module.warn(f"Member {name} of {module.name} requires manual migration")
                elif name in LIFECYCLE_METHODS:
                    effect = self._lifecycle_effect(module, name, member, anchor)
                    if effect:
                        effects.append(effect)
                else:
                    params = member.child("parameters")
                    ret = member.child("return_type")
                    prefix = "async " if member.has_token("async") else ""
                    text = (
                        f"const {name} = {prefix}{params.text if params is not None else '()'}"
                        f"{ret.text if ret is not None else ''} => {member.child('body').text};"
                    )
                    pieces.append((name, reindent(rewrite_this(text), anchor)))
            elif member.kind in ("public_field_definition", "field_definition"):
                value = member.child("value")
                if member.has_token("static") or name.startswith("#") or not IDENTIFIER.match(name):
                    module.warn(f"Field {name} of {module.name} was dropped")
                elif name == "state" and value is not None and value.kind == "object":
                    state.extend(self._object_pairs(module, value))
                elif value is not None and value.kind in FUNCTION_KINDS:
                    pieces.append((name, reindent(rewrite_this(f"const {name} = {value.text};"), anchor)))
                else:
                    init = value.text if value is not None else "undefined"
                    pieces.append((name, reindent(rewrite_this(f"let {name} = {init};"), anchor)))
                    module.warn(f"Instance field {name} became a local variable and no longer persists across renders")

        if render is None or render.child("body") is None:
            raise TransformationError(f"Class component {module.name} has no render method", context)

        lifted: List[str] = []
        names: List[str] = []
        for key, value, anchor in state:
            setter = f"set{key[:1].upper()}{key[1:]}"
            lifted.append(reindent(rewrite_this(f"const [{key}, {setter}] = useState({value});"), anchor))
            names.extend([key, setter])
        if state:
            module.needed_hooks.add("useState")
            member_text = "\n".join(m.text for m in members)
            # The constructor's own ``this.state = {...}`` is not a read of the whole state.
            reads = "\n".join(m.text for m in members if m.kind != "method_definition"
                              or (m.child("name") is not None and m.child("name").text != "constructor"))
            if BARE_STATE.search(reads):
                lifted.append(f"{INDENT}const state = {{ {', '.join(k for k, _, _ in state)} }};")
                names.append("state")
            if "this.setState" in member_text:
                lifted.append(self._set_state_helper(state))
                names.append("setState")
                module.warn("setState calls were mapped onto per-field setters; review updater functions", review=False)
        logic_names = {bl.name for bl in module.component.business_logic}
        for name, text in pieces:
            lifted.append(text)
            names.append(name)
            if name in logic_names:
                module.lifted.append((name, text))
        lifted.extend(effects)

        render_lines = [
            reindent(rewrite_this(stmt.text), line_indent(module.lines, stmt))
            for stmt in render.child("body").named_children
        ]
        if not self.options.extract_business_logic:
            render_lines = lifted + render_lines
            lifted, names = [], []
        self._emit(module, node, f"props: {module.name}Props", "props", [], lifted, names, render_lines)

    @staticmethod
    def _object_pairs(module: _Module, obj: SyntaxNode) -> List[Tuple[str, str, int]]:
        pairs = []
        for entry in obj.named_children:
            if entry.kind == "pair":
                key = entry.child("key")
                value = entry.child("value")
                key_text = string_value(key) if key is not None else ""
                if IDENTIFIER.match(key_text) and value is not None:
                    pairs.append((key_text, value.text, line_indent(module.lines, entry)))
                    continue
            elif entry.kind == "shorthand_property_identifier":
                pairs.append((entry.text, entry.text, line_indent(module.lines, entry)))
                continue
            elif entry.kind == "comment":
                continue
            module.warn(f"State entry '{entry.text}' of {module.name} could not be mapped onto useState")
        return pairs

    def _constructor_state(self, module: _Module, ctor: SyntaxNode) -> List[Tuple[str, str, int]]:
        state: List[Tuple[str, str, int]] = []
        body = ctor.child("body")
        for stmt in body.named_children if body is not None else []:
            expr = stmt.named_children[0] if stmt.kind == "expression_statement" and stmt.named_children else None
            if expr is not None and expr.kind == "call_expression" and expr.child("function") is not None \
                    and expr.child("function").kind == "super":
                continue
            if expr is not None and expr.kind == "assignment_expression":
                left, right = expr.child("left"), expr.child("right")
                if left is not None and left.text == "this.state" and right is not None and right.kind == "object":
                    state.extend(self._object_pairs(module, right))
                    continue
            if BOUND_METHOD.match(stmt.text.strip()) or stmt.kind == "comment":
                continue
            module.warn(f"Constructor statement of {module.name} was dropped: {stmt.text.strip().splitlines()[0]}")
        return state

    @staticmethod
    def _lifecycle_effect(module: _Module, name: str, member: SyntaxNode, anchor: int) -> Optional[str]:
        body = member.child("body")
        if body is None:
            return None
        if name == "componentDidMount":
            text = f"useEffect(() => {body.text}, []);"
        elif name == "componentWillUnmount":
            text = f"useEffect(() => () => {body.text}, []);"
        elif name == "componentDidUpdate":
            text = f"useEffect(() => {body.text});"
            params = member.child("parameters")
            if params is not None and params.named_children:
                module.warn(f"componentDidUpdate of {module.name} compared previous props or state; add effect dependencies")
        else:
            module.warn(f"Lifecycle method {name} of {module.name} has no direct hook equivalent")
            return None
        module.needed_hooks.add("useEffect")
        return reindent(rewrite_this(text), anchor)

    @staticmethod
    def _set_state_helper(state: List[Tuple[str, str, int]]) -> str:
        keys = [key for key, _, _ in state]
        shape = "; ".join(f"{key}: unknown" for key in keys)
        lines = [f"{INDENT}const setState = (patch: Partial<{{ {shape} }}>) => {{"]
        for key in keys:
            setter = f"set{key[:1].upper()}{key[1:]}"
            lines.append(f"{INDENT * 2}if (patch.{key} !== undefined) {setter}(patch.{key} as typeof {key});")
        lines.append(f"{INDENT}}};")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _emit(
        self,
        module: _Module,
        node: SyntaxNode,
        signature: str,
        call_args: str,
        prelude: List[str],
        lifted: List[str],
        names: List[str],
        render: List[str],
    ) -> None:
        body = list(prelude)
        if lifted:
            hook = [
                *_doc_comment(f"State, effects and handlers extracted from {module.name}."),
                f"export function {module.hook_name}({signature}) {{",
                *prelude,
                *lifted,
            ]
            if names:
                hook.append(f"{INDENT}return {{ {', '.join(names)} }};")
            hook.append("}")
            module.hook = "\n".join(hook)
            call = f"{module.hook_name}({call_args})"
            body.append(f"{INDENT}const {{ {', '.join(names)} }} = {call};" if names else f"{INDENT}{call};")
        body.extend(render)

        doc = module.component.metadata.documentation
        head = _doc_comment(doc) if doc else []
        inner = f"function {module.name}({signature}) {{"
        wrappers = _wrapper_calls(node) if node.kind == "variable_declarator" else []
        if wrappers:
            opening = "".join(f"{callee}(" for callee, _ in wrappers)
            closing = "".join(
                (", " + ", ".join(extra) if extra else "") + ")" for _, extra in reversed(wrappers)
            )
            lines = [f"export const {module.name} = {opening}{inner}", *body, f"}}{closing};"]
        else:
            lines = [f"export {inner}", *body, "}"]
        module.declaration = "\n".join(head + lines)

    def _assemble(self, module: _Module) -> str:
        component = module.component
        imports = list(module.imports)
        if not module.has_react_import:
            imports.insert(0, 'import React from "react";')
        missing = sorted(module.needed_hooks - module.react_bindings)
        if missing:
            imports.append(f'import {{ {", ".join(missing)} }} from "react";')

        parts = [
            "\n".join(_doc_comment(
                f"{component.name}\n\nMigrated from {component.file_path} by uimigrate {__version__}.\n"
                f"Source kind: {component.kind}; complexity: {component.complexity}."
            )),
            "\n".join(imports),
        ]
        if module.types:
            parts.append("\n\n".join(module.types))
        if module.helpers:
            parts.append("\n\n".join(module.helpers))
        if module.hook:
            parts.append(module.hook)
        parts.append(module.declaration)
        parts.extend(module.trailer)
        if not module.default_exported:
            parts.append(f"export default {component.name};")
        if self.options.compat_layer:
            parts.append(
                f"/** @deprecated Use {component.name} instead. */\n"
                f"export const {component.name}Legacy = {component.name};"
            )
        return "\n\n".join(parts) + "\n"

    def _result(
        self,
        component: ComponentDefinition,
        module: _Module,
        code: str,
        source: str,
        stmt: SyntaxNode,
        node: SyntaxNode,
    ) -> TransformationResult:
        generated = parse_source(code, "tsx", f"{component.name}.tsx")
        if generated.has_errors:
            module.warn("Generated code has syntax errors: " + "; ".join(generated.describe_errors(limit=2)))

        found = find_declaration(generated.root, component.name)
        complexity_before = cyclomatic_complexity(node)
        complexity_after = cyclomatic_complexity(found[1] if found else generated.root)
        loc_before = count_loc(stmt.text)
        loc_after = count_loc(module.declaration)

        units = {u.name: u for u in components_in_document(generated, f"{component.name}/{component.name}.tsx")}
        main = units.get(component.name)
        if main is None:
            transformed = dataclasses.replace(component, file_path=f"{component.name}/{component.name}.tsx", absolute_path="")
        else:
            hook_unit = units.get(module.hook_name)
            logic = main.business_logic + (hook_unit.business_logic if hook_unit is not None else ())
            patterns = set(main.patterns) | set(hook_unit.patterns if hook_unit is not None else ())
            transformed = dataclasses.replace(
                main,
                business_logic=logic,
                patterns=tuple(p for p in PATTERN_ORDER if p in patterns),
            )

        complexity_of = {bl.name: bl.complexity for bl in component.business_logic}
        hooks = [
            ExtractedHook(
                name=name,
                code=text,
                source_functions=[name],
                complexity_reduction=COMPLEXITY_REDUCTION.get(complexity_of.get(name, "simple"), 1),
            )
            for name, text in module.lifted
        ]
        exports = [component.name, "default", f"{component.name}Props"]
        if module.hook:
            exports.append(module.hook_name)
        if self.options.compat_layer:
            exports.append(f"{component.name}Legacy")

        return TransformationResult(
            component=component,
            success=True,
            code=code,
            hooks=hooks,
            type_definitions="\n\n".join(module.types),
            imports=[line for line in code.splitlines() if line.startswith("import ")],
            exports=exports,
            warnings=module.warnings,
            migration_effort=migration_effort(component, count_loc(source)),
            compatibility_score=compatibility_score(component),
            metrics=TransformationMetrics(
                loc_before=loc_before,
                loc_after=loc_after,
                complexity_before=complexity_before,
                complexity_after=complexity_after,
                quality_improvement=quality_improvement(complexity_before, complexity_after, loc_before, loc_after),
                bundle_size_delta=len(code.encode("utf-8")) - len(source.encode("utf-8")),
            ),
            requires_manual_review=module.manual_review,
            transformed=transformed,
            event_handlers=event_handlers(node),
        )
