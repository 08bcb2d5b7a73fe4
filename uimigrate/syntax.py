"""Tree-sitter syntax layer for TypeScript / JavaScript component sources.

Tree-sitter produces an error-tolerant concrete syntax tree.  It is copied
into :class:`SyntaxNode` values (a tagged union keyed by the grammar's node
kind) so that the rest of the pipeline never touches tree-sitter objects
directly, and traversal goes through :class:`SyntaxVisitor` dispatch tables
instead of probing arbitrary attributes.
"""

from __future__ import annotations

import importlib
import logging
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from tree_sitter import Language, Parser as TSParser

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".tsx": "tsx",
    ".ts": "typescript",
    ".jsx": "javascript",
    ".js": "javascript",
    ".mjs": "javascript",
}

# language -> (grammar module, function returning the Language capsule)
_GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "tsx": ("tree_sitter_typescript", "language_tsx"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "javascript": ("tree_sitter_javascript", "language"),
}

_local = threading.local()


def language_for(path: Path) -> Optional[str]:
    if path.name.endswith(".d.ts"):
        return "typescript"
    return LANGUAGE_MAP.get(path.suffix)


@lru_cache(maxsize=None)
def load_language(language: str) -> Language:
    """Load (once) the tree-sitter grammar for *language*."""
    spec = _GRAMMAR_MODULES.get(language)
    if spec is None:
        raise ConfigurationError(f"No grammar mapped for language '{language}'")
    mod_name, func_name = spec
    try:
        mod = importlib.import_module(mod_name)
    except ImportError as exc:
        raise ConfigurationError(
            f"Grammar package '{mod_name}' is not installed. "
            f"Install with: pip install {mod_name.replace('_', '-')}",
            cause=exc,
        ) from exc
    logger.debug("Loaded tree-sitter grammar for %s", language)
    return Language(getattr(mod, func_name)())


def get_parser(language: str) -> TSParser:
    """Return this thread's parser for *language* (tree-sitter parsers are not thread-safe)."""
    parsers = getattr(_local, "parsers", None)
    if parsers is None:
        parsers = _local.parsers = {}
    parser = parsers.get(language)
    if parser is None:
        parser = parsers[language] = TSParser(load_language(language))
    return parser


# ===================================================================
# Tagged syntax nodes
# ===================================================================

@dataclass(eq=False)
class SyntaxNode:
    kind: str
    named: bool
    start_byte: int
    end_byte: int
    start_line: int
    start_column: int
    end_line: int
    is_error: bool = False
    is_missing: bool = False
    children: List["SyntaxNode"] = field(default_factory=list)
    fields: Dict[str, "SyntaxNode"] = field(default_factory=dict)
    _source: bytes = field(default=b"", repr=False)

    @property
    def text(self) -> str:
        return self._source[self.start_byte:self.end_byte].decode("utf-8", errors="replace")

    @property
    def named_children(self) -> List["SyntaxNode"]:
        return [c for c in self.children if c.named]

    def child(self, field_name: str) -> Optional["SyntaxNode"]:
        return self.fields.get(field_name)

    def has_token(self, token: str) -> bool:
        """True if an anonymous child token equals *token* (e.g. ``?``)."""
        return any(not c.named and c.kind == token for c in self.children)

    def walk(self) -> Iterator["SyntaxNode"]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find_all(self, kinds: Iterable[str]) -> List["SyntaxNode"]:
        wanted = frozenset(kinds)
        return [n for n in self.walk() if n.kind in wanted]

    def first(self, kind: str) -> Optional["SyntaxNode"]:
        for node in self.walk():
            if node.kind == kind:
                return node
        return None


def _make_node(ts_node, source: bytes) -> SyntaxNode:
    return SyntaxNode(
        kind=ts_node.type,
        named=ts_node.is_named,
        start_byte=ts_node.start_byte,
        end_byte=ts_node.end_byte,
        start_line=ts_node.start_point[0] + 1,
        start_column=ts_node.start_point[1],
        end_line=ts_node.end_point[0] + 1,
        is_error=ts_node.type == "ERROR",
        is_missing=ts_node.is_missing,
        _source=source,
    )


def convert_tree(tree, source: bytes) -> SyntaxNode:
    """Copy a tree-sitter tree into :class:`SyntaxNode` values without recursion."""
    cursor = tree.walk()
    root = _make_node(cursor.node, source)
    parents: List[SyntaxNode] = []
    current = root
    children_done = False

    while True:
        if not children_done and cursor.goto_first_child():
            parents.append(current)
        elif cursor.goto_next_sibling():
            pass
        elif cursor.goto_parent():
            current = parents.pop()
            children_done = True
            continue
        else:
            break

        node = _make_node(cursor.node, source)
        parent = parents[-1]
        parent.children.append(node)
        field_name = cursor.field_name
        if field_name and field_name not in parent.fields:
            parent.fields[field_name] = node
        current = node
        children_done = False

    return root


@dataclass
class SyntaxDocument:
    """A parsed source file."""

    path: str
    language: str
    source: str
    root: SyntaxNode

    @property
    def has_errors(self) -> bool:
        return bool(self.error_positions)

    @property
    def error_positions(self) -> List[Tuple[int, int]]:
        return [
            (n.start_line, n.start_column + 1)
            for n in self.root.walk()
            if n.is_error or n.is_missing
        ]

    def describe_errors(self, limit: int = 5) -> List[str]:
        messages = []
        for node in self.root.walk():
            if node.is_missing:
                messages.append(f"{self.path}:{node.start_line}:{node.start_column + 1}: missing '{node.kind}'")
            elif node.is_error:
                snippet = node.text.strip().splitlines()[0][:40] if node.text.strip() else ""
                messages.append(f"{self.path}:{node.start_line}:{node.start_column + 1}: unexpected '{snippet}'")
            if len(messages) >= limit:
                break
        return messages


def parse_source(source: str, language: str, path: str = "<memory>") -> SyntaxDocument:
    source_bytes = source.encode("utf-8")
    tree = get_parser(language).parse(source_bytes)
    return SyntaxDocument(path=path, language=language, source=source, root=convert_tree(tree, source_bytes))


def parse_path(path: Path, source: Optional[str] = None) -> SyntaxDocument:
    """Parse *path* with the grammar matching its extension."""
    language = language_for(path)
    if language is None:
        raise ConfigurationError(f"Unsupported file type: {path.suffix}")
    if source is None:
        source = path.read_text(encoding="utf-8", errors="replace")
    return parse_source(source, language, str(path))


# ===================================================================
# Visitors
# ===================================================================

Handler = Callable[[SyntaxNode], Optional[bool]]


class SyntaxVisitor:
    """Pre-order walker driven by an explicit ``{kind: handler}`` table.

    A handler returning ``False`` prunes the node's subtree.  Node kinds in
    ``nesting_kinds`` increase :attr:`depth` for their descendants.
    """

    nesting_kinds: FrozenSet[str] = frozenset()

    def __init__(self) -> None:
        self.dispatch: Dict[str, Handler] = {}
        self.depth = 0

    def on(self, kind: str, handler: Handler) -> None:
        self.dispatch[kind] = handler

    def visit(self, root: SyntaxNode) -> None:
        stack: List[Tuple[SyntaxNode, int]] = [(root, 0)]
        while stack:
            node, depth = stack.pop()
            self.depth = depth
            handler = self.dispatch.get(node.kind)
            if handler is not None and handler(node) is False:
                continue
            child_depth = depth + 1 if node.kind in self.nesting_kinds else depth
            stack.extend((child, child_depth) for child in reversed(node.children))


# ===================================================================
# Shared helpers for component sources
# ===================================================================

FUNCTION_KINDS = frozenset({
    "function_declaration", "generator_function_declaration", "function_expression",
    "function", "arrow_function", "method_definition",
})


def top_level_declarations(root: SyntaxNode) -> Iterator[Tuple[SyntaxNode, SyntaxNode, bool]]:
    """Yield ``(statement, declaration, exported)`` for each top-level declaration.

    ``statement`` is the node as it appears in the program (possibly an
    ``export_statement``); ``declaration`` is the unwrapped declaration.
    """
    for stmt in root.named_children:
        if stmt.kind == "export_statement":
            inner = stmt.child("declaration") or stmt.child("value")
            if inner is not None:
                yield stmt, inner, True
        elif stmt.kind != "comment":
            yield stmt, stmt, False


def declared_name(decl: SyntaxNode) -> Optional[str]:
    name = decl.child("name")
    return name.text if name is not None else None


def find_declaration(root: SyntaxNode, name: str) -> Optional[Tuple[SyntaxNode, SyntaxNode]]:
    """Locate the top-level declaration of *name*.

    Returns ``(statement, node)`` where ``node`` is the function, class or
    variable declarator that introduces *name*.
    """
    for stmt, decl, _ in top_level_declarations(root):
        if decl.kind in ("lexical_declaration", "variable_declaration"):
            for declarator in decl.named_children:
                if declarator.kind == "variable_declarator" and declared_name(declarator) == name:
                    return stmt, declarator
        elif declared_name(decl) == name:
            return stmt, decl
    return None


def function_of(node: SyntaxNode) -> Optional[SyntaxNode]:
    """The function node behind a declaration, unwrapping ``memo(...)``/``forwardRef(...)``."""
    if node.kind in FUNCTION_KINDS:
        return node
    if node.kind == "variable_declarator":
        value = node.child("value")
        while value is not None and value.kind == "call_expression":
            args = value.child("arguments")
            value = args.named_children[0] if args is not None and args.named_children else None
        if value is not None and value.kind in FUNCTION_KINDS:
            return value
    return None


def callee_name(call: SyntaxNode) -> str:
    """``React.useState`` -> ``useState``; ``useState`` -> ``useState``."""
    fn = call.child("function")
    if fn is None:
        return ""
    if fn.kind == "member_expression":
        prop = fn.child("property")
        return prop.text if prop is not None else ""
    return fn.text


def string_value(node: Optional[SyntaxNode]) -> str:
    """Unquote a string literal node."""
    if node is None:
        return ""
    text = node.text
    if len(text) >= 2 and text[0] in "'\"`" and text[-1] == text[0]:
        return text[1:-1]
    return text


def leading_comment(node: SyntaxNode, siblings: List[SyntaxNode]) -> Optional[SyntaxNode]:
    """The ``/** ... */`` comment directly above *node* among *siblings*, if any."""
    try:
        idx = next(i for i, s in enumerate(siblings) if s is node)
    except StopIteration:
        return None
    if idx == 0:
        return None
    prev = siblings[idx - 1]
    if prev.kind == "comment" and prev.text.startswith("/**") and node.start_line - prev.end_line <= 1:
        return prev
    return None


def clean_jsdoc(text: str) -> str:
    lines = []
    for line in text.strip().removeprefix("/**").removesuffix("*/").splitlines():
        line = line.strip().lstrip("*").strip()
        if line:
            lines.append(line)
    return "\n".join(lines)
