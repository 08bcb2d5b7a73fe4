"""Tests for the tree-sitter syntax layer and the structural parser."""

from pathlib import Path

import pytest

from uimigrate.config_manager import MigrationConfig
from uimigrate.context import RunContext
from uimigrate.errors import ConfigurationError, ErrorCategory
from uimigrate.parser import ComplexityVisitor, StructuralParser, cyclomatic_complexity
from uimigrate.syntax import (
    SyntaxVisitor,
    clean_jsdoc,
    find_declaration,
    language_for,
    parse_path,
    parse_source,
)


BRANCHY = """
function branchy(a, b) {
  if (a) { return 1; }
  for (const x of b) { if (x) continue; }
  switch (a) { case 1: break; default: break; }
  return a && b ? a : b ?? 0;
}
"""


def test_language_for_extensions():
    """Test grammar selection by file extension."""
    assert language_for(Path("A.tsx")) == "tsx"
    assert language_for(Path("a.ts")) == "typescript"
    assert language_for(Path("a.jsx")) == "javascript"
    assert language_for(Path("a.js")) == "javascript"
    assert language_for(Path("a.py")) is None


def test_unsupported_file_type(temp_dir: Path):
    """Test parsing an unsupported file raises a configuration error."""
    with pytest.raises(ConfigurationError):
        parse_path(temp_dir / "notes.md", "text")


def test_parse_source_builds_tagged_tree():
    """Test the converted tree exposes kinds, fields and text."""
    document = parse_source("export function Hello() { return <p>hi</p>; }", "tsx")

    assert not document.has_errors
    found = find_declaration(document.root, "Hello")
    assert found is not None
    stmt, node = found
    assert stmt.kind == "export_statement"
    assert node.kind == "function_declaration"
    assert node.child("name").text == "Hello"
    assert node.start_line == 1


def test_syntax_errors_are_reported():
    """Test error nodes are surfaced with positions."""
    document = parse_source("const x = (;", "typescript", "broken.ts")

    assert document.has_errors
    assert document.error_positions
    assert all(message.startswith("broken.ts:") for message in document.describe_errors())


def test_visitor_dispatch_and_pruning():
    """Test a handler returning False prunes the subtree."""
    document = parse_source("function a() { function b() {} }\nfunction c() {}", "javascript")
    seen = []

    class Names(SyntaxVisitor):
        def __init__(self):
            super().__init__()
            self.on("function_declaration", self.function)

        def function(self, node):
            seen.append(node.child("name").text)
            return False

    Names().visit(document.root)
    assert seen == ["a", "c"]


def test_cyclomatic_and_cognitive_complexity():
    """Test branch counting for both metrics."""
    document = parse_source(BRANCHY, "javascript")
    _, node = find_declaration(document.root, "branchy")

    visitor = ComplexityVisitor()
    visitor.visit(node)
    assert visitor.cyclomatic == 9
    assert visitor.cognitive == 12
    assert cyclomatic_complexity(node) == 9


def test_clean_jsdoc():
    """Test JSDoc markers are stripped."""
    assert clean_jsdoc("/**\n * First line.\n *\n * Second.\n */") == "First line.\nSecond."


def test_parse_functional_component(run_context: RunContext, components):
    """Test parsing a documented functional component."""
    result = StructuralParser(run_context).parse(components["Header"])

    assert result.success
    assert result.unit_id == "src/components/Header.tsx:Header"
    assert result.complexity == 2
    assert result.documentation.startswith("Page header")
    assert result.structure.props == ["title", "subtitle"]
    assert result.structure.exports == ["HeaderProps", "Header", "default"]
    assert result.structure.imports == {"external": [], "internal": [], "types": []}


def test_parse_hooks_and_composition(run_context: RunContext, components):
    """Test hook categories, child components and import groups."""
    result = StructuralParser(run_context).parse(components["Daisy"])
    structure = result.structure

    assert result.success
    assert structure.hooks["state"] == ["useState"]
    assert structure.hooks["effect"] == ["useEffect"]
    assert structure.hooks["context"] == ["useContext"]
    assert structure.hooks["custom"] == ["useTranslation"]
    assert {"Header", "Button", "Dialog", "Panel"} <= set(structure.composition["children"])
    assert "react" in structure.imports["external"]
    assert "./Header" in structure.imports["internal"]
    assert {"applyFilter", "handleSelect", "formatRow"} <= set(structure.methods)
    assert "Daisy" not in structure.methods


def test_parse_class_lifecycle(run_context: RunContext, components):
    """Test class members are split into methods and lifecycle methods."""
    structure = StructuralParser(run_context).parse(components["Counter"]).structure

    assert structure.lifecycle == ["componentDidMount"]
    assert "handleIncrement" in structure.methods
    assert "render" not in structure.methods
    assert "constructor" not in structure.methods


def test_parse_failure_is_recorded(run_context: RunContext, components):
    """Test a syntax error gives a failed result and a ParsingError."""
    result = StructuralParser(run_context).parse(components["Broken"])

    assert not result.success
    assert result.errors
    assert result.requires_manual_review
    last = run_context.errors.history[-1]
    assert last.category is ErrorCategory.PARSING
    assert last.context.unit == components["Broken"].id


def test_transient_read_failure_is_retried(run_context: RunContext, components, flaky_reads):
    """Test a read that fails once is retried and the unit still parses."""
    failures = flaky_reads("Header.tsx")

    result = StructuralParser(run_context).parse(components["Header"])

    assert result.success
    assert len(failures) == 1
    retried = run_context.errors.history[-1]
    assert retried.category is ErrorCategory.FILE_SYSTEM
    assert retried.context.unit == components["Header"].id
    assert retried.context.data["attempt"] == 1


def test_persistent_read_failure_exhausts_retries(run_context: RunContext, components, monkeypatch):
    """Test a read that keeps failing gives a failed result after every attempt."""
    calls = []

    def unreadable(self, *args, **kwargs):
        calls.append(self)
        raise OSError("device not ready")

    monkeypatch.setattr(Path, "read_text", unreadable)
    result = StructuralParser(run_context).parse(components["Header"])

    assert not result.success
    assert result.errors[0].startswith("Could not read")
    assert not result.requires_manual_review
    assert len(calls) == run_context.config.retry.max_attempts


def test_file_too_large(components):
    """Test the max file size limit."""
    cfg = MigrationConfig()
    cfg.parser.max_file_size = 64
    ctx = RunContext.create(cfg, sleep=lambda s: None)

    result = StructuralParser(ctx).parse(components["Daisy"])

    assert not result.success
    assert "too large" in result.errors[0]


def test_parse_with_inline_source(run_context: RunContext, components):
    """Test parsing a supplied source instead of reading the file."""
    source = "export function Header({ title }: { title: string }) {\n  return title ? <h1>{title}</h1> : null;\n}\n"
    result = StructuralParser(run_context).parse(components["Header"], source=source)

    assert result.success
    assert result.complexity == 2
    assert result.documentation is None
