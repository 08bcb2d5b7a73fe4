"""Tests for component discovery."""

from pathlib import Path

import pytest

from uimigrate.config_manager import MigrationConfig
from uimigrate.context import RunContext
from uimigrate.discovery import (
    ComponentDiscovery,
    classify_complexity,
    classify_logic_complexity,
    components_in_document,
    is_likely_component_file,
    package_name,
)
from uimigrate.errors import FileSystemError
from uimigrate.syntax import parse_source


def test_discovers_every_component_unit(components):
    """Test that one unit is found per component declaration."""
    assert set(components) == {"Alpha", "Beta", "Broken", "Counter", "Daisy", "Header", "useToggle"}


def test_unit_id_is_relative_path_and_name(components):
    """Test the unit id format."""
    header = components["Header"]
    assert header.id == "src/components/Header.tsx:Header"
    assert header.file_path == "src/components/Header.tsx"
    assert Path(header.absolute_path).is_absolute()


def test_excluded_files_and_dirs_are_skipped(discovery_result):
    """Test that test files and node_modules never yield units."""
    paths = {c.file_path for c in discovery_result.components}
    assert not any(".test." in p for p in paths)
    assert not any("node_modules" in p for p in paths)
    assert "LeftPad" not in {c.name for c in discovery_result.components}


def test_component_kinds(components):
    """Test functional, class and hook classification."""
    assert components["Header"].kind == "functional"
    assert components["Counter"].kind == "class"
    assert components["useToggle"].kind == "hook"


def test_props_from_interface(components):
    """Test props are read from the {Name}Props interface with descriptions."""
    props = {p.name: p for p in components["Header"].props}

    assert set(props) == {"title", "subtitle"}
    assert props["title"].required is True
    assert props["title"].type == "string"
    assert props["title"].description == "Page title"
    assert props["subtitle"].required is False
    assert props["subtitle"].description == "shown under the title"


def test_class_props_from_heritage(components):
    """Test class components resolve props through Component<...> type arguments."""
    names = [p.name for p in components["Counter"].props]
    assert names == ["initial", "step"]


def test_documentation_and_coverage_metadata(components):
    """Test JSDoc detection and istanbul coverage lookup."""
    header = components["Header"]
    assert header.metadata.has_documentation is True
    assert "Page header" in header.metadata.documentation
    assert header.metadata.test_coverage == 90.0
    assert header.metadata.bundle_size > 0

    daisy = components["Daisy"]
    assert daisy.metadata.has_documentation is False
    assert daisy.metadata.test_coverage == 0.0


def test_header_has_no_dependencies(components):
    """Test a file without imports has no dependencies."""
    assert components["Header"].dependencies == ()
    assert components["Header"].complexity == "simple"


def test_daisy_is_critical_with_twelve_dependencies(components):
    """Test the heavy component's dependency list and complexity level."""
    daisy = components["Daisy"]
    deps = {d.import_path: d for d in daisy.dependencies}

    assert len(daisy.dependencies) == 12
    assert daisy.complexity == "critical"
    assert deps["react"].critical is True
    assert deps["react-dom"].critical is True
    assert deps["lodash"].critical is False
    assert deps["./Header"].kind == "internal"
    assert deps["./Header"].name == "Header"
    assert deps["@mui/material"].name == "@mui/material"
    assert deps["@mui/material"].bindings == ("Button", "Dialog")


def test_business_logic_and_patterns(components):
    """Test nested functions become business logic and hooks become pattern tags."""
    daisy = components["Daisy"]
    names = {bl.name for bl in daisy.business_logic}

    assert names == {"loadItems", "applyFilter", "handleSelect", "formatRow"}
    for pattern in ("useState", "useEffect", "useContext", "useMemo", "useCallback", "custom-hook"):
        assert pattern in daisy.patterns


def test_class_business_logic_excludes_lifecycle(components):
    """Test class methods are logic but render/constructor/lifecycle are not."""
    names = [bl.name for bl in components["Counter"].business_logic]
    assert names == ["handleIncrement", "reset"]


def test_broken_file_is_recovered_with_issue(discovery_result, components):
    """Test that a syntax error does not lose the unit."""
    assert "Broken" in components
    messages = [i.message for i in discovery_result.issues if i.file_path.endswith("Broken.tsx")]
    assert any("syntax errors" in m for m in messages)
    # Imports are recovered from the raw text.
    assert {d.import_path for d in components["Broken"].dependencies} == {"react", "./Header"}


def test_component_like_file_without_declaration_is_reported(discovery_result):
    """Test that a React file with no recognised component is a warning."""
    issues = [i for i in discovery_result.issues if i.file_path.endswith("ThemeContext.tsx")]
    assert len(issues) == 1
    assert issues[0].severity == "warning"


def test_statistics(discovery_result):
    """Test discovery statistics."""
    stats = discovery_result.statistics
    assert stats.total_components == 7
    assert stats.total_files == 8
    assert stats.by_kind["functional"] == 5
    assert stats.by_kind["class"] == 1
    assert stats.by_kind["hook"] == 1
    assert 1.0 <= stats.average_complexity <= 4.0


def test_discovery_is_idempotent(run_context, sample_project_path):
    """Test re-running discovery on an unchanged tree yields identical units."""
    first = ComponentDiscovery(run_context).discover(sample_project_path)
    second = ComponentDiscovery(run_context).discover(sample_project_path)
    assert first.components == second.components


def test_missing_root_is_fatal(run_context, temp_dir):
    """Test that a missing root raises a non-recoverable FileSystemError."""
    with pytest.raises(FileSystemError) as excinfo:
        ComponentDiscovery(run_context).discover(temp_dir / "missing")
    assert excinfo.value.recoverable is False


def test_transient_read_failure_is_retried(run_context, sample_project_path, flaky_reads):
    """Test a file whose first read fails is retried and still yields its unit."""
    failures = flaky_reads("Header.tsx", "read_bytes")

    result = ComponentDiscovery(run_context).discover(sample_project_path)

    assert len(failures) == 1
    assert "Header" in {c.name for c in result.components}
    assert result.statistics.total_components == 7
    assert not any(i.file_path.endswith("Header.tsx") for i in result.issues)


def test_unreadable_file_is_an_issue(run_context, sample_project_path, monkeypatch):
    """Test a file that never reads is retried, recorded and reported as an issue."""
    original = Path.read_bytes
    calls = []

    def unreadable(self):
        if self.name == "Header.tsx":
            calls.append(self)
            raise OSError("permission denied")
        return original(self)

    monkeypatch.setattr(Path, "read_bytes", unreadable)
    result = ComponentDiscovery(run_context).discover(sample_project_path)

    assert len(calls) == run_context.config.retry.max_attempts
    assert "Header" not in {c.name for c in result.components}
    issue = next(i for i in result.issues if i.file_path.endswith("Header.tsx"))
    assert issue.severity == "error"
    assert issue.message.startswith("Cannot read")


def test_unreadable_file_is_fatal_without_skip_errors(sample_project_path, monkeypatch):
    """Test skip_errors=False turns an exhausted read failure into a raised error."""
    def unreadable(self):
        raise OSError("permission denied")

    cfg = MigrationConfig()
    cfg.pipeline.skip_errors = False
    ctx = RunContext.create(cfg, sleep=lambda s: None)
    monkeypatch.setattr(Path, "read_bytes", unreadable)

    with pytest.raises(FileSystemError):
        ComponentDiscovery(ctx).discover(sample_project_path)


def test_file_limit_adds_warning(sample_project_path):
    """Test that max_files stops the scan with a warning."""
    cfg = MigrationConfig()
    cfg.discovery.max_files = 2
    ctx = RunContext.create(cfg, sleep=lambda s: None)

    result = ComponentDiscovery(ctx).discover(sample_project_path)

    assert result.statistics.total_files == 2
    assert any("File limit" in i.message for i in result.issues)


def test_wrapped_components_are_tagged():
    """Test forwardRef/memo wrappers are found and recorded as patterns."""
    source = (
        "import React, { forwardRef, memo } from 'react';\n"
        "export const Fancy = memo(forwardRef((props: { label: string }, ref) => <b ref={ref}>{props.label}</b>));\n"
        "export const withTheme = (Inner) => (props) => <Inner {...props} />;\n"
        "export function DataList({ render }) {\n"
        "  return <ul>{render(() => <li />)}</ul>;\n"
        "}\n"
    )
    document = parse_source(source, "tsx", "src/Fancy.tsx")
    units = {u.name: u for u in components_in_document(document, "src/Fancy.tsx")}

    assert units["Fancy"].kind == "functional"
    assert set(units["Fancy"].patterns) == {"forwardRef", "memo"}
    assert units["withTheme"].kind == "higher-order"
    assert units["DataList"].kind == "functional"


def test_complexity_thresholds():
    """Test the complexity score and logic complexity cut-offs."""
    assert classify_complexity(10) == "simple"
    assert classify_complexity(11) == "moderate"
    assert classify_complexity(25) == "moderate"
    assert classify_complexity(50) == "complex"
    assert classify_complexity(51) == "critical"
    assert classify_logic_complexity(3) == "simple"
    assert classify_logic_complexity(6) == "moderate"
    assert classify_logic_complexity(10) == "complex"
    assert classify_logic_complexity(11) == "critical"


def test_package_names_and_file_hints():
    """Test scoped package handling and the component-file heuristic."""
    assert package_name("@mui/material/Button") == "@mui/material"
    assert package_name("lodash/debounce") == "lodash"
    assert is_likely_component_file("import React from 'react';")
    assert not is_likely_component_file("export const add = (a, b) => a + b;")
