"""Core data models shared by discovery, analysis, scoring and migration."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

COMPONENT_KINDS = ("functional", "class", "hook", "higher-order")
COMPLEXITY_LEVELS = ("simple", "moderate", "complex", "critical")
READINESS_LEVELS = ("ready", "needs-work", "complex", "high-risk")
EFFORT_TIERS = ("low", "medium", "high", "very-high")
RISK_TIERS = ("low", "medium", "high", "critical")
DEPENDENCY_TYPES = ("import", "props", "context", "hook", "higher-order", "render-prop", "children")
DEPENDENCY_LEVELS = ("direct", "transitive", "circular")
EXTERNAL_CLASSIFICATIONS = ("framework", "ui-library", "utility", "testing", "build-tool", "unknown")
DISPOSITIONS = ("keep", "replace", "remove", "evaluate")


def to_dict(obj: Any) -> Dict[str, Any]:
    """Serialise a model (dataclass) into JSON-compatible primitives."""
    return asdict(obj)


# ===================================================================
# Discovery
# ===================================================================

@dataclass(frozen=True)
class PropDefinition:
    name: str
    type: str
    required: bool
    description: str = ""


@dataclass(frozen=True)
class ComponentDependency:
    name: str
    kind: str  # internal | external
    import_path: str
    critical: bool = False
    bindings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BusinessLogicDefinition:
    name: str
    complexity: str
    line: int = 0


@dataclass(frozen=True)
class ComponentMetadata:
    has_documentation: bool
    test_coverage: float
    bundle_size: int
    line_count: int
    documentation: str = ""


@dataclass(frozen=True)
class ComponentDefinition:
    """A discovered unit.  Never mutated after discovery."""

    id: str
    name: str
    file_path: str
    absolute_path: str
    kind: str
    complexity: str
    props: Tuple[PropDefinition, ...] = ()
    dependencies: Tuple[ComponentDependency, ...] = ()
    business_logic: Tuple[BusinessLogicDefinition, ...] = ()
    patterns: Tuple[str, ...] = ()
    metadata: ComponentMetadata = ComponentMetadata(False, 0.0, 0, 0)
    start_line: int = 1
    end_line: int = 1
    complexity_score: int = 0


@dataclass
class DiscoveryIssue:
    file_path: str
    message: str
    severity: str = "warning"


@dataclass
class DiscoveryStatistics:
    total_files: int = 0
    total_components: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
    by_complexity: Dict[str, int] = field(default_factory=dict)
    pattern_counts: Dict[str, int] = field(default_factory=dict)
    average_complexity: float = 0.0


@dataclass
class DiscoveryResult:
    root: str
    components: List[ComponentDefinition]
    issues: List[DiscoveryIssue] = field(default_factory=list)
    statistics: DiscoveryStatistics = field(default_factory=DiscoveryStatistics)
    duration: float = 0.0

    @property
    def warnings(self) -> List[DiscoveryIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def errors(self) -> List[DiscoveryIssue]:
        return [i for i in self.issues if i.severity == "error"]

    def get(self, name: str) -> Optional[ComponentDefinition]:
        """Find a unit by name (or id)."""
        for component in self.components:
            if component.name == name or component.id == name:
                return component
        return None


# ===================================================================
# Structural parsing
# ===================================================================

@dataclass
class ComponentStructure:
    props: List[str] = field(default_factory=list)
    methods: List[str] = field(default_factory=list)
    hooks: Dict[str, List[str]] = field(default_factory=dict)
    lifecycle: List[str] = field(default_factory=list)
    composition: Dict[str, Any] = field(default_factory=dict)
    exports: List[str] = field(default_factory=list)
    imports: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class ParseResult:
    unit_id: str
    success: bool
    complexity: int = 1
    cognitive_complexity: int = 0
    documentation: Optional[str] = None
    structure: ComponentStructure = field(default_factory=ComponentStructure)
    errors: List[str] = field(default_factory=list)
    duration: float = 0.0
    requires_manual_review: bool = False


# ===================================================================
# Dependency analysis
# ===================================================================

@dataclass
class UsageContext:
    line: int
    column: int
    usage: str


@dataclass
class DependencyDetail:
    source: str
    target: str
    type: str = "import"
    level: str = "direct"
    import_path: str = ""
    bindings: List[str] = field(default_factory=list)
    usage_contexts: List[UsageContext] = field(default_factory=list)
    extraction_risk: str = "low"
    is_external: bool = False


@dataclass
class ExternalDependency:
    name: str
    classification: str
    usage_count: int = 0
    used_by: List[str] = field(default_factory=list)
    disposition: str = "evaluate"
    is_dev: bool = False


@dataclass
class GraphNode:
    id: str
    node_type: str  # component | internal | external
    in_degree: int = 0
    out_degree: int = 0
    centrality: float = 0.0


@dataclass
class GraphEdge:
    source: str
    target: str
    type: str = "import"
    weight: int = 1
    is_cyclic: bool = False


@dataclass
class Cluster:
    id: str
    units: List[str]
    cohesion: float
    strategy: str  # together | staged | individual


@dataclass
class DependencyGraph:
    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    edges: List[GraphEdge] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)
    clusters: List[Cluster] = field(default_factory=list)

    def outgoing(self, node_id: str) -> List[GraphEdge]:
        return [e for e in self.edges if e.source == node_id]

    def incoming(self, node_id: str) -> List[GraphEdge]:
        return [e for e in self.edges if e.target == node_id]


@dataclass
class DependencyMetrics:
    total_components: int = 0
    total_dependencies: int = 0
    external_dependencies: int = 0
    internal_dependencies: int = 0
    circular_dependencies: int = 0
    average_coupling: float = 0.0
    graph_density: float = 0.0
    hubs: List[str] = field(default_factory=list)


@dataclass
class ExtractionRecommendation:
    kind: str  # extract-first | extract-together | refactor-before-extract | high-risk-extract
    units: List[str]
    reason: str
    priority: str = "medium"


@dataclass
class DependencyAnalysisResult:
    dependencies: List[DependencyDetail] = field(default_factory=list)
    external_dependencies: Dict[str, ExternalDependency] = field(default_factory=dict)
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    metrics: DependencyMetrics = field(default_factory=DependencyMetrics)
    recommendations: List[ExtractionRecommendation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duration: float = 0.0

    def for_unit(self, unit_id: str, include_transitive: bool = False) -> List[DependencyDetail]:
        """Direct (and circular) dependencies of *unit_id*."""
        return [
            d for d in self.dependencies
            if d.source == unit_id and (include_transitive or d.level != "transitive")
        ]


# ===================================================================
# Readiness / inventory
# ===================================================================

@dataclass
class ReadinessCriteria:
    code_quality: int = 0
    documentation: int = 0
    test_coverage: int = 0
    dependency_complexity: int = 0
    props_clarity: int = 0
    logic_separation: int = 0
    pattern_compliance: int = 0
    migration_compatibility: int = 0


@dataclass
class ComponentReadiness:
    unit_id: str
    name: str
    criteria: ReadinessCriteria
    overall_score: int
    readiness_level: str
    blockers: List[str] = field(default_factory=list)
    prerequisites: List[str] = field(default_factory=list)
    effort: str = "low"
    risk: str = "low"


@dataclass
class InventorySection:
    level: str
    title: str
    description: str
    units: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    average_score: float = 0.0


@dataclass
class MigrationPhase:
    number: int
    name: str
    units: List[str]
    duration: str
    developers: int
    dependencies: List[str] = field(default_factory=list)
    success_criteria: List[str] = field(default_factory=list)
    description: str = ""


@dataclass
class MigrationRoadmap:
    phases: List[MigrationPhase] = field(default_factory=list)
    total_duration: str = "0 weeks"
    developers: int = 0
    approach: str = "incremental"
    success_metrics: List[str] = field(default_factory=list)


@dataclass
class InventorySummary:
    total_components: int = 0
    by_level: Dict[str, int] = field(default_factory=dict)
    by_kind: Dict[str, int] = field(default_factory=dict)
    by_complexity: Dict[str, int] = field(default_factory=dict)
    average_score: float = 0.0
    estimated_person_months: int = 0
    key_recommendations: List[str] = field(default_factory=list)
    critical_risks: List[str] = field(default_factory=list)


@dataclass
class ComponentInventory:
    generated_at: str
    threshold: int
    source: str = ""
    components: List[ComponentReadiness] = field(default_factory=list)
    sections: List[InventorySection] = field(default_factory=list)
    roadmap: MigrationRoadmap = field(default_factory=MigrationRoadmap)
    summary: InventorySummary = field(default_factory=InventorySummary)

    def readiness_for(self, unit_id: str) -> Optional[ComponentReadiness]:
        for readiness in self.components:
            if readiness.unit_id == unit_id:
                return readiness
        return None


# ===================================================================
# Transformation / validation
# ===================================================================

@dataclass
class ExtractedHook:
    name: str
    code: str
    source_functions: List[str] = field(default_factory=list)
    complexity_reduction: int = 0


@dataclass
class TransformationMetrics:
    loc_before: int = 0
    loc_after: int = 0
    complexity_before: int = 0
    complexity_after: int = 0
    quality_improvement: int = 0
    bundle_size_delta: int = 0


@dataclass
class TransformationResult:
    component: ComponentDefinition
    success: bool
    code: str = ""
    hooks: List[ExtractedHook] = field(default_factory=list)
    type_definitions: str = ""
    imports: List[str] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    migration_effort: str = "low"
    compatibility_score: int = 100
    metrics: TransformationMetrics = field(default_factory=TransformationMetrics)
    requires_manual_review: bool = False
    transformed: Optional[ComponentDefinition] = None
    event_handlers: List[str] = field(default_factory=list)


@dataclass
class ValidationIssue:
    code: str
    message: str
    severity: str  # error | warning
    field: str = ""


@dataclass
class Difference:
    category: str
    description: str
    severity: str  # info | warning | error | critical
    source_value: Any = None
    target_value: Any = None


@dataclass
class ComparisonResult:
    equivalent: bool
    valid: bool
    validation_score: int
    business_logic_preservation: float
    type_safety: float
    issues: List[ValidationIssue] = field(default_factory=list)
    differences: List[Difference] = field(default_factory=list)


@dataclass
class QualityAssessment:
    overall_score: float
    business_logic: float
    type_safety: float
    structure: float
    performance: float
    maintainability: float
    production_ready: bool


@dataclass
class CodeCheckResult:
    passed: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class ValidationReport:
    unit_id: str
    comparison: ComparisonResult
    quality: QualityAssessment


# ===================================================================
# Pipeline
# ===================================================================

PIPELINE_PHASES = (
    "initialization",
    "discovery",
    "parsing",
    "dependency-analysis",
    "inventory-generation",
    "output-generation",
    "cleanup",
    "completed",
    "failed",
)


@dataclass(frozen=True)
class ProgressSnapshot:
    phase: str
    phase_progress: float
    overall_progress: float
    discovered: int = 0
    parsed: int = 0
    analyzed: int = 0
    errors: int = 0
    warnings: int = 0
    message: str = ""


@dataclass(frozen=True)
class ErrorSnapshot:
    """Read-only view of a recorded error, as handed to pipeline listeners."""

    code: str
    category: str
    severity: str
    message: str
    unit: Optional[str] = None
    phase: Optional[str] = None
    recoverable: bool = True


@dataclass
class PipelineResult:
    run_id: str
    success: bool
    phase: str
    discovery: Optional[DiscoveryResult] = None
    parse_results: Dict[str, ParseResult] = field(default_factory=dict)
    analysis: Optional[DependencyAnalysisResult] = None
    inventory: Optional[ComponentInventory] = None
    transformations: Dict[str, TransformationResult] = field(default_factory=dict)
    validations: Dict[str, ValidationReport] = field(default_factory=dict)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    report_paths: List[str] = field(default_factory=list)
    duration: float = 0.0
