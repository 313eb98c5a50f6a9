"""Data model for the dependency and criticality analysis engine.

These Pydantic models are both the in-memory representation used by the
analysis stages and the JSON payload stored in each stage's artifact, so
every stage can be replayed from its predecessors' artifacts alone.
"""

from __future__ import annotations

import enum
from collections.abc import Iterator
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


class DependencyKind(str, enum.Enum):
    """Kind of a dependency between two components."""

    compile_time = "compile-time"
    runtime = "runtime"
    deployment = "deployment"


class Direction(str, enum.Enum):
    """Direction of a communication edge.

    Values:
        outbound: Only the source depends on the target.
        bidirectional: The target also depends on the source.
    """

    outbound = "outbound"
    bidirectional = "bidirectional"


class Severity(str, enum.Enum):
    """Severity of a validation finding. Only ``fatal`` halts a run."""

    info = "info"
    warning = "warning"
    error = "error"
    fatal = "fatal"


class DependencyRef(BaseModel):
    """A dependency declared by a component.

    Attributes:
        target: Identifier of the component depended upon.
        kind: Dependency kind.
    """

    model_config = ConfigDict(frozen=True)

    target: str
    kind: DependencyKind = DependencyKind.runtime


class Component(BaseModel):
    """A named unit of the system being documented.

    Attributes:
        id: Normalised identifier (slug segments joined by ``/``).
        description: Free-text description.
        type: Lowercase type tag (service, queue, gateway, ...).
        dependencies: Declared dependencies in first-seen order.
    """

    id: str = Field(min_length=1)
    description: str = ""
    type: str = "module"
    dependencies: list[DependencyRef] = Field(default_factory=list)

    @field_validator("type")
    @classmethod
    def normalise_type(cls, v: str) -> str:
        """Lowercase the type tag, defaulting blanks to ``module``."""
        return v.strip().lower() or "module"


class DependencyEdge(BaseModel):
    """Directed dependency ``source -> target`` between known components."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    kind: DependencyKind = DependencyKind.runtime


class CommunicationEdge(BaseModel):
    """Protocol-labelled edge derived from exactly one dependency edge."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    protocol: str
    direction: Direction = Direction.outbound


class Finding(BaseModel):
    """A structured validation finding.

    Attributes:
        code: Stable machine-readable code (e.g. ``cycle_detected``).
        severity: Finding severity.
        message: Human-readable description.
        subject: Component, edge, or path the finding is about.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    severity: Severity
    message: str
    subject: str | None = None


class AnalysisResult(BaseModel, Generic[T]):
    """Successful analysis outcome carrying non-fatal findings."""

    value: T
    findings: list[Finding] = Field(default_factory=list)


class ComponentSet(BaseModel):
    """Output of component extraction."""

    components: list[Component] = Field(default_factory=list)

    def ids(self) -> list[str]:
        return [c.id for c in self.components]


class DependencyGraph(BaseModel):
    """Output of dependency and criticality analysis.

    Attributes:
        components: Components the graph was built over.
        edges: Dependency edges between known components.
        criticality: Score in [1, 10] per component id.
        indegree: Number of dependents per component id.
        outdegree: Number of dependencies per component id.
        cycles: Each detected cycle as the ordered ids forming the loop.
        dropped_edges: Declared dependencies on unknown components.
    """

    components: list[Component] = Field(default_factory=list)
    edges: list[DependencyEdge] = Field(default_factory=list)
    criticality: dict[str, int] = Field(default_factory=dict)
    indegree: dict[str, int] = Field(default_factory=dict)
    outdegree: dict[str, int] = Field(default_factory=dict)
    cycles: list[list[str]] = Field(default_factory=list)
    dropped_edges: list[DependencyEdge] = Field(default_factory=list)


class CommunicationMatrix(BaseModel):
    """Output of the communication matrix builder."""

    edges: list[CommunicationEdge] = Field(default_factory=list)

    def protocols_between(self, source: str, target: str) -> list[str]:
        return [e.protocol for e in self.edges if e.source == source and e.target == target]


class RelationRef(BaseModel):
    """One communication relation crossing a directory boundary.

    Attributes:
        component: Component inside the directory.
        peer: Component on the other end of the edge.
        protocol: Protocol label of the edge.
    """

    model_config = ConfigDict(frozen=True)

    component: str
    peer: str
    protocol: str


class DirectoryNode(BaseModel):
    """A node of the synthesized directory tree.

    Attributes:
        name: Path segment of this node.
        path: Full path from the root (empty for the root).
        criticality: Maximum criticality in this subtree.
        components: Components placed directly in this directory.
        files: Documentation files emitted for this directory.
        inbound: Relations whose target is a component of this directory.
        outbound: Relations whose source is a component of this directory.
        children: Child directories ordered by priority.
    """

    name: str
    path: str = ""
    criticality: int = Field(default=1, ge=1, le=10)
    components: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    inbound: list[RelationRef] = Field(default_factory=list)
    outbound: list[RelationRef] = Field(default_factory=list)
    children: list[DirectoryNode] = Field(default_factory=list)

    def walk(self) -> Iterator[DirectoryNode]:
        """Yield this node and every descendant in depth-first pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, path: str) -> DirectoryNode | None:
        """Return the descendant (or self) with the given path."""
        for node in self.walk():
            if node.path == path:
                return node
        return None


class CommunicationSchema(BaseModel):
    """The final aggregate describing components, edges, and layout.

    Attributes:
        version: Schema version tag.
        project_name: Slug of the project the schema documents.
        components: Component set.
        criticality: Score per component id.
        dependency_edges: Full dependency edge set.
        communication_edges: Full communication edge set.
        cycles: Dependency cycles detected during analysis.
        dropped_edges: Dependencies dropped because the target is unknown.
        root: Root of the directory tree.
        priority_order: Directory paths by criticality desc, path asc.
    """

    version: str
    project_name: str
    components: list[Component] = Field(default_factory=list)
    criticality: dict[str, int] = Field(default_factory=dict)
    dependency_edges: list[DependencyEdge] = Field(default_factory=list)
    communication_edges: list[CommunicationEdge] = Field(default_factory=list)
    cycles: list[list[str]] = Field(default_factory=list)
    dropped_edges: list[DependencyEdge] = Field(default_factory=list)
    root: DirectoryNode
    priority_order: list[str] = Field(default_factory=list)

    def component(self, component_id: str) -> Component | None:
        for c in self.components:
            if c.id == component_id:
                return c
        return None


class ValidationReport(BaseModel):
    """Validation Engine output: findings in the order they were produced."""

    findings: list[Finding] = Field(default_factory=list)

    @property
    def has_fatal(self) -> bool:
        return any(f.severity == Severity.fatal for f in self.findings)

    def by_severity(self, severity: Severity) -> list[Finding]:
        return [f for f in self.findings if f.severity == severity]

    def summary(self) -> dict[str, int]:
        """Count findings per severity value."""
        counts = {s.value: 0 for s in Severity}
        for f in self.findings:
            counts[f.severity.value] += 1
        return counts
