"""Unit tests for the Validation Engine."""

from __future__ import annotations

import pytest

from docforge.analysis.models import (
    CommunicationEdge,
    CommunicationSchema,
    Component,
    DependencyEdge,
    DirectoryNode,
    Finding,
    Severity,
)
from docforge.analysis.validation import ValidationEngine


@pytest.fixture
def engine() -> ValidationEngine:
    return ValidationEngine()


def node(name: str, path: str, components: list[str]) -> DirectoryNode:
    return DirectoryNode(name=name, path=path, components=components)


def healthy_schema() -> CommunicationSchema:
    return CommunicationSchema(
        version="1.0",
        project_name="chat",
        components=[Component(id="gateway"), Component(id="store")],
        criticality={"gateway": 6, "store": 6},
        dependency_edges=[DependencyEdge(source="gateway", target="store")],
        communication_edges=[
            CommunicationEdge(source="gateway", target="store", protocol="synchronous")
        ],
        root=DirectoryNode(
            name="chat",
            children=[node("gateway", "gateway", ["gateway"]), node("store", "store", ["store"])],
        ),
        priority_order=["gateway", "store"],
    )


def codes(findings: list[Finding]) -> list[str]:
    return [f.code for f in findings]


class TestValidationEngine:
    """Each check reports findings instead of raising."""

    def test_healthy_schema_has_no_findings(self, engine: ValidationEngine) -> None:
        report = engine.validate(healthy_schema())

        assert report.findings == []
        assert not report.has_fatal
        assert report.summary() == {"info": 0, "warning": 0, "error": 0, "fatal": 0}

    def test_empty_component_set_is_fatal(self, engine: ValidationEngine) -> None:
        schema = CommunicationSchema(
            version="1.0", project_name="empty", root=DirectoryNode(name="empty")
        )

        report = engine.validate(schema)

        assert codes(report.findings) == ["empty_component_set"]
        assert report.has_fatal

    def test_unknown_edge_endpoint(self, engine: ValidationEngine) -> None:
        schema = healthy_schema()
        schema.communication_edges.append(
            CommunicationEdge(source="gateway", target="ghost", protocol="unspecified")
        )

        report = engine.validate(schema)

        (finding,) = report.by_severity(Severity.error)
        assert finding.code == "unknown_edge_endpoint"
        assert finding.subject == "gateway->ghost"

    def test_missing_path_segment(self, engine: ValidationEngine) -> None:
        schema = healthy_schema()
        schema.root.children[1].name = ""

        assert "missing_path_segment" in codes(engine.validate(schema).findings)

    def test_cycle_reported_as_warning(self, engine: ValidationEngine) -> None:
        schema = healthy_schema()
        schema.cycles = [["gateway", "store"]]

        (finding,) = engine.validate(schema).by_severity(Severity.warning)
        assert finding.code == "cycle_detected"
        assert finding.message == "Dependency cycle: gateway -> store -> gateway"

    def test_missing_criticality(self, engine: ValidationEngine) -> None:
        schema = healthy_schema()
        del schema.criticality["store"]

        report = engine.validate(schema)
        assert codes(report.findings) == ["missing_criticality"]
        assert report.findings[0].subject == "store"

    def test_dropped_dependency_reported_once(self, engine: ValidationEngine) -> None:
        schema = healthy_schema()
        schema.dropped_edges = [DependencyEdge(source="gateway", target="auth")]
        upstream = Finding(
            code="unknown_dependency_dropped",
            severity=Severity.warning,
            message="gateway depends on unknown component auth; edge dropped",
            subject="gateway->auth",
        )

        with_upstream = engine.validate(schema, [upstream])
        without_upstream = engine.validate(schema)

        assert codes(with_upstream.findings) == ["unknown_dependency_dropped"]
        assert with_upstream.findings[0] == upstream
        assert codes(without_upstream.findings) == ["unknown_dependency_dropped"]

    def test_isolated_component_is_info(self, engine: ValidationEngine) -> None:
        schema = healthy_schema()
        schema.components.append(Component(id="metrics"))
        schema.criticality["metrics"] = 2
        schema.root.children.append(node("metrics", "metrics", ["metrics"]))

        report = engine.validate(schema)

        assert codes(report.findings) == ["isolated_component"]
        assert report.findings[0].severity == Severity.info
        assert not report.has_fatal

    def test_single_component_is_not_isolated(self, engine: ValidationEngine) -> None:
        schema = CommunicationSchema(
            version="1.0",
            project_name="solo",
            components=[Component(id="app")],
            criticality={"app": 2},
            root=DirectoryNode(name="solo", children=[node("app", "app", ["app"])]),
        )
        assert engine.validate(schema).findings == []

    def test_component_placed_twice(self, engine: ValidationEngine) -> None:
        schema = healthy_schema()
        schema.root.children[1].components.append("gateway")

        (finding,) = engine.validate(schema).by_severity(Severity.error)
        assert finding.code == "component_placement"
        assert "placed in 2 directories" in finding.message

    def test_upstream_findings_come_first(self, engine: ValidationEngine) -> None:
        upstream = Finding(
            code="component_entry_skipped", severity=Severity.warning, message="skipped"
        )
        schema = healthy_schema()
        schema.cycles = [["gateway", "store"]]

        report = engine.validate(schema, [upstream])

        assert codes(report.findings) == ["component_entry_skipped", "cycle_detected"]
