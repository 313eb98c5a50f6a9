"""Validation Engine for synthesized communication schemas.

Every check appends a structured ``Finding`` to the report instead of
raising. The orchestrator halts only when a finding is ``fatal``; today
the only fatal condition is an empty component set.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

import structlog

from docforge.analysis.models import (
    CommunicationSchema,
    Finding,
    Severity,
    ValidationReport,
)

logger = structlog.get_logger(__name__)


class ValidationEngine:
    """Cross-checks a schema for completeness and structural problems."""

    def __init__(self) -> None:
        self._logger = logger.bind(component="ValidationEngine")

    def validate(
        self,
        schema: CommunicationSchema,
        upstream_findings: Iterable[Finding] = (),
    ) -> ValidationReport:
        """Run every check against the schema.

        Args:
            schema: The synthesized communication schema.
            upstream_findings: Findings carried over from earlier analysis
                stages; they are included first, unchanged.

        Returns:
            The validation report.
        """
        findings: list[Finding] = list(upstream_findings)

        if not schema.components:
            findings.append(
                Finding(
                    code="empty_component_set",
                    severity=Severity.fatal,
                    message="No components were extracted; nothing can be documented",
                )
            )

        findings.extend(self._check_edge_endpoints(schema))
        findings.extend(self._check_path_segments(schema))
        findings.extend(self._check_cycles(schema))
        findings.extend(self._check_criticality(schema))
        findings.extend(self._check_dropped_dependencies(schema, findings))
        findings.extend(self._check_isolated(schema))
        findings.extend(self._check_placement(schema))

        report = ValidationReport(findings=findings)
        self._logger.info(
            "schema_validated",
            project=schema.project_name,
            **report.summary(),
        )
        return report

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_edge_endpoints(self, schema: CommunicationSchema) -> list[Finding]:
        known = {c.id for c in schema.components}
        findings: list[Finding] = []
        for edge in schema.communication_edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in known:
                    findings.append(
                        Finding(
                            code="unknown_edge_endpoint",
                            severity=Severity.error,
                            message=(
                                f"Communication edge {edge.source}->{edge.target} "
                                f"references unknown component {endpoint}"
                            ),
                            subject=f"{edge.source}->{edge.target}",
                        )
                    )
        return findings

    def _check_path_segments(self, schema: CommunicationSchema) -> list[Finding]:
        findings: list[Finding] = []
        for node in schema.root.walk():
            if node is schema.root:
                continue
            if not node.name or not node.path:
                findings.append(
                    Finding(
                        code="missing_path_segment",
                        severity=Severity.error,
                        message=f"Directory node under {node.path!r} has no path segment",
                        subject=node.path,
                    )
                )
        return findings

    def _check_cycles(self, schema: CommunicationSchema) -> list[Finding]:
        return [
            Finding(
                code="cycle_detected",
                severity=Severity.warning,
                message="Dependency cycle: " + " -> ".join(cycle + cycle[:1]),
                subject=",".join(cycle),
            )
            for cycle in schema.cycles
        ]

    def _check_criticality(self, schema: CommunicationSchema) -> list[Finding]:
        return [
            Finding(
                code="missing_criticality",
                severity=Severity.error,
                message=f"Component {c.id} has no criticality score",
                subject=c.id,
            )
            for c in schema.components
            if c.id not in schema.criticality
        ]

    def _check_dropped_dependencies(
        self, schema: CommunicationSchema, existing: list[Finding]
    ) -> list[Finding]:
        already = {
            f.subject for f in existing if f.code == "unknown_dependency_dropped"
        }
        findings: list[Finding] = []
        for edge in schema.dropped_edges:
            subject = f"{edge.source}->{edge.target}"
            if subject in already:
                continue
            findings.append(
                Finding(
                    code="unknown_dependency_dropped",
                    severity=Severity.warning,
                    message=(
                        f"{edge.source} depends on unknown component "
                        f"{edge.target}; edge dropped"
                    ),
                    subject=subject,
                )
            )
        return findings

    def _check_isolated(self, schema: CommunicationSchema) -> list[Finding]:
        if len(schema.components) < 2:
            return []
        connected = {e.source for e in schema.dependency_edges} | {
            e.target for e in schema.dependency_edges
        }
        return [
            Finding(
                code="isolated_component",
                severity=Severity.info,
                message=f"Component {c.id} has no dependencies and no dependents",
                subject=c.id,
            )
            for c in schema.components
            if c.id not in connected
        ]

    def _check_placement(self, schema: CommunicationSchema) -> list[Finding]:
        placements = Counter(
            cid for node in schema.root.walk() for cid in node.components
        )
        findings: list[Finding] = []
        for c in schema.components:
            count = placements.get(c.id, 0)
            if count != 1:
                findings.append(
                    Finding(
                        code="component_placement",
                        severity=Severity.error,
                        message=f"Component {c.id} is placed in {count} directories",
                        subject=c.id,
                    )
                )
        return findings
