"""Communication matrix construction.

Every dependency edge yields exactly one communication edge. The protocol
is looked up on the (source type, target type) pair, falling back to the
reversed pair and finally to the configured unknown-protocol label.
"""

from __future__ import annotations

import structlog

from docforge.analysis.models import (
    AnalysisResult,
    CommunicationEdge,
    CommunicationMatrix,
    DependencyGraph,
    Direction,
)
from docforge.config import AnalysisConfig

logger = structlog.get_logger(__name__)


class CommunicationMatrixBuilder:
    """Labels dependency edges with protocol and direction.

    Args:
        config: Analysis configuration carrying the protocol rule table.
    """

    def __init__(self, config: AnalysisConfig) -> None:
        self.config = config
        self._rules: dict[tuple[str, str], str] = {}
        for rule in config.protocol_rules:
            # first rule for a pair wins
            self._rules.setdefault((rule.source_type, rule.target_type), rule.protocol)
        self._logger = logger.bind(component="CommunicationMatrixBuilder")

    def protocol_for(self, source_type: str, target_type: str) -> str:
        """Return the protocol for a type pair.

        The exact pair is tried first, then the reversed pair.
        """
        source_type = source_type.lower()
        target_type = target_type.lower()
        protocol = self._rules.get((source_type, target_type))
        if protocol is None:
            protocol = self._rules.get((target_type, source_type))
        return protocol if protocol is not None else self.config.unknown_protocol

    def build(self, graph: DependencyGraph) -> AnalysisResult[CommunicationMatrix]:
        types = {c.id: c.type for c in graph.components}
        pairs = {(e.source, e.target) for e in graph.edges}
        edges: list[CommunicationEdge] = []
        unspecified = 0

        for dep in graph.edges:
            protocol = self.protocol_for(
                types.get(dep.source, "module"), types.get(dep.target, "module")
            )
            if protocol == self.config.unknown_protocol:
                unspecified += 1
            direction = (
                Direction.bidirectional
                if (dep.target, dep.source) in pairs
                else Direction.outbound
            )
            edges.append(
                CommunicationEdge(
                    source=dep.source,
                    target=dep.target,
                    protocol=protocol,
                    direction=direction,
                )
            )

        self._logger.info(
            "communication_matrix_built",
            edges=len(edges),
            unspecified=unspecified,
        )
        return AnalysisResult[CommunicationMatrix](value=CommunicationMatrix(edges=edges))
