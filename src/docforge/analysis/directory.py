"""Directory structure synthesis.

Components are projected into a directory tree: a component identifier
``backend/auth-service`` places the component in directory
``backend/auth-service``, creating ``backend`` as an intermediate node.
The tree is aggregated bottom-up so each directory's criticality is the
maximum over its subtree, and siblings are ordered by criticality
descending then path ascending.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from docforge.analysis.models import (
    AnalysisResult,
    CommunicationMatrix,
    CommunicationSchema,
    DependencyGraph,
    DirectoryNode,
    RelationRef,
)
from docforge.analysis.naming import path_segments, slugify
from docforge.config import AnalysisConfig

logger = structlog.get_logger(__name__)

DOC_FILES: tuple[str, ...] = ("README.md", "AGENT.md")


def priority_key(node: DirectoryNode) -> tuple[int, str]:
    """Sort key: aggregated criticality descending, then path ascending."""
    return (-node.criticality, node.path)


@dataclass
class _Builder:
    """Mutable node used while the tree is assembled."""

    name: str
    path: str
    components: list[str] = field(default_factory=list)
    children: dict[str, _Builder] = field(default_factory=dict)

    def child(self, segment: str) -> _Builder:
        if segment not in self.children:
            path = f"{self.path}/{segment}" if self.path else segment
            self.children[segment] = _Builder(name=segment, path=path)
        return self.children[segment]


class DirectorySynthesizer:
    """Builds the directory tree and the final communication schema.

    Args:
        config: Analysis configuration (supplies the schema version).
    """

    def __init__(self, config: AnalysisConfig) -> None:
        self.config = config
        self._logger = logger.bind(component="DirectorySynthesizer")

    def synthesize(
        self,
        project_name: str,
        graph: DependencyGraph,
        matrix: CommunicationMatrix,
    ) -> AnalysisResult[CommunicationSchema]:
        """Project components and edges into a communication schema.

        Args:
            project_name: Human-readable project name; slugified for the root.
            graph: Dependency graph with criticality scores.
            matrix: Communication edges derived from the graph.

        Returns:
            The assembled schema.
        """
        root_name = slugify(project_name) or "project"
        root = _Builder(name=root_name, path="")

        for component in graph.components:
            node = root
            for segment in path_segments(component.id):
                node = node.child(segment)
            node.components.append(component.id)

        inbound: dict[str, list[RelationRef]] = {}
        outbound: dict[str, list[RelationRef]] = {}
        for edge in matrix.edges:
            outbound.setdefault(edge.source, []).append(
                RelationRef(component=edge.source, peer=edge.target, protocol=edge.protocol)
            )
            inbound.setdefault(edge.target, []).append(
                RelationRef(component=edge.target, peer=edge.source, protocol=edge.protocol)
            )

        tree = self._freeze(root, graph.criticality, inbound, outbound)
        priority_order = [
            n.path for n in sorted((n for n in tree.walk() if n.path), key=priority_key)
        ]

        schema = CommunicationSchema(
            version=self.config.schema_version,
            project_name=root_name,
            components=list(graph.components),
            criticality=dict(graph.criticality),
            dependency_edges=list(graph.edges),
            communication_edges=list(matrix.edges),
            cycles=[list(c) for c in graph.cycles],
            dropped_edges=list(graph.dropped_edges),
            root=tree,
            priority_order=priority_order,
        )

        self._logger.info(
            "directory_tree_synthesized",
            project=root_name,
            directories=len(priority_order),
            root_criticality=tree.criticality,
        )
        return AnalysisResult[CommunicationSchema](value=schema)

    def _freeze(
        self,
        builder: _Builder,
        criticality: dict[str, int],
        inbound: dict[str, list[RelationRef]],
        outbound: dict[str, list[RelationRef]],
    ) -> DirectoryNode:
        """Convert a builder subtree into immutable nodes, bottom-up."""
        children = [
            self._freeze(child, criticality, inbound, outbound)
            for child in builder.children.values()
        ]
        children.sort(key=priority_key)

        scores = [criticality.get(cid, 1) for cid in builder.components]
        scores.extend(child.criticality for child in children)
        components = sorted(builder.components)

        return DirectoryNode(
            name=builder.name,
            path=builder.path,
            criticality=max(scores, default=1),
            components=components,
            files=list(DOC_FILES),
            inbound=[r for cid in components for r in inbound.get(cid, [])],
            outbound=[r for cid in components for r in outbound.get(cid, [])],
            children=children,
        )
