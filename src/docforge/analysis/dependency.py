"""Dependency graph construction, criticality scoring, and cycle detection.

Edges are built strictly from declared component dependencies. A
dependency on an unknown component is dropped and reported as a warning
finding rather than failing the stage.

Criticality for a component ``c`` is::

    clamp(1, 10, round_half_up(w_in * indegree(c) + w_out * outdegree(c) + base(type(c))))

where the weights and per-type base table come from ``AnalysisConfig``.
"""

from __future__ import annotations

import math
from collections import defaultdict

import structlog

from docforge.analysis.models import (
    AnalysisResult,
    Component,
    ComponentSet,
    DependencyEdge,
    DependencyGraph,
    Finding,
    Severity,
)
from docforge.config import AnalysisConfig

logger = structlog.get_logger(__name__)

MIN_CRITICALITY = 1
MAX_CRITICALITY = 10


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 always rounding up."""
    return math.floor(value + 0.5)


def clamp_criticality(value: float) -> int:
    """Round and clamp a raw score into the criticality range."""
    return max(MIN_CRITICALITY, min(MAX_CRITICALITY, round_half_up(value)))


def find_cycles(adjacency: dict[str, list[str]]) -> list[list[str]]:
    """Detect cycles with a depth-first traversal tracking the recursion stack.

    Nodes and neighbours are visited in sorted order so the result is
    deterministic. Each back-edge yields one cycle: the stack slice from
    the back-edge target to the current node. Rotations of the same loop
    are reported once.

    Args:
        adjacency: Mapping of node to the nodes it depends on.

    Returns:
        Cycles as ordered node lists, in discovery order.

    Example:
        >>> find_cycles({"a": ["b"], "b": ["c"], "c": ["a"]})
        [['a', 'b', 'c']]
    """
    nodes = sorted(set(adjacency) | {n for targets in adjacency.values() for n in targets})
    visited: set[str] = set()
    cycles: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()

    for start in nodes:
        if start in visited:
            continue
        path: list[str] = [start]
        on_path: set[str] = {start}
        visited.add(start)
        stack = [iter(sorted(adjacency.get(start, [])))]

        while stack:
            neighbour = next(stack[-1], None)
            if neighbour is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if neighbour in on_path:
                cycle = path[path.index(neighbour) :]
                pivot = cycle.index(min(cycle))
                key = tuple(cycle[pivot:] + cycle[:pivot])
                if key not in seen:
                    seen.add(key)
                    cycles.append(list(cycle))
                continue
            if neighbour in visited:
                continue
            visited.add(neighbour)
            path.append(neighbour)
            on_path.add(neighbour)
            stack.append(iter(sorted(adjacency.get(neighbour, []))))

    return cycles


class DependencyAnalyzer:
    """Builds the dependency graph and scores every component.

    Args:
        config: Weight and base-score table.
    """

    def __init__(self, config: AnalysisConfig) -> None:
        self.config = config
        self._logger = logger.bind(component="DependencyAnalyzer")

    def base_for(self, component: Component) -> float:
        """Return the configured base score for a component's type."""
        return self.config.type_base.get(component.type, self.config.default_base)

    def analyze(self, component_set: ComponentSet) -> AnalysisResult[DependencyGraph]:
        """Build edges, compute criticality, and detect cycles.

        Args:
            component_set: Extracted components.

        Returns:
            The dependency graph plus one warning per dropped dependency.
        """
        components = component_set.components
        known = {c.id for c in components}
        edges: list[DependencyEdge] = []
        dropped: list[DependencyEdge] = []
        findings: list[Finding] = []

        for component in components:
            for dep in component.dependencies:
                edge = DependencyEdge(source=component.id, target=dep.target, kind=dep.kind)
                if dep.target not in known:
                    dropped.append(edge)
                    findings.append(
                        Finding(
                            code="unknown_dependency_dropped",
                            severity=Severity.warning,
                            message=(
                                f"{component.id} depends on unknown component "
                                f"{dep.target}; edge dropped"
                            ),
                            subject=f"{component.id}->{dep.target}",
                        )
                    )
                    continue
                edges.append(edge)

        indegree: dict[str, int] = {c.id: 0 for c in components}
        outdegree: dict[str, int] = {c.id: 0 for c in components}
        adjacency: dict[str, list[str]] = defaultdict(list)
        for edge in edges:
            outdegree[edge.source] += 1
            indegree[edge.target] += 1
            adjacency[edge.source].append(edge.target)

        criticality = {
            c.id: clamp_criticality(
                self.config.in_degree_weight * indegree[c.id]
                + self.config.out_degree_weight * outdegree[c.id]
                + self.base_for(c)
            )
            for c in components
        }

        cycles = find_cycles(dict(adjacency))

        self._logger.info(
            "dependency_graph_built",
            components=len(components),
            edges=len(edges),
            dropped=len(dropped),
            cycles=len(cycles),
        )

        graph = DependencyGraph(
            components=list(components),
            edges=edges,
            criticality=criticality,
            indegree=indegree,
            outdegree=outdegree,
            cycles=cycles,
            dropped_edges=dropped,
        )
        return AnalysisResult[DependencyGraph](value=graph, findings=findings)
