"""Dependency and criticality analysis engine.

Stages, in pipeline order:
- ComponentExtractor: merge component declarations from artifacts
- DependencyAnalyzer: build edges, score criticality, detect cycles
- CommunicationMatrixBuilder: label edges with protocol and direction
- DirectorySynthesizer: project components into a directory tree
- ValidationEngine: cross-check the final schema
- DocumentationRenderer: render README.md and AGENT.md per directory
"""

from __future__ import annotations

from docforge.analysis.communication import CommunicationMatrixBuilder
from docforge.analysis.dependency import DependencyAnalyzer, find_cycles
from docforge.analysis.directory import DirectorySynthesizer
from docforge.analysis.docs import DocumentationRenderer
from docforge.analysis.extractor import ComponentExtractor
from docforge.analysis.models import (
    AnalysisResult,
    CommunicationEdge,
    CommunicationMatrix,
    CommunicationSchema,
    Component,
    ComponentSet,
    DependencyEdge,
    DependencyGraph,
    DependencyKind,
    DirectoryNode,
    Finding,
    Severity,
    ValidationReport,
)
from docforge.analysis.validation import ValidationEngine

__all__ = [
    "AnalysisResult",
    "CommunicationEdge",
    "CommunicationMatrix",
    "CommunicationMatrixBuilder",
    "CommunicationSchema",
    "Component",
    "ComponentExtractor",
    "ComponentSet",
    "DependencyAnalyzer",
    "DependencyEdge",
    "DependencyGraph",
    "DependencyKind",
    "DirectoryNode",
    "DirectorySynthesizer",
    "DocumentationRenderer",
    "Finding",
    "Severity",
    "ValidationEngine",
    "ValidationReport",
    "find_cycles",
]
