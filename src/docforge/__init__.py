"""Docforge - Documentation generation pipeline orchestrator.

This package drives a project description through an ordered sequence of
generation stages, persists each stage's artifact, and derives a component
dependency graph, criticality scores, a communication matrix, and a
hierarchical directory layout from the accumulated artifacts.
"""

__version__ = "0.1.0"
