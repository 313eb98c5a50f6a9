"""Per-directory documentation rendering using Jinja2 templates.

Every directory of a communication schema gets a ``README.md`` overview and
an ``AGENT.md`` maintenance guide. Components are grouped by criticality
band:

- Critical: 9 and above
- Important: 7 to 8
- Supporting: below 7

Rendering is deterministic: the same schema always yields byte-identical
documents.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from docforge.analysis.models import CommunicationSchema, DirectoryNode

CRITICAL_THRESHOLD = 9
IMPORTANT_THRESHOLD = 7

_TEMPLATE_DIR = Path(__file__).parent / "templates"


def band_for(criticality: int) -> str:
    """Return the band name (critical, important, supporting) for a score."""
    if criticality >= CRITICAL_THRESHOLD:
        return "critical"
    if criticality >= IMPORTANT_THRESHOLD:
        return "important"
    return "supporting"


def doc_path(node: DirectoryNode, filename: str) -> str:
    """Return the repository-relative path of a directory's document."""
    return f"{node.path}/{filename}" if node.path else filename


class DocumentationRenderer:
    """Renders README.md and AGENT.md for every directory of a schema.

    Attributes:
        env: Jinja2 environment bound to the bundled templates
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        loader = FileSystemLoader(str(template_dir or _TEMPLATE_DIR))
        self.env = Environment(
            loader=loader,
            autoescape=select_autoescape(),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            cache_size=50,
            auto_reload=False,
        )

    def render_readme(self, node: DirectoryNode, schema: CommunicationSchema) -> str:
        """Render the human-facing overview for one directory."""
        ctx = self._context(node, schema)
        return self.env.get_template("readme.md.j2").render(**ctx)

    def render_agent(self, node: DirectoryNode, schema: CommunicationSchema) -> str:
        """Render the banded maintenance guide for one directory."""
        ctx = self._context(node, schema)
        return self.env.get_template("agent.md.j2").render(**ctx)

    def render_all(self, schema: CommunicationSchema) -> dict[str, str]:
        """Render every directory's documents.

        Args:
            schema: Schema whose tree is rendered.

        Returns:
            Mapping of repository-relative path to document content, in
            tree pre-order.
        """
        documents: dict[str, str] = {}
        for node in schema.root.walk():
            for filename in node.files:
                if filename == "README.md":
                    documents[doc_path(node, filename)] = self.render_readme(node, schema)
                elif filename == "AGENT.md":
                    documents[doc_path(node, filename)] = self.render_agent(node, schema)
        return documents

    def _context(self, node: DirectoryNode, schema: CommunicationSchema) -> dict[str, Any]:
        entries = []
        for cid in node.components:
            component = schema.component(cid)
            if component is None:
                continue
            entries.append(
                {
                    "id": cid,
                    "type": component.type,
                    "description": component.description,
                    "criticality": schema.criticality.get(cid, 1),
                    "dependencies": [d.target for d in component.dependencies],
                    "communicates": [
                        (r.peer, r.protocol) for r in node.outbound if r.component == cid
                    ],
                }
            )
        entries.sort(key=lambda e: (-e["criticality"], e["id"]))

        relationships = {
            e["id"]: {
                "depends_on": sorted(
                    d.target for d in schema.dependency_edges if d.source == e["id"]
                ),
                "depended_on_by": sorted(
                    d.source for d in schema.dependency_edges if d.target == e["id"]
                ),
            }
            for e in sorted(entries, key=lambda e: e["id"])
        }

        return {
            "title": node.path or schema.project_name,
            "node": node,
            "components": entries,
            "children": node.children,
            "critical": [e for e in entries if band_for(e["criticality"]) == "critical"],
            "important": [e for e in entries if band_for(e["criticality"]) == "important"],
            "supporting": [e for e in entries if band_for(e["criticality"]) == "supporting"],
            "receives_from": sorted({r.peer for r in node.inbound}),
            "sends_to": sorted({r.peer for r in node.outbound}),
            "protocols": sorted({r.protocol for r in node.inbound + node.outbound}),
            "relationships": json.dumps(relationships, indent=2, sort_keys=True),
        }
