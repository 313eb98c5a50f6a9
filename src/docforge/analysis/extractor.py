"""Component extraction from generation artifacts.

The extractor reads the DevPlan, Architecture, and Blueprint artifacts (in
that order) and merges the structured component declarations they carry
into one set of uniquely identified components.

Structured declarations are recognised in two places:

- a mapping payload with a ``components`` list (the Blueprint shape), and
- fenced JSON blocks embedded in text payloads whose object carries a
  ``components`` list.

Free text outside such blocks is ignored. Merge rules: duplicate ids are
merged with the later artifact winning on conflicting attributes, except
dependency lists, which are unioned in first-seen order.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from docforge.analysis.models import (
    AnalysisResult,
    Component,
    ComponentSet,
    DependencyKind,
    DependencyRef,
    Finding,
    Severity,
)
from docforge.analysis.naming import normalise_identifier
from docforge.errors import ExtractionError

logger = structlog.get_logger(__name__)

_FENCED_BLOCK = re.compile(r"```[a-zA-Z]*\s*\n(.*?)\n\s*```", re.DOTALL)

_KIND_ALIASES: dict[str, DependencyKind] = {
    "compile-time": DependencyKind.compile_time,
    "compile_time": DependencyKind.compile_time,
    "compiletime": DependencyKind.compile_time,
    "compile": DependencyKind.compile_time,
    "build": DependencyKind.compile_time,
    "runtime": DependencyKind.runtime,
    "run-time": DependencyKind.runtime,
    "run_time": DependencyKind.runtime,
    "deployment": DependencyKind.deployment,
    "deploy": DependencyKind.deployment,
}


class DependencySpec(BaseModel):
    """A dependency entry as declared in a payload.

    Either a bare identifier string (kind ``runtime``) or an object with
    ``target`` (or ``id``/``name``) and an optional ``kind``.
    """

    target: str = Field(min_length=1)
    kind: DependencyKind = DependencyKind.runtime

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> Any:
        """Accept common spellings of dependency kinds."""
        if isinstance(v, str):
            kind = _KIND_ALIASES.get(v.strip().lower())
            if kind is None:
                raise ValueError(f"Unknown dependency kind: {v}")
            return kind
        return v

    @classmethod
    def from_raw(cls, raw: Any) -> DependencySpec:
        if isinstance(raw, str):
            return cls(target=raw)
        if isinstance(raw, dict):
            target = raw.get("target") or raw.get("id") or raw.get("name")
            data: dict[str, Any] = {"target": target}
            if raw.get("kind") is not None:
                data["kind"] = raw["kind"]
            return cls.model_validate(data)
        raise ValueError(f"Unsupported dependency entry: {raw!r}")


class ComponentSpec(BaseModel):
    """A component entry as declared in a payload.

    Attributes:
        id: Raw identifier (``name`` is accepted as an alias).
        description: Optional description.
        type: Optional type tag; None when the payload omitted it.
        dependencies: Declared dependencies.
    """

    id: str = Field(min_length=1)
    description: str | None = None
    type: str | None = None
    dependencies: list[DependencySpec] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> ComponentSpec:
        """Validate one raw component entry.

        Raises:
            ValueError: If the entry is not a mapping or lacks an identifier.
            ValidationError: If a field has the wrong shape.
        """
        if not isinstance(raw, dict):
            raise ValueError(f"Component entry must be an object, got {type(raw).__name__}")
        identifier = raw.get("id") or raw.get("name")
        if not isinstance(identifier, str) or not identifier.strip():
            raise ValueError("Component entry has no id or name")
        deps_raw = raw.get("dependencies") or raw.get("depends_on") or []
        if not isinstance(deps_raw, list):
            raise ValueError(f"Dependencies of {identifier} must be a list")
        return cls(
            id=identifier,
            description=raw.get("description"),
            type=raw.get("type"),
            dependencies=[DependencySpec.from_raw(d) for d in deps_raw],
        )


def extract_json(text: str) -> str | None:
    """Extract the first JSON object from text that may contain markdown.

    Strategies, in order: a ```json fenced block, any fenced block whose
    body is an object, then the first balanced ``{...}`` span.

    Args:
        text: Text that may contain JSON

    Returns:
        Extracted JSON string or None if not found
    """
    markdown_match = re.search(r"```json\s*\n(.*?)\n\s*```", text, re.DOTALL | re.IGNORECASE)
    if markdown_match:
        return markdown_match.group(1).strip()

    code_block_match = re.search(r"```\s*\n(.*?)\n\s*```", text, re.DOTALL)
    if code_block_match:
        potential_json = code_block_match.group(1).strip()
        if potential_json.startswith("{") and potential_json.endswith("}"):
            return potential_json

    first_brace = text.find("{")
    if first_brace == -1:
        return None

    brace_count = 0
    in_string = False
    escape_next = False

    for i in range(first_brace, len(text)):
        char = text[i]

        if escape_next:
            escape_next = False
            continue

        if char == "\\":
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if not in_string:
            if char == "{":
                brace_count += 1
            elif char == "}":
                brace_count -= 1
                if brace_count == 0:
                    return text[first_brace : i + 1]

    return None


def _embedded_component_lists(text: str) -> list[list[Any]]:
    """Return every ``components`` list found in fenced JSON blocks."""
    found: list[list[Any]] = []
    candidates = [m.group(1).strip() for m in _FENCED_BLOCK.finditer(text)]
    stripped = text.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        candidates.append(stripped)
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and isinstance(data.get("components"), list):
            found.append(data["components"])
    return found


def _is_blank(payload: Any) -> bool:
    if payload is None:
        return True
    if isinstance(payload, str):
        return not payload.strip()
    if isinstance(payload, dict):
        content = payload.get("content")
        components = payload.get("components")
        if components:
            return False
        if isinstance(content, str):
            return not content.strip()
        return not payload
    if isinstance(payload, list):
        return not payload
    return False


@dataclass
class _Draft:
    """Merge accumulator for one component id."""

    id: str
    description: str | None = None
    type: str | None = None
    dependencies: dict[str, DependencyKind] = field(default_factory=dict)

    def merge(self, spec: ComponentSpec) -> None:
        if spec.description is not None and spec.description.strip():
            self.description = spec.description.strip()
        if spec.type is not None and spec.type.strip():
            self.type = spec.type
        for dep in spec.dependencies:
            target = normalise_identifier(dep.target)
            if target:
                # union on target; the later declaration's kind wins
                self.dependencies[target] = dep.kind

    def build(self) -> Component:
        return Component(
            id=self.id,
            description=self.description or "",
            type=self.type or "module",
            dependencies=[
                DependencyRef(target=t, kind=k) for t, k in self.dependencies.items()
            ],
        )


class ComponentExtractor:
    """Merges component declarations from ordered artifacts."""

    def __init__(self) -> None:
        self._logger = logger.bind(component="ComponentExtractor")

    def extract(self, artifacts: Sequence[tuple[str, Any]]) -> AnalysisResult[ComponentSet]:
        """Extract and merge components from artifacts in the given order.

        Args:
            artifacts: ``(source_name, payload)`` pairs, earliest first.

        Returns:
            The merged component set plus warnings for skipped entries.

        Raises:
            ExtractionError: If some input was non-empty but no component
                could be derived from any of it.
        """
        drafts: dict[str, _Draft] = {}
        findings: list[Finding] = []
        non_empty_sources: list[str] = []

        for source, payload in artifacts:
            if _is_blank(payload):
                continue
            non_empty_sources.append(source)
            for index, raw in enumerate(self._raw_entries(payload)):
                try:
                    spec = ComponentSpec.from_raw(raw)
                except (ValueError, ValidationError) as e:
                    findings.append(
                        Finding(
                            code="component_entry_skipped",
                            severity=Severity.warning,
                            message=f"{source} entry {index} skipped: {e}",
                            subject=source,
                        )
                    )
                    continue
                component_id = normalise_identifier(spec.id)
                if not component_id:
                    findings.append(
                        Finding(
                            code="component_entry_skipped",
                            severity=Severity.warning,
                            message=f"{source} entry {index} has an unusable id {spec.id!r}",
                            subject=source,
                        )
                    )
                    continue
                drafts.setdefault(component_id, _Draft(id=component_id)).merge(spec)

        components = [draft.build() for draft in drafts.values()]

        if not components and non_empty_sources:
            self._logger.warning(
                "extraction_yielded_nothing",
                sources=non_empty_sources,
                skipped=len(findings),
            )
            raise ExtractionError(
                "No components could be derived from "
                + ", ".join(non_empty_sources)
            )

        self._logger.info(
            "components_extracted",
            count=len(components),
            sources=non_empty_sources,
            skipped=len(findings),
        )
        return AnalysisResult[ComponentSet](
            value=ComponentSet(components=components), findings=findings
        )

    @staticmethod
    def _raw_entries(payload: Any) -> list[Any]:
        """Return raw component entries carried by one artifact payload."""
        if isinstance(payload, list):
            return list(payload)
        if isinstance(payload, dict):
            if isinstance(payload.get("components"), list):
                return list(payload["components"])
            content = payload.get("content")
            if isinstance(content, str):
                return [e for block in _embedded_component_lists(content) for e in block]
            return []
        if isinstance(payload, str):
            return [e for block in _embedded_component_lists(payload) for e in block]
        return []
