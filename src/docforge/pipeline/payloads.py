"""Strict per-stage validation of generation payloads.

Text stages (dev_plan, architecture, readme) accept a non-empty string or
a mapping with a non-empty ``content`` string, and are stored as
``{"content": text}``.

The blueprint stage accepts a mapping with a non-empty ``components``
list, or a string holding such an object as JSON (optionally inside a
fenced block). Every component entry must validate; a single bad entry
rejects the whole payload.

Any mismatch raises ``PayloadSchemaError``, which is never retried.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from docforge.analysis.extractor import ComponentSpec, extract_json
from docforge.errors import PayloadSchemaError
from docforge.pipeline.stages import StageKind

TEXT_STAGES: frozenset[StageKind] = frozenset(
    {StageKind.dev_plan, StageKind.architecture, StageKind.readme}
)


def validate_text_payload(stage: StageKind, raw: Any) -> dict[str, str]:
    """Validate a text stage payload.

    Returns:
        ``{"content": text}`` with the original text preserved.

    Raises:
        PayloadSchemaError: If no non-empty text is present.
    """
    if isinstance(raw, str):
        text = raw
    elif isinstance(raw, dict):
        text = raw.get("content")
        if not isinstance(text, str):
            raise PayloadSchemaError(stage.value, "expected a 'content' string")
    else:
        raise PayloadSchemaError(
            stage.value, f"expected text or an object, got {type(raw).__name__}"
        )
    if not text.strip():
        raise PayloadSchemaError(stage.value, "content is empty")
    return {"content": text}


def validate_blueprint_payload(raw: Any) -> dict[str, Any]:
    """Validate a blueprint payload.

    Returns:
        The blueprint mapping, with components in their declared shape.

    Raises:
        PayloadSchemaError: If the payload is not a blueprint object or any
            component entry is invalid.
    """
    stage = StageKind.blueprint.value
    data = raw
    if isinstance(raw, str):
        candidate = extract_json(raw)
        if candidate is None:
            raise PayloadSchemaError(stage, "no JSON object found in text")
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise PayloadSchemaError(stage, f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise PayloadSchemaError(
            stage, f"expected an object, got {type(data).__name__}"
        )
    components = data.get("components")
    if not isinstance(components, list) or not components:
        raise PayloadSchemaError(stage, "expected a non-empty 'components' list")

    for index, entry in enumerate(components):
        try:
            ComponentSpec.from_raw(entry)
        except (ValueError, ValidationError) as e:
            raise PayloadSchemaError(stage, f"component {index}: {e}") from e

    return dict(data)


def validate_stage_payload(stage: StageKind, raw: Any) -> dict[str, Any]:
    """Validate a generation payload for the given stage.

    Args:
        stage: Generation stage that produced the payload.
        raw: Payload as returned by the generation client.

    Returns:
        The normalised artifact content to store.

    Raises:
        PayloadSchemaError: On any shape mismatch.
        ValueError: If the stage is not a generation stage.
    """
    if stage in TEXT_STAGES:
        return validate_text_payload(stage, raw)
    if stage == StageKind.blueprint:
        return validate_blueprint_payload(raw)
    raise ValueError(f"{stage.value} is not a generation stage")
