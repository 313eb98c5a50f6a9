"""Unit tests for generation payload validation."""

from __future__ import annotations

import pytest

from docforge.errors import PayloadSchemaError
from docforge.pipeline.payloads import (
    validate_blueprint_payload,
    validate_stage_payload,
    validate_text_payload,
)
from docforge.pipeline.stages import StageKind


class TestTextPayloads:
    """Text stages: dev_plan, architecture, readme."""

    def test_plain_string(self) -> None:
        assert validate_text_payload(StageKind.dev_plan, "1. build it") == {
            "content": "1. build it"
        }

    def test_content_mapping(self) -> None:
        result = validate_text_payload(StageKind.readme, {"content": "# Title\n", "extra": 1})
        assert result == {"content": "# Title\n"}

    @pytest.mark.parametrize("raw", ["", "   \n", {"content": "  "}])
    def test_blank_rejected(self, raw: object) -> None:
        with pytest.raises(PayloadSchemaError, match="content is empty"):
            validate_text_payload(StageKind.architecture, raw)

    def test_mapping_without_content(self) -> None:
        with pytest.raises(PayloadSchemaError, match="'content' string"):
            validate_text_payload(StageKind.architecture, {"text": "hi"})

    def test_wrong_type(self) -> None:
        with pytest.raises(PayloadSchemaError) as exc_info:
            validate_text_payload(StageKind.dev_plan, ["a", "b"])
        assert exc_info.value.stage == "dev_plan"
        assert "got list" in str(exc_info.value)


class TestBlueprintPayloads:
    """Blueprint stage validation."""

    def test_mapping(self) -> None:
        blueprint = {"components": [{"id": "api", "dependencies": ["db"]}, {"name": "db"}]}
        assert validate_blueprint_payload(blueprint) == blueprint

    def test_fenced_json_string(self) -> None:
        text = 'Here it is:\n```json\n{"components": [{"id": "api"}]}\n```\n'
        assert validate_blueprint_payload(text) == {"components": [{"id": "api"}]}

    def test_string_without_json(self) -> None:
        with pytest.raises(PayloadSchemaError, match="no JSON object"):
            validate_blueprint_payload("just prose")

    def test_invalid_json(self) -> None:
        with pytest.raises(PayloadSchemaError, match="invalid JSON"):
            validate_blueprint_payload("```json\n{components: [}\n```")

    @pytest.mark.parametrize("raw", [{"components": []}, {"components": "api"}, {}])
    def test_components_required(self, raw: dict) -> None:
        with pytest.raises(PayloadSchemaError, match="non-empty 'components' list"):
            validate_blueprint_payload(raw)

    def test_not_an_object(self) -> None:
        with pytest.raises(PayloadSchemaError, match="expected an object"):
            validate_blueprint_payload([{"id": "api"}])

    def test_one_bad_entry_rejects_payload(self) -> None:
        with pytest.raises(PayloadSchemaError, match="component 1"):
            validate_blueprint_payload({"components": [{"id": "api"}, {"type": "service"}]})

    def test_bad_dependency_kind_rejects_payload(self) -> None:
        raw = {"components": [{"id": "api", "dependencies": [{"target": "db", "kind": "sometimes"}]}]}
        with pytest.raises(PayloadSchemaError, match="component 0"):
            validate_blueprint_payload(raw)


class TestDispatch:
    """validate_stage_payload picks the validator by stage."""

    def test_text_stage(self) -> None:
        assert validate_stage_payload(StageKind.readme, "# R") == {"content": "# R"}

    def test_blueprint_stage(self) -> None:
        payload = {"components": [{"id": "api"}]}
        assert validate_stage_payload(StageKind.blueprint, payload) == payload

    def test_analysis_stage_rejected(self) -> None:
        with pytest.raises(ValueError, match="not a generation stage"):
            validate_stage_payload(StageKind.validation, {})

    def test_rejection_is_not_retryable(self) -> None:
        with pytest.raises(PayloadSchemaError) as exc_info:
            validate_stage_payload(StageKind.dev_plan, "")
        assert exc_info.value.retryable is False
