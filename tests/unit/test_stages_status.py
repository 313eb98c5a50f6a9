"""Unit tests for stage ordering and the run status union."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from pydantic import TypeAdapter, ValidationError

from docforge.pipeline.stages import (
    GENERATION_STAGES,
    STAGE_ORDER,
    StageKind,
    next_stage,
    progress_for,
)
from docforge.pipeline.status import (
    Cancelled,
    Complete,
    Failed,
    PipelineRun,
    Queued,
    Running,
    RunStatus,
    StageTransition,
    TransitionEvent,
    is_terminal,
)

status_adapter = TypeAdapter(RunStatus)


class TestStageOrder:
    """Test the fixed pipeline order."""

    def test_order(self) -> None:
        assert [s.value for s in STAGE_ORDER] == [
            "dev_plan",
            "architecture",
            "blueprint",
            "readme",
            "component_extraction",
            "dependency_analysis",
            "communication_matrix",
            "directory_synthesis",
            "validation",
            "repository_population",
        ]

    def test_generation_stages_come_first(self) -> None:
        assert set(STAGE_ORDER[:4]) == GENERATION_STAGES

    @pytest.mark.parametrize(
        ("completed", "expected"),
        [(0, 0), (1, 10), (3, 30), (10, 100), (-1, 0), (12, 100)],
    )
    def test_progress_for(self, completed: int, expected: int) -> None:
        assert progress_for(completed) == expected

    def test_next_stage(self) -> None:
        assert next_stage(set()) == StageKind.dev_plan
        assert next_stage({StageKind.dev_plan, StageKind.blueprint}) == StageKind.architecture
        assert next_stage(set(STAGE_ORDER)) is None


class TestRunStatus:
    """Test the discriminated status union."""

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            ({"kind": "queued"}, Queued()),
            ({"kind": "running", "stage": "readme"}, Running(stage=StageKind.readme)),
            ({"kind": "failed", "reason": "boom"}, Failed(reason="boom")),
            ({"kind": "complete"}, Complete()),
            ({"kind": "cancelled"}, Cancelled()),
        ],
    )
    def test_parse_by_kind(self, data: dict, expected: object) -> None:
        assert status_adapter.validate_python(data) == expected

    def test_running_requires_stage(self) -> None:
        with pytest.raises(ValidationError):
            status_adapter.validate_python({"kind": "running"})

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            status_adapter.validate_python({"kind": "paused"})

    def test_variants_are_frozen(self) -> None:
        with pytest.raises(ValidationError):
            Failed(reason="a").reason = "b"

    def test_is_terminal(self) -> None:
        assert not is_terminal(Queued())
        assert not is_terminal(Running(stage=StageKind.dev_plan))
        assert is_terminal(Failed(reason="x"))
        assert is_terminal(Complete())
        assert is_terminal(Cancelled())


class TestPipelineRun:
    """Test the run model."""

    def test_defaults(self) -> None:
        run = PipelineRun(id=uuid4(), project_id=uuid4())
        assert run.status == Queued()
        assert run.progress == 0
        assert run.history == []
        assert not run.is_terminal

    def test_json_round_trip_keeps_variant(self) -> None:
        run = PipelineRun(
            id=uuid4(),
            project_id=uuid4(),
            status=Running(stage=StageKind.blueprint),
        )
        restored = PipelineRun.model_validate_json(run.model_dump_json())
        assert restored.status == Running(stage=StageKind.blueprint)

    def test_completed_stages_ignores_started(self) -> None:
        at = datetime.now(timezone.utc)
        run = PipelineRun(
            id=uuid4(),
            project_id=uuid4(),
            history=[
                StageTransition(event=TransitionEvent.queued, progress=0, at=at),
                StageTransition(
                    event=TransitionEvent.started, stage=StageKind.dev_plan, progress=0, at=at
                ),
                StageTransition(
                    event=TransitionEvent.completed, stage=StageKind.dev_plan, progress=10, at=at
                ),
                StageTransition(
                    event=TransitionEvent.started, stage=StageKind.architecture, progress=10, at=at
                ),
            ],
        )
        assert run.completed_stages() == {StageKind.dev_plan}

    def test_progress_bounds(self) -> None:
        with pytest.raises(ValidationError):
            PipelineRun(id=uuid4(), project_id=uuid4(), progress=101)
