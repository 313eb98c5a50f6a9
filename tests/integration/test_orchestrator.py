"""Integration tests for the pipeline orchestrator.

Runs are advanced against a file-backed SQLite database with the scripted
generation client from the shared fixtures, so every stage (including
repository population) executes for real.
"""

from __future__ import annotations

import asyncio
import json
from uuid import uuid4

import pytest

from docforge.analysis.models import CommunicationSchema
from docforge.database.models.project import ProjectStatus
from docforge.errors import (
    ActiveRunExistsError,
    GenerationTimeoutError,
    GenerationUnavailableError,
    ProjectNotFoundError,
    RateLimitedError,
    RunNotFoundError,
)
from docforge.orchestrator import (
    InvalidTransitionError,
    PipelineOrchestrator,
    initial_history,
)
from docforge.pipeline.stages import STAGE_ORDER, StageKind
from docforge.pipeline.status import TransitionEvent

pytestmark = pytest.mark.integration


class TestCompleteRun:
    """A run over the chat description completes every stage."""

    async def test_run_completes(self, orchestrator, project, store):
        run_id = await orchestrator.start(project.id)
        run = await orchestrator.wait(run_id)

        assert run.status.kind == "complete"
        assert run.progress == 100
        assert run.completed_stages() == set(STAGE_ORDER)
        assert run.lease_holder is None
        assert run.finished_at is not None

        refreshed = await store.get_project(project.id)
        assert refreshed.status == ProjectStatus.complete
        assert refreshed.progress == 100

    async def test_schema_describes_chat_system(self, orchestrator, project, store):
        run_id = await orchestrator.start(project.id)
        await orchestrator.wait(run_id)

        schema = CommunicationSchema.model_validate(
            await store.get_artifact(project.id, StageKind.directory_synthesis)
        )

        assert [c.id for c in schema.components] == ["gateway", "message-store"]
        assert schema.component("gateway").description == (
            "WebSocket gateway terminating client connections"
        )
        assert [(e.source, e.target) for e in schema.dependency_edges] == [
            ("gateway", "message-store")
        ]
        assert [e.protocol for e in schema.communication_edges] == ["synchronous"]
        assert schema.criticality == {"gateway": 6, "message-store": 6}
        assert schema.cycles == []
        assert schema.root.name == "chat"
        assert [c.path for c in schema.root.children] == ["gateway", "message-store"]
        assert schema.priority_order == ["gateway", "message-store"]

    async def test_repository_written(self, orchestrator, project, config, store):
        run_id = await orchestrator.start(project.id)
        await orchestrator.wait(run_id)

        root = config.repository.output_dir / "chat"
        manifest = await store.get_artifact(project.id, StageKind.repository_population)

        assert manifest["root"] == "chat"
        for path in manifest["files"]:
            assert (root / path).is_file(), path
        assert (root / "README.md").read_text() == (
            "# Chat\n\nA chat app with a websocket gateway and a message store.\n"
        )
        assert (root / "gateway" / "AGENT.md").exists()
        assert (root / "message-store" / "README.md").exists()
        schema_file = json.loads((root / "communication_schema.json").read_text())
        assert schema_file["project_name"] == "chat"

    async def test_progress_never_decreases(self, orchestrator, project):
        run_id = await orchestrator.start(project.id)
        run = await orchestrator.wait(run_id)

        progress = [t.progress for t in run.history]
        assert progress == sorted(progress)
        assert progress[0] == 0
        assert progress[-1] == 100

    async def test_history_is_write_ahead(self, orchestrator, project):
        """Each stage records ``started`` before ``completed``, in order."""
        run_id = await orchestrator.start(project.id)
        run = await orchestrator.wait(run_id)

        stage_events = [(t.event, t.stage) for t in run.history if t.stage is not None]
        expected = []
        for stage in STAGE_ORDER:
            expected.append((TransitionEvent.started, stage))
            expected.append((TransitionEvent.completed, stage))
        assert stage_events == expected
        assert run.history[0].event == TransitionEvent.queued
        assert run.history[-1].event == TransitionEvent.complete

    async def test_one_notification_per_transition(self, orchestrator, project, notifier):
        run_id = await orchestrator.start(project.id)
        run = await orchestrator.wait(run_id)

        assert notifier.names() == [t.event.value for t in run.history]
        assert notifier.events[-1].status == "complete"
        assert notifier.events[-1].progress == 100

    async def test_generation_requests_carry_prior_artifacts(
        self, orchestrator, project, client
    ):
        run_id = await orchestrator.start(project.id)
        await orchestrator.wait(run_id)

        readme_request = next(r for r in client.requests if r.stage == StageKind.readme)
        assert sorted(readme_request.artifacts) == ["architecture", "blueprint", "dev_plan"]
        assert readme_request.description == project.description
        assert readme_request.technologies == ["python", "websockets"]

    async def test_notifier_failure_does_not_affect_run(self, make_orchestrator, project):
        class BrokenNotifier:
            async def notify(self, event):
                raise RuntimeError("webhook down")

        orchestrator = make_orchestrator(run_notifier=BrokenNotifier())
        run_id = await orchestrator.start(project.id)
        run = await orchestrator.wait(run_id)

        assert run.status.kind == "complete"


class TestRetries:
    """Transient failures are retried up to the stage's attempt bound."""

    async def test_transient_failures_retried(self, make_orchestrator, make_client, project):
        client = make_client(
            failures={
                StageKind.dev_plan: [
                    GenerationUnavailableError("down"),
                    RateLimitedError("slow down", retry_after_seconds=0),
                ]
            }
        )
        orchestrator = make_orchestrator(generation_client=client)

        run_id = await orchestrator.start(project.id)
        run = await orchestrator.wait(run_id)

        assert run.status.kind == "complete"
        assert client.calls_for(StageKind.dev_plan) == 3
        started = [
            t for t in run.history
            if t.event == TransitionEvent.started and t.stage == StageKind.dev_plan
        ]
        assert len(started) == 1

    async def test_retries_exhausted_fails_run(self, make_orchestrator, make_client, project):
        client = make_client(
            failures={StageKind.architecture: [GenerationTimeoutError("timed out")] * 3}
        )
        orchestrator = make_orchestrator(generation_client=client)

        run_id = await orchestrator.start(project.id)
        run = await orchestrator.wait(run_id)

        assert run.status.kind == "failed"
        assert run.status.reason == "timed out"
        assert client.calls_for(StageKind.architecture) == 3
        assert run.completed_stages() == {StageKind.dev_plan}
        assert run.history[-1].event == TransitionEvent.failed
        assert run.history[-1].stage == StageKind.architecture

    async def test_content_failure_not_retried(
        self, make_orchestrator, make_client, chat_payloads, project, store
    ):
        chat_payloads[StageKind.blueprint] = {"components": []}
        client = make_client(payloads=chat_payloads)
        orchestrator = make_orchestrator(generation_client=client)

        run_id = await orchestrator.start(project.id)
        run = await orchestrator.wait(run_id)

        assert run.status.kind == "failed"
        assert "blueprint payload rejected" in run.status.reason
        assert client.calls_for(StageKind.blueprint) == 1
        assert await store.get_artifact(project.id, StageKind.dev_plan) is not None
        assert await store.get_artifact(project.id, StageKind.architecture) is not None
        assert await store.get_artifact(project.id, StageKind.blueprint) is None
        assert (await store.get_project(project.id)).status == ProjectStatus.failed

    async def test_unexpected_error_fails_run(self, make_orchestrator, make_client, project):
        client = make_client(failures={StageKind.dev_plan: [RuntimeError("boom")]})
        orchestrator = make_orchestrator(generation_client=client)

        run_id = await orchestrator.start(project.id)
        run = await orchestrator.wait(run_id)

        assert run.status.kind == "failed"
        assert run.status.reason == "RuntimeError: boom"
        assert client.calls_for(StageKind.dev_plan) == 1


class TestStartAndCancel:
    """Starting, rejecting, and cancelling runs."""

    async def test_start_missing_project(self, orchestrator):
        with pytest.raises(ProjectNotFoundError):
            await orchestrator.start(uuid4())

    async def test_second_active_run_rejected(self, orchestrator, client, project):
        entered, release = client.block(StageKind.dev_plan)
        run_id = await orchestrator.start(project.id)
        await asyncio.wait_for(entered.wait(), 5)

        with pytest.raises(ActiveRunExistsError):
            await orchestrator.start(project.id)

        release.set()
        run = await orchestrator.wait(run_id)
        assert run.status.kind == "complete"

    async def test_cancel_stops_before_next_stage(self, orchestrator, client, project, store):
        entered, release = client.block(StageKind.architecture)
        run_id = await orchestrator.start(project.id)
        await asyncio.wait_for(entered.wait(), 5)

        requested = await orchestrator.cancel(run_id)
        assert requested.status.kind == "running"
        assert requested.cancel_requested is True

        release.set()
        run = await orchestrator.wait(run_id)

        assert run.status.kind == "cancelled"
        assert run.completed_stages() == {StageKind.dev_plan, StageKind.architecture}
        assert client.calls_for(StageKind.blueprint) == 0
        assert run.lease_holder is None
        assert (await store.get_project(project.id)).status == ProjectStatus.cancelled

    async def test_cancel_unclaimed_queued_run(self, orchestrator, project, store, notifier):
        queued = await store.create_run(project.id, initial_history())

        run = await orchestrator.cancel(queued.id)

        assert run.status.kind == "cancelled"
        assert run.lease_holder is None
        assert notifier.names() == ["cancelled"]

    async def test_cancel_terminal_run_rejected(self, orchestrator, project):
        run_id = await orchestrator.start(project.id)
        await orchestrator.wait(run_id)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.cancel(run_id)

    async def test_cancel_missing_run(self, orchestrator):
        with pytest.raises(RunNotFoundError):
            await orchestrator.cancel(uuid4())

    async def test_concurrency_bound(self, make_orchestrator, client, store, chat_description):
        orchestrator = make_orchestrator(max_concurrent_runs=1)
        first = await store.create_project("Chat", chat_description)
        second = await store.create_project("Chat Two", chat_description)
        entered, release = client.block(StageKind.dev_plan)

        first_id = await orchestrator.start(first.id)
        await asyncio.wait_for(entered.wait(), 5)
        second_id = await orchestrator.start(second.id)

        waiting = await orchestrator.status(second_id)
        assert waiting.status.kind == "queued"
        assert waiting.lease_holder is None

        release.set()
        assert (await orchestrator.wait(first_id)).status.kind == "complete"
        assert (await orchestrator.wait(second_id)).status.kind == "complete"

    async def test_missing_handler_rejected(self, orchestrator):
        handlers = dict(orchestrator.handlers)
        handlers.pop(StageKind.validation)

        with pytest.raises(ValueError, match="validation"):
            PipelineOrchestrator(
                store=orchestrator.store,
                leaser=orchestrator.leaser,
                handlers=handlers,
                notifier=orchestrator.notifier,
                retry=orchestrator.retry,
            )


class TestResumeTerminal:
    """Resuming failed, cancelled, and complete runs."""

    async def test_resume_failed_run_reuses_artifacts(
        self, make_orchestrator, make_client, project
    ):
        client = make_client(
            failures={StageKind.readme: [GenerationUnavailableError("down")] * 3}
        )
        orchestrator = make_orchestrator(generation_client=client)
        failed_id = await orchestrator.start(project.id)
        failed = await orchestrator.wait(failed_id)
        assert failed.status.kind == "failed"

        resumed_id = await orchestrator.resume(failed_id)
        run = await orchestrator.wait(resumed_id)

        assert resumed_id != failed_id
        assert run.resumed_from == failed_id
        assert run.status.kind == "complete"
        reused = [t.stage for t in run.history if t.event == TransitionEvent.reused]
        assert reused == [StageKind.dev_plan, StageKind.architecture, StageKind.blueprint]
        assert run.history[len(reused)].event == TransitionEvent.queued
        assert run.history[len(reused)].progress == 30
        assert client.calls_for(StageKind.dev_plan) == 1
        assert client.calls_for(StageKind.readme) == 4

    async def test_resume_cancelled_run(self, orchestrator, client, project):
        entered, release = client.block(StageKind.dev_plan)
        run_id = await orchestrator.start(project.id)
        await asyncio.wait_for(entered.wait(), 5)
        await orchestrator.cancel(run_id)
        release.set()
        assert (await orchestrator.wait(run_id)).status.kind == "cancelled"

        resumed_id = await orchestrator.resume(run_id)
        run = await orchestrator.wait(resumed_id)

        assert run.status.kind == "complete"
        assert run.resumed_from == run_id
        assert client.calls_for(StageKind.dev_plan) == 1

    async def test_resume_complete_run_rejected(self, orchestrator, project):
        run_id = await orchestrator.start(project.id)
        await orchestrator.wait(run_id)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.resume(run_id)

    async def test_resume_missing_run(self, orchestrator):
        with pytest.raises(RunNotFoundError):
            await orchestrator.resume(uuid4())

    async def test_execute_terminal_run_is_noop(self, orchestrator, project):
        run_id = await orchestrator.start(project.id)
        await orchestrator.wait(run_id)

        assert await orchestrator.execute(run_id) is None
