"""Stage handlers.

A handler turns an immutable ``StageContext`` (project data plus the
committed artifacts of earlier stages) into the artifact content for its
stage. Handlers have no side effects visible to the pipeline until the
orchestrator commits the returned content; repository population only
performs overwrites, so every handler is safe to re-invoke after a crash.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol
from uuid import UUID

import structlog

from docforge.analysis.communication import CommunicationMatrixBuilder
from docforge.analysis.dependency import DependencyAnalyzer
from docforge.analysis.directory import DirectorySynthesizer
from docforge.analysis.docs import DocumentationRenderer
from docforge.analysis.extractor import ComponentExtractor
from docforge.analysis.models import (
    AnalysisResult,
    CommunicationMatrix,
    CommunicationSchema,
    ComponentSet,
    DependencyGraph,
    Severity,
)
from docforge.analysis.naming import slugify
from docforge.analysis.validation import ValidationEngine
from docforge.config import AnalysisConfig
from docforge.errors import ConsistencyError
from docforge.integrations.generation import GenerationClient, GenerationRequest
from docforge.integrations.repository import WriterFactory
from docforge.pipeline.payloads import validate_stage_payload
from docforge.pipeline.stages import StageKind

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StageContext:
    """Read-only inputs for one stage invocation.

    Attributes:
        run_id: Run executing the stage.
        project_id: Project being generated.
        project_name: Project name.
        description: Free-text project description.
        technologies: Technologies the project uses.
        stage: Stage being executed.
        artifacts: Latest committed artifact content per earlier stage.
    """

    run_id: UUID
    project_id: UUID
    project_name: str
    description: str
    stage: StageKind
    technologies: tuple[str, ...] = ()
    artifacts: Mapping[StageKind, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "artifacts", MappingProxyType(dict(self.artifacts)))

    def require(self, stage: StageKind) -> Any:
        """Return an upstream artifact, failing if it was never committed.

        Raises:
            ConsistencyError: If the artifact is missing.
        """
        if stage not in self.artifacts:
            raise ConsistencyError(
                f"{self.stage.value} requires the {stage.value} artifact, which is missing"
            )
        return self.artifacts[stage]


class StageHandler(Protocol):
    """Produces the artifact content for one stage."""

    async def run(self, ctx: StageContext) -> dict[str, Any]: ...


class GenerationStageHandler:
    """Requests a stage payload from the generation service and validates it."""

    def __init__(self, client: GenerationClient, stage: StageKind) -> None:
        self.client = client
        self.stage = stage

    async def run(self, ctx: StageContext) -> dict[str, Any]:
        request = GenerationRequest(
            stage=self.stage,
            project_name=ctx.project_name,
            description=ctx.description,
            technologies=list(ctx.technologies),
            artifacts={k.value: v for k, v in ctx.artifacts.items()},
        )
        payload = await self.client.generate(request)
        return validate_stage_payload(self.stage, payload)


class ComponentExtractionHandler:
    def __init__(self, extractor: ComponentExtractor) -> None:
        self.extractor = extractor

    async def run(self, ctx: StageContext) -> dict[str, Any]:
        sources = [
            (stage.value, ctx.artifacts.get(stage))
            for stage in (StageKind.dev_plan, StageKind.architecture, StageKind.blueprint)
        ]
        return self.extractor.extract(sources).model_dump(mode="json")


class DependencyAnalysisHandler:
    def __init__(self, analyzer: DependencyAnalyzer) -> None:
        self.analyzer = analyzer

    async def run(self, ctx: StageContext) -> dict[str, Any]:
        extracted = AnalysisResult[ComponentSet].model_validate(
            ctx.require(StageKind.component_extraction)
        )
        return self.analyzer.analyze(extracted.value).model_dump(mode="json")


class CommunicationMatrixHandler:
    def __init__(self, builder: CommunicationMatrixBuilder) -> None:
        self.builder = builder

    async def run(self, ctx: StageContext) -> dict[str, Any]:
        graph = AnalysisResult[DependencyGraph].model_validate(
            ctx.require(StageKind.dependency_analysis)
        )
        return self.builder.build(graph.value).model_dump(mode="json")


class DirectorySynthesisHandler:
    def __init__(self, synthesizer: DirectorySynthesizer) -> None:
        self.synthesizer = synthesizer

    async def run(self, ctx: StageContext) -> dict[str, Any]:
        graph = AnalysisResult[DependencyGraph].model_validate(
            ctx.require(StageKind.dependency_analysis)
        )
        matrix = AnalysisResult[CommunicationMatrix].model_validate(
            ctx.require(StageKind.communication_matrix)
        )
        result = self.synthesizer.synthesize(ctx.project_name, graph.value, matrix.value)
        return result.value.model_dump(mode="json")


class ValidationHandler:
    """Validates the schema and halts the run on fatal findings."""

    def __init__(self, engine: ValidationEngine) -> None:
        self.engine = engine

    async def run(self, ctx: StageContext) -> dict[str, Any]:
        schema = CommunicationSchema.model_validate(ctx.require(StageKind.directory_synthesis))
        upstream = []
        for stage, model in (
            (StageKind.component_extraction, AnalysisResult[ComponentSet]),
            (StageKind.dependency_analysis, AnalysisResult[DependencyGraph]),
        ):
            upstream.extend(model.model_validate(ctx.require(stage)).findings)

        report = self.engine.validate(schema, upstream)
        if report.has_fatal:
            fatal = "; ".join(f.message for f in report.by_severity(Severity.fatal))
            raise ConsistencyError(f"Validation failed: {fatal}")
        return report.model_dump(mode="json")


def _text(artifact: Any) -> str:
    if isinstance(artifact, dict):
        return str(artifact.get("content", ""))
    return str(artifact)


class RepositoryPopulationHandler:
    """Writes the generated repository and returns a manifest of paths."""

    def __init__(self, writer_factory: WriterFactory, renderer: DocumentationRenderer) -> None:
        self.writer_factory = writer_factory
        self.renderer = renderer

    def plan(self, ctx: StageContext) -> dict[str, str]:
        """Return every file to write, keyed by repository-relative path."""
        schema = CommunicationSchema.model_validate(ctx.require(StageKind.directory_synthesis))
        files = self.renderer.render_all(schema)
        # the generated readme replaces the rendered root overview
        files["README.md"] = _text(ctx.require(StageKind.readme))
        files["docs/DEV_PLAN.md"] = _text(ctx.require(StageKind.dev_plan))
        files["docs/ARCHITECTURE.md"] = _text(ctx.require(StageKind.architecture))
        files["blueprint.json"] = json.dumps(
            ctx.require(StageKind.blueprint), indent=2, sort_keys=True
        )
        files["communication_schema.json"] = json.dumps(
            ctx.artifacts[StageKind.directory_synthesis], indent=2, sort_keys=True
        )
        return files

    async def run(self, ctx: StageContext) -> dict[str, Any]:
        root = slugify(ctx.project_name) or "project"
        writer = self.writer_factory(root)
        files = self.plan(ctx)
        for path in sorted(files):
            await writer.write(path, files[path])
        logger.info("repository_populated", root=root, files=len(files))
        return {"root": root, "files": sorted(files)}


def build_handlers(
    client: GenerationClient,
    analysis: AnalysisConfig,
    writer_factory: WriterFactory,
) -> dict[StageKind, StageHandler]:
    """Create the handler for every stage.

    Args:
        client: Generation service client.
        analysis: Analysis configuration.
        writer_factory: Creates a repository writer per project slug.

    Returns:
        Handler per stage kind.
    """
    handlers: dict[StageKind, StageHandler] = {
        stage: GenerationStageHandler(client, stage)
        for stage in (
            StageKind.dev_plan,
            StageKind.architecture,
            StageKind.blueprint,
            StageKind.readme,
        )
    }
    handlers[StageKind.component_extraction] = ComponentExtractionHandler(ComponentExtractor())
    handlers[StageKind.dependency_analysis] = DependencyAnalysisHandler(
        DependencyAnalyzer(analysis)
    )
    handlers[StageKind.communication_matrix] = CommunicationMatrixHandler(
        CommunicationMatrixBuilder(analysis)
    )
    handlers[StageKind.directory_synthesis] = DirectorySynthesisHandler(
        DirectorySynthesizer(analysis)
    )
    handlers[StageKind.validation] = ValidationHandler(ValidationEngine())
    handlers[StageKind.repository_population] = RepositoryPopulationHandler(
        writer_factory, DocumentationRenderer()
    )
    return handlers
