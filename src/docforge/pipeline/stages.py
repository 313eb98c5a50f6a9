"""Stage kinds and ordering for the generation pipeline.

Every run executes the stages in ``STAGE_ORDER`` strictly sequentially.
Each stage produces exactly one artifact kind, stored under the stage's
value. Progress is derived from the number of completed stages.
"""

from __future__ import annotations

import enum


class StageKind(str, enum.Enum):
    """Pipeline stages in execution order.

    Values:
        dev_plan: Development plan text from the generation service.
        architecture: Technical architecture text.
        blueprint: Structured blueprint listing the system's components.
        readme: Top-level README text.
        component_extraction: Merged component set.
        dependency_analysis: Dependency edges, criticality scores, cycles.
        communication_matrix: Protocol-labelled communication edges.
        directory_synthesis: Directory tree and final communication schema.
        validation: Validation report over the schema.
        repository_population: Manifest of files written to the repository.
    """

    dev_plan = "dev_plan"
    architecture = "architecture"
    blueprint = "blueprint"
    readme = "readme"
    component_extraction = "component_extraction"
    dependency_analysis = "dependency_analysis"
    communication_matrix = "communication_matrix"
    directory_synthesis = "directory_synthesis"
    validation = "validation"
    repository_population = "repository_population"


STAGE_ORDER: tuple[StageKind, ...] = tuple(StageKind)

GENERATION_STAGES: frozenset[StageKind] = frozenset(
    {StageKind.dev_plan, StageKind.architecture, StageKind.blueprint, StageKind.readme}
)

TOTAL_STAGES = len(STAGE_ORDER)


def progress_for(completed_count: int) -> int:
    """Return the progress percentage for a number of completed stages.

    Args:
        completed_count: Stages committed so far in the run.

    Returns:
        Integer percentage in [0, 100].
    """
    completed_count = max(0, min(completed_count, TOTAL_STAGES))
    return completed_count * 100 // TOTAL_STAGES


def next_stage(completed: set[StageKind]) -> StageKind | None:
    """Return the first stage in pipeline order that has not completed.

    Args:
        completed: Stages already committed for the run.

    Returns:
        The next stage to execute, or None when every stage is done.
    """
    for stage in STAGE_ORDER:
        if stage not in completed:
            return stage
    return None
