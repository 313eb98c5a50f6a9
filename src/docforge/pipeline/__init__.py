"""Pipeline stage definitions, run status, payload schemas, and handlers."""

from docforge.pipeline.stages import (
    GENERATION_STAGES,
    STAGE_ORDER,
    TOTAL_STAGES,
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

__all__ = [
    "GENERATION_STAGES",
    "STAGE_ORDER",
    "TOTAL_STAGES",
    "Cancelled",
    "Complete",
    "Failed",
    "PipelineRun",
    "Queued",
    "RunStatus",
    "Running",
    "StageKind",
    "StageTransition",
    "TransitionEvent",
    "is_terminal",
    "next_stage",
    "progress_for",
]
