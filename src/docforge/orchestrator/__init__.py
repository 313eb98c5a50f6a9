"""Pipeline orchestration for Docforge.

This module sequences generation stages for each run, persists progress
write-ahead, enforces one worker per run through a database lease, and
applies the per-stage retry policy.
"""

from docforge.orchestrator.lease import RunLeaser
from docforge.orchestrator.orchestrator import PipelineOrchestrator, build_orchestrator
from docforge.orchestrator.retry import BackoffConfig, ExponentialBackoff, RetryPolicy
from docforge.orchestrator.state_machine import (
    VALID_TRANSITIONS,
    InvalidTransitionError,
    RunStateMachine,
    initial_history,
    validate_transition,
)

__all__ = [
    "VALID_TRANSITIONS",
    "BackoffConfig",
    "ExponentialBackoff",
    "InvalidTransitionError",
    "PipelineOrchestrator",
    "RetryPolicy",
    "RunLeaser",
    "RunStateMachine",
    "build_orchestrator",
    "initial_history",
    "validate_transition",
]
