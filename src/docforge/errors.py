"""Error taxonomy for Docforge.

Stage failures are classified into three categories that the orchestrator
alone interprets:

- **Transient**: network, timeout, or rate-limit failures from the
  generation or repository boundary. Retried with bounded backoff.
- **Content**: stage payloads that cannot be used (schema mismatch,
  empty extraction). Never retried.
- **Consistency**: fatal validation findings. Never retried.

Lower-level components raise these classified errors but never decide
whether to retry. Caller-facing lookup and concurrency errors live here
as well so the web and CLI layers can map them to responses.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    """Classification of a stage failure.

    Values:
        TRANSIENT: Retryable boundary failure
        CONTENT: Unusable stage content
        CONSISTENCY: Fatal validation finding
    """

    TRANSIENT = "transient"
    CONTENT = "content"
    CONSISTENCY = "consistency"


class PipelineError(Exception):
    """Base class for classified stage failures.

    Attributes:
        category: Failure classification used by the retry policy.
    """

    category: ErrorCategory = ErrorCategory.CONTENT

    @property
    def retryable(self) -> bool:
        """Whether the orchestrator may retry the failed stage."""
        return self.category == ErrorCategory.TRANSIENT


class TransientError(PipelineError):
    """Retryable failure from an external boundary."""

    category = ErrorCategory.TRANSIENT


class GenerationTimeoutError(TransientError):
    """Raised when a generation request times out."""


class GenerationUnavailableError(TransientError):
    """Raised when the generation service is unreachable or returns 5xx."""


class RateLimitedError(TransientError):
    """Raised when the generation service responds with HTTP 429.

    Attributes:
        retry_after_seconds: Server-suggested wait, if one was provided.
    """

    def __init__(self, message: str, retry_after_seconds: float | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class RepositoryWriteError(TransientError):
    """Raised when a repository write fails and the whole replay may be retried."""


class ContentError(PipelineError):
    """Non-retryable failure caused by unusable stage content."""

    category = ErrorCategory.CONTENT


class MalformedResponseError(ContentError):
    """Raised when the generation service returns an empty or malformed body."""


class PayloadSchemaError(ContentError):
    """Raised when a stage payload does not match the shape that stage requires.

    Attributes:
        stage: Stage kind value whose payload was rejected.
    """

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage} payload rejected: {message}")
        self.stage = stage


class ExtractionError(ContentError):
    """Raised when non-empty upstream artifacts yield no components."""


class ConsistencyError(PipelineError):
    """Non-retryable failure caused by fatal validation findings."""

    category = ErrorCategory.CONSISTENCY


class RunNotFoundError(LookupError):
    """Raised when a pipeline run does not exist."""

    def __init__(self, run_id: object) -> None:
        super().__init__(f"Pipeline run {run_id} not found")
        self.run_id = run_id


class ProjectNotFoundError(LookupError):
    """Raised when a project does not exist."""

    def __init__(self, project_id: object) -> None:
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


class ActiveRunExistsError(Exception):
    """Raised when a project already has a non-terminal run.

    Attributes:
        project_id: Project that already has an active run.
        active_run_id: The run currently active for the project.
    """

    def __init__(self, project_id: object, active_run_id: object) -> None:
        super().__init__(
            f"Project {project_id} already has an active run {active_run_id}"
        )
        self.project_id = project_id
        self.active_run_id = active_run_id


class LeaseHeldError(Exception):
    """Raised when a run lease is already held by another live worker.

    Attributes:
        run_id: Run whose lease was requested.
        holder: Worker currently holding the lease.
    """

    def __init__(self, run_id: object, holder: str | None) -> None:
        super().__init__(f"Lease for run {run_id} is held by {holder}")
        self.run_id = run_id
        self.holder = holder
