"""Generation service client.

The orchestrator talks to the text/code generation boundary through the
``GenerationClient`` protocol. ``HttpGenerationClient`` is the default
implementation: it posts one JSON request per stage and classifies every
failure into the error taxonomy so the orchestrator's retry policy can
decide what to do. The client itself never retries.

Request body::

    {"stage": "...", "project": {...}, "artifacts": {...}, "model": "..."}

Response body::

    {"content": <string or object>}

Example usage:
    >>> from docforge.config import GenerationConfig
    >>> async with HttpGenerationClient(GenerationConfig()) as client:
    ...     payload = await client.generate(request)
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, Field

from docforge.config import GenerationConfig
from docforge.errors import (
    GenerationTimeoutError,
    GenerationUnavailableError,
    MalformedResponseError,
    RateLimitedError,
)
from docforge.pipeline.stages import StageKind

logger = structlog.get_logger(__name__)


class GenerationRequest(BaseModel):
    """One stage's request to the generation service.

    Attributes:
        stage: Generation stage being produced.
        project_name: Name of the project.
        description: Free-text project description.
        technologies: Technologies the project uses.
        artifacts: Prior committed artifacts keyed by stage value.
    """

    stage: StageKind
    project_name: str
    description: str
    technologies: list[str] = Field(default_factory=list)
    artifacts: dict[str, Any] = Field(default_factory=dict)


class GenerationClient(Protocol):
    """Boundary to the text/code generation service."""

    async def generate(self, request: GenerationRequest) -> Any:
        """Return the raw payload for one stage."""
        ...


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class HttpGenerationClient:
    """httpx-based generation client.

    Attributes:
        config: Generation configuration containing URL, model, and timeout
    """

    def __init__(self, config: GenerationConfig) -> None:
        """Initialize the client.

        Args:
            config: GenerationConfig with connection settings
        """
        self.config = config
        self._client: httpx.AsyncClient | None = None
        logger.info(
            "generation_client_initialized",
            url=config.url,
            model=config.model,
            timeout=config.timeout_seconds,
        )

    async def __aenter__(self) -> HttpGenerationClient:
        """Async context manager entry."""
        headers = {}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.config.url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
            headers=headers,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        """Return the active HTTP client.

        Raises:
            RuntimeError: If called outside async context manager
        """
        if self._client is None:
            raise RuntimeError("HttpGenerationClient must be used as async context manager")
        return self._client

    async def generate(self, request: GenerationRequest) -> Any:
        """Request one stage's payload from the generation service.

        Args:
            request: Stage request with project description and prior artifacts

        Returns:
            The ``content`` value of the response body (string or object)

        Raises:
            GenerationTimeoutError: If the request times out
            GenerationUnavailableError: On connection errors or 5xx responses
            RateLimitedError: On HTTP 429
            MalformedResponseError: On other 4xx, non-JSON, or empty bodies
        """
        client = self._get_client()
        body = {
            "stage": request.stage.value,
            "project": {
                "name": request.project_name,
                "description": request.description,
                "technologies": request.technologies,
            },
            "artifacts": request.artifacts,
            "model": self.config.model,
        }

        logger.debug(
            "generation_request",
            stage=request.stage.value,
            artifacts=sorted(request.artifacts),
        )

        try:
            response = await client.post("/generate", json=body)
        except httpx.TimeoutException as e:
            logger.warning(
                "generation_timeout",
                stage=request.stage.value,
                timeout_seconds=self.config.timeout_seconds,
            )
            raise GenerationTimeoutError(
                f"Generation of {request.stage.value} timed out after "
                f"{self.config.timeout_seconds}s"
            ) from e
        except (httpx.ConnectError, httpx.NetworkError) as e:
            logger.warning(
                "generation_connection_error",
                url=self.config.url,
                error=str(e),
            )
            raise GenerationUnavailableError(
                f"Failed to connect to generation service at {self.config.url}"
            ) from e

        if response.status_code == 429:
            retry_after = _retry_after(response)
            logger.warning(
                "generation_rate_limited",
                stage=request.stage.value,
                retry_after=retry_after,
            )
            raise RateLimitedError(
                "Generation service rate limit exceeded",
                retry_after_seconds=retry_after,
            )

        if 500 <= response.status_code < 600:
            logger.warning(
                "generation_server_error",
                stage=request.stage.value,
                status_code=response.status_code,
            )
            raise GenerationUnavailableError(
                f"Generation service error: HTTP {response.status_code}"
            )

        if response.status_code != 200:
            raise MalformedResponseError(
                f"Generation service rejected {request.stage.value}: "
                f"HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Generation response for {request.stage.value} is not JSON"
            ) from e

        content = data.get("content") if isinstance(data, dict) else None
        if content is None or (isinstance(content, str) and not content.strip()):
            raise MalformedResponseError(
                f"Generation response for {request.stage.value} has no content"
            )

        logger.info(
            "generation_completed",
            stage=request.stage.value,
            content_type=type(content).__name__,
        )
        return content

    async def health_check(self) -> bool:
        """Check if the generation service responds.

        Returns:
            True if service is healthy, False otherwise
        """
        client = self._get_client()
        try:
            response = await client.get("/health")
        except (httpx.TimeoutException, httpx.ConnectError, httpx.NetworkError) as e:
            logger.warning("generation_health_check_error", url=self.config.url, error=str(e))
            return False

        if response.status_code == 200:
            return True
        logger.warning(
            "generation_health_check_failed",
            url=self.config.url,
            status_code=response.status_code,
        )
        return False
