"""Unit tests for the HTTP generation client.

Uses respx to mock the generation service so every response class maps
onto the right error category.
"""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from docforge.config import GenerationConfig
from docforge.errors import (
    GenerationTimeoutError,
    GenerationUnavailableError,
    MalformedResponseError,
    RateLimitedError,
)
from docforge.integrations.generation import GenerationRequest, HttpGenerationClient
from docforge.pipeline.stages import StageKind

BASE_URL = "http://generator.test"


@pytest.fixture
def config() -> GenerationConfig:
    return GenerationConfig(url=BASE_URL, model="writer", timeout_seconds=5)


@pytest.fixture
def request_() -> GenerationRequest:
    return GenerationRequest(
        stage=StageKind.architecture,
        project_name="Chat",
        description="a chat app",
        technologies=["python"],
        artifacts={"dev_plan": {"content": "plan"}},
    )


@pytest.fixture
async def client(config: GenerationConfig) -> HttpGenerationClient:
    async with HttpGenerationClient(config) as c:
        yield c


class TestGenerate:
    """Successful requests."""

    @respx.mock
    async def test_request_body(
        self, client: HttpGenerationClient, request_: GenerationRequest
    ) -> None:
        route = respx.post(f"{BASE_URL}/generate").mock(
            return_value=httpx.Response(200, json={"content": "architecture text"})
        )

        assert await client.generate(request_) == "architecture text"

        body = json.loads(route.calls.last.request.content)
        assert body == {
            "stage": "architecture",
            "project": {"name": "Chat", "description": "a chat app", "technologies": ["python"]},
            "artifacts": {"dev_plan": {"content": "plan"}},
            "model": "writer",
        }

    @respx.mock
    async def test_object_content(
        self, client: HttpGenerationClient, request_: GenerationRequest
    ) -> None:
        respx.post(f"{BASE_URL}/generate").mock(
            return_value=httpx.Response(200, json={"content": {"components": []}})
        )
        assert await client.generate(request_) == {"components": []}

    @respx.mock
    async def test_bearer_token(self, request_: GenerationRequest) -> None:
        route = respx.post(f"{BASE_URL}/generate").mock(
            return_value=httpx.Response(200, json={"content": "ok"})
        )
        config = GenerationConfig(url=BASE_URL, api_key="secret")

        async with HttpGenerationClient(config) as client:
            await client.generate(request_)

        assert route.calls.last.request.headers["Authorization"] == "Bearer secret"


class TestErrorClassification:
    """Every failure maps onto the error taxonomy."""

    @respx.mock
    async def test_rate_limited_with_retry_after(
        self, client: HttpGenerationClient, request_: GenerationRequest
    ) -> None:
        respx.post(f"{BASE_URL}/generate").mock(
            return_value=httpx.Response(429, headers={"Retry-After": "12"})
        )

        with pytest.raises(RateLimitedError) as exc_info:
            await client.generate(request_)
        assert exc_info.value.retry_after_seconds == 12.0
        assert exc_info.value.retryable

    @respx.mock
    async def test_rate_limited_with_unparseable_retry_after(
        self, client: HttpGenerationClient, request_: GenerationRequest
    ) -> None:
        respx.post(f"{BASE_URL}/generate").mock(
            return_value=httpx.Response(429, headers={"Retry-After": "soon"})
        )

        with pytest.raises(RateLimitedError) as exc_info:
            await client.generate(request_)
        assert exc_info.value.retry_after_seconds is None

    @respx.mock
    async def test_server_error(
        self, client: HttpGenerationClient, request_: GenerationRequest
    ) -> None:
        respx.post(f"{BASE_URL}/generate").mock(return_value=httpx.Response(503))

        with pytest.raises(GenerationUnavailableError, match="HTTP 503"):
            await client.generate(request_)

    @respx.mock
    async def test_client_error_is_content(
        self, client: HttpGenerationClient, request_: GenerationRequest
    ) -> None:
        respx.post(f"{BASE_URL}/generate").mock(
            return_value=httpx.Response(400, text="bad stage")
        )

        with pytest.raises(MalformedResponseError, match="HTTP 400: bad stage") as exc_info:
            await client.generate(request_)
        assert not exc_info.value.retryable

    @respx.mock
    async def test_non_json_body(
        self, client: HttpGenerationClient, request_: GenerationRequest
    ) -> None:
        respx.post(f"{BASE_URL}/generate").mock(return_value=httpx.Response(200, text="<html>"))

        with pytest.raises(MalformedResponseError, match="not JSON"):
            await client.generate(request_)

    @pytest.mark.parametrize("body", [{}, {"content": "  "}, {"content": None}, ["content"]])
    @respx.mock
    async def test_empty_content(
        self, client: HttpGenerationClient, request_: GenerationRequest, body: object
    ) -> None:
        respx.post(f"{BASE_URL}/generate").mock(return_value=httpx.Response(200, json=body))

        with pytest.raises(MalformedResponseError, match="no content"):
            await client.generate(request_)

    @respx.mock
    async def test_timeout(self, client: HttpGenerationClient, request_: GenerationRequest) -> None:
        respx.post(f"{BASE_URL}/generate").mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(GenerationTimeoutError, match="timed out after 5s"):
            await client.generate(request_)

    @respx.mock
    async def test_connection_error(
        self, client: HttpGenerationClient, request_: GenerationRequest
    ) -> None:
        respx.post(f"{BASE_URL}/generate").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(GenerationUnavailableError, match="Failed to connect"):
            await client.generate(request_)

    async def test_outside_context_manager(
        self, config: GenerationConfig, request_: GenerationRequest
    ) -> None:
        with pytest.raises(RuntimeError, match="async context manager"):
            await HttpGenerationClient(config).generate(request_)


class TestHealthCheck:
    @respx.mock
    async def test_healthy(self, client: HttpGenerationClient) -> None:
        respx.get(f"{BASE_URL}/health").mock(return_value=httpx.Response(200))
        assert await client.health_check() is True

    @respx.mock
    async def test_unhealthy_status(self, client: HttpGenerationClient) -> None:
        respx.get(f"{BASE_URL}/health").mock(return_value=httpx.Response(500))
        assert await client.health_check() is False

    @respx.mock
    async def test_unreachable(self, client: HttpGenerationClient) -> None:
        respx.get(f"{BASE_URL}/health").mock(side_effect=httpx.ConnectError("refused"))
        assert await client.health_check() is False
