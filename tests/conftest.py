"""Shared fixtures: a scripted generation client and a recording notifier.

The scripted client answers every generation stage with a deterministic
payload for a small chat application (a websocket gateway backed by a
message store), so complete pipeline runs are reproducible.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from typing import Any

import pytest
import structlog
from structlog.testing import LogCapture

from docforge.integrations.generation import GenerationRequest
from docforge.integrations.notifications import RunEvent
from docforge.pipeline.stages import StageKind

CHAT_DESCRIPTION = "a chat app with a websocket gateway and a message store"

CHAT_BLUEPRINT: dict[str, Any] = {
    "components": [
        {
            "id": "gateway",
            "type": "gateway",
            "description": "WebSocket gateway terminating client connections",
            "dependencies": [{"target": "message-store", "kind": "runtime"}],
        },
        {
            "id": "message-store",
            "type": "store",
            "description": "Durable storage for chat messages",
        },
    ]
}

CHAT_PAYLOADS: dict[StageKind, Any] = {
    StageKind.dev_plan: (
        "## Development plan\n\n"
        "1. Build the websocket gateway\n"
        "2. Build the message store\n"
    ),
    StageKind.architecture: (
        "Clients hold a websocket open to the gateway, which persists every\n"
        "message before fanning it out.\n\n"
        "```json\n"
        '{"components": [{"id": "gateway", "description": "Accepts client websockets"}]}\n'
        "```\n"
    ),
    StageKind.blueprint: CHAT_BLUEPRINT,
    StageKind.readme: "# Chat\n\nA chat app with a websocket gateway and a message store.\n",
}


class ScriptedGenerationClient:
    """Generation client returning canned payloads per stage.

    Attributes:
        payloads: Payload returned for each stage.
        failures: Exceptions raised, in order, before a stage succeeds.
        calls: Stages requested, in call order.
        requests: Every request received.
    """

    def __init__(
        self,
        payloads: dict[StageKind, Any] | None = None,
        failures: dict[StageKind, list[BaseException]] | None = None,
    ) -> None:
        self.payloads = dict(payloads if payloads is not None else CHAT_PAYLOADS)
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.calls: list[StageKind] = []
        self.requests: list[GenerationRequest] = []
        self.gates: dict[StageKind, tuple[asyncio.Event, asyncio.Event]] = {}

    def calls_for(self, stage: StageKind) -> int:
        return self.calls.count(stage)

    def block(self, stage: StageKind) -> tuple[asyncio.Event, asyncio.Event]:
        """Hold the next request for ``stage`` until the release event is set.

        Returns:
            ``(entered, release)``: ``entered`` is set once the request is
            waiting.
        """
        entered, release = asyncio.Event(), asyncio.Event()
        self.gates[stage] = (entered, release)
        return entered, release

    async def generate(self, request: GenerationRequest) -> Any:
        self.calls.append(request.stage)
        self.requests.append(request)

        gate = self.gates.pop(request.stage, None)
        if gate is not None:
            entered, release = gate
            entered.set()
            await release.wait()

        pending = self.failures.get(request.stage)
        if pending:
            raise pending.pop(0)
        return copy.deepcopy(self.payloads[request.stage])


class RecordingNotifier:
    """Notifier that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[RunEvent] = []

    async def notify(self, event: RunEvent) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [e.event for e in self.events]


@pytest.fixture
def chat_payloads() -> dict[StageKind, Any]:
    return copy.deepcopy(CHAT_PAYLOADS)


@pytest.fixture
def chat_description() -> str:
    return CHAT_DESCRIPTION


@pytest.fixture
def make_client() -> Callable[..., ScriptedGenerationClient]:
    """Factory for scripted generation clients."""
    return ScriptedGenerationClient


@pytest.fixture
def client() -> ScriptedGenerationClient:
    return ScriptedGenerationClient()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def log_capture() -> LogCapture:
    return LogCapture()


@pytest.fixture
def capturing_logger(log_capture: LogCapture) -> structlog.stdlib.BoundLogger:
    """A stdlib-style bound logger whose events land in ``log_capture``.

    Assign it to a component's logger attribute to inspect what the
    component logs, independent of global logging configuration.
    """
    return structlog.wrap_logger(
        structlog.ReturnLogger(),
        processors=[log_capture],
        wrapper_class=structlog.stdlib.BoundLogger,
    )
