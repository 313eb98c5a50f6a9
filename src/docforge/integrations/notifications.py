"""Run event notifications.

One ``RunEvent`` is emitted per run state transition. Delivery is
at-least-once: a resumed run may re-emit the event of a stage that was
started but never committed. Notifier failures are logged and never
affect the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, Sequence
from uuid import UUID

import httpx

from docforge.config import NotificationConfig
from docforge.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RunEvent:
    """Notification payload for one run transition."""

    run_id: UUID
    project_id: UUID
    event: str
    status: str
    progress: int
    occurred_at: datetime
    stage: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for JSON serialization."""
        return {
            "run_id": str(self.run_id),
            "project_id": str(self.project_id),
            "event": self.event,
            "stage": self.stage,
            "status": self.status,
            "progress": self.progress,
            "reason": self.reason,
            "occurred_at": self.occurred_at.isoformat(),
        }


class Notifier(Protocol):
    """Receives run events."""

    async def notify(self, event: RunEvent) -> None: ...


class LogNotifier:
    """Emits every run event as a structured log line."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)

    async def notify(self, event: RunEvent) -> None:
        fields = event.to_dict()
        # "event" is the positional log message in structlog
        fields["run_event"] = fields.pop("event")
        self.logger.info("run_event", **fields)


class WebhookNotifier:
    """Posts run events to a webhook endpoint."""

    def __init__(self, config: NotificationConfig) -> None:
        self.config = config
        self.logger = get_logger(__name__)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, event: RunEvent) -> bool:
        """Send one event to the webhook.

        Returns True if successful, False otherwise.
        """
        if not self.config.enabled or not self.config.webhook_url:
            self.logger.debug("webhook_disabled", run_event=event.event)
            return True

        try:
            client = await self._get_client()
            headers = {"Content-Type": "application/json"}
            if self.config.auth_header:
                headers["Authorization"] = self.config.auth_header

            response = await client.post(
                self.config.webhook_url,
                json=event.to_dict(),
                headers=headers,
            )

            if response.is_success:
                self.logger.info(
                    "webhook_sent",
                    run_event=event.event,
                    run_id=str(event.run_id),
                    status_code=response.status_code,
                )
                return True
            else:
                self.logger.warning(
                    "webhook_failed",
                    run_event=event.event,
                    run_id=str(event.run_id),
                    status_code=response.status_code,
                    response_text=response.text[:200],
                )
                return False

        except httpx.RequestError as e:
            self.logger.error(
                "webhook_error",
                run_event=event.event,
                run_id=str(event.run_id),
                error=str(e),
            )
            return False

    async def notify(self, event: RunEvent) -> None:
        await self.send(event)


class CompositeNotifier:
    """Fans an event out to several notifiers in order."""

    def __init__(self, notifiers: Sequence[Notifier]) -> None:
        self.notifiers = list(notifiers)
        self.logger = get_logger(__name__)

    async def notify(self, event: RunEvent) -> None:
        for notifier in self.notifiers:
            try:
                await notifier.notify(event)
            except Exception as e:
                self.logger.error(
                    "notifier_failed",
                    notifier=type(notifier).__name__,
                    run_event=event.event,
                    error=str(e),
                )

    async def close(self) -> None:
        """Close every child notifier that holds resources."""
        for notifier in self.notifiers:
            close = getattr(notifier, "close", None)
            if close is not None:
                await close()


def build_notifier(config: NotificationConfig) -> CompositeNotifier:
    """Create the notifier chain described by configuration."""
    notifiers: list[Notifier] = [LogNotifier()]
    if config.enabled and config.webhook_url:
        notifiers.append(WebhookNotifier(config))
    return CompositeNotifier(notifiers)
