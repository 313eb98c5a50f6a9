"""External boundaries: generation service, notifications, repository."""

from docforge.integrations.generation import (
    GenerationClient,
    GenerationRequest,
    HttpGenerationClient,
)
from docforge.integrations.notifications import (
    CompositeNotifier,
    LogNotifier,
    Notifier,
    RunEvent,
    WebhookNotifier,
    build_notifier,
)
from docforge.integrations.repository import (
    LocalRepositoryWriter,
    RepositoryWriter,
    WriterFactory,
    local_writer_factory,
)

__all__ = [
    "CompositeNotifier",
    "GenerationClient",
    "GenerationRequest",
    "HttpGenerationClient",
    "LocalRepositoryWriter",
    "LogNotifier",
    "Notifier",
    "RepositoryWriter",
    "RunEvent",
    "WebhookNotifier",
    "WriterFactory",
    "build_notifier",
    "local_writer_factory",
]
