"""Repository population boundary.

Writers overwrite files and never append, so replaying the full set of
writes after a partial completion converges on the same tree.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Protocol

import structlog

from docforge.errors import RepositoryWriteError

logger = structlog.get_logger(__name__)


class RepositoryWriter(Protocol):
    """Writes one file of a generated repository."""

    async def write(self, path: str, content: str) -> None: ...


WriterFactory = Callable[[str], RepositoryWriter]


class LocalRepositoryWriter:
    """Writes files beneath a local root directory.

    Attributes:
        root: Directory receiving the project's files
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._logger = logger.bind(component="LocalRepositoryWriter", root=str(root))

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        root = self.root.resolve()
        if target != root and root not in target.parents:
            raise ValueError(f"Path escapes repository root: {path}")
        return target

    def _write_sync(self, target: Path, content: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    async def write(self, path: str, content: str) -> None:
        """Overwrite ``path`` (relative to the root) with ``content``.

        Raises:
            ValueError: If the path resolves outside the root
            RepositoryWriteError: If the filesystem write fails
        """
        target = self._resolve(path)
        try:
            await asyncio.to_thread(self._write_sync, target, content)
        except OSError as e:
            self._logger.error("repository_write_failed", path=path, error=str(e))
            raise RepositoryWriteError(f"Failed to write {path}: {e}") from e
        self._logger.debug("repository_file_written", path=path, size=len(content))


def local_writer_factory(output_dir: Path) -> WriterFactory:
    """Return a factory creating one writer per project slug under output_dir."""

    def factory(project_slug: str) -> RepositoryWriter:
        return LocalRepositoryWriter(output_dir / project_slug)

    return factory
