"""Identifier and path normalisation shared by the analysis stages."""

from __future__ import annotations

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Normalise one path segment.

    Lowercases, replaces every run of non-alphanumeric characters with a
    single ``-``, and strips leading/trailing dashes.

    Example:
        >>> slugify("Message  Store!")
        'message-store'
    """
    return _NON_ALNUM.sub("-", value.strip().lower()).strip("-")


def path_segments(identifier: str) -> list[str]:
    """Split an identifier on ``/`` into non-empty slug segments."""
    segments = (slugify(part) for part in identifier.replace("\\", "/").split("/"))
    return [s for s in segments if s]


def normalise_identifier(identifier: str) -> str:
    """Return the canonical component identifier for a raw name.

    Nesting expressed with ``/`` is preserved; every segment is slugified.
    Returns an empty string when nothing usable remains.

    Example:
        >>> normalise_identifier("Backend/Auth Service")
        'backend/auth-service'
    """
    return "/".join(path_segments(identifier))
