"""HTTP API for Docforge.

A FastAPI application exposing projects and pipeline runs: start, resume,
status, cancellation, and committed artifacts.
"""

from __future__ import annotations

from docforge.web.app import create_app
from docforge.web.middleware import RequestLoggingMiddleware

__all__ = [
    "create_app",
    "RequestLoggingMiddleware",
]
