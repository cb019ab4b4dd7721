"""FastAPI web interface for Buildplan."""

from __future__ import annotations

from buildplan.web.app import create_app

__all__ = ["create_app"]
