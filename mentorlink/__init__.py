"""Core utilities for the MentorLink mentor matching portal."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_data_dir


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the portal application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "Database",
    "resolve_data_dir",
    "create_app",
]
