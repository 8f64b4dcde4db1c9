"""Core package for the RTO status board service."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .store import JsonStore


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the JSON API application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "JsonStore",
    "resolve_database_path",
    "create_app",
]
