"""Pure domain services."""

from .conflict_resolver import ConflictPolicy, Resolution, resolve
from .slug_service import SlugService

__all__ = ["ConflictPolicy", "Resolution", "SlugService", "resolve"]
