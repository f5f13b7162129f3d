"""Repository layer - collection-oriented access with population."""

from __future__ import annotations

from doc_populate.repository.base import AsyncRepository, Repository

__all__ = [
    "Repository",
    "AsyncRepository",
]
