"""Populatable protocols.

The executor reads and writes source documents only through these
interfaces. Document implements both; plain mappings and attribute
objects are wrapped in views that implement Populatable.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Populatable(Protocol):
    """Field access capability for anything that can be populated."""

    def has_field(self, name: str) -> bool:
        """Whether the field is present."""
        ...

    def get_field(self, name: str) -> Any:
        """Return the field value."""
        ...

    def set_field(self, name: str, value: Any) -> None:
        """Replace the field value in place."""
        ...


@runtime_checkable
class TracksPopulation(Protocol):
    """Documents that remember the raw ids of populated paths."""

    def mark_populated(self, path: str, raw: Any) -> None:
        """Record *raw* as the pre-population value of *path*."""
        ...
