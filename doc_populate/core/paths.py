"""Field path helpers.

Paths are dot-separated field names. Array indices are not part of a
reference path: ``comments.0.author`` and ``comments.author`` name the
same reference, which applies to every element of ``comments``.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any

# Whitespace separates multiple paths in the shorthand form ("fans author")
_SHORTHAND_SPLIT = re.compile(r"\s+")

_INDEX_SEGMENT = re.compile(r"^(\d+|\$)$")


@lru_cache(maxsize=256)
def normalize_path(path: str) -> str:
    """Strip whitespace and array-index segments from *path*.

    Args:
        path: Dotted path, possibly with numeric or ``$`` segments.

    Returns:
        The canonical dotted path used as a registry key.
    """
    segments = [s for s in path.strip().split(".") if s and not _INDEX_SEGMENT.match(s)]
    return ".".join(segments)


def split_path(path: str) -> tuple[str, ...]:
    """Split a normalized path into its segments."""
    return tuple(normalize_path(path).split("."))


def split_shorthand(paths: str) -> list[str]:
    """Split a whitespace-delimited path list into individual paths."""
    return [p for p in _SHORTHAND_SPLIT.split(paths.strip()) if p]


def freeze(value: Any) -> Any:
    """Convert nested mappings and sequences into a hashable form.

    Used to build lookup keys from filter and sort specifications, so two
    equal filters written in different key order compare equal.
    """
    if isinstance(value, dict):
        return tuple(sorted((str(k), freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return tuple(sorted((freeze(v) for v in value), key=repr))
    return value
