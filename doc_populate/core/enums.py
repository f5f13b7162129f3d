"""Reference cardinality enumeration."""

from __future__ import annotations

from enum import Enum


class Cardinality(Enum):
    """How many targets a reference field points to."""

    SINGLE = "single"
    MANY = "many"
