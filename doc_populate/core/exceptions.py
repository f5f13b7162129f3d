"""DocPopulate exception hierarchy.

All exceptions are DocPopulate-specific. Store exceptions reach callers
wrapped in LookupFailure or PersistenceError, with the original kept as
``__cause__``.
"""

from __future__ import annotations

from typing import Any


class PopulateError(Exception):
    """Base exception for all DocPopulate errors."""


# --- Registry ---


class RegistryError(PopulateError):
    """Base for reference registry errors."""


class ReferenceConfigError(RegistryError):
    """Raised when reference declarations are inconsistent."""


class IdentifierTypeMismatchError(ReferenceConfigError):
    """Raised when a reference's id type differs from its target's id type."""

    def __init__(
        self,
        source_type: str,
        path: str,
        target_type: str,
        expected: type,
        actual: type,
    ) -> None:
        self.source_type = source_type
        self.path = path
        self.target_type = target_type
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Reference '{source_type}.{path}' declares id type {actual.__name__} "
            f"but '{target_type}' is identified by {expected.__name__}"
        )


class DuplicateReferenceError(RegistryError):
    """Raised when the same (type, path) pair is registered twice."""

    def __init__(self, source_type: str, path: str) -> None:
        self.source_type = source_type
        self.path = path
        super().__init__(f"Duplicate reference '{source_type}.{path}'")


class RegistryFrozenError(RegistryError):
    """Raised on writes to a registry after freeze()."""


# --- Resolution ---


class ResolutionError(PopulateError):
    """Base for errors raised while building a population plan."""


class UnknownReferenceError(ResolutionError):
    """Raised when a path has no registered reference descriptor."""

    def __init__(self, source_type: str, path: str) -> None:
        self.source_type = source_type
        self.path = path
        super().__init__(f"No reference registered for '{source_type}.{path}'")


class AmbiguousTargetError(ResolutionError):
    """Raised when neither the descriptor nor the spec names a target type."""

    def __init__(self, source_type: str, path: str) -> None:
        self.source_type = source_type
        self.path = path
        super().__init__(
            f"Reference '{source_type}.{path}' has no target type; "
            f"pass model=... in the populate spec"
        )


class InvalidSpecError(ResolutionError):
    """Raised when a populate spec cannot be parsed."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Invalid populate spec: {detail}")


class MaxDepthExceededError(ResolutionError):
    """Raised when nested populate specs go deeper than the configured bound."""

    def __init__(self, path: str, max_depth: int) -> None:
        self.path = path
        self.max_depth = max_depth
        super().__init__(f"Populate spec '{path}' nests deeper than max_depth={max_depth}")


# --- Execution ---


class ExecutionError(PopulateError):
    """Base for population execution errors."""


class LookupFailure(ExecutionError):
    """Raised when the query executor fails to fetch referenced documents."""

    def __init__(self, target_type: str, paths: list[str], detail: str) -> None:
        self.target_type = target_type
        self.paths = paths
        super().__init__(f"Lookup of '{target_type}' for {paths} failed: {detail}")


class StrictModeViolation(ExecutionError):
    """Raised in strict mode when a reference field holds an unusable value."""

    def __init__(self, path: str, value: Any, id_type: type) -> None:
        self.path = path
        self.value = value
        super().__init__(
            f"Field '{path}' holds {type(value).__name__} {value!r}; "
            f"expected {id_type.__name__} identifier or populated document"
        )


# --- Persistence ---


class PersistenceError(PopulateError):
    """Raised when a document store fails to save or remove a document."""


class DocumentNotBoundError(PersistenceError):
    """Raised on save/remove of a document with no backing store."""

    def __init__(self, collection: str) -> None:
        self.collection = collection
        super().__init__(f"Document of '{collection}' is not bound to a store")
