"""DocPopulate - reference population engine for document stores."""

from __future__ import annotations

from doc_populate.core.config import PopulateConfig
from doc_populate.core.engine import AsyncPopulator, Populator
from doc_populate.core.enums import Cardinality
from doc_populate.core.exceptions import (
    AmbiguousTargetError,
    DocumentNotBoundError,
    DuplicateReferenceError,
    ExecutionError,
    IdentifierTypeMismatchError,
    InvalidSpecError,
    LookupFailure,
    MaxDepthExceededError,
    PersistenceError,
    PopulateError,
    ReferenceConfigError,
    RegistryError,
    RegistryFrozenError,
    ResolutionError,
    StrictModeViolation,
    UnknownReferenceError,
)
from doc_populate.core.registry import ReferenceRegistry
from doc_populate.mapping.builder import populate_path
from doc_populate.mapping.document import Document
from doc_populate.mapping.spec import PopulateOptions, PopulateSpec
from doc_populate.store.memory import MemoryStore
from doc_populate.store.sqlite import AsyncSqliteStore, SqliteStore

__all__ = [
    # Config
    "PopulateConfig",
    # Engine
    "Populator",
    "AsyncPopulator",
    # Registry
    "ReferenceRegistry",
    "Cardinality",
    # Specs
    "PopulateSpec",
    "PopulateOptions",
    "populate_path",
    # Documents
    "Document",
    # Stores
    "MemoryStore",
    "SqliteStore",
    "AsyncSqliteStore",
    # Exceptions
    "PopulateError",
    "RegistryError",
    "ReferenceConfigError",
    "IdentifierTypeMismatchError",
    "DuplicateReferenceError",
    "RegistryFrozenError",
    "ResolutionError",
    "UnknownReferenceError",
    "AmbiguousTargetError",
    "InvalidSpecError",
    "MaxDepthExceededError",
    "ExecutionError",
    "LookupFailure",
    "StrictModeViolation",
    "PersistenceError",
    "DocumentNotBoundError",
]
