"""Mapping layer - plans, documents and the population executor."""

from __future__ import annotations

from doc_populate.mapping.builder import (
    PathResolver,
    PopulateSpecBuilder,
    parse_projection,
    parse_specs,
    populate_path,
)
from doc_populate.mapping.document import AttributeView, Document, RecordView, as_populatable
from doc_populate.mapping.executor import LookupRequest, PopulationBatch, PopulationExecutor
from doc_populate.mapping.materializer import DocumentMaterializer
from doc_populate.mapping.plan import Projection, ReferenceDescriptor, ResolvedSpec
from doc_populate.mapping.protocol import Populatable, TracksPopulation
from doc_populate.mapping.spec import PopulateOptions, PopulateSpec

__all__ = [
    "PathResolver",
    "PopulateSpecBuilder",
    "parse_projection",
    "parse_specs",
    "populate_path",
    "Document",
    "RecordView",
    "AttributeView",
    "as_populatable",
    "PopulationExecutor",
    "PopulationBatch",
    "LookupRequest",
    "DocumentMaterializer",
    "ReferenceDescriptor",
    "Projection",
    "ResolvedSpec",
    "Populatable",
    "TracksPopulation",
    "PopulateSpec",
    "PopulateOptions",
]
