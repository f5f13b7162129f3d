"""Population engine.

The Populator resolves populate specs against the ReferenceRegistry,
looks referenced documents up through the query executor, substitutes
them into the source documents and repeats for nested specs, one level
at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from doc_populate.core.config import PopulateConfig
from doc_populate.core.exceptions import InvalidSpecError, LookupFailure
from doc_populate.core.paths import freeze
from doc_populate.core.registry import ReferenceRegistry
from doc_populate.mapping.builder import PathResolver
from doc_populate.mapping.executor import LookupRequest, PopulationBatch, PopulationExecutor
from doc_populate.mapping.materializer import DocumentMaterializer
from doc_populate.mapping.plan import ResolvedSpec
from doc_populate.store.protocol import AsyncDocumentStore, DocumentStore

logger = logging.getLogger(__name__)

# One level of work: source documents and the specs to run on them
_Level = list[tuple[list[Any], list[ResolvedSpec]]]


def _infer_source_type(documents: list[Any]) -> str:
    """Take the source type from the first materialized document."""
    for document in documents:
        collection = getattr(document, "collection", None)
        if isinstance(collection, str):
            return collection
    raise InvalidSpecError("source_type is required when populating plain records")


def _merge_requests(
    batches: list[PopulationBatch],
) -> tuple[list[LookupRequest], list[list[str]], list[list[int]]]:
    """Collapse identical unscoped lookups across the batches of one level.

    Returns:
        The lookups to issue, the spec paths served by each lookup, and for
        every batch the lookup index of each of its requests.
    """
    lookups: list[LookupRequest] = []
    paths: list[list[str]] = []
    routes: list[list[int]] = []
    by_key: dict[Any, int] = {}

    for batch in batches:
        route = []
        for request in batch.requests:
            if request.scoped:
                index = None
            else:
                key = (request.target_type, freeze(request.match), request.select, request.sort)
                index = by_key.get(key)

            if index is None:
                index = len(lookups)
                lookups.append(request)
                paths.append([batch.spec.path])
                if not request.scoped:
                    by_key[key] = index
            else:
                merged_ids = tuple(dict.fromkeys(lookups[index].ids + request.ids))
                lookups[index] = LookupRequest(
                    target_type=request.target_type,
                    ids=merged_ids,
                    match=request.match,
                    select=request.select,
                    sort=request.sort,
                )
                if batch.spec.path not in paths[index]:
                    paths[index].append(batch.spec.path)
            route.append(index)
        routes.append(route)

    return lookups, paths, routes


class _BasePopulator:
    """Plan handling shared by Populator and AsyncPopulator."""

    def __init__(
        self,
        registry: ReferenceRegistry,
        executor: Any,
        store: Any,
        config: PopulateConfig | None,
    ) -> None:
        self._config = config or PopulateConfig()
        self._registry = registry.freeze()
        self._executor = executor
        self._materializer = DocumentMaterializer(
            self._registry, store=store, id_field=self._config.id_field
        )
        self._population = PopulationExecutor(
            self._materializer,
            id_field=self._config.id_field,
            lean=self._config.lean,
            strict=self._config.strict,
        )
        self._resolver = PathResolver(
            self._registry,
            max_depth=self._config.max_depth,
            id_field=self._config.id_field,
        )

    @property
    def registry(self) -> ReferenceRegistry:
        return self._registry

    @property
    def config(self) -> PopulateConfig:
        return self._config

    @property
    def materializer(self) -> DocumentMaterializer:
        return self._materializer

    def plan(self, source_type: str, specs: Any) -> list[ResolvedSpec]:
        """Resolve *specs* without running any lookup."""
        return self._resolver.resolve(source_type, specs)

    def _start(
        self,
        documents: Any,
        specs: Any,
        source_type: str | None,
    ) -> _Level:
        """Resolve the plan and build the first level; empty when nothing to do."""
        docs = list(documents) if isinstance(documents, (list, tuple)) else [documents]
        if not docs:
            return []
        if source_type is None:
            source_type = _infer_source_type(docs)
        plan = self._resolver.resolve(source_type, specs)
        return [(docs, plan)] if plan else []

    def _prepare(self, level: _Level) -> list[PopulationBatch]:
        return [self._population.prepare(docs, spec) for docs, specs in level for spec in specs]

    def _finish(
        self,
        batches: list[PopulationBatch],
        routes: list[list[int]],
        results: list[list[dict[str, Any]]],
        lean: bool | None,
    ) -> _Level:
        """Substitute a level's results and build the next level."""
        next_level: _Level = []
        for batch, route in zip(batches, routes):
            responses = [results[index] for index in route]
            children = self._population.apply(batch, responses, lean=lean)
            if batch.spec.children and children:
                next_level.append((children, list(batch.spec.children)))
        return next_level


class Populator(_BasePopulator):
    """Synchronous population engine.

    Args:
        registry: Reference registry; frozen on construction.
        executor: QueryExecutor used for lookups. When it is also a
            DocumentStore, materialized documents are bound to it.
        config: Engine settings.
    """

    def __init__(
        self,
        registry: ReferenceRegistry,
        executor: Any,
        config: PopulateConfig | None = None,
    ) -> None:
        store = executor if isinstance(executor, DocumentStore) else None
        super().__init__(registry, executor, store, config)

    @classmethod
    def from_schema(
        cls,
        schema: dict[str, Any],
        executor: Any,
        config: PopulateConfig | None = None,
    ) -> Populator:
        """Create a Populator from a reference schema mapping.

        Args:
            schema: Schema accepted by ReferenceRegistry.from_dict
            executor: QueryExecutor instance
            config: Optional PopulateConfig

        Returns:
            Populator instance
        """
        return cls(ReferenceRegistry.from_dict(schema), executor, config)

    @property
    def executor(self) -> Any:
        return self._executor

    def populate(
        self,
        documents: Any,
        specs: Any,
        *,
        source_type: str | None = None,
        lean: bool | None = None,
    ) -> Any:
        """Populate references of one document or a list of documents in place.

        Args:
            documents: A document or a list/tuple of documents.
            specs: Path(s) or populate spec(s) to resolve.
            source_type: Document type; inferred from Document instances.
            lean: Return plain records for specs that do not set lean.

        Returns:
            *documents*, mutated in place.

        Raises:
            ResolutionError: Before any lookup, if the plan is invalid.
            LookupFailure: If a lookup fails; earlier levels stay populated.
        """
        level = self._start(documents, specs, source_type)
        depth = 0
        while level:
            depth += 1
            batches = self._prepare(level)
            lookups, paths, routes = _merge_requests(batches)
            logger.debug(
                "Population level %d: %d specs, %d lookups", depth, len(batches), len(lookups)
            )
            results = [self._fetch(request, p) for request, p in zip(lookups, paths)]
            level = self._finish(batches, routes, results, lean)
        return documents

    def _fetch(self, request: LookupRequest, paths: list[str]) -> list[dict[str, Any]]:
        try:
            return list(
                self._executor.find_by_ids(
                    request.target_type,
                    list(request.ids),
                    match=request.match,
                    select=request.select,
                    limit=request.limit,
                    sort=request.sort,
                )
            )
        except LookupFailure:
            raise
        except Exception as e:
            raise LookupFailure(request.target_type, paths, str(e)) from e


class AsyncPopulator(_BasePopulator):
    """Asynchronous population engine.

    Lookups of one level run concurrently unless ``config.concurrent`` is
    False; a level starts only after the previous one is substituted.
    """

    def __init__(
        self,
        registry: ReferenceRegistry,
        executor: Any,
        config: PopulateConfig | None = None,
    ) -> None:
        store = executor if isinstance(executor, AsyncDocumentStore) else None
        super().__init__(registry, executor, store, config)

    @classmethod
    def from_schema(
        cls,
        schema: dict[str, Any],
        executor: Any,
        config: PopulateConfig | None = None,
    ) -> AsyncPopulator:
        """Create an AsyncPopulator from a reference schema mapping."""
        return cls(ReferenceRegistry.from_dict(schema), executor, config)

    @property
    def executor(self) -> Any:
        return self._executor

    async def populate(
        self,
        documents: Any,
        specs: Any,
        *,
        source_type: str | None = None,
        lean: bool | None = None,
    ) -> Any:
        """Populate references of one document or a list of documents in place.

        Same contract as Populator.populate.
        """
        level = self._start(documents, specs, source_type)
        depth = 0
        while level:
            depth += 1
            batches = self._prepare(level)
            lookups, paths, routes = _merge_requests(batches)
            logger.debug(
                "Population level %d: %d specs, %d lookups", depth, len(batches), len(lookups)
            )
            results = await self._fetch_all(lookups, paths)
            level = self._finish(batches, routes, results, lean)
        return documents

    async def _fetch_all(
        self,
        lookups: Sequence[LookupRequest],
        paths: Sequence[list[str]],
    ) -> list[list[dict[str, Any]]]:
        if not self._config.concurrent:
            return [await self._fetch(r, p) for r, p in zip(lookups, paths)]
        tasks = [asyncio.create_task(self._fetch(r, p)) for r, p in zip(lookups, paths)]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # A failed level stops its sibling lookups too
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _fetch(self, request: LookupRequest, paths: list[str]) -> list[dict[str, Any]]:
        try:
            return list(
                await self._executor.find_by_ids_async(
                    request.target_type,
                    list(request.ids),
                    match=request.match,
                    select=request.select,
                    limit=request.limit,
                    sort=request.sort,
                )
            )
        except LookupFailure:
            raise
        except Exception as e:
            raise LookupFailure(request.target_type, paths, str(e)) from e
