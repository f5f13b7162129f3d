"""Populate spec builder and path resolver.

Provides a fluent builder for populate specs and the resolver that
compiles caller input into validated ResolvedSpec plans.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from doc_populate.core.exceptions import (
    AmbiguousTargetError,
    IdentifierTypeMismatchError,
    InvalidSpecError,
    MaxDepthExceededError,
    UnknownReferenceError,
)
from doc_populate.core.paths import normalize_path, split_shorthand
from doc_populate.mapping.plan import Projection, ResolvedSpec
from doc_populate.mapping.spec import PopulateOptions, PopulateSpec

if TYPE_CHECKING:
    from doc_populate.core.registry import ReferenceRegistry

logger = logging.getLogger(__name__)


def populate_path(path: str) -> PopulateSpecBuilder:
    """Entry point for the populate spec DSL.

    Args:
        path: Reference path to populate.

    Returns:
        A builder for chaining populate options.
    """
    return PopulateSpecBuilder(path)


class PopulateSpecBuilder:
    """Fluent builder for PopulateSpec."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._match: dict[str, Any] | None = None
        self._select: str | list[str] | dict[str, int] | None = None
        self._limit: int | None = None
        self._sort: dict[str, int] | None = None
        self._lean: bool | None = None
        self._model: str | None = None
        self._children: list[Any] = []

    def match(self, conditions: dict[str, Any]) -> PopulateSpecBuilder:
        """Only populate referenced documents matching *conditions*."""
        self._match = conditions
        return self

    def select(self, fields: str | list[str] | dict[str, int]) -> PopulateSpecBuilder:
        """Project the referenced documents."""
        self._select = fields
        return self

    def limit(self, count: int) -> PopulateSpecBuilder:
        """Cap the number of documents populated per source document; 0 means no cap."""
        self._limit = count
        return self

    def sort(self, **fields: int) -> PopulateSpecBuilder:
        """Order referenced documents, e.g. ``sort(age=-1)``."""
        self._sort = dict(fields)
        return self

    def lean(self, enabled: bool = True) -> PopulateSpecBuilder:
        """Return plain records instead of documents."""
        self._lean = enabled
        return self

    def model(self, target_type: str) -> PopulateSpecBuilder:
        """Name the target type explicitly."""
        self._model = target_type
        return self

    def populate(self, *children: Any) -> PopulateSpecBuilder:
        """Add nested specs applied to the populated documents."""
        self._children.extend(children)
        return self

    def build(self) -> PopulateSpec:
        """Compile the builder into a PopulateSpec."""
        nested = [c.build() if isinstance(c, PopulateSpecBuilder) else c for c in self._children]
        try:
            return PopulateSpec(
                path=self._path,
                match=self._match,
                select=self._select,
                options=PopulateOptions(limit=self._limit, sort=self._sort, lean=self._lean),
                populate=nested or None,
                model=self._model,
            )
        except ValidationError as e:
            raise InvalidSpecError(str(e)) from e


def parse_specs(specs: Any) -> list[PopulateSpec]:
    """Normalize caller input into a flat list of PopulateSpec.

    Accepts a path, a whitespace-delimited string of paths, a mapping, a
    PopulateSpec, a builder, or a list/tuple of any of these.
    """
    if specs is None:
        return []
    if isinstance(specs, str):
        return [PopulateSpec(path=p) for p in split_shorthand(specs)]
    if isinstance(specs, PopulateSpecBuilder):
        specs = specs.build()
    if isinstance(specs, dict):
        try:
            specs = PopulateSpec.model_validate(specs)
        except ValidationError as e:
            raise InvalidSpecError(str(e)) from e
    if isinstance(specs, PopulateSpec):
        paths = split_shorthand(specs.path)
        if len(paths) <= 1:
            return [specs]
        return [specs.model_copy(update={"path": p}) for p in paths]
    if isinstance(specs, (list, tuple)):
        result: list[PopulateSpec] = []
        for item in specs:
            result.extend(parse_specs(item))
        return result
    raise InvalidSpecError(f"unsupported spec type {type(specs).__name__}")


def parse_projection(
    select: str | list[str] | dict[str, int] | None,
    id_field: str = "_id",
) -> Projection | None:
    """Normalize a select spec into a Projection.

    Inclusion and exclusion cannot be mixed, except for excluding the
    identifier field, which is always fetched regardless.
    """
    if select is None:
        return None
    if isinstance(select, str):
        tokens = split_shorthand(select)
    elif isinstance(select, dict):
        tokens = [name if flag else f"-{name}" for name, flag in select.items()]
    else:
        tokens = list(select)

    include = [t.lstrip("+") for t in tokens if not t.startswith("-")]
    exclude = [t[1:] for t in tokens if t.startswith("-")]

    if include and exclude:
        if set(exclude) != {id_field}:
            raise InvalidSpecError(
                f"select mixes inclusion {include} and exclusion {exclude}"
            )
        exclude = []
    if include:
        return Projection(fields=tuple(include))
    if exclude:
        return Projection(fields=tuple(exclude), exclude=True)
    return None


def _parse_sort(sort: dict[str, int] | None) -> tuple[tuple[str, int], ...] | None:
    if not sort:
        return None
    for name, direction in sort.items():
        if direction not in (1, -1):
            raise InvalidSpecError(f"sort direction for '{name}' must be 1 or -1")
    return tuple(sort.items())


def _merge(earlier: ResolvedSpec, later: ResolvedSpec) -> ResolvedSpec:
    """Combine two specs for the same path: later options win, children unite."""
    children = _dedupe(list(earlier.children) + list(later.children))
    return dataclasses.replace(later, children=tuple(children))


def _dedupe(resolved: list[ResolvedSpec]) -> list[ResolvedSpec]:
    by_path: dict[str, ResolvedSpec] = {}
    for spec in resolved:
        if spec.path in by_path:
            by_path[spec.path] = _merge(by_path[spec.path], spec)
        else:
            by_path[spec.path] = spec
    return list(by_path.values())


class PathResolver:
    """Compiles populate input into a list of ResolvedSpec.

    All resolution errors are raised here, before any lookup runs.

    Args:
        registry: Frozen reference registry.
        max_depth: Optional bound on population levels.
        id_field: Name of the identifier field, kept by every projection.
    """

    def __init__(
        self,
        registry: ReferenceRegistry,
        *,
        max_depth: int | None = None,
        id_field: str = "_id",
    ) -> None:
        self._registry = registry
        self._max_depth = max_depth
        self._id_field = id_field

    def resolve(self, source_type: str, specs: Any) -> list[ResolvedSpec]:
        """Resolve *specs* against references declared on *source_type*.

        Raises:
            UnknownReferenceError: If a path is not a registered reference.
            AmbiguousTargetError: If no target type can be determined.
            InvalidSpecError: If a spec is malformed.
            MaxDepthExceededError: If nesting exceeds max_depth.
        """
        plan = self._resolve_many(source_type, specs, depth=1)
        logger.debug(
            "Resolved populate plan for %s: %s",
            source_type,
            [spec.path for spec in plan],
        )
        return plan

    def _resolve_many(self, source_type: str, specs: Any, depth: int) -> list[ResolvedSpec]:
        resolved = [self._resolve_one(source_type, s, depth) for s in parse_specs(specs)]
        return _dedupe(resolved)

    def _resolve_one(self, source_type: str, spec: PopulateSpec, depth: int) -> ResolvedSpec:
        path = normalize_path(spec.path)
        if not path:
            raise InvalidSpecError("empty path")

        if self._max_depth is not None and depth > self._max_depth:
            raise MaxDepthExceededError(path, self._max_depth)

        descriptor = self._registry.describe(source_type, path)
        if descriptor is None:
            chained = self._split_chain(source_type, spec, path)
            if chained is None:
                raise UnknownReferenceError(source_type, path)
            return self._resolve_one(source_type, chained, depth)

        target_type = spec.model or descriptor.target_type
        if target_type is None:
            raise AmbiguousTargetError(source_type, path)

        if spec.model is not None:
            target_id_type = self._registry.identifier_type(spec.model)
            if target_id_type is None:
                raise InvalidSpecError(f"model '{spec.model}' is not a declared type")
            if descriptor.id_type is None:
                descriptor = dataclasses.replace(descriptor, id_type=target_id_type)
            elif descriptor.id_type is not target_id_type:
                raise IdentifierTypeMismatchError(
                    source_type, path, spec.model, target_id_type, descriptor.id_type
                )

        children: list[ResolvedSpec] = []
        if spec.populate is not None:
            children = self._resolve_many(target_type, spec.populate, depth + 1)

        return ResolvedSpec(
            path=path,
            descriptor=descriptor,
            target_type=target_type,
            match=spec.match,
            select=parse_projection(spec.select, self._id_field),
            limit=spec.options.limit or None,
            sort=_parse_sort(spec.options.sort),
            lean=spec.options.lean,
            children=tuple(children),
        )

    def _split_chain(self, source_type: str, spec: PopulateSpec, path: str) -> PopulateSpec | None:
        """Rewrite ``a.b`` into ``a`` populating ``b`` when ``a`` is a reference.

        The longest registered prefix wins. Options of *spec* move to the
        innermost level.
        """
        segments = path.split(".")
        for i in range(len(segments) - 1, 0, -1):
            head = ".".join(segments[:i])
            if self._registry.has(source_type, head):
                inner = spec.model_copy(update={"path": ".".join(segments[i:])})
                return PopulateSpec(path=head, populate=inner)
        return None
