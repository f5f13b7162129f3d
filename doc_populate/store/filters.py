"""Record filtering and ordering for the reference stores.

Implements the subset of document-database filter syntax the bundled
stores understand:

    {"age": 30}                       equality
    {"age": {"$gte": 21, "$lt": 65}}  comparison operators
    {"tags": {"$in": ["a", "b"]}}     membership; list fields match any element
    {"$or": [{...}, {...}]}           logical operators ($and, $or, $nor)
"""

from __future__ import annotations

import operator
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from doc_populate.mapping.plan import Projection

_MISSING = object()

_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
}


def get_value(record: dict[str, Any], path: str) -> Any:
    """Read a dotted path from *record*; returns _MISSING when absent."""
    value: Any = record
    for segment in path.split("."):
        if isinstance(value, dict) and segment in value:
            value = value[segment]
        elif isinstance(value, list) and segment.isdigit() and int(segment) < len(value):
            value = value[int(segment)]
        else:
            return _MISSING
    return value


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return bool(value == expected)


def _compare(value: Any, op: Callable[[Any, Any], bool], expected: Any) -> bool:
    candidates = value if isinstance(value, list) else [value]
    for candidate in candidates:
        if candidate is _MISSING or candidate is None:
            continue
        try:
            if op(candidate, expected):
                return True
        except TypeError:
            continue
    return False


def _match_operator(value: Any, name: str, argument: Any) -> bool:
    if name == "$eq":
        return _equals(value, argument)
    if name == "$ne":
        return not _equals(value, argument)
    if name in _COMPARISONS:
        return _compare(value, _COMPARISONS[name], argument)
    if name == "$in":
        return any(_equals(value, item) for item in argument)
    if name == "$nin":
        return not any(_equals(value, item) for item in argument)
    if name == "$exists":
        return (value is not _MISSING) == bool(argument)
    if name == "$not":
        return not _match_field(value, argument)
    raise ValueError(f"Unsupported filter operator: {name}")


def _match_field(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        return all(_match_operator(value, k, v) for k, v in condition.items())
    return _equals(value, condition)


def matches(record: dict[str, Any], conditions: dict[str, Any] | None) -> bool:
    """Return True if *record* satisfies *conditions*.

    Raises:
        ValueError: On an unsupported operator.
    """
    if not conditions:
        return True
    for key, condition in conditions.items():
        if key == "$and":
            if not all(matches(record, c) for c in condition):
                return False
        elif key == "$or":
            if not any(matches(record, c) for c in condition):
                return False
        elif key == "$nor":
            if any(matches(record, c) for c in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported top-level operator: {key}")
        elif not _match_field(get_value(record, key), condition):
            return False
    return True


def sort_records(
    records: list[dict[str, Any]],
    sort: tuple[tuple[str, int], ...] | None,
) -> list[dict[str, Any]]:
    """Stable multi-key sort; missing values sort lowest."""
    if not sort:
        return records
    result = list(records)
    for name, direction in reversed(sort):

        def key(record: dict[str, Any], name: str = name) -> tuple[int, Any]:
            value = get_value(record, name)
            if value is _MISSING or value is None:
                return (0, 0)
            return (1, value)

        result.sort(key=key, reverse=direction < 0)
    return result


def run_lookup(
    candidates: list[dict[str, Any]],
    *,
    match: dict[str, Any] | None,
    select: Projection | None,
    limit: int | None,
    sort: tuple[tuple[str, int], ...] | None,
    id_field: str,
) -> list[dict[str, Any]]:
    """Filter, order, cap and project *candidates*, in that order.

    A *limit* of 0 or None leaves the result uncapped.
    """
    rows = [r for r in candidates if matches(r, match)]
    rows = sort_records(rows, sort)
    if limit:
        rows = rows[:limit]
    if select is not None:
        rows = [select.apply(r, id_field) for r in rows]
    return rows
