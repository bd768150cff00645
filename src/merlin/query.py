"""Query value object.

Filters use the document-database shape drivers already understand::

    {"age": {"$gte": 18}, "tags": "admin", "$limit": 10}

Top-level ``$limit``, ``$skip`` and ``$sort`` are options rather than
conditions; they are moved to ``Query.opts``. Matching helpers are used
by drivers that filter in process.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from merlin.paths import get_path

_MISSING = object()

# Top-level filter keys that carry options instead of conditions
OPTION_KEYS = {"$limit": "limit", "$skip": "skip", "$sort": "sort"}


class Query:
    """A parsed filter.

    Attributes:
        query: Conditions, without option keys
        opts: Options extracted from the filter (limit, skip, sort)
    """

    def __init__(self, filter: dict[str, Any] | None = None):
        self.query: dict[str, Any] = {}
        self.opts: dict[str, Any] = {}
        for key, value in (filter or {}).items():
            if key in OPTION_KEYS:
                self.opts[OPTION_KEYS[key]] = value
            else:
                self.query[key] = value

    def __repr__(self) -> str:
        return f"Query(query={self.query!r}, opts={self.opts!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Query):
            return NotImplemented
        return self.query == other.query and self.opts == other.opts

    @property
    def limit(self) -> int | None:
        return self.opts.get("limit")

    def matches(self, record: dict[str, Any]) -> bool:
        """True if ``record`` satisfies every condition."""
        return _match_filter(self.query, record)

    def apply(self, records: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        """Filter, sort, skip and limit ``records`` in process."""
        result = [record for record in records if self.matches(record)]
        for path, direction in reversed(_sort_spec(self.opts.get("sort"))):
            result.sort(key=lambda r: _sort_key(get_path(r, path)), reverse=direction < 0)
        skip = self.opts.get("skip") or 0
        if skip:
            result = result[skip:]
        limit = self.opts.get("limit")
        if limit:
            result = result[:limit]
        return result


def _match_filter(filter: dict[str, Any], record: dict[str, Any]) -> bool:
    for key, condition in filter.items():
        if key == "$and":
            if not all(_match_filter(sub, record) for sub in condition):
                return False
        elif key == "$or":
            if not any(_match_filter(sub, record) for sub in condition):
                return False
        elif key == "$nor":
            if any(_match_filter(sub, record) for sub in condition):
                return False
        elif not _match_field(get_path(record, key, _MISSING), condition):
            return False
    return True


def is_operator_dict(condition: Any) -> bool:
    return (
        isinstance(condition, dict)
        and bool(condition)
        and all(isinstance(k, str) and k.startswith("$") for k in condition)
    )


def _match_field(value: Any, condition: Any) -> bool:
    if is_operator_dict(condition):
        return all(_match_operator(value, op, arg) for op, arg in condition.items())
    return _equals(value, condition)


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        # A scalar matches any element of a stored array
        return expected in value
    return value == expected


def _match_operator(value: Any, op: str, arg: Any) -> bool:
    if op == "$eq":
        return _equals(value, arg)
    if op == "$ne":
        return not _equals(value, arg)
    if op == "$in":
        return any(_equals(value, candidate) for candidate in arg)
    if op == "$nin":
        return not any(_equals(value, candidate) for candidate in arg)
    if op == "$exists":
        return (value is not _MISSING) == bool(arg)
    if op in ("$gt", "$gte", "$lt", "$lte"):
        if value is _MISSING or value is None:
            return False
        try:
            if op == "$gt":
                return value > arg
            if op == "$gte":
                return value >= arg
            if op == "$lt":
                return value < arg
            return value <= arg
        except TypeError:
            return False
    if op == "$all":
        return isinstance(value, list) and all(item in value for item in arg)
    if op == "$size":
        return isinstance(value, list) and len(value) == arg
    if op == "$not":
        return not _match_field(value, arg)
    raise ValueError(f"Unsupported query operator: {op}")


def _sort_spec(sort: Any) -> list[tuple[str, int]]:
    if not sort:
        return []
    if isinstance(sort, dict):
        return [(path, int(direction)) for path, direction in sort.items()]
    if isinstance(sort, str):
        return [(sort.lstrip("-"), -1 if sort.startswith("-") else 1)]
    return [(path, int(direction)) for path, direction in sort]


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts first; mixed types are grouped by type name
    if value is None or value is _MISSING:
        return (0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))
