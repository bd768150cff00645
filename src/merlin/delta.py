"""Delta value object: a patch between two record states.

Diffs use update operators keyed by dotted path::

    {"$set": {"name": "Ada", "profile.age": 37}, "$unset": {"nickname": True}}

Nested dicts are compared key by key; any other changed value (lists
included) is replaced whole. Unchanged fields never appear.
"""

from __future__ import annotations

import copy
from typing import Any

from merlin.paths import delete_path, get_path, set_path

SUPPORTED_OPERATORS = ("$set", "$unset", "$inc", "$push", "$pull")


class Delta:
    """A patch understood by drivers.

    A plain mapping without operators is treated as ``$set``.
    """

    def __init__(self, patch: dict[str, Any] | None = None):
        patch = patch or {}
        if patch and not any(key.startswith("$") for key in patch):
            patch = {"$set": patch}
        for key in patch:
            if key not in SUPPORTED_OPERATORS:
                raise ValueError(f"Unsupported update operator: {key}")
        self.diff: dict[str, dict[str, Any]] = patch

    @classmethod
    def between(cls, original: dict[str, Any], current: dict[str, Any]) -> Delta:
        """Minimal delta turning ``original`` into ``current``."""
        sets: dict[str, Any] = {}
        unsets: dict[str, Any] = {}
        _diff(original, current, "", sets, unsets)
        diff: dict[str, Any] = {}
        if sets:
            diff["$set"] = sets
        if unsets:
            diff["$unset"] = unsets
        return cls(diff)

    def __bool__(self) -> bool:
        return any(self.diff.values())

    def __repr__(self) -> str:
        return f"Delta({self.diff!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Delta):
            return NotImplemented
        return self.diff == other.diff

    @property
    def is_empty(self) -> bool:
        return not self

    def patch(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Apply the delta to a deep copy of ``obj`` and return it."""
        result = copy.deepcopy(obj)
        for path, value in self.diff.get("$set", {}).items():
            set_path(result, path, copy.deepcopy(value))
        for path in self.diff.get("$unset", {}):
            delete_path(result, path)
        for path, amount in self.diff.get("$inc", {}).items():
            set_path(result, path, get_path(result, path, 0) + amount)
        for path, value in self.diff.get("$push", {}).items():
            items = list(get_path(result, path, []))
            items.append(copy.deepcopy(value))
            set_path(result, path, items)
        for path, value in self.diff.get("$pull", {}).items():
            set_path(result, path, [item for item in get_path(result, path, []) if item != value])
        return result


def _diff(
    original: dict[str, Any],
    current: dict[str, Any],
    prefix: str,
    sets: dict[str, Any],
    unsets: dict[str, Any],
) -> None:
    for key, value in current.items():
        path = f"{prefix}{key}"
        if key not in original:
            sets[path] = copy.deepcopy(value)
            continue
        old = original[key]
        if isinstance(old, dict) and isinstance(value, dict) and old and value:
            _diff(old, value, f"{path}.", sets, unsets)
        elif old != value or type(old) is not type(value):
            sets[path] = copy.deepcopy(value)
    for key in original:
        if key not in current:
            unsets[f"{prefix}{key}"] = True
