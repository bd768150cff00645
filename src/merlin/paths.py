"""Dotted field path access on nested dicts."""

from typing import Any

_MISSING = object()


def split(path: str) -> list[str]:
    return path.split(".") if path else []


def get_path(obj: Any, path: str, default: Any = None) -> Any:
    """Read ``a.b.c`` from nested dicts, returning default when absent."""
    node = obj
    for part in split(path):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def has_path(obj: Any, path: str) -> bool:
    return get_path(obj, path, _MISSING) is not _MISSING


def set_path(obj: dict, path: str, value: Any) -> None:
    """Write ``a.b.c``, creating intermediate dicts as needed."""
    parts = split(path)
    node = obj
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def delete_path(obj: dict, path: str) -> bool:
    """Remove ``a.b.c`` if present. Returns whether anything was removed."""
    parts = split(path)
    node = obj
    for part in parts[:-1]:
        node = node.get(part) if isinstance(node, dict) else None
        if not isinstance(node, dict):
            return False
    if isinstance(node, dict) and parts and parts[-1] in node:
        del node[parts[-1]]
        return True
    return False


def copy_along(obj: dict, paths: list[str]) -> dict:
    """Shallow-copy the dicts along each path.

    The result can have those paths deleted or replaced without touching
    ``obj``; everything off the paths is shared.
    """
    result = dict(obj)
    for path in paths:
        node = result
        for part in split(path)[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                break
            child = dict(child)
            node[part] = child
            node = child
    return result
