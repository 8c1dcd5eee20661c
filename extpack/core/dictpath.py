# extpack/core/dictpath.py
from __future__ import annotations
from typing import Any
from collections.abc import Mapping

__all__ = ["getByPath"]

_MISSING = object()



def _splitPath(path: str) -> list[str]:
    if not isinstance(path, str) or not path:
        raise ValueError("Path must be a non-empty string")
    parts = path.split(".")
    if any(part == "" for part in parts):
        raise ValueError(f"Path '{path}' contains empty segment(s)")
    return parts



def _walk(data: Any, path: str) -> Any:
    node = data
    for part in _splitPath(path):
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node



def getByPath(data: Any, path: str, default: Any = None) -> Any:
    """
    Returns the value at dotted `path` inside nested mappings, or `default`
    when any segment is missing or crosses a non-mapping value.
    """
    value = _walk(data, path)
    return default if value is _MISSING else value
