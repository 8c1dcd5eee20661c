# extpack/core/jsonutils.py
from __future__ import annotations

import json
import math
from collections.abc import Mapping, Iterable
from dataclasses import is_dataclass, asdict
from enum import Enum
from pathlib import PurePath
from typing import Any

from pydantic import BaseModel

__all__ = ["safeJsonDumps", "serializeError", "tryJSONify"]



def safeJsonDumps(obj: object, *, sortKeys: bool = False) -> str:
    """
    Serializes an object or pydantic model to a compact JSON string.
    Uses deterministic separators (",", ":") and disallows NaN/infinity.
    UTF-8 characters are kept as-is.
    If direct JSON encoding fails, falls back to tryJSONify and retries.
    """
    payload: Any
    if isinstance(obj, BaseModel):
        payload = obj.model_dump(mode="json")
    else:
        payload = obj
    
    try:
        return json.dumps(payload, ensure_ascii=False, allow_nan=False, separators=(",", ":"), sort_keys=sortKeys)
    except (TypeError, ValueError):
        safePayload = tryJSONify(payload, _maxDepth=None)
        return json.dumps(safePayload, ensure_ascii=False, allow_nan=False, separators=(",", ":"), sort_keys=sortKeys)



def serializeError(err: Any) -> dict[str, Any]:
    """
    Converts Exception or arbitrary object into a JSON-serializable dict.
    
    Examples:
        ValueError("bad") -> {"type": "ValueError", "message": "bad"}
        "error text"      -> {"message": "error text"}
        None              -> {}
    """
    if err is None:
        return {}
    
    if isinstance(err, str):
        return {"message": err}
    
    if isinstance(err, BaseException):
        return {
            "type": err.__class__.__name__,
            "message": str(err),
        }
    
    return {"type": type(err).__name__, "repr": repr(err)}



def tryJSONify(obj: Any, *, _seen: set[int] | None = None, _depth: int = 0, _maxDepth: int | None = 10) -> Any:
    """
    Best-effort conversion of `obj` into plain JSON values, used when
    safeJsonDumps hits something json cannot encode (paths, enums, sets,
    exceptions, models inside log context).

    NaN and infinities become null, circular references and values nested
    deeper than `_maxDepth` become marker strings, anything unknown its repr().
    """
    seen = set() if _seen is None else _seen

    if obj is None or isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else None
    if isinstance(obj, PurePath):
        return obj.as_posix()
    if id(obj) in seen:
        return f"<circular_ref {type(obj).__name__}>"
    if _maxDepth is not None and _depth > _maxDepth:
        return f"<max_depth_exceeded {type(obj).__name__}>"

    seen.add(id(obj))
    nested = lambda value: tryJSONify(value, _seen=seen, _depth=_depth + 1, _maxDepth=_maxDepth)

    if isinstance(obj, BaseException):
        return serializeError(obj)
    if isinstance(obj, Enum):
        return nested(obj.value)
    if isinstance(obj, BaseModel):
        return nested(obj.model_dump())
    if is_dataclass(obj) and not isinstance(obj, type):
        return nested(asdict(obj))
    if isinstance(obj, Mapping):
        return {str(key): nested(value) for key, value in obj.items()}
    if isinstance(obj, (set, frozenset)):
        return [nested(value) for value in sorted(obj, key=repr)]
    if isinstance(obj, Iterable) and not isinstance(obj, (bytes, bytearray)):
        return [nested(value) for value in obj]
    return repr(obj)
