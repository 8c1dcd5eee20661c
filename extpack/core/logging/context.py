# extpack/core/logging/context.py
from __future__ import annotations
import contextvars
from collections.abc import Iterator
from contextlib import contextmanager

# Build-scoped log context (buildId, stage, locale).
_logContextVar: contextvars.ContextVar[dict[str, object] | None] = contextvars.ContextVar("extpack.logctx", default=None)

def setLogContext(**kvs):
    """Set or update per-log context values (buildId, stage, locale, etc.)."""
    current = dict(_logContextVar.get() or {}) # use copy
    for key, value in kvs.items():
        if value is not None:
            current[key] = value
    _logContextVar.set(current)

def getLogContext():
    """Return current context dict or None."""
    return _logContextVar.get()

@contextmanager
def logContext(**kvs) -> Iterator[None]:
    """Scoped variant of setLogContext; restores the previous context on exit."""
    token = _logContextVar.set({**(_logContextVar.get() or {}), **{key: value for key, value in kvs.items() if value is not None}})
    try:
        yield
    finally:
        _logContextVar.reset(token)
