# extpack/app/settings.py
from __future__ import annotations
import json5, os
from pathlib import Path
from typing import Any, cast
from functools import lru_cache

from pydantic import JsonValue

from extpack.core.dictpath import getByPath

import logging
logger = logging.getLogger(__name__)

__all__ = [
    "SETTINGS_ENV_VAR", "SETTINGS", "userSettingsPath", "loadUserSettings",
    "loadSettings", "deepMerge", "settings", "settingsBool", "settingsInt",
]


SETTINGS_ENV_VAR = "EXTPACK_SETTINGS"
SETTINGS: JsonValue = {
    "__source": "EXTPACK_DEFAULTS",
    "sandbox": {"timeoutSec": 10, "maxWorkers": 4, "python": None},
    "logging": {"devMode": False, "file": None},
}



def userSettingsPath() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(os.path.expanduser("~/.extpack/extpack.json5"))



def loadUserSettings() -> JsonValue:
    filePath = userSettingsPath()
    if filePath.exists():
        try:
            parsed = json5.loads(filePath.read_text(encoding="utf-8"))
        except Exception as err:
            logger.error("Failed to parse '%s': %s", filePath, err)
            return {}
        if not isinstance(parsed, dict):
            logger.error("Ignoring '%s': settings must be a JSON object, not '%s'", filePath, type(parsed).__name__)
            return {}
        return parsed
    return {}



@lru_cache(maxsize=1)
def loadSettings():
    return deepMerge(SETTINGS, loadUserSettings())



def deepMerge(first: JsonValue, second: JsonValue) -> JsonValue:
    """
    Returns a new JsonValue where keys from `second` override/extend `first`.
    Only merges recursively when BOTH sides are JSON objects (dicts).
    For all other JSON types (lists, strings, numbers, booleans, null),
    the right-hand value `second` replaces `first`.
    """
    if isinstance(first, dict) and isinstance(second, dict):
        out: dict[str, JsonValue] = {}
        for key, value in first.items():
            out[key] = cast(JsonValue, value)
        for key, value in second.items():
            if key in out:
                out[key] = deepMerge(out[key], cast(JsonValue, value))
            else:
                out[key] = cast(JsonValue, value)
        return cast(JsonValue, out)
    
    return cast(JsonValue, second)

# ---------- Ergonomic accessors over merged settings ----------

def settings(path: str, default: Any = None) -> Any:
    """Returns value at `path` from merged settings, or `default` if missing."""
    val = getByPath(loadSettings(), path)
    return default if val is None else val



def settingsBool(path: str, default: bool = False) -> bool:
    """Returns bool value at `path` or `default` if missing."""
    val = getByPath(loadSettings(), path)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    return bool(val)



def settingsInt(path: str, default: int) -> int:
    val = getByPath(loadSettings(), path)
    if val is None or isinstance(val, bool):
        return default
    try:
        return int(val)
    except (TypeError, ValueError):
        logger.warning("Setting '%s' is not an integer (%r); using %d", path, val, default)
        return default
