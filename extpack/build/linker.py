# extpack/build/linker.py
from __future__ import annotations
import json
import logging
import re
from pathlib import Path

from extpack.build.models import ProjectManifest
from extpack.core.errors import BuildIOError
from extpack.runtime.inspector import ensureNoImports

logger = logging.getLogger(__name__)

__all__ = [
    "LOCALES_DIR", "AUTOCOMPLETE_DIR", "LOCALE_FILE_RE",
    "listFiles", "readJsonObject", "linkLocales", "linkAutoComplete", "linkFiles",
]



LOCALES_DIR = "locales"
AUTOCOMPLETE_DIR = "autocomplete"
AUTOCOMPLETE_SUFFIX = ".py"
LOCALE_FILE_RE = re.compile(r"^[a-z]{2,3}(_[A-Z]{2,3})?\.json$")



def listFiles(directory: Path) -> list[str]:
    """
    Returns the entry names of `directory` when it is a directory (a symlink is
    not), otherwise an empty list.
    """
    if directory.is_symlink() or not directory.is_dir():
        return []
    return sorted(entry.name for entry in directory.iterdir())



def readJsonObject(path: Path) -> dict | None:
    """Parses `path` and returns the object, or None when it is not a JSON object."""
    parsed = json.loads(path.read_text(encoding="utf-8"))
    return parsed if isinstance(parsed, dict) else None



def linkLocales(projectDir: Path) -> list[str]:
    """
    Lists locale files that are named like a locale and hold a JSON object.
    Anything else is silently left out of the build.
    """
    linked: list[str] = []
    for name in listFiles(projectDir / LOCALES_DIR):
        if not LOCALE_FILE_RE.match(name):
            continue
        location = f"{LOCALES_DIR}/{name}"
        try:
            if readJsonObject(projectDir / location) is None:
                logger.debug("Skipping locale '%s': not a JSON object", location)
                continue
        except (OSError, ValueError) as err:
            logger.debug("Skipping locale '%s': %s", location, err)
            continue
        linked.append(location)
    return linked



def linkAutoComplete(projectDir: Path) -> list[str]:
    """
    Lists autocomplete scripts. Each one must be self-contained: a script with
    any import fails the build.
    """
    linked: list[str] = []
    for name in listFiles(projectDir / AUTOCOMPLETE_DIR):
        if not name.endswith(AUTOCOMPLETE_SUFFIX):
            continue
        location = f"{AUTOCOMPLETE_DIR}/{name}"
        try:
            content = (projectDir / location).read_bytes()
        except OSError as err:
            raise BuildIOError(f"unable to read {location}: {err}") from err
        ensureNoImports(location, content)
        linked.append(location)
    return linked



def linkFiles(projectDir: Path, manifest: ProjectManifest) -> ProjectManifest:
    """
    Links locales and autocomplete scripts into the file set. The result is
    deduplicated and sorted so the same project always yields the same list.
    """
    locales = linkLocales(projectDir)
    autoComplete = linkAutoComplete(projectDir)
    logger.debug("Linked %d locale(s) and %d autocomplete script(s)", len(locales), len(autoComplete))
    files = sorted(set(manifest.files) | set(locales) | set(autoComplete))
    return manifest.withFiles(files)
