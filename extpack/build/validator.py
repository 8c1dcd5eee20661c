# extpack/build/validator.py
from __future__ import annotations
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from extpack.build.models import ProjectManifest
from extpack.core.errors import BuildIOError, MissingRequiredFilesError
from extpack.runtime.inspector import LOCAL_PREFIX, inspectSource

logger = logging.getLogger(__name__)

__all__ = ["REQUIRED_FILES", "ICON_FILE", "MAIN_FILE", "ValidationResult", "filterFiles"]



MANIFEST_FILE = "package.json"
MAIN_FILE = "index.py"
REQUIRED_FILES: tuple[str, ...] = (MANIFEST_FILE, MAIN_FILE)
ICON_FILE = "icon.png"



@dataclass
class ValidationResult:
    manifest: ProjectManifest
    warnings: list[str] = field(default_factory=list)



def filterFiles(projectDir: Path, entries: Iterable[str]) -> ValidationResult:
    """
    Ensures no mandatory file is missing, then builds the initial file set from
    the mandatory files, the icon (when present) and every local module the
    main source depends on.

    A missing icon is reported through `warnings`, never raised.
    """
    names = set(entries)
    missing = [name for name in REQUIRED_FILES if name not in names]
    if missing:
        raise MissingRequiredFilesError(missing)

    warnings: list[str] = []
    hasIcon = ICON_FILE in names
    if not hasIcon:
        warnings.append(f"compiling extension without providing an {ICON_FILE} file")

    try:
        source = (projectDir / MAIN_FILE).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise BuildIOError(f"unable to read {MAIN_FILE}: {err}") from err

    inspected = inspectSource(source, projectDir)
    localModules = [
        module[len(LOCAL_PREFIX):]
        for module in inspected.modules
        if module.startswith(LOCAL_PREFIX)
    ]
    resources = [ICON_FILE] if hasIcon else []
    files = list(dict.fromkeys([*localModules, *resources, *REQUIRED_FILES]))

    logger.debug("Validated %s: %d local module(s), icon=%s", projectDir, len(localModules), hasIcon)
    return ValidationResult(manifest=ProjectManifest(code=inspected.code, files=files), warnings=warnings)
