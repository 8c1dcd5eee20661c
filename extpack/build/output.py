# extpack/build/output.py
from __future__ import annotations
import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from extpack import ARCHIVE_EXTENSION
from extpack.build.models import PackageManifest
from extpack.build.validator import MANIFEST_FILE
from extpack.core.errors import BuildIOError, ManifestParseError

logger = logging.getLogger(__name__)

__all__ = ["archiveFileName", "getProjectName", "resolveOutputTarget", "writeArchive"]



def archiveFileName(name: str) -> str:
    return f"{name}.{ARCHIVE_EXTENSION}"



def getProjectName(projectDir: Path) -> str:
    """Reads the declared name from the project's package.json."""
    try:
        raw = json.loads((projectDir / MANIFEST_FILE).read_text(encoding="utf-8"))
        return PackageManifest.model_validate(raw).name
    except (OSError, ValueError, ValidationError) as err:
        raise ManifestParseError(f"Failed to parse {MANIFEST_FILE} from the project: {err}") from err



def resolveOutputTarget(destination: str | Path, filename: str, cwd: Path | None = None) -> Path:
    """
    An existing directory receives `filename`; any other destination is the
    archive path itself. Missing directories are never created.
    """
    destination = Path(destination)
    realPath = (cwd or Path.cwd()) / destination
    if realPath.is_dir():
        return destination / filename
    return destination



def writeArchive(data: bytes, target: Path) -> Path:
    """
    Writes through a temporary sibling file and renames it into place, so the
    target never holds a partial archive.
    """
    directory = target.parent
    try:
        fd, tmpName = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=directory)
    except OSError as err:
        raise BuildIOError(f"unable to write {target}: {err}") from err

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        # mkstemp creates 0600 files
        os.chmod(tmpName, 0o644)
        os.replace(tmpName, target)
    except OSError as err:
        try:
            os.unlink(tmpName)
        except OSError:
            pass
        raise BuildIOError(f"unable to write {target}: {err}") from err

    logger.debug("Wrote %d bytes to %s", len(data), target)
    return target
