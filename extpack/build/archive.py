# extpack/build/archive.py
from __future__ import annotations
import io
import logging
import stat
from collections.abc import Iterable
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZIP_STORED, ZipFile, ZipInfo

from extpack.core.errors import BuildIOError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

__all__ = ["ARCHIVE_EPOCH", "createArchive"]



# Every entry of every archive carries this timestamp, so archive bytes only
# depend on the file set and file contents.
ARCHIVE_EPOCH = (2006, 6, 6, 3, 0, 0)
_FILE_MODE = 0o100644
_DIR_MODE = 0o040755
_MSDOS_DIRECTORY = 0x10



def _writeFile(zf: ZipFile, arcname: str, source: Path) -> None:
    info = ZipInfo(arcname, date_time=ARCHIVE_EPOCH)
    info.compress_type = ZIP_DEFLATED
    info.external_attr = _FILE_MODE << 16
    with source.open("rb") as handle:
        data = handle.read()
    zf.writestr(info, data)



def _writeDirectory(zf: ZipFile, arcname: str) -> None:
    info = ZipInfo(arcname.rstrip("/") + "/", date_time=ARCHIVE_EPOCH)
    info.compress_type = ZIP_STORED
    info.external_attr = (_DIR_MODE << 16) | _MSDOS_DIRECTORY
    zf.writestr(info, b"")



def _addToArchive(zf: ZipFile, baseDir: Path, arcname: str) -> None:
    filePath = baseDir / arcname
    try:
        mode = filePath.lstat().st_mode
    except OSError as err:
        raise BuildIOError(f"unable to read {filePath}: {err}") from err

    if stat.S_ISREG(mode):
        try:
            _writeFile(zf, arcname, filePath)
        except OSError as err:
            raise BuildIOError(f"unable to read {filePath}: {err}") from err
        return

    if stat.S_ISDIR(mode):
        _writeDirectory(zf, arcname)
        for child in sorted(entry.name for entry in filePath.iterdir()):
            _addToArchive(zf, baseDir, f"{arcname.rstrip('/')}/{child}")
        return

    raise UnsupportedFileTypeError(filePath)



def createArchive(projectDir: Path, files: Iterable[str]) -> bytes:
    """
    Builds the package in memory. Directories are added recursively (children
    in sorted order); symlinks and special files fail the build.
    """
    buffer = io.BytesIO()
    count = 0
    with ZipFile(buffer, "w", compression=ZIP_DEFLATED) as zf:
        for arcname in files:
            _addToArchive(zf, projectDir, arcname)
            count += 1
    logger.debug("Archived %d top-level entr%s from %s", count, "y" if count == 1 else "ies", projectDir)
    return buffer.getvalue()
