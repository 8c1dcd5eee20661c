# extpack/core/errors.py
from __future__ import annotations
from collections.abc import Iterable
from pathlib import Path

__all__ = [
    "BuildError",
    "MissingRequiredFilesError",
    "ManifestParseError",
    "ImportViolationError",
    "ExtensionSyntaxError",
    "UnsupportedFileTypeError",
    "LocaleReadError",
    "SandboxExecutionError",
    "SandboxTimeoutError",
    "BuildIOError",
]



class BuildError(Exception):
    """Base class for every fatal condition that aborts a build."""
    pass



class MissingRequiredFilesError(BuildError):
    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(f"missing {', '.join(self.missing)} from the project")



class ManifestParseError(BuildError):
    pass



class ImportViolationError(BuildError):
    def __init__(self, filename: str | Path, statement: str | None = None):
        self.filename = str(filename)
        self.statement = statement
        detail = f" ({statement})" if statement else ""
        super().__init__(f"'{self.filename}' must be self-contained, found import{detail}")



class ExtensionSyntaxError(BuildError):
    def __init__(self, filename: str | Path, err: SyntaxError | ValueError):
        self.filename = str(filename)
        self.lineno = getattr(err, "lineno", None)
        if isinstance(err, UnicodeDecodeError):
            super().__init__(f"'{self.filename}' is not valid UTF-8 source: {err.reason} at byte {err.start}")
        elif isinstance(err, SyntaxError):
            super().__init__(f"syntax error in '{self.filename}' at line {err.lineno}: {err.msg}")
        else:
            super().__init__(f"syntax error in '{self.filename}': {err}")



class UnsupportedFileTypeError(BuildError):
    def __init__(self, path: str | Path):
        self.path = str(path)
        super().__init__(f"Invalid file type for {self.path}")



class LocaleReadError(BuildError):
    def __init__(self, path: str | Path, reason: str):
        self.path = str(path)
        super().__init__(f"failed to read locale file '{self.path}': {reason}")



class SandboxExecutionError(BuildError):
    """Raised when the extension fails inside the sandbox. Carries the remote error type when known."""
    def __init__(self, message: str, *, errorType: str | None = None, stack: str | None = None):
        self.errorType = errorType
        self.stack = stack
        super().__init__(f"{errorType}: {message}" if errorType else message)



class SandboxTimeoutError(SandboxExecutionError):
    def __init__(self, name: str, timeoutSec: float):
        self.timeoutSec = timeoutSec
        super().__init__(f"'{name}' did not finish within {timeoutSec:g}s")



class BuildIOError(BuildError):
    pass
