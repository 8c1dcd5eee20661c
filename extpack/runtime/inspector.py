# extpack/runtime/inspector.py
from __future__ import annotations
import ast
import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from extpack.core.errors import BuildIOError, ExtensionSyntaxError, ImportViolationError
from extpack.runtime.compiler import compileSource, parseSource

logger = logging.getLogger(__name__)

__all__ = [
    "InspectResult", "listDependencies", "inspectSource",
    "collectModules", "ensureNoImports",
]



LOCAL_PREFIX = "./"
PARENT_PREFIX = "../"
_DYNAMIC_IMPORTERS = {"__import__", "import_module"}



@dataclass
class InspectResult:
    code: str
    modules: list[str] = field(default_factory=list)



def _relativeSpecifier(level: int, parts: list[str], baseDir: Path | None) -> str:
    """
    Maps a relative module path to a file-set specifier: a package directory
    when it exists, otherwise a single `.py` module. `level` follows
    ast.ImportFrom (1 for ".", 2 for "..", ...).
    """
    prefix = LOCAL_PREFIX if level == 1 else PARENT_PREFIX * (level - 1)
    rel = "/".join(parts)
    if baseDir is not None and (baseDir / prefix / rel).is_dir():
        return prefix + rel
    return prefix + rel + ".py"



def listDependencies(source: str, baseDir: Path | None = None, *, filename: str = "index.py") -> list[str]:
    """
    Returns the statically declared module dependencies of `source`, in order of
    first appearance and without duplicates.

      import requests            -> "requests"
      from .helpers import fmt   -> "./helpers.py"
      from .lib import util      -> "./lib" when baseDir/lib is a directory
      from ..shared import x     -> "../shared.py"
    """
    tree = parseSource(source, filename)
    found: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            specifiers = [alias.name.split(".")[0] for alias in node.names]
        elif isinstance(node, ast.ImportFrom):
            if node.level == 0:
                specifiers = [(node.module or "").split(".")[0]]
            elif node.module:
                specifiers = [_relativeSpecifier(node.level, node.module.split("."), baseDir)]
            else:
                # from . import a, b
                specifiers = [_relativeSpecifier(node.level, [alias.name], baseDir) for alias in node.names]
        else:
            continue
        for specifier in specifiers:
            if specifier and specifier not in found:
                found.append(specifier)
    return found



def _splitSpecifier(specifier: str) -> tuple[int, str] | None:
    """Returns (parent hops, relative path) for local specifiers, None for external packages."""
    if specifier.startswith(LOCAL_PREFIX):
        return 0, specifier[len(LOCAL_PREFIX):]
    hops = 0
    rest = specifier
    while rest.startswith(PARENT_PREFIX):
        hops += 1
        rest = rest[len(PARENT_PREFIX):]
    return (hops, rest) if hops else None



def _expandLocal(baseDir: Path, target: PurePosixPath, anchor: PurePosixPath) -> list[PurePosixPath]:
    """
    Expands a local target into the source files it needs: every module of a
    package directory, or the module itself plus the __init__.py of each
    intermediate package between anchor and the module.
    """
    fullPath = baseDir / target
    if fullPath.is_dir():
        return sorted(
            PurePosixPath(path.relative_to(baseDir).as_posix())
            for path in fullPath.rglob("*.py")
            if path.is_file()
        )
    out: list[PurePosixPath] = []
    parent = target.parent
    while parent != anchor and parent != PurePosixPath("."):
        init = parent / "__init__.py"
        if (baseDir / init).is_file():
            out.append(init)
        parent = parent.parent
    out.append(target)
    return out



def collectModules(source: str, baseDir: Path) -> dict[str, str]:
    """
    Walks the relative imports of `source` transitively and returns the module
    set: posix path relative to baseDir -> compiled source.

    Imports that climb above baseDir are ignored. Missing local modules are
    skipped with a warning; the sandbox reports the resulting ImportError.
    """
    modules: dict[str, str] = {}
    pending: list[tuple[str, PurePosixPath]] = [(source, PurePosixPath("."))]
    while pending:
        text, moduleDir = pending.pop()
        for specifier in listDependencies(text, baseDir / moduleDir):
            split = _splitSpecifier(specifier)
            if split is None:
                continue
            hops, rel = split
            if hops > len(moduleDir.parts):
                continue
            anchor = moduleDir
            for _ in range(hops):
                anchor = anchor.parent
            for relPath in _expandLocal(baseDir, anchor / rel, anchor):
                key = relPath.as_posix()
                if key in modules:
                    continue
                filePath = baseDir / relPath
                if not filePath.is_file():
                    logger.warning("Local module '%s' imported but not found under '%s'", key, baseDir)
                    continue
                try:
                    raw = filePath.read_bytes().decode("utf-8")
                except UnicodeDecodeError as err:
                    raise ExtensionSyntaxError(key, err) from err
                except OSError as err:
                    raise BuildIOError(f"unable to read {key}: {err}") from err
                modules[key] = compileSource(raw, key)
                pending.append((raw, relPath.parent))
    return dict(sorted(modules.items()))



def inspectSource(source: str, baseDir: Path | None = None) -> InspectResult:
    """
    Compiles the main source and lists its dependencies: external names plus
    every local module reachable through relative imports.
    """
    code = compileSource(source)
    modules = listDependencies(source, baseDir)
    if baseDir is not None:
        packageDirs = [
            specifier[len(LOCAL_PREFIX):] + "/"
            for specifier in modules
            if specifier.startswith(LOCAL_PREFIX) and not specifier.endswith(".py")
        ]
        for key in collectModules(source, baseDir):
            specifier = LOCAL_PREFIX + key
            if specifier in modules or any(key.startswith(prefix) for prefix in packageDirs):
                continue
            modules.append(specifier)
    return InspectResult(code=code, modules=modules)



def ensureNoImports(filename: str | Path, content: str | bytes) -> None:
    """
    Raises ImportViolationError when `content` depends on any other module,
    either through an import statement or through __import__/importlib.import_module.
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as err:
            raise ExtensionSyntaxError(filename, err) from err
    tree = parseSource(content, filename)
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise ImportViolationError(filename, ast.unparse(node))
        if isinstance(node, ast.Call):
            func = node.func
            if isinstance(func, ast.Name):
                name = func.id
            elif isinstance(func, ast.Attribute):
                name = func.attr
            else:
                name = None
            if name in _DYNAMIC_IMPORTERS:
                raise ImportViolationError(filename, ast.unparse(node))
