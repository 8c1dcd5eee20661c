# extpack/build/precompile.py
from __future__ import annotations
import asyncio
import copy
import logging
import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from pathlib import Path, PurePosixPath
from typing import Any

from extpack.build.linker import readJsonObject
from extpack.build.models import ExtensionProperties, LocaleMetadata, LocaleRecord, ProjectManifest
from extpack.core.errors import BuildIOError, LocaleReadError
from extpack.core.jsonutils import safeJsonDumps
from extpack.core.logging import logContext
from extpack.runtime.inspector import collectModules
from extpack.runtime.sandbox import SandboxContext, runExtension

logger = logging.getLogger(__name__)

__all__ = [
    "META_FILE", "DEFAULT_LOCALE", "LOCALE_PATH_RE", "Runner",
    "localeByFile", "localesToRecords", "projectLocale",
    "mergeLocaleMetadata", "runInAllLocales", "createMetaFile", "precompile",
]



META_FILE = ".meta"
DEFAULT_LOCALE = "default"
LOCALE_PATH_RE = re.compile(r"^locales/[a-z]{2,3}(_[A-Z]{2,3})?\.json$")

Runner = Callable[[SandboxContext, Mapping[str, Any], Mapping[str, str]], Awaitable[ExtensionProperties]]



def localeByFile(location: str) -> str:
    """locales/pt_BR.json -> pt_BR"""
    return PurePosixPath(location).name.split(".", 1)[0]



async def localesToRecords(projectDir: Path, localeFiles: Iterable[str]) -> list[LocaleRecord]:
    """Reads every locale file concurrently. Unlike linking, any failure here is fatal."""
    async def read(location: str) -> LocaleRecord:
        try:
            strings = await asyncio.to_thread(readJsonObject, projectDir / location)
        except (OSError, ValueError) as err:
            raise LocaleReadError(location, str(err)) from err
        if strings is None:
            raise LocaleReadError(location, "content is not a JSON object")
        return LocaleRecord(locale=localeByFile(location), strings=strings)

    return list(await asyncio.gather(*(read(location) for location in localeFiles)))



def projectLocale(locale: str, props: ExtensionProperties) -> LocaleMetadata:
    """Wraps every translatable leaf of `props` as {locale: value}."""
    params: dict[str, dict[str, Any]] = {}
    for name, param in props.params.items():
        params[name] = {**param, "description": {locale: param.get("description")}}
    return LocaleMetadata(
        title={locale: props.title},
        description={locale: props.description},
        preview={locale: props.preview},
        params=params,
    )



def _mergeInto(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    # Mappings merge key by key; any other collision is won by `source`.
    for key, value in source.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _mergeInto(current, value)
        else:
            target[key] = copy.deepcopy(value)



def mergeLocaleMetadata(records: Iterable[LocaleMetadata]) -> LocaleMetadata:
    """
    Folds per-locale metadata into one record.

    Locale-keyed leaves accumulate (one key per locale). When two records set
    the same non-locale leaf (e.g. a parameter's `default`), the record that
    comes later wins.
    """
    merged: dict[str, Any] = {}
    for record in records:
        _mergeInto(merged, record.model_dump())
    return LocaleMetadata.model_validate(merged)



async def runInAllLocales(
    code: str,
    modules: Mapping[str, str],
    locales: list[LocaleRecord],
    *,
    runner: Runner,
    maxWorkers: int = 4,
) -> LocaleMetadata:
    """
    Runs the extension once without strings and once per locale, then merges
    the projections in that order.
    """
    runs = [LocaleRecord(locale=DEFAULT_LOCALE), *locales]
    semaphore = asyncio.Semaphore(max(1, maxWorkers))

    async def runOne(record: LocaleRecord) -> LocaleMetadata:
        async with semaphore:
            with logContext(locale=record.locale):
                logger.debug("Running extension for locale '%s'", record.locale)
                context = SandboxContext(name=f"precompile-{record.locale}", source=code)
                props = await runner(context, record.strings, modules)
                return projectLocale(record.locale, props)

    projections = await asyncio.gather(*(runOne(record) for record in runs))
    if len(projections) == 1:
        return projections[0]
    return mergeLocaleMetadata(projections)



def createMetaFile(projectDir: Path, metadata: LocaleMetadata) -> Path:
    target = projectDir / META_FILE
    try:
        target.write_text(safeJsonDumps(metadata, sortKeys=True), encoding="utf-8")
    except OSError as err:
        raise BuildIOError(f"unable to write {target}: {err}") from err
    return target



async def precompile(
    projectDir: Path,
    manifest: ProjectManifest,
    *,
    runner: Runner | None = None,
    timeoutSec: float = 10.0,
    maxWorkers: int = 4,
    python: str | None = None,
) -> tuple[ProjectManifest, LocaleMetadata]:
    """
    Generates the `.meta` file holding the metadata of every linked locale and
    prepends it to the file set.
    """
    if runner is None:
        async def runner(context: SandboxContext, strings: Mapping[str, Any], modules: Mapping[str, str]) -> ExtensionProperties:
            return await runExtension(context, strings, modules, timeoutSec=timeoutSec, python=python)

    localeFiles = [location for location in manifest.files if LOCALE_PATH_RE.match(location)]
    locales = await localesToRecords(projectDir, localeFiles)
    modules = await asyncio.to_thread(collectModules, manifest.code, projectDir)
    metadata = await runInAllLocales(manifest.code, modules, locales, runner=runner, maxWorkers=maxWorkers)

    createMetaFile(projectDir, metadata)
    logger.info("Precompiled metadata for %d locale(s): %s", len(locales) + 1,
                ", ".join([DEFAULT_LOCALE, *(record.locale for record in locales)]))
    return manifest.withFiles([META_FILE, *manifest.files]), metadata
