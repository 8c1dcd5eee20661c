# extpack/build/pipeline.py
from __future__ import annotations
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from extpack.app.settings import settings, settingsInt
from extpack.build.archive import createArchive
from extpack.build.linker import linkFiles
from extpack.build.models import BuildResult, ProjectManifest
from extpack.build.output import archiveFileName, getProjectName, resolveOutputTarget, writeArchive
from extpack.build.precompile import Runner, precompile
from extpack.build.validator import filterFiles
from extpack.core.errors import BuildError, BuildIOError
from extpack.core.logging import logContext, setLogContext

logger = logging.getLogger(__name__)

__all__ = ["BuildStage", "BuildOptions", "BuildOutcome", "build", "runBuild", "runBuildSync"]



class BuildStage(str, Enum):
    VALIDATING = "validating"
    LINKING = "linking"
    PRECOMPILING = "precompiling"
    ARCHIVING = "archiving"
    RESOLVING_OUTPUT = "resolvingOutput"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"



@dataclass
class BuildOptions:
    projectDir: Path = Path(".")
    output: Path = Path(".")
    cwd: Path | None = None
    timeoutSec: float | None = None
    maxWorkers: int | None = None
    runner: Runner | None = None



@dataclass
class BuildOutcome:
    """Single report for one build: the archive path, or the first error."""
    ok: bool
    stage: BuildStage
    failedAt: BuildStage | None = None
    target: Path | None = None
    error: BuildError | None = None
    warnings: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.ok:
            return f"Extension compiled to {self.target}"
        return str(self.error)



class _Build:
    """Threads one ProjectManifest through every stage; stages never run twice."""
    def __init__(self, options: BuildOptions):
        self.options = options
        self.cwd = (options.cwd or Path.cwd()).resolve()
        self.projectDir = (self.cwd / options.projectDir).resolve()
        self.stage = BuildStage.VALIDATING
        self.warnings: list[str] = []

    def enter(self, stage: BuildStage) -> None:
        self.stage = stage
        setLogContext(stage=stage.value)
        logger.debug("Build stage: %s", stage.value)

    def validate(self) -> ProjectManifest:
        self.enter(BuildStage.VALIDATING)
        try:
            entries = [entry.name for entry in self.projectDir.iterdir()]
        except OSError as err:
            raise BuildIOError(f"unable to list project directory {self.projectDir}: {err}") from err
        result = filterFiles(self.projectDir, entries)
        for warning in result.warnings:
            logger.warning(warning)
        self.warnings.extend(result.warnings)
        return result.manifest

    def link(self, manifest: ProjectManifest) -> ProjectManifest:
        self.enter(BuildStage.LINKING)
        return linkFiles(self.projectDir, manifest)

    async def precompile(self, manifest: ProjectManifest) -> ProjectManifest:
        self.enter(BuildStage.PRECOMPILING)
        timeoutSec = self.options.timeoutSec
        if timeoutSec is None:
            timeoutSec = float(settings("sandbox.timeoutSec", 10))
        maxWorkers = self.options.maxWorkers or settingsInt("sandbox.maxWorkers", 4)
        manifest, _metadata = await precompile(
            self.projectDir,
            manifest,
            runner=self.options.runner,
            timeoutSec=timeoutSec,
            maxWorkers=maxWorkers,
            python=settings("sandbox.python"),
        )
        return manifest

    def archive(self, manifest: ProjectManifest) -> bytes:
        self.enter(BuildStage.ARCHIVING)
        return createArchive(self.projectDir, manifest.files)

    def resolveOutput(self) -> Path:
        self.enter(BuildStage.RESOLVING_OUTPUT)
        name = getProjectName(self.projectDir)
        target = resolveOutputTarget(self.options.output, archiveFileName(name), self.cwd)
        return self.cwd / target

    def write(self, data: bytes, target: Path) -> None:
        self.enter(BuildStage.WRITING)
        writeArchive(data, target)

    async def run(self) -> BuildResult:
        manifest = self.validate()
        manifest = self.link(manifest)
        manifest = await self.precompile(manifest)
        data = self.archive(manifest)
        target = self.resolveOutput()
        self.write(data, target)
        self.enter(BuildStage.DONE)
        return BuildResult(target=target, files=manifest.files, warnings=self.warnings)



async def build(options: BuildOptions) -> BuildResult:
    """Runs a full build and raises the first BuildError encountered."""
    runner = _Build(options)
    with logContext(buildId=uuid.uuid4().hex[:8]):
        return await runner.run()



async def runBuild(options: BuildOptions) -> BuildOutcome:
    """
    Runs a full build and reports exactly one outcome. Stages are not retried
    and nothing is cleaned up after a failure.
    """
    runner = _Build(options)
    with logContext(buildId=uuid.uuid4().hex[:8]):
        try:
            result = await runner.run()
        except BuildError as err:
            logger.debug("Build failed while %s", runner.stage.value, exc_info=True)
            return BuildOutcome(ok=False, stage=BuildStage.FAILED, failedAt=runner.stage, error=err, warnings=runner.warnings)
    logger.info("Extension compiled to %s", result.target)
    return BuildOutcome(ok=True, stage=BuildStage.DONE, target=result.target, warnings=result.warnings, files=result.files)



def runBuildSync(options: BuildOptions) -> BuildOutcome:
    return asyncio.run(runBuild(options))
