# tests/extpack/build/test_pipeline.py
from __future__ import annotations

import asyncio
import io
import json
from pathlib import Path
from zipfile import ZipFile

import pytest

from extpack.build.archive import ARCHIVE_EPOCH
from extpack.build.pipeline import BuildOptions, BuildStage, build, runBuild
from extpack.app import settings as settingsModule
from extpack.core.errors import (
    ExtensionSyntaxError,
    ImportViolationError,
    ManifestParseError,
    MissingRequiredFilesError,
    SandboxExecutionError,
)


def options(root: Path, output: Path, runner=None, **kwargs) -> BuildOptions:
    return BuildOptions(projectDir=root, output=output, cwd=root.parent, runner=runner, **kwargs)


def test_runBuild_success_writesArchiveInOutputDirectory(make_project, fake_runner, tmp_path):
    root = make_project({
        "locales/en.json": {"Hello": "Hello there"},
        "locales/pt_BR.json": {"Hello": "Olá"},
        "autocomplete/city.py": "def complete(text):\n    return []\n",
    })
    dist = tmp_path / "dist"
    dist.mkdir()
    outcome = asyncio.run(runBuild(options(root, dist, fake_runner)))
    assert outcome.ok, outcome.message
    assert outcome.stage is BuildStage.DONE
    assert outcome.target == dist / "widget.extpack"
    assert outcome.files == [
        ".meta",
        "autocomplete/city.py",
        "icon.png",
        "index.py",
        "locales/en.json",
        "locales/pt_BR.json",
        "package.json",
    ]
    zf = ZipFile(dist / "widget.extpack")
    assert zf.namelist() == outcome.files
    meta = json.loads(zf.read(".meta"))
    assert set(meta["title"]) == {"default", "en", "pt_BR"}


def test_runBuild_withoutLocales_onlyDefault(make_project, fake_runner, tmp_path):
    root = make_project()
    outcome = asyncio.run(runBuild(options(root, tmp_path, fake_runner)))
    assert outcome.ok, outcome.message
    meta = json.loads(ZipFile(outcome.target).read(".meta"))
    assert meta["title"] == {"default": "Hello"}


def test_runBuild_missingIcon_reportsWarning(make_project, fake_runner, tmp_path):
    root = make_project(icon=False)
    outcome = asyncio.run(runBuild(options(root, tmp_path, fake_runner)))
    assert outcome.ok
    assert any("icon.png" in warning for warning in outcome.warnings)


def test_runBuild_missingFiles_failsWhileValidating(make_project, fake_runner, tmp_path):
    root = make_project({"index.py": None})
    (root / "package.json").unlink()
    outcome = asyncio.run(runBuild(options(root, tmp_path, fake_runner)))
    assert not outcome.ok
    assert outcome.stage is BuildStage.FAILED
    assert outcome.failedAt is BuildStage.VALIDATING
    assert isinstance(outcome.error, MissingRequiredFilesError)
    assert "package.json" in outcome.message and "index.py" in outcome.message
    assert fake_runner.calls == []


def test_runBuild_importInAutocomplete_failsWhileLinking(make_project, fake_runner, tmp_path):
    root = make_project({"autocomplete/bad.py": "import os\n"})
    outcome = asyncio.run(runBuild(options(root, tmp_path, fake_runner)))
    assert outcome.failedAt is BuildStage.LINKING
    assert isinstance(outcome.error, ImportViolationError)
    assert "autocomplete/bad.py" in outcome.message
    assert not (root / ".meta").exists()


def test_runBuild_invalidLocale_isExcludedNotFatal(make_project, fake_runner, tmp_path):
    root = make_project({"locales/en.json": "{broken", "locales/pt_BR.json": {"Hello": "Olá"}})
    outcome = asyncio.run(runBuild(options(root, tmp_path, fake_runner)))
    assert outcome.ok, outcome.message
    assert "locales/en.json" not in outcome.files
    assert "locales/pt_BR.json" in outcome.files


def test_runBuild_brokenPackageJson_failsWhileResolvingOutput(make_project, fake_runner, tmp_path):
    root = make_project({"package.json": "{broken"})
    outcome = asyncio.run(runBuild(options(root, tmp_path, fake_runner)))
    assert outcome.failedAt is BuildStage.RESOLVING_OUTPUT
    assert isinstance(outcome.error, ManifestParseError)


def test_runBuild_explicitOutputPath(make_project, fake_runner, tmp_path):
    root = make_project()
    outcome = asyncio.run(runBuild(options(root, Path("renamed.extpack"), fake_runner)))
    assert outcome.ok, outcome.message
    assert outcome.target == root.parent.resolve() / "renamed.extpack"
    assert outcome.target.is_absolute()
    assert (root.parent / "renamed.extpack").is_file()


def test_runBuild_missingOutputDirectory_failsWhileWriting(make_project, fake_runner, tmp_path):
    root = make_project()
    outcome = asyncio.run(runBuild(options(root, tmp_path / "nope" / "widget.extpack", fake_runner)))
    assert outcome.failedAt is BuildStage.WRITING
    assert not (tmp_path / "nope").exists()


def test_build_raisesFirstError(make_project, fake_runner, tmp_path):
    root = make_project({"autocomplete/bad.py": "from os import path\n"})
    with pytest.raises(ImportViolationError):
        asyncio.run(build(options(root, tmp_path, fake_runner)))


def test_build_isReproducible(make_project, fake_runner, tmp_path):
    root = make_project({"locales/en.json": {"Hello": "Hi"}, "helpers.py": "x = 1\n"})
    first = asyncio.run(build(options(root, tmp_path / "first.extpack", fake_runner)))
    second = asyncio.run(build(options(root, tmp_path / "second.extpack", fake_runner)))
    assert first.files == second.files
    firstBytes = (tmp_path / "first.extpack").read_bytes()
    assert firstBytes == (tmp_path / "second.extpack").read_bytes()
    assert {info.date_time for info in ZipFile(io.BytesIO(firstBytes)).infolist()} == {ARCHIVE_EPOCH}


def test_build_realSandbox_endToEnd(make_project, tmp_path):
    root = make_project({
        "index.py": (
            "from .helpers import shout\n"
            "config = {\n"
            "    'title': shout(_('Hello')),\n"
            "    'description': _('Says hello'),\n"
            "    'preview': None,\n"
            "    'params': {'name': {'description': _('What is your name?'), 'type': str}},\n"
            "}\n"
        ),
        "helpers.py": "def shout(text):\n    return text.upper()\n",
        "locales/pt_BR.json": {"Hello": "Olá", "What is your name?": "Qual é o seu nome?"},
    })
    result = asyncio.run(build(options(root, tmp_path, timeoutSec=30)))
    meta = json.loads(ZipFile(result.target).read(".meta"))
    assert meta["title"] == {"default": "HELLO", "pt_BR": "OLÁ"}
    assert meta["params"]["name"]["type"] == "str"
    assert meta["params"]["name"]["description"] == {"default": "What is your name?", "pt_BR": "Qual é o seu nome?"}
    assert "helpers.py" in result.files


# -------- failures reported as a single outcome --------

def test_runBuild_autocompleteNotUtf8_failsWhileLinking(make_project, fake_runner, tmp_path):
    root = make_project({"autocomplete/city.py": b"x = '\xff\xfe'\n"})
    outcome = asyncio.run(runBuild(options(root, tmp_path, fake_runner)))
    assert not outcome.ok
    assert outcome.failedAt is BuildStage.LINKING
    assert isinstance(outcome.error, ExtensionSyntaxError)
    assert "autocomplete/city.py" in outcome.message


def test_runBuild_localModuleNotUtf8_failsWhileValidating(make_project, fake_runner, tmp_path):
    root = make_project({
        "index.py": "from .helpers import x\nconfig = {'title': x}\n",
        "helpers.py": b"x = '\xff'\n",
    })
    outcome = asyncio.run(runBuild(options(root, tmp_path, fake_runner)))
    assert not outcome.ok
    assert outcome.failedAt is BuildStage.VALIDATING
    assert isinstance(outcome.error, ExtensionSyntaxError)
    assert "helpers.py" in outcome.message


def test_runBuild_missingSandboxInterpreter_failsWhilePrecompiling(make_project, tmp_path, monkeypatch):
    settingsFile = tmp_path / "extpack.json5"
    settingsFile.write_text('{ sandbox: { python: "/nonexistent/python" } }', encoding="utf-8")
    monkeypatch.setenv(settingsModule.SETTINGS_ENV_VAR, str(settingsFile))
    settingsModule.loadSettings.cache_clear()

    root = make_project()
    outcome = asyncio.run(runBuild(options(root, tmp_path)))
    assert not outcome.ok
    assert outcome.failedAt is BuildStage.PRECOMPILING
    assert isinstance(outcome.error, SandboxExecutionError)
    assert "/nonexistent/python" in outcome.message
