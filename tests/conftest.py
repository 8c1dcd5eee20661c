import json
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

from extpack.app import settings as settingsModule
from extpack.build.models import ExtensionProperties



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")



@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Never read the developer's ~/.extpack settings during tests."""
    monkeypatch.setenv(settingsModule.SETTINGS_ENV_VAR, str(tmp_path / "no-settings.json5"))
    settingsModule.loadSettings.cache_clear()
    yield
    settingsModule.loadSettings.cache_clear()



INDEX_SOURCE = '''\
# Greets people
config = {
    "title": _("Hello"),
    "description": _("Says hello"),
    "preview": "<b>hi</b>",
    "params": {
        "name": {"description": _("What is your name?"), "type": str, "default": "you"},
    },
}


def main(context):
    return [_("Hello, {name}!", name=context["params"]["name"])]
'''



@pytest.fixture()
def make_project(tmp_path) -> Callable[..., Path]:
    """
    Creates an extension project under tmp_path.

    files maps relative paths to str/bytes content (dicts are written as JSON).
    """
    def make(files: dict[str, Any] | None = None, *, name: str = "widget", icon: bool = True) -> Path:
        root = tmp_path / "project"
        root.mkdir(parents=True, exist_ok=True)
        defaults: dict[str, Any] = {
            "package.json": {"name": name, "version": "1.0.0"},
            "index.py": INDEX_SOURCE,
        }
        if icon:
            defaults["icon.png"] = b"\x89PNG\r\n\x1a\n"
        for rel, content in {**defaults, **(files or {})}.items():
            if content is None:
                continue
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            elif isinstance(content, (dict, list)):
                path.write_text(json.dumps(content), encoding="utf-8")
            else:
                path.write_text(content, encoding="utf-8")
        return root
    return make



class FakeRunner:
    """Sandbox stand-in: echoes the locale strings back as translated properties."""
    def __init__(self, params: dict[str, dict[str, Any]] | None = None):
        self.calls: list[tuple[str, dict[str, Any], dict[str, str]]] = []
        self.params = params if params is not None else {"name": {"description": "What is your name?", "type": "str"}}

    async def __call__(self, context, strings, modules) -> ExtensionProperties:
        self.calls.append((context.name, dict(strings), dict(modules)))
        tr = lambda text: strings.get(text, text)
        return ExtensionProperties(
            title=tr("Hello"),
            description=tr("Says hello"),
            preview="<b>hi</b>",
            params={
                key: {**value, "description": tr(value.get("description"))}
                for key, value in self.params.items()
            },
        )



@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()



@pytest.fixture()
def fake_runner_cls() -> type[FakeRunner]:
    return FakeRunner
