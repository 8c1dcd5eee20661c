# tests/extpack/runtime/test_sandbox.py
from __future__ import annotations

import asyncio

import pytest

from extpack.core.errors import SandboxExecutionError, SandboxTimeoutError
from extpack.runtime.compiler import compileSource
from extpack.runtime.sandbox import SandboxContext, runExtension


def run(source, strings=None, modules=None, timeoutSec=30.0):
    context = SandboxContext(name="test", source=compileSource(source))
    return asyncio.run(runExtension(context, strings or {}, modules or {}, timeoutSec=timeoutSec))


def test_runExtension_returnsProperties():
    props = run(
        "config = {'title': 'Hi', 'description': 'Greets', 'preview': [1, 2], "
        "'params': {'n': {'description': 'Count', 'type': int, 'default': 3}}}\n"
    )
    assert props.title == "Hi"
    assert props.description == "Greets"
    assert props.preview == [1, 2]
    assert props.params == {"n": {"description": "Count", "type": "int", "default": 3}}


def test_runExtension_translatesThroughStrings():
    props = run(
        "config = {'title': _('Hello'), 'description': _('Hi {who}', who='you'), 'preview': None, 'params': None}\n",
        strings={"Hello": "Olá", "Hi {who}": "Oi {who}"},
    )
    assert props.title == "Olá"
    assert props.description == "Oi you"
    assert props.params == {}


def test_runExtension_servesLocalModules():
    props = run(
        "from .helpers import shout\nconfig = {'title': shout('hey'), 'description': None, 'preview': None, 'params': {}}\n",
        modules={"helpers.py": "def shout(text):\n    return text.upper()\n"},
    )
    assert props.title == "HEY"


def test_runExtension_printDoesNotCorruptResponse():
    props = run("print('noise')\nconfig = {'title': 't', 'description': 'd', 'preview': None, 'params': {}}\n")
    assert props.title == "t"


def test_runExtension_missingConfig():
    with pytest.raises(SandboxExecutionError) as exc:
        run("x = 1\n")
    assert exc.value.errorType == "LookupError"
    assert "config" in str(exc.value)


def test_runExtension_raisingExtension():
    with pytest.raises(SandboxExecutionError) as exc:
        run("raise ValueError('boom')\n")
    assert exc.value.errorType == "ValueError"
    assert "boom" in str(exc.value)
    assert "Traceback" in (exc.value.stack or "")


def test_runExtension_invalidProperties():
    with pytest.raises(SandboxExecutionError):
        run("config = {'title': 5, 'description': None, 'preview': None, 'params': {}}\n")


def test_runExtension_timeout():
    with pytest.raises(SandboxTimeoutError):
        run("while True:\n    pass\n", timeoutSec=1.0)
