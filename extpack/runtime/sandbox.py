# extpack/runtime/sandbox.py
from __future__ import annotations
import asyncio
import json
import logging
import os
import sys
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import fastjsonschema
import psutil

from extpack.build.models import ExtensionProperties
from extpack.core.errors import SandboxExecutionError, SandboxTimeoutError

logger = logging.getLogger(__name__)

__all__ = ["SandboxContext", "HOST_SCRIPT", "runExtension", "killProcessTree"]



HOST_SCRIPT = Path(__file__).with_name("sandbox_host.py")
_STDERR_TAIL_CHARS = 2000

_PROPERTIES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": ["string", "null"]},
        "description": {"type": ["string", "null"]},
        "params": {
            "type": ["object", "null"],
            "additionalProperties": {
                "type": "object",
                "properties": {"description": {"type": ["string", "null"]}},
            },
        },
    },
    "required": ["title", "description", "preview", "params"],
}
_validateProperties = fastjsonschema.compile(_PROPERTIES_SCHEMA)



@dataclass(frozen=True)
class SandboxContext:
    name: str
    source: str



def killProcessTree(pid: int) -> None:
    try:
        proc = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    for child in proc.children(recursive=True):
        try:
            child.kill()
        except psutil.NoSuchProcess:
            pass
    try:
        proc.kill()
    except psutil.NoSuchProcess:
        pass



def _sandboxEnv() -> dict[str, str]:
    # Only what an interpreter needs to start; nothing from the user's session.
    env: dict[str, str] = {}
    for key in ("PATH", "SYSTEMROOT", "TEMP", "TMP"):
        if key in os.environ:
            env[key] = os.environ[key]
    return env



def _parseResponse(context: SandboxContext, returnCode: int | None, stdout: bytes, stderr: bytes) -> ExtensionProperties:
    stderrText = stderr.decode("utf-8", errors="replace")
    if stderrText.strip():
        logger.debug("Sandbox '%s' stderr:\n%s", context.name, stderrText[-_STDERR_TAIL_CHARS:])

    try:
        response = json.loads(stdout.decode("utf-8"))
    except ValueError as err:
        raise SandboxExecutionError(
            f"'{context.name}' exited with code {returnCode} without a response: {stderrText[-_STDERR_TAIL_CHARS:].strip() or err}"
        ) from err

    if not isinstance(response, Mapping) or not response.get("ok"):
        error = response.get("error") if isinstance(response, Mapping) else None
        error = error if isinstance(error, Mapping) else {}
        raise SandboxExecutionError(
            str(error.get("message") or "unknown sandbox failure"),
            errorType=error.get("type"),
            stack=error.get("stack"),
        )

    properties = response.get("properties")
    try:
        _validateProperties(properties)
    except fastjsonschema.JsonSchemaException as err:
        raise SandboxExecutionError(f"'{context.name}' declared invalid properties: {err.message}") from err
    return ExtensionProperties.model_validate(properties)



async def runExtension(
    context: SandboxContext,
    strings: Mapping[str, Any],
    modules: Mapping[str, str],
    *,
    timeoutSec: float = 10.0,
    python: str | None = None,
) -> ExtensionProperties:
    """
    Runs the extension in a fresh isolated interpreter and returns its declared
    {title, description, preview, params}.

    Only serializable values cross the boundary: the compiled source, the
    locale string table and the module set go in as JSON, the properties come
    back as JSON. The child runs with `-I` in a scratch directory and a minimal
    environment. Exceeding `timeoutSec` kills the whole process tree.
    """
    payload = json.dumps(
        {"name": context.name, "source": context.source, "strings": dict(strings), "modules": dict(modules)},
        ensure_ascii=False,
    ).encode("utf-8")

    interpreter = python or sys.executable
    with tempfile.TemporaryDirectory(prefix="extpack-sandbox-") as scratch:
        try:
            proc = await asyncio.create_subprocess_exec(
                interpreter, "-I", str(HOST_SCRIPT),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=scratch,
                env=_sandboxEnv(),
            )
        except OSError as err:
            raise SandboxExecutionError(f"unable to start sandbox interpreter '{interpreter}' for '{context.name}': {err}") from err
        logger.debug("Sandbox '%s' started (pid=%s)", context.name, proc.pid)
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(payload), timeout=timeoutSec)
        except asyncio.TimeoutError:
            killProcessTree(proc.pid)
            await proc.wait()
            raise SandboxTimeoutError(context.name, timeoutSec) from None
        except BaseException:
            killProcessTree(proc.pid)
            await proc.wait()
            raise

    return _parseResponse(context, proc.returncode, stdout, stderr)
