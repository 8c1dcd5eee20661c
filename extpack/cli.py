# extpack/cli.py
from __future__ import annotations
import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from extpack import __version__
from extpack.app.settings import settings, settingsBool
from extpack.build.pipeline import BuildOptions, runBuild
from extpack.core.logging import configureLogging

__all__ = ["buildParser", "main"]



def buildParser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="extpack", description="Package extensions into deployable .extpack archives")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--log-file", default=None, help="also write JSON logs to this file")
    commands = parser.add_subparsers(dest="command", required=True)

    buildCmd = commands.add_parser("build", help="precompile an extension and generate its package")
    buildCmd.add_argument("projectDir", nargs="?", default=".", help="extension directory (default: current)")
    buildCmd.add_argument("-o", "--output", default=".", help="output directory or archive path (default: current)")
    buildCmd.add_argument("--timeout", type=float, default=None, help="seconds allowed per extension run")
    return parser



def _runBuild(args: argparse.Namespace) -> int:
    options = BuildOptions(
        projectDir=Path(args.projectDir),
        output=Path(args.output),
        timeoutSec=args.timeout,
    )
    outcome = asyncio.run(runBuild(options))
    if not outcome.ok:
        print(f"Error: {outcome.message}", file=sys.stderr)
        return 1
    print(outcome.target)
    return 0



def main(argv: Sequence[str] | None = None) -> int:
    args = buildParser().parse_args(argv)
    configureLogging(
        devMode=args.verbose or settingsBool("logging.devMode", False),
        logFile=args.log_file or settings("logging.file"),
    )
    if args.command == "build":
        return _runBuild(args)
    return 2
