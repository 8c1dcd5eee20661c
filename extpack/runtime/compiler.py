# extpack/runtime/compiler.py
from __future__ import annotations
import ast
from pathlib import Path

from extpack.core.errors import ExtensionSyntaxError

__all__ = ["parseSource", "compileSource"]



def parseSource(source: str, filename: str | Path = "index.py") -> ast.Module:
    try:
        return ast.parse(source, filename=str(filename))
    except (SyntaxError, ValueError) as err:
        # ValueError: null bytes on interpreters before 3.12
        raise ExtensionSyntaxError(filename, err) from err



def compileSource(source: str, filename: str | Path = "index.py") -> str:
    """
    Normalizes extension source into its portable form.
    
    The result is regenerated from the syntax tree, so comments and formatting
    are dropped and the same program always compiles to the same text.
    """
    tree = parseSource(source, filename)
    return ast.unparse(tree) + "\n"
