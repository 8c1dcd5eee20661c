# extpack/runtime/sandbox_host.py
"""
Entry point executed inside the sandbox interpreter (`python -I sandbox_host.py`).

Reads one JSON request from stdin:
    {"name": str, "source": str, "strings": {...}, "modules": {path: source}}

and writes one JSON response to stdout:
    {"ok": true, "properties": {"title", "description", "preview", "params"}}
    {"ok": false, "error": {"type", "message", "stack"}}

This file must not import extpack: it runs in an isolated interpreter that
only sees the standard library.
"""
import builtins
import importlib.abc
import importlib.util
import json
import sys
import traceback
import types

PACKAGE = "extension"
MAIN_MODULE = PACKAGE + ".index"
PROPERTY_KEYS = ("title", "description", "preview", "params")



class ModuleSetFinder(importlib.abc.MetaPathFinder, importlib.abc.Loader):
    """Serves `extension.*` imports from the in-memory module set."""
    def __init__(self, modules):
        self._modules = modules

    def _locate(self, fullname):
        if not fullname.startswith(PACKAGE + "."):
            return None
        rel = fullname[len(PACKAGE) + 1:].replace(".", "/")
        if rel + ".py" in self._modules:
            return rel + ".py", False
        if rel + "/__init__.py" in self._modules:
            return rel + "/__init__.py", True
        if any(key.startswith(rel + "/") for key in self._modules):
            # Directory without __init__.py
            return None, True
        return None

    def find_spec(self, fullname, path=None, target=None):
        found = self._locate(fullname)
        if found is None:
            return None
        filename, isPackage = found
        return importlib.util.spec_from_loader(fullname, self, origin=filename, is_package=isPackage)

    def create_module(self, spec):
        return None

    def exec_module(self, module):
        filename, _isPackage = self._locate(module.__name__)
        source = self._modules.get(filename, "") if filename else ""
        module.__file__ = filename or module.__name__
        exec(compile(source, module.__file__, "exec"), module.__dict__)



def makeTranslator(strings):
    def translate(text, **kwargs):
        value = strings.get(text, text) if isinstance(text, str) else text
        if kwargs and isinstance(value, str):
            return value.format(**kwargs)
        return value
    return translate



def toJson(value):
    # Parameter types are usually classes; ship their names.
    if isinstance(value, type):
        return value.__name__
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    name = getattr(value, "__name__", None)
    return name if isinstance(name, str) else repr(value)



def runExtension(request):
    modules = request.get("modules") or {}
    sys.meta_path.insert(0, ModuleSetFinder(modules))
    builtins._ = makeTranslator(request.get("strings") or {})

    package = types.ModuleType(PACKAGE)
    package.__path__ = []
    sys.modules[PACKAGE] = package

    main = types.ModuleType(MAIN_MODULE)
    main.__package__ = PACKAGE
    main.__file__ = "index.py"
    sys.modules[MAIN_MODULE] = main
    exec(compile(request["source"], "index.py", "exec"), main.__dict__)

    config = main.__dict__.get("config")
    if config is None:
        raise LookupError(f"extension '{request.get('name')}' does not define a module-level 'config'")
    if not isinstance(config, dict):
        config = {key: getattr(config, key, None) for key in PROPERTY_KEYS}
    return {key: config.get(key) for key in PROPERTY_KEYS}



def main():
    out = sys.stdout
    # Extension output must not corrupt the response channel.
    sys.stdout = sys.stderr
    try:
        request = json.loads(sys.stdin.buffer.read().decode("utf-8"))
        response = {"ok": True, "properties": runExtension(request)}
    except BaseException as err:
        response = {
            "ok": False,
            "error": {
                "type": type(err).__name__,
                "message": str(err),
                "stack": traceback.format_exc(),
            },
        }
    payload = json.dumps(response, ensure_ascii=False, default=toJson)
    out.buffer.write(payload.encode("utf-8"))
    out.flush()



if __name__ == "__main__":
    main()
