# ================================================================
# File     : module_loader.py
# Purpose  : Dynamically load and execute RoleRetriever modules
# Notes    : Modules live in modules/<provider>/<name>.py and expose
#            run(clients, args, cfg)
# ================================================================

import importlib
import pathlib
import traceback
from typing import Any, List

from core.utils import fncPrintMessage

MODULES_ROOT = pathlib.Path(__file__).resolve().parent.parent / "modules"


# ================================================================
# Function: fncLoadModule
# Purpose : Dynamically import a module based on provider and name
# Notes   : Returns the imported module or None if not found
# ================================================================
def fncLoadModule(provider: str, module_name: str):
    mod_path = f"modules.{provider}.{module_name}"
    try:
        mod = importlib.import_module(mod_path)
        fncPrintMessage(f"Loaded module: {mod_path}", "debug")
        return mod
    except ModuleNotFoundError:
        fncPrintMessage(f"Module not found: {provider}/{module_name}", "error")
        return None


# ================================================================
# Function: fncRunModule
# Purpose : Execute a loaded module's 'run' function
# Notes   : Unexpected exceptions are reported, never re-raised, so
#           the CLI can still exit with a meaningful status
# ================================================================
def fncRunModule(provider: str, module_name: str, clients, args, cfg) -> Any:
    mod = fncLoadModule(provider, module_name)
    if not (mod and hasattr(mod, "run")):
        fncPrintMessage(f"Module {module_name} missing 'run' function.", "warn")
        return None
    try:
        fncPrintMessage(f"Starting module: {provider}/{module_name}", "info")
        result = mod.run(clients, args, cfg)
        fncPrintMessage(f"Module complete: {provider}/{module_name}", "success")
        return result
    except Exception as ex:
        fncPrintMessage(f"Module {module_name} raised an exception: {ex}", "error")
        fncPrintMessage(traceback.format_exc(), "debug")
        return {"error": str(ex)}


# ================================================================
# Function: fncDiscoverModules
# Purpose : Discover available modules for a provider
# Notes   : Ignores __init__.py and files starting with '_'
# ================================================================
def fncDiscoverModules(provider: str) -> List[str]:
    base = MODULES_ROOT / provider
    if not base.is_dir():
        fncPrintMessage(f"No modules directory for provider '{provider}' (expected: {base})", "warn")
        return []

    mods = [
        p.stem for p in sorted(base.iterdir())
        if p.is_file() and p.suffix == ".py" and not p.name.startswith("_")
    ]
    fncPrintMessage(f"Discovered modules for {provider}: {mods}", "debug")
    return mods
