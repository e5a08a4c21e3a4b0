# ================================================================
# File     : state.py
# Purpose  : Read Terraform state and prior role_assignments tfvars
# Notes    : State comes from a JSON file or `terraform state pull`;
#            anything unreadable becomes a StateReadError
# ================================================================

import json
import pathlib
import shutil
import subprocess
from typing import Any, Dict

from core.errors import StateReadError
from core.models import Environment
from core.utils import fncPrintMessage, fncReadJSON

VARIABLE_NAME = "role_assignments"
STATE_PULL_TIMEOUT = 300


# ================================================================
# Function: fncPullState
# Purpose : Run `terraform -chdir=<dir> state pull` and parse stdout
# Notes   : Backend auth is terraform's business, not ours
# ================================================================
def fncPullState(environment: str, terraform_dir: str, terraform_bin: str = "terraform") -> Dict[str, Any]:
    binary = shutil.which(terraform_bin)
    if not binary:
        raise StateReadError(environment, f"'{terraform_bin}' not found on PATH")

    cmd = [binary, f"-chdir={terraform_dir}", "state", "pull"]
    fncPrintMessage(f"Running: {' '.join(cmd)}", "debug")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=STATE_PULL_TIMEOUT, check=False)
    except (OSError, subprocess.TimeoutExpired) as ex:
        raise StateReadError(environment, f"terraform state pull failed: {ex}") from ex

    if result.returncode != 0:
        raise StateReadError(environment, f"terraform state pull exited {result.returncode}: {result.stderr.strip()}")
    if not result.stdout.strip():
        raise StateReadError(environment, "terraform state pull returned no state (empty workspace?)")
    try:
        return json.loads(result.stdout)
    except ValueError as ex:
        raise StateReadError(environment, f"state is not valid JSON: {ex}") from ex


# ================================================================
# Function: fncReadState
# Purpose : Load the state document for one environment
# Notes   : state_file wins over terraform_dir
# ================================================================
def fncReadState(env: Environment) -> Dict[str, Any]:
    if env.state_file:
        path = pathlib.Path(env.state_file).expanduser()
        if not path.is_file():
            raise StateReadError(env.name, f"state file not found: {path}")
        try:
            return fncReadJSON(str(path), safe=False)
        except (OSError, ValueError) as ex:
            raise StateReadError(env.name, f"could not parse {path}: {ex}") from ex

    if env.terraform_dir:
        return fncPullState(env.name, str(pathlib.Path(env.terraform_dir).expanduser()))

    raise StateReadError(env.name, "no state_file or terraform_dir configured")


# ================================================================
# Function: fncReadPriorVariables
# Purpose : Existing role_assignments map from a JSON tfvars file
# Notes   : Missing file -> {} (fresh bootstrap). Accepts both the
#           wrapped {"role_assignments": {...}} and a bare mapping.
# ================================================================
def fncReadPriorVariables(path: str) -> Dict[str, Any]:
    if not path:
        return {}
    p = pathlib.Path(path).expanduser()
    if not p.is_file():
        fncPrintMessage(f"No prior variables at {p}; indices start at 0.", "debug")
        return {}

    data = fncReadJSON(str(p), safe=False)
    if not isinstance(data, dict):
        return {}
    inner = data.get(VARIABLE_NAME, data)
    return inner if isinstance(inner, dict) else {}
