# ================================================================
# File     : render.py
# Purpose  : Turn an import plan into terraform import blocks and a
#            role_assignments tfvars document
# ================================================================

import json
from typing import Any, Dict, List

from core.import_plan import fncVariableEntry
from core.models import ImportPlanEntry
from handlers.terraform.state import VARIABLE_NAME

DEFAULT_RESOURCE = "azurerm_role_assignment.this"


def fncRenderImportBlocks(plan: List[ImportPlanEntry], resource_address: str = DEFAULT_RESOURCE) -> str:
    """One `import {}` block per plan entry, keyed by the string index."""
    blocks = []
    for entry in plan:
        a = entry.assignment
        blocks.append(
            f"# {a.display_name} -> {a.role_label} @ {a.scope}\n"
            "import {\n"
            f"  to = {resource_address}[\"{entry.index}\"]\n"
            f"  id = {json.dumps(entry.assignment_id)}\n"
            "}\n"
        )
    return "\n".join(blocks)


def fncRenderVariables(plan: List[ImportPlanEntry], prior: Dict[str, Any] = None) -> Dict[str, Any]:
    """Prior entries kept as-is, new entries appended under their index."""
    merged: Dict[str, Any] = dict(prior or {})
    for entry in plan:
        merged[str(entry.index)] = fncVariableEntry(entry)
    return {VARIABLE_NAME: merged}
