# ================================================================
# File     : import_plan.py
# Purpose  : Bootstrap path: index live assignments for terraform import
# Notes    : Indices continue from the highest key already used in the
#            role_assignments variable; input order is never changed
# ================================================================

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from core.errors import DataQualityError
from core.models import ImportPlanEntry, RoleAssignment
from core.normalise import fncRoleDefinitionKey


# ================================================================
# Function: fncMaxIndexFromVariables
# Purpose : Highest integer key in a prior role_assignments mapping
# Notes   : -1 when there is none; non-numeric keys are ignored
# ================================================================
def fncMaxIndexFromVariables(variables: Optional[Mapping[str, Any]]) -> int:
    max_index = -1
    for key in (variables or {}).keys():
        try:
            idx = int(str(key).strip())
        except ValueError:
            continue
        if idx > max_index:
            max_index = idx
    return max_index


# ================================================================
# Function: fncValidateImportInput
# Purpose : Fail loudly on assignments Terraform could not express
# Notes   : Needs a role name or a role definition id
# ================================================================
def fncValidateImportInput(live: Iterable[RoleAssignment]) -> None:
    bad = [a.assignment_id for a in live if not (a.role_name or a.role_definition_id)]
    if bad:
        raise DataQualityError(bad)


def fncSortForImport(live: Iterable[RoleAssignment]) -> List[RoleAssignment]:
    """Canonical ordering for callers that want stable indices across tenants."""
    return sorted(
        live,
        key=lambda a: (
            a.scope.lower(),
            (a.role_name or a.role_definition_id or "").lower(),
            a.principal_id.lower(),
            a.key,
        ),
    )


def _role_tokens(role_name: Optional[str], role_definition_id: Optional[str]) -> Set[str]:
    tokens = set()
    if role_name:
        tokens.add(f"name:{role_name.strip().lower()}")
    if role_definition_id:
        tokens.add(f"id:{fncRoleDefinitionKey(role_definition_id)}")
    return tokens


# ================================================================
# Function: fncDeclaredKeys
# Purpose : (principal, scope, role token) triples already present in
#           a prior role_assignments mapping
# ================================================================
def fncDeclaredKeys(variables: Optional[Mapping[str, Any]]) -> Set[Tuple[str, str, str]]:
    keys: Set[Tuple[str, str, str]] = set()
    for value in (variables or {}).values():
        if not isinstance(value, dict):
            continue
        principal = str(value.get("principal_id") or "").strip().lower()
        scope = str(value.get("scope") or "").strip().lower()
        if not principal or not scope:
            continue
        for token in _role_tokens(value.get("role_definition_name"), value.get("role_definition_id")):
            keys.add((principal, scope, token))
    return keys


# ================================================================
# Function: fncDropAlreadyManaged
# Purpose : Remove assignments Terraform already knows about
# Notes   : Matched by id against state, or by principal/scope/role
#           against the prior variables. Returns (kept, skipped).
# ================================================================
def fncDropAlreadyManaged(
    live: Iterable[RoleAssignment],
    variables: Optional[Mapping[str, Any]] = None,
    managed_ids: Optional[Iterable[str]] = None,
) -> Tuple[List[RoleAssignment], List[RoleAssignment]]:
    declared = fncDeclaredKeys(variables)
    ids = {i.lower() for i in (managed_ids or [])}
    kept: List[RoleAssignment] = []
    skipped: List[RoleAssignment] = []
    for a in live:
        principal = a.principal_id.strip().lower()
        scope = a.scope.strip().lower()
        in_vars = any(
            (principal, scope, token) in declared
            for token in _role_tokens(a.role_name, a.role_definition_id)
        )
        if a.key in ids or in_vars:
            skipped.append(a)
        else:
            kept.append(a)
    return kept, skipped


# ================================================================
# Function: fncBuildImportPlan
# Purpose : Assign max_index+1.. to live assignments in input order
# ================================================================
def fncBuildImportPlan(live: Iterable[RoleAssignment], max_index: int = -1) -> List[ImportPlanEntry]:
    start = max(max_index, -1) + 1
    return [
        ImportPlanEntry(index=start + offset, assignment_id=a.assignment_id, assignment=a)
        for offset, a in enumerate(live)
    ]


# ================================================================
# Function: fncVariableEntry
# Purpose : role_assignments variable value for one plan entry
# Notes   : role_definition_name wins over role_definition_id, the
#           azurerm provider accepts exactly one of them
# ================================================================
def fncVariableEntry(entry: ImportPlanEntry) -> Dict[str, Any]:
    a = entry.assignment
    out: Dict[str, Any] = {
        "principal_id": a.principal_id,
        "scope": a.scope,
    }
    if a.role_name:
        out["role_definition_name"] = a.role_name
    else:
        out["role_definition_id"] = a.role_definition_id
    if a.principal_type:
        out["principal_type"] = a.principal_type
    if a.condition:
        out["condition"] = a.condition
        if a.condition_version:
            out["condition_version"] = a.condition_version
    out["principal_name"] = a.display_name
    return out
