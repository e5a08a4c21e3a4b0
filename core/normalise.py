# ================================================================
# File     : normalise.py
# Purpose  : Turn ARM role assignments and Terraform state into the
#            canonical RoleAssignment / ManagedAssignment shapes
# Notes    : Pure functions; all I/O happens in handlers/
# ================================================================

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from core.errors import StateReadError
from core.models import ManagedAssignment, RoleAssignment, ScheduledInstance
from core.utils import fncSafeGet

ROOT_SCOPE = "/"
TF_ROLE_ASSIGNMENT_TYPE = "azurerm_role_assignment"


# ================================================================
# Helper Functions
# ================================================================

def _clean(val: Any) -> Optional[str]:
    if val is None:
        return None
    s = str(val).strip()
    return s or None


def _parse_dt(val) -> Optional[datetime]:
    if not val:
        return None
    if isinstance(val, datetime):
        return val if val.tzinfo else val.replace(tzinfo=timezone.utc)
    s = str(val).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _field(raw: Dict[str, Any], *names: str) -> Any:
    # ARM nests everything under "properties"; flat records do not
    props = raw.get("properties") if isinstance(raw.get("properties"), dict) else {}
    for name in names:
        if props.get(name) not in (None, ""):
            return props[name]
        if raw.get(name) not in (None, ""):
            return raw[name]
    return None


def fncRoleDefinitionKey(role_definition_id: Optional[str]) -> str:
    """Last path segment of a role definition id, lower-cased (the role GUID)."""
    if not role_definition_id:
        return ""
    return role_definition_id.rstrip("/").rsplit("/", 1)[-1].lower()


# ================================================================
# Function: fncIsRelevantScope
# Purpose : Decide whether a scope belongs to an environment
# Notes   : Case-insensitive substring match; root scope never counts
# ================================================================
def fncIsRelevantScope(scope: Optional[str], environment_id: str) -> bool:
    if not scope or not environment_id:
        return False
    if scope.strip() == ROOT_SCOPE:
        return False
    return environment_id.lower() in scope.lower()


# ================================================================
# Function: fncNormaliseLiveAssignments
# Purpose : Convert provider role-assignment records to RoleAssignment
# Notes   : role_names keyed by role GUID (lower); principals keyed by
#           principal id -> {"name": .., "type": ..}
# ================================================================
def fncNormaliseLiveAssignments(
    raw_assignments: Iterable[Dict[str, Any]],
    environment_id: str,
    role_names: Optional[Dict[str, str]] = None,
    principals: Optional[Dict[str, Dict[str, Any]]] = None,
) -> List[RoleAssignment]:
    role_names = role_names or {}
    principals = principals or {}
    out: List[RoleAssignment] = []

    for raw in raw_assignments or []:
        if not isinstance(raw, dict):
            continue
        scope = _clean(_field(raw, "scope"))
        if not fncIsRelevantScope(scope, environment_id):
            continue
        assignment_id = _clean(_field(raw, "id", "assignment_id"))
        if not assignment_id:
            continue

        principal_id = _clean(_field(raw, "principalId", "principal_id")) or ""
        role_def_id = _clean(_field(raw, "roleDefinitionId", "role_definition_id"))
        pinfo = principals.get(principal_id) or {}

        out.append(RoleAssignment(
            assignment_id=assignment_id,
            principal_id=principal_id,
            scope=scope,
            principal_display_name=_clean(pinfo.get("name")) or _clean(_field(raw, "principalDisplayName", "principal_display_name")),
            principal_type=_clean(_field(raw, "principalType", "principal_type")) or _clean(pinfo.get("type")),
            role_name=_clean(_field(raw, "roleName", "role_name")) or _clean(role_names.get(fncRoleDefinitionKey(role_def_id))),
            role_definition_id=role_def_id,
            condition=_clean(_field(raw, "condition")),
            condition_version=_clean(_field(raw, "conditionVersion", "condition_version")),
            expiry=_parse_dt(_field(raw, "endDateTime", "expiry")),
        ))
    return out


# ================================================================
# Function: fncNormaliseScheduledInstances
# Purpose : Convert PIM schedule instances to ScheduledInstance
# Notes   : Entries without an origin assignment id are dropped
# ================================================================
def fncNormaliseScheduledInstances(raw_instances: Iterable[Dict[str, Any]]) -> List[ScheduledInstance]:
    out = []
    for raw in raw_instances or []:
        if not isinstance(raw, dict):
            continue
        origin = _clean(_field(raw, "originRoleAssignmentId", "origin_assignment_id"))
        if not origin:
            continue
        out.append(ScheduledInstance(
            origin_assignment_id=origin,
            end_time=_clean(_field(raw, "endDateTime", "end_time")),
        ))
    return out


# ================================================================
# Function: fncParseManagedAssignments
# Purpose : Extract azurerm_role_assignment instances from a state doc
# Notes   : Keyed by lower-cased id; raises StateReadError when the
#           document is not a Terraform state
# ================================================================
def fncParseManagedAssignments(state_document: Any, environment: str = "") -> Dict[str, ManagedAssignment]:
    if not isinstance(state_document, dict):
        raise StateReadError(environment, "state document is not a JSON object")
    resources = state_document.get("resources", [])
    if not isinstance(resources, list):
        raise StateReadError(environment, "'resources' is not a list")

    managed: Dict[str, ManagedAssignment] = {}
    for res in resources:
        if not isinstance(res, dict):
            raise StateReadError(environment, "resource entry is not an object")
        if res.get("type") != TF_ROLE_ASSIGNMENT_TYPE:
            continue
        if res.get("mode", "managed") != "managed":
            continue
        instances = res.get("instances") or []
        if not isinstance(instances, list):
            raise StateReadError(environment, "'instances' is not a list")
        for inst in instances:
            if not isinstance(inst, dict):
                raise StateReadError(environment, "resource instance is not an object")
            assignment_id = _clean(fncSafeGet(inst, "attributes.id"))
            if not assignment_id:
                continue
            managed[assignment_id.lower()] = ManagedAssignment(
                assignment_id=assignment_id,
                condition=_clean(fncSafeGet(inst, "attributes.condition")),
                condition_version=_clean(fncSafeGet(inst, "attributes.condition_version")),
            )
    return managed
