# ================================================================
# File     : rbac.py
# Purpose  : ARM / Graph reads feeding the drift and import engines
# Notes    : Live assignment reads raise ProviderReadError; lookups
#            that only enrich output (role names, display names, PIM
#            schedules) warn and degrade instead.
# ================================================================

from typing import Any, Dict, List, Optional

import requests

from core.errors import ProviderReadError
from core.utils import fncPrintMessage, fncChunkList
from core.normalise import fncRoleDefinitionKey
from handlers.azure.client import AzureRequestError

AUTHZ = "providers/Microsoft.Authorization"
ASSIGNMENTS_API = "2022-04-01"
DEFINITIONS_API = "2022-04-01"
SCHEDULES_API = "2020-10-01"
GET_BY_IDS_LIMIT = 1000  # Graph getByIds hard limit

_READ_ERRORS = (AzureRequestError, requests.RequestException, ValueError)


def _subscription_path(subscription_id: str) -> str:
    return f"subscriptions/{subscription_id.strip().strip('/')}"


# ================================================================
# Function: fncGetRoleAssignments
# Purpose : All role assignments visible from a subscription
# Notes   : Includes inherited management-group / root assignments;
#           the normaliser filters them by scope
# ================================================================
def fncGetRoleAssignments(arm, environment: str, subscription_id: str) -> List[Dict[str, Any]]:
    endpoint = f"{_subscription_path(subscription_id)}/{AUTHZ}/roleAssignments"
    try:
        return arm.get_all(endpoint, params={"api-version": ASSIGNMENTS_API})
    except _READ_ERRORS as ex:
        raise ProviderReadError(environment, str(ex)) from ex


# ================================================================
# Function: fncGetRoleDefinitionNames
# Purpose : Map role GUID (lower) -> roleName for a subscription
# Notes   : Failure leaves role names unresolved (ids still usable)
# ================================================================
def fncGetRoleDefinitionNames(arm, subscription_id: str) -> Dict[str, str]:
    endpoint = f"{_subscription_path(subscription_id)}/{AUTHZ}/roleDefinitions"
    try:
        rows = arm.get_all(endpoint, params={"api-version": DEFINITIONS_API})
    except _READ_ERRORS as ex:
        fncPrintMessage(f"Role definitions unavailable for {subscription_id}; names left unresolved ({ex})", "warn")
        return {}

    out = {}
    for r in rows or []:
        name = (r.get("properties") or {}).get("roleName")
        key = fncRoleDefinitionKey(r.get("id") or r.get("name"))
        if key and name:
            out[key] = name
    return out


# ================================================================
# Function: fncGetScheduleInstances
# Purpose : PIM role assignment schedule instances for a subscription
# Notes   : Returns None when PIM is not available / not readable so
#           the exclusion filter knows to stand down
# ================================================================
def fncGetScheduleInstances(arm, subscription_id: str) -> Optional[List[Dict[str, Any]]]:
    endpoint = f"{_subscription_path(subscription_id)}/{AUTHZ}/roleAssignmentScheduleInstances"
    try:
        return arm.get_all(endpoint, params={"api-version": SCHEDULES_API})
    except _READ_ERRORS as ex:
        fncPrintMessage(f"PIM schedule instances unavailable for {subscription_id}; no assignments excluded ({ex})", "warn")
        return None


# ================================================================
# Function: fncResolvePrincipals
# Purpose : Principal id -> {"name", "type"} via Graph getByIds
# Notes   : Unresolved ids are simply absent from the result
# ================================================================
def fncResolvePrincipals(graph, principal_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}
    if graph is None:
        return out
    ids = list(dict.fromkeys(i for i in principal_ids if i))

    for chunk in fncChunkList(ids, GET_BY_IDS_LIMIT):
        payload = {"ids": chunk, "types": ["user", "group", "servicePrincipal"]}
        try:
            data = graph.post("directoryObjects/getByIds", payload)
        except _READ_ERRORS as ex:
            fncPrintMessage(f"getByIds failed for {len(chunk)} principal(s); names left as placeholders ({ex})", "warn")
            continue
        for o in (data or {}).get("value", []):
            if not isinstance(o, dict) or not o.get("id"):
                continue
            otype = (o.get("@odata.type") or "").rsplit(".", 1)[-1]
            out[o["id"]] = {
                "name": o.get("displayName") or o.get("userPrincipalName"),
                "type": {"user": "User", "group": "Group", "servicePrincipal": "ServicePrincipal"}.get(otype),
            }
    return out
