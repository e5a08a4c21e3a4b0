"""Pytest configuration and fixtures."""

import json
from typing import Any, Dict, List, Optional

import pytest

from core.models import RoleAssignment
from core.utils import fncSetDebug

SUB = "11111111-2222-3333-4444-555555555555"
SUB_SCOPE = f"/subscriptions/{SUB}"
AUTHZ = "providers/Microsoft.Authorization"


def assignment_id(suffix: str, scope: str = SUB_SCOPE) -> str:
    return f"{scope}/{AUTHZ}/roleAssignments/{suffix}"


def make_assignment(suffix: str = "a1", **kwargs) -> RoleAssignment:
    defaults = dict(
        assignment_id=assignment_id(suffix),
        principal_id=f"principal-{suffix}",
        scope=SUB_SCOPE,
        role_name="Reader",
        role_definition_id=f"{SUB_SCOPE}/{AUTHZ}/roleDefinitions/acdd72a7-3385-48ef-bd42-f606fba81ae7",
    )
    defaults.update(kwargs)
    return RoleAssignment(**defaults)


def arm_assignment(suffix: str, scope: str = SUB_SCOPE, condition: Optional[str] = None,
                   condition_version: Optional[str] = None, principal_type: str = "User",
                   role_guid: str = "acdd72a7-3385-48ef-bd42-f606fba81ae7") -> Dict[str, Any]:
    """Role assignment as returned by the ARM list endpoint."""
    return {
        "id": assignment_id(suffix, scope if scope != "/" else ""),
        "name": suffix,
        "type": "Microsoft.Authorization/roleAssignments",
        "properties": {
            "roleDefinitionId": f"/subscriptions/{SUB}/{AUTHZ}/roleDefinitions/{role_guid}",
            "principalId": f"principal-{suffix}",
            "principalType": principal_type,
            "scope": scope,
            "condition": condition,
            "conditionVersion": condition_version,
        },
    }


def schedule_instance(origin: str, end: Optional[str]) -> Dict[str, Any]:
    return {
        "id": f"{SUB_SCOPE}/{AUTHZ}/roleAssignmentScheduleInstances/{origin[-4:]}",
        "properties": {
            "originRoleAssignmentId": origin,
            "endDateTime": end,
            "assignmentType": "Activated" if end else "Assigned",
        },
    }


def state_document(instances: List[Dict[str, Any]], extra_resources: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Minimal Terraform v4 state holding azurerm_role_assignment instances."""
    resources = [
        {
            "mode": "managed",
            "type": "azurerm_role_assignment",
            "name": "this",
            "provider": "provider[\"registry.terraform.io/hashicorp/azurerm\"]",
            "instances": [
                {"index_key": str(i), "attributes": attrs} for i, attrs in enumerate(instances)
            ],
        }
    ]
    resources.extend(extra_resources or [])
    return {"version": 4, "terraform_version": "1.7.5", "serial": 3, "resources": resources}


class FakeClient:
    """Stands in for AzureClient: canned get_all / post responses by endpoint substring."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None, posts: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.posts = posts or {}
        self.calls: List[str] = []

    def _match(self, table, endpoint):
        for key, val in table.items():
            if key in endpoint:
                if isinstance(val, Exception):
                    raise val
                return val
        raise AssertionError(f"unexpected endpoint {endpoint}")

    def get_all(self, endpoint, params=None):
        self.calls.append(endpoint)
        return self._match(self.responses, endpoint)

    def post(self, endpoint, payload):
        self.calls.append(endpoint)
        return self._match(self.posts, endpoint)


@pytest.fixture(autouse=True)
def quiet_debug():
    fncSetDebug(False)
    yield
    fncSetDebug(False)


@pytest.fixture
def write_state(tmp_path):
    def _write(instances, name="dev.tfstate"):
        path = tmp_path / name
        path.write_text(json.dumps(state_document(instances)), encoding="utf-8")
        return str(path)
    return _write
