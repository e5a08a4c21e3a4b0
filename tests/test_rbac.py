"""Tests for the ARM / Graph read helpers."""

import pytest

from core.errors import ProviderReadError
from handlers.azure.client import AzureRequestError
from handlers.azure.rbac import (
    fncGetRoleAssignments,
    fncGetRoleDefinitionNames,
    fncGetScheduleInstances,
    fncResolvePrincipals,
)

from conftest import SUB, FakeClient, arm_assignment


def test_role_assignments_endpoint():
    arm = FakeClient({"roleAssignments": [arm_assignment("a")]})

    rows = fncGetRoleAssignments(arm, "dev", SUB)

    assert len(rows) == 1
    assert arm.calls == [f"subscriptions/{SUB}/providers/Microsoft.Authorization/roleAssignments"]


def test_role_assignments_failure_is_provider_read_error():
    arm = FakeClient({"roleAssignments": AzureRequestError(403, "AuthorizationFailed")})

    with pytest.raises(ProviderReadError) as exc:
        fncGetRoleAssignments(arm, "dev", SUB)
    assert exc.value.environment == "dev"
    assert "403" in str(exc.value)


def test_role_definition_names():
    arm = FakeClient({"roleDefinitions": [
        {"id": f"/subscriptions/{SUB}/providers/Microsoft.Authorization/roleDefinitions/ABC",
         "properties": {"roleName": "Owner"}},
        {"id": "/x/roleDefinitions/nameless", "properties": {}},
    ]})

    assert fncGetRoleDefinitionNames(arm, SUB) == {"abc": "Owner"}


def test_role_definition_failure_degrades():
    arm = FakeClient({"roleDefinitions": AzureRequestError(500, "boom")})

    assert fncGetRoleDefinitionNames(arm, SUB) == {}


def test_schedule_instances_unavailable_returns_none():
    arm = FakeClient({"roleAssignmentScheduleInstances": AzureRequestError(400, "PIM not onboarded")})

    assert fncGetScheduleInstances(arm, SUB) is None


def test_schedule_instances():
    arm = FakeClient({"roleAssignmentScheduleInstances": []})

    assert fncGetScheduleInstances(arm, SUB) == []


class TestResolvePrincipals:
    """Graph display-name lookups."""

    def test_types_and_names(self):
        graph = FakeClient(posts={"getByIds": {"value": [
            {"@odata.type": "#microsoft.graph.user", "id": "u1", "displayName": "Alice"},
            {"@odata.type": "#microsoft.graph.group", "id": "g1", "displayName": "Ops"},
            {"@odata.type": "#microsoft.graph.servicePrincipal", "id": "s1", "displayName": "deployer"},
            {"displayName": "no id"},
        ]}})

        out = fncResolvePrincipals(graph, ["u1", "g1", "s1", "u1", ""])

        assert out == {
            "u1": {"name": "Alice", "type": "User"},
            "g1": {"name": "Ops", "type": "Group"},
            "s1": {"name": "deployer", "type": "ServicePrincipal"},
        }
        assert graph.calls == ["directoryObjects/getByIds"]

    def test_no_graph_client(self):
        assert fncResolvePrincipals(None, ["u1"]) == {}

    def test_failure_degrades(self):
        graph = FakeClient(posts={"getByIds": AzureRequestError(403, "Insufficient privileges")})

        assert fncResolvePrincipals(graph, ["u1"]) == {}
