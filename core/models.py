# ================================================================
# File     : models.py
# Purpose  : Canonical records shared by the drift and import engines
# Notes    : Immutable snapshots; built fresh on every run
# ================================================================

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

PLACEHOLDER = "Not Found"


@dataclass(frozen=True)
class RoleAssignment:
    assignment_id: str
    principal_id: str
    scope: str
    principal_display_name: Optional[str] = None
    principal_type: Optional[str] = None
    role_name: Optional[str] = None
    role_definition_id: Optional[str] = None
    condition: Optional[str] = None
    condition_version: Optional[str] = None
    expiry: Optional[datetime] = None

    @property
    def key(self) -> str:
        return self.assignment_id.lower()

    @property
    def display_name(self) -> str:
        return self.principal_display_name or PLACEHOLDER

    @property
    def role_label(self) -> str:
        return self.role_name or self.role_definition_id or PLACEHOLDER


@dataclass(frozen=True)
class ManagedAssignment:
    assignment_id: str
    condition: Optional[str] = None
    condition_version: Optional[str] = None


@dataclass(frozen=True)
class ScheduledInstance:
    origin_assignment_id: str
    end_time: Optional[str] = None


class DriftKind(str, Enum):
    MISSING = "Missing"
    CONDITION_MISMATCH = "ConditionMismatch"


@dataclass(frozen=True)
class DriftRecord:
    environment: str
    assignment: RoleAssignment
    drift_kind: DriftKind

    def as_row(self) -> dict:
        """Flat row used for tables, CSV and Markdown."""
        a = self.assignment
        return {
            "environment": self.environment,
            "drift": self.drift_kind.value,
            "principal": a.display_name,
            "principalId": a.principal_id,
            "role": a.role_label,
            "scope": a.scope,
            "condition": a.condition or "",
            "assignmentId": a.assignment_id,
        }


@dataclass(frozen=True)
class ImportPlanEntry:
    index: int
    assignment_id: str
    assignment: RoleAssignment


@dataclass(frozen=True)
class Environment:
    name: str
    subscription_id: str
    state_file: Optional[str] = None
    terraform_dir: Optional[str] = None
    tfvars_file: Optional[str] = None


@dataclass
class EnvironmentResult:
    environment: str
    drift: List[DriftRecord] = field(default_factory=list)
    plan: List[ImportPlanEntry] = field(default_factory=list)
    live_count: int = 0
    managed_count: int = 0
    excluded: int = 0
    prior_variables: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
