# ================================================================
# File     : pipeline.py
# Purpose  : Per-environment reconcile pipeline + run-level summary
# Notes    : Environments are independent. They may run in parallel;
#            results are folded only after every worker has finished,
#            in configured order.
# ================================================================

import dataclasses
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Optional

from core.drift import fncAggregateDrift, fncClassifyDrift, fncCountByKind, fncExcludeEphemeral
from core.errors import RoleRetrieverError
from core.models import DriftRecord, Environment, EnvironmentResult, RoleAssignment
from core.normalise import (
    fncNormaliseLiveAssignments,
    fncNormaliseScheduledInstances,
    fncParseManagedAssignments,
)
from core.utils import fncPrintMessage


# ================================================================
# Function: fncReconcileEnvironment
# Purpose : normalise -> exclude ephemeral -> classify for one env
# Notes   : raw_instances=None means PIM data was unavailable
# ================================================================
def fncReconcileEnvironment(
    env: Environment,
    raw_assignments: Iterable[Dict[str, Any]],
    raw_instances: Optional[Iterable[Dict[str, Any]]],
    state_document: Any,
    role_names: Optional[Dict[str, str]] = None,
) -> EnvironmentResult:
    managed = fncParseManagedAssignments(state_document, env.name)
    live = fncNormaliseLiveAssignments(raw_assignments, env.subscription_id, role_names=role_names)

    instances = None if raw_instances is None else fncNormaliseScheduledInstances(raw_instances)
    kept, excluded = fncExcludeEphemeral(live, instances)
    if excluded:
        fncPrintMessage(f"[{env.name}] {len(excluded)} time-bound (PIM) assignment(s) excluded", "debug")

    return EnvironmentResult(
        environment=env.name,
        drift=fncClassifyDrift(kept, managed, env.name),
        live_count=len(live),
        managed_count=len(managed),
        excluded=len(excluded),
    )


def fncApplyPrincipal(a: RoleAssignment, principals: Dict[str, Dict[str, Any]]) -> RoleAssignment:
    """Copy of the assignment with display name/type filled from a principal lookup."""
    info = principals.get(a.principal_id) or {}
    if not info:
        return a
    return dataclasses.replace(
        a,
        principal_display_name=a.principal_display_name or info.get("name"),
        principal_type=a.principal_type or info.get("type"),
    )


# ================================================================
# Function: fncWithPrincipalNames
# Purpose : Fill principal display name/type on drift records
# Notes   : principals: id -> {"name", "type"}; unknown ids untouched
# ================================================================
def fncWithPrincipalNames(records: List[DriftRecord], principals: Dict[str, Dict[str, Any]]) -> List[DriftRecord]:
    return [dataclasses.replace(r, assignment=fncApplyPrincipal(r.assignment, principals)) for r in records]


def _safe_worker(worker: Callable[[Environment], EnvironmentResult], env: Environment) -> EnvironmentResult:
    try:
        return worker(env)
    except RoleRetrieverError as ex:
        fncPrintMessage(f"{ex} — environment skipped.", "error")
        fncPrintMessage(traceback.format_exc(), "debug")
        return EnvironmentResult(environment=env.name, error=str(ex))


# ================================================================
# Function: fncRunEnvironments
# Purpose : Run a worker over every environment, optionally threaded
# Notes   : Read errors are captured per environment; results come
#           back in the order of `environments`
# ================================================================
def fncRunEnvironments(
    environments: List[Environment],
    worker: Callable[[Environment], EnvironmentResult],
    parallel: int = 1,
) -> List[EnvironmentResult]:
    fncPrintMessage(f"Checking {len(environments)} environment(s) (parallel={parallel})", "info")

    if parallel <= 1 or len(environments) <= 1:
        return [_safe_worker(worker, env) for env in environments]

    results: List[Optional[EnvironmentResult]] = [None] * len(environments)
    with ThreadPoolExecutor(max_workers=parallel) as executor:
        futures = {executor.submit(_safe_worker, worker, env): i for i, env in enumerate(environments)}
        for future in as_completed(futures):
            results[futures[future]] = future.result()
    return results


# ================================================================
# Function: fncSummarise
# Purpose : Fold environment results into the run summary
# Notes   : drift_found and failed are independent signals
# ================================================================
def fncSummarise(results: List[EnvironmentResult]) -> Dict[str, Any]:
    ok = [r for r in results if r.ok]
    total, grouped = fncAggregateDrift({r.environment: r.drift for r in ok})
    all_records = [rec for recs in grouped.values() for rec in recs]
    return {
        "total": total,
        "drift_found": total > 0,
        "grouped": grouped,
        "by_kind": fncCountByKind(all_records),
        "checked": [r.environment for r in ok],
        "failed": {r.environment: r.error for r in results if not r.ok},
        "excluded": sum(r.excluded for r in ok),
    }
