# ================================================================
# File     : modules/azure/drift_report.py
# Purpose  : Compare live Azure role assignments with Terraform state
#            for every configured environment and report drift
# Notes    : Read-only. Missing = not managed by Terraform,
#            ConditionMismatch = condition / version differs.
#            PIM-activated (time-bound) assignments are never flagged.
# ================================================================

import functools
from datetime import datetime, timezone
from typing import Any, Dict

from core.config import fncGetEnvironments
from core.exports import DRIFT_COLUMNS, fncExportDriftReport, fncExportList, fncGetExportPath, fncWriteCiOutputs
from core.models import Environment, EnvironmentResult
from core.pipeline import fncReconcileEnvironment, fncRunEnvironments, fncSummarise, fncWithPrincipalNames
from core.utils import fncPrintMessage, fncToTable, fncNewRunId
from handlers.azure.rbac import (
    fncGetRoleAssignments,
    fncGetRoleDefinitionNames,
    fncGetScheduleInstances,
    fncResolvePrincipals,
)
from handlers.terraform.state import fncReadState

REQUIRED_PERMS = [
    "Microsoft.Authorization/roleAssignments/read",
    "Microsoft.Authorization/roleDefinitions/read",
    "Microsoft.Authorization/roleAssignmentScheduleInstances/read",
    "Directory.Read.All (Graph, optional: display names)",
]

EXIT_OK = 0
EXIT_DRIFT = 1
EXIT_READ_FAILURE = 2


# ================================================================
# Function: fncCheckEnvironment
# Purpose : Full read + reconcile for one environment
# Notes   : State is read first so a broken backend costs no ARM calls
# ================================================================
def fncCheckEnvironment(clients: Dict[str, Any], env: Environment) -> EnvironmentResult:
    fncPrintMessage(f"[{env.name}] reading Terraform state…", "debug")
    state = fncReadState(env)

    arm = clients["arm"]
    raw = fncGetRoleAssignments(arm, env.name, env.subscription_id)
    instances = fncGetScheduleInstances(arm, env.subscription_id)
    role_names = fncGetRoleDefinitionNames(arm, env.subscription_id)

    result = fncReconcileEnvironment(env, raw, instances, state, role_names=role_names)
    if result.drift:
        principals = fncResolvePrincipals(clients.get("graph"), [r.assignment.principal_id for r in result.drift])
        result.drift = fncWithPrincipalNames(result.drift, principals)

    fncPrintMessage(
        f"[{env.name}] live={result.live_count} managed={result.managed_count} "
        f"excluded={result.excluded} drift={len(result.drift)}",
        "info",
    )
    return result


# ================================================================
# Function: fncExitCode
# Purpose : Map a run summary to a process exit status
# Notes   : Read failures win over drift
# ================================================================
def fncExitCode(summary: Dict[str, Any], fail_on_drift: bool = False) -> int:
    if summary["failed"]:
        return EXIT_READ_FAILURE
    if summary["drift_found"] and fail_on_drift:
        return EXIT_DRIFT
    return EXIT_OK


def _print_console(summary: Dict[str, Any]) -> None:
    for env, records in summary["grouped"].items():
        if not records:
            fncPrintMessage(f"{env}: no drift 🦴", "success")
            continue
        fncPrintMessage(f"{env}: {len(records)} drifted assignment(s)", "warn")
        print(fncToTable([r.as_row() for r in records], headers=DRIFT_COLUMNS[1:], max_rows=50))

    for env, err in summary["failed"].items():
        fncPrintMessage(f"{env}: could not be checked — {err}", "error")

    tone = "warn" if summary["drift_found"] else "success"
    fncPrintMessage(
        f"Total drift: {summary['total']} "
        f"({', '.join(f'{k}={v}' for k, v in summary['by_kind'].items())}); "
        f"environments checked={len(summary['checked'])}, failed={len(summary['failed'])}",
        tone,
    )


# ================================================================
# Function: run
# Purpose : Entry point for module execution
# Notes   : clients = {"arm": AzureClient, "graph": AzureClient|None}
# ================================================================
def run(clients, args, cfg):
    run_id = fncNewRunId("drift")
    fncPrintMessage(f"Running role assignment drift report (run={run_id})", "info")

    environments = fncGetEnvironments(cfg, getattr(args, "env_list", None))
    if not environments:
        fncPrintMessage("No environments configured — nothing to check.", "warn")

    worker = functools.partial(fncCheckEnvironment, clients)
    results = fncRunEnvironments(environments, worker, parallel=int(cfg.get("parallel", 1) or 1))
    summary = fncSummarise(results)

    _print_console(summary)

    formats = fncExportList(getattr(args, "export", None))
    if formats:
        out_dir = fncGetExportPath("drift_report", explicit=getattr(args, "out", None))
        fncExportDriftReport(summary, results, formats, out_dir, run_id)

    fncWriteCiOutputs(summary)

    return {
        "provider": "azure",
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": summary,
        "results": results,
        "exit_code": fncExitCode(summary, bool(getattr(args, "fail_on_drift", False))),
    }
