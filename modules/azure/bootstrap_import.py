# ================================================================
# File     : modules/azure/bootstrap_import.py
# Purpose  : Bring existing role assignments under Terraform: write a
#            role_assignments tfvars file and matching import blocks
# Notes    : Assignments already in state or the prior tfvars are skipped.
#            Indices continue after the highest one already present in
#            the environment's tfvars_file. Time-bound (PIM) assignments
#            are never imported.
# ================================================================

import functools
import pathlib
from typing import Any, Dict

from core.config import fncGetEnvironments
from core.drift import fncExcludeEphemeral
from core.errors import StateReadError
from core.exports import fncGetExportPath
from core.import_plan import (
    fncBuildImportPlan,
    fncDropAlreadyManaged,
    fncMaxIndexFromVariables,
    fncSortForImport,
    fncValidateImportInput,
)
from core.models import Environment, EnvironmentResult
from core.normalise import fncNormaliseLiveAssignments, fncNormaliseScheduledInstances, fncParseManagedAssignments
from core.pipeline import fncApplyPrincipal, fncRunEnvironments
from core.utils import fncPrintMessage, fncToTable, fncNewRunId, fncWriteJSON, fncWriteText
from handlers.azure.rbac import (
    fncGetRoleAssignments,
    fncGetRoleDefinitionNames,
    fncGetScheduleInstances,
    fncResolvePrincipals,
)
from handlers.terraform.render import DEFAULT_RESOURCE, fncRenderImportBlocks, fncRenderVariables
from handlers.terraform.state import fncReadPriorVariables, fncReadState

REQUIRED_PERMS = [
    "Microsoft.Authorization/roleAssignments/read",
    "Microsoft.Authorization/roleDefinitions/read",
    "Directory.Read.All (Graph, optional: display names)",
]


def _slug(name: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in name)


# ================================================================
# Function: fncPlanEnvironment
# Purpose : Read live assignments for one environment and build its
#           import plan
# Notes   : Assignments already in state or in the prior tfvars are
#           skipped. DataQualityError propagates so the environment
#           is reported as failed rather than producing bad tfvars.
# ================================================================
def fncPlanEnvironment(clients: Dict[str, Any], env: Environment) -> EnvironmentResult:
    arm = clients["arm"]
    raw = fncGetRoleAssignments(arm, env.name, env.subscription_id)
    role_names = fncGetRoleDefinitionNames(arm, env.subscription_id)
    instances = fncGetScheduleInstances(arm, env.subscription_id)

    try:
        prior = fncReadPriorVariables(env.tfvars_file)
    except (OSError, ValueError) as ex:
        raise StateReadError(env.name, f"could not read prior variables {env.tfvars_file}: {ex}") from ex

    managed = {}
    if env.state_file or env.terraform_dir:
        managed = fncParseManagedAssignments(fncReadState(env), env.name)

    live = fncNormaliseLiveAssignments(raw, env.subscription_id, role_names=role_names)
    kept, excluded = fncExcludeEphemeral(
        live, None if instances is None else fncNormaliseScheduledInstances(instances)
    )
    kept, already = fncDropAlreadyManaged(kept, prior, managed.keys())
    if already:
        fncPrintMessage(f"[{env.name}] {len(already)} assignment(s) already managed, skipped", "debug")

    principals = fncResolvePrincipals(clients.get("graph"), [a.principal_id for a in kept])
    kept = [fncApplyPrincipal(a, principals) for a in kept]
    kept = fncSortForImport(kept)
    fncValidateImportInput(kept)

    plan = fncBuildImportPlan(kept, fncMaxIndexFromVariables(prior))
    fncPrintMessage(f"[{env.name}] {len(plan)} assignment(s) planned for import, {len(excluded)} time-bound skipped", "info")
    return EnvironmentResult(
        environment=env.name,
        plan=plan,
        live_count=len(live),
        managed_count=len(already),
        excluded=len(excluded),
        prior_variables=prior,
    )


# ================================================================
# Function: fncWritePlanArtefacts
# Purpose : Write import_<env>.tf and role_assignments_<env>.auto.tfvars.json
# Notes   : Merges over the prior variables read while planning
# ================================================================
def fncWritePlanArtefacts(env: Environment, result: EnvironmentResult, out_dir: pathlib.Path,
                          resource_address: str = DEFAULT_RESOURCE) -> Dict[str, str]:
    slug = _slug(env.name)
    tf_path = out_dir / f"import_{slug}.tf"
    vars_path = out_dir / f"role_assignments_{slug}.auto.tfvars.json"

    fncWriteText(str(tf_path), fncRenderImportBlocks(result.plan, resource_address))
    fncWriteJSON(str(vars_path), fncRenderVariables(result.plan, result.prior_variables))
    return {"imports": str(tf_path), "variables": str(vars_path)}


# ================================================================
# Function: run
# Purpose : Entry point for module execution
# ================================================================
def run(clients, args, cfg):
    run_id = fncNewRunId("bootstrap")
    fncPrintMessage(f"Running Terraform import bootstrap (run={run_id})", "info")

    environments = fncGetEnvironments(cfg, getattr(args, "env_list", None))
    worker = functools.partial(fncPlanEnvironment, clients)
    results = fncRunEnvironments(environments, worker, parallel=int(cfg.get("parallel", 1) or 1))

    out_dir = fncGetExportPath("bootstrap_import", explicit=getattr(args, "out", None))
    resource_address = getattr(args, "resource", None) or DEFAULT_RESOURCE
    written = {}
    for env, result in zip(environments, results):
        if not result.ok:
            fncPrintMessage(f"{env.name}: could not be bootstrapped — {result.error}", "error")
            continue
        if not result.plan:
            fncPrintMessage(f"{env.name}: nothing to import", "success")
            continue
        rows = [
            {"index": e.index, "principal": e.assignment.display_name, "role": e.assignment.role_label,
             "scope": e.assignment.scope}
            for e in result.plan
        ]
        print(fncToTable(rows, max_rows=30))
        written[env.name] = fncWritePlanArtefacts(env, result, out_dir, resource_address)

    failed = {r.environment: r.error for r in results if not r.ok}
    return {
        "provider": "azure",
        "run_id": run_id,
        "results": results,
        "written": written,
        "failed": failed,
        "exit_code": 2 if failed else 0,
    }
