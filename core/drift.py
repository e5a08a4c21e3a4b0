# ================================================================
# File     : drift.py
# Purpose  : Ephemeral-assignment exclusion, drift classification
#            and cross-environment aggregation
# Notes    : Pure and order-preserving so repeated runs over the same
#            inputs give byte-identical reports
# ================================================================

from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from core.models import (
    DriftKind,
    DriftRecord,
    ManagedAssignment,
    RoleAssignment,
    ScheduledInstance,
)


def _norm(val: Optional[str]) -> str:
    return (val or "").strip()


# ================================================================
# Function: fncEphemeralIds
# Purpose : Collect ids of assignments backed by a time-bound
#           schedule instance (end time set)
# ================================================================
def fncEphemeralIds(scheduled_instances: Iterable[ScheduledInstance]) -> Set[str]:
    return {
        si.origin_assignment_id.lower()
        for si in scheduled_instances or []
        if si.origin_assignment_id and _norm(si.end_time)
    }


# ================================================================
# Function: fncExcludeEphemeral
# Purpose : Drop just-in-time (PIM activated) assignments from live
# Notes   : scheduled_instances=None means the source was unreadable;
#           the filter then keeps everything
# ================================================================
def fncExcludeEphemeral(
    live: List[RoleAssignment],
    scheduled_instances: Optional[Iterable[ScheduledInstance]],
) -> Tuple[List[RoleAssignment], List[RoleAssignment]]:
    if scheduled_instances is None:
        return list(live), []

    ephemeral = fncEphemeralIds(scheduled_instances)
    kept: List[RoleAssignment] = []
    excluded: List[RoleAssignment] = []
    for a in live:
        (excluded if a.key in ephemeral else kept).append(a)
    return kept, excluded


# ================================================================
# Function: fncConditionsDiffer
# Purpose : Compare condition + condition version of live vs managed
# Notes   : Version only matters when either side has a condition
# ================================================================
def fncConditionsDiffer(a: RoleAssignment, m: ManagedAssignment) -> bool:
    cond_a = _norm(a.condition)
    cond_m = _norm(m.condition)
    if cond_a != cond_m:
        return True
    if not cond_a and not cond_m:
        return False
    return _norm(a.condition_version) != _norm(m.condition_version)


# ================================================================
# Function: fncClassifyDrift
# Purpose : Classify live assignments against Terraform-managed ones
# Notes   : Missing = not in state; ConditionMismatch = condition or
#           its version differs. Managed-only entries are not drift.
# ================================================================
def fncClassifyDrift(
    live: Iterable[RoleAssignment],
    managed: Mapping[str, ManagedAssignment],
    environment: str = "",
) -> List[DriftRecord]:
    records: List[DriftRecord] = []
    seen: Set[str] = set()

    for a in live:
        k = a.key
        if k in seen:
            continue
        seen.add(k)

        m = managed.get(k)
        if m is None:
            records.append(DriftRecord(environment, a, DriftKind.MISSING))
        elif fncConditionsDiffer(a, m):
            records.append(DriftRecord(environment, a, DriftKind.CONDITION_MISMATCH))
    return records


# ================================================================
# Function: fncAggregateDrift
# Purpose : Fold per-environment drift into (total, grouped)
# Notes   : Group order follows the input mapping; records keep the
#           classifier's order
# ================================================================
def fncAggregateDrift(
    per_environment: Mapping[str, List[DriftRecord]],
) -> Tuple[int, Dict[str, List[DriftRecord]]]:
    grouped: Dict[str, List[DriftRecord]] = {}
    total = 0
    for environment, records in per_environment.items():
        grouped.setdefault(environment, []).extend(records or [])
        total += len(records or [])
    return total, grouped


# ================================================================
# Function: fncCountByKind
# Purpose : Per-kind counts for summaries
# ================================================================
def fncCountByKind(records: Iterable[DriftRecord]) -> Dict[str, int]:
    counts = {kind.value: 0 for kind in DriftKind}
    for r in records:
        counts[r.drift_kind.value] += 1
    return counts
