# ================================================================
# File     : exports.py
# Purpose  : Export logic for RoleRetriever (CSV, JSON, Markdown,
#            CI outputs)
# Notes    : Called by modules once results are folded
# ================================================================

import os
import pathlib
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from core.models import EnvironmentResult
from core.utils import fncPrintMessage, fncEnsureFolder, fncExportCSV, fncWriteJSON, fncWriteText, fncToTable

SUPPORTED_FORMATS = {"csv", "json", "md"}
DRIFT_COLUMNS = ["environment", "drift", "principal", "principalId", "role", "scope", "condition", "assignmentId"]


# ================================================================
# Function: fncExportList
# Purpose  : Flatten --export list-of-lists from argparse
# Notes    : "csv,json md" -> {"csv", "json", "md"}; unknown formats
#            are dropped with a warning
# ================================================================
def fncExportList(args_export) -> set:
    if not args_export:
        return set()
    chunks = [args_export] if isinstance(args_export, str) else args_export
    out = set()
    for chunk in chunks:
        if not isinstance(chunk, str):
            continue
        for part in chunk.replace(",", " ").split():
            fmt = part.strip().lower()
            if fmt == "markdown":
                fmt = "md"
            if fmt in SUPPORTED_FORMATS:
                out.add(fmt)
            else:
                fncPrintMessage(f"Unknown export format ignored: {fmt}", "warn")
    return out


# ================================================================
# Function: fncGetExportPath
# Purpose  : Build structured output path under ~/.roleretriever/reports/
# Notes    : An explicit --out directory is used as-is
# ================================================================
def fncGetExportPath(module_name: str, root: pathlib.Path = None, explicit: str = None) -> pathlib.Path:
    if explicit:
        return fncEnsureFolder(explicit)
    if root is None:
        root = pathlib.Path.home() / ".roleretriever" / "reports"
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    mod_slug = module_name.replace("/", "_").replace("\\", "_")
    return fncEnsureFolder(pathlib.Path(root) / ts / mod_slug)


# ================================================================
# Function: fncDriftRows
# Purpose  : Flatten grouped drift into table rows (group order kept)
# ================================================================
def fncDriftRows(grouped: Dict[str, Iterable]) -> List[Dict[str, Any]]:
    return [rec.as_row() for records in grouped.values() for rec in records]


# ================================================================
# Function: fncRenderMarkdown
# Purpose  : Markdown drift report (summary, failures, per-env tables)
# ================================================================
def fncRenderMarkdown(summary: Dict[str, Any], results: List[EnvironmentResult]) -> str:
    lines = ["# Role assignment drift report", ""]
    lines.append(f"- Drift found: **{'yes' if summary['drift_found'] else 'no'}**")
    lines.append(f"- Total drifted assignments: **{summary['total']}**")
    for kind, count in summary["by_kind"].items():
        lines.append(f"- {kind}: {count}")
    lines.append(f"- Time-bound (PIM) assignments excluded: {summary['excluded']}")
    lines.append("")

    overview = [
        {
            "environment": r.environment,
            "status": "ok" if r.ok else "failed",
            "live": r.live_count,
            "managed": r.managed_count,
            "excluded": r.excluded,
            "drift": len(r.drift),
        }
        for r in results
    ]
    lines.append(fncToTable(overview))
    lines.append("")

    if summary["failed"]:
        lines.append("## Environments that could not be checked")
        lines.append("")
        for env, err in summary["failed"].items():
            lines.append(f"- `{env}`: {err}")
        lines.append("")

    for env, records in summary["grouped"].items():
        if not records:
            continue
        lines.append(f"## {env}")
        lines.append("")
        lines.append(fncToTable([r.as_row() for r in records], headers=DRIFT_COLUMNS[1:]))
        lines.append("")

    return "\n".join(lines)


# ================================================================
# Function: fncExportDriftReport
# Purpose  : Write every requested format for a drift run
# ================================================================
def fncExportDriftReport(summary: Dict[str, Any], results: List[EnvironmentResult], formats: set,
                         out_dir: pathlib.Path, run_id: str) -> None:
    rows = fncDriftRows(summary["grouped"])

    if "json" in formats:
        fncWriteJSON(str(out_dir / "drift_report.json"), {
            "run_id": run_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "summary": {k: v for k, v in summary.items() if k != "grouped"},
            "environments": [
                {
                    "environment": r.environment,
                    "ok": r.ok,
                    "error": r.error,
                    "live": r.live_count,
                    "managed": r.managed_count,
                    "excluded": r.excluded,
                    "drift": [rec.as_row() for rec in r.drift],
                }
                for r in results
            ],
        })

    if "csv" in formats:
        fncExportCSV(str(out_dir / "drift_report.csv"), rows, headers=DRIFT_COLUMNS)

    if "md" in formats:
        fncWriteText(str(out_dir / "drift_report.md"), fncRenderMarkdown(summary, results))

    fncPrintMessage(f"Exports written → {out_dir}", "success")


# ================================================================
# Function: fncWriteCiOutputs
# Purpose  : Surface drift signal to GitHub Actions via GITHUB_OUTPUT
# Notes    : No-op outside CI
# ================================================================
def fncWriteCiOutputs(summary: Dict[str, Any]) -> bool:
    target = os.getenv("GITHUB_OUTPUT")
    if not target:
        return False
    with open(target, "a", encoding="utf-8") as f:
        f.write(f"drift_found={'true' if summary['drift_found'] else 'false'}\n")
        f.write(f"drift_count={summary['total']}\n")
        f.write(f"failed_environments={','.join(summary['failed'].keys())}\n")
    fncPrintMessage(f"CI outputs appended → {target}", "debug")
    return True
