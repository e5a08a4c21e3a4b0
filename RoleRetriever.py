#!/usr/bin/env python3
# ================================================================
# Tool     : RoleRetriever
# Purpose  : Azure RBAC drift detection against Terraform state,
#            plus Terraform import bootstrap
# Notes    : "Fetches every stray role assignment." 🐕
# ================================================================

import argparse
import sys

from core.config import fncInitConfig, fncApplyCliOverrides, fncIsDebug, fncGetProviderConfig
from core.utils import fncPrintMessage, fncSetDebug, fncDisplayBanner, fncBlurb, fncMask
from core.module_loader import fncRunModule, fncDiscoverModules

VERSION = "v1.0"


# ================================================================
# Function: fncParseArguments
# Purpose  : Define and parse command-line arguments
# ================================================================
def fncParseArguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="RoleRetriever",
        description="RoleRetriever 🐕 — Azure role assignment drift detector"
    )

    parser.add_argument(
        "provider",
        choices=["azure"],
        help="Cloud provider to target"
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--scan",
        help="Module to execute (drift_report, bootstrap_import)"
    )
    group.add_argument(
        "--list",
        action="store_true",
        help="List available modules for the provider"
    )

    parser.add_argument("--config", help="Path to config.json (default: ~/.roleretriever/config.json)", default=None)

    parser.add_argument(
        "--env",
        help="Comma-separated environment names to check (default: all configured)",
        default=""
    )

    parser.add_argument(
        "--parallel",
        type=int,
        default=None,
        help="Number of environments to check concurrently (default: 1 = sequential)"
    )

    parser.add_argument(
        "--export",
        nargs="*",
        metavar="FMT[,FMT...]",
        help="Export formats: csv, json, md. Example: --export csv,md json",
        default=None
    )

    parser.add_argument("--out", help="Write exports / import files to this directory", default=None)

    parser.add_argument(
        "--resource",
        help="Terraform resource address for import blocks (bootstrap_import)",
        default=None
    )

    parser.add_argument(
        "--fail-on-drift",
        action="store_true",
        help="Exit 1 when drift is found (read failures always exit 2)"
    )

    parser.add_argument(
        "--no-graph",
        action="store_true",
        help="Skip Microsoft Graph display-name lookups"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug output"
    )

    args = parser.parse_args(argv)
    args.env_list = [e.strip() for e in args.env.split(",") if e.strip()]
    return args


# ================================================================
# Function: fncInitClient
# Purpose : Initialise ARM (+ optional Graph) clients
# Notes   : One MSAL app serves both token audiences
# ================================================================
def fncInitClient(provider: str, cfg: dict, use_graph: bool = True):
    if provider != "azure":
        fncPrintMessage(f"Unsupported provider: {provider}", "error")
        return None

    from handlers.azure.client import (
        AzureClient, AzureRequestError, fncBuildMsalApp,
        ARM_ROOT, ARM_SCOPE, GRAPH_ROOT, GRAPH_SCOPE,
    )

    azure_cfg = fncGetProviderConfig(cfg, "azure")
    if not all([azure_cfg.get("tenant_id"), azure_cfg.get("client_id"), azure_cfg.get("client_secret")]):
        fncPrintMessage("Missing Azure credentials — dropping into interactive mode…", "warn")
    else:
        fncPrintMessage(
            f"Using app {azure_cfg.get('client_id')} (secret {fncMask(azure_cfg.get('client_secret'))}) "
            f"in tenant {azure_cfg.get('tenant_id')}",
            "debug",
        )

    app = fncBuildMsalApp(
        tenant_id=azure_cfg.get("tenant_id"),
        client_id=azure_cfg.get("client_id"),
        client_secret=azure_cfg.get("client_secret"),
        authority=azure_cfg.get("authority"),
    )

    try:
        clients = {"arm": AzureClient(app, ARM_ROOT, ARM_SCOPE), "graph": None}
    except AzureRequestError as ex:
        fncPrintMessage(f"Could not authenticate to Azure Resource Manager: {ex}", "error")
        return None

    if use_graph:
        try:
            clients["graph"] = AzureClient(app, GRAPH_ROOT, GRAPH_SCOPE)
        except AzureRequestError as ex:
            fncPrintMessage(f"Graph unavailable, principal names will show as placeholders ({ex})", "warn")

    fncPrintMessage("Azure clients initialised (read-only).", "success")
    return clients


# ================================================================
# Function: main
# Purpose : Main entry point for RoleRetriever execution
# Notes   : Returns the process exit status
# ================================================================
def main(argv=None) -> int:
    args = fncParseArguments(argv)

    cfg = fncInitConfig(args.config)
    cfg = fncApplyCliOverrides(cfg, args)
    fncSetDebug(fncIsDebug(cfg))

    if args.list:
        for mod in fncDiscoverModules(args.provider):
            print(mod)
        return 0

    fncDisplayBanner(VERSION)
    fncBlurb(args.provider)
    fncPrintMessage("Debug output enabled.", "debug")

    clients = fncInitClient(args.provider, cfg, use_graph=not args.no_graph)
    if not clients:
        fncPrintMessage("Unable to continue without valid provider client.", "error")
        return 2

    fncPrintMessage(f"Running scan module: {args.scan}", "info")
    result = fncRunModule(args.provider, args.scan, clients, args, cfg)

    if not isinstance(result, dict) or "exit_code" not in result:
        return 2

    fncPrintMessage("Retrieval complete. Good dog.", "success")
    return int(result["exit_code"])


if __name__ == "__main__":
    sys.exit(main())
