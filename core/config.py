# ================================================================
# File     : config.py
# Purpose  : Configuration management for RoleRetriever
# Notes    : Handles initial creation, loading, env overrides and the
#            list of environments (subscriptions) to reconcile
# ================================================================

import pathlib
from typing import List, Optional

from core.models import Environment
from core.utils import fncPrintMessage, fncEnsureFolder, fncReadJSON, fncWriteJSON, fncLoadEnv

DEFAULT_HOME = pathlib.Path.home() / ".roleretriever"


# ================================================================
# Function: fncDefaultConfig
# Purpose : Return a default configuration dictionary
# Notes   : Called when config file does not exist
# ================================================================
def fncDefaultConfig() -> dict:
    return {
        "version": "1.0",
        "roleretriever_home": str(DEFAULT_HOME),
        "debug": False,
        "parallel": 1,
        "providers": {
            "azure": {
                "tenant_id": "",
                "client_id": "",
                "client_secret": "",
                "authority": "https://login.microsoftonline.com"
            }
        },
        "environments": [
            {
                "name": "example",
                "subscription_id": "00000000-0000-0000-0000-000000000000",
                "state_file": "",
                "terraform_dir": "",
                "tfvars_file": ""
            }
        ]
    }


# ================================================================
# Function: fncInitConfig
# Purpose : Create or load configuration file
# Notes   : Ensures base folder exists; returns full config dict
# ================================================================
def fncInitConfig(config_path: str = None) -> dict:
    path = pathlib.Path(config_path or DEFAULT_HOME / "config.json")

    fncEnsureFolder(path.parent)

    if not path.exists():
        fncPrintMessage(f"No config found at {path}. Creating default...", "warn")
        cfg = fncDefaultConfig()
        fncWriteJSON(str(path), cfg)
        return fncApplyEnvOverrides(cfg)
    return fncLoadConfig(str(path))


# ================================================================
# Function: fncLoadConfig
# Purpose : Load configuration file and apply environment overrides
# Notes   : Missing keys fall back to the defaults
# ================================================================
def fncLoadConfig(config_path: str) -> dict:
    cfg = fncDefaultConfig()
    loaded = fncReadJSON(config_path)

    for key, val in loaded.items():
        if key == "providers" and isinstance(val, dict):
            for provider, values in val.items():
                cfg["providers"].setdefault(provider, {}).update(values or {})
        else:
            cfg[key] = val

    fncPrintMessage(f"Loaded configuration from {config_path}", "debug")
    return fncApplyEnvOverrides(cfg)


# ================================================================
# Function: fncApplyEnvOverrides
# Purpose : Environment variables win over the file (CI/CD, containers)
# Notes   : AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET
# ================================================================
def fncApplyEnvOverrides(cfg: dict) -> dict:
    azure = cfg["providers"].setdefault("azure", {})
    azure.update({
        "tenant_id": fncLoadEnv("AZURE_TENANT_ID", azure.get("tenant_id")),
        "client_id": fncLoadEnv("AZURE_CLIENT_ID", azure.get("client_id")),
        "client_secret": fncLoadEnv("AZURE_CLIENT_SECRET", azure.get("client_secret")),
    })
    return cfg


# ================================================================
# Function: fncGetProviderConfig
# Purpose : Return config block for a specific provider
# ================================================================
def fncGetProviderConfig(cfg: dict, provider: str) -> dict:
    providers = cfg.get("providers", {})
    if provider not in providers:
        fncPrintMessage(f"Provider not found in config: {provider}", "warn")
        return {}
    return providers[provider]


# ================================================================
# Function: fncGetEnvironments
# Purpose : Build Environment records from config, optionally filtered
# Notes   : Entries without a subscription_id are skipped with a warning
# ================================================================
def fncGetEnvironments(cfg: dict, only: Optional[List[str]] = None) -> List[Environment]:
    wanted = {n.lower() for n in (only or [])}
    out: List[Environment] = []
    for raw in cfg.get("environments") or []:
        name = (raw.get("name") or raw.get("subscription_id") or "").strip()
        sub = (raw.get("subscription_id") or "").strip()
        if not sub:
            fncPrintMessage(f"Environment '{name or '?'}' has no subscription_id — skipped.", "warn")
            continue
        if wanted and name.lower() not in wanted:
            continue
        out.append(Environment(
            name=name,
            subscription_id=sub,
            state_file=raw.get("state_file") or None,
            terraform_dir=raw.get("terraform_dir") or None,
            tfvars_file=raw.get("tfvars_file") or None,
        ))
    if wanted:
        missing = wanted - {e.name.lower() for e in out}
        for name in sorted(missing):
            fncPrintMessage(f"Requested environment not in config: {name}", "warn")
    return out


# ================================================================
# Function: fncApplyCliOverrides
# Purpose : Apply command-line flags to the loaded config
# ================================================================
def fncApplyCliOverrides(cfg: dict, args) -> dict:
    if getattr(args, "debug", None):
        cfg["debug"] = True
    if getattr(args, "parallel", None) is not None:
        cfg["parallel"] = max(1, int(args.parallel))
    return cfg


# ================================================================
# Function: fncIsDebug
# Purpose : Return whether debug mode is enabled in config
# ================================================================
def fncIsDebug(cfg: dict) -> bool:
    return bool(cfg.get("debug", False))
