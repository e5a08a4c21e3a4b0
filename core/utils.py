# ================================================================
# File     : utils.py
# Purpose  : Common helpers for RoleRetriever (console, files, data)
# Notes    : British English; coloured output; tables via tabulate
# ================================================================

import os
import json
import csv
import time
import uuid
import pathlib
import random
from typing import Any, Dict, Iterable, List, Optional, Tuple

from colorama import Fore, Style, init as _colorama_init
from tabulate import tabulate

_colorama_init(autoreset=True)

DEBUG_ENABLED = False


# ================================================================
# Function: fncSetDebug
# Purpose : Globally enable/disable debug output
# Notes   : Called from main after config + CLI overrides
# ================================================================
def fncSetDebug(enabled: bool) -> None:
    global DEBUG_ENABLED
    DEBUG_ENABLED = bool(enabled)


# ================================================================
# Function: fncPrintMessage
# Purpose : Standardised console output with levels and colours
# Notes   : Levels: info, warn, error, success, debug
# ================================================================
def fncPrintMessage(message: str, level: str = "info") -> None:
    if level == "debug" and not DEBUG_ENABLED:
        return
    colours = {
        "info": Fore.CYAN,
        "warn": Fore.YELLOW,
        "error": Fore.RED,
        "success": Fore.GREEN,
        "debug": Fore.MAGENTA
    }
    prefix = {
        "info": "[•]",
        "warn": "[!]",
        "error": "[✗]",
        "success": "[✓]",
        "debug": "[∆]"
    }
    colour = colours.get(level, "")
    mark = prefix.get(level, "[ ]")
    print(f"{colour}{mark} {message}{Style.RESET_ALL}")


# ================================================================
# Function: fncDisplayBanner
# Purpose : Display RoleRetriever ASCII banner in rainbow colours
# Notes   : Retriever mascot sits to the right of the title
# ================================================================
def fncDisplayBanner(version: str = "v1.0"):
    banner_lines = [
        " ____       _      ____      _        _                     ",
        "|  _ \\ ___ | | ___|  _ \\ ___| |_ _ __(_) _____   _____ _ __ ",
        "| |_) / _ \\| |/ _ \\ |_) / _ \\ __| '__| |/ _ \\ \\ / / _ \\ '__|",
        "|  _ < (_) | |  __/  _ <  __/ |_| |  | |  __/\\ V /  __/ |   ",
        "|_| \\_\\___/|_|\\___|_| \\_\\___|\\__|_|  |_|\\___| \\_/ \\___|_|   ",
    ]

    dog_lines = [
        "  __      ",
        " (___()'`;",
        " /,    /` ",
        " \\\\\"--\\\\   ",
    ]

    colours = [Fore.RED, Fore.YELLOW, Fore.GREEN, Fore.BLUE]

    def rainbow(text: str) -> str:
        """Cycle through colours for a rainbow effect"""
        out = ""
        for i, ch in enumerate(text):
            out += colours[i % len(colours)] + ch
        return out + Style.RESET_ALL

    print("\n")

    max_banner_len = max(len(line) for line in banner_lines)
    for i, line in enumerate(banner_lines):
        combined_line = line.ljust(max_banner_len + 4)
        if 0 < i <= len(dog_lines):
            combined_line += dog_lines[i - 1]
        print(rainbow(combined_line))

    print(f"{Fore.CYAN}\nRoleRetriever {version} — 'Fetches every stray role assignment.'{Style.RESET_ALL}\n")


# ================================================================
# Function: fncBlurb
# Purpose : Display a short blurb describing current action
# Notes   : Picks at random unless a flavour is supplied
# ================================================================
def fncBlurb(action: str, flavour: str = None):
    blurbs = {
        "azure": [
            "Sniffing subscriptions for role assignments Terraform never met…",
            "Fetching role assignments and comparing them with the state file…",
            "Following the RBAC scent trail across your subscriptions…"
        ],
        "generic": [
            "Lacing up the harness…",
            "Warming up the nose…",
            "Throwing the stick into the cloud…"
        ]
    }

    flavour_text = flavour or random.choice(blurbs.get(action, blurbs["generic"]))
    fncPrintMessage(flavour_text, "info")


# ================================================================
# Function: fncEnsureFolder
# Purpose : Create a folder if it does not exist
# Notes   : Returns pathlib.Path object
# ================================================================
def fncEnsureFolder(path) -> pathlib.Path:
    p = pathlib.Path(path).expanduser().resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


# ================================================================
# Function: fncLoadEnv
# Purpose : Read environment variable with default
# Notes   : Strips quotes; returns default if unset
# ================================================================
def fncLoadEnv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name, default)
    if isinstance(val, str):
        return val.strip().strip('"').strip("'")
    return val


# ================================================================
# Function: fncReadJSON
# Purpose : Load JSON from file
# Notes   : Returns {} on failure when safe=True, raises otherwise
# ================================================================
def fncReadJSON(path: str, safe: bool = True) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as ex:
        if safe:
            fncPrintMessage(f"Could not read JSON '{path}': {ex}", "warn")
            return {}
        raise


# ================================================================
# Function: fncWriteJSON
# Purpose : Write data to JSON with nice formatting
# Notes   : Ensures parent folder exists; UTF-8; 2-space indent
# ================================================================
def fncWriteJSON(path: str, data: Any) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    fncPrintMessage(f"Saved JSON → {p}", "success")


# ================================================================
# Function: fncWriteText
# Purpose : Write a text artefact (Markdown, Terraform) to disk
# ================================================================
def fncWriteText(path: str, text: str) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        f.write(text)
    fncPrintMessage(f"Saved → {p}", "success")


# ================================================================
# Function: fncExportCSV
# Purpose : Save list[dict] or list[list] to CSV
# Notes   : Dict rows keep the key order of the first row, extra
#           keys from later rows are appended
# ================================================================
def fncExportCSV(path: str, rows: Iterable[Any], headers: Optional[List[str]] = None) -> None:
    rows = list(rows)
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if not rows:
        with open(p, "w", newline="", encoding="utf-8") as f:
            if headers:
                csv.writer(f).writerow(headers)
        fncPrintMessage(f"Created empty CSV → {p}", "warn")
        return

    if isinstance(rows[0], dict):
        hdrs = list(headers or [])
        for r in rows:
            for k in r.keys():
                if k not in hdrs:
                    hdrs.append(k)
        with open(p, "w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=hdrs)
            w.writeheader()
            for r in rows:
                w.writerow({k: r.get(k, "") for k in hdrs})
    else:
        with open(p, "w", newline="", encoding="utf-8") as f:
            w = csv.writer(f)
            if headers:
                w.writerow(headers)
            for r in rows:
                w.writerow(list(r))

    fncPrintMessage(f"Saved CSV → {p}", "success")


# ================================================================
# Function: fncChunkList
# Purpose : Yield items in fixed-size chunks
# Notes   : Used for batched Graph lookups
# ================================================================
def fncChunkList(items: List[Any], size: int) -> Iterable[List[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


# ================================================================
# Function: fncRetry
# Purpose : Simple retry wrapper with backoff
# Notes   : backoff in seconds; returns fn result or raises
# ================================================================
def fncRetry(fn, attempts: int = 3, backoff: float = 1.5, exceptions: Tuple = (Exception,), *args, **kwargs):
    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except exceptions as ex:
            if attempt < attempts:
                sleep_for = backoff ** (attempt - 1)
                fncPrintMessage(f"Attempt {attempt}/{attempts} failed: {ex}. Retrying in {sleep_for:.1f}s…", "warn")
                time.sleep(sleep_for)
            else:
                fncPrintMessage(f"All {attempts} attempts failed: {ex}", "error")
                raise


# ================================================================
# Function: fncSafeGet
# Purpose : Safe nested dictionary access
# Notes   : path like 'a.b.c'; returns default when missing
# ================================================================
def fncSafeGet(data: Dict[str, Any], path: str, default: Any = None) -> Any:
    cur = data
    for part in path.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        else:
            return default
    return cur


# ================================================================
# Function: fncToTable
# Purpose : Render rows as a table string
# Notes   : Supports list[dict] (keys become headers) or list[list]
# ================================================================
def fncToTable(rows: Iterable[Any], headers: Optional[List[str]] = None, max_rows: Optional[int] = None,
               tablefmt: str = "github") -> str:
    rows = list(rows)
    if not rows:
        return "(no data)"

    truncated = bool(max_rows and len(rows) > max_rows)
    if truncated:
        rows = rows[:max_rows]

    if isinstance(rows[0], dict):
        hdrs = headers or list(rows[0].keys())
        table_rows = [[r.get(h, "") for h in hdrs] for r in rows]
    else:
        hdrs = headers or []
        table_rows = [list(r) for r in rows]

    if truncated:
        table_rows.append(["…"] * len(hdrs or table_rows[0]))

    return tabulate(table_rows, headers=hdrs, tablefmt=tablefmt)


# ================================================================
# Function: fncMask
# Purpose : Mask sensitive strings (client secrets, tokens)
# Notes   : Keeps start/end visible; handles short strings
# ================================================================
def fncMask(value: Optional[str], show: int = 4) -> str:
    if not value:
        return ""
    if len(value) <= show * 2:
        return "*" * len(value)
    return f"{value[:show]}{'*' * (len(value) - (show*2))}{value[-show:]}"


# ================================================================
# Function: fncNewRunId
# Purpose : Generate a short unique run identifier
# Notes   : Useful for correlating logs and outputs
# ================================================================
def fncNewRunId(prefix: str = "run") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"
