from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.keys import K_BLACKLIST
from .saver_config import ENV_EXTERNAL_URL, ENV_LOAD_EXTERNAL, ENV_STORE_PATH, SaverConfig


def _check_writable(path: Path) -> bool:
    try:
        if path.exists():
            return os.access(path, os.W_OK)
        for parent in path.parents:
            if parent.exists():
                return os.access(parent, os.W_OK)
        return False
    except OSError:
        return False


def _count_stored_rules(path: Path) -> Optional[int]:
    from .kv_store import JsonFileStore

    if not path.exists():
        return 0
    raw = JsonFileStore(path).get(K_BLACKLIST, [])
    return len(raw) if isinstance(raw, list) else None


def build_doctor_report(config: Optional[SaverConfig] = None) -> Dict[str, Any]:
    cfg = config or SaverConfig.from_env()
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    add_check(
        ENV_STORE_PATH,
        _check_writable(cfg.store_path),
        detail=str(cfg.store_path),
        remedy=f"Create the directory or set {ENV_STORE_PATH} to a writable location.",
    )

    stored = _count_stored_rules(cfg.store_path)
    add_check(
        "local_blacklist",
        stored is not None,
        detail=f"{stored} stored entries" if stored is not None else "Stored blacklist is not a list",
        remedy="Re-import a blacklist with `archive-saver import <file>`.",
    )

    if cfg.load_external:
        add_check(
            ENV_EXTERNAL_URL,
            bool(cfg.external_url),
            detail=cfg.external_url or "External blacklist enabled but no URL configured",
            remedy=f"Set {ENV_EXTERNAL_URL} or disable with {ENV_LOAD_EXTERNAL}=0.",
        )
    else:
        add_check(ENV_LOAD_EXTERNAL, True, detail="External blacklist disabled", level="info")

    add_check(
        "archive_status_cache",
        True,
        detail=f"enabled, {cfg.cache_ttl:g}s freshness" if cfg.cache_enabled else "disabled",
        level="info",
    )
    add_check("max_snapshot_age", True, detail=f"{cfg.max_age_hours:g} hours", level="info")
    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("Archive saver doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        lines.append(f"- [{level}] {name}: {status}")
        detail = check.get("detail")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy and status != "ok":
            lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"
