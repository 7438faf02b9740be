"""Archive-saver defaults (endpoints, badge presentation, env knobs, paths).

Centralizes static defaults so the workflow modules have no embedded magic
strings. ``SaverConfig.from_env`` builds the runtime configuration; callers
can construct their own ``SaverConfig`` to override any of them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv(override=False)

# Endpoints
ARCHIVE_CHECK_URL = "https://archive.org/wayback/available?url="
ARCHIVE_SAVE_URL = "https://web.archive.org/save/"
ARCHIVE_WEB_URL = "https://web.archive.org/web/"
EXTERNAL_BLACKLIST_URL = (
    "https://raw.githubusercontent.com/gbzret4d/internet-archive-saver/main/blacklist.json"
)

LOG_PREFIX = "[IA Saver]"

# Paths
DEFAULT_STORE_PATH = Path.home() / ".config" / "archive-saver" / "store.json"
EXPORT_FILENAME = "ia_saver_blacklist.json"

# Policy defaults
MAX_SNAPSHOT_AGE_HOURS = 4.0
HTTP_TIMEOUT_SECONDS = 20.0
CACHE_TTL_SECONDS = 600
SAVE_SUCCESS_STATUSES = frozenset({200, 201})
USER_AGENT = "archive-saver/0.1 (+https://web.archive.org)"

# Badge presentation per session state: (color, icon class)
BADGE_STYLES: Dict[str, Tuple[str, str]] = {
    "blacklisted": ("gray", "fas fa-ban"),
    "checking": ("#007bff", "fas fa-spinner fa-spin"),
    "recent": ("darkorange", "fas fa-clock"),
    "archived": ("green", "fas fa-check"),
    "error": ("#ff2e2e", "fas fa-exclamation-triangle"),
    "check_failed": ("orange", "fas fa-exclamation-circle"),
}

# Env var names
ENV_STORE_PATH = "IA_SAVER_STORE_PATH"
ENV_LOAD_EXTERNAL = "IA_SAVER_LOAD_EXTERNAL"
ENV_EXTERNAL_URL = "IA_SAVER_EXTERNAL_URL"
ENV_MAX_AGE_HOURS = "IA_SAVER_MAX_AGE_HOURS"
ENV_TIMEOUT = "IA_SAVER_TIMEOUT"
ENV_CACHE_DISABLE = "IA_SAVER_CACHE_DISABLE"
ENV_CACHE_TTL = "IA_SAVER_CACHE_TTL"
ENV_SHOW_BADGES = "IA_SAVER_SHOW_BADGES"


def _env_bool(name: str, default: str = "0") -> bool:
    raw = os.getenv(name, default)
    return str(raw).strip().lower() not in {"0", "false", "no", "off", ""}


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class SaverConfig:
    """Runtime configuration for a page session."""

    store_path: Path = DEFAULT_STORE_PATH
    load_external: bool = True
    external_url: Optional[str] = EXTERNAL_BLACKLIST_URL
    max_age_hours: float = MAX_SNAPSHOT_AGE_HOURS
    timeout: float = HTTP_TIMEOUT_SECONDS
    cache_enabled: bool = True
    cache_ttl: float = CACHE_TTL_SECONDS
    show_badges: bool = True
    user_agent: str = USER_AGENT

    @classmethod
    def from_env(cls) -> "SaverConfig":
        store_path = os.getenv(ENV_STORE_PATH)
        external_url = os.getenv(ENV_EXTERNAL_URL, EXTERNAL_BLACKLIST_URL).strip()
        return cls(
            store_path=Path(store_path).expanduser() if store_path else DEFAULT_STORE_PATH,
            load_external=_env_bool(ENV_LOAD_EXTERNAL, "1"),
            external_url=external_url or None,
            max_age_hours=max(0.0, _env_float(ENV_MAX_AGE_HOURS, MAX_SNAPSHOT_AGE_HOURS)),
            timeout=max(1.0, _env_float(ENV_TIMEOUT, HTTP_TIMEOUT_SECONDS)),
            cache_enabled=not _env_bool(ENV_CACHE_DISABLE, "0"),
            cache_ttl=max(0.0, _env_float(ENV_CACHE_TTL, CACHE_TTL_SECONDS)),
            show_badges=_env_bool(ENV_SHOW_BADGES, "1"),
        )


__all__ = [
    "ARCHIVE_CHECK_URL",
    "ARCHIVE_SAVE_URL",
    "ARCHIVE_WEB_URL",
    "BADGE_STYLES",
    "EXTERNAL_BLACKLIST_URL",
    "LOG_PREFIX",
    "SaverConfig",
]
