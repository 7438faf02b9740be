"""Shared schema keys to avoid magic strings across archive-saver modules."""

from __future__ import annotations

# Rule payload keys
K_PATTERN = "pattern"
K_MODE = "mode"

# Persistence keys
K_BLACKLIST = "ia_saver_blacklist"
K_CACHE_PREFIX = "ia_saver_cache:"

# Archive status cache entry
K_TIMESTAMP = "timestamp"
K_DATA = "data"

# Availability API response
K_ARCHIVED_SNAPSHOTS = "archived_snapshots"
K_CLOSEST = "closest"
K_URL = "url"
