"""Wayback Machine availability check, snapshot request and status badges.

The archive endpoints are external contracts: responses are parsed from JSON
here and any failure becomes a badge rather than an exception.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import aiohttp

from ..core.keys import (
    K_ARCHIVED_SNAPSHOTS,
    K_CACHE_PREFIX,
    K_CLOSEST,
    K_DATA,
    K_TIMESTAMP,
    K_URL,
)
from .kv_store import KeyValueStore
from .saver_config import (
    ARCHIVE_CHECK_URL,
    ARCHIVE_SAVE_URL,
    ARCHIVE_WEB_URL,
    BADGE_STYLES,
    CACHE_TTL_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    LOG_PREFIX,
    MAX_SNAPSHOT_AGE_HOURS,
    SAVE_SUCCESS_STATUSES,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class StatusBadge:
    """What the on-page status indicator shows."""

    state: str
    color: str
    icon: str
    tooltip: str
    link: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def calendar_link(url: str) -> str:
    return f"{ARCHIVE_WEB_URL}*/{url}"


def snapshot_link(timestamp: str, url: str) -> str:
    return f"{ARCHIVE_WEB_URL}{timestamp}/{url}"


def make_badge(state: str, tooltip: str, url: str, *, link: Optional[str] = None) -> StatusBadge:
    color, icon = BADGE_STYLES[state]
    return StatusBadge(state=state, color=color, icon=icon, tooltip=tooltip, link=link or calendar_link(url))


@dataclass(frozen=True)
class ArchiveStatus:
    archived: bool
    timestamp: Optional[str] = None
    snapshot_url: Optional[str] = None


def parse_timestamp(ts: str) -> datetime:
    """Parse a 14-digit Wayback timestamp (``YYYYMMDDhhmmss``, UTC)."""

    raw = (ts or "").strip()
    if len(raw) < 14 or not raw[:14].isdigit():
        raise ValueError(f"Invalid Wayback timestamp: {ts!r}")
    return datetime.strptime(raw[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)


def parse_availability(data: Any) -> ArchiveStatus:
    """Interpret an availability API response; raise ``ValueError`` when it is malformed."""

    if not isinstance(data, dict):
        raise ValueError("Availability response is not an object")
    snapshots = data.get(K_ARCHIVED_SNAPSHOTS)
    if not snapshots:
        return ArchiveStatus(archived=False)
    if not isinstance(snapshots, dict):
        raise ValueError("archived_snapshots is not an object")
    closest = snapshots.get(K_CLOSEST)
    if not isinstance(closest, dict) or not closest.get(K_TIMESTAMP):
        raise ValueError("Availability response has no closest snapshot timestamp")
    timestamp = str(closest[K_TIMESTAMP])
    parse_timestamp(timestamp)
    return ArchiveStatus(archived=True, timestamp=timestamp, snapshot_url=closest.get(K_URL))


def needs_archiving(
    status: ArchiveStatus,
    *,
    now: Optional[datetime] = None,
    max_age: timedelta = timedelta(hours=MAX_SNAPSHOT_AGE_HOURS),
) -> bool:
    if not status.archived or not status.timestamp:
        return True
    current = now or datetime.now(timezone.utc)
    return current - parse_timestamp(status.timestamp) > max_age


class ArchiveStatusCache:
    """Per-URL availability responses kept for a short freshness window."""

    def __init__(self, kv: KeyValueStore, *, ttl: float = CACHE_TTL_SECONDS, clock: Clock = time.time) -> None:
        self._kv = kv
        self._ttl = ttl
        self._clock = clock

    @staticmethod
    def _key(url: str) -> str:
        return f"{K_CACHE_PREFIX}{url}"

    def get(self, url: str) -> Optional[Any]:
        entry = self._kv.get(self._key(url))
        if not isinstance(entry, dict):
            return None
        try:
            stamp = float(entry.get(K_TIMESTAMP, 0)) / 1000.0
        except (TypeError, ValueError):
            return None
        if self._clock() - stamp > self._ttl:
            return None
        return entry.get(K_DATA)

    def put(self, url: str, data: Any) -> None:
        self._kv.set(self._key(url), {K_TIMESTAMP: int(self._clock() * 1000), K_DATA: data})

    def invalidate(self, url: str) -> None:
        self._kv.delete(self._key(url))


class ArchiveClient:
    """Talks to the availability and save endpoints over a shared aiohttp session."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        max_age: timedelta = timedelta(hours=MAX_SNAPSHOT_AGE_HOURS),
        cache: Optional[ArchiveStatusCache] = None,
    ) -> None:
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_age = max_age
        self.cache = cache

    async def resolve_final_url(self, url: str) -> str:
        """Follow redirects for ``url`` without cookies and return where it lands."""

        async with self.session.get(url, allow_redirects=True, timeout=self.timeout) as resp:
            return str(resp.url) or url

    async def _availability_data(self, url: str) -> Any:
        if self.cache is not None:
            cached = self.cache.get(url)
            if cached is not None:
                logger.debug("%s Using cached availability for %s", LOG_PREFIX, url)
                return cached
        check_url = ARCHIVE_CHECK_URL + quote(url, safe="")
        async with self.session.get(check_url, timeout=self.timeout) as resp:
            text = await resp.text()
        data = json.loads(text)
        if self.cache is not None and isinstance(data, dict):
            self.cache.put(url, data)
        return data

    async def check_availability(self, url: str) -> ArchiveStatus:
        return parse_availability(await self._availability_data(url))

    async def save(self, url: str, *, first: bool) -> StatusBadge:
        logger.info("%s Starting archiving for %s...", LOG_PREFIX, url)
        try:
            async with self.session.get(ARCHIVE_SAVE_URL + url, timeout=self.timeout) as resp:
                status = resp.status
                reason = resp.reason or ""
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            message = f"{LOG_PREFIX} Archiving failed"
            logger.error("%s: %s", message, str(exc) or type(exc).__name__)
            return make_badge("error", message, url)
        if status in SAVE_SUCCESS_STATUSES:
            if self.cache is not None:
                self.cache.invalidate(url)
            label = "First archiving" if first else "Archived"
            message = f"{LOG_PREFIX} {label} successfully! ({ARCHIVE_WEB_URL}{url})"
            logger.info(message)
            return make_badge("archived", message, url)
        message = f"{LOG_PREFIX} Archiving error: {status} - {reason}"
        logger.error(message)
        return make_badge("error", message, url)

    async def archive_if_needed(self, url: str, *, now: Optional[datetime] = None) -> StatusBadge:
        try:
            status = await self.check_availability(url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            message = f"{LOG_PREFIX} Failed to query archive availability"
            logger.error("%s: %s", message, str(exc) or type(exc).__name__)
            return make_badge("check_failed", message, url)
        except (ValueError, UnicodeDecodeError) as exc:
            message = f"{LOG_PREFIX} Error parsing archive availability response"
            logger.error("%s: %s", message, exc)
            return make_badge("error", message, url)

        if not status.archived:
            logger.info("%s Archiving needed: No archive found for %s", LOG_PREFIX, url)
            return await self.save(url, first=True)
        if needs_archiving(status, now=now, max_age=self.max_age):
            logger.info(
                "%s Archiving needed: Last archive is older than %s for %s (archived at %s)",
                LOG_PREFIX,
                self.max_age,
                url,
                status.timestamp,
            )
            return await self.save(url, first=False)
        saved_at = parse_timestamp(status.timestamp or "")
        message = (
            f"{LOG_PREFIX} Archiving not necessary, last archived at "
            f"{saved_at.strftime('%Y-%m-%d %H:%M:%S UTC')} ({status.timestamp})"
        )
        logger.info(message)
        return make_badge("recent", message, url, link=snapshot_link(status.timestamp or "", url))


__all__ = [
    "ArchiveClient",
    "ArchiveStatus",
    "ArchiveStatusCache",
    "StatusBadge",
    "calendar_link",
    "make_badge",
    "needs_archiving",
    "parse_availability",
    "parse_timestamp",
    "snapshot_link",
]
