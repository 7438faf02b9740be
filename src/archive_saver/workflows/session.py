"""Per-page pipeline: external rules -> merge -> evaluate -> archive decision."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import aiohttp

from .archive import ArchiveClient, ArchiveStatusCache, StatusBadge, make_badge
from .blacklist import BlacklistEngine
from .kv_store import JsonFileStore, KeyValueStore
from .remote_rules import fetch_external_rules
from .rule_store import RuleStore
from .saver_config import LOG_PREFIX, SaverConfig

logger = logging.getLogger(__name__)

BadgeHook = Callable[[StatusBadge], None]


@dataclass
class SessionOutcome:
    url: str
    final_url: Optional[str]
    blacklisted: bool
    badge: Optional[StatusBadge]
    local_rule_count: int
    external_rule_count: int
    matched_rule: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "final_url": self.final_url,
            "blacklisted": self.blacklisted,
            "matched_rule": self.matched_rule,
            "badge": self.badge.to_dict() if self.badge else None,
            "local_rule_count": self.local_rule_count,
            "external_rule_count": self.external_rule_count,
        }


def _emit(hook: Optional[BadgeHook], badge: StatusBadge) -> None:
    if hook is None:
        return
    try:
        hook(badge)
    except Exception:
        logger.exception("%s Badge hook failed", LOG_PREFIX)


async def build_engine(
    store: RuleStore,
    config: SaverConfig,
    session: Optional[aiohttp.ClientSession] = None,
) -> BlacklistEngine:
    """Load both rule sources and keep the engine in step with later store edits."""

    local_rules = store.load()
    external_rules = await fetch_external_rules(
        config.external_url,
        session=session,
        timeout=config.timeout,
        enabled=config.load_external,
    )
    engine = BlacklistEngine(local_rules, external_rules)
    store.subscribe(engine.set_local_rules)
    return engine


async def run_page_session(
    url: str,
    *,
    config: Optional[SaverConfig] = None,
    kv: Optional[KeyValueStore] = None,
    session: Optional[aiohttp.ClientSession] = None,
    badge_hook: Optional[BadgeHook] = None,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> SessionOutcome:
    cfg = config or SaverConfig.from_env()
    storage = kv if kv is not None else JsonFileStore(cfg.store_path)
    store = RuleStore(storage)

    own_session = session is None
    if own_session:
        session = aiohttp.ClientSession(
            cookie_jar=aiohttp.DummyCookieJar(),
            headers={"User-Agent": cfg.user_agent},
        )
    try:
        engine = await build_engine(store, cfg, session)
        outcome = SessionOutcome(
            url=url,
            final_url=None,
            blacklisted=False,
            badge=None,
            local_rule_count=len(engine.local_rules),
            external_rule_count=len(engine.external_rules),
        )

        matched = engine.find_match(url)
        if matched is not None:
            logger.info("%s URL is blacklisted, skipping archiving: %s", LOG_PREFIX, url)
            outcome.blacklisted = True
            outcome.matched_rule = {**matched.to_dict(), "source": engine.provenance(matched)}
            outcome.badge = make_badge("blacklisted", "Archiving skipped (Blacklist)", url)
            _emit(badge_hook, outcome.badge)
            return outcome
        if dry_run:
            return outcome

        logger.info("%s Checking archiving necessity for: %s", LOG_PREFIX, url)
        _emit(badge_hook, make_badge("checking", "Checking archive status...", url))

        cache = ArchiveStatusCache(storage, ttl=cfg.cache_ttl) if cfg.cache_enabled else None
        client = ArchiveClient(
            session,
            timeout=cfg.timeout,
            max_age=timedelta(hours=cfg.max_age_hours),
            cache=cache,
        )
        try:
            final_url = await client.resolve_final_url(url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            message = f"{LOG_PREFIX} Failed to load URL without cookies"
            logger.error("%s: %s", message, str(exc) or type(exc).__name__)
            outcome.badge = make_badge("error", message, url)
            _emit(badge_hook, outcome.badge)
            return outcome

        outcome.final_url = final_url
        outcome.badge = await client.archive_if_needed(final_url, now=now)
        _emit(badge_hook, outcome.badge)
        return outcome
    finally:
        if own_session and session is not None:
            await session.close()


def run_session_sync(url: str, **kwargs: Any) -> SessionOutcome:
    """Run one page session on a dedicated event loop (CLI entry point)."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(run_page_session(url, **kwargs))
    finally:
        loop.close()


__all__ = ["SessionOutcome", "build_engine", "run_page_session", "run_session_sync"]
