"""Fetch the externally hosted, read-only blacklist.

One GET per page session. Every failure mode (bad status, unparsable or
malformed body, transport error, timeout) resolves to an empty list and a
warning; nothing is raised to the caller and nothing is retried or cached.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional, Tuple

import aiohttp

from .rules import Rule, ValidationError, parse_rule_payload
from .saver_config import EXTERNAL_BLACKLIST_URL, HTTP_TIMEOUT_SECONDS, LOG_PREFIX

logger = logging.getLogger(__name__)


async def _get_text(session: aiohttp.ClientSession, url: str, timeout: float) -> Tuple[int, str]:
    async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
        return resp.status, await resp.text()


def parse_external_payload(text: str) -> List[Rule]:
    """Parse a response body; raise ``ValidationError`` unless every entry is well formed."""

    try:
        data = json.loads(text)
    except (TypeError, ValueError, RecursionError) as exc:
        raise ValidationError(f"Failed to parse external blacklist JSON: {exc}") from exc
    return parse_rule_payload(data)


async def fetch_external_rules(
    url: Optional[str] = EXTERNAL_BLACKLIST_URL,
    *,
    session: Optional[aiohttp.ClientSession] = None,
    timeout: float = HTTP_TIMEOUT_SECONDS,
    enabled: bool = True,
) -> List[Rule]:
    if not enabled or not url:
        return []
    try:
        if session is None:
            async with aiohttp.ClientSession() as own_session:
                status, text = await _get_text(own_session, url, timeout)
        else:
            status, text = await _get_text(session, url, timeout)
    except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
        logger.warning("%s Error loading external blacklist from %s: %s", LOG_PREFIX, url, str(exc) or type(exc).__name__)
        return []

    if status != 200:
        logger.warning("%s Failed to load external blacklist, status: %s", LOG_PREFIX, status)
        return []
    try:
        rules = parse_external_payload(text)
    except ValidationError as exc:
        logger.warning("%s Invalid external blacklist format: %s", LOG_PREFIX, exc)
        return []
    logger.debug("%s Loaded %d external blacklist rules", LOG_PREFIX, len(rules))
    return rules


__all__ = ["fetch_external_rules", "parse_external_payload"]
