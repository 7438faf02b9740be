"""Blacklist merge and URL evaluation.

Two rule sources feed the engine: the user's local rules and the read-only
external list. The merged set is derived on demand (local first, then every
external rule not already present locally) and a URL is blacklisted when any
rule in it matches. Evaluation never raises: a URL that does not parse is
reported as not blacklisted.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence
from urllib.parse import SplitResult

from .rules import WILDCARD, Rule, RuleMode, parse_url
from .saver_config import LOG_PREFIX

logger = logging.getLogger(__name__)


def merge(local_rules: Iterable[Rule], external_rules: Iterable[Rule]) -> List[Rule]:
    combined: List[Rule] = list(local_rules)
    seen = set(combined)
    for rule in external_rules:
        if rule in seen:
            continue
        combined.append(rule)
        seen.add(rule)
    return combined


def _domain_matches(hostname: str, pattern: str) -> bool:
    host = (hostname or "").lower()
    token = pattern.lower()
    return host == token or host.endswith(f".{token}")


def rule_matches(rule: Rule, url: str, parts: SplitResult) -> bool:
    if rule.mode is RuleMode.EXACT:
        return url == rule.pattern
    if rule.mode is RuleMode.PREFIX:
        prefix = rule.pattern[:-1] if rule.pattern.endswith(WILDCARD) else rule.pattern
        return url.startswith(prefix)
    if rule.mode is RuleMode.DOMAIN:
        return _domain_matches(parts.hostname or "", rule.pattern)
    return False


def find_match(url: str, rules: Sequence[Rule]) -> Optional[Rule]:
    """Return the first rule that matches ``url``; None when none does or it is unparsable."""

    parts = parse_url(url)
    if parts is None:
        logger.warning("%s Invalid URL in blacklist check: %r", LOG_PREFIX, url)
        return None
    for rule in rules:
        if rule_matches(rule, url, parts):
            return rule
    return None


def is_blacklisted(url: str, rules: Sequence[Rule]) -> bool:
    return find_match(url, rules) is not None


class BlacklistEngine:
    """Owns both rule sources; the merged set is always re-derived from them."""

    def __init__(
        self,
        local_rules: Iterable[Rule] = (),
        external_rules: Iterable[Rule] = (),
    ) -> None:
        self.local_rules: List[Rule] = list(local_rules)
        self.external_rules: List[Rule] = list(external_rules)

    @property
    def merged(self) -> List[Rule]:
        return merge(self.local_rules, self.external_rules)

    def set_local_rules(self, rules: Iterable[Rule]) -> None:
        self.local_rules = list(rules)

    def set_external_rules(self, rules: Iterable[Rule]) -> None:
        self.external_rules = list(rules)

    def find_match(self, url: str) -> Optional[Rule]:
        return find_match(url, self.merged)

    def is_blacklisted(self, url: str) -> bool:
        return self.find_match(url) is not None

    def provenance(self, rule: Rule) -> str:
        if rule in self.local_rules:
            return "local"
        if rule in self.external_rules:
            return "external"
        return "unknown"


__all__ = ["BlacklistEngine", "find_match", "is_blacklisted", "merge", "rule_matches"]
