"""User-editable blacklist persisted in a key/value store.

The store is the single owner of the local rule list. Every mutation builds a
new list, persists it, swaps it in, then notifies subscribers (normally the
:class:`~archive_saver.workflows.blacklist.BlacklistEngine`) so the merged set
is re-derived.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, List, Optional, Sequence

from ..core.keys import K_BLACKLIST
from .kv_store import KeyValueStore
from .rules import (
    DuplicateRuleError,
    IndexOutOfRangeError,
    Rule,
    RuleMode,
    ValidationError,
    parse_rule_payload,
    serialize_rules,
    validate_rule,
)
from .saver_config import LOG_PREFIX

logger = logging.getLogger(__name__)

RulesListener = Callable[[List[Rule]], None]


def _is_legacy_payload(raw: Any) -> bool:
    return isinstance(raw, list) and bool(raw) and all(isinstance(item, str) for item in raw)


def upgrade_legacy_payload(raw: Sequence[str]) -> List[Rule]:
    """Turn the old list-of-domains format into domain rules."""

    rules: List[Rule] = []
    for pattern in raw:
        if not pattern:
            continue
        rule = Rule(pattern, RuleMode.DOMAIN)
        if rule not in rules:
            rules.append(rule)
    return rules


class RuleStore:
    def __init__(self, kv: KeyValueStore, *, key: str = K_BLACKLIST) -> None:
        self._kv = kv
        self._key = key
        self._rules: Optional[List[Rule]] = None
        self._listeners: List[RulesListener] = []

    @property
    def rules(self) -> List[Rule]:
        if self._rules is None:
            return self.load()
        return list(self._rules)

    def subscribe(self, listener: RulesListener) -> None:
        self._listeners.append(listener)

    def load(self) -> List[Rule]:
        raw = self._kv.get(self._key, [])
        if _is_legacy_payload(raw):
            rules = upgrade_legacy_payload(raw)
            logger.info("%s Upgraded %d legacy blacklist entries to domain rules", LOG_PREFIX, len(rules))
            self._kv.set(self._key, serialize_rules(rules))
        elif raw in (None, []):
            rules = []
        else:
            try:
                rules = parse_rule_payload(raw)
            except ValidationError as exc:
                logger.warning("%s Ignoring unreadable stored blacklist: %s", LOG_PREFIX, exc)
                rules = []
        self._rules = rules
        return list(rules)

    def add(self, rule: Rule) -> Rule:
        validate_rule(rule)
        current = self.rules
        if rule in current:
            raise DuplicateRuleError(f"This entry is already in the blacklist: {rule.describe()}")
        self._commit([*current, rule])
        return rule

    def remove(self, index: int) -> Rule:
        current = self.rules
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(current):
            raise IndexOutOfRangeError(f"No blacklist entry at position {index} (have {len(current)})")
        removed = current.pop(index)
        self._commit(current)
        return removed

    def replace_all(self, rules: Any) -> List[Rule]:
        """Replace the whole list; every element must be valid or nothing changes."""

        payload = rules
        if isinstance(rules, (list, tuple)):
            payload = [rule.to_dict() if isinstance(rule, Rule) else rule for rule in rules]
        try:
            parsed = parse_rule_payload(payload, strict=True)
        except ValidationError as exc:
            logger.warning("%s Rejected blacklist import: %s", LOG_PREFIX, exc)
            raise
        self._commit(parsed)
        return list(parsed)

    def export_json(self) -> str:
        return json.dumps(serialize_rules(self.rules), ensure_ascii=False, indent=2)

    def import_json(self, text: str) -> List[Rule]:
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as exc:
            logger.warning("%s Failed to parse blacklist import: %s", LOG_PREFIX, exc)
            raise ValidationError(f"Error parsing blacklist file: {exc}") from exc
        return self.replace_all(data)

    def _commit(self, rules: List[Rule]) -> None:
        self._kv.set(self._key, serialize_rules(rules))
        self._rules = list(rules)
        for listener in list(self._listeners):
            try:
                listener(list(rules))
            except Exception:
                logger.exception("%s Blacklist listener failed", LOG_PREFIX)


__all__ = ["RuleStore", "upgrade_legacy_payload"]
