"""Blacklist rule model, validation and payload parsing.

A rule pairs a ``pattern`` with a match ``mode``. Everything read from disk,
the network or an import document passes through :func:`parse_rule_payload`
(or :func:`rule_from_dict`), so downstream code only ever sees valid
:class:`Rule` values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import SplitResult, urlsplit

from ..core.keys import K_MODE, K_PATTERN


class RuleMode(str, Enum):
    DOMAIN = "domain"
    PREFIX = "prefix"
    EXACT = "exact"


RULE_MODES = frozenset(mode.value for mode in RuleMode)

_DOMAIN_RE = re.compile(r"[A-Za-z0-9.-]+")
_PREFIX_SCHEMES = ("http://", "https://")
WILDCARD = "*"

# Shown to the user when a pattern does not fit its mode.
MODE_HINTS: Dict[RuleMode, str] = {
    RuleMode.DOMAIN: "Enter a valid domain (e.g. example.com)",
    RuleMode.PREFIX: "Enter a valid URL that starts with http(s) and ends with * (e.g. https://example.com/path*)",
    RuleMode.EXACT: "Enter a valid full URL without * (e.g. https://example.com/page)",
}


class RuleError(ValueError):
    """Base class for rejected rule-store operations."""


class ValidationError(RuleError):
    """A rule or import payload does not satisfy the mode-specific shape."""


class DuplicateRuleError(RuleError):
    """An equal rule is already present in the store."""


class IndexOutOfRangeError(RuleError, IndexError):
    """A rule position does not exist."""


@dataclass(frozen=True)
class Rule:
    pattern: str
    mode: RuleMode

    def to_dict(self) -> Dict[str, str]:
        return {K_PATTERN: self.pattern, K_MODE: self.mode.value}

    def describe(self) -> str:
        return f"{self.pattern} [{self.mode.value}]"


def coerce_mode(value: Any) -> RuleMode:
    """Return the :class:`RuleMode` for ``value`` or raise ``ValidationError``."""

    if isinstance(value, RuleMode):
        return value
    if isinstance(value, str) and value in RULE_MODES:
        return RuleMode(value)
    raise ValidationError(f"Unknown rule mode {value!r}; expected one of {', '.join(sorted(RULE_MODES))}")


def parse_url(value: Any) -> Optional[SplitResult]:
    """Parse an absolute URL; return None when it is not one.

    Mirrors a browser ``URL`` constructor closely enough for rule matching:
    a scheme is required and a malformed port counts as a parse failure.
    """

    if not isinstance(value, str) or not value:
        return None
    try:
        parts = urlsplit(value)
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        return None
    if not parts.scheme:
        return None
    if not (parts.netloc or parts.path):
        return None
    if any(ch.isspace() for ch in parts.netloc):
        return None
    return parts


def pattern_error(pattern: str, mode: RuleMode) -> Optional[str]:
    """Return why ``pattern`` does not fit ``mode``, or None when it does."""

    if not pattern:
        return "Pattern must not be empty"
    if mode is RuleMode.DOMAIN:
        if not _DOMAIN_RE.fullmatch(pattern):
            return "Domain patterns may only contain letters, digits, '.' and '-'"
        return None
    if mode is RuleMode.PREFIX:
        if not pattern.startswith(_PREFIX_SCHEMES):
            return "Prefix patterns must start with http:// or https://"
        if not pattern.endswith(WILDCARD):
            return "Prefix patterns must end with *"
        return None
    if WILDCARD in pattern:
        return "Exact patterns must not contain *"
    if parse_url(pattern) is None:
        return "Exact patterns must be absolute URLs"
    return None


def validate_rule(rule: Rule) -> Rule:
    reason = pattern_error(rule.pattern, rule.mode)
    if reason:
        raise ValidationError(
            f'Invalid input for mode "{rule.mode.value}": {reason}. {MODE_HINTS[rule.mode]}'
        )
    return rule


def make_rule(pattern: str, mode: Any = RuleMode.DOMAIN) -> Rule:
    """Build a validated rule from user input (pattern is stripped)."""

    return validate_rule(Rule((pattern or "").strip(), coerce_mode(mode)))


def rule_from_dict(item: Any) -> Rule:
    """Shape-check one payload element: non-empty string pattern, known mode."""

    if not isinstance(item, dict):
        raise ValidationError(f"Rule entries must be objects, got {type(item).__name__}")
    pattern = item.get(K_PATTERN)
    if not isinstance(pattern, str) or not pattern:
        raise ValidationError(f"Rule entry is missing a pattern: {item!r}")
    return Rule(pattern, coerce_mode(item.get(K_MODE)))


def parse_rule_payload(data: Any, *, strict: bool = False) -> List[Rule]:
    """Parse a rule-list payload as a whole or not at all.

    Every element must pass the shape check. With ``strict`` each pattern must
    also fit its mode and the list must not repeat a rule; this is the bar for
    data that becomes the local store.
    """

    if not isinstance(data, list):
        raise ValidationError(f"Rule payload must be a list, got {type(data).__name__}")
    rules: List[Rule] = []
    seen = set()
    for index, item in enumerate(data):
        try:
            rule = rule_from_dict(item)
            if strict:
                validate_rule(rule)
        except ValidationError as exc:
            raise ValidationError(f"Entry {index}: {exc}") from exc
        if strict and rule in seen:
            raise ValidationError(f"Entry {index}: duplicate rule {rule.describe()}")
        seen.add(rule)
        rules.append(rule)
    return rules


def serialize_rules(rules: Iterable[Rule]) -> List[Dict[str, str]]:
    return [rule.to_dict() for rule in rules]


__all__ = [
    "DuplicateRuleError",
    "IndexOutOfRangeError",
    "MODE_HINTS",
    "RULE_MODES",
    "Rule",
    "RuleError",
    "RuleMode",
    "ValidationError",
    "coerce_mode",
    "make_rule",
    "parse_rule_payload",
    "parse_url",
    "pattern_error",
    "rule_from_dict",
    "serialize_rules",
    "validate_rule",
]
