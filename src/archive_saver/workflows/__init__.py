"""High-level exports for the archive-saver workflows."""

from .archive import ArchiveClient, ArchiveStatusCache, StatusBadge
from .blacklist import BlacklistEngine, is_blacklisted, merge
from .kv_store import JsonFileStore, KeyValueStore, MemoryStore
from .remote_rules import fetch_external_rules
from .rule_store import RuleStore
from .rules import (
    DuplicateRuleError,
    IndexOutOfRangeError,
    Rule,
    RuleError,
    RuleMode,
    ValidationError,
)
from .saver_config import SaverConfig
from .session import SessionOutcome, run_page_session

__all__ = [
    "ArchiveClient",
    "ArchiveStatusCache",
    "BlacklistEngine",
    "DuplicateRuleError",
    "IndexOutOfRangeError",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "Rule",
    "RuleError",
    "RuleMode",
    "RuleStore",
    "SaverConfig",
    "SessionOutcome",
    "StatusBadge",
    "ValidationError",
    "fetch_external_rules",
    "is_blacklisted",
    "merge",
    "run_page_session",
]
