import logging

import pytest

from archive_saver.workflows.blacklist import BlacklistEngine, find_match, is_blacklisted, merge
from archive_saver.workflows.kv_store import MemoryStore
from archive_saver.workflows.rule_store import RuleStore
from archive_saver.workflows.rules import Rule, RuleMode

DOMAIN = Rule("example.com", RuleMode.DOMAIN)
PREFIX = Rule("https://example.com/search*", RuleMode.PREFIX)
EXACT = Rule("https://example.com/a", RuleMode.EXACT)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://example.com/x", True),
        ("https://sub.example.com/y", True),
        ("http://WWW.EXAMPLE.COM/", True),
        ("https://example.com:8443/z", True),
        ("https://notexample.com/z", False),
        ("https://example.com.evil.net/", False),
    ],
)
def test_domain_rule_matches_domain_and_subdomains(url, expected):
    assert is_blacklisted(url, [DOMAIN]) is expected


def test_domain_rule_pattern_is_case_insensitive():
    assert is_blacklisted("https://news.example.com/", [Rule("Example.COM", RuleMode.DOMAIN)])


def test_prefix_rule_strips_trailing_star():
    assert is_blacklisted("https://example.com/search?q=1", [PREFIX])
    assert is_blacklisted("https://example.com/search", [PREFIX])
    assert not is_blacklisted("https://example.com/other", [PREFIX])
    # prefix comparison is case-sensitive and unnormalized
    assert not is_blacklisted("HTTPS://example.com/search", [PREFIX])


def test_prefix_rule_without_star_still_compares_prefix():
    rule = Rule("https://example.com/docs", RuleMode.PREFIX)
    assert is_blacklisted("https://example.com/docs/page", [rule])


def test_exact_rule_matches_literal_string_only():
    assert is_blacklisted("https://example.com/a", [EXACT])
    assert not is_blacklisted("https://example.com/a/", [EXACT])
    assert not is_blacklisted("https://example.com/a?x=1", [EXACT])


def test_any_rule_is_enough():
    rules = [EXACT, Rule("other.org", RuleMode.DOMAIN)]
    assert is_blacklisted("https://www.other.org/", rules)
    assert find_match("https://www.other.org/", rules) == Rule("other.org", RuleMode.DOMAIN)
    assert not is_blacklisted("https://unrelated.net/", rules)
    assert not is_blacklisted("https://example.com/a", [])


def test_unparsable_url_fails_open_and_logs(caplog):
    caplog.set_level(logging.WARNING)
    rules = [DOMAIN, PREFIX, Rule("not a url", RuleMode.EXACT)]
    assert is_blacklisted("not a url", rules) is False
    assert is_blacklisted("", rules) is False
    assert is_blacklisted(None, rules) is False
    assert is_blacklisted("https://exa mple.com/", [Rule("https://exa*", RuleMode.PREFIX)]) is False
    assert "Invalid URL in blacklist check" in caplog.text


def test_merge_keeps_local_first_and_skips_duplicates():
    local = [DOMAIN, PREFIX]
    external = [Rule("example.com", RuleMode.DOMAIN), EXACT, EXACT]
    merged = merge(local, external)
    assert merged == [DOMAIN, PREFIX, EXACT]


def test_merge_is_idempotent():
    local = [DOMAIN]
    external = [EXACT, PREFIX, DOMAIN]
    once = merge(local, external)
    assert merge(once, external) == once


def test_merge_treats_modes_as_distinct():
    local = [Rule("a.com", RuleMode.DOMAIN)]
    external = [Rule("a.com", RuleMode.EXACT)]
    assert len(merge(local, external)) == 2


def test_engine_rederives_merged_set_after_store_mutation():
    store = RuleStore(MemoryStore())
    engine = BlacklistEngine(store.load(), [EXACT])
    store.subscribe(engine.set_local_rules)

    assert not engine.is_blacklisted("https://example.com/x")
    store.add(DOMAIN)
    assert engine.is_blacklisted("https://example.com/x")
    assert engine.merged == [DOMAIN, EXACT]
    assert engine.provenance(DOMAIN) == "local"
    assert engine.provenance(EXACT) == "external"

    store.remove(0)
    assert not engine.is_blacklisted("https://example.com/x")
    assert engine.merged == [EXACT]
