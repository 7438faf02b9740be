import asyncio
import json

import aiohttp
import pytest

from archive_saver.workflows.remote_rules import fetch_external_rules
from archive_saver.workflows.rules import Rule, RuleMode

RULES_URL = "https://rules.test/blacklist.json"


def _fetch(session):
    return asyncio.run(fetch_external_rules(RULES_URL, session=session, timeout=5))


def test_fetch_returns_all_rules_for_valid_payload(http):
    body = json.dumps([
        {"pattern": "example.com", "mode": "domain"},
        {"pattern": "https://example.com/search*", "mode": "prefix"},
    ])
    session = http.session((RULES_URL, http.Response(200, body)))

    rules = _fetch(session)

    assert rules == [
        Rule("example.com", RuleMode.DOMAIN),
        Rule("https://example.com/search*", RuleMode.PREFIX),
    ]
    assert session.calls == [RULES_URL]


def test_one_malformed_entry_rejects_whole_payload(http, caplog):
    body = json.dumps([
        {"pattern": "example.com", "mode": "domain"},
        {"pattern": "other.com"},
    ])
    session = http.session((RULES_URL, http.Response(200, body)))

    assert _fetch(session) == []
    assert "Invalid external blacklist format" in caplog.text


def test_non_success_status_degrades_to_empty(http, caplog):
    session = http.session((RULES_URL, http.Response(404, "[]", "Not Found")))
    assert _fetch(session) == []
    assert "status: 404" in caplog.text
    assert session.calls == [RULES_URL]


def test_unparsable_or_non_list_body_degrades_to_empty(http):
    assert _fetch(http.session((RULES_URL, http.Response(200, "<html>oops</html>")))) == []
    assert _fetch(http.session((RULES_URL, http.Response(200, '{"pattern": "a.com"}')))) == []


def test_transport_failure_degrades_to_empty(http, caplog):
    session = http.session((RULES_URL, aiohttp.ClientConnectionError("connection refused")))
    assert _fetch(session) == []
    assert "Error loading external blacklist" in caplog.text

    assert _fetch(http.session((RULES_URL, asyncio.TimeoutError()))) == []


def test_disabled_or_missing_url_makes_no_request(http):
    session = http.session()
    assert asyncio.run(fetch_external_rules(RULES_URL, session=session, enabled=False)) == []
    assert asyncio.run(fetch_external_rules(None, session=session)) == []
    assert session.calls == []


@pytest.mark.parametrize(
    "body",
    [
        "[" * 100000 + "]" * 100000,
        "[" + "1" * 5000 + "]",
    ],
)
def test_hostile_body_degrades_to_empty(http, caplog, body):
    session = http.session((RULES_URL, http.Response(200, body)))
    assert _fetch(session) == []
    assert "Invalid external blacklist format" in caplog.text
