import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from archive_saver.cli import app

runner = CliRunner()


@pytest.fixture
def store_path(tmp_path: Path, monkeypatch) -> Path:
    path = tmp_path / "store.json"
    monkeypatch.setenv("IA_SAVER_STORE_PATH", str(path))
    monkeypatch.setenv("IA_SAVER_LOAD_EXTERNAL", "0")
    return path


def test_add_list_remove_round_trip(store_path):
    result = runner.invoke(app, ["add", "example.com"])
    assert result.exit_code == 0, result.output
    assert "added: example.com [domain]" in result.output

    result = runner.invoke(app, ["add", "https://example.com/search*", "--mode", "prefix"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["list"])
    assert "0: example.com [domain]" in result.output
    assert "1: https://example.com/search* [prefix]" in result.output

    result = runner.invoke(app, ["remove", "0"])
    assert result.exit_code == 0
    stored = json.loads(store_path.read_text(encoding="utf-8"))
    assert stored["ia_saver_blacklist"] == [{"pattern": "https://example.com/search*", "mode": "prefix"}]


def test_add_rejects_invalid_and_duplicate(store_path):
    result = runner.invoke(app, ["add", "https://example.com/a", "--mode", "prefix"])
    assert result.exit_code == 2
    assert "error:" in result.output

    assert runner.invoke(app, ["add", "example.com"]).exit_code == 0
    result = runner.invoke(app, ["add", "example.com"])
    assert result.exit_code == 2
    assert "already in the blacklist" in result.output


def test_remove_out_of_range(store_path):
    result = runner.invoke(app, ["remove", "3"])
    assert result.exit_code == 2


def test_import_is_all_or_nothing(store_path, tmp_path):
    runner.invoke(app, ["add", "keep.com"])
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps([
        {"pattern": "a.com", "mode": "domain"},
        {"pattern": "b.com", "mode": "suffix"},
    ]), encoding="utf-8")

    result = runner.invoke(app, ["import", str(bad)])
    assert result.exit_code == 2
    assert "0: keep.com [domain]" in runner.invoke(app, ["list"]).output

    good = tmp_path / "good.json"
    good.write_text(json.dumps([{"pattern": "a.com", "mode": "domain"}]), encoding="utf-8")
    result = runner.invoke(app, ["import", str(good)])
    assert result.exit_code == 0
    assert "imported successfully" in result.output
    listing = runner.invoke(app, ["list", "--json"]).output
    assert json.loads(listing) == [{"pattern": "a.com", "mode": "domain"}]


def test_import_missing_file(store_path, tmp_path):
    result = runner.invoke(app, ["import", str(tmp_path / "nope.json")])
    assert result.exit_code == 2


def test_export_to_file(store_path, tmp_path):
    runner.invoke(app, ["add", "example.com"])
    out = tmp_path / "exports" / "ia_saver_blacklist.json"
    result = runner.invoke(app, ["export", "--out", str(out)])
    assert result.exit_code == 0
    assert json.loads(out.read_text(encoding="utf-8")) == [{"pattern": "example.com", "mode": "domain"}]


def test_check_reports_matching_rule(store_path):
    runner.invoke(app, ["add", "example.com"])
    result = runner.invoke(app, ["check", "https://www.example.com/x"])
    assert "blacklisted: https://www.example.com/x by example.com [domain] (local)" in result.output
    result = runner.invoke(app, ["check", "https://other.org/"])
    assert "not blacklisted: https://other.org/" in result.output


def test_archive_dry_run_skips_blacklisted(store_path):
    runner.invoke(app, ["add", "example.com"])
    result = runner.invoke(app, ["archive", "https://example.com/", "--dry-run", "--json"])
    assert result.exit_code == 0
    payload = json.loads(result.output.strip().splitlines()[-1])
    assert payload["blacklisted"] is True
    assert payload["badge"]["state"] == "blacklisted"


def test_discoverability_flags():
    assert "Usage:" in runner.invoke(app, []).output
    assert "Rule modes:" in runner.invoke(app, ["--help-full"]).output
    assert "command import" in runner.invoke(app, ["--find", "import"]).output
