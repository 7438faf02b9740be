from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Coroutine, List, Optional

import requests
import typer

from .workflows.archive import StatusBadge
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.kv_store import JsonFileStore
from .workflows.remote_rules import fetch_external_rules
from .workflows.blacklist import BlacklistEngine
from .workflows.rule_store import RuleStore
from .workflows.rules import Rule, RuleError, RuleMode, make_rule, serialize_rules
from .workflows.saver_config import EXPORT_FILENAME, SaverConfig
from .workflows.session import run_session_sync

app = typer.Typer(add_help_option=False, no_args_is_help=False)

EXIT_USER_ERROR = 2
EXIT_FATAL = 3


def _minimal_help() -> str:
    return """Archive saver

Usage:
  archive-saver archive <url> [--json] [--no-external] [--dry-run] [--soft-fail]
  archive-saver check <url> [--no-external]
  archive-saver list [--merged] [--json]
  archive-saver add <pattern> [--mode domain|prefix|exact]
  archive-saver remove <index>
  archive-saver export [--out <FILE>]
  archive-saver import <FILE|URL|->
  archive-saver doctor

Discoverability:
  --help-full     Expanded help + env vars + rule modes.
  --find <query>  Search commands, flags, env vars.
  --verbose       Debug logging.
"""


def _help_full() -> str:
    return """Archive saver (Wayback Machine snapshot helper)

Commands:
  archive   Check a URL against the blacklist, then snapshot it when the
            newest Wayback capture is missing or older than the max age.
  check     Blacklist verdict only, with the matching rule.
  list      Show local rules (index, pattern, mode); --merged adds the external list.
  add       Add a local rule.
  remove    Remove the local rule at an index (as shown by `list`).
  export    Write the local rules as JSON (stdout or --out).
  import    Replace the local rules from a JSON document; all or nothing.
  doctor    Print configuration diagnostics.

Rule modes:
  domain  example.com blocks example.com and every subdomain.
  prefix  https://example.com/search* blocks URLs starting with the text before *.
  exact   https://example.com/page blocks only that literal URL.

Env vars:
  IA_SAVER_STORE_PATH      JSON store for rules and the status cache.
  IA_SAVER_LOAD_EXTERNAL   Fetch the external blacklist (default 1).
  IA_SAVER_EXTERNAL_URL    External blacklist URL.
  IA_SAVER_MAX_AGE_HOURS   Snapshot freshness (default 4).
  IA_SAVER_TIMEOUT         HTTP timeout in seconds (default 20).
  IA_SAVER_CACHE_DISABLE   Disable the availability cache.
  IA_SAVER_CACHE_TTL       Availability cache freshness in seconds (default 600).
  IA_SAVER_SHOW_BADGES     Print the status badge (default 1).
"""


_FIND_INDEX = [
    ("command", "archive", "Check blacklist then snapshot a URL when needed."),
    ("command", "check", "Blacklist verdict for a URL."),
    ("command", "list", "Show local (or merged) blacklist rules."),
    ("command", "add", "Add a local blacklist rule."),
    ("command", "remove", "Remove a local blacklist rule by index."),
    ("command", "export", "Export local rules as JSON."),
    ("command", "import", "Import local rules from JSON (file, URL or stdin)."),
    ("command", "doctor", "Print configuration diagnostics."),
    ("flag", "--mode", "Rule mode: domain, prefix or exact."),
    ("flag", "--merged", "Include external rules when listing."),
    ("flag", "--json", "Print machine-readable JSON."),
    ("flag", "--no-external", "Skip the external blacklist for this run."),
    ("flag", "--dry-run", "Evaluate the blacklist without contacting the archive."),
    ("flag", "--soft-fail", "Exit 0 even when archiving fails."),
    ("flag", "--verbose", "Debug logging."),
    ("env", "IA_SAVER_STORE_PATH", "JSON store location."),
    ("env", "IA_SAVER_LOAD_EXTERNAL", "Enable the external blacklist."),
    ("env", "IA_SAVER_EXTERNAL_URL", "External blacklist URL."),
    ("env", "IA_SAVER_MAX_AGE_HOURS", "Snapshot freshness window."),
    ("env", "IA_SAVER_TIMEOUT", "HTTP timeout in seconds."),
    ("env", "IA_SAVER_CACHE_DISABLE", "Disable the availability cache."),
    ("env", "IA_SAVER_CACHE_TTL", "Availability cache freshness."),
    ("env", "IA_SAVER_SHOW_BADGES", "Print the status badge."),
]


def _run_find(query: str) -> str:
    needle = (query or "").strip().lower()
    if not needle:
        return ""
    lines = []
    for category, name, desc in _FIND_INDEX:
        haystack = f"{category} {name} {desc}".lower()
        if needle in haystack:
            lines.append(f"{category} {name} - {desc}")
    return "\n".join(lines)


def _config(no_external: bool = False) -> SaverConfig:
    cfg = SaverConfig.from_env()
    if no_external:
        cfg = replace(cfg, load_external=False)
    return cfg


def _open_store(cfg: SaverConfig) -> RuleStore:
    return RuleStore(JsonFileStore(cfg.store_path))


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _user_error(exc: Exception) -> typer.Exit:
    typer.echo(f"error: {exc}", err=True)
    return typer.Exit(code=EXIT_USER_ERROR)


def _format_badge(badge: StatusBadge) -> str:
    return f"[{badge.state}] {badge.tooltip}\n  link: {badge.link}"


def _format_rules(rules: List[Rule], engine: Optional[BlacklistEngine] = None) -> str:
    if not rules:
        return "No entries in blacklist."
    lines = []
    for index, rule in enumerate(rules):
        line = f"{index}: {rule.describe()}"
        if engine is not None:
            line = f"{line} ({engine.provenance(rule)})"
        lines.append(line)
    return "\n".join(lines)


def _read_import_source(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    if source.startswith(("http://", "https://")):
        resp = requests.get(source, timeout=SaverConfig.from_env().timeout)
        resp.raise_for_status()
        return resp.text
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Import file not found: {path}")
    return path.read_text(encoding="utf-8")


async def _load_engine(store: RuleStore, cfg: SaverConfig) -> BlacklistEngine:
    external = await fetch_external_rules(cfg.external_url, timeout=cfg.timeout, enabled=cfg.load_external)
    return BlacklistEngine(store.load(), external)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=0)
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Print configuration diagnostics."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else EXIT_USER_ERROR)


@app.command("archive", add_help_option=True)
def archive_url(
    url: str = typer.Argument(..., help="Page URL to check and archive."),
    json_out: bool = typer.Option(False, "--json", help="Print the session outcome as JSON."),
    no_external: bool = typer.Option(False, "--no-external", help="Skip the external blacklist."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Evaluate the blacklist without contacting the archive."),
    soft_fail: bool = typer.Option(False, "--soft-fail", help="Exit 0 even when archiving fails."),
) -> None:
    cfg = _config(no_external)
    try:
        outcome = run_session_sync(url, config=cfg, dry_run=dry_run)
    except Exception as exc:
        if not json_out:
            typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=EXIT_FATAL)
    if json_out:
        sys.stdout.write(json.dumps(outcome.to_dict(), ensure_ascii=False) + "\n")
    elif outcome.badge is not None and cfg.show_badges:
        typer.echo(_format_badge(outcome.badge))
    elif dry_run:
        typer.echo(f"not blacklisted: {url}")
    failed = outcome.badge is not None and outcome.badge.state in {"error", "check_failed"}
    raise typer.Exit(code=1 if failed and not soft_fail else 0)


@app.command("check", add_help_option=True)
def check_url(
    url: str = typer.Argument(..., help="URL to evaluate."),
    no_external: bool = typer.Option(False, "--no-external", help="Skip the external blacklist."),
) -> None:
    """Print whether a URL is blacklisted and by which rule."""
    cfg = _config(no_external)
    engine = _run(_load_engine(_open_store(cfg), cfg))
    matched = engine.find_match(url)
    if matched is None:
        typer.echo(f"not blacklisted: {url}")
        return
    typer.echo(f"blacklisted: {url} by {matched.describe()} ({engine.provenance(matched)})")


@app.command("list", add_help_option=True)
def list_rules(
    merged: bool = typer.Option(False, "--merged", help="Include the external blacklist."),
    json_out: bool = typer.Option(False, "--json", help="Print rules as JSON."),
) -> None:
    """List blacklist rules."""
    cfg = _config()
    store = _open_store(cfg)
    engine: Optional[BlacklistEngine] = None
    if merged:
        engine = _run(_load_engine(store, cfg))
        rules = engine.merged
    else:
        rules = store.load()
    if json_out:
        sys.stdout.write(json.dumps(serialize_rules(rules), ensure_ascii=False) + "\n")
        return
    typer.echo(_format_rules(rules, engine))


@app.command("add", add_help_option=True)
def add_rule(
    pattern: str = typer.Argument(..., help="Domain, prefix* or exact URL."),
    mode: RuleMode = typer.Option(RuleMode.DOMAIN, "--mode", "-m", case_sensitive=False, help="Rule mode."),
) -> None:
    """Add a local blacklist rule."""
    store = _open_store(_config())
    try:
        rule = store.add(make_rule(pattern, mode))
    except RuleError as exc:
        raise _user_error(exc)
    typer.echo(f"added: {rule.describe()}")


@app.command("remove", add_help_option=True)
def remove_rule(index: int = typer.Argument(..., help="Position shown by `list`.")) -> None:
    """Remove a local blacklist rule."""
    store = _open_store(_config())
    try:
        rule = store.remove(index)
    except RuleError as exc:
        raise _user_error(exc)
    typer.echo(f"removed: {rule.describe()}")


@app.command("export", add_help_option=True)
def export_rules(
    out: Optional[Path] = typer.Option(None, "--out", help=f"Write to this file (e.g. {EXPORT_FILENAME})."),
) -> None:
    """Export local rules as JSON."""
    payload = _open_store(_config()).export_json()
    if out is None:
        sys.stdout.write(payload + "\n")
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(payload + "\n", encoding="utf-8")
    typer.echo(f"exported to {out}")


@app.command("import", add_help_option=True)
def import_rules(source: str = typer.Argument(..., help="JSON file, http(s) URL, or '-' for stdin.")) -> None:
    """Replace local rules from a JSON document."""
    store = _open_store(_config())
    try:
        text = _read_import_source(source)
    except (OSError, requests.RequestException) as exc:
        raise _user_error(exc)
    try:
        rules = store.import_json(text)
    except RuleError as exc:
        raise _user_error(exc)
    typer.echo(f"Blacklist imported successfully ({len(rules)} entries).")
