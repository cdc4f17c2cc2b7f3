"""Entry point for readguard.

Usage:
    python main.py progress                  # Reconcile and show progress
    python main.py progress --mark 120       # Mark chapter 120 as read
    python main.py settings --tolerance 50   # Override spoiler tolerance
    python main.py timeline --arc 3          # Segmented, spoiler-gated timeline
    python main.py check --spoiler 7 --read 5,80
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import aiosqlite
import click
import httpx

from narrative import titled_units
from reader.audit import ReconciliationLog
from reader.config import ProgressSettings, StorageSettings, WikiSettings, load_config
from reader.session import ReaderSession
from reader.store import JsonFileCache, ProgressStore
from spoilers import SpoilerRecordIndex, reveal_hint
from wiki.client import WikiClient, WikiError

logger = logging.getLogger(__name__)

_WIKI_ERRORS = (WikiError, httpx.HTTPError)


def _setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s — %(name)s — %(levelname)s — %(message)s"

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=fmt, handlers=handlers)

    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def _root() -> Path:
    return Path(__file__).resolve().parent


def _store(cfg: dict) -> ProgressStore:
    progress = ProgressSettings.from_config(cfg)
    return ProgressStore(
        JsonFileCache(StorageSettings.from_config(cfg, _root()).cache_file),
        max_chapter=progress.max_chapter,
        key_prefix=progress.key_prefix,
    )


def _client(cfg: dict) -> WikiClient:
    wiki = WikiSettings.from_config(cfg)
    return WikiClient(wiki.base_url, token=wiki.token, timeout=wiki.timeout_seconds)


async def _open_audit(cfg: dict) -> ReconciliationLog | None:
    """Open the audit trail, or return None when it cannot be opened."""
    audit = ReconciliationLog(StorageSettings.from_config(cfg, _root()).audit_db)
    try:
        await audit.open()
    except (OSError, aiosqlite.Error) as exc:
        logger.warning("Audit log unavailable, continuing without it: %s", exc)
        await audit.close()
        return None
    return audit


async def _resolve(
    cfg: dict,
    store: ProgressStore,
    wiki: WikiClient,
    mark: int | None = None,
) -> ReaderSession:
    """Reconcile with the server when signed in, or record a "read up to" mark."""
    audit = await _open_audit(cfg)
    try:
        if wiki.is_authenticated:
            store.attach_remote(wiki)
        session = ReaderSession.from_config(store, cfg, audit=audit)
        if mark is not None:
            await session.mark_chapter_read(mark)
        else:
            await session.resolve_progress()
        return session
    finally:
        store.detach_remote()
        if audit is not None:
            await audit.close()


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.option("--config-dir", type=click.Path(), default=None, help="Config directory")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_dir: str | None) -> None:
    """readguard — spoiler-safe reading companion."""
    cfg = load_config(config_dir)
    _setup_logging(verbose=verbose, log_file=StorageSettings.from_config(cfg, _root()).log_file)
    ctx.obj = cfg


@main.command()
@click.option("--mark", type=int, default=None, help="Mark this chapter as read")
@click.option("--logout", is_flag=True, help="Forget the server record, keep local progress")
@click.pass_obj
def progress(cfg: dict, mark: int | None, logout: bool) -> None:
    """Reconcile local and server progress."""
    store = _store(cfg)
    if logout:
        session = ReaderSession.from_config(store, cfg)
        current = session.logout()
        click.echo(f"Logged out. Anonymous progress stays at chapter {current.value}.")
        return

    async def _run() -> ReaderSession:
        async with _client(cfg) as wiki:
            return await _resolve(cfg, store, wiki, mark)

    session = asyncio.run(_run())
    current = session.progress
    click.echo(f"Chapter {current.value} ({current.source.value})")


@main.command()
@click.option("--tolerance", type=int, default=None, help="Spoiler tolerance chapter (0 = use progress)")
@click.option("--show-all/--hide-all", default=None, help="Show or hide every spoiler")
@click.pass_obj
def settings(cfg: dict, tolerance: int | None, show_all: bool | None) -> None:
    """Show or change spoiler preferences."""
    store = _store(cfg)
    if tolerance is not None:
        store.set_tolerance(tolerance)
    if show_all is not None:
        store.set_show_all(show_all)
    override = store.read_override()
    click.echo(f"show_all={override.show_all} tolerance={override.tolerance_override}")


@main.command()
@click.option("--arc", "arc_id", default=None, help="Arc id")
@click.option("--character", "character_id", default=None, help="Character id")
@click.option("--arc-name", default="", help="Arc name for section titles")
@click.pass_obj
def timeline(cfg: dict, arc_id: str | None, character_id: str | None, arc_name: str) -> None:
    """Print a segmented timeline with spoilers masked."""

    async def _run() -> None:
        async with _client(cfg) as wiki:
            session = await _resolve(cfg, _store(cfg), wiki)
            try:
                events = await wiki.get_events(arc_id=arc_id, character_id=character_id)
            except _WIKI_ERRORS as exc:
                raise click.ClickException(f"Could not load events: {exc}")
        for title, unit in titled_units(session.segment(events), arc_name):
            low, high = unit.chapter_range
            click.echo(f"\n{title}  [ch. {low}-{high}]")
            for event in unit.members:
                if session.is_visible(event):
                    click.echo(f"  {event.chapter_ordinal:>4}  {event.kind.value:<10} {event.title}")
                else:
                    click.echo(f"  {event.chapter_ordinal:>4}  {'hidden':<10} Read up to Chapter {event.chapter_ordinal}")

    asyncio.run(_run())


@main.command()
@click.option("--spoiler", "spoiler_id", required=True, help="Spoiler record id")
@click.option("--read", "read_ids", default="", help="Comma-separated chapter ids already read")
@click.pass_obj
def check(cfg: dict, spoiler_id: str, read_ids: str) -> None:
    """Check whether a spoiler record is viewable."""
    read = {int(x) for x in read_ids.split(",") if x.strip()}

    async def _run() -> None:
        async with _client(cfg) as wiki:
            session = await _resolve(cfg, _store(cfg), wiki)
            try:
                records = await wiki.get_spoiler_records()
            except _WIKI_ERRORS as exc:
                logger.warning("Spoiler records unavailable: %s", exc)
                records = []
        index = SpoilerRecordIndex(records)
        if spoiler_id not in index:
            click.echo("hidden (unknown spoiler)")
            return
        record = index.get(spoiler_id)
        viewable = session.gate_record(record, read_chapter_ids=read)
        click.echo("viewable" if viewable else f"hidden ({reveal_hint(record)})")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
