"""CLI entry point for convo-manager."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import click

from . import cache, config
from .export import write_metadata_export
from .query import QueryMode, parse_query
from .session import BrowserSession, SessionError
from .store import FilterOptions, RecordStore, SortOrder
from .tasks import DeleteTask, ExportTask, FetchTask, IndexTask, run_task

logger = logging.getLogger(__name__)


def _playwright_session() -> BrowserSession:
    from .browser import PlaywrightSession

    return PlaywrightSession()


@dataclass
class AppState:
    cache_dir: Path
    session_factory: Callable[[], BrowserSession] = _playwright_session
    driver_options: dict = field(default_factory=dict)
    _store: Optional[RecordStore] = None

    @property
    def store(self) -> RecordStore:
        if self._store is None:
            self._store = RecordStore()
            self._store.restore(cache.load_metadata(self.cache_dir), cache.load_content(self.cache_dir))
            logger.debug("Restored %d records from %s", len(self._store), self.cache_dir)
        return self._store

    def save(self) -> None:
        if self._store is None:
            return
        try:
            cache.save_metadata(self.cache_dir, self._store.records())
            cache.save_content(self.cache_dir, self._store.records(), pending=self._store.pending_content())
        except OSError as e:
            logger.warning("Could not write cache to %s: %s", self.cache_dir, e)


def _echo_status(handle) -> None:
    op = handle.operation
    if not op.is_terminal:
        click.echo(f"  {op.describe_progress()}", err=True)


def _echo_progress(handle, delta: int) -> None:
    logger.debug("progress +%d -> %d", delta, handle.operation.progress_count)


def _run(state: AppState, task):
    outcome = asyncio.run(run_task(
        task,
        state.session_factory,
        on_status=_echo_status,
        on_progress=_echo_progress,
        **state.driver_options,
    ))
    if not outcome.success:
        state.save()
        raise click.ClickException(outcome.message)
    click.echo(outcome.message)
    return outcome


def _filter(store: RecordStore, query_text: str, *, content: bool = False,
            after: Optional[datetime] = None, before: Optional[datetime] = None,
            sort: str = SortOrder.NEWEST.value):
    query = parse_query(query_text)
    options = FilterOptions(after=after, before=before, search_content=content, sort=SortOrder(sort))
    return store.apply_filter(query, options)


def _select(store: RecordStore, query_text: str, **kwargs):
    """Select exactly the records matched by the search text."""
    if parse_query(query_text).mode is QueryMode.NONE:
        raise click.UsageError("An empty search would select everything; pass a query.")
    matched = _filter(store, query_text, **kwargs)
    store.clear_selection()
    store.select(r.id for r in matched)
    return store.selected()


_date = click.DateTime(formats=["%Y-%m-%d"])
_filter_options = [
    click.option("--content", is_flag=True, help="Also search indexed message content."),
    click.option("--after", type=_date, default=None, help="Only conversations updated on/after this date."),
    click.option("--before", type=_date, default=None, help="Only conversations updated on/before this date."),
]


def filter_options(func):
    for option in reversed(_filter_options):
        func = option(func)
    return func


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--cache-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory for cached records.")
@click.pass_context
def main(ctx, verbose: bool, cache_dir: Optional[Path]):
    """Search, index, export and bulk-delete claude.ai conversations."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if ctx.obj is None:
        ctx.obj = AppState(cache_dir=cache_dir or config.get_cache_path())
    elif cache_dir is not None:
        ctx.obj.cache_dir = cache_dir


@main.command()
@click.option("--timeout", default=300, help="Seconds to wait for sign-in.")
@click.pass_obj
def login(state: AppState, timeout: int):
    """Open a browser window and sign in; the session is kept in the profile."""
    from .browser import PlaywrightSession, wait_for_login

    async def _login() -> bool:
        session = PlaywrightSession(headless=False)
        try:
            return await wait_for_login(session, config.get_base_url() + config.LOGIN_PATH, timeout=timeout)
        finally:
            await session.close()

    click.echo("Sign in using the browser window that just opened...")
    try:
        ok = asyncio.run(_login())
    except SessionError as e:
        raise click.ClickException(str(e))
    if not ok:
        raise click.ClickException("Timed out waiting for sign-in.")
    click.echo("Signed in.")


@main.command()
@click.pass_obj
def fetch(state: AppState):
    """Download the conversation list."""
    _run(state, FetchTask(state.store))
    state.save()


@main.command()
@click.argument("query", default="")
@filter_options
@click.option("--sort", type=click.Choice([s.value for s in SortOrder]), default=SortOrder.NEWEST.value)
@click.option("--limit", default=50, help="Maximum rows to print.")
@click.pass_obj
def search(state: AppState, query: str, content: bool, after, before, sort: str, limit: int):
    """List conversations matching QUERY.

    \b
    Syntax:  words        substring match
             a|b|c        any of the terms
             /regex/      regular expression
             ids:a,b      conversation ids
             not:x,y      exclude matches
    """
    store = state.store
    if not len(store):
        raise click.ClickException("No conversations cached; run 'convo-manager fetch' first.")

    view = _filter(store, query, content=content, after=after, before=before, sort=sort)
    for record in view[:limit]:
        line = f"{record.id}  {record.updated_at:%Y-%m-%d}  {record.title}"
        if record.match_label:
            line += f"  [{record.match_label}]"
        click.echo(line)
        if record.match_preview:
            click.echo(f"    {record.match_preview}")
    click.echo(f"{len(view)} of {len(store)} conversations", err=True)


@main.command()
@click.argument("query", default="")
@filter_options
@click.option("--all", "reindex", is_flag=True, help="Re-index conversations that already have content.")
@click.pass_obj
def index(state: AppState, query: str, content: bool, after, before, reindex: bool):
    """Fetch message content for matching conversations (all if no QUERY)."""
    store = state.store
    targets = _filter(store, query, content=content, after=after, before=before)
    if not reindex:
        targets = [r for r in targets if not r.content_indexed]
    if not targets:
        click.echo("Nothing to index.")
        return
    _run(state, IndexTask(store, targets))
    state.save()


@main.command()
@click.argument("query")
@filter_options
@click.option("--out", "-o", "destination", required=True, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--metadata", is_flag=True, help="Export titles and dates only, without fetching content.")
@click.pass_obj
def export(state: AppState, query: str, content: bool, after, before, destination: Path, metadata: bool):
    """Export matching conversations to a JSON file."""
    selected = _select(state.store, query, content=content, after=after, before=before)
    if not selected:
        raise click.ClickException("No conversations match.")

    if metadata:
        try:
            write_metadata_export(selected, destination)
        except OSError as e:
            raise click.ClickException(f"Could not write {destination}: {e}")
        click.echo(f"Exported {len(selected)} conversations to {destination}")
        return
    _run(state, ExportTask(selected, destination))


@main.command()
@click.argument("query")
@filter_options
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_obj
def delete(state: AppState, query: str, content: bool, after, before, yes: bool):
    """Permanently delete matching conversations."""
    store = state.store
    selected = _select(store, query, content=content, after=after, before=before)
    if not selected:
        raise click.ClickException("No conversations match.")

    for record in selected[:10]:
        click.echo(f"  {record.title}")
    if len(selected) > 10:
        click.echo(f"  ... and {len(selected) - 10} more")
    if not yes:
        click.confirm(f"Delete {len(selected)} conversations? This cannot be undone", abort=True)

    _run(state, DeleteTask(store, selected))
    state.save()
