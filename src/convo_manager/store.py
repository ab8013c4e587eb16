"""In-memory conversation records and their filtered, sorted view."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional

from .core import ConversationRecord, parse_timestamp
from .matcher import is_excluded, matches, matches_id, snippet
from .query import Query, QueryMode

logger = logging.getLogger(__name__)


class SortOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    TITLE = "title"


@dataclass
class FilterOptions:
    """View policy applied on top of a Query."""

    after: Optional[datetime] = None
    before: Optional[datetime] = None  # inclusive of the whole day
    search_content: bool = False
    sort: SortOrder = SortOrder.NEWEST
    context_chars: int = 60


class RecordStore:
    """All known records keyed by id, plus the current filtered view.

    Mutated only by task merge steps; filtering touches match fields only.
    """

    def __init__(self) -> None:
        self._records: dict[str, ConversationRecord] = {}
        self._view: list[ConversationRecord] = []
        self._query: Query = Query()
        self._options: FilterOptions = FilterOptions()
        # cached content waiting for its record to be listed again
        self._pending_content: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._records

    def get(self, record_id: str) -> ConversationRecord | None:
        return self._records.get(record_id)

    def records(self) -> list[ConversationRecord]:
        return list(self._records.values())

    @property
    def view(self) -> list[ConversationRecord]:
        return list(self._view)

    # ── Mutation (task merge steps) ──────────────────────────────────

    def merge_listing(self, items: Iterable[dict]) -> int:
        """Merge listing entries ``{uuid|id, name|title, updated_at}``.

        New ids are added; known ids get their title and timestamp refreshed.
        Returns the number of new records.
        """
        added = 0
        for item in items:
            record_id = item.get("uuid") or item.get("id")
            if not record_id:
                continue
            title = item.get("name") or item.get("title") or ""
            updated = parse_timestamp(item.get("updated_at"))

            existing = self._records.get(record_id)
            if existing is None:
                self._records[record_id] = ConversationRecord(
                    id=record_id, title=title, updated_at=updated,
                )
                pending = self._pending_content.pop(record_id, None)
                if pending:
                    self.set_content(record_id, pending)
                added += 1
            else:
                existing.title = title
                existing.updated_at = updated

        logger.debug("Merged listing: %d new, %d total", added, len(self._records))
        self._refresh()
        return added

    def set_content(self, record_id: str, content: Optional[str]) -> bool:
        """Attach fetched content. Empty content leaves the record unindexed."""
        record = self._records.get(record_id)
        if record is None or not content:
            return False
        record.content = content
        record.content_indexed = True
        return True

    def remove(self, record_ids: Iterable[str]) -> list[str]:
        removed = []
        for record_id in record_ids:
            self._pending_content.pop(record_id, None)
            if self._records.pop(record_id, None) is not None:
                removed.append(record_id)
        if removed:
            self._refresh()
        return removed

    def select(self, record_ids: Iterable[str], selected: bool = True) -> None:
        for record_id in record_ids:
            record = self._records.get(record_id)
            if record is not None:
                record.selected = selected

    def clear_selection(self) -> None:
        for record in self._records.values():
            record.selected = False

    def selected(self) -> list[ConversationRecord]:
        return [r for r in self._records.values() if r.selected]

    def restore(self, metadata: Iterable[dict], content: Optional[dict] = None) -> None:
        """Load records from cache snapshots (opaque restore source).

        Content for ids not in ``metadata`` is held back and attached once a
        later listing brings the record in.
        """
        self.merge_listing(metadata)
        for record_id, text in (content or {}).items():
            if record_id in self._records:
                self.set_content(record_id, text)
            elif text:
                self._pending_content[record_id] = text

    def pending_content(self) -> dict[str, str]:
        return dict(self._pending_content)

    # ── Filtering ────────────────────────────────────────────────────

    def apply_filter(self, query: Query, options: Optional[FilterOptions] = None) -> list[ConversationRecord]:
        """Recompute the visible view for ``query`` and return it."""
        self._query = query
        self._options = options or FilterOptions()
        self._refresh()
        return self.view

    def clear_filter(self) -> list[ConversationRecord]:
        return self.apply_filter(Query(), FilterOptions(sort=self._options.sort))

    def _refresh(self) -> None:
        query, options = self._query, self._options
        visible = []
        for record in self._records.values():
            if self._evaluate(record, query, options):
                visible.append(record)
        self._view = _sort(visible, options.sort)

    def _evaluate(self, record: ConversationRecord, query: Query, options: FilterOptions) -> bool:
        record.clear_match()
        if not _in_range(record.updated_at, options.after, options.before):
            return False

        if query.mode is QueryMode.NONE:
            return True

        if query.mode is QueryMode.ID:
            if is_excluded(record.title, query):
                return False
            if matches_id(record.id, query):
                record.match_label = "id"
                return True
            return False

        title_hit = matches(record.title, query)
        content_hit = (
            options.search_content
            and record.content_indexed
            and matches(record.content, query)
        )
        if not (title_hit or content_hit):
            return False

        previews = []
        if title_hit:
            previews.append(snippet(record.title, query, options.context_chars))
        if content_hit:
            previews.append(snippet(record.content, query, options.context_chars))
        record.match_label = "title+content" if title_hit and content_hit else ("title" if title_hit else "content")
        record.match_preview = " | ".join(p for p in previews if p)
        return True


def _in_range(value: datetime, after: Optional[datetime], before: Optional[datetime]) -> bool:
    value = _aware(value)
    if after is not None and value < _aware(after):
        return False
    if before is not None and value >= _aware(before) + timedelta(days=1):
        return False
    return True


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _sort(records: list[ConversationRecord], order: SortOrder) -> list[ConversationRecord]:
    if order is SortOrder.OLDEST:
        return sorted(records, key=lambda r: _aware(r.updated_at))
    if order is SortOrder.TITLE:
        return sorted(records, key=lambda r: r.title_lower)
    return sorted(records, key=lambda r: _aware(r.updated_at), reverse=True)
