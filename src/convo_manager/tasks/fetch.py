"""Fetch the conversation listing into the record store.

The script walks the cursor-paginated listing and stops on the first page
that brings no new ids, a cursor it has already followed, a short page, or the
page ceiling. A 401/403 on any page aborts the whole fetch; partial listings
are never merged.
"""

import logging
from typing import Iterable

from .. import config
from ..driver import ProgressMode
from ..store import RecordStore
from .base import AUTH_EXPIRED, BrowserTask, TaskOutcome

logger = logging.getLogger(__name__)

_BODY = """
const seen = new Set();
const followed = new Set();
const pages = [];
let cursor = null;
for (let page = 0; page < PARAMS.max_pages; page++) {
  let path = `/chat_conversations?limit=${PARAMS.page_size}`;
  if (cursor) path += `&cursor=${encodeURIComponent(cursor)}`;
  const resp = await api(path);
  if (resp.status === 401 || resp.status === 403) {
    return {success: false, error: PARAMS.auth_error, data: null};
  }
  if (!resp.ok) throw new Error(`listing failed: HTTP ${resp.status}`);
  const body = await resp.json();
  const items = Array.isArray(body) ? body : (body.data || body.conversations || []);
  const slim = items.map((c) => ({uuid: c.uuid, name: c.name, updated_at: c.updated_at}));
  let next = Array.isArray(body) ? null : (body.next_cursor || body.cursor || null);
  if (!next && slim.length) next = slim[slim.length - 1].uuid;
  pages.push({cursor: cursor, next_cursor: next, items: slim});

  let novel = 0;
  for (const c of slim) {
    if (c.uuid && !seen.has(c.uuid)) {
      seen.add(c.uuid);
      novel++;
    }
  }
  window.__cmProgress = seen.size;
  if (novel === 0 || slim.length < PARAMS.page_size) break;
  if (!next || followed.has(next)) break;
  followed.add(next);
  cursor = next;
}
return {success: true, error: null, data: {pages: pages}};
"""


def collect_pages(pages: Iterable[dict], *, page_size: int, max_pages: int) -> list[dict]:
    """Walk listing pages with the script's stop rules and dedupe by id.

    ``pages`` may be lazy; it is consumed only as far as the stop rules allow.
    First occurrence of an id wins.
    """
    seen: dict[str, dict] = {}
    followed: set[str] = set()
    for index, page in enumerate(pages):
        if index >= max_pages:
            break
        items = page.get("items") or []
        novel = 0
        for item in items:
            record_id = item.get("uuid") or item.get("id")
            if record_id and record_id not in seen:
                seen[record_id] = item
                novel += 1

        if novel == 0 or len(items) < page_size:
            break
        next_cursor = page.get("next_cursor")
        if not next_cursor or next_cursor in followed:
            break
        followed.add(next_cursor)

    return list(seen.values())


class FetchTask(BrowserTask):
    """Paginate the remote listing and merge it into the store."""

    name = "fetch"
    title = "Fetch conversations"
    status_text = "Fetching conversations..."
    progress_mode = ProgressMode.COUNT

    def __init__(
        self,
        store: RecordStore,
        *,
        page_size: int = config.FETCH_PAGE_SIZE,
        max_pages: int = config.FETCH_MAX_PAGES,
        timeout: float = config.FETCH_TIMEOUT,
    ):
        super().__init__()
        self.store = store
        self.page_size = page_size
        self.max_pages = max_pages
        self.timeout = timeout

    def script_body(self) -> str:
        return _BODY

    def script_params(self) -> dict:
        return {
            "page_size": self.page_size,
            "max_pages": self.max_pages,
            "auth_error": AUTH_EXPIRED,
        }

    def apply(self, result: dict) -> TaskOutcome:
        if not result["success"]:
            if result["error"] == AUTH_EXPIRED:
                self.outcome = TaskOutcome(False, "Authentication expired; run 'convo-manager login' again")
            else:
                self.outcome = TaskOutcome(False, f"Fetch failed: {result['error']}")
            return self.outcome

        pages = (result["data"] or {}).get("pages") or []
        items = collect_pages(pages, page_size=self.page_size, max_pages=self.max_pages)
        added = self.store.merge_listing(items)
        logger.info("Fetched %d conversations over %d pages (%d new)", len(items), len(pages), added)

        self.outcome = TaskOutcome(
            True,
            f"Fetched {len(items)} conversations ({added} new)",
            counts={"fetched": len(items), "new": added, "pages": len(pages)},
        )
        return self.outcome
