"""Fetch full conversation content so searches can look inside messages."""

import logging
from typing import Iterable

from .. import config
from ..core import ConversationRecord
from ..driver import ProgressMode
from ..store import RecordStore
from .base import BrowserTask, TaskOutcome

logger = logging.getLogger(__name__)

# Requests inside one batch run concurrently; the delay only separates batches.
_BODY = """
const out = [];
const ids = PARAMS.ids;
for (let i = 0; i < ids.length; i += PARAMS.batch_size) {
  if (i > 0) await sleep(PARAMS.batch_delay_ms);
  const batch = ids.slice(i, i + PARAMS.batch_size);
  const results = await Promise.all(batch.map(async (id) => {
    try {
      const resp = await api(`/chat_conversations/${id}?tree=true`);
      if (!resp.ok) return {id: id, content: "", error: `HTTP ${resp.status}`};
      const convo = await resp.json();
      const text = (convo.chat_messages || []).map(textOf).filter(Boolean).join("\\n\\n");
      return {id: id, content: text.slice(0, PARAMS.max_length)};
    } catch (e) {
      return {id: id, content: "", error: String((e && e.message) || e)};
    } finally {
      window.__cmProgress += 1;
    }
  }));
  out.push(...results);
}
return {success: true, error: null, data: {items: out}};
"""


class IndexTask(BrowserTask):
    """Fetch and store message content for a subset of records."""

    name = "index"
    title = "Index conversation content"
    status_text = "Indexing content..."
    progress_mode = ProgressMode.PERCENT

    def __init__(
        self,
        store: RecordStore,
        records: Iterable[ConversationRecord],
        *,
        batch_size: int = config.INDEX_BATCH_SIZE,
        batch_delay_ms: int = config.INDEX_BATCH_DELAY_MS,
        max_content_length: int = config.MAX_CONTENT_LENGTH,
        timeout: float = config.INDEX_TIMEOUT,
    ):
        super().__init__()
        self.store = store
        self.ids = [r.id for r in records]
        self.batch_size = max(1, batch_size)
        self.batch_delay_ms = batch_delay_ms
        self.max_content_length = max_content_length
        self.timeout = timeout

    @property
    def total(self) -> int:
        return len(self.ids)

    def script_body(self) -> str:
        return _BODY

    def script_params(self) -> dict:
        return {
            "ids": self.ids,
            "batch_size": self.batch_size,
            "batch_delay_ms": self.batch_delay_ms,
            "max_length": self.max_content_length,
        }

    def apply(self, result: dict) -> TaskOutcome:
        if not result["success"]:
            self.outcome = TaskOutcome(False, f"Indexing failed: {result['error']}")
            return self.outcome

        indexed = empty = 0
        for item in (result["data"] or {}).get("items") or []:
            content = (item.get("content") or "")[: self.max_content_length]
            if self.store.set_content(item.get("id"), content):
                indexed += 1
            else:
                empty += 1
                if item.get("error"):
                    logger.warning("Could not index %s: %s", item.get("id"), item["error"])

        self.outcome = TaskOutcome(
            True,
            f"Indexed {indexed} of {len(self.ids)} conversations",
            counts={"indexed": indexed, "empty": empty},
        )
        return self.outcome
