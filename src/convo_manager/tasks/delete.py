"""Delete conversations remotely, one request at a time."""

import logging
from typing import Iterable

from .. import config
from ..core import ConversationRecord
from ..driver import ProgressMode
from ..store import RecordStore
from .base import BrowserTask, TaskOutcome

logger = logging.getLogger(__name__)

_BODY = """
const out = [];
const ids = PARAMS.ids;
for (let i = 0; i < ids.length; i++) {
  if (i > 0) await sleep(PARAMS.item_delay_ms);
  const id = ids[i];
  try {
    const resp = await api(`/chat_conversations/${id}`, {
      method: "DELETE",
      headers: {"Accept": "application/json", "Content-Type": "application/json"},
    });
    out.push({id: id, ok: resp.ok, status: resp.status});
  } catch (e) {
    out.push({id: id, ok: false, status: 0, error: String((e && e.message) || e)});
  }
  window.__cmProgress = i + 1;
}
return {success: true, error: null, data: {items: out}};
"""


class DeleteTask(BrowserTask):
    """Delete a subset of records; only confirmed deletions leave the store."""

    name = "delete"
    title = "Delete conversations"
    status_text = "Deleting..."
    progress_mode = ProgressMode.COUNT

    def __init__(
        self,
        store: RecordStore,
        records: Iterable[ConversationRecord],
        *,
        item_delay_ms: int = config.DELETE_ITEM_DELAY_MS,
        timeout: float = config.DELETE_TIMEOUT,
    ):
        super().__init__()
        self.store = store
        self.ids = [r.id for r in records]
        self.item_delay_ms = item_delay_ms
        self.timeout = timeout

    @property
    def total(self) -> int:
        return len(self.ids)

    def script_body(self) -> str:
        return _BODY

    def script_params(self) -> dict:
        return {"ids": self.ids, "item_delay_ms": self.item_delay_ms}

    def apply(self, result: dict) -> TaskOutcome:
        if not result["success"]:
            self.outcome = TaskOutcome(False, f"Delete failed: {result['error']}")
            return self.outcome

        deleted, failed = [], []
        for item in (result["data"] or {}).get("items") or []:
            if item.get("ok"):
                deleted.append(item.get("id"))
            else:
                failed.append(item.get("id"))
                logger.warning("Delete of %s failed (status %s)", item.get("id"), item.get("status"))

        # failures stay in the store with their selection untouched
        removed = self.store.remove(deleted)

        self.outcome = TaskOutcome(
            not failed,
            f"Deleted {len(removed)} conversations" + (f", {len(failed)} failed" if failed else ""),
            counts={"deleted": len(removed), "failed": len(failed)},
            data=failed,
        )
        return self.outcome
