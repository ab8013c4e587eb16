"""Export full conversation detail to a JSON file."""

import logging
from pathlib import Path
from typing import Iterable

from .. import config
from ..core import ConversationRecord
from ..driver import ProgressMode
from ..export import build_full_export, write_export
from .base import BrowserTask, TaskOutcome

logger = logging.getLogger(__name__)

_BODY = """
const out = [];
const ids = PARAMS.ids;
for (let i = 0; i < ids.length; i++) {
  if (i > 0) await sleep(PARAMS.item_delay_ms);
  const id = ids[i];
  try {
    const resp = await api(`/chat_conversations/${id}?tree=true`);
    if (resp.ok) {
      out.push({id: id, detail: await resp.json()});
    } else {
      out.push({id: id, error: `HTTP ${resp.status}`});
    }
  } catch (e) {
    out.push({id: id, error: String((e && e.message) || e)});
  }
  window.__cmProgress = i + 1;
}
return {success: true, error: null, data: {items: out}};
"""


class ExportTask(BrowserTask):
    """Fetch each conversation in turn and write a "full" export document."""

    name = "export"
    title = "Export conversations"
    status_text = "Exporting..."
    progress_mode = ProgressMode.COUNT

    def __init__(
        self,
        records: Iterable[ConversationRecord],
        destination: Path,
        *,
        item_delay_ms: int = config.EXPORT_ITEM_DELAY_MS,
        timeout: float = config.EXPORT_TIMEOUT,
    ):
        super().__init__()
        self.ids = [r.id for r in records]
        self.destination = Path(destination)
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
            self.outcome = TaskOutcome(False, f"Export failed: {result['error']}")
            return self.outcome

        document = build_full_export((result["data"] or {}).get("items") or [])
        failed = sum(1 for entry in document["conversations"] if "error" in entry)
        try:
            write_export(document, self.destination)
        except OSError as e:
            logger.error("Failed to write export to %s: %s", self.destination, e)
            self.outcome = TaskOutcome(False, f"Could not write {self.destination}: {e}")
            return self.outcome

        exported = document["total_conversations"] - failed
        self.outcome = TaskOutcome(
            True,
            f"Exported {exported} conversations to {self.destination}"
            + (f" ({failed} failed)" if failed else ""),
            counts={"exported": exported, "failed": failed},
            data=self.destination,
        )
        return self.outcome
