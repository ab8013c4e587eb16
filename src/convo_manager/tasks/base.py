"""Base class for browser tasks and the shared injected-script wrapper."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..driver import ProgressMode

ORG_COOKIE = "lastActiveOrg"
AUTH_EXPIRED = "auth_expired"

# Placeholders are substituted with str.replace so the JS can use ${...} freely.
_SCRIPT_TEMPLATE = """
(() => {
  if (window.__cmDone === false) {
    return false;
  }
  window.__cmProgress = 0;
  window.__cmDone = false;
  window.__cmResult = null;

  const ORG = __ORG__;
  const PARAMS = __PARAMS__;
  const sleep = (ms) => new Promise((resolve) => setTimeout(resolve, ms));
  const api = (path, init) => fetch(
    `/api/organizations/${ORG}` + path,
    Object.assign({credentials: "include", headers: {"Accept": "application/json"}}, init || {})
  );
  const textOf = (m) => {
    if (typeof m.text === "string" && m.text) return m.text;
    if (Array.isArray(m.content)) {
      return m.content.filter((b) => b && typeof b.text === "string").map((b) => b.text).join("\\n");
    }
    return "";
  };

  (async () => {
    let result;
    try {
      result = await (async () => {
__BODY__
      })();
    } catch (e) {
      result = {success: false, error: String((e && e.message) || e), data: null};
    }
    try {
      window.__cmResult = JSON.stringify(result);
    } catch (e) {
      window.__cmResult = JSON.stringify({success: false, error: "unserializable result", data: null});
    }
    window.__cmDone = true;
  })();
  return true;
})()
"""


def wrap_script(org_id: str, body: str, params: dict) -> str:
    """Embed a task body in the self-contained script the driver injects.

    The wrapper resets the shared globals, catches every error inside the
    page and publishes ``{success, error, data}`` as a single JSON string.
    It refuses to start while a previous script is still running.
    """
    return (
        _SCRIPT_TEMPLATE
        .replace("__ORG__", json.dumps(org_id))
        .replace("__PARAMS__", json.dumps(params))
        .replace("__BODY__", body)
    )


@dataclass
class TaskOutcome:
    """What a task reports back to the host. Never raised, always returned."""

    success: bool
    message: str
    counts: dict[str, int] = field(default_factory=dict)
    data: Any = None


class BrowserTask(ABC):
    """One kind of bulk operation run through the operation driver.

    Subclasses supply the injected script body, its parameters (batching and
    delay policy) and the merge step applied to the decoded result.
    """

    name: str
    title: str
    timeout: float
    status_text: str = "Working..."
    progress_mode: ProgressMode = ProgressMode.COUNT

    def __init__(self) -> None:
        self.outcome: TaskOutcome | None = None

    @property
    def total(self) -> int:
        return 0

    @abstractmethod
    def script_body(self) -> str:
        """Return the JS statements run inside the async wrapper."""
        ...

    @abstractmethod
    def script_params(self) -> dict:
        """Return the JSON-serializable PARAMS object for the script."""
        ...

    @abstractmethod
    def apply(self, result: dict) -> TaskOutcome:
        """Merge a decoded ``{success, error, data}`` result and report."""
        ...

    def build_script(self, org_id: str) -> str:
        return wrap_script(org_id, self.script_body(), self.script_params())
