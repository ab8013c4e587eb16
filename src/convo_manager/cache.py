"""Load-all/save-all JSON snapshots of records and indexed content.

Both snapshots are opaque to the rest of the package: they are read once to
seed the store and written once after a command finishes.
"""

import json
import logging
import time
from pathlib import Path
from typing import Iterable

from . import config
from .core import ConversationRecord

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
CONTENT_FILE = "content.json"


def _read_json(path: Path) -> dict | None:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable cache %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring malformed cache %s", path)
        return None
    return data


def _write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


def load_metadata(cache_dir: Path, max_age: float = config.METADATA_CACHE_MAX_AGE) -> list[dict]:
    """Return cached listing entries, or nothing if the snapshot has expired."""
    data = _read_json(Path(cache_dir) / METADATA_FILE)
    if data is None:
        return []
    saved_at = data.get("saved_at") or 0
    if max_age is not None and time.time() - saved_at > max_age:
        logger.info("Metadata cache expired (saved %.0fs ago)", time.time() - saved_at)
        return []
    records = data.get("records")
    return [r for r in records if isinstance(r, dict)] if isinstance(records, list) else []


def save_metadata(cache_dir: Path, records: Iterable[ConversationRecord]) -> None:
    _write_json(Path(cache_dir) / METADATA_FILE, {
        "saved_at": time.time(),
        "records": [
            {"uuid": r.id, "name": r.title, "updated_at": r.updated_at.isoformat()}
            for r in records
        ],
    })


def load_content(cache_dir: Path) -> dict[str, str]:
    data = _read_json(Path(cache_dir) / CONTENT_FILE)
    if data is None:
        return {}
    content = data.get("content")
    if not isinstance(content, dict):
        return {}
    return {k: v for k, v in content.items() if isinstance(v, str) and v}


def save_content(
    cache_dir: Path,
    records: Iterable[ConversationRecord],
    max_entries: int = config.CONTENT_CACHE_MAX_ENTRIES,
    pending: dict[str, str] | None = None,
) -> int:
    """Persist indexed content for the most recently updated records.

    ``pending`` holds cached content for ids not currently listed; it fills
    whatever room the records leave. Returns the number of entries written.
    """
    indexed = [r for r in records if r.content_indexed and r.content]
    indexed.sort(key=lambda r: r.updated_at, reverse=True)
    content = {r.id: r.content for r in indexed[:max_entries]}
    for record_id, text in (pending or {}).items():
        if len(content) >= max_entries:
            break
        content.setdefault(record_id, text)

    total = len(indexed) + len(pending or {})
    _write_json(Path(cache_dir) / CONTENT_FILE, {
        "saved_at": time.time(),
        "content": content,
    })
    if total > len(content):
        logger.info("Content cache capped at %d of %d entries", len(content), total)
    return len(content)
