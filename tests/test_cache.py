"""Tests for cache snapshots."""

import json
import time
from datetime import datetime, timedelta, timezone

from convo_manager import cache
from convo_manager.core import ConversationRecord
from convo_manager.store import RecordStore


def _record(i, content=None, days=0):
    r = ConversationRecord(
        id=f"conv-{i}",
        title=f"Conversation {i}",
        updated_at=datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(days=days),
    )
    if content:
        r.content = content
        r.content_indexed = True
    return r


def test_metadata_round_trip_into_store(tmp_path, store):
    cache.save_metadata(tmp_path, store.records())

    restored = RecordStore()
    restored.restore(cache.load_metadata(tmp_path))

    assert sorted(r.id for r in restored.records()) == ["conv-001", "conv-002", "conv-003"]
    assert restored.get("conv-003").updated_at == store.get("conv-003").updated_at


def test_metadata_expires(tmp_path, store):
    cache.save_metadata(tmp_path, store.records())
    data = json.loads((tmp_path / cache.METADATA_FILE).read_text(encoding="utf-8"))
    data["saved_at"] = time.time() - 3600
    (tmp_path / cache.METADATA_FILE).write_text(json.dumps(data), encoding="utf-8")

    assert cache.load_metadata(tmp_path, max_age=60) == []
    assert len(cache.load_metadata(tmp_path, max_age=7200)) == 3


def test_missing_and_corrupt_files_load_empty(tmp_path):
    assert cache.load_metadata(tmp_path) == []
    assert cache.load_content(tmp_path) == {}

    (tmp_path / cache.METADATA_FILE).write_text("{not json", encoding="utf-8")
    (tmp_path / cache.CONTENT_FILE).write_text("[]", encoding="utf-8")
    assert cache.load_metadata(tmp_path) == []
    assert cache.load_content(tmp_path) == {}


def test_content_cap_keeps_most_recent(tmp_path):
    records = [_record(i, content=f"body {i}", days=i) for i in range(5)] + [_record(9)]

    written = cache.save_content(tmp_path, records, max_entries=2)

    assert written == 2
    assert cache.load_content(tmp_path) == {"conv-4": "body 4", "conv-3": "body 3"}
