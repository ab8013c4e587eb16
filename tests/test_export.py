"""Tests for export document assembly."""

import json
from datetime import datetime, timezone

import pytest

from convo_manager.core import ConversationRecord
from convo_manager.export import (
    build_full_export,
    build_metadata_export,
    conversation_to_entry,
    message_text,
    write_export,
    write_metadata_export,
)


@pytest.fixture
def sample_records():
    return [
        ConversationRecord(
            id="conv-001",
            title="Fix authentication bug",
            updated_at=datetime(2025, 1, 15, 11, 0, 0, tzinfo=timezone.utc),
        ),
        ConversationRecord(
            id="conv-002",
            title="Añadir modo oscuro",
            updated_at=datetime(2025, 1, 16, 8, 0, 0, tzinfo=timezone.utc),
        ),
    ]


class TestMessageText:
    def test_plain_text(self):
        assert message_text({"text": "hello"}) == "hello"

    def test_content_blocks(self):
        msg = {"text": "", "content": [{"type": "text", "text": "a"}, {"type": "image"}, {"type": "text", "text": "b"}]}
        assert message_text(msg) == "a\nb"

    def test_nothing(self):
        assert message_text({}) == ""


class TestFullExport:
    def test_envelope(self, conversation_detail):
        doc = build_full_export([{"id": "conv-001", "detail": conversation_detail}])
        assert doc["export_type"] == "full"
        assert doc["export_version"] == "1.0"
        assert doc["total_conversations"] == 1
        datetime.fromisoformat(doc["export_date"])

    def test_entry_fields(self, conversation_detail):
        entry = conversation_to_entry(conversation_detail)
        assert set(entry) == {"id", "name", "created_at", "updated_at", "model", "chat_messages"}
        assert entry["id"] == "conv-001"
        assert entry["model"] == "claude-sonnet-4"
        msg = entry["chat_messages"][0]
        assert set(msg) == {"uuid", "sender", "text", "created_at", "attachments"}
        assert msg["sender"] == "human"
        assert entry["chat_messages"][1]["attachments"] == []

    def test_failures_stay_inline(self, conversation_detail):
        doc = build_full_export([
            {"id": "conv-002", "error": "HTTP 500"},
            {"id": "conv-001", "detail": conversation_detail},
            {"id": "conv-003"},
        ])
        assert [c["id"] for c in doc["conversations"]] == ["conv-002", "conv-001", "conv-003"]
        assert doc["conversations"][0] == {"id": "conv-002", "error": "HTTP 500"}
        assert doc["conversations"][2]["error"] == "no data returned"

    def test_detail_without_uuid_uses_item_id(self):
        doc = build_full_export([{"id": "conv-9", "detail": {"name": "n"}}])
        assert doc["conversations"][0]["id"] == "conv-9"


class TestMetadataExport:
    def test_entries(self, sample_records):
        doc = build_metadata_export(sample_records)
        assert doc["export_type"] == "metadata"
        assert doc["total_conversations"] == 2
        assert doc["conversations"][0] == {
            "id": "conv-001",
            "name": "Fix authentication bug",
            "updated_at": "2025-01-15T11:00:00+00:00",
        }

    def test_write_is_utf8_json(self, sample_records, tmp_path):
        path = write_metadata_export(sample_records, tmp_path / "nested" / "meta.json")
        raw = path.read_text(encoding="utf-8")
        assert "Añadir" in raw
        assert json.loads(raw)["conversations"][1]["name"] == "Añadir modo oscuro"

    def test_empty(self, tmp_path):
        path = write_export(build_metadata_export([]), tmp_path / "empty.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["total_conversations"] == 0
        assert data["conversations"] == []
