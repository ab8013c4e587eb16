"""Assemble and write conversation export documents."""

import json
import logging
from pathlib import Path
from typing import Iterable

from .core import ConversationRecord, utcnow

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"


def message_text(message: dict) -> str:
    """Return a message's text from ``text`` or its ``content`` text blocks."""
    text = message.get("text")
    if isinstance(text, str) and text:
        return text
    blocks = message.get("content")
    if isinstance(blocks, list):
        parts = [b.get("text", "") for b in blocks if isinstance(b, dict) and isinstance(b.get("text"), str)]
        return "\n".join(p for p in parts if p)
    return ""


def conversation_to_entry(detail: dict) -> dict:
    """Convert a full conversation payload into a "full" export entry."""
    return {
        "id": detail.get("uuid") or detail.get("id"),
        "name": detail.get("name", ""),
        "created_at": detail.get("created_at"),
        "updated_at": detail.get("updated_at"),
        "model": detail.get("model"),
        "chat_messages": [
            {
                "uuid": msg.get("uuid"),
                "sender": msg.get("sender"),
                "text": message_text(msg),
                "created_at": msg.get("created_at"),
                "attachments": msg.get("attachments") or [],
            }
            for msg in detail.get("chat_messages") or []
            if isinstance(msg, dict)
        ],
    }


def record_to_entry(record: ConversationRecord) -> dict:
    """Convert a local record into a "metadata" export entry."""
    return {
        "id": record.id,
        "name": record.title,
        "updated_at": record.updated_at.isoformat(),
    }


def build_export(entries: list[dict], export_type: str) -> dict:
    return {
        "export_date": utcnow().isoformat(),
        "export_version": EXPORT_VERSION,
        "export_type": export_type,
        "total_conversations": len(entries),
        "conversations": entries,
    }


def build_full_export(items: Iterable[dict]) -> dict:
    """Build a "full" export from per-item script results.

    Each item is ``{id, detail}`` on success or ``{id, error}`` on failure;
    failures stay inline so one bad conversation never sinks the export.
    """
    entries = []
    for item in items:
        detail = item.get("detail")
        if isinstance(detail, dict):
            entry = conversation_to_entry(detail)
            entry["id"] = entry["id"] or item.get("id")
            entries.append(entry)
        else:
            entries.append({"id": item.get("id"), "error": item.get("error") or "no data returned"})
    return build_export(entries, "full")


def build_metadata_export(records: Iterable[ConversationRecord]) -> dict:
    return build_export([record_to_entry(r) for r in records], "metadata")


def write_export(document: dict, destination: Path) -> Path:
    """Write an export document as UTF-8 JSON and return the path."""
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Wrote %s export of %d conversations to %s",
                document.get("export_type"), document.get("total_conversations", 0), destination)
    return destination


def write_metadata_export(records: Iterable[ConversationRecord], destination: Path) -> Path:
    """Metadata exports come straight from local records; no browser needed."""
    return write_export(build_metadata_export(records), destination)
