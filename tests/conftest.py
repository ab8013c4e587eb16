"""Shared test fixtures for convo-manager."""

import pytest

from convo_manager.store import RecordStore

# Tight timings so driver tests finish in milliseconds.
FAST = {"poll_interval": 0.01, "settle_delay": 0, "timeout": 2.0}


@pytest.fixture
def fast_options():
    return dict(FAST)


@pytest.fixture
def listing():
    """Listing entries as the remote service returns them."""
    return [
        {"uuid": "conv-001", "name": "Alpha project", "updated_at": "2025-01-15T10:00:00Z"},
        {"uuid": "conv-002", "name": "Beta notes", "updated_at": "2025-02-01T09:30:00Z"},
        {"uuid": "conv-003", "name": "Alpha debug", "updated_at": "2025-03-10T18:45:00.123456Z"},
    ]


@pytest.fixture
def store(listing):
    s = RecordStore()
    s.merge_listing(listing)
    return s


@pytest.fixture
def conversation_detail():
    """A full conversation payload (``?tree=true``)."""
    return {
        "uuid": "conv-001",
        "name": "Alpha project",
        "created_at": "2025-01-15T09:00:00Z",
        "updated_at": "2025-01-15T10:00:00Z",
        "model": "claude-sonnet-4",
        "chat_messages": [
            {
                "uuid": "msg-1",
                "sender": "human",
                "text": "How do I structure the alpha rollout?",
                "created_at": "2025-01-15T09:00:00Z",
                "attachments": [],
            },
            {
                "uuid": "msg-2",
                "sender": "assistant",
                "content": [
                    {"type": "text", "text": "Start with a staged deployment."},
                    {"type": "tool_use", "name": "search"},
                    {"type": "text", "text": "Then widen the audience."},
                ],
                "created_at": "2025-01-15T09:00:30Z",
            },
        ],
    }
