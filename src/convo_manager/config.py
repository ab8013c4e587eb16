"""Platform-aware paths and tunables for convo-manager."""

import os
import sys
from pathlib import Path

# Driver timing (seconds)
POLL_INTERVAL = 0.5
SETTLE_DELAY = 1.5

# Per-operation timeouts (seconds)
FETCH_TIMEOUT = 300.0
INDEX_TIMEOUT = 1800.0
EXPORT_TIMEOUT = 1800.0
DELETE_TIMEOUT = 1800.0

# Listing pagination
FETCH_PAGE_SIZE = 50
FETCH_MAX_PAGES = 200

# Content indexing
INDEX_BATCH_SIZE = 8
INDEX_BATCH_DELAY_MS = 500
MAX_CONTENT_LENGTH = 50_000

# Sequential operations
EXPORT_ITEM_DELAY_MS = 300
DELETE_ITEM_DELAY_MS = 300

# Cache snapshots
METADATA_CACHE_MAX_AGE = 24 * 60 * 60
CONTENT_CACHE_MAX_ENTRIES = 2000

ENTRY_PATH = "/recents"
LOGIN_PATH = "/login"


def get_data_path() -> Path:
    """Return the directory holding the browser profile and caches."""
    env = os.environ.get("CONVO_DATA_PATH")
    if env:
        return Path(env)

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "convo-manager"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "convo-manager"
    else:  # Linux
        return Path.home() / ".local" / "share" / "convo-manager"


def get_profile_path() -> Path:
    """Return the persistent browser profile directory (holds auth cookies)."""
    env = os.environ.get("CONVO_PROFILE_PATH")
    if env:
        return Path(env)

    return get_data_path() / "browser-profile"


def get_cache_path() -> Path:
    """Return the directory for metadata and content snapshots."""
    env = os.environ.get("CONVO_CACHE_PATH")
    if env:
        return Path(env)

    return get_data_path() / "cache"


def get_base_url() -> str:
    """Return the origin of the remote chat service."""
    return os.environ.get("CONVO_BASE_URL", "https://claude.ai").rstrip("/")


def get_entry_url() -> str:
    return get_base_url() + ENTRY_PATH


def is_headless() -> bool:
    return os.environ.get("CONVO_HEADLESS", "").lower() in ("1", "true", "yes")
