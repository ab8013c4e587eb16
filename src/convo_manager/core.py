"""Core data models for convo-manager."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass
class ConversationRecord:
    """A single remote conversation tracked locally.

    ``title_lower`` and ``content_lower`` are caches derived on assignment of
    ``title`` / ``content`` and cannot be set directly.
    """

    id: str
    title: str
    updated_at: datetime
    selected: bool = False
    content: Optional[str] = None
    content_indexed: bool = False  # content fetched by an index pass
    match_label: str = ""  # "title" | "content" | "title+content"
    match_preview: str = ""

    def __setattr__(self, name, value):
        super().__setattr__(name, value)
        if name == "title":
            super().__setattr__("_title_lower", (value or "").lower())
        elif name == "content":
            super().__setattr__("_content_lower", value.lower() if value else "")

    @property
    def title_lower(self) -> str:
        return self._title_lower

    @property
    def content_lower(self) -> str:
        return self._content_lower

    def clear_match(self) -> None:
        self.match_label = ""
        self.match_preview = ""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime:
    """Parse an ISO-8601 string or epoch (seconds or ms) into an aware datetime.

    Malformed or missing values fall back to the current time.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return utcnow()

    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return utcnow()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return utcnow()
