"""Evaluate a parsed Query against record fields and build highlight snippets."""

from typing import Optional

from .query import Query, QueryMode

ELLIPSIS = "..."


def is_excluded(text: Optional[str], query: Query) -> bool:
    """True if the lowercase text contains any exclusion term."""
    if not query.exclusions:
        return False
    lowered = (text or "").lower()
    return any(term in lowered for term in query.exclusions)


def matches(text: Optional[str], query: Query) -> bool:
    """Return whether a single field satisfies the query.

    Exclusions are checked first and win over the positive mode. ID queries
    are not evaluated here; use :func:`matches_id` against the raw id.
    """
    text = text or ""
    if is_excluded(text, query):
        return False

    mode = query.mode
    if mode in (QueryMode.NONE, QueryMode.ALL):
        return True
    if mode is QueryMode.CONTAINS:
        return query.pattern in text.lower()
    if mode is QueryMode.OR:
        lowered = text.lower()
        return any(term in lowered for term in query.terms)
    if mode is QueryMode.REGEX:
        return query.regex is not None and query.regex.search(text) is not None
    return False


def matches_id(record_id: str, query: Query) -> bool:
    """Case-sensitive id match: exact equality or substring containment."""
    if query.mode is not QueryMode.ID:
        return False
    return any(wanted == record_id or wanted in record_id for wanted in query.ids)


def _locate(text: str, query: Query) -> Optional[tuple[int, int]]:
    mode = query.mode
    if mode is QueryMode.CONTAINS:
        start = text.lower().find(query.pattern)
        return (start, start + len(query.pattern)) if start >= 0 else None
    if mode is QueryMode.OR:
        lowered = text.lower()
        best = None
        for term in query.terms:
            start = lowered.find(term)
            if start >= 0 and (best is None or start < best[0]):
                best = (start, start + len(term))
        return best
    if mode is QueryMode.REGEX and query.regex is not None:
        hit = query.regex.search(text)
        # zero-width hits are not worth highlighting
        if hit and hit.end() > hit.start():
            return hit.start(), hit.end()
    return None


def snippet(text: Optional[str], query: Query, context_chars: int = 60) -> str:
    """Return the first match with up to ``context_chars`` on each side.

    Truncated edges are marked with ``...``. Empty when nothing is locatable.
    """
    if not text:
        return ""
    span = _locate(text, query)
    if span is None:
        return ""

    start = max(0, span[0] - context_chars)
    end = min(len(text), span[1] + context_chars)
    excerpt = " ".join(text[start:end].split())
    if start > 0:
        excerpt = ELLIPSIS + excerpt
    if end < len(text):
        excerpt = excerpt + ELLIPSIS
    return excerpt
