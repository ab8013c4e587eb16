"""Search text parsing.

Grammar (all clauses combinable):
- ``foo bar``          plain case-insensitive substring
- ``a|b|c``            any of the terms
- ``/regex/``          case-insensitive regular expression
- ``id:x`` / ``ids:a,b``  conversation id lookup
- ``not:x`` / ``not:a, b`` exclusions, applied before everything else

Parsing is total: malformed input degrades to a substring search.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

_NOT_TOKEN = re.compile(r"(?i)(?<!\S)not:(\S*(?:,\s*[^\s,]\S*)*)")
_ID_PREFIX = re.compile(r"(?is)^ids?:(.+)$")
_REGEX_FORM = re.compile(r"(?s)^/(.+)/$")


class QueryMode(str, Enum):
    NONE = "none"  # empty search, filter inactive
    ALL = "all"  # only exclusions given
    CONTAINS = "contains"
    OR = "or"
    REGEX = "regex"
    ID = "id"


@dataclass(frozen=True)
class Query:
    """Structured form of a search string. Immutable once parsed."""

    mode: QueryMode = QueryMode.NONE
    pattern: Optional[str] = None  # CONTAINS (lowercase) and REGEX (source)
    terms: tuple[str, ...] = ()  # OR
    ids: tuple[str, ...] = ()  # ID
    exclusions: tuple[str, ...] = ()
    regex: Optional[re.Pattern] = field(default=None, compare=False, repr=False)


def parse_query(text: Optional[str]) -> Query:
    """Parse user search text into a Query. Never raises."""
    working = (text or "").strip()
    if not working:
        return Query()

    exclusions: list[str] = []

    def _collect(match: re.Match) -> str:
        for term in match.group(1).split(","):
            term = term.strip().lower()
            if term and term not in exclusions:
                exclusions.append(term)
        return ""

    working = _NOT_TOKEN.sub(_collect, working).strip()
    excl = tuple(exclusions)

    if not working:
        return Query(mode=QueryMode.ALL, exclusions=excl)

    id_match = _ID_PREFIX.match(working)
    if id_match:
        ids = tuple(i for i in re.split(r"[,\s]+", id_match.group(1)) if i)
        if ids:
            return Query(mode=QueryMode.ID, ids=ids, exclusions=excl)

    regex_match = _REGEX_FORM.match(working)
    if regex_match:
        source = regex_match.group(1)
        try:
            compiled = re.compile(source, re.IGNORECASE)
        except re.error:
            compiled = None
        if compiled is not None:
            return Query(mode=QueryMode.REGEX, pattern=source, regex=compiled, exclusions=excl)

    if "|" in working:
        terms = tuple(t.strip().lower() for t in working.split("|") if t.strip())
        if len(terms) >= 2:
            return Query(mode=QueryMode.OR, terms=terms, exclusions=excl)

    return Query(mode=QueryMode.CONTAINS, pattern=working.lower(), exclusions=excl)
