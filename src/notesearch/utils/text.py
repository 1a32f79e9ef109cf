"""Text helpers for search snippets and full-text queries."""

from __future__ import annotations

import re
from typing import List

_TERM_RE = re.compile(r"\w+", re.UNICODE)

ELLIPSIS = "..."


def make_snippet(text: str, *, max_chars: int = 300) -> str:
    """Return ``text`` unchanged, or its first ``max_chars`` characters plus an ellipsis."""
    if len(text) > max_chars:
        return text[:max_chars] + ELLIPSIS
    return text


def query_terms(query: str) -> List[str]:
    """Split a free-text query into word terms."""
    return _TERM_RE.findall(query)


def fts_match_expression(query: str) -> str:
    """Build an FTS5 MATCH expression matching any term of ``query``.

    Every term is double-quoted so user input never reaches the FTS5 query
    syntax (``AND``, ``NEAR``, ``*``, column filters...).
    Returns an empty string when the query holds no terms.
    """
    terms = query_terms(query)
    return " OR ".join('"{}"'.format(term.replace('"', '""')) for term in terms)
