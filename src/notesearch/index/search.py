"""Hybrid semantic + full-text search interface."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping

from notesearch.index.storage import NotesTable
from notesearch.models import SearchHit
from notesearch.utils.text import make_snippet

LOGGER = logging.getLogger(__name__)

DISPLAY_FIELDS = ("title", "content", "creation_date", "modification_date")


def merge_hits(*result_sets: Iterable[SearchHit]) -> List[SearchHit]:
    """Concatenate result sets and deduplicate them by title.

    A title keeps the position of its first occurrence while its record is
    replaced by the last occurrence, so a lexical hit overrides the content
    of a semantic hit for the same note without moving it.
    """
    merged: Dict[str, SearchHit] = {}
    for results in result_sets:
        for hit in results:
            merged[hit.title] = hit
    return list(merged.values())


def render_results(hits: Iterable[SearchHit], *, start_rank: int = 1, snippet_chars: int = 300) -> str:
    return "\n".join(
        f"{rank}. **{hit.title}**\n{make_snippet(hit.content, max_chars=snippet_chars)}\n"
        for rank, hit in enumerate(hits, start=start_rank)
    )


def _to_hits(rows: Iterable[Mapping[str, Any]]) -> List[SearchHit]:
    return [SearchHit.from_row(row) for row in rows]


class HybridSearcher:
    """Runs vector and full-text search side by side and fuses the results."""

    def __init__(self, *, snippet_chars: int = 300) -> None:
        self.snippet_chars = snippet_chars

    async def search(self, table: NotesTable, query: str, limit: int = 20) -> str:
        semantic_rows, fulltext_rows = await asyncio.gather(
            table.vector_search(query, top_k=limit, columns=DISPLAY_FIELDS),
            table.search("content", query, limit=limit, columns=DISPLAY_FIELDS),
        )
        LOGGER.debug(
            "Query %r: %d semantic, %d full-text hits",
            query,
            len(semantic_rows),
            len(fulltext_rows),
        )

        unique_hits = merge_hits(_to_hits(semantic_rows), _to_hits(fulltext_rows))
        result_text = render_results(unique_hits[:limit], snippet_chars=self.snippet_chars)
        return f'Found {len(unique_hits)} notes matching "{query}":\n\n{result_text}'
