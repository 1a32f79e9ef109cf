"""Note indexing pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Tuple

from notesearch.index.storage import NotesTable
from notesearch.ingestion.normalizer import ContentNormalizer
from notesearch.ingestion.notes_source import NoteSource
from notesearch.models import IndexReport, NoteChunk, NoteDetail

LOGGER = logging.getLogger(__name__)


class Indexer:
    """Pulls every note from a source, normalizes it and writes it to a table."""

    def __init__(
        self,
        source: NoteSource,
        normalizer: ContentNormalizer | None = None,
    ) -> None:
        self.source = source
        self.normalizer = normalizer or ContentNormalizer()

    async def _list_titles(self) -> List[str]:
        try:
            titles = await self.source.list_titles()
        except Exception as e:
            LOGGER.error("Failed to list notes: %s", e)
            return []
        return list(titles or [])

    async def _fetch_detail(self, title: str) -> Tuple[NoteDetail, str]:
        """Return the note detail and an error line, empty when the fetch worked."""
        try:
            detail = await self.source.get_detail(title)
        except Exception as e:
            LOGGER.warning("Failed to get details for %s: %s", title, e)
            return NoteDetail(), f"Error getting note details for {title}: {e}\n"
        return detail or NoteDetail(), ""

    def build_chunks(self, details: List[NoteDetail]) -> List[NoteChunk]:
        """Turn fetched details into chunks, ids following source order."""
        found = [detail for detail in details if detail.title]
        return [
            NoteChunk(
                id=str(index),
                title=detail.title,
                content=self.normalizer.normalize(detail.content),
                creation_date=detail.creation_date,
                modification_date=detail.modification_date,
            )
            for index, detail in enumerate(found)
        ]

    async def index_all(self, table: NotesTable) -> IndexReport:
        """Index every note of the source into ``table``.

        A note whose details cannot be fetched is reported and skipped; a
        failing bulk insert aborts the whole run.
        """
        start = time.perf_counter()

        titles = await self._list_titles()
        LOGGER.info("Fetching %d notes", len(titles))
        fetched = await asyncio.gather(*(self._fetch_detail(title) for title in titles))

        # gather keeps listing order, so the report does too
        details = [detail for detail, _ in fetched]
        errors = [error for _, error in fetched if error]

        chunks = self.build_chunks(details)
        await table.add([chunk.to_record() for chunk in chunks])

        return IndexReport(
            chunks=len(chunks),
            report="".join(errors),
            all_notes=len(titles),
            time=(time.perf_counter() - start) * 1000,
        )
