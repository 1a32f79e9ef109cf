"""Idempotent creation of the notes table and its full-text index."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from notesearch.config import DEFAULT_TABLE_NAME
from notesearch.index.storage import NOTES_SCHEMA, FtsIndex, NotesDatabase, NotesTable

LOGGER = logging.getLogger(__name__)

CONTENT_FIELD = "content"
CONTENT_INDEX = f"{CONTENT_FIELD}_idx"


@dataclass(slots=True)
class ProvisionResult:
    table: NotesTable
    time: float


async def provision_table(db: NotesDatabase, table_name: str | None = None) -> ProvisionResult:
    """Make sure the notes table and its ``content_idx`` full-text index exist.

    Safe to call before every index or search run: an existing table is
    reused as-is and the index is only built when no index of that name is
    registered.
    """
    start = time.perf_counter()
    table = await db.create_table(
        table_name or DEFAULT_TABLE_NAME,
        NOTES_SCHEMA,
        mode="create",
        exist_ok=True,
    )

    indices = await table.list_indices()
    if not any(index.name == CONTENT_INDEX for index in indices):
        LOGGER.info("Building full-text index %s on %s", CONTENT_INDEX, table.name)
        await table.create_index(CONTENT_FIELD, config=FtsIndex(), replace=True, name=CONTENT_INDEX)

    return ProvisionResult(table=table, time=(time.perf_counter() - start) * 1000)
