"""Tests for notes table provisioning."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from notesearch.index.provisioner import CONTENT_INDEX, provision_table
from notesearch.index.storage import IndexConfig, NOTES_SCHEMA, StorageError


class TestProvisionTable:
    @pytest.mark.asyncio
    async def test_creates_default_table_and_index(self, database) -> None:
        result = await provision_table(database)

        assert result.table.name == "notes"
        assert result.time >= 0
        assert await database.table_names() == ["notes"]
        assert [index.name for index in await result.table.list_indices()] == [CONTENT_INDEX]

    @pytest.mark.asyncio
    async def test_custom_table_name(self, database) -> None:
        result = await provision_table(database, "archive")

        assert result.table.name == "archive"
        assert await database.table_names() == ["archive"]

    @pytest.mark.asyncio
    async def test_idempotent(self, database, make_record) -> None:
        first = await provision_table(database)
        await first.table.add([make_record("0", "Groceries", "milk and eggs")])

        second = await provision_table(database)

        assert await database.table_names() == ["notes"]
        assert [index.name for index in await second.table.list_indices()] == [CONTENT_INDEX]
        assert await second.table.count_rows() == 1
        # The existing index still serves the rows written before the second call
        results = await second.table.search("content", "milk")
        assert [row["title"] for row in results] == ["Groceries"]

    @pytest.mark.asyncio
    async def test_other_indices_untouched(self, database) -> None:
        table = await database.create_table("notes")
        await table.create_index("title")

        result = await provision_table(database)

        assert [index.name for index in await result.table.list_indices()] == [
            CONTENT_INDEX,
            "title_idx",
        ]

    @pytest.mark.asyncio
    async def test_skips_index_creation_when_present(self) -> None:
        table = MagicMock()
        table.list_indices = AsyncMock(
            return_value=[IndexConfig(name=CONTENT_INDEX, index_type="FTS", columns=("content",))]
        )
        table.create_index = AsyncMock()
        db = MagicMock()
        db.create_table = AsyncMock(return_value=table)

        result = await provision_table(db)

        db.create_table.assert_awaited_once_with(
            "notes", NOTES_SCHEMA, mode="create", exist_ok=True
        )
        table.create_index.assert_not_awaited()
        assert result.table is table

    @pytest.mark.asyncio
    async def test_index_failure_propagates(self) -> None:
        table = MagicMock()
        table.list_indices = AsyncMock(return_value=[])
        table.create_index = AsyncMock(side_effect=StorageError("disk full"))
        db = MagicMock()
        db.create_table = AsyncMock(return_value=table)

        with pytest.raises(StorageError, match="disk full"):
            await provision_table(db)

        table.create_index.assert_awaited_once()
