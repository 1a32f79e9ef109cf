"""SQLite notes store with vector similarity and FTS5 full-text search."""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Literal, Mapping, Sequence, TypeVar

import numpy as np

from notesearch.embedding.encoder import EmbeddingFunction
from notesearch.utils.text import fts_match_expression

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

ROW_ID = "row_id"
TABLES_CATALOG = "_notesearch_tables"
INDICES_CATALOG = "_notesearch_indices"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StorageError(RuntimeError):
    """Base class for notes store failures."""


class TableExistsError(StorageError):
    pass


class TableNotFoundError(StorageError):
    pass


class IndexExistsError(StorageError):
    pass


class SchemaMismatchError(StorageError):
    pass


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


@dataclass(frozen=True, slots=True)
class TableSchema:
    """Text fields of a table plus the vector column derived from ``source_field``."""

    fields: tuple[str, ...]
    source_field: str = "content"
    vector_field: str = "vector"
    required: tuple[str, ...] = ("title",)

    def __post_init__(self) -> None:
        for name in (*self.fields, self.vector_field):
            _check_identifier(name)
        if self.source_field not in self.fields:
            raise ValueError(f"Source field {self.source_field!r} is not a schema field")

    @property
    def columns(self) -> tuple[str, ...]:
        return (*self.fields, self.vector_field)

    def column_ddl(self) -> str:
        columns = [f"{ROW_ID} INTEGER PRIMARY KEY"]
        for name in self.fields:
            if name in self.required:
                columns.append(f"{name} TEXT NOT NULL CHECK ({name} <> '')")
            else:
                columns.append(f"{name} TEXT")
        columns.append(f"{self.vector_field} BLOB NOT NULL")
        return ", ".join(columns)


NOTES_SCHEMA = TableSchema(
    fields=("id", "title", "content", "creation_date", "modification_date"),
)


@dataclass(frozen=True, slots=True)
class FtsIndex:
    tokenizer: str = "unicode61 remove_diacritics 2"


@dataclass(frozen=True, slots=True)
class IndexConfig:
    name: str
    index_type: str
    columns: tuple[str, ...]


def _fts_table_name(table: str, index_name: str) -> str:
    return f"{table}__{index_name}"


def _drop_fts_index(conn: sqlite3.Connection, table: str, index_name: str) -> None:
    fts = _fts_table_name(table, index_name)
    for suffix in ("ai", "ad", "au"):
        conn.execute(f'DROP TRIGGER IF EXISTS "{fts}_{suffix}"')
    conn.execute(f'DROP TABLE IF EXISTS "{fts}"')
    conn.execute(
        f"DELETE FROM {INDICES_CATALOG} WHERE table_name = ? AND name = ?",
        (table, index_name),
    )


class NotesDatabase:
    """Owns the SQLite connection and the embedding function shared by all tables.

    Blocking SQLite calls run in worker threads; a lock keeps them from
    interleaving on the shared connection.
    """

    def __init__(self, db_path: Path, embedder: EmbeddingFunction) -> None:
        self.db_path = Path(db_path)
        self.embedder = embedder
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        try:
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._ensure_catalog()
        except sqlite3.Error:
            self._conn.close()
            raise

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        if not self._conn.in_transaction:
            self._conn.execute("BEGIN")
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    async def run(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking call against the connection in a worker thread."""
        return await asyncio.to_thread(self._locked_call, func, *args)

    def _locked_call(self, func: Callable[..., T], *args: Any) -> T:
        with self._lock:
            return func(*args)

    def _ensure_catalog(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {TABLES_CATALOG} (name TEXT PRIMARY KEY)"
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {INDICES_CATALOG} (
                    table_name TEXT NOT NULL,
                    name TEXT NOT NULL,
                    index_type TEXT NOT NULL,
                    columns TEXT NOT NULL,
                    PRIMARY KEY (table_name, name)
                )
                """
            )

    def _table_exists(self, name: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
        ).fetchone()
        return row is not None

    def _check_columns(self, name: str, schema: TableSchema) -> None:
        existing = {row["name"] for row in self._conn.execute(f'PRAGMA table_info("{name}")')}
        missing = [column for column in schema.columns if column not in existing]
        if missing:
            raise SchemaMismatchError(
                f"Table '{name}' is missing columns: {', '.join(missing)}"
            )

    async def create_table(
        self,
        name: str,
        schema: TableSchema = NOTES_SCHEMA,
        *,
        mode: Literal["create", "overwrite"] = "create",
        exist_ok: bool = False,
    ) -> "NotesTable":
        _check_identifier(name)
        if mode not in ("create", "overwrite"):
            raise ValueError(f"Unsupported mode: {mode!r}")
        await self.run(self._create_table_sync, name, schema, mode, exist_ok)
        return NotesTable(self, name, schema)

    def _create_table_sync(
        self, name: str, schema: TableSchema, mode: str, exist_ok: bool
    ) -> None:
        with self.transaction() as conn:
            exists = self._table_exists(name)
            if exists and mode == "overwrite":
                self._drop_table_sync(name)
                exists = False

            if exists:
                if not exist_ok:
                    raise TableExistsError(f"Table '{name}' already exists")
                self._check_columns(name, schema)
                return

            conn.execute(f'CREATE TABLE "{name}" ({schema.column_ddl()})')
            conn.execute(
                f"INSERT OR IGNORE INTO {TABLES_CATALOG}(name) VALUES (?)", (name,)
            )
        LOGGER.info("Created table %s", name)

    async def open_table(self, name: str, schema: TableSchema = NOTES_SCHEMA) -> "NotesTable":
        _check_identifier(name)
        await self.run(self._open_table_sync, name, schema)
        return NotesTable(self, name, schema)

    def _open_table_sync(self, name: str, schema: TableSchema) -> None:
        if not self._table_exists(name):
            raise TableNotFoundError(f"Table '{name}' was not found")
        self._check_columns(name, schema)

    async def table_names(self) -> List[str]:
        rows = await self.run(
            lambda: self._conn.execute(f"SELECT name FROM {TABLES_CATALOG} ORDER BY name").fetchall()
        )
        return [row["name"] for row in rows]

    async def drop_table(self, name: str) -> None:
        _check_identifier(name)

        def _drop() -> None:
            with self.transaction():
                self._drop_table_sync(name)

        await self.run(_drop)

    def _drop_table_sync(self, name: str) -> None:
        conn = self._conn
        indices = conn.execute(
            f"SELECT name FROM {INDICES_CATALOG} WHERE table_name = ?", (name,)
        ).fetchall()
        for row in indices:
            _drop_fts_index(conn, name, row["name"])
        conn.execute(f'DROP TABLE IF EXISTS "{name}"')
        conn.execute(f"DELETE FROM {TABLES_CATALOG} WHERE name = ?", (name,))


class NotesTable:
    """Handle to one table of a `NotesDatabase`."""

    def __init__(self, db: NotesDatabase, name: str, schema: TableSchema) -> None:
        self._db = db
        self.name = name
        self.schema = schema

    def __repr__(self) -> str:
        return f"NotesTable({self.name!r})"

    def _columns(self, columns: Sequence[str] | None) -> tuple[str, ...]:
        selected = tuple(columns) if columns else self.schema.fields
        unknown = [column for column in selected if column not in self.schema.fields]
        if unknown:
            raise ValueError(f"Unknown columns: {', '.join(unknown)}")
        return selected

    async def count_rows(self) -> int:
        row = await self._db.run(
            lambda: self._db.connection.execute(f'SELECT COUNT(*) FROM "{self.name}"').fetchone()
        )
        return int(row[0])

    async def list_indices(self) -> List[IndexConfig]:
        return await self._db.run(self._list_indices_sync)

    def _list_indices_sync(self) -> List[IndexConfig]:
        rows = self._db.connection.execute(
            f"""
            SELECT name, index_type, columns FROM {INDICES_CATALOG}
            WHERE table_name = ? ORDER BY name
            """,
            (self.name,),
        ).fetchall()
        return [
            IndexConfig(
                name=row["name"],
                index_type=row["index_type"],
                columns=tuple(row["columns"].split(",")),
            )
            for row in rows
        ]

    async def create_index(
        self,
        field: str,
        *,
        config: FtsIndex | None = None,
        replace: bool = True,
        name: str | None = None,
    ) -> None:
        """Create a full-text index over ``field``, named ``{field}_idx`` by default.

        An index with the same name is rebuilt when ``replace`` is true and
        rejected otherwise; indices with other names are never touched.
        """
        if field not in self.schema.fields:
            raise ValueError(f"Unknown field: {field}")
        index_name = _check_identifier(name or f"{field}_idx")
        await self._db.run(
            self._create_fts_index_sync, field, index_name, config or FtsIndex(), replace
        )

    def _create_fts_index_sync(
        self, field: str, index_name: str, config: FtsIndex, replace: bool
    ) -> None:
        fts = _fts_table_name(self.name, index_name)
        with self._db.transaction() as conn:
            existing = conn.execute(
                f"SELECT 1 FROM {INDICES_CATALOG} WHERE table_name = ? AND name = ?",
                (self.name, index_name),
            ).fetchone()
            if existing:
                if not replace:
                    raise IndexExistsError(
                        f"Index '{index_name}' already exists on table '{self.name}'"
                    )
                _drop_fts_index(conn, self.name, index_name)

            conn.execute(
                f"""
                CREATE VIRTUAL TABLE "{fts}" USING fts5(
                    {field},
                    content='{self.name}',
                    content_rowid='{ROW_ID}',
                    tokenize='{config.tokenizer}'
                )
                """
            )
            conn.execute(
                f"""
                CREATE TRIGGER "{fts}_ai" AFTER INSERT ON "{self.name}" BEGIN
                    INSERT INTO "{fts}"(rowid, {field}) VALUES (new.{ROW_ID}, new.{field});
                END;
                """
            )
            conn.execute(
                f"""
                CREATE TRIGGER "{fts}_ad" AFTER DELETE ON "{self.name}" BEGIN
                    INSERT INTO "{fts}"("{fts}", rowid, {field})
                    VALUES ('delete', old.{ROW_ID}, old.{field});
                END;
                """
            )
            conn.execute(
                f"""
                CREATE TRIGGER "{fts}_au" AFTER UPDATE ON "{self.name}" BEGIN
                    INSERT INTO "{fts}"("{fts}", rowid, {field})
                    VALUES ('delete', old.{ROW_ID}, old.{field});
                    INSERT INTO "{fts}"(rowid, {field}) VALUES (new.{ROW_ID}, new.{field});
                END;
                """
            )
            # Pick up rows written before the index existed
            conn.execute(f"""INSERT INTO "{fts}"("{fts}") VALUES ('rebuild')""")
            conn.execute(
                f"""
                INSERT INTO {INDICES_CATALOG}(table_name, name, index_type, columns)
                VALUES (?, ?, 'FTS', ?)
                """,
                (self.name, index_name, field),
            )
        LOGGER.info("Created full-text index %s on %s.%s", index_name, self.name, field)

    async def add(self, records: Sequence[Mapping[str, Any]]) -> None:
        """Embed and insert ``records`` in a single transaction."""
        if not records:
            return

        rows = [self._prepare_record(record) for record in records]
        embedder = self._db.embedder
        embeddings = np.asarray(
            await embedder.compute_source_embeddings(
                [row[self.schema.source_field] for row in rows]
            ),
            dtype=embedder.embedding_data_type(),
        )
        if embeddings.ndim != 2 or embeddings.shape[0] != len(rows):
            raise ValueError("Embeddings and records length mismatch")
        if embeddings.shape[1] != embedder.ndims():
            raise ValueError(
                f"Expected {embedder.ndims()}-dimensional embeddings, got {embeddings.shape[1]}"
            )

        await self._db.run(self._insert_sync, rows, embeddings)

    def _prepare_record(self, record: Mapping[str, Any]) -> Dict[str, str]:
        unknown = sorted(set(record) - set(self.schema.fields))
        if unknown:
            raise ValueError(f"Unknown fields: {', '.join(unknown)}")
        return {
            name: "" if record.get(name) is None else str(record[name])
            for name in self.schema.fields
        }

    def _insert_sync(self, rows: List[Dict[str, str]], embeddings: np.ndarray) -> None:
        columns = self.schema.columns
        sql = (
            f'INSERT INTO "{self.name}" ({", ".join(columns)}) '
            f'VALUES ({", ".join("?" for _ in columns)})'
        )
        with self._db.transaction() as conn:
            conn.executemany(
                sql,
                [
                    (
                        *(row[name] for name in self.schema.fields),
                        sqlite3.Binary(vector.tobytes()),
                    )
                    for row, vector in zip(rows, embeddings)
                ],
            )
        LOGGER.debug("Inserted %d rows into %s", len(rows), self.name)

    async def vector_search(
        self,
        query: str,
        *,
        top_k: int = 10,
        columns: Sequence[str] | None = None,
    ) -> List[Dict[str, Any]]:
        """Return the ``top_k`` rows closest to ``query``, best first."""
        selected = self._columns(columns)
        embedder = self._db.embedder
        query_vector = np.asarray(
            await embedder.compute_query_embedding(query),
            dtype=embedder.embedding_data_type(),
        )
        return await self._db.run(self._vector_search_sync, query_vector, top_k, selected)

    def _vector_search_sync(
        self, query_vector: np.ndarray, top_k: int, selected: tuple[str, ...]
    ) -> List[Dict[str, Any]]:
        rows = self._db.connection.execute(
            f"""
            SELECT {", ".join(selected)}, {self.schema.vector_field} AS _vector
            FROM "{self.name}" ORDER BY {ROW_ID}
            """
        ).fetchall()

        if not rows or top_k <= 0:
            return []

        dtype = self._db.embedder.embedding_data_type()
        embeddings = np.vstack([np.frombuffer(row["_vector"], dtype=dtype) for row in rows])
        scores = embeddings @ query_vector

        if top_k < len(scores):
            top_indices = np.argpartition(-scores, top_k - 1)[:top_k]
            top_indices = top_indices[np.argsort(-scores[top_indices], kind="stable")]
        else:
            top_indices = np.argsort(-scores, kind="stable")

        results: List[Dict[str, Any]] = []
        for idx in top_indices:
            record = {column: rows[idx][column] for column in selected}
            record["_score"] = float(scores[idx])
            results.append(record)
        return results

    async def search(
        self,
        field: str,
        query: str,
        *,
        limit: int = 10,
        columns: Sequence[str] | None = None,
    ) -> List[Dict[str, Any]]:
        """Full-text search over ``field``, best bm25 match first."""
        selected = self._columns(columns)
        return await self._db.run(self._fts_search_sync, field, query, limit, selected)

    def _fts_search_sync(
        self, field: str, query: str, limit: int, selected: tuple[str, ...]
    ) -> List[Dict[str, Any]]:
        conn = self._db.connection
        index = conn.execute(
            f"""
            SELECT name FROM {INDICES_CATALOG}
            WHERE table_name = ? AND index_type = 'FTS' AND columns = ?
            ORDER BY name LIMIT 1
            """,
            (self.name, field),
        ).fetchone()
        if index is None:
            raise StorageError(f"No full-text index on '{field}' for table '{self.name}'")

        expression = fts_match_expression(query)
        if not expression or limit <= 0:
            return []

        fts = _fts_table_name(self.name, index["name"])
        rows = conn.execute(
            f"""
            SELECT {", ".join(f"t.{column} AS {column}" for column in selected)},
                   matches._rank AS _rank
            FROM (
                SELECT rowid AS match_rowid, bm25("{fts}") AS _rank
                FROM "{fts}"
                WHERE "{fts}" MATCH ?
                ORDER BY _rank
                LIMIT ?
            ) AS matches
            JOIN "{self.name}" AS t ON t.{ROW_ID} = matches.match_rowid
            ORDER BY matches._rank
            """,
            (expression, limit),
        ).fetchall()

        results: List[Dict[str, Any]] = []
        for row in rows:
            record = {column: row[column] for column in selected}
            record["_score"] = -float(row["_rank"])
            results.append(record)
        return results
