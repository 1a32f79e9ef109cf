"""Command line interface for NoteSearch."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console

from notesearch.config import AppConfig
from notesearch.embedding.encoder import EmbeddingConfig, SentenceTransformerEmbedding
from notesearch.index.indexer import Indexer
from notesearch.index.provisioner import provision_table
from notesearch.index.search import HybridSearcher
from notesearch.index.storage import NotesDatabase
from notesearch.ingestion.normalizer import ContentNormalizer
from notesearch.ingestion.notes_source import AppleNotesSource, NoteSource
from notesearch.models import IndexReport, NoteDetail

console = Console()
app = typer.Typer(help="NoteSearch - hybrid semantic and full-text search for your notes")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _fail(message: str, exc: Exception) -> NoReturn:
    console.print(f"{message}: {exc}", style="red", markup=False)
    raise typer.Exit(code=1)


def _build_config(db: Optional[Path], model: Optional[str], table: Optional[str]) -> AppConfig:
    defaults = AppConfig()
    return AppConfig(
        db_path=db if db is not None else defaults.db_path,
        model_name=model or defaults.model_name,
        table_name=table or defaults.table_name,
    )


def _open_database(config: AppConfig, db_path: Path) -> NotesDatabase:
    embedder = SentenceTransformerEmbedding(EmbeddingConfig(model_name=config.model_name))
    return NotesDatabase(db_path, embedder)


def _format_note(detail: NoteDetail, normalizer: ContentNormalizer) -> str:
    return (
        f"# {detail.title}\n\n{normalizer.normalize(detail.content)}\n\n"
        f"Created: {detail.creation_date}\nLast Modified: {detail.modification_date}"
    )


async def _run_index(db: NotesDatabase, table_name: str, source: NoteSource) -> IndexReport:
    provisioned = await provision_table(db, table_name)
    indexer = Indexer(source, ContentNormalizer())
    return await indexer.index_all(provisioned.table)


async def _run_search(
    db: NotesDatabase, table_name: str, query: str, limit: int, snippet_chars: int
) -> str:
    provisioned = await provision_table(db, table_name)
    searcher = HybridSearcher(snippet_chars=snippet_chars)
    return await searcher.search(provisioned.table, query, limit=limit)


@app.command()
def index(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(None, help="Sentence-transformer model name"),
    table: str = typer.Option(None, help="Notes table name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index all notes for semantic and full-text search."""
    _setup_logging(verbose)
    config = _build_config(db, model, table)
    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)

    console.print(f"Indexing notes into [bold]{resolved_db}[/bold]...")
    database: NotesDatabase | None = None
    try:
        database = _open_database(config, resolved_db)
        report = asyncio.run(_run_index(database, config.table_name, AppleNotesSource()))
    except Exception as exc:
        _fail("Error indexing notes", exc)
    finally:
        if database is not None:
            database.close()

    console.print(report.summary(), markup=False)
    if verbose and report.report:
        console.print(report.report, style="yellow", markup=False, soft_wrap=True)


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    limit: int = typer.Option(AppConfig().search_limit, help="Maximum number of notes to display"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(None, help="Sentence-transformer model name"),
    table: str = typer.Option(None, help="Notes table name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search notes by meaning and by content."""
    _setup_logging(verbose)
    config = _build_config(db, model, table)
    resolved_db = config.resolve_db_path(Path.cwd())

    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    database: NotesDatabase | None = None
    try:
        database = _open_database(config, resolved_db)
        results = asyncio.run(
            _run_search(database, config.table_name, query, limit, config.snippet_chars)
        )
    except Exception as exc:
        _fail("Error searching notes", exc)
    finally:
        if database is not None:
            database.close()

    console.print(results, markup=False, highlight=False, soft_wrap=True)


@app.command("list")
def list_notes(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """List the titles of all notes."""
    _setup_logging(verbose)
    try:
        titles = asyncio.run(AppleNotesSource().list_titles())
    except Exception as exc:
        _fail("Error listing notes", exc)

    console.print(
        f"Found {len(titles)} notes:\n\n" + "\n".join(titles),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


@app.command()
def get(
    title: str = typer.Argument(..., help="Exact note title"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show the full content and details of a note."""
    _setup_logging(verbose)
    try:
        detail = asyncio.run(AppleNotesSource().get_detail(title))
    except Exception as exc:
        _fail("Error getting note", exc)

    if not detail.found:
        console.print(f'Note with title "{title}" not found.', markup=False)
        return

    console.print(
        _format_note(detail, ContentNormalizer()),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )
