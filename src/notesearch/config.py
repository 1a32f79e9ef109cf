"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from notesearch.embedding.encoder import DEFAULT_MODEL

DEFAULT_TABLE_NAME = "notes"


def _get_default_db_path() -> Path:
    """Get the default database path, preferring a local data/ directory."""
    local_db = Path("data/notesearch.db")
    if local_db.exists():
        return local_db

    return Path.home() / ".notesearch" / "notesearch.db"


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    model_name: str = DEFAULT_MODEL
    table_name: str = DEFAULT_TABLE_NAME
    search_limit: int = 20
    snippet_chars: int = 300

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
