"""Core NoteSearch data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping


@dataclass(slots=True)
class NoteDetail:
    """Full record of a note as returned by a note source.

    An empty ``title`` is the "not found" placeholder.
    """

    title: str = ""
    content: str = ""
    creation_date: str = ""
    modification_date: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "NoteDetail":
        data = data or {}
        return cls(
            title=str(data.get("title") or ""),
            content=str(data.get("content") or ""),
            creation_date=str(data.get("creation_date") or ""),
            modification_date=str(data.get("modification_date") or ""),
        )

    @property
    def found(self) -> bool:
        return bool(self.title)


@dataclass(slots=True)
class NoteChunk:
    """Normalized note ready to be written to the notes table."""

    id: str
    title: str
    content: str
    creation_date: str
    modification_date: str

    def to_record(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(slots=True)
class SearchHit:
    title: str
    content: str
    creation_date: str = ""
    modification_date: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SearchHit":
        return cls(
            title=row.get("title") or "",
            content=row.get("content") or "",
            creation_date=row.get("creation_date") or "",
            modification_date=row.get("modification_date") or "",
        )


@dataclass(slots=True)
class IndexReport:
    """Outcome of one indexing run."""

    chunks: int = 0
    report: str = ""
    all_notes: int = 0
    time: float = 0.0

    def summary(self) -> str:
        return f"Successfully indexed {self.chunks} notes in {round(self.time)}ms."
