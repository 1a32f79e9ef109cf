"""NoteSearch - hybrid semantic and full-text search for personal notes."""

__version__ = "0.1.0"
