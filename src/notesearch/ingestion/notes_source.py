"""Note sources feeding the indexer."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Protocol

from notesearch.models import NoteDetail

LOGGER = logging.getLogger(__name__)

LIST_TITLES_SCRIPT = """
function run() {
  const app = Application('Notes');
  app.includeStandardAdditions = true;
  return JSON.stringify(app.notes().map((note) => note.name()));
}
"""

NOTE_DETAIL_SCRIPT = """
function run(argv) {
  const app = Application('Notes');
  const title = argv[0];
  try {
    const note = app.notes.whose({name: title})[0];
    return JSON.stringify({
      title: note.name(),
      content: note.body(),
      creation_date: note.creationDate().toLocaleString(),
      modification_date: note.modificationDate().toLocaleString()
    });
  } catch (error) {
    return "{}";
  }
}
"""


class NoteSourceError(RuntimeError):
    """Raised when the note source cannot be queried."""


class NoteSource(Protocol):
    async def list_titles(self) -> List[str]: ...

    async def get_detail(self, title: str) -> NoteDetail: ...


class AppleNotesSource:
    """Reads notes from Apple Notes through JavaScript for Automation.

    A missing note is reported as an empty `NoteDetail`, never as an error.
    """

    def __init__(self, osascript: str = "osascript") -> None:
        self.osascript = osascript

    async def _run_jxa(self, script: str, *args: str) -> str:
        proc = await asyncio.create_subprocess_exec(
            self.osascript,
            "-l",
            "JavaScript",
            "-e",
            script,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise NoteSourceError(message or f"osascript exited with status {proc.returncode}")
        return stdout.decode("utf-8").strip()

    async def list_titles(self) -> List[str]:
        output = await self._run_jxa(LIST_TITLES_SCRIPT)
        titles = json.loads(output) if output else []
        LOGGER.debug("Found %d notes", len(titles))
        return [str(title) for title in titles]

    async def get_detail(self, title: str) -> NoteDetail:
        output = await self._run_jxa(NOTE_DETAIL_SCRIPT, title)
        return NoteDetail.from_dict(json.loads(output) if output else {})
