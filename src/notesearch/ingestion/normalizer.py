"""Best-effort conversion of note bodies to plain Markdown."""

from __future__ import annotations

import logging
from typing import Callable

from markdownify import markdownify

LOGGER = logging.getLogger(__name__)


def html_to_markdown(raw: str) -> str:
    return markdownify(raw, heading_style="ATX")


class ContentNormalizer:
    """Wraps a converter so a malformed note never fails indexing.

    When the converter raises, the raw content is kept as-is: losing the
    formatting is better than losing the note.
    """

    def __init__(self, converter: Callable[[str], str] = html_to_markdown) -> None:
        self.converter = converter

    def normalize(self, raw: str | None) -> str:
        raw = raw or ""
        try:
            return self.converter(raw)
        except Exception as exc:
            LOGGER.warning("Failed to normalize content, keeping raw text: %s", exc)
            return raw
