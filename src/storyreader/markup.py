from __future__ import annotations

import html
import re
from typing import Iterable

from .stories import VocabularyEntry

__all__ = ["render_markup", "render_vocabulary"]

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"(?<!\*)\*([^*\n<]+?)\*(?!\*)")
_PARAGRAPH_BREAK_RE = re.compile(r"\n{2,}")
_LINE_BREAK_RE = re.compile(r"(?<!</p>)\n(?!<p>)")


def render_markup(text: str | None) -> str:
    """
    Convert story text into an HTML fragment.

    Only ``**bold**``, ``*italic*``, blank-line paragraphs and single line
    breaks produce markup. Everything else in the source is HTML-escaped
    before the emphasis passes run, so imported text cannot inject tags.
    """
    if not text:
        return ""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    escaped = html.escape(normalized, quote=True)
    emphasized = _BOLD_RE.sub(r"<strong>\1</strong>", escaped)
    emphasized = _ITALIC_RE.sub(r"<em>\1</em>", emphasized)
    paragraphs = [
        f"<p>{block.strip()}</p>"
        for block in _PARAGRAPH_BREAK_RE.split(emphasized)
        if block.strip()
    ]
    return _LINE_BREAK_RE.sub("<br>", "\n".join(paragraphs))


def render_vocabulary(entries: Iterable[VocabularyEntry]) -> str:
    rows: list[str] = []
    for entry in entries:
        rows.append(
            '<div class="vocab-item">'
            f'<span class="vocab-word">{html.escape(entry.word)}</span>'
            f'<span class="vocab-meaning">{html.escape(entry.meaning)}</span>'
            "</div>"
        )
    return "\n".join(rows)
