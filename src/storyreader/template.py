from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from .stories import VocabularyEntry

__all__ = [
    "FORMAT_HINT",
    "ParsedChapter",
    "Section",
    "parse_template",
]

FORMAT_HINT = (
    "テンプレートを解析できませんでした。\n\n"
    "フォーマット:\n"
    "### 1. Title: タイトル\n"
    "### 2. English Short Story\n"
    "(本文)\n"
    "### 3. 重要単語ピックアップ\n"
    "* **Word**: 意味\n"
    "### 4. 日本語訳\n"
    "(翻訳)"
)

VOCABULARY_KEYWORD = "重要単語"
TRANSLATION_KEYWORD = "日本語訳"

_NUMBERED_HEADING_RE = re.compile(r"^#{2,3}\s*(\d+)\.\s*(.+)", re.IGNORECASE)
_HEADING_RE = re.compile(r"^#{2,3}\s*(.*)")
_SUBHEADING_RE = re.compile(r"^#{2,3}\s")
_TITLE_LABEL_RE = re.compile(r"Title[\s:：]+(.+)", re.IGNORECASE)
_BARE_TITLE_LABEL_RE = re.compile(r"Title\s*[:：]?\s*", re.IGNORECASE)
_SUBTITLE_LABEL_RE = re.compile(r"^(?:タイトル|Title)\s*[:：]\s*", re.IGNORECASE)
_VOCAB_LINE_RE = re.compile(r"^(?:[*-]\s*)?\*\*(.+?)\*\*[\s:：]+(.+)")


class Section(Enum):
    NONE = "none"
    TITLE = "title"
    BODY = "body"
    VOCABULARY = "vocabulary"
    TRANSLATION = "translation"


_NUMBERED_SECTIONS = {
    1: Section.TITLE,
    2: Section.BODY,
    3: Section.VOCABULARY,
    4: Section.TRANSLATION,
}


@dataclass
class ParsedChapter:
    """One chapter's worth of content extracted from a story template."""

    title: str
    body: str
    vocabulary: list[VocabularyEntry] = field(default_factory=list)
    translation: str = ""

    def to_payload(self) -> dict[str, object]:
        return {
            "title": self.title,
            "body": self.body,
            "vocabulary": [entry.to_payload() for entry in self.vocabulary],
            "translation": self.translation,
        }


def _extract_title(content: str) -> str:
    if _BARE_TITLE_LABEL_RE.fullmatch(content):
        return ""
    match = _TITLE_LABEL_RE.search(content)
    if match is None:
        return content
    return match.group(1).strip()


def _keyword_section(trimmed: str) -> Section | None:
    heading = _HEADING_RE.match(trimmed)
    if heading is None:
        return None
    text = heading.group(1)
    if TRANSLATION_KEYWORD in text:
        return Section.TRANSLATION
    if VOCABULARY_KEYWORD in text:
        return Section.VOCABULARY
    return None


def _translation_subtitle(trimmed: str) -> str:
    subtitle = _HEADING_RE.match(trimmed).group(1)  # type: ignore[union-attr]
    return _SUBTITLE_LABEL_RE.sub("", subtitle, count=1).strip()


def parse_template(text: str) -> ParsedChapter | None:
    """
    Scan a four-section story template line by line.

    Returns ``None`` when the title or the body is missing. Boundary lines
    (numbered headings and the two keyword headings) switch the active
    section and are never collected themselves.
    """
    if not text:
        return None
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")

    title = ""
    body_lines: list[str] = []
    vocabulary: list[VocabularyEntry] = []
    translation_parts: list[str] = []
    section = Section.NONE

    for line in normalized.split("\n"):
        trimmed = line.strip()

        numbered = _NUMBERED_HEADING_RE.match(trimmed)
        if numbered:
            target = _NUMBERED_SECTIONS.get(int(numbered.group(1)))
            if target is not None:
                if target is Section.TITLE:
                    title = _extract_title(numbered.group(2).strip())
                section = target
                continue

        keyword_target = _keyword_section(trimmed)
        if keyword_target is not None:
            section = keyword_target
            continue
        if numbered:
            # Unknown section numbers leave the cursor where it is.
            continue

        if section is Section.TITLE:
            if trimmed and not title:
                title = trimmed
        elif section is Section.BODY:
            body_lines.append(line + "\n")
        elif section is Section.VOCABULARY:
            match = _VOCAB_LINE_RE.match(trimmed)
            if match:
                vocabulary.append(
                    VocabularyEntry(
                        word=match.group(1).strip(),
                        meaning=match.group(2).strip(),
                    )
                )
        elif section is Section.TRANSLATION:
            if _SUBHEADING_RE.match(trimmed):
                subtitle = _translation_subtitle(trimmed)
                if subtitle:
                    translation_parts.append(f"**{subtitle}**\n\n")
                continue
            translation_parts.append(line + "\n")

    body = "".join(body_lines).strip()
    if not title or not body:
        return None
    return ParsedChapter(
        title=title,
        body=body,
        vocabulary=vocabulary,
        translation="".join(translation_parts).strip(),
    )
