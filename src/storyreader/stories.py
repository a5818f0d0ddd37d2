from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Iterable, Mapping

__all__ = [
    "Chapter",
    "Story",
    "VocabularyEntry",
    "generate_id",
    "now_ms",
    "serialize_stories",
    "deserialize_stories",
    "serialize_story",
    "deserialize_story",
]

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def now_ms() -> int:
    return int(time.time() * 1000)


def _to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_id(timestamp_ms: int | None = None) -> str:
    """Timestamp in base 36 followed by five random base-36 characters."""
    stamp = now_ms() if timestamp_ms is None else timestamp_ms
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(5))
    return _to_base36(stamp) + suffix


@dataclass(frozen=True)
class VocabularyEntry:
    word: str
    meaning: str

    def to_payload(self) -> dict[str, str]:
        return {"word": self.word, "meaning": self.meaning}


@dataclass(frozen=True)
class Chapter:
    """
    A persisted chapter. Chapters never change after import; they disappear
    only together with the story that owns them.
    """

    id: str
    body: str
    vocabulary: tuple[VocabularyEntry, ...] = ()
    translation: str = ""
    added_at: int = 0


@dataclass
class Story:
    id: str
    title: str
    chapters: list[Chapter] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0

    def chapter_at(self, number: int) -> Chapter | None:
        """Return the 1-based chapter ``number`` or ``None`` when out of range."""
        if number < 1 or number > len(self.chapters):
            return None
        return self.chapters[number - 1]


# The key names below are the backup interchange format and must not change.


def serialize_chapter(chapter: Chapter) -> dict[str, object]:
    return {
        "id": chapter.id,
        "english": chapter.body,
        "vocab": [entry.to_payload() for entry in chapter.vocabulary],
        "translation": chapter.translation,
        "addedAt": chapter.added_at,
    }


def serialize_story(story: Story) -> dict[str, object]:
    return {
        "id": story.id,
        "title": story.title,
        "chapters": [serialize_chapter(chapter) for chapter in story.chapters],
        "createdAt": story.created_at,
        "updatedAt": story.updated_at,
    }


def serialize_stories(stories: Iterable[Story]) -> list[dict[str, object]]:
    return [serialize_story(story) for story in stories]


def _timestamp(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _deserialize_vocabulary(data: object) -> tuple[VocabularyEntry, ...]:
    if not isinstance(data, list):
        return ()
    entries: list[VocabularyEntry] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        word = entry.get("word")
        meaning = entry.get("meaning")
        if not isinstance(word, str) or not isinstance(meaning, str):
            continue
        entries.append(VocabularyEntry(word=word, meaning=meaning))
    return tuple(entries)


def deserialize_chapter(entry: Mapping[str, object]) -> Chapter | None:
    chapter_id = entry.get("id")
    body = entry.get("english")
    if not isinstance(chapter_id, str) or not isinstance(body, str):
        return None
    translation = entry.get("translation")
    if not isinstance(translation, str):
        translation = ""
    return Chapter(
        id=chapter_id,
        body=body,
        vocabulary=_deserialize_vocabulary(entry.get("vocab")),
        translation=translation,
        added_at=_timestamp(entry.get("addedAt")),
    )


def deserialize_story(entry: Mapping[str, object]) -> Story | None:
    story_id = entry.get("id")
    title = entry.get("title")
    if not isinstance(story_id, str) or not isinstance(title, str):
        return None
    chapters: list[Chapter] = []
    raw_chapters = entry.get("chapters")
    if isinstance(raw_chapters, list):
        for raw in raw_chapters:
            if not isinstance(raw, Mapping):
                continue
            chapter = deserialize_chapter(raw)
            if chapter is not None:
                chapters.append(chapter)
    if not chapters:
        return None
    return Story(
        id=story_id,
        title=title,
        chapters=chapters,
        created_at=_timestamp(entry.get("createdAt")),
        updated_at=_timestamp(entry.get("updatedAt")),
    )


def deserialize_stories(data: Iterable[object]) -> list[Story]:
    stories: list[Story] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        story = deserialize_story(entry)
        if story is not None:
            stories.append(story)
    return stories
