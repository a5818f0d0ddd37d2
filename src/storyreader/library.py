from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from .stories import (
    Chapter,
    Story,
    deserialize_stories,
    generate_id,
    now_ms,
    serialize_stories,
)
from .template import FORMAT_HINT, ParsedChapter, parse_template

logger = logging.getLogger(__name__)

STORIES_FILENAME = "stories.json"
SETTINGS_FILENAME = "settings.json"
BACKUP_VERSION = "1.0"
THEMES = ("dark", "light")
DEFAULT_THEME = "dark"
SORT_MODES = ("updated", "created", "title")


class TemplateFormatError(ValueError):
    def __init__(self, message: str = FORMAT_HINT) -> None:
        super().__init__(message)


class StoryNotFoundError(LookupError):
    def __init__(self, story_id: str) -> None:
        super().__init__(f"Story not found: {story_id}")
        self.story_id = story_id


class BackupFormatError(ValueError):
    pass


def chapter_from_parsed(parsed: ParsedChapter, timestamp: int | None = None) -> Chapter:
    added_at = now_ms() if timestamp is None else timestamp
    return Chapter(
        id=generate_id(added_at),
        body=parsed.body,
        vocabulary=tuple(parsed.vocabulary),
        translation=parsed.translation,
        added_at=added_at,
    )


def _parse_or_raise(text: str) -> ParsedChapter:
    parsed = parse_template(text.strip()) if text else None
    if parsed is None:
        raise TemplateFormatError()
    return parsed


def _iso_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def backup_filename(moment: datetime | None = None) -> str:
    stamp = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return f"story_reader_backup_{stamp.date().isoformat()}.json"


def parse_backup(raw: str | bytes) -> list[Story]:
    """Decode a backup document and return its stories."""
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BackupFormatError(f"Failed to read backup: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("stories"), list):
        raise BackupFormatError("Invalid backup file: missing 'stories' array.")
    return deserialize_stories(payload["stories"])


class StoryLibrary:
    """
    Story collection stored as a single JSON document under ``root``.

    Every mutation rewrites the whole collection; nothing is patched in
    place. Callers sharing one library across threads must serialize
    mutations themselves.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.stories_path = self.root / STORIES_FILENAME
        self.settings_path = self.root / SETTINGS_FILENAME

    def load_stories(self) -> list[Story]:
        try:
            raw = json.loads(self.stories_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable library file %s: %s", self.stories_path, exc)
            return []
        if not isinstance(raw, list):
            logger.warning("Ignoring library file %s: expected a list", self.stories_path)
            return []
        return deserialize_stories(raw)

    def save_stories(self, stories: list[Story]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.stories_path.write_text(
            json.dumps(serialize_stories(stories), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        logger.debug("Saved %d stories to %s", len(stories), self.stories_path)

    def list_stories(self, sort: str = "updated") -> list[Story]:
        mode = sort.strip().lower() if sort else "updated"
        if mode not in SORT_MODES:
            mode = "updated"
        stories = self.load_stories()
        if mode == "title":
            return sorted(stories, key=lambda story: (story.title.casefold(), story.id))
        if mode == "created":
            return sorted(stories, key=lambda story: -story.created_at)
        return sorted(stories, key=lambda story: -story.updated_at)

    def get_story(self, story_id: str) -> Story:
        for story in self.load_stories():
            if story.id == story_id:
                return story
        raise StoryNotFoundError(story_id)

    def create_story(self, text: str, *, timestamp: int | None = None) -> Story:
        parsed = _parse_or_raise(text)
        created_at = now_ms() if timestamp is None else timestamp
        story = Story(
            id=generate_id(created_at),
            title=parsed.title,
            chapters=[chapter_from_parsed(parsed, created_at)],
            created_at=created_at,
            updated_at=created_at,
        )
        stories = self.load_stories()
        stories.append(story)
        self.save_stories(stories)
        logger.info("Created story %s (%s)", story.id, story.title)
        return story

    def add_chapter(
        self, story_id: str, text: str, *, timestamp: int | None = None
    ) -> tuple[Story, Chapter]:
        parsed = _parse_or_raise(text)
        stories = self.load_stories()
        for index, story in enumerate(stories):
            if story.id != story_id:
                continue
            added_at = now_ms() if timestamp is None else timestamp
            chapter = chapter_from_parsed(parsed, added_at)
            updated = replace(
                story,
                chapters=[*story.chapters, chapter],
                updated_at=added_at,
            )
            stories[index] = updated
            self.save_stories(stories)
            logger.info(
                "Added chapter %d to story %s", len(updated.chapters), story_id
            )
            return updated, chapter
        raise StoryNotFoundError(story_id)

    def delete_story(self, story_id: str) -> Story:
        stories = self.load_stories()
        remaining = [story for story in stories if story.id != story_id]
        if len(remaining) == len(stories):
            raise StoryNotFoundError(story_id)
        deleted = next(story for story in stories if story.id == story_id)
        self.save_stories(remaining)
        logger.info("Deleted story %s", story_id)
        return deleted

    def export_backup(self, *, exported_at: datetime | None = None) -> dict[str, object]:
        moment = exported_at or datetime.now(timezone.utc)
        return {
            "stories": serialize_stories(self.load_stories()),
            "version": BACKUP_VERSION,
            "exportDate": _iso_timestamp(moment),
        }

    def write_backup(self, path: Path, *, exported_at: datetime | None = None) -> Path:
        payload = self.export_backup(exported_at=exported_at)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        return path

    def import_backup(self, raw: str | bytes) -> list[Story]:
        """Replace the whole collection with the stories in a backup document."""
        stories = parse_backup(raw)
        self.save_stories(stories)
        logger.info("Imported %d stories from backup", len(stories))
        return stories

    def get_theme(self) -> str:
        try:
            raw = json.loads(self.settings_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return DEFAULT_THEME
        theme = raw.get("theme") if isinstance(raw, dict) else None
        return theme if theme in THEMES else DEFAULT_THEME

    def set_theme(self, theme: str) -> str:
        normalized = theme.strip().lower() if isinstance(theme, str) else ""
        if normalized not in THEMES:
            raise ValueError(f"Unknown theme: {theme!r}")
        self.root.mkdir(parents=True, exist_ok=True)
        self.settings_path.write_text(
            json.dumps({"theme": normalized}, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        return normalized

    def toggle_theme(self) -> str:
        return self.set_theme("light" if self.get_theme() == "dark" else "dark")


__all__ = [
    "BACKUP_VERSION",
    "BackupFormatError",
    "SORT_MODES",
    "StoryLibrary",
    "StoryNotFoundError",
    "TemplateFormatError",
    "backup_filename",
    "chapter_from_parsed",
    "parse_backup",
]
