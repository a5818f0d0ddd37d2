from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from storyreader.library import (
    BACKUP_VERSION,
    BackupFormatError,
    StoryLibrary,
    StoryNotFoundError,
    TemplateFormatError,
    backup_filename,
)
from storyreader.template import FORMAT_HINT

TEMPLATE = """### 1. Title: The Lost Key
### 2. English Short Story
She found a **rusty** key.
### 3. 重要単語ピックアップ
* **rusty**: covered with rust
### 4. 日本語訳
彼女は錆びた鍵を見つけた。
"""

SECOND_CHAPTER = """### 1. Title: The Lost Key
### 2. English Short Story
She opened the old door.
### 3. 重要単語ピックアップ
* **door**: 扉
"""


def _template(title: str, body: str = "Some text.") -> str:
    return f"### 1. Title: {title}\n### 2. Story\n{body}\n"


def test_create_story_persists_collection(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path / "library")
    story = library.create_story(TEMPLATE, timestamp=1_700_000_000_000)

    assert story.title == "The Lost Key"
    assert story.created_at == story.updated_at == 1_700_000_000_000
    assert len(story.chapters) == 1
    chapter = story.chapters[0]
    assert chapter.body == "She found a **rusty** key."
    assert chapter.vocabulary[0].word == "rusty"
    assert chapter.added_at == 1_700_000_000_000

    raw = json.loads(library.stories_path.read_text(encoding="utf-8"))
    assert raw[0]["title"] == "The Lost Key"
    assert raw[0]["chapters"][0]["english"] == "She found a **rusty** key."
    assert library.load_stories() == [story]


def test_create_story_rejects_malformed_template(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path)
    with pytest.raises(TemplateFormatError) as excinfo:
        library.create_story("### 1. Title: Only a title\n")
    assert str(excinfo.value) == FORMAT_HINT
    assert not library.stories_path.exists()


def test_add_chapter_appends_in_order(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path)
    story = library.create_story(TEMPLATE, timestamp=1_000)
    updated, chapter = library.add_chapter(story.id, SECOND_CHAPTER, timestamp=2_000)

    assert updated.id == story.id
    assert updated.title == "The Lost Key"
    assert [c.body for c in updated.chapters] == [
        "She found a **rusty** key.",
        "She opened the old door.",
    ]
    assert updated.chapters[-1] == chapter
    assert chapter.id != story.chapters[0].id
    assert updated.created_at == 1_000
    assert updated.updated_at == 2_000
    assert library.get_story(story.id) == updated


def test_add_chapter_to_unknown_story(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path)
    with pytest.raises(StoryNotFoundError):
        library.add_chapter("missing", TEMPLATE)


def test_add_chapter_rejects_malformed_template(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path)
    story = library.create_story(TEMPLATE)
    with pytest.raises(TemplateFormatError):
        library.add_chapter(story.id, "no headings at all")
    assert len(library.get_story(story.id).chapters) == 1


def test_delete_story_removes_chapters(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path)
    keep = library.create_story(_template("Keep"))
    drop = library.create_story(_template("Drop"))
    library.add_chapter(drop.id, _template("Drop", "More."))

    deleted = library.delete_story(drop.id)
    assert deleted.id == drop.id
    assert [story.id for story in library.load_stories()] == [keep.id]
    with pytest.raises(StoryNotFoundError):
        library.delete_story(drop.id)


def test_list_stories_sort_modes(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path)
    banana = library.create_story(_template("banana"), timestamp=1_000)
    apple = library.create_story(_template("Apple"), timestamp=2_000)
    library.add_chapter(banana.id, _template("banana", "Later."), timestamp=3_000)

    assert [s.id for s in library.list_stories()] == [banana.id, apple.id]
    assert [s.id for s in library.list_stories("created")] == [apple.id, banana.id]
    assert [s.id for s in library.list_stories("title")] == [apple.id, banana.id]
    assert [s.id for s in library.list_stories("bogus")] == [banana.id, apple.id]


def test_unreadable_library_file_reads_as_empty(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path)
    library.stories_path.write_text("{not json", encoding="utf-8")
    assert library.load_stories() == []
    library.stories_path.write_text('{"stories": []}', encoding="utf-8")
    assert library.load_stories() == []


def test_backup_round_trip(tmp_path: Path) -> None:
    source = StoryLibrary(tmp_path / "source")
    story = source.create_story(TEMPLATE, timestamp=1_000)
    source.add_chapter(story.id, SECOND_CHAPTER, timestamp=2_000)

    moment = datetime(2026, 3, 4, 5, 6, 7, 890000, tzinfo=timezone.utc)
    backup_path = source.write_backup(tmp_path / "backup.json", exported_at=moment)
    payload = json.loads(backup_path.read_text(encoding="utf-8"))
    assert payload["version"] == BACKUP_VERSION
    assert payload["exportDate"] == "2026-03-04T05:06:07.890Z"
    assert len(payload["stories"]) == 1

    target = StoryLibrary(tmp_path / "target")
    target.create_story(_template("Overwritten"))
    imported = target.import_backup(backup_path.read_bytes())
    assert imported == source.load_stories()
    assert target.load_stories() == source.load_stories()


def test_invalid_backup_leaves_library_untouched(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path)
    story = library.create_story(TEMPLATE)
    with pytest.raises(BackupFormatError):
        library.import_backup(b"not json")
    with pytest.raises(BackupFormatError):
        library.import_backup(json.dumps({"version": "1.0"}))
    assert [s.id for s in library.load_stories()] == [story.id]


def test_backup_filename_uses_utc_date() -> None:
    moment = datetime(2026, 1, 2, 12, 0, tzinfo=timezone.utc)
    assert backup_filename(moment) == "story_reader_backup_2026-01-02.json"


def test_theme_preference(tmp_path: Path) -> None:
    library = StoryLibrary(tmp_path)
    assert library.get_theme() == "dark"
    assert library.toggle_theme() == "light"
    assert library.get_theme() == "light"
    assert library.set_theme(" DARK ") == "dark"
    with pytest.raises(ValueError):
        library.set_theme("sepia")
    assert library.get_theme() == "dark"
