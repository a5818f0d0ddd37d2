from .library import (
    BackupFormatError,
    StoryLibrary,
    StoryNotFoundError,
    TemplateFormatError,
)
from .markup import render_markup, render_vocabulary
from .stories import Chapter, Story, VocabularyEntry
from .template import FORMAT_HINT, ParsedChapter, parse_template

__all__ = [
    "ParsedChapter",
    "parse_template",
    "FORMAT_HINT",
    "render_markup",
    "render_vocabulary",
    "Chapter",
    "Story",
    "VocabularyEntry",
    "StoryLibrary",
    "TemplateFormatError",
    "StoryNotFoundError",
    "BackupFormatError",
]
