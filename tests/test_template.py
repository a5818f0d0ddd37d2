from __future__ import annotations

from storyreader.stories import VocabularyEntry
from storyreader.template import parse_template

LOST_KEY_TEMPLATE = """### 1. Title: The Lost Key
### 2. English Short Story
She found a **rusty** key.
### 3. 重要単語ピックアップ
* **rusty**: covered with rust
### 4. 日本語訳
彼女は錆びた鍵を見つけた。
"""


def test_parse_full_template() -> None:
    parsed = parse_template(LOST_KEY_TEMPLATE)
    assert parsed is not None
    assert parsed.title == "The Lost Key"
    assert parsed.body == "She found a **rusty** key."
    assert parsed.vocabulary == [VocabularyEntry(word="rusty", meaning="covered with rust")]
    assert parsed.translation == "彼女は錆びた鍵を見つけた。"


def test_title_and_body_only() -> None:
    parsed = parse_template("## 1. Title: Morning\n## 2. Story\nThe sun rose.\n")
    assert parsed is not None
    assert parsed.title == "Morning"
    assert parsed.body == "The sun rose."
    assert parsed.vocabulary == []
    assert parsed.translation == ""


def test_missing_body_section_is_rejected() -> None:
    text = "### 1. Title: Empty\n### 3. 重要単語\n* **word**: meaning\n### 4. 日本語訳\n訳\n"
    assert parse_template(text) is None


def test_missing_title_is_rejected() -> None:
    assert parse_template("### 2. Story\nSome text.\n") is None


def test_blank_body_is_rejected() -> None:
    assert parse_template("### 1. Title: Blank\n### 2. Story\n   \n\n") is None


def test_empty_input_is_rejected() -> None:
    assert parse_template("") is None


def test_title_without_label_uses_heading_content() -> None:
    parsed = parse_template("### 1. A Quiet Street\n### 2. Story\nText.\n")
    assert parsed is not None
    assert parsed.title == "A Quiet Street"


def test_title_ending_in_title_word_is_not_a_label() -> None:
    parsed = parse_template("### 1. The Title\n### 2. Story\nText.\n")
    assert parsed is not None
    assert parsed.title == "The Title"

    parsed = parse_template("### 1. Untitled\n### 2. Story\nText.\n")
    assert parsed is not None
    assert parsed.title == "Untitled"

    parsed = parse_template("### 1. Title: Subtitle wars\n### 2. Story\nText.\n")
    assert parsed is not None
    assert parsed.title == "Subtitle wars"


def test_title_with_full_width_colon() -> None:
    parsed = parse_template("### 1. Title：東京の朝\n### 2. Story\nText.\n")
    assert parsed is not None
    assert parsed.title == "東京の朝"


def test_title_on_following_line() -> None:
    parsed = parse_template("### 1. Title:\n\nThe River\nignored line\n### 2. Story\nText.\n")
    assert parsed is not None
    assert parsed.title == "The River"


def test_body_preserves_internal_blank_lines() -> None:
    parsed = parse_template("### 1. Title: T\n### 2. Story\n\nFirst line.\n\nSecond line.\n\n")
    assert parsed is not None
    assert parsed.body == "First line.\n\nSecond line."


def test_unknown_section_number_is_ignored() -> None:
    text = "### 1. Title: T\n### 2. Story\nBody one.\n### 5. Notes\nBody two.\n"
    parsed = parse_template(text)
    assert parsed is not None
    assert parsed.body == "Body one.\nBody two."
    assert "Notes" not in parsed.body


def test_keyword_headings_switch_sections() -> None:
    text = (
        "## 1. Title: Keywords\n"
        "## 2. Story\n"
        "A cat slept.\n"
        "## 重要単語\n"
        "- **cat**: 猫\n"
        "## 日本語訳\n"
        "猫が寝ていた。\n"
    )
    parsed = parse_template(text)
    assert parsed is not None
    assert parsed.body == "A cat slept."
    assert parsed.vocabulary == [VocabularyEntry(word="cat", meaning="猫")]
    assert parsed.translation == "猫が寝ていた。"


def test_section_number_wins_over_keyword() -> None:
    text = (
        "### 1. Title: T\n"
        "### 2. Story\n"
        "Body.\n"
        "### 3. 日本語訳\n"
        "* **word**: 単語\n"
    )
    parsed = parse_template(text)
    assert parsed is not None
    assert parsed.vocabulary == [VocabularyEntry(word="word", meaning="単語")]
    assert parsed.translation == ""


def test_translation_keyword_wins_over_vocabulary_keyword() -> None:
    text = (
        "### 1. Title: T\n"
        "### 2. Story\n"
        "Body.\n"
        "## 重要単語と日本語訳\n"
        "* **word**: 単語\n"
    )
    parsed = parse_template(text)
    assert parsed is not None
    assert parsed.vocabulary == []
    assert parsed.translation == "* **word**: 単語"


def test_unknown_section_number_in_translation_is_dropped() -> None:
    text = (
        "### 1. Title: T\n"
        "### 2. Story\n"
        "Body.\n"
        "### 4. 日本語訳\n"
        "一行目。\n"
        "### 5. Notes\n"
        "二行目。\n"
    )
    parsed = parse_template(text)
    assert parsed is not None
    assert "Notes" not in parsed.translation
    assert parsed.translation == "一行目。\n二行目。"


def test_vocabulary_lines_are_tolerant() -> None:
    text = (
        "### 1. Title: Vocab\n"
        "### 2. Story\n"
        "Text.\n"
        "### 3. 重要単語ピックアップ\n"
        "Here are some words:\n"
        "* **apple**: りんご\n"
        "- **bright**：明るい\n"
        "**calm** : 穏やかな\n"
        "* plain bullet without bold\n"
        "* **apple**: りんご\n"
    )
    parsed = parse_template(text)
    assert parsed is not None
    assert [entry.word for entry in parsed.vocabulary] == ["apple", "bright", "calm", "apple"]
    assert parsed.vocabulary[1].meaning == "明るい"
    assert parsed.vocabulary[2].meaning == "穏やかな"


def test_vocabulary_section_without_matches_is_empty() -> None:
    text = "### 1. Title: T\n### 2. Story\nText.\n### 3. 重要単語\nnothing useful\n"
    parsed = parse_template(text)
    assert parsed is not None
    assert parsed.vocabulary == []


def test_translation_subheading_becomes_bold_subtitle() -> None:
    text = (
        "### 1. Title: The Lost Key\n"
        "### 2. Story\n"
        "Text.\n"
        "### 4. 日本語訳\n"
        "### タイトル：失くした鍵\n"
        "彼女は鍵を見つけた。\n"
    )
    parsed = parse_template(text)
    assert parsed is not None
    assert parsed.translation == "**失くした鍵**\n\n彼女は鍵を見つけた。"


def test_crlf_line_endings() -> None:
    parsed = parse_template(LOST_KEY_TEMPLATE.replace("\n", "\r\n"))
    assert parsed is not None
    assert parsed.title == "The Lost Key"
    assert parsed.body == "She found a **rusty** key."
    assert parsed.translation == "彼女は錆びた鍵を見つけた。"


def test_to_payload_shape() -> None:
    parsed = parse_template(LOST_KEY_TEMPLATE)
    assert parsed is not None
    assert parsed.to_payload() == {
        "title": "The Lost Key",
        "body": "She found a **rusty** key.",
        "vocabulary": [{"word": "rusty", "meaning": "covered with rust"}],
        "translation": "彼女は錆びた鍵を見つけた。",
    }
