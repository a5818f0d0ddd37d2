from __future__ import annotations

import logging
import threading
from typing import Mapping

from fastapi import Body, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse

from .config import ReaderConfig
from .library import (
    SORT_MODES,
    BackupFormatError,
    StoryLibrary,
    StoryNotFoundError,
    TemplateFormatError,
    backup_filename,
)
from .markup import render_markup, render_vocabulary
from .stories import Story, serialize_chapter, serialize_story
from .template import FORMAT_HINT, parse_template
from .web_assets import favicon_data_url

logger = logging.getLogger(__name__)

INDEX_HTML = """<!DOCTYPE html>
<html lang="ja" data-theme="__SR_THEME__">
<head>
  <meta charset="utf-8">
  <title>Story Reader</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link rel="icon" type="image/svg+xml" href="__SR_FAVICON__">
  <style>
    :root {
      font-family: -apple-system, BlinkMacSystemFont, "Hiragino Sans", "Segoe UI", sans-serif;
      --bg: #0f1320;
      --panel: #171c2e;
      --outline: #252b45;
      --text: #f3f4f6;
      --muted: #9aa0b5;
      --accent: #f59e0b;
    }
    [data-theme="light"] {
      --bg: #f6f3ec;
      --panel: #ffffff;
      --outline: #e5dfd3;
      --text: #1f2937;
      --muted: #6b7280;
      --accent: #b45309;
    }
    body { margin: 0; background: var(--bg); color: var(--text); }
    header { display: flex; gap: 0.75rem; align-items: center; padding: 1rem 1.25rem; border-bottom: 1px solid var(--outline); }
    header h1 { flex: 1; margin: 0; font-size: 1.2rem; }
    button { background: var(--panel); color: var(--text); border: 1px solid var(--outline); border-radius: 10px; padding: 0.4rem 0.8rem; cursor: pointer; }
    main { max-width: 760px; margin: 0 auto; padding: 1rem 1.25rem 4rem; }
    .hidden { display: none !important; }
    .story-card { background: var(--panel); border: 1px solid var(--outline); border-radius: 14px; padding: 0.9rem 1rem; margin-bottom: 0.75rem; cursor: pointer; }
    .story-card-meta { color: var(--muted); font-size: 0.85rem; display: flex; gap: 1rem; margin-top: 0.3rem; }
    .reader-text { font-family: Georgia, serif; font-size: 1.15rem; line-height: 1.8; }
    .reader-text strong { color: var(--accent); }
    .panel { background: var(--panel); border: 1px solid var(--outline); border-radius: 14px; padding: 0.5rem 1rem; margin-top: 1rem; }
    .vocab-item { display: flex; gap: 1rem; padding: 0.4rem 0; border-bottom: 1px solid var(--outline); }
    .vocab-word { font-weight: 700; min-width: 8rem; }
    .chapter-nav { display: flex; justify-content: space-between; align-items: center; margin-top: 1.5rem; }
    textarea { width: 100%; min-height: 18rem; background: var(--panel); color: var(--text); border: 1px solid var(--outline); border-radius: 12px; padding: 0.75rem; font-family: inherit; box-sizing: border-box; }
    .empty { color: var(--muted); text-align: center; padding: 3rem 0; }
    .error { color: #f87171; white-space: pre-wrap; }
  </style>
</head>
<body>
  <header>
    <button id="back-btn" class="hidden">←</button>
    <h1 id="header-title">Story Reader</h1>
    <button id="theme-btn"></button>
    <button id="add-btn">＋</button>
  </header>
  <main>
    <section id="view-list">
      <div id="story-list"></div>
    </section>
    <section id="view-reader" class="hidden">
      <div id="reader-chapter-info" class="story-card-meta"></div>
      <div id="reader-text" class="reader-text"></div>
      <div class="panel"><h3>単語</h3><div id="vocab-content"></div></div>
      <div class="panel"><h3>日本語訳</h3><div id="translation-content"></div></div>
      <div id="chapter-nav" class="chapter-nav hidden">
        <button id="prev-chapter">‹</button>
        <span id="chapter-indicator"></span>
        <button id="next-chapter">›</button>
      </div>
      <div class="chapter-nav">
        <button id="add-chapter-btn">チャプターを追加</button>
        <button id="delete-story-btn">削除</button>
      </div>
    </section>
    <section id="view-add" class="hidden">
      <h2 id="add-view-title">新しいストーリー</h2>
      <form id="add-form">
        <textarea id="story-input" placeholder="### 1. Title: ..."></textarea>
        <p id="add-error" class="error"></p>
        <button type="submit">追加</button>
      </form>
    </section>
  </main>
  <script>
    const $ = (id) => document.getElementById(id);
    const state = { storyId: null, chapter: 1, addingTo: null };

    async function api(path, options = {}) {
      const response = await fetch(path, options);
      const payload = await response.json();
      if (!response.ok) throw new Error(payload.detail || response.statusText);
      return payload;
    }

    function show(viewId) {
      for (const view of document.querySelectorAll("main > section")) {
        view.classList.toggle("hidden", view.id !== viewId);
      }
      $("back-btn").classList.toggle("hidden", viewId === "view-list");
      window.scrollTo(0, 0);
    }

    async function renderStoryList() {
      const { stories } = await api("/api/stories");
      const container = $("story-list");
      container.replaceChildren();
      $("header-title").textContent = "Story Reader";
      if (!stories.length) {
        const empty = document.createElement("p");
        empty.className = "empty";
        empty.textContent = "まだストーリーがありません";
        container.append(empty);
        return;
      }
      for (const story of stories) {
        const card = document.createElement("div");
        card.className = "story-card";
        const title = document.createElement("div");
        title.textContent = story.title;
        const meta = document.createElement("div");
        meta.className = "story-card-meta";
        meta.textContent = `${story.chapter_count} チャプター · ${new Date(story.updatedAt).toLocaleDateString("ja-JP")}`;
        card.append(title, meta);
        card.addEventListener("click", () => openReader(story.id, 1));
        container.append(card);
      }
    }

    async function openReader(storyId, chapter) {
      const view = await api(`/api/stories/${encodeURIComponent(storyId)}/chapters/${chapter}`);
      state.storyId = storyId;
      state.chapter = view.chapter;
      $("header-title").textContent = view.story.title;
      $("reader-chapter-info").textContent = view.total > 1 ? `Ch. ${view.chapter} / ${view.total}` : "";
      $("reader-text").innerHTML = view.body_html;
      $("vocab-content").innerHTML = view.vocabulary_html || '<p class="empty">単語データがありません</p>';
      $("translation-content").innerHTML = view.translation_html || '<p class="empty">翻訳データがありません</p>';
      $("chapter-nav").classList.toggle("hidden", view.total <= 1);
      $("chapter-indicator").textContent = `${view.chapter} / ${view.total}`;
      $("prev-chapter").disabled = !view.has_previous;
      $("next-chapter").disabled = !view.has_next;
      show("view-reader");
    }

    function openAddView(storyId) {
      state.addingTo = storyId;
      $("add-view-title").textContent = storyId ? "チャプターを追加" : "新しいストーリー";
      $("story-input").value = "";
      $("add-error").textContent = "";
      show("view-add");
    }

    $("add-form").addEventListener("submit", async (event) => {
      event.preventDefault();
      const text = $("story-input").value.trim();
      if (!text) return;
      const path = state.addingTo
        ? `/api/stories/${encodeURIComponent(state.addingTo)}/chapters`
        : "/api/stories";
      try {
        const result = await api(path, {
          method: "POST",
          headers: { "Content-Type": "application/json" },
          body: JSON.stringify({ text }),
        });
        await openReader(result.story.id, result.story.chapters.length);
      } catch (error) {
        $("add-error").textContent = error.message;
      }
    });

    $("add-btn").addEventListener("click", () => openAddView(null));
    $("add-chapter-btn").addEventListener("click", () => openAddView(state.storyId));
    $("back-btn").addEventListener("click", () => { show("view-list"); renderStoryList(); });
    $("prev-chapter").addEventListener("click", () => openReader(state.storyId, state.chapter - 1));
    $("next-chapter").addEventListener("click", () => openReader(state.storyId, state.chapter + 1));
    $("delete-story-btn").addEventListener("click", async () => {
      if (!confirm("このストーリーを削除しますか？")) return;
      await api(`/api/stories/${encodeURIComponent(state.storyId)}`, { method: "DELETE" });
      show("view-list");
      renderStoryList();
    });

    function updateThemeButton(theme) {
      $("theme-btn").textContent = theme === "dark" ? "🌙" : "☀️";
    }
    $("theme-btn").addEventListener("click", async () => {
      const next = document.documentElement.dataset.theme === "dark" ? "light" : "dark";
      const { theme } = await api("/api/settings", {
        method: "PUT",
        headers: { "Content-Type": "application/json" },
        body: JSON.stringify({ theme: next }),
      });
      document.documentElement.dataset.theme = theme;
      updateThemeButton(theme);
    });

    updateThemeButton(document.documentElement.dataset.theme);
    renderStoryList();
  </script>
</body>
</html>
"""


def _normalize_sort_mode(value: str | None) -> str:
    if not value:
        return "updated"
    normalized = value.strip().lower()
    if normalized in SORT_MODES:
        return normalized
    raise HTTPException(status_code=400, detail="Invalid sort mode.")


def _template_text(payload: object) -> str:
    if not isinstance(payload, Mapping):
        raise HTTPException(status_code=400, detail="Invalid payload.")
    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        raise HTTPException(status_code=400, detail="'text' is required.")
    return text


def _story_summary(story: Story) -> dict[str, object]:
    return {
        "id": story.id,
        "title": story.title,
        "chapter_count": len(story.chapters),
        "createdAt": story.created_at,
        "updatedAt": story.updated_at,
    }


def _chapter_view(story: Story, number: int) -> dict[str, object]:
    chapter = story.chapter_at(number)
    if chapter is None:
        raise HTTPException(status_code=404, detail="Chapter not found.")
    total = len(story.chapters)
    return {
        "story": {"id": story.id, "title": story.title},
        "chapter": number,
        "total": total,
        "chapter_id": chapter.id,
        "added_at": chapter.added_at,
        "body_html": render_markup(chapter.body),
        "translation_html": render_markup(chapter.translation),
        "vocabulary": [entry.to_payload() for entry in chapter.vocabulary],
        "vocabulary_html": render_vocabulary(chapter.vocabulary),
        "has_previous": number > 1,
        "has_next": number < total,
    }


def create_reader_app(config: ReaderConfig) -> FastAPI:
    root = config.root.expanduser().resolve()
    library = StoryLibrary(root)

    app = FastAPI(title="Story Reader")
    app.state.config = config
    app.state.root = root
    app.state.library = library
    library_lock = threading.Lock()

    def _load_story(story_id: str) -> Story:
        try:
            return library.get_story(story_id)
        except StoryNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Story not found.") from exc

    @app.get("/", response_class=HTMLResponse)
    def index() -> HTMLResponse:
        theme = library.get_theme()
        page = INDEX_HTML.replace("__SR_FAVICON__", favicon_data_url(theme=theme))
        return HTMLResponse(page.replace("__SR_THEME__", theme))

    @app.get("/api/stories")
    def api_stories(
        sort: str | None = Query(None, description="Sort order: updated, created, or title"),
    ) -> JSONResponse:
        sort_mode = _normalize_sort_mode(sort)
        stories = library.list_stories(sort_mode)
        return JSONResponse({"stories": [_story_summary(story) for story in stories]})

    @app.post("/api/stories")
    def api_create_story(payload: dict[str, object] = Body(...)) -> JSONResponse:
        text = _template_text(payload)
        with library_lock:
            try:
                story = library.create_story(text)
            except TemplateFormatError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"story": serialize_story(story)}, status_code=201)

    @app.get("/api/stories/{story_id}")
    def api_story(story_id: str) -> JSONResponse:
        story = _load_story(story_id)
        return JSONResponse({"story": serialize_story(story)})

    @app.delete("/api/stories/{story_id}")
    def api_delete_story(story_id: str) -> JSONResponse:
        with library_lock:
            try:
                library.delete_story(story_id)
            except StoryNotFoundError as exc:
                raise HTTPException(status_code=404, detail="Story not found.") from exc
        return JSONResponse({"deleted": True, "story": story_id})

    @app.post("/api/stories/{story_id}/chapters")
    def api_add_chapter(
        story_id: str, payload: dict[str, object] = Body(...)
    ) -> JSONResponse:
        text = _template_text(payload)
        with library_lock:
            try:
                story, chapter = library.add_chapter(story_id, text)
            except StoryNotFoundError as exc:
                raise HTTPException(status_code=404, detail="Story not found.") from exc
            except TemplateFormatError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(
            {
                "story": serialize_story(story),
                "chapter": serialize_chapter(chapter),
                "chapter_number": len(story.chapters),
            },
            status_code=201,
        )

    @app.get("/api/stories/{story_id}/chapters/{number}")
    def api_chapter(story_id: str, number: int) -> JSONResponse:
        story = _load_story(story_id)
        return JSONResponse(_chapter_view(story, number))

    @app.post("/api/parse")
    def api_parse(payload: dict[str, object] = Body(...)) -> JSONResponse:
        parsed = parse_template(_template_text(payload))
        if parsed is None:
            return JSONResponse({"ok": False, "error": FORMAT_HINT})
        return JSONResponse({"ok": True, "chapter": parsed.to_payload()})

    @app.post("/api/render")
    def api_render(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, Mapping):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        text = payload.get("text")
        if text is not None and not isinstance(text, str):
            raise HTTPException(status_code=400, detail="'text' must be a string.")
        return JSONResponse({"html": render_markup(text)})

    @app.get("/api/backup")
    def api_export_backup() -> JSONResponse:
        payload = library.export_backup()
        filename = backup_filename()
        return JSONResponse(
            payload,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/api/backup")
    def api_import_backup(file: UploadFile = File(...)) -> JSONResponse:
        try:
            raw = file.file.read()
        finally:
            file.file.close()
        with library_lock:
            try:
                stories = library.import_backup(raw)
            except BackupFormatError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"imported": len(stories)})

    @app.get("/api/settings")
    def api_settings() -> JSONResponse:
        return JSONResponse({"theme": library.get_theme()})

    @app.put("/api/settings")
    def api_update_settings(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, Mapping):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        theme = payload.get("theme")
        if not isinstance(theme, str):
            raise HTTPException(status_code=400, detail="'theme' is required.")
        try:
            saved = library.set_theme(theme)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"theme": saved})

    logger.debug("Reader app created for %s", root)
    return app


__all__ = ["INDEX_HTML", "create_reader_app"]
