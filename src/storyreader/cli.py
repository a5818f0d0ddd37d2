from __future__ import annotations

import argparse
import json
import socket
import sys
from datetime import datetime
from importlib import metadata
from pathlib import Path

import tomllib
import uvicorn
from rich.console import Console
from rich.table import Table

from .config import DEFAULT_HOST, DEFAULT_PORT, ReaderConfig, resolve_library_root
from .library import (
    SORT_MODES,
    BackupFormatError,
    StoryLibrary,
    StoryNotFoundError,
    TemplateFormatError,
    backup_filename,
    parse_backup,
)
from .logging_utils import build_uvicorn_log_config, configure_logging
from .markup import render_markup
from .reader import create_reader_app
from .template import FORMAT_HINT, parse_template

console = Console()


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - defensive
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("storyreader")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"storyreader {__version__}",
    )


def _add_library_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--library",
        help="Library directory (default: $STORYREADER_HOME or ~/.storyreader).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )


def _read_input(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    source = Path(path).expanduser()
    if not source.is_file():
        raise SystemExit(f"Input file not found: {source}")
    return source.read_text(encoding="utf-8")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="storyreader",
        description=(
            "Import four-section story templates (title, story, vocabulary, translation) "
            "into a local library and read them in the browser."
        ),
        epilog="Commands: parse, render, add, list, show, delete, export, import, web.",
    )
    _add_version_flag(ap)
    return ap


def build_parse_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="storyreader parse",
        description="Parse a story template and print the structured chapter as JSON.",
    )
    _add_version_flag(ap)
    ap.add_argument("input", help="Template file, or '-' to read from stdin.")
    return ap


def build_render_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="storyreader render",
        description="Render text with **bold** / *italic* emphasis to an HTML fragment.",
    )
    _add_version_flag(ap)
    ap.add_argument("input", help="Text file, or '-' to read from stdin.")
    return ap


def build_add_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="storyreader add",
        description="Import a template as a new story, or as a chapter of an existing story.",
    )
    _add_version_flag(ap)
    _add_library_flags(ap)
    ap.add_argument("input", help="Template file, or '-' to read from stdin.")
    ap.add_argument(
        "--story",
        help="Append the template as a new chapter of this story id.",
    )
    return ap


def build_list_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="storyreader list", description="List stories in the library.")
    _add_version_flag(ap)
    _add_library_flags(ap)
    ap.add_argument(
        "--sort",
        choices=list(SORT_MODES),
        default="updated",
        help="Sort order (default: updated).",
    )
    return ap


def build_show_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="storyreader show", description="Print one chapter of a story.")
    _add_version_flag(ap)
    _add_library_flags(ap)
    ap.add_argument("story_id", help="Story id (see `storyreader list`).")
    ap.add_argument(
        "--chapter",
        type=int,
        default=1,
        help="1-based chapter number (default: 1).",
    )
    ap.add_argument(
        "--html",
        action="store_true",
        help="Print rendered HTML instead of the raw text.",
    )
    return ap


def build_delete_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="storyreader delete",
        description="Delete a story and all of its chapters.",
    )
    _add_version_flag(ap)
    _add_library_flags(ap)
    ap.add_argument("story_id", help="Story id to delete.")
    ap.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation.")
    return ap


def build_export_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="storyreader export", description="Write a JSON backup of the library.")
    _add_version_flag(ap)
    _add_library_flags(ap)
    ap.add_argument(
        "-o",
        "--output",
        help="Backup path (default: ./story_reader_backup_YYYY-MM-DD.json).",
    )
    return ap


def build_import_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="storyreader import",
        description="Replace the library with the stories from a JSON backup.",
    )
    _add_version_flag(ap)
    _add_library_flags(ap)
    ap.add_argument("backup", help="Backup JSON file.")
    ap.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation.")
    return ap


def build_web_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="storyreader web", description="Serve the library as a browser-based reader.")
    _add_version_flag(ap)
    _add_library_flags(ap)
    ap.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help=f"Host interface for the web server (default: {DEFAULT_HOST}).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port for the web server (default: {DEFAULT_PORT}).",
    )
    return ap


def _open_library(args: argparse.Namespace) -> StoryLibrary:
    configure_logging(debug=getattr(args, "debug", False))
    return StoryLibrary(resolve_library_root(args.library))


def _confirm(message: str) -> bool:
    answer = console.input(f"{message} [y/N] ")
    return answer.strip().lower() in {"y", "yes"}


def _run_parse(args: argparse.Namespace) -> int:
    parsed = parse_template(_read_input(args.input))
    if parsed is None:
        raise SystemExit(FORMAT_HINT)
    print(json.dumps(parsed.to_payload(), ensure_ascii=False, indent=2))
    return 0


def _run_render(args: argparse.Namespace) -> int:
    print(render_markup(_read_input(args.input)))
    return 0


def _run_add(args: argparse.Namespace) -> int:
    library = _open_library(args)
    text = _read_input(args.input)
    try:
        if args.story:
            story, _chapter = library.add_chapter(args.story, text)
            console.print(f"Added chapter {len(story.chapters)} to {story.title} ({story.id})")
        else:
            story = library.create_story(text)
            console.print(f"Created story {story.title} ({story.id})")
    except (TemplateFormatError, StoryNotFoundError) as exc:
        raise SystemExit(str(exc)) from exc
    return 0


def _format_timestamp(value: int) -> str:
    if value <= 0:
        return "-"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M")


def _run_list(args: argparse.Namespace) -> int:
    library = _open_library(args)
    stories = library.list_stories(args.sort)
    if not stories:
        console.print("No stories yet. Use `storyreader add TEMPLATE` to import one.")
        return 0
    table = Table(title=f"Stories in {library.root}")
    table.add_column("ID", no_wrap=True)
    table.add_column("Title")
    table.add_column("Chapters", justify="right")
    table.add_column("Updated")
    for story in stories:
        table.add_row(
            story.id,
            story.title,
            str(len(story.chapters)),
            _format_timestamp(story.updated_at),
        )
    console.print(table)
    return 0


def _run_show(args: argparse.Namespace) -> int:
    library = _open_library(args)
    try:
        story = library.get_story(args.story_id)
    except StoryNotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    chapter = story.chapter_at(args.chapter)
    if chapter is None:
        raise SystemExit(
            f"Chapter {args.chapter} out of range (story has {len(story.chapters)})."
        )
    if args.html:
        print(render_markup(chapter.body))
        if chapter.translation:
            print(render_markup(chapter.translation))
        return 0
    console.rule(f"{story.title} · {args.chapter}/{len(story.chapters)}")
    console.print(chapter.body, markup=False, highlight=False)
    if chapter.vocabulary:
        console.rule("重要単語")
        for entry in chapter.vocabulary:
            console.print(f"{entry.word}: {entry.meaning}", markup=False, highlight=False)
    if chapter.translation:
        console.rule("日本語訳")
        console.print(chapter.translation, markup=False, highlight=False)
    return 0


def _run_delete(args: argparse.Namespace) -> int:
    library = _open_library(args)
    try:
        story = library.get_story(args.story_id)
    except StoryNotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    if not args.yes and not _confirm(f"Delete '{story.title}' and its {len(story.chapters)} chapter(s)?"):
        console.print("Aborted.")
        return 1
    library.delete_story(story.id)
    console.print(f"Deleted {story.title} ({story.id})")
    return 0


def _run_export(args: argparse.Namespace) -> int:
    library = _open_library(args)
    output = Path(args.output).expanduser() if args.output else Path.cwd() / backup_filename()
    library.write_backup(output)
    console.print(f"Backup written to {output}")
    return 0


def _run_import(args: argparse.Namespace) -> int:
    library = _open_library(args)
    backup_path = Path(args.backup).expanduser()
    try:
        raw = backup_path.read_bytes()
    except OSError as exc:
        raise SystemExit(f"Failed to read backup: {exc}") from exc
    try:
        incoming = parse_backup(raw)
    except BackupFormatError as exc:
        raise SystemExit(str(exc)) from exc
    if not args.yes and not _confirm(
        f"Import {len(incoming)} stories? The current library will be replaced."
    ):
        console.print("Aborted.")
        return 1
    stories = library.import_backup(raw)
    console.print(f"Imported {len(stories)} stories.")
    return 0


def _resolve_local_ip(host: str) -> str:
    if host not in {"0.0.0.0", "::"}:
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def _run_web(args: argparse.Namespace) -> int:
    configure_logging(debug=args.debug)
    root = resolve_library_root(args.library)
    config = ReaderConfig(root=root, host=args.host, port=args.port)
    app = create_reader_app(config)
    url = f"http://{_resolve_local_ip(args.host)}:{args.port}/"
    print(f"Serving story reader from {root}")
    print(f"Web URL: {url}")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.debug else "info",
        log_config=build_uvicorn_log_config(),
    )
    return 0


_COMMANDS = {
    "parse": (build_parse_parser, _run_parse),
    "render": (build_render_parser, _run_render),
    "add": (build_add_parser, _run_add),
    "list": (build_list_parser, _run_list),
    "ls": (build_list_parser, _run_list),
    "show": (build_show_parser, _run_show),
    "delete": (build_delete_parser, _run_delete),
    "export": (build_export_parser, _run_export),
    "import": (build_import_parser, _run_import),
    "web": (build_web_parser, _run_web),
}


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] in _COMMANDS:
        build_command_parser, run = _COMMANDS[argv[0]]
        args = build_command_parser().parse_args(argv[1:])
        return run(args)

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    if argv[0].startswith("-"):
        parser.parse_args(argv)
    parser.error(f"unknown command: {argv[0]}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
