from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

LIBRARY_ENV_VAR = "STORYREADER_HOME"
DEFAULT_LIBRARY_DIRNAME = ".storyreader"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 2047


@dataclass(slots=True)
class ReaderConfig:
    root: Path
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


def resolve_library_root(explicit: str | os.PathLike[str] | None = None) -> Path:
    """Pick the library directory: explicit path, then $STORYREADER_HOME, then ~/.storyreader."""
    if explicit:
        return Path(explicit).expanduser().resolve()
    env_dir = os.environ.get(LIBRARY_ENV_VAR)
    if env_dir and env_dir.strip():
        return Path(env_dir.strip()).expanduser().resolve()
    return (Path.home() / DEFAULT_LIBRARY_DIRNAME).resolve()


__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "LIBRARY_ENV_VAR",
    "ReaderConfig",
    "resolve_library_root",
]
