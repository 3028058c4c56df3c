"""
Environment + project-root helpers.

Supabase credentials usually live in a repo-local `.env`, and the API, CLI and tests are
started from different working directories. These helpers make both work the same way
everywhere:
- `get_project_root()`: locate the repo (a `.env`, a `.git`, or `src/` next to `data/`)
- `load_dotenv_if_present()`: load that `.env` once, never clobbering real env vars
- `resolve_project_path()`: anchor relative paths like `data/catalogs/...` at the root
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


def _is_root(path: Path) -> bool:
    return (
        (path / ".env").is_file()
        or (path / ".git").exists()
        or ((path / "src").is_dir() and (path / "data").is_dir())
    )


def _find_root(start: Path) -> Path | None:
    start = start.resolve()
    return next((p for p in (start, *start.parents) if _is_root(p)), None)


@lru_cache
def get_project_root() -> Path:
    """Best-guess repo root (cached). `CRUISESCORE_PROJECT_ROOT` wins when set."""
    explicit_root = os.getenv("CRUISESCORE_PROJECT_ROOT")
    if explicit_root:
        return Path(explicit_root).expanduser().resolve()
    env_file = os.getenv("CRUISESCORE_ENV_FILE")
    if env_file:
        return Path(env_file).expanduser().resolve().parent

    # The working directory first, then (for an installed CLI) the package location.
    return _find_root(Path.cwd()) or _find_root(Path(__file__).parent) or Path.cwd().resolve()


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load the project `.env` (or `CRUISESCORE_ENV_FILE`) once; return its path, or None."""
    explicit = os.getenv("CRUISESCORE_ENV_FILE")
    env_path = Path(explicit).expanduser().resolve() if explicit else get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    p = Path(path).expanduser()
    return p if p.is_absolute() else (get_project_root() / p).resolve()
