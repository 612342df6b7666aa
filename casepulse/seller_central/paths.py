"""Directory layout for Seller Central run artifacts."""

from __future__ import annotations

from pathlib import Path

DEBUG_SUBDIR = Path("data") / "debug"


def default_debug_dir() -> Path:
    """Per-run navigation debug files go under the working directory, never the installed package."""

    return Path.cwd() / DEBUG_SUBDIR


def resolve_debug_dir(configured: str | None) -> Path:
    raw = (configured or "").strip()
    path = Path(raw).expanduser() if raw else default_debug_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path
