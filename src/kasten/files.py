"""Filesystem helpers used by the indexer and the note model."""

from __future__ import annotations

from pathlib import Path


def basename(path: Path | str) -> str:
    """File name without directory or extension."""
    return Path(path).stem


def is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


def list_projects(root: Path) -> list[Path]:
    """Return the project directories directly under *root*, sorted by name."""
    if not root.is_dir():
        return []
    return sorted(p for p in root.iterdir() if p.is_dir() and not is_hidden(p))


def list_note_files(directory: Path, extension: str) -> list[Path]:
    """Return the ``*.<extension>`` files in *directory*, skipping dot-files.

    A file named only ``.<extension>`` (a note with an empty title) counts as
    hidden and is skipped as well.
    """
    if not directory.is_dir():
        return []
    suffix = f".{extension.lstrip('.')}"
    return sorted(
        p for p in directory.iterdir() if p.is_file() and p.name.endswith(suffix) and not is_hidden(p)
    )


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path
