"""WikiLink and tag extraction.

Extraction is a pure function of a note's path and content, so the indexer
can run it on many files at once without sharing any state.
"""

from __future__ import annotations

import re
from pathlib import Path

from kasten.files import basename, read_text
from kasten.zettel import Zettel

# [[Any Title]], non-greedy, on a single line
_WIKILINK_RE = re.compile(r"\[\[(.*?)\]\]")
# #tag, only when followed by whitespace: "#idea" at end of file is not a tag
_TAG_RE = re.compile(r"#([\w/-]+?)\s")


def find_links(content: str) -> set[str]:
    """Return every ``[[WikiLink]]`` target found in *content*, verbatim."""
    return {m.group(1) for m in _WIKILINK_RE.finditer(content)}


def find_tags(content: str) -> set[str]:
    """Return every ``#tag`` found in *content*."""
    return {m.group(1) for m in _TAG_RE.finditer(content)}


def project_of(path: Path, root: Path | None = None) -> str:
    """Name of the directory that holds *path*; ``""`` for notes directly in *root*."""
    parent = path.parent
    if root is not None and parent.resolve() == Path(root).resolve():
        return ""
    return parent.absolute().name


def extract(path: Path | str, content: str, root: Path | None = None) -> Zettel:
    """Build a :class:`Zettel` from a note's *path* and *content*."""
    path = Path(path)
    return Zettel(
        title=basename(path),
        project=project_of(path, root),
        links=find_links(content),
        tags=find_tags(content),
    )


def extract_file(path: Path, root: Path | None = None) -> Zettel:
    """Read a note file and extract its metadata."""
    return extract(path, read_text(path), root)
