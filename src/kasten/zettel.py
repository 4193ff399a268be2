"""Core Zettel dataclass."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kasten.files import read_text

if TYPE_CHECKING:
    from kasten.config import KastenConfig


@dataclass
class Zettel:
    """A single indexed note, identified by ``(title, project)``."""

    title: str
    #: Name of the project directory; ``""`` is the root project
    project: str = ""
    #: Titles this note references via [[WikiLinks]]
    links: set[str] = field(default_factory=set)
    tags: set[str] = field(default_factory=set)

    @property
    def key(self) -> tuple[str, str]:
        return (self.title, self.project)

    def filename(self, config: "KastenConfig") -> Path:
        """Path of the note file inside the Zettelkasten."""
        directory = config.root / self.project if self.project else config.root
        return directory / f"{self.title}.{config.extension}"

    def has_text(self, config: "KastenConfig", text: str) -> bool:
        """Return ``True`` when the note file matches *text* (case-insensitive regex)."""
        content = read_text(self.filename(config))
        return re.search(text, content, re.IGNORECASE) is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "project": self.project,
            "links": sorted(self.links),
            "tags": sorted(self.tags),
        }
