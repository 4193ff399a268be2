"""Graph queries over the Zettel index.

:class:`QueryEngine` only reads from the :class:`~kasten.store.Store`; it
keeps no state of its own.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import polars as pl

if TYPE_CHECKING:
    from kasten.config import KastenConfig
    from kasten.store import Store
    from kasten.zettel import Zettel


class QueryEngine:
    """Backlinks, ghosts, isolated notes, tags and projects."""

    def __init__(self, store: "Store", config: "KastenConfig | None" = None) -> None:
        self.store = store
        self.config = config

    # ------------------------------------------------------------------
    # Link graph
    # ------------------------------------------------------------------

    def backlinks(self, title: str) -> list["Zettel"]:
        """Notes whose links contain exactly *title*."""
        return self.store.find_by_links_to(title)

    def links(self, pattern: str) -> list[str]:
        """Sorted outbound links of every note whose title matches *pattern*."""
        targets: set[str] = set()
        for zettel in self.store.find_by_title(pattern):
            targets |= zettel.links
        return sorted(targets)

    def ghosts(self) -> list[str]:
        """Titles that are linked to but have no indexed note, sorted."""
        linked: set[str] = set()
        for links in self.store.all_links():
            linked |= links
        return sorted(linked - self.store.titles())

    def isolated(self) -> list["Zettel"]:
        """Notes with no outbound links that no other note links to."""
        zettels = self.store.all()
        # a note without links cannot link to itself, so every inbound link is from another note
        linked: set[str] = set()
        for zettel in zettels:
            linked |= zettel.links
        return [z for z in zettels if not z.links and z.title not in linked]

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_all(self) -> list["Zettel"]:
        """Every note, ordered by project then title."""
        return sorted(self.store.all(), key=lambda z: (z.project, z.title))

    def list_tags(self) -> list[str]:
        return self.store.list_tags()

    def list_projects(self) -> list[str]:
        return self.store.list_projects()

    def tag_counts(self) -> pl.DataFrame:
        """Return a tag → count table sorted by frequency."""
        frame = self.store.frame()
        return (
            frame.select(pl.col("tags").explode().alias("tag"))
            .drop_nulls()
            .group_by("tag")
            .agg(pl.len().alias("note_count"))
            .sort(["note_count", "tag"], descending=[True, False])
        )

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def search_text(self, text: str) -> list["Zettel"]:
        """Notes whose file content matches the case-insensitive regex *text*.

        Needs the :class:`~kasten.config.KastenConfig` to locate note files;
        notes whose file has gone missing are skipped.
        """
        if self.config is None:
            raise ValueError("search_text needs a KastenConfig to locate note files")
        config = self.config
        return [z for z in self.list_all() if z.filename(config).exists() and z.has_text(config, text)]
