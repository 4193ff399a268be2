"""Unit tests for kasten.query.QueryEngine."""

from pathlib import Path

import polars as pl
import pytest

from kasten.config import KastenConfig
from kasten.indexer import Indexer
from kasten.query import QueryEngine
from kasten.store import Store
from kasten.zettel import Zettel

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store() -> Store:
    s = Store()
    s.init()
    yield s
    s.close()


@pytest.fixture()
def engine(store: Store) -> QueryEngine:
    store.save(Zettel("Alpha", "", links={"Beta", "Ghost One"}, tags={"python"}))
    store.save(Zettel("Beta", "work", links={"Alpha"}, tags={"python", "web"}))
    store.save(Zettel("Gamma", "work", links={"Ghost Two", "Ghost One"}))
    store.save(Zettel("Lonely", "home", tags={"solo"}))
    store.save(Zettel("Target", "home"))
    store.save(Zettel("Pointer", "home", links={"Target"}))
    return QueryEngine(store)


# ---------------------------------------------------------------------------
# Backlinks and outbound links
# ---------------------------------------------------------------------------


class TestLinks:
    def test_backlinks(self, engine: QueryEngine):
        assert [z.title for z in engine.backlinks("Alpha")] == ["Beta"]

    def test_backlinks_none(self, engine: QueryEngine):
        assert engine.backlinks("Lonely") == []

    def test_backlinks_to_ghost(self, engine: QueryEngine):
        assert {z.title for z in engine.backlinks("Ghost One")} == {"Alpha", "Gamma"}

    def test_backlinks_whole_title_only(self, engine: QueryEngine):
        assert engine.backlinks("Ghost") == []

    def test_links_of_title(self, engine: QueryEngine):
        assert engine.links("Gamma") == ["Ghost One", "Ghost Two"]

    def test_links_of_pattern(self, engine: QueryEngine):
        assert engine.links("%a") == ["Alpha", "Beta", "Ghost One", "Ghost Two"]


# ---------------------------------------------------------------------------
# Ghosts
# ---------------------------------------------------------------------------


class TestGhosts:
    def test_ghosts_sorted_and_deduplicated(self, engine: QueryEngine):
        assert engine.ghosts() == ["Ghost One", "Ghost Two"]

    def test_ghosts_equal_links_minus_titles(self, engine: QueryEngine, store: Store):
        links = [link for z in store.all() for link in z.links]
        titles = {z.title for z in store.all()}
        assert engine.ghosts() == sorted(set(links) - titles)

    def test_wildcard_characters_are_literal(self, store: Store):
        store.save(Zettel("Draft_1", links={"Draft%", "Draft_1", "Draft_2"}))
        engine = QueryEngine(store)
        assert engine.ghosts() == ["Draft%", "Draft_2"]

    def test_ghost_check_is_case_sensitive(self, store: Store):
        store.save(Zettel("Note", links={"note"}))
        assert QueryEngine(store).ghosts() == ["note"]

    def test_empty_store(self, store: Store):
        assert QueryEngine(store).ghosts() == []


# ---------------------------------------------------------------------------
# Isolated
# ---------------------------------------------------------------------------


class TestIsolated:
    def test_only_fully_disconnected_notes(self, engine: QueryEngine):
        assert [z.title for z in engine.isolated()] == ["Lonely"]

    def test_note_with_outbound_link_is_not_isolated(self, engine: QueryEngine):
        assert "Pointer" not in {z.title for z in engine.isolated()}

    def test_note_with_inbound_link_is_not_isolated(self, engine: QueryEngine):
        assert "Target" not in {z.title for z in engine.isolated()}

    def test_self_link_is_not_isolated(self, store: Store):
        store.save(Zettel("Me", links={"Me"}))
        assert QueryEngine(store).isolated() == []


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class TestListings:
    def test_list_tags(self, engine: QueryEngine):
        assert engine.list_tags() == ["python", "solo", "web"]

    def test_list_projects(self, engine: QueryEngine):
        assert engine.list_projects() == ["home", "work"]

    def test_list_all_ordered(self, engine: QueryEngine):
        assert [z.key for z in engine.list_all()] == [
            ("Alpha", ""),
            ("Lonely", "home"),
            ("Pointer", "home"),
            ("Target", "home"),
            ("Beta", "work"),
            ("Gamma", "work"),
        ]

    def test_tag_counts(self, engine: QueryEngine):
        df = engine.tag_counts()
        assert isinstance(df, pl.DataFrame)
        assert df.to_dicts()[0] == {"tag": "python", "note_count": 2}
        assert set(df["tag"]) == {"python", "solo", "web"}

    def test_tag_counts_empty(self, store: Store):
        assert len(QueryEngine(store).tag_counts()) == 0


# ---------------------------------------------------------------------------
# Text search
# ---------------------------------------------------------------------------


class TestSearchText:
    def test_search_case_insensitive(self, tmp_path: Path, store: Store):
        (tmp_path / "p").mkdir()
        (tmp_path / "p" / "One.md").write_text("The Quick fox", encoding="utf-8")
        (tmp_path / "Two.md").write_text("slow turtle", encoding="utf-8")
        config = KastenConfig(root=tmp_path)
        Indexer(store, config).rebuild()
        engine = QueryEngine(store, config)
        assert [z.title for z in engine.search_text("quick")] == ["One"]
        assert [z.title for z in engine.search_text("TURTLE|fox")] == ["Two", "One"]

    def test_missing_file_is_skipped(self, tmp_path: Path, store: Store):
        store.save(Zettel("Vanished"))
        assert QueryEngine(store, KastenConfig(root=tmp_path)).search_text("x") == []

    def test_needs_config(self, store: Store):
        with pytest.raises(ValueError):
            QueryEngine(store).search_text("x")


# ---------------------------------------------------------------------------
# End-to-end scenario
# ---------------------------------------------------------------------------


class TestScenario:
    def test_two_linked_notes(self, tmp_path: Path, store: Store):
        root = tmp_path / "root"
        root.mkdir()
        (root / "A.md").write_text("[[B]] #x ", encoding="utf-8")
        (root / "B.md").write_text("", encoding="utf-8")
        Indexer(store, KastenConfig(root=root)).rebuild()
        engine = QueryEngine(store)

        [a] = store.find_by_title("A")
        assert (a.links, a.tags) == ({"B"}, {"x"})
        [b] = store.find_by_title("B")
        assert (b.links, b.tags) == (set(), set())
        assert engine.ghosts() == []
        assert [z.title for z in engine.backlinks("B")] == ["A"]
        assert engine.isolated() == []
