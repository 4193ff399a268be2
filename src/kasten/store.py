"""Store: the persisted Zettel index.

A single DuckDB table holds one row per note::

    zettelkasten(title, project, links, tags, UNIQUE(title, project))

Links and tags are kept as text, wrapped in and separated by a fixed token
(``::`` by default), so ``{"A", "B"}`` is stored as ``::A::B::`` and the empty
set as ``::``.  Searching for ``::X::`` inside that text only ever matches the
whole token ``X``.  Encoding and decoding happen here and nowhere else; the
rest of the package only sees :class:`~kasten.zettel.Zettel` objects with
real sets.

The store owns its connection.  Every operation takes the store lock, so
callers on different threads are serialised instead of failing, and the
rebuild writer holds the lock for its whole transaction.

Usage::

    with Store.open(config) as store:
        store.save(Zettel("Alpha", links={"Beta"}))
        store.find_by_title("Al%")
        store.find_by_links_to("Beta")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import duckdb
import polars as pl

from kasten.config import MEMORY
from kasten.errors import (
    ConfigError,
    ConstraintError,
    RowAccessError,
    StoreConnectionError,
    StoreError,
    UniqueConstraintError,
)
from kasten.files import ensure_dir
from kasten.zettel import Zettel

if TYPE_CHECKING:
    from kasten.config import KastenConfig

logger = logging.getLogger(__name__)

TABLE = "zettelkasten"
_COLUMNS = "title, project, links, tags"
_SNAPSHOT_ALIAS = "kasten_snapshot"

_FRAME_SCHEMA = {
    "title": pl.Utf8,
    "project": pl.Utf8,
    "links": pl.List(pl.Utf8),
    "tags": pl.List(pl.Utf8),
}


# ---------------------------------------------------------------------------
# Token encoding
# ---------------------------------------------------------------------------


def is_token(text: str, separator: str = "::") -> bool:
    """Whether *text* can be stored as a single token."""
    return bool(text) and separator not in text


def encode_tokens(items: Iterable[str], separator: str = "::") -> str:
    """Encode a set of strings as separator-delimited text (sorted).

    The empty set is the bare separator.  Items that are empty or contain the
    separator cannot be told apart after decoding and are left out.
    """
    tokens = sorted({item for item in items if is_token(item, separator)})
    if not tokens:
        return separator
    return separator + separator.join(tokens) + separator


def decode_tokens(text: str, separator: str = "::") -> set[str]:
    """Inverse of :func:`encode_tokens`; empty pieces are dropped."""
    return {token for token in text.split(separator) if token}


def _schema_sql(*, replace: bool = False) -> str:
    create = "CREATE OR REPLACE TABLE" if replace else "CREATE TABLE IF NOT EXISTS"
    return f"""
        {create} {TABLE} (
            title   VARCHAR NOT NULL,
            project VARCHAR,
            links   VARCHAR,
            tags    VARCHAR,
            UNIQUE (title, project)
        )
    """


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class Store:
    """DuckDB-backed index of Zettel metadata."""

    def __init__(self, path: Path | str = MEMORY, *, separator: str = "::") -> None:
        if not separator:
            raise ConfigError("separator must be a non-empty string")
        self.path = str(path)
        self.separator = separator
        self._lock = threading.RLock()
        try:
            if self.path != MEMORY:
                ensure_dir(Path(self.path).parent)
            self._conn: duckdb.DuckDBPyConnection | None = duckdb.connect(self.path)
        except (duckdb.Error, OSError) as exc:
            raise StoreConnectionError(
                f"cannot open index database {self.path}: {exc}", {"path": self.path}
            ) from exc

    @classmethod
    def open(cls, config: "KastenConfig") -> "Store":
        """Open (and initialise) the store described by *config*."""
        store = cls(config.index_path, separator=config.separator)
        store.init()
        return store

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self, action: str) -> Iterator[duckdb.DuckDBPyConnection]:
        """Hold the store lock and translate DuckDB errors for *action*."""
        with self._lock:
            if self._conn is None:
                raise StoreConnectionError(f"{action}: store is closed", {"path": self.path})
            try:
                yield self._conn
            except duckdb.ConstraintException as exc:
                raise ConstraintError(f"{action}: {exc}") from exc
            except (duckdb.ConnectionException, duckdb.IOException) as exc:
                raise StoreConnectionError(f"{action}: {exc}", {"path": self.path}) from exc
            except duckdb.Error as exc:
                raise StoreError(f"{action}: {exc}") from exc

    def _encode(self, zettel: Zettel) -> list[str]:
        dropped = {t for t in zettel.links | zettel.tags if not is_token(t, self.separator)}
        if dropped:
            logger.warning("Not storing %s for %r: empty or contains %r", sorted(dropped), zettel.key, self.separator)
        return [
            zettel.title,
            zettel.project,
            encode_tokens(zettel.links, self.separator),
            encode_tokens(zettel.tags, self.separator),
        ]

    def _decode(self, row: tuple[Any, ...]) -> Zettel:
        if len(row) != 4 or not all(isinstance(value, str) for value in row):
            raise RowAccessError(f"malformed {TABLE} row: {row!r}", {"row": repr(row)})
        title, project, links, tags = row
        return Zettel(
            title=title,
            project=project,
            links=decode_tokens(links, self.separator),
            tags=decode_tokens(tags, self.separator),
        )

    def _select(self, action: str, where: str = "", params: list[Any] | None = None) -> list[Zettel]:
        sql = f"SELECT {_COLUMNS} FROM {TABLE} {where} ORDER BY project, title"
        with self._guard(action) as conn:
            rows = conn.execute(sql, params or []).fetchall()
        return [self._decode(row) for row in rows]

    def _needle(self, token: str) -> str:
        return f"{self.separator}{token}{self.separator}"

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Create the ``zettelkasten`` table if it does not exist yet."""
        with self._guard("init") as conn:
            conn.execute(_schema_sql())

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def save(self, zettel: Zettel) -> None:
        """Insert *zettel*; raise :class:`UniqueConstraintError` if its key exists."""
        with self._guard("save") as conn:
            try:
                conn.execute(f"INSERT INTO {TABLE} ({_COLUMNS}) VALUES (?, ?, ?, ?)", self._encode(zettel))
            except duckdb.ConstraintException as exc:
                raise UniqueConstraintError(zettel.title, zettel.project) from exc

    def delete(self, zettel: Zettel) -> None:
        """Remove the row for *zettel*'s key; a no-op when absent."""
        with self._guard("delete") as conn:
            conn.execute(f"DELETE FROM {TABLE} WHERE title = ? AND project = ?", [zettel.title, zettel.project])

    def update(self, zettel: Zettel) -> None:
        """Replace the stored row for *zettel*'s key with *zettel*.

        This is a delete followed by an insert, not a single transaction.  Use
        a full rebuild to re-index many notes.
        """
        with self._lock:
            self.delete(zettel)
            self.save(zettel)

    def change_project(self, zettel: Zettel, new_project: str) -> None:
        """Move *zettel* to *new_project*, keeping its title, links and tags."""
        with self._guard("change_project") as conn:
            try:
                conn.execute(
                    f"UPDATE {TABLE} SET project = ? WHERE title = ? AND project = ?",
                    [new_project, zettel.title, zettel.project],
                )
            except duckdb.ConstraintException as exc:
                raise UniqueConstraintError(zettel.title, new_project) from exc

    def change_title(self, zettel: Zettel, new_title: str) -> None:
        """Rename *zettel* to *new_title*, keeping its project, links and tags."""
        with self._guard("change_title") as conn:
            try:
                conn.execute(
                    f"UPDATE {TABLE} SET title = ? WHERE title = ? AND project = ?",
                    [new_title, zettel.title, zettel.project],
                )
            except duckdb.ConstraintException as exc:
                raise UniqueConstraintError(new_title, zettel.project) from exc

    @contextmanager
    def transaction(self) -> Iterator["Transaction"]:
        """Run a block inside one exclusive transaction.

        The store lock is held until the block exits; the transaction commits
        on a clean exit and rolls back on any exception.
        """
        with self._guard("transaction") as conn:
            conn.begin()
            try:
                yield Transaction(self, conn)
            except BaseException:
                conn.rollback()
                logger.debug("Rolled back transaction on %s", self.path)
                raise
            conn.commit()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def all(self) -> list[Zettel]:
        """Return every indexed Zettel."""
        return self._select("all")

    def count(self) -> int:
        with self._guard("count") as conn:
            row = conn.execute(f"SELECT count(*) FROM {TABLE}").fetchone()
        return int(row[0]) if row else 0

    def get(self, title: str, project: str = "") -> Zettel | None:
        """Return the Zettel stored under exactly ``(title, project)``."""
        found = self._select("get", "WHERE title = ? AND project = ?", [title, project])
        return found[0] if found else None

    def find_by_title(self, pattern: str) -> list[Zettel]:
        """Return the Zettels whose title matches the LIKE *pattern*.

        ``%`` matches any run of characters and ``_`` a single character.
        There is no escape character, so every title matches itself unless it
        contains a wildcard.
        """
        return self._select("find_by_title", "WHERE title LIKE ?", [pattern])

    def titles(self) -> set[str]:
        """Every indexed title."""
        with self._guard("titles") as conn:
            rows = conn.execute(f"SELECT DISTINCT title FROM {TABLE}").fetchall()
        return {row[0] for row in rows}

    def find_by_tag(self, tag: str) -> list[Zettel]:
        """Return the Zettels carrying exactly *tag*."""
        if not is_token(tag, self.separator):
            return []
        return self._select("find_by_tag", "WHERE contains(tags, ?)", [self._needle(tag)])

    def find_by_links_to(self, title: str) -> list[Zettel]:
        """Return the Zettels that link to exactly *title*."""
        if not is_token(title, self.separator):
            return []
        return self._select("find_by_links_to", "WHERE contains(links, ?)", [self._needle(title)])

    def list_tags(self) -> list[str]:
        """Every tag in use, sorted and de-duplicated."""
        with self._guard("list_tags") as conn:
            rows = conn.execute(f"SELECT tags FROM {TABLE}").fetchall()
        tags: set[str] = set()
        for (encoded,) in rows:
            if not isinstance(encoded, str):
                raise RowAccessError(f"malformed tags value: {encoded!r}")
            tags |= decode_tokens(encoded, self.separator)
        return sorted(tags)

    def list_projects(self) -> list[str]:
        """Every non-root project name, sorted and de-duplicated."""
        with self._guard("list_projects") as conn:
            rows = conn.execute(
                f"SELECT DISTINCT project FROM {TABLE} WHERE project <> '' ORDER BY project"
            ).fetchall()
        return [row[0] for row in rows]

    def all_links(self) -> list[set[str]]:
        """The link set of every row, in no particular order."""
        with self._guard("all_links") as conn:
            rows = conn.execute(f"SELECT links FROM {TABLE}").fetchall()
        result: list[set[str]] = []
        for (encoded,) in rows:
            if not isinstance(encoded, str):
                raise RowAccessError(f"malformed links value: {encoded!r}")
            result.append(decode_tokens(encoded, self.separator))
        return result

    # ------------------------------------------------------------------
    # Tabular access
    # ------------------------------------------------------------------

    def query(self, sql: str, params: list[Any] | None = None) -> pl.DataFrame:
        """Run a raw SQL query and return a Polars DataFrame."""
        with self._guard("query") as conn:
            return conn.execute(sql, params or []).pl()

    def frame(self) -> pl.DataFrame:
        """Every Zettel as a DataFrame with decoded ``links``/``tags`` lists."""
        return pl.DataFrame([z.to_dict() for z in self.all()], schema=_FRAME_SCHEMA)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def backup(self, path: Path | str) -> Path:
        """Write a snapshot of the live index to the DuckDB file at *path*.

        An existing file at *path* is replaced; the live index file itself
        is refused.
        """
        target = Path(path)
        quoted = str(target).replace("'", "''")
        if self.path != MEMORY and target.resolve() == Path(self.path).resolve():
            raise StoreError(f"backup: {target} is the live index", {"path": str(target)})
        with self._guard("backup") as conn:
            try:
                ensure_dir(target.parent)
                target.unlink(missing_ok=True)
            except OSError as exc:
                raise StoreError(f"backup: cannot write {target}: {exc}", {"path": str(target)}) from exc
            row = conn.execute("SELECT current_database()").fetchone()
            source = str(row[0]).replace('"', '""') if row else "memory"
            conn.execute(f"ATTACH '{quoted}' AS {_SNAPSHOT_ALIAS}")
            try:
                conn.execute(f'COPY FROM DATABASE "{source}" TO {_SNAPSHOT_ALIAS}')
            finally:
                conn.execute(f"DETACH {_SNAPSHOT_ALIAS}")
        logger.info("Wrote index snapshot to %s", target)
        return target

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class Transaction:
    """Write handle valid only inside :meth:`Store.transaction`."""

    def __init__(self, store: Store, conn: duckdb.DuckDBPyConnection) -> None:
        self._store = store
        self._conn = conn

    def clear(self) -> None:
        """Drop every row by recreating the table inside this transaction."""
        try:
            self._conn.execute(_schema_sql(replace=True))
        except duckdb.Error as exc:
            raise StoreError(f"clear: {exc}") from exc

    def insert(self, zettel: Zettel) -> None:
        try:
            self._conn.execute(
                f"INSERT INTO {TABLE} ({_COLUMNS}) VALUES (?, ?, ?, ?)", self._store._encode(zettel)
            )
        except duckdb.ConstraintException as exc:
            raise UniqueConstraintError(zettel.title, zettel.project) from exc
        except duckdb.Error as exc:
            raise StoreError(f"insert {zettel.key!r}: {exc}") from exc
