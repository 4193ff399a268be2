"""Indexer: rebuild the whole index from the note collection.

Extraction runs on a thread pool, one task per note file.  Every extracted
Zettel is sent over a small bounded queue to a single writer thread, which
inserts it inside one exclusive store transaction.  The queue's size limits
how far producers can run ahead of the writer.

The rebuild replaces the table contents: the writer clears the table inside
the same transaction before the first insert, so rebuilding twice gives the
same result and notes whose files were removed disappear.  A reader sees
either the old index or the new one, never a half-built one.

Per-file problems (unreadable file, duplicate ``(title, project)``) are
collected in the :class:`RebuildReport` and the other notes still commit.
With ``strict=True`` any such problem rolls the rebuild back instead.  A
store failure inside the writer always rolls back and raises
:class:`~kasten.errors.RebuildError`.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kasten.errors import ChannelError, RebuildError, StoreError
from kasten.extract import extract_file
from kasten.files import list_note_files, list_projects

if TYPE_CHECKING:
    from kasten.config import KastenConfig
    from kasten.store import Store
    from kasten.zettel import Zettel

logger = logging.getLogger(__name__)

# End-of-stream markers sent by the coordinating thread
_END = object()
_ABORT = object()

_SEND_POLL_SECONDS = 0.1


@dataclass
class FileFailure:
    path: Path
    reason: str


@dataclass
class RebuildReport:
    """Outcome of :meth:`Indexer.rebuild`."""

    indexed: int = 0
    committed: bool = False
    failures: list[FileFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.committed and not self.failures


class _Rollback(Exception):
    """Raised inside the writer transaction to discard it."""


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class _Writer:
    """Consumes ``(path, zettel)`` records and writes them in one transaction."""

    def __init__(self, store: "Store", channel: "queue.Queue[Any]", *, strict: bool) -> None:
        self.store = store
        self.channel = channel
        self.strict = strict
        self.written = 0
        self.committed = False
        self.duplicates: list[FileFailure] = []
        self.error: Exception | None = None
        #: Set once an insert failed; later records are drained, not written
        self.failed = threading.Event()

    def run(self) -> None:
        try:
            with self.store.transaction() as tx:
                tx.clear()
                seen: set[tuple[str, str]] = set()
                while True:
                    item = self.channel.get()
                    if item is _END:
                        break
                    if item is _ABORT:
                        raise _Rollback
                    if self.failed.is_set():
                        continue
                    path, zettel = item
                    if zettel.key in seen:
                        logger.warning("Skipping %s: duplicate note %r", path, zettel.key)
                        self.duplicates.append(FileFailure(path, f"duplicate note {zettel.key!r}"))
                        continue
                    seen.add(zettel.key)
                    try:
                        tx.insert(zettel)
                    except StoreError as exc:
                        self.error = exc
                        self.failed.set()
                        continue
                    self.written += 1
                if self.failed.is_set() or (self.strict and self.duplicates):
                    raise _Rollback
            self.committed = True
        except _Rollback:
            logger.debug("Rebuild transaction rolled back")
        except Exception as exc:  # noqa: BLE001 - re-raised by Indexer.rebuild
            self.error = exc
            self.failed.set()


# ---------------------------------------------------------------------------
# Indexer
# ---------------------------------------------------------------------------


class Indexer:
    """Builds the :class:`~kasten.store.Store` contents from the note files."""

    def __init__(self, store: "Store", config: "KastenConfig", *, channel_size: int = 1) -> None:
        self.store = store
        self.config = config
        self.channel_size = channel_size

    @property
    def workers(self) -> int:
        return self.config.workers or os.cpu_count() or 1

    def directories(self) -> list[Path]:
        """The root directory followed by every project directory."""
        return [self.config.root, *list_projects(self.config.root)]

    def note_files(self, pool: ThreadPoolExecutor | None = None) -> list[Path]:
        """Every candidate note file across all projects."""
        lister = partial(list_note_files, extension=self.config.extension)
        listings = pool.map(lister, self.directories()) if pool else map(lister, self.directories())
        return [path for files in listings for path in files]

    # ------------------------------------------------------------------
    # Full rebuild
    # ------------------------------------------------------------------

    def rebuild(self, *, strict: bool = False) -> RebuildReport:
        """Replace the index with the notes currently on disk."""
        report = RebuildReport()
        channel: queue.Queue[Any] = queue.Queue(maxsize=self.channel_size)
        writer = _Writer(self.store, channel, strict=strict)
        thread = threading.Thread(target=writer.run, name="kasten-writer", daemon=True)
        thread.start()

        def send(item: Any) -> None:
            while True:
                try:
                    channel.put(item, timeout=_SEND_POLL_SECONDS)
                    return
                except queue.Full:
                    if not thread.is_alive():
                        raise ChannelError("index writer stopped before the end of the stream") from None

        channel_error: ChannelError | None = None
        produced = False
        try:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="kasten-extract") as pool:
                paths = self.note_files(pool)
                logger.info("Rebuilding index from %d note files with %d workers", len(paths), self.workers)
                futures = [pool.submit(self._produce, path, send, writer.failed) for path in paths]
                for future in as_completed(futures):
                    try:
                        failure = future.result()
                    except ChannelError as exc:
                        channel_error = exc
                        continue
                    if failure is not None:
                        report.failures.append(failure)
            produced = True
        finally:
            aborted = not produced or channel_error is not None or (strict and bool(report.failures))
            if thread.is_alive():
                try:
                    send(_ABORT if aborted else _END)
                except ChannelError as exc:
                    channel_error = channel_error or exc
            thread.join()

        report.failures.extend(writer.duplicates)
        report.committed = writer.committed
        report.indexed = writer.written if writer.committed else 0

        if writer.error is not None:
            raise RebuildError(f"rebuild aborted, index left unchanged: {writer.error}", report) from writer.error
        if channel_error is not None:
            raise RebuildError(f"rebuild aborted, index left unchanged: {channel_error}", report) from channel_error
        if not writer.committed:
            raise RebuildError(
                f"rebuild rolled back, {len(report.failures)} note file(s) failed", report
            )

        logger.info("Indexed %d notes (%d skipped)", report.indexed, len(report.failures))
        return report

    def _produce(self, path: Path, send: Any, stop: threading.Event) -> FileFailure | None:
        if stop.is_set():
            return None
        try:
            zettel = extract_file(path, self.config.root)
        except (OSError, ValueError) as exc:
            logger.warning("Skipping %s: %s", path, exc)
            return FileFailure(path, str(exc))
        send((path, zettel))
        return None

    # ------------------------------------------------------------------
    # Single notes
    # ------------------------------------------------------------------

    def index_file(self, path: Path | str) -> "Zettel":
        """Extract one note file and add it to the index."""
        zettel = extract_file(Path(path), self.config.root)
        self.store.save(zettel)
        return zettel

    def update(self, zettel: "Zettel") -> "Zettel":
        """Re-read *zettel*'s file and replace its stored metadata.

        The note file must exist.  Prefer :meth:`rebuild` for many notes.
        """
        fresh = extract_file(zettel.filename(self.config), self.config.root)
        self.store.update(fresh)
        return fresh
