"""Exception hierarchy for kasten.

Every error raised by the store, the indexer or the configuration loader is
a :class:`KastenError`, so callers can catch one type at the command
boundary.  DuckDB's own exceptions are translated inside :mod:`kasten.store`
and never escape it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kasten.indexer import RebuildReport


class KastenError(Exception):
    """Base exception for all kasten errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigError(KastenError):
    """The configuration is missing, unreadable, or invalid."""


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class StoreError(KastenError):
    """A store operation failed."""


class StoreConnectionError(StoreError):
    """The index database could not be opened or reached."""


class ConstraintError(StoreError):
    """A write violated a table constraint."""


class UniqueConstraintError(ConstraintError):
    """A note with the same ``(title, project)`` is already indexed."""

    def __init__(self, title: str, project: str) -> None:
        super().__init__(
            f"Zettel {title!r} already exists in project {project!r}",
            {"title": title, "project": project},
        )
        self.title = title
        self.project = project


class RowAccessError(StoreError):
    """A stored row does not have the expected shape."""


# ---------------------------------------------------------------------------
# Rebuild pipeline
# ---------------------------------------------------------------------------


class ChannelError(KastenError):
    """Communication between extraction workers and the writer broke down."""


class RebuildError(KastenError):
    """A full rebuild was aborted and rolled back."""

    def __init__(self, message: str, report: "RebuildReport") -> None:
        super().__init__(message, {"failures": len(report.failures)})
        self.report = report
