"""kasten: a queryable index over a Zettelkasten of plain-text notes."""

from kasten.config import KastenConfig, load_config
from kasten.errors import (
    ChannelError,
    ConfigError,
    ConstraintError,
    KastenError,
    RebuildError,
    RowAccessError,
    StoreConnectionError,
    StoreError,
    UniqueConstraintError,
)
from kasten.extract import extract, extract_file, find_links, find_tags
from kasten.indexer import Indexer, RebuildReport
from kasten.query import QueryEngine
from kasten.store import Store
from kasten.zettel import Zettel

__all__ = [
    "ChannelError",
    "ConfigError",
    "ConstraintError",
    "Indexer",
    "KastenConfig",
    "KastenError",
    "QueryEngine",
    "RebuildError",
    "RebuildReport",
    "RowAccessError",
    "Store",
    "StoreConnectionError",
    "StoreError",
    "UniqueConstraintError",
    "Zettel",
    "extract",
    "extract_file",
    "find_links",
    "find_tags",
    "load_config",
]
