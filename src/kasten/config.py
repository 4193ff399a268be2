"""KastenConfig: where the notes live and how the index is stored.

Configuration is a YAML file, by default ``~/.config/kasten/config.yaml``
(override with ``KASTEN_CONFIG``)::

    kasten:
      root: ~/notes               # the Zettelkasten directory
      # index: .kasten/index.duckdb   # default, relative to root
      # template: ~/notes/.template.md
      # separator: "::"
      # extension: md
      # workers: 8

A flat mapping without the ``kasten:`` key is accepted too.

Precedence, highest first: keyword overrides passed to :func:`load_config`,
environment variables (``KASTEN_ROOT``, ``KASTEN_INDEX``,
``KASTEN_TEMPLATE``), the YAML file, built-in defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from kasten.errors import ConfigError

MEMORY = ":memory:"

_DEFAULT_CONFIG_PATH = Path("~/.config/kasten/config.yaml")
_DEFAULT_INDEX = ".kasten/index.duckdb"
_DEFAULT_SEPARATOR = "::"
_DEFAULT_EXTENSION = "md"

_ENV_KEYS = {
    "root": "KASTEN_ROOT",
    "index": "KASTEN_INDEX",
    "template": "KASTEN_TEMPLATE",
}


@dataclass
class KastenConfig:
    """Resolved configuration, loaded once and passed by reference."""

    root: Path
    index_path: Path | str = MEMORY
    template: Path | None = None
    separator: str = _DEFAULT_SEPARATOR
    extension: str = _DEFAULT_EXTENSION
    workers: int | None = None

    def __post_init__(self) -> None:
        if not self.separator:
            raise ConfigError("separator must be a non-empty string")
        self.extension = self.extension.lstrip(".")
        if not self.extension:
            raise ConfigError("extension must be a non-empty string")
        if self.workers is not None and self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")

    @property
    def in_memory(self) -> bool:
        return str(self.index_path) == MEMORY

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KastenConfig":
        """Build a config from a mapping shaped like the YAML file."""
        section = data.get("kasten", data)
        if not isinstance(section, dict):
            raise ConfigError("the 'kasten' section must be a mapping")
        if not section.get("root"):
            raise ConfigError("no Zettelkasten root configured (set 'root' or KASTEN_ROOT)")

        root = Path(section["root"]).expanduser()
        index = str(section.get("index") or _DEFAULT_INDEX)
        index_path: Path | str = MEMORY if index == MEMORY else root / Path(index).expanduser()
        template = section.get("template")
        workers = section.get("workers")

        return cls(
            root=root,
            index_path=index_path,
            template=Path(template).expanduser() if template else None,
            separator=str(section.get("separator", _DEFAULT_SEPARATOR)),
            extension=str(section.get("extension", _DEFAULT_EXTENSION)),
            workers=int(workers) if workers is not None else None,
        )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}", {"path": str(path)}) from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping", {"path": str(path)})
    return raw


def load_config(path: Path | str | None = None, **overrides: Any) -> KastenConfig:
    """Load configuration from YAML, the environment and *overrides*.

    A missing default config file is not an error; a missing explicit *path*
    is.
    """
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise ConfigError(f"config file not found: {config_path}", {"path": str(config_path)})
    else:
        config_path = Path(os.getenv("KASTEN_CONFIG", str(_DEFAULT_CONFIG_PATH))).expanduser()

    raw = _read_yaml(config_path) if config_path.exists() else {}
    section = raw.get("kasten", raw)
    if not isinstance(section, dict):
        raise ConfigError(f"the 'kasten' section of {config_path} must be a mapping")
    section = dict(section)

    for key, env_var in _ENV_KEYS.items():
        value = os.getenv(env_var)
        if value:
            section[key] = value

    section.update({k: v for k, v in overrides.items() if v is not None})
    return KastenConfig.from_dict(section)
