"""
Configuration tree and environment helpers.

The configuration source is a TOML file with one table per application:

    [shop]
    dbdriver = "sqlite3"
    dbpath = "shop.db"

Values are queried by dotted path (`"shop.dbpath"`). The tree is read-only once
loaded; a tree that was never loaded refuses every query.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from . import GovernorError


class ConfigError(GovernorError):
    pass


class ConfigFileNotFound(ConfigError):
    def __init__(self, path: str | os.PathLike[str]):
        self.path = str(path)
        super().__init__(f"File '{self.path}' does not exist.")


class ConfigParseError(ConfigError):
    def __init__(self, path: str | os.PathLike[str], cause: Exception):
        self.path = str(path)
        self.cause = cause
        super().__init__(f"Could not parse configuration '{self.path}': {cause}")


class ConfigNotLoaded(ConfigError):
    def __init__(self) -> None:
        super().__init__("Configuration tree queried before it was loaded.")


_MISSING = object()


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


class ConfigTree:
    """
    Hierarchical, string-keyed values loaded once from a TOML source.
    """

    def __init__(self, data: Mapping[str, Any] | None = None, *, source: str | None = None):
        self._data = _freeze(dict(data)) if data is not None else None
        self.source = source

    @classmethod
    def load_file(cls, path: str | os.PathLike[str]) -> "ConfigTree":
        p = Path(path)
        if not p.is_file():
            raise ConfigFileNotFound(p)
        try:
            with p.open("rb") as fh:
                data = tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigParseError(p, exc) from exc
        except OSError as exc:
            raise ConfigParseError(p, exc) from exc
        return cls(data, source=str(p))

    @classmethod
    def loads(cls, text: str) -> "ConfigTree":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigParseError("<string>", exc) from exc
        return cls(data, source="<string>")

    @property
    def loaded(self) -> bool:
        return self._data is not None

    def get(self, path: str, default: Any = None) -> Any:
        """
        Return the value at dotted `path`, or `default` when any segment is absent.
        """
        if self._data is None:
            raise ConfigNotLoaded()

        node: Any = self._data
        for key in path.split("."):
            if not isinstance(node, Mapping):
                return default
            node = node.get(key, _MISSING)
            if node is _MISSING:
                return default
        return node

    def has(self, path: str) -> bool:
        return self.get(path, _MISSING) is not _MISSING

    def sections(self) -> list[str]:
        if self._data is None:
            raise ConfigNotLoaded()
        return [k for k, v in self._data.items() if isinstance(v, Mapping)]


def getenv(name: str, default: str) -> str:
    # Set-but-blank counts as unset.
    return os.environ.get(name, "").strip() or default


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def default_config_path() -> str:
    return getenv("GOVERNOR_CONFIG", "governor.toml")


def log_level() -> str:
    return getenv("GOVERNOR_LOG_LEVEL", "INFO").upper()
