"""Configuration — the hive store and the shell's own settings.

The shell reads its settings from a small hierarchical store split
into **hives**:

- ``system`` — settings owned by the host.  Plugins may read it but
  never write it.
- ``app`` — settings for the application embedding the shell.  The
  shell's own knobs live under ``shell.*`` here.
- ``user`` — per-user preferences.

Inside a hive, values are addressed by dotted paths
(``shell.cache_limit``), stored as nested JSON objects.

The store is persisted as a single JSON document:

    - ``ConfigStore.load(path)`` — read a store from disk.
    - ``store.save(path)`` — write it back.

``ShellSettings`` is the typed view the dispatcher actually uses,
built from the ``app`` hive with ``ShellSettings.from_store``.
"""

import json
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from py_shell.aliases import DEFAULT_ALIAS_LIMIT
from py_shell.commands import DEFAULT_CACHE_LIMIT
from py_shell.ranks import DEFAULT_USER_RANK, RankLevel

DEFAULT_PROMPT = "$app[name] $user[name]> "
DEFAULT_KEYBOARD_INTERVAL = 0.01
DEFAULT_COMMAND_INTERVAL = 0.25


class ConfigError(Exception):
    """Raised for malformed paths or writes to a protected hive."""


class Hive(StrEnum):
    """Top-level partitions of the configuration store."""

    SYSTEM = "system"
    APP = "app"
    USER = "user"


def _split_path(dot_path: str) -> list[str]:
    parts = [p for p in dot_path.strip().split(".") if p]
    if not parts:
        msg = f"Invalid configuration path '{dot_path}'"
        raise ConfigError(msg)
    return parts


class ConfigStore:
    """A JSON-backed, hive-partitioned settings tree."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        """Create a store, optionally from an existing hive mapping."""
        self._hives: dict[str, dict[str, Any]] = {hive.value: {} for hive in Hive}
        for name, tree in (data or {}).items():
            self._hives[Hive(name).value] = dict(tree)

    @classmethod
    def load(cls, path: Path) -> "ConfigStore":
        """Read a store from a JSON file.

        Raises:
            FileNotFoundError: If the path does not exist.
            ConfigError: If the file is not a JSON object of hives.

        """
        data = json.loads(path.read_text())
        if not isinstance(data, dict):
            msg = f"{path} does not contain a configuration object"
            raise ConfigError(msg)
        try:
            return cls(data)
        except ValueError as e:
            msg = f"{path}: {e}"
            raise ConfigError(msg) from e

    def save(self, path: Path) -> None:
        """Write the store to a JSON file."""
        path.write_text(json.dumps(self._hives, indent=2, sort_keys=True))

    def get(self, hive: Hive, dot_path: str, default: Any = None) -> Any:  # noqa: ANN401
        """Return the value at *dot_path* in *hive*, or *default*."""
        node: Any = self._hives[Hive(hive).value]
        for part in _split_path(dot_path):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, hive: Hive, dot_path: str, value: Any, *, as_plugin: bool = False) -> None:  # noqa: ANN401
        """Store *value* at *dot_path* in *hive*, creating parents.

        Args:
            hive: Target hive.
            dot_path: Dotted key path.
            value: A JSON-serialisable value.
            as_plugin: True when the write comes from plugin code.

        Raises:
            ConfigError: If a plugin writes to the system hive, or a
                path segment is already a non-object value.

        """
        hive = Hive(hive)
        if as_plugin and hive is Hive.SYSTEM:
            msg = "The system hive is read-only to plugins"
            raise ConfigError(msg)
        parts = _split_path(dot_path)
        node = self._hives[hive.value]
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                msg = f"'{part}' in '{dot_path}' is not a section"
                raise ConfigError(msg)
            node = child
        node[parts[-1]] = value

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Return a deep copy of every hive."""
        return json.loads(json.dumps(self._hives))


@dataclass(frozen=True)
class ShellSettings:
    """Typed shell configuration.

    Attributes:
        app_name: Name shown by ``$app[name]`` and ``VER``.
        version: Version shown by ``$app[version]`` and ``VER``.
        cache_limit: Command history size (floored at 5).
        alias_limit: Maximum number of aliases.
        heartbeat_interval: Seconds between heartbeats (0 = off).
        keyboard_interval: Keystroke poll timeout in seconds.
        command_interval: Dispatcher idle wait in seconds.
        allow_exceptions: Let plugin exceptions escape the dispatcher.
        revoked_cmdlets: Cmdlet names disabled in this shell.
        prompt: Initial prompt template.
        default_rank: Rank of the anonymous actor.

    """

    app_name: str = "PyShell"
    version: str = "0.1.0"
    cache_limit: int = DEFAULT_CACHE_LIMIT
    alias_limit: int = DEFAULT_ALIAS_LIMIT
    heartbeat_interval: float = 0
    keyboard_interval: float = DEFAULT_KEYBOARD_INTERVAL
    command_interval: float = DEFAULT_COMMAND_INTERVAL
    allow_exceptions: bool = False
    revoked_cmdlets: tuple[str, ...] = ()
    prompt: str = DEFAULT_PROMPT
    default_rank: RankLevel = DEFAULT_USER_RANK

    @classmethod
    def from_store(cls, store: ConfigStore) -> "ShellSettings":
        """Build settings from the ``app`` hive's ``shell.*`` keys.

        Missing keys keep their defaults.
        """
        defaults = cls()

        def read(key: str, fallback: Any) -> Any:  # noqa: ANN401
            return store.get(Hive.APP, f"shell.{key}", fallback)

        rank = read("default_rank", None)
        return cls(
            app_name=str(read("app_name", defaults.app_name)),
            version=str(read("version", defaults.version)),
            cache_limit=int(read("cache_limit", defaults.cache_limit)),
            alias_limit=int(read("alias_limit", defaults.alias_limit)),
            heartbeat_interval=float(read("heartbeat_interval", defaults.heartbeat_interval)),
            keyboard_interval=float(read("keyboard_interval", defaults.keyboard_interval)),
            command_interval=float(read("command_interval", defaults.command_interval)),
            allow_exceptions=bool(read("allow_exceptions", defaults.allow_exceptions)),
            revoked_cmdlets=tuple(str(n).upper() for n in read("revoked_cmdlets", ())),
            prompt=str(read("prompt", defaults.prompt)),
            default_rank=defaults.default_rank if rank is None else RankLevel.parse(str(rank)),
        )
