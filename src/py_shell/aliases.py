"""Command aliases — short names that expand to longer command lines.

An alias maps a name to an expansion: ``ll`` → ``LIST /all``.  When the
dispatcher meets a verb it cannot resolve to a plugin or a cmdlet, it
asks the alias table.  If the verb is an alias, the expansion plus the
original payload is put back on the queue as a brand new command::

    ll extra   →   LIST /all extra

Aliases may refer to other aliases, which is where loops come from:
``a`` → ``b``, ``b`` → ``a``.  Each re-queued expansion remembers which
aliases produced it (its *alias chain*); resolving a verb that is
already on the chain, or a chain deeper than ``MAX_ALIAS_DEPTH``,
raises ``AliasLoopError`` instead of going round forever.

Expansion strings may be quoted and may contain ``\\xNN`` escapes
(``\\x22`` for a literal double quote) so they survive being typed on a
single command line.
"""

import re
import threading
from dataclasses import dataclass

from py_shell.errors import AliasLoopError

DEFAULT_ALIAS_LIMIT = 10
MAX_ALIAS_LIMIT = 255
MAX_ALIAS_DEPTH = 8

_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9]{1,7}$")
_DEFINITION_PATTERN = re.compile(r"^\s*([A-Za-z][A-Za-z0-9]{1,7})\s*[=:]\s*(.*)$", re.DOTALL)
_ESCAPE_PATTERN = re.compile(r"\\x([0-9A-Fa-f]{2})")


def decode_escapes(text: str) -> str:
    """Replace ``\\xNN`` escapes with the characters they encode."""
    return _ESCAPE_PATTERN.sub(lambda m: chr(int(m.group(1), 16)), text)


def _unquote(text: str) -> str:
    stripped = text.strip()
    if len(stripped) >= 2 and stripped[0] == stripped[-1] and stripped[0] in "\"'":  # noqa: PLR2004
        return stripped[1:-1]
    return stripped


@dataclass(frozen=True)
class Alias:
    """A named command expansion."""

    name: str
    expansion: str

    @classmethod
    def create(cls, name: str, expansion: str) -> "Alias":
        """Validate and normalise a new alias.

        The name is upper-cased; the expansion is unquoted and has its
        escapes decoded.

        Raises:
            ValueError: If the name is malformed or the expansion is empty.

        """
        if not _NAME_PATTERN.match(name.strip()):
            msg = f"Invalid alias name '{name}' (2-8 letters or digits, starting with a letter)"
            raise ValueError(msg)
        value = decode_escapes(_unquote(expansion))
        if not value.strip():
            msg = f"Alias '{name}' needs a non-empty expansion"
            raise ValueError(msg)
        return cls(name=name.strip().upper(), expansion=value.strip())

    @classmethod
    def parse(cls, definition: str) -> "Alias":
        """Parse ``name="expansion"`` (or ``name: expansion``).

        Raises:
            ValueError: If *definition* is not in that form.

        """
        match = _DEFINITION_PATTERN.match(definition)
        if match is None:
            msg = f"Cannot parse alias definition '{definition}'"
            raise ValueError(msg)
        return cls.create(match.group(1), match.group(2))

    @property
    def target(self) -> str:
        """Return the first word of the expansion, upper-cased."""
        return self.expansion.split(maxsplit=1)[0].upper()

    def apply(self, payload: str) -> str:
        """Return the expansion followed by *payload* (if any)."""
        return f"{self.expansion} {payload}".strip() if payload else self.expansion

    def __str__(self) -> str:
        """Format as ``NAME="expansion"``."""
        return f'{self.name}="{self.expansion}"'


class AliasTable:
    """A bounded, case-insensitive alias registry."""

    def __init__(self, limit: int = DEFAULT_ALIAS_LIMIT) -> None:
        """Create an empty table holding at most *limit* aliases (max 255)."""
        if not 1 <= limit <= MAX_ALIAS_LIMIT:
            msg = f"Alias limit must be between 1 and {MAX_ALIAS_LIMIT}, got {limit}"
            raise ValueError(msg)
        self._limit = limit
        self._aliases: dict[str, Alias] = {}
        self._lock = threading.RLock()

    @property
    def limit(self) -> int:
        """Return the maximum number of aliases."""
        return self._limit

    def add(self, name: str, expansion: str) -> Alias:
        """Define (or redefine) an alias.

        Raises:
            ValueError: If the alias is malformed, refers to itself,
                or the table is full.

        """
        return self.add_alias(Alias.create(name, expansion))

    def add_alias(self, alias: Alias) -> Alias:
        """Store an already-built alias, replacing any of the same name."""
        if alias.target == alias.name:
            msg = f"Alias '{alias.name}' cannot expand to itself"
            raise ValueError(msg)
        with self._lock:
            if alias.name not in self._aliases and len(self._aliases) >= self._limit:
                msg = f"Alias table is full ({self._limit} aliases)"
                raise ValueError(msg)
            self._aliases[alias.name] = alias
        return alias

    def remove(self, name: str) -> bool:
        """Delete an alias.

        Returns:
            True if the alias existed.

        """
        with self._lock:
            return self._aliases.pop(name.upper(), None) is not None

    def get(self, name: str) -> Alias | None:
        """Return the alias called *name*, or None."""
        with self._lock:
            return self._aliases.get(name.upper())

    def resolve(self, verb: str, payload: str = "", chain: tuple[str, ...] = ()) -> str | None:
        """Expand *verb* if it is an alias.

        Args:
            verb: The first word of a command.
            payload: The rest of the command, appended to the expansion.
            chain: Aliases already expanded to produce this command.

        Returns:
            The expanded command text, or None if *verb* is not an alias.

        Raises:
            AliasLoopError: If *verb* was already expanded in *chain*, or
                the chain is deeper than ``MAX_ALIAS_DEPTH``.

        """
        alias = self.get(verb)
        if alias is None:
            return None
        if alias.name in chain or len(chain) >= MAX_ALIAS_DEPTH:
            path = " -> ".join((*chain, alias.name))
            msg = f"Alias loop detected: {path}"
            raise AliasLoopError(msg)
        return alias.apply(payload)

    def clear(self) -> None:
        """Remove every alias."""
        with self._lock:
            self._aliases.clear()

    def list_aliases(self) -> list[Alias]:
        """Return every alias sorted by name."""
        with self._lock:
            return sorted(self._aliases.values(), key=lambda a: a.name)

    def __len__(self) -> int:
        """Return the number of aliases."""
        return len(self._aliases)

    def __contains__(self, name: object) -> bool:
        """Return True if *name* is a defined alias."""
        return isinstance(name, str) and self.get(name) is not None
