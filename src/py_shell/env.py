"""Environment variables — shell configuration via name/value pairs.

The shell keeps a table of ``NAME=value`` strings that commands can
read, set and expand.  Some names have special meaning to the
dispatcher itself:

- ``ECHO`` — ``on`` echoes each command before it runs.
- ``PROMPT`` — the prompt template.
- ``ERRORLEVEL`` — ``1`` after a failed command, empty after success.
- ``EXCEPTIONS`` — ``ALLOW`` lets plugin exceptions propagate.

Key design properties:
    - **Case-insensitive names** — stored upper-case, so ``%path%`` and
      ``%PATH%`` are the same variable.
    - **Owned variables** — every variable records who set it.  Public
      variables can be changed by anyone; a read-only variable can only
      be changed by its owner or by the system.
    - **Empty means gone** — setting a variable to ``""`` deletes it,
      exactly like ``SET NAME=`` in a classic command interpreter.

Two placeholder forms are expanded: ``%NAME%`` (left untouched when the
variable is unknown) and ``$env[NAME]`` (replaced with an empty string
when unknown).
"""

import os
import re
import threading
from dataclasses import dataclass

PUBLIC_OWNER = "Public"
SYSTEM_OWNER = "System"

MAX_NAME_LENGTH = 16
MAX_VALUE_LENGTH = 240

_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*[A-Za-z0-9]$")
_PERCENT_PLACEHOLDER = re.compile(r"%([A-Za-z][A-Za-z0-9_]*[A-Za-z0-9])%")
_ENV_PLACEHOLDER = re.compile(r"\$env\[([^\]]*)\]", re.IGNORECASE)


class VariableAccessError(Exception):
    """Raised when a caller may not change a read-only variable."""


def _clean_value(value: str) -> str:
    cleaned = value.strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "\"'":  # noqa: PLR2004
        cleaned = cleaned[1:-1]
    return cleaned.replace("%", "")[:MAX_VALUE_LENGTH]


def validate_name(name: str) -> str:
    """Return *name* upper-cased if it is a legal variable name.

    Raises:
        ValueError: If the name is malformed or longer than 16 chars.

    """
    cleaned = name.strip()
    if len(cleaned) > MAX_NAME_LENGTH or not _NAME_PATTERN.match(cleaned):
        msg = f"Invalid variable name '{name}'"
        raise ValueError(msg)
    return cleaned.upper()


@dataclass(frozen=True)
class EnvironmentVariable:
    """One named value in the environment table.

    ``read_only`` is only honoured for variables with a non-public
    owner; a public variable is writable by definition.
    """

    name: str
    value: str
    owner: str = PUBLIC_OWNER
    read_only: bool = False

    @property
    def public(self) -> bool:
        """Return True if anyone may change this variable."""
        return self.owner == PUBLIC_OWNER

    def writable_by(self, owner: str) -> bool:
        """Return True if *owner* may overwrite or delete this variable."""
        if not self.read_only or self.public:
            return True
        return owner in (self.owner, SYSTEM_OWNER)

    def __str__(self) -> str:
        """Format as ``NAME=value``."""
        return f"{self.name}={self.value}"


class EnvironmentTable:
    """A thread-safe table of environment variables."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        """Create a table, optionally pre-populated with public variables.

        Args:
            initial: Starting variables (copied, not referenced).

        """
        self._vars: dict[str, EnvironmentVariable] = {}
        self._lock = threading.RLock()
        for name, value in (initial or {}).items():
            self.set(name, value)

    def get(self, name: str, default: str = "") -> str:
        """Return the value of *name*, or *default* if not set."""
        with self._lock:
            var = self._vars.get(name.strip().upper())
        return var.value if var is not None else default

    def variable(self, name: str) -> EnvironmentVariable | None:
        """Return the full record for *name*, or None."""
        with self._lock:
            return self._vars.get(name.strip().upper())

    def set(
        self,
        name: str,
        value: str,
        *,
        owner: str = PUBLIC_OWNER,
        read_only: bool = False,
        raw: bool = False,
    ) -> EnvironmentVariable | None:
        """Create, overwrite or (with an empty value) delete a variable.

        Args:
            name: Variable name (case-insensitive).
            value: New value; quotes are stripped and ``%`` removed.
            owner: Identity performing the write.
            read_only: Protect the variable from other owners.
            raw: Store *value* as given (only truncated), for templates.

        Returns:
            The stored variable, or None if it was deleted.

        Raises:
            ValueError: If *name* is malformed.
            VariableAccessError: If the variable is read-only and
                *owner* is neither its owner nor the system.

        """
        key = validate_name(name)
        cleaned = value[:MAX_VALUE_LENGTH] if raw else _clean_value(value)
        with self._lock:
            existing = self._vars.get(key)
            if existing is not None and not existing.writable_by(owner):
                msg = f"Variable '{key}' is read-only (owned by {existing.owner})"
                raise VariableAccessError(msg)
            if not cleaned:
                self._vars.pop(key, None)
                return None
            new_owner = owner
            # The system may update a protected variable without taking it over.
            if existing is not None and owner == SYSTEM_OWNER and not existing.public:
                new_owner = existing.owner
            var = EnvironmentVariable(
                name=key,
                value=cleaned,
                owner=new_owner,
                read_only=read_only and new_owner != PUBLIC_OWNER,
            )
            self._vars[key] = var
        return var

    def delete(self, name: str, *, owner: str = PUBLIC_OWNER) -> None:
        """Remove *name* from the table.

        Raises:
            KeyError: If *name* does not exist.
            VariableAccessError: If *owner* may not change it.

        """
        key = name.strip().upper()
        with self._lock:
            existing = self._vars[key]
            if not existing.writable_by(owner):
                msg = f"Variable '{key}' is read-only (owned by {existing.owner})"
                raise VariableAccessError(msg)
            del self._vars[key]

    def expand(self, text: str) -> str:
        """Substitute ``%NAME%`` and ``$env[NAME]`` placeholders in *text*."""

        def percent(match: re.Match[str]) -> str:
            var = self.variable(match.group(1))
            return var.value if var is not None else match.group(0)

        def bracket(match: re.Match[str]) -> str:
            return self.get(match.group(1))

        return _PERCENT_PLACEHOLDER.sub(percent, _ENV_PLACEHOLDER.sub(bracket, text))

    def import_os_environ(self, environ: dict[str, str] | None = None) -> int:
        """Copy process environment variables in as read-only system values.

        Names that are not legal shell variable names are skipped.

        Returns:
            The number of variables imported.

        """
        source = dict(os.environ) if environ is None else environ
        imported = 0
        for name, value in source.items():
            try:
                self.set(name, value, owner=SYSTEM_OWNER, read_only=True)
            except (ValueError, VariableAccessError):
                continue
            imported += 1
        return imported

    def items(self) -> list[tuple[str, str]]:
        """Return all (name, value) pairs sorted by name."""
        with self._lock:
            return sorted((v.name, v.value) for v in self._vars.values())

    def variables(self) -> list[EnvironmentVariable]:
        """Return all variable records sorted by name."""
        with self._lock:
            return sorted(self._vars.values(), key=lambda v: v.name)

    def __len__(self) -> int:
        """Return the number of variables."""
        return len(self._vars)

    def __contains__(self, name: object) -> bool:
        """Return True if *name* is set."""
        return isinstance(name, str) and self.variable(name) is not None
