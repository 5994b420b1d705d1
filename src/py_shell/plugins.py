"""Plugins — rank-gated command handlers and the registry that holds them.

A **plugin** (sometimes called an *applet*) is a named command with a
verb of four or more characters, such as ``HELP`` or ``ADMINTOOL``.
Each plugin class declares a ``PluginDescriptor`` (its name, the rank
it requires, its version and the switches it understands) and
implements ``main()``.

Each time a plugin command is dispatched, the registry's factory
builds a **fresh instance**.  That instance walks through a small state
machine::

    IDLE ──execute──▶ RUNNING ──▶ COMPLETE
                         │      ├─▶ COMPLETE_WITH_ERRORS
                         │      ├─▶ INCOMPLETE(_WITH_ERRORS)
                         │      └─▶ CANCELLED

and records its own errors and output, so the dispatcher can report
on it afterwards and publish its result to the shared pool.

The **PluginRegistry** is built once at startup from an explicit list
of ``(descriptor, factory)`` pairs.  Nothing is discovered by scanning
modules at runtime; if a plugin is not registered, it does not exist.

Design choices:
    - **StrEnum for states** so they print readably in logs and JSON.
    - **Frozen descriptors** — a command's contract cannot change
      after registration.
    - **One rank comparison** (``rank_allows``) used both to hide
      commands from completion and to refuse them at dispatch.
"""

from __future__ import annotations

import re
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar, TypeAlias

from py_shell.cancellation import CancellationToken
from py_shell.errors import AuthorizationError, CommandCancelled, FatalAbort
from py_shell.pool import DEFAULT_MAX_AGE
from py_shell.ranks import RankLevel, rank_allows

if TYPE_CHECKING:
    from py_shell.commands import Command, CommandLine
    from py_shell.dispatcher import Dispatcher

MIN_PLUGIN_NAME_LENGTH = 4

_NAME_PATTERN = re.compile(r"^[A-Z][A-Z0-9_-]*[A-Z0-9]$")
_HELP_SWITCHES = frozenset({"?", "HELP"})


class DescriptorError(ValueError):
    """Raised when a plugin descriptor is malformed."""


class OperationalState(StrEnum):
    """Lifecycle states of a plugin instance."""

    NONE = "none"
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    COMPLETE_WITH_ERRORS = "complete_with_errors"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_WITH_ERRORS = "incomplete_with_errors"

    @property
    def finished(self) -> bool:
        """Return True for the two successful end states."""
        return self in (OperationalState.COMPLETE, OperationalState.COMPLETE_WITH_ERRORS)

    @property
    def with_errors(self) -> bool:
        """Return True for states that report errors."""
        return self in (
            OperationalState.COMPLETE_WITH_ERRORS,
            OperationalState.INCOMPLETE_WITH_ERRORS,
        )


def validate_command_name(name: str) -> str:
    """Normalise and validate a plugin command name.

    The name is upper-cased and stripped of anything outside
    ``[A-Z0-9_-]``; what remains must start with a letter, end with a
    letter or digit and be at least four characters long.

    Returns:
        The cleaned name.

    Raises:
        DescriptorError: If the name is not acceptable.

    """
    cleaned = re.sub(r"[^A-Z0-9_-]", "", name.upper())
    if len(cleaned) < MIN_PLUGIN_NAME_LENGTH or not _NAME_PATTERN.match(cleaned):
        msg = f"Invalid plugin command name '{name}'"
        raise DescriptorError(msg)
    return cleaned


@dataclass(frozen=True)
class SwitchSpec:
    """One switch a plugin accepts, e.g. ``/ALL``."""

    name: str
    help: str = ""
    takes_value: bool = False

    def __str__(self) -> str:
        """Format as ``/NAME[:value]  help``."""
        suffix = ":value" if self.takes_value else ""
        return f"/{self.name}{suffix}  {self.help}".rstrip()


@dataclass(frozen=True)
class PluginDescriptor:
    """The immutable contract of a plugin command.

    Attributes:
        name: The verb (validated and upper-cased on creation).
        required_rank: Minimum actor rank allowed to run it.
        version: Free-form version string.
        description: One-line summary shown in listings.
        usage: Argument synopsis shown in help.
        help: Longer help text.
        switches: The switches the command understands.

    """

    name: str
    required_rank: RankLevel = RankLevel.BASIC_USER
    version: str = "1.0.0"
    description: str = ""
    usage: str = ""
    help: str = ""
    switches: tuple[SwitchSpec, ...] = ()

    def __post_init__(self) -> None:
        """Normalise the name and switch names."""
        object.__setattr__(self, "name", validate_command_name(self.name))
        specs = tuple(
            SwitchSpec(s.name.upper().lstrip("/"), s.help, s.takes_value) for s in self.switches
        )
        object.__setattr__(self, "switches", specs)

    @property
    def switch_names(self) -> frozenset[str]:
        """Return the accepted switch names (upper-case)."""
        return frozenset(s.name for s in self.switches)

    def help_text(self) -> str:
        """Return the full help block for ``NAME /?``."""
        lines = [f"{self.name} v{self.version}  {self.description}".rstrip()]
        lines.append(f"Usage: {self.name} {self.usage}".rstrip())
        lines.append(f"Requires rank: {self.required_rank.label}")
        if self.switches:
            lines.append("Switches:")
            lines.extend(f"  {spec}" for spec in self.switches)
        if self.help:
            lines.append("")
            lines.append(self.help)
        return "\n".join(lines)

    def summary(self) -> str:
        """Return a one-line listing entry."""
        return f"{self.name:<12} {self.description}".rstrip()


class Plugin:
    """Base class for every plugin command.

    Subclasses set ``DESCRIPTOR`` and override ``main``.  ``main``
    receives the parsed command line, writes output with ``write``,
    records problems with ``add_error``, and may set ``result`` to
    publish data to the shared pool.  Long-running plugins should call
    ``checkpoint()`` regularly so they can be interrupted.
    """

    DESCRIPTOR: ClassVar[PluginDescriptor]

    def __init__(self) -> None:
        """Create an idle instance with a fresh unique id."""
        self._uid = uuid.uuid4().hex
        self._state = OperationalState.IDLE
        self._errors: list[str] = []
        self._output: list[str] = []
        self._token = CancellationToken()
        self._host: Dispatcher | None = None
        self._actor_rank = RankLevel.NONE
        self.result: Any = None
        self.life_limit: float = DEFAULT_MAX_AGE
        self.read_limit: int = 0

    # -- Identity and state -------------------------------------------------

    def descriptor(self) -> PluginDescriptor:
        """Return this plugin's descriptor."""
        return type(self).DESCRIPTOR

    @property
    def uid(self) -> str:
        """Return the instance's unique id."""
        return self._uid

    @property
    def state(self) -> OperationalState:
        """Return the current operational state."""
        return self._state

    @property
    def errors(self) -> list[str]:
        """Return a copy of the recorded errors."""
        return list(self._errors)

    @property
    def output(self) -> list[str]:
        """Return a copy of the lines written so far."""
        return list(self._output)

    @property
    def actor_rank(self) -> RankLevel:
        """Return the rank of the actor running the current invocation."""
        return self._actor_rank

    @property
    def token(self) -> CancellationToken:
        """Return the cancellation token for the current invocation."""
        return self._token

    @property
    def has_host(self) -> bool:
        """Return True when running under a dispatcher."""
        return self._host is not None

    @property
    def host(self) -> Dispatcher:
        """Return the dispatcher running this instance.

        Raises:
            RuntimeError: If the plugin is executed without a host.

        """
        if self._host is None:
            msg = f"{self.descriptor().name} needs a host dispatcher"
            raise RuntimeError(msg)
        return self._host

    def write(self, text: str = "") -> None:
        """Append a line (or lines) of output."""
        self._output.extend(text.splitlines() or [""])

    def add_error(self, message: str) -> None:
        """Record an error against this instance."""
        self._errors.append(message)

    def checkpoint(self) -> None:
        """Stop here if the invocation has been cancelled.

        Raises:
            CommandCancelled: On interrupt.
            FatalAbort: On shell shutdown.

        """
        self._token.raise_if_cancelled()

    # -- Execution ----------------------------------------------------------

    def execute(
        self,
        cmd: Command,
        actor_rank: RankLevel,
        *,
        token: CancellationToken | None = None,
        host: Dispatcher | None = None,
    ) -> OperationalState:
        """Run the command.

        Args:
            cmd: The command to run (its verb names this plugin).
            actor_rank: Rank of the issuing actor.
            token: Cancellation token for this invocation.
            host: The dispatcher, for plugins that use shell services.

        Returns:
            The final operational state.

        Raises:
            AuthorizationError: If *actor_rank* is below the requirement;
                the instance stays ``IDLE`` with the error recorded.
            FatalAbort: If the invocation was aborted.
            ParseError: If the command text cannot be tokenised.

        """
        descriptor = self.descriptor()
        if not rank_allows(descriptor.required_rank, actor_rank):
            msg = (
                f"{descriptor.name} requires rank {descriptor.required_rank.label}; "
                f"{actor_rank.label} is insufficient"
            )
            self.add_error(msg)
            raise AuthorizationError(msg)

        self._actor_rank = actor_rank
        self._token = token if token is not None else CancellationToken()
        self._host = host
        line = cmd.parse()
        self._state = OperationalState.RUNNING

        if line.switches.keys() & _HELP_SWITCHES:
            self.write(descriptor.help_text())
            self._state = OperationalState.COMPLETE
            return self._state

        unknown = sorted(line.switches.keys() - descriptor.switch_names)
        if unknown:
            for name in unknown:
                self.add_error(f"Unrecognized switch /{name} for {descriptor.name}")
            self._state = OperationalState.COMPLETE_WITH_ERRORS
            return self._state

        try:
            state = self.main(line)
        except CommandCancelled as e:
            self.add_error(f"Cancelled: {e}")
            self._state = OperationalState.CANCELLED
            return self._state
        except FatalAbort:
            self._state = OperationalState.CANCELLED
            raise
        except Exception:
            self._state = OperationalState.INCOMPLETE_WITH_ERRORS
            raise

        self._state = self._settle(state)
        return self._state

    def main(self, line: CommandLine) -> OperationalState:
        """Do the plugin's work.  Override in subclasses.

        Returns:
            The resulting state; ``RUNNING`` is taken to mean complete.

        """
        raise NotImplementedError

    def _settle(self, state: OperationalState) -> OperationalState:
        if state in (OperationalState.RUNNING, OperationalState.NONE, OperationalState.IDLE):
            state = OperationalState.COMPLETE
        if self._errors and state is OperationalState.COMPLETE:
            return OperationalState.COMPLETE_WITH_ERRORS
        if self._errors and state is OperationalState.INCOMPLETE:
            return OperationalState.INCOMPLETE_WITH_ERRORS
        return state


PluginFactory: TypeAlias = "Callable[[], Plugin]"


@dataclass(frozen=True)
class Registration:
    """A registry entry: the descriptor plus how to build an instance."""

    descriptor: PluginDescriptor
    factory: PluginFactory = field(compare=False)


class PluginRegistry:
    """Startup table of plugin commands, keyed by upper-case name."""

    def __init__(self, plugins: list[type[Plugin]] | None = None) -> None:
        """Create a registry, optionally registering plugin classes."""
        self._entries: dict[str, Registration] = {}
        self._lock = threading.RLock()
        for plugin_cls in plugins or []:
            self.register_plugin(plugin_cls)

    def register(self, descriptor: PluginDescriptor, factory: PluginFactory) -> Registration:
        """Add a command.

        Raises:
            ValueError: If a command of that name is already registered.

        """
        with self._lock:
            if descriptor.name in self._entries:
                msg = f"Plugin command '{descriptor.name}' is already registered"
                raise ValueError(msg)
            entry = Registration(descriptor=descriptor, factory=factory)
            self._entries[descriptor.name] = entry
        return entry

    def register_plugin(self, plugin_cls: type[Plugin]) -> Registration:
        """Register a Plugin subclass using its ``DESCRIPTOR``."""
        return self.register(plugin_cls.DESCRIPTOR, plugin_cls)

    def unregister(self, name: str) -> bool:
        """Remove a command.

        Returns:
            True if it was registered.

        """
        with self._lock:
            return self._entries.pop(name.upper(), None) is not None

    def lookup(self, name: str) -> Registration | None:
        """Return the entry for *name* (exact, case-insensitive), or None."""
        with self._lock:
            return self._entries.get(name.strip().upper())

    def create(self, name: str) -> Plugin:
        """Build a fresh instance of the named command.

        Raises:
            KeyError: If *name* is not registered.

        """
        entry = self.lookup(name)
        if entry is None:
            raise KeyError(name)
        return entry.factory()

    @staticmethod
    def authorize(descriptor: PluginDescriptor, rank: RankLevel) -> bool:
        """Return True if *rank* may run the described command."""
        return rank_allows(descriptor.required_rank, rank)

    def visible_to(self, rank: RankLevel) -> list[PluginDescriptor]:
        """Return descriptors the given rank may run, sorted by name."""
        with self._lock:
            entries = list(self._entries.values())
        return sorted(
            (e.descriptor for e in entries if self.authorize(e.descriptor, rank)),
            key=lambda d: d.name,
        )

    def find(self, prefix: str, rank: RankLevel) -> list[str]:
        """Return visible command names starting with *prefix*."""
        key = prefix.upper()
        return [d.name for d in self.visible_to(rank) if d.name.startswith(key)]

    def snapshot(self) -> tuple[PluginDescriptor, ...]:
        """Return every descriptor, sorted by name."""
        with self._lock:
            return tuple(sorted((e.descriptor for e in self._entries.values()), key=lambda d: d.name))

    @property
    def names(self) -> list[str]:
        """Return every registered command name, sorted."""
        with self._lock:
            return sorted(self._entries)

    def __len__(self) -> int:
        """Return the number of registered commands."""
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        """Return True if *name* is registered."""
        return isinstance(name, str) and self.lookup(name) is not None
