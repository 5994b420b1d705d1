"""Commands and the command queue — what the shell has been asked to do.

A **Command** is one line of input: the raw text, who typed it, and a
few flags the dispatcher needs.  The first word is the *verb* (which
handler to run); the rest is the *payload*.  A command starts out
unprocessed and becomes processed exactly once; it never goes back.

The **CommandQueue** does double duty:

1. **Work queue** — the dispatcher takes the oldest unprocessed
   command with ``next_waiting()``.  Commands run strictly in the
   order they were enqueued.
2. **History** — processed commands stay in the queue so the input
   reader can walk back through them with ``previous()`` and
   ``next()`` (the Up/Down arrow keys).

The queue is bounded.  When it grows past ``cache_limit`` the oldest
entries fall off the front, the way a shell history file is trimmed.

Design choices:
    - **One re-entrant lock per queue.**  The input thread and the
      dispatch thread both touch the queue; every public method takes
      the lock, so no caller has to remember to.
    - **A condition variable for wake-ups.**  The dispatcher sleeps on
      ``wait_for_work()`` instead of polling, and ``enqueue`` wakes it
      immediately.
    - **Non-cacheable commands vanish when taken.**  Script lines and
      alias expansions are not worth keeping in history, so
      ``next_waiting()`` removes them instead of marking them.
"""

import shlex
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from itertools import count

from py_shell.errors import ParseError
from py_shell.users import Actor

DEFAULT_CACHE_LIMIT = 25
MIN_CACHE_LIMIT = 5

_SWITCH_PREFIX = "/"

_command_ids = count(start=1)


class QueueClosedError(Exception):
    """Raised when enqueuing onto a queue that has been shut down."""


@dataclass(frozen=True)
class CommandLine:
    """The tokenised form of a command's text.

    Tokens beginning with ``/`` are switches (``/ALL``, ``/SET:ON``,
    ``/limit=5``); everything else after the verb is a positional
    argument.  Switch names are upper-cased so lookups are
    case-insensitive.
    """

    verb: str
    arguments: tuple[str, ...] = ()
    switches: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, text: str) -> "CommandLine":
        """Tokenise *text* into verb, arguments and switches.

        Quoted segments are kept together and lose their quotes.

        Raises:
            ParseError: If the text has unbalanced quotes or is empty.

        """
        try:
            tokens = shlex.split(text, posix=True)
        except ValueError as e:
            msg = f"Cannot parse '{text}': {e}"
            raise ParseError(msg) from e
        if not tokens:
            msg = "Empty command"
            raise ParseError(msg)

        arguments: list[str] = []
        switches: dict[str, str] = {}
        for token in tokens[1:]:
            if token.startswith(_SWITCH_PREFIX) and len(token) > 1:
                name, value = _split_switch(token[1:])
                switches[name.upper()] = value
            else:
                arguments.append(token)
        return cls(verb=tokens[0], arguments=tuple(arguments), switches=switches)

    def has_switch(self, name: str) -> bool:
        """Return True if the switch *name* was given."""
        return name.upper() in self.switches

    def switch(self, name: str, default: str | None = None) -> str | None:
        """Return the value of switch *name*, or *default* if absent."""
        return self.switches.get(name.upper(), default)


def _split_switch(body: str) -> tuple[str, str]:
    for separator in (":", "="):
        if separator in body:
            name, value = body.split(separator, 1)
            return name, value
    return body, ""


class Command:
    """One instruction accepted by the shell.

    Equality is case-insensitive on the text, so ``help`` and ``HELP``
    compare equal (useful when de-duplicating history listings).
    """

    def __init__(
        self,
        text: str,
        actor: Actor,
        *,
        allow_cache: bool = True,
        alias_chain: tuple[str, ...] = (),
    ) -> None:
        """Create a command from a line of text.

        Args:
            text: The raw command text; leading whitespace is dropped.
            actor: Who issued the command.
            allow_cache: Keep the command in history once processed.
            alias_chain: Alias names already expanded to produce *text*.

        Raises:
            ValueError: If *text* is empty or only whitespace.

        """
        stripped = text.lstrip()
        if not stripped.strip():
            msg = "Command text must not be empty"
            raise ValueError(msg)
        self._text = stripped
        self._actor = actor
        self._allow_cache = allow_cache
        self._alias_chain = tuple(name.upper() for name in alias_chain)
        self._processed = False
        self._uid = next(_command_ids)
        self._created_at = time.monotonic()
        self._created_wall = time.time()

        parts = stripped.split(maxsplit=1)
        self._verb = parts[0]
        self._payload = parts[1] if len(parts) > 1 else ""

    @property
    def text(self) -> str:
        """Return the command text."""
        return self._text

    @property
    def verb(self) -> str:
        """Return the first word of the text, as typed."""
        return self._verb

    @property
    def key(self) -> str:
        """Return the verb upper-cased, for case-insensitive lookups."""
        return self._verb.upper()

    @property
    def payload(self) -> str:
        """Return everything after the verb."""
        return self._payload

    @property
    def actor(self) -> Actor:
        """Return the actor who issued the command."""
        return self._actor

    @property
    def allow_cache(self) -> bool:
        """Return whether the command stays in history after processing."""
        return self._allow_cache

    @property
    def alias_chain(self) -> tuple[str, ...]:
        """Return the aliases expanded (in order) to produce this command."""
        return self._alias_chain

    @property
    def uid(self) -> int:
        """Return the command's unique, increasing id."""
        return self._uid

    @property
    def created(self) -> float:
        """Return the wall-clock creation time (seconds since the epoch)."""
        return self._created_wall

    @property
    def age(self) -> float:
        """Return seconds elapsed since the command was created."""
        return time.monotonic() - self._created_at

    @property
    def processed(self) -> bool:
        """Return True once the dispatcher has taken this command."""
        return self._processed

    def mark_processed(self) -> None:
        """Flag the command as processed (one-way)."""
        self._processed = True

    def parse(self) -> CommandLine:
        """Return the tokenised form of the text.

        Raises:
            ParseError: If the text cannot be tokenised.

        """
        return CommandLine.parse(self._text)

    def derive(self, text: str) -> "Command":
        """Return a new, unqueued command with the same actor and chain."""
        return Command(text, self._actor, allow_cache=False, alias_chain=self._alias_chain)

    def __eq__(self, other: object) -> bool:
        """Compare command text case-insensitively."""
        if not isinstance(other, Command):
            return NotImplemented
        return self._text.lower() == other._text.lower()

    def __hash__(self) -> int:
        """Hash consistently with case-insensitive equality."""
        return hash(self._text.lower())

    def __str__(self) -> str:
        """Return the command text."""
        return self._text

    def __repr__(self) -> str:
        """Return a readable representation."""
        return f"Command(uid={self._uid}, text={self._text!r}, processed={self._processed})"


class CommandQueue:
    """Bounded FIFO of commands that doubles as input history."""

    def __init__(self, cache_limit: int = DEFAULT_CACHE_LIMIT) -> None:
        """Create an empty queue.

        Args:
            cache_limit: Maximum number of commands kept (floored at 5).

        """
        self._items: list[Command] = []
        self._pointer = 0
        self._cache_limit = max(cache_limit, MIN_CACHE_LIMIT)
        self._closed = False
        self._lock = threading.RLock()
        self._work = threading.Condition(self._lock)

    # -- Properties ---------------------------------------------------------

    @property
    def cache_limit(self) -> int:
        """Return the maximum number of retained commands."""
        return self._cache_limit

    @cache_limit.setter
    def cache_limit(self, value: int) -> None:
        """Change the limit (floored at 5) and prune immediately."""
        with self._lock:
            self._cache_limit = max(value, MIN_CACHE_LIMIT)
            self._prune()

    @property
    def count(self) -> int:
        """Return the number of commands held."""
        with self._lock:
            return len(self._items)

    @property
    def pointer(self) -> int:
        """Return the history navigation pointer (0..count)."""
        with self._lock:
            return self._pointer

    @property
    def active(self) -> bool:
        """Return True if at least one command is still unprocessed."""
        with self._lock:
            return any(not cmd.processed for cmd in self._items)

    @property
    def read_cursor(self) -> int:
        """Return the index of the next command the dispatcher will take."""
        with self._lock:
            for i, cmd in enumerate(self._items):
                if not cmd.processed:
                    return i
            return len(self._items)

    @property
    def closed(self) -> bool:
        """Return True once the queue refuses new work."""
        return self._closed

    # -- Work queue ---------------------------------------------------------

    def enqueue(self, cmd: Command) -> Command:
        """Append *cmd*, move the history pointer to the end, and prune.

        Returns:
            The command, for chaining.

        Raises:
            QueueClosedError: If the queue has been closed.

        """
        with self._work:
            if self._closed:
                msg = f"Queue is closed; '{cmd.text}' was not accepted"
                raise QueueClosedError(msg)
            self._items.append(cmd)
            self._pointer = len(self._items)
            self._prune()
            self._work.notify_all()
        return cmd

    def next_waiting(self) -> Command | None:
        """Take the oldest unprocessed command.

        Cacheable commands are marked processed and stay as history;
        non-cacheable ones are removed.

        Returns:
            The command, or None if nothing is waiting.

        """
        with self._lock:
            for i, cmd in enumerate(self._items):
                if cmd.processed:
                    continue
                if cmd.allow_cache:
                    cmd.mark_processed()
                else:
                    del self._items[i]
                    self._pointer = min(self._pointer, len(self._items))
                return cmd
            return None

    def wait_for_work(self, timeout: float | None = None) -> bool:
        """Block until a command is waiting, the queue closes, or *timeout*.

        Returns:
            True if an unprocessed command is available.

        """
        with self._work:
            if not self.active and not self._closed:
                self._work.wait(timeout)
            return self.active

    def wake(self) -> None:
        """Wake any thread blocked in ``wait_for_work``."""
        with self._work:
            self._work.notify_all()

    def close(self) -> None:
        """Refuse further enqueues and wake waiters."""
        with self._work:
            self._closed = True
            self._work.notify_all()

    def discard_waiting(self) -> int:
        """Remove every unprocessed command without running it.

        Returns:
            The number of commands discarded.

        """
        with self._lock:
            before = len(self._items)
            self._items = [cmd for cmd in self._items if cmd.processed]
            self._pointer = min(self._pointer, len(self._items))
            return before - len(self._items)

    # -- History ------------------------------------------------------------

    def previous(self) -> str:
        """Step the history pointer back one entry.

        Returns:
            The command text at the new position, or ``""`` at the start.

        """
        with self._lock:
            if self._pointer > 0:
                self._pointer -= 1
                return self._items[self._pointer].text
            return ""

    def next(self) -> str:
        """Step the history pointer forward one entry.

        Returns:
            The command text at the new position, or ``""`` at the end.

        """
        with self._lock:
            if self._pointer < len(self._items) - 1:
                self._pointer += 1
                return self._items[self._pointer].text
            self._pointer = len(self._items)
            return ""

    def history(self) -> list[str]:
        """Return the text of every held command, oldest first."""
        with self._lock:
            return [cmd.text for cmd in self._items]

    def purge(self) -> int:
        """Remove all processed commands.

        Returns:
            The number of commands removed.

        """
        with self._lock:
            before = len(self._items)
            self._items = [cmd for cmd in self._items if not cmd.processed]
            self._pointer = min(self._pointer, len(self._items))
            return before - len(self._items)

    def clear(self) -> None:
        """Remove every command and reset the pointer."""
        with self._lock:
            self._items.clear()
            self._pointer = 0

    # -- Container protocol -------------------------------------------------

    def __len__(self) -> int:
        """Return the number of commands held."""
        return self.count

    def __getitem__(self, index: int) -> Command:
        """Return the command at *index*.

        Raises:
            IndexError: If *index* is out of range.

        """
        with self._lock:
            if not 0 <= index < len(self._items):
                msg = f"Command index {index} out of range (0..{len(self._items) - 1})"
                raise IndexError(msg)
            return self._items[index]

    def __iter__(self) -> Iterator[Command]:
        """Iterate over a snapshot of the held commands."""
        with self._lock:
            return iter(list(self._items))

    def _prune(self) -> None:
        """Drop the oldest entries until within the cache limit."""
        while len(self._items) > self._cache_limit:
            del self._items[0]
            self._pointer -= 1
        self._pointer = max(0, min(self._pointer, len(self._items)))
