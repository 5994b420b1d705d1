"""Dispatch logging and audit trail.

The logger records structured entries for everything the dispatcher
does: which commands ran, who ran them, which were refused and why.
It is kept in memory and bounded; the ``LOGS`` plugin prints it.

- **LogLevel**: DEBUG, INFO, WARNING, ERROR in increasing severity.
- **LogEntry**: a single structured record (level, message, source, actor).
- **Logger**: a bounded, thread-safe log with filtering and clearing.

Design choices:
    - **IntEnum for levels**, so ``min_level`` filtering is a plain ``>=``.
    - **Frozen dataclass for entries**, so a record cannot change once written.
    - **Bounded deque** — an interactive shell can run for days; the
      oldest entries fall off once ``capacity`` is reached.
    - **A lock** — the input and dispatch threads both log.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import IntEnum

DEFAULT_LOG_CAPACITY = 1000


class LogLevel(IntEnum):
    """Severity levels for log entries."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single structured log record.

    Attributes:
        level: The severity of this event.
        message: A human-readable description of what happened.
        source: The component that generated the event (e.g. "dispatcher").
        actor: Name of the actor that triggered the event.
        timestamp: Wall-clock time the entry was created.

    """

    level: LogLevel
    message: str
    source: str
    actor: str = "system"
    timestamp: float = field(default_factory=time.time)

    def __str__(self) -> str:
        """Format as ``[LEVEL] source: message``."""
        return f"[{self.level.name}] {self.source}: {self.message}"


class Logger:
    """Bounded log buffer with filtering."""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        """Create an empty logger keeping at most *capacity* entries."""
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def entries(self) -> list[LogEntry]:
        """Return a snapshot of every entry, oldest first."""
        with self._lock:
            return list(self._entries)

    def log(
        self,
        level: LogLevel,
        message: str,
        *,
        source: str,
        actor: str = "system",
    ) -> LogEntry:
        """Record one event.

        Args:
            level: How serious the event is.
            message: What happened, in words.
            source: Component that generated the event.
            actor: Actor associated with the event.

        Returns:
            The stored entry.

        """
        entry = LogEntry(level=level, message=message, source=source, actor=actor)
        with self._lock:
            self._entries.append(entry)
        return entry

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
    ) -> list[LogEntry]:
        """Select entries by minimum level and/or source.

        Args:
            min_level: Drop entries below this level.
            source: Keep only entries from this component.

        Returns:
            Matching entries, oldest first.

        """
        result = self.entries
        if min_level is not None:
            result = [e for e in result if e.level >= min_level]
        if source is not None:
            result = [e for e in result if e.source == source]
        return result

    def lines(self, *, min_level: LogLevel | None = None) -> list[str]:
        """Return formatted entries, oldest first."""
        return [str(e) for e in self.filter(min_level=min_level)]

    def clear(self) -> None:
        """Empty the buffer."""
        with self._lock:
            self._entries.clear()
