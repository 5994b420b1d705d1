"""Shared result pool — a small blackboard plugins use to pass data on.

When a plugin finishes, the dispatcher can publish its result here,
keyed by the plugin instance's id.  A later command (another plugin,
or the host) can pick it up with ``retrieve``.  Results are not meant
to live forever, so every item has two limits:

- **max_age** — seconds before the item expires (default 23:59:59).
- **max_reads** — how many times it may be read (``< 1`` = unlimited).

Expired items are dropped by ``sweep()``, which the dispatcher calls
once per loop iteration.

The pool has its own lock, independent of the command queue's, so a
plugin reading the pool never contends with the input thread.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from py_shell.plugins import Plugin

DEFAULT_MAX_AGE = 23 * 3600 + 59 * 60 + 59


@dataclass
class PoolItem:
    """One published result and its expiry bookkeeping."""

    uid: str
    command: str
    data: Any
    owner: str
    max_age: float = DEFAULT_MAX_AGE
    max_reads: int = 0
    created_at: float = field(default_factory=time.monotonic)
    reads: int = 0

    @property
    def age(self) -> float:
        """Return seconds since the item was published."""
        return time.monotonic() - self.created_at

    @property
    def reads_left(self) -> int | None:
        """Return remaining reads, or None if unlimited."""
        if self.max_reads < 1:
            return None
        return self.max_reads - self.reads

    @property
    def expired(self) -> bool:
        """Return True once the item is too old or has been read out."""
        if self.age > self.max_age:
            return True
        left = self.reads_left
        return left is not None and left <= 0


class ResultPool:
    """Time- and read-limited cache of plugin results."""

    def __init__(self) -> None:
        """Create an empty pool."""
        self._items: dict[str, PoolItem] = {}
        self._lock = threading.Lock()

    def add(
        self,
        uid: str,
        command: str,
        data: Any,  # noqa: ANN401
        *,
        owner: str = "",
        max_age: float = 0,
        max_reads: int = 0,
    ) -> PoolItem:
        """Store *data* under *uid*, replacing any previous item.

        Args:
            uid: Key (normally the plugin instance id).
            command: The command text that produced the data.
            data: The payload.
            owner: Name of the publishing actor.
            max_age: Lifetime in seconds; ``<= 0`` means 23:59:59.
            max_reads: Read allowance; ``< 1`` means unlimited.

        Returns:
            The stored item.

        """
        item = PoolItem(
            uid=uid,
            command=command,
            data=data,
            owner=owner,
            max_age=max_age if max_age > 0 else DEFAULT_MAX_AGE,
            max_reads=max(max_reads, 0),
        )
        with self._lock:
            self._items[uid] = item
        return item

    def publish(self, plugin: Plugin, command: str, owner: str = "") -> PoolItem:
        """Store a finished plugin's result under its instance id."""
        return self.add(
            plugin.uid,
            command,
            plugin.result,
            owner=owner,
            max_age=plugin.life_limit,
            max_reads=plugin.read_limit,
        )

    def retrieve(self, uid: str, *, remove_after: bool = False) -> Any:  # noqa: ANN401
        """Read the data stored under *uid*.

        Each read counts against the item's allowance.

        Returns:
            The data, or None if there is no live item.

        """
        with self._lock:
            item = self._items.get(uid)
            if item is None or item.expired:
                self._items.pop(uid, None)
                return None
            item.reads += 1
            if remove_after:
                del self._items[uid]
            return item.data

    def item(self, uid: str) -> PoolItem | None:
        """Return the item record for *uid* without counting a read."""
        with self._lock:
            return self._items.get(uid)

    def sweep(self) -> int:
        """Drop every expired item.

        Returns:
            The number of items removed.

        """
        with self._lock:
            dead = [uid for uid, item in self._items.items() if item.expired]
            for uid in dead:
                del self._items[uid]
        return len(dead)

    def clear(self) -> None:
        """Remove every item."""
        with self._lock:
            self._items.clear()

    def diagnostics(self) -> list[str]:
        """Return one descriptive line per live item."""
        with self._lock:
            items = list(self._items.values())
        lines: list[str] = []
        for item in items:
            left = item.reads_left
            reads = "unlimited" if left is None else str(left)
            lines.append(
                f"{item.uid}  {item.command!r}  owner={item.owner or '-'}  "
                f"age={item.age:.1f}s/{item.max_age:.0f}s  reads left={reads}"
            )
        return lines

    def __len__(self) -> int:
        """Return the number of stored items (expired or not)."""
        with self._lock:
            return len(self._items)

    def __contains__(self, uid: object) -> bool:
        """Return True if an item is stored under *uid*."""
        with self._lock:
            return uid in self._items
