"""Heartbeat timer — periodic notifications between commands.

Hosts often want to do a little housekeeping while the shell is idle:
refresh a status bar, flush a log, poll a device.  The heartbeat gives
them a hook.  Every ``interval`` seconds the dispatcher fires it,
delivering the current actor and a snapshot of the plugin registry to
each subscriber.

The heartbeat is only checked *between* commands, never while a plugin
is running, so subscribers never race with command execution.  A
zero interval disables it.

Time is measured with ``time.monotonic`` (wall-clock changes cannot
make it fire early or late) and the clock restarts after each firing.
The clock is injectable so tests can step time by hand.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeAlias

from py_shell.logging import Logger, LogLevel

if TYPE_CHECKING:
    from py_shell.plugins import PluginDescriptor
    from py_shell.users import Actor

HeartbeatCallback: TypeAlias = "Callable[[Actor, tuple[PluginDescriptor, ...]], None]"


class HeartbeatTimer:
    """Fires subscriber callbacks every *interval* seconds."""

    def __init__(
        self,
        interval: float = 0,
        *,
        clock: Callable[[], float] = time.monotonic,
        logger: Logger | None = None,
    ) -> None:
        """Create a timer.

        Args:
            interval: Seconds between fires (0 disables the heartbeat).
            clock: Monotonic time source.
            logger: Where subscriber failures are recorded.

        """
        self._clock = clock
        self._interval = 0.0
        self.interval = interval
        self._last = clock()
        self._fires = 0
        self._subscribers: list[HeartbeatCallback] = []
        self._logger = logger

    @property
    def interval(self) -> float:
        """Return the configured interval in seconds."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the interval.

        Raises:
            ValueError: If *value* is negative.

        """
        if value < 0:
            msg = f"Heartbeat interval must not be negative, got {value}"
            raise ValueError(msg)
        self._interval = float(value)

    @property
    def enabled(self) -> bool:
        """Return True if the interval is non-zero."""
        return self._interval > 0

    @property
    def fires(self) -> int:
        """Return how many times the heartbeat has fired."""
        return self._fires

    @property
    def subscriber_count(self) -> int:
        """Return the number of subscribed callbacks."""
        return len(self._subscribers)

    def subscribe(self, callback: HeartbeatCallback) -> None:
        """Add a callback."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: HeartbeatCallback) -> None:
        """Remove a callback.

        Raises:
            ValueError: If *callback* was never subscribed.

        """
        self._subscribers.remove(callback)

    def elapsed(self) -> float:
        """Return seconds since the last firing (or creation)."""
        return self._clock() - self._last

    def remaining(self) -> float | None:
        """Return seconds until the next firing, or None when disabled."""
        if not self.enabled:
            return None
        return max(0.0, self._interval - self.elapsed())

    def due(self) -> bool:
        """Return True if enabled, subscribed to, and the interval has passed."""
        return self.enabled and bool(self._subscribers) and self.elapsed() >= self._interval

    def reset(self) -> None:
        """Restart the interval from now."""
        self._last = self._clock()

    def fire(self, actor: Actor, snapshot: tuple[PluginDescriptor, ...]) -> int:
        """Deliver a heartbeat to every subscriber and restart the clock.

        A subscriber that raises is logged and skipped.

        Returns:
            The number of subscribers that ran without error.

        """
        delivered = 0
        for callback in list(self._subscribers):
            try:
                callback(actor, snapshot)
            except Exception as e:  # noqa: BLE001
                if self._logger is not None:
                    self._logger.log(
                        LogLevel.ERROR,
                        f"Heartbeat subscriber failed: {e}",
                        source="heartbeat",
                        actor=actor.name,
                    )
                continue
            delivered += 1
        self._fires += 1
        self.reset()
        return delivered
