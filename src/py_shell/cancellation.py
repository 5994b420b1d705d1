"""Cancellation tokens — asking a running command to stop.

A plugin runs on the dispatcher thread and nothing can safely kill it
from the outside.  Instead, every invocation is handed a
``CancellationToken``.  Whoever wants it to stop calls ``cancel()``;
the plugin checks ``raise_if_cancelled()`` at points where stopping is
safe (between rows of output, between files, inside long loops).

Tokens form a tree.  The dispatcher owns one root token for the whole
shell; each plugin invocation gets a child.  Cancelling the root
cancels every child, which is how the exit command reaches a plugin
that happens to be running.

Two flavours of cancellation:

- **Interrupt** (``fatal=False``) — stop this command; the shell keeps
  going.  The plugin sees ``CommandCancelled``.
- **Abort** (``fatal=True``) — stop everything.  The plugin sees
  ``FatalAbort`` and the dispatch loop shuts down.
"""

import threading

from py_shell.errors import CommandCancelled, FatalAbort


class CancellationToken:
    """A one-shot, thread-safe stop signal."""

    def __init__(self, parent: "CancellationToken | None" = None) -> None:
        """Create a token, optionally linked to a parent."""
        self._event = threading.Event()
        self._parent = parent
        self._fatal = False
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        """Return True if this token or any ancestor was cancelled."""
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def fatal(self) -> bool:
        """Return True if the effective cancellation is an abort."""
        if self._event.is_set():
            return self._fatal
        return self._parent is not None and self._parent.fatal

    @property
    def reason(self) -> str:
        """Return the reason given to ``cancel``, if any."""
        if self._event.is_set():
            return self._reason
        return self._parent.reason if self._parent is not None else ""

    def cancel(self, reason: str = "cancelled", *, fatal: bool = False) -> None:
        """Signal the token.  A later fatal cancel upgrades an interrupt."""
        if self._event.is_set() and (self._fatal or not fatal):
            return
        self._reason = reason
        self._fatal = fatal
        self._event.set()

    def child(self) -> "CancellationToken":
        """Return a new token cancelled whenever this one is."""
        return CancellationToken(parent=self)

    def raise_if_cancelled(self) -> None:
        """Raise if the token has been cancelled.

        Raises:
            FatalAbort: For an abort.
            CommandCancelled: For an interrupt.

        """
        if not self.cancelled:
            return
        if self.fatal:
            raise FatalAbort(self.reason)
        raise CommandCancelled(self.reason)

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled.

        """
        if self._parent is None:
            return self._event.wait(timeout)
        # Poll in short slices so a parent cancel is noticed promptly.
        remaining = timeout
        step = 0.01
        while remaining > 0 and not self.cancelled:
            self._event.wait(min(step, remaining))
            remaining -= step
        return self.cancelled
