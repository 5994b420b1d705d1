"""Input reader — turning keystrokes into commands.

The input reader runs on its own thread.  It pulls one keystroke at a
time from the console and applies it to an **EditBuffer** (the line
being typed).  When Enter is pressed the buffer becomes a command on
the dispatcher's queue.

Key bindings:

    ==========================  ========================================
    Printable character         insert at the cursor
    Backspace / Delete          delete before / at the cursor
    Left / Right (+Ctrl)        move by a character (by a word)
    Home / End                  jump to the start / end of the line
    Up / Down                   walk back / forward through history
    Tab                         complete the command name
    Ctrl+X / Ctrl+C / Ctrl+V    cut / copy / paste the line
    Ctrl+T (+Alt)               insert a quoted (bare) timestamp
    Esc                         clear the line
    Enter                       submit the line
    Ctrl+D, Alt+F4, Shift+Esc   exit the shell
    ==========================  ========================================

The dispatcher and the input reader share the console.  The reader
applies each keystroke while holding the dispatcher's console lock.
If the dispatcher is busy running a command, keystrokes are held in a
backlog and applied, in order, as soon as the lock is free, except
Ctrl+C, which interrupts the running command instead.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, TypeAlias

from py_shell.completer import Completer
from py_shell.console import Clipboard, Console, Key, KeyName, MemoryClipboard

if TYPE_CHECKING:
    from py_shell.dispatcher import Dispatcher

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class EditBuffer:
    """A single line of editable text with a cursor."""

    def __init__(self, text: str = "") -> None:
        """Create a buffer holding *text* with the cursor at the end."""
        self._text = text
        self._cursor = len(text)

    @property
    def text(self) -> str:
        """Return the buffer contents."""
        return self._text

    @property
    def cursor(self) -> int:
        """Return the cursor position (0..len)."""
        return self._cursor

    @cursor.setter
    def cursor(self, value: int) -> None:
        """Move the cursor, clamped to the text."""
        self._cursor = max(0, min(value, len(self._text)))

    def insert(self, text: str) -> None:
        """Insert *text* at the cursor and move past it."""
        self._text = self._text[: self._cursor] + text + self._text[self._cursor :]
        self._cursor += len(text)

    def backspace(self) -> bool:
        """Delete the character before the cursor.

        Returns:
            True if a character was removed.

        """
        if self._cursor == 0:
            return False
        self._text = self._text[: self._cursor - 1] + self._text[self._cursor :]
        self._cursor -= 1
        return True

    def delete(self, count: int = 1) -> bool:
        """Delete up to *count* characters at the cursor.

        Returns:
            True if anything was removed.

        """
        if self._cursor >= len(self._text) or count < 1:
            return False
        self._text = self._text[: self._cursor] + self._text[self._cursor + count :]
        return True

    def word_left(self) -> int:
        """Return the start of the word before the cursor."""
        i = self._cursor
        while i > 0 and self._text[i - 1] == " ":
            i -= 1
        while i > 0 and self._text[i - 1] != " ":
            i -= 1
        return i

    def word_right(self) -> int:
        """Return the start of the word after the cursor (or the end)."""
        i = self._cursor
        length = len(self._text)
        while i < length and self._text[i] != " ":
            i += 1
        while i < length and self._text[i] == " ":
            i += 1
        return i

    def replace(self, text: str) -> None:
        """Replace the whole line and move the cursor to the end."""
        self._text = text
        self._cursor = len(text)

    def clear(self) -> None:
        """Empty the buffer."""
        self.replace("")

    def __len__(self) -> int:
        """Return the text length."""
        return len(self._text)


KeyHandler: TypeAlias = "Callable[[Key], None]"


class InputReader:
    """Reads keystrokes from a console and feeds the dispatcher."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        clipboard: Clipboard | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Create a reader bound to *dispatcher* and its console.

        Args:
            dispatcher: The shell whose queue receives commands.
            clipboard: Clipboard for cut/copy/paste.
            now: Clock for timestamp insertion.

        """
        self._dispatcher = dispatcher
        self._console: Console = dispatcher.console
        self._clipboard = clipboard if clipboard is not None else MemoryClipboard()
        self._now = now
        self._buffer = EditBuffer()
        self._completer = Completer(dispatcher.registry)
        self._backlog: deque[Key] = deque()
        self._seen_cycles = dispatcher.cycles
        self._stopped = threading.Event()
        self._handlers: dict[KeyName, KeyHandler] = {
            KeyName.ENTER: self._on_enter,
            KeyName.TAB: self._on_tab,
            KeyName.BACKSPACE: lambda _k: self._buffer.backspace(),
            KeyName.DELETE: lambda _k: self._buffer.delete(),
            KeyName.LEFT: self._on_left,
            KeyName.RIGHT: self._on_right,
            KeyName.UP: lambda _k: self._buffer.replace(self._dispatcher.queue.previous()),
            KeyName.DOWN: lambda _k: self._buffer.replace(self._dispatcher.queue.next()),
            KeyName.HOME: self._on_home,
            KeyName.END: self._on_end,
            KeyName.ESCAPE: self._on_escape,
            KeyName.F4: self._on_f4,
            KeyName.CHAR: self._on_char,
        }

    @property
    def buffer(self) -> EditBuffer:
        """Return the line being edited."""
        return self._buffer

    @property
    def clipboard(self) -> Clipboard:
        """Return the clipboard in use."""
        return self._clipboard

    @property
    def backlog(self) -> int:
        """Return the number of keystrokes waiting for the console lock."""
        return len(self._backlog)

    # -- Loop ---------------------------------------------------------------

    def run(self) -> None:
        """Read keystrokes until the dispatcher stops or ``stop`` is called."""
        interval = self._dispatcher.settings.keyboard_interval
        while self._dispatcher.keep_alive and not self._stopped.is_set():
            self.poll(interval)

    def stop(self) -> None:
        """Ask ``run`` to return after the current keystroke."""
        self._stopped.set()

    def poll(self, timeout: float) -> bool:
        """Read at most one keystroke and apply it (or backlog it).

        Returns:
            True if a key was read.

        """
        key = self._console.read_key(timeout)
        if key is not None and key.ctrl and key.char == "c" and self._dispatcher.busy:
            self._dispatcher.interrupt()
            return True
        if key is not None:
            self._backlog.append(key)
        stale = self._seen_cycles != self._dispatcher.cycles
        if not self._backlog and not stale:
            return key is not None
        if not self._dispatcher.console_lock.acquire(blocking=False):
            return key is not None
        try:
            while self._backlog:
                self.handle_key(self._backlog.popleft())
            self._seen_cycles = self._dispatcher.cycles
            self.refresh()
        finally:
            self._dispatcher.console_lock.release()
        return key is not None

    def refresh(self) -> None:
        """Repaint the prompt and the edit buffer."""
        self._console.redraw(
            self._dispatcher.render_prompt(), self._buffer.text, self._buffer.cursor
        )

    # -- Key handling -------------------------------------------------------

    def handle_key(self, key: Key) -> None:
        """Apply one keystroke to the buffer (caller holds the console lock)."""
        self._handlers[key.name](key)

    def type_text(self, text: str) -> None:
        """Apply the keystrokes for *text*, treating newlines as Enter."""
        for ch in text.replace("\r\n", "\n"):
            self.handle_key(Key.of(ch))

    def _on_char(self, key: Key) -> None:
        if key.ctrl:
            self._on_control(key)
        elif key.printable:
            self._buffer.insert(key.char)

    def _on_control(self, key: Key) -> None:
        match key.char.lower():
            case "x":
                self._clipboard.set(self._buffer.text)
                self._buffer.clear()
            case "c":
                self._clipboard.set(self._buffer.text)
            case "v":
                self.type_text(self._clipboard.get())
            case "t":
                self._insert_timestamp(quoted=not key.alt)
            case "d":
                self._force_exit()
            case _:
                self._console.bell()

    def _on_enter(self, _key: Key) -> None:
        text = self._buffer.text
        self._buffer.clear()
        self._console.redraw("", "", 0)
        if text.strip():
            self._dispatcher.enqueue(text)

    def _on_tab(self, _key: Key) -> None:
        completion = self._completer.complete(self._buffer.text, self._dispatcher.actor.rank)
        if not completion.matched:
            self._console.bell()
            return
        if completion.text == self._buffer.text:
            self._console.bell()
        self._buffer.replace(completion.text)

    def _on_left(self, key: Key) -> None:
        self._buffer.cursor = self._buffer.word_left() if key.ctrl else self._buffer.cursor - 1

    def _on_right(self, key: Key) -> None:
        self._buffer.cursor = self._buffer.word_right() if key.ctrl else self._buffer.cursor + 1

    def _on_home(self, _key: Key) -> None:
        self._buffer.cursor = 0

    def _on_end(self, _key: Key) -> None:
        self._buffer.cursor = len(self._buffer)

    def _on_escape(self, key: Key) -> None:
        if key.shift:
            self._force_exit()
        else:
            self._buffer.clear()

    def _on_f4(self, key: Key) -> None:
        if key.alt:
            self._force_exit()

    def _insert_timestamp(self, *, quoted: bool) -> None:
        stamp = self._now().strftime(TIMESTAMP_FORMAT)
        self._buffer.insert(f'"{stamp}"' if quoted else stamp)

    def _force_exit(self) -> None:
        self._buffer.clear()
        self._dispatcher.enqueue(self._dispatcher.exit_token, actor=self._dispatcher.system_actor)
