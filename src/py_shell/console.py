"""Console and clipboard interfaces, plus in-memory implementations.

The shell never talks to a terminal directly.  It talks to a
**Console**: something that can hand over one keystroke at a time,
print coloured text, redraw the line being edited, and ring the bell.
A **Clipboard** holds text for cut/copy/paste.

Keeping these as protocols means the same dispatcher can drive a real
terminal (``py_shell.terminal``), a web page (``py_shell.web``) or a
test.  ``BufferConsole`` and ``MemoryClipboard`` are the in-memory
versions: keystrokes are fed in by the caller and output is collected
in a list.

Keystrokes are modelled as ``Key`` values rather than raw bytes, so
the input reader does not care how a terminal encodes "Ctrl+Left".
"""

import threading
from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol


class KeyName(StrEnum):
    """Logical keys the input reader understands."""

    CHAR = "char"
    ENTER = "enter"
    TAB = "tab"
    BACKSPACE = "backspace"
    DELETE = "delete"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"
    HOME = "home"
    END = "end"
    ESCAPE = "escape"
    F4 = "f4"


@dataclass(frozen=True)
class Key:
    """One keystroke with its modifier state.

    For ``KeyName.CHAR`` the character is in ``char``; Ctrl
    combinations carry the lower-case letter (Ctrl+V is
    ``Key(CHAR, "v", ctrl=True)``).
    """

    name: KeyName
    char: str = ""
    ctrl: bool = False
    alt: bool = False
    shift: bool = False

    @classmethod
    def of(cls, char: str) -> "Key":
        """Return the key for a typed character (``\\n`` is Enter)."""
        if char in ("\n", "\r"):
            return cls(KeyName.ENTER)
        if char == "\t":
            return cls(KeyName.TAB)
        return cls(KeyName.CHAR, char)

    @classmethod
    def ctrl_of(cls, letter: str) -> "Key":
        """Return Ctrl+*letter*."""
        return cls(KeyName.CHAR, letter.lower(), ctrl=True)

    @property
    def printable(self) -> bool:
        """Return True for a plain character that should be inserted."""
        return (
            self.name is KeyName.CHAR
            and not self.ctrl
            and not self.alt
            and len(self.char) == 1
            and self.char.isprintable()
        )


def keys_for(text: str) -> list[Key]:
    """Return the keystrokes that would type *text*."""
    return [Key.of(ch) for ch in text]


@dataclass(frozen=True)
class ColorPair:
    """Foreground/background colour names for console output."""

    fore: str = "default"
    back: str = "default"


DEFAULT_COLORS = ColorPair()
ERROR_COLORS = ColorPair("red")
ECHO_COLORS = ColorPair("cyan")
NOTICE_COLORS = ColorPair("yellow")


class Console(Protocol):
    """What the shell needs from a terminal."""

    def read_key(self, timeout: float) -> Key | None:
        """Return the next keystroke, or None after *timeout* seconds."""
        ...

    def write(self, text: str, color: ColorPair | None = None) -> None:
        """Print *text* without a trailing newline."""
        ...

    def write_line(self, text: str = "", color: ColorPair | None = None) -> None:
        """Print *text* followed by a newline."""
        ...

    def redraw(self, prompt: str, text: str, cursor: int) -> None:
        """Repaint the input line and place the cursor."""
        ...

    def bell(self) -> None:
        """Signal an error audibly or visibly."""
        ...

    def clear(self) -> None:
        """Clear the screen."""
        ...


class Clipboard(Protocol):
    """A text clipboard."""

    def get(self) -> str:
        """Return the clipboard text."""
        ...

    def set(self, text: str) -> None:
        """Replace the clipboard text."""
        ...


class MemoryClipboard:
    """A clipboard that lives in a string attribute."""

    def __init__(self, text: str = "") -> None:
        """Create a clipboard holding *text*."""
        self._text = text

    def get(self) -> str:
        """Return the clipboard text."""
        return self._text

    def set(self, text: str) -> None:
        """Replace the clipboard text."""
        self._text = text


class BufferConsole:
    """An in-memory console: keys are fed in, output is collected.

    ``read_key`` blocks (up to its timeout) until a key is fed, so a
    ``BufferConsole`` can drive a threaded input reader in tests.
    """

    def __init__(self) -> None:
        """Create an empty console."""
        self._keys: deque[Key] = deque()
        self._ready = threading.Condition()
        self._output: list[str] = []
        self._out_lock = threading.Lock()
        self.bells = 0
        self.clears = 0
        self.last_redraw: tuple[str, str, int] | None = None

    # -- Input --------------------------------------------------------------

    def feed(self, text: str) -> None:
        """Queue the keystrokes that type *text*."""
        self.press(*keys_for(text))

    def press(self, *keys: Key) -> None:
        """Queue specific keystrokes."""
        with self._ready:
            self._keys.extend(keys)
            self._ready.notify_all()

    @property
    def pending_keys(self) -> int:
        """Return the number of keystrokes not yet read."""
        with self._ready:
            return len(self._keys)

    def read_key(self, timeout: float) -> Key | None:
        """Return the next fed key, waiting up to *timeout* seconds."""
        with self._ready:
            if not self._keys:
                self._ready.wait(timeout)
            return self._keys.popleft() if self._keys else None

    # -- Output -------------------------------------------------------------

    def write(self, text: str, color: ColorPair | None = None) -> None:  # noqa: ARG002
        """Collect *text*."""
        with self._out_lock:
            self._output.append(text)

    def write_line(self, text: str = "", color: ColorPair | None = None) -> None:
        """Collect *text* and a newline."""
        self.write(text + "\n", color)

    def redraw(self, prompt: str, text: str, cursor: int) -> None:
        """Remember the most recent input line."""
        self.last_redraw = (prompt, text, cursor)

    def bell(self) -> None:
        """Count a bell."""
        self.bells += 1

    def clear(self) -> None:
        """Forget collected output."""
        self.clears += 1
        with self._out_lock:
            self._output.clear()

    @property
    def text(self) -> str:
        """Return everything written so far."""
        with self._out_lock:
            return "".join(self._output)

    @property
    def lines(self) -> list[str]:
        """Return written output split into lines."""
        return self.text.splitlines()

    def take_output(self) -> str:
        """Return everything written so far and forget it."""
        with self._out_lock:
            text = "".join(self._output)
            self._output.clear()
        return text
