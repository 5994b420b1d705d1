"""A raw-mode POSIX terminal console.

``TerminalConsole`` implements the ``Console`` protocol on a real
terminal.  It switches the terminal into raw mode (every keystroke is
delivered immediately, nothing is echoed, Ctrl+C arrives as a key
instead of a signal) and decodes the byte sequences terminals send for
special keys into ``Key`` values.

The decoding table is pure (``decode_sequence``) so it can be tested
without a terminal.  Output uses ANSI escape codes for colour, line
clearing and cursor movement.

Use it as a context manager so the terminal is always restored::

    with TerminalConsole() as console:
        ...
"""

import codecs
import os
import select
import sys
import termios
import tty
from types import TracebackType
from typing import Any, TextIO

from py_shell.console import ColorPair, Key, KeyName

_ESC = "\x1b"
_ESCAPE_WAIT = 0.02

_SEQUENCES: dict[str, Key] = {
    "\x1b[A": Key(KeyName.UP),
    "\x1b[B": Key(KeyName.DOWN),
    "\x1b[C": Key(KeyName.RIGHT),
    "\x1b[D": Key(KeyName.LEFT),
    "\x1b[H": Key(KeyName.HOME),
    "\x1b[F": Key(KeyName.END),
    "\x1bOH": Key(KeyName.HOME),
    "\x1bOF": Key(KeyName.END),
    "\x1b[1~": Key(KeyName.HOME),
    "\x1b[7~": Key(KeyName.HOME),
    "\x1b[4~": Key(KeyName.END),
    "\x1b[8~": Key(KeyName.END),
    "\x1b[3~": Key(KeyName.DELETE),
    "\x1b[1;5C": Key(KeyName.RIGHT, ctrl=True),
    "\x1b[1;5D": Key(KeyName.LEFT, ctrl=True),
    "\x1b[1;3S": Key(KeyName.F4, alt=True),
    "\x1bOS": Key(KeyName.F4),
    "\x1b\x1b": Key(KeyName.ESCAPE, shift=True),
}

_SINGLE: dict[str, Key] = {
    "\r": Key(KeyName.ENTER),
    "\n": Key(KeyName.ENTER),
    "\t": Key(KeyName.TAB),
    "\x7f": Key(KeyName.BACKSPACE),
    "\x08": Key(KeyName.BACKSPACE),
    _ESC: Key(KeyName.ESCAPE),
}

_ANSI_COLORS: dict[str, int] = {
    "black": 30,
    "red": 31,
    "green": 32,
    "yellow": 33,
    "blue": 34,
    "magenta": 35,
    "cyan": 36,
    "white": 37,
}

_CTRL_A = 0x01
_CTRL_Z = 0x1A


def decode_sequence(seq: str) -> Key | None:
    """Translate one terminal input sequence into a ``Key``.

    Returns:
        The key, or None for sequences the shell does not use.

    """
    if seq in _SEQUENCES:
        return _SEQUENCES[seq]
    if seq in _SINGLE:
        return _SINGLE[seq]
    if len(seq) == 2 and seq[0] == _ESC and seq[1].isprintable():  # noqa: PLR2004
        return Key(KeyName.CHAR, seq[1].lower(), alt=True, ctrl=False)
    if len(seq) == 1:
        code = ord(seq)
        if _CTRL_A <= code <= _CTRL_Z:
            return Key.ctrl_of(chr(code + 0x60))
        if seq.isprintable():
            return Key(KeyName.CHAR, seq)
    return None


def _color_code(color: ColorPair) -> str:
    codes: list[str] = []
    if color.fore in _ANSI_COLORS:
        codes.append(str(_ANSI_COLORS[color.fore]))
    if color.back in _ANSI_COLORS:
        codes.append(str(_ANSI_COLORS[color.back] + 10))
    return f"\x1b[{';'.join(codes)}m" if codes else ""


class TerminalConsole:
    """Console protocol over a POSIX tty in raw mode."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Bind to *stdin*/*stdout* (defaults to the process streams)."""
        self._in = stdin if stdin is not None else sys.stdin
        self._out = stdout if stdout is not None else sys.stdout
        self._fd = self._in.fileno()
        self._saved: list[Any] | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._line_drawn = False

    def __enter__(self) -> "TerminalConsole":
        """Switch the terminal to raw mode."""
        self._saved = termios.tcgetattr(self._fd)
        tty.setraw(self._fd)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Restore the terminal settings."""
        if self._saved is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)
            self._saved = None
        self._out.write("\r\n")
        self._out.flush()

    def _read_char(self, timeout: float) -> str | None:
        ready, _, _ = select.select([self._fd], [], [], timeout)
        if not ready:
            return None
        text = ""
        while not text:
            data = os.read(self._fd, 1)
            if not data:
                return None
            text = self._decoder.decode(data)
        return text

    def read_key(self, timeout: float) -> Key | None:
        """Return the next keystroke, or None after *timeout* seconds."""
        first = self._read_char(timeout)
        if first is None:
            return None
        seq = first
        if first == _ESC:
            while (nxt := self._read_char(_ESCAPE_WAIT)) is not None:
                seq += nxt
                if seq in _SEQUENCES or (len(seq) > 2 and (nxt.isalpha() or nxt == "~")):  # noqa: PLR2004
                    break
        return decode_sequence(seq)

    def write(self, text: str, color: ColorPair | None = None) -> None:
        """Print *text*, in colour if a pair is given."""
        if self._line_drawn:
            self._out.write("\r\x1b[K")
            self._line_drawn = False
        body = text.replace("\r\n", "\n").replace("\n", "\r\n")
        prefix = _color_code(color) if color is not None else ""
        self._out.write(f"{prefix}{body}\x1b[0m" if prefix else body)
        self._out.flush()

    def write_line(self, text: str = "", color: ColorPair | None = None) -> None:
        """Print *text* followed by a newline."""
        self.write(text + "\n", color)

    def redraw(self, prompt: str, text: str, cursor: int) -> None:
        """Repaint the input line and place the cursor."""
        back = len(text) - cursor
        move = f"\x1b[{back}D" if back > 0 else ""
        self._out.write(f"\r\x1b[K{prompt}{text}{move}")
        self._out.flush()
        self._line_drawn = bool(prompt or text)

    def bell(self) -> None:
        """Ring the terminal bell."""
        self._out.write("\a")
        self._out.flush()

    def clear(self) -> None:
        """Clear the screen and home the cursor."""
        self._out.write("\x1b[2J\x1b[H")
        self._out.flush()
        self._line_drawn = False
