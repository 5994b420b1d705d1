"""Tests for terminal key decoding.

Only the pure decoding table is tested; raw mode needs a real tty.
"""

import pytest

from py_shell.console import Key, KeyName
from py_shell.terminal import decode_sequence


class TestDecodeSequence:
    """Verify byte sequences map to keys."""

    @pytest.mark.parametrize(
        ("seq", "name"),
        [
            ("\x1b[A", KeyName.UP),
            ("\x1b[B", KeyName.DOWN),
            ("\x1b[C", KeyName.RIGHT),
            ("\x1b[D", KeyName.LEFT),
            ("\x1b[H", KeyName.HOME),
            ("\x1b[4~", KeyName.END),
            ("\x1b[3~", KeyName.DELETE),
            ("\r", KeyName.ENTER),
            ("\t", KeyName.TAB),
            ("\x7f", KeyName.BACKSPACE),
            ("\x1b", KeyName.ESCAPE),
        ],
    )
    def test_special_keys(self, seq: str, name: KeyName) -> None:
        """Navigation and editing keys decode to their names."""
        key = decode_sequence(seq)
        assert key is not None
        assert key.name is name

    def test_ctrl_left(self) -> None:
        """Ctrl+Left carries the ctrl flag."""
        assert decode_sequence("\x1b[1;5D") == Key(KeyName.LEFT, ctrl=True)

    def test_alt_f4(self) -> None:
        """Alt+F4 is recognised."""
        assert decode_sequence("\x1b[1;3S") == Key(KeyName.F4, alt=True)

    def test_shift_escape(self) -> None:
        """A doubled escape is treated as Shift+Esc."""
        assert decode_sequence("\x1b\x1b") == Key(KeyName.ESCAPE, shift=True)

    def test_control_letters(self) -> None:
        """Control bytes become Ctrl+letter."""
        assert decode_sequence("\x04") == Key.ctrl_of("d")
        assert decode_sequence("\x16") == Key.ctrl_of("v")

    def test_alt_letter(self) -> None:
        """ESC followed by a character is Alt+character."""
        assert decode_sequence("\x1bt") == Key(KeyName.CHAR, "t", alt=True)

    def test_printable(self) -> None:
        """Ordinary characters decode to themselves."""
        assert decode_sequence("é") == Key(KeyName.CHAR, "é")

    def test_unknown_sequence(self) -> None:
        """Unrecognised sequences are ignored."""
        assert decode_sequence("\x1b[99~") is None
