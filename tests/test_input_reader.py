"""Tests for the input reader and its edit buffer.

Keystrokes are applied directly with ``handle_key`` or fed through a
``BufferConsole`` and read with ``poll``, so no terminal is needed.
"""

from datetime import datetime

from py_shell.cancellation import CancellationToken
from py_shell.console import BufferConsole, Key, KeyName, MemoryClipboard
from py_shell.dispatcher import Dispatcher
from py_shell.input_reader import EditBuffer, InputReader

FIXED_NOW = datetime(2024, 5, 17, 9, 30, 0)  # noqa: DTZ001


def _booted_reader() -> tuple[Dispatcher, BufferConsole, InputReader]:
    """Create an activated dispatcher and a reader on its console."""
    console = BufferConsole()
    dispatcher = Dispatcher(console=console)
    dispatcher.activate()
    reader = InputReader(dispatcher, clipboard=MemoryClipboard(), now=lambda: FIXED_NOW)
    return dispatcher, console, reader


# -- Cycle 1: Edit buffer ---------------------------------------------------


class TestEditBuffer:
    """Verify line editing primitives."""

    def test_insert_at_cursor(self) -> None:
        """Text is inserted where the cursor is."""
        buf = EditBuffer("HLP")
        buf.cursor = 1
        buf.insert("E")
        assert buf.text == "HELP"
        assert buf.cursor == 2

    def test_cursor_is_clamped(self) -> None:
        """The cursor cannot leave the text."""
        buf = EditBuffer("abc")
        buf.cursor = 10
        assert buf.cursor == 3
        buf.cursor = -4
        assert buf.cursor == 0

    def test_backspace_at_start(self) -> None:
        """Backspace at position 0 does nothing."""
        buf = EditBuffer("abc")
        buf.cursor = 0
        assert not buf.backspace()
        assert buf.text == "abc"

    def test_delete_at_cursor(self) -> None:
        """Delete removes the character under the cursor."""
        buf = EditBuffer("abc")
        buf.cursor = 1
        assert buf.delete()
        assert buf.text == "ac"

    def test_word_jumps(self) -> None:
        """Word movement skips to word boundaries."""
        buf = EditBuffer("LIST /all extra")
        assert buf.word_left() == 10
        buf.cursor = 0
        assert buf.word_right() == 5


# -- Cycle 2: Keys ----------------------------------------------------------


class TestTyping:
    """Verify typing and submitting."""

    def test_enter_enqueues(self) -> None:
        """Enter puts the line on the queue and clears the buffer."""
        dispatcher, console, reader = _booted_reader()
        reader.type_text("VER\n")
        assert dispatcher.queue.history() == ["VER"]
        assert reader.buffer.text == ""
        assert console.last_redraw == ("", "", 0)

    def test_blank_enter_enqueues_nothing(self) -> None:
        """Empty lines are not submitted."""
        dispatcher, _console, reader = _booted_reader()
        reader.type_text("   \n")
        assert dispatcher.queue.count == 0

    def test_editing_keys(self) -> None:
        """Backspace, Home and Delete edit the line."""
        _dispatcher, _console, reader = _booted_reader()
        reader.type_text("xVERR")
        reader.handle_key(Key(KeyName.BACKSPACE))
        reader.handle_key(Key(KeyName.HOME))
        reader.handle_key(Key(KeyName.DELETE))
        assert reader.buffer.text == "VER"

    def test_arrows_move_cursor(self) -> None:
        """Left and Ctrl+Right move the cursor."""
        _dispatcher, _console, reader = _booted_reader()
        reader.type_text("EKO hello")
        reader.handle_key(Key(KeyName.HOME))
        reader.handle_key(Key(KeyName.RIGHT, ctrl=True))
        assert reader.buffer.cursor == 4
        reader.handle_key(Key(KeyName.LEFT))
        assert reader.buffer.cursor == 3
        reader.handle_key(Key(KeyName.END))
        assert reader.buffer.cursor == 9

    def test_escape_clears(self) -> None:
        """Esc empties the line."""
        _dispatcher, _console, reader = _booted_reader()
        reader.type_text("junk")
        reader.handle_key(Key(KeyName.ESCAPE))
        assert reader.buffer.text == ""


class TestHistoryKeys:
    """Verify Up/Down recall."""

    def test_up_and_down(self) -> None:
        """Up recalls older lines; Down returns to a blank line."""
        _dispatcher, _console, reader = _booted_reader()
        reader.type_text("VER\nEKO hi\n")
        reader.handle_key(Key(KeyName.UP))
        assert reader.buffer.text == "EKO hi"
        reader.handle_key(Key(KeyName.UP))
        assert reader.buffer.text == "VER"
        reader.handle_key(Key(KeyName.DOWN))
        assert reader.buffer.text == "EKO hi"
        reader.handle_key(Key(KeyName.DOWN))
        assert reader.buffer.text == ""


class TestTabCompletion:
    """Verify Tab."""

    def test_unique_completion(self) -> None:
        """A unique prefix is completed."""
        _dispatcher, _console, reader = _booted_reader()
        reader.type_text("he")
        reader.handle_key(Key(KeyName.TAB))
        assert reader.buffer.text == "HELP "

    def test_no_match_rings_bell(self) -> None:
        """No candidates means a bell."""
        _dispatcher, console, reader = _booted_reader()
        reader.type_text("zz")
        reader.handle_key(Key(KeyName.TAB))
        assert console.bells == 1
        assert reader.buffer.text == "zz"

    def test_ambiguous_rings_bell(self) -> None:
        """A prefix that cannot be extended rings the bell."""
        _dispatcher, console, reader = _booted_reader()
        reader.type_text("H")
        reader.handle_key(Key(KeyName.TAB))
        assert console.bells == 1


class TestClipboardKeys:
    """Verify Ctrl+X, Ctrl+C, Ctrl+V and Ctrl+T."""

    def test_cut_and_paste(self) -> None:
        """Ctrl+X cuts the line; Ctrl+V types it back."""
        _dispatcher, _console, reader = _booted_reader()
        reader.type_text("VER")
        reader.handle_key(Key.ctrl_of("x"))
        assert reader.buffer.text == ""
        assert reader.clipboard.get() == "VER"
        reader.handle_key(Key.ctrl_of("v"))
        assert reader.buffer.text == "VER"

    def test_copy_when_idle(self) -> None:
        """Ctrl+C copies the line when nothing is running."""
        _dispatcher, _console, reader = _booted_reader()
        reader.type_text("EKO hi")
        reader.handle_key(Key.ctrl_of("c"))
        assert reader.clipboard.get() == "EKO hi"
        assert reader.buffer.text == "EKO hi"

    def test_paste_with_newline_submits(self) -> None:
        """Pasted newlines act as Enter."""
        dispatcher, _console, reader = _booted_reader()
        reader.clipboard.set("VER\nEKO x")
        reader.handle_key(Key.ctrl_of("v"))
        assert dispatcher.queue.history() == ["VER"]
        assert reader.buffer.text == "EKO x"

    def test_timestamp_quoted(self) -> None:
        """Ctrl+T inserts a quoted timestamp."""
        _dispatcher, _console, reader = _booted_reader()
        reader.handle_key(Key.ctrl_of("t"))
        assert reader.buffer.text == '"2024-05-17 09:30:00"'

    def test_timestamp_bare_with_alt(self) -> None:
        """Ctrl+Alt+T inserts the timestamp without quotes."""
        _dispatcher, _console, reader = _booted_reader()
        reader.handle_key(Key(KeyName.CHAR, "t", ctrl=True, alt=True))
        assert reader.buffer.text == "2024-05-17 09:30:00"

    def test_unbound_control_rings_bell(self) -> None:
        """Unassigned Ctrl combinations ring the bell."""
        _dispatcher, console, reader = _booted_reader()
        reader.handle_key(Key.ctrl_of("q"))
        assert console.bells == 1


class TestForceExit:
    """Verify the keys that quit the shell."""

    def test_ctrl_d(self) -> None:
        """Ctrl+D queues the exit command as the system actor."""
        dispatcher, _console, reader = _booted_reader()
        reader.handle_key(Key.ctrl_of("d"))
        cmd = dispatcher.queue[0]
        assert cmd.text == "XIT"
        assert cmd.actor == dispatcher.system_actor

    def test_shift_escape(self) -> None:
        """Shift+Esc exits."""
        dispatcher, _console, reader = _booted_reader()
        reader.handle_key(Key(KeyName.ESCAPE, shift=True))
        dispatcher.process_pending()
        assert not dispatcher.keep_alive

    def test_alt_f4(self) -> None:
        """Alt+F4 exits; plain F4 does not."""
        dispatcher, _console, reader = _booted_reader()
        reader.handle_key(Key(KeyName.F4))
        assert dispatcher.queue.count == 0
        reader.handle_key(Key(KeyName.F4, alt=True))
        assert dispatcher.queue.history() == ["XIT"]


# -- Cycle 3: Polling and the console lock ----------------------------------


class TestPoll:
    """Verify reading keys from the console."""

    def test_poll_applies_fed_keys(self) -> None:
        """Each poll reads one key and repaints the line."""
        _dispatcher, console, reader = _booted_reader()
        console.feed("VE")
        assert reader.poll(0.01)
        assert reader.poll(0.01)
        assert reader.buffer.text == "VE"
        assert console.last_redraw == ("PyShell anonymous> ", "VE", 2)

    def test_poll_timeout(self) -> None:
        """With nothing to read, poll returns False."""
        _dispatcher, _console, reader = _booted_reader()
        assert not reader.poll(0.01)

    def test_keys_wait_while_console_is_held(self) -> None:
        """Keys are backlogged while the dispatcher holds the console."""
        dispatcher, console, reader = _booted_reader()
        console.feed("A")
        with dispatcher.console_lock:
            reader.poll(0.01)
            assert reader.backlog == 1
            assert reader.buffer.text == ""
        reader.poll(0.01)
        assert reader.backlog == 0
        assert reader.buffer.text == "A"

    def test_ctrl_c_interrupts_busy_dispatcher(self) -> None:
        """Ctrl+C cancels the running command instead of copying."""
        dispatcher, console, reader = _booted_reader()
        token = CancellationToken()
        dispatcher._current_token = token
        console.press(Key.ctrl_of("c"))
        reader.poll(0.01)
        assert token.cancelled
        assert reader.backlog == 0

    def test_run_stops_with_dispatcher(self) -> None:
        """run() returns once the dispatcher has shut down."""
        dispatcher, _console, reader = _booted_reader()
        dispatcher.shutdown()
        reader.run()
        assert not dispatcher.keep_alive
