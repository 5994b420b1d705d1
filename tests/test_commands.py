"""Tests for commands and the command queue.

The queue is both the dispatcher's work list and the input reader's
history, so these tests cover ordering, caching, pruning and history
navigation.
"""

import threading

import pytest

from py_shell.commands import (
    MIN_CACHE_LIMIT,
    Command,
    CommandLine,
    CommandQueue,
    QueueClosedError,
)
from py_shell.errors import ParseError
from py_shell.users import Actor

ALICE = Actor("alice")


def _queue_with(*texts: str, cache_limit: int = 25) -> CommandQueue:
    """Create a queue holding one command per text."""
    queue = CommandQueue(cache_limit)
    for text in texts:
        queue.enqueue(Command(text, ALICE))
    return queue


# -- Cycle 1: Command parsing ---------------------------------------------


class TestCommand:
    """Verify the command value."""

    def test_verb_and_payload(self) -> None:
        """The first word is the verb; the rest is the payload."""
        cmd = Command("list /all extra", ALICE)
        assert cmd.verb == "list"
        assert cmd.key == "LIST"
        assert cmd.payload == "/all extra"

    def test_leading_whitespace_is_dropped(self) -> None:
        """Leading spaces should not become part of the verb."""
        assert Command("   help", ALICE).verb == "help"

    def test_empty_text_raises(self) -> None:
        """Blank commands are rejected at construction."""
        with pytest.raises(ValueError, match="empty"):
            Command("   ", ALICE)

    def test_starts_unprocessed(self) -> None:
        """A new command has not been processed."""
        assert not Command("help", ALICE).processed

    def test_case_insensitive_equality(self) -> None:
        """Commands compare equal regardless of case."""
        assert Command("HELP", ALICE) == Command("help", ALICE)
        assert hash(Command("HELP", ALICE)) == hash(Command("help", ALICE))

    def test_uids_increase(self) -> None:
        """Each command gets a larger id than the one before it."""
        first = Command("a1", ALICE)
        second = Command("a2", ALICE)
        assert second.uid > first.uid

    def test_derive_is_not_cacheable(self) -> None:
        """Derived commands keep the actor and chain but skip history."""
        cmd = Command("ll", ALICE, alias_chain=("ll",))
        child = cmd.derive("LIST /all")
        assert child.actor is ALICE
        assert child.alias_chain == ("LL",)
        assert not child.allow_cache


class TestCommandLine:
    """Verify tokenising into verb, arguments and switches."""

    def test_quoted_arguments_stay_together(self) -> None:
        """Quoted text should be one argument without its quotes."""
        line = CommandLine.parse('EKO "hello world"')
        assert line.arguments == ("hello world",)

    def test_switch_forms(self) -> None:
        """Switches accept bare, colon and equals forms."""
        line = CommandLine.parse("LIST /all /level:warn /limit=5")
        assert line.switches == {"ALL": "", "LEVEL": "warn", "LIMIT": "5"}

    def test_switch_lookup_is_case_insensitive(self) -> None:
        """Switch names should match in any case."""
        line = CommandLine.parse("LIST /All")
        assert line.has_switch("all")
        assert line.switch("missing", "x") == "x"

    def test_unbalanced_quote_raises(self) -> None:
        """Bad quoting is a parse error."""
        with pytest.raises(ParseError):
            CommandLine.parse('EKO "oops')

    def test_empty_raises(self) -> None:
        """Nothing to parse is a parse error."""
        with pytest.raises(ParseError, match="Empty"):
            CommandLine.parse("   ")


# -- Cycle 2: Work queue ----------------------------------------------------


class TestWorkQueue:
    """Verify FIFO processing."""

    def test_commands_are_taken_in_order(self) -> None:
        """The oldest unprocessed command is taken first."""
        queue = _queue_with("one", "two", "three")
        taken = [queue.next_waiting() for _ in range(3)]
        assert [str(cmd) for cmd in taken] == ["one", "two", "three"]
        assert queue.next_waiting() is None

    def test_cacheable_commands_stay_as_history(self) -> None:
        """Processed cacheable commands remain in the queue."""
        queue = _queue_with("one")
        cmd = queue.next_waiting()
        assert cmd is not None
        assert cmd.processed
        assert queue.count == 1
        assert not queue.active

    def test_non_cacheable_commands_are_removed(self) -> None:
        """Commands with allow_cache=False vanish once taken."""
        queue = CommandQueue()
        queue.enqueue(Command("script line", ALICE, allow_cache=False))
        assert queue.next_waiting() is not None
        assert queue.count == 0

    def test_read_cursor_tracks_next_waiting(self) -> None:
        """The read cursor points at the first unprocessed command."""
        queue = _queue_with("one", "two")
        queue.next_waiting()
        assert queue.read_cursor == 1

    def test_closed_queue_refuses_work(self) -> None:
        """Enqueuing after close raises."""
        queue = CommandQueue()
        queue.close()
        with pytest.raises(QueueClosedError):
            queue.enqueue(Command("help", ALICE))

    def test_discard_waiting(self) -> None:
        """Unprocessed commands can be dropped without running."""
        queue = _queue_with("one", "two", "three")
        queue.next_waiting()
        assert queue.discard_waiting() == 2
        assert queue.history() == ["one"]

    def test_wait_for_work_wakes_on_enqueue(self) -> None:
        """A waiting thread should wake when a command arrives."""
        queue = CommandQueue()
        woke = threading.Event()

        def waiter() -> None:
            if queue.wait_for_work(timeout=5.0):
                woke.set()

        thread = threading.Thread(target=waiter)
        thread.start()
        queue.enqueue(Command("help", ALICE))
        thread.join(timeout=5.0)
        assert woke.is_set()

    def test_wait_for_work_times_out(self) -> None:
        """With nothing queued, waiting returns False after the timeout."""
        assert not CommandQueue().wait_for_work(timeout=0.01)


# -- Cycle 3: Cache limit ---------------------------------------------------


class TestCacheLimit:
    """Verify the queue stays within its cache limit."""

    def test_seven_into_five(self) -> None:
        """Enqueuing seven commands with a limit of five keeps the newest five."""
        queue = _queue_with("c1", "c2", "c3", "c4", "c5", "c6", "c7", cache_limit=5)
        assert queue.count == 5
        assert queue.history() == ["c3", "c4", "c5", "c6", "c7"]

    def test_limit_is_floored(self) -> None:
        """Limits below the minimum are raised to it."""
        assert CommandQueue(1).cache_limit == MIN_CACHE_LIMIT

    def test_lowering_limit_prunes(self) -> None:
        """Shrinking the limit drops the oldest commands immediately."""
        queue = _queue_with(*(f"c{i}" for i in range(10)))
        queue.cache_limit = 6
        assert queue.count == 6
        assert queue[0].text == "c4"


# -- Cycle 4: History navigation -------------------------------------------


class TestHistoryNavigation:
    """Verify walking back and forth through history."""

    def test_pointer_at_end_after_enqueue(self) -> None:
        """Enqueuing moves the pointer past the newest command."""
        queue = _queue_with("one", "two")
        assert queue.pointer == 2

    def test_previous_walks_back(self) -> None:
        """Previous returns older commands until the start."""
        queue = _queue_with("one", "two")
        assert queue.previous() == "two"
        assert queue.previous() == "one"
        assert queue.previous() == ""

    def test_next_walks_forward_to_blank(self) -> None:
        """Next returns newer commands, then blank at the end."""
        queue = _queue_with("one", "two")
        queue.previous()
        queue.previous()
        assert queue.next() == "two"
        assert queue.next() == ""
        assert queue.pointer == 2

    def test_purge_keeps_unprocessed(self) -> None:
        """Purge removes processed commands only."""
        queue = _queue_with("one", "two")
        queue.next_waiting()
        assert queue.purge() == 1
        assert queue.history() == ["two"]

    def test_getitem_out_of_range(self) -> None:
        """Indexing past the end raises IndexError."""
        with pytest.raises(IndexError):
            _queue_with("one")[3]

    def test_clear(self) -> None:
        """Clear empties the queue and resets the pointer."""
        queue = _queue_with("one", "two")
        queue.clear()
        assert len(queue) == 0
        assert queue.pointer == 0
