"""Tests for the shared result pool.

Finished plugins publish results here; items expire by age or after a
number of reads.
"""

from py_shell.commands import CommandLine
from py_shell.plugins import OperationalState, Plugin, PluginDescriptor
from py_shell.pool import DEFAULT_MAX_AGE, ResultPool


class _Producer(Plugin):
    DESCRIPTOR = PluginDescriptor(name="PRODUCE")

    def main(self, line: CommandLine) -> OperationalState:
        self.result = {"answer": 42}
        return OperationalState.COMPLETE


class TestAdd:
    """Verify storing items."""

    def test_defaults(self) -> None:
        """Zero limits mean the default lifetime and unlimited reads."""
        pool = ResultPool()
        item = pool.add("u1", "LIST", [1, 2])
        assert item.max_age == DEFAULT_MAX_AGE
        assert item.reads_left is None
        assert "u1" in pool

    def test_replace(self) -> None:
        """Adding under an existing id replaces the item."""
        pool = ResultPool()
        pool.add("u1", "A1", 1)
        pool.add("u1", "A2", 2)
        assert len(pool) == 1
        assert pool.retrieve("u1") == 2

    def test_publish_uses_plugin_fields(self) -> None:
        """Publishing copies the plugin's id, result and limits."""
        plugin = _Producer()
        plugin.result = "data"
        plugin.read_limit = 3
        pool = ResultPool()
        item = pool.publish(plugin, "PRODUCE", owner="alice")
        assert item.uid == plugin.uid
        assert item.reads_left == 3
        assert pool.retrieve(plugin.uid) == "data"


class TestRetrieve:
    """Verify reading and expiry."""

    def test_missing_is_none(self) -> None:
        """Unknown ids return None."""
        assert ResultPool().retrieve("nope") is None

    def test_read_limit(self) -> None:
        """An item can only be read max_reads times."""
        pool = ResultPool()
        pool.add("u1", "LIST", "x", max_reads=2)
        assert pool.retrieve("u1") == "x"
        assert pool.retrieve("u1") == "x"
        assert pool.retrieve("u1") is None
        assert "u1" not in pool

    def test_remove_after(self) -> None:
        """remove_after deletes the item once read."""
        pool = ResultPool()
        pool.add("u1", "LIST", "x")
        assert pool.retrieve("u1", remove_after=True) == "x"
        assert "u1" not in pool

    def test_expired_by_age(self) -> None:
        """Items older than max_age are not returned."""
        pool = ResultPool()
        item = pool.add("u1", "LIST", "x", max_age=1)
        item.created_at -= 10
        assert item.expired
        assert pool.retrieve("u1") is None


class TestSweep:
    """Verify housekeeping."""

    def test_sweep_drops_expired(self) -> None:
        """Sweep removes only expired items."""
        pool = ResultPool()
        old = pool.add("old", "A1", 1, max_age=1)
        old.created_at -= 10
        pool.add("new", "A2", 2)
        assert pool.sweep() == 1
        assert "new" in pool
        assert "old" not in pool

    def test_diagnostics(self) -> None:
        """Diagnostics describe each live item."""
        pool = ResultPool()
        pool.add("u1", "LIST", "x", owner="alice", max_reads=5)
        lines = pool.diagnostics()
        assert len(lines) == 1
        assert "owner=alice" in lines[0]
        assert "reads left=5" in lines[0]

    def test_clear(self) -> None:
        """Clear empties the pool."""
        pool = ResultPool()
        pool.add("u1", "LIST", "x")
        pool.clear()
        assert len(pool) == 0
