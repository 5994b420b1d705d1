"""Built-in plugin commands that ship with every shell.

These are ordinary plugins, registered through the same table as any
host plugin, so they double as worked examples:

- ``HELP`` — list the commands visible at your rank, or show one
  command's help.  Anyone may run it.
- ``HIST`` — show command history.
- ``POOL`` — inspect, sweep or clear the shared result pool.
- ``LOGS`` — show or clear the dispatcher's audit log.
"""

from py_shell.commands import CommandLine
from py_shell.logging import LogLevel
from py_shell.plugins import OperationalState, Plugin, PluginDescriptor, SwitchSpec
from py_shell.ranks import RankLevel


class HelpApplet(Plugin):
    """``HELP [command]`` — what can I run?"""

    DESCRIPTOR = PluginDescriptor(
        name="HELP",
        required_rank=RankLevel.NONE,
        description="List available commands or show help for one",
        usage="[command]",
    )

    def main(self, line: CommandLine) -> OperationalState:
        """List visible commands, or describe the named one."""
        if not self.has_host:
            self.write(self.descriptor().help_text())
            return OperationalState.COMPLETE
        host = self.host
        rank = self.actor_rank
        if line.arguments:
            name = line.arguments[0]
            entry = host.registry.lookup(name)
            if entry is None or not host.registry.authorize(entry.descriptor, rank):
                cmdlet = host.cmdlets.lookup(name)
                if cmdlet is None:
                    self.add_error(f"No help for '{name}'")
                    return OperationalState.INCOMPLETE
                self.write(f"{cmdlet.name} {cmdlet.usage}".rstrip())
                self.write(cmdlet.summary)
                return OperationalState.COMPLETE
            self.write(entry.descriptor.help_text())
            return OperationalState.COMPLETE

        visible = host.registry.visible_to(rank)
        self.write(f"Commands available at rank {rank.label}:")
        for descriptor in visible:
            self.write(f"  {descriptor.summary()}")
        self.write("Type ? for cmdlets and aliases, or NAME /? for details.")
        self.result = [d.name for d in visible]
        return OperationalState.COMPLETE


class HistoryApplet(Plugin):
    """``HIST [/CLEAR | /PURGE]`` — the command history."""

    DESCRIPTOR = PluginDescriptor(
        name="HIST",
        required_rank=RankLevel.UNVERIFIED,
        description="Show command history",
        switches=(
            SwitchSpec("CLEAR", "Forget all history (waiting commands still run)"),
            SwitchSpec("PURGE", "Forget processed commands and report how many"),
        ),
    )

    def main(self, line: CommandLine) -> OperationalState:
        """Print numbered history entries."""
        queue = self.host.queue
        if line.has_switch("CLEAR"):
            queue.purge()
            self.write("History cleared.")
            return OperationalState.COMPLETE
        if line.has_switch("PURGE"):
            self.write(f"Purged {queue.purge()} command(s).")
            return OperationalState.COMPLETE
        history = queue.history()
        for number, text in enumerate(history, start=1):
            self.checkpoint()
            self.write(f"{number:>4}  {text}")
        self.result = history
        return OperationalState.COMPLETE


class PoolApplet(Plugin):
    """``POOL [/SWEEP | /CLEAR | /GET:id]`` — the shared result pool."""

    DESCRIPTOR = PluginDescriptor(
        name="POOL",
        required_rank=RankLevel.SYSTEM_ADMIN,
        description="Inspect the shared result pool",
        switches=(
            SwitchSpec("SWEEP", "Drop expired items"),
            SwitchSpec("CLEAR", "Drop every item"),
            SwitchSpec("GET", "Read one item", takes_value=True),
        ),
    )

    def main(self, line: CommandLine) -> OperationalState:
        """Show diagnostics or act on the pool."""
        pool = self.host.pool
        if line.has_switch("CLEAR"):
            pool.clear()
            self.write("Pool cleared.")
        elif line.has_switch("SWEEP"):
            self.write(f"Swept {pool.sweep()} expired item(s).")
        elif line.has_switch("GET"):
            uid = line.switch("GET") or ""
            data = pool.retrieve(uid)
            if data is None:
                self.add_error(f"No live pool item '{uid}'")
                return OperationalState.INCOMPLETE
            self.write(repr(data))
        else:
            lines = pool.diagnostics()
            self.write(f"{len(lines)} item(s) in pool")
            for text in lines:
                self.write(f"  {text}")
        return OperationalState.COMPLETE


class LogsApplet(Plugin):
    """``LOGS [/LEVEL:name] [/CLEAR]`` — the audit log."""

    DESCRIPTOR = PluginDescriptor(
        name="LOGS",
        required_rank=RankLevel.SYSTEM_ADMIN,
        description="Show the dispatcher audit log",
        switches=(
            SwitchSpec("LEVEL", "Minimum level (debug, info, warning, error)", takes_value=True),
            SwitchSpec("CLEAR", "Empty the log"),
        ),
    )

    def main(self, line: CommandLine) -> OperationalState:
        """Print log entries at or above the requested level."""
        logger = self.host.logger
        if line.has_switch("CLEAR"):
            logger.clear()
            self.write("Log cleared.")
            return OperationalState.COMPLETE
        level_name = (line.switch("LEVEL") or "info").upper()
        try:
            level = LogLevel[level_name]
        except KeyError:
            self.add_error(f"Unknown log level '{level_name.lower()}'")
            return OperationalState.INCOMPLETE
        for text in logger.lines(min_level=level):
            self.write(text)
        return OperationalState.COMPLETE


def builtin_applets() -> list[type[Plugin]]:
    """Return the plugin classes every shell registers by default."""
    return [HelpApplet, HistoryApplet, PoolApplet, LogsApplet]
