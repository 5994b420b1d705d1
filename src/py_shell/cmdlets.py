"""Cmdlets — the shell's short-form built-in commands.

Plugin commands have verbs of four or more characters.  Anything
shorter is a **cmdlet**: a built-in that manipulates the shell itself
rather than doing application work.  They are deliberately terse,
three letters at most, so they never collide with plugin names:

    ===  ============================================================
    ?    list cmdlets, visible plugin commands and aliases
    CLS  clear the console
    CMD  run a script file (one command per line)
    EKO  print text; ``EKO /SET:ON`` / ``/SET:OFF`` toggles echo
    NAM  list, define (``NAM ll="LIST /all"``) or remove aliases
    PMT  show or change the prompt
    SET  list or set environment variables
    USR  show, log on (``USR name password``) or log off (``/OFF``)
    VER  show the shell version
    XIT  exit the shell
    ===  ============================================================

Each cmdlet is a plain function ``(dispatcher, command, line) -> str``
registered in a ``CmdletTable``.  The returned string is printed.
Expected failures raise ``CmdletError``; the dispatcher prints them and
sets the error level.  A host can revoke cmdlets it does not want its
users to have (``ShellSettings.revoked_cmdlets``).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, TypeAlias

from py_shell.aliases import Alias
from py_shell.env import SYSTEM_OWNER, VariableAccessError
from py_shell.errors import ShellError
from py_shell.ranks import RankLevel

if TYPE_CHECKING:
    from py_shell.commands import Command, CommandLine
    from py_shell.dispatcher import Dispatcher

CMDLET_LENGTH = 3
EXIT_TOKEN = "XIT"

CmdletHandler: TypeAlias = "Callable[[Dispatcher, Command, CommandLine], str]"


class CmdletError(ShellError):
    """Raised by a cmdlet for an expected, user-facing failure."""


@dataclass(frozen=True)
class Cmdlet:
    """A registered built-in command."""

    name: str
    handler: CmdletHandler
    summary: str
    usage: str = ""
    required_rank: RankLevel = RankLevel.NONE

    def __post_init__(self) -> None:
        """Normalise and check the name length."""
        name = self.name.strip().upper()
        if not 1 <= len(name) <= CMDLET_LENGTH:
            msg = f"Cmdlet names are 1-{CMDLET_LENGTH} characters, got '{self.name}'"
            raise ValueError(msg)
        object.__setattr__(self, "name", name)


class CmdletTable:
    """Name → cmdlet lookup with revocation."""

    def __init__(self, cmdlets: list[Cmdlet] | None = None, *, revoked: tuple[str, ...] = ()) -> None:
        """Create a table from *cmdlets*, minus any *revoked* names."""
        self._cmdlets: dict[str, Cmdlet] = {}
        for cmdlet in cmdlets if cmdlets is not None else default_cmdlets():
            self.register(cmdlet)
        for name in revoked:
            self.revoke(name)

    def register(self, cmdlet: Cmdlet) -> None:
        """Add or replace a cmdlet."""
        self._cmdlets[cmdlet.name] = cmdlet

    def revoke(self, name: str) -> bool:
        """Remove a cmdlet.  The exit cmdlet cannot be revoked.

        Returns:
            True if the cmdlet was removed.

        """
        key = name.strip().upper()
        if key == EXIT_TOKEN:
            return False
        return self._cmdlets.pop(key, None) is not None

    def lookup(self, name: str) -> Cmdlet | None:
        """Return the cmdlet called *name* (case-insensitive), or None."""
        return self._cmdlets.get(name.strip().upper())

    @property
    def names(self) -> list[str]:
        """Return the available cmdlet names, sorted."""
        return sorted(self._cmdlets)

    def list_cmdlets(self) -> list[Cmdlet]:
        """Return every cmdlet sorted by name."""
        return [self._cmdlets[n] for n in self.names]

    def __contains__(self, name: object) -> bool:
        """Return True if *name* is an available cmdlet."""
        return isinstance(name, str) and self.lookup(name) is not None

    def __len__(self) -> int:
        """Return the number of cmdlets."""
        return len(self._cmdlets)


# -- Handlers ---------------------------------------------------------------


def _cmd_exit(host: Dispatcher, _cmd: Command, _line: CommandLine) -> str:
    host.shutdown("exit requested")
    return ""


def _cmd_help(host: Dispatcher, cmd: Command, _line: CommandLine) -> str:
    lines = ["Cmdlets:"]
    lines.extend(f"  {c.name:<4} {c.summary}" for c in host.cmdlets.list_cmdlets())
    visible = host.registry.visible_to(cmd.actor.rank)
    if visible:
        lines.append("Commands:")
        lines.extend(f"  {d.summary()}" for d in visible)
    aliases = host.aliases.list_aliases()
    lines.append(f"Aliases ({len(aliases)} of {host.aliases.limit}):")
    lines.extend(f"  {a}" for a in aliases)
    return "\n".join(lines)


def _cmd_alias(host: Dispatcher, cmd: Command, line: CommandLine) -> str:
    """List, define or remove aliases."""
    if line.has_switch("CLEAR"):
        host.aliases.clear()
        return "Aliases cleared."
    if not line.arguments:
        aliases = host.aliases.list_aliases()
        if not aliases:
            return "No aliases defined."
        return "\n".join(str(a) for a in aliases)
    payload = cmd.payload.strip()
    if "=" in payload or ":" in payload:
        try:
            alias = host.aliases.add_alias(Alias.parse(payload))
        except ValueError as e:
            raise CmdletError(str(e)) from e
        return str(alias)
    name = line.arguments[0]
    if not host.aliases.remove(name):
        msg = f"No alias named '{name}'"
        raise CmdletError(msg)
    return f"Alias '{name.upper()}' removed."


def _cmd_set(host: Dispatcher, cmd: Command, line: CommandLine) -> str:
    """List, show or assign environment variables."""
    env = host.environment
    if line.has_switch("IMPORT"):
        count = env.import_os_environ()
        return f"Imported {count} variable(s)."
    if not line.arguments:
        return "\n".join(
            f"{v}{'  [RO]' if v.read_only else ''}" for v in env.variables()
        ) or "No variables set."
    assignment = " ".join(line.arguments)
    if "=" not in assignment:
        var = env.variable(assignment)
        if var is None:
            msg = f"Variable '{assignment}' is not set"
            raise CmdletError(msg)
        return str(var)
    name, value = assignment.split("=", 1)
    try:
        var = env.set(name, value, owner=cmd.actor.name, read_only=line.has_switch("RO"))
    except (ValueError, VariableAccessError) as e:
        raise CmdletError(str(e)) from e
    return "" if var is None else str(var)


def _cmd_echo(host: Dispatcher, cmd: Command, line: CommandLine) -> str:
    setting = line.switch("SET")
    if setting is not None:
        value = setting.strip().lower()
        if value not in ("on", "off"):
            msg = "Usage: EKO /SET:ON|OFF"
            raise CmdletError(msg)
        host.environment.set("ECHO", value, owner=SYSTEM_OWNER)
        return f"Echo is {value}."
    return cmd.payload


def _cmd_prompt(host: Dispatcher, cmd: Command, _line: CommandLine) -> str:
    template = cmd.payload
    if not template.strip():
        return host.prompt
    quoted = template.strip()
    if len(quoted) >= 2 and quoted[0] == quoted[-1] and quoted[0] in "\"'":  # noqa: PLR2004
        template = quoted[1:-1]
    host.prompt = template
    return ""


def _cmd_clear(host: Dispatcher, _cmd: Command, _line: CommandLine) -> str:
    host.console.clear()
    return ""


def _cmd_script(host: Dispatcher, cmd: Command, line: CommandLine) -> str:
    """Queue every command line in a script file."""
    if not line.arguments:
        msg = "Usage: CMD <script file>"
        raise CmdletError(msg)
    path = Path(line.arguments[0])
    try:
        text = path.read_text()
    except OSError as e:
        msg = f"Cannot read script '{path}': {e.strerror or e}"
        raise CmdletError(msg) from e
    count = host.run_script(text, actor=cmd.actor)
    return f"Queued {count} command(s) from {path.name}."


def _cmd_user(host: Dispatcher, cmd: Command, line: CommandLine) -> str:
    """Show the current actor, log on, or log off."""
    if line.has_switch("OFF"):
        host.log_off()
        return f"Logged off. Now {host.actor}."
    if not line.arguments:
        return f"Current user: {cmd.actor}"
    if len(line.arguments) < 2:  # noqa: PLR2004
        msg = "Usage: USR <name> <password> | USR /OFF"
        raise CmdletError(msg)
    actor = host.log_on(line.arguments[0], line.arguments[1])
    if actor is None:
        msg = "Invalid user name or password"
        raise CmdletError(msg)
    return f"Logged on as {actor}."


def _cmd_version(host: Dispatcher, _cmd: Command, _line: CommandLine) -> str:
    return f"{host.settings.app_name} v{host.settings.version}"


def default_cmdlets() -> list[Cmdlet]:
    """Return the standard cmdlet set."""
    return [
        Cmdlet("?", _cmd_help, "List cmdlets, commands and aliases"),
        Cmdlet("CLS", _cmd_clear, "Clear the console"),
        Cmdlet("CMD", _cmd_script, "Run a script file", "<file>"),
        Cmdlet("EKO", _cmd_echo, "Print text or toggle echo", "<text> | /SET:ON|OFF"),
        Cmdlet("NAM", _cmd_alias, "Manage aliases", '[name="command" | name | /CLEAR]'),
        Cmdlet("PMT", _cmd_prompt, "Show or set the prompt", "[template]"),
        Cmdlet("SET", _cmd_set, "Show or set variables", "[NAME=value [/RO] | /IMPORT]"),
        Cmdlet("USR", _cmd_user, "Show, log on or log off", "[name password | /OFF]"),
        Cmdlet("VER", _cmd_version, "Show the shell version"),
        Cmdlet(EXIT_TOKEN, _cmd_exit, "Exit the shell"),
    ]
