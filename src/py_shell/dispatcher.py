"""The dispatcher — the shell's main loop and the host's handle on it.

A host builds one ``Dispatcher`` and keeps a reference to it; there is
no process-wide shell instance.  The dispatcher owns (or is handed)
every shared component: the command queue, the plugin registry, the
cmdlet table, the alias and environment tables, the result pool, the
logger, the heartbeat timer and the console.

The loop, run on its own thread by ``start()`` or inline by ``run()``::

    while keep_alive or queue.active:
        1. fire the heartbeat if it is due
        2. take the next waiting command (FIFO) under the console lock
        3. expand %VAR% / $env[VAR] placeholders
        4. resolve the verb:
             len > 3  → plugin registry
             len <= 3 → cmdlet table
             neither  → alias table (re-queue the expansion once)
             nothing  → UnresolvedCommandError
        5. authorize: actor rank >= required rank
        6. execute with a fresh cancellation token
        7. report output and errors, set ERRORLEVEL, publish the
           result to the pool, sweep the pool

Failures never escape the loop.  Parse, resolution and authorization
errors are printed; plugin exceptions are wrapped in
``PluginExecutionError`` and recorded on the plugin instance.  Setting
``EXCEPTIONS=ALLOW`` (or ``allow_exceptions`` in the settings) lets
plugin exceptions propagate for debugging.

The exit cmdlet ``XIT`` calls ``shutdown()``: the shell token is
cancelled fatally, the queue is closed, and any commands still waiting
are discarded without running.  Processed history is kept.

Design choices:
    - **A real lock for the console.**  The dispatcher holds
      ``console_lock`` for the whole of each command; the input reader
      holds it for each keystroke.  Neither ever draws over the other.
    - **Condition-variable wake-ups.**  When idle, the loop sleeps on
      the queue's condition (at most ``command_interval`` seconds, or
      until the heartbeat is due) and wakes as soon as work arrives.
    - **``process_pending()`` is public** so the HTTP host and the
      tests can drive the dispatcher synchronously, one batch at a
      time, without a background thread.
"""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Callable
from pathlib import Path

from py_shell.aliases import AliasTable
from py_shell.applets import builtin_applets
from py_shell.cancellation import CancellationToken
from py_shell.cmdlets import CMDLET_LENGTH, EXIT_TOKEN, Cmdlet, CmdletError, CmdletTable
from py_shell.commands import Command, CommandLine, CommandQueue, QueueClosedError
from py_shell.config import ShellSettings
from py_shell.console import ECHO_COLORS, ERROR_COLORS, NOTICE_COLORS, BufferConsole, Console
from py_shell.env import SYSTEM_OWNER, EnvironmentTable
from py_shell.errors import (
    AuthorizationError,
    CommandCancelled,
    FatalAbort,
    ParseError,
    PluginExecutionError,
    ShellError,
    UnresolvedCommandError,
)
from py_shell.heartbeat import HeartbeatCallback, HeartbeatTimer
from py_shell.logging import Logger, LogLevel
from py_shell.plugins import OperationalState, Plugin, PluginRegistry, Registration
from py_shell.pool import ResultPool
from py_shell.ranks import RankLevel, rank_allows
from py_shell.users import Actor, ActorManager

ERRORLEVEL = "ERRORLEVEL"
ERROR_FLAG = "1"

_SCRIPT_COMMENTS = ("//", "#")
_REPORTABLE = (ParseError, UnresolvedCommandError, AuthorizationError, PluginExecutionError)
_PROMPT_FIELD = re.compile(r"\$(app|user|time)\[(\w+)\]", re.IGNORECASE)


class Dispatcher:
    """Resolves, authorizes and runs queued commands."""

    def __init__(
        self,
        *,
        settings: ShellSettings | None = None,
        registry: PluginRegistry | None = None,
        cmdlets: CmdletTable | None = None,
        console: Console | None = None,
        actors: ActorManager | None = None,
        aliases: AliasTable | None = None,
        environment: EnvironmentTable | None = None,
        pool: ResultPool | None = None,
        logger: Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create a dispatcher, building default components where none are given.

        Args:
            settings: Shell configuration.
            registry: Plugin commands (defaults to the built-in applets).
            cmdlets: Short-form built-ins (defaults to the standard set).
            console: Where output goes and keys come from.
            actors: Identity and credential registry.
            aliases: Alias table.
            environment: Environment variable table.
            pool: Shared result pool.
            logger: Audit log.
            clock: Monotonic clock for the heartbeat.

        """
        self._settings = settings if settings is not None else ShellSettings()
        s = self._settings
        self.logger = logger if logger is not None else Logger()
        self.registry = registry if registry is not None else PluginRegistry(builtin_applets())
        self.cmdlets = cmdlets if cmdlets is not None else CmdletTable(revoked=s.revoked_cmdlets)
        self.console: Console = console if console is not None else BufferConsole()
        self.actors = actors if actors is not None else ActorManager(default_rank=s.default_rank)
        self.aliases = aliases if aliases is not None else AliasTable(s.alias_limit)
        self.environment = environment if environment is not None else EnvironmentTable()
        self.pool = pool if pool is not None else ResultPool()
        self.queue = CommandQueue(s.cache_limit)
        self.heartbeat = HeartbeatTimer(s.heartbeat_interval, clock=clock, logger=self.logger)

        self._keep_alive = True
        self._console_lock = threading.Lock()
        self._token = CancellationToken()
        self._current_token: CancellationToken | None = None
        self._session: Actor | None = None
        self._require_auth: bool | None = None
        self._thread: threading.Thread | None = None
        self._stopped = threading.Event()
        self._cycles = 0
        self.last_plugin: Plugin | None = None
        self.last_error: ShellError | None = None

    # -- Properties ---------------------------------------------------------

    @property
    def settings(self) -> ShellSettings:
        """Return the shell configuration."""
        return self._settings

    @property
    def keep_alive(self) -> bool:
        """Return False once shutdown has been requested."""
        return self._keep_alive

    @property
    def console_lock(self) -> threading.Lock:
        """Return the lock guarding console state."""
        return self._console_lock

    @property
    def listening(self) -> bool:
        """Return True while the dispatcher is not holding the console."""
        return not self._console_lock.locked()

    @property
    def busy(self) -> bool:
        """Return True while a command is being dispatched."""
        return self._current_token is not None

    @property
    def cycles(self) -> int:
        """Return the number of commands dispatched so far."""
        return self._cycles

    @property
    def exit_token(self) -> str:
        """Return the reserved exit command."""
        return EXIT_TOKEN

    @property
    def system_actor(self) -> Actor:
        """Return the built-in system actor."""
        return self.actors.system

    @property
    def actor(self) -> Actor:
        """Return the logged-on actor, or the anonymous actor."""
        return self._session if self._session is not None else self.actors.anonymous

    @property
    def require_auth(self) -> bool:
        """Return True if anonymous use is limited to logging on."""
        return bool(self._require_auth)

    @property
    def error_level(self) -> str:
        """Return the ``ERRORLEVEL`` value ('' after a successful command)."""
        return self.environment.get(ERRORLEVEL)

    @property
    def prompt(self) -> str:
        """Return the prompt template."""
        return self.environment.get("PROMPT", self._settings.prompt)

    @prompt.setter
    def prompt(self, template: str) -> None:
        """Change the prompt template."""
        self.environment.set("PROMPT", template, owner=SYSTEM_OWNER, raw=True)

    # -- Host API -----------------------------------------------------------

    def activate(self, *, require_auth: bool = False, default_rank: RankLevel | None = None) -> None:
        """Install default variables and aliases and set the default rank.

        ``require_auth`` can only be chosen once; later calls keep the
        first choice.  When it is set, the anonymous actor drops to
        rank NONE until someone logs on with ``USR``.
        """
        if self._require_auth is None:
            self._require_auth = require_auth
        elif self._require_auth != require_auth:
            self.logger.log(
                LogLevel.WARNING, "require_auth is already set; ignoring change", source="dispatcher"
            )

        rank = default_rank if default_rank is not None else self._settings.default_rank
        self.actors.set_default_rank(RankLevel.NONE if self._require_auth else rank)

        env = self.environment
        if "PROMPT" not in env:
            self.prompt = self._settings.prompt
        env.set("ECHO", "on", owner=SYSTEM_OWNER)
        env.set("HOMEPATH", str(Path.home()), owner=SYSTEM_OWNER, read_only=True)
        env.set("APPNAME", self._settings.app_name, owner=SYSTEM_OWNER, read_only=True)

        for name, target in (("exit", EXIT_TOKEN), ("alias", "NAM")):
            if name not in self.aliases:
                self.aliases.add(name, target)

        self.logger.log(
            LogLevel.INFO,
            f"Activated (require_auth={self.require_auth}, default rank {self.actor.rank.label})",
            source="dispatcher",
        )
        if self._require_auth:
            self.console.write_line("Log on with: USR <name> <password>", NOTICE_COLORS)

    def enqueue(self, text: str, actor: Actor | None = None, *, allow_cache: bool = True) -> Command | None:
        """Queue a command for dispatch.

        Args:
            text: The command line.
            actor: Who issued it (defaults to the current actor).
            allow_cache: Keep it in history once processed.

        Returns:
            The queued command, or None if the shell is shutting down.

        Raises:
            ValueError: If *text* is empty.

        """
        cmd = Command(text, actor if actor is not None else self.actor, allow_cache=allow_cache)
        try:
            return self.queue.enqueue(cmd)
        except QueueClosedError as e:
            self.logger.log(LogLevel.WARNING, str(e), source="dispatcher", actor=cmd.actor.name)
            return None

    def run_script(self, text: str, actor: Actor | None = None) -> int:
        """Queue each line of *text* as a non-cached command.

        Blank lines and lines starting with ``//`` or ``#`` are skipped.

        Returns:
            The number of commands queued.

        """
        queued = 0
        for raw in text.splitlines():
            line = raw.strip()
            if not line or line.startswith(_SCRIPT_COMMENTS):
                continue
            if self.enqueue(line, actor, allow_cache=False) is not None:
                queued += 1
        return queued

    def on_heartbeat(self, callback: HeartbeatCallback) -> None:
        """Subscribe *callback* to heartbeat notifications."""
        self.heartbeat.subscribe(callback)

    def log_on(self, name: str, password: str) -> Actor | None:
        """Switch the session to the named actor if the password matches."""
        actor = self.actors.authenticate(name, password)
        if actor is None:
            self.logger.log(LogLevel.WARNING, f"Failed log on for '{name}'", source="auth")
            return None
        self._session = actor
        self.logger.log(LogLevel.INFO, f"{actor.name} logged on", source="auth", actor=actor.name)
        return actor

    def log_off(self) -> None:
        """Return the session to the anonymous actor."""
        if self._session is not None:
            self.logger.log(LogLevel.INFO, "Logged off", source="auth", actor=self._session.name)
        self._session = None

    def render_prompt(self) -> str:
        """Return the prompt with ``$app[...]``, ``$user[...]`` and variables filled in."""
        actor = self.actor

        def field(match: re.Match[str]) -> str:
            group, name = match.group(1).lower(), match.group(2).lower()
            values = {
                ("app", "name"): self._settings.app_name,
                ("app", "version"): self._settings.version,
                ("user", "name"): actor.name,
                ("user", "rank"): actor.rank.label,
                ("time", "now"): time.strftime("%H:%M:%S"),
            }
            return values.get((group, name), match.group(0))

        return self.environment.expand(_PROMPT_FIELD.sub(field, self.prompt))

    def interrupt(self, reason: str = "interrupted") -> bool:
        """Cancel the running command (the shell keeps going).

        Returns:
            True if a command was running.

        """
        token = self._current_token
        if token is None:
            return False
        token.cancel(reason)
        return True

    def shutdown(self, reason: str = "shutdown") -> None:
        """Stop the loop, discarding commands that have not started."""
        if not self._keep_alive:
            return
        self._keep_alive = False
        self._token.cancel(reason, fatal=True)
        self.queue.close()
        dropped = self.queue.discard_waiting()
        self.logger.log(
            LogLevel.INFO,
            f"Shutting down ({reason}); discarded {dropped} waiting command(s)",
            source="dispatcher",
        )

    # -- Loop ---------------------------------------------------------------

    def start(self) -> threading.Thread:
        """Run the loop on a background thread.

        Raises:
            RuntimeError: If the loop is already running.

        """
        if self._thread is not None and self._thread.is_alive():
            msg = "Dispatcher is already running"
            raise RuntimeError(msg)
        self._thread = threading.Thread(target=self.run, name="dispatcher", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the loop to finish.

        Returns:
            True if the loop has stopped.

        """
        if self._thread is not None:
            self._thread.join(timeout)
        return self._stopped.is_set()

    def run(self) -> None:
        """Dispatch commands until shutdown and the queue is drained."""
        self._stopped.clear()
        self.logger.log(LogLevel.INFO, "Dispatcher started", source="dispatcher")
        try:
            while self._keep_alive or self.queue.active:
                self._beat()
                if self.process_pending() == 0 and self._keep_alive:
                    self.queue.wait_for_work(self._idle_timeout())
        finally:
            self._stopped.set()
            self.logger.log(LogLevel.INFO, "Dispatcher stopped", source="dispatcher")

    def process_pending(self) -> int:
        """Dispatch every waiting command, in order, on the calling thread.

        Returns:
            The number of commands dispatched.

        """
        dispatched = 0
        while True:
            with self._console_lock:
                cmd = self.queue.next_waiting()
                if cmd is None:
                    break
                self.dispatch(cmd)
            dispatched += 1
            self.pool.sweep()
        return dispatched

    def dispatch(self, cmd: Command) -> OperationalState | None:
        """Resolve, authorize and run one command (console lock held).

        Returns:
            The end state of the plugin or cmdlet that ran, or None if
            the command was re-queued as an alias or failed to resolve.

        """
        self._cycles += 1
        self.last_error = None
        if self.environment.get("ECHO").lower() == "on":
            self.console.write_line(f"{self.render_prompt()}{cmd.text}", ECHO_COLORS)
        self.logger.log(LogLevel.DEBUG, f"Dispatching '{cmd.text}'", source="dispatcher", actor=cmd.actor.name)

        try:
            text = self.environment.expand(cmd.text)
            if not text.strip():
                msg = f"'{cmd.text}' expands to an empty command"
                raise ParseError(msg)
            work = cmd if text == cmd.text else cmd.derive(text)
            line = work.parse()
            if len(work.key) > CMDLET_LENGTH:
                entry = self.registry.lookup(work.key)
                if entry is not None:
                    return self._run_plugin(entry, work)
            else:
                cmdlet = self.cmdlets.lookup(work.key)
                if cmdlet is not None:
                    return self._run_cmdlet(cmdlet, work, line)
            if self._expand_alias(work):
                return None
            msg = f"'{work.verb}' is not a recognized command"
            raise UnresolvedCommandError(msg)
        except _REPORTABLE as e:
            self._report(e, cmd.actor)
            return None

    # -- Internals ----------------------------------------------------------

    def _run_plugin(self, entry: Registration, cmd: Command) -> OperationalState:
        actor = cmd.actor
        instance = entry.factory()
        self.last_plugin = instance
        descriptor = entry.descriptor
        if not self.registry.authorize(descriptor, actor.rank):
            msg = (
                f"{descriptor.name} requires rank {descriptor.required_rank.label}; "
                f"{actor.name} is {actor.rank.label}"
            )
            instance.add_error(msg)
            raise AuthorizationError(msg)

        token = self._token.child()
        self._current_token = token
        try:
            state = instance.execute(cmd, actor.rank, token=token, host=self)
        except FatalAbort as e:
            self._emit(instance)
            self.shutdown(str(e) or "aborted")
            return instance.state
        except _REPORTABLE:
            self._emit(instance)
            raise
        except Exception as e:
            if self._allow_exceptions():
                raise
            error = PluginExecutionError(f"{descriptor.name} failed: {e}")
            instance.add_error(str(error))
            self._emit(instance)
            self.logger.log(LogLevel.ERROR, str(error), source="plugin", actor=actor.name)
            self.last_error = error
            self._set_error_level(failed=True)
            return instance.state
        finally:
            self._current_token = None

        self._emit(instance)
        if state.finished:
            self.pool.publish(instance, cmd.text, actor.name)
        self._set_error_level(failed=state is not OperationalState.COMPLETE)
        self.logger.log(
            LogLevel.INFO, f"{descriptor.name} ended {state}", source="plugin", actor=actor.name
        )
        return state

    def _run_cmdlet(self, cmdlet: Cmdlet, cmd: Command, line: CommandLine) -> OperationalState:
        actor = cmd.actor
        if not rank_allows(cmdlet.required_rank, actor.rank):
            msg = f"{cmdlet.name} requires rank {cmdlet.required_rank.label}"
            raise AuthorizationError(msg)
        # Cmdlets run without a token; ``busy`` stays False while they run.
        try:
            output = cmdlet.handler(self, cmd, line)
        except CmdletError as e:
            self._report(e, actor)
            return OperationalState.COMPLETE_WITH_ERRORS
        except FatalAbort as e:
            self.shutdown(str(e) or "aborted")
            return OperationalState.CANCELLED
        except CommandCancelled as e:
            self._report(e, actor)
            return OperationalState.CANCELLED
        except _REPORTABLE:
            raise
        except Exception as e:
            if self._allow_exceptions():
                raise
            msg = f"{cmdlet.name} failed: {e}"
            raise PluginExecutionError(msg) from e
        if output:
            self.console.write_line(output)
        self._set_error_level(failed=False)
        return OperationalState.COMPLETE

    def _expand_alias(self, cmd: Command) -> bool:
        expansion = self.aliases.resolve(cmd.verb, cmd.payload, cmd.alias_chain)
        if expansion is None:
            return False
        chain = (*cmd.alias_chain, cmd.key)
        self.logger.log(
            LogLevel.DEBUG, f"Alias {cmd.key} -> '{expansion}'", source="alias", actor=cmd.actor.name
        )
        self.queue.enqueue(Command(expansion, cmd.actor, allow_cache=False, alias_chain=chain))
        return True

    def _emit(self, instance: Plugin) -> None:
        for text in instance.output:
            self.console.write_line(text)
        for error in instance.errors:
            self.console.write_line(f"Error: {error}", ERROR_COLORS)

    def _report(self, error: ShellError, actor: Actor) -> None:
        self.last_error = error
        self.console.write_line(f"Error: {error}", ERROR_COLORS)
        self.logger.log(
            LogLevel.WARNING, f"{type(error).__name__}: {error}", source="dispatcher", actor=actor.name
        )
        self._set_error_level(failed=True)

    def _set_error_level(self, *, failed: bool) -> None:
        self.environment.set(ERRORLEVEL, ERROR_FLAG if failed else "", owner=SYSTEM_OWNER, read_only=True)

    def _allow_exceptions(self) -> bool:
        return self._settings.allow_exceptions or self.environment.get("EXCEPTIONS").upper() == "ALLOW"

    def _beat(self) -> None:
        if not self.heartbeat.due():
            return
        if len(self.registry) > 0:
            self.heartbeat.fire(self.actor, self.registry.snapshot())
        else:
            self.heartbeat.reset()

    def _idle_timeout(self) -> float:
        timeout = self._settings.command_interval
        remaining = self.heartbeat.remaining()
        if remaining is not None and self.heartbeat.subscriber_count:
            timeout = min(timeout, max(remaining, 0.001))
        return timeout
