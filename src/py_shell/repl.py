"""Interactive entry point — a shell on your terminal.

The REPL wires the pieces together for interactive use:

    1. **Configure** — load settings from a JSON config file if one is
       given (``PY_SHELL_CONFIG``), otherwise use the defaults.
    2. **Activate** — install the default variables and aliases.
    3. **Dispatch** — start the dispatcher loop on a background thread.
    4. **Read** — run the input reader on the main thread, feeding
       keystrokes from the raw terminal into the command queue.
    5. **Exit** — when ``XIT`` (or Ctrl+D) stops the dispatcher, join
       it and restore the terminal.

Everything testable lives elsewhere: the dispatcher and input reader
run against a ``BufferConsole`` in tests.  The helper functions here
(``format_banner``, ``build_prompt``, ``load_settings``) are pure.
"""

import os
from pathlib import Path

from py_shell.config import ConfigStore, ShellSettings
from py_shell.dispatcher import Dispatcher
from py_shell.input_reader import InputReader
from py_shell.terminal import TerminalConsole

CONFIG_ENV_VAR = "PY_SHELL_CONFIG"

_BANNER_WIDTH = 38
_JOIN_TIMEOUT = 5.0


def format_banner(settings: ShellSettings) -> str:
    """Format the start-up banner.

    Args:
        settings: The shell configuration (name and version are shown).

    Returns:
        A multi-line banner string.

    """
    border = "=" * _BANNER_WIDTH
    title = f"{settings.app_name} v{settings.version}"
    return (
        f"{border}\n{title.center(_BANNER_WIDTH)}\n{border}\n"
        "Type HELP or ? for commands, XIT (or exit) to quit."
    )


def build_prompt(dispatcher: Dispatcher) -> str:
    """Return the rendered prompt, or a bare one once the shell has stopped."""
    if not dispatcher.keep_alive:
        return "> "
    return dispatcher.render_prompt()


def load_settings(path: Path | None = None) -> ShellSettings:
    """Read settings from *path* (or ``$PY_SHELL_CONFIG``), else defaults."""
    if path is None:
        configured = os.environ.get(CONFIG_ENV_VAR)
        if not configured:
            return ShellSettings()
        path = Path(configured)
    return ShellSettings.from_store(ConfigStore.load(path))


def run() -> None:
    """Run the interactive shell until the exit command.

    This is the ``py-shell`` console entry point.
    """
    settings = load_settings()
    with TerminalConsole() as console:
        dispatcher = Dispatcher(settings=settings, console=console)
        dispatcher.activate()
        console.write_line(format_banner(settings))
        reader = InputReader(dispatcher)
        dispatcher.start()
        reader.refresh()
        try:
            reader.run()
        finally:
            dispatcher.shutdown("terminal closed")
            dispatcher.join(_JOIN_TIMEOUT)
