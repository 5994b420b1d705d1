"""Dispatch error taxonomy.

Every failure the dispatcher can report belongs to one of these
classes.  The class decides what happens next:

- ``ParseError``, ``AuthorizationError`` and ``UnresolvedCommandError``
  are shown to the actor and the loop carries on.
- ``PluginExecutionError`` wraps whatever a plugin raised; it is
  recorded on the plugin instance and flips the error level.
- ``CommandCancelled`` ends just the running command.
- ``FatalAbort`` ends the dispatch loop itself.
"""


class ShellError(Exception):
    """Base class for every error raised by the dispatch engine."""


class ParseError(ShellError):
    """Raised when command text cannot be tokenised."""


class AuthorizationError(ShellError):
    """Raised when an actor's rank is below a command's requirement."""


class UnresolvedCommandError(ShellError):
    """Raised when no plugin, cmdlet or alias matches a verb."""


class AliasLoopError(UnresolvedCommandError):
    """Raised when alias expansion would revisit an alias already expanded."""


class PluginExecutionError(ShellError):
    """Raised (and recorded) when a plugin fails while executing."""


class CommandCancelled(ShellError):
    """Raised inside a plugin when its invocation was interrupted."""


class FatalAbort(ShellError):
    """Raised to request termination of the dispatch loop."""
