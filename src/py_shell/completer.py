"""Tab completion for command verbs.

The completer separates **what to complete** (pure logic, fully
testable) from **how to show it** (the input reader rewrites its edit
buffer and rings the bell).

Only the first word of a line is completed, and only against plugin
commands the actor's rank is allowed to see, so completion never
advertises a command that would be refused.  When several commands
share the typed prefix, the completion extends the word as far as all
candidates agree (the *longest unambiguous match*); a single candidate
is completed in full and followed by a space.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from py_shell.plugins import PluginRegistry
    from py_shell.ranks import RankLevel


@dataclass(frozen=True)
class Completion:
    """The outcome of completing a line.

    Attributes:
        text: The new line text.
        candidates: Every command that matched the typed prefix.

    """

    text: str
    candidates: tuple[str, ...]

    @property
    def matched(self) -> bool:
        """Return True if at least one command matched."""
        return bool(self.candidates)

    @property
    def unique(self) -> bool:
        """Return True if exactly one command matched."""
        return len(self.candidates) == 1


class Completer:
    """Verb completer backed by a plugin registry."""

    def __init__(self, registry: PluginRegistry) -> None:
        """Create a completer over *registry*."""
        self._registry = registry

    def completions(self, prefix: str, rank: RankLevel) -> list[str]:
        """Return visible command names starting with *prefix*, sorted."""
        return self._registry.find(prefix, rank)

    def complete(self, line: str, rank: RankLevel) -> Completion:
        """Complete the verb of *line*.

        Lines that already contain a space (the verb is finished) are
        returned unchanged with no candidates.
        """
        if " " in line.strip() or not line.strip():
            return Completion(text=line, candidates=())
        prefix = line.strip()
        candidates = tuple(self.completions(prefix, rank))
        if not candidates:
            return Completion(text=line, candidates=())
        if len(candidates) == 1:
            return Completion(text=candidates[0] + " ", candidates=candidates)
        common = os.path.commonprefix(list(candidates))
        return Completion(text=max(common, prefix.upper(), key=len), candidates=candidates)
