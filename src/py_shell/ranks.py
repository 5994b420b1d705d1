"""Rank levels — the ordered access tiers used for admission control.

Every command the shell runs is gated by a **rank**: an integer tier
that says how much the actor issuing the command is trusted.  A plugin
declares the minimum rank it needs; the dispatcher compares that to
the actor's rank before running anything.

The tiers are sparse on purpose (0, 10, 100, 200, ...).  Gaps leave
room for intermediate tiers later, and any integer can be converted to
the nearest named tier at or below it.

Design choices:
    - **IntEnum** so ranks compare with ``<`` / ``>=`` numerically,
      exactly like the rest of the authorization code expects.
    - **One comparison function** (``rank_allows``) used by both the
      visibility filter and the hard dispatch check, so the two can
      never disagree about the ordering.
"""

from enum import IntEnum


class RankLevel(IntEnum):
    """Named access tiers, lowest to highest."""

    UNKNOWN = -1
    NONE = 0
    UNVERIFIED = 10
    BASIC_USER = 100
    COMPANY_USER = 200
    COMPANY_ADMIN = 400
    ORG_USER = 500
    ORG_ADMIN = 700
    SYSTEM_ADMIN = 800
    GLOBAL_ADMIN = 900
    SUPER_USER = 1000

    @classmethod
    def convert(cls, value: int) -> "RankLevel":
        """Map any integer to the highest named tier not above it.

        Values below every tier map to ``UNKNOWN``.

        Args:
            value: A raw numeric rank.

        Returns:
            The matching named tier.

        """
        result = cls.UNKNOWN
        for tier in cls:
            if tier <= value:
                result = tier
        return result

    @classmethod
    def parse(cls, text: str) -> "RankLevel":
        """Parse a rank from a number or a tier name.

        Names are matched case-insensitively and may use spaces,
        hyphens or underscores (``"basic user"``, ``"BasicUser"`` and
        ``"BASIC_USER"`` are all accepted).

        Raises:
            ValueError: If *text* is neither a number nor a tier name.

        """
        cleaned = text.strip()
        try:
            return cls.convert(int(cleaned))
        except ValueError:
            pass
        key = cleaned.upper().replace("-", "").replace("_", "").replace(" ", "")
        for tier in cls:
            if tier.name.replace("_", "") == key:
                return tier
        msg = f"Unknown rank '{text}'"
        raise ValueError(msg)

    @property
    def label(self) -> str:
        """Return a human-readable name, e.g. ``Basic User``."""
        return self.name.replace("_", " ").title()


DEFAULT_USER_RANK = RankLevel.UNVERIFIED


def rank_allows(required: RankLevel, actual: RankLevel) -> bool:
    """Return True if *actual* meets or exceeds *required*."""
    return actual >= required
