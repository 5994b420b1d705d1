"""Tests for rank levels.

Ranks are the ordered tiers every authorization decision is based on.
"""

import pytest

from py_shell.ranks import DEFAULT_USER_RANK, RankLevel, rank_allows


class TestRankOrdering:
    """Verify the tiers compare numerically."""

    def test_tiers_are_ordered(self) -> None:
        """Higher tiers should compare greater than lower ones."""
        assert RankLevel.NONE < RankLevel.UNVERIFIED < RankLevel.BASIC_USER
        assert RankLevel.SYSTEM_ADMIN < RankLevel.GLOBAL_ADMIN < RankLevel.SUPER_USER

    def test_default_user_rank_is_unverified(self) -> None:
        """New actors should start unverified."""
        assert DEFAULT_USER_RANK is RankLevel.UNVERIFIED

    def test_rank_allows_equal(self) -> None:
        """An equal rank should be admitted."""
        assert rank_allows(RankLevel.BASIC_USER, RankLevel.BASIC_USER)

    def test_rank_allows_higher(self) -> None:
        """A higher rank should be admitted."""
        assert rank_allows(RankLevel.BASIC_USER, RankLevel.SUPER_USER)

    def test_rank_refuses_lower(self) -> None:
        """A lower rank should be refused."""
        assert not rank_allows(RankLevel.SUPER_USER, RankLevel.BASIC_USER)


class TestRankConversion:
    """Verify converting numbers and names to tiers."""

    def test_convert_exact_value(self) -> None:
        """An exact tier value should map to that tier."""
        assert RankLevel.convert(100) is RankLevel.BASIC_USER

    def test_convert_rounds_down(self) -> None:
        """A value between tiers should map to the tier below it."""
        assert RankLevel.convert(450) is RankLevel.COMPANY_ADMIN

    def test_convert_below_everything_is_unknown(self) -> None:
        """Values below every tier should map to UNKNOWN."""
        assert RankLevel.convert(-50) is RankLevel.UNKNOWN

    def test_parse_number(self) -> None:
        """Numeric text should be converted."""
        assert RankLevel.parse("800") is RankLevel.SYSTEM_ADMIN

    @pytest.mark.parametrize("text", ["basic user", "BasicUser", "BASIC_USER", "basic-user"])
    def test_parse_names(self, text: str) -> None:
        """Names should parse regardless of case or separators."""
        assert RankLevel.parse(text) is RankLevel.BASIC_USER

    def test_parse_unknown_raises(self) -> None:
        """Unrecognised text should raise ValueError."""
        with pytest.raises(ValueError, match="Unknown rank"):
            RankLevel.parse("overlord")

    def test_label(self) -> None:
        """Labels should be title-cased with spaces."""
        assert RankLevel.SUPER_USER.label == "Super User"
