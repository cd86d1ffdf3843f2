# SPDX-License-Identifier: Apache-2.0

"""
Tests for quorum thresholds.
"""

import logging

import pytest

from domain.quorum import compute_quorum, minimum_quorum, qualified_quorum, presence_percent


class TestQuorumThresholds:
    """Test simple-majority and qualified thresholds."""

    def test_thirteen_titulars(self):
        """13 active titulars need 7 present."""
        assert compute_quorum(13, 6).minimum == 7
        assert compute_quorum(13, 6).has_quorum is False
        assert compute_quorum(13, 7).has_quorum is True

    @pytest.mark.parametrize("active", range(1, 40))
    def test_minimum_is_simple_majority(self, active):
        """minimum = floor(n/2)+1 and quorum holds exactly from the minimum."""
        expected = active // 2 + 1
        assert minimum_quorum(active) == expected
        assert compute_quorum(active, expected - 1).has_quorum is False
        assert compute_quorum(active, expected).has_quorum is True

    def test_qualified_is_two_thirds_rounded_up(self):
        assert qualified_quorum(13) == 9
        assert qualified_quorum(12) == 8
        assert qualified_quorum(10) == 7
        assert compute_quorum(13, 7).qualified == 9

    def test_presence_percent_rounding(self):
        assert presence_percent(3, 1) == 33
        assert presence_percent(3, 2) == 67
        assert presence_percent(8, 1) == 13
        assert presence_percent(13, 13) == 100


class TestEmptyRoster:
    """Test the zero-member edge case."""

    def test_empty_roster_never_has_quorum(self):
        """Zero active titulars gives minimum 1, no quorum and 0%."""
        result = compute_quorum(0, 0)
        assert result.minimum == 1
        assert result.has_quorum is False
        assert result.presence_percent == 0

    def test_empty_roster_with_stray_presence(self):
        """Presence records without a roster still do not make quorum."""
        assert compute_quorum(0, 3).has_quorum is False

    def test_empty_roster_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="domain.quorum"):
            compute_quorum(0, 0)
        assert "empty titular roster" in caplog.text

    def test_negative_counts_rejected(self):
        with pytest.raises(ValueError):
            compute_quorum(-1, 0)
        with pytest.raises(ValueError):
            compute_quorum(5, -2)
