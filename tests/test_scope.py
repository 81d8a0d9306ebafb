"""Tests for the CVSS scope filter."""

import pytest

from fixcheck.models import BranchTier
from fixcheck.scope import TIER_THRESHOLDS, affects, classify_tier


class TestClassifyTier:
    """Tests for branch tier classification."""

    @pytest.mark.parametrize("branch,tier", [
        ("SLE12-SP5-LTSS", BranchTier.EXTENDED),
        ("SLE15-SP4-LTSS", BranchTier.EXTENDED),
        ("SLE15-SP6-GA", BranchTier.GENERAL_AVAILABILITY),
        ("SLE15-SP5-LTS", BranchTier.LONG_TERM),
        ("SLE15-SP3-ESPOS", BranchTier.LONG_TERM),
        ("SLE15-SP6", BranchTier.DEFAULT),
        ("cve/linux-5.14", BranchTier.DEFAULT),
        ("master", BranchTier.DEFAULT),
    ])
    def test_classification(self, branch, tier):
        """Test name patterns map to tiers."""
        assert classify_tier(branch) == tier

    def test_ga_must_be_suffix(self):
        """Test GA only counts at the end of the name."""
        assert classify_tier("SLE15-GA-extra") == BranchTier.DEFAULT


class TestAffects:
    """Tests for affects()."""

    def test_unknown_score_never_filters(self):
        """Test an unknown CVSS keeps every branch in scope."""
        for branch in ("SLE12-SP5-LTSS", "SLE15-SP6-GA", "SLE15-SP5-LTS", "master"):
            assert affects(branch, None) is True

    def test_extended_threshold(self):
        """Test extended tier needs 9 or more."""
        assert affects("SLE12-SP5-LTSS", 8.9) is False
        assert affects("SLE12-SP5-LTSS", 9.0) is True
        assert affects("SLE12-SP5-LTSS", 9.8) is True

    def test_ga_threshold(self):
        """Test general availability tier needs 7 or more."""
        assert affects("SLE15-SP6-GA", 6.9) is False
        assert affects("SLE15-SP6-GA", 7) is True

    def test_long_term_threshold(self):
        """Test long-term tier needs 7 or more."""
        assert affects("SLE15-SP5-LTS", 6) is False
        assert affects("SLE15-SP5-LTS", 8) is True

    def test_default_always_affected(self):
        """Test default tier is always affected."""
        assert affects("SLE15-SP6", 0) is True
        assert affects("SLE15-SP6", 0.1) is True

    @pytest.mark.parametrize("branch", ["SLE12-SP5-LTSS", "SLE15-SP6-GA", "SLE15-SP5-LTS"])
    def test_monotonic(self, branch):
        """Test a higher score never flips affected to unaffected."""
        scores = [x / 2 for x in range(0, 21)]
        results = [affects(branch, s) for s in scores]
        first = results.index(True)
        assert all(results[first:])
        assert not any(results[:first])

    def test_thresholds_cover_non_default_tiers(self):
        """Test every non-default tier has a threshold."""
        assert set(TIER_THRESHOLDS) == set(BranchTier) - {BranchTier.DEFAULT}
