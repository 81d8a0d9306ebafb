"""Tests for branch topology parsing."""

import pytest

from fixcheck.models import BranchTier
from fixcheck.topology import BranchInfo, BranchTopology, TopologyError


BRANCHES_CONF = """
# kernel-source branches
master:             build
cve/linux-5.14:     build
SLE15-SP6:          build merge:cve/linux-5.14
SLE15-SP6-GA:       build merge:-SLE15-SP6
SLE15-SP5-LTS:      build
SLE12-SP5-LTSS:     build
SLE15-SP6-RT:       build merge:SLE15-SP6 merge:SLE15-SP6  # duplicated
packaging:          publish
"""


@pytest.fixture
def topology():
    """Create a sample topology."""
    return BranchTopology.from_text(BRANCHES_CONF)


class TestParsing:
    """Tests for branches.conf parsing."""

    def test_build_branches_in_order(self, topology):
        """Test only build branches, in configuration order."""
        assert topology.build_branches() == [
            "master", "cve/linux-5.14", "SLE15-SP6", "SLE15-SP6-GA",
            "SLE15-SP5-LTS", "SLE12-SP5-LTSS", "SLE15-SP6-RT",
        ]

    def test_non_build_branch_known(self, topology):
        """Test branches without build flag are still part of the forest."""
        assert "packaging" in topology
        assert "packaging" not in topology.build_branches()

    def test_merge_sources(self, topology):
        """Test merge flags, including the excluding form."""
        assert topology.merge_sources("SLE15-SP6") == ("cve/linux-5.14",)
        assert topology.merge_sources("SLE15-SP6-GA") == ("SLE15-SP6",)
        assert topology.merge_sources("master") == ()

    def test_merge_sources_deduplicated(self, topology):
        """Test repeated merge flags."""
        assert topology.merge_sources("SLE15-SP6-RT") == ("SLE15-SP6",)

    def test_unknown_branch(self, topology):
        """Test queries on unknown branches."""
        assert topology.merge_sources("SLE11-SP4") == ()
        assert topology.merge_closure("SLE11-SP4") == []

    def test_malformed_line(self):
        """Test lines without a colon are rejected."""
        with pytest.raises(TopologyError):
            BranchTopology.from_text("master build\n")

    def test_duplicate_branch(self):
        """Test duplicate definitions are rejected."""
        with pytest.raises(TopologyError):
            BranchTopology.from_text("master: build\nmaster: build\n")

    def test_empty_merge(self):
        """Test an empty merge source is rejected."""
        with pytest.raises(TopologyError):
            BranchTopology.from_text("a: build merge:-\n")

    def test_from_file(self, tmp_path):
        """Test reading from disk."""
        conf = tmp_path / "branches.conf"
        conf.write_text(BRANCHES_CONF)
        assert "SLE15-SP6" in BranchTopology.from_file(conf)

    def test_from_missing_file(self, tmp_path):
        """Test a missing file."""
        with pytest.raises(TopologyError):
            BranchTopology.from_file(tmp_path / "branches.conf")

    def test_read_only(self, topology):
        """Test the forest cannot be modified."""
        with pytest.raises(TypeError):
            topology.branches["new"] = None


class TestClosure:
    """Tests for transitive merge sources."""

    def test_two_levels(self, topology):
        """Test merge sources of merge sources."""
        assert topology.merge_closure("SLE15-SP6-GA") == ["SLE15-SP6", "cve/linux-5.14"]

    def test_cycle(self):
        """Test cycles terminate and exclude the branch itself."""
        topo = BranchTopology.from_text("a: build merge:b\nb: build merge:a\n")
        assert topo.merge_closure("a") == ["b"]

    def test_tier(self, topology):
        """Test tier lookup."""
        assert topology.tier("SLE12-SP5-LTSS") == BranchTier.EXTENDED
        assert topology.branches["SLE15-SP6-GA"].tier == BranchTier.GENERAL_AVAILABILITY


class TestReadOnly:
    """Tests for immutability of directly built topologies."""

    def test_direct_construction_is_read_only(self):
        """Test the branch mapping cannot be changed after construction."""
        branches = {"SLE15-SP6": BranchInfo(name="SLE15-SP6", build=True)}
        topology = BranchTopology(branches=branches)
        branches["SLE15-SP7"] = BranchInfo(name="SLE15-SP7", build=True)
        assert topology.build_branches() == ["SLE15-SP6"]
        with pytest.raises(TypeError):
            topology.branches["SLE15-SP7"] = BranchInfo(name="SLE15-SP7")

    def test_default_is_empty(self):
        """Test an empty topology."""
        assert BranchTopology().build_branches() == []
