"""Tests for the bulk reference update."""

import pytest

from fixcheck import update_refs as update_refs_module
from fixcheck.common import ConfigError
from fixcheck.config import FixCheckConfig
from fixcheck.resolvers import ResolverCache
from fixcheck.update_refs import UpdateRefsSummary, update_refs, work_branch_name


SHA_A = "a" * 40
SHA_B = "b" * 40
SHA_C = "c" * 40
SHA_D = "d" * 40

PATCH = """From: Someone <someone@example.com>
Subject: fix {name}
Git-commit: {sha}
Patch-mainline: v6.8
References: {refs}

body
"""


class FakeKernelSource:
    checked_out = []
    commits = []
    commit_ok = True

    def __init__(self, path, remote="origin"):
        self.path = path

    def checkout_work_branch(self, branch, name):
        self.checked_out.append((branch, name))

    def commit_updates(self):
        self.commits.append(self.commit_ok)
        return self.commit_ok

    def patch_index(self, branch):
        return {
            SHA_A: "patches.suse/a.patch",
            SHA_B: "patches.suse/b.patch",
            SHA_C: "patches.suse/c.patch",
            SHA_D: "patches.suse/gone.patch",
        }


class FakeVulns:
    def __init__(self, path):
        self.path = path

    def update(self, cache):
        pass

    def year_index(self, year):
        return {
            2022: {SHA_A: ["CVE-2022-0001", "CVE-2022-0002"]},
            2023: {SHA_A: ["CVE-2023-0001"], "e" * 40: ["CVE-2023-0002"]},
            2024: {
                SHA_B: ["CVE-2024-0001"],
                SHA_C: ["CVE-2024-0002"],
                SHA_D: ["CVE-2024-0003"],
            },
        }.get(year, {})


class FakeBugs:
    def __init__(self, cache, url, timeout=30):
        pass

    def bug_for(self, cve_id):
        return {
            "CVE-2022-0001": "bsc#10",
            "CVE-2022-0002": "bsc#11",
            "CVE-2023-0001": "bsc#100",
            "CVE-2024-0001": "bsc#200",
            "CVE-2024-0003": "bsc#300",
        }.get(cve_id)


@pytest.fixture
def config(tmp_path):
    ksource = tmp_path / "kernel-source"
    (ksource / "patches.suse").mkdir(parents=True)
    (ksource / "patches.suse" / "a.patch").write_text(
        PATCH.format(name="a", sha=SHA_A, refs="CVE-2023-0001 bsc#100"))
    (ksource / "patches.suse" / "b.patch").write_text(
        PATCH.format(name="b", sha=SHA_B, refs="git-fixes"))
    (ksource / "patches.suse" / "c.patch").write_text(
        PATCH.format(name="c", sha=SHA_C, refs="git-fixes"))
    vulns = tmp_path / "vulns"
    vulns.mkdir()
    return FixCheckConfig(ksource_git=ksource, vulns_git=vulns, cache_dir=tmp_path / "cache")


@pytest.fixture
def fakes(monkeypatch):
    FakeKernelSource.checked_out = []
    FakeKernelSource.commits = []
    FakeKernelSource.commit_ok = True
    monkeypatch.setattr(update_refs_module, "KernelSourceRepo", FakeKernelSource)
    monkeypatch.setattr(update_refs_module, "VulnsRepo", FakeVulns)
    monkeypatch.setattr(update_refs_module, "BugResolver", FakeBugs)


class TestUpdateRefs:
    """Tests for update_refs()."""

    def test_summary(self, config, fakes, tmp_path):
        """Test matched, updated and skipped backports."""
        summary = update_refs(
            "cve/linux-5.14", config, ResolverCache(tmp_path / "cache"),
            first_year=2023, last_year=2024,
        )
        assert summary.years == [2023, 2024]
        assert summary.matched == 4
        assert summary.updated == ["patches.suse/b.patch"]
        assert summary.unknown_bug == ["CVE-2024-0002"]
        assert summary.missing_files == ["patches.suse/gone.patch"]
        assert summary.unchanged == 1
        assert summary.committed == [2024]

    def test_patch_rewritten(self, config, fakes, tmp_path):
        """Test references are appended to the existing line."""
        update_refs("cve/linux-5.14", config, ResolverCache(tmp_path / "cache"),
                    first_year=2024, last_year=2024)
        content = (config.ksource_git / "patches.suse" / "b.patch").read_text()
        assert "References: git-fixes CVE-2024-0001 bsc#200\n" in content

    def test_checkout(self, config, fakes, tmp_path):
        """Test the work branch is checked out unless disabled."""
        cache = ResolverCache(tmp_path / "cache")
        update_refs("cve/linux-5.14", config, cache, first_year=2024, last_year=2024)
        update_refs("cve/linux-5.14", config, cache, first_year=2024, last_year=2024,
                    checkout=False)
        assert len(FakeKernelSource.checked_out) == 1
        branch, name = FakeKernelSource.checked_out[0]
        assert branch == "cve/linux-5.14"
        assert name.endswith("/cve/linux-5.14/cve-refs")

    def test_every_cve_of_a_sha(self, config, fakes, tmp_path):
        """Test a backport fixing several CVEs gets all of their references."""
        summary = update_refs("cve/linux-5.14", config, ResolverCache(tmp_path / "cache"),
                              first_year=2022, last_year=2022)
        assert summary.matched == 2
        content = (config.ksource_git / "patches.suse" / "a.patch").read_text()
        assert "CVE-2022-0001 bsc#10" in content
        assert "CVE-2022-0002 bsc#11" in content

    def test_commit_per_updated_year(self, config, fakes, tmp_path):
        """Test edits are committed once for each year that changed a patch."""
        summary = update_refs("cve/linux-5.14", config, ResolverCache(tmp_path / "cache"),
                              first_year=2022, last_year=2024)
        assert FakeKernelSource.commits == [True, True]
        assert summary.committed == [2022, 2024]

    def test_no_commit(self, config, fakes, tmp_path):
        """Test edits stay uncommitted when disabled."""
        summary = update_refs("cve/linux-5.14", config, ResolverCache(tmp_path / "cache"),
                              first_year=2024, last_year=2024, commit=False)
        assert summary.updated == ["patches.suse/b.patch"]
        assert FakeKernelSource.commits == []
        assert summary.committed == []

    def test_commit_failure_tolerated(self, config, fakes, tmp_path):
        """Test a failed commit does not abort the update."""
        FakeKernelSource.commit_ok = False
        summary = update_refs("cve/linux-5.14", config, ResolverCache(tmp_path / "cache"),
                              first_year=2024, last_year=2024)
        assert summary.updated == ["patches.suse/b.patch"]
        assert summary.committed == []

    def test_requires_clones(self, tmp_path):
        """Test both clones are needed."""
        config = FixCheckConfig(cache_dir=tmp_path / "cache")
        with pytest.raises(ConfigError, match="KSOURCE_GIT, VULNS_GIT"):
            update_refs("cve/linux-5.14", config, ResolverCache(tmp_path / "cache"))


class TestHelpers:
    """Tests for helpers."""

    def test_work_branch_name(self):
        """Test the per-user work branch."""
        assert work_branch_name("SLE15-SP6", "jdoe") == "users/jdoe/SLE15-SP6/cve-refs"

    def test_unchanged(self):
        """Test unchanged excludes every other outcome."""
        summary = UpdateRefsSummary(branch="x", matched=5, updated=["a"], unknown_bug=["b"])
        assert summary.unchanged == 3
