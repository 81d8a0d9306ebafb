"""
Bulk reference update: record CVE and bug references in every backport of
a kernel-source branch that fixes a published CVE.
"""

import getpass
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from fixcheck.common import logger
from fixcheck.config import FixCheckConfig
from fixcheck.git_queries import KernelSourceRepo
from fixcheck.patch_file import add_missing_references
from fixcheck.resolvers import BugResolver, ResolverCache, VulnsRepo


@dataclass
class UpdateRefsSummary:
    """Outcome of an update-refs run."""
    branch: str
    years: List[int] = field(default_factory=list)
    matched: int = 0
    updated: List[str] = field(default_factory=list)
    unknown_bug: List[str] = field(default_factory=list)
    missing_files: List[str] = field(default_factory=list)
    committed: List[int] = field(default_factory=list)

    @property
    def unchanged(self) -> int:
        return self.matched - len(self.updated) - len(self.unknown_bug) - len(self.missing_files)


def work_branch_name(branch: str, user: Optional[str] = None) -> str:
    """Local branch receiving the reference updates."""
    return f"users/{user or getpass.getuser()}/{branch}/cve-refs"


def update_refs(
    branch: str,
    config: FixCheckConfig,
    cache: ResolverCache,
    first_year: Optional[int] = None,
    last_year: Optional[int] = None,
    checkout: bool = True,
    commit: bool = True,
) -> UpdateRefsSummary:
    """
    Add missing CVE/bug references to the backports of branch.

    Args:
        branch: kernel-source branch, e.g. cve/linux-5.14
        config: Configuration with KSOURCE_GIT and VULNS_GIT
        cache: Resolver cache for the cve2bugzilla list
        first_year: Oldest CVE year to process
        last_year: Newest CVE year to process (default: current year)
        checkout: Check out a work branch from the remote branch first
        commit: Commit each year's edits with the clone's scripts/log2

    Returns:
        Summary of the patches touched
    """
    config.require("ksource_git", "vulns_git")
    first_year = first_year or config.first_cve_year
    last_year = last_year or datetime.now().year

    source = KernelSourceRepo(config.ksource_git, config.remote)
    if checkout:
        source.checkout_work_branch(branch, work_branch_name(branch))

    vulns = VulnsRepo(config.vulns_git)
    vulns.update(cache)
    bugs = BugResolver(cache, config.cve2bug_url, config.network_timeout)

    index = source.patch_index(branch)
    summary = UpdateRefsSummary(branch=branch)
    for year in range(first_year, last_year + 1):
        logger.info(f"[ {year} ] processing...")
        summary.years.append(year)
        updated_before = len(summary.updated)
        for sha, cve_ids in vulns.year_index(year).items():
            path = index.get(sha)
            if path is None:
                continue
            for cve_id in cve_ids:
                summary.matched += 1

                bug = bugs.bug_for(cve_id)
                if bug is None:
                    logger.warning(f"Unknown bug for {cve_id}")
                    summary.unknown_bug.append(cve_id)
                    continue

                patch_path = Path(config.ksource_git) / path
                if not patch_path.exists():
                    logger.warning(f"{path} not in working tree, skipping {cve_id}")
                    summary.missing_files.append(path)
                    continue

                if add_missing_references(patch_path, [cve_id, bug]):
                    summary.updated.append(path)

        if commit and len(summary.updated) > updated_before:
            if source.commit_updates():
                summary.committed.append(year)

    logger.info(
        f"{branch}: {len(summary.updated)} patches updated, "
        f"{len(summary.unknown_bug)} CVEs without bug"
    )
    return summary
