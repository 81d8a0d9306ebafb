"""
The check workflow: resolve a fix, evaluate every branch, reduce to actions.
"""

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from fixcheck.common import console as default_console
from fixcheck.common import logger
from fixcheck.config import FixCheckConfig
from fixcheck.evaluator import BranchStateEvaluator
from fixcheck.git_queries import KernelSourceRepo, UpstreamRepo
from fixcheck.ledger import BranchStateLedger
from fixcheck.models import Action, BranchStateRecord, Fix
from fixcheck.reducer import ActionReducer
from fixcheck.resolvers import BugResolver, CVSSResolver, FixResolver, ResolverCache, VulnsRepo
from fixcheck.topology import BranchTopology


@dataclass
class CheckOptions:
    """Operator switches for one check."""
    quiet: bool = False
    verbose: bool = False
    refresh: bool = False
    flat: bool = False
    cvss_score: Optional[float] = None
    bug: Optional[str] = None


class CheckSession:
    """
    Data sources for one run, plus a scratch workspace.

    The workspace stages cache writes and is removed on exit whatever the
    outcome of the run.
    """

    def __init__(self, config: FixCheckConfig, refresh: bool = False):
        self.config = config
        self.refresh = refresh
        self.workspace: Optional[Path] = None
        self.cache: Optional[ResolverCache] = None

    def __enter__(self) -> "CheckSession":
        self.workspace = Path(tempfile.mkdtemp(prefix="check-kernel-fix-"))
        self.cache = ResolverCache(
            self.config.cache_dir,
            expire_days=self.config.cache_expire_days,
            refresh=self.refresh,
            staging_dir=self.workspace,
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self.workspace is not None:
            shutil.rmtree(self.workspace, ignore_errors=True)
            self.workspace = None

    def upstream(self) -> UpstreamRepo:
        self.config.require("linux_git")
        return UpstreamRepo(self.config.linux_git, self.config.upstream_ref)

    def source(self) -> KernelSourceRepo:
        self.config.require("ksource_git")
        return KernelSourceRepo(self.config.ksource_git, self.config.remote)

    def topology(self) -> BranchTopology:
        self.config.require("ksource_git")
        return BranchTopology.from_file(self.config.branches_conf_path)

    def vulns(self) -> Optional[VulnsRepo]:
        if self.config.vulns_git is None:
            return None
        self.config.require("vulns_git")
        vulns = VulnsRepo(self.config.vulns_git)
        vulns.update(self.cache)
        return vulns

    def fix_resolver(self, upstream: UpstreamRepo) -> FixResolver:
        timeout = self.config.network_timeout
        return FixResolver(
            upstream,
            vulns=self.vulns(),
            bugs=BugResolver(self.cache, self.config.cve2bug_url, timeout),
            cvss=CVSSResolver(self.cache, self.config.nvd_api_base, timeout),
        )


def evaluate_and_reduce(
    fix: Fix,
    topology: BranchTopology,
    evaluator: BranchStateEvaluator,
    options: CheckOptions,
    console: Optional[Console] = None,
) -> List[Action]:
    """Both passes over an already resolved fix."""
    console = console or default_console

    def progress(record: BranchStateRecord) -> None:
        if not options.quiet and not options.verbose:
            console.print(".", end="")

    evaluator.evaluate_all(topology.build_branches(), fix, progress)
    if not options.quiet and not options.verbose:
        console.print()

    reducer = ActionReducer(
        topology,
        cvss_score=fix.cvss_score,
        flat=options.flat,
        verbose=options.verbose,
    )
    actions = reducer.reduce(evaluator.ledger)
    reducer.emit(actions, console)
    return actions


def run_check(
    target: str,
    options: Optional[CheckOptions] = None,
    config: Optional[FixCheckConfig] = None,
    console: Optional[Console] = None,
) -> List[Action]:
    """
    Check which branches need the upstream fix named by target.

    Args:
        target: Upstream commit id or CVE id
        options: Operator switches
        config: Configuration (default: from environment)
        console: Output console

    Returns:
        The actions printed, informational lines included
    """
    options = options or CheckOptions()
    config = config or FixCheckConfig.from_env()
    console = console or default_console

    with CheckSession(config, refresh=options.refresh) as session:
        upstream = session.upstream()
        fix = session.fix_resolver(upstream).resolve(
            target, bug=options.bug, cvss_score=options.cvss_score,
        )
        console.print(fix.summary())

        topology = session.topology()
        evaluator = BranchStateEvaluator(
            upstream, session.source(), BranchStateLedger(), verbose=options.verbose,
        )
        actions = evaluate_and_reduce(fix, topology, evaluator, options, console)

    if not any(not a.is_informational for a in actions):
        logger.debug(f"{fix.short_sha}: nothing to do")
    return actions
