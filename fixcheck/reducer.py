"""
Action reduction: from the per-branch ledger to the minimal set of actions.

A branch is skipped when its maintenance tier does not cover the fix's
severity, or when a branch it merges from already carries the fix (or has
the very same open problem, which will then reach it through the merge).
"""

from typing import List, Optional

from rich.console import Console
from rich.markup import escape

from fixcheck.common import console as default_console
from fixcheck.ledger import BranchStateLedger
from fixcheck.models import Action, BranchState, BranchStateRecord, BranchTier
from fixcheck.render import render
from fixcheck.scope import affects, classify_tier
from fixcheck.topology import BranchTopology


class ActionReducer:
    """Second pass over the ledger; owns the one-time banner flag."""

    BANNER = "ACTION NEEDED!"

    def __init__(
        self,
        topology: BranchTopology,
        cvss_score: Optional[float] = None,
        flat: bool = False,
        verbose: bool = False,
    ):
        self.topology = topology
        self.cvss_score = cvss_score
        self.flat = flat
        self.verbose = verbose
        self.banner_printed = False

    def out_of_scope(self, record: BranchStateRecord) -> bool:
        """CVSS scoping; missing references are tracked regardless of severity."""
        return (
            self.cvss_score is not None
            and record.state != BranchState.MISSING_REFERENCES
            and not affects(record.branch, self.cvss_score)
        )

    def suppressed(self, record: BranchStateRecord) -> bool:
        """True when record is not reported on its own branch, merges aside."""
        if self.out_of_scope(record):
            return True
        return (
            classify_tier(record.branch) == BranchTier.EXTENDED
            and record.state == BranchState.MISSING_REFERENCES
        )

    def merge_found(self, record: BranchStateRecord, ledger: BranchStateLedger) -> bool:
        """True when a merge source already covers record."""
        for source in self.topology.merge_closure(record.branch):
            other = ledger.get(source)
            if other is None or other.sha != record.sha:
                continue
            # a suppressed source reports nothing, so it cannot absorb record
            if self.suppressed(other):
                continue
            if other.state == BranchState.OK or other.same_problem(record):
                return True
        return False

    def reduce_one(self, record: BranchStateRecord, ledger: BranchStateLedger) -> Optional[Action]:
        patch_ref = ledger.patch_ref(record.branch)
        if self.flat:
            return render(record, patch_ref, self.verbose)

        if self.suppressed(record):
            return None
        if self.merge_found(record, ledger):
            return None
        return render(record, patch_ref, self.verbose)

    def reduce(self, ledger: BranchStateLedger) -> List[Action]:
        """Actions in topology order, then any ledger-only branches."""
        order = [b for b in self.topology.build_branches() if b in ledger]
        order += [b for b in ledger.branches if b not in order]

        actions = []
        for branch in order:
            action = self.reduce_one(ledger.get(branch), ledger)
            if action is not None:
                actions.append(action)
        return actions

    def emit(self, actions: List[Action], console: Optional[Console] = None) -> None:
        """Print actions, preceded once by the action-needed banner."""
        console = console or default_console
        for action in actions:
            if not action.is_informational and not self.banner_printed:
                console.print(f"[bold red]{self.BANNER}[/bold red]")
                self.banner_printed = True
            style = "dim" if action.is_informational else "yellow"
            console.print(f"[{style}]{escape(action.text)}[/{style}]")
