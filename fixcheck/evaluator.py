"""
Branch state evaluation: how does one branch relate to one upstream fix?

The evaluator only asks questions through two adapters:

- an upstream history adapter (``is_ancestor``, ``fixes_tags``)
- a branch source adapter (``base_version``, ``find_patch``,
  ``patch_has_reference``)

so the git-backed implementations in ``fixcheck.git_queries`` can be
replaced by in-memory doubles.
"""

from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from fixcheck.common import FixCheckError, logger
from fixcheck.ledger import BranchStateLedger
from fixcheck.models import BranchState, BranchStateRecord, Fix, PatchRef


class EvaluationContractError(FixCheckError):
    """evaluate() was called without a branch or sha."""


ProgressCallback = Callable[[BranchStateRecord], None]


class BranchStateEvaluator:
    """Computes one BranchStateRecord per branch and records it."""

    def __init__(
        self,
        upstream,
        source,
        ledger: Optional[BranchStateLedger] = None,
        verbose: bool = False,
    ):
        self.upstream = upstream
        self.source = source
        self.ledger = ledger if ledger is not None else BranchStateLedger()
        self.verbose = verbose

    def affecting_commits(self, branch: str, base: str, introducing: Sequence[str]) -> List[str]:
        """Introducing commits present in branch, through its base or a backport."""
        return [
            commit for commit in introducing
            if self.upstream.is_ancestor(commit, base)
            or self.source.find_patch(branch, commit) is not None
        ]

    def compute(
        self,
        branch: str,
        sha: str,
        references: Iterable[Optional[str]],
    ) -> Tuple[BranchStateRecord, Optional[PatchRef]]:
        """Evaluate without recording."""
        if not branch:
            raise EvaluationContractError("evaluate() requires a branch")
        if not sha:
            raise EvaluationContractError("evaluate() requires a sha")

        base = self.source.base_version(branch)
        if self.upstream.is_ancestor(sha, base):
            return BranchStateRecord(branch=branch, sha=sha, state=BranchState.NOPE), None

        path = self.source.find_patch(branch, sha)
        if path is not None:
            patch_ref = PatchRef(branch=branch, path=path)
            wanted: List[str] = []
            for ref in references:
                if ref and ref.lower() not in (w.lower() for w in wanted):
                    wanted.append(ref)
            missing = tuple(
                ref for ref in wanted
                if not self.source.patch_has_reference(branch, path, ref)
            )
            if missing:
                record = BranchStateRecord(
                    branch=branch, sha=sha,
                    state=BranchState.MISSING_REFERENCES, detail=missing,
                )
            else:
                record = BranchStateRecord(branch=branch, sha=sha, state=BranchState.OK)
            return record, patch_ref

        introducing = self.upstream.fixes_tags(sha)
        if not introducing:
            return BranchStateRecord(
                branch=branch, sha=sha, state=BranchState.MAYBE_MISSING_PATCH,
            ), None

        affecting = self.affecting_commits(branch, base, introducing)
        if affecting:
            return BranchStateRecord(
                branch=branch, sha=sha,
                state=BranchState.MISSING_PATCH, detail=tuple(affecting),
            ), None
        return BranchStateRecord(branch=branch, sha=sha, state=BranchState.NOPE), None

    def evaluate(
        self,
        branch: str,
        sha: str,
        references: Iterable[Optional[str]] = (),
    ) -> BranchStateRecord:
        """Evaluate branch against sha and append the result to the ledger."""
        record, patch_ref = self.compute(branch, sha, list(references))
        self.ledger.append(record, patch_ref)
        if self.verbose:
            detail = " ".join(record.detail)
            logger.info(f"{branch}: {record.state.value} {detail}".rstrip())
        return record

    def evaluate_all(
        self,
        branches: Iterable[str],
        fix: Fix,
        progress: Optional[ProgressCallback] = None,
    ) -> BranchStateLedger:
        """First pass: one record for every branch, in order."""
        for branch in branches:
            record = self.evaluate(branch, fix.sha, fix.references)
            if progress is not None:
                progress(record)
        return self.ledger
