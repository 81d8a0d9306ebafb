"""
Append-only ledger of branch state records for one check run.
"""

from typing import Dict, Iterator, List, Optional

from fixcheck.common import FixCheckError
from fixcheck.models import BranchStateRecord, PatchRef


class LedgerError(FixCheckError):
    """A branch was recorded twice."""


class BranchStateLedger:
    """
    Branch-keyed store of evaluation results.

    Records are kept in branch-iteration order and are never replaced;
    the patch index maps each branch to the backport it carries, if any.
    """

    def __init__(self):
        self._records: Dict[str, BranchStateRecord] = {}
        self._patches: Dict[str, Optional[PatchRef]] = {}

    def append(
        self,
        record: BranchStateRecord,
        patch_ref: Optional[PatchRef] = None,
    ) -> None:
        if record.branch in self._records:
            raise LedgerError(f"Branch {record.branch} already evaluated")
        self._records[record.branch] = record
        self._patches[record.branch] = patch_ref

    def get(self, branch: str) -> Optional[BranchStateRecord]:
        return self._records.get(branch)

    def patch_ref(self, branch: str) -> Optional[PatchRef]:
        return self._patches.get(branch)

    @property
    def branches(self) -> List[str]:
        return list(self._records)

    def __contains__(self, branch: object) -> bool:
        return branch in self._records

    def __iter__(self) -> Iterator[BranchStateRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)
