"""
Turn branch state records into operator instructions.
"""

from typing import Optional

from fixcheck.common import FixCheckError
from fixcheck.models import Action, BranchState, BranchStateRecord, Disposition, PatchRef


class RenderError(FixCheckError):
    """A record carried a state the renderer does not know."""


REFERENCE_ADDER = "check-kernel-fix add-refs"


def render(
    record: BranchStateRecord,
    patch_ref: Optional[PatchRef] = None,
    verbose: bool = False,
) -> Optional[Action]:
    """
    Render the action for one record.

    Returns:
        The Action, or None for ok/nope records outside verbose mode
    """
    branch, short = record.branch, record.sha[:12]

    def action(disposition: Disposition, text: str, **extra) -> Action:
        return Action(
            branch=branch, sha=record.sha, state=record.state,
            disposition=disposition, text=text, **extra,
        )

    if record.state == BranchState.MISSING_PATCH:
        return action(
            Disposition.MANUAL_BACKPORT,
            f"{branch}: {Disposition.MANUAL_BACKPORT.value}: {short} "
            f"(Fixes: {' '.join(c[:12] for c in record.detail)})",
        )

    if record.state == BranchState.MAYBE_MISSING_PATCH:
        return action(
            Disposition.MANUAL_POSSIBLE_BACKPORT,
            f"{branch}: {Disposition.MANUAL_POSSIBLE_BACKPORT.value}: {short} "
            "(no Fixes tag, check applicability)",
        )

    if record.state == BranchState.MISSING_REFERENCES:
        refs = list(record.detail)
        ref_args = " ".join(f"-r {ref}" for ref in refs)
        if patch_ref is not None:
            return action(
                Disposition.RUN_REFERENCE_ADDER,
                f"{branch}: {Disposition.RUN_REFERENCE_ADDER.value}: "
                f"{REFERENCE_ADDER} {ref_args} {patch_ref.path}",
                references=refs, patch=patch_ref.path,
            )
        return action(
            Disposition.MANUAL_REFERENCES,
            f"{branch}: {Disposition.MANUAL_REFERENCES.value}: "
            f"add {' '.join(refs)} to the backport of {short}",
            references=refs,
        )

    if record.state in (BranchState.OK, BranchState.NOPE):
        if not verbose:
            return None
        return action(
            Disposition.NO_ACTION,
            f"{branch}: {Disposition.NO_ACTION.value} ({record.state.value})",
        )

    raise RenderError(f"{branch}: unknown state {record.state!r}")
