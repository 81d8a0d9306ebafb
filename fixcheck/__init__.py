"""
fixcheck - Decide which maintained kernel branches need an upstream fix.

This package provides tools for:
- Evaluating each kernel-source branch against an upstream fix
- Reducing branch states to the minimal set of operator actions, using
  merge-branch relations and CVSS-based maintenance tiers
- Recording CVE and bug references in backport patches
"""

__version__ = "1.0.0"

from fixcheck.models import (
    Action,
    BranchState,
    BranchStateRecord,
    BranchTier,
    Disposition,
    Fix,
    PatchRef,
)

__all__ = [
    "__version__",
    "Action",
    "BranchState",
    "BranchStateRecord",
    "BranchTier",
    "Disposition",
    "Fix",
    "PatchRef",
]
