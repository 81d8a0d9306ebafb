"""
CVSS scope filter: which maintenance tiers need action for a given severity.
"""

import re
from typing import Dict, List, Optional, Pattern, Tuple

from fixcheck.models import BranchTier


# First match wins, LTSS must be tested before LTS
TIER_PATTERNS: List[Tuple[Pattern[str], BranchTier]] = [
    (re.compile(r"-LTSS\b"), BranchTier.EXTENDED),
    (re.compile(r"-GA$"), BranchTier.GENERAL_AVAILABILITY),
    (re.compile(r"-(LTS|ESPOS)\b"), BranchTier.LONG_TERM),
]

# Minimal CVSS score (integer part) requiring action per tier
TIER_THRESHOLDS: Dict[BranchTier, int] = {
    BranchTier.EXTENDED: 9,
    BranchTier.GENERAL_AVAILABILITY: 7,
    BranchTier.LONG_TERM: 7,
}


def classify_tier(branch: str) -> BranchTier:
    """Map a branch name to its maintenance tier."""
    for pattern, tier in TIER_PATTERNS:
        if pattern.search(branch):
            return tier
    return BranchTier.DEFAULT


def affects(branch: str, cvss_score: Optional[float]) -> bool:
    """
    Decide whether a fix of the given severity must be handled in branch.

    An unknown score never suppresses anything. Scores compare on their
    integer part, so 8.9 does not reach an extended-tier threshold of 9.
    """
    if cvss_score is None:
        return True
    threshold = TIER_THRESHOLDS.get(classify_tier(branch))
    if threshold is None:
        return True
    return int(cvss_score) >= threshold
