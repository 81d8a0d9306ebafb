"""
Data models for kernel fix checks using Pydantic for validation.
"""

from enum import Enum
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import re


class BranchTier(str, Enum):
    """Maintenance tier of a branch, used for CVSS scoping."""
    EXTENDED = "extended"
    GENERAL_AVAILABILITY = "general_availability"
    LONG_TERM = "long_term"
    DEFAULT = "default"


class BranchState(str, Enum):
    """
    Relationship of a branch to an upstream fix.

    - NOPE: branch is not affected, or inherits the fix from its base
    - OK: a backport is present and carries every requested reference
    - MISSING_REFERENCES: backport present, some references missing
    - MISSING_PATCH: branch carries a commit the fix corrects, no backport
    - MAYBE_MISSING_PATCH: no backport and no Fixes tag to decide with
    """
    NOPE = "nope"
    OK = "ok"
    MISSING_REFERENCES = "missing_references"
    MISSING_PATCH = "missing_patch"
    MAYBE_MISSING_PATCH = "maybe_missing_patch"


class Disposition(str, Enum):
    """What the operator is asked to do for a branch."""
    MANUAL_BACKPORT = "MANUAL backport needed"
    MANUAL_POSSIBLE_BACKPORT = "MANUAL possible backport needed"
    RUN_REFERENCE_ADDER = "RUN reference-adder"
    MANUAL_REFERENCES = "MANUAL references needed"
    NO_ACTION = "no action"


class Fix(BaseModel):
    """An upstream fix resolved for this run."""
    model_config = ConfigDict(frozen=True)

    sha: str
    cve_id: Optional[str] = None
    bug: Optional[str] = None
    cvss_score: Optional[float] = None

    @field_validator("sha")
    @classmethod
    def validate_sha(cls, v: str) -> str:
        """Validate commit id format."""
        if not re.match(r"^[0-9a-f]{7,40}$", v):
            raise ValueError(f"Invalid commit id: {v}")
        return v

    @field_validator("cve_id")
    @classmethod
    def validate_cve_id(cls, v: Optional[str]) -> Optional[str]:
        """Validate CVE ID format."""
        if v is not None and not re.match(r"^CVE-\d{4}-\d{4,}$", v):
            raise ValueError(f"Invalid CVE ID format: {v}")
        return v

    @property
    def short_sha(self) -> str:
        """Get short SHA (first 12 characters)."""
        return self.sha[:12]

    @property
    def references(self) -> List[str]:
        """References every backport of this fix should carry."""
        return [ref for ref in (self.cve_id, self.bug) if ref]

    def summary(self) -> str:
        """One-line description of the fix metadata."""
        cvss = "unknown" if self.cvss_score is None else f"{self.cvss_score:g}"
        return (
            f"{self.short_sha} CVE: {self.cve_id or 'none'} "
            f"bug: {self.bug or 'none'} CVSS: {cvss}"
        )


class BranchStateRecord(BaseModel):
    """The single evaluation result of one branch for one fix."""
    model_config = ConfigDict(frozen=True)

    branch: str
    sha: str
    state: BranchState
    detail: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def check_detail(self) -> "BranchStateRecord":
        """A missing_references record must name what is missing."""
        if self.state == BranchState.MISSING_REFERENCES and not self.detail:
            raise ValueError("missing_references requires at least one reference")
        return self

    def same_problem(self, other: "BranchStateRecord") -> bool:
        """True when other has the identical (sha, state) pair."""
        return self.sha == other.sha and self.state == other.state


class PatchRef(BaseModel):
    """Location of a backport patch within a branch."""
    model_config = ConfigDict(frozen=True)

    branch: str
    path: str

    @property
    def name(self) -> str:
        """Patch file name without directories."""
        return self.path.rsplit("/", 1)[-1]


class Action(BaseModel):
    """A rendered instruction for one branch."""
    model_config = ConfigDict(frozen=True)

    branch: str
    sha: str
    state: BranchState
    disposition: Disposition
    text: str
    references: List[str] = Field(default_factory=list)
    patch: Optional[str] = None

    @property
    def is_informational(self) -> bool:
        """Verbose-only lines that ask nothing of the operator."""
        return self.disposition == Disposition.NO_ACTION
