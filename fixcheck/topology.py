"""
Branch topology parsed from the kernel-source branches.conf.

Each non-comment line reads ``name: flag flag ...``. The ``build`` flag
marks a branch that is checked, ``merge:<name>`` and ``merge:-<name>``
declare branches this one integrates by merge.
"""

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from fixcheck.common import FixCheckError
from fixcheck.models import BranchTier
from fixcheck.scope import classify_tier


class TopologyError(FixCheckError):
    """branches.conf could not be parsed."""


@dataclass(frozen=True)
class BranchInfo:
    """One configured branch."""
    name: str
    build: bool = False
    merge_sources: Tuple[str, ...] = ()
    flags: Tuple[str, ...] = ()

    @property
    def tier(self) -> BranchTier:
        return classify_tier(self.name)


@dataclass(frozen=True)
class BranchTopology:
    """Read-only forest of branches and their merge sources."""
    branches: Mapping[str, BranchInfo] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.branches, MappingProxyType):
            object.__setattr__(self, "branches", MappingProxyType(dict(self.branches)))

    @classmethod
    def from_text(cls, text: str) -> "BranchTopology":
        """Parse branches.conf content."""
        branches: Dict[str, BranchInfo] = {}
        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue
            name, sep, rest = line.partition(":")
            name = name.strip()
            if not sep or not name or " " in name:
                raise TopologyError(f"branches.conf:{lineno}: malformed line: {raw!r}")
            if name in branches:
                raise TopologyError(f"branches.conf:{lineno}: duplicate branch {name}")

            flags = tuple(rest.split())
            merges = []
            for flag in flags:
                if flag.startswith("merge:"):
                    source = flag[len("merge:"):].lstrip("-")
                    if not source:
                        raise TopologyError(f"branches.conf:{lineno}: empty merge source")
                    if source not in merges:
                        merges.append(source)
            branches[name] = BranchInfo(
                name=name,
                build="build" in flags,
                merge_sources=tuple(merges),
                flags=flags,
            )
        return cls(branches=MappingProxyType(branches))

    @classmethod
    def from_file(cls, path: Path) -> "BranchTopology":
        """Parse a branches.conf file."""
        if not path.exists():
            raise TopologyError(f"branches.conf not found: {path}")
        return cls.from_text(path.read_text())

    def build_branches(self) -> List[str]:
        """Branches to evaluate, in configuration order."""
        return [name for name, info in self.branches.items() if info.build]

    def merge_sources(self, branch: str) -> Tuple[str, ...]:
        """Direct merge sources of branch."""
        info = self.branches.get(branch)
        return info.merge_sources if info else ()

    def merge_closure(self, branch: str) -> List[str]:
        """
        All branches reaching branch through merges, nearest first.

        Cycles in the configuration are tolerated; the branch itself is
        never part of its closure.
        """
        seen = {branch}
        order: List[str] = []
        queue = deque(self.merge_sources(branch))
        while queue:
            source = queue.popleft()
            if source in seen:
                continue
            seen.add(source)
            order.append(source)
            queue.extend(self.merge_sources(source))
        return order

    def tier(self, branch: str) -> BranchTier:
        return classify_tier(branch)

    def __contains__(self, branch: object) -> bool:
        return branch in self.branches
