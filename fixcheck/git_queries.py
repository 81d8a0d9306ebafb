"""
Git queries against the upstream Linux clone and the kernel-source clone.
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from git import Repo
from git.exc import (
    BadName,
    BadObject,
    CommandError,
    GitCommandError,
    InvalidGitRepositoryError,
    NoSuchPathError,
)

from fixcheck.common import ResolverError, logger
from fixcheck.patch_file import PatchFile


FIXES_RE = re.compile(r"^\s*Fixes:\s*([0-9a-f]{7,40})\b", re.IGNORECASE | re.MULTILINE)
SRCVERSION_RE = re.compile(r"^SRCVERSION=(\S+)\s*$", re.MULTILINE)
GIT_COMMIT_GREP = r"^git-commit[[:space:]]*:[[:space:]]*[0-9a-f]+[[:space:]]*$"


def parse_fixes_tags(message: str) -> List[str]:
    """Abbreviated commit ids named by Fixes: trailers, without duplicates."""
    seen: List[str] = []
    for abbrev in FIXES_RE.findall(message):
        abbrev = abbrev.lower()
        if abbrev not in seen:
            seen.append(abbrev)
    return seen


def _open_repo(path: Path) -> Repo:
    try:
        return Repo(path)
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        raise ResolverError(f"Not a git repository: {path}") from e


class UpstreamRepo:
    """Queries against upstream Linux history."""

    def __init__(self, path: Path, upstream_ref: str = "origin/master"):
        self.path = Path(path)
        self.repo = _open_repo(self.path)
        self.upstream_ref = upstream_ref
        self._ancestry: Dict[Tuple[str, str], bool] = {}
        self._fixes: Dict[str, List[str]] = {}

    def resolve(self, commit: str) -> Optional[str]:
        """Full sha of commit, or None when unknown."""
        try:
            return self.repo.commit(commit).hexsha
        except (BadName, BadObject, ValueError, GitCommandError):
            return None

    def is_ancestor(self, sha: str, rev: str) -> bool:
        """True when sha is reachable from rev."""
        key = (sha, rev)
        if key not in self._ancestry:
            try:
                self._ancestry[key] = self.repo.is_ancestor(sha, rev)
            except GitCommandError as e:
                raise ResolverError(f"Cannot compare {sha[:12]} with {rev}: {e.stderr.strip()}") from e
        return self._ancestry[key]

    def is_merged(self, sha: str) -> bool:
        """True when sha is part of upstream history."""
        return self.is_ancestor(sha, self.upstream_ref)

    def fixes_tags(self, sha: str) -> List[str]:
        """
        Commits the fix claims to correct, as full shas.

        Abbreviations that do not resolve in the clone are dropped.
        """
        if sha not in self._fixes:
            try:
                message = self.repo.commit(sha).message
            except (BadName, BadObject, ValueError) as e:
                raise ResolverError(f"Unknown upstream commit {sha}") from e
            resolved = []
            for abbrev in parse_fixes_tags(message):
                full = self.resolve(abbrev)
                if full is None:
                    logger.warning(f"{sha[:12]}: cannot resolve Fixes: {abbrev}")
                elif full not in resolved:
                    resolved.append(full)
            self._fixes[sha] = resolved
        return list(self._fixes[sha])

    def subject(self, sha: str) -> str:
        try:
            return self.repo.commit(sha).summary
        except (BadName, BadObject, ValueError):
            return ""


class KernelSourceRepo:
    """Queries against the kernel-source clone, one patch series per branch."""

    def __init__(self, path: Path, remote: str = "origin"):
        self.path = Path(path)
        self.repo = _open_repo(self.path)
        self.remote = remote
        self._index: Dict[str, Dict[str, str]] = {}
        self._content: Dict[Tuple[str, str], str] = {}

    def ref(self, branch: str) -> str:
        """Tree-ish of branch, remote-tracking unless remote is empty."""
        return f"{self.remote}/{branch}" if self.remote else branch

    def base_version(self, branch: str) -> str:
        """Upstream tag the branch is forked from, e.g. v5.14."""
        try:
            config = self.repo.git.show(f"{self.ref(branch)}:rpm/config.sh")
        except GitCommandError as e:
            raise ResolverError(f"Cannot read rpm/config.sh of {branch}") from e
        match = SRCVERSION_RE.search(config)
        if not match:
            raise ResolverError(f"No SRCVERSION in rpm/config.sh of {branch}")
        return f"v{match.group(1)}"

    def patch_index(self, branch: str) -> Dict[str, str]:
        """Map of backported upstream sha -> patch path, built once per branch."""
        if branch not in self._index:
            ref = self.ref(branch)
            try:
                output = self.repo.git.grep("-i", "-E", GIT_COMMIT_GREP, ref, "--", "patches.*")
            except GitCommandError as e:
                # git grep exits 1 when nothing matches
                if e.status != 1:
                    raise ResolverError(f"Cannot index patches of {branch}: {e.stderr.strip()}") from e
                output = ""
            index: Dict[str, str] = {}
            prefix = f"{ref}:"
            for line in output.splitlines():
                if line.startswith(prefix):
                    line = line[len(prefix):]
                path, _, header = line.partition(":")
                sha = header.split(":", 1)[-1].strip().lower()
                if sha and sha not in index:
                    index[sha] = path
            logger.debug(f"{branch}: indexed {len(index)} backports")
            self._index[branch] = index
        return self._index[branch]

    def find_patch(self, branch: str, sha: str) -> Optional[str]:
        return self.patch_index(branch).get(sha.lower())

    def patch_content(self, branch: str, path: str) -> str:
        key = (branch, path)
        if key not in self._content:
            try:
                self._content[key] = self.repo.git.show(f"{self.ref(branch)}:{path}")
            except GitCommandError as e:
                raise ResolverError(f"Cannot read {path} in {branch}") from e
        return self._content[key]

    def patch_has_reference(self, branch: str, path: str, reference: str) -> bool:
        return PatchFile.from_text(self.patch_content(branch, path)).has_reference(reference)

    def checkout_work_branch(self, branch: str, name: str) -> None:
        """Force-create local branch name from branch and check it out."""
        try:
            self.repo.git.checkout("-f", "-B", name, self.ref(branch))
        except GitCommandError as e:
            raise ResolverError(f"Cannot check out {name}: {e.stderr.strip()}") from e

    def commit_updates(self) -> bool:
        """
        Commit working-tree patch edits with the clone's scripts/log2.

        A failing or missing log2 is logged and leaves the edits uncommitted.
        """
        log2 = Path(self.repo.working_tree_dir) / "scripts" / "log2"
        try:
            self.repo.git.execute([str(log2), "--no-edit"])
        except (CommandError, OSError) as e:
            logger.warning(f"scripts/log2 failed, commit the reference updates by hand: {e}")
            return False
        return True
