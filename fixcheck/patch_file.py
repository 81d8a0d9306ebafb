"""
Patch file header parsing and the reference adder.
"""

import re
from pathlib import Path
from typing import Iterable, List, Optional

from fixcheck.common import logger


REFERENCES_RE = re.compile(r"^References:\s*(.*)$", re.IGNORECASE)
GIT_COMMIT_RE = re.compile(r"^Git-commit:\s*([0-9a-f]+)\s*$", re.IGNORECASE)


class PatchFile:
    """
    A kernel-source patch with its mail-style header.

    The header is the block of lines before the first empty line. It carries
    the ``Git-commit:`` of the backported upstream fix and the
    ``References:`` tokens (CVE ids, bug ids) tracking it.
    """

    def __init__(self, path: Optional[Path] = None, text: Optional[str] = None):
        """
        Initialize from a file path or from patch text.

        Args:
            path: Path to the patch file
            text: Patch content, for patches read out of git objects
        """
        self.path = Path(path) if path is not None else None
        self._content: Optional[str] = text
        self._lines: Optional[List[str]] = None

        if text is None and (self.path is None or not self.path.exists()):
            raise FileNotFoundError(f"Patch file not found: {self.path}")

    @classmethod
    def from_text(cls, text: str) -> "PatchFile":
        return cls(text=text)

    @property
    def content(self) -> str:
        """Get file content, loading if necessary."""
        if self._content is None:
            self._content = self.path.read_text()
        return self._content

    @property
    def lines(self) -> List[str]:
        """Get file lines, loading if necessary."""
        if self._lines is None:
            self._lines = self.content.splitlines()
        return self._lines

    def save(self) -> None:
        """Save current content to disk."""
        if self.path is None:
            raise ValueError("Patch has no backing file")
        if self._lines is not None:
            self._content = "\n".join(self._lines)
            if not self._content.endswith("\n"):
                self._content += "\n"
        if self._content is not None:
            self.path.write_text(self._content)

    # -------------------------------------------------------------------------
    # Header
    # -------------------------------------------------------------------------

    @property
    def header_end(self) -> int:
        """Index of the first empty line, or the line count."""
        for i, line in enumerate(self.lines):
            if not line.strip():
                return i
        return len(self.lines)

    @property
    def header(self) -> List[str]:
        return self.lines[:self.header_end]

    @property
    def git_commits(self) -> List[str]:
        """Upstream commits this patch backports."""
        commits = []
        for line in self.header:
            match = GIT_COMMIT_RE.match(line)
            if match:
                commits.append(match.group(1).lower())
        return commits

    @property
    def references(self) -> List[str]:
        """All reference tokens from the References: headers."""
        refs: List[str] = []
        for line in self.header:
            match = REFERENCES_RE.match(line)
            if match:
                refs.extend(tok for tok in re.split(r"[\s,]+", match.group(1)) if tok)
        return refs

    def has_reference(self, ref: str) -> bool:
        wanted = ref.lower()
        return any(tok.lower() == wanted for tok in self.references)

    def add_references(self, refs: Iterable[str]) -> List[str]:
        """
        Add the references not yet present to the header.

        Missing tokens are appended to the first References: line; when the
        patch has none, a new line is inserted at the end of the header.

        Returns:
            The references actually added, in request order
        """
        missing: List[str] = []
        for ref in refs:
            if ref and not self.has_reference(ref) and ref.lower() not in (
                m.lower() for m in missing
            ):
                missing.append(ref)
        if not missing:
            return []

        lines = self.lines
        for i in range(self.header_end):
            if REFERENCES_RE.match(lines[i]):
                lines[i] = lines[i].rstrip() + " " + " ".join(missing)
                break
        else:
            lines.insert(self.header_end, "References: " + " ".join(missing))
        return missing


def add_missing_references(path: Path, refs: Iterable[str]) -> List[str]:
    """
    Reference adder: record refs in the patch at path, in place.

    Returns:
        The references added (empty when the patch already had them all)
    """
    patch = PatchFile(path)
    added = patch.add_references(refs)
    if added:
        patch.save()
        logger.debug(f"{path.name}: added {' '.join(added)}")
    return added
