"""
Resolvers for fix metadata: CVE <-> sha, CVE -> bug, CVE -> CVSS.

Remote data is cached on disk and considered fresh for a configurable
number of days; a refresh run refetches everything it touches once.
"""

import json
import re
import shutil
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import requests
from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from fixcheck.common import (
    ConfigError,
    IncompleteMetadataError,
    ResolverError,
    UnresolvableInputError,
    cve_year,
    is_commit_id,
    is_cve_id,
    logger,
    normalize_bug,
)
from fixcheck.models import Fix


class ResolverCache:
    """
    Expiring file cache.

    Entries older than ``expire_days`` are stale. With ``refresh`` every
    entry is stale until it has been rewritten during this run.
    """

    def __init__(
        self,
        cache_dir: Path,
        expire_days: int = 3,
        refresh: bool = False,
        staging_dir: Optional[Path] = None,
    ):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.expire_days = expire_days
        self.refresh = refresh
        self.staging_dir = staging_dir
        self._written: Set[str] = set()

    def path(self, name: str) -> Path:
        return self.cache_dir / name

    def is_fresh(self, name: str) -> bool:
        path = self.path(name)
        if not path.exists():
            return False
        if name in self._written:
            return True
        if self.refresh:
            return False
        age_days = (time.time() - path.stat().st_mtime) / 86400
        return age_days < self.expire_days

    def read_text(self, name: str) -> Optional[str]:
        """Cached content, or None when missing or stale."""
        if not self.is_fresh(name):
            return None
        logger.debug(f"Using cached {name}")
        return self.path(name).read_text()

    def write_text(self, name: str, text: str) -> Path:
        """Store content; goes through the staging dir so readers never see partial files."""
        dest = self.path(name)
        dest.parent.mkdir(parents=True, exist_ok=True)
        if self.staging_dir is not None:
            staged = self.staging_dir / name.replace("/", "_")
            staged.write_text(text)
            shutil.move(str(staged), str(dest))
        else:
            dest.write_text(text)
        self._written.add(name)
        return dest

    def touch(self, name: str) -> None:
        """Mark name as fetched now."""
        self.write_text(name, str(time.time()))


class VulnsRepo:
    """CVE <-> sha mapping from a clone of the kernel.org CNA vulns repository."""

    STAMP = "vulns.stamp"

    def __init__(self, path: Path):
        self.path = Path(path)
        self.published = self.path / "cve" / "published"
        self._by_sha: Optional[Dict[str, List[str]]] = None

    def update(self, cache: ResolverCache) -> None:
        """Pull the clone unless it was pulled within the cache expiry."""
        if cache.is_fresh(self.STAMP):
            return
        logger.info(f"Updating {self.path}")
        try:
            Repo(self.path).remotes.origin.pull()
        except (GitCommandError, InvalidGitRepositoryError, NoSuchPathError, AttributeError) as e:
            raise ResolverError(f"Failed to update vulns clone {self.path}: {e}") from e
        cache.touch(self.STAMP)
        self._by_sha = None

    def sha_for(self, cve_id: str) -> Optional[str]:
        """Mainline fix of cve_id (first line of its .sha1 file)."""
        sha1 = self.published / str(cve_year(cve_id)) / f"{cve_id}.sha1"
        if not sha1.exists():
            return None
        lines = sha1.read_text().split()
        return lines[0].lower() if lines else None

    def year_index(self, year: int) -> Dict[str, List[str]]:
        """Map of sha -> CVEs for the CVEs published for one year."""
        index: Dict[str, List[str]] = {}
        for sha1 in sorted((self.published / str(year)).glob("*.sha1")):
            lines = sha1.read_text().split()
            if lines:
                index.setdefault(lines[0].lower(), []).append(sha1.stem)
        return index

    def cves_for(self, sha: str) -> List[str]:
        """CVEs assigned to a mainline sha."""
        if self._by_sha is None:
            by_sha: Dict[str, List[str]] = {}
            for sha1 in sorted(self.published.glob("*/*.sha1")):
                lines = sha1.read_text().split()
                if lines:
                    by_sha.setdefault(lines[0].lower(), []).append(sha1.stem)
            self._by_sha = by_sha
        return list(self._by_sha.get(sha.lower(), []))


class BugResolver:
    """
    CVE -> bugzilla mapping from the security team's cve2bugzilla list.

    A CVE may have several bugs; the lowest numbered one is the primary.
    """

    CACHE_NAME = "cve2bugzilla"
    LINE_RE = re.compile(r"^(CVE-\d{4}-\d+),.*BUGZILLA:(\d+)")

    def __init__(self, cache: ResolverCache, url: str, timeout: int = 30):
        self.cache = cache
        self.url = url
        self.timeout = timeout
        self._bugs: Optional[Dict[str, List[int]]] = None

    def _download(self) -> str:
        logger.info(f"Downloading {self.url}")
        try:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ResolverError(f"Failed to download cve2bugzilla: {e}") from e
        self.cache.write_text(self.CACHE_NAME, response.text)
        return response.text

    @classmethod
    def parse(cls, text: str) -> Dict[str, List[int]]:
        bugs: Dict[str, Set[int]] = {}
        for line in text.splitlines():
            match = cls.LINE_RE.match(line)
            if match:
                bugs.setdefault(match.group(1).upper(), set()).add(int(match.group(2)))
        return {cve: sorted(numbers) for cve, numbers in bugs.items()}

    @property
    def bugs(self) -> Dict[str, List[int]]:
        if self._bugs is None:
            text = self.cache.read_text(self.CACHE_NAME)
            if text is None:
                text = self._download()
            self._bugs = self.parse(text)
        return self._bugs

    def bugs_for(self, cve_id: str) -> List[str]:
        return [f"bsc#{n}" for n in self.bugs.get(cve_id.upper(), [])]

    def bug_for(self, cve_id: str) -> Optional[str]:
        """Primary bug of cve_id."""
        bugs = self.bugs_for(cve_id)
        return bugs[0] if bugs else None


class CVSSResolver:
    """CVE -> CVSS base score from the NVD CVE API."""

    METRICS = ("cvssMetricV31", "cvssMetricV30", "cvssMetricV2")

    def __init__(self, cache: ResolverCache, api_base: str, timeout: int = 30):
        self.cache = cache
        self.api_base = api_base
        self.timeout = timeout

    @classmethod
    def parse(cls, nvd_data: Dict[str, Any]) -> Optional[float]:
        """Base score of the first vulnerability, preferring newer CVSS versions."""
        for vuln in nvd_data.get("vulnerabilities", []):
            metrics = vuln.get("cve", {}).get("metrics", {})
            for metric_key in cls.METRICS:
                metric_list = metrics.get(metric_key, [])
                if metric_list:
                    score = metric_list[0].get("cvssData", {}).get("baseScore")
                    if score is not None:
                        return float(score)
        return None

    def score_for(self, cve_id: str) -> Optional[float]:
        name = f"nvd/{cve_id}.json"
        text = self.cache.read_text(name)
        if text is None:
            logger.debug(f"Querying NVD for {cve_id}")
            try:
                response = requests.get(
                    self.api_base,
                    params={"cveId": cve_id},
                    timeout=self.timeout,
                )
                response.raise_for_status()
            except requests.RequestException as e:
                raise ResolverError(f"NVD lookup of {cve_id} failed: {e}") from e
            text = response.text
            self.cache.write_text(name, text)
        try:
            return self.parse(json.loads(text))
        except json.JSONDecodeError as e:
            raise ResolverError(f"Malformed NVD answer for {cve_id}") from e


class FixResolver:
    """Resolves the operator's commit id or CVE id into a Fix."""

    def __init__(
        self,
        upstream,
        vulns: Optional[VulnsRepo] = None,
        bugs: Optional[BugResolver] = None,
        cvss: Optional[CVSSResolver] = None,
    ):
        self.upstream = upstream
        self.vulns = vulns
        self.bugs = bugs
        self.cvss = cvss

    def _sha_for_cve(self, cve_id: str) -> str:
        if self.vulns is None:
            raise ConfigError("Please set VULNS_GIT to resolve CVE ids")
        sha = self.vulns.sha_for(cve_id)
        if sha is None:
            raise UnresolvableInputError(
                f"{cve_id} has no published fix in {self.vulns.path}, "
                "try --refresh or pass the commit id"
            )
        return sha

    def _cve_for_sha(self, sha: str) -> Optional[str]:
        if self.vulns is None:
            return None
        cves = self.vulns.cves_for(sha)
        if len(cves) > 1:
            logger.warning(f"{sha[:12]} has several CVEs, using {cves[0]}: {' '.join(cves)}")
        return cves[0] if cves else None

    def resolve(
        self,
        target: str,
        bug: Optional[str] = None,
        cvss_score: Optional[float] = None,
    ) -> Fix:
        """
        Resolve target and its metadata.

        Raises:
            UnresolvableInputError: unknown or unmerged commit, unknown CVE
            IncompleteMetadataError: CVE known but bug or CVSS missing
        """
        target = target.strip()
        if is_cve_id(target):
            cve_id: Optional[str] = target.upper()
            commit = self._sha_for_cve(cve_id)
        elif is_commit_id(target):
            cve_id = None
            commit = target.lower()
        else:
            raise UnresolvableInputError(f"{target} is neither a commit id nor a CVE id")

        sha = self.upstream.resolve(commit)
        if sha is None:
            raise UnresolvableInputError(
                f"Cannot find {commit} in the upstream clone, check LINUX_GIT is up to date"
            )
        if not self.upstream.is_merged(sha):
            raise UnresolvableInputError(f"{sha[:12]} is not merged upstream")
        if cve_id is None:
            cve_id = self._cve_for_sha(sha)

        if bug is not None:
            bug = normalize_bug(bug)
        elif cve_id is not None and self.bugs is not None:
            bug = self.bugs.bug_for(cve_id)
        if cve_id is not None and bug is None:
            raise IncompleteMetadataError(
                f"No bug known for {cve_id}, pass --bug or retry with --refresh"
            )

        if cvss_score is None and cve_id is not None:
            if self.cvss is not None:
                cvss_score = self.cvss.score_for(cve_id)
            if cvss_score is None:
                raise IncompleteMetadataError(
                    f"No CVSS score known for {cve_id}, pass --cvss or retry with --refresh"
                )

        return Fix(sha=sha, cve_id=cve_id, bug=bug, cvss_score=cvss_score)
