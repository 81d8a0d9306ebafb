"""
Configuration for the check-kernel-fix tooling.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os


# Published CVE -> bugzilla mapping maintained by the security team
CVE2BUG_URL = "https://gitlab.suse.de/security/cve-database/-/raw/master/data/cve2bugzilla"

# Upstream kernel.org CNA vulns repository
VULNS_GIT_URL = "https://git.kernel.org/pub/scm/linux/security/vulns.git"

# Oldest stable (4.19) when the kernel.org CNA started is from 2018
FIRST_CVE_YEAR = 2018


def _optional_path(value: Optional[str]) -> Optional[Path]:
    return Path(value).expanduser() if value else None


@dataclass
class FixCheckConfig:
    """Global configuration for kernel fix checks."""

    # Git clones
    vulns_git: Optional[Path] = None
    ksource_git: Optional[Path] = None
    linux_git: Optional[Path] = None

    # Cache
    cache_dir: Path = field(
        default_factory=lambda: Path.home() / ".cache" / "check-kernel-fix"
    )
    cache_expire_days: int = 3

    # Remote sources
    cve2bug_url: str = CVE2BUG_URL
    vulns_git_url: str = VULNS_GIT_URL
    nvd_api_base: str = "https://services.nvd.nist.gov/rest/json/cves/2.0"

    # Network settings
    network_timeout: int = 30

    # Git layout
    upstream_ref: str = "origin/master"
    remote: str = "origin"
    branches_conf: str = "scripts/branches.conf"

    first_cve_year: int = FIRST_CVE_YEAR

    def __post_init__(self):
        """Ensure the cache directory exists."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "FixCheckConfig":
        """Create configuration from environment variables."""
        return cls(
            vulns_git=_optional_path(os.getenv("VULNS_GIT")),
            ksource_git=_optional_path(os.getenv("KSOURCE_GIT")),
            linux_git=_optional_path(os.getenv("LINUX_GIT")),
            cache_dir=Path(os.getenv(
                "CHECK_KERNEL_FIX_CACHE",
                str(Path.home() / ".cache" / "check-kernel-fix"),
            )).expanduser(),
            cache_expire_days=int(os.getenv("CHECK_KERNEL_FIX_EXPIRE", "3")),
            cve2bug_url=os.getenv("CVE2BUG_URL", CVE2BUG_URL),
            network_timeout=int(os.getenv("CHECK_KERNEL_FIX_TIMEOUT", "30")),
        )

    def require(self, *names: str) -> None:
        """
        Check that the named git clones are configured and exist.

        Raises:
            ConfigError: naming every source that is unset or missing
        """
        from fixcheck.common import ConfigError

        missing = []
        for name in names:
            path = getattr(self, name)
            if path is None or not Path(path).is_dir():
                missing.append(name.upper())
        if missing:
            raise ConfigError(
                f"Please set {', '.join(missing)} to a valid clone "
                "(see check-kernel-fix --help)"
            )

    @property
    def branches_conf_path(self) -> Optional[Path]:
        """Path of branches.conf inside the kernel-source clone."""
        if self.ksource_git is None:
            return None
        return self.ksource_git / self.branches_conf


def get_default_config() -> FixCheckConfig:
    """Configuration built from the process environment."""
    return FixCheckConfig.from_env()
