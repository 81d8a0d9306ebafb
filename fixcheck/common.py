"""
Common utilities for the check-kernel-fix tooling: logging, errors, id parsing.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler


# Rich console for output
console = Console(highlight=False)

CVE_PATTERN = re.compile(r"^CVE-\d{4}-\d{4,}$", re.IGNORECASE)
COMMIT_PATTERN = re.compile(r"^[0-9a-f]{7,40}$", re.IGNORECASE)
BUG_PATTERN = re.compile(r"^(?:bsc#)?(\d+)$")


class FixCheckError(Exception):
    """Base class for fatal check-kernel-fix errors."""


class ConfigError(FixCheckError):
    """A required data source is not configured."""


class UnresolvableInputError(FixCheckError):
    """The requested commit or CVE cannot be resolved upstream."""


class IncompleteMetadataError(FixCheckError):
    """A CVE was found but its bug or CVSS data is incomplete."""


class ResolverError(FixCheckError):
    """An external data source failed to answer."""


def setup_logging(
    name: str = "fixcheck",
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Set up logging with Rich handler."""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = RichHandler(
        console=console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


# Default logger
logger = setup_logging()


def is_cve_id(value: str) -> bool:
    """Check whether value looks like CVE-YYYY-NNNN."""
    return bool(CVE_PATTERN.match(value or ""))


def is_commit_id(value: str) -> bool:
    """Check whether value looks like an (abbreviated) git commit id."""
    return bool(COMMIT_PATTERN.match(value or ""))


def normalize_bug(value: str) -> str:
    """Turn '1234' or 'bsc#1234' into the bsc#1234 reference form."""
    match = BUG_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid bug reference: {value}")
    return f"bsc#{match.group(1)}"


def extract_cve_ids(text: str) -> List[str]:
    """Extract CVE IDs from text, in order of first appearance."""
    seen: List[str] = []
    for cve_id in re.findall(r"CVE-\d{4}-\d{4,}", text, re.IGNORECASE):
        cve_id = cve_id.upper()
        if cve_id not in seen:
            seen.append(cve_id)
    return seen


def cve_year(cve_id: str) -> int:
    """Extract year from a CVE ID."""
    match = re.search(r"CVE-(\d{4})-", cve_id, re.IGNORECASE)
    return int(match.group(1)) if match else 0
