"""Utility functions for the snapshot upgrader."""

import hashlib
from pathlib import Path

UNVERSIONED_BUILDS = ("", "master")


def version_digits(version: str) -> str:
    """Strip every non-digit character from a version string.

    Examples:
        >>> version_digits("6.1")
        '61'
        >>> version_digits("10.5")
        '105'
        >>> version_digits("v7.0-beta")
        '70'
    """
    if not version or not isinstance(version, str):
        return ""
    return "".join(ch for ch in version if ch.isdigit())


def normalize_version(version: str) -> int:
    """Turn a release tag into an integer suitable for comparison.

    Separators are dropped before the remaining digits are read as a
    number, so "6.1" becomes 61 and "6.0" becomes 60. Input without any
    digits normalizes to 0.

    Examples:
        >>> normalize_version("6.1")
        61
        >>> normalize_version("6.0") < normalize_version("6.1")
        True
    """
    digits = version_digits(version)
    if not digits:
        return 0
    return int(digits)


def is_unversioned(version: str | None) -> bool:
    """True for the special build identifiers that are never compared."""
    return (version or "").strip().lower() in UNVERSIONED_BUILDS


def parse_build_info(content: str) -> str:
    """Extract the build identifier from a BUILDINFO file.

    The file holds a single hyphen-delimited line such as
    ``Build date: 1498258434 - Fri Jun 23 22:53:54 UTC 2017``; the build
    identifier is the second field.

    Raises:
        ValueError: If the content does not have a second field
    """
    line = content.strip().splitlines()[0] if content.strip() else ""
    fields = line.split("-", 1)
    if len(fields) < 2 or not fields[1].strip():
        raise ValueError(f"Malformed build info: {content[:80]!r}")
    return fields[1].strip()


def calculate_sha256(file_path: Path) -> str:
    """Calculate SHA256 checksum of a file."""
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()
