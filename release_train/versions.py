"""Version parsing and bumping utilities.

Versions in npm manifests follow semver, including pre-release markers
such as ``4.2.1-prerelease`` left behind by the changelog update step.
Bumping mirrors npm's ``semver.inc`` so that a pre-release already sitting
at the requested level is finalized instead of incremented again.
"""

from __future__ import annotations

import semver

from .models import BumpLevel, ReleaseType

BUMP_ORDER: dict[str, int] = {"patch": 0, "minor": 1, "major": 2}

# Marker for manifests that were updated but not yet published.
PRERELEASE_MARKER = "prerelease"
NEXT_MARKER = "next.0"


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-prerelease" → "1.2.3-prerelease"
    """
    return semver.Version.parse(version_str, optional_minor_and_patch=True)


def bump_version(version_str: str, level: BumpLevel) -> str:
    """Increment a version by the given bump level.

    Examples:
        bump_version("4.2.0", "patch") → "4.2.1"
        bump_version("4.2.1", "major") → "5.0.0"
        bump_version("4.2.1-prerelease", "patch") → "4.2.1"
        bump_version("4.3.0-prerelease", "minor") → "4.3.0"
        bump_version("4.3.1-prerelease", "minor") → "4.4.0"
    """
    version = parse_version(version_str)
    if version.prerelease:
        finalize = (
            level == "patch"
            or (level == "minor" and version.patch == 0)
            or (level == "major" and version.minor == 0 and version.patch == 0)
        )
        if finalize:
            return str(version.finalize_version())
    if level == "major":
        return str(version.bump_major())
    if level == "minor":
        return str(version.bump_minor())
    return str(version.bump_patch())


def max_bump(a: BumpLevel | None, b: BumpLevel | None) -> BumpLevel | None:
    """Return the larger of two bump levels, treating None as no bump."""
    if a is None:
        return b
    if b is None:
        return a
    return a if BUMP_ORDER[a] >= BUMP_ORDER[b] else b


def format_release_version(next_version: str, release_type: ReleaseType) -> str:
    """Version shown in changelog headings and logs for this release type."""
    if release_type == "next":
        return f"{next_version}-{NEXT_MARKER}"
    return next_version


def interim_version(next_version: str) -> str:
    """Version written to package.json until the registry publish runs."""
    return f"{next_version}-{PRERELEASE_MARKER}"


def find_release_branch_name(version_str: str, prefix: str = "release/") -> str:
    """Derive the published release branch from the distribution version.

    Example:
        find_release_branch_name("15.2.0-rc.1") → "release/15.2"
    """
    version = parse_version(version_str)
    return f"{prefix}{version.major}.{version.minor}"
