"""CHANGELOG.md parsing and rewriting.

Each package keeps its pending changes under a ``## Unreleased`` heading,
grouped by ``###`` sub-headings. The sub-headings decide the bump level:

- ``### Breaking Changes`` → major
- ``### New Features``, ``### Enhancements``, ``### Deprecations``,
  ``### New APIs`` → minor
- any other sub-heading or list entry → the requested minimum bump
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .models import BumpLevel
from .versions import max_bump

_UNRELEASED_RE = re.compile(r"^[ \t]*## unreleased\b.*$", re.IGNORECASE | re.MULTILINE)

_MAJOR_PREFIXES = ("### breaking change",)
_MINOR_PREFIXES = (
    "### new feature",
    "### enhancement",
    "### deprecation",
    "### new api",
)


def calculate_version_bump(
    lines: Iterable[str], minimum_version_bump: BumpLevel = "patch"
) -> BumpLevel | None:
    """Compute the bump level recommended by a changelog's Unreleased section.

    Args:
        lines: Changelog lines, in file order.
        minimum_version_bump: Level used for entries that do not call for
            a minor or major bump.

    Returns:
        The bump level, or None if there is no Unreleased section or it has
        no entries.
    """
    in_unreleased = False
    bump: BumpLevel | None = None

    for line in lines:
        normalized = line.strip().lower()
        if not in_unreleased:
            if _UNRELEASED_RE.match(line):
                in_unreleased = True
            continue

        # A previously published version ends the section
        if normalized.startswith("## "):
            break
        if normalized.startswith(_MAJOR_PREFIXES):
            return "major"
        if normalized.startswith(_MINOR_PREFIXES):
            bump = max_bump(bump, "minor")
        elif normalized.startswith(("### ", "- ", "* ")):
            bump = max_bump(bump, minimum_version_bump)

    return bump


def has_version_heading(content: str, version: str) -> bool:
    """Check whether a changelog already has a heading for ``version``."""
    pattern = rf"^## {re.escape(version)}(\s|$)"
    return re.search(pattern, content, re.MULTILINE) is not None


def add_version_heading(content: str, version: str, publish_date: str) -> str:
    """Insert a dated version heading right below the Unreleased heading.

    The pending entries end up under the new version heading and a fresh,
    empty Unreleased section stays on top. Content that already carries the
    version heading, or has no Unreleased heading, is returned unchanged.

    Example:
        "## Unreleased\\n\\n### Bug Fixes" →
        "## Unreleased\\n\\n## 4.2.1 (2024-05-01)\\n\\n### Bug Fixes"
    """
    if has_version_heading(content, version):
        return content
    return _UNRELEASED_RE.sub(
        lambda match: f"{match.group(0)}\n\n## {version} ({publish_date})",
        content,
        count=1,
    )
