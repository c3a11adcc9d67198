"""Data models for release-train.

These Pydantic models represent the core data structures passed between
the stages of the release pipeline.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

BumpLevel = Literal["patch", "minor", "major"]
ReleaseType = Literal["latest", "bugfix", "next"]


class ReleaseConfig(BaseModel):
    """Settings for a single release run.

    Frozen once created; stages that need to change it (clone, branch sync)
    return an updated copy via ``model_copy``.

    Attributes:
        working_directory: Local checkout every stage operates on.
        interactive: Whether to ask for confirmation before side effects.
            False in CI mode.
        minimum_version_bump: Bump floor requested by the caller.
        release_type: latest (stable), bugfix or next (pre-release).
        release_branch: Release branch name, known after branch sync.
    """

    model_config = ConfigDict(frozen=True)

    working_directory: Path
    interactive: bool
    minimum_version_bump: BumpLevel = "patch"
    release_type: ReleaseType
    release_branch: str | None = None


class PackageChangeRecord(BaseModel):
    """Pending release state for one public package.

    Attributes:
        changelog_path: Path to the package's CHANGELOG.md.
        manifest_path: Path to the package's package.json.
        package_name: npm package name from the manifest.
        current_version: Version currently recorded in the manifest.
        computed_bump: Bump derived from the changelog (or forced by the
            version policy), None when the package is not released.
        next_version: Version to release, None when the package is skipped.
    """

    changelog_path: Path
    manifest_path: Path
    package_name: str
    current_version: str
    computed_bump: BumpLevel | None = None
    next_version: str | None = None


class RepositorySettings(BaseModel):
    """Repository layout and branch names, read from release-train.toml.

    Attributes:
        repository_url: Remote cloned for interactive runs.
        mainline_branch: Branch that receives backported commits.
        packages: Glob (relative to the repo root) matching package dirs.
        stable_release_branch: Release branch for latest/bugfix releases.
        next_release_branch: Release branch for next releases.
        release_branch_prefix: Prefix of the branch whose content gets
            published, followed by ``<major>.<minor>`` of the root version.
        publish_latest_script: npm script that publishes bugfix releases.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    repository_url: str | None = Field(default=None, alias="repository-url")
    mainline_branch: str = Field(default="trunk", alias="mainline-branch")
    packages: str = "packages/*"
    stable_release_branch: str = Field(default="wp/trunk", alias="stable-release-branch")
    next_release_branch: str = Field(default="wp/next", alias="next-release-branch")
    release_branch_prefix: str = Field(default="release/", alias="release-branch-prefix")
    publish_latest_script: str = Field(
        default="publish:latest", alias="publish-latest-script"
    )
