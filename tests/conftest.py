"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from release_train.models import ReleaseConfig

CORE_DATA_CHANGELOG = """\
<!-- Learn how to maintain this file at https://example.org/changelog. -->

## Unreleased

### Bug Fixes

-   Fix entity caching when the record is missing.

## 4.2.0 (2024-04-01)

### New Features

-   Add the entity record hook.
"""

BLOCKS_CHANGELOG = """\
## Unreleased

### Breaking Changes

-   Drop the legacy block API.
"""

COMPONENTS_CHANGELOG = """\
## Unreleased

## 19.0.0 (2024-04-01)

-   Initial release.
"""

ICONS_CHANGELOG = """\
# Changelog

Nothing here yet.
"""


def write_package(
    root: Path,
    dirname: str,
    *,
    version: str,
    changelog: str,
    private: bool = False,
) -> Path:
    """Create packages/<dirname> with a package.json and CHANGELOG.md."""
    package_dir = root / "packages" / dirname
    package_dir.mkdir(parents=True)
    manifest: dict[str, object] = {"name": f"@wordpress/{dirname}", "version": version}
    if private:
        manifest["private"] = True
    (package_dir / "package.json").write_text(json.dumps(manifest, indent="\t") + "\n")
    (package_dir / "CHANGELOG.md").write_text(changelog)
    return package_dir


@pytest.fixture
def monorepo(tmp_path: Path) -> Path:
    """A monorepo with four packages.

    - core-data: public, production, one Bug Fixes entry
    - blocks: private, breaking change
    - components: public, production, empty Unreleased section
    - icons: public, not production, no Unreleased heading
    """
    root_manifest = {
        "name": "gutenberg",
        "version": "15.2.0",
        "dependencies": {
            "@wordpress/components": "file:packages/components",
            "@wordpress/core-data": "file:packages/core-data",
        },
    }
    (tmp_path / "package.json").write_text(json.dumps(root_manifest, indent="\t") + "\n")
    write_package(tmp_path, "core-data", version="4.2.0", changelog=CORE_DATA_CHANGELOG)
    write_package(
        tmp_path, "blocks", version="12.0.0", changelog=BLOCKS_CHANGELOG, private=True
    )
    write_package(tmp_path, "components", version="19.0.0", changelog=COMPONENTS_CHANGELOG)
    write_package(tmp_path, "icons", version="9.1.0", changelog=ICONS_CHANGELOG)
    return tmp_path


@pytest.fixture
def latest_config(monorepo: Path) -> ReleaseConfig:
    """Non-interactive latest release with a patch floor."""
    return ReleaseConfig(
        working_directory=monorepo,
        interactive=False,
        minimum_version_bump="patch",
        release_type="latest",
    )
