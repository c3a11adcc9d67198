"""package.json reading and writing utilities.

Manifests are written back with tab indentation and a trailing newline,
matching the formatting npm and lerna use in the repository.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .shell import ReleaseError


def read_json_file(path: Path) -> dict[str, Any]:
    """Load and parse a JSON file.

    Raises:
        ReleaseError: If the file is missing or is not a JSON object.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ReleaseError(f"Manifest not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ReleaseError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ReleaseError(f"Expected a JSON object in {path}")
    return data


def write_json_file(path: Path, data: dict[str, Any]) -> None:
    """Save a JSON object to disk, pretty-printed with tabs."""
    path.write_text(json.dumps(data, indent="\t", ensure_ascii=False) + "\n", encoding="utf-8")


def is_private(manifest: dict[str, Any]) -> bool:
    """A package is private only when ``"private": true`` is set."""
    return manifest.get("private") is True


def get_version(manifest: dict[str, Any], path: Path) -> str:
    """Extract the ``version`` field.

    Raises:
        ReleaseError: If the manifest has no version.
    """
    version = manifest.get("version")
    if not isinstance(version, str) or not version:
        raise ReleaseError(f"No version field in {path}")
    return version


def get_production_packages(root: Path) -> set[str]:
    """Names listed in the root package.json ``dependencies``.

    These are the packages shipped with the distribution, which receive
    the minimum version bump even when their changelog is empty.
    """
    manifest = read_json_file(root / "package.json")
    return set(manifest.get("dependencies", {}))


def set_version(path: Path, version: str) -> bool:
    """Rewrite the ``version`` field of a manifest.

    Returns:
        True if the file changed, False if it already had that version.
    """
    manifest = read_json_file(path)
    if manifest.get("version") == version:
        return False
    manifest["version"] = version
    write_json_file(path, manifest)
    return True
