"""Configuration loading.

Repository settings live in an optional ``release-train.toml`` file under a
``[release-train]`` table. Uses tomlkit to parse it, the same library that
writes it when ``release-train init`` scaffolds the file.
"""

from __future__ import annotations

from pathlib import Path

import tomlkit
from pydantic import ValidationError
from tomlkit.exceptions import TOMLKitError

from .models import RepositorySettings
from .shell import ReleaseError

CONFIG_FILENAME = "release-train.toml"
CONFIG_TABLE = "release-train"


def load_settings(path: Path) -> RepositorySettings:
    """Load repository settings from a TOML file.

    A missing file yields the default settings.

    Raises:
        ReleaseError: If the file is not valid TOML or has unknown or
            mistyped keys.
    """
    if not path.exists():
        return RepositorySettings()

    try:
        doc = tomlkit.parse(path.read_text(encoding="utf-8"))
    except TOMLKitError as exc:
        raise ReleaseError(f"Invalid TOML in {path}: {exc}") from exc

    table = doc.get(CONFIG_TABLE, {})
    try:
        return RepositorySettings.model_validate(table.unwrap() if table else {})
    except ValidationError as exc:
        raise ReleaseError(f"Invalid [{CONFIG_TABLE}] settings in {path}:\n{exc}") from exc


def render_settings(settings: RepositorySettings) -> str:
    """Render settings as a ``[release-train]`` TOML document."""
    doc = tomlkit.document()
    table = tomlkit.table()
    for key, value in settings.model_dump(by_alias=True, exclude_none=True).items():
        table.add(key, value)
    doc.add(CONFIG_TABLE, table)
    return tomlkit.dumps(doc)
