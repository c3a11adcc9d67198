"""CLI entry point for release-train."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import click

from release_train.config import CONFIG_FILENAME, load_settings, render_settings
from release_train.models import RepositorySettings
from release_train.pipeline import (
    publish_npm_bugfix_latest_dist_tag,
    publish_npm_latest_dist_tag,
    publish_npm_next_dist_tag,
)
from release_train.shell import ReleaseAborted, ReleaseError


def release_options(func: Callable) -> Callable:
    """Options shared by the publishing commands."""
    func = click.option(
        "--config",
        "config_path",
        type=click.Path(dir_okay=False, path_type=Path),
        default=CONFIG_FILENAME,
        show_default=True,
        help="Settings file.",
    )(func)
    func = click.option(
        "--semver",
        type=click.Choice(["major", "minor", "patch"]),
        default="patch",
        show_default=True,
        help="Minimum version bump for the packages.",
    )(func)
    func = click.option(
        "--ci",
        is_flag=True,
        help="Run non-interactively in the current checkout.",
    )(func)
    return func


def _publish(
    publish: Callable[..., None], ci: bool, semver: str, config_path: Path
) -> None:
    try:
        settings = load_settings(config_path)
        publish(ci=ci, semver=semver, working_directory=Path.cwd(), settings=settings)
    except ReleaseAborted:
        # The failed step already printed its abort message
        sys.exit(1)
    except ReleaseError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.version_option(package_name="release-train")
def cli() -> None:
    """Publish monorepo packages to npm and backport the release commits."""


@cli.command()
@click.option("--repository-url", default=None, help="Remote cloned by interactive runs.")
@click.option("--force", is_flag=True, help="Overwrite an existing settings file.")
def init(repository_url: str | None, force: bool) -> None:
    """Write a release-train.toml with the default settings."""
    root = Path.cwd()

    # Sanity checks
    if not (root / ".git").exists():
        raise click.ClickException("Not a git repository. Run from the repo root.")
    if not (root / "package.json").exists():
        raise click.ClickException("No package.json found in current directory.")

    dest = root / CONFIG_FILENAME
    if dest.exists() and not force:
        raise click.ClickException(f"{CONFIG_FILENAME} already exists. Use --force to overwrite.")

    settings = RepositorySettings(repository_url=repository_url)
    dest.write_text(render_settings(settings))

    click.echo(f"✓ Wrote settings to {CONFIG_FILENAME}")
    click.echo()
    click.echo("Next steps:")
    click.echo("  1. Review the branch names and package glob")
    click.echo("  2. Publish:")
    click.echo("       release-train npm-latest --semver minor")


@cli.command("npm-latest")
@release_options
def npm_latest(ci: bool, semver: str, config_path: Path) -> None:
    """Publish a new latest version of the packages."""
    _publish(publish_npm_latest_dist_tag, ci, semver, config_path)


@cli.command("npm-bugfix")
@release_options
def npm_bugfix(ci: bool, semver: str, config_path: Path) -> None:
    """Publish a bugfix version with the latest dist-tag."""
    _publish(publish_npm_bugfix_latest_dist_tag, ci, semver, config_path)


@cli.command("npm-next")
@release_options
def npm_next(ci: bool, semver: str, config_path: Path) -> None:
    """Publish a new next (pre-release) version of the packages."""
    _publish(publish_npm_next_dist_tag, ci, semver, config_path)
