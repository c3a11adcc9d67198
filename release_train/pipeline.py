"""Release pipeline: sync → version → push → publish → backport.

This module orchestrates publishing the packages of an npm monorepo:
1. Clone the repository into a temporary folder (interactive runs only)
2. Check out the release branch and sync it with the published release
3. Compute version bumps from each package's CHANGELOG.md
4. Update changelogs and package.json files in a single commit
5. Push the release branch
6. Publish the changed packages to npm with lerna
7. Backport the release commits to the mainline branch
8. Remove the temporary folders

Every step runs through ``ReleaseRun.run_step``: a failure prints the
step's abort message, removes temporary folders and stops the run. Git
state that was already pushed or cherry-picked is left as is.
"""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from enum import Enum
from functools import partial
from pathlib import Path
from typing import TypeVar

from . import git
from .changelog import add_version_heading, calculate_version_bump, has_version_heading
from .manifest import (
    get_production_packages,
    get_version,
    is_private,
    read_json_file,
    set_version,
)
from .models import (
    BumpLevel,
    PackageChangeRecord,
    ReleaseConfig,
    ReleaseType,
    RepositorySettings,
)
from .shell import (
    DEFAULT_ABORT_MESSAGE,
    ReleaseAborted,
    ReleaseError,
    ask_for_confirmation,
    error,
    run,
    step,
)
from .versions import (
    bump_version,
    find_release_branch_name,
    format_release_version,
    interim_version,
)

T = TypeVar("T")

CHANGELOG_COMMIT_MESSAGE = "Update changelog files"


class ReleaseState(str, Enum):
    """Where a release run currently is."""

    INIT = "init"
    CLONING = "cloning"
    BRANCH_SYNC = "branch-sync"
    COMPUTE_AND_COMMIT_VERSIONS = "compute-and-commit-versions"
    PUSH = "push"
    PUBLISH = "publish"
    BACKPORT = "backport"
    CLEANUP = "cleanup"
    DONE = "done"
    ABORTED = "aborted"


def _read_change_record(
    changelog_path: Path, minimum_version_bump: BumpLevel
) -> PackageChangeRecord | None:
    """Build the change record for one package, or None if it is private."""
    manifest_path = changelog_path.with_name("package.json")
    manifest = read_json_file(manifest_path)
    if is_private(manifest):
        return None

    lines = changelog_path.read_text(encoding="utf-8").splitlines()
    return PackageChangeRecord(
        changelog_path=changelog_path,
        manifest_path=manifest_path,
        package_name=manifest.get("name") or changelog_path.parent.name,
        current_version=get_version(manifest, manifest_path),
        computed_bump=calculate_version_bump(lines, minimum_version_bump),
    )


def collect_change_records(
    config: ReleaseConfig, settings: RepositorySettings
) -> list[PackageChangeRecord]:
    """Read every public package's changelog and manifest.

    Changelogs are read concurrently; all reads finish before this returns.
    Private packages (``"private": true``) are skipped.

    Returns:
        One record per public package, sorted by package name, with the
        raw changelog bump in ``computed_bump``.
    """
    changelog_paths = sorted(
        config.working_directory.glob(f"{settings.packages}/CHANGELOG.md")
    )
    read = partial(
        _read_change_record, minimum_version_bump=config.minimum_version_bump
    )
    with ThreadPoolExecutor() as executor:
        results = list(executor.map(read, changelog_paths))

    records = [record for record in results if record is not None]
    return sorted(records, key=lambda record: record.package_name)


def apply_version_policy(
    records: Iterable[PackageChangeRecord],
    config: ReleaseConfig,
    production_packages: set[str],
) -> list[PackageChangeRecord]:
    """Decide the next version of each package.

    Packages without changelog entries are skipped, except production
    packages on stable and bugfix releases requesting a minor or major bump:
    those get the requested bump so that interdependent packages shipped
    together stay in step.
    """
    decided: list[PackageChangeRecord] = []
    for record in records:
        bump = record.computed_bump
        if (
            bump is None
            and config.release_type != "next"
            and config.minimum_version_bump != "patch"
            and record.package_name in production_packages
        ):
            bump = config.minimum_version_bump

        next_version = bump_version(record.current_version, bump) if bump else None
        decided.append(
            record.model_copy(
                update={"computed_bump": bump, "next_version": next_version}
            )
        )
    return decided


def _is_already_applied(
    record: PackageChangeRecord, next_version: str, release_type: ReleaseType
) -> bool:
    """True if the changelog heading and manifest version are both in place."""
    release_version = format_release_version(next_version, release_type)
    content = record.changelog_path.read_text(encoding="utf-8")
    manifest = read_json_file(record.manifest_path)
    return has_version_heading(content, release_version) and manifest.get(
        "version"
    ) == interim_version(next_version)


def _render_changelog(
    record: PackageChangeRecord,
    next_version: str,
    release_type: ReleaseType,
    publish_date: str,
) -> str:
    """Return the changelog with the new version heading added.

    Raises:
        ReleaseError: If the heading cannot be added, so the manifest would
            be bumped without a matching changelog entry.
    """
    release_version = format_release_version(next_version, release_type)
    content = record.changelog_path.read_text(encoding="utf-8")
    updated = add_version_heading(content, release_version, publish_date)
    if updated == content:
        raise ReleaseError(
            f"Cannot add a {release_version} heading to {record.changelog_path}: "
            "it has no '## Unreleased' heading or already lists that version."
        )
    return updated


def _write_package_update(
    record: PackageChangeRecord, next_version: str, changelog: str
) -> None:
    record.changelog_path.write_text(changelog, encoding="utf-8")
    set_version(record.manifest_path, interim_version(next_version))


def update_packages(
    config: ReleaseConfig,
    settings: RepositorySettings,
    abort_message: str = DEFAULT_ABORT_MESSAGE,
) -> str | None:
    """Update CHANGELOG and package.json files of packages with new entries.

    Every changelog is checked before any file is written, so a package
    is never bumped without its changelog entry.

    Args:
        config: Release run configuration.
        settings: Repository settings.
        abort_message: Message used if the operator declines the commit.

    Returns:
        Hash of the commit with all updates, or None when no package needed
        updating.

    Raises:
        ReleaseError: If a package that needs a release has a changelog the
            version heading cannot be added to.
    """
    root = config.working_directory
    records = collect_change_records(config, settings)
    records = apply_version_policy(records, config, get_production_packages(root))

    to_update = [
        (record, record.next_version)
        for record in records
        if record.next_version is not None
        and not _is_already_applied(record, record.next_version, config.release_type)
    ]
    if not to_update:
        print(">> No changes in CHANGELOG files detected.")
        return None

    print(">> Recommended version bumps based on the changes detected in CHANGELOG files:")

    updated_records = [record for record, _ in to_update]
    next_versions = [next_version for _, next_version in to_update]
    render = partial(
        _render_changelog,
        release_type=config.release_type,
        publish_date=date.today().isoformat(),
    )
    with ThreadPoolExecutor() as executor:
        changelogs = list(executor.map(render, updated_records, next_versions))
        list(executor.map(_write_package_update, updated_records, next_versions, changelogs))

    pathspecs: list[str] = []
    for record, next_version in to_update:
        release_version = format_release_version(next_version, config.release_type)
        print(f"   - {record.package_name}: {record.current_version} -> {release_version}")
        pathspecs.append(str(record.changelog_path.relative_to(root)))
        pathspecs.append(str(record.manifest_path.relative_to(root)))

    if config.interactive:
        ask_for_confirmation(
            "All corresponding files were updated. Commit the changes?",
            True,
            abort_message,
        )

    commit_hash = git.commit(root, CHANGELOG_COMMIT_MESSAGE, pathspecs)
    print(">> Changelog files changes have been committed successfully.")
    return commit_hash


def sync_release_branch(
    config: ReleaseConfig,
    settings: RepositorySettings,
    abort_message: str = DEFAULT_ABORT_MESSAGE,
) -> ReleaseConfig:
    """Check out the release branch and sync it with the published release.

    The branch whose content gets published is derived from the version in
    the mainline's root package.json (e.g. 15.2.0 → release/15.2). Latest
    and next releases replace the release branch content with it; bugfix
    releases keep the release branch as is, expecting the fixes to be
    cherry-picked already.

    Returns:
        The config with ``release_branch`` set.

    Raises:
        ReleaseError: If the root package.json has no usable version.
    """
    root = config.working_directory
    git.checkout_remote_branch(root, settings.mainline_branch)

    root_manifest_path = root / "package.json"
    root_version = get_version(read_json_file(root_manifest_path), root_manifest_path)
    try:
        published_branch = find_release_branch_name(
            root_version, settings.release_branch_prefix
        )
    except ValueError as exc:
        raise ReleaseError(
            f"Cannot derive the release branch from version {root_version!r} "
            f"in {root_manifest_path}"
        ) from exc

    release_branch = (
        settings.next_release_branch
        if config.release_type == "next"
        else settings.stable_release_branch
    )
    git.checkout_remote_branch(root, release_branch)
    git.fetch(root, "--depth=100")
    print(f">> The local release branch {release_branch} has been successfully checked out.")

    if config.release_type in ("latest", "next"):
        if config.interactive:
            ask_for_confirmation(
                "The branch is ready for sync with the latest release changes "
                f'applied to "{published_branch}". Proceed?',
                True,
                abort_message,
            )
        git.replace_content_from_remote_branch(root, published_branch)
        git.commit(root, f'Merge changes published in the "{published_branch}" branch')
        print(f">> The local release branch {release_branch} has been successfully synced.")

    return config.model_copy(update={"release_branch": release_branch})


def push_release_branch(
    config: ReleaseConfig, abort_message: str = DEFAULT_ABORT_MESSAGE
) -> None:
    """Push the release branch to origin."""
    if config.release_branch is None:
        raise ReleaseError("Release branch is not known yet; sync it first.")
    if config.interactive:
        ask_for_confirmation(
            "The release branch is going to be pushed to the remote repository. Continue?",
            True,
            abort_message,
        )
    git.push_branch_to_origin(config.working_directory, config.release_branch)


def publish_packages_to_npm(config: ReleaseConfig, settings: RepositorySettings) -> str:
    """Publish changed public packages to npm.

    - next: pre-release versions tagged with the HEAD hash, dist-tag "next"
    - bugfix: the repository's own publish script, versions as committed
    - latest: lerna bumps by the requested level and publishes

    Returns:
        Full hash of the release branch HEAD after lerna's version commit.
    """
    root = config.working_directory
    confirm = [] if config.interactive else ["--yes"]

    print(">> Installing npm packages.")
    run("npm", "ci", cwd=root)

    if config.release_type == "next":
        print(">> Bumping version of public packages changed since the last release.")
        commit_hash = git.get_last_commit_hash(root)
        run(
            "npx",
            "lerna",
            "version",
            f"pre{config.minimum_version_bump}",
            "--preid",
            f"next.{commit_hash}",
            "--no-private",
            *confirm,
            cwd=root,
        )
        print(">> Publishing modified packages to npm.")
        run("npx", "lerna", "publish", "from-package", "--dist-tag", "next", *confirm, cwd=root)
    elif config.release_type == "bugfix":
        print(">> Publishing modified packages to npm.")
        run("npm", "run", settings.publish_latest_script, cwd=root)
    else:
        print(">> Bumping version of public packages changed since the last release.")
        run(
            "npx",
            "lerna",
            "version",
            config.minimum_version_bump,
            "--no-private",
            *confirm,
            cwd=root,
        )
        print(">> Publishing modified packages to npm.")
        run("npx", "lerna", "publish", "from-package", *confirm, cwd=root)

    return git.get_last_commit_hash(root, short=False)


def backport_commits_to_trunk(
    config: ReleaseConfig,
    settings: RepositorySettings,
    commits: Sequence[str | None],
) -> None:
    """Cherry-pick release commits onto the mainline branch and push it.

    Only latest and bugfix releases are backported. Missing (None) and
    repeated hashes are dropped; the rest keep their order.
    """
    if config.release_type not in ("latest", "bugfix"):
        return
    to_backport = list(dict.fromkeys(commit for commit in commits if commit))
    if not to_backport:
        return

    root = config.working_directory
    print(">> Backporting commits.")
    git.reset_local_branch_against_origin(root, settings.mainline_branch)
    for commit_hash in to_backport:
        print(f"   - {commit_hash}")
        git.cherry_pick(root, commit_hash)
    git.push_branch_to_origin(root, settings.mainline_branch)


def clean_local_folders(folders: Iterable[Path], ignore_errors: bool = False) -> None:
    """Remove temporary folders created during the run."""
    for folder in folders:
        shutil.rmtree(folder, ignore_errors=ignore_errors)


class ReleaseRun:
    """A single run of the release pipeline.

    Holds the state shared between steps: the current config, the temporary
    folders to remove at the end, and the state machine position.
    """

    def __init__(self, config: ReleaseConfig, settings: RepositorySettings) -> None:
        self.config = config
        self.settings = settings
        self.state = ReleaseState.INIT
        self.temporary_folders: list[Path] = []

    def run_step(
        self,
        state: ReleaseState,
        title: str,
        abort_message: str,
        action: Callable[[], T],
    ) -> T:
        """Run one step, aborting the whole run if it fails.

        On failure the abort message is printed, temporary folders are
        removed and ReleaseAborted is raised, chained to the original error.
        An interrupt (KeyboardInterrupt) also removes the folders, then
        propagates unchanged.
        """
        self.state = state
        step(title)
        try:
            return action()
        except Exception as exc:
            self.state = ReleaseState.ABORTED
            if isinstance(exc, ReleaseAborted):
                message = exc.abort_message
            else:
                error(f"{title} failed: {exc}")
                message = abort_message
            error(message)
            self._discard_temporary_folders()
            raise ReleaseAborted(message, step=title) from exc
        except BaseException:
            # Ctrl-C or SystemExit: clean up, then let it propagate
            self.state = ReleaseState.ABORTED
            error(f"{title} interrupted. {abort_message}")
            self._discard_temporary_folders()
            raise

    def _discard_temporary_folders(self) -> None:
        clean_local_folders(self.temporary_folders, ignore_errors=True)
        self.temporary_folders.clear()

    def _clone(self) -> None:
        ask_for_confirmation("Ready to go?")
        if not self.settings.repository_url:
            raise ReleaseError(
                "No repository-url configured; set it in release-train.toml "
                "or run with --ci from a local checkout."
            )
        directory = Path(tempfile.mkdtemp(prefix="release-train-"))
        self.temporary_folders.append(directory)
        git.clone_repository(directory, self.settings.repository_url)
        self.config = self.config.model_copy(update={"working_directory": directory})
        print(f">> The repository has been successfully cloned to {directory}.")

    def _clean(self) -> None:
        clean_local_folders(self.temporary_folders)
        self.temporary_folders.clear()

    def run(self) -> ReleaseState:
        """Execute every step in order.

        Returns:
            ReleaseState.DONE on success.

        Raises:
            ReleaseAborted: If any step fails or is declined.
        """
        abort_message = DEFAULT_ABORT_MESSAGE
        settings = self.settings

        if self.config.interactive:
            self.run_step(
                ReleaseState.CLONING,
                "Cloning the Git repository",
                abort_message,
                self._clone,
            )

        self.config = self.run_step(
            ReleaseState.BRANCH_SYNC,
            "Getting into the release branch",
            abort_message,
            lambda: sync_release_branch(self.config, settings, abort_message),
        )

        changelog_commit = self.run_step(
            ReleaseState.COMPUTE_AND_COMMIT_VERSIONS,
            "Updating CHANGELOG and package.json files",
            abort_message,
            lambda: update_packages(self.config, settings, abort_message),
        )

        if changelog_commit is None:
            print("\n>> Nothing to publish.")
        else:
            push_abort_message = (
                "Aborting! Make sure to push changes applied to the release "
                f'branch "{self.config.release_branch}" manually.'
            )
            self.run_step(
                ReleaseState.PUSH,
                "Pushing the release branch",
                push_abort_message,
                lambda: push_release_branch(self.config, push_abort_message),
            )

            publish_commit = self.run_step(
                ReleaseState.PUBLISH,
                "Publishing packages to npm",
                "Aborting! The release branch is already pushed; finish "
                "publishing the packages to npm manually.",
                lambda: publish_packages_to_npm(self.config, settings),
            )

            self.run_step(
                ReleaseState.BACKPORT,
                f"Backporting commits to {settings.mainline_branch}",
                f"Aborting! Make sure to cherry-pick the release commits to "
                f'"{settings.mainline_branch}" manually.',
                lambda: backport_commits_to_trunk(
                    self.config, settings, [changelog_commit, publish_commit]
                ),
            )

        self.run_step(
            ReleaseState.CLEANUP,
            "Cleaning the temporary folders",
            "Cleaning failed.",
            self._clean,
        )
        self.state = ReleaseState.DONE
        return self.state


def prepare_for_package_release(
    config: ReleaseConfig,
    settings: RepositorySettings,
    custom_messages: Sequence[str] = (),
) -> None:
    """Print the welcome banner and run the release pipeline."""
    print(f"\n{'=' * 60}\nTime to publish packages to npm\n{'=' * 60}")
    print("To perform a release you have to be a member of the npm organization.")
    for message in custom_messages:
        print(message)

    ReleaseRun(config, settings).run()

    print(f"\n{'=' * 60}\nPackages are now published!\n{'=' * 60}")


def _release(
    release_type: ReleaseType,
    *,
    ci: bool,
    semver: BumpLevel,
    working_directory: Path | None,
    settings: RepositorySettings | None,
    custom_messages: Sequence[str],
) -> None:
    config = ReleaseConfig(
        working_directory=working_directory or Path.cwd(),
        interactive=not ci,
        minimum_version_bump=semver,
        release_type=release_type,
    )
    prepare_for_package_release(config, settings or RepositorySettings(), custom_messages)


def publish_npm_latest_dist_tag(
    *,
    ci: bool,
    semver: BumpLevel = "patch",
    working_directory: Path | None = None,
    settings: RepositorySettings | None = None,
) -> None:
    """Publish a new latest version of the packages."""
    _release(
        "latest",
        ci=ci,
        semver=semver,
        working_directory=working_directory,
        settings=settings,
        custom_messages=[
            "Welcome! This tool helps with publishing a new latest version of the packages.",
        ],
    )


def publish_npm_bugfix_latest_dist_tag(
    *,
    ci: bool,
    semver: BumpLevel = "patch",
    working_directory: Path | None = None,
    settings: RepositorySettings | None = None,
) -> None:
    """Publish a bugfix version of the packages under the latest dist-tag."""
    _release(
        "bugfix",
        ci=ci,
        semver=semver,
        working_directory=working_directory,
        settings=settings,
        custom_messages=[
            "Welcome! This tool is going to help you with publishing a new bugfix "
            "version of the packages with the latest dist tag.",
            "Make sure that all required changes have been already cherry-picked "
            "to the release branch.",
        ],
    )


def publish_npm_next_dist_tag(
    *,
    ci: bool,
    semver: BumpLevel = "patch",
    working_directory: Path | None = None,
    settings: RepositorySettings | None = None,
) -> None:
    """Publish a new next (pre-release) version of the packages."""
    _release(
        "next",
        ci=ci,
        semver=semver,
        working_directory=working_directory,
        settings=settings,
        custom_messages=[
            "Welcome! This tool helps with publishing a new next version of the packages.",
        ],
    )
