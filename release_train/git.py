"""Git operations used by the release pipeline.

Every function takes the repository directory explicitly; nothing relies
on the process working directory.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from .shell import git


def clone_repository(directory: Path, repository_url: str) -> None:
    """Clone the repository into an existing empty directory."""
    git(
        "clone",
        "--depth=100",
        "--no-single-branch",
        repository_url,
        str(directory),
        cwd=directory,
    )


def fetch(directory: Path, *args: str) -> None:
    """Fetch from origin, passing extra options such as --depth=100."""
    git("fetch", "origin", *args, cwd=directory)


def checkout_remote_branch(directory: Path, branch: str) -> None:
    """Fetch ``branch`` and check it out, creating a tracking branch if needed."""
    git("fetch", "origin", branch, cwd=directory)
    git("checkout", branch, cwd=directory)


def replace_content_from_remote_branch(directory: Path, branch: str) -> None:
    """Replace the whole working tree with the content of ``origin/<branch>``.

    History is kept; only the files change, so the result can be committed
    on top of the current branch.
    """
    git("rm", "-r", "-q", ".", cwd=directory)
    git("checkout", f"origin/{branch}", "--", ".", cwd=directory)


def commit(
    directory: Path, message: str, pathspecs: Sequence[str] = ()
) -> str | None:
    """Stage ``pathspecs`` and commit everything staged.

    Returns:
        The new commit hash, or None if there was nothing to commit.
    """
    if pathspecs:
        git("add", *pathspecs, cwd=directory)

    staged = git("diff", "--cached", "--name-only", cwd=directory)
    if not staged:
        return None

    git("commit", "-m", message, cwd=directory)
    return git("rev-parse", "HEAD", cwd=directory)


def push_branch_to_origin(directory: Path, branch: str) -> None:
    git("push", "origin", branch, cwd=directory)


def reset_local_branch_against_origin(directory: Path, branch: str) -> None:
    """Point the local ``branch`` at ``origin/<branch>`` and check it out."""
    git("fetch", "origin", branch, cwd=directory)
    git("checkout", "-B", branch, f"origin/{branch}", cwd=directory)


def cherry_pick(directory: Path, commit_hash: str) -> None:
    """Apply ``commit_hash`` onto the current branch."""
    git("cherry-pick", commit_hash, cwd=directory)


def get_last_commit_hash(directory: Path, short: bool = True) -> str:
    """Hash of HEAD, abbreviated unless ``short`` is False."""
    if short:
        return git("rev-parse", "--short", "HEAD", cwd=directory)
    return git("rev-parse", "HEAD", cwd=directory)
