"""Shell and git utilities.

Provides simple wrappers around subprocess calls for running shell commands
and git operations, the confirmation prompt, plus output formatting helpers.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

DEFAULT_ABORT_MESSAGE = "Aborting!"


class ReleaseError(RuntimeError):
    """Unrecoverable precondition or configuration error."""


class ReleaseAborted(ReleaseError):
    """A release step failed or the operator declined to continue.

    Attributes:
        abort_message: Step-specific message telling the operator what is
            left to do by hand.
        step: Title of the failed step, once known.
    """

    def __init__(
        self, abort_message: str = DEFAULT_ABORT_MESSAGE, step: str | None = None
    ) -> None:
        super().__init__(f"{step}: {abort_message}" if step else abort_message)
        self.abort_message = abort_message
        self.step = step


def git(*args: str, cwd: Path, check: bool = True) -> str:
    """Run a git command in a repository and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "status", "--short").
        cwd: Repository working directory.
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., an empty diff).

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def run(*args: str, cwd: Path, check: bool = True) -> subprocess.CompletedProcess[bytes]:
    """Run an arbitrary shell command.

    Unlike git(), this doesn't capture output - it streams directly to
    the terminal so users can follow npm and lerna progress.

    Args:
        *args: Command and arguments (e.g., "npx", "lerna", "publish").
        cwd: Directory to run the command in.
        check: If True (default), raise on non-zero exit.

    Returns:
        CompletedProcess with returncode for checking success.
    """
    return subprocess.run(args, cwd=cwd, check=check)


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of the release pipeline in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"ERROR: {msg}", file=sys.stderr)


def ask_for_confirmation(
    message: str,
    default: bool = True,
    abort_message: str = DEFAULT_ABORT_MESSAGE,
) -> None:
    """Ask the operator to confirm before continuing.

    Raises:
        ReleaseAborted: If the operator answers no.
    """
    if not click.confirm(message, default=default):
        raise ReleaseAborted(abort_message)
