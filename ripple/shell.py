"""Shell and git utilities.

Provides simple wrappers around subprocess calls for running shell commands
and git operations, plus output formatting helpers. Every wrapper echoes the
command before running it and turns any failure into a CollaboratorError.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from pathlib import Path

from .errors import CollaboratorError


def _describe(args: tuple[str, ...], cwd: Path | str | None) -> str:
    where = f" in {cwd}" if cwd else ""
    return f"'{' '.join(args)}'{where}"


def _environ(env: Mapping[str, str] | None) -> dict[str, str] | None:
    # Extra variables are layered on top of the inherited environment.
    if env is None:
        return None
    return {**os.environ, **env}


def run(
    *args: str,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> None:
    """Run a command, streaming its output to the terminal.

    Args:
        *args: Command and arguments (e.g., "git", "clone", url, dest).
        cwd: Directory to run in; defaults to the current directory.
        env: Extra environment variables for the child process.

    Raises:
        CollaboratorError: If the command is missing or exits non-zero.
    """
    print(f"> Running {_describe(args, cwd)}")
    try:
        result = subprocess.run(args, cwd=cwd, env=_environ(env))
    except OSError as exc:
        raise CollaboratorError(f"could not run {_describe(args, cwd)}: {exc}") from exc
    if result.returncode != 0:
        raise CollaboratorError(
            f"{_describe(args, cwd)} failed with exit code {result.returncode}"
        )


def capture(
    *args: str,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Run a command and return its stripped stdout.

    Stderr still goes to the terminal so failures stay visible.

    Raises:
        CollaboratorError: If the command is missing or exits non-zero.
    """
    try:
        result = subprocess.run(
            args, cwd=cwd, env=_environ(env), stdout=subprocess.PIPE, text=True
        )
    except OSError as exc:
        raise CollaboratorError(f"could not run {_describe(args, cwd)}: {exc}") from exc
    if result.returncode != 0:
        raise CollaboratorError(
            f"{_describe(args, cwd)} failed with exit code {result.returncode}"
        )
    return result.stdout.strip()


def git(*args: str, cwd: Path | str | None = None) -> None:
    """Run a git command in `cwd`, streaming output."""
    run("git", *args, cwd=cwd)


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of an update in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")
