"""Git state queries for project context.

Answers "which branch and commit is this project on" for the
project-info tool. Every helper returns None outside a repository or
when git is not installed.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def _clean_git_env() -> dict[str, str]:
    """Return environment with GIT_DIR/GIT_WORK_TREE removed.

    Use when running git commands with explicit cwd to prevent
    inherited git context from overriding the provided path.
    """
    env = os.environ.copy()
    env.pop("GIT_DIR", None)
    env.pop("GIT_WORK_TREE", None)
    return env


def _git(repo_root: Path, *args: str) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=repo_root,
            env=_clean_git_env(),
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError, NotADirectoryError):
        return None
    return result.stdout.strip()


@dataclass
class GitInfo:
    """Branch and commit of a working tree.

    Attributes:
        branch: Current branch, None on detached HEAD or outside a repo.
        last_commit: Abbreviated hash of HEAD, None without commits.
    """

    branch: str | None = None
    last_commit: str | None = None

    @property
    def is_repo(self) -> bool:
        return self.branch is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isRepo": self.is_repo,
            "branch": self.branch,
            "lastCommit": self.last_commit,
        }


def get_repo_root(start_path: Path | None = None) -> Path | None:
    """Find the git repository root.

    Args:
        start_path: Path to start searching from (default: current directory)

    Returns:
        Path to repository root, or None if not in a git repository
    """
    output = _git(start_path or Path.cwd(), "rev-parse", "--show-toplevel")
    return Path(output) if output else None


def get_current_branch(repo_root: Path) -> str | None:
    """Get the name of the current git branch.

    Args:
        repo_root: Path to repository root

    Returns:
        Branch name, or None if not on a branch (detached HEAD)
    """
    branch = _git(repo_root, "rev-parse", "--abbrev-ref", "HEAD")
    if not branch or branch == "HEAD":
        return None
    return branch


def get_last_commit(repo_root: Path) -> str | None:
    """Abbreviated (7 character) hash of HEAD."""
    commit = _git(repo_root, "rev-parse", "--short=7", "HEAD")
    return commit or None


def get_git_info(repo_root: Path) -> GitInfo:
    """Collect branch and last commit for ``repo_root``."""
    branch = get_current_branch(repo_root)
    last_commit = get_last_commit(repo_root) if branch else None
    return GitInfo(branch=branch, last_commit=last_commit)
