"""
Thin wrappers over the git CLI: reading the current branch and force-pushing it.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .errors import DetachedOrUnresolvable, PushRejected

logger = logging.getLogger(__name__)

# Lines of git output kept in a PushRejected message
OUTPUT_TAIL_LINES = 40


def run_git(args: List[str], cwd: Optional[Union[str, Path]] = None) -> subprocess.CompletedProcess:
    """
    Run a git command and capture its output.

    Raises:
        FileNotFoundError: If git is not installed
    """
    command = ["git", *args]
    logger.debug(f"Running: {' '.join(command)}")
    return subprocess.run(command, cwd=cwd, capture_output=True, text=True)


def _tail(text: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


class BranchResolver:
    """Reads the symbolic branch checked out in a working tree."""

    def __init__(self, cwd: Optional[Union[str, Path]] = None):
        self.cwd = cwd

    def current_branch(self) -> str:
        """
        Return the name of the checked out branch.

        Raises:
            DetachedOrUnresolvable: On a detached HEAD, outside a repository,
                or when git is not available
        """
        try:
            result = run_git(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=self.cwd)
        except FileNotFoundError:
            raise DetachedOrUnresolvable("git executable not found") from None

        branch = result.stdout.strip()
        if result.returncode != 0 or not branch:
            detail = _tail(result.stderr) or "HEAD is detached"
            raise DetachedOrUnresolvable(f"No branch is checked out: {detail}")

        return branch


@dataclass(frozen=True)
class PushResult:
    remote: str
    refspec: str
    output: str


class CodePusher:
    """
    Force-pushes a local branch onto the remote's default branch.

    The remote history is replaced, not merged. A push is attempted exactly once.
    """

    def __init__(self, default_branch: str = "master", cwd: Optional[Union[str, Path]] = None):
        self.default_branch = default_branch
        self.cwd = cwd

    def refspec(self, branch: str) -> str:
        """Short form, for display."""
        return f"{branch}:{self.default_branch}"

    def qualified_refspec(self, branch: str) -> str:
        # unqualified names are ambiguous when a tag shares the branch name
        return f"refs/heads/{branch}:refs/heads/{self.default_branch}"

    def push(self, remote: str, branch: str) -> PushResult:
        """
        Run ``git push --force <remote> refs/heads/<branch>:refs/heads/<default_branch>``.

        Raises:
            PushRejected: If git exits non-zero or cannot be run
        """
        refspec = self.refspec(branch)
        logger.info(f"Force-pushing {refspec} to {remote}")

        try:
            result = run_git(["push", "--force", remote, self.qualified_refspec(branch)], cwd=self.cwd)
        except FileNotFoundError:
            raise PushRejected(remote, refspec, "git executable not found") from None

        # git reports push progress on stderr
        output = "\n".join(part for part in (result.stdout.strip(), result.stderr.strip()) if part)
        if result.returncode != 0:
            raise PushRejected(remote, refspec, _tail(output))

        logger.info(f"Pushed {refspec} to {remote}")
        return PushResult(remote=remote, refspec=refspec, output=output)
