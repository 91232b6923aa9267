"""Local checkout sync.

Proposals are committed through the forge API, so the checkout the tests run
in must pull them before the next test run.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from prflow.core.logging import get_logger

logger = get_logger("tools.git")

GIT_TIMEOUT_SECONDS = 120


class GitError(Exception):
    """Raised when a git command exits non-zero or cannot be started."""


def _run_git(args: list[str], cwd: str | Path) -> str:
    logger.info("git        | cwd=%s | git %s", cwd, " ".join(args))
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
            encoding="utf-8",
            errors="replace",
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise GitError(f"git {' '.join(args)} could not run: {exc}") from exc

    output = (result.stdout + ("\n" + result.stderr if result.stderr else "")).strip()
    logger.info("git        | exit=%d | output_len=%d", result.returncode, len(output))
    if result.returncode != 0:
        raise GitError(f"git {' '.join(args)} failed (exit {result.returncode}): {output[:500]}")
    return output


def sync_branch(repo_root: str | Path, branch: str) -> str:
    """Move the checkout at *repo_root* onto the tip of ``origin/<branch>``.

    Works from a detached checkout too (the default merge-ref checkout in
    CI): the branch is fetched and checked out at the fetched commit.
    """
    _run_git(["fetch", "origin", branch], repo_root)
    return _run_git(["checkout", "-B", branch, "FETCH_HEAD"], repo_root)
