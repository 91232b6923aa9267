"""Commit applier: writes test proposals to the PR branch through the forge.

Each proposal becomes one or two commits (a rename deletes the old path
first).  Writes probe the current blob sha and pass it along, which the
forge requires to replace an existing file.  Probe-then-write is not atomic:
a second writer touching the same path in between makes the write fail with
a conflict.  Only one flow runs per PR at a time, so the race is not handled.
"""

from __future__ import annotations

from collections.abc import Sequence

from infra.forge import ForgeClient
from prflow.core.logging import get_logger
from prflow.core.state import ProposalAction, TestProposal

logger = get_logger("core.committer")


def commit_message(proposal: TestProposal) -> str:
    return f"Add/Update tests: {proposal.filename}"


def rename_message(old: str, new: str) -> str:
    return f"Rename {old} to {new}"


class CommitApplier:
    """Applies :class:`TestProposal` objects to a branch.

    Forge errors other than "old file already gone" propagate unchanged;
    there is no safe way to continue after a failed write.
    """

    def __init__(self, forge: ForgeClient, repo: str) -> None:
        self._forge = forge
        self._repo = repo

    def apply(self, branch: str, proposals: Sequence[TestProposal]) -> int:
        """Apply *proposals* in order and return the number of files written."""
        written = 0
        for proposal in proposals:
            if proposal.action == ProposalAction.RENAME and proposal.old_filename:
                self._delete_if_present(branch, proposal.old_filename, proposal.filename)
            self._write(branch, proposal)
            written += 1
        logger.info("Applied %d proposal(s) to %s@%s", written, self._repo, branch)
        return written

    def _delete_if_present(self, branch: str, old: str, new: str) -> None:
        if old == new:
            return
        existing = self._forge.get_file(self._repo, old, branch)
        if existing is None:
            logger.info("Rename source %s not on %s; nothing to delete", old, branch)
            return
        self._forge.delete_file(self._repo, old, branch, existing.sha, rename_message(old, new))
        logger.info("Deleted %s (renamed to %s)", old, new)

    def _write(self, branch: str, proposal: TestProposal) -> None:
        existing = self._forge.get_file(self._repo, proposal.filename, branch)
        sha = existing.sha if existing is not None else None
        self._forge.create_or_update_file(
            self._repo,
            proposal.filename,
            proposal.content,
            branch,
            commit_message(proposal),
            sha=sha,
        )
        logger.info("%s %s on %s", "Updated" if sha else "Created", proposal.filename, branch)
