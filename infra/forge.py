"""Unified forge interface: abstract protocol and shared data models.

All code that needs to talk to the code-hosting forge (pull requests,
repository contents, comments) must go through a ``ForgeClient``
implementation.  Direct HTTP calls to forge APIs outside this package are
not allowed.
"""

from __future__ import annotations

from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class PullRequestInfo(BaseModel):
    """Metadata of a single pull request."""

    number: int
    title: str = ""
    body: str = ""
    head_ref: str
    base_ref: str


class PullRequestFile(BaseModel):
    """One entry of a pull request's changed-file listing."""

    filename: str
    status: str = ""
    patch: str = ""
    additions: int = 0
    deletions: int = 0
    previous_filename: str | None = None


class RepoFile(BaseModel):
    """A file read from the repository at a given ref.

    ``content`` is ``None`` when the forge did not inline the file body
    (e.g. blobs above the API's inline size limit).  ``sha`` is the blob
    revision the forge requires for updates and deletes.
    """

    path: str
    sha: str
    content: str | None = None


class DirEntry(BaseModel):
    """One entry of a directory listing."""

    path: str
    kind: Literal["file", "dir"]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ForgeClient(Protocol):
    """Forge operations required by prflow.

    Callers should type-hint against ``ForgeClient``, not against a concrete
    implementation class.  ``repo`` is always ``owner/name``.

    "Not found" is not an error for the read operations that can
    legitimately miss (:meth:`get_file`, :meth:`list_directory`): they return
    ``None`` / ``[]``.  Every other failure raises :class:`ForgeError`.

    All methods are synchronous.
    """

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    def get_pull_request(self, repo: str, number: int) -> PullRequestInfo:
        """Fetch title, body and head/base branch names of a pull request."""
        ...

    def list_pull_request_files(self, repo: str, number: int) -> list[PullRequestFile]:
        """Return every changed file of a pull request (all pages)."""
        ...

    def list_pull_request_commits(self, repo: str, number: int) -> list[str]:
        """Return the commit messages of a pull request, oldest first."""
        ...

    # ------------------------------------------------------------------
    # Repository contents
    # ------------------------------------------------------------------

    def get_file(self, repo: str, path: str, ref: str) -> RepoFile | None:
        """Read a file at *ref*.

        Returns:
            :class:`RepoFile`, or ``None`` when *path* does not exist at
            *ref* (or is a directory).

        Raises:
            ForgeError: on any other HTTP or network error.
        """
        ...

    def list_directory(self, repo: str, path: str, ref: str) -> list[DirEntry]:
        """List the direct children of a directory at *ref*.

        A missing directory yields an empty list.
        """
        ...

    def create_or_update_file(
        self,
        repo: str,
        path: str,
        content: str,
        branch: str,
        message: str,
        sha: str | None = None,
    ) -> None:
        """Write *content* to *path* on *branch* as one commit.

        Args:
            sha: Blob revision of the file being replaced.  Must be given
                 when the file exists and omitted when it does not.
        """
        ...

    def delete_file(self, repo: str, path: str, branch: str, sha: str, message: str) -> None:
        """Delete *path* on *branch* as one commit."""
        ...

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def create_comment(self, repo: str, issue_id: int, body: str) -> int:
        """Post a comment on an issue or pull request and return its id."""
        ...

    def update_comment(self, repo: str, comment_id: int, body: str) -> None:
        """Replace the body of an existing comment."""
        ...


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ForgeError(Exception):
    """Raised for any forge API error (HTTP errors, missing fields, …)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404

    def __repr__(self) -> str:  # pragma: no cover
        return f"ForgeError({self.args[0]!r}, status_code={self.status_code})"
