"""GitHub forge client.

Implements :class:`~infra.forge.ForgeClient` against the GitHub REST API v3.
Authentication uses a token supplied via the ``GITHUB_TOKEN`` environment
variable / config key (the Actions-provided token works).

Usage::

    from infra.factory import get_github_client
    client = get_github_client()
    pr = client.get_pull_request("owner/repo", 42)
"""

from __future__ import annotations

import base64
from typing import Any
from urllib.parse import quote

import httpx

from infra.forge import (
    DirEntry,
    ForgeError,
    PullRequestFile,
    PullRequestInfo,
    RepoFile,
)

_GITHUB_API = "https://api.github.com"
_PER_PAGE = 100


class GitHubClient:
    """GitHub REST API v3 client.

    Args:
        token: GitHub token.  Pass an empty string to make unauthenticated
               requests (read-only, rate-limited to 60 req/h).
        base_url: API base URL.  Override in tests or for GitHub Enterprise.
        timeout: HTTP timeout in seconds (default 30).
    """

    def __init__(
        self,
        token: str = "",
        base_url: str = _GITHUB_API,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(headers=headers, timeout=timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.request(method, url, params=params, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ForgeError(
                f"GitHub {method} {path} failed: {exc.response.status_code} {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise ForgeError(f"GitHub {method} {path} network error: {exc}") from exc
        if not response.content:
            return None
        return response.json()

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params)

    def _get_all_pages(self, path: str) -> list[Any]:
        """Follow ``page`` until a short page is returned."""
        items: list[Any] = []
        page = 1
        while True:
            data = self._get(path, params={"per_page": _PER_PAGE, "page": page})
            items.extend(data or [])
            if not data or len(data) < _PER_PAGE:
                return items
            page += 1

    def _repo_path(self, repo: str) -> str:
        """Return URL-encoded ``/repos/owner/name``."""
        return f"/repos/{quote(repo, safe='/')}"

    def _contents_path(self, repo: str, path: str) -> str:
        return f"{self._repo_path(repo)}/contents/{quote(path.strip('/'), safe='/')}"

    @staticmethod
    def _decode_content(data: dict[str, Any]) -> str | None:
        if data.get("encoding") != "base64" or data.get("content") is None:
            # Blobs above the inline limit come back with encoding "none".
            return None
        raw = base64.b64decode(data["content"])
        return raw.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # ForgeClient implementation: pull requests
    # ------------------------------------------------------------------

    def get_pull_request(self, repo: str, number: int) -> PullRequestInfo:
        """Fetch a single pull request.

        Args:
            repo:   ``owner/name``.
            number: Pull request number.
        """
        data = self._get(f"{self._repo_path(repo)}/pulls/{number}")
        try:
            return PullRequestInfo(
                number=data["number"],
                title=data.get("title") or "",
                body=data.get("body") or "",
                head_ref=data["head"]["ref"],
                base_ref=data["base"]["ref"],
            )
        except (KeyError, TypeError) as exc:
            raise ForgeError(f"GitHub pull request #{number} payload missing field: {exc}") from exc

    def list_pull_request_files(self, repo: str, number: int) -> list[PullRequestFile]:
        """Return the changed files of a pull request (all pages)."""
        data = self._get_all_pages(f"{self._repo_path(repo)}/pulls/{number}/files")
        return [
            PullRequestFile(
                filename=item["filename"],
                status=item.get("status") or "",
                patch=item.get("patch") or "",
                additions=item.get("additions") or 0,
                deletions=item.get("deletions") or 0,
                previous_filename=item.get("previous_filename"),
            )
            for item in data
        ]

    def list_pull_request_commits(self, repo: str, number: int) -> list[str]:
        """Return commit messages of a pull request, oldest first."""
        data = self._get_all_pages(f"{self._repo_path(repo)}/pulls/{number}/commits")
        return [item.get("commit", {}).get("message", "") for item in data]

    # ------------------------------------------------------------------
    # ForgeClient implementation: contents
    # ------------------------------------------------------------------

    def get_file(self, repo: str, path: str, ref: str) -> RepoFile | None:
        """Read *path* at *ref*; ``None`` when it does not exist.

        Args:
            repo: ``owner/name``.
            path: Repository-relative file path.
            ref:  Branch, tag or commit sha.
        """
        try:
            data = self._get(self._contents_path(repo, path), params={"ref": ref})
        except ForgeError as exc:
            if exc.not_found:
                return None
            raise
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            return None
        return RepoFile(path=data.get("path", path), sha=data["sha"], content=self._decode_content(data))

    def list_directory(self, repo: str, path: str, ref: str) -> list[DirEntry]:
        """List a directory at *ref*; a missing directory yields ``[]``."""
        try:
            data = self._get(self._contents_path(repo, path), params={"ref": ref})
        except ForgeError as exc:
            if exc.not_found:
                return []
            raise
        if isinstance(data, dict):
            # The path named a file, not a directory.
            return [DirEntry(path=data.get("path", path), kind="file")] if data.get("type") == "file" else []
        return [
            DirEntry(path=item["path"], kind=item["type"])
            for item in data
            if item.get("type") in ("file", "dir")
        ]

    def create_or_update_file(
        self,
        repo: str,
        path: str,
        content: str,
        branch: str,
        message: str,
        sha: str | None = None,
    ) -> None:
        """Create or replace a file with a single commit on *branch*."""
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha
        self._request("PUT", self._contents_path(repo, path), json=payload)

    def delete_file(self, repo: str, path: str, branch: str, sha: str, message: str) -> None:
        """Delete a file with a single commit on *branch*."""
        self._request(
            "DELETE",
            self._contents_path(repo, path),
            json={"message": message, "sha": sha, "branch": branch},
        )

    # ------------------------------------------------------------------
    # ForgeClient implementation: comments
    # ------------------------------------------------------------------

    def create_comment(self, repo: str, issue_id: int, body: str) -> int:
        """Post a comment on a GitHub issue or PR and return its id.

        Args:
            repo:     ``owner/name``.
            issue_id: Issue / PR number.
            body:     Markdown comment text.
        """
        data = self._request(
            "POST",
            f"{self._repo_path(repo)}/issues/{issue_id}/comments",
            json={"body": body},
        )
        return data["id"]

    def update_comment(self, repo: str, comment_id: int, body: str) -> None:
        """Replace the body of an issue / PR comment."""
        self._request(
            "PATCH",
            f"{self._repo_path(repo)}/issues/comments/{comment_id}",
            json={"body": body},
        )

    def close(self) -> None:
        self._client.close()

    def __repr__(self) -> str:  # pragma: no cover
        return f"GitHubClient(base_url={self._base_url!r})"
