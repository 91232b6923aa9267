"""prflow infrastructure layer: forge API clients.

All external forge communication (pull requests, repository contents,
comments) goes through this package.  Use
:func:`~infra.factory.get_github_client` to obtain a client instance.

Quick start::

    from infra.factory import get_github_client

    client = get_github_client()
    pr     = client.get_pull_request("owner/repo", 42)
    files  = client.list_pull_request_files("owner/repo", 42)
    cid    = client.create_comment("owner/repo", 42, "### AI Code Review")
"""

from infra.factory import get_github_client
from infra.forge import (
    DirEntry,
    ForgeClient,
    ForgeError,
    PullRequestFile,
    PullRequestInfo,
    RepoFile,
)
from infra.github_client import GitHubClient

__all__ = [
    # Protocol & models
    "ForgeClient",
    "ForgeError",
    "PullRequestInfo",
    "PullRequestFile",
    "RepoFile",
    "DirEntry",
    # Clients
    "GitHubClient",
    # Factory
    "get_github_client",
]
