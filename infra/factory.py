"""Forge client factory.

:func:`get_github_client` is the single entry-point for obtaining a
``ForgeClient`` instance.  It reads credentials and the API base URL from the
application config unless they are passed explicitly.

Usage::

    from infra.factory import get_github_client

    client = get_github_client()                       # from settings
    client = get_github_client(token="ghp_...")        # explicit token
"""

from __future__ import annotations

from infra.github_client import GitHubClient


def _settings():  # pragma: no cover
    """Lazy import to avoid circular imports and allow test overrides."""
    from prflow.core.config import get_settings
    return get_settings()


def get_github_client(token: str = "", base_url: str = "") -> GitHubClient:
    """Return a :class:`GitHubClient` (a :class:`~infra.forge.ForgeClient`).

    Uses ``GITHUB_TOKEN`` and ``GITHUB_API_URL`` from config for whichever
    argument is not provided.

    Args:
        token:    Optional token override.
        base_url: Optional API base URL override (GitHub Enterprise, tests).
    """
    if not token or not base_url:
        settings = _settings()
        token = token or settings.github_token
        base_url = base_url or settings.github_api_url
    return GitHubClient(token=token, base_url=base_url)
