"""Comment channel: one mutable PR comment per logical phase.

The flow keeps the accumulated body itself and pushes the whole text on every
update, so a reader watching the PR sees a single evolving status instead of
a stream of new comments.
"""

from __future__ import annotations

from infra.forge import ForgeClient
from prflow.core.logging import get_logger

logger = get_logger("core.comments")

REVIEW_HEADER = "### AI Code Review"
TEST_HEADER = "### AI Test Generation"
INITIALIZING = "_(initializing...)_"


class CommentChannel:
    """Creates and replaces comments on a single pull request."""

    def __init__(self, forge: ForgeClient, repo: str, pull_number: int) -> None:
        self._forge = forge
        self._repo = repo
        self._pull_number = pull_number

    def create(self, body: str) -> int:
        comment_id = self._forge.create_comment(self._repo, self._pull_number, body)
        logger.info("Created comment %d on %s#%d", comment_id, self._repo, self._pull_number)
        return comment_id

    def update(self, comment_id: int, body: str) -> None:
        self._forge.update_comment(self._repo, comment_id, body)
        logger.debug("Updated comment %d (%d chars)", comment_id, len(body))


def initial_body(header: str) -> str:
    return f"{header}\n{INITIALIZING}"
