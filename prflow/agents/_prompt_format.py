"""Formatting helpers shared by the review, gating and test-writing prompts."""
from __future__ import annotations

from prflow.core.state import PullRequestContext, TestContext

EXCLUDED_MARKER = "[EXCLUDED FROM PROMPT]"


def _format_commits(context: PullRequestContext) -> str:
    if not context.commit_messages:
        return "(none)"
    return "\n".join(f"- {message}" for message in context.commit_messages)


def _format_changed_files(context: PullRequestContext) -> str:
    blocks: list[str] = []
    for file in context.changed_files:
        if file.excluded:
            blocks.append(f"File: {file.filename} {EXCLUDED_MARKER}")
            continue
        blocks.append(f"File: {file.filename}\nPatch:\n{file.patch}\nContent:\n{file.content}")
    return "\n---\n".join(blocks) if blocks else "(none)"


def _format_existing_tests(context: TestContext) -> str:
    if not context.existing_test_files:
        return "(none)"
    return "\n".join(
        f"Existing test: {test.filename}\n---\n{test.content}" for test in context.existing_test_files
    )


def format_pr_context(context: PullRequestContext) -> str:
    """Title, commits and changed files as one prompt block."""
    return (
        f"PR Title: {context.title}\n"
        f"Commits:\n{_format_commits(context)}\n"
        f"Changed Files:\n{_format_changed_files(context)}"
    )


def format_test_context(context: TestContext) -> str:
    """``format_pr_context`` plus every existing test file."""
    return f"{format_pr_context(context)}\nExisting Tests:\n{_format_existing_tests(context)}"
