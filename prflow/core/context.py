"""Context builder: assembles the immutable PR snapshot the agents work from.

Two steps, both single-pass and fail-fast:

* :meth:`ContextBuilder.build`: PR metadata, changed files (with content
  where it is safe to include) and commit messages.
* :meth:`ContextBuilder.build_test_context`: the same snapshot extended with
  every file under the test-root directory.

"File absent at this ref" is an expected outcome (a file can be deleted or
renamed between the diff view and the ref) and never raises; every other
forge error propagates because a partial context is not usable downstream.
"""

from __future__ import annotations

from collections.abc import Iterable

from infra.forge import ForgeClient, PullRequestFile
from prflow.core.logging import get_logger
from prflow.core.state import (
    ChangedFile,
    ChangedFileStatus,
    PullRequestContext,
    PullRequestRef,
    TestContext,
    TestFile,
)

logger = get_logger("core.context")

DEFAULT_MAX_FILE_CHARS = 32_000
DEFAULT_EXCLUDED_SUFFIXES: tuple[str, ...] = ("package-lock.json", "yarn.lock", "pnpm-lock.yaml")


def should_exclude(filename: str, suffixes: Iterable[str] = DEFAULT_EXCLUDED_SUFFIXES) -> bool:
    """Return True if *filename* matches the denylist (lockfiles by default)."""
    return any(filename.endswith(suffix) for suffix in suffixes)


class ContextBuilder:
    """Builds :class:`PullRequestContext` / :class:`TestContext` from the forge.

    Args:
        forge:             Forge client used for every read.
        max_file_chars:    Content size ceiling; larger files are excluded,
                           never truncated.
        excluded_suffixes: Filename suffixes never sent to the model.
    """

    def __init__(
        self,
        forge: ForgeClient,
        max_file_chars: int = DEFAULT_MAX_FILE_CHARS,
        excluded_suffixes: Iterable[str] = DEFAULT_EXCLUDED_SUFFIXES,
    ) -> None:
        self._forge = forge
        self._max_file_chars = max_file_chars
        self._excluded_suffixes = tuple(excluded_suffixes)

    # ------------------------------------------------------------------
    # PR context
    # ------------------------------------------------------------------

    def build(self, ref: PullRequestRef) -> PullRequestContext:
        repo = ref.full_name
        pr = self._forge.get_pull_request(repo, ref.number)
        head_ref = pr.head_ref or ref.head_ref
        files = self._forge.list_pull_request_files(repo, ref.number)
        commits = self._forge.list_pull_request_commits(repo, ref.number)

        changed = [self._changed_file(repo, head_ref, f) for f in files]
        excluded = sum(1 for f in changed if f.excluded)
        logger.info(
            "Built PR context | %s#%d | files=%d (excluded=%d) | commits=%d",
            repo, ref.number, len(changed), excluded, len(commits),
        )
        return PullRequestContext(
            owner=ref.owner,
            repo=ref.repo,
            pull_number=ref.number,
            head_ref=head_ref,
            base_ref=pr.base_ref,
            title=pr.title,
            body=pr.body,
            changed_files=tuple(changed),
            commit_messages=tuple(commits),
        )

    def _changed_file(self, repo: str, head_ref: str, entry: PullRequestFile) -> ChangedFile:
        base = dict(
            filename=entry.filename,
            patch=entry.patch,
            status=entry.status,
            additions=entry.additions,
            deletions=entry.deletions,
            previous_filename=entry.previous_filename,
        )
        if entry.status == ChangedFileStatus.REMOVED or should_exclude(entry.filename, self._excluded_suffixes):
            return ChangedFile(**base, excluded=True)

        fetched = self._forge.get_file(repo, entry.filename, head_ref)
        if fetched is None or fetched.content is None:
            logger.info("Excluding %s: not readable at %s", entry.filename, head_ref)
            return ChangedFile(**base, excluded=True)
        if len(fetched.content) > self._max_file_chars:
            logger.info(
                "Excluding %s: %d chars exceeds ceiling of %d",
                entry.filename, len(fetched.content), self._max_file_chars,
            )
            return ChangedFile(**base, excluded=True)
        return ChangedFile(**base, content=fetched.content)

    # ------------------------------------------------------------------
    # Test context
    # ------------------------------------------------------------------

    def build_test_context(self, context: PullRequestContext, test_root: str = "__tests__") -> TestContext:
        test_files = self._collect_test_files(context.full_name, context.head_ref, test_root)
        logger.info("Built test context | root=%s | existing test files=%d", test_root, len(test_files))
        return TestContext.from_context(context, test_files)

    def _collect_test_files(self, repo: str, ref: str, dir_path: str) -> list[TestFile]:
        results: list[TestFile] = []
        for entry in self._forge.list_directory(repo, dir_path, ref):
            if entry.kind == "dir":
                results.extend(self._collect_test_files(repo, ref, entry.path))
                continue
            fetched = self._forge.get_file(repo, entry.path, ref)
            if fetched is not None and fetched.content:
                results.append(TestFile(filename=entry.path, content=fetched.content))
        return results
