"""Shared in-memory fakes: a forge with a versioned file store, a scripted
model client and a scripted test runner."""

from __future__ import annotations

import itertools
from collections.abc import Iterable

import pytest
from pydantic import BaseModel

from infra.forge import DirEntry, ForgeError, PullRequestFile, PullRequestInfo, RepoFile
from prflow.agents.models import ModelError
from prflow.core.state import PullRequestRef, TestRunResult


class FakeForge:
    """In-memory :class:`~infra.forge.ForgeClient`.

    Files live in ``files`` as ``path -> (sha, content)``.  Every write bumps
    the sha, and writes/deletes with a stale or missing sha fail the same way
    the real API does.
    """

    def __init__(
        self,
        pr: PullRequestInfo | None = None,
        pr_files: Iterable[PullRequestFile] = (),
        commits: Iterable[str] = (),
        files: dict[str, str | None] | None = None,
    ) -> None:
        self.pr = pr or PullRequestInfo(number=7, title="Add sum helper", head_ref="feature", base_ref="main")
        self.pr_files = list(pr_files)
        self.commits = list(commits)
        self.files: dict[str, tuple[str, str | None]] = {}
        self._shas = itertools.count(1)
        self._comment_ids = itertools.count(100)
        for path, content in (files or {}).items():
            self.put(path, content)

        self.comments: dict[int, str] = {}
        self.comment_updates: list[tuple[int, str]] = []
        self.commit_log: list[tuple[str, str, str | None]] = []  # (op, path, message)
        self.get_file_calls: list[str] = []
        self.fail_get_file: dict[str, int] = {}

    # ── Helpers ───────────────────────────────────────────────────────

    def put(self, path: str, content: str | None) -> str:
        sha = f"sha{next(self._shas)}"
        self.files[path] = (sha, content)
        return sha

    def content(self, path: str) -> str | None:
        entry = self.files.get(path)
        return entry[1] if entry else None

    @property
    def writes(self) -> list[str]:
        return [path for op, path, _ in self.commit_log if op == "write"]

    @property
    def deletes(self) -> list[str]:
        return [path for op, path, _ in self.commit_log if op == "delete"]

    # ── Pull requests ─────────────────────────────────────────────────

    def get_pull_request(self, repo: str, number: int) -> PullRequestInfo:
        return self.pr

    def list_pull_request_files(self, repo: str, number: int) -> list[PullRequestFile]:
        return list(self.pr_files)

    def list_pull_request_commits(self, repo: str, number: int) -> list[str]:
        return list(self.commits)

    # ── Contents ──────────────────────────────────────────────────────

    def get_file(self, repo: str, path: str, ref: str) -> RepoFile | None:
        self.get_file_calls.append(path)
        if path in self.fail_get_file:
            raise ForgeError(f"boom on {path}", status_code=self.fail_get_file[path])
        entry = self.files.get(path)
        if entry is None:
            return None
        return RepoFile(path=path, sha=entry[0], content=entry[1])

    def list_directory(self, repo: str, path: str, ref: str) -> list[DirEntry]:
        prefix = path.strip("/") + "/"
        entries: dict[str, DirEntry] = {}
        for file_path in sorted(self.files):
            if not file_path.startswith(prefix):
                continue
            head, _, rest = file_path[len(prefix):].partition("/")
            if rest:
                entries[prefix + head] = DirEntry(path=prefix + head, kind="dir")
            else:
                entries[file_path] = DirEntry(path=file_path, kind="file")
        return list(entries.values())

    def create_or_update_file(
        self,
        repo: str,
        path: str,
        content: str,
        branch: str,
        message: str,
        sha: str | None = None,
    ) -> None:
        current = self.files.get(path)
        if current is not None and sha != current[0]:
            raise ForgeError(f"{path} does not match {sha}", status_code=409)
        if current is None and sha:
            raise ForgeError(f"{path} does not exist", status_code=422)
        self.put(path, content)
        self.commit_log.append(("write", path, message))

    def delete_file(self, repo: str, path: str, branch: str, sha: str, message: str) -> None:
        current = self.files.get(path)
        if current is None or current[0] != sha:
            raise ForgeError(f"cannot delete {path}", status_code=409)
        del self.files[path]
        self.commit_log.append(("delete", path, message))

    # ── Comments ──────────────────────────────────────────────────────

    def create_comment(self, repo: str, issue_id: int, body: str) -> int:
        comment_id = next(self._comment_ids)
        self.comments[comment_id] = body
        return comment_id

    def update_comment(self, repo: str, comment_id: int, body: str) -> None:
        if comment_id not in self.comments:
            raise ForgeError(f"comment {comment_id} not found", status_code=404)
        self.comments[comment_id] = body
        self.comment_updates.append((comment_id, body))

    def close(self) -> None:
        pass


class ScriptedModel:
    """Stands in for :class:`~prflow.agents.models.ModelClient`.

    ``responses`` maps a schema class name to a response, a list of
    responses consumed in order (the last one repeats), an exception to
    raise, or a callable taking the prompt.
    """

    def __init__(self, **responses) -> None:
        self.responses = responses
        self.calls: list[tuple[str, str]] = []

    def calls_for(self, schema_name: str) -> list[str]:
        return [prompt for name, prompt in self.calls if name == schema_name]

    def complete(self, prompt: str, system: str = "") -> str:
        raise ModelError("free-text completion not scripted")

    def complete_structured(self, prompt: str, schema: type[BaseModel], system: str = ""):
        self.calls.append((schema.__name__, prompt))
        scripted = self.responses.get(schema.__name__)
        if scripted is None:
            raise ModelError(f"no scripted response for {schema.__name__}")
        if isinstance(scripted, list):
            item = scripted.pop(0) if len(scripted) > 1 else scripted[0]
        else:
            item = scripted
        if isinstance(item, Exception):
            raise item
        if callable(item) and not isinstance(item, BaseModel):
            item = item(prompt)
        return item


class ScriptedRunner:
    """Returns pre-set pass/fail results; the last one repeats."""

    def __init__(self, *failed: bool, output: str = "FAIL sum.test.ts") -> None:
        self._results = list(failed) or [False]
        self._output = output
        self.runs = 0

    def run(self) -> TestRunResult:
        index = min(self.runs, len(self._results) - 1)
        self.runs += 1
        failed = self._results[index]
        return TestRunResult(failed=failed, output=self._output if failed else "PASS")


@pytest.fixture
def ref() -> PullRequestRef:
    return PullRequestRef(owner="acme", repo="shop", number=7, head_ref="feature")


@pytest.fixture
def forge() -> FakeForge:
    return FakeForge(
        pr_files=[
            PullRequestFile(filename="lib/sum.ts", status="added", patch="+export const sum = ..."),
        ],
        commits=["Add sum helper"],
        files={"lib/sum.ts": "export const sum = (a: number, b: number) => a + b\n"},
    )
