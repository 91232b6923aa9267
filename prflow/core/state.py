"""Data models passed between flow phases, and the LangGraph flow state."""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChangedFileStatus(StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class PullRequestRef(BaseModel):
    """The tuple a trigger event carries: which PR, on which branch."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    number: int
    head_ref: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class ChangedFile(BaseModel):
    """One changed file of the PR.

    Exactly one of ``content`` / ``excluded`` carries information: an
    excluded file (removed, denylisted, absent at head, or over the size
    ceiling) never has content, and a kept file always has it.
    """

    model_config = ConfigDict(frozen=True)

    filename: str
    patch: str = ""
    status: str = ChangedFileStatus.MODIFIED
    additions: int = 0
    deletions: int = 0
    content: str | None = None
    excluded: bool = False
    previous_filename: str | None = None

    @model_validator(mode="after")
    def _content_xor_excluded(self) -> ChangedFile:
        if self.excluded and self.content is not None:
            raise ValueError(f"excluded file {self.filename!r} must not carry content")
        if not self.excluded and self.content is None:
            raise ValueError(f"file {self.filename!r} has no content but is not excluded")
        return self


class PullRequestContext(BaseModel):
    """Immutable snapshot of what changed in the PR."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    pull_number: int
    head_ref: str
    base_ref: str
    title: str = ""
    body: str = ""
    changed_files: tuple[ChangedFile, ...] = ()
    commit_messages: tuple[str, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def included_files(self) -> list[ChangedFile]:
        return [f for f in self.changed_files if not f.excluded]


class TestFile(BaseModel):
    __test__: ClassVar[bool] = False

    model_config = ConfigDict(frozen=True)

    filename: str
    content: str


class TestContext(PullRequestContext):
    """PullRequestContext plus the test files already in the repository."""

    __test__: ClassVar[bool] = False

    existing_test_files: tuple[TestFile, ...] = ()

    @classmethod
    def from_context(cls, context: PullRequestContext, test_files: list[TestFile]) -> TestContext:
        fields = {name: getattr(context, name) for name in PullRequestContext.model_fields}
        return cls(**fields, existing_test_files=tuple(test_files))


class FileAnalysis(BaseModel):
    path: str
    analysis: str


class ReviewAnalysis(BaseModel):
    """Structured code review.  ``degraded`` marks a placeholder result."""

    model_config = ConfigDict(frozen=True)

    summary: str
    file_analyses: tuple[FileAnalysis, ...] = ()
    suggestions: tuple[str, ...] = ()
    degraded: bool = False

    @classmethod
    def placeholder(cls, reason: str) -> ReviewAnalysis:
        return cls(summary=f"Review parse error: {reason}", degraded=True)


class GatingDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    should_generate: bool
    reasoning: str = ""
    recommendation: str = ""
    degraded: bool = False

    @classmethod
    def failed(cls, detail: str = "") -> GatingDecision:
        """Fail-closed decision used whenever the gate cannot decide."""
        return cls(should_generate=False, reasoning="Gating error", recommendation=detail, degraded=True)


class ProposalAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    RENAME = "rename"


class TestProposal(BaseModel):
    """A full-file test change proposed by the model."""

    __test__: ClassVar[bool] = False

    model_config = ConfigDict(frozen=True)

    filename: str
    content: str
    action: ProposalAction = ProposalAction.CREATE
    old_filename: str | None = None


class TestRunResult(BaseModel):
    __test__: ClassVar[bool] = False

    failed: bool
    output: str = ""


class FlowPhase(StrEnum):
    BUILDING_CONTEXT = "building_context"
    REVIEWING = "reviewing"
    GATING = "gating"
    GENERATING = "generating"
    COMMITTING = "committing"
    TESTING = "testing"
    FIXING = "fixing"
    DONE = "done"


class FlowOutcome(StrEnum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


class FlowState(BaseModel):
    """Working state of one flow invocation.  Owned by the FlowController."""

    # ── Trigger ───────────────────────────────────────────────────────
    pr: PullRequestRef

    # ── Control ───────────────────────────────────────────────────────
    phase: FlowPhase = FlowPhase.BUILDING_CONTEXT
    iteration: int = 0
    max_iterations: int = 3
    outcome: FlowOutcome | None = None
    skipped: bool = False

    # ── Phase outputs ─────────────────────────────────────────────────
    context: PullRequestContext | None = None
    test_context: TestContext | None = None
    review: ReviewAnalysis | None = None
    gating: GatingDecision | None = None
    proposals: list[TestProposal] = Field(default_factory=list)
    last_test_failed: bool = False
    last_test_output: str = ""

    # ── Comments ──────────────────────────────────────────────────────
    review_comment_id: int | None = None
    review_body: str = ""
    test_comment_id: int | None = None
    test_body: str = ""

    # ── Metadata ──────────────────────────────────────────────────────
    commits_made: int = 0
    fix_attempts: int = 0
    test_runs: int = 0

    @property
    def exit_code(self) -> int:
        return 0 if self.outcome == FlowOutcome.SUCCESS else 1

    def get_progress_summary(self) -> str:
        return (
            f"Phase: {self.phase.value} | "
            f"PR: {self.pr.full_name}#{self.pr.number} | "
            f"Fix iteration: {self.iteration}/{self.max_iterations} | "
            f"Commits: {self.commits_made} | "
            f"Outcome: {self.outcome.value if self.outcome else 'pending'}"
        )
