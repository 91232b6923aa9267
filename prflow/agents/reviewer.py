"""Review producer: one model call that turns the PR context into a review."""
from __future__ import annotations

from pydantic import BaseModel, Field

from prflow.agents._prompt_format import format_pr_context
from prflow.agents.models import ModelClient, ModelError, load_system_prompt
from prflow.core.logging import get_logger
from prflow.core.state import FileAnalysis, PullRequestContext, ReviewAnalysis

logger = get_logger("agents.reviewer")


class FileAnalysisResponse(BaseModel):
    path: str = Field(description="Repository-relative path of the file")
    analysis: str = Field(description="Review notes for this file")


class ReviewResponse(BaseModel):
    """Code review feedback for a pull request."""

    summary: str = Field(description="Short overall assessment of the change")
    file_analyses: list[FileAnalysisResponse] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list, description="Actionable improvements")


class ReviewProducer:
    """Produces a :class:`ReviewAnalysis`; never raises.

    A failed or malformed model answer degrades to a placeholder review so the
    flow can still post its comment and continue.  No retry here.
    """

    def __init__(self, model: ModelClient) -> None:
        self._model = model

    def review(self, context: PullRequestContext) -> ReviewAnalysis:
        prompt = f"Review the following pull request.\n\n{format_pr_context(context)}"
        try:
            response = self._model.complete_structured(prompt, ReviewResponse, system=load_system_prompt("reviewer"))
        except ModelError as exc:
            logger.warning("Review degraded for %s#%d: %s", context.full_name, context.pull_number, exc)
            return ReviewAnalysis.placeholder(str(exc))

        analysis = ReviewAnalysis(
            summary=response.summary,
            file_analyses=tuple(
                FileAnalysis(path=f.path, analysis=f.analysis) for f in response.file_analyses if f.path
            ),
            suggestions=tuple(s for s in response.suggestions if s.strip()),
        )
        logger.info(
            "Review produced | files analysed=%d | suggestions=%d",
            len(analysis.file_analyses), len(analysis.suggestions),
        )
        return analysis


def format_review_comment(analysis: ReviewAnalysis) -> str:
    """Markdown body appended under the review comment header."""
    body = f"**Summary**\n{analysis.summary}"
    if analysis.file_analyses:
        body += "\n\n**File Analyses**\n"
        body += "\n".join(f"- **{f.path}**: {f.analysis}" for f in analysis.file_analyses)
    if analysis.suggestions:
        body += "\n\n**Suggestions**\n"
        body += "\n".join(f"- {s}" for s in analysis.suggestions)
    return body
