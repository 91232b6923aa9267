"""Gate: decides whether test generation should run at all.

Generation commits to the PR branch, so the gate is fail-closed: any model
or parse failure yields ``should_generate=False``.
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from prflow.agents._prompt_format import format_test_context
from prflow.agents.models import ModelClient, ModelError, load_system_prompt
from prflow.core.logging import get_logger
from prflow.core.state import GatingDecision, ReviewAnalysis, TestContext

logger = get_logger("agents.gating")


class GatingResponse(BaseModel):
    """Decision for test generation."""

    should_generate: bool = Field(description="True when new or updated tests are warranted")
    reasoning: str = Field(description="Why")
    recommendation: str = Field(default="", description="What the tests should cover")


class TestGate:
    __test__ = False

    def __init__(self, model: ModelClient) -> None:
        self._model = model

    def decide(self, context: TestContext, review: ReviewAnalysis | None = None) -> GatingDecision:
        prompt = f"Decide whether tests should be generated.\n\n{format_test_context(context)}"
        if review is not None and not review.degraded:
            prompt += f"\nReview Analysis:\n{review.summary}"

        try:
            response = self._model.complete_structured(prompt, GatingResponse, system=load_system_prompt("gate"))
        except ModelError as exc:
            logger.warning("Gating failed closed: %s", exc)
            return GatingDecision.failed(str(exc))

        decision = GatingDecision(
            should_generate=response.should_generate,
            reasoning=response.reasoning,
            recommendation=response.recommendation,
        )
        logger.info("Gate decision | generate=%s | %s", decision.should_generate, decision.reasoning[:120])
        return decision
