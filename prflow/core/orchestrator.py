"""LangGraph flow controller: review, gate, generate, commit, test, fix.

Graph::

    build_context → review → build_test_context → gate
    gate ──skip──→ report_skip → END
    gate ──go───→ generate → commit → run_tests
    run_tests ──pass──────────────→ report_success → END
    run_tests ──fail, budget left──→ fix → commit → run_tests
    run_tests ──fail, exhausted────→ report_failure → END

Every phase finishes before the next starts; each one needs the previous
one's output.  Model-backed phases (review, gate, generate, fix) never raise;
context building, commits, checkout sync and test execution let their errors
propagate out of :meth:`FlowController.run`.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from langgraph.graph import END, StateGraph

from infra.forge import ForgeClient
from prflow.agents.gating import TestGate
from prflow.agents.reviewer import ReviewProducer, format_review_comment
from prflow.agents.test_writer import TestWriter, fix_recommendation
from prflow.core.comments import REVIEW_HEADER, TEST_HEADER, CommentChannel, initial_body
from prflow.core.committer import CommitApplier
from prflow.core.context import DEFAULT_EXCLUDED_SUFFIXES, DEFAULT_MAX_FILE_CHARS, ContextBuilder
from prflow.core.logging import get_logger
from prflow.core.state import (
    FlowOutcome,
    FlowPhase,
    FlowState,
    GatingDecision,
    PullRequestRef,
    ReviewAnalysis,
    TestProposal,
)
from prflow.tools.test_runner import TestRunner

logger = get_logger("core.orchestrator")

DEFAULT_MAX_ITERATIONS = 3

SUCCESS_MESSAGE = "✅ All tests passing after AI generation/fixes!"


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

def route_after_gate(state: FlowState) -> str:
    if state.gating is not None and state.gating.should_generate:
        return "generate"
    return "report_skip"


def route_after_tests(state: FlowState) -> str:
    """Retry while the suite is failing, up to ``max_iterations`` fixes."""
    if not state.last_test_failed:
        return "report_success"
    if state.iteration < state.max_iterations:
        return "fix"
    return "report_failure"


def exit_code(state: FlowState) -> int:
    """0 when the flow succeeded or skipped generation, 1 otherwise."""
    return state.exit_code


# ---------------------------------------------------------------------------
# Comment text helpers
# ---------------------------------------------------------------------------

def _proposal_list(proposals: Iterable[TestProposal]) -> str:
    lines = []
    for p in proposals:
        suffix = f" (renamed from {p.old_filename})" if p.old_filename else ""
        lines.append(f"- {p.filename}{suffix}")
    return "**Proposed new/updated tests:**\n" + "\n".join(lines)


def generation_recommendation(gating: GatingDecision | None, review: ReviewAnalysis | None) -> str:
    parts: list[str] = []
    if gating is not None and gating.recommendation:
        parts.append(gating.recommendation)
    if review is not None and not review.degraded:
        parts.append(f"Review Analysis:\n{review.summary}")
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class FlowController:
    """Runs the whole flow for one pull request.

    All collaborators are passed in; nothing is read from global config.

    Args:
        forge:          Forge client (contents, comments).
        reviewer:       Review producer.
        gate:           Test-generation gate.
        writer:         Test proposal generator.
        runner:         Test executor.
        max_iterations: Fix attempts after the first failing run.
        test_root:      Directory listed for existing tests.
        sync_checkout:  Called with the branch name after every commit batch
                        that wrote files, before tests run.
    """

    def __init__(
        self,
        forge: ForgeClient,
        reviewer: ReviewProducer,
        gate: TestGate,
        writer: TestWriter,
        runner: TestRunner,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        test_root: str = "__tests__",
        max_file_chars: int = DEFAULT_MAX_FILE_CHARS,
        excluded_suffixes: Iterable[str] = DEFAULT_EXCLUDED_SUFFIXES,
        sync_checkout: Callable[[str], object] | None = None,
    ) -> None:
        self._forge = forge
        self._builder = ContextBuilder(forge, max_file_chars=max_file_chars, excluded_suffixes=excluded_suffixes)
        self._reviewer = reviewer
        self._gate = gate
        self._writer = writer
        self._runner = runner
        self._max_iterations = max(0, max_iterations)
        self._test_root = test_root
        self._sync_checkout = sync_checkout
        self._graph = self.build_graph().compile()

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def build_graph(self) -> StateGraph:
        graph = StateGraph(FlowState)

        graph.add_node("build_context", self.build_context_node)
        graph.add_node("review", self.review_node)
        graph.add_node("build_test_context", self.build_test_context_node)
        graph.add_node("gate", self.gate_node)
        graph.add_node("report_skip", self.report_skip_node)
        graph.add_node("generate", self.generate_node)
        graph.add_node("commit", self.commit_node)
        graph.add_node("run_tests", self.run_tests_node)
        graph.add_node("fix", self.fix_node)
        graph.add_node("report_success", self.report_success_node)
        graph.add_node("report_failure", self.report_failure_node)

        graph.set_entry_point("build_context")
        graph.add_edge("build_context", "review")
        graph.add_edge("review", "build_test_context")
        graph.add_edge("build_test_context", "gate")
        graph.add_conditional_edges(
            "gate", route_after_gate, {"generate": "generate", "report_skip": "report_skip"}
        )
        graph.add_edge("report_skip", END)
        graph.add_edge("generate", "commit")
        graph.add_edge("commit", "run_tests")
        graph.add_conditional_edges(
            "run_tests",
            route_after_tests,
            {"report_success": "report_success", "fix": "fix", "report_failure": "report_failure"},
        )
        graph.add_edge("fix", "commit")
        graph.add_edge("report_success", END)
        graph.add_edge("report_failure", END)
        return graph

    def run(self, ref: PullRequestRef) -> FlowState:
        """Execute the flow for *ref* and return the final state."""
        initial_state = FlowState(pr=ref, max_iterations=self._max_iterations)
        logger.info("Starting flow | %s#%d | branch=%s", ref.full_name, ref.number, ref.head_ref or "?")

        # 4 setup steps, generate/commit/test, 3 per fix, 1 report.
        recursion_limit = 10 + 3 * self._max_iterations
        final_state_dict = self._graph.invoke(
            initial_state.model_dump(), config={"recursion_limit": recursion_limit}
        )
        final_state = FlowState(**final_state_dict)

        logger.info("Flow complete | %s", final_state.get_progress_summary())
        return final_state

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _channel(self, state: FlowState) -> CommentChannel:
        return CommentChannel(self._forge, state.pr.full_name, state.pr.number)

    def _append_test_status(self, state: FlowState, text: str) -> str:
        """Append *text* to the test comment, push it, and return the new body."""
        new_body = f"{state.test_body}\n\n{text}"
        self._channel(state).update(state.test_comment_id, new_body)
        return new_body

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def build_context_node(self, state: FlowState) -> dict:
        context = self._builder.build(state.pr)
        return {"context": context, "phase": FlowPhase.REVIEWING}

    def review_node(self, state: FlowState) -> dict:
        channel = self._channel(state)
        body = initial_body(REVIEW_HEADER)
        comment_id = channel.create(body)

        analysis = self._reviewer.review(state.context)
        body = f"{REVIEW_HEADER}\n\n{format_review_comment(analysis)}"
        channel.update(comment_id, body)
        return {
            "review": analysis,
            "review_comment_id": comment_id,
            "review_body": body,
            "phase": FlowPhase.GATING,
        }

    def build_test_context_node(self, state: FlowState) -> dict:
        body = initial_body(TEST_HEADER)
        comment_id = self._channel(state).create(body)
        test_context = self._builder.build_test_context(state.context, self._test_root)
        return {
            "test_context": test_context,
            "test_comment_id": comment_id,
            "test_body": body,
            "phase": FlowPhase.GATING,
        }

    def gate_node(self, state: FlowState) -> dict:
        body = self._append_test_status(state, "**Gating Step**: Checking if we should generate tests...")
        decision = self._gate.decide(state.test_context, state.review)
        return {"gating": decision, "test_body": body, "phase": FlowPhase.GENERATING}

    def report_skip_node(self, state: FlowState) -> dict:
        reason = state.gating.reasoning if state.gating else "no decision"
        body = self._append_test_status(state, f"Skipping test generation: {reason}")
        logger.info("Flow skipped test generation: %s", reason)
        return {
            "test_body": body,
            "skipped": True,
            "outcome": FlowOutcome.SUCCESS,
            "phase": FlowPhase.DONE,
        }

    def generate_node(self, state: FlowState) -> dict:
        body = self._append_test_status(state, "**Generating Tests**...")
        recommendation = generation_recommendation(state.gating, state.review)
        proposals = self._writer.propose(state.test_context, recommendation)
        return {"proposals": proposals, "test_body": body, "phase": FlowPhase.COMMITTING}

    def commit_node(self, state: FlowState) -> dict:
        if not state.proposals:
            body = self._append_test_status(state, "No new test proposals from AI.")
            return {"test_body": body, "phase": FlowPhase.TESTING}

        branch = state.context.head_ref
        applier = CommitApplier(self._forge, state.pr.full_name)
        written = applier.apply(branch, state.proposals)
        if written and self._sync_checkout is not None:
            self._sync_checkout(branch)

        body = self._append_test_status(state, _proposal_list(state.proposals))
        return {
            "commits_made": state.commits_made + written,
            "proposals": [],
            "test_body": body,
            "phase": FlowPhase.TESTING,
        }

    def run_tests_node(self, state: FlowState) -> dict:
        result = self._runner.run()
        logger.info(
            "Test run %d | %s",
            state.test_runs + 1, "FAILED" if result.failed else "PASSED",
        )
        return {
            "last_test_failed": result.failed,
            "last_test_output": result.output,
            "test_runs": state.test_runs + 1,
        }

    def fix_node(self, state: FlowState) -> dict:
        iteration = state.iteration + 1
        body = self._append_test_status(
            state, f"**Test Fix #{iteration}**\nTests are failing. Attempting a fix..."
        )
        # Re-list tests so the model sees what the previous attempt committed.
        test_context = self._builder.build_test_context(state.context, self._test_root)
        proposals = self._writer.propose(test_context, fix_recommendation(iteration, state.last_test_output))
        return {
            "iteration": iteration,
            "fix_attempts": state.fix_attempts + 1,
            "test_context": test_context,
            "proposals": proposals,
            "test_body": body,
            "phase": FlowPhase.FIXING,
        }

    def report_success_node(self, state: FlowState) -> dict:
        body = self._append_test_status(state, SUCCESS_MESSAGE)
        return {"test_body": body, "outcome": FlowOutcome.SUCCESS, "phase": FlowPhase.DONE}

    def report_failure_node(self, state: FlowState) -> dict:
        body = self._append_test_status(state, f"❌ Tests failing after {state.iteration} fix attempts.")
        logger.warning("Flow exhausted %d fix attempt(s) with failing tests", state.iteration)
        return {"test_body": body, "outcome": FlowOutcome.EXHAUSTED, "phase": FlowPhase.DONE}
