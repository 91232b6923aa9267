"""Tests for the LangGraph flow controller: routing, scenarios and failure semantics."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import FakeForge, ScriptedModel, ScriptedRunner
from infra.forge import ForgeError, PullRequestFile
from prflow.agents.gating import GatingResponse, TestGate
from prflow.agents.models import ModelError
from prflow.agents.reviewer import ReviewProducer, ReviewResponse
from prflow.agents.test_writer import ProposalResponse, TestProposalsResponse, TestWriter
from prflow.core.comments import REVIEW_HEADER, TEST_HEADER
from prflow.core.orchestrator import (
    SUCCESS_MESSAGE,
    FlowController,
    exit_code,
    generation_recommendation,
    route_after_gate,
    route_after_tests,
)
from prflow.core.state import (
    FlowOutcome,
    FlowPhase,
    FlowState,
    GatingDecision,
    PullRequestRef,
    ReviewAnalysis,
)

REVIEW = ReviewResponse(summary="Adds a sum helper")
GATE_YES = GatingResponse(should_generate=True, reasoning="New logic", recommendation="Cover sum()")
GATE_NO = GatingResponse(should_generate=False, reasoning="Docs only")
PROPOSALS = TestProposalsResponse(
    test_proposals=[ProposalResponse(filename="sum.test.ts", test_content="test('sum', () => {})")]
)


def _model(**overrides) -> ScriptedModel:
    responses = {
        "ReviewResponse": REVIEW,
        "GatingResponse": GATE_YES,
        "TestProposalsResponse": PROPOSALS,
    }
    responses.update(overrides)
    return ScriptedModel(**responses)


def _controller(forge, model, runner, **kwargs) -> FlowController:
    return FlowController(
        forge,
        ReviewProducer(model),
        TestGate(model),
        TestWriter(model, unit_test_dir="__tests__/unit"),
        runner,
        **kwargs,
    )


def _state(**fields) -> FlowState:
    return FlowState(pr=PullRequestRef(owner="acme", repo="shop", number=7), **fields)


# ═══════════════════════════════════════════════════════════════════════════
# 1. Routing
# ═══════════════════════════════════════════════════════════════════════════

class TestRouting:
    def test_gate_yes_generates(self):
        state = _state(gating=GatingDecision(should_generate=True))
        assert route_after_gate(state) == "generate"

    def test_gate_no_skips(self):
        assert route_after_gate(_state(gating=GatingDecision(should_generate=False))) == "report_skip"

    def test_missing_gate_skips(self):
        assert route_after_gate(_state()) == "report_skip"

    def test_passing_tests_succeed(self):
        assert route_after_tests(_state(last_test_failed=False, iteration=2)) == "report_success"

    def test_failing_tests_fix_while_budget_left(self):
        assert route_after_tests(_state(last_test_failed=True, iteration=0)) == "fix"
        assert route_after_tests(_state(last_test_failed=True, iteration=2)) == "fix"

    def test_failing_tests_exhausted(self):
        assert route_after_tests(_state(last_test_failed=True, iteration=3)) == "report_failure"

    def test_zero_budget_fails_immediately(self):
        state = _state(last_test_failed=True, iteration=0, max_iterations=0)
        assert route_after_tests(state) == "report_failure"


class TestExitCode:
    def test_success(self):
        assert exit_code(_state(outcome=FlowOutcome.SUCCESS)) == 0

    def test_skipped(self):
        assert exit_code(_state(outcome=FlowOutcome.SUCCESS, skipped=True)) == 0

    def test_exhausted(self):
        assert exit_code(_state(outcome=FlowOutcome.EXHAUSTED)) == 1

    def test_unfinished(self):
        assert exit_code(_state()) == 1


class TestRecommendation:
    def test_combines_gate_and_review(self):
        text = generation_recommendation(
            GatingDecision(should_generate=True, recommendation="Cover sum()"),
            ReviewAnalysis(summary="Adds sum"),
        )
        assert text == "Cover sum()\n\nReview Analysis:\nAdds sum"

    def test_degraded_review_left_out(self):
        text = generation_recommendation(
            GatingDecision(should_generate=True, recommendation="Cover sum()"),
            ReviewAnalysis.placeholder("x"),
        )
        assert text == "Cover sum()"


# ═══════════════════════════════════════════════════════════════════════════
# 2. End-to-end scenarios
# ═══════════════════════════════════════════════════════════════════════════

class TestScenarios:
    def test_gate_declines(self, ref, forge):
        model = _model(GatingResponse=GATE_NO)
        runner = ScriptedRunner(False)
        state = _controller(forge, model, runner).run(ref)

        assert state.outcome == FlowOutcome.SUCCESS
        assert state.skipped
        assert exit_code(state) == 0
        assert runner.runs == 0
        assert forge.commit_log == []
        assert model.calls_for("TestProposalsResponse") == []
        test_body = forge.comments[state.test_comment_id]
        assert test_body.endswith("Skipping test generation: Docs only")

    def test_lockfile_only_pr_skips_without_leaking_content(self, ref):
        marker = "LOCKFILE-BODY-7f3a"
        forge = FakeForge(
            pr_files=[PullRequestFile(filename="package-lock.json", status="modified", patch=f"+{marker}")],
            files={"package-lock.json": marker},
        )
        model = _model(GatingResponse=GatingResponse(should_generate=False, reasoning="Only the lockfile changed"))
        runner = ScriptedRunner(False)
        state = _controller(forge, model, runner).run(ref)

        assert model.calls
        for _, prompt in model.calls:
            assert marker not in prompt
            assert "package-lock.json" in prompt
        assert state.skipped
        assert exit_code(state) == 0
        assert runner.runs == 0
        assert forge.commit_log == []

    def test_pass_first_time(self, ref, forge):
        runner = ScriptedRunner(False)
        state = _controller(forge, _model(), runner).run(ref)

        assert state.outcome == FlowOutcome.SUCCESS
        assert not state.skipped
        assert state.iteration == 0
        assert runner.runs == 1
        assert forge.content("__tests__/unit/sum.test.ts") == "test('sum', () => {})"
        assert state.commits_made == 1
        assert forge.comments[state.test_comment_id].endswith(SUCCESS_MESSAGE)

    def test_fail_once_then_pass(self, ref, forge):
        model = _model()
        runner = ScriptedRunner(True, False)
        state = _controller(forge, model, runner).run(ref)

        assert state.outcome == FlowOutcome.SUCCESS
        assert exit_code(state) == 0
        assert state.fix_attempts == 1
        assert runner.runs == 2
        assert len(model.calls_for("TestProposalsResponse")) == 2
        body = forge.comments[state.test_comment_id]
        assert "**Test Fix #1**" in body
        assert "**Test Fix #2**" not in body
        assert body.endswith(SUCCESS_MESSAGE)

    def test_always_failing_stops_after_three_fixes(self, ref, forge):
        model = _model()
        runner = ScriptedRunner(True)
        state = _controller(forge, model, runner, max_iterations=3).run(ref)

        assert state.outcome == FlowOutcome.EXHAUSTED
        assert exit_code(state) == 1
        assert state.iteration == 3
        assert state.fix_attempts == 3
        assert runner.runs == 4
        assert len(model.calls_for("TestProposalsResponse")) == 4
        assert forge.comments[state.test_comment_id].endswith("❌ Tests failing after 3 fix attempts.")
        assert state.phase == FlowPhase.DONE

    def test_custom_retry_budget(self, ref, forge):
        runner = ScriptedRunner(True)
        state = _controller(forge, _model(), runner, max_iterations=1).run(ref)
        assert state.fix_attempts == 1
        assert runner.runs == 2
        assert state.outcome == FlowOutcome.EXHAUSTED

    def test_zero_retry_budget(self, ref, forge):
        runner = ScriptedRunner(True)
        state = _controller(forge, _model(), runner, max_iterations=0).run(ref)
        assert state.fix_attempts == 0
        assert runner.runs == 1
        assert exit_code(state) == 1

    def test_exactly_two_comments(self, ref, forge):
        state = _controller(forge, _model(), ScriptedRunner(True)).run(ref)
        assert sorted(forge.comments) == sorted([state.review_comment_id, state.test_comment_id])
        assert forge.comments[state.review_comment_id].startswith(REVIEW_HEADER)
        assert forge.comments[state.test_comment_id].startswith(TEST_HEADER)

    def test_test_comment_grows_monotonically(self, ref, forge):
        state = _controller(forge, _model(), ScriptedRunner(True, False)).run(ref)
        bodies = [body for comment_id, body in forge.comment_updates if comment_id == state.test_comment_id]
        for earlier, later in zip(bodies, bodies[1:]):
            assert later.startswith(earlier)

    def test_fix_sees_output_and_committed_tests(self, ref, forge):
        model = _model()
        _controller(forge, model, ScriptedRunner(True, False)).run(ref)
        _, fix_prompt = model.calls_for("TestProposalsResponse")
        assert "FAIL sum.test.ts" in fix_prompt
        assert "attempt #1" in fix_prompt
        assert "Existing test: __tests__/unit/sum.test.ts" in fix_prompt

    def test_fix_rewrites_existing_file(self, ref, forge):
        model = _model(TestProposalsResponse=[
            PROPOSALS,
            TestProposalsResponse(test_proposals=[
                ProposalResponse(filename="sum.test.ts", test_content="fixed", action="update"),
            ]),
        ])
        _controller(forge, model, ScriptedRunner(True, False)).run(ref)
        assert forge.content("__tests__/unit/sum.test.ts") == "fixed"
        assert forge.writes == ["__tests__/unit/sum.test.ts", "__tests__/unit/sum.test.ts"]


# ═══════════════════════════════════════════════════════════════════════════
# 3. Degraded and fatal paths
# ═══════════════════════════════════════════════════════════════════════════

class TestFailureSemantics:
    def test_review_failure_degrades_and_continues(self, ref, forge):
        model = _model(ReviewResponse=ModelError("garbage"))
        state = _controller(forge, model, ScriptedRunner(False)).run(ref)
        assert "Review parse error" in forge.comments[state.review_comment_id]
        assert state.outcome == FlowOutcome.SUCCESS
        assert forge.writes

    def test_gate_failure_skips(self, ref, forge):
        model = _model(GatingResponse=ModelError("timeout"))
        runner = ScriptedRunner(False)
        state = _controller(forge, model, runner).run(ref)
        assert state.skipped
        assert exit_code(state) == 0
        assert runner.runs == 0
        assert "Skipping test generation: Gating error" in forge.comments[state.test_comment_id]

    def test_generation_failure_still_runs_tests(self, ref, forge):
        model = _model(TestProposalsResponse=ModelError("bad json"))
        runner = ScriptedRunner(False)
        state = _controller(forge, model, runner).run(ref)
        assert runner.runs == 1
        assert forge.commit_log == []
        assert "No new test proposals from AI." in forge.comments[state.test_comment_id]
        assert state.outcome == FlowOutcome.SUCCESS

    def test_empty_fix_proposals_count_as_iterations(self, ref, forge):
        model = _model(TestProposalsResponse=[PROPOSALS, TestProposalsResponse()])
        runner = ScriptedRunner(True)
        state = _controller(forge, model, runner).run(ref)
        assert state.fix_attempts == 3
        assert runner.runs == 4
        assert len(forge.writes) == 1

    def test_context_failure_is_fatal_and_silent(self, ref, forge):
        forge.fail_get_file["lib/sum.ts"] = 500
        with pytest.raises(ForgeError):
            _controller(forge, _model(), ScriptedRunner(False)).run(ref)
        assert forge.comments == {}

    def test_commit_failure_is_fatal(self, ref):
        forge = FakeForge(files={"lib/sum.ts": "x"})
        forge.fail_get_file["__tests__/unit/sum.test.ts"] = 500
        runner = ScriptedRunner(False)
        with pytest.raises(ForgeError):
            _controller(forge, _model(), runner).run(ref)
        assert runner.runs == 0

    def test_runner_launch_failure_is_fatal(self, ref, forge):
        runner = MagicMock()
        runner.run.side_effect = OSError("no shell")
        with pytest.raises(OSError):
            _controller(forge, _model(), runner).run(ref)


# ═══════════════════════════════════════════════════════════════════════════
# 4. Checkout sync
# ═══════════════════════════════════════════════════════════════════════════

class TestCheckoutSync:
    def test_sync_after_each_commit_batch(self, ref, forge):
        sync = MagicMock()
        _controller(forge, _model(), ScriptedRunner(True, False), sync_checkout=sync).run(ref)
        assert sync.call_count == 2
        sync.assert_called_with("feature")

    def test_no_sync_without_writes(self, ref, forge):
        sync = MagicMock()
        _controller(
            forge, _model(TestProposalsResponse=TestProposalsResponse()), ScriptedRunner(False), sync_checkout=sync,
        ).run(ref)
        sync.assert_not_called()

    def test_sync_failure_is_fatal(self, ref, forge):
        runner = ScriptedRunner(False)
        sync = MagicMock(side_effect=RuntimeError("pull failed"))
        with pytest.raises(RuntimeError):
            _controller(forge, _model(), runner, sync_checkout=sync).run(ref)
        assert runner.runs == 0
