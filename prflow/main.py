"""prflow entry point.

Runs once per CI invocation: resolve the triggering pull request from the
event payload, then review it, generate tests, and fix them until they pass
or the retry budget is spent.

Exit status: 0 on success or when generation was skipped, 1 when the fix
budget ran out or anything failed hard.
"""

from __future__ import annotations

import functools
import sys

from infra.factory import get_github_client
from prflow.agents.file_kind import FileKindPolicy
from prflow.agents.gating import TestGate
from prflow.agents.models import build_model_client
from prflow.agents.reviewer import ReviewProducer
from prflow.agents.test_writer import TestWriter
from prflow.core.config import Settings, get_settings
from prflow.core.logging import get_logger, setup_logging
from prflow.core.orchestrator import FlowController, exit_code
from prflow.core.trigger import load_event, resolve_pull_request
from prflow.tools.git import sync_branch
from prflow.tools.test_runner import TestRunner


def build_controller(settings: Settings, forge) -> FlowController:
    """Wire every collaborator from *settings*."""
    model = build_model_client(settings)
    runner = TestRunner(
        settings.test_commands,
        cwd=settings.repo_root,
        timeout=settings.test_timeout_seconds,
        max_output_chars=settings.max_output_chars,
    )
    sync = functools.partial(sync_branch, settings.repo_root) if settings.sync_checkout else None
    return FlowController(
        forge,
        ReviewProducer(model),
        TestGate(model),
        TestWriter(model, FileKindPolicy(), unit_test_dir=settings.unit_test_dir),
        runner,
        max_iterations=settings.max_fix_iterations,
        test_root=settings.test_root_dir,
        max_file_chars=settings.max_file_chars,
        excluded_suffixes=settings.excluded_file_suffixes,
        sync_checkout=sync,
    )


def run(settings: Settings | None = None) -> int:
    """Run the flow for the current CI event and return the exit status."""
    settings = settings or get_settings()
    setup_logging(settings)
    logger = get_logger("main")

    if not settings.github_token.strip():
        logger.error("GITHUB_TOKEN not set - cannot proceed")
        return 1

    if not settings.github_event_path:
        logger.info("No GITHUB_EVENT_PATH set - nothing to do")
        return 0

    forge = None
    try:
        event = load_event(settings.github_event_path)
        ref = resolve_pull_request(
            event,
            event_name=settings.github_event_name,
            repository=settings.github_repository,
            actions=settings.trigger_actions,
            label=settings.trigger_label,
        )
        if ref is None:
            logger.info("Event does not target a pull request - exiting")
            return 0

        logger.info("=" * 60)
        logger.info("prflow starting | %s#%d | model=%s", ref.full_name, ref.number, settings.llm_model)
        logger.info("=" * 60)

        forge = get_github_client(token=settings.github_token, base_url=settings.github_api_url)
        controller = build_controller(settings, forge)
        final_state = controller.run(ref)
    except Exception:
        logger.exception("prflow failed")
        return 1
    finally:
        if forge is not None:
            forge.close()

    status = exit_code(final_state)
    logger.info("prflow finished | outcome=%s | exit=%d", final_state.outcome, status)
    return status


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
