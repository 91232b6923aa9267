"""Trigger surface: CI event payload → :class:`PullRequestRef`.

Recognised payloads:

* ``pull_request`` / ``pull_request_target`` events whose ``action`` is in
  the configured set.  ``labeled`` events can be restricted to one label.
* ``repository_dispatch`` events carrying ``client_payload.pull_request``.
* Anything else carrying a top-level ``pull_request`` object
  (``number`` + ``head.ref``), e.g. a hand-written event file.

Anything without a pull request resolves to ``None`` and the run ends
cleanly.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from prflow.core.logging import get_logger
from prflow.core.state import PullRequestRef

logger = get_logger("core.trigger")

PULL_REQUEST_EVENTS = frozenset({"pull_request", "pull_request_target"})


class TriggerError(Exception):
    """The event file is unreadable or not a JSON object."""


def load_event(path: str | Path) -> dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise TriggerError(f"Cannot read event payload {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TriggerError(f"Event payload {path} is not a JSON object")
    return data


def _split_repository(repository: str) -> tuple[str, str] | None:
    owner, _, name = repository.strip().partition("/")
    if not owner or not name:
        return None
    return owner, name


def _owner_and_repo(event: dict[str, Any], repository: str) -> tuple[str, str] | None:
    repo_obj = event.get("repository")
    if isinstance(repo_obj, dict):
        owner = (repo_obj.get("owner") or {}).get("login", "")
        name = repo_obj.get("name", "")
        if owner and name:
            return owner, name
        if full := repo_obj.get("full_name"):
            return _split_repository(full)
    return _split_repository(repository)


def _pull_request_object(event: dict[str, Any], event_name: str) -> dict[str, Any] | None:
    if event_name == "repository_dispatch":
        payload = event.get("client_payload") or {}
        pr = payload.get("pull_request") if isinstance(payload, dict) else None
    else:
        pr = event.get("pull_request")
    return pr if isinstance(pr, dict) else None


def _action_allowed(event: dict[str, Any], actions: Iterable[str], label: str) -> bool:
    action = event.get("action", "")
    if action not in set(actions):
        logger.info("Ignoring pull_request action %r", action)
        return False
    if action == "labeled" and label:
        applied = (event.get("label") or {}).get("name", "")
        if applied != label:
            logger.info("Ignoring label %r (waiting for %r)", applied, label)
            return False
    return True


def resolve_pull_request(
    event: dict[str, Any],
    event_name: str = "",
    repository: str = "",
    actions: Iterable[str] = (),
    label: str = "",
) -> PullRequestRef | None:
    """Return the PR the flow should run for, or ``None``.

    Args:
        event:      Parsed event payload.
        event_name: CI event name (``GITHUB_EVENT_NAME``); empty when unknown.
        repository: ``owner/name`` fallback (``GITHUB_REPOSITORY``).
        actions:    ``pull_request`` actions that start the flow.
        label:      When set, ``labeled`` actions only count for this label.
    """
    pr = _pull_request_object(event, event_name)
    if pr is None:
        logger.info("Event %r carries no pull request", event_name or "?")
        return None

    if event_name in PULL_REQUEST_EVENTS and not _action_allowed(event, actions, label):
        return None

    number = pr.get("number")
    if not isinstance(number, int) or isinstance(number, bool):
        raise TriggerError(f"pull_request.number is missing or not an integer: {number!r}")

    located = _owner_and_repo(event, repository)
    if located is None:
        logger.warning("Cannot determine repository for PR #%d", number)
        return None

    owner, repo = located
    head_ref = (pr.get("head") or {}).get("ref", "")
    ref = PullRequestRef(owner=owner, repo=repo, number=number, head_ref=head_ref)
    logger.info("Resolved trigger | %s#%d | head=%s", ref.full_name, number, head_ref or "?")
    return ref
