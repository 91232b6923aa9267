"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration for prflow. Reads from .env automatically."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Forge ──────────────────────────────────────────────────────────
    # Token used for every repository and comment call.  Required: the
    # Actions-provided GITHUB_TOKEN needs `contents: write` and
    # `pull-requests: write`.
    github_token: str = ""
    github_api_url: str = "https://api.github.com"

    # Populated by GitHub Actions; used to locate the triggering event.
    github_repository: str = ""
    github_event_path: str = ""
    github_event_name: str = ""

    # ── LLM ────────────────────────────────────────────────────────────
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Ollama base URL: set this when using local Ollama models
    ollama_base_url: str = "http://localhost:11434"

    # Model identifier: prefix determines the provider:
    #   "ollama:<model>"     → local Ollama  (e.g. "ollama:llama3.1:70b")
    #   "claude-*" / "claude" → Anthropic API
    #   anything else        → OpenAI API    (e.g. "o3-mini", "gpt-4o")
    llm_model: str = "o3-mini"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 8192

    # Ask the provider to enforce the response schema.  Turn off for models
    # without tool/JSON-mode support; responses are then parsed locally.
    llm_structured_output: bool = True

    # Per-call timeout in seconds.  None keeps the provider default.
    llm_timeout_seconds: float | None = None

    # ── Tests ──────────────────────────────────────────────────────────
    # Commands run in order from repo_root; the run fails if any exits non-zero.
    # Env var takes JSON: TEST_COMMANDS='["npm run test:unit", "npm run test:e2e"]'
    test_commands: list[str] = ["npm run test:unit"]
    test_timeout_seconds: int | None = None

    test_root_dir: str = "__tests__"
    # Proposed files outside this directory are moved under it. Empty disables.
    unit_test_dir: str = "__tests__/unit"

    # Local checkout the test commands run in.
    repo_root: str = "."

    @field_validator("repo_root")
    @classmethod
    def _resolve_repo(cls, value: str) -> str:
        return str(Path(value or ".").expanduser().resolve())

    # Fetch the PR branch into repo_root and check it out after every commit
    # batch so the test run sees the committed proposals.  A detached
    # merge-ref checkout is moved onto the branch.
    sync_checkout: bool = True

    # ── Safety ─────────────────────────────────────────────────────────
    max_fix_iterations: int = 3
    max_file_chars: int = 32_000
    max_output_chars: int = 12_000
    excluded_file_suffixes: list[str] = ["package-lock.json", "yarn.lock", "pnpm-lock.yaml"]

    # ── Trigger ────────────────────────────────────────────────────────
    trigger_actions: list[str] = ["opened", "reopened", "synchronize", "ready_for_review", "labeled"]
    # When set, "labeled" events only run the flow for this label.
    trigger_label: str = ""

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/prflow.log"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Singleton accessor."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
