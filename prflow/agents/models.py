"""LLM model configuration, factory and invocation wrapper.

Provider routing is done via model name prefix:
  - "ollama:<model>"  → local Ollama  (e.g. "ollama:llama3.1:70b")
  - "claude-*"        → Anthropic API
  - anything else     → OpenAI API   (e.g. "o3-mini", "gpt-4o")

Set LLM_MODEL in .env to choose.  The model is built once at process start
and handed to the agents wrapped in a :class:`ModelClient`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal, TypeVar

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, ValidationError

from prflow.core.config import Settings
from prflow.core.logging import get_logger

logger = get_logger("agents.models")

PromptName = Literal["reviewer", "gate", "test_writer"]

PROMPTS_DIR = Path(__file__).parent / "prompts"

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class ModelError(Exception):
    """Raised when the model cannot be reached or its output cannot be parsed."""


# ---------------------------------------------------------------------------
# Provider detection
# ---------------------------------------------------------------------------

def _is_ollama_model(model_name: str) -> bool:
    """Models prefixed with 'ollama:' are served by local Ollama."""
    return model_name.lower().startswith("ollama:")


def _is_anthropic_model(model_name: str) -> bool:
    """Anthropic models contain 'claude' in their name."""
    return "claude" in model_name.lower()


def _strip_ollama_prefix(model_name: str) -> str:
    """Return the bare model name without the 'ollama:' prefix."""
    return model_name[len("ollama:"):]


# ---------------------------------------------------------------------------
# LLM constructors
# ---------------------------------------------------------------------------

def _make_ollama(model: str, base_url: str, temperature: float) -> BaseChatModel:
    """Create a ChatOllama instance. langchain-ollama must be installed."""
    try:
        from langchain_ollama import ChatOllama  # type: ignore[import-untyped]
    except ImportError as exc:
        raise ImportError(
            "langchain-ollama is not installed. Run: pip install langchain-ollama"
        ) from exc

    bare_model = _strip_ollama_prefix(model)
    logger.info("Using Ollama model '%s' at %s", bare_model, base_url)
    return ChatOllama(model=bare_model, base_url=base_url, temperature=temperature)


def _make_anthropic(
    model: str, api_key: str, temperature: float, max_tokens: int, timeout: float | None
) -> BaseChatModel:
    from langchain_anthropic import ChatAnthropic

    logger.info("Using Anthropic model '%s'", model)
    extra: dict[str, Any] = {"timeout": timeout} if timeout else {}
    return ChatAnthropic(model=model, api_key=api_key, temperature=temperature, max_tokens=max_tokens, **extra)


def _make_openai(
    model: str, api_key: str, temperature: float, max_tokens: int, timeout: float | None
) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    logger.info("Using OpenAI model '%s'", model)
    extra: dict[str, Any] = {"timeout": timeout} if timeout else {}
    if model.startswith("o"):
        # Reasoning models reject temperature and use max_completion_tokens.
        return ChatOpenAI(model=model, api_key=api_key, max_completion_tokens=max_tokens, **extra)
    return ChatOpenAI(model=model, api_key=api_key, temperature=temperature, max_tokens=max_tokens, **extra)


# ---------------------------------------------------------------------------
# Key validation helpers
# ---------------------------------------------------------------------------

def _normalized_secret(value: str | None) -> str:
    return (value or "").strip()


def _require_openai_key(model: str, api_key: str) -> str:
    key = _normalized_secret(api_key)
    if key:
        return key
    raise ModelError(
        f"Missing OPENAI_API_KEY for model '{model}'. "
        "Set OPENAI_API_KEY or switch to an Ollama / Anthropic model."
    )


def _require_anthropic_key(model: str, api_key: str) -> str:
    key = _normalized_secret(api_key)
    if key:
        return key
    raise ModelError(
        f"Missing ANTHROPIC_API_KEY for model '{model}'. "
        "Set ANTHROPIC_API_KEY or switch to an OpenAI / Ollama model."
    )


# ---------------------------------------------------------------------------
# Public API: construction
# ---------------------------------------------------------------------------

def get_llm(settings: Settings) -> BaseChatModel:
    """Build the chat model named by ``settings.llm_model``.

    The provider is determined entirely by the model string: no provider
    is hardcoded.
    """
    model = settings.llm_model
    if _is_ollama_model(model):
        return _make_ollama(model, base_url=settings.ollama_base_url, temperature=settings.llm_temperature)

    if _is_anthropic_model(model):
        key = _require_anthropic_key(model, settings.anthropic_api_key)
        return _make_anthropic(
            model, key, settings.llm_temperature, settings.llm_max_tokens, settings.llm_timeout_seconds
        )

    # Default: OpenAI-compatible
    key = _require_openai_key(model, settings.openai_api_key)
    return _make_openai(
        model, key, settings.llm_temperature, settings.llm_max_tokens, settings.llm_timeout_seconds
    )


def build_model_client(settings: Settings) -> ModelClient:
    return ModelClient(
        get_llm(settings),
        structured_output=settings.llm_structured_output and not _is_ollama_model(settings.llm_model),
        model_name=settings.llm_model,
    )


def load_system_prompt(name: PromptName) -> str:
    """Load a system prompt from ``prompts/<name>.txt``."""
    prompt_file = PROMPTS_DIR / f"{name}.txt"
    if not prompt_file.exists():
        raise FileNotFoundError(f"System prompt not found: {prompt_file}")
    return prompt_file.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------

def _message_text(content: Any) -> str:
    """Flatten AIMessage content (string or list of content blocks) to text."""
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the JSON object embedded in a free-text model response.

    Accepts bare JSON, JSON inside a single markdown code fence, or JSON
    surrounded by prose (first ``{`` to last ``}``).

    Raises:
        ModelError: when no JSON object can be decoded.
    """
    stripped = text.strip()

    # Strip optional ```json / ``` fences
    if stripped.startswith("```"):
        lines = stripped.splitlines()
        stripped = "\n".join(line for line in lines[1:] if not line.strip().startswith("```")).strip()

    start = stripped.find("{")
    end = stripped.rfind("}")
    if start == -1 or end <= start:
        raise ModelError("model response contains no JSON object")

    try:
        payload = json.loads(stripped[start:end + 1])
    except json.JSONDecodeError as exc:
        raise ModelError(f"model response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ModelError("model response JSON is not an object")
    return payload


# ---------------------------------------------------------------------------
# Public API: invocation
# ---------------------------------------------------------------------------

class ModelClient:
    """The two model capabilities the agents use.

    * :meth:`complete`: free text in, free text out.
    * :meth:`complete_structured`: returns a validated instance of a
      pydantic schema, either enforced by the provider (structured output)
      or parsed locally from a JSON answer.

    Both raise :class:`ModelError` on any failure; they never return a
    partially-populated result.
    """

    def __init__(self, llm: BaseChatModel, structured_output: bool = True, model_name: str = "") -> None:
        self._llm = llm
        self._structured_output = structured_output
        self.model_name = model_name

    @staticmethod
    def _messages(prompt: str, system: str) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))
        return messages

    def complete(self, prompt: str, system: str = "") -> str:
        try:
            response = self._llm.invoke(self._messages(prompt, system))
        except Exception as exc:
            raise ModelError(f"model call failed: {exc}") from exc
        text = _message_text(getattr(response, "content", response))
        logger.debug("complete | model=%s | prompt_len=%d | answer_len=%d", self.model_name, len(prompt), len(text))
        return text

    def complete_structured(self, prompt: str, schema: type[SchemaT], system: str = "") -> SchemaT:
        if not self._structured_output:
            return self._complete_as_json(prompt, schema, system)

        try:
            runnable = self._llm.with_structured_output(schema)
            result = runnable.invoke(self._messages(prompt, system))
        except Exception as exc:
            raise ModelError(f"structured model call failed: {exc}") from exc

        if isinstance(result, schema):
            return result
        try:
            return schema.model_validate(result)
        except ValidationError as exc:
            raise ModelError(f"structured output does not match {schema.__name__}: {exc}") from exc

    def _complete_as_json(self, prompt: str, schema: type[SchemaT], system: str) -> SchemaT:
        schema_json = json.dumps(schema.model_json_schema(), indent=2)
        text = self.complete(
            f"{prompt}\n\nReturn ONLY a JSON object matching this JSON schema:\n{schema_json}",
            system,
        )
        payload = extract_json_object(text)
        try:
            return schema.model_validate(payload)
        except ValidationError as exc:
            raise ModelError(f"model JSON does not match {schema.__name__}: {exc}") from exc
