"""
Model backends.

The loop only needs `complete(turns) -> text`. Every supported provider
speaks the OpenAI-compatible chat completions API, so one client built on
the `openai` SDK covers OpenAI, OpenRouter and a local Ollama server.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from openai import OpenAI, OpenAIError

from .errors import BackendError, ConfigError

LOGGER = logging.getLogger(__name__)

REASONING_EFFORTS = ("none", "minimal", "low", "medium", "high", "xhigh")

# Ollama ignores the key but the SDK refuses to build a client without one.
OLLAMA_PLACEHOLDER_KEY = "ollama"


class ModelClient(Protocol):
    def complete(self, turns: Sequence[Tuple[str, str]]) -> str:
        ...


@dataclass(frozen=True)
class ProviderPreset:
    name: str
    base_url: Optional[str]
    api_key_env: Optional[str]


PROVIDERS: Dict[str, ProviderPreset] = {
    "openai": ProviderPreset("openai", None, "OPENAI_API_KEY"),
    "openrouter": ProviderPreset("openrouter", "https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"),
    "ollama": ProviderPreset("ollama", "http://localhost:11434/v1", None),
}

_CHAT_ROLES = {
    "system": "system",
    "task": "user",
    "assistant": "assistant",
    "observation": "user",
}


def get_provider(name: str) -> ProviderPreset:
    preset = PROVIDERS.get((name or "").strip().lower())
    if preset is None:
        raise ConfigError(f"Unknown model provider {name!r} (expected one of: {', '.join(PROVIDERS)}).")
    return preset


def eval_reasoning_effort(effort: Optional[str]) -> Optional[str]:
    if effort is None or not str(effort).strip():
        return None
    effort_lower = str(effort).strip().lower()
    if effort_lower in REASONING_EFFORTS:
        return effort_lower
    return "low"  # Default to low if unrecognized


def to_chat_messages(turns: Sequence[Tuple[str, str]]) -> List[Dict[str, str]]:
    return [{"role": _CHAT_ROLES[role], "content": content} for role, content in turns]


class OpenAIChatClient:
    def __init__(
            self,
            client: Any,
            model: str,
            *,
            reasoning_effort: Optional[str] = None,
    ):
        self.client = client
        self.model = model
        self.reasoning_effort = eval_reasoning_effort(reasoning_effort)

    @classmethod
    def from_settings(
            cls,
            *,
            model: str,
            api_key: str,
            base_url: Optional[str] = None,
            reasoning_effort: Optional[str] = None,
            timeout_seconds: Optional[float] = None,
    ) -> "OpenAIChatClient":
        client_kwargs: Dict[str, Any] = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url
        if timeout_seconds:
            client_kwargs["timeout"] = timeout_seconds
        return cls(OpenAI(**client_kwargs), model, reasoning_effort=reasoning_effort)

    def complete(self, turns: Sequence[Tuple[str, str]]) -> str:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": to_chat_messages(turns),
        }
        if self.reasoning_effort:
            request["reasoning_effort"] = self.reasoning_effort

        LOGGER.debug("requesting completion from %s with %d messages", self.model, len(request["messages"]))
        try:
            resp = self.client.chat.completions.create(**request)
        except OpenAIError as e:
            raise BackendError(f"model request failed: {e}") from e

        choices = getattr(resp, "choices", None) or []
        if not choices:
            raise BackendError("no choices in model response")
        content = choices[0].message.content
        if content is None:
            raise BackendError("no content in model response")
        return content

    def list_models(self) -> List[str]:
        try:
            return [m.id for m in self.client.models.list()]
        except OpenAIError as e:
            raise BackendError(f"couldn't list available models, is the backend reachable? ({e})") from e

    def check(self) -> str:
        """
        Verify the backend knows the configured model and answers a trivial
        request. Returns the reply text.
        """
        available = self.list_models()
        if self.model not in available:
            raise BackendError(f"model {self.model} not found")
        return self.complete([
            ("system", "You are a connectivity check. Reply with the single word OK."),
            ("task", "ping"),
        ])
