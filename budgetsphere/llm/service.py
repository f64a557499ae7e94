"""Prompt-to-payload adapter for LLM invocation.

Architectural role:
    Provides the canonical text-completion entrypoint used by handlers. This module
    bridges prompt construction (`budgetsphere.prompting`) to transport
    (`budgetsphere.llm.client`).

Model call flow:
    (system prompt, user prompt) -> payload construction -> `client.send_request`.

Determinism:
    Payload construction is deterministic for fixed inputs and configuration.
    Generated output remains non-deterministic because inference runs remotely.
"""

from typing import Protocol

from budgetsphere.llm.client import LLMFatalError, send_request
from budgetsphere.llm.provider_config import MAX_TOKENS, MODEL_NAME, TEMPERATURE


class TextCompletion(Protocol):
    """Text-generation collaborator: prompt in, text out, may raise."""

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


def build_payload(
    system_prompt: str,
    user_prompt: str,
    model: str = MODEL_NAME,
    temperature: float = TEMPERATURE,
    max_tokens: int = MAX_TOKENS,
) -> dict:
    """Build the OpenAI-style payload understood by every provider branch."""
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": False,
    }


def complete(system_prompt: str, user_prompt: str, provider: str | None = None) -> str:
    """Invoke the configured model with shared generation defaults.

    Args:
        system_prompt: Handler role and guidelines.
        user_prompt: Memory, current context, and the user request.
        provider: Optional provider override.

    Returns:
        Non-empty generated text.

    Raises:
        LLMTransientError / LLMFatalError: Propagated from `client`; an empty
            completion is reported as `LLMFatalError`.
    """
    text = send_request(build_payload(system_prompt, user_prompt), provider=provider)
    if not text or not text.strip():
        raise LLMFatalError("EMPTY COMPLETION")
    return text


class LLMTextClient:
    """Default `TextCompletion` bound to one provider (or the configured one)."""

    def __init__(self, provider: str | None = None):
        self.provider = provider

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        return complete(system_prompt, user_prompt, provider=self.provider)
