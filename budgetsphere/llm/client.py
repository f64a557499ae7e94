"""Provider-specific transport client for LLM requests.

Architectural role:
    Executes HTTP requests against configured model providers and normalizes the
    response body to plain text.

Model invocation flow:
    `service.complete` -> `send_request(payload)` -> provider branch
    (OpenAI-compatible / Anthropic / Gemini) -> parsed text.

Retry behavior:
    No retry loop is implemented. Each HTTP call is attempted once; callers decide
    what to do with `LLMTransientError`.

Failure handling model:
    Failures raise `LLMError` subclasses with sanitized, provider-labeled messages:
    - `LLMTransientError`: timeouts, connection failures, HTTP 429 and 5xx.
    - `LLMFatalError`: other HTTP errors, missing keys, unknown providers, and
      response bodies without the expected text field.
"""

import requests

from budgetsphere.llm.provider_config import (
    ANTHROPIC_STYLE,
    ANTHROPIC_VERSION,
    GEMINI_STYLE,
    LLM_TIMEOUT_SECONDS,
    MAX_TOKENS,
    MODEL_NAME,
    PROVIDER,
    PROVIDERS,
    ProviderEndpoint,
    load_key,
)


TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


class LLMError(Exception):
    """Base class for text-generation failures."""

    transient = False


class LLMTransientError(LLMError):
    """Failure that may succeed on a later attempt."""

    transient = True


class LLMFatalError(LLMError):
    """Failure that will not succeed without a configuration change."""


def _label(provider_name: str | None) -> str:
    return str(provider_name or "provider").upper()


def _classify_http_error(provider_name: str, err: requests.exceptions.RequestException) -> LLMError:
    """Map a requests exception to a sanitized transient or fatal LLM error.

    Args:
        provider_name: Active provider label.
        err: Request exception instance.

    Returns:
        `LLMTransientError` or `LLMFatalError`; raw response bodies are not exposed.
    """
    label = _label(provider_name)

    if isinstance(err, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return LLMTransientError(f"{label} REQUEST FAILED ({type(err).__name__})")

    status_code = None
    if getattr(err, "response", None) is not None:
        status_code = getattr(err.response, "status_code", None)

    if status_code in TRANSIENT_STATUS_CODES:
        return LLMTransientError(f"{label} HTTP ERROR ({status_code})")
    if status_code:
        return LLMFatalError(f"{label} HTTP ERROR ({status_code})")
    return LLMTransientError(f"{label} HTTP ERROR")


def _split_messages(messages: list) -> tuple[str | None, list[dict]]:
    """Separate the system prompt from user/assistant turns."""
    system_prompt = None
    turns = []

    for msg in messages:
        if not isinstance(msg, dict):
            continue

        role = msg.get("role")
        content = msg.get("content", "")

        if role == "system":
            if isinstance(content, str) and content.strip():
                system_prompt = content.strip()
        elif role in ["user", "assistant"]:
            turns.append({"role": role, "content": content})

    return system_prompt, turns


def _require_key(endpoint: ProviderEndpoint) -> str:
    api_key = load_key(endpoint)
    if not api_key:
        raise LLMFatalError(f"{_label(endpoint.name)} KEY NOT FOUND")
    return api_key


def _post(provider_name: str, url: str, headers: dict, body: dict) -> dict:
    response = requests.post(url, headers=headers, json=body, timeout=LLM_TIMEOUT_SECONDS)
    response.raise_for_status()
    try:
        return response.json()
    except ValueError as err:
        raise LLMFatalError(f"{_label(provider_name)} INVALID JSON RESPONSE") from err


def _openai_compatible(endpoint: ProviderEndpoint, payload: dict) -> str:
    headers = {"Content-Type": "application/json"}
    if endpoint.needs_key:
        headers["Authorization"] = f"Bearer {_require_key(endpoint)}"

    data = _post(endpoint.name, endpoint.resolve_url(payload.get("model", MODEL_NAME)), headers, payload)
    return data["choices"][0]["message"]["content"].strip()


def _anthropic(endpoint: ProviderEndpoint, payload: dict) -> str:
    headers = {
        "x-api-key": _require_key(endpoint),
        "anthropic-version": ANTHROPIC_VERSION,
        "Content-Type": "application/json",
    }

    system_prompt, turns = _split_messages(payload.get("messages", []))
    body = {
        "model": payload.get("model", MODEL_NAME),
        "max_tokens": payload.get("max_tokens", MAX_TOKENS),
        "messages": turns,
    }
    if system_prompt:
        body["system"] = system_prompt
    if "temperature" in payload:
        body["temperature"] = payload["temperature"]

    data = _post(endpoint.name, endpoint.resolve_url(body["model"]), headers, body)
    return data["content"][0]["text"].strip()


def _gemini(endpoint: ProviderEndpoint, payload: dict) -> str:
    headers = {
        "x-goog-api-key": _require_key(endpoint),
        "Content-Type": "application/json",
    }

    system_prompt, turns = _split_messages(payload.get("messages", []))
    body = {
        "contents": [
            {
                "role": "model" if turn["role"] == "assistant" else "user",
                "parts": [{"text": str(turn["content"])}],
            }
            for turn in turns
            if turn["content"]
        ],
    }
    if system_prompt:
        body["systemInstruction"] = {"parts": [{"text": system_prompt}]}

    generation_config = {}
    if "temperature" in payload:
        generation_config["temperature"] = payload["temperature"]
    if "max_tokens" in payload:
        generation_config["maxOutputTokens"] = payload["max_tokens"]
    if generation_config:
        body["generationConfig"] = generation_config

    url = endpoint.resolve_url(payload.get("model", MODEL_NAME))
    data = _post(endpoint.name, url, headers, body)
    return data["candidates"][0]["content"]["parts"][0]["text"].strip()


_WIRE_HANDLERS = {
    ANTHROPIC_STYLE: _anthropic,
    GEMINI_STYLE: _gemini,
}


def send_request(payload: dict, provider: str | None = None) -> str:
    """Send one request to a provider and return the generated text.

    Args:
        payload: OpenAI-style payload (`model`, `messages`, sampling params).
        provider: Provider key; defaults to the configured `PROVIDER`.

    Returns:
        Generated text, stripped.

    Provider handling:
        - OpenAI-compatible providers: payload forwarded unchanged.
        - Anthropic: `system` lifted out of messages, default `max_tokens`.
        - Gemini: messages remapped to `contents` plus `systemInstruction`.

    Raises:
        LLMTransientError: Timeouts, connection failures, 429/5xx responses.
        LLMFatalError: Missing keys, unknown provider, other HTTP errors,
            malformed response bodies.
    """
    provider_name = provider or PROVIDER
    endpoint = PROVIDERS.get(provider_name)
    if endpoint is None:
        raise LLMFatalError(f"INVALID PROVIDER: {provider_name}")

    wire = _WIRE_HANDLERS.get(endpoint.style, _openai_compatible)
    try:
        return wire(endpoint, payload)

    except requests.exceptions.RequestException as err:
        raise _classify_http_error(provider_name, err) from err

    except (KeyError, IndexError, TypeError, AttributeError) as err:
        raise LLMFatalError(f"{_label(provider_name)} UNEXPECTED RESPONSE SHAPE") from err
