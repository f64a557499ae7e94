"""Text-generation provider configuration.

Architectural role:
    Single source of provider endpoints, model defaults, and credential lookup for
    `budgetsphere.llm.client` and `budgetsphere.llm.service`.

Determinism:
    Values are resolved once at import time from the process environment (after
    `.env` loading). Credentials are read lazily by `load_key`.

Failure behavior:
    Missing credentials resolve to `None`; the client reports them as fatal.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


PROVIDER = os.getenv("PROVIDER", "local")
MODEL_NAME = os.getenv("MODEL_NAME", "qwen2.5:7b")

TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.1"))
MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1024"))
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "120"))

# Directory holding `<provider>.key` files when no `<PROVIDER>_API_KEY` is set.
KEY_DIR = os.getenv("LLM_KEY_DIR", "config")

# Wire formats understood by `client`.
OPENAI_STYLE = "openai"
ANTHROPIC_STYLE = "anthropic"
GEMINI_STYLE = "gemini"

ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True)
class ProviderEndpoint:
    """Where and how to reach one provider.

    `url` may contain a `{model}` placeholder. `needs_key=False` marks keyless
    local servers.
    """

    name: str
    url: str
    style: str = OPENAI_STYLE
    needs_key: bool = True

    @property
    def key_file(self) -> str | None:
        return os.path.join(KEY_DIR, f"{self.name}.key") if self.needs_key else None

    def resolve_url(self, model: str) -> str:
        return self.url.format(model=model)


PROVIDERS: dict[str, ProviderEndpoint] = {
    endpoint.name: endpoint
    for endpoint in (
        ProviderEndpoint(
            "local",
            os.getenv("LOCAL_LLM_URL", "http://127.0.0.1:11434/v1/chat/completions"),
            needs_key=False,
        ),
        ProviderEndpoint("openai", "https://api.openai.com/v1/chat/completions"),
        ProviderEndpoint("groq", "https://api.groq.com/openai/v1/chat/completions"),
        ProviderEndpoint("openrouter", "https://openrouter.ai/api/v1/chat/completions"),
        ProviderEndpoint("mistral", "https://api.mistral.ai/v1/chat/completions"),
        ProviderEndpoint(
            "anthropic", "https://api.anthropic.com/v1/messages", style=ANTHROPIC_STYLE
        ),
        ProviderEndpoint(
            "gemini",
            "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
            style=GEMINI_STYLE,
        ),
    )
}


def load_key(endpoint: ProviderEndpoint) -> str | None:
    """Resolve the API key for a provider.

    Resolution order:
        1. `<NAME>_API_KEY` environment variable (for example `OPENAI_API_KEY`).
        2. Contents of `<KEY_DIR>/<name>.key`.

    Returns:
        Key string, or `None` for keyless providers and missing credentials.
    """
    if not endpoint.needs_key:
        return None
    env_value = os.getenv(f"{endpoint.name.upper()}_API_KEY")
    if env_value:
        return env_value
    path = endpoint.key_file
    if not path or not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        return f.read().strip() or None
