"""OpenRouter LLM provider: thin subclass of OpenAICompatibleProvider.

OpenRouter is an OpenAI-compatible API that routes to hundreds of models
via a single API key.
"""

from openai import AsyncOpenAI

from flarechat.providers.openai_compat import OpenAICompatibleProvider

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(OpenAICompatibleProvider):
    """LLM provider backed by OpenRouter's API."""

    suggested_models = [
        "anthropic/claude-sonnet-4.5",
        "openai/gpt-4o-mini",
        "meta-llama/llama-4-scout",
    ]

    def __init__(self, *, client: AsyncOpenAI | None = None, api_key: str | None = None) -> None:
        if client is not None:
            super().__init__(client)
        else:
            super().__init__(
                AsyncOpenAI(
                    api_key=api_key,
                    base_url=OPENROUTER_BASE_URL,
                    default_headers={"X-Title": "FlareChat"},
                )
            )

    @property
    def name(self) -> str:
        return "openrouter"
