"""Ollama LLM provider: thin subclass of OpenAICompatibleProvider.

Ollama runs local models and exposes an OpenAI-compatible API at /v1.
"""

from openai import AsyncOpenAI

from flarechat.providers.openai_compat import OpenAICompatibleProvider


class OllamaProvider(OpenAICompatibleProvider):
    """LLM provider backed by a local Ollama instance."""

    def __init__(
        self,
        *,
        client: AsyncOpenAI | None = None,
        base_url: str = "http://localhost:11434",
    ) -> None:
        if client is not None:
            super().__init__(client)
        else:
            super().__init__(
                AsyncOpenAI(
                    api_key="ollama",
                    base_url=f"{base_url.rstrip('/')}/v1",
                )
            )

    @property
    def name(self) -> str:
        return "ollama"
