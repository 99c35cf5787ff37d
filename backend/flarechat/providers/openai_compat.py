"""Shared base class for OpenAI-compatible LLM providers.

OpenAIProvider, OpenRouterProvider and OllamaProvider are thin subclasses
that differ only in client configuration.
"""

from typing import Any

from openai import AsyncOpenAI

from flarechat.providers.base import CompletionOptions, LLMProvider


class OpenAICompatibleProvider(LLMProvider):
    """Base provider for any API that speaks the OpenAI chat completions protocol."""

    def __init__(self, client: AsyncOpenAI) -> None:
        self._client = client

    async def send_message(self, prompt: str, options: CompletionOptions) -> str:
        response = await self._client.chat.completions.create(**self._build_params(prompt, options))
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    @staticmethod
    def _build_params(prompt: str, options: CompletionOptions) -> dict[str, Any]:
        """Build kwargs dict for client.chat.completions.create()."""
        params: dict[str, Any] = {
            "model": options.model,
            "max_tokens": options.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.temperature is not None:
            params["temperature"] = options.temperature
        return params
