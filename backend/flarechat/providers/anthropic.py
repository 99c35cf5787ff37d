"""Anthropic (Claude) LLM provider implementation."""

from typing import Any

from anthropic import AsyncAnthropic

from flarechat.providers.base import CompletionOptions, LLMProvider


class AnthropicProvider(LLMProvider):
    """LLM provider backed by Anthropic's Messages API."""

    suggested_models = [
        "claude-sonnet-4-5",
        "claude-haiku-4-5",
        "claude-opus-4-1",
    ]

    def __init__(self, *, client: AsyncAnthropic | None = None, api_key: str | None = None) -> None:
        self._client = client if client is not None else AsyncAnthropic(api_key=api_key)

    @property
    def name(self) -> str:
        return "anthropic"

    async def send_message(self, prompt: str, options: CompletionOptions) -> str:
        response = await self._client.messages.create(**self._build_params(prompt, options))
        return self._extract_text(response)

    @staticmethod
    def _build_params(prompt: str, options: CompletionOptions) -> dict[str, Any]:
        """Build kwargs dict for client.messages.create()."""
        params: dict[str, Any] = {
            "model": options.model,
            "max_tokens": options.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.temperature is not None:
            params["temperature"] = options.temperature
        return params

    @staticmethod
    def _extract_text(response: Any) -> str:
        """Extract text content from Anthropic Message response."""
        parts = []
        for block in response.content:
            if block.type == "text":
                parts.append(block.text)
        return "".join(parts)
