"""Abstract LLM provider interface for single-shot completions."""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class CompletionOptions(BaseModel):
    """Per-call generation options."""

    model: str
    temperature: float | None = None
    max_tokens: int = 50


class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    suggested_models: list[str] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g., 'anthropic')."""
        ...

    @abstractmethod
    async def send_message(self, prompt: str, options: CompletionOptions) -> str:
        """Send one user prompt and return the full text of the reply."""
        ...
