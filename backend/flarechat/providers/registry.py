"""Provider registry: configured LLM provider instances keyed by provider id.

Provider ids are the keys of ``Settings.providers``; several ids may share
one provider type.
"""

import logging

from openai import OpenAIError

from flarechat.config import ProviderSettings, Settings
from flarechat.providers.anthropic import AnthropicProvider
from flarechat.providers.base import LLMProvider
from flarechat.providers.ollama import OllamaProvider
from flarechat.providers.openai import OpenAIProvider
from flarechat.providers.openrouter import OpenRouterProvider

logger = logging.getLogger(__name__)

_providers: dict[str, LLMProvider] = {}


def register_provider(provider_id: str, provider: LLMProvider) -> None:
    """Register a provider instance under an id."""
    _providers[provider_id] = provider


def get_provider(provider_id: str) -> LLMProvider:
    """Get a registered provider by id. Raises ProviderNotFoundError if not found."""
    try:
        return _providers[provider_id]
    except KeyError:
        available = ", ".join(_providers.keys()) or "(none)"
        raise ProviderNotFoundError(
            f"Provider '{provider_id}' not registered. Available: {available}"
        )


def list_providers() -> list[str]:
    """Return ids of all registered providers."""
    return list(_providers.keys())


def clear_providers() -> None:
    """Clear all registered providers. Used in tests."""
    _providers.clear()


def build_provider(settings: ProviderSettings) -> LLMProvider:
    """Construct a provider from its settings entry."""
    api_key = settings.resolved_api_key()
    match settings.type:
        case "anthropic":
            return AnthropicProvider(api_key=api_key)
        case "openai":
            return OpenAIProvider(api_key=api_key, base_url=settings.base_url)
        case "openrouter":
            return OpenRouterProvider(api_key=api_key)
        case "ollama":
            return OllamaProvider(base_url=settings.base_url or "http://localhost:11434")
    raise UnsupportedProviderTypeError(settings.type)


def register_configured_providers(settings: Settings) -> list[str]:
    """Build and register every enabled provider. Returns the registered ids.

    Entries of an unknown type, or whose SDK client cannot be built, are
    skipped with a warning.
    """
    registered = []
    for provider_id, provider_settings in settings.providers.items():
        if not provider_settings.enabled:
            continue
        try:
            register_provider(provider_id, build_provider(provider_settings))
        except (UnsupportedProviderTypeError, OpenAIError) as exc:
            logger.warning("Skipping provider %s: %s", provider_id, exc)
            continue
        registered.append(provider_id)
    return registered


class ProviderNotFoundError(Exception):
    pass


class UnsupportedProviderTypeError(Exception):
    def __init__(self, provider_type: str) -> None:
        self.provider_type = provider_type
        super().__init__(f"Unsupported provider type: {provider_type}")
