"""Shared pytest fixtures for FlareChat tests."""

import pytest

from flarechat.config import (
    DateFormat,
    ExportSettings,
    ProviderSettings,
    Settings,
    TitleSettings,
)
from flarechat.history.store import TranscriptStore
from flarechat.providers.registry import clear_providers
from flarechat.vault.local import LocalVault


@pytest.fixture
def settings() -> Settings:
    """Settings with one configured provider and short folder names."""
    return Settings(
        history_folder="history",
        date_format=DateFormat.YYYY_MM_DD,
        auto_save_enabled=True,
        default_provider="claude",
        providers={
            "claude": ProviderSettings(
                name="Claude",
                type="anthropic",
                default_model="claude-sonnet-4-5",
            ),
        },
        title_settings=TitleSettings(provider="claude", model="claude-haiku-4-5"),
        export_settings=ExportSettings(export_folder="exports"),
    )


@pytest.fixture
def manual_settings(settings: Settings) -> Settings:
    """Same settings with auto-save off."""
    return settings.model_copy(update={"auto_save_enabled": False})


@pytest.fixture
def vault(tmp_path) -> LocalVault:
    """Vault rooted in a per-test temporary directory."""
    return LocalVault(tmp_path)


@pytest.fixture
def store(vault, settings) -> TranscriptStore:
    return TranscriptStore(vault, settings)


@pytest.fixture(autouse=True)
def _reset_provider_registry():
    clear_providers()
    yield
    clear_providers()
