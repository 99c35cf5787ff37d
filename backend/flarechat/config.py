"""Read-only settings: folders, date format, providers, title and export options.

Loaded from a YAML file. API keys can stay out of the file: a ``.env`` next
to it (or in the working directory) is loaded into the environment and
provider construction falls back to ``<TYPE>_API_KEY``.
"""

import os
from enum import Enum
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from flarechat.models import DedupPolicy

DEFAULT_TITLE_PROMPT = (
    "Generate a short, descriptive title (5-7 words) for this chat conversation. \n"
    "The title should reflect the main topic or purpose of the conversation.\n"
    "Return ONLY the title text without quotes, bullets, or any formatting."
)

DEFAULT_FRONTMATTER_TEMPLATE = "---\ntitle: {{title}}\ndate: {{date}}\n---"


class DateFormat(str, Enum):
    MM_DD_YYYY = "MM-DD-YYYY"
    DD_MM_YYYY = "DD-MM-YYYY"
    YYYY_MM_DD = "YYYY-MM-DD"
    MM_DD_YY = "MM-DD-YY"
    DD_MM_YY = "DD-MM-YY"
    YY_MM_DD = "YY-MM-DD"


class ProviderSettings(BaseModel):
    name: str
    type: str  # "anthropic" | "openai" | "openrouter" | "ollama"
    enabled: bool = True
    api_key: str | None = None
    base_url: str | None = None
    default_model: str | None = None
    models: list[str] = Field(default_factory=list)

    def resolved_api_key(self) -> str | None:
        return self.api_key or os.environ.get(f"{self.type.upper()}_API_KEY")


class TitleSettings(BaseModel):
    provider: str = ""
    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 50
    prompt: str = DEFAULT_TITLE_PROMPT
    auto_generate: bool = False
    auto_generate_after_pairs: int = 2


class ExportSettings(BaseModel):
    export_folder: str = "FLAREai/exports"
    frontmatter_template: str = DEFAULT_FRONTMATTER_TEMPLATE
    metadata_template: str = ""
    include_system_messages: bool = True
    include_reasoning_blocks: bool = True


class Settings(BaseModel):
    history_folder: str = "FLAREai/history"
    date_format: DateFormat = DateFormat.MM_DD_YYYY
    auto_save_enabled: bool = True
    default_provider: str = ""
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)
    dedup_policy: DedupPolicy = DedupPolicy.CONTENT_LENGTH
    title_settings: TitleSettings = Field(default_factory=TitleSettings)
    export_settings: ExportSettings = Field(default_factory=ExportSettings)

    def provider_settings(self, provider_id: str | None) -> ProviderSettings | None:
        if not provider_id:
            return None
        return self.providers.get(provider_id)


def load_settings(path: str | Path, *, env_file: str | Path | None = None) -> Settings:
    """Load settings from a YAML file. A missing or empty file yields defaults.

    Raises pydantic.ValidationError for invalid values.
    """
    path = Path(path)
    load_dotenv(env_file or path.parent / ".env")

    data: dict = {}
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    return Settings.model_validate(data)
