"""Canonical data structures for FlareChat transcripts.

Defined once here, referenced everywhere else. GenerationSettings uses
snake_case attributes and serializes to the camelCase keys found in the
settings comments of history documents, including documents written by
older releases.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_TEMPERATURE = 0.7

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, text: str) -> "Role | None":
        """Case-insensitive lookup. Returns None for anything but the three roles."""
        try:
            return cls(text.strip().lower())
        except ValueError:
            return None

    @property
    def heading(self) -> str:
        return self.value.capitalize()


class DedupPolicy(str, Enum):
    CONTENT_LENGTH = "content_length"  # (role, timestamp, len(content))
    EXACT_CONTENT = "exact_content"  # (role, timestamp, content)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class GenerationSettings(BaseModel):
    """Per-message generation settings.

    Attached to every message so a transcript can span several providers
    and flares. Never inherited from the transcript once a message has its
    own value for a field.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    provider_id: str | None = Field(default=None, alias="provider")
    provider_name: str | None = Field(default=None, alias="providerName")
    provider_type: str | None = Field(default=None, alias="providerType")
    model: str = "default"
    temperature: float = 0.0
    flare: str | None = None
    is_reasoning_model: bool | None = Field(default=None, alias="isReasoningModel")
    reasoning_header: str | None = Field(default=None, alias="reasoningHeader")
    max_tokens: int | None = Field(default=None, alias="maxTokens")
    context_window: int | None = Field(default=None, alias="contextWindow")
    handoff_context: int | None = Field(default=None, alias="handoffContext")

    @classmethod
    def fallback(cls) -> "GenerationSettings":
        """Best-effort settings for messages whose stored settings are unreadable."""
        return cls(provider_id="default", model="default", temperature=0.0)

    def to_payload(self) -> dict:
        """camelCase dict with unset optional fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Message(BaseModel):
    role: Role
    content: str
    timestamp: int  # epoch milliseconds, informational only
    settings: GenerationSettings = Field(default_factory=GenerationSettings)


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class Transcript(BaseModel):
    """An ordered conversation plus its header metadata.

    Once persisted, ``title`` is also the stem of the backing file name.
    """

    date: int  # creation, epoch milliseconds
    last_modified: int
    title: str
    flare: str | None = None
    provider_id: str | None = None
    provider_name: str | None = None
    provider_type: str | None = None
    model: str = "default"
    temperature: float = DEFAULT_TEMPERATURE
    messages: list[Message] = Field(default_factory=list)

    @model_validator(mode="after")
    def _clamp_last_modified(self) -> "Transcript":
        if self.last_modified < self.date:
            self.last_modified = self.date
        return self

    def touch(self, now_ms: int) -> None:
        """Bump last_modified, never below the creation date."""
        self.last_modified = max(now_ms, self.date)

    def inherited_settings(self) -> dict:
        """Transcript-level defaults a new message inherits for omitted fields."""
        return {
            "provider_id": self.provider_id,
            "provider_name": self.provider_name,
            "provider_type": self.provider_type,
            "model": self.model,
            "temperature": self.temperature,
            "flare": self.flare,
        }
