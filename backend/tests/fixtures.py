"""Shared test helpers."""

from typing import Any

from flarechat.models import GenerationSettings, Message, Role, Transcript
from flarechat.providers.base import CompletionOptions, LLMProvider
from flarechat.vault.base import FileHandle
from flarechat.vault.local import LocalVault

BASE_TS = 1_718_000_000_000  # 2024-06-10 06:13:20 UTC


def make_message(
    role: Role | str = Role.USER,
    content: str = "Hello",
    timestamp: int = BASE_TS,
    **settings_overrides: Any,
) -> Message:
    """Create a Message with anthropic defaults, overridable per field."""
    fields: dict[str, Any] = {
        "provider_id": "claude",
        "provider_name": "Claude",
        "provider_type": "anthropic",
        "model": "claude-sonnet-4-5",
        "temperature": 0.7,
    }
    fields.update(settings_overrides)
    return Message(
        role=Role(role) if isinstance(role, str) else role,
        content=content,
        timestamp=timestamp,
        settings=GenerationSettings(**fields),
    )


def make_transcript(messages: list[Message] | None = None, **overrides: Any) -> Transcript:
    fields: dict[str, Any] = {
        "date": BASE_TS,
        "last_modified": BASE_TS + 60_000,
        "title": "chat-2024-06-10",
        "provider_id": "claude",
        "provider_name": "Claude",
        "provider_type": "anthropic",
        "model": "claude-sonnet-4-5",
        "temperature": 0.7,
        "messages": messages or [],
    }
    fields.update(overrides)
    return Transcript(**fields)


class FakeProvider(LLMProvider):
    """Provider that replays scripted replies; exceptions in the script are raised."""

    def __init__(self, replies: list[str | Exception]) -> None:
        self._replies = list(replies)
        self.calls: list[tuple[str, CompletionOptions]] = []

    @property
    def name(self) -> str:
        return "fake"

    async def send_message(self, prompt: str, options: CompletionOptions) -> str:
        self.calls.append((prompt, options))
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FailingRenameVault(LocalVault):
    """LocalVault whose rename always fails after touching nothing."""

    async def rename(self, handle: FileHandle, new_path: str) -> FileHandle:
        raise PermissionError(f"rename denied: {handle.path}")


class FailingModifyVault(LocalVault):
    """LocalVault whose full-body writes fail while ``fail`` is set."""

    fail = True

    async def modify(self, handle: FileHandle, text: str) -> None:
        if self.fail:
            raise OSError(f"disk full: {handle.path}")
        await super().modify(handle, text)
