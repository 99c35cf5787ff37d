"""Title generation: ask a provider for a title, then rename the transcript.

The provider call is retried with a fixed delay. Once a title is obtained
the store performs the rename transaction, rolling back on failure, so the
title and the file name never disagree when generate_title returns.
"""

import asyncio
import logging
import re
from collections.abc import Callable
from enum import Enum

from flarechat.config import Settings
from flarechat.history.errors import HistoryError, TitleGenerationError
from flarechat.history.store import TranscriptStore
from flarechat.models import Role, Transcript
from flarechat.providers.base import CompletionOptions, LLMProvider
from flarechat.providers.registry import ProviderNotFoundError, get_provider

logger = logging.getLogger(__name__)

TITLE_PREFIX = "chat-"
MAX_TITLE_LENGTH = 50
EXCERPT_LENGTH = 150

_ILLEGAL_FILENAME_CHARS = re.compile(r'[<>:"\\/|?*]')
_WRAPPING_QUOTES = re.compile(r"^[\"']|[\"']$")
_AUTOMATIC_TITLE = re.compile(r"^chat-\d{2,4}-\d{2}-\d{2,4}(-\d+)?$")


class TitleState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def sanitize_title(text: str) -> str:
    """Turn a raw completion into a file-name-safe ``chat-`` title."""
    title = " ".join(text.split())
    title = _WRAPPING_QUOTES.sub("", title)
    title = _ILLEGAL_FILENAME_CHARS.sub("-", title)[:MAX_TITLE_LENGTH]
    return title if title.startswith(TITLE_PREFIX) else f"{TITLE_PREFIX}{title}"


def build_prompt(transcript: Transcript, instruction: str) -> str:
    history = "\n\n".join(
        f"{m.role.value}: {m.content[:EXCERPT_LENGTH]}..."
        for m in transcript.messages
        if m.role is not Role.SYSTEM
    )
    return f"{instruction}\n\nChat History:\n{history}"


def count_exchanges(transcript: Transcript) -> int:
    """Number of user messages directly answered by an assistant message."""
    turns = [m for m in transcript.messages if m.role is not Role.SYSTEM]
    return sum(
        1 for a, b in zip(turns, turns[1:])
        if a.role is Role.USER and b.role is Role.ASSISTANT
    )


class TitleGenerator:
    """Drives the title provider and the store's rename transaction."""

    def __init__(
        self,
        store: TranscriptStore,
        settings: Settings | None = None,
        *,
        provider_lookup: Callable[[str], LLMProvider] = get_provider,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self._store = store
        self._settings = settings or store.settings
        self._provider_lookup = provider_lookup
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._state = TitleState.IDLE

    @property
    def state(self) -> TitleState:
        return self._state

    def should_auto_generate(self, transcript: Transcript) -> bool:
        """True once an automatically named chat has enough exchanges to title."""
        ts = self._settings.title_settings
        return (
            ts.auto_generate
            and _AUTOMATIC_TITLE.match(transcript.title) is not None
            and count_exchanges(transcript) >= ts.auto_generate_after_pairs
        )

    async def generate_title(self) -> str:
        """Generate a title for the current transcript and rename its file.

        Raises TitleGenerationError when no title could be obtained (the
        transcript is unchanged), RenameError or PersistenceError when the
        rename transaction failed and was rolled back.
        """
        transcript = self._store.current
        handle = self._store.current_file
        if transcript is None or handle is None:
            raise TitleGenerationError("No active chat to retitle")

        ts = self._settings.title_settings
        try:
            provider = self._provider_lookup(ts.provider)
        except ProviderNotFoundError as exc:
            self._state = TitleState.FAILED
            raise TitleGenerationError(
                f"Title generation provider not found: {ts.provider or '(unset)'}",
                path=handle.path,
            ) from exc

        self._state = TitleState.REQUESTING
        options = CompletionOptions(
            model=ts.model,
            temperature=ts.temperature,
            max_tokens=ts.max_tokens,
        )
        try:
            response = await self._request(provider, build_prompt(transcript, ts.prompt), options, handle.path)
            title = sanitize_title(response)
            await self._store.retitle(title)
        except HistoryError:
            self._state = TitleState.FAILED
            raise

        self._state = TitleState.SUCCEEDED
        return title

    async def _request(
        self, provider: LLMProvider, prompt: str, options: CompletionOptions, path: str
    ) -> str:
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await provider.send_message(prompt, options)
            except Exception as exc:
                last_error = exc
                logger.warning("Title generation attempt %d failed: %s", attempt, exc)
            else:
                if response.strip():
                    return response
                logger.warning("Title generation attempt %d returned an empty title", attempt)
            if attempt < self._max_attempts:
                await asyncio.sleep(self._retry_delay)

        raise TitleGenerationError(
            f"Failed to generate title after {self._max_attempts} attempts",
            path=path,
            attempts=self._max_attempts,
        ) from last_error
