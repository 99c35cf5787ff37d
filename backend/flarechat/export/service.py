"""Export service: render a transcript through user templates and write it out.

Rendering is a pure function of the transcript and the export settings.
Exports always go to a new file; the live transcript and its document are
never touched.
"""

import logging
import re
from datetime import UTC, datetime

from flarechat.config import ExportSettings, Settings
from flarechat.history.errors import PersistenceError
from flarechat.history.naming import format_timestamp, unique_path
from flarechat.models import Message, Role, Transcript
from flarechat.vault.base import FileHandle, Vault

logger = logging.getLogger(__name__)

FRONTMATTER_KEYS = ("title", "date", "flare", "model", "provider", "temperature")
METADATA_KEYS = ("flare", "provider", "model", "temperature", "maxTokens", "date", "time")

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")
_UNSAFE_NAME_CHARS = re.compile(r'[<>:"\\/|?*\n\r\t]')


def closing_tag(header: str) -> str:
    """``<think>`` -> ``</think>``."""
    return header.replace("<", "</", 1)


def strip_reasoning(content: str, header: str) -> str:
    """Remove every reasoning span, tags included."""
    pattern = re.compile(f"{re.escape(header)}.*?{re.escape(closing_tag(header))}", re.DOTALL)
    return pattern.sub("", content).strip()


def mark_reasoning(content: str, header: str) -> str:
    """Keep reasoning text, swapping its tags for parentheses."""
    marked = content.replace(header, "(").replace(closing_tag(header), ")\n")
    return _EXTRA_BLANK_LINES.sub("\n\n", marked)


def fill_template(template: str, values: dict[str, str], allowed: tuple[str, ...]) -> str:
    """Substitute ``{{key}}`` for recognized keys; anything else is left verbatim."""

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in allowed:
            return match.group(0)
        return values.get(key, "")

    return _PLACEHOLDER.sub(_replace, template)


def _text(value: object) -> str:
    return "" if value is None else str(value)


def _frontmatter_values(transcript: Transcript) -> dict[str, str]:
    return {
        "title": transcript.title,
        "date": format_timestamp(transcript.date),
        "flare": _text(transcript.flare),
        "model": transcript.model,
        "provider": _text(transcript.provider_name or transcript.provider_id),
        "temperature": _text(transcript.temperature),
    }


def _metadata_values(message: Message) -> dict[str, str]:
    s = message.settings
    moment = datetime.fromtimestamp(message.timestamp / 1000, UTC)
    return {
        "flare": _text(s.flare),
        "provider": _text(s.provider_name or s.provider_id),
        "model": s.model,
        "temperature": _text(s.temperature),
        "maxTokens": _text(s.max_tokens),
        "date": moment.strftime("%Y-%m-%d"),
        "time": moment.strftime("%H:%M:%S"),
    }


def render_content(message: Message, include_reasoning: bool) -> str:
    s = message.settings
    if not (s.is_reasoning_model and s.reasoning_header):
        return message.content
    if include_reasoning:
        return mark_reasoning(message.content, s.reasoning_header)
    return strip_reasoning(message.content, s.reasoning_header)


class ExportService:
    """Builds export documents from a transcript."""

    def __init__(self, vault: Vault, settings: Settings) -> None:
        self._vault = vault
        self._settings = settings

    def render(self, transcript: Transcript, export_settings: ExportSettings | None = None) -> str:
        es = export_settings or self._settings.export_settings
        parts: list[str] = []

        header = fill_template(es.frontmatter_template, _frontmatter_values(transcript), FRONTMATTER_KEYS)
        if header.strip():
            parts.append(header.strip("\n") + "\n")

        for message in transcript.messages:
            if message.role is Role.SYSTEM and not es.include_system_messages:
                continue
            block = [f"## {message.role.heading}", ""]
            metadata = fill_template(es.metadata_template, _metadata_values(message), METADATA_KEYS)
            if metadata.strip():
                block.extend([metadata.strip(), ""])
            block.append(render_content(message, es.include_reasoning_blocks))
            parts.append("\n".join(block) + "\n")

        return "\n".join(parts)

    async def export(self, transcript: Transcript) -> FileHandle:
        """Write a rendered copy to a new file in the export folder."""
        es = self._settings.export_settings
        stem = _UNSAFE_NAME_CHARS.sub("-", transcript.title).strip() or "chat-export"
        text = self.render(transcript, es)
        path = None
        try:
            if not await self._vault.exists(es.export_folder):
                await self._vault.create_folder(es.export_folder)
            path = await unique_path(self._vault, es.export_folder, stem)
            handle = await self._vault.create(path, text)
        except OSError as exc:
            raise PersistenceError("export", path or es.export_folder) from exc

        logger.info("Exported %s to %s", transcript.title, handle.path)
        return handle
