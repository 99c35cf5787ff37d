"""Transcript store: owns the in-memory transcript and its backing document.

Single writer. Callers serialize add_message/save/retitle on one store
instance; the store itself takes no locks.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from flarechat.config import Settings
from flarechat.history.blocks import decode_messages, encode_body
from flarechat.history.errors import (
    HistoryError,
    MalformedDocumentError,
    PersistenceError,
    RenameError,
)
from flarechat.history.frontmatter import (
    Frontmatter,
    encode_transcript,
    join_document,
    split_document,
)
from flarechat.history.naming import format_file_date, now_ms, unique_path
from flarechat.models import (
    DEFAULT_TEMPERATURE,
    DedupPolicy,
    GenerationSettings,
    Message,
    Role,
    Transcript,
)
from flarechat.vault.base import FileHandle, Vault, join_path

logger = logging.getLogger(__name__)

HistoryEventKind = Literal["created", "loaded", "message_added", "saved", "cleared", "renamed", "deleted"]


@dataclass
class HistoryEvent:
    kind: HistoryEventKind
    transcript: Transcript | None
    path: str | None


@dataclass
class HistoryEntry:
    """A file or folder in the history folder tree."""

    type: Literal["file", "folder"]
    name: str
    path: str
    children: list["HistoryEntry"] = field(default_factory=list)


def dedup_key(message: Message, policy: DedupPolicy) -> tuple:
    if policy is DedupPolicy.EXACT_CONTENT:
        return (message.role, message.timestamp, message.content)
    return (message.role, message.timestamp, len(message.content))


def dedupe_messages(
    messages: list[Message], policy: DedupPolicy, *, prefer_latest: bool
) -> list[Message]:
    """Collapse messages sharing a dedup key, keeping first-seen positions.

    With ``prefer_latest`` the last duplicate's data wins; otherwise the first.
    """
    unique: dict[tuple, Message] = {}
    for message in messages:
        key = dedup_key(message, policy)
        if prefer_latest or key not in unique:
            unique[key] = message
    return list(unique.values())


def renamed_path(handle: FileHandle, old_title: str, new_title: str) -> str:
    """Swap the old title for the new one in the file name only."""
    if old_title and old_title in handle.name:
        name = handle.name.replace(old_title, new_title, 1)
    else:
        name = f"{new_title}.md"
    return join_path(handle.parent, name)


class TranscriptStore:
    """Loads, mutates and persists one transcript at a time."""

    def __init__(
        self,
        vault: Vault,
        settings: Settings,
        *,
        dedup_policy: DedupPolicy | None = None,
    ) -> None:
        self._vault = vault
        self._settings = settings
        self._dedup_policy = dedup_policy or settings.dedup_policy
        self._current: Transcript | None = None
        self._file: FileHandle | None = None
        self._dirty = False
        self._observers: list[Callable[[HistoryEvent], None]] = []

    @property
    def current(self) -> Transcript | None:
        return self._current

    @property
    def current_file(self) -> FileHandle | None:
        return self._file

    @property
    def has_unsaved_changes(self) -> bool:
        return self._dirty

    @property
    def settings(self) -> Settings:
        return self._settings

    # -- Observers --

    def subscribe(self, callback: Callable[[HistoryEvent], None]) -> Callable[[], None]:
        """Register a callback for history events. Returns an unsubscribe function."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self, kind: HistoryEventKind, path: str | None = None) -> None:
        event = HistoryEvent(
            kind=kind,
            transcript=self._current,
            path=path if path is not None else (self._file.path if self._file else None),
        )
        for callback in list(self._observers):
            try:
                callback(event)
            except Exception:
                logger.exception("History observer failed on %s event", kind)

    # -- Lifecycle --

    async def create_new(self, title: str | None = None) -> Transcript:
        """Start a new transcript with the configured defaults.

        With auto-save on, the backing file is created immediately and its
        name stem becomes the title, whatever ``title`` says.
        """
        await self._flush_before_switch()

        now = now_ms()
        provider_id = self._settings.default_provider or "default"
        provider = self._settings.provider_settings(provider_id)
        self._current = Transcript(
            date=now,
            last_modified=now,
            title=title or "New Chat",
            provider_id=provider_id,
            provider_name=provider.name if provider else None,
            provider_type=provider.type if provider else None,
            model=(provider.default_model if provider else None) or "default",
            temperature=DEFAULT_TEMPERATURE,
        )
        self._file = None
        self._dirty = False

        if self._settings.auto_save_enabled:
            try:
                await self._materialize(now)
            except PersistenceError:
                self._dirty = True
                raise

        self._notify("created")
        return self._current

    async def load(self, path: str) -> Transcript:
        """Load a history document.

        Raises MalformedDocumentError if it has no frontmatter block; the
        store is left empty in that case.
        """
        await self._flush_before_switch()
        self._current = None
        self._file = None
        self._dirty = False

        handle = FileHandle(path)
        try:
            text = await self._vault.cached_read(handle)
        except OSError as exc:
            raise PersistenceError("read", path) from exc

        header, body = split_document(text, path=path)
        fm = Frontmatter.from_header(header)

        now = now_ms()
        date = fm.date if fm.date is not None else now
        decoded = decode_messages(body, fallback_timestamp=date)
        if decoded.warnings:
            logger.warning("%d parse warning(s) while loading %s", len(decoded.warnings), path)

        provider_id = fm.provider or self._settings.default_provider or "default"
        provider = self._settings.provider_settings(provider_id)
        self._current = Transcript(
            date=date,
            last_modified=fm.last_modified if fm.last_modified is not None else date,
            title=fm.title or handle.basename,
            flare=fm.flare,
            provider_id=provider_id,
            provider_name=fm.provider_name or (provider.name if provider else None) or "default",
            provider_type=fm.provider_type or (provider.type if provider else None) or "default",
            model=fm.model or (provider.default_model if provider else None) or "default",
            temperature=fm.temperature if fm.temperature is not None else DEFAULT_TEMPERATURE,
            messages=decoded.messages,
        )
        self._file = handle
        self._notify("loaded")
        return self._current

    async def add_message(
        self,
        role: Role | str,
        content: str,
        *,
        timestamp: int | None = None,
        settings: GenerationSettings | dict | None = None,
    ) -> Message:
        """Append a message. Settings fields the caller leaves unset inherit
        the transcript's provider, model, temperature and flare."""
        if self._current is None:
            await self.create_new()
        assert self._current is not None

        merged = self._current.inherited_settings()
        if settings is not None:
            if isinstance(settings, dict):
                settings = GenerationSettings.model_validate(settings)
            merged.update(settings.model_dump(exclude_unset=True))

        message = Message(
            role=Role(role.lower()) if isinstance(role, str) else role,
            content=content,
            timestamp=timestamp if timestamp is not None else now_ms(),
            settings=GenerationSettings(**merged),
        )
        self._current.messages.append(message)
        self._current.touch(now_ms())
        self._dirty = True
        self._notify("message_added")

        if self._settings.auto_save_enabled:
            await self.save()
        return message

    async def save(self, force: bool = False, notify: bool = False) -> None:
        """Write the transcript to its backing document.

        Two writes: the frontmatter through the vault's structured update,
        then the region after the closing delimiter. The dirty flag is only
        cleared once both have succeeded.
        """
        if self._current is None or (not self._dirty and not force):
            return

        if self._file is None:
            if not (self._settings.auto_save_enabled or force):
                return
            await self._materialize(now_ms())
        assert self._file is not None

        transcript = self._current
        transcript.messages = dedupe_messages(
            transcript.messages, self._dedup_policy, prefer_latest=force
        )

        handle = self._file
        try:
            await self._vault.update_frontmatter(handle, lambda fm: fm.apply(transcript))
            header, _ = split_document(await self._vault.read(handle), path=handle.path)
            await self._vault.modify(handle, join_document(header, encode_body(transcript.messages)))
        except (OSError, MalformedDocumentError) as exc:
            raise PersistenceError("save", handle.path) from exc

        self._dirty = False
        if notify:
            self._notify("saved")

    async def clear_history(self) -> None:
        """Drop all messages. Title and provider fields stay as they are."""
        if self._current is None:
            return
        self._current.messages = []
        self._current.touch(now_ms())
        self._dirty = True
        self._notify("cleared")

    async def cleanup(self) -> None:
        """Flush pending changes. Call once when the owning session shuts down."""
        if self._dirty and self._settings.auto_save_enabled:
            await self.save()

    async def retitle(self, new_title: str) -> FileHandle:
        """Set a new title and rename the backing file to match.

        Phase one force-saves the new title into the frontmatter; phase two
        renames the file. If either fails the old title is restored and
        force-saved before the error propagates, so the file name and the
        title on disk always agree.
        """
        if self._current is None or self._file is None:
            raise HistoryError("No active chat to retitle", operation="rename")

        old_title = self._current.title
        old_file = self._file
        new_path = renamed_path(old_file, old_title, new_title)

        self._current.title = new_title
        self._dirty = True
        try:
            await self.save(force=True)
            if new_path != old_file.path:
                self._file = await self._vault.rename(old_file, new_path)
        except (OSError, HistoryError) as exc:
            logger.error("Retitle of %s failed, restoring %r", old_file.path, old_title)
            self._file = old_file
            self._current.title = old_title
            self._dirty = True
            await self.save(force=True)
            if isinstance(exc, HistoryError):
                raise
            raise RenameError(old_file.path, new_path) from exc

        self._notify("renamed")
        return self._file

    # -- History folder --

    async def list_history(self, query: str | None = None) -> list[HistoryEntry]:
        """Markdown files and non-empty folders under the history folder."""
        folder = self._settings.history_folder
        try:
            if not await self._vault.exists(folder):
                await self._vault.create_folder(folder)
                return []
            entries = await self._build_tree(folder)
        except OSError as exc:
            raise PersistenceError("list", folder) from exc

        if query:
            entries = _filter_entries(entries, query.lower())
        return entries

    async def delete_history(self, path: str) -> None:
        """Delete a history file. Deleting the open transcript discards it unsaved."""
        try:
            await self._vault.delete(FileHandle(path))
        except OSError as exc:
            raise PersistenceError("delete", path) from exc

        if self._file is not None and self._file.path == path:
            self._current = None
            self._file = None
            self._dirty = False
        self._notify("deleted", path)

    # -- Internals --

    async def _flush_before_switch(self) -> None:
        """Best-effort save before the current transcript is replaced. Not retried."""
        if not self._dirty or not self._settings.auto_save_enabled:
            return
        try:
            await self.save()
        except HistoryError:
            logger.exception("Could not save %s before switching transcripts",
                             self._file.path if self._file else "unsaved chat")

    async def _materialize(self, now: int) -> None:
        """Create the backing file under a fresh ``chat-<date>`` name."""
        assert self._current is not None
        folder = self._settings.history_folder
        stem = f"chat-{format_file_date(now, self._settings.date_format)}"
        path = None
        try:
            if not await self._vault.exists(folder):
                await self._vault.create_folder(folder)
            path = await unique_path(self._vault, folder, stem)
            self._current.title = FileHandle(path).basename
            messages = dedupe_messages(self._current.messages, self._dedup_policy, prefer_latest=False)
            text = encode_transcript(self._current) + encode_body(messages)
            self._file = await self._vault.create(path, text)
        except OSError as exc:
            raise PersistenceError("create", path or folder) from exc

    async def _build_tree(self, folder: str) -> list[HistoryEntry]:
        listing = await self._vault.list(folder)
        files = [
            HistoryEntry(type="file", name=FileHandle(p).basename, path=p)
            for p in listing.files
            if p.endswith(".md")
        ]
        folders = []
        for p in listing.folders:
            children = await self._build_tree(p)
            if children:
                folders.append(HistoryEntry(type="folder", name=FileHandle(p).name, path=p, children=children))

        files.sort(key=lambda e: e.name.casefold())
        folders.sort(key=lambda e: e.name.casefold())
        return files + folders


def _filter_entries(entries: list[HistoryEntry], query: str) -> list[HistoryEntry]:
    filtered: list[HistoryEntry] = []
    for entry in entries:
        if entry.type == "folder":
            children = _filter_entries(entry.children, query)
            if children or query in entry.name.lower():
                filtered.append(HistoryEntry(type="folder", name=entry.name, path=entry.path, children=children))
        elif query in entry.name.lower():
            filtered.append(entry)
    return filtered
