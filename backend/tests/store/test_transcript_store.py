"""Tests for TranscriptStore: lifecycle, saving, deduplication and the history folder."""

import pytest

from flarechat.history.blocks import encode_body
from flarechat.history.errors import MalformedDocumentError, PersistenceError
from flarechat.history.naming import format_file_date
from flarechat.history.store import (
    TranscriptStore,
    dedupe_messages,
    renamed_path,
)
from flarechat.models import DedupPolicy, Role
from flarechat.vault.base import FileHandle
from tests.fixtures import BASE_TS, FailingModifyVault, make_message


@pytest.fixture
def frozen_now(monkeypatch):
    monkeypatch.setattr("flarechat.history.store.now_ms", lambda: BASE_TS)
    return BASE_TS


@pytest.fixture
def stem(settings):
    return f"chat-{format_file_date(BASE_TS, settings.date_format)}"


class TestCreateNew:
    async def test_auto_save_materializes_file(self, store, vault, frozen_now, stem):
        transcript = await store.create_new()
        assert store.current_file == FileHandle(f"history/{stem}.md")
        assert transcript.title == stem
        assert transcript.provider_id == "claude"
        assert transcript.provider_name == "Claude"
        assert transcript.model == "claude-sonnet-4-5"
        assert transcript.temperature == 0.7
        text = await vault.read(store.current_file)
        assert text.startswith("---\ndate: 2024-06-10 06:13:20\n")
        assert f'title: "{stem}"' in text
        assert not store.has_unsaved_changes

    async def test_name_collisions_get_numeric_suffix(self, store, frozen_now, stem):
        paths = []
        for _ in range(3):
            await store.create_new()
            paths.append(store.current_file.path)
        assert paths == [
            f"history/{stem}.md",
            f"history/{stem}-1.md",
            f"history/{stem}-2.md",
        ]
        assert store.current.title == f"{stem}-2"

    async def test_without_auto_save_nothing_is_written(self, vault, manual_settings, tmp_path):
        store = TranscriptStore(vault, manual_settings)
        transcript = await store.create_new("Draft")
        assert transcript.title == "Draft"
        assert store.current_file is None
        assert not (tmp_path / "history").exists()

    async def test_unknown_default_provider_falls_back(self, vault, settings):
        store = TranscriptStore(vault, settings.model_copy(update={"default_provider": ""}))
        transcript = await store.create_new()
        assert transcript.provider_id == "default"
        assert transcript.model == "default"


class TestAddMessage:
    async def test_inherits_transcript_settings(self, store):
        await store.create_new()
        message = await store.add_message("user", "hi", settings={"model": "claude-haiku-4-5"})
        assert message.role is Role.USER
        assert message.settings.model == "claude-haiku-4-5"
        assert message.settings.provider_id == "claude"
        assert message.settings.provider_type == "anthropic"
        assert message.settings.temperature == 0.7

    async def test_explicit_settings_win(self, store):
        await store.create_new()
        message = await store.add_message(
            Role.ASSISTANT, "ok", settings={"provider": "gpt", "temperature": 0.0}
        )
        assert message.settings.provider_id == "gpt"
        assert message.settings.temperature == 0.0

    async def test_auto_saves(self, store, vault):
        await store.create_new()
        await store.add_message("user", "persisted", timestamp=BASE_TS)
        assert not store.has_unsaved_changes
        assert "persisted" in await vault.read(store.current_file)

    async def test_creates_transcript_when_none(self, store):
        await store.add_message("user", "hi")
        assert store.current is not None
        assert len(store.current.messages) == 1

    async def test_bumps_last_modified(self, store):
        transcript = await store.create_new()
        transcript.last_modified = transcript.date
        await store.add_message("user", "hi")
        assert transcript.last_modified >= transcript.date


class TestSave:
    async def test_round_trip_through_load(self, store, vault, settings):
        await store.create_new()
        await store.add_message("system", "Be brief.", timestamp=BASE_TS)
        await store.add_message("user", "Question", timestamp=BASE_TS + 1)
        await store.add_message("assistant", "Answer\n\n---\n\nwith a rule", timestamp=BASE_TS + 2)
        saved = store.current.model_copy(deep=True)

        loaded = await TranscriptStore(vault, settings).load(store.current_file.path)
        assert loaded.messages == saved.messages
        assert loaded.title == saved.title
        assert loaded.provider_id == "claude"

    async def test_forced_saves_are_idempotent(self, store, vault):
        await store.create_new()
        await store.add_message("user", "hi", timestamp=BASE_TS)
        await store.save(force=True)
        first = await vault.read(store.current_file)
        await store.save(force=True)
        assert await vault.read(store.current_file) == first

    async def test_clean_save_is_noop(self, store, vault):
        await store.create_new()
        await vault.modify(store.current_file, "---\n---\nexternal")
        await store.save()
        assert await vault.read(store.current_file) == "---\n---\nexternal"

    async def test_preserves_foreign_frontmatter_keys(self, store, vault):
        await store.create_new()
        text = await vault.read(store.current_file)
        await vault.modify(store.current_file, text.replace("---\n\n", "tags: [x]\n---\n\n", 1))
        await store.add_message("user", "hi")
        assert "tags: [x]\n" in await vault.read(store.current_file)

    async def test_preserves_multi_line_foreign_keys(self, store, vault):
        await store.create_new()
        text = await vault.read(store.current_file)
        block = "tags:\n  - recipes\n  - bread\naliases: []\n"
        await vault.modify(store.current_file, text.replace("---\n\n", block + "---\n\n", 1))

        await store.add_message("user", "hi")
        await store.save(force=True)

        after = await vault.read(store.current_file)
        assert block + "---\n" in after
        assert after.count("recipes") == 1

    async def test_broken_header_on_disk_is_a_save_failure(self, store, vault):
        await store.create_new()
        await vault.modify(store.current_file, "header removed by hand\n")

        with pytest.raises(PersistenceError) as exc_info:
            await store.add_message("user", "hi")

        assert exc_info.value.operation == "save"
        assert isinstance(exc_info.value.__cause__, MalformedDocumentError)
        assert store.has_unsaved_changes

    async def test_manual_mode_needs_force(self, vault, manual_settings):
        store = TranscriptStore(vault, manual_settings)
        await store.create_new()
        await store.add_message("user", "hi")
        await store.save()
        assert store.current_file is None
        assert store.has_unsaved_changes

        await store.save(force=True)
        assert store.current_file is not None
        assert not store.has_unsaved_changes
        assert "hi" in await vault.read(store.current_file)

    async def test_failed_write_keeps_dirty_flag(self, tmp_path, settings):
        vault = FailingModifyVault(tmp_path)
        store = TranscriptStore(vault, settings)
        await store.create_new()

        with pytest.raises(PersistenceError) as exc_info:
            await store.add_message("user", "hi")
        assert exc_info.value.operation == "save"
        assert exc_info.value.path == store.current_file.path
        assert store.has_unsaved_changes

        vault.fail = False
        await store.save()
        assert not store.has_unsaved_changes
        assert "hi" in await vault.read(store.current_file)

    async def test_notify_emits_saved(self, store):
        await store.create_new()
        events = []
        store.subscribe(lambda e: events.append(e.kind))
        await store.save(force=True, notify=True)
        assert events == ["saved"]


class TestDeduplication:
    def test_content_length_policy_keeps_first(self):
        a = make_message(content="abc", timestamp=BASE_TS)
        b = make_message(content="xyz", timestamp=BASE_TS)
        c = make_message(content="other", timestamp=BASE_TS + 1)
        result = dedupe_messages([a, c, b], DedupPolicy.CONTENT_LENGTH, prefer_latest=False)
        assert [m.content for m in result] == ["abc", "other"]

    def test_prefer_latest_keeps_position_of_first(self):
        a = make_message(content="abc", timestamp=BASE_TS)
        b = make_message(content="xyz", timestamp=BASE_TS)
        c = make_message(content="other", timestamp=BASE_TS + 1)
        result = dedupe_messages([a, c, b], DedupPolicy.CONTENT_LENGTH, prefer_latest=True)
        assert [m.content for m in result] == ["xyz", "other"]

    def test_exact_content_policy_keeps_both(self):
        a = make_message(content="abc", timestamp=BASE_TS)
        b = make_message(content="xyz", timestamp=BASE_TS)
        assert len(dedupe_messages([a, b], DedupPolicy.EXACT_CONTENT, prefer_latest=False)) == 2

    def test_role_is_part_of_key(self):
        a = make_message(Role.USER, "abc", BASE_TS)
        b = make_message(Role.ASSISTANT, "abc", BASE_TS)
        assert len(dedupe_messages([a, b], DedupPolicy.EXACT_CONTENT, prefer_latest=False)) == 2

    async def test_duplicate_add_collapses_on_save(self, store, vault):
        await store.create_new()
        await store.add_message("user", "abc", timestamp=BASE_TS)
        await store.add_message("user", "xyz", timestamp=BASE_TS)
        assert [m.content for m in store.current.messages] == ["abc"]
        assert "xyz" not in await vault.read(store.current_file)

    async def test_forced_save_takes_latest_duplicate(self, store, vault):
        await store.create_new()
        await store.add_message("user", "abc", timestamp=BASE_TS)
        store.current.messages.append(make_message(Role.USER, "xyz", BASE_TS))
        await store.save(force=True)
        assert [m.content for m in store.current.messages] == ["xyz"]
        assert "abc" not in await vault.read(store.current_file)


class TestLoad:
    async def test_malformed_document_resets_store(self, store, vault):
        await store.create_new()
        await vault.create("history/broken.md", "## User\n\nno header\n")
        with pytest.raises(MalformedDocumentError):
            await store.load("history/broken.md")
        assert store.current is None
        assert store.current_file is None

    async def test_missing_file_raises_persistence_error(self, store):
        with pytest.raises(PersistenceError) as exc_info:
            await store.load("history/missing.md")
        assert exc_info.value.operation == "read"

    async def test_legacy_document(self, store, vault):
        await vault.create(
            "history/old.md",
            f"---\ndate: {BASE_TS}\ntitle: Old chat\n---\n\n"
            "## User\n\nhello\n\n"
            '## Assistant\n\nhi\n<!-- settings: {"provider":"gpt","model":"gpt-4o","temperature":1} -->\n',
        )
        transcript = await store.load("history/old.md")
        assert transcript.date == BASE_TS
        assert transcript.last_modified == BASE_TS
        assert transcript.title == "Old chat"
        assert transcript.provider_id == "claude"
        assert transcript.provider_name == "Claude"
        assert [m.timestamp for m in transcript.messages] == [BASE_TS, BASE_TS + 1]
        assert transcript.messages[0].settings.provider_id == "default"
        assert transcript.messages[1].settings.model == "gpt-4o"

    async def test_missing_title_uses_file_name(self, store, vault):
        await vault.create("history/untitled.md", "---\n---\n")
        assert (await store.load("history/untitled.md")).title == "untitled"

    async def test_flushes_dirty_transcript_first(self, store, vault):
        await store.create_new()
        first = store.current_file
        await store.add_message("user", "soon to be cleared")
        await store.clear_history()
        assert store.has_unsaved_changes

        await vault.create("history/other.md", "---\ntitle: other\n---\n")
        await store.load("history/other.md")
        assert "soon to be cleared" not in await vault.read(first)


class TestClearAndCleanup:
    async def test_clear_keeps_metadata(self, store, vault):
        await store.create_new()
        await store.add_message("user", "hi")
        title = store.current.title
        await store.clear_history()
        assert store.current.messages == []
        assert store.current.title == title
        assert store.has_unsaved_changes

        await store.cleanup()
        assert not store.has_unsaved_changes
        text = await vault.read(store.current_file)
        assert text.endswith("---\n\n")

    async def test_cleanup_without_auto_save_does_not_write(self, vault, manual_settings):
        store = TranscriptStore(vault, manual_settings)
        await store.create_new()
        await store.add_message("user", "hi")
        await store.cleanup()
        assert store.current_file is None
        assert store.has_unsaved_changes


class TestObservers:
    async def test_event_sequence(self, store):
        kinds = []
        store.subscribe(lambda e: kinds.append(e.kind))
        await store.create_new()
        await store.add_message("user", "hi")
        await store.clear_history()
        assert kinds == ["created", "message_added", "cleared"]

    async def test_event_carries_path(self, store):
        events = []
        store.subscribe(events.append)
        await store.create_new()
        assert events[0].path == store.current_file.path
        assert events[0].transcript is store.current

    async def test_unsubscribe(self, store):
        kinds = []
        unsubscribe = store.subscribe(lambda e: kinds.append(e.kind))
        unsubscribe()
        await store.create_new()
        assert kinds == []

    async def test_failing_observer_does_not_block_others(self, store):
        def boom(event):
            raise RuntimeError("observer bug")

        kinds = []
        store.subscribe(boom)
        store.subscribe(lambda e: kinds.append(e.kind))
        await store.create_new()
        assert kinds == ["created"]


class TestHistoryFolder:
    async def test_missing_folder_is_created(self, store, tmp_path):
        assert await store.list_history() == []
        assert (tmp_path / "history").is_dir()

    async def test_tree_listing(self, store, vault):
        await vault.create("history/b.md", "")
        await vault.create("history/A.md", "")
        await vault.create("history/notes.txt", "")
        await vault.create("history/sub/c.md", "")
        await vault.create_folder("history/empty")

        entries = await store.list_history()
        assert [(e.type, e.name) for e in entries] == [
            ("file", "A"),
            ("file", "b"),
            ("folder", "sub"),
        ]
        assert entries[2].children[0].path == "history/sub/c.md"

    async def test_search_keeps_matching_branches(self, store, vault):
        await vault.create("history/alpha.md", "")
        await vault.create("history/sub/recipe.md", "")
        await vault.create("history/sub/other.md", "")

        entries = await store.list_history("RECIPE")
        assert len(entries) == 1
        assert entries[0].name == "sub"
        assert [c.name for c in entries[0].children] == ["recipe"]

    async def test_delete_open_transcript(self, store, vault):
        await store.create_new()
        path = store.current_file.path
        kinds = []
        store.subscribe(lambda e: kinds.append((e.kind, e.path)))
        await store.delete_history(path)
        assert not await vault.exists(path)
        assert store.current is None
        assert kinds == [("deleted", path)]

    async def test_delete_missing_raises(self, store):
        with pytest.raises(PersistenceError) as exc_info:
            await store.delete_history("history/none.md")
        assert exc_info.value.operation == "delete"


class TestRenamedPath:
    def test_replaces_title_in_name(self):
        assert renamed_path(FileHandle("h/chat-06-10-2024.md"), "chat-06-10-2024", "chat-Recipes") == "h/chat-Recipes.md"

    def test_name_without_title_gets_new_name(self):
        assert renamed_path(FileHandle("h/something.md"), "Other", "chat-New") == "h/chat-New.md"


def test_encode_body_of_empty_transcript():
    assert encode_body([]) == "\n"
