"""
Session store tests.

These tests verify:
- Session lifecycle (create, switch, delete, rename, clear)
- Message append and in-place streaming updates
- Title derivation from the first user message
- Change notification and listener isolation
- Persistence, load-time repair and legacy migration
"""

import json

import pytest

from weather_chat import codec
from weather_chat.config import ChatConfig
from weather_chat.errors import StorageError
from weather_chat.storage import JsonFileStorage, MemoryStorage
from weather_chat.store import (
    CURRENT_SESSION_KEY,
    LEGACY_SELECTED_KEY,
    LEGACY_THREADS_KEY,
    METADATA_KEY,
    SESSIONS_KEY,
    SessionStore,
)
from weather_chat.types import Message


def _counter(store):
    calls = []
    store.subscribe(lambda: calls.append(1))
    return calls


def _assert_consistent(store):
    """Every session has metadata whose count matches its messages."""
    for entry in store.get_all_sessions():
        meta = store.get_session_metadata(entry.id)
        assert meta is not None
        assert meta.message_count == len(entry.messages)
    current = store.current_session_id
    assert current is None or current in store


# =============================================================================
# Lifecycle
# =============================================================================


class TestCreateSession:
    def test_new_store_is_empty(self, store):
        assert len(store) == 0
        assert store.current_session_id is None
        assert store.get_current_messages() == []
        assert store.get_all_sessions() == []

    def test_create_makes_current(self, store):
        session_id = store.create_session()
        assert store.current_session_id == session_id
        meta = store.get_session_metadata(session_id)
        assert meta.title == "New Chat"
        assert meta.message_count == 0
        assert meta.created_at == meta.last_activity

    def test_create_with_title(self, store):
        session_id = store.create_session("Trip planning")
        assert store.get_session_metadata(session_id).title == "Trip planning"

    def test_ids_are_unique(self, store):
        ids = {store.create_session() for _ in range(5)}
        assert len(ids) == 5

    def test_create_notifies_once(self, store):
        calls = _counter(store)
        store.create_session()
        assert len(calls) == 1

    def test_create_persists(self, store, storage):
        session_id = store.create_session()
        assert json.loads(storage.get_item(SESSIONS_KEY)) == {session_id: []}
        assert session_id in json.loads(storage.get_item(METADATA_KEY))
        assert storage.get_item(CURRENT_SESSION_KEY) == session_id

    def test_injected_id_factory(self, storage):
        ids = iter(["first", "second"])
        store = SessionStore(storage, id_factory=lambda: next(ids))
        assert store.create_session() == "first"
        assert store.create_session() == "second"


class TestSwitchSession:
    def test_switch(self, store):
        first = store.create_session()
        store.create_session()
        store.switch_to_session(first)
        assert store.current_session_id == first

    def test_switch_persists_and_notifies(self, store, storage):
        first = store.create_session()
        store.create_session()
        calls = _counter(store)
        store.switch_to_session(first)
        assert storage.get_item(CURRENT_SESSION_KEY) == first
        assert len(calls) == 1

    def test_unknown_id_is_ignored(self, store):
        current = store.create_session()
        calls = _counter(store)
        store.switch_to_session("does-not-exist")
        assert store.current_session_id == current
        assert calls == []


class TestDeleteSession:
    def test_delete_current_repoints_to_remaining(self, store):
        a = store.create_session()
        b = store.create_session()
        store.delete_session(b)
        assert store.current_session_id == a
        assert b not in store
        assert store.get_session_metadata(b) is None

    def test_delete_last_session_clears_pointer(self, store, storage):
        only = store.create_session()
        store.delete_session(only)
        assert store.current_session_id is None
        assert storage.get_item(CURRENT_SESSION_KEY) is None

    def test_delete_other_keeps_current(self, store):
        a = store.create_session()
        b = store.create_session()
        store.delete_session(a)
        assert store.current_session_id == b

    def test_delete_unknown_is_noop(self, store):
        store.create_session()
        calls = _counter(store)
        store.delete_session("nope")
        assert len(store) == 1
        assert calls == []


class TestRenameSession:
    def test_rename(self, store):
        session_id = store.create_session()
        store.rename_session(session_id, "  Ski trip  ")
        assert store.get_session_metadata(session_id).title == "Ski trip"

    def test_blank_title_rejected(self, store):
        session_id = store.create_session()
        with pytest.raises(ValueError):
            store.rename_session(session_id, "   ")

    def test_renamed_session_keeps_title_on_first_message(self, store):
        session_id = store.create_session()
        store.rename_session(session_id, "Ski trip")
        store.add_message_to_current_session(Message.user("Weather in Paris today?"))
        assert store.get_session_metadata(session_id).title == "Ski trip"


class TestClearSession:
    def test_clear_keeps_id_and_title(self, store):
        session_id = store.create_session()
        store.add_message_to_current_session(Message.user("Weather in Paris today?"))
        store.add_message_to_current_session(Message.assistant("Sunny"))
        store.clear_current_session()
        assert store.current_session_id == session_id
        assert store.get_current_messages() == []
        meta = store.get_session_metadata(session_id)
        assert meta.message_count == 0
        assert meta.title == "Weather in Paris"

    def test_clear_without_session_is_noop(self, store):
        calls = _counter(store)
        store.clear_current_session()
        assert calls == []


# =============================================================================
# Messages
# =============================================================================


class TestAddMessage:
    def test_implicit_session_creation(self, store):
        store.add_message_to_current_session(Message.user("hi"))
        assert len(store) == 1
        assert store.current_session_id is not None
        assert [m.message for m in store.get_current_messages()] == ["hi"]

    def test_implicit_creation_notifies_once(self, store):
        calls = _counter(store)
        store.add_message_to_current_session(Message.user("hi"))
        assert len(calls) == 1

    def test_first_user_message_sets_title(self, store):
        session_id = store.create_session()
        store.add_message_to_current_session(Message.user("Weather in Paris today?"))
        store.add_message_to_current_session(Message.user("And in Rome?"))
        assert store.get_session_metadata(session_id).title == "Weather in Paris"

    def test_assistant_message_does_not_set_title(self, store):
        session_id = store.create_session()
        store.add_message_to_current_session(Message.assistant("Hello"))
        assert store.get_session_metadata(session_id).title == "New Chat"

    def test_message_count_tracks_messages(self, store):
        store.add_message_to_current_session(Message.user("one"))
        store.add_message_to_current_session(Message.assistant("two"))
        store.add_message_to_current_session(Message.user("three"))
        _assert_consistent(store)
        meta = store.get_session_metadata(store.current_session_id)
        assert meta.message_count == 3

    def test_last_activity_advances(self, store):
        session_id = store.create_session()
        before = store.get_session_metadata(session_id).last_activity
        store.add_message_to_current_session(Message.user("hi"))
        assert store.get_session_metadata(session_id).last_activity > before

    def test_current_messages_is_a_copy(self, store):
        store.add_message_to_current_session(Message.user("hi"))
        messages = store.get_current_messages()
        messages.clear()
        assert len(store.get_current_messages()) == 1


class TestUpdateLastMessage:
    def test_replaces_in_place(self, store):
        store.add_message_to_current_session(Message.user("hi"))
        store.add_message_to_current_session(Message.assistant())
        store.update_last_message("Hel")
        store.update_last_message("Hello there")
        messages = store.get_current_messages()
        assert len(messages) == 2
        assert messages[-1].message == "Hello there"
        assert messages[-1].is_user is False

    def test_keeps_timestamp(self, store):
        store.add_message_to_current_session(Message.assistant())
        original = store.get_current_messages()[-1].timestamp
        store.update_last_message("text")
        assert store.get_current_messages()[-1].timestamp == original

    def test_noop_without_current_session(self, store):
        calls = _counter(store)
        store.update_last_message("ignored")
        assert len(store) == 0
        assert calls == []

    def test_noop_on_empty_session(self, store):
        store.create_session()
        calls = _counter(store)
        store.update_last_message("ignored")
        assert store.get_current_messages() == []
        assert calls == []

    def test_count_unchanged(self, store):
        store.add_message_to_current_session(Message.assistant())
        store.update_last_message("streamed")
        _assert_consistent(store)


# =============================================================================
# Listing
# =============================================================================


class TestGetAllSessions:
    def test_sorted_by_last_activity(self, store):
        a = store.create_session()
        b = store.create_session()
        assert [e.id for e in store.get_all_sessions()] == [b, a]

        store.switch_to_session(a)
        store.add_message_to_current_session(Message.user("bump"))
        assert [e.id for e in store.get_all_sessions()] == [a, b]

    def test_session_without_metadata_is_untitled(self, clock):
        storage = MemoryStorage({
            SESSIONS_KEY: json.dumps({"orphan": [
                {"isUser": True, "message": "hi", "timestamp": "2024-01-01T00:00:00Z"},
            ]}),
        })
        store = SessionStore(storage, clock=clock)
        [entry] = store.get_all_sessions()
        assert entry.metadata.title == "Untitled Chat"
        assert entry.metadata.message_count == 1
        assert store.get_session_metadata("orphan") is None

    def test_entries_are_copies(self, store):
        session_id = store.create_session()
        [entry] = store.get_all_sessions()
        entry.metadata.title = "changed"
        assert store.get_session_metadata(session_id).title == "New Chat"


# =============================================================================
# Listeners
# =============================================================================


class TestListeners:
    def test_unsubscribe(self, store):
        calls = []
        unsubscribe = store.subscribe(lambda: calls.append(1))
        store.create_session()
        unsubscribe()
        unsubscribe()
        store.create_session()
        assert len(calls) == 1

    def test_listener_sees_committed_state(self, store):
        seen = []
        store.subscribe(lambda: seen.append(len(store.get_current_messages())))
        store.add_message_to_current_session(Message.user("hi"))
        assert seen == [1]

    def test_failing_listener_isolated(self, store, caplog):
        calls = []

        def broken():
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(lambda: calls.append(1))
        store.add_message_to_current_session(Message.user("hi"))

        assert calls == [1]
        assert len(store.get_current_messages()) == 1
        assert "boom" in caplog.text


# =============================================================================
# Persistence
# =============================================================================


class FailingStorage(MemoryStorage):
    def set_item(self, key, value):
        raise StorageError("disk full")


class TestPersistence:
    def test_reload_restores_everything(self, storage, clock):
        store = SessionStore(storage, clock=clock)
        a = store.create_session()
        store.add_message_to_current_session(Message.user("Weather in Paris today?"))
        store.add_message_to_current_session(Message.assistant("Sunny, 24C"))
        b = store.create_session()
        store.switch_to_session(a)

        reloaded = SessionStore(storage)
        assert reloaded.current_session_id == a
        assert b in reloaded
        assert [m.message for m in reloaded.get_current_messages()] == [
            "Weather in Paris today?",
            "Sunny, 24C",
        ]
        assert reloaded.get_session_metadata(a).title == "Weather in Paris"

    def test_file_storage_round_trip(self, tmp_path):
        path = tmp_path / "storage.json"
        store = SessionStore(JsonFileStorage(path))
        store.add_message_to_current_session(Message.user("Zürich forecast ☀"))

        reloaded = SessionStore(JsonFileStorage(path))
        assert reloaded.get_current_messages()[0].message == "Zürich forecast ☀"

    def test_write_failure_keeps_mutation(self, caplog):
        store = SessionStore(FailingStorage())
        calls = _counter(store)
        store.add_message_to_current_session(Message.user("hi"))
        assert len(store.get_current_messages()) == 1
        assert len(calls) == 1
        assert "disk full" in caplog.text

    def test_corrupt_sessions_start_empty(self):
        storage = MemoryStorage({
            SESSIONS_KEY: "not json",
            CURRENT_SESSION_KEY: "s1",
        })
        store = SessionStore(storage)
        assert len(store) == 0
        assert store.current_session_id is None

    def test_corrupt_metadata_keeps_sessions(self):
        storage = MemoryStorage({
            SESSIONS_KEY: json.dumps({"s1": []}),
            METADATA_KEY: "{broken",
            CURRENT_SESSION_KEY: "s1",
        })
        store = SessionStore(storage)
        assert "s1" in store
        assert store.get_all_sessions()[0].metadata.title == "Untitled Chat"
        # a current id needs both records
        assert store.current_session_id is None

    def test_metadata_not_an_object(self):
        storage = MemoryStorage({
            SESSIONS_KEY: json.dumps({"s1": []}),
            METADATA_KEY: json.dumps(["s1"]),
        })
        store = SessionStore(storage)
        assert "s1" in store
        assert store.get_session_metadata("s1") is None


class TestSessionsWithoutMetadata:
    """Sessions loaded without a metadata record stay usable."""

    @pytest.fixture
    def orphan_store(self, clock):
        storage = MemoryStorage({
            SESSIONS_KEY: json.dumps({"orphan": [
                {"isUser": True, "message": "hi", "timestamp": "2024-01-01T00:00:00Z"},
            ]}),
        })
        return SessionStore(storage, clock=clock)

    def test_switch_stores_untitled_metadata(self, orphan_store):
        orphan_store.switch_to_session("orphan")
        assert orphan_store.current_session_id == "orphan"
        meta = orphan_store.get_session_metadata("orphan")
        assert meta.title == "Untitled Chat"
        assert meta.message_count == 1

    def test_add_message_after_switch(self, orphan_store):
        orphan_store.switch_to_session("orphan")
        orphan_store.add_message_to_current_session(Message.user("Weather in Oslo?"))
        assert len(orphan_store.get_current_messages()) == 2
        assert orphan_store.get_session_metadata("orphan").message_count == 2

    def test_clear_after_switch(self, orphan_store):
        orphan_store.switch_to_session("orphan")
        orphan_store.clear_current_session()
        assert orphan_store.get_current_messages() == []
        assert orphan_store.get_session_metadata("orphan").message_count == 0

    def test_update_last_message_after_switch(self, orphan_store):
        orphan_store.switch_to_session("orphan")
        orphan_store.update_last_message("hello")
        assert orphan_store.get_current_messages()[-1].message == "hello"

    def test_delete_falls_back_to_session_without_metadata(self, orphan_store):
        other = orphan_store.create_session()
        orphan_store.delete_session(other)
        assert orphan_store.current_session_id == "orphan"
        orphan_store.add_message_to_current_session(Message.assistant("Sunny"))
        assert orphan_store.get_session_metadata("orphan").message_count == 2

    def test_rename_stores_metadata(self, orphan_store):
        orphan_store.rename_session("orphan", "Old chat")
        assert orphan_store.get_session_metadata("orphan").title == "Old chat"
        assert orphan_store.current_session_id is None

    def test_message_count_repaired(self):
        storage = MemoryStorage({
            SESSIONS_KEY: json.dumps({"s1": [
                {"isUser": True, "message": "hi", "timestamp": "2024-01-01T00:00:00Z"},
            ]}),
            METADATA_KEY: json.dumps({
                "s1": {"title": "hi", "createdAt": "2024-01-01T00:00:00Z",
                       "lastActivity": "2024-01-01T00:00:00Z", "messageCount": 7},
                "ghost": {"title": "gone", "createdAt": "2024-01-01T00:00:00Z",
                          "lastActivity": "2024-01-01T00:00:00Z", "messageCount": 0},
            }),
            CURRENT_SESSION_KEY: "s1",
        })
        store = SessionStore(storage)
        assert store.get_session_metadata("s1").message_count == 1
        assert store.get_session_metadata("ghost") is None
        assert store.current_session_id == "s1"

    def test_dangling_current_id_dropped(self):
        storage = MemoryStorage({
            SESSIONS_KEY: json.dumps({}),
            CURRENT_SESSION_KEY: "missing",
        })
        assert SessionStore(storage).current_session_id is None


class TestLegacyMigration:
    def _legacy_storage(self):
        threads = {
            "t1": [
                {"role": "user", "content": "Weather in Paris today?"},
                {"role": "assistant", "content": "Sunny"},
            ],
            "t2": [],
        }
        return MemoryStorage({
            LEGACY_THREADS_KEY: codec.encode(threads),
            LEGACY_SELECTED_KEY: codec.encode("t1"),
        })

    def test_threads_imported(self):
        storage = self._legacy_storage()
        store = SessionStore(storage)
        assert store.current_session_id == "t1"
        messages = store.get_current_messages()
        assert [(m.is_user, m.message) for m in messages] == [(True, "Weather in Paris today?"), (False, "Sunny")]
        assert store.get_session_metadata("t1").title == "Weather in Paris"
        assert store.get_session_metadata("t2").title == "New Chat"
        _assert_consistent(store)

    def test_legacy_keys_replaced_by_live_keys(self):
        storage = self._legacy_storage()
        SessionStore(storage)
        assert storage.get_item(LEGACY_THREADS_KEY) is None
        assert storage.get_item(LEGACY_SELECTED_KEY) is None
        assert "t1" in json.loads(storage.get_item(SESSIONS_KEY))

    def test_undecodable_legacy_data_ignored(self):
        storage = MemoryStorage({LEGACY_THREADS_KEY: "garbage"})
        store = SessionStore(storage)
        assert len(store) == 0

    def test_live_data_wins(self):
        storage = self._legacy_storage()
        storage.set_item(SESSIONS_KEY, json.dumps({"live": []}))
        store = SessionStore(storage)
        assert "live" in store
        assert "t1" not in store


class TestConstruction:
    def test_from_config_uses_storage_path(self, tmp_path):
        path = tmp_path / "history.json"
        store = SessionStore.from_config(ChatConfig(storage_path=str(path)))
        session_id = store.create_session("Trip")

        reloaded = SessionStore(JsonFileStorage(path))
        assert reloaded.current_session_id == session_id

    def test_get_session_messages_of_other_session(self, store):
        store.add_message_to_current_session(Message.user("Weather in Rome?"))
        first = store.current_session_id
        store.create_session()
        assert [m.message for m in store.get_session_messages(first)] == ["Weather in Rome?"]
        assert store.get_session_messages("missing") == []
