"""
Tests for session stores
"""

import threading
from unittest.mock import MagicMock

import pytest

from quizguard.services.session_store import InMemorySessionStore, SupabaseSessionStore
from quizguard.services.violation_recorder import ViolationRecorder
from quizguard.utils.exceptions import SessionConflictError, SessionNotFoundError


def tab_change(session):
    updated = ViolationRecorder.record_tab_change(session)
    return updated, updated


class TestInMemorySessionStore:

    def test_create_and_get_return_snapshots(self, make_session):
        store = InMemorySessionStore()
        created = store.create(make_session())

        fetched = store.get(created.id)
        assert fetched == created
        assert fetched is not created

    def test_mutate_bumps_version(self, make_session):
        store = InMemorySessionStore()
        session = store.create(make_session())

        store.mutate(session.id, tab_change)
        store.mutate(session.id, tab_change)

        stored = store.get(session.id)
        assert stored.tab_change_count == 2
        assert stored.version == 2

    def test_unchanged_mutation_keeps_version(self, make_session):
        store = InMemorySessionStore()
        session = store.create(make_session())

        result = store.mutate(session.id, lambda current: (current, "noop"))

        assert result == "noop"
        assert store.get(session.id).version == 0

    def test_mutate_unknown_session(self):
        with pytest.raises(SessionNotFoundError):
            InMemorySessionStore().mutate("missing", tab_change)

    def test_concurrent_events_lose_no_updates(self, make_session):
        store = InMemorySessionStore()
        session = store.create(make_session())
        threads_count = 8
        events_per_thread = 50
        barrier = threading.Barrier(threads_count)

        def worker():
            barrier.wait()
            for _ in range(events_per_thread):
                store.mutate(session.id, tab_change)

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stored = store.get(session.id)
        assert stored.tab_change_count == threads_count * events_per_thread
        assert len(stored.violations) == threads_count * events_per_thread
        assert stored.version == threads_count * events_per_thread

    def test_find_open_skips_closed_sessions(self, make_session):
        store = InMemorySessionStore()
        store.create(make_session(status="completed"))
        open_session = store.create(make_session())

        assert store.find_open("quiz-1", "student-1").id == open_session.id
        assert store.find_open("quiz-1", "someone-else") is None


class TestSupabaseSessionStore:

    @pytest.fixture
    def mock_client(self):
        return MagicMock()

    def _stub_get(self, mock_client, rows):
        select = mock_client.table.return_value.select.return_value
        select.eq.return_value.limit.return_value.execute.side_effect = [
            MagicMock(data=[row]) for row in rows
        ]

    def _stub_update(self, mock_client, results):
        update = mock_client.table.return_value.update.return_value
        update.eq.return_value.eq.return_value.execute.side_effect = [
            MagicMock(data=data) for data in results
        ]

    def test_retries_on_version_conflict(self, mock_client, make_session):
        session = make_session(version=3)
        newer = session.model_copy(update={"version": 4, "tab_change_count": 1})
        self._stub_get(mock_client, [session.model_dump(mode="json"), newer.model_dump(mode="json")])
        self._stub_update(mock_client, [[], [{"id": session.id}]])

        store = SupabaseSessionStore(client=mock_client, max_retries=3)
        result = store.mutate(session.id, tab_change)

        # Second try ran the mutator against the fresher row
        assert result.tab_change_count == 2
        update = mock_client.table.return_value.update
        assert update.call_count == 2
        assert update.call_args[0][0]["version"] == 5
        eq_version = update.return_value.eq.return_value.eq
        assert eq_version.call_args[0] == ("version", 4)

    def test_gives_up_after_max_retries(self, mock_client, make_session):
        row = make_session().model_dump(mode="json")
        self._stub_get(mock_client, [row, row])
        self._stub_update(mock_client, [[], []])

        store = SupabaseSessionStore(client=mock_client, max_retries=2)
        with pytest.raises(SessionConflictError):
            store.mutate(row["id"], tab_change)

    def test_mutate_missing_session(self, mock_client):
        mock_client.table.return_value.select.return_value.eq.return_value.limit.return_value\
            .execute.return_value = MagicMock(data=[])

        store = SupabaseSessionStore(client=mock_client)
        with pytest.raises(SessionNotFoundError):
            store.mutate("missing", tab_change)

    def test_noop_mutation_skips_write(self, mock_client, make_session):
        session = make_session()
        self._stub_get(mock_client, [session.model_dump(mode="json")])

        store = SupabaseSessionStore(client=mock_client)
        assert store.mutate(session.id, lambda current: (current, None)) is None
        mock_client.table.return_value.update.assert_not_called()
