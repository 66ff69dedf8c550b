"""Tests for the persisted notification state."""

from datetime import timedelta

import pytest

from ghdeck.data.store import StateStore, get_database_url

from conftest import BASE_TIME


@pytest.fixture
def store() -> StateStore:
    return StateStore("sqlite://")


class TestDoneNotifications:
    """Done markers."""

    def test_mark_done(self, store):
        store.mark_done("1", BASE_TIME)
        assert store.is_done("1", BASE_TIME)

    def test_unknown_thread_is_not_done(self, store):
        assert not store.is_done("nope", BASE_TIME)

    def test_updated_thread_comes_back(self, store):
        """A thread with activity after it was marked done is shown again."""
        store.mark_done("1", BASE_TIME)
        assert not store.is_done("1", BASE_TIME + timedelta(minutes=5))

    def test_done_without_timestamp(self, store):
        store.mark_done("2")
        assert store.is_done("2", BASE_TIME)

    def test_mark_done_twice_updates(self, store):
        store.mark_done("1", BASE_TIME)
        store.mark_done("1", BASE_TIME + timedelta(hours=1))
        assert store.is_done("1", BASE_TIME + timedelta(minutes=30))
        assert store.clear_done() == 1

    def test_clear_done(self, store):
        store.mark_done("1")
        store.mark_done("2")
        assert store.clear_done() == 2
        assert not store.is_done("1")
        assert store.clear_done() == 0


class TestBookmarks:
    """Bookmark toggling."""

    def test_toggle(self, store):
        assert store.toggle_bookmark("7") is True
        assert store.is_bookmarked("7")
        assert store.toggle_bookmark("7") is False
        assert not store.is_bookmarked("7")

    def test_bookmarked_ids(self, store):
        store.toggle_bookmark("a")
        store.toggle_bookmark("b")
        assert set(store.bookmarked_ids()) == {"a", "b"}

    def test_clear_bookmarks(self, store):
        store.toggle_bookmark("a")
        assert store.clear_bookmarks() == 1
        assert store.bookmarked_ids() == []


class TestDatabaseUrl:
    def test_file_url(self, tmp_path):
        url = get_database_url(tmp_path / "state" / "state.db")
        assert url == f"sqlite:///{tmp_path / 'state' / 'state.db'}"
        assert (tmp_path / "state").is_dir()

    def test_file_store(self, tmp_path):
        store = StateStore(get_database_url(tmp_path / "state.db"))
        store.toggle_bookmark("x")
        assert StateStore(store.url).is_bookmarked("x")
