"""Tests for RowStore."""

from unittest.mock import MagicMock

import pytest

from clinicsheet.data.row_store import DuplicateRowIdError, RowStore
from clinicsheet.models.sheet_row import SheetRow


@pytest.fixture
def store():
    return RowStore(min_rows=5)


class TestRowStoreLoad:
    def test_unknown_owner_gets_padding(self, store):
        rows = store.rows("p")
        assert len(rows) == 5
        assert all(r.is_placeholder for r in rows)
        assert store.has_owner("p") is False

    def test_load_pads_and_notifies(self, store):
        observer = MagicMock()
        store.add_observer(observer)

        store.load("p", [SheetRow(id="a", notes="x")])

        assert len(store.rows("p")) == 5
        assert store.get_row("p", "a").notes == "x"
        assert store.index_of("p", "a") == 0
        observer.assert_called_once_with("p", None)

    def test_rows_returns_copy(self, store):
        store.load("p", [SheetRow(id="a")])
        store.rows("p").clear()
        assert len(store.rows("p")) == 5

    def test_duplicate_ids_rejected(self, store):
        with pytest.raises(DuplicateRowIdError):
            store.load("p", [SheetRow(id="a"), SheetRow(id="a")])


class TestRowStoreCommit:
    def test_commit_replaces_sequence(self, store):
        store.load("p", [SheetRow(id="a")])
        observer = MagicMock()
        store.add_observer(observer)

        store.commit("p", [SheetRow(id="b"), SheetRow(id="a")], {"b"})

        assert [r.id for r in store.rows("p")[:2]] == ["b", "a"]
        observer.assert_called_once_with("p", {"b"})

    def test_owners_are_independent(self, store):
        store.load("p1", [SheetRow(id="a")])
        store.load("p2", [SheetRow(id="b")])
        assert store.get_row("p1", "b") is None
        assert sorted(store.owners()) == ["p1", "p2"]

    def test_broken_observer_does_not_stop_others(self, store):
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        store.add_observer(broken)
        store.add_observer(healthy)

        store.load("p", [])

        healthy.assert_called_once()

    def test_remove_observer(self, store):
        observer = MagicMock()
        store.add_observer(observer)
        store.remove_observer(observer)
        store.load("p", [])
        observer.assert_not_called()


class TestRenameIds:
    def test_rename_in_place(self, store):
        store.load("p", [SheetRow(id="x"), SheetRow(id="new-1-1-1", notes="n"), SheetRow(id="y")])

        applied = store.rename_ids("p", {"new-1-1-1": "srv-1", "new-9-9-9": "srv-9"})

        assert applied == {"srv-1"}
        assert [r.id for r in store.rows("p")[:3]] == ["x", "srv-1", "y"]
        assert store.get_row("p", "srv-1").notes == "n"

    def test_rename_unknown_owner(self, store):
        assert store.rename_ids("nobody", {"a": "b"}) == set()

    def test_forget(self, store):
        store.load("p", [SheetRow(id="a")])
        store.forget("p")
        assert store.has_owner("p") is False
